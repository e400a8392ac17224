"""Tests for the release task queue and the single-writer worker."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import logging
from datetime import datetime, timedelta, timezone

import pytest
from rdflib import URIRef

from dcat_release.config import Settings
from dcat_release.store import MemoryStore
from dcat_release.tasks import (
    ReleaseQueue,
    ReleaseTask,
    ReleaseWorker,
    Trigger,
    resolution_statement,
)
from dcat_release.types import TaskStatus
from dcat_release.vocab import ADMS, DCAT, PROV, RDF

from case_studies.meeting_release.domain import build_meeting, schedule_task, stage

TASKS = "http://themis.vlaanderen.be/id/release-task"
STAGING = "http://mu.semte.ch/graphs/staging"
CREATED = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class RecordingNotifier:
    def __init__(self):
        self.messages = []

    def send(self, subject, body):
        self.messages.append((subject, body))


class BrokenNotifier:
    def send(self, subject, body):
        raise RuntimeError("mail server down")


@pytest.fixture
def settings(tmp_path):
    return Settings(share_dir=tmp_path, update_batch_size=50)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def release_queue(store, settings, notifier):
    return ReleaseQueue(store, settings, notifier=notifier)


def _task(n: int) -> str:
    return f"{TASKS}/{n}"


def _schedule(store, settings, n, hours=0, status=TaskStatus.READY, revision=1, staged=True):
    """Stage meeting content in staging/<n> and schedule task <n> for it."""
    if staged:
        stage(store, f"{STAGING}/{n}", build_meeting(revision=revision))
    schedule_task(
        store, settings.task_graph, _task(n), f"{STAGING}/{n}",
        CREATED + timedelta(hours=hours), status=status,
    )


def _statuses(release_queue) -> dict:
    return {t.uri: t.status for t in release_queue.tasks()}


def _ready_delta(task_uri: str) -> list[dict]:
    return [{
        "inserts": [{
            "subject": {"type": "uri", "value": task_uri},
            "predicate": {"type": "uri", "value": str(ADMS.status)},
            "object": {"type": "uri", "value": TaskStatus.READY.uri},
        }],
        "deletes": [],
    }]


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

class TestSelection:
    def test_next_task_is_oldest_ready(self, store, settings, release_queue):
        _schedule(store, settings, 3, hours=2)
        _schedule(store, settings, 1, hours=0)
        _schedule(store, settings, 2, hours=1)
        task = release_queue.next_task()
        assert task.uri == _task(1)
        assert task.source == f"{STAGING}/1"
        assert task.created == CREATED

    def test_no_next_task_while_one_failed(self, store, settings, release_queue):
        _schedule(store, settings, 1, status=TaskStatus.FAILED)
        _schedule(store, settings, 2, hours=1)
        assert release_queue.next_task() is None
        assert release_queue.failed_task().uri == _task(1)

    def test_running_task(self, store, settings, release_queue):
        _schedule(store, settings, 1, status=TaskStatus.RELEASING)
        assert release_queue.running_task().uri == _task(1)

    def test_empty_queue(self, release_queue):
        assert release_queue.tasks() == []
        assert release_queue.next_task() is None
        assert release_queue.running_task() is None
        assert release_queue.failed_task() is None

    def test_task_repr(self):
        task = ReleaseTask(_task(1), f"{STAGING}/1", CREATED, TaskStatus.READY)
        assert "ready-for-release" in repr(task)


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

class TestDrain:
    def test_releases_in_creation_order(self, store, settings, release_queue):
        _schedule(store, settings, 3, hours=2, revision=2)
        _schedule(store, settings, 1, hours=0, revision=1)
        _schedule(store, settings, 2, hours=1, revision=2)

        executed = release_queue.drain()

        assert [t.uri for t in executed] == [_task(1), _task(2), _task(3)]
        assert set(_statuses(release_queue).values()) == {TaskStatus.SUCCESS}

    def test_revision_chain_follows_task_order(self, store, settings, release_queue):
        _schedule(store, settings, 1, hours=0, revision=1)
        _schedule(store, settings, 2, hours=1, revision=2)

        first, second = release_queue.drain()

        public = store.dataset.graph(URIRef(settings.public_graph))
        assert len(list(public.subjects(RDF.type, DCAT.Dataset))) == 2
        assert public.value(URIRef(second.dataset), PROV.revisionOf) == URIRef(first.dataset)

    def test_task_is_linked_to_its_dataset(self, store, settings, release_queue):
        _schedule(store, settings, 1)
        [task] = release_queue.drain()
        assert task.dataset is not None
        assert release_queue.tasks()[0].dataset == task.dataset

    def test_staging_graph_is_emptied(self, store, settings, release_queue):
        _schedule(store, settings, 1)
        release_queue.drain()
        assert store.triples(f"{STAGING}/1") == set()

    def test_failure_blocks_queue(self, store, settings, release_queue, notifier):
        _schedule(store, settings, 1, staged=False)
        _schedule(store, settings, 2, hours=1)

        executed = release_queue.drain()

        assert [t.uri for t in executed] == [_task(1)]
        assert executed[0].status == TaskStatus.FAILED
        assert _statuses(release_queue) == {
            _task(1): TaskStatus.FAILED,
            _task(2): TaskStatus.READY,
        }
        assert release_queue.drain() == []

    def test_failure_notification(self, store, settings, release_queue, notifier):
        _schedule(store, settings, 1, staged=False)
        release_queue.drain()

        [(subject, body)] = notifier.messages
        assert "failed" in subject
        assert _task(1) in body
        assert settings.host_domain in body
        assert "block" in body

    def test_failure_logs_resolution_manual(self, store, settings, release_queue, caplog):
        _schedule(store, settings, 1, staged=False)
        with caplog.at_level(logging.ERROR, logger="dcat_release.tasks"):
            release_queue.drain()
        assert "reset the task status" in caplog.text
        assert _task(1) in caplog.text

    def test_notifier_failure_is_not_a_pipeline_failure(self, store, settings):
        release_queue = ReleaseQueue(store, settings, notifier=BrokenNotifier())
        _schedule(store, settings, 1, staged=False)

        executed = release_queue.drain()

        assert executed[0].status == TaskStatus.FAILED
        assert release_queue.failed_task().uri == _task(1)

    def test_operator_reset_reopens_queue(self, store, settings, release_queue):
        _schedule(store, settings, 1, staged=False)
        _schedule(store, settings, 2, hours=1, revision=2)
        release_queue.drain()

        stage(store, f"{STAGING}/1", build_meeting(revision=1))
        store.update(resolution_statement(_task(1), settings.task_graph))
        executed = release_queue.drain()

        assert [t.uri for t in executed] == [_task(1), _task(2)]
        assert set(_statuses(release_queue).values()) == {TaskStatus.SUCCESS}

    def test_retry_after_reset_publishes_one_dataset(self, store, settings, release_queue):
        _schedule(store, settings, 1)
        release_queue.drain()
        [snapshot] = settings.share_dir.glob("*.ttl")
        moved = snapshot.with_suffix(".bak")
        snapshot.rename(moved)

        _schedule(store, settings, 2, hours=1, revision=2)
        [failed] = release_queue.drain()
        assert failed.status == TaskStatus.FAILED

        moved.rename(snapshot)
        store.update(resolution_statement(_task(2), settings.task_graph))
        [retried] = release_queue.drain()

        assert retried.status == TaskStatus.SUCCESS
        public = store.dataset.graph(URIRef(settings.public_graph))
        datasets = set(public.subjects(RDF.type, DCAT.Dataset))
        active = [d for d in datasets if (None, PROV.revisionOf, d) not in public]
        assert len(datasets) == 2
        assert active == [URIRef(retried.dataset)]
        assert len(list(public.objects(URIRef(retried.dataset), DCAT.distribution))) == 3
        assert set(build_meeting(revision=2).triples()) <= store.triples(settings.public_graph)
        assert store.triples(f"{STAGING}/2") == set()
        assert [t.uri for t in release_queue.tasks()] == [_task(1), _task(2)]

    def test_running_task_guard(self, store, settings, release_queue):
        _schedule(store, settings, 1, status=TaskStatus.RELEASING)
        _schedule(store, settings, 2, hours=1)

        assert release_queue.drain() == []
        assert _statuses(release_queue)[_task(2)] == TaskStatus.READY


class TestResume:
    def test_drains_waiting_tasks(self, store, settings, release_queue):
        _schedule(store, settings, 1)
        assert [t.uri for t in release_queue.resume()] == [_task(1)]

    def test_reports_failed_task(self, store, settings, release_queue, caplog):
        _schedule(store, settings, 1, status=TaskStatus.FAILED)
        with caplog.at_level(logging.ERROR, logger="dcat_release.tasks"):
            assert release_queue.resume() == []
        assert _task(1) in caplog.text

    def test_reports_interrupted_release(self, store, settings, release_queue, caplog):
        _schedule(store, settings, 1, status=TaskStatus.RELEASING)
        _schedule(store, settings, 2, hours=1)
        with caplog.at_level(logging.ERROR, logger="dcat_release.tasks"):
            assert release_queue.resume() == []
        assert "still releasing" in caplog.text
        assert _task(1) in caplog.text
        assert "DELETE" in caplog.text
        assert TaskStatus.READY.uri in caplog.text
        assert _statuses(release_queue)[_task(2)] == TaskStatus.READY

    def test_nothing_scheduled(self, release_queue, caplog):
        with caplog.at_level(logging.INFO, logger="dcat_release.tasks"):
            assert release_queue.resume() == []
        assert "No scheduled release task" in caplog.text


class TestResolutionStatement:
    def test_resets_status_to_ready(self, store, settings, release_queue):
        _schedule(store, settings, 1, status=TaskStatus.FAILED)
        store.update(resolution_statement(_task(1), settings.task_graph))
        assert _statuses(release_queue) == {_task(1): TaskStatus.READY}

    def test_names_task_and_graph(self, settings):
        statement = resolution_statement(_task(7), settings.task_graph)
        assert f"<{_task(7)}>" in statement
        assert f"<{settings.task_graph}>" in statement
        assert TaskStatus.READY.uri in statement


# ---------------------------------------------------------------------------
# ReleaseWorker
# ---------------------------------------------------------------------------

class TestReleaseWorker:
    def test_delta_without_ready_status_is_ignored(self, release_queue):
        worker = ReleaseWorker(release_queue)
        delta = [{"inserts": [{
            "subject": {"type": "uri", "value": _task(1)},
            "predicate": {"type": "uri", "value": str(ADMS.status)},
            "object": {"type": "uri", "value": TaskStatus.SUCCESS.uri},
        }], "deletes": []}]
        assert worker.handle_delta(delta) == Trigger.IGNORED
        assert worker.handle_delta([]) == Trigger.IGNORED
        assert worker.inbox.empty()

    def test_nothing_pending(self, release_queue):
        worker = ReleaseWorker(release_queue)
        assert worker.notify() == Trigger.NOTHING_PENDING
        assert worker.inbox.empty()

    def test_busy_while_releasing(self, store, settings, release_queue):
        _schedule(store, settings, 1, status=TaskStatus.RELEASING)
        _schedule(store, settings, 2, hours=1)
        worker = ReleaseWorker(release_queue)
        assert worker.notify() == Trigger.BUSY

    def test_delta_triggers_release(self, store, settings, release_queue):
        _schedule(store, settings, 1)
        _schedule(store, settings, 2, hours=1, revision=2)
        worker = ReleaseWorker(release_queue)
        worker.start()
        try:
            assert worker.handle_delta(_ready_delta(_task(2))) == Trigger.ACCEPTED
            worker.join()
        finally:
            worker.stop(timeout=5)

        assert set(_statuses(release_queue).values()) == {TaskStatus.SUCCESS}
        assert worker.drains == 1
        assert worker.failures == 0

    def test_repeated_triggers_release_each_task_once(self, store, settings, release_queue):
        _schedule(store, settings, 1)
        worker = ReleaseWorker(release_queue)
        assert worker.notify() == Trigger.ACCEPTED
        assert worker.notify() == Trigger.ACCEPTED

        worker.start()
        try:
            worker.join()
        finally:
            worker.stop(timeout=5)

        assert worker.drains == 2
        assert _statuses(release_queue) == {_task(1): TaskStatus.SUCCESS}

    def test_failed_release_is_counted(self, store, settings, release_queue):
        _schedule(store, settings, 1, staged=False)
        worker = ReleaseWorker(release_queue)
        worker.start()
        try:
            worker.notify()
            worker.join()
        finally:
            worker.stop(timeout=5)
        assert worker.failures == 1

    def test_worker_survives_loop_errors(self, release_queue, monkeypatch):
        def explode():
            raise RuntimeError("store unreachable")

        monkeypatch.setattr(release_queue, "drain", explode)
        worker = ReleaseWorker(release_queue)
        worker.start()
        try:
            worker.inbox.put("drain")
            worker.inbox.put("drain")
            worker.join()
            assert worker.thread.is_alive()
        finally:
            worker.stop(timeout=5)
        assert worker.failures == 2
