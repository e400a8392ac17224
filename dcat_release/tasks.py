"""Release task queue — ordered, one-at-a-time execution of release tasks.

Task states:  READY -> RELEASING -> SUCCESS
                                 -> FAILED

Selection rules:
  - the next task is the READY task with the earliest creation date
  - no task is selected while any task is FAILED: releases must be published
    in creation order, so one failure blocks everything after it
  - no task is started while another one is RELEASING

A FAILED task stays failed until an operator resets it to READY; the update
that does so is logged (and printed by the CLI), never executed here.

ReleaseQueue holds the selection rules and the executor. ReleaseWorker puts
one thread in front of it: triggers become messages in an inbox, and only
that thread decides what to start.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

from .config import Settings
from .dataset import Dataset
from .notify import LogNotifier, Notifier
from .store import TripleStore
from .terms import escape_uri
from .transfer import GraphTransfer
from .types import TaskStatus
from .vocab import ADMS, prefixes

logger = logging.getLogger(__name__)


@dataclass
class ReleaseTask:
    """A release task as persisted in the task graph."""
    uri: str
    source: str  # staging graph holding the data to release
    created: datetime
    status: TaskStatus
    dataset: str | None = None

    def __repr__(self) -> str:
        return f"ReleaseTask(<{self.uri}> {self.status.label}, created {self.created.isoformat()})"


def resolution_statement(task_uri: str, task_graph: str) -> str:
    """The SPARQL update an operator runs to put a failed task back in the queue."""
    graph = escape_uri(task_graph)
    task = escape_uri(task_uri)
    return f"""
    {prefixes("adms")}
    DELETE {{
      GRAPH {graph} {{
        {task} adms:status ?status .
      }}
    }} INSERT {{
      GRAPH {graph} {{
        {task} adms:status {escape_uri(TaskStatus.READY.uri)} .
      }}
    }} WHERE {{
      GRAPH {graph} {{
        {task} adms:status ?status .
      }}
    }}
    """


def _parse_created(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class ReleaseQueue:
    def __init__(
        self,
        store: TripleStore,
        settings: Settings,
        notifier: Notifier | None = None,
        transfer: GraphTransfer | None = None,
        dataset_factory: Callable[..., Dataset] = Dataset,
    ):
        self.store = store
        self.settings = settings
        self.notifier = notifier or LogNotifier()
        self.transfer = transfer or GraphTransfer.from_settings(store, settings)
        self.dataset_factory = dataset_factory

    # -----------------------------------------------------------------------
    # Task lookup
    # -----------------------------------------------------------------------

    def _select_tasks(self, status: TaskStatus | None = None, extra: str = "", limit: int | None = None):
        status_pattern = escape_uri(status.uri) if status else "?status"
        limit_clause = f"LIMIT {limit}" if limit else ""
        rows = self.store.select(f"""
            {prefixes("ext", "adms", "dct", "prov")}
            SELECT ?s ?source ?created ?status ?dataset
            WHERE {{
              GRAPH {escape_uri(self.settings.task_graph)} {{
                ?s a ext:ReleaseTask ;
                  adms:status {status_pattern} ;
                  dct:source ?source ;
                  dct:created ?created .
                OPTIONAL {{ ?s prov:generated ?dataset }}
                {extra}
              }}
            }}
            ORDER BY ?created
            {limit_clause}
        """)
        tasks = []
        for row in rows:
            task_status = status or TaskStatus(row["status"]["value"])
            tasks.append(ReleaseTask(
                uri=row["s"]["value"],
                source=row["source"]["value"],
                created=_parse_created(row["created"]["value"]),
                status=task_status,
                dataset=row["dataset"]["value"] if "dataset" in row else None,
            ))
        return tasks

    def tasks(self) -> list[ReleaseTask]:
        """All release tasks, oldest first."""
        return self._select_tasks()

    def running_task(self) -> ReleaseTask | None:
        tasks = self._select_tasks(TaskStatus.RELEASING, limit=1)
        return tasks[0] if tasks else None

    def next_task(self) -> ReleaseTask | None:
        """The oldest READY task, unless some task has FAILED."""
        blocked = f"""
                FILTER NOT EXISTS {{
                  ?t a ext:ReleaseTask ;
                    adms:status {escape_uri(TaskStatus.FAILED.uri)} .
                }}"""
        tasks = self._select_tasks(TaskStatus.READY, extra=blocked, limit=1)
        return tasks[0] if tasks else None

    def failed_task(self) -> ReleaseTask | None:
        """The oldest FAILED task. Normally there is at most one."""
        tasks = self._select_tasks(TaskStatus.FAILED, limit=1)
        return tasks[0] if tasks else None

    # -----------------------------------------------------------------------
    # Execution
    # -----------------------------------------------------------------------

    def persist_status(self, task: ReleaseTask, status: TaskStatus) -> None:
        task.status = status
        graph = escape_uri(self.settings.task_graph)
        self.store.update(f"""
            {prefixes("adms")}
            DELETE WHERE {{
              GRAPH {graph} {{
                {escape_uri(task.uri)} adms:status ?status .
              }}
            }}
        """)
        self.store.update(f"""
            {prefixes("ext", "adms")}
            INSERT {{
              GRAPH {graph} {{
                {escape_uri(task.uri)} adms:status {escape_uri(status.uri)} .
              }}
            }} WHERE {{
              GRAPH {graph} {{
                {escape_uri(task.uri)} a ext:ReleaseTask .
              }}
            }}
        """)
        logger.debug("Task <%s> is now %s", task.uri, status.label)

    def link_dataset(self, task: ReleaseTask, dataset_uri: str) -> None:
        """Point the task at its dataset, replacing a link left by an earlier attempt."""
        task.dataset = dataset_uri
        graph = escape_uri(self.settings.task_graph)
        self.store.update(f"""
            {prefixes("prov")}
            DELETE WHERE {{
              GRAPH {graph} {{
                {escape_uri(task.uri)} prov:generated ?dataset .
              }}
            }}
        """)
        self.store.update(f"""
            {prefixes("prov")}
            INSERT DATA {{
              GRAPH {graph} {{
                {escape_uri(task.uri)} prov:generated {escape_uri(dataset_uri)} .
              }}
            }}
        """)

    def release(self, task: ReleaseTask) -> Dataset:
        """Run the release pipeline for one task.

        A. prepare the DCAT resources in the staging graph
        B. deprecate the previous dataset for the same subject
        C. move the staging graph into the public graph
        """
        logger.info("Creating new dataset containing triples from graph <%s>", task.source)
        dataset = self.dataset_factory(task.source, self.store, self.settings, transfer=self.transfer)

        logger.info("Preparing dataset distributions...")
        dataset.prepare()

        logger.info("Linking dataset <%s> to task <%s> ...", dataset.uri, task.uri)
        self.link_dataset(task, dataset.uri)

        logger.info("Deprecating the previous dataset of dataset <%s> if there is any...", dataset.uri)
        dataset.deprecate_previous()

        logger.info("Releasing new dataset <%s> ...", dataset.uri)
        dataset.release()
        return dataset

    def execute(self, task: ReleaseTask) -> bool:
        """Run one task to SUCCESS or FAILED. Returns True on success."""
        try:
            self.persist_status(task, TaskStatus.RELEASING)
            self.release(task)
            self.persist_status(task, TaskStatus.SUCCESS)
        except Exception as e:
            logger.exception("Something went wrong while processing release task <%s>", task.uri)
            self.close_with_failure(task, e)
            return False
        logger.info("Release task <%s> succeeded", task.uri)
        return True

    def close_with_failure(self, task: ReleaseTask, error: Exception) -> None:
        self.persist_status(task, TaskStatus.FAILED)
        self.log_resolution_manual(task.uri)
        try:
            self.notifier.send(
                "A release task has fully failed in dcat-dataset-publication",
                f"environment: {self.settings.host_domain}\n"
                f"task: {task.uri}\n"
                f"Detail of error: {str(error) or 'no details available'}\n"
                "This error will fully block this and future releases and needs to be fixed manually!",
            )
        except Exception:
            logger.exception("Failed to send failure notification for task <%s>", task.uri)

    def drain(self) -> list[ReleaseTask]:
        """Execute eligible tasks one after the other until none is left.

        Stops at the first failure, or without starting anything when a task
        is already releasing. Returns the tasks that were executed.
        """
        executed: list[ReleaseTask] = []
        while True:
            running = self.running_task()
            if running is not None:
                logger.info("Release task <%s> is running. Not starting another one.", running.uri)
                break
            task = self.next_task()
            if task is None:
                break
            logger.info("Start releasing task <%s>", task.uri)
            executed.append(task)
            if not self.execute(task):
                break
        return executed

    def resume(self) -> list[ReleaseTask]:
        """Start-up: drain waiting tasks, or report why nothing can run."""
        running = self.running_task()
        if running is not None:
            logger.error(
                "Task <%s> is still releasing. Unless another instance of this service is "
                "running, the release was interrupted and blocks the queue. Check the public "
                "graph and restart this service after putting the task back in the queue.",
                running.uri,
            )
            logger.error(
                "Execute the following SPARQL query to reset the task status to ready-for-release:\n%s",
                resolution_statement(running.uri, self.settings.task_graph),
            )
            return []
        if self.next_task() is not None:
            logger.info("Start releasing new DCAT data on start-up")
            return self.drain()
        failed = self.failed_task()
        if failed is not None:
            self.log_resolution_manual(failed.uri)
        else:
            logger.info("No scheduled release task found on start-up. Waiting for new deltas.")
        return []

    def log_resolution_manual(self, task_uri: str) -> None:
        logger.error(
            "Task <%s> failed. This failure will block the entire release queue to ensure "
            "release tasks are executed in order. Manually resolve the status of the failed "
            "task and restart this service to resume execution.",
            task_uri,
        )
        logger.error(
            "Execute the following SPARQL query to reset the task status to ready-for-release:\n%s",
            resolution_statement(task_uri, self.settings.task_graph),
        )


# ---------------------------------------------------------------------------
# Single-writer trigger handling
# ---------------------------------------------------------------------------

class Trigger(Enum):
    """Answer to a trigger, given before any release completes."""
    ACCEPTED = "accepted"              # a task is eligible; the worker will start it
    BUSY = "busy"                      # a release is running; it drains the queue itself
    NOTHING_PENDING = "nothing_pending"
    IGNORED = "ignored"                # the delta held no ready-for-release status


_DRAIN = "drain"
_STOP = "stop"


class ReleaseWorker:
    """The one thread that starts releases.

    Callers only peek at the queue to answer a trigger; the running-task
    check, the failed-task check and the selection that decide what is
    started all happen on the worker thread, one message at a time.
    """

    def __init__(self, release_queue: ReleaseQueue):
        self.queue = release_queue
        self.inbox: queue.Queue[str] = queue.Queue()
        self.thread: threading.Thread | None = None
        self.drains = 0
        self.failures = 0

    def start(self) -> None:
        if self.thread is not None and self.thread.is_alive():
            return
        self.thread = threading.Thread(target=self._run, name="release-worker", daemon=True)
        self.thread.start()
        logger.info("Release worker started")

    def stop(self, timeout: float | None = None) -> None:
        if self.thread is None:
            return
        self.inbox.put(_STOP)
        self.thread.join(timeout)
        self.thread = None
        logger.info("Release worker stopped. Drains: %d, failed: %d", self.drains, self.failures)

    def join(self) -> None:
        """Block until every trigger received so far has been handled."""
        self.inbox.join()

    def notify(self) -> Trigger:
        if self.queue.running_task() is not None:
            logger.info("Another release task is running. Not starting a new one.")
            return Trigger.BUSY
        if self.queue.next_task() is None:
            logger.info("No scheduled release task found.")
            return Trigger.NOTHING_PENDING
        self.inbox.put(_DRAIN)
        return Trigger.ACCEPTED

    def handle_delta(self, changesets: list[dict]) -> Trigger:
        """React to a delta-notifier message.

        Only inserts that set adms:status to ready-for-release count.
        """
        inserts = [t for changeset in changesets for t in changeset.get("inserts", [])]
        ready = [
            t for t in inserts
            if t["predicate"]["value"] == str(ADMS.status)
            and t["object"]["value"] == TaskStatus.READY.uri
        ]
        if not ready:
            logger.debug("No insertion of status <%s> found in the delta message.", TaskStatus.READY.uri)
            return Trigger.IGNORED
        logger.info("Found %d release tasks.", len(ready))
        return self.notify()

    def _run(self) -> None:
        while True:
            message = self.inbox.get()
            try:
                if message == _STOP:
                    break
                executed = self.queue.drain()
                self.drains += 1
                if executed and executed[-1].status == TaskStatus.FAILED:
                    self.failures += 1
            except Exception as e:
                self.failures += 1
                logger.error("Release worker loop error: %s", e, exc_info=True)
            finally:
                self.inbox.task_done()
