"""Meeting release — end-to-end demonstration against an in-memory store.

Two release tasks publish two revisions of the same meeting:

  TASK 1 — first publication
    The staging graph is described as a dataset, snapshotted, and moved to
    the public graph. Nothing is deprecated.

  TASK 2 — revised publication
    The new dataset becomes a prov:revisionOf the first. The first
    dataset's download URLs are stripped and exactly the triples of its
    snapshot are removed from the public graph before the revision lands.

  TASK 3 — broken staging graph
    No meeting in the staging graph: the task fails, and the queue stays
    blocked until the operator runs the printed reset statement.

Run with: python -m case_studies.meeting_release.run
"""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../.."))

import logging
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

from rdflib import URIRef

from dcat_release.config import Settings
from dcat_release.store import MemoryStore
from dcat_release.tasks import ReleaseQueue, resolution_statement
from dcat_release.vocab import DCAT, DCTERMS, PROV, RDF

from .domain import build_meeting, schedule_task, stage

TASKS = "http://themis.vlaanderen.be/id/release-task"
STAGING = "http://mu.semte.ch/graphs/staging"


def print_header(title: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {title}")
    print(f"{'=' * 60}")


def print_public(store: MemoryStore, settings: Settings) -> None:
    public = store.dataset.graph(URIRef(settings.public_graph))
    print(f"\n  Public graph: {len(public)} triples")
    for dataset in sorted(public.subjects(RDF.type, DCAT.Dataset)):
        revision_of = public.value(dataset, PROV.revisionOf)
        print(f"    Dataset {dataset.split('/')[-1]}")
        print(f"      modified:    {public.value(dataset, DCTERMS.modified)}")
        if revision_of:
            print(f"      revisionOf:  {revision_of.split('/')[-1]}")
        for dist in public.objects(dataset, DCAT.distribution):
            url = public.value(dist, DCAT.downloadURL)
            print(f"      distribution {dist.split('/')[-1][:8]}  download: {url or '(deprecated)'}")


def main():
    share = Path(tempfile.mkdtemp(prefix="share-"))
    settings = Settings(share_dir=share, update_batch_size=25)
    store = MemoryStore()
    release_queue = ReleaseQueue(store, settings)
    created = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)

    print_header("TASK 1: First publication")
    stage(store, f"{STAGING}/1", build_meeting(revision=1))
    schedule_task(store, settings.task_graph, f"{TASKS}/1", f"{STAGING}/1", created)
    for task in release_queue.drain():
        print(f"\n  {task}")
    print_public(store, settings)

    print_header("TASK 2: Revised publication")
    stage(store, f"{STAGING}/2", build_meeting(revision=2))
    schedule_task(store, settings.task_graph, f"{TASKS}/2", f"{STAGING}/2", created + timedelta(hours=1))
    for task in release_queue.drain():
        print(f"\n  {task}")
    print_public(store, settings)

    print_header("TASK 3: Broken staging graph")
    schedule_task(store, settings.task_graph, f"{TASKS}/3", f"{STAGING}/3", created + timedelta(hours=2))
    for task in release_queue.drain():
        print(f"\n  {task}")
    failed = release_queue.failed_task()
    if failed:
        print("\n  The queue is blocked. Reset the task with:")
        print(resolution_statement(failed.uri, settings.task_graph))

    print(f"\n{'=' * 60}")
    print("  Meeting Release Complete")
    print(f"{'=' * 60}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING, format="%(asctime)s [%(name)s] %(levelname)s: %(message)s")
    main()
