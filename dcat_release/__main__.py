"""Command line entry point.

    python -m dcat_release run            # release waiting tasks, like a service start-up
    python -m dcat_release status         # list release tasks and their status
    python -m dcat_release manual TASK    # print the statement that re-opens the queue
"""

from __future__ import annotations

import argparse
import logging
import sys

from .config import get_settings
from .notify import OutboxNotifier
from .store import SparqlEndpointStore
from .tasks import ReleaseQueue, resolution_statement
from .types import TaskStatus

log = logging.getLogger("dcat-release")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dcat_release", description=__doc__.splitlines()[0])
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="release all eligible tasks and exit")
    sub.add_parser("status", help="list release tasks")
    manual = sub.add_parser("manual", help="print the reset statement for a failed task")
    manual.add_argument("task", help="URI of the failed release task")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    if args.command == "manual":
        print(resolution_statement(args.task, settings.task_graph))
        return 0

    with SparqlEndpointStore.from_settings(settings) as store:
        release_queue = ReleaseQueue(store, settings, notifier=OutboxNotifier(store, settings))

        if args.command == "status":
            for task in release_queue.tasks():
                print(f"{task.created.isoformat()}  {task.status.label:<18} {task.uri}")
            return 0

        executed = release_queue.resume()
        failed = [t for t in executed if t.status == TaskStatus.FAILED]
        log.info("Executed %d release tasks, %d failed", len(executed), len(failed))
        return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
