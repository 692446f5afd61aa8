"""
Move all papers and notes from one engine to the other.

Usage:
    python -m paperhub.scripts.migrate --from relational --to document
    python -m paperhub.scripts.migrate --from mongodb --to postgres --switch-after

Prints the migration result as JSON. Exit code 0 only when the migration
completed (source cleared); a partial or aborted run exits with 1 and
leaves the source untouched.
"""

import argparse
import logging
import signal
import sys
import threading

from paperhub.database.errors import RepositoryError
from paperhub.database.factory import RepositoryFactory
from paperhub.logging_setup import setup_logging
from paperhub.model import MigrationStatus
from paperhub.service import MigrationService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Migrate PaperHub data between engines")
    parser.add_argument("--from", dest="from_engine", required=True, help="relational | document (postgres / mongodb)")
    parser.add_argument("--to", dest="to_engine", required=True, help="relational | document (postgres / mongodb)")
    parser.add_argument(
        "--switch-after",
        action="store_true",
        help="Make the target the active engine of this process once the run completed",
    )
    parser.add_argument("--batch-size", type=int, help="Override migration.batch_size")
    parser.add_argument("--max-records", type=int, help="Override migration.max_records")
    return parser


def main(argv=None, factory: RepositoryFactory = None) -> int:
    args = build_parser().parse_args(argv)
    factory = factory or RepositoryFactory()
    setup_logging(factory.settings.logging)

    config = factory.settings.migration
    overrides = {}
    if args.batch_size:
        overrides["batch_size"] = args.batch_size
    if args.max_records:
        overrides["max_records"] = args.max_records
    if overrides:
        config = config.model_copy(update=overrides)

    # Ctrl+C aborts before reconciliation instead of killing a half-done run
    cancel_event = threading.Event()
    previous_handler = None
    if threading.current_thread() is threading.main_thread():
        previous_handler = signal.signal(signal.SIGINT, lambda *_: cancel_event.set())

    service = MigrationService(factory, config=config)
    try:
        result = service.migrate(
            args.from_engine,
            args.to_engine,
            switch_after=args.switch_after,
            cancel_event=cancel_event,
        )
    except RepositoryError as e:
        logger.error(f"❌ Migration failed: {e.message}")
        return 1
    finally:
        factory.cleanup()
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)

    print(result.model_dump_json(indent=2))
    return 0 if result.status == MigrationStatus.COMPLETE else 1


if __name__ == "__main__":
    sys.exit(main())
