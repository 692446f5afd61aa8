"""
Initialize storage for both engines.

- relational: creates missing tables
- document: creates collections' indexes

Run ONCE when:
- first local setup
- new environment deployment
"""

import argparse
import sys

from paperhub.config import Config
from paperhub.database.db.session import RelationalConnection
from paperhub.database.errors import RepositoryError
from paperhub.database.mongo import DocumentConnection


def init_relational() -> None:
    print("🔧 Initializing relational schema...")
    connection = RelationalConnection(Config.postgres.url, echo=Config.postgres.echo)
    connection.connect()  # create_all runs on connect
    connection.close()
    print("✅ Relational schema initialized.")


def init_document() -> None:
    print("🔧 Initializing document indexes...")
    connection = DocumentConnection(
        Config.mongodb.uri,
        Config.mongodb.database,
        server_selection_timeout_ms=Config.mongodb.server_selection_timeout_ms,
    )
    connection.connect()  # indexes are ensured on connect
    connection.close()
    print("✅ Document indexes initialized.")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Initialize PaperHub storage")
    parser.add_argument(
        "--engine",
        choices=["relational", "document", "all"],
        default="all",
        help="Which engine to initialize (default: all)",
    )
    args = parser.parse_args(argv)

    try:
        if args.engine in ("relational", "all"):
            init_relational()
        if args.engine in ("document", "all"):
            init_document()
    except RepositoryError as e:
        print(f"❌ {e.message}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
