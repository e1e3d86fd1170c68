"""Delete revoked and expired sessions from the configured database.

Usage:
    python -m cajpro.cleanup_sessions [--database-url URL]
"""
import argparse
import logging

from cajpro.auth.sessions import cleanup_expired_sessions
from cajpro.core import config
from cajpro.core.logging_config import configure_logging
from cajpro.database import Database

logger = logging.getLogger(__name__)


def run_session_cleanup(database: Database) -> int:
    with database.session() as db:
        return cleanup_expired_sessions(db)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument('--database-url', default=config.DATABASE_URL)
    args = parser.parse_args(argv)

    configure_logging()
    database = Database(args.database_url)
    try:
        removed = run_session_cleanup(database)
    finally:
        database.dispose()

    print(f'Removed {removed} session(s).')
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
