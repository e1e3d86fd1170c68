import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from threading import Lock
from typing import Iterator

from fastapi import HTTPException, Request, status
from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


Base = declarative_base()

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns of the schema."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def _enable_sqlite_transactions(engine) -> None:
    # pysqlite defers BEGIN and breaks SAVEPOINT; take over transaction
    # control and turn on foreign keys for ON DELETE CASCADE. The built-in
    # lower() only folds ASCII, so it is replaced to match str.lower and the
    # case-insensitive email index.
    @event.listens_for(engine, 'connect')
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()
        dbapi_connection.create_function('lower', 1, _unicode_lower, deterministic=True)

    @event.listens_for(engine, 'begin')
    def _on_begin(connection):
        connection.exec_driver_sql('BEGIN')


class Database:
    """Store handle owning one engine and its session factory.

    Built explicitly (usually in the application lifespan) and released with
    ``dispose()``; nothing here runs at import time.
    """

    def __init__(self, url: str, **engine_options) -> None:
        self.url = url
        parsed = make_url(url)
        if parsed.get_backend_name() == 'sqlite':
            engine_options.setdefault('connect_args', {'check_same_thread': False})
            if parsed.database in (None, '', ':memory:'):
                engine_options.setdefault('poolclass', StaticPool)

        self.engine = create_engine(url, **engine_options)
        if parsed.get_backend_name() == 'sqlite':
            _enable_sqlite_transactions(self.engine)
        self.session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
        )
        self._schema_lock = Lock()
        self._auth_schema_checked = False

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    def create_schema(self) -> None:
        # Model modules register their tables on Base when imported.
        from cajpro.models import profile, session, user  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        self.ensure_auth_schema()

    def ensure_auth_schema(self) -> None:
        """Bring tables created by older deployments up to the current shape."""
        if self._auth_schema_checked:
            return

        with self._schema_lock:
            if self._auth_schema_checked:
                return

            inspector = inspect(self.engine)
            table_names = set(inspector.get_table_names())

            migration_steps = {
                'users': [
                    ('is_admin', 'ALTER TABLE users ADD COLUMN is_admin BOOLEAN NOT NULL DEFAULT FALSE'),
                    ('is_active', 'ALTER TABLE users ADD COLUMN is_active BOOLEAN NOT NULL DEFAULT TRUE'),
                    ('last_sign_in_at', 'ALTER TABLE users ADD COLUMN last_sign_in_at TIMESTAMP'),
                ],
                'sessions': [
                    ('ip_address', 'ALTER TABLE sessions ADD COLUMN ip_address VARCHAR(45)'),
                    ('user_agent', 'ALTER TABLE sessions ADD COLUMN user_agent VARCHAR(512)'),
                ],
                'profiles': [
                    ('location', 'ALTER TABLE profiles ADD COLUMN location VARCHAR(255)'),
                    ('website', 'ALTER TABLE profiles ADD COLUMN website VARCHAR(255)'),
                    ('expertise_level', 'ALTER TABLE profiles ADD COLUMN expertise_level VARCHAR(32)'),
                    ('phone', 'ALTER TABLE profiles ADD COLUMN phone VARCHAR(32)'),
                ],
            }

            existing_columns = {
                table_name: {column['name'] for column in inspector.get_columns(table_name)}
                for table_name in migration_steps
                if table_name in table_names
            }

            with self.engine.begin() as connection:
                for table_name, columns in existing_columns.items():
                    for column_name, statement in migration_steps[table_name]:
                        if column_name not in columns:
                            logger.info('Adding column %s.%s', table_name, column_name)
                            connection.execute(text(statement))

                if 'sessions' in table_names:
                    connection.execute(
                        text('CREATE INDEX IF NOT EXISTS idx_sessions_user_active ON sessions(user_id, is_active)')
                    )
                    connection.execute(
                        text('CREATE INDEX IF NOT EXISTS idx_sessions_expires_at ON sessions(expires_at)')
                    )

            self._auth_schema_checked = True

    def dispose(self) -> None:
        self.engine.dispose()


def get_db(request: Request) -> Iterator[Session]:
    database: Database = request.app.state.database
    with database.session() as db:
        yield db


def database_unavailable(action: str) -> HTTPException:
    """Log the active exception and build the generic 503 shown to clients."""
    logger.exception('Database failure while %s.', action)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail='Database unavailable. Please try again.',
    )
