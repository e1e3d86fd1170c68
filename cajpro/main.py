import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from cajpro.cleanup_sessions import run_session_cleanup
from cajpro.core import config
from cajpro.core.logging_config import configure_logging
from cajpro.database import Database
from cajpro.routes import admin_routes, auth_routes, profile_routes

logger = logging.getLogger(__name__)


async def periodic_session_cleanup(database: Database, interval_minutes: int) -> None:
    while True:
        await asyncio.sleep(interval_minutes * 60)
        try:
            await asyncio.to_thread(run_session_cleanup, database)
        except SQLAlchemyError:
            logger.exception('Periodic session cleanup failed.')


def create_app(database: Database | None = None) -> FastAPI:
    """Build the API. A supplied ``database`` is used as-is and not disposed."""
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        config.validate_runtime_config()
        store = database or Database(config.DATABASE_URL)
        app.state.database = store

        try:
            store.create_schema()
        except SQLAlchemyError:
            logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')

        if config.SESSION_CLEANUP_ON_STARTUP:
            await asyncio.to_thread(run_session_cleanup, store)

        cleanup_task = None
        if config.SESSION_CLEANUP_INTERVAL_MINUTES > 0:
            cleanup_task = asyncio.create_task(
                periodic_session_cleanup(store, config.SESSION_CLEANUP_INTERVAL_MINUTES)
            )

        try:
            yield
        finally:
            if cleanup_task is not None:
                cleanup_task.cancel()
                with suppress(asyncio.CancelledError):
                    await cleanup_task
            if database is None:
                store.dispose()

    app = FastAPI(title='CAJ-Pro API', lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )

    @app.get('/')
    def root():
        return {'status': 'CAJ-Pro API Running'}

    app.include_router(auth_routes.router, prefix='/auth')
    app.include_router(profile_routes.router, prefix='/profile')
    app.include_router(admin_routes.router, prefix='/admin')

    return app


app = create_app()
