import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from eventreminder import __version__
from eventreminder.core.config import ReminderSettings, get_settings
from eventreminder.core.logging_config import configure_logging
from eventreminder.db.session import create_session_factory, create_store_engine
from eventreminder.reminders.service import create_supervisor
from eventreminder.reminders.transport import Transport
from eventreminder.websocket import LiveNotificationEmitter, router as live_router

logger = logging.getLogger(__name__)

SHUTDOWN_GRACE_SECONDS = 30


def create_app(
    settings: ReminderSettings,
    session_factory: Optional[sessionmaker] = None,
    transport: Optional[Transport] = None,
) -> FastAPI:
    """Create the reminder service: live WebSocket channel, health, metrics and
    the dispatch supervisor running for the lifetime of the app."""
    if session_factory is None:
        session_factory = create_session_factory(create_store_engine(settings.DATABASE_URL))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting up reminder service...")
        supervisor = create_supervisor(settings, session_factory, transport=transport)
        app.state.supervisor = supervisor
        task = asyncio.create_task(supervisor.run(), name="reminder-supervisor")

        yield

        logger.info("Shutting down reminder service...")
        supervisor.stop()
        try:
            await asyncio.wait_for(task, timeout=SHUTDOWN_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Supervisor did not stop within {SHUTDOWN_GRACE_SECONDS}s, cancelling")
            task.cancel()
        logger.info("✅ Reminder service shutdown complete")

    app = FastAPI(title="Event Reminder Service", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.emitter = LiveNotificationEmitter()
    app.include_router(live_router)

    @app.get("/health", tags=["Health Check"])
    async def health_check():
        def _ping_store() -> None:
            db = session_factory()
            try:
                db.execute(text("SELECT 1"))
            finally:
                db.close()

        try:
            await asyncio.to_thread(_ping_store)
            db_status = "healthy"
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            db_status = "unhealthy"

        supervisor = getattr(app.state, "supervisor", None)
        return {
            "status": "healthy" if db_status == "healthy" else "degraded",
            "version": __version__,
            "database": db_status,
            "dispatcher": supervisor.snapshot() if supervisor else None,
            "live_clients": app.state.emitter.client_count,
        }

    if settings.METRICS_ENABLED:
        from prometheus_fastapi_instrumentator import Instrumentator

        Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    return app


def main() -> int:
    load_dotenv()
    try:
        settings = get_settings()
    except ValidationError as e:
        configure_logging()
        logger.error(f"❌ Invalid reminder service configuration:\n{e}")
        return 2

    configure_logging(settings.LOG_LEVEL)
    app = create_app(settings)
    # uvicorn handles SIGINT/SIGTERM and runs the lifespan shutdown
    uvicorn.run(
        app,
        host=settings.SERVICE_HOST,
        port=settings.SERVICE_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
