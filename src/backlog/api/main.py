"""FastAPI application factory."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlmodel import SQLModel

from backlog.api.routes import backlog as backlog_routes, sync as sync_routes
from backlog.db.engine import get_engine
from backlog.linear.client import LinearClient
from backlog.scheduler.jobs import build_scheduler
from backlog.services.backlog import BacklogService
from backlog.sync.history import SyncHistoryRecorder
from backlog.sync.service import SyncService

logger = logging.getLogger(__name__)


def create_app(service=None, history=None, scheduler_factory=build_scheduler) -> FastAPI:
    """
    Build and return the FastAPI app.

    Args:
        service: SyncService to expose. Defaults to one backed by LinearClient.
        history: SyncHistoryRecorder. Defaults to the one the service writes
                 to, else one on the configured database.
        scheduler_factory: Callable(service) → scheduler or None. Pass None to
                           run without background sync (tests).
    """
    if history is None and service is not None:
        history = service.history
    if history is None:
        history = SyncHistoryRecorder(get_engine())
    if service is None:
        service = SyncService(LinearClient(), history=history)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create tables on startup (idempotent)
        SQLModel.metadata.create_all(history.engine)
        scheduler = scheduler_factory(service) if scheduler_factory else None
        if scheduler is not None:
            scheduler.start()
            logger.info("Sync scheduler started")
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown(wait=False)
                logger.info("Sync scheduler stopped")

    app = FastAPI(
        title="Backlog Sync API",
        description="Linear backlog mirror with background sync",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.sync_service = service
    app.state.history = history
    app.state.backlog_service = BacklogService(service, service.client)

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])
    app.include_router(backlog_routes.router, prefix="/backlog", tags=["backlog"])

    return app


# Module-level app instance for uvicorn
app = create_app()
