"""
Mail Sync API Server

FastAPI application providing endpoints for:
- Manual and periodic sync of starred/flagged email into notes
- Sync status
- Provider connection (OAuth) and settings
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import config, state
from .database import Database
from .exceptions import (
    ConfigurationError,
    MailSyncError,
    NotAuthenticatedError,
    OAuthError,
    TokenRefreshError,
)
from .routes import providers_router, sync_router
from .services import init_sync_engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup application resources."""
    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Startup - skip if already initialized (e.g., by tests)
    if state.orchestrator is None:
        init_sync_engine(state, Database(config.DB_PATH))

    if state.scheduler:
        await state.scheduler.start()

    yield

    # Shutdown
    if state.scheduler:
        await state.scheduler.stop()

    for task in state.auth_tasks.values():
        task.cancel()


app = FastAPI(
    title="Mail Sync API",
    version="1.0.0",
    lifespan=lifespan
)

# Include routers
app.include_router(sync_router)
app.include_router(providers_router)


def _error_status(exc: MailSyncError) -> int:
    if isinstance(exc, ConfigurationError):
        return 400
    if isinstance(exc, (NotAuthenticatedError, OAuthError, TokenRefreshError)):
        return 401
    return 502


async def mailsync_error_handler(request: Request, exc: MailSyncError) -> JSONResponse:
    """Map mailsync errors raised by route handlers to HTTP responses."""
    status_code = _error_status(exc)
    if status_code == 502:
        logger.error(f"{request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


app.add_exception_handler(MailSyncError, mailsync_error_handler)
