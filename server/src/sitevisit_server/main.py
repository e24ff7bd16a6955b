"""FastAPI application entry point for the site visit server.

Configures the FastAPI app with routers, middleware, and lifecycle management.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
import uvicorn
from arq import create_pool
from arq.connections import RedisSettings
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError
from sqlalchemy.engine import make_url
from starlette.middleware.base import BaseHTTPMiddleware

from sitevisit_server import __version__
from sitevisit_server.api.captures import router as captures_router
from sitevisit_server.api.deps import get_storage
from sitevisit_server.api.health import router as health_router
from sitevisit_server.api.media import router as media_router
from sitevisit_server.api.uploads import router as uploads_router
from sitevisit_server.config import get_settings
from sitevisit_server.errors import (
    SiteVisitError,
    request_validation_handler,
    sitevisit_error_handler,
)
from sitevisit_server.ingest.engagement import wait_for_pending_scoring
from sitevisit_server.logging import LoggingMiddleware, setup_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan context manager.

    Handles startup and shutdown events for the application.
    """
    settings = get_settings()

    logger.info(
        "server_starting",
        version=__version__,
        storage_path=str(settings.storage_path),
        database_url=make_url(settings.database_url).render_as_string(hide_password=True),
        log_level=settings.log_level,
    )

    storage = get_storage()
    logger.info("storage_initialized", path=str(storage.base_path))

    # Uploads keep working without Redis; dispatch then reports enqueue_failed
    redis_settings = RedisSettings(
        host=settings.redis_host,
        port=settings.redis_port,
        conn_retries=1,
    )
    try:
        app.state.arq_pool = await create_pool(redis_settings)
        logger.info(
            "arq_pool_initialized",
            redis_host=settings.redis_host,
            redis_port=settings.redis_port,
        )
    except (RedisError, OSError, asyncio.TimeoutError) as e:
        app.state.arq_pool = None
        logger.warning("arq_pool_unavailable", error=str(e))

    yield

    await wait_for_pending_scoring()
    if app.state.arq_pool is not None:
        await app.state.arq_pool.close()
    logger.info("server_stopping")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Site Visit Server",
        description="Capture ingest and media processing for site visits",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(BaseHTTPMiddleware, dispatch=LoggingMiddleware(app))

    app.add_exception_handler(SiteVisitError, sitevisit_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(captures_router)
    app.include_router(health_router)
    app.include_router(media_router)
    app.include_router(uploads_router)

    return app


# Create the application instance
app = create_app()


def run() -> None:
    """Run the server using uvicorn.

    This is the CLI entry point defined in pyproject.toml.
    """
    settings = get_settings()
    setup_logging(settings.log_level)

    uvicorn.run(
        "sitevisit_server.main:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level=settings.log_level.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    run()
