"""ARQ worker configuration and settings."""

from arq.connections import RedisSettings
from arq.worker import func

from ..config import get_settings
from ..db.session import AsyncSessionLocal, engine
from ..logging import get_logger, setup_logging
from ..storage.filesystem import FileStorage
from .tasks import process_image, process_pdf

logger = get_logger(__name__)


def _get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from config."""
    settings = get_settings()
    return RedisSettings(
        host=settings.redis_host,
        port=settings.redis_port,
    )


class WorkerSettings:
    """ARQ worker settings for media processing."""

    # One attempt per job; failures wait for an explicit retry
    functions = [
        func(process_image, name="process_image", max_tries=1),
        func(process_pdf, name="process_pdf", max_tries=1),
    ]

    # Worker limits
    max_jobs = 4  # Image decoding is memory intensive
    job_timeout = 300  # 5 minutes per asset

    # Redis connection settings (loaded at worker startup)
    redis_settings = _get_redis_settings()

    @staticmethod
    async def on_startup(ctx: dict) -> None:
        """Initialize shared resources for worker."""
        settings = get_settings()
        setup_logging(settings.log_level)

        ctx["session_factory"] = AsyncSessionLocal
        ctx["storage"] = FileStorage(settings.storage_path)

        logger.info("worker_ready", storage_path=str(settings.storage_path))

    @staticmethod
    async def on_shutdown(ctx: dict) -> None:
        """Cleanup on worker shutdown."""
        await engine.dispose()
        logger.info("worker_stopped")


# Entry point for arq CLI: arq sitevisit_server.processing.worker.WorkerSettings
