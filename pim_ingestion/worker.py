"""arq worker configuration for the product import pipeline.

This module configures the arq worker with:
    - process_import_task: Run one Import Job (fetch, map, score, version)
    - monitor_queue_depth: Cron job logging import queue and DLQ depth

Start it with: `arq pim_ingestion.worker.WorkerSettings`
"""
from arq.connections import RedisSettings, ArqRedis
from arq import cron
from typing import Dict, Any
import structlog

from pim_ingestion.config import settings, configure_logging
from pim_ingestion.db import engine
from pim_ingestion.services.fetcher import RawDataFetcher
from pim_ingestion.services.import_queue import get_dlq_key
from pim_ingestion.services.indexing import build_indexing_registry
from pim_ingestion.services.job_store import SqlJobStore
from pim_ingestion.services.rate_limiter import JobStartRateLimiter
from pim_ingestion.services.source_provider import SqlSourceProvider
from pim_ingestion.services.transforms import TransformRegistry
from pim_ingestion.services.version_writer import SqlProductVersionStore
from pim_ingestion.tasks.import_tasks import ImportProcessor, process_import_task

# Configure logging
configure_logging(settings.log_level)
logger = structlog.get_logger(__name__)


async def on_startup(ctx: Dict[str, Any]) -> None:
    """Wire the import processor and its collaborators into the context."""
    redis: ArqRedis = ctx["redis"]

    fetcher = RawDataFetcher(timeout=settings.fetch_timeout_seconds)
    await fetcher.__aenter__()
    ctx["fetcher"] = fetcher

    indexing = build_indexing_registry(redis, settings)
    ctx["rate_limiter"] = JobStartRateLimiter(
        redis,
        max_starts=settings.import_rate_limit_max,
        window_seconds=settings.rate_limit_window_seconds,
    )
    ctx["import_processor"] = ImportProcessor(
        sources=SqlSourceProvider(),
        jobs=SqlJobStore(),
        versions=SqlProductVersionStore(),
        fetcher=fetcher,
        indexing=indexing,
        transforms=TransformRegistry(),
        settings=settings,
        redis=redis,
    )

    logger.info(
        "import_worker_started",
        queue_name=settings.queue_name,
        concurrency=settings.import_worker_concurrency,
        rate_limit_max=settings.import_rate_limit_max,
        rate_limit_window_seconds=settings.rate_limit_window_seconds,
        indexing_channels=indexing.channels(),
    )


async def on_shutdown(ctx: Dict[str, Any]) -> None:
    """Release the HTTP client and database pool."""
    fetcher = ctx.get("fetcher")
    if fetcher is not None:
        await fetcher.__aexit__(None, None, None)
    await engine.dispose()
    logger.info("import_worker_stopped")


async def monitor_queue_depth(ctx: Dict[str, Any]) -> None:
    """Periodic task to monitor queue depth and log statistics.

    Args:
        ctx: Worker context (contains Redis connection)
    """
    try:
        redis: ArqRedis = ctx.get("redis")
        if not redis:
            logger.warning("monitor_queue_depth_no_redis")
            return

        # arq keeps queued jobs in a sorted set named after the queue
        queue_depth = await redis.zcard(settings.queue_name)
        dlq_depth = await redis.scard(get_dlq_key())

        logger.info(
            "queue_depth_monitor",
            queue_name=settings.queue_name,
            queue_depth=queue_depth,
            dlq_name=settings.dlq_name,
            dlq_depth=dlq_depth,
        )
    except Exception as e:
        logger.error("monitor_queue_depth_error", error=str(e))


class WorkerSettings:
    """arq worker configuration settings.

    Registered Tasks:
        - process_import_task: Process one Import Job message

    Cron Jobs:
        - monitor_queue_depth: Every 5 minutes
    """

    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.queue_name
    max_jobs = settings.import_worker_concurrency
    job_timeout = settings.job_timeout_seconds
    keep_result = 3600  # Keep results for 1 hour
    max_tries = settings.max_tries
    allow_abort_jobs = True

    functions = [process_import_task]

    on_startup = on_startup
    on_shutdown = on_shutdown

    cron_jobs = [
        cron(monitor_queue_depth, minute=set(range(0, 60, 5)), unique=True),
    ]
