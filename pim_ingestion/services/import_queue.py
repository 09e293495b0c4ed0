"""Submission, cancellation and dead-lettering of import jobs."""
from datetime import datetime, timezone
from typing import Optional

import structlog
from arq.connections import ArqRedis
from arq.jobs import Job

from pim_ingestion.config import settings
from pim_ingestion.models.import_job import ImportErrorEntry
from pim_ingestion.models.queue_message import ImportJobMessage
from pim_ingestion.services.job_store import JobStore

logger = structlog.get_logger(__name__)

IMPORT_TASK_NAME = "process_import_task"
CANCELLED_ERROR = "Import job cancelled"
DLQ_TTL_SECONDS = 86400 * 7  # Keep for 7 days


async def submit_import_job(
    redis: ArqRedis,
    store: JobStore,
    message: ImportJobMessage,
    defer_by: Optional[float] = None,
) -> Optional[Job]:
    """Record an import job as pending and put it on the queue.

    The job id doubles as the arq job id, so submitting the same job twice
    while it is queued (or its result is still retained) is a no-op.

    Args:
        redis: arq Redis connection
        store: Job store receiving the pending record
        message: Job payload
        defer_by: Optional delay in seconds before the job may start

    Returns:
        The arq job, or None if a job with this id is already known to
        the queue
    """
    log = logger.bind(job_id=message.job_id, source_id=message.source_id)

    if not await store.upsert_pending(message):
        log.warning("import_job_already_processing")
        return None

    job = await redis.enqueue_job(
        IMPORT_TASK_NAME,
        message.model_dump(mode="json"),
        _job_id=message.job_id,
        _queue_name=settings.queue_name,
        _defer_by=defer_by,
    )
    if job is None:
        log.warning("import_job_already_queued")
        return None

    log.info(
        "import_job_submitted",
        queue_name=settings.queue_name,
        defer_by=defer_by,
        batch_id=message.batch_metadata.batch_id if message.batch_metadata else None,
    )
    return job


async def cancel_import_job(
    redis: ArqRedis,
    store: JobStore,
    job_id: str,
    timeout: float = 30.0,
) -> bool:
    """Abort a queued or running import job and fail its record.

    A queued job is dropped before it starts; a running one is cancelled
    (the worker must run with ``allow_abort_jobs``). ``Job.abort`` waits
    for the worker to confirm, so the record is only failed once the job
    can no longer write to it. Batch status then counts the part as failed.

    Returns:
        True if the job was aborted
    """
    job = Job(job_id, redis, _queue_name=settings.queue_name)
    aborted = await job.abort(timeout=timeout)
    logger.info("import_job_cancel_requested", job_id=job_id, aborted=aborted)
    if not aborted:
        return False

    cancelled = ImportErrorEntry(row=0, entity_code="", error=CANCELLED_ERROR)
    await store.finish(
        job_id,
        "failed",
        import_errors=[cancelled.model_dump(mode="json")],
        completed_at=datetime.now(timezone.utc),
    )
    return True


# =============================================================================
# Dead Letter Queue
# =============================================================================


def get_dlq_key() -> str:
    """Redis set holding ids of jobs that exhausted their retries."""
    return f"arq:dlq:{settings.dlq_name}"


async def move_to_dlq(redis: ArqRedis, job_id: str, error: str) -> None:
    """Record a job that failed on its last allowed try."""
    dlq_key = get_dlq_key()
    await redis.sadd(dlq_key, job_id)
    await redis.expire(dlq_key, DLQ_TTL_SECONDS)
    logger.warning("job_moved_to_dlq", job_id=job_id, dlq_name=settings.dlq_name, error=error)
