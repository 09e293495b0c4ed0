"""
Import Job State

Durable job records live in Postgres (``import_jobs``). Live progress for
status pollers is mirrored into a short-lived Redis hash so that progress
reads never touch the database.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from arq.connections import ArqRedis

from pim_ingestion.db.base import async_session_maker
from pim_ingestion.db.operations import (
    get_import_job,
    list_batch_jobs,
    update_job_fields,
    upsert_pending_job,
)
from pim_ingestion.models.import_job import ImportJobRecord, JobStatus, JobStatusView
from pim_ingestion.models.queue_message import ImportJobMessage

logger = structlog.get_logger(__name__)

# =============================================================================
# Redis Key Constants
# =============================================================================

PROGRESS_KEY_PREFIX = "import:progress:"
PROGRESS_TTL_SECONDS = 7 * 24 * 60 * 60  # 7 days

_INT_FIELDS = ("progress", "total_rows", "processed_rows", "successful_rows", "failed_rows")


# =============================================================================
# Job Store
# =============================================================================


class JobStore(ABC):
    """Persistence of import job records.

    Every write touches only the columns it names. Terminal transitions
    are guarded so a job finishes exactly once.
    """

    @abstractmethod
    async def upsert_pending(self, message: ImportJobMessage) -> bool:
        """Create the job as ``pending`` (or reset a resubmitted one).

        Returns:
            False if the job is currently being processed
        """

    @abstractmethod
    async def mark_processing(self, job_id: str, started_at: datetime) -> bool:
        """Move the job to ``processing``.

        Returns:
            False if the job is unknown or already terminal
        """

    @abstractmethod
    async def update_progress(self, job_id: str, **fields: Any) -> None:
        """Write counters (and other non-status columns) of a running job."""

    @abstractmethod
    async def finish(self, job_id: str, status: JobStatus, **fields: Any) -> bool:
        """Set the terminal status together with final counters.

        Returns:
            False if the job had already reached a terminal status
        """

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[ImportJobRecord]:
        """Load one job record."""

    @abstractmethod
    async def list_batch_jobs(self, batch_id: str) -> List[ImportJobRecord]:
        """Load every job sharing ``batch_id``, ordered by part."""


class SqlJobStore(JobStore):
    """Job store backed by the ``import_jobs`` table."""

    def __init__(self, session_factory=async_session_maker):
        self._session_factory = session_factory

    async def upsert_pending(self, message: ImportJobMessage) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                return await upsert_pending_job(session, message)

    async def mark_processing(self, job_id: str, started_at: datetime) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                return await update_job_fields(
                    session, job_id, status="processing", started_at=started_at
                )

    async def update_progress(self, job_id: str, **fields: Any) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                updated = await update_job_fields(session, job_id, **fields)
        if not updated:
            logger.warning("job_progress_update_skipped", job_id=job_id)

    async def finish(self, job_id: str, status: JobStatus, **fields: Any) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                return await update_job_fields(session, job_id, status=status, **fields)

    async def get_job(self, job_id: str) -> Optional[ImportJobRecord]:
        async with self._session_factory() as session:
            row = await get_import_job(session, job_id)
            return ImportJobRecord.model_validate(row) if row is not None else None

    async def list_batch_jobs(self, batch_id: str) -> List[ImportJobRecord]:
        async with self._session_factory() as session:
            rows = await list_batch_jobs(session, batch_id)
            return [ImportJobRecord.model_validate(row) for row in rows]


async def get_job_status(store: JobStore, job_id: str) -> Optional[JobStatusView]:
    """Per-job status read model, or None for an unknown job."""
    record = await store.get_job(job_id)
    if record is None:
        return None
    return JobStatusView.from_record(record)


# =============================================================================
# Live Progress (Redis)
# =============================================================================


def _get_progress_key(job_id: str) -> str:
    """Get Redis key for a job's progress hash."""
    return f"{PROGRESS_KEY_PREFIX}{job_id}"


def _serialize_progress(data: Dict[str, Any]) -> Dict[str, str]:
    """Serialize progress fields for Redis storage."""
    result = {}
    for key, value in data.items():
        if value is None:
            result[key] = ""  # Redis doesn't store None well
        elif isinstance(value, datetime):
            result[key] = value.isoformat()
        elif isinstance(value, (list, dict)):
            result[key] = json.dumps(value)
        else:
            result[key] = str(value)
    return result


def _deserialize_progress(data: Dict[str, str]) -> Dict[str, Any]:
    """Deserialize progress fields read from Redis."""
    result: Dict[str, Any] = {}
    for key, value in data.items():
        if value == "":
            result[key] = None
        elif key in _INT_FIELDS:
            try:
                result[key] = int(value)
            except (ValueError, TypeError):
                result[key] = 0
        else:
            result[key] = value
    return result


def calculate_progress(processed_rows: int, total_rows: int) -> int:
    """Whole-number completion percentage."""
    if total_rows <= 0:
        return 0
    return min(100, round(processed_rows / total_rows * 100))


async def set_job_progress(redis: ArqRedis, job_id: str, **fields: Any) -> None:
    """Merge ``fields`` into the job's progress hash and refresh its TTL."""
    key = _get_progress_key(job_id)
    fields["updated_at"] = datetime.now(timezone.utc)
    await redis.hset(key, mapping=_serialize_progress(fields))
    await redis.expire(key, PROGRESS_TTL_SECONDS)
    logger.debug("job_progress_updated", job_id=job_id, fields=list(fields))


async def get_job_progress(redis: ArqRedis, job_id: str) -> Optional[Dict[str, Any]]:
    """Read the job's progress hash, or None if it expired or never existed."""
    data = await redis.hgetall(_get_progress_key(job_id))
    if not data:
        return None

    # Decode bytes to strings if needed
    decoded = {}
    for k, v in data.items():
        k_str = k.decode() if isinstance(k, bytes) else k
        v_str = v.decode() if isinstance(v, bytes) else v
        decoded[k_str] = v_str

    return _deserialize_progress(decoded)
