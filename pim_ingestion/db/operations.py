"""Database operations for the import pipeline.

All writes are targeted column updates; rows are never replaced wholesale.
Every function takes an open session and leaves commit/rollback to the
caller.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from datetime import datetime
from typing import Optional, Dict, Any, List
import structlog

from pim_ingestion.db.models import ImportJob, ImportSource, ProductVersion
from pim_ingestion.errors.exceptions import DatabaseError
from pim_ingestion.models.import_job import TERMINAL_JOB_STATUSES
from pim_ingestion.models.queue_message import ImportJobMessage

logger = structlog.get_logger(__name__)


# =============================================================================
# Import sources
# =============================================================================


async def get_import_source(session: AsyncSession, source_id: str) -> Optional[ImportSource]:
    """Load an import source by its external id."""
    try:
        result = await session.execute(
            select(ImportSource).where(ImportSource.source_id == source_id)
        )
        return result.scalar_one_or_none()
    except Exception as e:
        logger.error("get_import_source_failed", source_id=source_id, error=str(e))
        raise DatabaseError(f"Failed to load import source: {e}") from e


async def update_source_stats(
    session: AsyncSession,
    source_id: str,
    successful_rows: int,
    status: str,
    imported_at: datetime,
) -> None:
    """Record the outcome of an import on its source.

    The source row is locked while the stats document is rewritten so
    two jobs of the same source cannot lose each other's increments.

    Args:
        session: Async database session
        source_id: Source external id
        successful_rows: Products written by the finished job
        status: ``success``, ``partial`` or ``failed``
        imported_at: Completion time of the job
    """
    try:
        result = await session.execute(
            select(ImportSource)
            .where(ImportSource.source_id == source_id)
            .with_for_update()
        )
        source = result.scalar_one_or_none()
        if source is None:
            logger.warning("update_source_stats_source_missing", source_id=source_id)
            return

        stats = dict(source.stats or {})
        # A failed job only flags the source; counters track finished imports
        if status != "failed":
            stats["total_imports"] = int(stats.get("total_imports", 0)) + 1
            stats["total_products"] = int(stats.get("total_products", 0)) + successful_rows
            stats["last_import_at"] = imported_at.isoformat()
        stats["last_import_status"] = status
        source.stats = stats
        await session.flush()

        logger.debug("source_stats_updated", source_id=source_id, status=status)
    except Exception as e:
        logger.error("update_source_stats_failed", source_id=source_id, error=str(e))
        raise DatabaseError(f"Failed to update source stats: {e}") from e


# =============================================================================
# Import jobs
# =============================================================================


async def upsert_pending_job(session: AsyncSession, message: ImportJobMessage) -> bool:
    """Create the job record, or reset an existing one to ``pending``.

    A job that is currently ``processing`` is left alone.

    Returns:
        False if the job exists and is being processed
    """
    batch = message.batch_metadata
    values: Dict[str, Any] = {
        "job_id": message.job_id,
        "source_id": message.source_id,
        "file_name": message.file_name,
        "file_url": message.file_url,
        "api_config": message.api_config.model_dump() if message.api_config else None,
        "batch_id": batch.batch_id if batch else None,
        "batch_part": batch.batch_part if batch else None,
        "batch_total_parts": batch.batch_total_parts if batch else None,
        "batch_total_items": batch.batch_total_items if batch else None,
        "status": "pending",
        "total_rows": 0,
        "processed_rows": 0,
        "successful_rows": 0,
        "failed_rows": 0,
        "auto_published_count": 0,
        "import_errors": [],
        "started_at": None,
        "completed_at": None,
        "duration_seconds": None,
    }
    try:
        statement = insert(ImportJob).values(**values)
        statement = statement.on_conflict_do_update(
            index_elements=[ImportJob.job_id],
            set_={key: value for key, value in values.items() if key != "job_id"},
            where=ImportJob.status != "processing",
        )
        result = await session.execute(statement)
        logger.debug("import_job_upserted", job_id=message.job_id, rowcount=result.rowcount)
        return result.rowcount > 0
    except Exception as e:
        logger.error("upsert_pending_job_failed", job_id=message.job_id, error=str(e))
        raise DatabaseError(f"Failed to upsert import job: {e}") from e


async def update_job_fields(
    session: AsyncSession,
    job_id: str,
    **fields: Any,
) -> bool:
    """Update selected columns of a non-terminal job.

    Args:
        session: Async database session
        job_id: Job identifier
        **fields: Columns to set

    Returns:
        True if a row was updated, False if the job is missing or already
        terminal
    """
    try:
        statement = (
            update(ImportJob)
            .where(ImportJob.job_id == job_id)
            .where(ImportJob.status.not_in(TERMINAL_JOB_STATUSES))
            .values(**fields)
        )
        result = await session.execute(statement)
        return result.rowcount > 0
    except Exception as e:
        logger.error("update_job_fields_failed", job_id=job_id, fields=list(fields), error=str(e))
        raise DatabaseError(f"Failed to update import job: {e}") from e


async def get_import_job(session: AsyncSession, job_id: str) -> Optional[ImportJob]:
    try:
        result = await session.execute(select(ImportJob).where(ImportJob.job_id == job_id))
        return result.scalar_one_or_none()
    except Exception as e:
        logger.error("get_import_job_failed", job_id=job_id, error=str(e))
        raise DatabaseError(f"Failed to load import job: {e}") from e


async def list_batch_jobs(session: AsyncSession, batch_id: str) -> List[ImportJob]:
    """All jobs of a batch, ordered by part number."""
    try:
        result = await session.execute(
            select(ImportJob)
            .where(ImportJob.batch_id == batch_id)
            .order_by(ImportJob.batch_part, ImportJob.created_at)
        )
        return list(result.scalars().all())
    except Exception as e:
        logger.error("list_batch_jobs_failed", batch_id=batch_id, error=str(e))
        raise DatabaseError(f"Failed to list batch jobs: {e}") from e


# =============================================================================
# Product versions
# =============================================================================


async def get_current_version(session: AsyncSession, entity_code: str) -> Optional[ProductVersion]:
    try:
        result = await session.execute(
            select(ProductVersion)
            .where(ProductVersion.entity_code == entity_code)
            .where(ProductVersion.is_current.is_(True))
        )
        return result.scalar_one_or_none()
    except Exception as e:
        logger.error("get_current_version_failed", entity_code=entity_code, error=str(e))
        raise DatabaseError(f"Failed to load current product version: {e}") from e


async def retire_current_version(
    session: AsyncSession,
    entity_code: str,
    expected_version: int,
) -> bool:
    """Clear the current flags of ``expected_version``.

    Returns:
        False if that version is no longer current (another writer won)
    """
    try:
        result = await session.execute(
            update(ProductVersion)
            .where(ProductVersion.entity_code == entity_code)
            .where(ProductVersion.is_current.is_(True))
            .where(ProductVersion.version == expected_version)
            .values(is_current=False, is_current_published=False)
        )
        return result.rowcount == 1
    except Exception as e:
        logger.error(
            "retire_current_version_failed",
            entity_code=entity_code,
            expected_version=expected_version,
            error=str(e),
        )
        raise DatabaseError(f"Failed to retire product version: {e}") from e


async def insert_product_version(session: AsyncSession, values: Dict[str, Any]) -> ProductVersion:
    """Insert a new version row.

    Raises:
        IntegrityError: If the version or current-flag constraints are
            violated (left unwrapped for optimistic retries)
        DatabaseError: On any other failure
    """
    try:
        version = ProductVersion(**values)
        session.add(version)
        await session.flush()
        return version
    except IntegrityError:
        raise
    except Exception as e:
        logger.error("insert_product_version_failed", entity_code=values.get("entity_code"), error=str(e))
        raise DatabaseError(f"Failed to insert product version: {e}") from e
