"""Queue task for the product import pipeline.

This module implements the import worker:
    - process_import_task: arq entry point, one call per Import Job
    - ImportProcessor: fetch -> validate -> per-row pipeline -> finish

Rows are processed strictly one after another so that the versions of an
entity code imported twice in one job stay in row order. Each row runs
Mapper -> Conflict Detector -> Locked-Field Merger -> Quality Scorer ->
Auto-Publish Evaluator -> Version Writer, and any failure inside a row is
recorded on the job without stopping it.
"""
import asyncio
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from arq.connections import ArqRedis
from arq.worker import Retry

from pim_ingestion.config import Settings
from pim_ingestion.errors.exceptions import (
    BatchSizeExceededError,
    SourceConfigError,
    ValidationError,
)
from pim_ingestion.models.import_job import ImportErrorEntry
from pim_ingestion.models.import_source import ImportSourceConfig
from pim_ingestion.models.product import (
    MappedRow,
    NewProductVersion,
    ProductVersionSnapshot,
)
from pim_ingestion.models.queue_message import ImportJobMessage
from pim_ingestion.services.auto_publish import check_auto_publish_eligibility
from pim_ingestion.services.conflict_detector import detect_conflicts, merge_locked_fields
from pim_ingestion.services.fetcher import RawDataFetcher
from pim_ingestion.services.import_queue import move_to_dlq
from pim_ingestion.services.indexing import IndexingRegistry
from pim_ingestion.services.job_store import JobStore, calculate_progress, set_job_progress
from pim_ingestion.services.quality_scorer import (
    calculate_completeness_score,
    find_critical_issues,
)
from pim_ingestion.services.row_mapper import RowMapper, validate_mapped_rows
from pim_ingestion.services.source_provider import SourceProvider
from pim_ingestion.services.transforms import TransformRegistry
from pim_ingestion.services.version_writer import ProductVersionStore, VersionWriter

logger = structlog.get_logger(__name__)

HIGH_FAILURE_RATE = 0.1
HIGH_FAILURE_MIN_ROWS = 100
ROWS_PER_ESTIMATE_UNIT = 100
SECONDS_PER_ESTIMATE_UNIT = 0.1


# ============================================================================
# Observability Metrics Logging
# ============================================================================


def emit_metric(metric_name: str, value: float, labels: Optional[Dict[str, Any]] = None) -> None:
    """Emit a metric event for observability.

    Args:
        metric_name: Name of the metric (e.g., "import_rows_total")
        value: Numeric value of the metric
        labels: Optional labels/tags for the metric
    """
    labels = labels or {}
    logger.info(
        "metric",
        metric_name=metric_name,
        metric_value=value,
        **labels,
    )


def estimate_duration_seconds(total_rows: int) -> int:
    """Expected processing time for ``total_rows`` rows (at least 1s)."""
    return max(1, math.ceil(total_rows / ROWS_PER_ESTIMATE_UNIT * SECONDS_PER_ESTIMATE_UNIT))


def count_chunks(total_rows: int, chunk_size: int) -> int:
    return math.ceil(total_rows / chunk_size)


@dataclass
class ImportMetrics:
    """Counters collected while a job runs."""
    total_rows: int = 0
    processed_rows: int = 0
    successful_rows: int = 0
    failed_rows: int = 0
    auto_published_count: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/response."""
        return {
            "total_rows": self.total_rows,
            "processed_rows": self.processed_rows,
            "successful_rows": self.successful_rows,
            "failed_rows": self.failed_rows,
            "auto_published_count": self.auto_published_count,
            "duration_seconds": round(self.duration_seconds, 3),
        }

    def counters(self) -> Dict[str, int]:
        """Row counters as job record columns."""
        return {
            "total_rows": self.total_rows,
            "processed_rows": self.processed_rows,
            "successful_rows": self.successful_rows,
            "failed_rows": self.failed_rows,
            "auto_published_count": self.auto_published_count,
        }


@dataclass
class ImportErrorLog:
    """Row errors of one job; the stored list is capped, counts are not."""
    cap: int = 1000
    entries: List[ImportErrorEntry] = field(default_factory=list)
    dropped: int = 0

    def add(
        self,
        row: int,
        error: str,
        entity_code: str = "",
        raw_data: Optional[Dict[str, Any]] = None,
    ) -> None:
        if len(self.entries) >= self.cap:
            self.dropped += 1
            return
        self.entries.append(
            ImportErrorEntry(row=row, entity_code=entity_code, error=error, raw_data=raw_data)
        )

    def to_list(self) -> List[Dict[str, Any]]:
        return [entry.model_dump(mode="json") for entry in self.entries]


@dataclass
class _MappedRecord:
    row_number: int
    raw: Dict[str, Any]
    mapped: Optional[MappedRow] = None
    error: Optional[Exception] = None


# ============================================================================
# Processor
# ============================================================================


class ImportProcessor:
    """Runs Import Jobs against injected collaborators.

    Args:
        sources: Import source lookup
        jobs: Job record persistence
        versions: Product version storage
        fetcher: File/API fetcher (already entered)
        indexing: Downstream indexing registry
        transforms: Transforms available to field mappings
        settings: Pipeline settings
        redis: Optional Redis connection for live progress
    """

    def __init__(
        self,
        sources: SourceProvider,
        jobs: JobStore,
        versions: ProductVersionStore,
        fetcher: RawDataFetcher,
        indexing: IndexingRegistry,
        transforms: TransformRegistry,
        settings: Settings,
        redis: Optional[ArqRedis] = None,
    ):
        self._sources = sources
        self._jobs = jobs
        self._fetcher = fetcher
        self._indexing = indexing
        self._transforms = transforms
        self._settings = settings
        self._redis = redis
        self._writer = VersionWriter(versions, max_attempts=settings.version_write_max_attempts)

    @property
    def settings(self) -> Settings:
        return self._settings

    async def run(self, message: ImportJobMessage) -> Dict[str, Any]:
        """Process one import job end to end.

        Source, batch and transport problems fail the job with a row-0
        error. Only a failure to store that failed state propagates.

        Returns:
            Dictionary with job status and metrics
        """
        start_time = time.monotonic()
        started_at = datetime.now(timezone.utc)
        metrics = ImportMetrics()
        errors = ImportErrorLog(cap=self._settings.max_import_errors)
        batch = message.batch_metadata

        log = logger.bind(
            job_id=message.job_id,
            source_id=message.source_id,
            batch_id=batch.batch_id if batch else None,
            batch_part=batch.batch_part if batch else None,
        )

        if not await self._start(message, started_at, log):
            return {"job_id": message.job_id, "status": "skipped"}

        log.info("import_job_started", api_import=message.is_api_import)
        source: Optional[ImportSourceConfig] = None

        try:
            self._validate_batch_metadata(message)
            source = await self._sources.get_source(message.source_id)
            records = await self._fetch_records(message, source)
            self._check_batch_size(records, source, log)

            metrics.total_rows = len(records)
            await self._checkpoint(message.job_id, metrics, errors, log)

            log.info(
                "import_batch_loaded",
                batch_size=metrics.total_rows,
                max_batch_size=source.limits.max_batch_size,
                chunk_size=source.limits.chunk_size,
                chunks=count_chunks(metrics.total_rows, source.limits.chunk_size),
                estimated_duration_seconds=estimate_duration_seconds(metrics.total_rows),
            )

            mapped = self._map_records(records, source)
            warnings = validate_mapped_rows([item.mapped for item in mapped if item.mapped])
            if warnings:
                log.warning("import_preflight_warnings", warnings=warnings)

            imported_codes: List[str] = []
            for item in mapped:
                entity_code = await self._process_row(item, source, message, metrics, errors)
                if entity_code:
                    imported_codes.append(entity_code)

                metrics.processed_rows += 1
                if metrics.processed_rows % self._settings.checkpoint_interval == 0:
                    await self._checkpoint(message.job_id, metrics, errors, log)

        except Exception as e:
            metrics.duration_seconds = time.monotonic() - start_time
            await self._fail(message, source, e, metrics, errors, log)
            return {"job_id": message.job_id, "status": "failed", "error": str(e), **metrics.to_dict()}

        metrics.duration_seconds = time.monotonic() - start_time
        await self._complete(message, metrics, errors, imported_codes, log)
        return {"job_id": message.job_id, "status": "completed", **metrics.to_dict()}

    # ------------------------------------------------------------------
    # Job lifecycle
    # ------------------------------------------------------------------

    async def _start(self, message: ImportJobMessage, started_at: datetime, log: Any) -> bool:
        if await self._jobs.mark_processing(message.job_id, started_at):
            return True

        existing = await self._jobs.get_job(message.job_id)
        if existing is None:
            # Enqueued without a record (e.g. by another producer)
            await self._jobs.upsert_pending(message)
            return await self._jobs.mark_processing(message.job_id, started_at)

        log.warning("import_job_already_finished", status=existing.status)
        return False

    async def _complete(
        self,
        message: ImportJobMessage,
        metrics: ImportMetrics,
        errors: ImportErrorLog,
        imported_codes: List[str],
        log: Any,
    ) -> None:
        completed_at = datetime.now(timezone.utc)
        finished = await self._jobs.finish(
            message.job_id,
            "completed",
            **metrics.counters(),
            import_errors=errors.to_list(),
            completed_at=completed_at,
            duration_seconds=metrics.duration_seconds,
        )
        if not finished:
            log.warning("import_job_already_finished")

        status = "partial" if metrics.failed_rows > 0 else "success"
        try:
            await self._sources.record_import(
                message.source_id, metrics.successful_rows, status, completed_at
            )
        except Exception as e:
            log.error("source_stats_update_failed", error=str(e), error_type=type(e).__name__)

        await self._publish_progress(message.job_id, log, status="completed", progress=100, **metrics.counters())

        if imported_codes:
            await self._indexing.dispatch(
                imported_codes,
                batch_size=self._settings.indexing_batch_size,
                priority="high",
                source_id=message.source_id,
                job_id=message.job_id,
                batch_id=message.batch_metadata.batch_id if message.batch_metadata else None,
            )

        self._emit_final_metrics(message, metrics, "completed")
        self._check_alerts(metrics, log)

        log.info(
            "import_job_completed",
            errors_dropped=errors.dropped,
            success_rate=round(metrics.successful_rows / metrics.processed_rows * 100, 2)
            if metrics.processed_rows else 0,
            **metrics.to_dict(),
        )

    async def _fail(
        self,
        message: ImportJobMessage,
        source: Optional[ImportSourceConfig],
        error: Exception,
        metrics: ImportMetrics,
        errors: ImportErrorLog,
        log: Any,
    ) -> None:
        log.error(
            "import_job_failed",
            error=str(error),
            error_type=type(error).__name__,
            status_code=getattr(error, "status_code", None),
        )

        failure = ImportErrorEntry(row=0, entity_code="", error=str(error))
        import_errors = [failure.model_dump(mode="json")] + errors.to_list()
        completed_at = datetime.now(timezone.utc)

        # Propagates: a job whose failure cannot be stored is left to arq
        await self._jobs.finish(
            message.job_id,
            "failed",
            **metrics.counters(),
            import_errors=import_errors[: self._settings.max_import_errors],
            completed_at=completed_at,
            duration_seconds=metrics.duration_seconds,
        )

        if source is not None:
            try:
                await self._sources.record_import(message.source_id, 0, "failed", completed_at)
            except Exception as e:
                log.error("source_stats_update_failed", error=str(e), error_type=type(e).__name__)

        await self._publish_progress(message.job_id, log, status="failed", **metrics.counters())
        self._emit_final_metrics(message, metrics, "failed")

    async def _checkpoint(
        self,
        job_id: str,
        metrics: ImportMetrics,
        errors: ImportErrorLog,
        log: Any,
    ) -> None:
        try:
            await self._jobs.update_progress(job_id, **metrics.counters(), import_errors=errors.to_list())
        except Exception as e:
            log.warning("import_checkpoint_failed", error=str(e), processed_rows=metrics.processed_rows)

        await self._publish_progress(
            job_id,
            log,
            status="processing",
            progress=calculate_progress(metrics.processed_rows, metrics.total_rows),
            **metrics.counters(),
        )

    async def _publish_progress(self, job_id: str, log: Any, **fields: Any) -> None:
        if self._redis is None:
            return
        try:
            await set_job_progress(self._redis, job_id, **fields)
        except Exception as e:
            log.warning("job_progress_publish_failed", error=str(e))

    # ------------------------------------------------------------------
    # Set-up checks and fetching
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_batch_metadata(message: ImportJobMessage) -> None:
        batch = message.batch_metadata
        if batch is None:
            return
        if not 1 <= batch.batch_part <= batch.batch_total_parts:
            raise ValidationError(
                f"Invalid batch metadata: part {batch.batch_part} "
                f"of {batch.batch_total_parts}"
            )

    async def _fetch_records(
        self,
        message: ImportJobMessage,
        source: ImportSourceConfig,
    ) -> List[Dict[str, Any]]:
        if message.api_config is not None:
            return await self._fetcher.fetch_api(message.api_config)
        if message.file_url:
            return await self._fetcher.fetch_rows(message.file_url, message.file_name)
        if source.api_config is not None:
            return await self._fetcher.fetch_api(source.api_config)
        raise SourceConfigError(
            f"Job '{message.job_id}' has no file_url and source '{source.source_id}' has no api_config"
        )

    @staticmethod
    def _check_batch_size(records: List[Dict[str, Any]], source: ImportSourceConfig, log: Any) -> None:
        row_count = len(records)
        if row_count > source.limits.max_batch_size:
            raise BatchSizeExceededError(row_count, source.limits.max_batch_size)
        if row_count > source.limits.warn_batch_size:
            log.warning(
                "large_batch_detected",
                batch_size=row_count,
                warn_batch_size=source.limits.warn_batch_size,
                estimated_duration_seconds=estimate_duration_seconds(row_count),
            )

    def _map_records(
        self,
        records: List[Dict[str, Any]],
        source: ImportSourceConfig,
    ) -> List[_MappedRecord]:
        mapper = RowMapper(source, self._transforms, self._settings.default_language)
        mapped: List[_MappedRecord] = []
        for row_number, record in enumerate(records, start=1):
            item = _MappedRecord(row_number=row_number, raw=record)
            try:
                item.mapped = mapper.map_row(record, row_number)
            except Exception as e:
                item.error = e
            mapped.append(item)
        return mapped

    # ------------------------------------------------------------------
    # Per-row pipeline
    # ------------------------------------------------------------------

    async def _process_row(
        self,
        item: _MappedRecord,
        source: ImportSourceConfig,
        message: ImportJobMessage,
        metrics: ImportMetrics,
        errors: ImportErrorLog,
    ) -> Optional[str]:
        """Import one row; returns its entity code on success."""
        entity_code = item.mapped.entity_code if item.mapped else ""
        try:
            if item.error is not None:
                raise item.error
            if not entity_code:
                raise ValidationError("Missing entity_code")

            result = await self._writer.write(
                entity_code,
                lambda previous: self._build_version(item.mapped, previous, source, message),
            )
        except Exception as e:
            metrics.failed_rows += 1
            errors.add(
                row=item.row_number,
                entity_code=entity_code,
                error=str(e) or type(e).__name__,
                raw_data=item.raw,
            )
            logger.debug(
                "import_row_failed",
                job_id=message.job_id,
                row=item.row_number,
                entity_code=entity_code,
                error_type=type(e).__name__,
            )
            return None

        metrics.successful_rows += 1
        if result.is_current_published:
            metrics.auto_published_count += 1
        return entity_code

    def _build_version(
        self,
        row: MappedRow,
        previous: Optional[ProductVersionSnapshot],
        source: ImportSourceConfig,
        message: ImportJobMessage,
    ) -> NewProductVersion:
        now = datetime.now(timezone.utc)

        conflict = detect_conflicts(previous, row.normalized_data, source.overwrite_level, now=now)
        data = merge_locked_fields(previous, conflict.merged_data)
        data["entity_code"] = row.entity_code
        data.setdefault("sku", row.entity_code)

        score = calculate_completeness_score(data)
        decision = check_auto_publish_eligibility(
            data,
            source,
            manually_edited=previous.manually_edited if previous else False,
            locked_fields=previous.locked_fields if previous else (),
            score=score,
        )

        return NewProductVersion(
            entity_code=row.entity_code,
            data=data,
            completeness_score=score,
            critical_issues=find_critical_issues(data),
            auto_publish=decision,
            conflict=conflict,
            source={
                "source_id": source.source_id,
                "source_name": source.source_name,
                "batch_id": message.batch_metadata.batch_id if message.batch_metadata else None,
                "job_id": message.job_id,
                "imported_at": now.isoformat(),
            },
        )

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    @staticmethod
    def _emit_final_metrics(message: ImportJobMessage, metrics: ImportMetrics, status: str) -> None:
        labels = {"source_id": message.source_id, "job_status": status}
        emit_metric("import_rows_total", metrics.successful_rows, {**labels, "row_status": "success"})
        emit_metric("import_rows_total", metrics.failed_rows, {**labels, "row_status": "error"})
        emit_metric("import_duration_seconds", round(metrics.duration_seconds, 3), labels)

    @staticmethod
    def _check_alerts(metrics: ImportMetrics, log: Any) -> None:
        processed = metrics.processed_rows
        if processed > HIGH_FAILURE_MIN_ROWS and metrics.failed_rows / processed > HIGH_FAILURE_RATE:
            log.error(
                "import_alert_high_failure_rate",
                failure_rate=round(metrics.failed_rows / processed * 100, 2),
                failed_rows=metrics.failed_rows,
                processed_rows=processed,
            )

        expected = estimate_duration_seconds(metrics.total_rows)
        if metrics.duration_seconds > expected * 2:
            log.warning(
                "import_alert_slow_processing",
                duration_seconds=round(metrics.duration_seconds, 3),
                expected_seconds=expected,
            )


# ============================================================================
# arq task
# ============================================================================


async def process_import_task(ctx: Dict[str, Any], message: Dict[str, Any]) -> Dict[str, Any]:
    """Process one Import Job message.

    Row, source and fetch problems end in a stored job outcome and a normal
    return. An exception escaping the processor (typically the failed state
    itself could not be stored) is retried with a growing delay; on the
    last allowed try the job id is added to the dead letter set.

    Args:
        ctx: Worker context (contains Redis connection, import processor
            and rate limiter set up by the worker's on_startup hook)
        message: ImportJobMessage payload

    Returns:
        Dictionary with job status and metrics

    Raises:
        Retry: If the job failed and tries remain
    """
    try:
        job_message = ImportJobMessage.model_validate(message)
    except ValueError as e:
        logger.error("import_message_invalid", job_id=ctx.get("job_id"), error=str(e))
        return {"job_id": ctx.get("job_id"), "status": "rejected", "error": str(e)}

    processor: ImportProcessor = ctx["import_processor"]
    job_try = ctx.get("job_try", 1)
    log = logger.bind(job_id=job_message.job_id, job_try=job_try)

    try:
        rate_limiter = ctx.get("rate_limiter")
        if rate_limiter is not None:
            waited = await rate_limiter.wait_for_slot(job_message.job_id)
            if waited:
                log.info("import_job_rate_limit_waited", waited_seconds=waited)

        return await processor.run(job_message)

    except asyncio.CancelledError:
        # Abort, job timeout or worker shutdown; an abort is recorded by cancel_import_job
        log.warning("import_job_cancelled")
        raise

    except Exception as e:
        max_tries = processor.settings.max_tries
        if job_try >= max_tries:
            log.error("import_job_retries_exhausted", error=str(e), error_type=type(e).__name__)
            await move_to_dlq(ctx["redis"], ctx.get("job_id", job_message.job_id), str(e))
            raise

        delay = processor.settings.retry_delay_seconds * job_try
        log.warning(
            "import_job_retry_scheduled",
            error=str(e),
            error_type=type(e).__name__,
            max_tries=max_tries,
            retry_in_seconds=delay,
        )
        raise Retry(defer=delay) from e
