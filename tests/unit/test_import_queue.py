"""Unit tests for import job submission and cancellation."""
from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from fakes import InMemoryJobStore
from pim_ingestion.config import settings
from pim_ingestion.models.queue_message import BatchMetadata, ImportJobMessage
from pim_ingestion.services.batch_tracker import get_batch_status
from pim_ingestion.services.import_queue import (
    CANCELLED_ERROR,
    IMPORT_TASK_NAME,
    cancel_import_job,
    submit_import_job,
)


def _message(**overrides) -> ImportJobMessage:
    values = {
        "job_id": "import_1",
        "source_id": "feed",
        "file_url": "https://cdn.example.com/products.csv",
        "file_name": "products.csv",
    }
    values.update(overrides)
    return ImportJobMessage(**values)


class TestSubmitImportJob:
    """Test pending record creation and enqueueing."""

    @pytest.mark.asyncio
    async def test_creates_pending_record_and_enqueues(self):
        redis = AsyncMock()
        redis.enqueue_job.return_value = MagicMock(job_id="import_1")
        store = InMemoryJobStore()
        message = _message(batch_metadata=BatchMetadata(batch_id="b-1", batch_part=1, batch_total_parts=2))

        job = await submit_import_job(redis, store, message, defer_by=5)

        assert job.job_id == "import_1"
        assert store.jobs["import_1"].status == "pending"
        assert store.jobs["import_1"].batch_id == "b-1"

        args, kwargs = redis.enqueue_job.await_args
        assert args[0] == IMPORT_TASK_NAME
        assert args[1]["job_id"] == "import_1"
        assert kwargs["_job_id"] == "import_1"
        assert kwargs["_queue_name"] == settings.queue_name
        assert kwargs["_defer_by"] == 5

    @pytest.mark.asyncio
    async def test_processing_job_not_resubmitted(self):
        redis = AsyncMock()
        store = InMemoryJobStore()
        await store.upsert_pending(_message())
        await store.mark_processing("import_1", datetime.now(timezone.utc))

        assert await submit_import_job(redis, store, _message()) is None
        redis.enqueue_job.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_finished_job_can_be_resubmitted(self):
        redis = AsyncMock()
        redis.enqueue_job.return_value = MagicMock(job_id="import_1")
        store = InMemoryJobStore()
        await store.upsert_pending(_message())
        await store.mark_processing("import_1", datetime.now(timezone.utc))
        await store.finish("import_1", "failed")

        job = await submit_import_job(redis, store, _message())

        assert job is not None
        assert store.jobs["import_1"].status == "pending"

    @pytest.mark.asyncio
    async def test_already_queued_returns_none(self):
        redis = AsyncMock()
        redis.enqueue_job.return_value = None

        assert await submit_import_job(redis, InMemoryJobStore(), _message()) is None


class TestCancelImportJob:
    """Test aborts through arq and the record they leave behind."""

    @pytest.mark.asyncio
    async def test_aborts_job_and_fails_record(self):
        redis = AsyncMock()
        store = InMemoryJobStore()
        await store.upsert_pending(_message())
        with patch("pim_ingestion.services.import_queue.Job") as job_class:
            job_class.return_value.abort = AsyncMock(return_value=True)

            aborted = await cancel_import_job(redis, store, "import_1", timeout=5)

        assert aborted is True
        job_class.assert_called_once_with("import_1", redis, _queue_name=settings.queue_name)
        job_class.return_value.abort.assert_awaited_once_with(timeout=5)

        record = await store.get_job("import_1")
        assert record.status == "failed"
        assert record.completed_at is not None
        assert [(e.row, e.error) for e in record.import_errors] == [(0, CANCELLED_ERROR)]

    @pytest.mark.asyncio
    async def test_cancelled_part_settles_batch(self):
        """Verify a cancelled part no longer keeps its batch in progress."""
        redis = AsyncMock()
        redis.enqueue_job.return_value = MagicMock()
        store = InMemoryJobStore()
        for part in (1, 2):
            metadata = BatchMetadata(batch_id="b-1", batch_part=part, batch_total_parts=2)
            await submit_import_job(redis, store, _message(job_id=f"import_{part}", batch_metadata=metadata))
        await store.mark_processing("import_1", datetime.now(timezone.utc))
        await store.finish("import_1", "completed")

        assert (await get_batch_status(store, "b-1")).status == "in_progress"

        with patch("pim_ingestion.services.import_queue.Job") as job_class:
            job_class.return_value.abort = AsyncMock(return_value=True)
            await cancel_import_job(redis, store, "import_2")

        batch = await get_batch_status(store, "b-1")
        assert batch.is_complete is True
        assert batch.in_progress_parts == 0
        assert batch.failed_parts == 1
        assert batch.status == "partial_success"

    @pytest.mark.asyncio
    async def test_abort_not_confirmed_leaves_record(self):
        redis = AsyncMock()
        store = InMemoryJobStore()
        await store.upsert_pending(_message())
        with patch("pim_ingestion.services.import_queue.Job") as job_class:
            job_class.return_value.abort = AsyncMock(return_value=False)

            aborted = await cancel_import_job(redis, store, "import_1")

        assert aborted is False
        assert (await store.get_job("import_1")).status == "pending"

    @pytest.mark.asyncio
    async def test_finished_job_not_overwritten(self):
        redis = AsyncMock()
        store = InMemoryJobStore()
        await store.upsert_pending(_message())
        await store.finish("import_1", "completed")
        with patch("pim_ingestion.services.import_queue.Job") as job_class:
            job_class.return_value.abort = AsyncMock(return_value=True)

            await cancel_import_job(redis, store, "import_1")

        record = await store.get_job("import_1")
        assert record.status == "completed"
        assert record.import_errors == []
