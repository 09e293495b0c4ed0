"""Unit tests for batch status aggregation."""
import pytest

from fakes import InMemoryJobStore
from pim_ingestion.models.import_job import ImportJobRecord
from pim_ingestion.models.queue_message import BatchMetadata, ImportJobMessage
from pim_ingestion.services.batch_tracker import get_batch_status, summarize_batch


def _job(part: int, status: str = "completed", total_parts: int = 3, **overrides) -> ImportJobRecord:
    values = {
        "job_id": f"job-{part}",
        "source_id": "feed",
        "batch_id": "batch-1",
        "batch_part": part,
        "batch_total_parts": total_parts,
        "batch_total_items": 300,
        "status": status,
        "total_rows": 100,
        "processed_rows": 100 if status in ("completed", "failed") else 40,
        "successful_rows": 98,
        "failed_rows": 2,
    }
    values.update(overrides)
    return ImportJobRecord(**values)


class TestSummarizeBatch:
    """Test overall status derivation and counters."""

    def test_missing_part_is_incomplete(self):
        summary = summarize_batch("batch-1", [_job(1), _job(3)])

        assert summary.status == "incomplete"
        assert summary.is_complete is False
        assert summary.missing_parts == [2]
        assert summary.expected_parts == 3
        assert summary.received_parts == 2

    def test_running_part_is_in_progress(self):
        summary = summarize_batch("batch-1", [_job(1), _job(2, "processing"), _job(3, "pending")])

        assert summary.status == "in_progress"
        assert summary.in_progress_parts == 2
        assert summary.is_complete is False

    def test_all_completed(self):
        summary = summarize_batch("batch-1", [_job(3), _job(1), _job(2)])

        assert summary.status == "complete"
        assert summary.is_complete is True
        assert [job.batch_part for job in summary.jobs] == [1, 2, 3]
        assert summary.total_items_expected == 300
        assert summary.total_items_processed == 300
        assert summary.total_items_failed == 6

    def test_all_failed(self):
        summary = summarize_batch("batch-1", [_job(1, "failed"), _job(2, "failed"), _job(3, "failed")])

        assert summary.status == "failed"
        assert summary.failed_parts == 3

    def test_some_failed(self):
        summary = summarize_batch("batch-1", [_job(1), _job(2, "failed"), _job(3)])

        assert summary.status == "partial_success"
        assert summary.completed_parts == 2
        assert summary.failed_parts == 1
        assert summary.is_complete is True

    def test_unknown_batch(self):
        summary = summarize_batch("nope", [])

        assert summary.status == "incomplete"
        assert summary.expected_parts == 0
        assert summary.jobs == []

    def test_resubmitted_part_counts_once(self):
        jobs = [_job(1, total_parts=2), _job(1, total_parts=2, job_id="job-1-retry"), _job(2, total_parts=2)]

        summary = summarize_batch("batch-1", jobs)

        assert summary.received_parts == 2
        assert summary.missing_parts == []


class TestGetBatchStatus:
    """Test loading through the job store."""

    @pytest.mark.asyncio
    async def test_reads_jobs_from_store(self):
        store = InMemoryJobStore()
        for part in (1, 2):
            await store.upsert_pending(
                ImportJobMessage(
                    job_id=f"job-{part}",
                    source_id="feed",
                    file_url=f"https://cdn.example.com/part-{part}.csv",
                    batch_metadata=BatchMetadata(batch_id="batch-1", batch_part=part, batch_total_parts=2),
                )
            )

        summary = await get_batch_status(store, "batch-1")

        assert summary.status == "in_progress"
        assert summary.expected_parts == 2
        assert summary.in_progress_parts == 2
