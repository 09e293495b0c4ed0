"""Aggregated status of split uploads.

A batch is one logical upload split into ``batch_total_parts`` jobs that
share a ``batch_id``. Parts that were never submitted show up in
``missing_parts``; that is also how an abandoned batch is reported.
"""
from typing import List, Sequence

from pim_ingestion.models.import_job import (
    BatchOverallStatus,
    BatchPartSummary,
    BatchStatus,
    ImportJobRecord,
)
from pim_ingestion.services.job_store import JobStore


def _part_sort_key(job: ImportJobRecord):
    return (job.batch_part is None, job.batch_part or 0)


def summarize_batch(batch_id: str, jobs: Sequence[ImportJobRecord]) -> BatchStatus:
    """Derive the batch view from its jobs.

    Overall status, first match wins:
        incomplete -> in_progress -> failed -> complete -> partial_success
    """
    ordered = sorted(jobs, key=_part_sort_key)

    expected_parts = max((job.batch_total_parts or 0 for job in ordered), default=0)
    received = {job.batch_part for job in ordered if job.batch_part is not None}
    missing_parts: List[int] = [
        part for part in range(1, expected_parts + 1) if part not in received
    ]

    completed_parts = sum(1 for job in ordered if job.status == "completed")
    failed_parts = sum(1 for job in ordered if job.status == "failed")
    in_progress_parts = len(ordered) - completed_parts - failed_parts

    status: BatchOverallStatus
    if not ordered or missing_parts:
        status = "incomplete"
    elif in_progress_parts:
        status = "in_progress"
    elif failed_parts == len(ordered):
        status = "failed"
    elif failed_parts == 0:
        status = "complete"
    else:
        status = "partial_success"

    return BatchStatus(
        batch_id=batch_id,
        status=status,
        is_complete=bool(ordered) and not missing_parts and in_progress_parts == 0,
        expected_parts=expected_parts,
        received_parts=len(received),
        missing_parts=missing_parts,
        completed_parts=completed_parts,
        failed_parts=failed_parts,
        in_progress_parts=in_progress_parts,
        total_items_expected=max((job.batch_total_items or 0 for job in ordered), default=0),
        total_items_processed=sum(job.processed_rows for job in ordered),
        total_items_failed=sum(job.failed_rows for job in ordered),
        jobs=[
            BatchPartSummary(
                job_id=job.job_id,
                batch_part=job.batch_part,
                status=job.status,
                total_rows=job.total_rows,
                successful_rows=job.successful_rows,
                failed_rows=job.failed_rows,
            )
            for job in ordered
        ],
    )


async def get_batch_status(store: JobStore, batch_id: str) -> BatchStatus:
    """Load the jobs of ``batch_id`` and summarize them."""
    jobs = await store.list_batch_jobs(batch_id)
    return summarize_batch(batch_id, jobs)
