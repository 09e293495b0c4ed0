#!/usr/bin/env python3
"""Helper script for submitting and inspecting import jobs.

Usage:
    python scripts/enqueue_import.py submit --source-id supplier-feed-1 \\
        --file-url "https://cdn.example.com/products.csv"
    python scripts/enqueue_import.py status --job-id import_1732623600000_k3f9
    python scripts/enqueue_import.py batch --batch-id batch_123
    python scripts/enqueue_import.py cancel --job-id import_1732623600000_k3f9
"""
import asyncio
import argparse
import json
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

from dotenv import load_dotenv

# Add project root to path
script_dir = Path(__file__).parent
project_root = script_dir.parent
sys.path.insert(0, str(project_root))

# Load .env file if it exists (for local development)
env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)

from arq.connections import RedisSettings, create_pool
from arq import ArqRedis

from pim_ingestion.config import settings
from pim_ingestion.models.import_source import ApiConfig
from pim_ingestion.models.queue_message import BatchMetadata, ImportJobMessage
from pim_ingestion.services.batch_tracker import get_batch_status
from pim_ingestion.services.import_queue import cancel_import_job, submit_import_job
from pim_ingestion.services.job_store import SqlJobStore, get_job_progress, get_job_status


def _generate_job_id() -> str:
    return f"import_{int(time.time() * 1000)}_{uuid4().hex[:4]}"


def _print_json(data: Dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, default=str))


async def submit(args: argparse.Namespace) -> int:
    api_config: Optional[ApiConfig] = None
    if args.api_config:
        api_config = ApiConfig.model_validate_json(Path(args.api_config).read_text())

    batch: Optional[BatchMetadata] = None
    if args.batch_id:
        batch = BatchMetadata(
            batch_id=args.batch_id,
            batch_part=args.batch_part,
            batch_total_parts=args.batch_total_parts,
            batch_total_items=args.batch_total_items,
        )

    message = ImportJobMessage(
        job_id=args.job_id or _generate_job_id(),
        source_id=args.source_id,
        file_url=args.file_url,
        file_name=args.file_name,
        api_config=api_config,
        batch_metadata=batch,
    )

    pool: ArqRedis = await create_pool(RedisSettings.from_dsn(settings.redis_url))
    try:
        job = await submit_import_job(pool, SqlJobStore(), message, defer_by=args.defer)
    finally:
        await pool.close()

    if job is None:
        print(f"⚠️  Job {message.job_id} is already queued or processing")
        return 1

    print("✅ Import job submitted")
    print(f"   Job ID:  {message.job_id}")
    print(f"   Source:  {message.source_id}")
    print(f"   Queue:   {settings.queue_name}")
    if batch:
        print(f"   Batch:   {batch.batch_id} part {batch.batch_part}/{batch.batch_total_parts}")
    return 0


async def status(args: argparse.Namespace) -> int:
    view = await get_job_status(SqlJobStore(), args.job_id)
    if view is None:
        print(f"❌ Job {args.job_id} not found")
        return 1

    result: Dict[str, Any] = view.model_dump(mode="json")
    pool: ArqRedis = await create_pool(RedisSettings.from_dsn(settings.redis_url))
    try:
        result["live_progress"] = await get_job_progress(pool, args.job_id)
    finally:
        await pool.close()

    _print_json(result)
    return 0


async def batch(args: argparse.Namespace) -> int:
    summary = await get_batch_status(SqlJobStore(), args.batch_id)
    _print_json(summary.model_dump(mode="json"))
    return 0 if summary.is_complete else 2


async def cancel(args: argparse.Namespace) -> int:
    pool: ArqRedis = await create_pool(RedisSettings.from_dsn(settings.redis_url))
    try:
        aborted = await cancel_import_job(pool, SqlJobStore(), args.job_id, timeout=args.timeout)
    finally:
        await pool.close()
    print(f"{'✅ Aborted' if aborted else '⚠️  Not aborted'}: {args.job_id}")
    return 0 if aborted else 1


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Submit and inspect product import jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    submit_parser = subparsers.add_parser("submit", help="Submit an import job")
    submit_parser.add_argument("--source-id", required=True, help="Import source id")
    submit_parser.add_argument("--job-id", help="Job id (auto-generated if not provided)")
    origin = submit_parser.add_mutually_exclusive_group(required=True)
    origin.add_argument("--file-url", help="URL of the file to import")
    origin.add_argument("--api-config", help="Path to a JSON API descriptor")
    submit_parser.add_argument("--file-name", help="Original file name (format detection)")
    submit_parser.add_argument("--batch-id", help="Batch id when the upload is split")
    submit_parser.add_argument("--batch-part", type=int, default=1)
    submit_parser.add_argument("--batch-total-parts", type=int, default=1)
    submit_parser.add_argument("--batch-total-items", type=int, default=0)
    submit_parser.add_argument("--defer", type=float, help="Seconds to wait before the job may start")
    submit_parser.set_defaults(handler=submit)

    status_parser = subparsers.add_parser("status", help="Show one job")
    status_parser.add_argument("--job-id", required=True)
    status_parser.set_defaults(handler=status)

    batch_parser = subparsers.add_parser("batch", help="Show aggregated batch status")
    batch_parser.add_argument("--batch-id", required=True)
    batch_parser.set_defaults(handler=batch)

    cancel_parser = subparsers.add_parser("cancel", help="Abort a queued or running job")
    cancel_parser.add_argument("--job-id", required=True)
    cancel_parser.add_argument("--timeout", type=float, default=30.0)
    cancel_parser.set_defaults(handler=cancel)

    args = parser.parse_args()
    return asyncio.run(args.handler(args))


if __name__ == "__main__":
    sys.exit(main())
