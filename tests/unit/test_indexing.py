"""Unit tests for downstream indexing notifications."""
import pytest
from unittest.mock import AsyncMock

from fakes import RecordingPublisher
from pim_ingestion.config import Settings
from pim_ingestion.services.indexing import (
    SYNC_PRODUCTS_FUNCTION,
    ArqIndexingPublisher,
    IndexingRegistry,
    build_indexing_registry,
    unique_in_order,
)


class TestIndexingRegistry:
    """Test channel registration and dispatch."""

    def test_duplicate_channel_rejected(self):
        registry = IndexingRegistry([RecordingPublisher("search")])

        with pytest.raises(ValueError):
            registry.register(RecordingPublisher("search"))

    def test_unique_in_order(self):
        assert unique_in_order(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]

    @pytest.mark.asyncio
    async def test_dispatch_chunks_and_dedupes(self):
        publisher = RecordingPublisher("search")
        registry = IndexingRegistry([publisher])
        codes = [f"P-{i}" for i in range(5)] + ["P-0", ""]

        delivered = await registry.dispatch(codes, batch_size=2, job_id="job-1", source_id="feed")

        assert delivered == 3
        assert [message.entity_codes for message in publisher.messages] == [
            ["P-0", "P-1"],
            ["P-2", "P-3"],
            ["P-4"],
        ]
        assert all(message.priority == "high" for message in publisher.messages)
        assert publisher.messages[0].job_id == "job-1"

    @pytest.mark.asyncio
    async def test_every_channel_receives_codes(self):
        search, feeds = RecordingPublisher("search"), RecordingPublisher("feeds")
        registry = IndexingRegistry([search, feeds])

        delivered = await registry.dispatch(["P-1"])

        assert delivered == 2
        assert feeds.messages[0].channel == "feeds"

    @pytest.mark.asyncio
    async def test_failing_channel_does_not_block_others(self):
        healthy = RecordingPublisher("search")
        registry = IndexingRegistry([RecordingPublisher("broken", fail=True), healthy])

        delivered = await registry.dispatch(["P-1"])

        assert delivered == 1
        assert healthy.messages[0].entity_codes == ["P-1"]

    @pytest.mark.asyncio
    async def test_nothing_to_dispatch(self):
        assert await IndexingRegistry([RecordingPublisher()]).dispatch([]) == 0
        assert await IndexingRegistry().dispatch(["P-1"]) == 0


class TestArqIndexingPublisher:
    """Test queue delivery."""

    @pytest.mark.asyncio
    async def test_enqueues_sync_task(self):
        redis = AsyncMock()
        registry = build_indexing_registry(
            redis, Settings(indexing_channels=["search"], indexing_queue_name="sync-queue")
        )

        await registry.dispatch(["P-1"], source_id="feed")

        args, kwargs = redis.enqueue_job.await_args
        assert args[0] == SYNC_PRODUCTS_FUNCTION
        assert args[1]["entity_codes"] == ["P-1"]
        assert args[1]["channel"] == "search"
        assert kwargs["_queue_name"] == "sync-queue"

    def test_registry_has_one_publisher_per_channel(self):
        registry = build_indexing_registry(AsyncMock(), Settings(indexing_channels=["search", "feeds"]))

        assert registry.channels() == ["search", "feeds"]
        assert isinstance(registry._publishers["search"], ArqIndexingPublisher)
