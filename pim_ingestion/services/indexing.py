"""Downstream indexing notifications.

After an import, the entity codes it wrote are announced to every
registered channel so that search indexes (and similar read models) can
refresh asynchronously. The registry is built once at worker start-up
and handed to the import processor.
"""
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence

import structlog
from arq.connections import ArqRedis

from pim_ingestion.config import Settings
from pim_ingestion.models.queue_message import SyncProductsMessage

logger = structlog.get_logger(__name__)

SYNC_PRODUCTS_FUNCTION = "sync_products_task"


class IndexingPublisher(ABC):
    """Sends sync messages to one downstream channel."""

    def __init__(self, channel: str):
        self.channel = channel

    @abstractmethod
    async def publish(self, message: SyncProductsMessage) -> None:
        """Deliver one message."""


class ArqIndexingPublisher(IndexingPublisher):
    """Enqueues ``sync_products_task`` jobs on the indexing queue."""

    def __init__(self, redis: ArqRedis, channel: str, queue_name: str):
        super().__init__(channel)
        self._redis = redis
        self._queue_name = queue_name

    async def publish(self, message: SyncProductsMessage) -> None:
        await self._redis.enqueue_job(
            SYNC_PRODUCTS_FUNCTION,
            message.model_dump(),
            _queue_name=self._queue_name,
        )


def unique_in_order(values: Iterable[str]) -> List[str]:
    """Drop duplicates, keeping first occurrences in order."""
    return list(dict.fromkeys(values))


class IndexingRegistry:
    """Channel -> publisher table.

    Args:
        publishers: Initial publishers, one per channel
    """

    def __init__(self, publishers: Iterable[IndexingPublisher] = ()):
        self._publishers: Dict[str, IndexingPublisher] = {}
        for publisher in publishers:
            self.register(publisher)

    def register(self, publisher: IndexingPublisher) -> None:
        """Add a publisher.

        Raises:
            ValueError: If its channel already has a publisher
        """
        if publisher.channel in self._publishers:
            raise ValueError(f"Indexing channel '{publisher.channel}' is already registered")
        self._publishers[publisher.channel] = publisher

    def channels(self) -> List[str]:
        return list(self._publishers)

    async def dispatch(
        self,
        entity_codes: Sequence[str],
        batch_size: int = 50,
        priority: str = "high",
        source_id: Optional[str] = None,
        job_id: Optional[str] = None,
        batch_id: Optional[str] = None,
    ) -> int:
        """Announce ``entity_codes`` to every channel in sub-batches.

        A failing channel is logged and skipped; the import it follows has
        already been committed.

        Returns:
            Number of messages delivered
        """
        codes = unique_in_order(code for code in entity_codes if code)
        if not codes or not self._publishers:
            return 0

        chunks = [codes[i:i + batch_size] for i in range(0, len(codes), batch_size)]
        delivered = 0

        for channel, publisher in self._publishers.items():
            for chunk in chunks:
                message = SyncProductsMessage(
                    entity_codes=chunk,
                    priority=priority,
                    channel=channel,
                    source_id=source_id,
                    job_id=job_id,
                    batch_id=batch_id,
                )
                try:
                    await publisher.publish(message)
                    delivered += 1
                except Exception as e:
                    logger.error(
                        "indexing_dispatch_failed",
                        channel=channel,
                        job_id=job_id,
                        entity_codes=len(chunk),
                        error=str(e),
                        error_type=type(e).__name__,
                    )

        logger.info(
            "indexing_dispatched",
            job_id=job_id,
            channels=self.channels(),
            entity_codes=len(codes),
            messages=delivered,
        )
        return delivered


def build_indexing_registry(redis: ArqRedis, settings: Settings) -> IndexingRegistry:
    """Registry with one queue publisher per configured channel."""
    return IndexingRegistry(
        ArqIndexingPublisher(redis, channel, settings.indexing_queue_name)
        for channel in settings.indexing_channels
    )
