"""Import source lookup and statistics."""
from abc import ABC, abstractmethod
from datetime import datetime

import structlog

from pim_ingestion.db.base import async_session_maker
from pim_ingestion.db.operations import get_import_source, update_source_stats
from pim_ingestion.errors.exceptions import SourceConfigError, SourceNotFoundError
from pim_ingestion.models.import_source import ImportSourceConfig, ImportStatusLabel

logger = structlog.get_logger(__name__)


class SourceProvider(ABC):
    """Read access to import sources, plus the stats the worker maintains."""

    @abstractmethod
    async def get_source(self, source_id: str) -> ImportSourceConfig:
        """Load a source.

        Raises:
            SourceNotFoundError: If no source has this id
            SourceConfigError: If the stored configuration is invalid
        """

    @abstractmethod
    async def record_import(
        self,
        source_id: str,
        successful_rows: int,
        status: ImportStatusLabel,
        imported_at: datetime,
    ) -> None:
        """Bump the source's import statistics."""


class SqlSourceProvider(SourceProvider):
    """Source provider backed by the ``import_sources`` table."""

    def __init__(self, session_factory=async_session_maker):
        self._session_factory = session_factory

    async def get_source(self, source_id: str) -> ImportSourceConfig:
        async with self._session_factory() as session:
            row = await get_import_source(session, source_id)

        if row is None:
            raise SourceNotFoundError(f"Import source '{source_id}' not found")

        try:
            return ImportSourceConfig.model_validate(row)
        except ValueError as e:
            logger.error("import_source_invalid", source_id=source_id, error=str(e))
            raise SourceConfigError(f"Import source '{source_id}' has invalid configuration: {e}") from e

    async def record_import(
        self,
        source_id: str,
        successful_rows: int,
        status: ImportStatusLabel,
        imported_at: datetime,
    ) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await update_source_stats(session, source_id, successful_rows, status, imported_at)
