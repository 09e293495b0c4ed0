"""Append-only product version chain.

Writing a version retires the current one and inserts its successor as a
single transition. The retire step is conditional on the version number
the writer read, so two writers racing on one entity code cannot both
succeed: the loser re-reads the current version, rebuilds its payload
against it and tries again.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import structlog
from sqlalchemy.exc import IntegrityError

from pim_ingestion.db.base import async_session_maker
from pim_ingestion.db.operations import (
    get_current_version,
    insert_product_version,
    retire_current_version,
)
from pim_ingestion.errors.exceptions import VersionConflictError
from pim_ingestion.models.product import (
    NewProductVersion,
    ProductVersionSnapshot,
    VersionWriteResult,
)
from pim_ingestion.services.auto_publish import calculate_priority_score

logger = structlog.get_logger(__name__)

VersionBuilder = Callable[[Optional[ProductVersionSnapshot]], NewProductVersion]


class ProductVersionStore(ABC):
    """Storage of product versions keyed by ``(entity_code, version)``."""

    @abstractmethod
    async def get_current(self, entity_code: str) -> Optional[ProductVersionSnapshot]:
        """Return the current version, or None for a new entity code."""

    @abstractmethod
    async def append_version(
        self,
        version: ProductVersionSnapshot,
        expected_version: Optional[int],
    ) -> bool:
        """Atomically retire ``expected_version`` and insert ``version``.

        Args:
            version: The new current version
            expected_version: Version believed current, None if none exists

        Returns:
            False (with nothing written) if ``expected_version`` is no
            longer current or another writer inserted first
        """


class SqlProductVersionStore(ProductVersionStore):
    """Version store backed by the ``product_versions`` table."""

    def __init__(self, session_factory=async_session_maker):
        self._session_factory = session_factory

    async def get_current(self, entity_code: str) -> Optional[ProductVersionSnapshot]:
        async with self._session_factory() as session:
            row = await get_current_version(session, entity_code)
            return ProductVersionSnapshot.model_validate(row) if row is not None else None

    async def append_version(
        self,
        version: ProductVersionSnapshot,
        expected_version: Optional[int],
    ) -> bool:
        values = version.model_dump()
        sku = version.data.get("sku")
        values["sku"] = str(sku) if sku is not None else None

        async with self._session_factory() as session:
            try:
                async with session.begin():
                    if expected_version is not None:
                        retired = await retire_current_version(
                            session, version.entity_code, expected_version
                        )
                        if not retired:
                            # Nothing was written; the empty transaction commits
                            return False
                    await insert_product_version(session, values)
            except IntegrityError:
                # session.begin() has already rolled back
                return False
        return True


class VersionWriter:
    """Writes the next version of an entity code with optimistic retries.

    Args:
        store: Product version storage
        max_attempts: Tries before giving up with VersionConflictError
    """

    def __init__(self, store: ProductVersionStore, max_attempts: int = 3):
        self._store = store
        self._max_attempts = max_attempts

    async def write(self, entity_code: str, build: VersionBuilder) -> VersionWriteResult:
        """Append the next version of ``entity_code``.

        ``build`` receives the freshly read current version (or None) and
        returns the payload to store. It runs again on every retry so the
        payload always reflects the version it replaces.

        Raises:
            VersionConflictError: If every attempt lost the race
        """
        log = logger.bind(entity_code=entity_code)
        expected_version: Optional[int] = None

        for attempt in range(1, self._max_attempts + 1):
            previous = await self._store.get_current(entity_code)
            expected_version = previous.version if previous else None

            new_version = build(previous)
            snapshot = build_version_snapshot(new_version, previous, datetime.now(timezone.utc))

            if await self._store.append_version(snapshot, expected_version):
                log.debug(
                    "product_version_written",
                    version=snapshot.version,
                    status=snapshot.status,
                    attempt=attempt,
                )
                return VersionWriteResult(
                    entity_code=entity_code,
                    version=snapshot.version,
                    previous_version=expected_version,
                    status=snapshot.status,
                    is_current_published=snapshot.is_current_published,
                    attempts=attempt,
                )

            log.warning(
                "product_version_conflict",
                expected_version=expected_version,
                attempt=attempt,
                max_attempts=self._max_attempts,
            )

        raise VersionConflictError(entity_code, expected_version, self._max_attempts)


def build_version_snapshot(
    new_version: NewProductVersion,
    previous: Optional[ProductVersionSnapshot],
    now: datetime,
) -> ProductVersionSnapshot:
    """Build the row for the successor of ``previous``.

    Manual-edit provenance and analytics are carried over from the prior
    version; publication fields follow the auto-publish decision.
    """
    eligible = new_version.auto_publish.eligible
    conflict = new_version.conflict

    return ProductVersionSnapshot(
        entity_code=new_version.entity_code,
        version=previous.version + 1 if previous else 1,
        is_current=True,
        is_current_published=eligible,
        status="published" if eligible else "draft",
        data=new_version.data,
        completeness_score=new_version.completeness_score,
        critical_issues=new_version.critical_issues,
        auto_publish_eligible=eligible,
        auto_publish_reason=new_version.auto_publish.reason,
        manually_edited=previous.manually_edited if previous else False,
        manually_edited_fields=list(previous.manually_edited_fields) if previous else [],
        locked_fields=list(previous.locked_fields) if previous else [],
        last_manual_update_at=previous.last_manual_update_at if previous else None,
        has_conflict=bool(conflict and conflict.has_conflicts),
        conflict_data=(
            [entry.model_dump(mode="json") for entry in conflict.conflict_data]
            if conflict else []
        ),
        source=new_version.source,
        published_at=now if eligible else None,
        analytics=_carry_analytics(previous, new_version.completeness_score),
    )


def _carry_analytics(previous: Optional[ProductVersionSnapshot], score: int) -> Dict[str, Any]:
    analytics = dict(previous.analytics) if previous else {}
    views = analytics.get("views_30d")
    if isinstance(views, (int, float)):
        analytics["priority_score"] = calculate_priority_score(views, score)
    return analytics
