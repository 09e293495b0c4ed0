"""Unit tests for the append-only version chain."""
import asyncio
from datetime import datetime, timezone
from typing import Optional

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.exc import IntegrityError

from fakes import InMemoryVersionStore
from pim_ingestion.errors.exceptions import VersionConflictError
from pim_ingestion.models.product import (
    AutoPublishDecision,
    ConflictEntry,
    ConflictResult,
    NewProductVersion,
    ProductVersionSnapshot,
)
from pim_ingestion.services.version_writer import (
    SqlProductVersionStore,
    VersionWriter,
    build_version_snapshot,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _new_version(entity_code: str = "P-001", eligible: bool = False, **overrides) -> NewProductVersion:
    values = {
        "entity_code": entity_code,
        "data": {"entity_code": entity_code, "sku": entity_code},
        "completeness_score": 85 if eligible else 40,
        "auto_publish": AutoPublishDecision(eligible=eligible, reason="test"),
        "source": {"source_id": "feed", "job_id": "job-1"},
    }
    values.update(overrides)
    return NewProductVersion(**values)


class TestBuildVersionSnapshot:
    """Test successor construction."""

    def test_first_version(self):
        snapshot = build_version_snapshot(_new_version(), None, NOW)

        assert snapshot.version == 1
        assert snapshot.is_current is True
        assert snapshot.status == "draft"
        assert snapshot.is_current_published is False
        assert snapshot.published_at is None
        assert snapshot.manually_edited is False

    def test_eligible_version_is_published(self):
        snapshot = build_version_snapshot(_new_version(eligible=True), None, NOW)

        assert snapshot.status == "published"
        assert snapshot.is_current_published is True
        assert snapshot.auto_publish_eligible is True
        assert snapshot.published_at == NOW

    def test_carries_manual_provenance_and_analytics(self):
        previous = ProductVersionSnapshot(
            entity_code="P-001",
            version=4,
            manually_edited=True,
            manually_edited_fields=["name"],
            locked_fields=["price"],
            last_manual_update_at=NOW,
            analytics={"views_30d": 500, "priority_score": 9.9},
        )

        snapshot = build_version_snapshot(_new_version(), previous, NOW)

        assert snapshot.version == 5
        assert snapshot.manually_edited is True
        assert snapshot.manually_edited_fields == ["name"]
        assert snapshot.locked_fields == ["price"]
        assert snapshot.last_manual_update_at == NOW
        # 500 views, score 40 -> 5 * 0.6
        assert snapshot.analytics == {"views_30d": 500, "priority_score": 3.0}

    def test_conflict_audit_is_serialized(self):
        conflict = ConflictResult(
            has_conflicts=True,
            conflict_data=[ConflictEntry(field="name", manual_value="a", api_value="b", detected_at=NOW)],
            should_skip_fields=["name"],
        )

        snapshot = build_version_snapshot(_new_version(conflict=conflict), None, NOW)

        assert snapshot.has_conflict is True
        assert snapshot.conflict_data == [
            {"field": "name", "manual_value": "a", "api_value": "b", "detected_at": "2026-03-01T12:00:00Z"}
        ]


class TestVersionWriter:
    """Test optimistic writes against the in-memory store."""

    @pytest.mark.asyncio
    async def test_versions_increase_by_one(self):
        store = InMemoryVersionStore()
        writer = VersionWriter(store)

        results = [await writer.write("P-001", lambda previous: _new_version()) for _ in range(3)]

        assert [result.version for result in results] == [1, 2, 3]
        assert [result.previous_version for result in results] == [None, 1, 2]
        chain = store.versions["P-001"]
        assert [snapshot.version for snapshot in chain] == [1, 2, 3]
        assert [snapshot.is_current for snapshot in chain] == [False, False, True]

    @pytest.mark.asyncio
    async def test_builder_receives_current_version(self):
        store = InMemoryVersionStore()
        writer = VersionWriter(store)
        seen = []

        def build(previous: Optional[ProductVersionSnapshot]) -> NewProductVersion:
            seen.append(previous.version if previous else None)
            return _new_version()

        await writer.write("P-001", build)
        await writer.write("P-001", build)

        assert seen == [None, 1]

    @pytest.mark.asyncio
    async def test_publishing_clears_previous_published_flag(self):
        store = InMemoryVersionStore()
        writer = VersionWriter(store)

        await writer.write("P-001", lambda previous: _new_version(eligible=True))
        await writer.write("P-001", lambda previous: _new_version(eligible=True))

        chain = store.versions["P-001"]
        assert [snapshot.is_current_published for snapshot in chain] == [False, True]

    @pytest.mark.asyncio
    async def test_concurrent_writers_never_share_a_version(self):
        store = InMemoryVersionStore()
        writers = [VersionWriter(store, max_attempts=5) for _ in range(3)]

        results = await asyncio.gather(
            *(writer.write("P-001", lambda previous: _new_version()) for writer in writers)
        )

        assert sorted(result.version for result in results) == [1, 2, 3]
        assert store.rejected_appends > 0
        assert sum(1 for snapshot in store.versions["P-001"] if snapshot.is_current) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        store = AsyncMock()
        store.get_current.return_value = None
        store.append_version.return_value = False
        writer = VersionWriter(store, max_attempts=2)

        with pytest.raises(VersionConflictError) as exc_info:
            await writer.write("P-001", lambda previous: _new_version())

        assert exc_info.value.attempts == 2
        assert store.append_version.await_count == 2


class TestSqlProductVersionStore:
    """Test the SQL store's race handling with a mocked session."""

    def _session_factory(self, session):
        factory = MagicMock()
        factory.return_value.__aenter__ = AsyncMock(return_value=session)
        factory.return_value.__aexit__ = AsyncMock(return_value=False)
        return factory

    def _session(self):
        session = MagicMock()
        session.begin.return_value.__aenter__ = AsyncMock(return_value=session)
        session.begin.return_value.__aexit__ = AsyncMock(return_value=False)
        return session

    @pytest.mark.asyncio
    async def test_lost_retire_returns_false(self, monkeypatch):
        session = self._session()
        retire = AsyncMock(return_value=False)
        insert = AsyncMock()
        monkeypatch.setattr("pim_ingestion.services.version_writer.retire_current_version", retire)
        monkeypatch.setattr("pim_ingestion.services.version_writer.insert_product_version", insert)
        store = SqlProductVersionStore(session_factory=self._session_factory(session))

        snapshot = build_version_snapshot(_new_version(), None, NOW).model_copy(update={"version": 2})
        appended = await store.append_version(snapshot, expected_version=1)

        assert appended is False
        insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unique_violation_returns_false(self, monkeypatch):
        session = self._session()
        insert = AsyncMock(side_effect=IntegrityError("insert", {}, Exception("duplicate key")))
        monkeypatch.setattr("pim_ingestion.services.version_writer.insert_product_version", insert)
        store = SqlProductVersionStore(session_factory=self._session_factory(session))

        appended = await store.append_version(build_version_snapshot(_new_version(), None, NOW), None)

        assert appended is False

    @pytest.mark.asyncio
    async def test_insert_values_include_sku(self, monkeypatch):
        session = self._session()
        insert = AsyncMock()
        monkeypatch.setattr("pim_ingestion.services.version_writer.insert_product_version", insert)
        store = SqlProductVersionStore(session_factory=self._session_factory(session))

        appended = await store.append_version(build_version_snapshot(_new_version(), None, NOW), None)

        assert appended is True
        values = insert.await_args.args[1]
        assert values["sku"] == "P-001"
        assert values["version"] == 1
