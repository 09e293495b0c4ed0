"""Unit tests for manual-edit conflict detection and locked-field merge."""
import copy
from datetime import datetime, timezone

from pim_ingestion.models.product import ProductVersionSnapshot
from pim_ingestion.services.conflict_detector import detect_conflicts, merge_locked_fields

NOW = datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc)


def _previous(**overrides) -> ProductVersionSnapshot:
    values = {
        "entity_code": "P-001",
        "version": 3,
        "data": {
            "name": {"it": "Nome curato a mano"},
            "price": 10.0,
            "brand": {"brand_id": "b-1", "label": "Makita"},
        },
        "manually_edited": True,
        "manually_edited_fields": ["name", "price"],
    }
    values.update(overrides)
    return ProductVersionSnapshot(**values)


class TestDetectConflicts:
    """Test conflict detection under each overwrite level."""

    def test_no_previous_version(self):
        incoming = {"name": {"it": "Nuovo"}}

        result = detect_conflicts(None, incoming, "manual", now=NOW)

        assert result.has_conflicts is False
        assert result.merged_data == incoming

    def test_automatic_level_lets_import_win(self):
        incoming = {"name": {"it": "Dal fornitore"}}

        result = detect_conflicts(_previous(), incoming, "automatic", now=NOW)

        assert result.has_conflicts is False
        assert result.merged_data == incoming

    def test_manual_level_keeps_manual_value(self):
        incoming = {"name": {"it": "Dal fornitore"}, "price": 10.0, "ean": "800"}

        result = detect_conflicts(_previous(), incoming, "manual", now=NOW)

        assert result.has_conflicts is True
        assert result.should_skip_fields == ["name"]
        assert result.merged_data == {"name": {"it": "Nome curato a mano"}, "price": 10.0, "ean": "800"}

        entry = result.conflict_data[0]
        assert entry.field == "name"
        assert entry.manual_value == {"it": "Nome curato a mano"}
        assert entry.api_value == {"it": "Dal fornitore"}
        assert entry.detected_at == NOW

    def test_edited_field_absent_from_import_is_not_a_conflict(self):
        result = detect_conflicts(_previous(), {"ean": "800"}, "manual", now=NOW)

        assert result.has_conflicts is False
        assert result.merged_data == {"ean": "800"}

    def test_nested_edited_path(self):
        previous = _previous(manually_edited_fields=["brand.label"])
        incoming = {"brand": {"brand_id": "b-1", "label": "MAKITA SPA"}}

        result = detect_conflicts(previous, incoming, "manual", now=NOW)

        assert result.merged_data["brand"] == {"brand_id": "b-1", "label": "Makita"}

    def test_inputs_not_mutated_and_result_deterministic(self):
        previous = _previous()
        incoming = {"name": {"it": "Dal fornitore"}, "price": 12.0}
        incoming_before = copy.deepcopy(incoming)
        previous_before = previous.model_copy(deep=True)

        first = detect_conflicts(previous, incoming, "manual", now=NOW)
        second = detect_conflicts(previous, incoming, "manual", now=NOW)

        assert first == second
        assert incoming == incoming_before
        assert previous == previous_before


class TestMergeLockedFields:
    """Test that locked fields always keep the prior value."""

    def test_locked_value_wins_over_import(self):
        previous = _previous(locked_fields=["price"], manually_edited_fields=[])

        merged = merge_locked_fields(previous, {"price": 99.0, "ean": "800"})

        assert merged == {"price": 10.0, "ean": "800"}

    def test_lock_creates_missing_parent(self):
        previous = _previous(locked_fields=["brand.label"])

        merged = merge_locked_fields(previous, {"name": {"it": "x"}})

        assert merged["brand"] == {"label": "Makita"}

    def test_lock_on_path_absent_from_previous_keeps_import(self):
        previous = _previous(locked_fields=["ean"])

        merged = merge_locked_fields(previous, {"ean": "800"})

        assert merged == {"ean": "800"}

    def test_lock_precedence_under_automatic_level(self):
        previous = _previous(locked_fields=["name"])
        incoming = {"name": {"it": "Dal fornitore"}}

        conflict = detect_conflicts(previous, incoming, "automatic", now=NOW)
        merged = merge_locked_fields(previous, conflict.merged_data)

        assert merged["name"] == {"it": "Nome curato a mano"}

    def test_does_not_mutate_input(self):
        previous = _previous(locked_fields=["price"])
        target = {"price": 1.0}

        merge_locked_fields(previous, target)

        assert target == {"price": 1.0}
