"""Unit tests for row mapping and pre-flight validation."""
import pytest

from pim_ingestion.errors.exceptions import TransformError
from pim_ingestion.models.import_source import FieldMapping, ImportSourceConfig
from pim_ingestion.models.product import MappedRow
from pim_ingestion.services.row_mapper import (
    RowMapper,
    apply_default_language,
    cleanup_incomplete_items,
    validate_mapped_rows,
)
from pim_ingestion.services.transforms import TransformRegistry


def _source(*mappings, **overrides) -> ImportSourceConfig:
    return ImportSourceConfig(
        source_id="feed",
        field_mapping=[FieldMapping(**mapping) for mapping in mappings],
        **overrides,
    )


class TestRowMapperWithMapping:
    """Test mapping-table driven conversion."""

    def test_maps_nested_paths_and_transforms(self):
        source = _source(
            {"source_field": "Code", "pim_field": "entity_code"},
            {"source_field": "Title", "pim_field": "name"},
            {"source_field": "Price", "pim_field": "price", "transform": "parse_number"},
            {"source_field": "Brand", "pim_field": "brand.label"},
            {"source_field": "Image", "pim_field": "images[0].url"},
        )
        mapper = RowMapper(source, TransformRegistry(), "it")

        row = mapper.map_row(
            {"Code": "A-1", "Title": "Smerigliatrice", "Price": "1.234,50", "Brand": "Bosch", "Image": "x.jpg"},
            row_number=1,
        )

        assert row.entity_code == "A-1"
        assert row.normalized_data == {
            "entity_code": "A-1",
            "name": {"it": "Smerigliatrice"},
            "price": 1234.5,
            "brand": {"label": "Bosch"},
            "images": [{"url": "x.jpg"}],
        }

    def test_blank_source_values_are_skipped(self):
        source = _source(
            {"source_field": "Code", "pim_field": "entity_code"},
            {"source_field": "Price", "pim_field": "price", "transform": "parse_number"},
        )
        mapper = RowMapper(source, TransformRegistry(), "it")

        row = mapper.map_row({"Code": "A-1", "Price": ""}, row_number=3)

        assert "price" not in row.normalized_data
        assert row.row_number == 3

    def test_failing_transform_raises(self):
        source = _source({"source_field": "Price", "pim_field": "price", "transform": "parse_number"})
        mapper = RowMapper(source, TransformRegistry(), "it")

        with pytest.raises(TransformError):
            mapper.map_row({"Price": "abc"}, row_number=1)

    def test_source_language_overrides_default(self):
        source = _source({"source_field": "Title", "pim_field": "name"}, default_language="en")
        mapper = RowMapper(source, TransformRegistry(), "it")

        row = mapper.map_row({"Title": "Drill"}, row_number=1)

        assert row.normalized_data["name"] == {"en": "Drill"}


class TestRowMapperWithoutMapping:
    """Test pass-through of records (API feeds without a mapping table)."""

    def test_record_used_as_is(self):
        mapper = RowMapper(_source(), TransformRegistry(), "it")

        row = mapper.map_row(
            {"entity_code": "B-2", "name": {"it": "Martello"}, "notes": ""},
            row_number=1,
        )

        assert row.entity_code == "B-2"
        assert row.normalized_data == {"entity_code": "B-2", "name": {"it": "Martello"}}

    def test_entity_code_falls_back_to_sku(self):
        mapper = RowMapper(_source(), TransformRegistry(), "it")

        row = mapper.map_row({"sku": 1001.0, "name": "Chiave"}, row_number=1)

        assert row.entity_code == "1001"

    def test_missing_code_gives_empty_entity_code(self):
        mapper = RowMapper(_source(), TransformRegistry(), "it")

        row = mapper.map_row({"name": "Senza codice"}, row_number=4)

        assert row.entity_code == ""


class TestCleanupAndLanguage:
    """Test post-mapping normalization helpers."""

    def test_incomplete_gallery_items_dropped(self):
        data = {
            "gallery": [
                {"id": "1", "thumbnail": "t1", "original": "o1"},
                {"id": "2", "thumbnail": "t2"},
            ]
        }

        cleanup_incomplete_items(data)

        assert data["gallery"] == [{"id": "1", "thumbnail": "t1", "original": "o1"}]

    def test_collection_left_empty_is_removed(self):
        data = {"media": [{"type": "video"}]}

        cleanup_incomplete_items(data)

        assert "media" not in data

    def test_plain_multilingual_values_wrapped(self):
        data = {"name": "Pinza", "description": {"en": "Pliers"}, "price": 3}

        apply_default_language(data, "it")

        assert data == {"name": {"it": "Pinza"}, "description": {"en": "Pliers"}, "price": 3}


class TestValidateMappedRows:
    """Test pre-flight warnings."""

    def test_no_rows(self):
        assert validate_mapped_rows([]) == ["No data rows found"]

    def test_missing_and_duplicate_codes(self):
        rows = [
            MappedRow(row_number=1, entity_code="A"),
            MappedRow(row_number=2, entity_code=""),
            MappedRow(row_number=3, entity_code="A"),
        ]

        warnings = validate_mapped_rows(rows)

        assert "1 rows missing entity_code (first row: 2)" in warnings
        assert "Duplicate entity_codes found: A" in warnings

    def test_clean_batch_has_no_warnings(self):
        rows = [MappedRow(row_number=1, entity_code="A"), MappedRow(row_number=2, entity_code="B")]

        assert validate_mapped_rows(rows) == []
