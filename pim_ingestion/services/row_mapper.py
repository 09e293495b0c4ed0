"""Row mapping: external records -> normalized product payloads.

A source's field-mapping table drives the conversion. After mapping, the
mapper drops incomplete nested items from known collections and wraps
plain values of multilingual fields under the default language key.
"""
import copy
import math
from collections import Counter
from typing import Any, Dict, List, Sequence

import structlog

from pim_ingestion.models.import_source import ImportSourceConfig
from pim_ingestion.models.product import MappedRow
from pim_ingestion.services.field_paths import is_empty_value, set_path
from pim_ingestion.services.transforms import TransformRegistry

logger = structlog.get_logger(__name__)

# Fields stored as {language: value} objects
MULTILINGUAL_FIELDS = (
    "name",
    "description",
    "short_description",
    "features",
    "specifications",
    "meta_title",
    "meta_description",
    "keywords",
)

# Collection field -> sub-fields every item must carry
REQUIRED_ITEM_FIELDS: Dict[str, Sequence[str]] = {
    "gallery": ("id", "thumbnail", "original"),
    "media": ("url",),
    "features": ("label", "value"),
    "tag": ("id", "name", "slug"),
    "tags": ("id", "name", "slug"),
    "docs": ("id", "url"),
    "meta": ("key", "value"),
}


class RowMapper:
    """Maps raw records of one import source onto the product payload shape.

    Args:
        source: Import source carrying the field-mapping table
        transforms: Registry the mapping's transform names resolve against
        default_language: Fallback language key for multilingual fields
    """

    def __init__(
        self,
        source: ImportSourceConfig,
        transforms: TransformRegistry,
        default_language: str,
    ):
        self._source = source
        self._transforms = transforms
        self._default_language = source.default_language or default_language

    def map_row(self, record: Dict[str, Any], row_number: int) -> MappedRow:
        """Map a single raw record.

        Raises:
            TransformError: If a declared transform fails
            FieldPathError: If a target path cannot be written
        """
        if self._source.field_mapping:
            data = self._apply_mapping(record)
        else:
            data = {
                key: copy.deepcopy(value)
                for key, value in record.items()
                if not is_empty_value(value)
            }

        cleanup_incomplete_items(data)
        apply_default_language(data, self._default_language)

        return MappedRow(
            row_number=row_number,
            entity_code=self._resolve_entity_code(data, record),
            normalized_data=data,
            raw_record=record,
        )

    def _apply_mapping(self, record: Dict[str, Any]) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for mapping in self._source.field_mapping:
            value = record.get(mapping.source_field)
            if _is_blank(value):
                continue
            if mapping.transform:
                value = self._transforms.apply(mapping.transform, value)
            set_path(data, mapping.pim_field, value)
        return data

    def _resolve_entity_code(self, data: Dict[str, Any], record: Dict[str, Any]) -> str:
        # mapped entity_code -> raw entity_code -> raw sku
        for candidate in (data.get("entity_code"), record.get("entity_code"), record.get("sku")):
            if not _is_blank(candidate):
                return _code_to_str(candidate)
        return ""


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value == ""


def _code_to_str(value: Any) -> str:
    # Spreadsheets hand back integral codes as floats (1001.0)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def cleanup_incomplete_items(data: Dict[str, Any]) -> None:
    """Drop collection items missing required sub-fields.

    A collection left empty by the cleanup is removed from ``data``.
    """
    for field, required in REQUIRED_ITEM_FIELDS.items():
        items = data.get(field)
        if not isinstance(items, list):
            continue
        kept = [
            item for item in items
            if isinstance(item, dict)
            and all(not is_empty_value(item.get(key)) for key in required)
        ]
        if kept:
            data[field] = kept
        else:
            del data[field]


def apply_default_language(data: Dict[str, Any], language: str) -> None:
    """Wrap plain values of multilingual fields as ``{language: value}``."""
    for field in MULTILINGUAL_FIELDS:
        value = data.get(field)
        if _is_blank(value) or isinstance(value, dict):
            continue
        data[field] = {language: value}
        logger.debug("default_language_applied", field=field, language=language)


def validate_mapped_rows(rows: Sequence[MappedRow]) -> List[str]:
    """Pre-flight checks over a mapped batch.

    Returns human-readable warnings for rows without an entity code and for
    entity codes that appear more than once. Neither stops the import.
    """
    warnings: List[str] = []
    if not rows:
        warnings.append("No data rows found")
        return warnings

    missing = [row for row in rows if not row.entity_code]
    if missing:
        warnings.append(
            f"{len(missing)} rows missing entity_code (first row: {missing[0].row_number})"
        )

    counts = Counter(row.entity_code for row in rows if row.entity_code)
    duplicates = [code for code, count in counts.items() if count > 1]
    if duplicates:
        warnings.append(f"Duplicate entity_codes found: {', '.join(duplicates[:5])}")

    return warnings
