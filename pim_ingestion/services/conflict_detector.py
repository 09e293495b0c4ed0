"""Conflict detection between imports and manual edits, and field locking.

``detect_conflicts`` and ``merge_locked_fields`` are pure: inputs are never
mutated, and for a fixed ``now`` the same inputs always give the same result.
Locking runs after conflict detection and always has the last word.
"""
import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from pim_ingestion.models.import_source import OverwriteLevel
from pim_ingestion.models.product import ConflictEntry, ConflictResult, ProductVersionSnapshot
from pim_ingestion.services.field_paths import MISSING, get_path, has_path, set_path, values_equal

logger = structlog.get_logger(__name__)


def detect_conflicts(
    previous: Optional[ProductVersionSnapshot],
    incoming: Dict[str, Any],
    overwrite_level: OverwriteLevel,
    now: Optional[datetime] = None,
) -> ConflictResult:
    """Compare incoming data with manually edited values of the prior version.

    Under ``overwrite_level="automatic"`` the import always wins and nothing
    is checked. Under ``"manual"``, each manually edited path present in
    ``incoming`` whose value differs is recorded as a conflict and the
    manual value is kept in ``merged_data``.

    Args:
        previous: Current version before this import, if any
        incoming: Mapped data of the row being imported
        overwrite_level: Source conflict policy
        now: Detection timestamp (defaults to current UTC time)

    Returns:
        ConflictResult with conflicts, merged data and skipped field paths
    """
    merged = copy.deepcopy(incoming)

    if previous is None or not previous.manually_edited_fields:
        return ConflictResult(merged_data=merged)

    if overwrite_level == "automatic":
        return ConflictResult(merged_data=merged)

    detected_at = now or datetime.now(timezone.utc)
    conflicts: List[ConflictEntry] = []
    skipped: List[str] = []

    for field in previous.manually_edited_fields:
        if not has_path(incoming, field):
            continue

        manual_value = get_path(previous.data, field)
        api_value = get_path(incoming, field)
        if values_equal(manual_value, api_value):
            continue

        conflicts.append(
            ConflictEntry(
                field=field,
                manual_value=copy.deepcopy(manual_value),
                api_value=copy.deepcopy(api_value),
                detected_at=detected_at,
            )
        )
        skipped.append(field)
        set_path(merged, field, copy.deepcopy(manual_value))

    if conflicts:
        logger.info(
            "manual_edit_conflicts_detected",
            entity_code=previous.entity_code,
            fields=skipped,
        )

    return ConflictResult(
        has_conflicts=bool(conflicts),
        conflict_data=conflicts,
        merged_data=merged,
        should_skip_fields=skipped,
    )


def merge_locked_fields(
    previous: Optional[ProductVersionSnapshot],
    merged: Dict[str, Any],
) -> Dict[str, Any]:
    """Copy the prior value of every locked path into ``merged``.

    Parent objects missing from the merge target are created. A locked
    path the prior version never had is left as imported.

    Returns:
        New dict; ``merged`` itself is not modified
    """
    result = copy.deepcopy(merged)
    if previous is None or not previous.locked_fields:
        return result

    for field in previous.locked_fields:
        locked_value = get_path(previous.data, field, MISSING)
        if locked_value is MISSING:
            continue
        set_path(result, field, copy.deepcopy(locked_value))

    return result
