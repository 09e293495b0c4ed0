"""Auto-publish eligibility rules.

The rule chain short-circuits on the first failing rule:

1. the source has auto-publish enabled
2. the product is not manually edited with locked fields
3. the completeness score reaches the source threshold (inclusive)
4. every required field path is present and non-empty
"""
from typing import Any, Dict, List, Optional, Sequence

from pim_ingestion.models.import_source import ImportSourceConfig
from pim_ingestion.models.product import AutoPublishDecision
from pim_ingestion.services.field_paths import collect_path_values, is_empty_value
from pim_ingestion.services.quality_scorer import calculate_completeness_score


def check_auto_publish_eligibility(
    data: Dict[str, Any],
    source: ImportSourceConfig,
    manually_edited: bool = False,
    locked_fields: Sequence[str] = (),
    score: Optional[int] = None,
) -> AutoPublishDecision:
    """Decide whether a freshly imported version can skip manual review.

    Args:
        data: Merged product payload that will be stored
        source: Import source with the auto-publish policy
        manually_edited: Whether the prior version carries manual edits
        locked_fields: Locked paths of the prior version
        score: Precomputed completeness score (recomputed when None)

    Returns:
        AutoPublishDecision with the reason of the first failing rule,
        or a summary of the passing score when every rule holds
    """
    if not source.auto_publish_enabled:
        return AutoPublishDecision(
            eligible=False,
            reason="Auto-publish disabled for this source",
        )

    if manually_edited and locked_fields:
        return AutoPublishDecision(
            eligible=False,
            reason=f"Product has manual edits with locked fields: {', '.join(locked_fields)}",
        )

    if score is None:
        score = calculate_completeness_score(data)

    threshold = source.min_score_threshold
    if score < threshold:
        return AutoPublishDecision(
            eligible=False,
            reason=f"Quality score {score} below threshold {threshold}",
        )

    missing = find_missing_required_fields(data, source.required_fields)
    if missing:
        return AutoPublishDecision(
            eligible=False,
            reason=f"Missing required fields: {', '.join(missing)}",
        )

    return AutoPublishDecision(
        eligible=True,
        reason=f"All requirements met (score {score} >= {threshold})",
    )


def find_missing_required_fields(data: Dict[str, Any], required_fields: Sequence[str]) -> List[str]:
    """Return required paths with no non-empty value.

    A key applied to a list is checked on every item, so ``images.url``
    is satisfied when any image has a url.
    """
    return [
        field for field in required_fields
        if not any(not is_empty_value(value) for value in collect_path_values(data, field))
    ]


def calculate_priority_score(views_30d: int, completeness_score: int) -> float:
    """Rank products for quality improvement work.

    High traffic with a low score ranks first; complete products and
    products nobody looks at rank near zero.
    """
    quality_gap = (100 - completeness_score) / 100
    return round((views_30d / 100) * quality_gap, 1)
