"""Product completeness scoring.

Calculates a 0-100 quality score from weighted field-presence checks.
All functions are pure and accept partial payloads.

Weights:
    - name: 15 (7 for names shorter than 10 chars)
    - description: 10 (5 for descriptions shorter than 50 chars)
    - brand: 10
    - category: 10
    - images: 15 for a primary image, plus 5 (gallery) for 3 or more
    - marketing_features: 5 per item, up to 25
    - packaging_options: 10
"""
from typing import Any, Dict, List

from pim_ingestion.models.product import ScoreBreakdownEntry

NAME_MIN_LENGTH = 10
DESCRIPTION_MIN_LENGTH = 50
GALLERY_MIN_IMAGES = 3
POINTS_PER_FEATURE = 5

FIELD_WEIGHTS: Dict[str, int] = {
    "name": 15,
    "description": 10,
    "brand": 10,
    "category": 10,
    "images": 15,
    "gallery": 5,
    "marketing_features": 25,
    "packaging_options": 10,
}


def _text_length(text: Any) -> int:
    """Length of a plain string, or of the longest translation."""
    if not text:
        return 0
    if isinstance(text, str):
        return len(text)
    if isinstance(text, dict):
        lengths = [len(value) for value in text.values() if isinstance(value, str)]
        return max(lengths, default=0)
    return len(str(text))


def _count_features(features: Any) -> int:
    """Count marketing features (plain list, or per-language lists)."""
    if not features:
        return 0
    if isinstance(features, list):
        return len(features)
    if isinstance(features, dict):
        return max(
            (len(value) for value in features.values() if isinstance(value, list)),
            default=0,
        )
    return 0


def _has_brand(product: Dict[str, Any]) -> bool:
    brand = product.get("brand")
    if not isinstance(brand, dict):
        return False
    return bool(brand.get("brand_id")) and bool(brand.get("label") or brand.get("name"))


def _has_category(product: Dict[str, Any]) -> bool:
    category = product.get("category")
    if not isinstance(category, dict):
        return False
    return bool(category.get("category_id")) and _text_length(category.get("name")) > 0


def _images(product: Dict[str, Any]) -> List[Any]:
    images = product.get("images")
    return images if isinstance(images, list) else []


def _has_primary_image(product: Dict[str, Any]) -> bool:
    images = _images(product)
    return bool(images) and isinstance(images[0], dict) and bool(images[0].get("url"))


def _field_points(product: Dict[str, Any]) -> Dict[str, int]:
    """Points earned per scored field."""
    name_length = _text_length(product.get("name"))
    if name_length >= NAME_MIN_LENGTH:
        name_points = 15
    elif name_length > 0:
        name_points = 7
    else:
        name_points = 0

    description_length = _text_length(product.get("description"))
    if description_length >= DESCRIPTION_MIN_LENGTH:
        description_points = 10
    elif description_length > 0:
        description_points = 5
    else:
        description_points = 0

    feature_count = _count_features(product.get("marketing_features"))
    packaging = product.get("packaging_options")

    return {
        "name": name_points,
        "description": description_points,
        "brand": 10 if _has_brand(product) else 0,
        "category": 10 if _has_category(product) else 0,
        "images": 15 if _has_primary_image(product) else 0,
        "gallery": 5 if len(_images(product)) >= GALLERY_MIN_IMAGES else 0,
        "marketing_features": min(feature_count * POINTS_PER_FEATURE, FIELD_WEIGHTS["marketing_features"]),
        "packaging_options": 10 if isinstance(packaging, list) and packaging else 0,
    }


def calculate_completeness_score(product: Dict[str, Any]) -> int:
    """Calculate product completeness score (0-100)."""
    score = sum(_field_points(product).values())
    return max(0, min(score, 100))


def find_critical_issues(product: Dict[str, Any]) -> List[str]:
    """List the quality problems that need immediate attention."""
    issues: List[str] = []

    if _text_length(product.get("name")) < NAME_MIN_LENGTH:
        issues.append("Missing or too short product name (min 10 chars)")

    if not _has_primary_image(product):
        issues.append("Missing primary product image")

    if not _has_brand(product):
        issues.append("Missing brand information")

    category = product.get("category")
    if not isinstance(category, dict) or not category.get("category_id"):
        issues.append("Missing category")

    if _text_length(product.get("description")) < DESCRIPTION_MIN_LENGTH:
        issues.append("Missing or too short description (min 50 chars)")

    return issues


def get_field_weight(field_name: str) -> int:
    """Maximum points a field can contribute (0 for unscored fields)."""
    return FIELD_WEIGHTS.get(field_name, 0)


def get_score_breakdown(product: Dict[str, Any]) -> Dict[str, ScoreBreakdownEntry]:
    """Per-field ``{current, max, percentage}`` for diagnostics."""
    return {
        field: ScoreBreakdownEntry(
            current=points,
            max=FIELD_WEIGHTS[field],
            percentage=points / FIELD_WEIGHTS[field] * 100,
        )
        for field, points in _field_points(product).items()
    }
