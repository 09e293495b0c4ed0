"""Path access over product payloads.

Product payloads are plain JSON values (dicts, lists and scalars). Every
component that reads or writes a field by name (mapping, locking, conflict
checks, required-field checks) goes through the helpers in this module so
that ``brand.name``, ``gallery.0.original`` and ``images[0].url`` all mean
the same thing everywhere.
"""
import math
import re
from typing import Any, Dict, List, Union

from pim_ingestion.errors.exceptions import FieldPathError

JsonScalar = Union[None, bool, int, float, str]
JsonValue = Union[JsonScalar, List[Any], Dict[str, Any]]
PathSegment = Union[str, int]

_BRACKET_INDEX = re.compile(r"\[(\d+)\]")


class _Missing:
    """Sentinel for an absent path."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


def parse_path(path: str) -> List[PathSegment]:
    """Split a field path into segments.

    Numeric segments become list indices. Bracketed indices are accepted
    as an alternative spelling: ``images[0].url`` == ``images.0.url``.

    Args:
        path: Dotted field path

    Returns:
        List of string keys and integer indices

    Raises:
        FieldPathError: If the path is empty or has empty segments
    """
    if not path or not path.strip():
        raise FieldPathError("Field path cannot be empty")

    normalized = _BRACKET_INDEX.sub(r".\1", path.strip())
    segments: List[PathSegment] = []
    for part in normalized.split("."):
        if part == "":
            raise FieldPathError(f"Empty segment in field path '{path}'")
        segments.append(int(part) if part.isdigit() else part)
    return segments


def get_path(obj: Any, path: str, default: Any = None) -> Any:
    """Read the value at ``path`` or return ``default`` when absent."""
    current = obj
    for segment in parse_path(path):
        if isinstance(segment, int):
            if not isinstance(current, list) or segment >= len(current):
                return default
            current = current[segment]
        else:
            if not isinstance(current, dict) or segment not in current:
                return default
            current = current[segment]
    return current


def has_path(obj: Any, path: str) -> bool:
    """Return True if ``path`` exists in ``obj`` (even if its value is None)."""
    return get_path(obj, path, MISSING) is not MISSING


def set_path(obj: Dict[str, Any], path: str, value: Any) -> None:
    """Write ``value`` at ``path``, creating intermediate containers.

    A missing parent becomes a list when the next segment is numeric and a
    dict otherwise. Lists are padded with empty dicts when the padded slot
    is an intermediate container, and with None when it is the leaf.

    Args:
        obj: Root dict, modified in place
        path: Dotted field path
        value: Value to store

    Raises:
        FieldPathError: If the path walks through a scalar or uses an index
            on a non-list / a key on a list
    """
    segments = parse_path(path)
    if isinstance(segments[0], int):
        raise FieldPathError(f"Field path '{path}' cannot start with an index")

    current: Any = obj
    for position, segment in enumerate(segments[:-1]):
        next_segment = segments[position + 1]
        current = _step_into(current, segment, next_segment, path)

    last = segments[-1]
    if isinstance(last, int):
        if not isinstance(current, list):
            raise FieldPathError(
                f"Expected list at '{path}' but found {type(current).__name__}"
            )
        while len(current) <= last:
            current.append(None)
        current[last] = value
    else:
        if not isinstance(current, dict):
            raise FieldPathError(
                f"Expected object at '{path}' but found {type(current).__name__}"
            )
        current[last] = value


def _step_into(current: Any, segment: PathSegment, next_segment: PathSegment, path: str) -> Any:
    """Descend one level for ``set_path``, creating the child if needed."""
    empty_child = [] if isinstance(next_segment, int) else {}

    if isinstance(segment, int):
        if not isinstance(current, list):
            raise FieldPathError(
                f"Expected list at segment {segment} of '{path}' but found {type(current).__name__}"
            )
        while len(current) <= segment:
            current.append({})
        if current[segment] is None:
            current[segment] = empty_child
        return current[segment]

    if not isinstance(current, dict):
        raise FieldPathError(
            f"Expected object at segment '{segment}' of '{path}' but found {type(current).__name__}"
        )
    if current.get(segment) is None:
        current[segment] = empty_child
    return current[segment]


def collect_path_values(obj: Any, path: str) -> List[Any]:
    """Collect every value reachable through ``path``.

    Unlike ``get_path``, a string key applied to a list projects across the
    list items, so ``images.url`` yields the url of every image.
    """
    values = [obj]
    for segment in parse_path(path):
        next_values = []
        for value in values:
            if isinstance(segment, int):
                if isinstance(value, list) and segment < len(value):
                    next_values.append(value[segment])
            elif isinstance(value, dict):
                if segment in value:
                    next_values.append(value[segment])
            elif isinstance(value, list):
                next_values.extend(
                    item[segment] for item in value
                    if isinstance(item, dict) and segment in item
                )
        values = next_values
    return values


def is_empty_value(value: Any) -> bool:
    """Return True for None, NaN, blank strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def values_equal(left: Any, right: Any) -> bool:
    """Deep structural equality.

    Lists compare element by element in order, dicts compare key sets and
    then values recursively. ``True`` is never equal to ``1``.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, list) and isinstance(right, list):
        if len(left) != len(right):
            return False
        return all(values_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, dict) and isinstance(right, dict):
        if left.keys() != right.keys():
            return False
        return all(values_equal(left[key], right[key]) for key in left)
    if isinstance(left, (list, dict)) or isinstance(right, (list, dict)):
        return False
    return left == right
