"""Named value transforms for field mappings.

Mapping entries reference transforms by name. The set is closed: only
functions registered on a ``TransformRegistry`` can run, and nothing from
source configuration is ever evaluated as code.
"""
import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List

from pim_ingestion.errors.exceptions import TransformError

TransformFn = Callable[[Any], Any]

_CURRENCY_CHARS = re.compile(r"[\s$€£₽]")


def parse_number(value: Any) -> float:
    """Parse a decimal number, tolerating currency symbols and thousands separators.

    ``"1.234,50"`` and ``"1,234.50"`` both become ``1234.5``; a lone comma
    is treated as the decimal separator.
    """
    if isinstance(value, bool):
        raise TransformError(f"Cannot parse boolean {value!r} as number")
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise TransformError(f"Invalid number format '{value}'")
        return float(value)

    cleaned = _CURRENCY_CHARS.sub("", str(value))
    if "," in cleaned and "." in cleaned:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        cleaned = cleaned.replace(",", ".")

    try:
        number = Decimal(cleaned)
    except (InvalidOperation, ValueError) as e:
        raise TransformError(f"Invalid number format '{value}'") from e
    if not number.is_finite():
        raise TransformError(f"Invalid number format '{value}'")
    return float(number)


def parse_int(value: Any) -> int:
    """Parse an integer; decimal input is truncated toward zero."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return int(parse_number(value))


def trim(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def uppercase(value: Any) -> Any:
    return value.upper() if isinstance(value, str) else value


def lowercase(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


BUILTIN_TRANSFORMS: Dict[str, TransformFn] = {
    "parse_number": parse_number,
    "parse_int": parse_int,
    "trim": trim,
    "uppercase": uppercase,
    "lowercase": lowercase,
}


class TransformRegistry:
    """Name -> function table used by the row mapper.

    A registry starts with the built-in transforms; deployments add their
    own with ``register`` when the worker starts.
    """

    def __init__(self, include_builtins: bool = True):
        self._transforms: Dict[str, TransformFn] = (
            dict(BUILTIN_TRANSFORMS) if include_builtins else {}
        )

    def register(self, name: str, fn: TransformFn) -> None:
        """Register a custom transform.

        Raises:
            ValueError: If ``name`` is already registered
            TypeError: If ``fn`` is not callable
        """
        if not callable(fn):
            raise TypeError(f"Transform '{name}' must be callable")
        if name in self._transforms:
            raise ValueError(f"Transform '{name}' is already registered")
        self._transforms[name] = fn

    def names(self) -> List[str]:
        return sorted(self._transforms)

    def __contains__(self, name: str) -> bool:
        return name in self._transforms

    def apply(self, name: str, value: Any) -> Any:
        """Run transform ``name`` on ``value``.

        Raises:
            TransformError: If the transform is unknown or fails
        """
        fn = self._transforms.get(name)
        if fn is None:
            raise TransformError(
                f"Unknown transform '{name}'. Available: {', '.join(self.names())}"
            )
        try:
            return fn(value)
        except TransformError:
            raise
        except Exception as e:
            raise TransformError(f"Transform '{name}' failed for value {value!r}: {e}") from e
