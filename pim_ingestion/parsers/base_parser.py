"""Abstract parser interface for tabular import files."""
import math
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, List

import pandas as pd


class ParserInterface(ABC):
    """Abstract base class for all file parsers.

    A parser turns the raw bytes of an uploaded file into one dict per data
    row, keyed by the trimmed column headers. Values must be plain JSON
    values so rows can be stored verbatim in job error lists.

    Implementations must provide:
    - parse(): Extract rows from file content
    - get_parser_name(): Return unique parser identifier
    """

    @abstractmethod
    async def parse(self, content: bytes) -> List[Dict[str, Any]]:
        """Parse file content into row records.

        Args:
            content: Raw file bytes

        Returns:
            List of row dicts, empty rows skipped

        Raises:
            ParserError: If the content cannot be read as this format
        """
        pass

    @abstractmethod
    def get_parser_name(self) -> str:
        """Return unique identifier for this parser type.

        Returns:
            Parser identifier string (e.g., "csv", "excel")
        """
        pass


def to_json_value(value: Any) -> Any:
    """Convert a pandas cell to a plain JSON value (NaN and NaT -> None)."""
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, (pd.Timestamp, datetime, date)):
        return value.isoformat()
    if hasattr(value, "item"):
        # numpy scalar
        return to_json_value(value.item())
    if isinstance(value, str):
        return value.strip()
    return value


def frame_to_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Convert a DataFrame to row dicts with trimmed headers and JSON values.

    Rows whose cells are all empty are dropped.
    """
    df = df.dropna(how="all")
    df.columns = [str(column).strip() for column in df.columns]
    records = []
    for row in df.to_dict(orient="records"):
        record = {column: to_json_value(value) for column, value in row.items()}
        if any(value not in (None, "") for value in record.values()):
            records.append(record)
    return records
