"""CSV file parser implementation."""
import io
from typing import Any, Dict, List, Optional

import pandas as pd
import structlog

from pim_ingestion.errors.exceptions import ParserError
from pim_ingestion.parsers.base_parser import ParserInterface, frame_to_records

logger = structlog.get_logger(__name__)

CANDIDATE_DELIMITERS = (",", ";", "\t")


def sniff_delimiter(content: bytes) -> str:
    """Pick the delimiter occurring most often in the header line."""
    header = content[:1000].decode("utf-8", errors="ignore").splitlines()
    first_line = header[0] if header else ""
    counts = {delimiter: first_line.count(delimiter) for delimiter in CANDIDATE_DELIMITERS}
    best = max(counts, key=counts.get)
    return best if counts[best] > 0 else ","


class CsvParser(ParserInterface):
    """Parser for delimited text files.

    Reads every cell as a string; empty cells become empty strings and are
    skipped by the row mapper. The delimiter is sniffed from the header
    line unless given explicitly. Non-UTF-8 files fall back to latin-1.
    """

    def __init__(self, delimiter: Optional[str] = None):
        self._delimiter = delimiter

    def get_parser_name(self) -> str:
        """Return parser identifier."""
        return "csv"

    async def parse(self, content: bytes) -> List[Dict[str, Any]]:
        delimiter = self._delimiter or sniff_delimiter(content)
        log = logger.bind(delimiter=delimiter, size_bytes=len(content))

        try:
            try:
                df = self._read(content, delimiter, "utf-8-sig")
            except UnicodeDecodeError as e:
                log.warning("utf8_decode_failed_trying_latin1", error=str(e))
                df = self._read(content, delimiter, "latin-1")
        except pd.errors.EmptyDataError:
            raise ParserError("CSV file is empty or contains no data")
        except pd.errors.ParserError as e:
            raise ParserError(f"CSV parsing error: {e}") from e

        records = frame_to_records(df)
        log.info("csv_parse_completed", columns=len(df.columns), rows=len(records))
        return records

    @staticmethod
    def _read(content: bytes, delimiter: str, encoding: str) -> pd.DataFrame:
        return pd.read_csv(
            io.BytesIO(content),
            sep=delimiter,
            encoding=encoding,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            on_bad_lines="warn",
        )
