"""Excel workbook parser implementation."""
import io
from typing import Any, Dict, List, Optional, Union

import pandas as pd
import structlog

from pim_ingestion.errors.exceptions import ParserError
from pim_ingestion.parsers.base_parser import ParserInterface, frame_to_records

logger = structlog.get_logger(__name__)


class ExcelParser(ParserInterface):
    """Parser for .xlsx workbooks (pandas + openpyxl).

    Reads the first sheet unless ``sheet_name`` is given. The first row
    holds the headers.
    """

    def __init__(self, sheet_name: Optional[Union[str, int]] = None):
        self._sheet_name = sheet_name if sheet_name is not None else 0

    def get_parser_name(self) -> str:
        """Return parser identifier."""
        return "excel"

    async def parse(self, content: bytes) -> List[Dict[str, Any]]:
        log = logger.bind(sheet_name=self._sheet_name, size_bytes=len(content))

        try:
            df = pd.read_excel(
                io.BytesIO(content),
                sheet_name=self._sheet_name,
                engine="openpyxl",
                dtype=object,
            )
        except Exception as e:
            raise ParserError(f"Excel parse error: {e}") from e

        records = frame_to_records(df)
        log.info("excel_parse_completed", columns=len(df.columns), rows=len(records))
        return records
