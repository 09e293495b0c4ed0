"""Parser modules for tabular import files."""
from pim_ingestion.parsers.base_parser import ParserInterface
from pim_ingestion.parsers.parser_registry import (
    register_parser,
    get_parser,
    create_parser_instance,
    list_registered_parsers,
)
from pim_ingestion.parsers.csv_parser import CsvParser
from pim_ingestion.parsers.excel_parser import ExcelParser

# Register parsers
register_parser("csv", CsvParser)
register_parser("excel", ExcelParser)

__all__ = [
    "ParserInterface",
    "register_parser",
    "get_parser",
    "create_parser_instance",
    "list_registered_parsers",
    "CsvParser",
    "ExcelParser",
]
