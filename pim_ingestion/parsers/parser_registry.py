"""Parser registry mapping file formats to parser classes."""
from typing import Dict, List, Type, Optional
from pim_ingestion.parsers.base_parser import ParserInterface
from pim_ingestion.errors.exceptions import ParserError


# Global registry mapping file format strings to parser classes
_parser_registry: Dict[str, Type[ParserInterface]] = {}


def register_parser(file_format: str, parser_class: Type[ParserInterface]) -> None:
    """Register a parser class for a file format.

    Args:
        file_format: Format identifier (e.g., "csv", "excel")
        parser_class: Parser class that inherits from ParserInterface

    Raises:
        ValueError: If file_format is already registered
        TypeError: If parser_class does not inherit from ParserInterface
    """
    if not issubclass(parser_class, ParserInterface):
        raise TypeError(
            f"Parser class {parser_class.__name__} must inherit from ParserInterface"
        )

    if file_format in _parser_registry:
        raise ValueError(
            f"File format '{file_format}' is already registered. "
            f"Existing: {_parser_registry[file_format].__name__}"
        )

    _parser_registry[file_format] = parser_class


def get_parser(file_format: str) -> Optional[Type[ParserInterface]]:
    """Get the parser class for a file format, or None."""
    return _parser_registry.get(file_format)


def create_parser_instance(file_format: str, **kwargs) -> ParserInterface:
    """Create a parser for a file format.

    Args:
        file_format: Format identifier
        **kwargs: Arguments to pass to parser constructor

    Returns:
        Parser instance

    Raises:
        ParserError: If no parser handles this format
    """
    parser_class = get_parser(file_format)
    if parser_class is None:
        available = ", ".join(_parser_registry.keys()) if _parser_registry else "none"
        raise ParserError(
            f"Unsupported file format '{file_format}'. "
            f"Available parsers: {available}"
        )

    try:
        return parser_class(**kwargs)
    except Exception as e:
        raise ParserError(
            f"Failed to create parser instance for '{file_format}': {e}"
        ) from e


def list_registered_parsers() -> List[str]:
    """List all registered file formats."""
    return list(_parser_registry.keys())
