"""Format parser registry.

Formats are looked up by id; introspection reads class attributes only
and never runs a parser.
"""

from __future__ import annotations

from core.errors import UnknownFormatError
from core.types import FormatInfo
from parsers.base import FormatParser
from parsers.imsa import ImsaParser
from parsers.speedhive import SpeedhiveParser
from parsers.sro import SroParser
from parsers.wrl_website import WrlWebsiteParser

PARSERS: tuple[type[FormatParser], ...] = (
    SpeedhiveParser,
    WrlWebsiteParser,
    ImsaParser,
    SroParser,
)


def get_parser(format_id: str) -> FormatParser:
    """Return a parser instance for a format id.

    Raises:
        UnknownFormatError: If no parser is registered for the id.
    """
    for parser_class in PARSERS:
        if parser_class.format_id == format_id:
            return parser_class()
    known = ", ".join(parser_class.format_id for parser_class in PARSERS)
    raise UnknownFormatError(
        f"Unknown race data format '{format_id}'. Use one of: {known}."
    )


def list_formats() -> list[FormatInfo]:
    """Return introspection metadata for every registered format."""
    return [parser_class().info() for parser_class in PARSERS]
