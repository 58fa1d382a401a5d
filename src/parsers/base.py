"""Format parser contract.

Every timing export format implements ``FormatParser`` and declares its
named file slots so callers can introspect inputs without parsing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar, Mapping

from core.errors import FormatNotImplementedError, ParseError
from core.types import FileSlot, FormatInfo, ParsedResult


class FormatParser(ABC):
    """Base class for one timing export format."""

    format_id: ClassVar[str]
    name: ClassVar[str]
    series: ClassVar[str]
    description: ClassVar[str]
    file_slots: ClassVar[tuple[FileSlot, ...]]
    implemented: ClassVar[bool] = True

    @abstractmethod
    def parse(self, files: Mapping[str, str]) -> ParsedResult:
        """Parse named file contents into canonical race data.

        Args:
            files: File contents keyed by file slot key.

        Returns:
            Canonical data, generated annotations, and semantic warnings.

        Raises:
            ParseError: If a required input is missing or holds no cars.
            FormatNotImplementedError: If the format is a placeholder.
        """

    def info(self) -> FormatInfo:
        """Return registry introspection metadata."""
        return FormatInfo(
            format_id=self.format_id,
            name=self.name,
            series=self.series,
            description=self.description,
            implemented=self.implemented,
            file_slots=self.file_slots,
        )

    def require_slot(self, files: Mapping[str, str], key: str) -> str:
        """Return non-blank content for a required slot.

        Raises:
            ParseError: If the slot is absent or blank.
        """
        content = files.get(key, "")
        if content.strip():
            return content
        label = next((slot.label for slot in self.file_slots if slot.key == key), key)
        raise ParseError(
            f"{self.name} parse failed: missing {label} (slot '{key}'). "
            "Provide the export file for this slot."
        )


class PlaceholderParser(FormatParser):
    """Registered format whose parser has not been built yet."""

    implemented: ClassVar[bool] = False

    def parse(self, files: Mapping[str, str]) -> ParsedResult:
        raise FormatNotImplementedError(
            f"{self.name} parser is not implemented yet. "
            "Convert the export to a supported format or choose another format id."
        )
