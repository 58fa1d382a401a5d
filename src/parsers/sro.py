"""SRO Motorsports placeholder format.

Registered so the format appears in introspection; parsing raises until
sample SRO timing exports are available.
"""

from __future__ import annotations

from core.types import FileSlot
from parsers.base import PlaceholderParser


class SroParser(PlaceholderParser):
    """Placeholder for SRO classification and lap chart exports."""

    format_id = "sro"
    name = "SRO Motorsports"
    series = "SRO"
    description = (
        "Import from SRO timing exports. Supports GT World Challenge, GT America, "
        "GT4 America, and TC America. (Coming soon)"
    )
    file_slots = (
        FileSlot(
            key="resultsCsv",
            label="Results / Classification CSV",
            description=(
                "SRO results export with final classification, car numbers, classes, "
                "and finishing positions."
            ),
            required=True,
        ),
        FileSlot(
            key="lapsCsv",
            label="Lap Chart / Timing CSV",
            description=(
                "SRO lap-by-lap timing data with lap times, positions, gaps, and pit activity."
            ),
            required=True,
        ),
    )
