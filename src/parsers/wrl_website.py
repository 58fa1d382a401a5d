"""WRL website CSV parser.

Reads the summary and all-laps exports from the WRL live timing page.
"""

from __future__ import annotations

from core.constants import FLAG_FCY, FLAG_GREEN, FLAG_RED
from core.types import FileSlot, Flag
from parsers.two_table import LAPS_SLOT_KEY, SUMMARY_SLOT_KEY, TwoTableColumns, TwoTableParser

_CHECKERED_MARKERS = ("checkered", "chequered")


class WrlWebsiteParser(TwoTableParser):
    """Parser for WRL website summary and all-laps CSV exports."""

    format_id = "wrl-website"
    name = "WRL Website"
    series = "WRL"
    description = (
        "Import from WRL website CSV exports. Summary and All Laps files from the "
        "WRL live timing page."
    )
    file_slots = (
        FileSlot(
            key=SUMMARY_SLOT_KEY,
            label="Summary CSV",
            description=(
                "WRL website summary export with Overall_Position, Car_Number, Team_Name, "
                "Class and Laps_Completed."
            ),
            required=True,
        ),
        FileSlot(
            key=LAPS_SLOT_KEY,
            label="All Laps CSV",
            description=(
                "WRL website all laps export with lap times, positions, pit stops "
                "and flags for every car."
            ),
            required=True,
        ),
    )
    columns = TwoTableColumns(
        summary_number="car_number",
        summary_team="team_name",
        summary_class="class",
        summary_position="overall_position",
        summary_class_position="class_position",
        laps_number="car_number",
        laps_lap="lap_number",
        laps_time="lap_time",
        laps_position="overall_position",
        laps_pit="in_pit",
        laps_pit_value="yes",
        laps_flag="flag_status",
    )

    def classify_flag(self, status: str) -> Flag:
        lower = status.lower()
        if "yellow" in lower or "caution" in lower:
            return FLAG_FCY
        # "checkered" contains "red"
        if any(marker in lower for marker in _CHECKERED_MARKERS):
            return FLAG_GREEN
        if "red" in lower:
            return FLAG_RED
        return FLAG_GREEN
