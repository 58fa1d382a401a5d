"""SpeedHive / MyLaps CSV parser.

Reads the SpeedHive summary export and the all-laps export used by WRL
and other series timed with MyLaps.
"""

from __future__ import annotations

from core.constants import FLAG_FCY, FLAG_GREEN, FLAG_RED
from core.types import FileSlot, Flag
from parsers.two_table import LAPS_SLOT_KEY, SUMMARY_SLOT_KEY, TwoTableColumns, TwoTableParser

_CAUTION_MARKERS = ("FCY", "YELLOW", "CAUTION")
_SAFETY_CAR_MARKERS = ("CODE", "SC")


class SpeedhiveParser(TwoTableParser):
    """Parser for SpeedHive summary and all-laps CSV exports."""

    format_id = "speedhive"
    name = "SpeedHive / MyLaps"
    series = "WRL"
    description = (
        "Import from SpeedHive CSV exports. Used by WRL and other series using MyLaps timing."
    )
    file_slots = (
        FileSlot(
            key=SUMMARY_SLOT_KEY,
            label="Summary CSV",
            description=(
                "SpeedHive summary export with Position, Start Number, Name, Class, "
                "Position In Class and Status."
            ),
            required=True,
        ),
        FileSlot(
            key=LAPS_SLOT_KEY,
            label="All Laps CSV",
            description=(
                "SpeedHive all laps export with lap times, positions, speeds, "
                "pit stops and flags for every car."
            ),
            required=True,
        ),
    )
    columns = TwoTableColumns(
        summary_number="start number",
        summary_team="name",
        summary_class="class",
        summary_position="position",
        summary_class_position="position in class",
        laps_number="start number",
        laps_lap="lap number",
        laps_time="lap time",
        laps_position="field position",
        laps_pit="in pit",
        laps_pit_value="true",
        laps_flag="status",
        laps_speed="speed",
    )

    def classify_flag(self, status: str) -> Flag:
        upper = status.upper()
        if any(marker in upper for marker in _CAUTION_MARKERS):
            return FLAG_FCY
        if "RED" in upper:
            return FLAG_RED
        if any(marker in upper for marker in _SAFETY_CAR_MARKERS):
            return FLAG_FCY
        return FLAG_GREEN
