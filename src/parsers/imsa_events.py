"""IMSA race-control and flag-report helpers.

This module interprets race-control messages, shortens penalty and
incident text for chart labels, extracts caution periods from flag
analysis report text, and maps wall-clock times onto lap numbers.
"""

from __future__ import annotations

import bisect
import re
from dataclasses import dataclass
from typing import Any, Iterable, Literal, Mapping, Sequence

from core.types import FcyWindow
from parsers.scalars import parse_time_of_day

CarEventType = Literal["penalty", "pit_enter", "incident", "off_course", "stopped"]

FLAG_EVENT_TYPES = ("GF", "FCY", "FF")
RACE_CONTROL_TYPE = "RCMessage"
MAX_REPORT_LAP = 500

_SINGLE_PENALTY = re.compile(r"^Car\s+(\d+):\s*Penalty\s*-\s*(.+)", re.IGNORECASE)
_MULTI_PENALTY = re.compile(r"^Cars?\s+([\d,\s&]+):\s*Penalty\s*-\s*(.+)", re.IGNORECASE)
_PIT_ENTRY = re.compile(r"^CAR\s+(\d+)\s+ENTERED\s+(PIT|CLOSED)", re.IGNORECASE)
_OFF_COURSE = re.compile(r"^CAR\s+(\d+)\*?\s+(OFF COURSE|STOPPED ON COURSE)", re.IGNORECASE)
_SPUN = re.compile(r"^CAR\s+(\d+)\*?\s+SPUN", re.IGNORECASE)
_INCIDENT = re.compile(r"^INCIDENT INVOLVING (?:CARS?|MULTIPLE)\s+([\d,\s&]+)", re.IGNORECASE)
_CAR_NUMBER = re.compile(r"\d+")
_TURN = re.compile(r"turn\s+(\S+)", re.IGNORECASE)
_PUNISHMENT_SUFFIX = re.compile(
    r"\s*-\s*(Drive Through|Stop\s*\+?\s*\d*(?::\d+)?(?:\s*min)?\s*$)", re.IGNORECASE
)
_STOP_PUNISHMENT = re.compile(r"Stop\s*\+?\s*(\d+(?::\d+)?(?:\s*min)?)", re.IGNORECASE)
_REPORT_LAP = re.compile(r"\b(\d{1,3})\s*$")
_LAP_TO_LAP = re.compile(
    r"(?:yellow|caution|fcy)\s+.*?lap\s*(\d+)\s*(?:to|[-–—])\s*lap\s*(\d+)", re.IGNORECASE
)
_COMPACT_RANGE = re.compile(
    r"(?:yellow|caution|fcy)\s+L?(\d+)\s*[-–—]\s*L?(\d+)", re.IGNORECASE
)

_PENALTY_SHORT_NAMES: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), label)
    for pattern, label in (
        (r"too many crew", "Crew Violation"),
        (r"leaving with equipment", "Equipment Attached"),
        (r"wheel rotation", "Wheel Rotation"),
        (r"improper attire", "Attire Violation"),
        (r"fire extinguisher", "Fire Ext. Violation"),
        (r"pass under yellow", "Pass Under Yellow"),
        (r"jump re-?start", "Jump Restart"),
        (r"not serving", "Penalty Not Served"),
        (r"not respecting", "Black Flag Violation"),
        (r"chassis change", "Chassis Change"),
        (r"wrong way", "Wrong Way Pit Lane"),
        (r"passaround", "Passaround Violation"),
        (r"person.*over wall", "Over Wall Early"),
        (r"hose|tool|part|person.*pit", "Hose/Equipment"),
        (r"tire without", "Tire w/o Crew"),
        (r"short ?cut", "Shortcut"),
        (r"warming tires", "Tire Warming"),
        (r"emergency service", "ESO Violation"),
    )
)


@dataclass(frozen=True)
class CarEvent:
    """Race-control event attributed to one car."""

    lap: int
    event_type: CarEventType
    message: str


class LapClock:
    """Maps wall-clock times of day onto lap numbers.

    Anchors come from flag events that carry both a time of day and a
    lap; times between anchors are interpolated linearly and times
    outside the anchored range clamp to the nearest anchor.
    """

    def __init__(self, anchors: Iterable[tuple[float, int]]) -> None:
        ordered = sorted(anchors, key=lambda anchor: anchor[0])
        self._times = [anchor[0] for anchor in ordered]
        self._laps = [anchor[1] for anchor in ordered]

    @classmethod
    def from_flag_events(cls, events: Sequence[Mapping[str, Any]]) -> "LapClock":
        """Build a clock from GF/FCY/FF flag events."""
        anchors = [
            (parse_time_of_day(str(event["time"])), event_lap(event))
            for event in events
            if event_lap(event) > 0 and event.get("time")
        ]
        return cls(anchors)

    def lap_at(self, time_of_day: str) -> int:
        """Return the estimated lap for a time of day, 0 when unknown."""
        if not time_of_day or not self._times:
            return 0
        seconds = parse_time_of_day(time_of_day)
        if seconds <= self._times[0]:
            return self._laps[0]
        if seconds >= self._times[-1]:
            return self._laps[-1]
        upper = bisect.bisect_left(self._times, seconds)
        lower = upper - 1
        span = self._times[upper] - self._times[lower]
        fraction = (seconds - self._times[lower]) / span if span else 0.0
        return round(self._laps[lower] + fraction * (self._laps[upper] - self._laps[lower]))


def event_lap(event: Mapping[str, Any]) -> int:
    """Return a flag event's lap as an int, 0 when missing."""
    lap = event.get("lap")
    return lap if isinstance(lap, int) and not isinstance(lap, bool) else 0


def build_flag_windows(events: Sequence[Mapping[str, Any]]) -> list[FcyWindow]:
    """Pair FCY events with the following GF/FF event into caution windows.

    Each window ends on the lap before the restart, never before it began.
    """
    windows: list[FcyWindow] = []
    start_lap: int | None = None
    for event in events:
        record_type = event.get("rec_type")
        lap = event_lap(event)
        if record_type == "FCY" and lap > 0:
            if start_lap is None:
                start_lap = lap
        elif record_type in ("GF", "FF") and start_lap is not None:
            windows.append((start_lap, max(start_lap, lap - 1)))
            start_lap = None
    return windows


def parse_race_control_messages(
    flags: Sequence[Mapping[str, Any]],
    clock: LapClock,
) -> dict[str, list[CarEvent]]:
    """Attribute race-control messages to cars.

    Args:
        flags: Raw flag-report records.
        clock: Time-to-lap mapping used to place each message on a lap.

    Returns:
        Events keyed by car number text, in message order.
    """
    events: dict[str, list[CarEvent]] = {}
    for record in flags:
        message = str(record.get("message") or "").strip()
        if record.get("rec_type") != RACE_CONTROL_TYPE or not message:
            continue
        lap = clock.lap_at(str(record.get("time") or ""))
        for car_number, event in _classify_message(message, lap):
            events.setdefault(car_number, []).append(event)
    return events


def _classify_message(message: str, lap: int) -> list[tuple[str, CarEvent]]:
    match = _SINGLE_PENALTY.match(message)
    if match:
        return [(match.group(1), CarEvent(lap, "penalty", match.group(2)))]
    match = _MULTI_PENALTY.match(message)
    if match:
        return [
            (number, CarEvent(lap, "penalty", match.group(2)))
            for number in _CAR_NUMBER.findall(match.group(1))
        ]
    match = _PIT_ENTRY.match(message)
    if match:
        return [(match.group(1), CarEvent(lap, "pit_enter", message))]
    match = _OFF_COURSE.match(message)
    if match:
        event_type: CarEventType = (
            "off_course" if match.group(2).upper().startswith("OFF") else "stopped"
        )
        return [(match.group(1), CarEvent(lap, event_type, message))]
    match = _SPUN.match(message)
    if match:
        return [(match.group(1), CarEvent(lap, "incident", message))]
    match = _INCIDENT.match(message)
    if match:
        return [
            (number, CarEvent(lap, "incident", message))
            for number in _CAR_NUMBER.findall(match.group(1))
        ]
    return []


def extract_punishment(detail: str) -> str:
    """Return ``DT``, ``Stop+N`` or ``""`` for a penalty description."""
    if re.search(r"drive through", detail, re.IGNORECASE):
        return "DT"
    match = _STOP_PUNISHMENT.search(detail)
    if match:
        return f"Stop+{match.group(1)}"
    return ""


def shorten_penalty(detail: str) -> str:
    """Shorten a penalty description into a chart label."""
    punishment = extract_punishment(detail)
    description = _PUNISHMENT_SUFFIX.sub("", detail, count=1).strip()
    if re.search(r"pit lane speed", description, re.IGNORECASE):
        over = re.search(r"\(\+(\d+)\)", description)
        description = f"Pit Speed +{over.group(1)}" if over else "Pit Speed"
    elif re.search(r"incident responsibility", description, re.IGNORECASE):
        other = re.search(r"with\s+(.+)", description, re.IGNORECASE)
        description = f"Incident w/{other.group(1)}" if other else "Incident Resp."
    else:
        description = _short_penalty_name(description)
    return f"{description} - {punishment}" if punishment else description


def _short_penalty_name(description: str) -> str:
    for pattern, label in _PENALTY_SHORT_NAMES:
        if pattern.search(description):
            return label
    if len(description) > 30:
        return description[:28] + "…"
    return description


def shorten_incident(message: str) -> str:
    """Shorten an incident message into a reason fragment."""
    turn = _TURN.search(message)
    if re.search(r"off course", message, re.IGNORECASE):
        return f"Off T{turn.group(1)}" if turn else "Off Course"
    if re.search(r"stopped on course", message, re.IGNORECASE):
        return f"Stopped T{turn.group(1)}" if turn else "Stopped"
    if re.search(r"spun", message, re.IGNORECASE):
        return f"Spun T{turn.group(1)}" if turn else "Spun"
    if re.search(r"incident involving", message, re.IGNORECASE):
        if re.search(r"no action", message, re.IGNORECASE):
            return "Incident - No Action"
        if re.search(r"under review", message, re.IGNORECASE):
            return "Under Review"
        return "Incident"
    if re.search(r"continued", message, re.IGNORECASE):
        return "Continued"
    return message if len(message) <= 25 else message[:23] + "…"


def parse_flag_report_periods(report_text: str) -> list[FcyWindow]:
    """Extract caution periods from flag analysis report text.

    Yellow lines are paired with the next green line using the lap in
    the last column. When no pairs are found, explicit ``Lap X to Lap Y``
    and compact ``FCY 16-21`` ranges are read instead.

    Args:
        report_text: Text extracted from the flag analysis report.

    Returns:
        Unique ``(start_lap, end_lap)`` periods sorted by start lap.
    """
    lines = [line.strip() for line in report_text.split("\n") if line.strip()]
    periods = _pair_yellow_green_lines(lines) or _read_explicit_ranges(lines)
    unique = list(dict.fromkeys(periods))
    return sorted(unique, key=lambda period: period[0])


def _pair_yellow_green_lines(lines: Sequence[str]) -> list[FcyWindow]:
    periods: list[FcyWindow] = []
    pending_yellow: int | None = None
    for line in lines:
        lap_match = _REPORT_LAP.search(line)
        if not lap_match:
            continue
        lap = int(lap_match.group(1))
        if lap < 1 or lap > MAX_REPORT_LAP:
            continue
        if re.search(r"PASS\s+UNDER\s+YELLOW", line, re.IGNORECASE):
            continue
        upper = line.upper()
        if _is_yellow_line(upper):
            if pending_yellow is not None:
                periods.append((pending_yellow, pending_yellow))
            pending_yellow = lap
        elif "GREEN" in upper and pending_yellow is not None:
            periods.append((pending_yellow, lap))
            pending_yellow = None
    if pending_yellow is not None:
        periods.append((pending_yellow, pending_yellow))
    return periods


def _is_yellow_line(upper: str) -> bool:
    if "FULL COURSE YELLOW" in upper or "FULL COURSE CAUTION" in upper:
        return True
    if re.search(r"\bFCY\b", upper):
        return True
    return bool(
        re.search(r"\bYELLOW\b", upper)
        and "GREEN" not in upper
        and not re.search(r"PASS|PENALTY", upper)
    )


def _read_explicit_ranges(lines: Sequence[str]) -> list[FcyWindow]:
    periods: list[FcyWindow] = []
    for line in lines:
        if not re.search(r"yellow|caution|fcy", line, re.IGNORECASE):
            continue
        if re.search(r"pass\s+under\s+yellow", line, re.IGNORECASE):
            continue
        match = _LAP_TO_LAP.search(line) or _COMPACT_RANGE.search(line)
        if match:
            periods.append((int(match.group(1)), int(match.group(2))))
    return periods
