"""IMSA timing and scoring parser.

Reads IMSA lap chart / time cards JSON or the time cards CSV, plus the
optional flags report and pit stop JSON. Positions per lap come from
session elapsed time; caution windows come from flag events, the flags
report text, per-lap CSV flags, or lap-time analysis, in that order.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from analysis.annotations import generate_annotations, make_settle
from analysis.class_positions import recompute_finish_class_positions
from analysis.fcy_windows import fcy_lap_set, merge_laps_into_windows
from analysis.race_assembly import assemble_race
from core.constants import (
    FLAG_FCY,
    FLAG_GREEN,
    MISSING_FINISH_POSITION,
    PENALTY_LABEL_Y_STEP,
    PENALTY_MARKER_COLOR,
    PIT_MARKER_COLOR,
    UNKNOWN_CLASS,
)
from core.errors import ParseError
from core.logging_config import get_logger
from core.types import (
    CarAnnotations,
    CarRecord,
    FcyWindow,
    FileSlot,
    Flag,
    LapRecord,
    ParsedResult,
    PitMarker,
    SettleMarker,
)
from parsers.base import FormatParser
from parsers.imsa_events import (
    FLAG_EVENT_TYPES,
    CarEvent,
    LapClock,
    build_flag_windows,
    extract_punishment,
    parse_flag_report_periods,
    parse_race_control_messages,
    shorten_incident,
    shorten_penalty,
)
from parsers.scalars import (
    kph_to_mph,
    lap_seconds_or_epsilon,
    parse_int,
    parse_lap_time,
)
from parsers.tokenizer import split_header, tokenize

_LOGGER = get_logger(__name__)

LAP_CHART_SLOT_KEY = "lapChartJson"
FLAGS_SLOT_KEY = "flagsJson"
PIT_STOP_SLOT_KEY = "pitStopJson"
TIME_CARDS_SLOT_KEY = "timeCardsCsv"

REQUIRED_CSV_COLUMNS = ("number", "lap_number", "lap_time", "elapsed")
CSV_CAUTION_FLAGS = ("FCY", "YELLOW")
SLOW_LAP_MIN_RACE_LAPS = 5
SLOW_LAP_MIN_CARS = 3
SLOW_LAP_BASELINE_PERCENTILE = 0.25
SLOW_LAP_FACTOR = 1.3
SLOW_LAP_DEFAULT_BASELINE = 120.0
PIT_DATA_SETTLE_WINDOW_LAPS = 8
PIT_DATA_SETTLE_FALLBACK_LAPS = 12
DRIVER_CHANGE_PREFIX = "Driver →"
_INCIDENT_EVENT_TYPES = ("incident", "off_course", "stopped")
_CSV_PIT_PATTERN = re.compile(r"true|yes|pit", re.IGNORECASE)


@dataclass(frozen=True)
class _RawLap:
    lap: int
    elapsed_seconds: float
    lap_seconds: float
    lap_time: str
    pit: bool
    speed_mph: float
    driver_number: str
    csv_flag: str | None = None


@dataclass
class _CsvParticipant:
    car_number: str
    car_class: str = UNKNOWN_CLASS
    team: str = ""
    manufacturer: str = ""
    driver_names: list[str] = field(default_factory=list)

    def absorb(self, car_class: str, team: str, manufacturer: str, driver_name: str) -> None:
        """Fill metadata gaps from a later time card row."""
        if car_class and self.car_class == UNKNOWN_CLASS:
            self.car_class = car_class
        if team and not self.team:
            self.team = team
        if manufacturer and not self.manufacturer:
            self.manufacturer = manufacturer
        if driver_name and driver_name not in self.driver_names:
            self.driver_names.append(driver_name)


@dataclass(frozen=True)
class _RaceContext:
    positions: Mapping[int, Mapping[str, int]]
    fcy_laps: frozenset[int]
    max_lap: int
    clock: LapClock
    car_events: Mapping[str, Sequence[CarEvent]]


class _CarAnnotationBuilder:
    """Collects parser-supplied annotations for one car."""

    def __init__(self) -> None:
        self.reasons: dict[str, str] = {}
        self.pits: list[PitMarker] = []
        self.settles: list[SettleMarker] = []
        self._penalty_offset = 0

    def add_reason(self, lap_number: int, note: str) -> None:
        lap_key = str(lap_number)
        existing = self.reasons.get(lap_key)
        self.reasons[lap_key] = f"{existing}; {note}" if existing else note

    def add_penalty_marker(self, lap_number: int, label: str) -> None:
        self.pits.append(
            PitMarker(
                lap=lap_number,
                label=label,
                color=PENALTY_MARKER_COLOR,
                y_offset=self._penalty_offset,
            )
        )
        self._penalty_offset += PENALTY_LABEL_Y_STEP

    def build(self) -> CarAnnotations:
        return CarAnnotations(
            reasons=dict(self.reasons), pits=tuple(self.pits), settles=tuple(self.settles)
        )


class ImsaParser(FormatParser):
    """Parser for IMSA timing and scoring exports."""

    format_id = "imsa"
    name = "IMSA Timing & Scoring"
    series = "IMSA"
    description = (
        "Import from IMSA timing exports. Requires the Lap Chart JSON or the Time Cards CSV; "
        "optionally accepts the Flags Analysis as JSON (with race-control messages) or as "
        "extracted report text. Without flags, caution periods are detected from lap times."
    )
    file_slots = (
        FileSlot(
            key=LAP_CHART_SLOT_KEY,
            label="Lap Chart JSON",
            description=(
                "IMSA Lap Chart or Time Cards JSON export with participants, drivers "
                "and per-lap timing."
            ),
            required=True,
            accept=".json",
        ),
        FileSlot(
            key=FLAGS_SLOT_KEY,
            label="Flags / Flag Analysis (optional)",
            description=(
                "IMSA Flags Analysis as JSON with race-control messages, or the text "
                "extracted from the flag analysis report."
            ),
            required=False,
            accept=".json,.txt",
        ),
        FileSlot(
            key=PIT_STOP_SLOT_KEY,
            label="Pit Stops (optional)",
            description=(
                "IMSA Pit Stop export with pit in/out times, driver changes and "
                "manufacturer data."
            ),
            required=False,
            accept=".json",
        ),
        FileSlot(
            key=TIME_CARDS_SLOT_KEY,
            label="Time Cards CSV (optional)",
            description=(
                "IMSA Time Cards CSV export with per-lap timing, FLAG_AT_FL flag status "
                "and driver names."
            ),
            required=False,
        ),
    )

    def parse(self, files: Mapping[str, str]) -> ParsedResult:
        lap_chart_text = files.get(LAP_CHART_SLOT_KEY, "")
        csv_text = files.get(TIME_CARDS_SLOT_KEY, "")
        if not lap_chart_text.strip() and not csv_text.strip():
            raise ParseError(
                f"{self.name} parse failed: missing Lap Chart JSON and Time Cards CSV. "
                "Provide at least one of them."
            )
        warnings: list[str] = []
        time_cards = _load_json(
            lap_chart_text, "Lap Chart JSON", "Will use CSV data if available.", warnings
        )
        participants = _participants(time_cards)
        if not participants and not csv_text.strip():
            raise ParseError(
                f"{self.name} parse failed: Lap Chart JSON has no participants and no "
                "Time Cards CSV was provided. Provide a complete export."
            )
        flag_records, report_periods = _load_flags(files.get(FLAGS_SLOT_KEY, ""), warnings)
        flag_events = [
            record for record in flag_records if record.get("rec_type") in FLAG_EVENT_TYPES
        ]
        clock = LapClock.from_flag_events(flag_events)
        pit_stops = _load_pit_stops(files.get(PIT_STOP_SLOT_KEY, ""), warnings)
        car_events = parse_race_control_messages(flag_records, clock)

        raw_laps, csv_participants = _read_csv_source(csv_text, warnings)
        has_csv_laps = bool(raw_laps)
        if not has_csv_laps:
            raw_laps = _read_json_laps(participants)
        raw_laps = _drop_duplicate_numbers(raw_laps, warnings)
        max_lap = max((lap.lap for laps in raw_laps.values() for lap in laps), default=0)
        fcy = _resolve_fcy_windows(
            flag_events, report_periods, raw_laps, has_csv_laps, max_lap, warnings
        )
        context = _RaceContext(
            positions=_positions_by_elapsed(raw_laps, max_lap),
            fcy_laps=fcy_lap_set(fcy),
            max_lap=max_lap,
            clock=clock,
            car_events=car_events,
        )
        cars, prior = self._build_cars(
            raw_laps, participants, csv_participants, pit_stops, context, warnings
        )
        if not cars:
            raise ParseError(
                f"{self.name} parse failed: no valid car data found in the IMSA files. "
                "Check that the exports belong to a race session."
            )
        data = assemble_race(recompute_finish_class_positions(cars), fcy=fcy)
        warnings.append(_summarize(data.total_cars, max_lap, len(fcy), car_events, prior))
        annotations = generate_annotations(data, prior)
        _LOGGER.info(
            "race_parsed",
            format_id=self.format_id,
            car_count=data.total_cars,
            max_lap=data.max_lap,
            fcy_window_count=len(data.fcy),
            warning_count=len(warnings),
        )
        return ParsedResult(data=data, annotations=annotations, warnings=tuple(warnings))

    def _build_cars(
        self,
        raw_laps: Mapping[str, Sequence[_RawLap]],
        participants: Sequence[Mapping[str, Any]],
        csv_participants: Mapping[str, _CsvParticipant],
        pit_stops: Mapping[int, Mapping[str, Any]],
        context: _RaceContext,
        warnings: list[str],
    ) -> tuple[dict[str, CarRecord], dict[str, CarAnnotations]]:
        participant_map = {
            str(participant.get("number")): participant for participant in participants
        }
        finish_positions = _finish_positions(raw_laps)
        cars: dict[str, CarRecord] = {}
        prior: dict[str, CarAnnotations] = {}
        for car_number, laps in raw_laps.items():
            participant = participant_map.get(car_number)
            csv_meta = csv_participants.get(car_number)
            if participant is None and csv_meta is None:
                warnings.append(f"Car #{car_number} has laps but no participant entry")
                _LOGGER.warning(
                    "car_dropped_without_metadata", format_id=self.format_id, car_number=car_number
                )
                continue
            number = parse_int(car_number)
            if not number or number < 1:
                continue
            pit_entry = pit_stops.get(number, {})
            participant = participant or {}
            car = CarRecord(
                number=number,
                team=_team_label(car_number, participant, csv_meta),
                car_class=str(participant.get("class") or "")
                or (csv_meta.car_class if csv_meta else UNKNOWN_CLASS),
                finish_pos=finish_positions.get(car_number, MISSING_FINISH_POSITION),
                finish_pos_class=MISSING_FINISH_POSITION,
                laps=tuple(_to_lap_record(lap, car_number, context) for lap in laps),
                make=str(
                    pit_entry.get("manufacturer")
                    or participant.get("manufacturer")
                    or (csv_meta.manufacturer if csv_meta else "")
                )
                or None,
                vehicle=str(pit_entry.get("vehicle") or participant.get("vehicle") or "") or None,
            )
            cars[str(number)] = car
            prior[str(number)] = _annotate_car(
                car, car_number, laps, participant, pit_entry, context
            )
        return cars, prior


def _load_json(text: str, label: str, fallback_note: str, warnings: list[str]) -> Any:
    clean_text = _strip_bom(text)
    if not clean_text.strip():
        return None
    try:
        return json.loads(clean_text)
    except json.JSONDecodeError as error:
        warnings.append(f"Could not parse {label}: {error.msg}. {fallback_note}")
        return None


def _strip_bom(text: str) -> str:
    return text[1:] if text.startswith("﻿") else text


def _participants(time_cards: Any) -> list[Mapping[str, Any]]:
    if not isinstance(time_cards, dict):
        return []
    participants = time_cards.get("participants")
    if not isinstance(participants, list):
        return []
    return [participant for participant in participants if isinstance(participant, dict)]


def _load_flags(
    text: str,
    warnings: list[str],
) -> tuple[list[Mapping[str, Any]], list[FcyWindow]]:
    """Load flag records from JSON, or caution periods from report text."""
    clean_text = _strip_bom(text).strip()
    if not clean_text:
        warnings.append("No flags file provided. Caution periods will be detected from lap times.")
        return [], []
    if clean_text[0] in "{[":
        flags_data = _load_json(
            clean_text, "Flags JSON", "FCY will be detected from lap times.", warnings
        )
        records = flags_data.get("flags") if isinstance(flags_data, dict) else None
        if not isinstance(records, list):
            return [], []
        return [record for record in records if isinstance(record, dict)], []
    periods = [
        (start, end)
        for start, end in parse_flag_report_periods(clean_text)
        if start > 0 and end >= start
    ]
    warnings.append(
        f"Flags report: extracted {len(periods)} caution period(s). "
        "No race-control messages are available from the report format."
    )
    return [], periods


def _load_pit_stops(text: str, warnings: list[str]) -> dict[int, Mapping[str, Any]]:
    pit_data = _load_json(text, "Pit Stop JSON", "Continuing without it.", warnings)
    if not isinstance(pit_data, dict) or not isinstance(pit_data.get("pit_stop_analysis"), list):
        return {}
    pit_stops: dict[int, Mapping[str, Any]] = {}
    for entry in pit_data["pit_stop_analysis"]:
        if not isinstance(entry, dict):
            continue
        number = parse_int(str(entry.get("number", "")))
        if number is not None:
            pit_stops[number] = entry
    warnings.append(f"Pit stop data loaded for {len(pit_stops)} cars")
    return pit_stops


def _read_csv_source(
    text: str,
    warnings: list[str],
) -> tuple[dict[str, list[_RawLap]], dict[str, _CsvParticipant]]:
    if not text.strip():
        return {}, {}
    try:
        raw_laps, participants = _read_time_cards_csv(text)
    except ParseError as error:
        warnings.append(f"Could not parse Time Cards CSV: {error}. Falling back to JSON data.")
        return {}, {}
    if raw_laps:
        warnings.append(f"Time Cards CSV: loaded {len(raw_laps)} cars with per-lap flag data")
    return raw_laps, participants


def _read_time_cards_csv(
    text: str,
) -> tuple[dict[str, list[_RawLap]], dict[str, _CsvParticipant]]:
    """Read per-lap rows and participant metadata from the time cards CSV.

    Raises:
        ParseError: If the CSV has no data rows or lacks a required column.
    """
    header, rows = split_header(tokenize(text))
    if not rows:
        raise ParseError("CSV has no data rows")
    for column in REQUIRED_CSV_COLUMNS:
        if not header.has(column):
            raise ParseError(f"missing required CSV column {column.upper()}")
    laps_by_car: dict[str, dict[int, _RawLap]] = {}
    participants: dict[str, _CsvParticipant] = {}
    for row in rows:
        car_number = header.get(row, "number")
        lap_number = parse_int(header.get(row, "lap_number"))
        if not car_number or lap_number is None or lap_number < 1:
            continue
        pit_field = header.get(row, "crossing_finish_line_in_pit")
        lap_time = header.get(row, "lap_time")
        laps_by_car.setdefault(car_number, {}).setdefault(
            lap_number,
            _RawLap(
                lap=lap_number,
                elapsed_seconds=parse_lap_time(header.get(row, "elapsed")),
                lap_seconds=parse_lap_time(lap_time),
                lap_time=lap_time,
                pit=pit_field == "1"
                or pit_field.upper() == "B"
                or bool(_CSV_PIT_PATTERN.search(pit_field)),
                speed_mph=kph_to_mph(header.get(row, "top_speed") or header.get(row, "kph")),
                driver_number=header.get(row, "driver_number") or "1",
                csv_flag=header.get(row, "flag_at_fl").upper() or None,
            ),
        )
        participant = participants.setdefault(car_number, _CsvParticipant(car_number))
        participant.absorb(
            header.get(row, "class"),
            header.get(row, "team"),
            header.get(row, "manufacturer"),
            header.get(row, "driver_name"),
        )
    return _sorted_laps(laps_by_car), participants


def _drop_duplicate_numbers(
    raw_laps: Mapping[str, list[_RawLap]], warnings: list[str]
) -> dict[str, list[_RawLap]]:
    """Keep the first car per numeric car number ("07" and "7" collide)."""
    kept: dict[str, list[_RawLap]] = {}
    first_seen: dict[int, str] = {}
    for car_number, laps in raw_laps.items():
        number = parse_int(car_number)
        if number is not None and number in first_seen:
            warnings.append(
                f"Car #{car_number} duplicates car #{first_seen[number]} "
                "after number normalization; skipping"
            )
            continue
        if number is not None:
            first_seen[number] = car_number
        kept[car_number] = laps
    return kept


def _read_json_laps(participants: Sequence[Mapping[str, Any]]) -> dict[str, list[_RawLap]]:
    laps_by_car: dict[str, dict[int, _RawLap]] = {}
    for participant in participants:
        laps = participant.get("laps")
        if not isinstance(laps, list):
            continue
        car_number = str(participant.get("number"))
        for lap in laps:
            if not isinstance(lap, dict):
                continue
            lap_number = parse_int(str(lap.get("number", "")))
            if lap_number is None or lap_number < 1:
                continue
            lap_time = str(lap.get("time") or "")
            laps_by_car.setdefault(car_number, {}).setdefault(
                lap_number,
                _RawLap(
                    lap=lap_number,
                    elapsed_seconds=parse_lap_time(str(lap.get("session_elapsed") or "")),
                    lap_seconds=parse_lap_time(lap_time),
                    lap_time=lap_time,
                    pit=bool(lap.get("crossing_pit_finish_lane")),
                    speed_mph=kph_to_mph(str(lap.get("average_speed_kph") or "0")),
                    driver_number=str(lap.get("driver_number") or ""),
                ),
            )
    return _sorted_laps(laps_by_car)


def _sorted_laps(laps_by_car: Mapping[str, Mapping[int, _RawLap]]) -> dict[str, list[_RawLap]]:
    return {
        car_number: [laps[lap_number] for lap_number in sorted(laps)]
        for car_number, laps in laps_by_car.items()
        if laps
    }


def _positions_by_elapsed(
    raw_laps: Mapping[str, Sequence[_RawLap]],
    max_lap: int,
) -> dict[int, dict[str, int]]:
    """Rank cars on every lap by session elapsed time at the line."""
    elapsed_by_lap: dict[int, list[tuple[str, float]]] = {}
    for car_number, laps in raw_laps.items():
        for lap in laps:
            elapsed_by_lap.setdefault(lap.lap, []).append((car_number, lap.elapsed_seconds))
    positions: dict[int, dict[str, int]] = {}
    for lap_number in range(1, max_lap + 1):
        ordered = sorted(elapsed_by_lap.get(lap_number, []), key=lambda entry: entry[1])
        positions[lap_number] = {
            car_number: rank for rank, (car_number, _) in enumerate(ordered, start=1)
        }
    return positions


def _finish_positions(raw_laps: Mapping[str, Sequence[_RawLap]]) -> dict[str, int]:
    """Order cars by laps completed, then by final elapsed time."""
    ordered = sorted(
        raw_laps.items(), key=lambda item: (-len(item[1]), item[1][-1].elapsed_seconds)
    )
    return {car_number: rank for rank, (car_number, _) in enumerate(ordered, start=1)}


def _resolve_fcy_windows(
    flag_events: Sequence[Mapping[str, Any]],
    report_periods: Sequence[FcyWindow],
    raw_laps: Mapping[str, Sequence[_RawLap]],
    has_csv_laps: bool,
    max_lap: int,
    warnings: list[str],
) -> list[FcyWindow]:
    if flag_events:
        return build_flag_windows(flag_events)
    if report_periods:
        return list(report_periods)
    if has_csv_laps:
        windows = merge_laps_into_windows(
            lap.lap
            for laps in raw_laps.values()
            for lap in laps
            if lap.csv_flag in CSV_CAUTION_FLAGS
        )
        if windows:
            warnings.append(f"Detected {len(windows)} caution period(s) from CSV FLAG_AT_FL data.")
            return windows
    if max_lap > SLOW_LAP_MIN_RACE_LAPS:
        windows = _detect_slow_lap_windows(raw_laps, max_lap)
        if windows:
            warnings.append(
                f"Detected {len(windows)} caution period(s) from lap time analysis (no flags file)."
            )
        return windows
    return []


def _detect_slow_lap_windows(
    raw_laps: Mapping[str, Sequence[_RawLap]],
    max_lap: int,
) -> list[FcyWindow]:
    """Find laps where the field's median time is far off green pace.

    Green pace is the 25th percentile of every non-pit lap time; a lap
    with at least three timed cars is caution when its median exceeds
    that pace by 30%.
    """
    times_by_lap: dict[int, list[float]] = {}
    for laps in raw_laps.values():
        for lap in laps:
            if lap.pit or lap.lap_seconds <= 0:
                continue
            times_by_lap.setdefault(lap.lap, []).append(lap.lap_seconds)
    all_times = sorted(seconds for times in times_by_lap.values() for seconds in times)
    baseline = (
        all_times[math.floor(len(all_times) * SLOW_LAP_BASELINE_PERCENTILE)]
        if all_times
        else SLOW_LAP_DEFAULT_BASELINE
    )
    slow_laps = []
    for lap_number in range(1, max_lap + 1):
        times = sorted(times_by_lap.get(lap_number, []))
        if len(times) < SLOW_LAP_MIN_CARS:
            continue
        if times[len(times) // 2] > baseline * SLOW_LAP_FACTOR:
            slow_laps.append(lap_number)
    return merge_laps_into_windows(slow_laps)


def _to_lap_record(lap: _RawLap, car_number: str, context: _RaceContext) -> LapRecord:
    return LapRecord(
        lap=lap.lap,
        position=context.positions.get(lap.lap, {}).get(car_number, MISSING_FINISH_POSITION),
        class_position=0,
        lap_time=lap.lap_time,
        lap_seconds=lap_seconds_or_epsilon(lap.lap_seconds),
        flag=_lap_flag(lap, context.fcy_laps),
        pit=lap.pit,
        speed=lap.speed_mph,
    )


def _lap_flag(lap: _RawLap, fcy_laps: frozenset[int]) -> Flag:
    if lap.csv_flag:
        return FLAG_FCY if lap.csv_flag in CSV_CAUTION_FLAGS else FLAG_GREEN
    return FLAG_FCY if lap.lap in fcy_laps else FLAG_GREEN


def _team_label(
    car_number: str,
    participant: Mapping[str, Any],
    csv_meta: _CsvParticipant | None,
) -> str:
    """Build ``Team (Surname / Surname)`` from the roster or the CSV."""
    if participant:
        team = str(participant.get("team") or "") or f"Car #{car_number}"
        drivers = participant.get("drivers") or []
        names = [
            str(driver["surname"])
            for driver in drivers
            if isinstance(driver, dict) and driver.get("surname")
        ]
    else:
        team = (csv_meta.team if csv_meta else "") or f"Car #{car_number}"
        names = list(csv_meta.driver_names) if csv_meta else []
    return f"{team} ({' / '.join(names)})" if names else team


def _driver_label(participant: Mapping[str, Any], driver_number: str) -> str:
    for driver in participant.get("drivers") or []:
        if not isinstance(driver, dict) or not driver.get("surname"):
            continue
        if str(driver.get("number")) == driver_number:
            return str(driver["surname"])
    return f"D{driver_number}"


def _annotate_car(
    car: CarRecord,
    car_number: str,
    raw_laps: Sequence[_RawLap],
    participant: Mapping[str, Any],
    pit_entry: Mapping[str, Any],
    context: _RaceContext,
) -> CarAnnotations:
    """Build driver-change, stint, penalty, and pit-data annotations."""
    builder = _CarAnnotationBuilder()
    stint_ranges = _add_stint_markers(builder, car_number, raw_laps, participant, context)
    _add_race_control_markers(builder, car_number, raw_laps, stint_ranges, context)
    stops = pit_entry.get("pit_stops")
    if isinstance(stops, list):
        _add_pit_data_settles(builder, car, stops, context)
    return builder.build()


def _add_stint_markers(
    builder: _CarAnnotationBuilder,
    car_number: str,
    raw_laps: Sequence[_RawLap],
    participant: Mapping[str, Any],
    context: _RaceContext,
) -> list[tuple[int, int, int]]:
    """Label pit stops by stint and note driver changes.

    Returns:
        ``(stint, first_lap, last_lap)`` ranges covering the race.
    """
    stint = 1
    stint_ranges: list[tuple[int, int, int]] = []
    stint_start = raw_laps[0].lap if raw_laps else 1
    current_driver = raw_laps[0].driver_number if raw_laps else "1"
    current_label = _driver_label(participant, current_driver)
    laps_by_number = {lap.lap: lap for lap in raw_laps}
    for lap in raw_laps:
        if lap.driver_number != current_driver:
            new_label = _driver_label(participant, lap.driver_number)
            if not lap.pit:
                builder.add_reason(lap.lap, f"{DRIVER_CHANGE_PREFIX} {new_label}")
            current_driver = lap.driver_number
            current_label = new_label
        if not lap.pit:
            continue
        position_after = context.positions.get(lap.lap, {}).get(car_number, 0)
        position_before = context.positions.get(lap.lap - 1, {}).get(car_number) or position_after
        previous = laps_by_number.get(lap.lap - 1)
        driver_change = previous is not None and previous.driver_number != lap.driver_number
        if driver_change:
            new_label = _driver_label(participant, lap.driver_number)
            label = f"S{stint}→S{stint + 1} {new_label}"
            builder.add_reason(lap.lap, f"{DRIVER_CHANGE_PREFIX} {new_label}")
        else:
            label = f"S{stint} {current_label}"
        builder.pits.append(
            PitMarker(
                lap=lap.lap,
                label=label,
                color=PIT_MARKER_COLOR,
                data_value=position_after - position_before,
            )
        )
        stint_ranges.append((stint, stint_start, lap.lap))
        stint_start = lap.lap + 1
        stint += 1
    stint_ranges.append((stint, stint_start, context.max_lap))
    return stint_ranges


def _add_race_control_markers(
    builder: _CarAnnotationBuilder,
    car_number: str,
    raw_laps: Sequence[_RawLap],
    stint_ranges: Sequence[tuple[int, int, int]],
    context: _RaceContext,
) -> None:
    drive_through_laps: list[int] = []
    for event in context.car_events.get(car_number, ()):
        if event.lap < 1 or event.lap > context.max_lap:
            continue
        if event.event_type == "penalty":
            short_penalty = shorten_penalty(event.message)
            builder.add_reason(event.lap, short_penalty)
            punishment = extract_punishment(event.message)
            builder.add_penalty_marker(
                event.lap, f"{_stint_prefix(stint_ranges, event.lap)}{punishment or short_penalty}"
            )
            if punishment == "DT":
                drive_through_laps.append(event.lap)
        elif event.event_type in _INCIDENT_EVENT_TYPES:
            builder.add_reason(event.lap, shorten_incident(event.message))
    for penalty_lap in drive_through_laps:
        served = next((lap for lap in raw_laps if lap.lap > penalty_lap and lap.pit), None)
        if served is None:
            continue
        builder.add_penalty_marker(
            served.lap, f"{_stint_prefix(stint_ranges, served.lap)}DT Served"
        )
        builder.add_reason(served.lap, "DT Served")


def _stint_prefix(stint_ranges: Sequence[tuple[int, int, int]], lap_number: int) -> str:
    for stint, first_lap, last_lap in stint_ranges:
        if first_lap <= lap_number <= last_lap:
            return f"S{stint} "
    return ""


def _add_pit_data_settles(
    builder: _CarAnnotationBuilder,
    car: CarRecord,
    stops: Sequence[Any],
    context: _RaceContext,
) -> None:
    """Place settle markers from timed pit stops."""
    laps_by_number = {lap.lap: lap for lap in car.laps}
    for stop in stops:
        if not isinstance(stop, dict):
            continue
        in_lap = context.clock.lap_at(str(stop.get("in_time") or ""))
        if in_lap <= 0:
            continue
        before = laps_by_number.get(in_lap - 1) or laps_by_number.get(in_lap)
        if before is None:
            continue
        out_lap = context.clock.lap_at(str(stop.get("out_time") or ""))
        settle_lap = _first_lap(
            laps_by_number,
            range(
                max(out_lap, in_lap + 1),
                min(in_lap + PIT_DATA_SETTLE_WINDOW_LAPS, context.max_lap) + 1,
            ),
            context.fcy_laps,
        ) or _first_lap(
            laps_by_number,
            range(in_lap + 1, min(in_lap + PIT_DATA_SETTLE_FALLBACK_LAPS, context.max_lap) + 1),
            frozenset(),
        )
        if settle_lap is None:
            continue
        builder.settles.append(make_settle(settle_lap.lap, settle_lap.position, before.position))


def _first_lap(
    laps_by_number: Mapping[int, LapRecord],
    lap_numbers: range,
    excluded_laps: frozenset[int],
) -> LapRecord | None:
    for lap_number in lap_numbers:
        lap = laps_by_number.get(lap_number)
        if lap is not None and not lap.pit and lap_number not in excluded_laps:
            return lap
    return None


def _summarize(
    car_count: int,
    max_lap: int,
    fcy_count: int,
    car_events: Mapping[str, Sequence[CarEvent]],
    prior: Mapping[str, CarAnnotations],
) -> str:
    penalty_count = sum(
        1 for events in car_events.values() for event in events if event.event_type == "penalty"
    )
    pit_count = sum(
        1
        for annotations in prior.values()
        for marker in annotations.pits
        if marker.color == PIT_MARKER_COLOR
    )
    driver_change_count = sum(
        1
        for annotations in prior.values()
        for reason in annotations.reasons.values()
        if DRIVER_CHANGE_PREFIX in reason
    )
    return (
        f"Parsed {car_count} cars across {max_lap} laps with {fcy_count} caution periods, "
        f"{penalty_count} penalties, {pit_count} pit stops, "
        f"and {driver_change_count} driver changes"
    )
