"""Shared summary-plus-laps CSV parsing.

SpeedHive and WRL website exports both ship a per-car summary table and
an all-laps table; only column names and flag vocabulary differ.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import ClassVar, Mapping

from analysis.annotations import generate_annotations
from analysis.race_assembly import assemble_race
from core.constants import MISSING_FINISH_POSITION, UNKNOWN_CLASS
from core.errors import ParseError
from core.logging_config import get_logger
from core.types import CarRecord, Flag, LapRecord, ParsedResult
from parsers.base import FormatParser
from parsers.scalars import lap_seconds_or_epsilon, parse_float, parse_int, parse_lap_time
from parsers.tokenizer import HeaderMap, split_header, tokenize

_LOGGER = get_logger(__name__)

SUMMARY_SLOT_KEY = "summaryCsv"
LAPS_SLOT_KEY = "lapsCsv"


@dataclass(frozen=True)
class TwoTableColumns:
    """Column names for one two-table export dialect."""

    summary_number: str
    summary_team: str
    summary_class: str
    summary_position: str
    summary_class_position: str
    laps_number: str
    laps_lap: str
    laps_time: str
    laps_position: str
    laps_pit: str
    laps_pit_value: str
    laps_flag: str
    laps_speed: str | None = None


@dataclass(frozen=True)
class _SummaryEntry:
    team: str
    car_class: str
    finish_pos: int
    finish_pos_class: int


class TwoTableParser(FormatParser):
    """Parser for exports with a summary table and an all-laps table."""

    columns: ClassVar[TwoTableColumns]

    @abstractmethod
    def classify_flag(self, status: str) -> Flag:
        """Map the export's per-lap status text to a track flag."""

    def parse(self, files: Mapping[str, str]) -> ParsedResult:
        summary_text = self.require_slot(files, SUMMARY_SLOT_KEY)
        laps_text = self.require_slot(files, LAPS_SLOT_KEY)
        summary = self._read_summary(summary_text)
        car_laps = self._read_laps(laps_text)
        warnings: list[str] = []
        cars: dict[str, CarRecord] = {}
        for number, laps in car_laps.items():
            entry = summary.get(number)
            if entry is None:
                warnings.append(f"Car #{number} has laps but no summary metadata; skipping")
                _LOGGER.warning(
                    "car_dropped_without_metadata", format_id=self.format_id, car_number=number
                )
                continue
            cars[str(number)] = CarRecord(
                number=number,
                team=entry.team,
                car_class=entry.car_class,
                finish_pos=entry.finish_pos,
                finish_pos_class=entry.finish_pos_class,
                laps=tuple(sorted(laps, key=lambda lap: lap.lap)),
            )
        if not cars:
            raise ParseError(
                f"{self.name} parse failed: no valid car data found in the CSV files. "
                "Check that both exports come from the same session."
            )
        data = assemble_race(cars)
        annotations = generate_annotations(data)
        _LOGGER.info(
            "race_parsed",
            format_id=self.format_id,
            car_count=data.total_cars,
            max_lap=data.max_lap,
            fcy_window_count=len(data.fcy),
            warning_count=len(warnings),
        )
        return ParsedResult(data=data, annotations=annotations, warnings=tuple(warnings))

    def _read_summary(self, text: str) -> dict[int, _SummaryEntry]:
        header, rows = self._read_table(text, "Summary CSV")
        columns = self.columns
        summary: dict[int, _SummaryEntry] = {}
        for row in rows:
            number = parse_int(header.get(row, columns.summary_number))
            if number is None:
                continue
            summary[number] = _SummaryEntry(
                team=header.get(row, columns.summary_team) or f"Car #{number}",
                car_class=header.get(row, columns.summary_class) or UNKNOWN_CLASS,
                finish_pos=parse_int(header.get(row, columns.summary_position))
                or MISSING_FINISH_POSITION,
                finish_pos_class=parse_int(header.get(row, columns.summary_class_position))
                or MISSING_FINISH_POSITION,
            )
        return summary

    def _read_laps(self, text: str) -> dict[int, list[LapRecord]]:
        header, rows = self._read_table(text, "All Laps CSV")
        columns = self.columns
        car_laps: dict[int, list[LapRecord]] = {}
        for row in rows:
            number = parse_int(header.get(row, columns.laps_number))
            lap_number = parse_int(header.get(row, columns.laps_lap))
            if number is None or lap_number is None or lap_number < 1:
                continue
            lap_time = header.get(row, columns.laps_time)
            car_laps.setdefault(number, []).append(
                LapRecord(
                    lap=lap_number,
                    position=parse_int(header.get(row, columns.laps_position)) or lap_number,
                    class_position=0,
                    lap_time=lap_time,
                    lap_seconds=lap_seconds_or_epsilon(parse_lap_time(lap_time)),
                    flag=self.classify_flag(header.get(row, columns.laps_flag)),
                    pit=header.get(row, columns.laps_pit).lower() == columns.laps_pit_value,
                    speed=self._read_speed(header, row),
                )
            )
        return car_laps

    def _read_speed(self, header: HeaderMap, row: list[str]) -> float | None:
        if self.columns.laps_speed is None:
            return None
        speed = parse_float(header.get(row, self.columns.laps_speed))
        return speed if speed is not None and speed >= 0 else 0.0

    def _read_table(self, text: str, label: str) -> tuple[HeaderMap, list[list[str]]]:
        header, rows = split_header(tokenize(text))
        if not rows:
            raise ParseError(
                f"{self.name} parse failed: {label} has no data rows. "
                "Export the table again with at least one car."
            )
        return header, rows
