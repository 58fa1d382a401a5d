"""Unit tests for the SpeedHive parser."""

from __future__ import annotations

import pytest

from core.errors import ParseError
from core.types import ParsedResult
from parsers.speedhive import SpeedhiveParser
from tests.fixture_paths import fixture_path


def _parse_fixture() -> ParsedResult:
    files = {
        "summaryCsv": fixture_path("speedhive/summary.csv").read_text(encoding="utf-8"),
        "lapsCsv": fixture_path("speedhive/laps.csv").read_text(encoding="utf-8"),
    }
    return SpeedhiveParser().parse(files)


def test_parse_drops_car_without_summary_row() -> None:
    """Cars present only in the laps export should be skipped with a warning."""
    result = _parse_fixture()

    assert sorted(result.data.cars) == ["12", "3", "7"] and result.warnings == (
        "Car #99 has laps but no summary metadata; skipping",
    )


def test_parse_reads_summary_metadata() -> None:
    """Team, class, and finishing positions should come from the summary."""
    car = _parse_fixture().data.cars["3"]

    assert (car.team, car.car_class, car.finish_pos, car.finish_pos_class) == (
        "Bravo Motorsport",
        "GT3",
        2,
        2,
    )


def test_parse_detects_caution_from_status_column() -> None:
    """A lap flagged FCY or Caution by every car should form a window."""
    assert _parse_fixture().data.fcy == ((3, 3),)


def test_parse_reads_pit_and_speed_columns() -> None:
    """In Pit and Speed columns should map onto the lap record."""
    lap = _parse_fixture().data.cars["3"].laps[3]

    assert (lap.lap, lap.pit, lap.speed, lap.lap_seconds) == (4, True, 60.0, 130.0)


def test_parse_recomputes_class_positions() -> None:
    """Class positions should be ranked within class from overall position."""
    cars = _parse_fixture().data.cars

    assert (
        cars["7"].laps[3].class_position,
        cars["3"].laps[3].class_position,
        cars["12"].laps[3].class_position,
    ) == (1, 2, 1)


def test_parse_builds_class_groups() -> None:
    """Class groups and counts should follow summary classes."""
    data = _parse_fixture().data

    assert (dict(data.class_groups), dict(data.class_car_counts)) == (
        {"GT3": (7, 3), "GT4": (12,)},
        {"GT3": 2, "GT4": 1},
    )


def test_parse_generates_pit_marker_and_reasons() -> None:
    """Annotations should mark the pit stop and explain the pass."""
    annotations = _parse_fixture().annotations["3"]

    assert (
        [(marker.lap, marker.label) for marker in annotations.pits],
        annotations.reasons["2"],
        annotations.reasons["4"],
    ) == (
        [(4, "Pit 1")],
        "Gained: passed #7 Alpha Racing on pace",
        "Pit stop: Lost 1 in pit cycle",
    )


def test_parse_places_settle_after_caution() -> None:
    """Settle marker should land on the first clean lap after the caution."""
    settles = _parse_fixture().annotations["3"].settles

    assert [(marker.lap, marker.position, marker.subtext) for marker in settles] == [
        (5, 2, "Was P1 · Lost 1")
    ]


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        ("Green", "GREEN"),
        ("Full Course Yellow", "FCY"),
        ("caution", "FCY"),
        ("Red Flag", "RED"),
        ("Code 60", "FCY"),
        ("SC", "FCY"),
        ("", "GREEN"),
    ],
)
def test_classify_flag_maps_status(status: str, expected: str) -> None:
    """Status text should map onto the flag vocabulary."""
    assert SpeedhiveParser().classify_flag(status) == expected


def test_parse_requires_laps_slot() -> None:
    """A missing laps export should be a parse error."""
    with pytest.raises(ParseError, match="All Laps CSV"):
        SpeedhiveParser().parse({"summaryCsv": "Start Number,Name\n1,A\n"})


def test_parse_rejects_header_only_table() -> None:
    """A table without data rows should be a parse error."""
    files = {"summaryCsv": "Start Number,Name\n", "lapsCsv": "Start Number,Lap Number\n1,1\n"}

    with pytest.raises(ParseError, match="no data rows"):
        SpeedhiveParser().parse(files)


def test_parse_fails_when_no_car_has_metadata() -> None:
    """No matching summary rows should be a parse error."""
    files = {
        "summaryCsv": "Start Number,Name,Class\n5,Only Summary,GT3\n",
        "lapsCsv": "Start Number,Lap Number,Lap Time\n9,1,1:30.0\n",
    }

    with pytest.raises(ParseError, match="no valid car data"):
        SpeedhiveParser().parse(files)
