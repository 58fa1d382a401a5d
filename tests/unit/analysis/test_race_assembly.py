"""Unit tests for canonical race assembly."""

from __future__ import annotations

from dataclasses import replace

import pytest

from analysis.race_assembly import assemble_race
from core.types import CarRecord
from tests.race_builders import make_car, make_lap


def _cars() -> dict[str, CarRecord]:
    laps_one = [make_lap(lap, 1, "FCY" if lap == 2 else "GREEN") for lap in range(1, 4)]
    laps_two = [make_lap(lap, 2, "FCY" if lap == 2 else "GREEN") for lap in range(1, 3)]
    laps_three = [make_lap(lap, 3, "FCY" if lap == 2 else "GREEN") for lap in range(1, 4)]
    return {
        "1": replace(make_car(1, "GT3", laps_one), make="Porsche"),
        "2": make_car(2, "GT4", laps_two),
        "3": replace(make_car(3, "GT3", laps_three), make="Porsche"),
    }


def test_assemble_race_derives_counts() -> None:
    """Max lap and total cars should be derived from the cars."""
    data = assemble_race(_cars())

    assert (data.max_lap, data.total_cars) == (3, 3)


def test_assemble_race_groups_classes_in_car_order() -> None:
    """Class groups and counts should follow car insertion order."""
    data = assemble_race(_cars())

    assert (dict(data.class_groups), dict(data.class_car_counts)) == (
        {"GT3": (1, 3), "GT4": (2,)},
        {"GT3": 2, "GT4": 1},
    )


def test_assemble_race_groups_makes_when_present() -> None:
    """Make groups should include only cars with a make."""
    assert dict(assemble_race(_cars()).make_groups or {}) == {"Porsche": (1, 3)}


def test_assemble_race_omits_make_groups_without_makes() -> None:
    """Races with no makes should have no make groups."""
    cars = {"2": make_car(2, "GT4", [make_lap(1, 1)])}

    assert assemble_race(cars).make_groups is None


def test_assemble_race_detects_fcy_when_omitted() -> None:
    """Caution windows should be detected from lap flags by default."""
    assert assemble_race(_cars()).fcy == ((2, 2),)


def test_assemble_race_keeps_supplied_fcy() -> None:
    """Supplied caution windows should override detection."""
    assert assemble_race(_cars(), fcy=[(1, 3)]).fcy == ((1, 3),)


def test_assemble_race_recomputes_class_positions() -> None:
    """Class positions should be ranked within class."""
    data = assemble_race(_cars())

    assert [lap.class_position for lap in data.cars["3"].laps] == [2, 2, 2]


def test_assemble_race_uses_fallback_pace_for_short_races() -> None:
    """Short races should carry the fallback pace cutoff."""
    assert assemble_race(_cars()).green_pace_cutoff == pytest.approx(300.0)
