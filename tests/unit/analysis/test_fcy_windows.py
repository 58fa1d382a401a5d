"""Unit tests for caution window detection."""

from __future__ import annotations

from analysis.fcy_windows import detect_fcy_windows, fcy_lap_set, merge_laps_into_windows
from tests.race_builders import make_car, make_lap, make_race


def test_detect_fcy_windows_uses_strict_majority() -> None:
    """A lap flagged FCY by most cars recording it should be caution."""
    race = make_race(
        [
            make_car(1, "GT3", [make_lap(4, 1), make_lap(5, 1, "FCY")]),
            make_car(2, "GT3", [make_lap(4, 2), make_lap(5, 2, "FCY")]),
            make_car(3, "GT3", [make_lap(4, 3), make_lap(5, 3)]),
        ]
    )

    assert detect_fcy_windows(race) == [(5, 5)]


def test_detect_fcy_windows_ignores_exact_half() -> None:
    """An even split should not count as a caution lap."""
    race = make_race(
        [
            make_car(1, "GT3", [make_lap(1, 1, "FCY")]),
            make_car(2, "GT3", [make_lap(1, 2)]),
        ]
    )

    assert detect_fcy_windows(race) == []


def test_detect_fcy_windows_counts_only_cars_on_the_lap() -> None:
    """Cars that did not record a lap should not dilute the vote."""
    race = make_race(
        [
            make_car(1, "GT3", [make_lap(1, 1), make_lap(2, 1, "FCY"), make_lap(3, 1, "FCY")]),
            make_car(2, "GT3", [make_lap(1, 2)]),
        ]
    )

    assert detect_fcy_windows(race) == [(2, 3)]


def test_merge_laps_into_windows_joins_consecutive_laps() -> None:
    """Consecutive laps should merge while gaps start a new window."""
    assert merge_laps_into_windows([9, 3, 4, 5, 9, 12]) == [(3, 5), (9, 9), (12, 12)]


def test_fcy_lap_set_expands_windows() -> None:
    """Windows should expand to inclusive lap numbers."""
    assert fcy_lap_set([(2, 4), (7, 7)]) == frozenset({2, 3, 4, 7})
