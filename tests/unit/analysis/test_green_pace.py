"""Unit tests for the green pace cutoff."""

from __future__ import annotations

import pytest

from analysis.green_pace import compute_green_pace_cutoff
from core.types import CanonicalRaceData
from tests.race_builders import make_car, make_lap, make_race


def _race_with_lap_seconds(seconds: list[float], flag: str = "GREEN") -> CanonicalRaceData:
    laps = [make_lap(index, 1, flag, seconds=value) for index, value in enumerate(seconds, start=1)]
    return make_race([make_car(1, "GT3", laps)])


def test_green_pace_falls_back_with_few_samples() -> None:
    """Fewer than eleven samples should use the fallback cutoff."""
    assert compute_green_pace_cutoff(_race_with_lap_seconds([90.0] * 10)) == 300.0


def test_green_pace_scales_95th_percentile() -> None:
    """The cutoff should be the 95th percentile sample times 1.1."""
    race = _race_with_lap_seconds([float(value) for value in range(81, 101)])

    assert compute_green_pace_cutoff(race) == pytest.approx(110.0)


def test_green_pace_excludes_caution_laps() -> None:
    """Caution laps should not count as samples."""
    assert compute_green_pace_cutoff(_race_with_lap_seconds([90.0] * 20, "FCY")) == 300.0


def test_green_pace_excludes_sub_second_laps() -> None:
    """Epsilon lap times should not count as samples."""
    assert compute_green_pace_cutoff(_race_with_lap_seconds([0.001] * 20)) == 300.0


def test_green_pace_excludes_pit_laps() -> None:
    """Pit laps should not count as samples."""
    laps = [make_lap(index, 1, pit=True) for index in range(1, 21)]

    assert compute_green_pace_cutoff(make_race([make_car(1, "GT3", laps)])) == 300.0
