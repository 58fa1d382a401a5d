"""Unit tests for derived row building."""

from __future__ import annotations

from dataclasses import replace

from store.race_rows import build_entry_rows, build_lap_rows, iter_batches
from tests.race_builders import make_car, make_lap, make_race


def test_build_lap_rows_rounds_milliseconds() -> None:
    """Lap milliseconds should round the seconds value."""
    lap = replace(make_lap(1, 1, seconds=90.1236), speed=98.5)
    rows = build_lap_rows("race-1", make_race([make_car(7, "GT3", [lap])]))

    assert (rows[0].lap_time_ms, rows[0].speed, rows[0].car_number) == (90124, 98.5, "7")


def test_build_entry_rows_counts_laps() -> None:
    """Entry rows should count each car's laps."""
    race = make_race(
        [
            make_car(7, "GT3", [make_lap(1, 1), make_lap(2, 1)]),
            make_car(3, "GT4", [make_lap(1, 2)]),
        ]
    )

    rows = build_entry_rows("race-1", race)

    assert [(row.car_number, row.laps_completed, row.driver_names) for row in rows] == [
        ("7", 2, ""),
        ("3", 1, ""),
    ]


def test_iter_batches_slices_rows() -> None:
    """Batches should hold at most the batch size, in order."""
    assert [list(batch) for batch in iter_batches([1, 2, 3, 4, 5], 2)] == [[1, 2], [3, 4], [5]]
