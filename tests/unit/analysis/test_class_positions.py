"""Unit tests for in-class position recomputation."""

from __future__ import annotations

from analysis.class_positions import (
    recompute_car_class_positions,
    recompute_class_positions,
    recompute_finish_class_positions,
)
from tests.race_builders import make_car, make_lap, make_race


def test_recompute_class_positions_ranks_within_class() -> None:
    """Class positions should rank cars by overall position within class."""
    race = make_race(
        [
            make_car(1, "GT3", [make_lap(1, 7, class_position=9)]),
            make_car(2, "GT3", [make_lap(1, 3, class_position=9)]),
            make_car(3, "GT3", [make_lap(1, 9, class_position=9)]),
            make_car(4, "GT4", [make_lap(1, 1, class_position=9)]),
        ]
    )

    ranked = recompute_class_positions(race)

    assert [ranked.cars[key].laps[0].class_position for key in ("1", "2", "3", "4")] == [
        2,
        1,
        3,
        1,
    ]


def test_recompute_class_positions_uses_only_cars_on_the_lap() -> None:
    """A car missing a lap should not take a class rank on it."""
    cars = {
        "1": make_car(1, "GT3", [make_lap(1, 2), make_lap(2, 2)]),
        "2": make_car(2, "GT3", [make_lap(1, 1)]),
    }

    ranked = recompute_car_class_positions(cars)

    assert [lap.class_position for lap in ranked["1"].laps] == [2, 1]


def test_recompute_finish_class_positions_orders_by_finish() -> None:
    """Finishing class positions should follow overall finish order."""
    cars = {
        "1": make_car(1, "GT3", [make_lap(1, 1)], finish_pos=4),
        "2": make_car(2, "GT3", [make_lap(1, 2)], finish_pos=2),
        "3": make_car(3, "GT4", [make_lap(1, 3)], finish_pos=3),
    }

    ranked = recompute_finish_class_positions(cars)

    assert [ranked[key].finish_pos_class for key in ("1", "2", "3")] == [2, 1, 1]


def test_recompute_class_positions_keeps_input_order_on_ties() -> None:
    """Cars sharing an overall position should keep their input order."""
    cars = {
        "5": make_car(5, "GT3", [make_lap(1, 3)]),
        "2": make_car(2, "GT3", [make_lap(1, 3)]),
        "8": make_car(8, "GT3", [make_lap(1, 1)]),
    }

    ranked = recompute_car_class_positions(cars)

    assert [ranked[key].laps[0].class_position for key in ("5", "2", "8")] == [2, 3, 1]
