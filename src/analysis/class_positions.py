"""In-class position recomputation.

Parser-supplied class positions are never trusted; ranks are rebuilt
from overall positions within each class, per lap and at the finish.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Mapping

from analysis.lap_index import build_lap_index
from core.types import CanonicalRaceData, CarRecord


def recompute_class_positions(data: CanonicalRaceData) -> CanonicalRaceData:
    """Return race data with every lap's class position recomputed.

    For each lap, cars that recorded the lap are grouped by class and
    stable-sorted by overall position; ranks start at 1.
    """
    return replace(data, cars=recompute_car_class_positions(data.cars))


def recompute_car_class_positions(cars: Mapping[str, CarRecord]) -> dict[str, CarRecord]:
    """Recompute per-lap class positions for a car mapping."""
    index = build_lap_index(cars)
    ranks: dict[tuple[str, int], int] = {}
    for lap_number in index.lap_numbers():
        by_class: dict[str, list] = {}
        for entry in index.entries(lap_number):
            by_class.setdefault(entry.car.car_class, []).append(entry)
        for class_entries in by_class.values():
            ordered = sorted(class_entries, key=lambda entry: entry.lap.position)
            for rank, entry in enumerate(ordered, start=1):
                ranks[(entry.car_key, lap_number)] = rank
    return {
        car_key: replace(
            car,
            laps=tuple(
                replace(lap, class_position=ranks[(car_key, lap.lap)]) for lap in car.laps
            ),
        )
        for car_key, car in cars.items()
    }


def recompute_finish_class_positions(cars: Mapping[str, CarRecord]) -> dict[str, CarRecord]:
    """Rank each car's finishing class position by overall finish."""
    by_class: dict[str, list[str]] = {}
    for car_key, car in cars.items():
        by_class.setdefault(car.car_class, []).append(car_key)
    finish_ranks: dict[str, int] = {}
    for car_keys in by_class.values():
        ordered = sorted(car_keys, key=lambda car_key: cars[car_key].finish_pos)
        for rank, car_key in enumerate(ordered, start=1):
            finish_ranks[car_key] = rank
    return {
        car_key: replace(car, finish_pos_class=finish_ranks[car_key])
        for car_key, car in cars.items()
    }
