"""Canonical race assembly.

This module turns parsed car records into ``CanonicalRaceData`` by
deriving lap counts, class groupings, class positions, caution windows,
and the green pace cutoff.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Mapping, Sequence

from analysis.class_positions import recompute_class_positions
from analysis.fcy_windows import detect_fcy_windows
from analysis.green_pace import compute_green_pace_cutoff
from core.constants import GREEN_PACE_FALLBACK_SECONDS
from core.types import CanonicalRaceData, CarRecord, FcyWindow


def assemble_race(
    cars: Mapping[str, CarRecord],
    fcy: Sequence[FcyWindow] | None = None,
) -> CanonicalRaceData:
    """Assemble canonical race data from parsed cars.

    Args:
        cars: Cars keyed by car number string, laps already sorted.
        fcy: Caution windows known from the export; detected by flag
            majority when omitted.

    Returns:
        Canonical race data with derived fields filled in.
    """
    class_groups: dict[str, list[int]] = {}
    make_groups: dict[str, list[int]] = {}
    for car in cars.values():
        class_groups.setdefault(car.car_class, []).append(car.number)
        if car.make:
            make_groups.setdefault(car.make, []).append(car.number)
    provisional = CanonicalRaceData(
        max_lap=max((lap.lap for car in cars.values() for lap in car.laps), default=0),
        total_cars=len(cars),
        green_pace_cutoff=GREEN_PACE_FALLBACK_SECONDS,
        cars=dict(cars),
        class_groups={car_class: tuple(numbers) for car_class, numbers in class_groups.items()},
        class_car_counts={car_class: len(numbers) for car_class, numbers in class_groups.items()},
        make_groups=(
            {make: tuple(numbers) for make, numbers in make_groups.items()} if make_groups else None
        ),
    )
    ranked = recompute_class_positions(provisional)
    windows = tuple(fcy) if fcy is not None else tuple(detect_fcy_windows(ranked))
    return replace(ranked, fcy=windows, green_pace_cutoff=compute_green_pace_cutoff(ranked))
