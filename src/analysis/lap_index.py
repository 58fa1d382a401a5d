"""Group-by-lap index over canonical cars.

Analysis passes look up every car that recorded a given lap; the
index is built once per race instead of scanning each car per lap.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from core.types import CarRecord, LapRecord


@dataclass(frozen=True)
class LapEntry:
    """One car's record on one lap."""

    car_key: str
    car: CarRecord
    lap: LapRecord


@dataclass(frozen=True)
class LapIndex:
    """Lap entries grouped by lap number, in car insertion order."""

    entries_by_lap: Mapping[int, tuple[LapEntry, ...]]

    def entries(self, lap_number: int) -> tuple[LapEntry, ...]:
        """Return every car's record for a lap, empty when none."""
        return self.entries_by_lap.get(lap_number, ())

    def lap_numbers(self) -> list[int]:
        """Return recorded lap numbers in ascending order."""
        return sorted(self.entries_by_lap)


def build_lap_index(cars: Mapping[str, CarRecord]) -> LapIndex:
    """Build the lap index for a car mapping."""
    grouped: dict[int, list[LapEntry]] = {}
    for car_key, car in cars.items():
        for lap in car.laps:
            grouped.setdefault(lap.lap, []).append(LapEntry(car_key, car, lap))
    return LapIndex(
        entries_by_lap={lap_number: tuple(entries) for lap_number, entries in grouped.items()}
    )
