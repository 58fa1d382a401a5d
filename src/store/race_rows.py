"""Derived entry and lap rows.

Rows are a flattened, queryable copy of the canonical race blob and
can always be rebuilt from it.
"""

from __future__ import annotations

from typing import Iterator, Sequence, TypeVar

from core.types import CanonicalRaceData, EntryRow, LapRow

_RowT = TypeVar("_RowT")


def build_entry_rows(race_id: str, data: CanonicalRaceData) -> list[EntryRow]:
    """Build one entry row per car, in car order."""
    return [
        EntryRow(
            race_id=race_id,
            car_number=str(car.number),
            team_name=car.team,
            driver_names="",
            car_class=car.car_class,
            finish_pos=car.finish_pos,
            finish_pos_class=car.finish_pos_class,
            laps_completed=len(car.laps),
        )
        for car in data.cars.values()
    ]


def build_lap_rows(race_id: str, data: CanonicalRaceData) -> list[LapRow]:
    """Build one lap row per lap record, in car then lap order."""
    return [
        LapRow(
            race_id=race_id,
            car_number=str(car.number),
            lap_number=lap.lap,
            position=lap.position,
            class_position=lap.class_position,
            lap_time_formatted=lap.lap_time,
            lap_time_sec=lap.lap_seconds,
            lap_time_ms=round(lap.lap_seconds * 1000),
            flag=lap.flag,
            speed=lap.speed,
            pit_stop=lap.pit,
        )
        for car in data.cars.values()
        for lap in car.laps
    ]


def iter_batches(rows: Sequence[_RowT], batch_size: int) -> Iterator[Sequence[_RowT]]:
    """Yield consecutive slices of at most ``batch_size`` rows."""
    for start in range(0, len(rows), batch_size):
        yield rows[start : start + batch_size]
