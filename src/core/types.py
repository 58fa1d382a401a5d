"""Shared typed models.

This module defines immutable data models used by parsers, analysis,
ingest, and store layers to keep interfaces explicit and stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal, Mapping

from core.constants import DEFAULT_RACE_STATUS

Flag = Literal["GREEN", "FCY", "RED"]
RaceStatus = Literal["DRAFT", "PUBLISHED"]
FcyWindow = tuple[int, int]


@dataclass(frozen=True)
class LapRecord:
    """One completed lap for one car.

    Attributes:
        lap: Lap number, starting at 1.
        position: Overall position after this lap.
        class_position: Position within the car's class after this lap.
        lap_time: Display lap time as exported.
        lap_seconds: Lap time in seconds, always strictly positive.
        flag: Track flag state for the lap.
        pit: Whether the car pitted on this lap.
        speed: Optional average speed.
    """

    lap: int
    position: int
    class_position: int
    lap_time: str
    lap_seconds: float
    flag: Flag
    pit: bool
    speed: float | None = None


@dataclass(frozen=True)
class CarRecord:
    """One car entry with its ordered lap history.

    Attributes:
        number: Car number.
        team: Team or driver display name.
        car_class: Class or category code.
        finish_pos: Overall finishing position.
        finish_pos_class: Finishing position within class.
        laps: Laps sorted ascending by lap number.
        make: Optional manufacturer.
        vehicle: Optional vehicle model.
    """

    number: int
    team: str
    car_class: str
    finish_pos: int
    finish_pos_class: int
    laps: tuple[LapRecord, ...]
    make: str | None = None
    vehicle: str | None = None


@dataclass(frozen=True)
class CanonicalRaceData:
    """Normalized representation of one race.

    Attributes:
        max_lap: Highest lap number observed across all cars.
        total_cars: Declared number of cars with at least one lap.
        green_pace_cutoff: Seconds above which a green lap is anomalous.
        cars: Cars keyed by decimal car number string.
        class_groups: Car numbers per class.
        class_car_counts: Car count per class.
        fcy: Ascending caution windows as (start_lap, end_lap).
        make_groups: Optional car numbers per manufacturer.
    """

    max_lap: int
    total_cars: int
    green_pace_cutoff: float
    cars: Mapping[str, CarRecord]
    class_groups: Mapping[str, tuple[int, ...]]
    class_car_counts: Mapping[str, int]
    fcy: tuple[FcyWindow, ...] = ()
    make_groups: Mapping[str, tuple[int, ...]] | None = None


@dataclass(frozen=True)
class PitMarker:
    """Chart marker for a pit stop or a penalty."""

    lap: int
    label: str
    color: str
    y_offset: float = 0
    data_value: float = 0


@dataclass(frozen=True)
class SettleMarker:
    """Chart marker where a car's position stabilized."""

    lap: int
    position: int
    label: str
    subtext: str
    color: str


@dataclass(frozen=True)
class CarAnnotations:
    """Annotation layer for one car."""

    reasons: Mapping[str, str] = field(default_factory=dict)
    pits: tuple[PitMarker, ...] = ()
    settles: tuple[SettleMarker, ...] = ()


AnnotationSet = Mapping[str, CarAnnotations]


@dataclass(frozen=True)
class ParsedResult:
    """Output of one format parser run."""

    data: CanonicalRaceData
    annotations: AnnotationSet
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class FileSlot:
    """Named input a format parser expects.

    Attributes:
        key: Slot key used in the files mapping.
        label: Human-readable label.
        description: Help text for the slot.
        required: Whether parsing fails without it.
        accept: Accepted file extensions.
    """

    key: str
    label: str
    description: str
    required: bool
    accept: str = ".csv"


@dataclass(frozen=True)
class FormatInfo:
    """Registry introspection row for one format."""

    format_id: str
    name: str
    series: str
    description: str
    implemented: bool
    file_slots: tuple[FileSlot, ...]


@dataclass(frozen=True)
class RaceMetadata:
    """Descriptive metadata for an ingested race.

    Attributes:
        name: Event name.
        date: Race date.
        track: Circuit name.
        series: Sanctioning series.
        season: Season year.
        premium: Whether the race is premium content.
        status: Publication status.
    """

    name: str
    date: date
    track: str
    series: str
    season: int
    premium: bool = False
    status: RaceStatus = DEFAULT_RACE_STATUS


@dataclass(frozen=True)
class StoredRace:
    """Race blob as persisted by the race store."""

    race_id: str
    metadata: RaceMetadata
    created_by: str
    created_at: datetime
    data: CanonicalRaceData
    annotations: AnnotationSet


@dataclass(frozen=True)
class EntryRow:
    """Derived per-car row."""

    race_id: str
    car_number: str
    team_name: str
    driver_names: str
    car_class: str
    finish_pos: int
    finish_pos_class: int
    laps_completed: int


@dataclass(frozen=True)
class LapRow:
    """Derived per-lap row."""

    race_id: str
    car_number: str
    lap_number: int
    position: int
    class_position: int
    lap_time_formatted: str
    lap_time_sec: float
    lap_time_ms: int
    flag: str
    speed: float | None
    pit_stop: bool


@dataclass(frozen=True)
class IngestResult:
    """Outcome of an ingest or reprocess call."""

    race_id: str
    entries_created: int
    laps_created: int
    warnings: tuple[str, ...] = ()
