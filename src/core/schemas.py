"""Pydantic schemas for the persisted race JSON surface.

These models mirror the JSON shapes consumed by the lap chart renderer.
Field names are a compatibility contract and must not be renamed.
"""

from __future__ import annotations

import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, RootModel, StrictInt, StrictStr, field_validator

from core.constants import MAX_ROW_INTEGER


class LapModel(BaseModel):
    """One lap entry in ``cars[*].laps``."""

    l: StrictInt = Field(gt=0, le=MAX_ROW_INTEGER)
    p: StrictInt = Field(gt=0, le=MAX_ROW_INTEGER)
    cp: StrictInt = Field(gt=0, le=MAX_ROW_INTEGER)
    lt: StrictStr
    ltSec: float = Field(gt=0)
    flag: Literal["GREEN", "FCY", "RED"]
    pit: StrictInt = Field(ge=0, le=1)
    spd: Optional[float] = Field(default=None, ge=0)

    @field_validator("pit", mode="before")
    @classmethod
    def pit_from_bool(cls, value: object) -> object:
        """Accept booleans for the 0/1 pit flag."""
        if isinstance(value, bool):
            return int(value)
        return value


class CarModel(BaseModel):
    """One car entry in ``cars``."""

    num: StrictInt = Field(gt=0)
    team: StrictStr = Field(min_length=1)
    cls: StrictStr = Field(min_length=1)
    make: Optional[StrictStr] = None
    vehicle: Optional[StrictStr] = None
    finishPos: StrictInt = Field(gt=0, le=MAX_ROW_INTEGER)
    finishPosClass: StrictInt = Field(gt=0, le=MAX_ROW_INTEGER)
    laps: list[LapModel] = Field(min_length=1)


class RaceDataModel(BaseModel):
    """Root canonical race data object."""

    maxLap: StrictInt = Field(gt=0, le=MAX_ROW_INTEGER)
    totalCars: StrictInt = Field(gt=0, le=MAX_ROW_INTEGER)
    greenPaceCutoff: float = Field(gt=0)
    cars: dict[str, CarModel]
    fcy: list[tuple[StrictInt, StrictInt]] = Field(default_factory=list)
    classGroups: dict[str, list[StrictInt]]
    classCarCounts: dict[str, StrictInt]
    makeGroups: Optional[dict[str, list[StrictInt]]] = None


class PitMarkerModel(BaseModel):
    """Pit or penalty marker."""

    l: StrictInt = Field(gt=0)
    lb: StrictStr
    c: StrictStr
    yo: float = 0
    da: float = 0


class SettleMarkerModel(BaseModel):
    """Settle marker."""

    l: StrictInt = Field(gt=0)
    p: StrictInt = Field(gt=0)
    lb: StrictStr
    su: StrictStr
    c: StrictStr


class CarAnnotationsModel(BaseModel):
    """Annotation layer for one car."""

    reasons: dict[str, StrictStr] = Field(default_factory=dict)
    pits: list[PitMarkerModel] = Field(default_factory=list)
    settles: list[SettleMarkerModel] = Field(default_factory=list)


class AnnotationSetModel(RootModel[dict[str, CarAnnotationsModel]]):
    """Annotations keyed by car number string."""


class RaceMetadataModel(BaseModel):
    """Upload metadata for one race."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=200)
    date: datetime.date
    track: str = Field(min_length=1, max_length=200)
    series: str = Field(min_length=1, max_length=100)
    season: int = Field(ge=2000, le=2100)
    premium: bool = False
    status: Literal["DRAFT", "PUBLISHED"] = "DRAFT"
