"""JSON payload conversion for canonical race data.

This module maps typed race models to the persisted JSON surface and
back. Payload keys are consumed by the chart renderer and must not change.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from core.schemas import (
    AnnotationSetModel,
    CarAnnotationsModel,
    CarModel,
    RaceDataModel,
    RaceMetadataModel,
)
from core.types import (
    AnnotationSet,
    CanonicalRaceData,
    CarAnnotations,
    CarRecord,
    LapRecord,
    PitMarker,
    RaceMetadata,
    SettleMarker,
    StoredRace,
)


def race_data_to_payload(data: CanonicalRaceData) -> dict[str, Any]:
    """Serialize canonical race data into its JSON payload.

    Args:
        data: Canonical race data.

    Returns:
        JSON-safe dictionary with renderer field names.
    """
    payload: dict[str, Any] = {
        "maxLap": data.max_lap,
        "totalCars": data.total_cars,
        "greenPaceCutoff": data.green_pace_cutoff,
        "cars": {car_key: _car_to_payload(car) for car_key, car in data.cars.items()},
        "fcy": [[start, end] for start, end in data.fcy],
        "classGroups": {
            car_class: list(numbers) for car_class, numbers in data.class_groups.items()
        },
        "classCarCounts": dict(data.class_car_counts),
    }
    if data.make_groups is not None:
        payload["makeGroups"] = {make: list(numbers) for make, numbers in data.make_groups.items()}
    return payload


def _car_to_payload(car: CarRecord) -> dict[str, Any]:
    payload: dict[str, Any] = {"num": car.number, "team": car.team, "cls": car.car_class}
    if car.make:
        payload["make"] = car.make
    if car.vehicle:
        payload["vehicle"] = car.vehicle
    payload["finishPos"] = car.finish_pos
    payload["finishPosClass"] = car.finish_pos_class
    payload["laps"] = [_lap_to_payload(lap) for lap in car.laps]
    return payload


def _lap_to_payload(lap: LapRecord) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "l": lap.lap,
        "p": lap.position,
        "cp": lap.class_position,
        "lt": lap.lap_time,
        "ltSec": lap.lap_seconds,
        "flag": lap.flag,
        "pit": 1 if lap.pit else 0,
    }
    if lap.speed is not None:
        payload["spd"] = lap.speed
    return payload


def race_data_from_model(model: RaceDataModel) -> CanonicalRaceData:
    """Build canonical race data from a validated schema model."""
    return CanonicalRaceData(
        max_lap=model.maxLap,
        total_cars=model.totalCars,
        green_pace_cutoff=model.greenPaceCutoff,
        cars={car_key: _car_from_model(car) for car_key, car in model.cars.items()},
        class_groups={
            car_class: tuple(numbers) for car_class, numbers in model.classGroups.items()
        },
        class_car_counts=dict(model.classCarCounts),
        fcy=tuple((start, end) for start, end in model.fcy),
        make_groups=(
            {make: tuple(numbers) for make, numbers in model.makeGroups.items()}
            if model.makeGroups is not None
            else None
        ),
    )


def _car_from_model(model: CarModel) -> CarRecord:
    return CarRecord(
        number=model.num,
        team=model.team,
        car_class=model.cls,
        finish_pos=model.finishPos,
        finish_pos_class=model.finishPosClass,
        laps=tuple(
            LapRecord(
                lap=lap.l,
                position=lap.p,
                class_position=lap.cp,
                lap_time=lap.lt,
                lap_seconds=lap.ltSec,
                flag=lap.flag,
                pit=lap.pit == 1,
                speed=lap.spd,
            )
            for lap in model.laps
        ),
        make=model.make,
        vehicle=model.vehicle,
    )


def annotations_to_payload(annotations: AnnotationSet) -> dict[str, Any]:
    """Serialize an annotation set into its JSON payload."""
    return {
        car_key: {
            "reasons": dict(car_annotations.reasons),
            "pits": [
                {
                    "l": marker.lap,
                    "lb": marker.label,
                    "c": marker.color,
                    "yo": marker.y_offset,
                    "da": marker.data_value,
                }
                for marker in car_annotations.pits
            ],
            "settles": [
                {
                    "l": marker.lap,
                    "p": marker.position,
                    "lb": marker.label,
                    "su": marker.subtext,
                    "c": marker.color,
                }
                for marker in car_annotations.settles
            ],
        }
        for car_key, car_annotations in annotations.items()
    }


def annotations_from_model(model: AnnotationSetModel) -> dict[str, CarAnnotations]:
    """Build an annotation set from a validated schema model."""
    return {car_key: _car_annotations_from_model(item) for car_key, item in model.root.items()}


def _car_annotations_from_model(model: CarAnnotationsModel) -> CarAnnotations:
    return CarAnnotations(
        reasons=dict(model.reasons),
        pits=tuple(
            PitMarker(lap=pit.l, label=pit.lb, color=pit.c, y_offset=pit.yo, data_value=pit.da)
            for pit in model.pits
        ),
        settles=tuple(
            SettleMarker(
                lap=settle.l,
                position=settle.p,
                label=settle.lb,
                subtext=settle.su,
                color=settle.c,
            )
            for settle in model.settles
        ),
    )


def metadata_to_payload(metadata: RaceMetadata) -> dict[str, Any]:
    """Serialize race metadata with an ISO date."""
    return {
        "name": metadata.name,
        "date": metadata.date.isoformat(),
        "track": metadata.track,
        "series": metadata.series,
        "season": metadata.season,
        "premium": metadata.premium,
        "status": metadata.status,
    }


def metadata_from_model(model: RaceMetadataModel) -> RaceMetadata:
    """Build race metadata from a validated schema model."""
    return RaceMetadata(
        name=model.name,
        date=model.date,
        track=model.track,
        series=model.series,
        season=model.season,
        premium=model.premium,
        status=model.status,
    )


def stored_race_to_payload(race: StoredRace) -> dict[str, Any]:
    """Serialize the stored race blob."""
    return {
        "race_id": race.race_id,
        "metadata": metadata_to_payload(race.metadata),
        "created_by": race.created_by,
        "created_at": race.created_at.isoformat(),
        "chart_data": race_data_to_payload(race.data),
        "annotation_data": annotations_to_payload(race.annotations),
    }


def stored_race_from_payload(payload: Mapping[str, Any]) -> StoredRace:
    """Deserialize the stored race blob.

    Raises:
        pydantic.ValidationError: If a stored section no longer matches its schema.
        KeyError: If a stored section is missing.
    """
    return StoredRace(
        race_id=str(payload["race_id"]),
        metadata=metadata_from_model(RaceMetadataModel.model_validate(payload["metadata"])),
        created_by=str(payload["created_by"]),
        created_at=datetime.fromisoformat(str(payload["created_at"])),
        data=race_data_from_model(RaceDataModel.model_validate(payload["chart_data"])),
        annotations=annotations_from_model(
            AnnotationSetModel.model_validate(payload.get("annotation_data") or {})
        ),
    )
