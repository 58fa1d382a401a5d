"""Race payload validation and cross-checks.

Canonical race data must match the schema or the call fails; annotation
problems and internal inconsistencies only produce warnings.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from core.constants import MAX_ANNOTATION_ISSUES
from core.errors import RaceDataValidationError
from core.schemas import AnnotationSetModel, RaceDataModel, RaceMetadataModel
from core.types import AnnotationSet, CanonicalRaceData, CarAnnotations, RaceMetadata
from store.race_payload import annotations_from_model, metadata_from_model, race_data_from_model


@dataclass(frozen=True)
class ValidatedRace:
    """Validated race data with accumulated warnings."""

    data: CanonicalRaceData
    annotations: AnnotationSet
    warnings: tuple[str, ...]


def validate(raw_data: Any, raw_annotations: Any = None) -> ValidatedRace:
    """Validate race data and annotations, then cross-check the data.

    Args:
        raw_data: Decoded race data JSON.
        raw_annotations: Decoded annotation JSON, optional.

    Returns:
        Typed data, annotations, and warnings in discovery order.

    Raises:
        RaceDataValidationError: If race data does not match the schema.
    """
    data = validate_race_data(raw_data)
    annotations, annotation_warnings = validate_annotations(raw_annotations)
    return ValidatedRace(
        data=data,
        annotations=annotations,
        warnings=(*annotation_warnings, *cross_check(data)),
    )


def validate_race_data(raw_data: Any) -> CanonicalRaceData:
    """Validate decoded race data against the canonical schema.

    Raises:
        RaceDataValidationError: Listing every ``path: message`` issue.
    """
    try:
        model = RaceDataModel.model_validate(raw_data)
    except ValidationError as error:
        issues = _format_issues(error)
        raise RaceDataValidationError(
            "Race data validation failed:\n" + "\n".join(issues), issues
        ) from error
    return race_data_from_model(model)


def validate_annotations(raw_annotations: Any) -> tuple[dict[str, CarAnnotations], list[str]]:
    """Validate optional annotations, degrading to an empty set on failure.

    Returns:
        Annotations and at most one warning describing schema issues.
    """
    if not raw_annotations:
        return {}, []
    try:
        model = AnnotationSetModel.model_validate(raw_annotations)
    except ValidationError as error:
        issues = _format_issues(error)[:MAX_ANNOTATION_ISSUES]
        return {}, [f"Annotation data had validation issues: {'; '.join(issues)}"]
    return annotations_from_model(model), []


def validate_metadata(raw_metadata: Any) -> RaceMetadata:
    """Validate upload metadata.

    Raises:
        RaceDataValidationError: If metadata fields are missing or out of range.
    """
    try:
        model = RaceMetadataModel.model_validate(raw_metadata)
    except ValidationError as error:
        issues = _format_issues(error)
        raise RaceDataValidationError(
            "Race metadata validation failed:\n" + "\n".join(issues), issues
        ) from error
    return metadata_from_model(model)


def cross_check(data: CanonicalRaceData) -> list[str]:
    """Return consistency warnings for schema-valid race data."""
    warnings: list[str] = []
    if len(data.cars) != data.total_cars:
        warnings.append(
            f"totalCars ({data.total_cars}) doesn't match actual car count ({len(data.cars)})"
        )
    for car_class, numbers in data.class_groups.items():
        for number in numbers:
            car = data.cars.get(str(number))
            if car is None:
                warnings.append(f'Car #{number} in classGroup "{car_class}" not found in car data')
            elif car.car_class != car_class:
                warnings.append(
                    f'Car #{number} class "{car.car_class}" doesn\'t match classGroup "{car_class}"'
                )
    grouped = {number for numbers in data.class_groups.values() for number in numbers}
    for car in data.cars.values():
        if car.number not in grouped:
            warnings.append(f'Car #{car.number} (class "{car.car_class}") is not in any classGroup')
    for car_class, count in data.class_car_counts.items():
        group_size = len(data.class_groups.get(car_class, ()))
        if count != group_size:
            warnings.append(
                f'classCarCounts["{car_class}"] ({count}) doesn\'t match classGroup size '
                f"({group_size})"
            )
    warnings.extend(_check_fcy_windows(data))
    return warnings


def _check_fcy_windows(data: CanonicalRaceData) -> list[str]:
    warnings: list[str] = []
    previous_end: int | None = None
    for start, end in data.fcy:
        if start > end:
            warnings.append(f"Caution window [{start}, {end}] ends before it starts")
        if previous_end is not None and start <= previous_end:
            warnings.append(
                f"Caution window [{start}, {end}] overlaps or precedes the previous window"
            )
        previous_end = end if previous_end is None else max(previous_end, end)
    return warnings


def _format_issues(error: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in issue['loc'])}: {issue['msg']}"
        for issue in error.errors()
    ]
