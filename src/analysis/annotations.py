"""Position-change annotation engine.

This module explains every position change with crossover reasons,
marks pit stops, and places settle markers where a car's position
stabilized after a caution window or a green-flag pit stop.
Parser-supplied annotations are merged in, never discarded.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Mapping, Sequence

from analysis.fcy_windows import fcy_lap_set
from core.constants import (
    FCY_SETTLE_WINDOW_LAPS,
    MAX_LISTED_CLASS_PITTERS,
    MAX_LISTED_CROSSOVERS,
    PIT_MARKER_COLOR,
    PIT_REASON_FALLBACK_LAPS,
    PIT_REASON_WINDOW_LAPS,
    PIT_SETTLE_FALLBACK_LAPS,
    PIT_SETTLE_WINDOW_LAPS,
    SETTLE_GAINED_COLOR,
    SETTLE_HELD_COLOR,
    SETTLE_LOST_COLOR,
    SETTLE_PROXIMITY_LAPS,
    SHORT_TEAM_MAX_CHARS,
)
from core.types import (
    AnnotationSet,
    CanonicalRaceData,
    CarAnnotations,
    CarRecord,
    LapRecord,
    PitMarker,
    SettleMarker,
)

CrossoverReason = Literal["on pace", "pitted", "yellow"]


@dataclass(frozen=True)
class Crossover:
    """Another car that swapped places with the focus car on one lap."""

    number: int
    reason: CrossoverReason


@dataclass(frozen=True)
class _RaceContext:
    positions: Mapping[int, Mapping[int, int]]
    pit_laps: Mapping[int, frozenset[int]]
    pitters_on_lap: Mapping[int, tuple[int, ...]]
    car_classes: Mapping[int, str]
    teams: Mapping[int, str]
    car_numbers: tuple[int, ...]
    fcy_laps: frozenset[int]


def generate_annotations(
    data: CanonicalRaceData,
    existing: AnnotationSet | None = None,
) -> dict[str, CarAnnotations]:
    """Generate pit markers, settle markers, and reasons for every car.

    Args:
        data: Canonical race data.
        existing: Parser-supplied annotations to merge with. Their
            reasons are appended to generated ones, their pit markers
            win on the same lap, and any supplied settles disable
            settle inference for that car.

    Returns:
        Annotations keyed by car number string.
    """
    context = _build_context(data)
    prior_annotations = existing or {}
    return {
        car_key: _annotate_car(
            context, data, car, prior_annotations.get(car_key, CarAnnotations())
        )
        for car_key, car in data.cars.items()
    }


def _build_context(data: CanonicalRaceData) -> _RaceContext:
    positions: dict[int, dict[int, int]] = {}
    pit_laps: dict[int, frozenset[int]] = {}
    pitters_on_lap: dict[int, list[int]] = {}
    for car in data.cars.values():
        positions[car.number] = {lap.lap: lap.position for lap in car.laps}
        pit_laps[car.number] = frozenset(lap.lap for lap in car.laps if lap.pit)
        for lap in car.laps:
            if lap.pit:
                pitters_on_lap.setdefault(lap.lap, []).append(car.number)
    return _RaceContext(
        positions=positions,
        pit_laps=pit_laps,
        pitters_on_lap={lap: tuple(numbers) for lap, numbers in pitters_on_lap.items()},
        car_classes={car.number: car.car_class for car in data.cars.values()},
        teams={car.number: car.team for car in data.cars.values()},
        car_numbers=tuple(car.number for car in data.cars.values()),
        fcy_laps=fcy_lap_set(data.fcy),
    )


def _annotate_car(
    context: _RaceContext,
    data: CanonicalRaceData,
    car: CarRecord,
    prior: CarAnnotations,
) -> CarAnnotations:
    laps = car.laps
    prior_reasons = dict(prior.reasons)
    prior_pit_laps = {marker.lap for marker in prior.pits}
    reasons: dict[str, str] = {}
    pits: list[PitMarker] = []
    pit_count = 0
    for lap_index in range(1, len(laps)):
        current = laps[lap_index]
        previous = laps[lap_index - 1]
        position_delta = previous.position - current.position
        if current.pit:
            pit_count += 1
            if current.lap not in prior_pit_laps:
                pits.append(
                    PitMarker(lap=current.lap, label=f"Pit {pit_count}", color=PIT_MARKER_COLOR)
                )
        if position_delta == 0 and not current.pit:
            continue
        reason = _describe_lap(context, car, laps, lap_index, position_delta)
        lap_key = str(current.lap)
        if reason and prior_reasons.get(lap_key):
            reasons[lap_key] = f"{reason}; {prior_reasons[lap_key]}"
        elif reason:
            reasons[lap_key] = reason
        elif prior_reasons.get(lap_key):
            reasons[lap_key] = prior_reasons[lap_key]
    for lap_key, prior_reason in prior_reasons.items():
        if not reasons.get(lap_key):
            reasons[lap_key] = prior_reason
    settles: list[SettleMarker] = []
    if not prior.settles:
        settles = _build_fcy_settles(context, data, laps)
        settles.extend(_build_pit_settles(context, laps, settles))
    merged_pits = sorted(
        [*prior.pits, *(marker for marker in pits if marker.lap not in prior_pit_laps)],
        key=lambda marker: marker.lap,
    )
    prior_settle_laps = {marker.lap for marker in prior.settles}
    merged_settles = sorted(
        [*prior.settles, *(marker for marker in settles if marker.lap not in prior_settle_laps)],
        key=lambda marker: marker.lap,
    )
    return CarAnnotations(reasons=reasons, pits=tuple(merged_pits), settles=tuple(merged_settles))


def _describe_lap(
    context: _RaceContext,
    car: CarRecord,
    laps: Sequence[LapRecord],
    lap_index: int,
    position_delta: int,
) -> str:
    current = laps[lap_index]
    if current.pit:
        return _build_pit_reason(context, car, laps, lap_index)
    gained, lost = _find_crossovers(context, car.number, laps[lap_index - 1], current)
    if position_delta > 0:
        return _build_gain_reason(context, position_delta, gained)
    return _build_loss_reason(context, position_delta, lost)


def _find_crossovers(
    context: _RaceContext,
    number: int,
    previous: LapRecord,
    current: LapRecord,
) -> tuple[list[Crossover], list[Crossover]]:
    """Find cars the focus car passed and cars that passed it."""
    gained: list[Crossover] = []
    lost: list[Crossover] = []
    for other in context.car_numbers:
        if other == number:
            continue
        other_positions = context.positions.get(other, {})
        other_previous = other_positions.get(previous.lap)
        other_current = other_positions.get(current.lap)
        if other_previous is None or other_current is None:
            continue
        if other_previous < previous.position and other_current > current.position:
            gained.append(Crossover(other, _classify_crossover(context, other, current.lap)))
        if other_previous > previous.position and other_current < current.position:
            lost.append(Crossover(other, _classify_crossover(context, other, current.lap)))
    return gained, lost


def _classify_crossover(context: _RaceContext, other: int, lap_number: int) -> CrossoverReason:
    if lap_number in context.pit_laps.get(other, frozenset()):
        return "pitted"
    if lap_number in context.fcy_laps:
        return "yellow"
    return "on pace"


def _build_gain_reason(context: _RaceContext, delta: int, gained: list[Crossover]) -> str:
    if not gained:
        return f"Gained {delta} position{'s' if delta > 1 else ''}"
    if len(gained) > MAX_LISTED_CROSSOVERS:
        return f"Gained {delta} positions"
    return "Gained: passed " + "; ".join(_describe_crossover(context, item) for item in gained)


def _build_loss_reason(context: _RaceContext, delta: int, lost: list[Crossover]) -> str:
    lost_count = abs(delta)
    if not lost:
        return f"Lost {lost_count} position{'s' if lost_count > 1 else ''}"
    if len(lost) > MAX_LISTED_CROSSOVERS:
        return f"Lost {lost_count} positions"
    return "Lost: " + "; ".join(_describe_crossover(context, item) for item in lost)


def _describe_crossover(context: _RaceContext, crossover: Crossover) -> str:
    label = f"#{crossover.number}{short_team(context.teams.get(crossover.number))}"
    if crossover.reason == "yellow":
        return f"{label} (yellow)"
    return f"{label} {crossover.reason}"


def _build_pit_reason(
    context: _RaceContext,
    car: CarRecord,
    laps: Sequence[LapRecord],
    lap_index: int,
) -> str:
    details: list[str] = []
    settle_lap = _find_settle_lap(
        laps, lap_index, context.fcy_laps, PIT_REASON_WINDOW_LAPS, PIT_REASON_FALLBACK_LAPS
    )
    if settle_lap is not None:
        cycle_net = laps[lap_index - 1].position - settle_lap.position
        if cycle_net > 0:
            details.append(f"Gained {cycle_net} in pit cycle")
        elif cycle_net < 0:
            details.append(f"Lost {abs(cycle_net)} in pit cycle")
    lap_number = laps[lap_index].lap
    class_pitters = [
        other
        for other in context.pitters_on_lap.get(lap_number, ())
        if other != car.number and context.car_classes.get(other) == car.car_class
    ]
    if len(class_pitters) > MAX_LISTED_CLASS_PITTERS:
        details.append(f"{len(class_pitters)} class cars also pitting")
    elif class_pitters:
        details.append("also pitting: " + ", ".join(f"#{other}" for other in class_pitters))
    if not details:
        return "Pit stop"
    return "Pit stop: " + "; ".join(details)


def _find_settle_lap(
    laps: Sequence[LapRecord],
    lap_index: int,
    fcy_laps: frozenset[int],
    window: int,
    fallback_window: int,
) -> LapRecord | None:
    """Find the first clean lap after a pit stop.

    Looks for a green, non-pit lap within ``window`` laps, then for any
    non-pit lap within ``fallback_window`` laps.
    """
    for candidate in laps[lap_index + 1 : lap_index + window + 1]:
        if not candidate.pit and candidate.lap not in fcy_laps:
            return candidate
    for candidate in laps[lap_index + 1 : lap_index + fallback_window + 1]:
        if not candidate.pit:
            return candidate
    return None


def _build_fcy_settles(
    context: _RaceContext,
    data: CanonicalRaceData,
    laps: Sequence[LapRecord],
) -> list[SettleMarker]:
    laps_by_number = {lap.lap: lap for lap in laps}
    settles: list[SettleMarker] = []
    for start, end in data.fcy:
        before = laps_by_number.get(start - 1) or laps_by_number.get(start)
        if before is None:
            continue
        settle_lap = None
        for lap_number in range(end + 1, min(end + FCY_SETTLE_WINDOW_LAPS, data.max_lap) + 1):
            candidate = laps_by_number.get(lap_number)
            if candidate is not None and not candidate.pit and lap_number not in context.fcy_laps:
                settle_lap = candidate
                break
        if settle_lap is None:
            settle_lap = next((lap for lap in laps if lap.lap > end and not lap.pit), None)
        if settle_lap is None:
            continue
        settles.append(make_settle(settle_lap.lap, settle_lap.position, before.position))
    return settles


def _build_pit_settles(
    context: _RaceContext,
    laps: Sequence[LapRecord],
    fcy_settles: Sequence[SettleMarker],
) -> list[SettleMarker]:
    settles: list[SettleMarker] = []
    for lap_index in range(1, len(laps)):
        pit_lap = laps[lap_index]
        if not pit_lap.pit or pit_lap.lap in context.fcy_laps:
            continue
        settle_lap = _find_settle_lap(
            laps, lap_index, context.fcy_laps, PIT_SETTLE_WINDOW_LAPS, PIT_SETTLE_FALLBACK_LAPS
        )
        if settle_lap is None:
            continue
        if any(
            abs(marker.lap - settle_lap.lap) <= SETTLE_PROXIMITY_LAPS
            for marker in (*fcy_settles, *settles)
        ):
            continue
        settles.append(
            make_settle(settle_lap.lap, settle_lap.position, laps[lap_index - 1].position)
        )
    return settles


def make_settle(lap_number: int, settled_position: int, previous_position: int) -> SettleMarker:
    """Build a settle marker coloured by net positions gained or lost."""
    net = previous_position - settled_position
    if net > 0:
        subtext, color = f"Was P{previous_position} · Gained {net}", SETTLE_GAINED_COLOR
    elif net < 0:
        subtext, color = f"Was P{previous_position} · Lost {abs(net)}", SETTLE_LOST_COLOR
    else:
        subtext, color = f"Was P{previous_position} · Held", SETTLE_HELD_COLOR
    return SettleMarker(
        lap=lap_number,
        position=settled_position,
        label=f"Settled P{settled_position}",
        subtext=subtext,
        color=color,
    )


def short_team(team: str | None) -> str:
    """Return a short, space-prefixed team label for reason text."""
    if not team or not team.strip():
        return ""
    trimmed = team.strip()
    if len(trimmed) <= SHORT_TEAM_MAX_CHARS:
        return f" {trimmed}"
    words = trimmed.split()
    if len(words) >= 2:
        return f" {words[0]} {words[1]}"
    return f" {trimmed[:SHORT_TEAM_MAX_CHARS]}"
