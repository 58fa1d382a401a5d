"""Green-flag pace threshold.

The cutoff marks green-flag laps slow enough to be anomalous; it is
stored alongside the race for chart highlighting, never as a filter.
"""

from __future__ import annotations

import math

from core.constants import (
    FLAG_GREEN,
    GREEN_PACE_FALLBACK_SECONDS,
    GREEN_PACE_MIN_LAP_SECONDS,
    GREEN_PACE_MIN_SAMPLES,
    GREEN_PACE_MULTIPLIER,
    GREEN_PACE_PERCENTILE,
)
from core.types import CanonicalRaceData


def compute_green_pace_cutoff(data: CanonicalRaceData) -> float:
    """Return the 95th-percentile green lap time scaled by 1.1.

    Samples are green, non-pit laps slower than one second. Races with
    fewer than eleven samples fall back to 300 seconds.
    """
    samples = sorted(
        lap.lap_seconds
        for car in data.cars.values()
        for lap in car.laps
        if lap.flag == FLAG_GREEN and not lap.pit and lap.lap_seconds > GREEN_PACE_MIN_LAP_SECONDS
    )
    if len(samples) < GREEN_PACE_MIN_SAMPLES:
        return GREEN_PACE_FALLBACK_SECONDS
    return samples[math.floor(len(samples) * GREEN_PACE_PERCENTILE)] * GREEN_PACE_MULTIPLIER
