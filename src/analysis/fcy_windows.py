"""Full-course-yellow window detection.

A lap counts as caution when a strict majority of the cars that
recorded it flagged it FCY; consecutive caution laps form one window.
"""

from __future__ import annotations

from typing import Iterable

from analysis.lap_index import build_lap_index
from core.constants import FCY_MAJORITY_FRACTION, FLAG_FCY
from core.types import CanonicalRaceData, FcyWindow


def detect_fcy_windows(data: CanonicalRaceData) -> list[FcyWindow]:
    """Detect caution windows by per-lap majority vote.

    Args:
        data: Canonical race data with per-lap flags.

    Returns:
        Ascending, non-overlapping ``(start_lap, end_lap)`` windows.
    """
    index = build_lap_index(data.cars)
    caution_laps: list[int] = []
    for lap_number in range(1, data.max_lap + 1):
        entries = index.entries(lap_number)
        if not entries:
            continue
        fcy_count = sum(1 for entry in entries if entry.lap.flag == FLAG_FCY)
        if fcy_count / len(entries) > FCY_MAJORITY_FRACTION:
            caution_laps.append(lap_number)
    return merge_laps_into_windows(caution_laps)


def merge_laps_into_windows(lap_numbers: Iterable[int]) -> list[FcyWindow]:
    """Merge lap numbers into windows of consecutive laps."""
    windows: list[FcyWindow] = []
    for lap_number in sorted(set(lap_numbers)):
        if windows and lap_number == windows[-1][1] + 1:
            windows[-1] = (windows[-1][0], lap_number)
        else:
            windows.append((lap_number, lap_number))
    return windows


def fcy_lap_set(windows: Iterable[FcyWindow]) -> frozenset[int]:
    """Expand windows into the set of caution lap numbers."""
    return frozenset(
        lap_number for start, end in windows for lap_number in range(start, end + 1)
    )
