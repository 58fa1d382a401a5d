"""Unit tests for Lance row persistence."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.errors import LapchartStoreError
from core.types import EntryRow, LapRow
from store.lance_tables import read_entry_rows, read_lap_rows, write_entry_rows, write_lap_rows


def _lap_row(lap_number: int, speed: float | None = None) -> LapRow:
    return LapRow(
        race_id="race-1",
        car_number="7",
        lap_number=lap_number,
        position=1,
        class_position=1,
        lap_time_formatted="1:30.500",
        lap_time_sec=90.5,
        lap_time_ms=90500,
        flag="GREEN",
        speed=speed,
        pit_stop=lap_number == 2,
    )


def test_write_lap_rows_round_trips_batches(tmp_path: Path) -> None:
    """Rows written across several batches should read back in order."""
    rows = [
        _lap_row(lap_number, speed=101.5 if lap_number == 1 else None)
        for lap_number in range(1, 6)
    ]
    dataset_path = tmp_path / "laps.lance"

    written = write_lap_rows(dataset_path, rows, batch_size=2)

    assert (written, read_lap_rows(dataset_path)) == (5, rows)


def test_write_lap_rows_accepts_empty_input(tmp_path: Path) -> None:
    """An empty lap list should still create a readable dataset."""
    dataset_path = tmp_path / "laps.lance"

    write_lap_rows(dataset_path, [], batch_size=500)

    assert read_lap_rows(dataset_path) == []


def test_write_entry_rows_round_trips(tmp_path: Path) -> None:
    """Entry rows should read back unchanged."""
    rows = [
        EntryRow(
            race_id="race-1",
            car_number="7",
            team_name="Alpha Racing",
            driver_names="",
            car_class="GT3",
            finish_pos=1,
            finish_pos_class=1,
            laps_completed=4,
        )
    ]
    dataset_path = tmp_path / "entries.lance"

    write_entry_rows(dataset_path, rows)

    assert read_entry_rows(dataset_path) == rows


def test_read_lap_rows_raises_for_missing_dataset(tmp_path: Path) -> None:
    """Missing datasets should raise a store error."""
    with pytest.raises(LapchartStoreError, match="Missing Lance dataset"):
        read_lap_rows(tmp_path / "missing.lance")
