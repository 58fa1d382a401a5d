"""Lance persistence for derived race rows.

Entry and lap rows are written as Arrow record batches into Lance
datasets and read back as typed rows.
"""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Sequence

import lance
import pyarrow as pa

from core.errors import LapchartStoreError
from core.logging_config import get_logger
from core.types import EntryRow, LapRow
from store.race_rows import iter_batches

_LOGGER = get_logger(__name__)

ENTRY_SCHEMA = pa.schema(
    [
        pa.field("race_id", pa.string(), nullable=False),
        pa.field("car_number", pa.string(), nullable=False),
        pa.field("team_name", pa.string(), nullable=False),
        pa.field("driver_names", pa.string(), nullable=False),
        pa.field("car_class", pa.string(), nullable=False),
        pa.field("finish_pos", pa.int32(), nullable=False),
        pa.field("finish_pos_class", pa.int32(), nullable=False),
        pa.field("laps_completed", pa.int32(), nullable=False),
    ]
)

LAP_SCHEMA = pa.schema(
    [
        pa.field("race_id", pa.string(), nullable=False),
        pa.field("car_number", pa.string(), nullable=False),
        pa.field("lap_number", pa.int32(), nullable=False),
        pa.field("position", pa.int32(), nullable=False),
        pa.field("class_position", pa.int32(), nullable=False),
        pa.field("lap_time_formatted", pa.string(), nullable=False),
        pa.field("lap_time_sec", pa.float64(), nullable=False),
        pa.field("lap_time_ms", pa.int64(), nullable=False),
        pa.field("flag", pa.string(), nullable=False),
        pa.field("speed", pa.float64(), nullable=True),
        pa.field("pit_stop", pa.bool_(), nullable=False),
    ]
)


def write_entry_rows(dataset_path: Path, rows: Sequence[EntryRow]) -> int:
    """Write entry rows to a new Lance dataset.

    Returns:
        Number of rows written.

    Raises:
        LapchartStoreError: If the dataset cannot be written.
    """
    try:
        table = pa.Table.from_pylist([asdict(row) for row in rows], schema=ENTRY_SCHEMA)
    except (ValueError, OverflowError, pa.ArrowException) as error:
        raise LapchartStoreError(
            f"Failed to convert entry rows for {dataset_path}: {error}. "
            "Check finish positions and lap counts in the race data."
        ) from error
    _write_dataset(dataset_path, table)
    return len(rows)


def write_lap_rows(dataset_path: Path, rows: Sequence[LapRow], batch_size: int) -> int:
    """Write lap rows to a new Lance dataset in fixed-size batches.

    Args:
        dataset_path: Target ``.lance`` directory.
        rows: Lap rows in persistence order.
        batch_size: Maximum rows per record batch.

    Returns:
        Number of rows written.

    Raises:
        LapchartStoreError: If the dataset cannot be written.
    """
    if not rows:
        _write_dataset(dataset_path, LAP_SCHEMA.empty_table())
        return 0
    race_id = rows[0].race_id

    def record_batches():
        for batch_index, batch in enumerate(iter_batches(rows, batch_size)):
            try:
                record_batch = pa.RecordBatch.from_pylist(
                    [asdict(row) for row in batch], schema=LAP_SCHEMA
                )
            except (ValueError, OverflowError, pa.ArrowException) as error:
                raise LapchartStoreError(
                    f"Failed to convert lap batch {batch_index} for {dataset_path}: {error}. "
                    "Check lap numbers and positions in the race data."
                ) from error
            yield record_batch
            _LOGGER.info(
                "lap_batch_written",
                race_id=race_id,
                batch_index=batch_index,
                row_count=len(batch),
            )

    reader = pa.RecordBatchReader.from_batches(LAP_SCHEMA, record_batches())
    _write_dataset(dataset_path, reader)
    return len(rows)


def read_entry_rows(dataset_path: Path) -> list[EntryRow]:
    """Read entry rows from a Lance dataset."""
    return [EntryRow(**row) for row in _read_dataset(dataset_path)]


def read_lap_rows(dataset_path: Path) -> list[LapRow]:
    """Read lap rows from a Lance dataset."""
    return [LapRow(**row) for row in _read_dataset(dataset_path)]


def _write_dataset(dataset_path: Path, data: pa.Table | pa.RecordBatchReader) -> None:
    try:
        lance.write_dataset(data, str(dataset_path), mode="create")
    except (OSError, ValueError, pa.ArrowException) as error:
        raise LapchartStoreError(
            f"Failed to write Lance dataset at {dataset_path}: {error}. "
            "Validate lance/pyarrow compatibility and retry."
        ) from error


def _read_dataset(dataset_path: Path) -> list[dict]:
    if not dataset_path.exists():
        raise LapchartStoreError(
            f"Missing Lance dataset at {dataset_path}. Reprocess the race to rebuild its rows."
        )
    try:
        return lance.dataset(str(dataset_path)).to_table().to_pylist()
    except (OSError, ValueError, pa.ArrowException) as error:
        raise LapchartStoreError(
            f"Failed to read Lance dataset at {dataset_path}: {error}. "
            "Reprocess the race to rebuild its rows."
        ) from error
