"""Race store for canonical blobs and derived rows.

This module persists one directory per race holding the canonical JSON
blob and the entry/lap Lance datasets. Every write is staged and swapped
in whole, so readers never observe a partial set of rows.
"""

from __future__ import annotations

import hashlib
import json
import os
import shutil
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from pydantic import ValidationError

from core.config import LapchartConfig
from core.constants import (
    ENTRIES_DATASET_NAME,
    LAPS_DATASET_NAME,
    RACE_FILE_NAME,
    RACES_DIR_NAME,
    STAGING_DIR_NAME,
)
from core.errors import LapchartStoreError, RaceNotFoundError
from core.logging_config import get_logger
from core.types import AnnotationSet, CanonicalRaceData, EntryRow, LapRow, RaceMetadata, StoredRace
from store.lance_tables import read_entry_rows, read_lap_rows, write_entry_rows, write_lap_rows
from store.race_payload import stored_race_from_payload, stored_race_to_payload
from store.race_rows import build_entry_rows, build_lap_rows

_LOGGER = get_logger(__name__)

_RACE_LOCKS_GUARD = threading.Lock()


@dataclass
class _RaceLock:
    """Per-race lock with the number of threads holding or awaiting it."""

    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


_RACE_LOCKS: dict[str, _RaceLock] = {}


@dataclass(frozen=True)
class RowCounts:
    """Number of derived rows written for one race."""

    entries: int
    laps: int


class RaceStore:
    """Filesystem race store.

    This class owns race directories, the staging area, and the
    per-race locks that serialize reads and writes of one race.
    """

    def __init__(self, config: LapchartConfig) -> None:
        """Initialize race store from config.

        Args:
            config: Runtime configuration.
        """
        self._config = config
        self._races_root = config.data_root / RACES_DIR_NAME
        self._staging_root = self._races_root / STAGING_DIR_NAME
        self._races_root.mkdir(parents=True, exist_ok=True)

    @property
    def data_root(self) -> Path:
        """Return configured data root."""
        return self._config.data_root

    def create_race(
        self,
        metadata: RaceMetadata,
        data: CanonicalRaceData,
        annotations: AnnotationSet,
        created_by: str,
    ) -> tuple[StoredRace, RowCounts]:
        """Persist a new race blob with its derived rows.

        Args:
            metadata: Race metadata.
            data: Validated canonical race data.
            annotations: Validated annotation set.
            created_by: Actor recorded on the race.

        Returns:
            Stored race and written row counts.

        Raises:
            LapchartStoreError: If persistence fails.
        """
        race = StoredRace(
            race_id=_build_race_id(metadata),
            metadata=metadata,
            created_by=created_by,
            created_at=datetime.now(timezone.utc),
            data=data,
            annotations=annotations,
        )
        with _race_lock(race.race_id):
            counts = self._commit(race)
        return race, counts

    def rebuild_rows(self, race_id: str) -> tuple[StoredRace, RowCounts]:
        """Delete and recreate all derived rows from the stored blob.

        Args:
            race_id: Stored race id.

        Returns:
            Stored race and written row counts.

        Raises:
            RaceNotFoundError: If the race does not exist.
            LapchartStoreError: If the replacement fails.
        """
        with _race_lock(race_id):
            race = self._read_race(race_id)
            counts = self._commit(race)
        return race, counts

    def replace_race_data(
        self,
        race_id: str,
        data: CanonicalRaceData,
        annotations: AnnotationSet,
    ) -> tuple[StoredRace, RowCounts]:
        """Replace the stored blob of an existing race and rebuild its rows.

        Args:
            race_id: Stored race id.
            data: New canonical race data.
            annotations: New annotation set.

        Returns:
            Updated stored race and written row counts.

        Raises:
            RaceNotFoundError: If the race does not exist.
            LapchartStoreError: If the replacement fails.
        """
        with _race_lock(race_id):
            previous = self._read_race(race_id)
            race = StoredRace(
                race_id=race_id,
                metadata=previous.metadata,
                created_by=previous.created_by,
                created_at=previous.created_at,
                data=data,
                annotations=annotations,
            )
            counts = self._commit(race)
        return race, counts

    def load_race(self, race_id: str) -> StoredRace:
        """Load one stored race blob.

        Raises:
            RaceNotFoundError: If the race does not exist.
            LapchartStoreError: If the blob is unreadable.
        """
        with _race_lock(race_id):
            return self._read_race(race_id)

    def _read_race(self, race_id: str) -> StoredRace:
        race_file = self._race_dir(race_id) / RACE_FILE_NAME
        if not race_file.exists():
            raise RaceNotFoundError(
                f"Race '{race_id}' not found under {self._races_root}. "
                "Run 'lapchart races' to list stored races."
            )
        try:
            payload = json.loads(race_file.read_text(encoding="utf-8"))
            return stored_race_from_payload(payload)
        except (OSError, json.JSONDecodeError, KeyError, ValidationError) as error:
            raise LapchartStoreError(
                f"Failed to load race blob {race_file}: {error}. "
                "Re-ingest or reparse the race to rewrite it."
            ) from error

    def list_races(self) -> list[StoredRace]:
        """List stored races ordered by creation time."""
        races = [
            self.load_race(race_dir.name)
            for race_dir in self._races_root.iterdir()
            if race_dir.is_dir() and not race_dir.name.startswith(".")
        ]
        return sorted(races, key=lambda race: (race.created_at, race.race_id))

    def load_entries(self, race_id: str) -> list[EntryRow]:
        """Load derived entry rows for one race."""
        with _race_lock(race_id):
            return read_entry_rows(self._existing_race_dir(race_id) / ENTRIES_DATASET_NAME)

    def load_laps(self, race_id: str) -> list[LapRow]:
        """Load derived lap rows for one race."""
        with _race_lock(race_id):
            return read_lap_rows(self._existing_race_dir(race_id) / LAPS_DATASET_NAME)

    def _commit(self, race: StoredRace) -> RowCounts:
        """Stage a full race directory and swap it in.

        The caller must hold the race lock.
        """
        staging_dir = self._staging_root / f"{race.race_id}-{uuid.uuid4().hex[:8]}"
        try:
            staging_dir.mkdir(parents=True)
            counts = _write_race_dir(staging_dir, race, self._config.lap_batch_size)
            self._swap_in(race.race_id, staging_dir)
        except LapchartStoreError:
            shutil.rmtree(staging_dir, ignore_errors=True)
            raise
        except Exception as error:
            shutil.rmtree(staging_dir, ignore_errors=True)
            raise LapchartStoreError(
                f"Failed to replace rows for race '{race.race_id}': {error}. "
                "Previous rows are unchanged; retry the operation."
            ) from error
        _LOGGER.info(
            "race_rows_replaced",
            race_id=race.race_id,
            entries=counts.entries,
            laps=counts.laps,
        )
        return counts

    def _swap_in(self, race_id: str, staging_dir: Path) -> None:
        live_dir = self._race_dir(race_id)
        if not live_dir.exists():
            os.replace(staging_dir, live_dir)
            return
        trash_dir = self._staging_root / f"{race_id}-{uuid.uuid4().hex[:8]}.old"
        os.replace(live_dir, trash_dir)
        try:
            os.replace(staging_dir, live_dir)
        except OSError:
            os.replace(trash_dir, live_dir)
            raise
        shutil.rmtree(trash_dir, ignore_errors=True)

    def _race_dir(self, race_id: str) -> Path:
        if not race_id or race_id.startswith(".") or Path(race_id).name != race_id:
            raise RaceNotFoundError(
                f"Invalid race id '{race_id}'. Use an id printed by 'lapchart races'."
            )
        return self._races_root / race_id

    def _existing_race_dir(self, race_id: str) -> Path:
        race_dir = self._race_dir(race_id)
        if not race_dir.exists():
            raise RaceNotFoundError(
                f"Race '{race_id}' not found under {self._races_root}. "
                "Run 'lapchart races' to list stored races."
            )
        return race_dir


def _write_race_dir(race_dir: Path, race: StoredRace, lap_batch_size: int) -> RowCounts:
    """Write blob, entry rows and lap rows into one directory."""
    payload = stored_race_to_payload(race)
    (race_dir / RACE_FILE_NAME).write_text(
        json.dumps(payload, indent=2), encoding="utf-8"
    )
    entries = write_entry_rows(
        race_dir / ENTRIES_DATASET_NAME, build_entry_rows(race.race_id, race.data)
    )
    laps = write_lap_rows(
        race_dir / LAPS_DATASET_NAME,
        build_lap_rows(race.race_id, race.data),
        lap_batch_size,
    )
    return RowCounts(entries=entries, laps=laps)


@contextmanager
def _race_lock(race_id: str) -> Iterator[None]:
    """Hold the lock of one race; the registry entry is dropped once unused."""
    with _RACE_LOCKS_GUARD:
        entry = _RACE_LOCKS.setdefault(race_id, _RaceLock())
        entry.holders += 1
    try:
        with entry.lock:
            yield
    finally:
        with _RACE_LOCKS_GUARD:
            entry.holders -= 1
            if entry.holders == 0:
                del _RACE_LOCKS[race_id]


def _build_race_id(metadata: RaceMetadata) -> str:
    """Build a unique race id from metadata and timestamp.

    Args:
        metadata: Race metadata.

    Returns:
        Race id string.
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    digest_seed = "|".join(
        (metadata.series, metadata.name, metadata.date.isoformat(), uuid.uuid4().hex)
    )
    digest = hashlib.sha256(digest_seed.encode("utf-8")).hexdigest()[:10]
    return f"race-{timestamp}-{digest}"
