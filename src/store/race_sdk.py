"""Python SDK for race operations.

This module exposes high-level APIs for parsing, ingest, reprocess,
and race inspection backed by the race store.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Mapping

from core.config import LapchartConfig
from core.run_spec_execution import execute_run_spec_file
from core.types import (
    EntryRow,
    FormatInfo,
    IngestResult,
    LapRow,
    ParsedResult,
    RaceMetadata,
    StoredRace,
)
from ingest.input_reader import read_slot_files
from ingest.pipeline import (
    ingest_race,
    parse_and_ingest,
    parse_race_files,
    reparse_race,
    reprocess_race,
)
from parsers.registry import list_formats
from store.race_store import RaceStore


class LapchartClient:
    """Primary SDK entry point for race workflows."""

    def __init__(self, config: LapchartConfig | None = None) -> None:
        """Create SDK client.

        Args:
            config: Optional runtime configuration.
        """
        self._config = config or LapchartConfig.from_env()
        self._store = RaceStore(self._config)

    @property
    def config(self) -> LapchartConfig:
        """Return runtime configuration."""
        return self._config

    def formats(self) -> list[FormatInfo]:
        """List registered export formats."""
        return list_formats()

    def parse(self, format_id: str, files: Mapping[str, str]) -> ParsedResult:
        """Parse slot file texts with a registered format.

        Args:
            format_id: Registered format id.
            files: File text per slot key.

        Returns:
            Canonical data, annotations, and parser warnings.
        """
        return parse_race_files(format_id, files)

    def parse_files(self, format_id: str, slot_paths: Mapping[str, str | Path]) -> ParsedResult:
        """Read slot files from disk and parse them.

        Args:
            format_id: Registered format id.
            slot_paths: File path per slot key.

        Returns:
            Canonical data, annotations, and parser warnings.
        """
        return parse_race_files(format_id, read_slot_files(slot_paths))

    def ingest(
        self,
        metadata: RaceMetadata | Mapping[str, Any],
        raw_data: Any,
        raw_annotations: Any = None,
        actor: str = "sdk",
    ) -> IngestResult:
        """Validate canonical race JSON and persist a new race.

        Raises:
            RaceDataValidationError: If data or metadata do not match the schema.
            LapchartStoreError: If persistence fails.
        """
        return ingest_race(metadata, raw_data, raw_annotations, actor, self._config)

    def ingest_files(
        self,
        metadata: RaceMetadata | Mapping[str, Any],
        format_id: str,
        slot_paths: Mapping[str, str | Path],
        actor: str = "sdk",
    ) -> IngestResult:
        """Parse export files from disk and ingest the resulting race."""
        files = read_slot_files(slot_paths)
        return parse_and_ingest(metadata, format_id, files, actor, self._config)

    def reprocess(self, race_id: str) -> IngestResult:
        """Rebuild derived rows of a stored race."""
        return reprocess_race(race_id, self._config)

    def reparse(
        self, race_id: str, format_id: str, slot_paths: Mapping[str, str | Path]
    ) -> IngestResult:
        """Re-run a parser on export files and replace a stored race."""
        return reparse_race(race_id, format_id, read_slot_files(slot_paths), self._config)

    def races(self) -> list[StoredRace]:
        """List stored races ordered by creation time."""
        return self._store.list_races()

    def race(self, race_id: str) -> StoredRace:
        """Load one stored race blob."""
        return self._store.load_race(race_id)

    def entries(self, race_id: str) -> list[EntryRow]:
        """Load derived entry rows of a stored race."""
        return self._store.load_entries(race_id)

    def laps(self, race_id: str) -> list[LapRow]:
        """Load derived lap rows of a stored race."""
        return self._store.load_laps(race_id)

    def with_data_root(self, data_root: str) -> "LapchartClient":
        """Clone the client with a different local data root.

        Args:
            data_root: New data root path.

        Returns:
            New SDK client instance.
        """
        resolved_root = Path(data_root).expanduser().resolve()
        updated_config = replace(self._config, data_root=resolved_root)
        return LapchartClient(updated_config)

    def run_spec(self, spec_file: str) -> tuple[str, ...]:
        """Execute a YAML run-spec through the shared execution engine.

        Args:
            spec_file: Path to YAML run-spec file.

        Returns:
            Ordered command output lines.
        """
        return execute_run_spec_file(self, spec_file)
