"""Ingest orchestration for race data.

This module coordinates parsing, validation, and store writes for
ingest, reprocess, and reparse workflows.
"""

from __future__ import annotations

from typing import Any, Mapping

from core.config import LapchartConfig
from core.logging_config import get_logger
from core.types import IngestResult, ParsedResult, RaceMetadata
from ingest.validation import ValidatedRace, cross_check, validate, validate_metadata
from parsers.registry import get_parser
from store.race_payload import annotations_to_payload, race_data_to_payload
from store.race_store import RaceStore

_LOGGER = get_logger(__name__)


class RaceIngestRunner:
    """Runner for validate-then-persist race workflows."""

    def __init__(self, config: LapchartConfig) -> None:
        self._config = config
        self._store = RaceStore(config)

    def ingest(
        self,
        metadata: RaceMetadata | Mapping[str, Any],
        raw_data: Any,
        raw_annotations: Any,
        actor: str,
    ) -> IngestResult:
        """Validate race JSON and persist a new race."""
        race_metadata = _resolve_metadata(metadata)
        validated = validate(raw_data, raw_annotations)
        race, counts = self._store.create_race(
            race_metadata, validated.data, validated.annotations, actor
        )
        result = IngestResult(
            race_id=race.race_id,
            entries_created=counts.entries,
            laps_created=counts.laps,
            warnings=validated.warnings,
        )
        _log_result("race_ingested", result)
        return result

    def reprocess(self, race_id: str) -> IngestResult:
        """Rebuild derived rows from the stored blob."""
        race, counts = self._store.rebuild_rows(race_id)
        result = IngestResult(
            race_id=race_id,
            entries_created=counts.entries,
            laps_created=counts.laps,
            warnings=tuple(cross_check(race.data)),
        )
        _log_result("race_reprocessed", result)
        return result

    def reparse(self, race_id: str, parsed: ParsedResult) -> IngestResult:
        """Replace a stored blob with freshly parsed data and rebuild rows."""
        validated = _validate_parsed(parsed)
        _, counts = self._store.replace_race_data(
            race_id, validated.data, validated.annotations
        )
        result = IngestResult(
            race_id=race_id,
            entries_created=counts.entries,
            laps_created=counts.laps,
            warnings=(*parsed.warnings, *validated.warnings),
        )
        _log_result("race_reparsed", result)
        return result


def ingest_race(
    metadata: RaceMetadata | Mapping[str, Any],
    raw_data: Any,
    raw_annotations: Any,
    actor: str,
    config: LapchartConfig,
) -> IngestResult:
    """Validate canonical race JSON and persist it with derived rows.

    Args:
        metadata: Race metadata, typed or as a raw mapping.
        raw_data: Decoded canonical race data JSON.
        raw_annotations: Decoded annotation JSON, or ``None``.
        actor: Identity recorded as the race creator.
        config: Runtime configuration.

    Returns:
        Race id, created row counts, and warnings.

    Raises:
        RaceDataValidationError: If data or metadata do not match the schema.
        LapchartStoreError: If persistence fails.
    """
    return RaceIngestRunner(config).ingest(metadata, raw_data, raw_annotations, actor)


def reprocess_race(race_id: str, config: LapchartConfig) -> IngestResult:
    """Delete and recreate all derived rows of a race from its stored blob.

    Args:
        race_id: Stored race id.
        config: Runtime configuration.

    Returns:
        Recreated row counts and cross-check warnings.

    Raises:
        RaceNotFoundError: If the race does not exist.
        LapchartStoreError: If the replacement fails; previous rows are kept.
    """
    return RaceIngestRunner(config).reprocess(race_id)


def parse_race_files(format_id: str, files: Mapping[str, str]) -> ParsedResult:
    """Run the registered parser for a format on slot file texts.

    Raises:
        UnknownFormatError: If the format id is not registered.
        FormatNotImplementedError: If the format is a placeholder.
        ParseError: If the export is structurally unusable.
    """
    return get_parser(format_id).parse(files)


def parse_and_ingest(
    metadata: RaceMetadata | Mapping[str, Any],
    format_id: str,
    files: Mapping[str, str],
    actor: str,
    config: LapchartConfig,
) -> IngestResult:
    """Parse export files and ingest the resulting race.

    Args:
        metadata: Race metadata, typed or as a raw mapping.
        format_id: Registered format id.
        files: File text per slot key.
        actor: Identity recorded as the race creator.
        config: Runtime configuration.

    Returns:
        Ingest result with parser warnings first.
    """
    parsed = parse_race_files(format_id, files)
    result = ingest_race(
        metadata,
        race_data_to_payload(parsed.data),
        annotations_to_payload(parsed.annotations),
        actor,
        config,
    )
    return IngestResult(
        race_id=result.race_id,
        entries_created=result.entries_created,
        laps_created=result.laps_created,
        warnings=(*parsed.warnings, *result.warnings),
    )


def reparse_race(
    race_id: str,
    format_id: str,
    files: Mapping[str, str],
    config: LapchartConfig,
) -> IngestResult:
    """Re-run a parser on source files and replace a stored race.

    Args:
        race_id: Stored race id.
        format_id: Registered format id.
        files: File text per slot key.
        config: Runtime configuration.

    Returns:
        Recreated row counts with parser and validation warnings.

    Raises:
        RaceNotFoundError: If the race does not exist.
        ParseError: If the export is structurally unusable.
        LapchartStoreError: If the replacement fails.
    """
    parsed = parse_race_files(format_id, files)
    return RaceIngestRunner(config).reparse(race_id, parsed)


def _resolve_metadata(metadata: RaceMetadata | Mapping[str, Any]) -> RaceMetadata:
    if isinstance(metadata, RaceMetadata):
        return metadata
    return validate_metadata(metadata)


def _validate_parsed(parsed: ParsedResult) -> ValidatedRace:
    """Validate parser output through the persisted JSON surface."""
    return validate(
        race_data_to_payload(parsed.data), annotations_to_payload(parsed.annotations)
    )


def _log_result(event: str, result: IngestResult) -> None:
    """Log a completed race write with contextual counts."""
    _LOGGER.info(
        event,
        race_id=result.race_id,
        entries_created=result.entries_created,
        laps_created=result.laps_created,
        warning_count=len(result.warnings),
    )
