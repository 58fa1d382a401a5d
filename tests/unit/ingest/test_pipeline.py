"""Unit tests for ingest pipeline orchestration."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from core.config import LapchartConfig
from core.errors import RaceDataValidationError, RaceNotFoundError, UnknownFormatError
from ingest.pipeline import (
    ingest_race,
    parse_and_ingest,
    parse_race_files,
    reparse_race,
    reprocess_race,
)
from store.race_store import RaceStore
from tests.fixture_paths import fixture_path
from tests.race_builders import sample_metadata, sample_race_payload


def _config(tmp_path: Path) -> LapchartConfig:
    return replace(LapchartConfig.from_env(), data_root=tmp_path)


def _speedhive_files() -> dict[str, str]:
    return {
        "summaryCsv": fixture_path("speedhive/summary.csv").read_text(encoding="utf-8"),
        "lapsCsv": fixture_path("speedhive/laps.csv").read_text(encoding="utf-8"),
    }


def test_ingest_race_persists_rows(tmp_path: Path) -> None:
    """Ingest should report created rows for a valid payload."""
    config = _config(tmp_path)

    result = ingest_race(sample_metadata(), sample_race_payload(), None, "tester", config)

    assert (result.entries_created, result.laps_created, result.warnings) == (3, 11, ())


def test_ingest_race_records_actor(tmp_path: Path) -> None:
    """The actor should be stored as the race creator."""
    config = _config(tmp_path)
    result = ingest_race(sample_metadata(), sample_race_payload(), None, "tester", config)

    assert RaceStore(config).load_race(result.race_id).created_by == "tester"


def test_ingest_race_returns_cross_check_warnings(tmp_path: Path) -> None:
    """Consistency problems should be returned, not raised."""
    payload = sample_race_payload()
    payload["totalCars"] = 5

    result = ingest_race(sample_metadata(), payload, None, "tester", _config(tmp_path))

    assert result.warnings == ("totalCars (5) doesn't match actual car count (3)",)


def test_ingest_race_writes_nothing_on_structural_error(tmp_path: Path) -> None:
    """Structurally invalid data should fail before any write."""
    config = _config(tmp_path)
    payload = sample_race_payload()
    payload["cars"]["7"]["laps"][0]["ltSec"] = 0

    with pytest.raises(RaceDataValidationError):
        ingest_race(sample_metadata(), payload, None, "tester", config)

    assert RaceStore(config).list_races() == []


def test_ingest_race_rejects_invalid_metadata(tmp_path: Path) -> None:
    """Missing metadata fields should fail validation."""
    metadata = {key: value for key, value in sample_metadata().items() if key != "track"}

    with pytest.raises(RaceDataValidationError, match="track"):
        ingest_race(metadata, sample_race_payload(), None, "tester", _config(tmp_path))


def test_parse_and_ingest_puts_parser_warnings_first(tmp_path: Path) -> None:
    """Parser warnings should precede validation warnings."""
    result = parse_and_ingest(
        sample_metadata(), "speedhive", _speedhive_files(), "tester", _config(tmp_path)
    )

    assert (result.warnings, result.entries_created, result.laps_created) == (
        ("Car #99 has laps but no summary metadata; skipping",),
        3,
        18,
    )


def test_reprocess_race_recreates_same_rows(tmp_path: Path) -> None:
    """Reprocessing should produce the same counts as the ingest."""
    config = _config(tmp_path)
    created = ingest_race(sample_metadata(), sample_race_payload(), None, "tester", config)

    result = reprocess_race(created.race_id, config)

    assert (result.race_id, result.entries_created, result.laps_created) == (
        created.race_id,
        3,
        11,
    )


def test_reprocess_race_raises_for_unknown_race(tmp_path: Path) -> None:
    """Reprocessing an unknown race should raise not found."""
    with pytest.raises(RaceNotFoundError):
        reprocess_race("race-missing", _config(tmp_path))


def test_reparse_race_replaces_data_and_keeps_metadata(tmp_path: Path) -> None:
    """Reparse should swap in parsed data under the same race id."""
    config = _config(tmp_path)
    created = ingest_race(sample_metadata(), sample_race_payload(), None, "tester", config)

    result = reparse_race(created.race_id, "speedhive", _speedhive_files(), config)

    stored = RaceStore(config).load_race(created.race_id)
    assert (result.laps_created, stored.metadata.name, stored.data.fcy) == (
        18,
        "Sebring 8 Hours",
        ((3, 3),),
    )


def test_parse_race_files_rejects_unknown_format() -> None:
    """Unknown formats should raise before parsing."""
    with pytest.raises(UnknownFormatError):
        parse_race_files("mylaps-xml", {})
