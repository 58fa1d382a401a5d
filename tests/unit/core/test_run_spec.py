"""Unit tests for run-spec parsing."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.errors import LapchartRunSpecError
from core.run_spec import IngestStep, ParseStep, ReparseStep, ReprocessStep, load_run_spec
from tests.fixture_paths import fixture_path

_METADATA_YAML = """
    metadata:
      name: Road Atlanta 6 Hours
      date: 2024-10-12
      track: Michelin Raceway Road Atlanta
      series: IMSA
      season: 2024
"""


def _load_text(tmp_path: Path, content: str):
    spec_file = tmp_path / "spec.yaml"
    spec_file.write_text(content, encoding="utf-8")
    return load_run_spec(str(spec_file))


def test_load_run_spec_valid_batch_builds_typed_steps() -> None:
    """Valid run-spec should resolve each step into a typed race step."""
    spec = load_run_spec(str(fixture_path("run_spec/valid_batch.yaml")))

    assert [type(step) for step in spec.steps] == [ParseStep, IngestStep, IngestStep]


def test_load_run_spec_reads_defaults_and_base_dir() -> None:
    """Defaults and the run-spec directory should be captured."""
    spec = load_run_spec(str(fixture_path("run_spec/valid_batch.yaml")))

    assert (spec.defaults.actor, spec.defaults.data_root, spec.base_dir) == (
        "batch-bot",
        None,
        fixture_path("run_spec"),
    )


def test_load_run_spec_validates_ingest_metadata() -> None:
    """Ingest metadata should load as typed race metadata with the step actor."""
    spec = load_run_spec(str(fixture_path("run_spec/valid_batch.yaml")))
    step = spec.steps[2]

    assert (step.metadata.track, step.metadata.season, step.actor, step.format_id) == (
        "Sebring International Raceway",
        2024,
        "uploader",
        None,
    )


def test_load_run_spec_resolves_slot_paths_against_spec_dir() -> None:
    """Reparse slot paths should resolve relative to the run-spec file."""
    spec = load_run_spec(str(fixture_path("run_spec/maintenance.yaml")))
    spec_dir = fixture_path("run_spec")

    assert spec.steps[2] == ReparseStep(
        race_id="race-demo",
        format_id="imsa",
        files={
            "lapChartJson": spec_dir / "../imsa/lap_chart.json",
            "flagsJson": spec_dir / "../imsa/flags.json",
        },
    )


def test_load_run_spec_unwraps_args_mapping() -> None:
    """Steps may nest their fields under args."""
    spec = load_run_spec(str(fixture_path("run_spec/maintenance.yaml")))

    assert spec.steps[1] == ReprocessStep(race_id="race-demo")


def test_load_run_spec_invalid_command_raises_error() -> None:
    """Unsupported command name should raise run-spec error."""
    with pytest.raises(LapchartRunSpecError, match="Unsupported command 'publish'"):
        load_run_spec(str(fixture_path("run_spec/invalid_command.yaml")))


def test_load_run_spec_invalid_defaults_key_raises_error() -> None:
    """Unknown defaults field should be rejected."""
    with pytest.raises(LapchartRunSpecError, match="dataset"):
        load_run_spec(str(fixture_path("run_spec/invalid_defaults_key.yaml")))


def test_load_run_spec_mixed_args_raises_error() -> None:
    """Inline keys next to args should be rejected."""
    with pytest.raises(LapchartRunSpecError, match="do not mix inline keys"):
        load_run_spec(str(fixture_path("run_spec/mixed_args.yaml")))


def test_load_run_spec_rejects_ingest_with_two_sources() -> None:
    """Ingest steps naming both export files and canonical data should fail to load."""
    with pytest.raises(LapchartRunSpecError, match="exactly one source"):
        load_run_spec(str(fixture_path("run_spec/ingest_two_sources.yaml")))


def test_load_run_spec_missing_file_raises_error(tmp_path: Path) -> None:
    """Missing spec files should raise run-spec error."""
    with pytest.raises(LapchartRunSpecError, match="does not exist"):
        load_run_spec(str(tmp_path / "missing.yaml"))


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("", "is empty"),
        ("version: 2\nsteps: [{command: races}]\n", "Unsupported run spec version 2"),
        ("version: 1\nsteps: []\n", "at least one step"),
        ("version: 1\nsteps: [{command: races}]\nextra: 1\n", "root has unknown fields: extra"),
        ("version: 1\nsteps: [\n", "Failed to parse YAML"),
    ],
)
def test_load_run_spec_rejects_invalid_roots(tmp_path: Path, content: str, message: str) -> None:
    """Root-level schema problems should raise run-spec error."""
    with pytest.raises(LapchartRunSpecError, match=message):
        _load_text(tmp_path, content)


@pytest.mark.parametrize(
    ("step_yaml", "message"),
    [
        (
            "  - command: parse\n    format: nascar\n    files: {lapsCsv: laps.csv}\n",
            "Unknown race data format 'nascar'",
        ),
        (
            "  - command: parse\n    format: sro\n    files: {lapsCsv: laps.csv}\n",
            "format 'sro' is not implemented yet",
        ),
        (
            "  - command: reparse\n    race_id: race-demo\n    format: imsa\n"
            "    files: {lapChart: chart.json}\n",
            r"files has unknown fields: lapChart\. Allowed fields: "
            r"flagsJson, lapChartJson, pitStopJson, timeCardsCsv",
        ),
        ("  - command: reprocess\n    race_id: race-demo\n    dataset: demo\n", "dataset"),
        ("  - command: reprocess\n", "missing required field 'race_id'"),
        ("  - command: parse\n    format: speedhive\n", "missing required field 'files'"),
    ],
)
def test_load_run_spec_rejects_invalid_steps(tmp_path: Path, step_yaml: str, message: str) -> None:
    """Step fields should be checked against the race operation they name."""
    with pytest.raises(LapchartRunSpecError, match=message):
        _load_text(tmp_path, "version: 1\nsteps:\n" + step_yaml)


def test_load_run_spec_rejects_invalid_race_metadata(tmp_path: Path) -> None:
    """Ingest metadata outside the race schema should fail before any step runs."""
    content = (
        "version: 1\nsteps:\n  - command: ingest\n    data: race.json\n"
        + _METADATA_YAML.replace("season: 2024", "season: 1999")
    )

    with pytest.raises(LapchartRunSpecError, match="invalid race metadata: season"):
        _load_text(tmp_path, content)


def test_load_run_spec_rejects_annotations_with_export_files(tmp_path: Path) -> None:
    """Annotations belong to canonical data ingest only."""
    content = (
        "version: 1\nsteps:\n  - command: ingest\n    format: imsa\n"
        "    files: {lapChartJson: chart.json}\n    annotations: notes.json\n" + _METADATA_YAML
    )

    with pytest.raises(LapchartRunSpecError, match="'annotations' only applies"):
        _load_text(tmp_path, content)
