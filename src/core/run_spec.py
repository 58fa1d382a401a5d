"""Typed run-spec parsing for declarative race batches.

A run spec is a YAML list of race operations. Each step is resolved into
a typed race step at load time, so an unknown format, a misnamed file slot
or invalid race metadata fails the whole batch before any step runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping, Union, cast

import yaml

from core.errors import LapchartRunSpecError, RaceDataValidationError, UnknownFormatError
from core.run_spec_fields import (
    expect_mapping,
    expect_sequence,
    optional_path,
    optional_string,
    reject_unknown_keys,
    required_string,
    slot_paths,
)
from core.types import FormatInfo, RaceMetadata
from ingest.validation import validate_metadata
from parsers.registry import get_parser

RUN_SPEC_VERSION = 1


@dataclass(frozen=True)
class RunSpecDefaults:
    """Default values applied to run-spec steps."""

    data_root: str | None = None
    actor: str | None = None


@dataclass(frozen=True)
class FormatsStep:
    """List registered export formats."""


@dataclass(frozen=True)
class RacesStep:
    """List stored races."""


@dataclass(frozen=True)
class ParseStep:
    """Parse export files without persisting them."""

    format_id: str
    files: Mapping[str, Path]
    output: Path | None = None


@dataclass(frozen=True)
class IngestStep:
    """Ingest one race from export files or from canonical JSON.

    Exactly one source is set: ``format_id`` with ``files``, or ``data``
    with optional ``annotations``.
    """

    metadata: RaceMetadata
    actor: str | None = None
    format_id: str | None = None
    files: Mapping[str, Path] = field(default_factory=dict)
    data: Path | None = None
    annotations: Path | None = None


@dataclass(frozen=True)
class ReprocessStep:
    """Rebuild derived rows of a stored race."""

    race_id: str


@dataclass(frozen=True)
class ReparseStep:
    """Re-run a parser on export files for a stored race."""

    race_id: str
    format_id: str
    files: Mapping[str, Path]


RunSpecStep = Union[FormatsStep, RacesStep, ParseStep, IngestStep, ReprocessStep, ReparseStep]


@dataclass(frozen=True)
class RunSpec:
    """Validated run-spec root object."""

    version: int
    defaults: RunSpecDefaults
    steps: tuple[RunSpecStep, ...]
    base_dir: Path


def load_run_spec(spec_path: str) -> RunSpec:
    """Load and validate a YAML run-spec from disk.

    Args:
        spec_path: File path to YAML run-spec.

    Returns:
        Run spec whose steps are typed race operations with resolved paths.

    Raises:
        LapchartRunSpecError: If the file is unreadable or any step is invalid.
    """
    spec_file = Path(spec_path).expanduser().resolve()
    root_mapping = expect_mapping(_load_yaml_payload(spec_file), "run spec root")
    reject_unknown_keys(root_mapping, {"version", "defaults", "steps"}, "Run spec root")
    version = _parse_version(root_mapping)
    defaults = _parse_defaults(root_mapping)
    steps = _parse_steps(root_mapping, spec_file.parent)
    return RunSpec(version=version, defaults=defaults, steps=steps, base_dir=spec_file.parent)


def _load_yaml_payload(spec_file: Path) -> object:
    if not spec_file.exists():
        raise LapchartRunSpecError(
            f"Run spec file does not exist at {spec_file}. Provide a valid YAML file path."
        )
    try:
        payload = cast(object, yaml.safe_load(spec_file.read_text(encoding="utf-8")))
    except OSError as error:
        raise LapchartRunSpecError(
            f"Failed to read run spec at {spec_file}: {error}. Check file permissions and retry."
        ) from error
    except yaml.YAMLError as error:
        raise LapchartRunSpecError(
            f"Failed to parse YAML run spec at {spec_file}: {error}. Fix YAML syntax and retry."
        ) from error
    if payload is None:
        raise LapchartRunSpecError(
            f"Run spec at {spec_file} is empty. Define 'version' and 'steps'."
        )
    return payload


def _parse_version(root_mapping: Mapping[str, object]) -> int:
    raw_version = root_mapping.get("version")
    if not isinstance(raw_version, int) or isinstance(raw_version, bool):
        raise LapchartRunSpecError("Run spec field 'version' must be an integer. Set version: 1.")
    if raw_version != RUN_SPEC_VERSION:
        raise LapchartRunSpecError(f"Unsupported run spec version {raw_version}. Use version: 1.")
    return raw_version


def _parse_defaults(root_mapping: Mapping[str, object]) -> RunSpecDefaults:
    raw_defaults = root_mapping.get("defaults")
    if raw_defaults is None:
        return RunSpecDefaults()
    context = "Run spec defaults"
    defaults_mapping = expect_mapping(raw_defaults, context)
    reject_unknown_keys(defaults_mapping, {"data_root", "actor"}, context)
    return RunSpecDefaults(
        data_root=optional_string(defaults_mapping, "data_root", context),
        actor=optional_string(defaults_mapping, "actor", context),
    )


def _parse_steps(root_mapping: Mapping[str, object], base_dir: Path) -> tuple[RunSpecStep, ...]:
    raw_steps = root_mapping.get("steps")
    if raw_steps is None:
        raise LapchartRunSpecError(
            "Run spec missing required field 'steps'. Add a non-empty list of commands."
        )
    step_rows = expect_sequence(raw_steps, "run spec steps")
    if not step_rows:
        raise LapchartRunSpecError("Run spec field 'steps' must include at least one step.")
    return tuple(
        _parse_step(step_value, f"Run spec step #{index}", base_dir)
        for index, step_value in enumerate(step_rows, start=1)
    )


def _parse_step(step_value: object, context: str, base_dir: Path) -> RunSpecStep:
    step_mapping = expect_mapping(step_value, context)
    command = step_mapping.get("command")
    if not isinstance(command, str):
        raise LapchartRunSpecError(f"{context}: field 'command' must be a string.")
    step_spec = _STEP_SPECS.get(command)
    if step_spec is None:
        supported = ", ".join(_STEP_SPECS)
        raise LapchartRunSpecError(
            f"Unsupported command '{command}' in {context}. Use one of: {supported}."
        )
    allowed_keys, build_step = step_spec
    context = f"{context} ({command})"
    args = _step_args(step_mapping, context)
    reject_unknown_keys(args, allowed_keys, context)
    return build_step(args, base_dir, context)


def _step_args(step_mapping: Mapping[str, object], context: str) -> Mapping[str, object]:
    if "args" not in step_mapping:
        return {key: value for key, value in step_mapping.items() if key != "command"}
    if set(step_mapping) - {"command", "args"}:
        raise LapchartRunSpecError(f"{context}: when using 'args', do not mix inline keys.")
    return expect_mapping(step_mapping["args"], f"{context} args")


def _build_parse(args: Mapping[str, object], base_dir: Path, context: str) -> ParseStep:
    format_info = _format_info(required_string(args, "format", context), context)
    return ParseStep(
        format_id=format_info.format_id,
        files=slot_paths(args, _slot_keys(format_info), base_dir, context),
        output=optional_path(args, "output", base_dir, context),
    )


def _build_ingest(args: Mapping[str, object], base_dir: Path, context: str) -> IngestStep:
    metadata = _race_metadata(args, context)
    actor = optional_string(args, "actor", context)
    format_id = optional_string(args, "format", context)
    data_path = optional_path(args, "data", base_dir, context)
    if (format_id is None) == (data_path is None):
        raise LapchartRunSpecError(
            f"{context} needs exactly one source: "
            "set 'format' with 'files', or 'data' with an optional 'annotations'."
        )
    if format_id is not None:
        if "annotations" in args:
            raise LapchartRunSpecError(
                f"{context}: 'annotations' only applies to canonical 'data' ingest."
            )
        format_info = _format_info(format_id, context)
        return IngestStep(
            metadata=metadata,
            actor=actor,
            format_id=format_info.format_id,
            files=slot_paths(args, _slot_keys(format_info), base_dir, context),
        )
    if "files" in args:
        raise LapchartRunSpecError(f"{context}: 'files' requires 'format', not 'data'.")
    return IngestStep(
        metadata=metadata,
        actor=actor,
        data=data_path,
        annotations=optional_path(args, "annotations", base_dir, context),
    )


def _build_reprocess(args: Mapping[str, object], base_dir: Path, context: str) -> ReprocessStep:
    return ReprocessStep(race_id=required_string(args, "race_id", context))


def _build_reparse(args: Mapping[str, object], base_dir: Path, context: str) -> ReparseStep:
    race_id = required_string(args, "race_id", context)
    format_info = _format_info(required_string(args, "format", context), context)
    return ReparseStep(
        race_id=race_id,
        format_id=format_info.format_id,
        files=slot_paths(args, _slot_keys(format_info), base_dir, context),
    )


def _format_info(format_id: str, context: str) -> FormatInfo:
    try:
        info = get_parser(format_id).info()
    except UnknownFormatError as error:
        raise LapchartRunSpecError(f"{context}: {error}") from error
    if not info.implemented:
        raise LapchartRunSpecError(
            f"{context}: format '{format_id}' is not implemented yet. "
            "Run 'lapchart formats' to list ready formats."
        )
    return info


def _slot_keys(format_info: FormatInfo) -> frozenset[str]:
    return frozenset(slot.key for slot in format_info.file_slots)


def _race_metadata(args: Mapping[str, object], context: str) -> RaceMetadata:
    raw_metadata = args.get("metadata")
    if raw_metadata is None:
        raise LapchartRunSpecError(f"{context} is missing required field 'metadata'.")
    try:
        return validate_metadata(expect_mapping(raw_metadata, f"{context} metadata"))
    except RaceDataValidationError as error:
        raise LapchartRunSpecError(
            f"{context} has invalid race metadata: {'; '.join(error.issues)}. "
            "Fix the metadata fields and retry."
        ) from error


_StepBuilder = Callable[[Mapping[str, object], Path, str], RunSpecStep]

_STEP_SPECS: dict[str, tuple[frozenset[str], _StepBuilder]] = {
    "formats": (frozenset(), lambda args, base_dir, context: FormatsStep()),
    "parse": (frozenset({"format", "files", "output"}), _build_parse),
    "ingest": (
        frozenset({"metadata", "actor", "format", "files", "data", "annotations"}),
        _build_ingest,
    ),
    "reprocess": (frozenset({"race_id"}), _build_reprocess),
    "reparse": (frozenset({"race_id", "format", "files"}), _build_reparse),
    "races": (frozenset(), lambda args, base_dir, context: RacesStep()),
}
