"""Shared run-spec execution engine for CLI and SDK workflows.

This module maps validated run-spec steps to client operations so different
entry points can execute one declarative batch path without drift. It also
owns the printable line formats both entry points share.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Protocol

from core.errors import LapchartRunSpecError
from core.run_spec import (
    FormatsStep,
    IngestStep,
    ParseStep,
    RacesStep,
    ReparseStep,
    ReprocessStep,
    RunSpec,
    RunSpecStep,
    load_run_spec,
)
from core.types import FormatInfo, IngestResult, ParsedResult, StoredRace
from ingest.input_reader import read_json_file
from store.race_payload import annotations_to_payload, race_data_to_payload

DEFAULT_RUN_SPEC_ACTOR = "run-spec"


class RunSpecClient(Protocol):
    """Client API contract required by run-spec execution."""

    def with_data_root(self, data_root: str) -> Any: ...

    def formats(self) -> list[FormatInfo]: ...

    def parse_files(self, format_id: str, slot_paths: Mapping[str, Any]) -> ParsedResult: ...

    def ingest(
        self,
        metadata: Any,
        raw_data: Any,
        raw_annotations: Any = None,
        actor: str = ...,
    ) -> IngestResult: ...

    def ingest_files(
        self,
        metadata: Any,
        format_id: str,
        slot_paths: Mapping[str, Any],
        actor: str = ...,
    ) -> IngestResult: ...

    def reprocess(self, race_id: str) -> IngestResult: ...

    def reparse(
        self, race_id: str, format_id: str, slot_paths: Mapping[str, Any]
    ) -> IngestResult: ...

    def races(self) -> list[StoredRace]: ...


@dataclass(frozen=True)
class RunSpecExecutionContext:
    """In-memory context used to execute run-spec steps."""

    client: RunSpecClient
    actor: str


def execute_run_spec_file(client: RunSpecClient, spec_file: str) -> tuple[str, ...]:
    """Load and execute a run-spec file, returning printable output lines."""
    spec = load_run_spec(spec_file)
    return execute_run_spec(client, spec)


def execute_run_spec(client: RunSpecClient, spec: RunSpec) -> tuple[str, ...]:
    """Execute a parsed run-spec object and return output lines."""
    execution_client = (
        client.with_data_root(spec.defaults.data_root) if spec.defaults.data_root else client
    )
    context = RunSpecExecutionContext(
        client=execution_client,
        actor=spec.defaults.actor or DEFAULT_RUN_SPEC_ACTOR,
    )
    output_lines: list[str] = []
    for step in spec.steps:
        output_lines.extend(_execute_step(context, step))
    return tuple(output_lines)


def format_format_row(info: FormatInfo) -> str:
    """Format one registry row as a tab-separated line."""
    slots = ",".join(
        f"{slot.key}{'' if slot.required else '?'}" for slot in info.file_slots
    )
    status = "ready" if info.implemented else "planned"
    return f"{info.format_id}\t{info.series}\t{status}\t{slots}\t{info.name}"


def format_parse_lines(parsed: ParsedResult) -> tuple[str, ...]:
    """Format a parse summary followed by its warnings."""
    data = parsed.data
    lap_count = sum(len(car.laps) for car in data.cars.values())
    windows = " ".join(f"{start}-{end}" for start, end in data.fcy) or "-"
    return (
        f"cars={data.total_cars}",
        f"laps={lap_count}",
        f"max_lap={data.max_lap}",
        f"classes={','.join(data.class_groups)}",
        f"fcy={windows}",
        f"green_pace_cutoff={data.green_pace_cutoff:.3f}",
        *format_warning_lines(parsed.warnings),
    )


def format_ingest_lines(result: IngestResult) -> tuple[str, ...]:
    """Format an ingest or reprocess result followed by its warnings."""
    return (
        f"race_id={result.race_id}",
        f"entries_created={result.entries_created}",
        f"laps_created={result.laps_created}",
        *format_warning_lines(result.warnings),
    )


def format_race_row(race: StoredRace) -> str:
    """Format one stored race as a tab-separated line."""
    metadata = race.metadata
    return (
        f"{race.race_id}\t{metadata.date.isoformat()}\t{metadata.series}\t"
        f"{metadata.name}\t{race.data.total_cars}\t{metadata.status}"
    )


def write_parsed_json(parsed: ParsedResult, output_path: Path) -> None:
    """Write parsed chart and annotation payloads as one JSON document."""
    payload = {
        "chart_data": race_data_to_payload(parsed.data),
        "annotation_data": annotations_to_payload(parsed.annotations),
    }
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def format_warning_lines(warnings: tuple[str, ...]) -> tuple[str, ...]:
    """Prefix each warning for printing."""
    return tuple(f"warning: {warning}" for warning in warnings)


def _execute_step(context: RunSpecExecutionContext, step: RunSpecStep) -> tuple[str, ...]:
    client = context.client
    if isinstance(step, FormatsStep):
        return tuple(format_format_row(info) for info in client.formats())
    if isinstance(step, ParseStep):
        parsed = client.parse_files(step.format_id, step.files)
        if step.output is not None:
            write_parsed_json(parsed, step.output)
        return format_parse_lines(parsed)
    if isinstance(step, IngestStep):
        return format_ingest_lines(_execute_ingest_step(context, step))
    if isinstance(step, ReprocessStep):
        return format_ingest_lines(client.reprocess(step.race_id))
    if isinstance(step, ReparseStep):
        return format_ingest_lines(client.reparse(step.race_id, step.format_id, step.files))
    if isinstance(step, RacesStep):
        return tuple(format_race_row(race) for race in client.races())
    raise LapchartRunSpecError(f"Unsupported run-spec step {type(step).__name__}.")


def _execute_ingest_step(context: RunSpecExecutionContext, step: IngestStep) -> IngestResult:
    actor = step.actor or context.actor
    if step.format_id is not None:
        return context.client.ingest_files(step.metadata, step.format_id, step.files, actor=actor)
    if step.data is None:
        raise LapchartRunSpecError("Run-spec ingest step has neither 'format' nor 'data'.")
    return context.client.ingest(
        step.metadata,
        read_json_file(step.data),
        read_json_file(step.annotations) if step.annotations else None,
        actor=actor,
    )
