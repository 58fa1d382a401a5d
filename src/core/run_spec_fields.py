"""Type-safe field parsing helpers for run-spec loading.

This module centralizes primitive parsing so run-spec steps produce
consistent validation errors across CLI and SDK flows.
"""

from __future__ import annotations

from pathlib import Path
from typing import AbstractSet, Mapping, Sequence

from core.errors import LapchartRunSpecError


def expect_mapping(value: object, context: str) -> Mapping[str, object]:
    """Return a string-keyed mapping or raise a run-spec error."""
    if not isinstance(value, Mapping):
        raise LapchartRunSpecError(
            f"Invalid {context}: expected object mapping, got {type(value).__name__}."
        )
    for key in value:
        if not isinstance(key, str):
            raise LapchartRunSpecError(
                f"Invalid {context}: expected string keys, got {type(key).__name__}."
            )
    return dict(value)


def expect_sequence(value: object, context: str) -> Sequence[object]:
    """Return a list-like value or raise a run-spec error."""
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return value
    raise LapchartRunSpecError(f"Invalid {context}: expected list, got {type(value).__name__}.")


def reject_unknown_keys(
    mapping: Mapping[str, object], allowed_keys: AbstractSet[str], context: str
) -> None:
    """Raise when a mapping carries keys outside ``allowed_keys``."""
    unknown_keys = sorted(set(mapping) - allowed_keys)
    if unknown_keys:
        allowed = ", ".join(sorted(allowed_keys)) or "none"
        raise LapchartRunSpecError(
            f"{context} has unknown fields: {', '.join(unknown_keys)}. Allowed fields: {allowed}."
        )


def required_string(args: Mapping[str, object], field_name: str, context: str) -> str:
    """Read a required string field from a run-spec step."""
    value = optional_string(args, field_name, context)
    if value is None:
        raise LapchartRunSpecError(f"{context} is missing required field '{field_name}'.")
    return value


def optional_string(args: Mapping[str, object], field_name: str, context: str) -> str | None:
    """Read an optional string field; blank strings count as absent."""
    value = args.get(field_name)
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped if stripped else None
    raise LapchartRunSpecError(f"{context} field '{field_name}' must be a string when provided.")


def optional_path(
    args: Mapping[str, object], field_name: str, base_dir: Path, context: str
) -> Path | None:
    """Read an optional path field, resolving relative paths against ``base_dir``."""
    value = optional_string(args, field_name, context)
    if value is None:
        return None
    return _resolve_path(value, base_dir)


def slot_paths(
    args: Mapping[str, object], allowed_slots: AbstractSet[str], base_dir: Path, context: str
) -> dict[str, Path]:
    """Read the ``files`` slot mapping for one export format.

    Args:
        args: Step fields.
        allowed_slots: Slot keys the step's format declares.
        base_dir: Directory relative paths resolve against.
        context: Step label used in error messages.

    Returns:
        Resolved path per slot key.

    Raises:
        LapchartRunSpecError: If ``files`` is missing, names an unknown slot,
            or holds a non-string path.
    """
    raw_files = args.get("files")
    if raw_files is None:
        raise LapchartRunSpecError(f"{context} is missing required field 'files'.")
    files = expect_mapping(raw_files, f"{context} files")
    if not files:
        raise LapchartRunSpecError(f"{context} field 'files' must name at least one slot.")
    reject_unknown_keys(files, allowed_slots, f"{context} files")
    resolved: dict[str, Path] = {}
    for slot_key, raw_path in files.items():
        if not isinstance(raw_path, str) or not raw_path.strip():
            raise LapchartRunSpecError(
                f"{context} file for slot '{slot_key}' must be a non-empty path string."
            )
        resolved[slot_key] = _resolve_path(raw_path.strip(), base_dir)
    return resolved


def _resolve_path(raw_path: str, base_dir: Path) -> Path:
    path = Path(raw_path).expanduser()
    return path if path.is_absolute() else base_dir / path
