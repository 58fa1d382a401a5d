"""Local file readers for ingestion.

This module loads export files for parser slots and canonical JSON
documents from the local file system.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping, Sequence

from core.errors import LapchartIngestError


def parse_slot_assignments(assignments: Sequence[str]) -> dict[str, Path]:
    """Parse ``slot=path`` assignments into a slot path mapping.

    Args:
        assignments: Raw ``slot=path`` strings.

    Returns:
        Expanded file path per slot key.

    Raises:
        LapchartIngestError: If an assignment is malformed or repeated.
    """
    slot_paths: dict[str, Path] = {}
    for assignment in assignments:
        slot_key, separator, raw_path = assignment.partition("=")
        slot_key = slot_key.strip()
        if not separator or not slot_key or not raw_path.strip():
            raise LapchartIngestError(
                f"Invalid file assignment '{assignment}': expected slot=path. "
                "Run 'lapchart formats' to see slot keys."
            )
        if slot_key in slot_paths:
            raise LapchartIngestError(
                f"Duplicate file assignment for slot '{slot_key}'. Provide each slot once."
            )
        slot_paths[slot_key] = Path(raw_path.strip()).expanduser()
    return slot_paths


def read_slot_files(slot_paths: Mapping[str, str | Path]) -> dict[str, str]:
    """Read slot files as UTF-8 text.

    Args:
        slot_paths: File path per slot key.

    Returns:
        File text per slot key, leading BOM preserved.

    Raises:
        LapchartIngestError: If a file is missing or unreadable.
    """
    return {slot_key: _read_text(Path(path)) for slot_key, path in slot_paths.items()}


def read_json_file(file_path: str | Path) -> Any:
    """Read and decode one JSON document.

    Raises:
        LapchartIngestError: If the file is missing or is not valid JSON.
    """
    path = Path(file_path).expanduser()
    text = _read_text(path)
    try:
        return json.loads(text.lstrip("\ufeff"))
    except json.JSONDecodeError as error:
        raise LapchartIngestError(
            f"Failed to parse JSON at {path}:{error.lineno}: {error.msg}. "
            "Fix the JSON syntax and retry."
        ) from error


def _read_text(path: Path) -> str:
    if not path.is_file():
        raise LapchartIngestError(
            f"Failed to read input at {path}: file does not exist. Provide an existing file."
        )
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as error:
        raise LapchartIngestError(
            f"Failed to read input at {path}: {error}. Provide a UTF-8 text file."
        ) from error
