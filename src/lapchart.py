"""Public SDK surface for Lapchart.

This module provides a stable import path for library users.
It re-exports the primary client, orchestrator entry points, and typed models.
"""

from __future__ import annotations

from core.config import LapchartConfig
from core.types import (
    AnnotationSet,
    CanonicalRaceData,
    CarAnnotations,
    CarRecord,
    EntryRow,
    FormatInfo,
    IngestResult,
    LapRecord,
    LapRow,
    ParsedResult,
    RaceMetadata,
    StoredRace,
)
from ingest.pipeline import (
    ingest_race,
    parse_and_ingest,
    parse_race_files,
    reparse_race,
    reprocess_race,
)
from ingest.validation import cross_check, validate
from parsers.registry import get_parser, list_formats
from store.race_sdk import LapchartClient

__all__ = [
    "AnnotationSet",
    "CanonicalRaceData",
    "CarAnnotations",
    "CarRecord",
    "EntryRow",
    "FormatInfo",
    "IngestResult",
    "LapRecord",
    "LapRow",
    "LapchartClient",
    "LapchartConfig",
    "ParsedResult",
    "RaceMetadata",
    "StoredRace",
    "cross_check",
    "get_parser",
    "ingest_race",
    "list_formats",
    "parse_and_ingest",
    "parse_race_files",
    "reparse_race",
    "reprocess_race",
    "validate",
]
