"""Lapchart exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Structural failures abort a call; semantic issues travel as warnings.
"""

from __future__ import annotations

from typing import Sequence


class LapchartError(Exception):
    """Base exception for all Lapchart failures."""


class LapchartConfigError(LapchartError):
    """Raised for invalid runtime configuration."""


class StructuralError(LapchartError):
    """Raised when input cannot produce a valid canonical race."""


class ParseError(StructuralError):
    """Raised by format parsers for fatal export problems."""


class RaceDataValidationError(StructuralError):
    """Raised when canonical race data does not match the schema."""

    def __init__(self, message: str, issues: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.issues = tuple(issues)


class FormatNotImplementedError(LapchartError):
    """Raised by registered formats that are placeholders."""


class UnknownFormatError(LapchartError):
    """Raised when a format id is not registered."""


class LapchartStoreError(LapchartError):
    """Raised for race store and transaction failures."""


class RaceNotFoundError(LapchartStoreError):
    """Raised when a race id has no stored data."""


class LapchartRunSpecError(LapchartError):
    """Raised for invalid or unsupported run-spec configuration."""


class LapchartIngestError(LapchartError):
    """Raised when ingest input files cannot be read."""
