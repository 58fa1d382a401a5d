"""Runtime configuration model for Lapchart.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from core.constants import DEFAULT_DATA_ROOT, DEFAULT_LAP_BATCH_SIZE
from core.errors import LapchartConfigError


@dataclass(frozen=True)
class LapchartConfig:
    """Validated runtime configuration.

    Attributes:
        data_root: Local root directory for stored races.
        lap_batch_size: Number of lap rows written per batch.
    """

    data_root: Path
    lap_batch_size: int = DEFAULT_LAP_BATCH_SIZE

    @classmethod
    def from_env(cls) -> "LapchartConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            LapchartConfigError: If environment values are invalid.
        """
        data_root_value = os.getenv("LAPCHART_DATA_ROOT", str(DEFAULT_DATA_ROOT))
        batch_size_value = os.getenv("LAPCHART_LAP_BATCH_SIZE", str(DEFAULT_LAP_BATCH_SIZE))
        return cls(
            data_root=Path(data_root_value).expanduser().resolve(),
            lap_batch_size=_parse_batch_size(batch_size_value),
        )


def _parse_batch_size(raw_value: str) -> int:
    """Parse the lap batch size environment value.

    Args:
        raw_value: Raw string from environment.

    Returns:
        Parsed positive batch size.

    Raises:
        LapchartConfigError: If value is not a positive integer.
    """
    try:
        batch_size = int(raw_value)
    except ValueError as error:
        raise LapchartConfigError(
            "Invalid LAPCHART_LAP_BATCH_SIZE value: "
            f"expected integer, got '{raw_value}'. "
            "Set LAPCHART_LAP_BATCH_SIZE to a positive number."
        ) from error
    if batch_size < 1:
        raise LapchartConfigError(
            f"Invalid LAPCHART_LAP_BATCH_SIZE value: {batch_size} is not positive. "
            "Set LAPCHART_LAP_BATCH_SIZE to 1 or more."
        )
    return batch_size
