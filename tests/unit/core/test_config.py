"""Unit tests for core config parsing."""

from __future__ import annotations

import pytest

from core.config import LapchartConfig
from core.errors import LapchartConfigError


def test_from_env_reads_data_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should resolve data root from environment."""
    monkeypatch.setenv("LAPCHART_DATA_ROOT", "./.tmp-lapchart")

    config = LapchartConfig.from_env()

    assert config.data_root.name == ".tmp-lapchart" and config.data_root.is_absolute()


def test_from_env_defaults_lap_batch_size(monkeypatch: pytest.MonkeyPatch) -> None:
    """Batch size should default to 500 rows."""
    monkeypatch.delenv("LAPCHART_LAP_BATCH_SIZE", raising=False)

    assert LapchartConfig.from_env().lap_batch_size == 500


def test_from_env_reads_lap_batch_size(monkeypatch: pytest.MonkeyPatch) -> None:
    """Batch size should be read from environment."""
    monkeypatch.setenv("LAPCHART_LAP_BATCH_SIZE", "25")

    assert LapchartConfig.from_env().lap_batch_size == 25


@pytest.mark.parametrize("raw_value", ["not-a-number", "0", "-3"])
def test_from_env_raises_for_invalid_batch_size(
    monkeypatch: pytest.MonkeyPatch, raw_value: str
) -> None:
    """Config should fail for non-numeric or non-positive batch sizes."""
    monkeypatch.setenv("LAPCHART_LAP_BATCH_SIZE", raw_value)

    with pytest.raises(LapchartConfigError, match="LAPCHART_LAP_BATCH_SIZE"):
        LapchartConfig.from_env()
