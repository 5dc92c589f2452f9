"""Shared fixtures for the energy hook tests."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

import pytest

from benchenergy.config import load_config
from benchenergy.energy_reader import EnergyReader
from benchenergy.logging_utils import get_logger


class FakeReader(EnergyReader):
    """Returns queued readings in order; queued exceptions are raised instead."""

    def __init__(
        self,
        readings: Sequence[Union[Sequence[float], Exception]],
        socket_count: int = 1,
        wraparound: float = 262.0,
    ) -> None:
        self._queue: List[Union[Sequence[float], Exception]] = list(readings)
        self.socket_count = socket_count
        self.wraparound = wraparound
        self.calls = 0

    def get_energy_stats(self) -> List[float]:
        self.calls += 1
        if not self._queue:
            raise RuntimeError("no readings queued")
        item = self._queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return list(item)


@pytest.fixture
def make_reader():
    return FakeReader


@pytest.fixture
def log_messages():
    logger = get_logger("benchenergy")
    captured: List[str] = []

    class _CaptureHandler(logging.Handler):
        def emit(self, record):  # type: ignore[override]
            captured.append(record.getMessage())

    capture = _CaptureHandler()
    logger.addHandler(capture)
    try:
        yield captured
    finally:
        logger.removeHandler(capture)


@pytest.fixture
def energy_config(tmp_path: Path) -> Dict[str, Any]:
    return load_config(
        {
            "ENERGY_CSV": str(tmp_path / "energy.csv"),
            "RAPL_ROOT": str(tmp_path / "no-powercap"),
        }
    )
