"""Energy counter snapshots around a benchmark iteration.

The reader facility exposes raw cumulative counters (three per socket, ordered
DRAM, CPU, Package) plus a socket-count hint and the counter's wraparound
range. :func:`capture_energy` turns a read into a tagged outcome so the
surrounding harness is never interrupted by a failing counter.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from benchenergy.config import CONFIG
from benchenergy.logging_utils import get_logger

logger = get_logger("benchenergy", CONFIG["LOG_LEVEL"])

_DEFAULT_RAPL_ROOT = "/sys/class/powercap"
_SOCKET_ZONE = re.compile(r"^intel-rapl:(\d+)$")
# powercap sub-zone names for the per-socket channels
_SUBZONE_CHANNEL = {"dram": "dram", "core": "cpu"}
_UJ_PER_J = 1_000_000.0


class EnergyReaderUnavailable(RuntimeError):
    """Raised when the energy counter facility cannot be loaded."""


@dataclass(frozen=True)
class EnergySnapshot:
    """Immutable counter readings in joules, socket-major, three per socket."""

    readings: Tuple[float, ...]

    @classmethod
    def of(cls, values: Sequence[float]) -> "EnergySnapshot":
        return cls(tuple(float(v) for v in values))

    def __len__(self) -> int:
        return len(self.readings)

    def __getitem__(self, index: int) -> float:
        return self.readings[index]

    def __iter__(self) -> Iterator[float]:
        return iter(self.readings)


@dataclass(frozen=True)
class Unavailable:
    """No energy data for this snapshot; ``reason`` is for diagnostics only."""

    reason: str


CaptureResult = Union[EnergySnapshot, Unavailable]


class EnergyReader:
    """Interface of the counter facility used by :func:`capture_energy`."""

    socket_count: int = 0
    wraparound: float = 0.0

    def get_energy_stats(self) -> List[float]:
        raise NotImplementedError


@dataclass(frozen=True)
class _SocketZone:
    index: int
    package: Path
    cpu: Optional[Path]
    dram: Optional[Path]


def _read_uj(path: Path) -> int:
    return int(path.read_text(encoding="utf-8").strip())


class RaplReader(EnergyReader):
    """Reads RAPL energy counters from the Linux powercap sysfs tree.

    Each top-level ``intel-rapl:<N>`` zone is one socket and its own
    ``energy_uj`` is the Package channel. Sub-zones named ``core`` and
    ``dram`` supply the CPU and DRAM channels; a socket without one of them
    reports ``0.0`` for that channel.
    """

    def __init__(self, root: Union[str, Path] = _DEFAULT_RAPL_ROOT) -> None:
        self.root = Path(root)
        try:
            self._zones = self._discover()
        except OSError as exc:
            raise EnergyReaderUnavailable(f"cannot scan {self.root}: {exc}") from exc
        if not self._zones:
            raise EnergyReaderUnavailable(f"no readable intel-rapl zones under {self.root}")

        # One range for every channel: sub-zones may publish their own
        # max_energy_range_uj, but a wrapped dram/core delta uses this value.
        max_file = self._zones[0].package.parent / "max_energy_range_uj"
        try:
            self.wraparound = _read_uj(max_file) / _UJ_PER_J
        except (OSError, ValueError) as exc:
            raise EnergyReaderUnavailable(f"cannot read wraparound range from {max_file}: {exc}") from exc
        self.socket_count = len(self._zones)

    def _discover(self) -> List[_SocketZone]:
        if not self.root.is_dir():
            return []

        zones: List[_SocketZone] = []
        for zone_dir in self.root.iterdir():
            match = _SOCKET_ZONE.match(zone_dir.name)
            if not match:
                continue
            energy_file = zone_dir / "energy_uj"
            try:
                _read_uj(energy_file)
            except (OSError, ValueError) as exc:
                logger.warning("RAPL zone %s is not readable: %s", zone_dir, exc)
                continue

            channels: Dict[str, Path] = {}
            for sub_dir in zone_dir.glob(f"{zone_dir.name}:*"):
                try:
                    name = (sub_dir / "name").read_text(encoding="utf-8").strip()
                except OSError:
                    continue
                channel = _SUBZONE_CHANNEL.get(name)
                if channel and (sub_dir / "energy_uj").is_file():
                    channels[channel] = sub_dir / "energy_uj"

            zones.append(
                _SocketZone(
                    index=int(match.group(1)),
                    package=energy_file,
                    cpu=channels.get("cpu"),
                    dram=channels.get("dram"),
                )
            )
        zones.sort(key=lambda zone: zone.index)
        return zones

    def get_energy_stats(self) -> List[float]:
        readings: List[float] = []
        for zone in self._zones:
            for path in (zone.dram, zone.cpu, zone.package):
                readings.append(_read_uj(path) / _UJ_PER_J if path is not None else 0.0)
        return readings


def open_default_reader(cfg: Mapping[str, Any]) -> Optional[EnergyReader]:
    """Build the RAPL reader from ``cfg``; ``None`` when the facility cannot load."""
    try:
        return RaplReader(cfg["RAPL_ROOT"])
    except EnergyReaderUnavailable as exc:
        logger.error("failed to load energy counters: %s", exc)
        return None


def capture_energy(reader: Optional[EnergyReader]) -> CaptureResult:
    """Take one snapshot; any failure is reported as :class:`Unavailable`."""
    if reader is None:
        logger.error("failed to read energy counters: energy reader not available")
        return Unavailable("energy reader not available")
    try:
        return EnergySnapshot.of(reader.get_energy_stats())
    except Exception as exc:  # any reader fault only disables reporting
        logger.error("unexpected error while reading energy stats: %s", exc)
        return Unavailable(f"{type(exc).__name__}: {exc}")


__all__ = [
    "CaptureResult",
    "EnergyReader",
    "EnergyReaderUnavailable",
    "EnergySnapshot",
    "RaplReader",
    "Unavailable",
    "capture_energy",
    "open_default_reader",
]
