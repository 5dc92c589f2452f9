"""Per-iteration energy reports: a YAML document and an append-only CSV log.

Reporting is best-effort. Every I/O failure is logged to the diagnostic
stream and swallowed so a broken output target never aborts a benchmark run.
"""
from __future__ import annotations

import csv
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import yaml

from benchenergy.config import CONFIG
from benchenergy.energy_delta import InconsistentSizes, SocketDelta
from benchenergy.energy_reader import Unavailable
from benchenergy.logging_utils import get_logger

logger = get_logger("benchenergy", CONFIG["LOG_LEVEL"])

YML_SETTING = "ENERGY_YML"
CSV_HEADER = ["benchmark", "valid", "warmup", "elapsed_ms", "socket", "dram_j", "cpu_j", "package_j"]

_REPORT_HEADER = (
    "# Energy statistics generated from a benchmark run using RAPL counters\n"
    "# Example:\n"
    f"#   {YML_SETTING}=<output_file> <benchmark harness command>\n"
    "#\n"
)

PathLike = Union[str, "os.PathLike[str]"]


@dataclass(frozen=True)
class IterationContext:
    """What the harness knows about the iteration at completion time."""

    benchmark: str
    valid: bool
    warmup: bool
    elapsed_ms: int
    sockets: int


class IterationCounter:
    """Counts stop events; drives the warmup report filename suffix."""

    def __init__(self, start: int = 0) -> None:
        self.value = start

    def advance(self) -> int:
        self.value += 1
        return self.value


def _flag(value: bool) -> str:
    return "true" if value else "false"


def report_path(base: PathLike, warmup: bool, iteration: int) -> str:
    """Warmup reports get a ``.<iteration>`` suffix; the timing report keeps ``base``."""
    base = os.fspath(base)
    return f"{base}.{iteration}" if warmup else base


def render_report(ctx: IterationContext, deltas: Sequence[SocketDelta]) -> str:
    document = {
        "benchmark": ctx.benchmark,
        "valid": bool(ctx.valid),
        "warmup": bool(ctx.warmup),
        "elapsed-time-ms": int(ctx.elapsed_ms),
        "sockets": int(ctx.sockets),
        "energy-joules": {
            f"socket-{delta.socket}": {
                "dram": float(delta.dram),
                "cpu": float(delta.cpu),
                "package": float(delta.package),
            }
            for delta in deltas
        },
    }
    return _REPORT_HEADER + yaml.safe_dump(document, sort_keys=False, default_flow_style=False)


def _write_console(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def write_report(
    ctx: IterationContext,
    deltas: Sequence[SocketDelta],
    yml_target: Optional[PathLike],
    iteration: int,
) -> Optional[str]:
    """Write the YAML report; returns the file path, or ``None`` when it went to stdout."""
    text = render_report(ctx, deltas)

    if yml_target is None:
        print(f"The '{YML_SETTING}' setting is not set, so printing energy yml to console.")
        _write_console(text)
        return None

    path = report_path(yml_target, ctx.warmup, iteration)
    try:
        handle = open(path, "w", encoding="utf-8")
    except OSError as exc:
        logger.error("could not open '%s', so printing energy yml to console: %s", path, exc)
        _write_console(text)
        return None

    try:
        with handle:
            handle.write(text)
    except OSError as exc:
        logger.error("failed writing energy yml to '%s': %s", path, exc)
        return None
    return path


def format_csv_row(ctx: IterationContext, delta: SocketDelta) -> List[str]:
    return [
        ctx.benchmark,
        _flag(ctx.valid),
        _flag(ctx.warmup),
        str(int(ctx.elapsed_ms)),
        str(delta.socket),
        f"{delta.dram:.9f}",
        f"{delta.cpu:.9f}",
        f"{delta.package:.9f}",
    ]


def append_csv_row(csv_target: PathLike, ctx: IterationContext, delta: SocketDelta) -> bool:
    """Append one socket row, writing the header first if the file is new."""
    path = Path(csv_target)
    new_file = not path.exists()
    try:
        with path.open("a", newline="", encoding="utf-8") as handle:
            writer = csv.writer(handle, lineterminator="\n")
            if new_file:
                writer.writerow(CSV_HEADER)
            writer.writerow(format_csv_row(ctx, delta))
    except OSError as exc:
        logger.error("could not append to CSV '%s': %s", path, exc)
        return False
    return True


def report(
    ctx: IterationContext,
    deltas: Union[Iterable[SocketDelta], Unavailable, InconsistentSizes, None],
    yml_target: Optional[PathLike],
    csv_target: PathLike,
    iteration: int,
) -> bool:
    """Emit both reports for one iteration. Returns ``False`` when nothing was reported."""
    if deltas is None or isinstance(deltas, Unavailable):
        logger.error("energy measurements are unavailable for this iteration")
        return False
    if isinstance(deltas, InconsistentSizes):
        logger.error("%s; skipping report", deltas)
        return False

    deltas = list(deltas)
    write_report(ctx, deltas, yml_target, iteration)
    for delta in deltas:
        append_csv_row(csv_target, ctx, delta)
    return True


__all__ = [
    "CSV_HEADER",
    "IterationContext",
    "IterationCounter",
    "append_csv_row",
    "format_csv_row",
    "render_report",
    "report",
    "report_path",
    "write_report",
]
