"""Benchmark harness hook measuring energy per iteration.

The harness drives the lifecycle::

    callback.start(benchmark)      # before snapshot
    ...run the iteration...
    callback.stop(elapsed_ms)      # harness already recorded the time
    callback.complete(benchmark, valid)

Results go to a YAML report (``ENERGY_YML`` or the console) and an
append-only CSV log (``ENERGY_CSV``, default ``energy.csv``). No method here
raises into the harness.
"""
from __future__ import annotations

import enum
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

from benchenergy.config import CONFIG, merge_config
from benchenergy.energy_delta import InconsistentSizes, compute_delta
from benchenergy.energy_reader import (
    CaptureResult,
    EnergyReader,
    EnergySnapshot,
    Unavailable,
    capture_energy,
    open_default_reader,
)
from benchenergy.energy_report import IterationContext, IterationCounter, report
from benchenergy.logging_utils import get_logger

logger = get_logger("benchenergy", CONFIG["LOG_LEVEL"])

_UNSET = object()


class CallbackState(enum.Enum):
    IDLE = "idle"
    BEFORE_CAPTURED = "before_captured"
    AFTER_CAPTURED = "after_captured"
    UNAVAILABLE = "unavailable"
    REPORTED = "reported"


class EnergyCallback:
    """Captures energy around each iteration and reports the per-socket deltas."""

    def __init__(
        self,
        reader: Any = _UNSET,
        config: Optional[Mapping[str, Any]] = None,
        is_warmup: Optional[Callable[[], bool]] = None,
        counter: Optional[IterationCounter] = None,
    ) -> None:
        self.config: Dict[str, Any] = dict(CONFIG)
        if config is not None:
            try:
                self.config = merge_config(CONFIG, config)
            except ValueError as exc:
                logger.error("invalid energy config, using process defaults: %s", exc)
            else:
                if "LOG_LEVEL" in config:
                    logger.setLevel(self.config["LOG_LEVEL"])
        if reader is _UNSET:
            reader = open_default_reader(self.config)
        self.reader: Optional[EnergyReader] = reader
        self.is_warmup = is_warmup or (lambda: False)
        self.counter = counter or IterationCounter()

        self.state = CallbackState.IDLE
        self.elapsed_ms = 0
        self.warmup = False
        self.last_report_ok = False
        self._before: CaptureResult = Unavailable("not captured")
        self._after: CaptureResult = Unavailable("not captured")

    def _capture(self, phase: str) -> CaptureResult:
        result = capture_energy(self.reader)
        if isinstance(result, Unavailable):
            logger.debug("%s energy snapshot unavailable", phase)
            self.state = CallbackState.UNAVAILABLE
        return result

    def start(self, benchmark: str) -> None:
        """Immediately prior to the start of the iteration."""
        self.state = CallbackState.IDLE
        self.last_report_ok = False
        self._after = Unavailable("not captured")
        self._before = self._capture("initial")
        if isinstance(self._before, EnergySnapshot):
            self.state = CallbackState.BEFORE_CAPTURED
        logger.debug("energy capture started", extra={"benchmark": benchmark})

    def stop(self, elapsed_ms: int) -> None:
        """Immediately after the iteration; ``elapsed_ms`` is already measured."""
        self.elapsed_ms = int(elapsed_ms)
        self._after = self._capture("final")
        if isinstance(self._after, EnergySnapshot) and self.state is CallbackState.BEFORE_CAPTURED:
            self.state = CallbackState.AFTER_CAPTURED
        self.counter.advance()
        try:
            self.warmup = bool(self.is_warmup())
        except Exception as exc:
            logger.error("warmup predicate failed, treating iteration as timing: %s", exc)
            self.warmup = False

    def complete(self, benchmark: str, valid: bool) -> None:
        """After validation; emits the reports for this iteration."""
        try:
            self.last_report_ok = self._report(benchmark, valid)
        except Exception:
            logger.exception("energy report failed for %s", benchmark)
            self.last_report_ok = False
        self.state = CallbackState.REPORTED

    def _report(self, benchmark: str, valid: bool) -> bool:
        yml_target = self.config["ENERGY_YML"]
        csv_target = self.config["ENERGY_CSV"]
        before, after = self._before, self._after
        if not isinstance(before, EnergySnapshot):
            return report(self._context(benchmark, valid, 0), before, yml_target, csv_target, self.counter.value)
        if not isinstance(after, EnergySnapshot):
            return report(self._context(benchmark, valid, 0), after, yml_target, csv_target, self.counter.value)

        deltas = compute_delta(
            before,
            after,
            getattr(self.reader, "socket_count", 0),
            getattr(self.reader, "wraparound", 0.0),
        )
        sockets = deltas.socket_count if isinstance(deltas, InconsistentSizes) else len(deltas)
        return report(
            self._context(benchmark, valid, sockets),
            deltas,
            yml_target,
            csv_target,
            self.counter.value,
        )

    def _context(self, benchmark: str, valid: bool, sockets: int) -> IterationContext:
        return IterationContext(
            benchmark=benchmark,
            valid=bool(valid),
            warmup=self.warmup,
            elapsed_ms=self.elapsed_ms,
            sockets=sockets,
        )


class IterationHandle:
    """Yielded by :func:`measure_iteration`; set ``valid`` before the block ends."""

    def __init__(self) -> None:
        self.valid = True
        self.elapsed_ms = 0


@contextmanager
def measure_iteration(callback: EnergyCallback, benchmark: str) -> Iterator[IterationHandle]:
    """Run one measured iteration of ``benchmark`` inside a ``with`` block.

    An exception raised by the block marks the iteration invalid, is reported
    like any other iteration and then propagates to the caller.
    """
    handle = IterationHandle()
    callback.start(benchmark)
    t0 = time.perf_counter()
    try:
        yield handle
    except BaseException:
        handle.valid = False
        raise
    finally:
        handle.elapsed_ms = int((time.perf_counter() - t0) * 1000)
        callback.stop(handle.elapsed_ms)
        callback.complete(benchmark, handle.valid)


__all__ = [
    "CallbackState",
    "EnergyCallback",
    "IterationHandle",
    "measure_iteration",
]
