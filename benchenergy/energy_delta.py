"""Per-socket energy deltas between two counter snapshots."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Union

_CHANNELS_PER_SOCKET = 3
_DRAM, _CPU, _PACKAGE = range(_CHANNELS_PER_SOCKET)


@dataclass(frozen=True)
class SocketDelta:
    """Energy consumed by one socket during the interval, in joules."""

    socket: int
    dram: float
    cpu: float
    package: float


@dataclass(frozen=True)
class InconsistentSizes:
    """Snapshots cannot cover ``socket_count`` sockets; nothing may be reported."""

    socket_count: int
    before_len: int
    after_len: int

    def __str__(self) -> str:
        return (
            f"inconsistent energy vector sizes (sockets={self.socket_count}, "
            f"before={self.before_len}, after={self.after_len})"
        )


DeltaResult = Union[List[SocketDelta], InconsistentSizes]


def resolve_socket_count(declared: int, snapshot_len: int) -> int:
    """Return ``declared`` when positive, else infer it from the snapshot length."""
    if declared > 0:
        return declared
    return snapshot_len // _CHANNELS_PER_SOCKET


def delta_with_wraparound(after: float, before: float, wraparound: float) -> float:
    """Difference of two cumulative readings, allowing for one counter rollover."""
    raw = after - before
    if raw < 0:
        raw += wraparound
    return raw


def compute_delta(
    before: Sequence[float],
    after: Sequence[float],
    socket_count: int,
    wraparound: float,
) -> DeltaResult:
    """Compute one :class:`SocketDelta` per socket.

    ``socket_count`` is the reader's hint; values <= 0 mean "infer from
    ``before``". Returns :class:`InconsistentSizes` instead of a partial result
    when either snapshot is too short for the resolved socket count.
    """

    sockets = resolve_socket_count(socket_count, len(before))
    needed = _CHANNELS_PER_SOCKET * sockets
    if sockets <= 0 or len(before) < needed or len(after) < needed:
        return InconsistentSizes(sockets, len(before), len(after))

    deltas: List[SocketDelta] = []
    for s in range(sockets):
        base = s * _CHANNELS_PER_SOCKET
        dram, cpu, package = (
            delta_with_wraparound(after[base + c], before[base + c], wraparound)
            for c in (_DRAM, _CPU, _PACKAGE)
        )
        deltas.append(SocketDelta(socket=s, dram=dram, cpu=cpu, package=package))
    return deltas


__all__ = [
    "DeltaResult",
    "InconsistentSizes",
    "SocketDelta",
    "compute_delta",
    "delta_with_wraparound",
    "resolve_socket_count",
]
