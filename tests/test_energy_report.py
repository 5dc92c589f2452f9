"""Tests for benchenergy.energy_report."""
from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from benchenergy.energy_delta import InconsistentSizes, SocketDelta
from benchenergy.energy_reader import Unavailable
from benchenergy.energy_report import (
    CSV_HEADER,
    IterationContext,
    IterationCounter,
    append_csv_row,
    format_csv_row,
    render_report,
    report,
    report_path,
    write_report,
)

HEADER_LINE = ",".join(CSV_HEADER)


def _demo_ctx(**overrides) -> IterationContext:
    fields = dict(benchmark="demo", valid=True, warmup=False, elapsed_ms=120, sockets=1)
    fields.update(overrides)
    return IterationContext(**fields)


DEMO_DELTAS = [SocketDelta(socket=0, dram=5.0, cpu=4.0, package=10.0)]


def test_report_path_suffix_only_for_warmup() -> None:
    assert report_path("energy.yml", warmup=True, iteration=1) == "energy.yml.1"
    assert report_path("energy.yml", warmup=True, iteration=2) == "energy.yml.2"
    assert report_path(Path("out/energy.yml"), warmup=False, iteration=3) == str(Path("out/energy.yml"))


def test_iteration_counter_advances() -> None:
    counter = IterationCounter()
    assert counter.value == 0
    assert counter.advance() == 1
    assert counter.advance() == 2
    assert counter.value == 2


def test_render_report_demo() -> None:
    text = render_report(_demo_ctx(), DEMO_DELTAS)
    lines = text.splitlines()

    assert lines[0].startswith("# Energy statistics")
    assert "benchmark: demo" in lines
    assert "valid: true" in lines
    assert "warmup: false" in lines
    assert "elapsed-time-ms: 120" in lines
    assert "sockets: 1" in lines
    assert "    dram: 5.0" in lines
    assert "    cpu: 4.0" in lines
    assert "    package: 10.0" in lines

    parsed = yaml.safe_load(text)
    assert parsed["energy-joules"] == {"socket-0": {"dram": 5.0, "cpu": 4.0, "package": 10.0}}
    assert list(parsed) == ["benchmark", "valid", "warmup", "elapsed-time-ms", "sockets", "energy-joules"]


def test_write_report_to_console_when_unset(capsys: pytest.CaptureFixture[str]) -> None:
    assert write_report(_demo_ctx(), DEMO_DELTAS, None, 1) is None

    out = capsys.readouterr().out
    assert "'ENERGY_YML' setting is not set" in out
    assert "dram: 5.0" in out


def test_write_report_uses_warmup_suffix(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    base = tmp_path / "energy.yml"

    written = write_report(_demo_ctx(warmup=True), DEMO_DELTAS, base, 1)

    assert written == str(base) + ".1"
    assert not base.exists()
    parsed = yaml.safe_load(Path(written).read_text(encoding="utf-8"))
    assert parsed["warmup"] is True
    assert capsys.readouterr().out == ""


def test_write_report_falls_back_to_console(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], log_messages: list
) -> None:
    target = tmp_path / "missing-dir" / "energy.yml"

    assert write_report(_demo_ctx(), DEMO_DELTAS, target, 1) is None

    assert "package: 10.0" in capsys.readouterr().out
    assert any("printing energy yml to console" in msg for msg in log_messages)


def test_format_csv_row_demo() -> None:
    row = format_csv_row(_demo_ctx(), DEMO_DELTAS[0])
    assert ",".join(row) == "demo,true,false,120,0,5.000000000,4.000000000,10.000000000"


def test_csv_header_written_once(tmp_path: Path) -> None:
    csv_path = tmp_path / "energy.csv"
    deltas = [
        SocketDelta(socket=0, dram=1.0, cpu=2.0, package=3.0),
        SocketDelta(socket=1, dram=0.5, cpu=0.25, package=0.125),
    ]

    for i in range(3):
        ctx = _demo_ctx(elapsed_ms=100 + i, sockets=2)
        assert report(ctx, deltas, tmp_path / "energy.yml", csv_path, i + 1)

    lines = csv_path.read_text(encoding="utf-8").splitlines()
    assert lines.count(HEADER_LINE) == 1
    assert lines[0] == HEADER_LINE
    assert len(lines) == 1 + 3 * 2
    assert lines[-1] == "demo,true,false,102,1,0.500000000,0.250000000,0.125000000"


def test_append_csv_row_failure_is_logged(tmp_path: Path, log_messages: list) -> None:
    # A directory cannot be opened for appending
    assert append_csv_row(tmp_path, _demo_ctx(), DEMO_DELTAS[0]) is False
    assert any("could not append to CSV" in msg for msg in log_messages)


@pytest.mark.parametrize(
    "deltas",
    [
        None,
        Unavailable("counter read failed"),
        InconsistentSizes(socket_count=2, before_len=3, after_len=3),
    ],
)
def test_report_skips_without_energy_data(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], log_messages: list, deltas
) -> None:
    csv_path = tmp_path / "energy.csv"
    yml_path = tmp_path / "energy.yml"

    assert report(_demo_ctx(), deltas, yml_path, csv_path, 1) is False

    assert not csv_path.exists()
    assert not yml_path.exists()
    assert capsys.readouterr().out == ""
    assert log_messages


class _BrokenHandle:
    """File handle whose write fails as on a full disk."""

    def __init__(self) -> None:
        self.closed = False

    def write(self, text: str) -> int:
        raise OSError(28, "No space left on device")

    def __enter__(self) -> "_BrokenHandle":
        return self

    def __exit__(self, *exc) -> bool:
        self.closed = True
        return False


def test_write_failure_after_open_is_logged_not_echoed(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], log_messages: list
) -> None:
    import benchenergy.energy_report as report_mod

    handles: list = []

    def broken_open(path, mode="r", encoding=None):
        handles.append(_BrokenHandle())
        return handles[-1]

    monkeypatch.setattr(report_mod, "open", broken_open, raising=False)
    csv_path = tmp_path / "energy.csv"

    assert report(_demo_ctx(), DEMO_DELTAS, tmp_path / "energy.yml", csv_path, 1) is True

    assert handles and handles[0].closed
    assert any("failed writing energy yml" in msg for msg in log_messages)
    assert capsys.readouterr().out == ""
    assert csv_path.read_text(encoding="utf-8").splitlines() == [
        HEADER_LINE,
        "demo,true,false,120,0,5.000000000,4.000000000,10.000000000",
    ]
