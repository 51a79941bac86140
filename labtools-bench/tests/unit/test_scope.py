"""Tests for the oscilloscope driver against the RTB emulator."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from labtools_core.errors import InstrumentIOError, ProtocolError, ValidationError
from labtools_scpi import ScpiConnection

from labtools_bench.emulator import (
    BLANK_GIF,
    OscilloscopeEmulator,
    make_afg2225_emulator,
    make_rtb_emulator,
)
from labtools_bench.scope import AUTOMEASURE_TYPES, VALID_AVERAGES, OscilloscopeDriver


def _make_scope(
    emu: OscilloscopeEmulator | None = None,
    waits: list[float] | None = None,
    **kwargs: object,
) -> tuple[OscilloscopeDriver, OscilloscopeEmulator]:
    """Create a scope driver backed by an RTB emulator."""
    emu = emu or make_rtb_emulator()
    conn = ScpiConnection(emu, settle_s=0.0)
    sleep = waits.append if waits is not None else (lambda _s: None)
    driver = OscilloscopeDriver(lambda: conn, sleep=sleep, **kwargs)  # type: ignore[arg-type]
    return driver, emu


class TestConstants:
    """Automeasure keywords and valid average counts."""

    def test_thirty_one_keywords(self) -> None:
        assert len(AUTOMEASURE_TYPES) == 31
        assert {"PEAK", "FREQ", "PHAS"} <= set(AUTOMEASURE_TYPES)

    def test_average_counts(self) -> None:
        assert sorted(VALID_AVERAGES) == [2, 4, 8, 16, 32, 64, 128, 256, 512, 1024]


class TestSetup:
    """Channel, probe, and timebase commands."""

    def test_calibrate(self) -> None:
        scope, emu = _make_scope()
        scope.calibrate()
        assert emu.commands == [
            "CHAN1:STAT ON",
            "CHAN2:STAT ON",
            "PROB1:SET:ATT:MAN 10",
            "PROB2:SET:ATT:MAN 10",
            "AUT",
        ]
        assert emu.channel_on == {1: True, 2: True}
        assert emu.probe_attenuation == {1: 10.0, 2: 10.0}
        assert emu.pending_error_count == 0

    def test_autoset(self) -> None:
        scope, emu = _make_scope()
        scope.autoset()
        assert emu.autoset_count == 1

    def test_center_traces(self) -> None:
        scope, emu = _make_scope()
        scope.center_traces()
        assert emu.commands == ["CHAN1:POS 0", "CHAN2:POS 0"]

    def test_set_timescale_format(self) -> None:
        scope, emu = _make_scope()
        scope.set_timescale(0.2)
        assert emu.commands == ["TIM:SCAL 2.000E-01"]
        assert emu.timescale == pytest.approx(0.2)

    def test_fit_timescale(self) -> None:
        scope, emu = _make_scope()
        assert scope.fit_timescale(1000.0) == pytest.approx(3 / 1000 / 12)
        assert emu.timescale == pytest.approx(2.5e-4)

    def test_fit_timescale_rejects_zero_frequency(self) -> None:
        scope, emu = _make_scope()
        with pytest.raises(ValidationError):
            scope.fit_timescale(0.0)
        assert emu.commands == []

    def test_acquire_refresh(self) -> None:
        scope, emu = _make_scope()
        scope.acquire_refresh()
        assert emu.acquire_type == "REFRESH"
        assert emu.commands == ["ACQ:TYPE Refresh"]


class TestAutomeasure:
    """Measurement slot configuration and reads."""

    def test_configure(self) -> None:
        scope, emu = _make_scope()
        scope.configure_automeasure("peak", "FREQ")
        assert emu.commands == [
            "MEAS1 ON",
            "MEAS2 ON",
            "MEAS3 ON",
            "MEAS4 ON",
            "MEAS1:SOUR CH1",
            "MEAS2:SOUR CH1",
            "MEAS3:SOUR CH2",
            "MEAS4:SOUR CH2",
            "MEAS1:MAIN PEAK",
            "MEAS2:MAIN FREQ",
            "MEAS3:MAIN PEAK",
            "MEAS4:MAIN FREQ",
        ]
        assert emu.slots[4].source == "CH2"
        assert emu.slots[4].main == "FREQ"

    def test_invalid_metric_writes_nothing(self) -> None:
        scope, emu = _make_scope()
        with pytest.raises(ValidationError, match="VOLTS") as excinfo:
            scope.configure_automeasure("PEAK", "VOLTS")
        assert emu.commands == []
        assert "valid types are" in str(excinfo.value)
        assert all(keyword in str(excinfo.value) for keyword in AUTOMEASURE_TYPES)

    def test_measure_scripted_value(self) -> None:
        scope, emu = _make_scope()
        emu.set_result(1, "PEAK", 0.198)
        assert scope.measure(1, "PEAK") == pytest.approx(0.198)
        assert emu.commands == ["MEAS1:RES?PEAK"]

    def test_measure_follows_signal(self) -> None:
        generator = make_afg2225_emulator()
        generator.frequency_hz = 100_000.0
        generator.amplitude_vpp = 0.2
        scope, _ = _make_scope(make_rtb_emulator(signal=generator))
        assert scope.measure(1, "PEAK") == pytest.approx(0.2)
        assert scope.measure(4, "PEAK") == pytest.approx(0.2 / 2**0.5)
        assert scope.measure(6, "PHAS") == pytest.approx(-45.0)

    def test_measure_garbage_raises_value_error(self) -> None:
        scope, emu = _make_scope()
        emu.set_result(1, "PEAK", "----")
        with pytest.raises(ValueError):
            scope.measure(1, "PEAK")

    def test_measure_invalid_slot(self) -> None:
        scope, _ = _make_scope()
        with pytest.raises(ValidationError):
            scope.measure(0, "PEAK")


class TestAcquireAveraged:
    """Averaged acquisition and its diagnostics."""

    def test_valid_count_no_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        waits: list[float] = []
        scope, emu = _make_scope(waits=waits)
        with caplog.at_level(logging.WARNING, logger="labtools_bench.scope"):
            scope.acquire_averaged(256, frequency_hz=128.0)
        assert "power of two" not in caplog.text
        assert emu.commands == ["ACQ:TYPE Refresh", "ACQ:TYPE Average", "ACQ:AVER:COUNT 256"]
        assert emu.average_count == 256
        assert waits == [2.0]

    def test_invalid_count_warns_and_proceeds(self, caplog: pytest.LogCaptureFixture) -> None:
        scope, emu = _make_scope()
        with caplog.at_level(logging.WARNING, logger="labtools_bench.scope"):
            scope.acquire_averaged(100, frequency_hz=1000.0)
        assert "Average count 100" in caplog.text
        assert emu.commands[-1] == "ACQ:AVER:COUNT 100"

    def test_strict_rejects_invalid_count(self) -> None:
        scope, emu = _make_scope(strict_averages=True)
        with pytest.raises(ValidationError, match="100"):
            scope.acquire_averaged(100, frequency_hz=1000.0)
        assert emu.commands == []

    def test_frequency_from_source(self) -> None:
        waits: list[float] = []
        scope, _ = _make_scope(waits=waits, frequency_source=lambda: 100.0)
        scope.acquire_averaged(1024)
        assert waits == [pytest.approx(10.24)]

    def test_no_frequency_skips_wait(self, caplog: pytest.LogCaptureFixture) -> None:
        waits: list[float] = []
        scope, _ = _make_scope(waits=waits, frequency_source=lambda: None)
        with caplog.at_level(logging.WARNING, logger="labtools_bench.scope"):
            scope.acquire_averaged(16)
        assert waits == []
        assert "No usable signal frequency" in caplog.text


class TestErrorQueue:
    """Status byte gated error queue draining."""

    def test_empty_queue(self) -> None:
        scope, emu = _make_scope()
        assert scope.read_errors() == ()
        assert emu.commands == ["*STB?"]

    def test_drains_in_order(self) -> None:
        scope, emu = _make_scope()
        emu.push_error(-113, "Undefined header")
        emu.push_error(-222, "Data out of range")
        assert scope.read_errors() == ('-113,"Undefined header"', '-222,"Data out of range"')
        assert emu.pending_error_count == 0

    def test_check_errors_logs_warnings(self, caplog: pytest.LogCaptureFixture) -> None:
        scope, emu = _make_scope()
        emu.push_error(-222, "Data out of range")
        with caplog.at_level(logging.WARNING, logger="labtools_bench.scope"):
            errors = scope.check_errors()
        assert errors == ('-222,"Data out of range"',)
        assert "Data out of range" in caplog.text


class TestCaptureScreenshot:
    """Hard copy rendering and block transfer."""

    def test_capture_writes_gif(self, tmp_path: Path) -> None:
        scope, emu = _make_scope()
        target = tmp_path / "Image-2.gif"
        data = scope.capture_screenshot(target)
        assert data == BLANK_GIF
        assert target.read_bytes() == BLANK_GIF
        assert emu.read_termination == "\n"
        assert emu.bytes_available == 0
        assert emu.pending_error_count == 0

    def test_command_sequence(self, tmp_path: Path) -> None:
        scope, emu = _make_scope()
        scope.capture_screenshot(tmp_path / "shot.GIF")
        assert emu.commands == [
            "MMEM:DEL 'internal_ss.gif'",
            "*CLS",
            "*OPC?",
            "*STB?",
            "HCOP:LANG GIF",
            "MMEM:NAME 'internal_ss'",
            "HCOP:IMM",
            "*OPC?",
            "*STB?",
            "MMEM:DATA? 'internal_ss.gif'",
            "*STB?",
        ]

    def test_wrong_suffix_rejected_without_io(self, tmp_path: Path) -> None:
        scope, emu = _make_scope()
        with pytest.raises(ValidationError, match=".gif"):
            scope.capture_screenshot(tmp_path / "shot.png")
        assert emu.commands == []

    def test_failed_render_restores_line_mode(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        scope, emu = _make_scope()
        emu.hardcopy_enabled = False
        target = tmp_path / "shot.gif"
        with caplog.at_level(logging.WARNING, logger="labtools_bench.scope"):
            with pytest.raises(ProtocolError, match="No #"):
                scope.capture_screenshot(target)
        assert not target.exists()
        assert emu.read_termination == "\n"
        assert emu.bytes_available == 0
        assert "Execution error" in caplog.text
        assert emu.commands[-1] == "SYST:ERR?"

    def test_dead_link_after_transfer_keeps_transfer_error(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        scope, emu = _make_scope()
        emu.hardcopy_enabled = False
        forward = emu.write

        def write(message: str) -> None:
            if "MMEM:DATA? 'internal_ss.gif'" in emu.commands:
                raise InstrumentIOError("Write to 'ASRL4::INSTR' failed: timeout")
            forward(message)

        emu.write = write  # type: ignore[method-assign]
        with caplog.at_level(logging.ERROR, logger="labtools_bench.scope"):
            with pytest.raises(ProtocolError, match="No #"):
                scope.capture_screenshot(tmp_path / "shot.gif")
        assert "Error check after screenshot failed" in caplog.text

    def test_stale_image_replaced(self, tmp_path: Path) -> None:
        scope, emu = _make_scope()
        emu.store_file("internal_ss.gif", b"stale")
        assert scope.capture_screenshot(tmp_path / "shot.gif") == BLANK_GIF


class TestMissingScope:
    """Commands without a connected scope are skipped."""

    def test_skipped_with_warning(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        scope = OscilloscopeDriver(lambda: None)
        with caplog.at_level(logging.WARNING, logger="labtools_bench.scope"):
            scope.calibrate()
            assert scope.measure(1, "PEAK") is None
            assert scope.read_errors() == ()
            assert scope.capture_screenshot(tmp_path / "x.gif") is None
        assert "Oscilloscope not connected" in caplog.text
        assert not (tmp_path / "x.gif").exists()
