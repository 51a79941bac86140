"""Tests for the logarithmic gain/phase sweep."""

from __future__ import annotations

import logging
import math

import pytest

from labtools_core.errors import InstrumentIOError, ValidationError
from labtools_core.types.common import Device, DeviceRole

from labtools_bench.config import SweepConfig
from labtools_bench.emulator import EmulatedBench, make_afg2225_emulator, make_rtb_emulator
from labtools_bench.fngen import FunctionGeneratorDriver, ModernDialect
from labtools_bench.scope import OscilloscopeDriver
from labtools_bench.session import InstrumentSession
from labtools_bench.sweep import SweepOrchestrator, SweepState, log_frequencies, run_sweep

GENERATOR = Device("COM3", DeviceRole.FN_GEN_MODERN)
SCOPE = Device("COM4", DeviceRole.SCOPE)


def _open_session() -> tuple[InstrumentSession, EmulatedBench]:
    generator = make_afg2225_emulator()
    bench = EmulatedBench(generator, make_rtb_emulator(signal=generator))
    return bench.session().open([GENERATOR, SCOPE]), bench


def _orchestrator(
    session: InstrumentSession, config: SweepConfig | None = None, **kwargs: object
) -> SweepOrchestrator:
    return SweepOrchestrator(
        session.function_generator,
        session.oscilloscope,
        config,
        sleep=kwargs.pop("sleep", lambda _s: None),  # type: ignore[arg-type]
        **kwargs,  # type: ignore[arg-type]
    )


# ---------------------------------------------------------------------------
# log_frequencies
# ---------------------------------------------------------------------------


class TestLogFrequencies:
    """Tests for sweep planning."""

    def test_fifty_points_one_hz_to_fifteen_mhz(self) -> None:
        frequencies = log_frequencies(1.0, 15e6, 50)
        assert len(frequencies) == 50
        assert frequencies[0] == 1.0
        assert frequencies[-1] == 15e6
        assert all(a < b for a, b in zip(frequencies, frequencies[1:]))

    def test_rounded_to_precision(self) -> None:
        frequencies = log_frequencies(1.0, 15e6, 50, precision=2)
        assert all(round(f, 2) == f for f in frequencies)
        assert frequencies[1] == pytest.approx(1.4, abs=0.01)

    def test_decade_spacing(self) -> None:
        assert log_frequencies(10.0, 10_000.0, 4) == (10.0, 100.0, 1000.0, 10000.0)

    def test_single_point(self) -> None:
        assert log_frequencies(1000.0, 1000.0, 1) == (1000.0,)

    @pytest.mark.parametrize(
        ("start", "stop", "points"),
        [(0.0, 100.0, 10), (-1.0, 100.0, 10), (100.0, 10.0, 10), (1.0, 100.0, 0)],
    )
    def test_invalid_plan(self, start: float, stop: float, points: int) -> None:
        with pytest.raises(ValidationError):
            log_frequencies(start, stop, points)


# ---------------------------------------------------------------------------
# SweepOrchestrator
# ---------------------------------------------------------------------------


class TestPrepare:
    """Tests for sweep preparation."""

    def test_sets_generator_and_calibrates(self) -> None:
        session, bench = _open_session()
        _orchestrator(session).prepare()
        assert bench.generator is not None and bench.scope is not None
        assert bench.generator.amplitude_vpp == pytest.approx(0.2)
        assert bench.generator.waveform == "SIN"
        assert bench.scope.channel_on == {1: True, 2: True}
        assert bench.scope.probe_attenuation == {1: 10.0, 2: 10.0}


class TestRun:
    """Tests for the sweep loop."""

    def test_full_sweep_produces_ascending_records(self) -> None:
        session, _ = _open_session()
        orchestrator = _orchestrator(session)
        assert orchestrator.state is SweepState.IDLE
        records = orchestrator.run()
        assert orchestrator.state is SweepState.COMPLETE
        assert len(records) == 50
        frequencies = [r.frequency_hz for r in records]
        assert frequencies == sorted(frequencies)
        assert frequencies[0] == 1.0
        assert frequencies[-1] == 15e6
        assert not any(r.is_missing for r in records)

    def test_records_follow_low_pass_response(self) -> None:
        session, bench = _open_session()
        orchestrator = _orchestrator(session, SweepConfig(start_hz=1000.0, stop_hz=1e7, points=5))
        orchestrator.prepare()
        records = orchestrator.run()
        assert records[0].ratio == pytest.approx(1.0, abs=1e-3)
        assert records[2].frequency_hz == 100_000.0
        assert records[2].ratio == pytest.approx(2**-0.5, rel=1e-4)
        assert records[2].phase_deg == pytest.approx(-45.0, abs=1e-3)
        assert records[-1].ratio < 0.02

    def test_forced_failure_only_affects_its_step(self, caplog: pytest.LogCaptureFixture) -> None:
        session, bench = _open_session()
        assert bench.scope is not None
        calls = {"count": 0}

        def fail_tenth_step(slot: int, metric: str) -> str | None:
            if slot == 1 and metric == "PEAK":
                calls["count"] += 1
                if calls["count"] == 10:
                    return "garbage"
            return None

        bench.scope.measurement_hook = fail_tenth_step
        orchestrator = _orchestrator(session)
        with caplog.at_level(logging.WARNING, logger="labtools_bench.sweep"):
            records = orchestrator.run()

        assert len(records) == 50
        assert records[9].is_missing
        assert math.isnan(records[9].ratio)
        assert records[9].frequency_hz == log_frequencies(1.0, 15e6, 50)[9]
        assert [i for i, r in enumerate(records) if r.is_missing] == [9]
        assert orchestrator.state is SweepState.COMPLETE
        assert "Measurement failed" in caplog.text

    def test_no_result_marks_step_failed(self) -> None:
        session, bench = _open_session()
        assert bench.scope is not None
        bench.scope.set_result(6, "PHAS", "9.91E+37")
        records = _orchestrator(session, SweepConfig(points=2)).run()
        assert all(r.is_missing for r in records)

    def test_missing_scope_records_failures(self) -> None:
        generator = make_afg2225_emulator()
        session = EmulatedBench(generator, None).session().open([GENERATOR])
        records = _orchestrator(session, SweepConfig(points=3)).run()
        assert len(records) == 3
        assert all(r.is_missing for r in records)

    def test_step_waits(self, sleeps: list[float]) -> None:
        session, _ = _open_session()
        config = SweepConfig(start_hz=1.0, stop_hz=10_000.0, points=3)
        _orchestrator(session, config, sleep=sleeps.append).run()
        # 1 Hz: stabilize, low-frequency settle, three measurement delays
        # 100 Hz: stabilize, mid-frequency settle, three measurement delays
        # 10 kHz: stabilize, three measurement delays
        assert sleeps == [
            2.0, 5.0, 0.5, 0.5, 0.5,
            2.0, 2.0, 0.5, 0.5, 0.5,
            2.0, 0.5, 0.5, 0.5,
        ]  # fmt: skip

    def test_low_frequency_forces_timescale(self) -> None:
        session, bench = _open_session()
        _orchestrator(session, SweepConfig(start_hz=1.0, stop_hz=1.0, points=1)).run()
        assert bench.scope is not None
        assert "TIM:SCAL 2.000E-01" in bench.scope.commands

    def test_measurement_queries(self) -> None:
        session, bench = _open_session()
        _orchestrator(session, SweepConfig(start_hz=1000.0, stop_hz=1000.0, points=1)).run()
        assert bench.scope is not None
        queries = [c for c in bench.scope.commands if ":RES?" in c]
        assert queries == ["MEAS1:RES?PEAK", "MEAS4:RES?PEAK", "MEAS6:RES?PHAS"]

    def test_progress_callback(self) -> None:
        session, _ = _open_session()
        messages: list[str] = []
        _orchestrator(session, SweepConfig(points=3), progress=messages.append).run()
        assert len(messages) == 3
        assert messages[0].startswith("Step 1/3: 1 Hz")

    def test_fatal_error_marks_failed(self) -> None:
        class BrokenConnection:
            def command(self, cmd: str) -> None:
                raise InstrumentIOError("Write to 'COM3' failed: unplugged")

        fn_gen = FunctionGeneratorDriver(lambda: BrokenConnection(), ModernDialect())  # type: ignore[arg-type,return-value]
        scope = OscilloscopeDriver(lambda: None)
        orchestrator = SweepOrchestrator(fn_gen, scope, sleep=lambda _s: None)
        with pytest.raises(InstrumentIOError):
            orchestrator.run()
        assert orchestrator.state is SweepState.FAILED

    def test_invalid_plan_stays_idle(self) -> None:
        session, _ = _open_session()
        orchestrator = _orchestrator(session, SweepConfig(points=0))
        with pytest.raises(ValidationError):
            orchestrator.run()
        assert orchestrator.state is SweepState.IDLE


# ---------------------------------------------------------------------------
# run_sweep
# ---------------------------------------------------------------------------


class TestRunSweep:
    """run_sweep always releases the session."""

    def test_closes_session_on_success(self) -> None:
        session, bench = _open_session()
        records = run_sweep(session, SweepConfig(points=4), sleep=lambda _s: None)
        assert len(records) == 4
        assert not session.initialized
        assert bench.generator is not None
        assert bench.generator.commands[-1] == "*RST"

    def test_closes_session_on_failure(self) -> None:
        session, _ = _open_session()
        with pytest.raises(ValidationError):
            run_sweep(session, SweepConfig(points=0), sleep=lambda _s: None)
        assert not session.initialized
