"""Logarithmic frequency sweep measuring gain and phase.

For each planned frequency the generator is retuned, the scope is autoset,
and three automatic measurements are read: channel 1 peak-to-peak, channel 2
peak-to-peak, and the phase between them. A step whose measurements fail is
recorded as all-NaN and the sweep moves on, so the result always has one
record per planned frequency.
"""

from __future__ import annotations

import logging
import math
import time
from enum import Enum
from typing import TYPE_CHECKING, Callable

from labtools_core.errors import LabtoolsError, MeasurementError, SessionStateError, ValidationError
from labtools_core.types.measurement import MeasurementRecord

from labtools_bench.config import SweepConfig
from labtools_bench.fngen import FunctionGeneratorDriver
from labtools_bench.scope import OscilloscopeDriver

if TYPE_CHECKING:
    from labtools_bench.session import InstrumentSession

logger = logging.getLogger(__name__)


def log_frequencies(
    start_hz: float, stop_hz: float, points: int, precision: int = 2
) -> tuple[float, ...]:
    """Plan *points* log-spaced frequencies from *start_hz* to *stop_hz*.

    Both bounds are included. Values are rounded to *precision* decimals.

    Raises:
        ValidationError: If the bounds are not positive and ascending or
            *points* is below 1.
    """
    if points < 1:
        raise ValidationError(f"points must be >= 1, got {points}")
    if not 0 < start_hz <= stop_hz or not math.isfinite(stop_hz):
        raise ValidationError(
            f"Sweep bounds must satisfy 0 < start <= stop, got {start_hz} and {stop_hz}"
        )
    if points == 1:
        return (round(start_hz, precision),)

    low = math.log10(start_hz)
    step = (math.log10(stop_hz) - low) / (points - 1)
    return tuple(round(10 ** (low + i * step), precision) for i in range(points))


class SweepState(Enum):
    """Lifecycle of a :class:`SweepOrchestrator` run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


class SweepOrchestrator:
    """Drives a gain/phase sweep over the generator and scope.

    Args:
        function_generator: Generator driver.
        oscilloscope: Scope driver.
        config: Sweep plan, delays, thresholds, and measurement slots.
        sleep: Blocking wait function, replaceable in tests.
        progress: Called with a status line after each step.
    """

    def __init__(
        self,
        function_generator: FunctionGeneratorDriver,
        oscilloscope: OscilloscopeDriver,
        config: SweepConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        progress: Callable[[str], None] | None = None,
    ) -> None:
        self._fn_gen = function_generator
        self._scope = oscilloscope
        self._config = config or SweepConfig()
        self._sleep = sleep
        self._progress = progress
        self._state = SweepState.IDLE
        self._records: list[MeasurementRecord] = []

    @property
    def state(self) -> SweepState:
        """Current lifecycle state."""
        return self._state

    @property
    def records(self) -> tuple[MeasurementRecord, ...]:
        """Records collected so far, in sweep order."""
        return tuple(self._records)

    @property
    def frequencies(self) -> tuple[float, ...]:
        """The planned sweep frequencies."""
        cfg = self._config
        return log_frequencies(cfg.start_hz, cfg.stop_hz, cfg.points, cfg.precision)

    def prepare(self) -> None:
        """Set the generator amplitude and waveform and calibrate the scope."""
        self._fn_gen.set_amplitude(self._config.amplitude_vpp)
        self._fn_gen.set_waveform(self._config.waveform)
        self._scope.calibrate()

    def run(self) -> tuple[MeasurementRecord, ...]:
        """Measure every planned frequency.

        Returns:
            One record per planned frequency, in ascending order.

        Raises:
            SessionStateError: If a sweep is already running.
            ValidationError: If the sweep plan is invalid.
        """
        if self._state is SweepState.RUNNING:
            raise SessionStateError("Sweep is already running")
        frequencies = self.frequencies

        self._state = SweepState.RUNNING
        self._records = []
        total = len(frequencies)
        try:
            for index, frequency in enumerate(frequencies, start=1):
                record = self._step(frequency)
                self._records.append(record)
                self._report(index, total, record)
        except BaseException:
            self._state = SweepState.FAILED
            raise
        self._state = SweepState.COMPLETE
        return tuple(self._records)

    # -- Private helpers ----------------------------------------------------

    def _step(self, frequency: float) -> MeasurementRecord:
        cfg = self._config
        self._fn_gen.set_frequency(frequency)
        self._sleep(cfg.stabilize_s)
        self._scope.autoset()
        self._scope.center_traces()

        if frequency < cfg.low_threshold_hz:
            self._scope.set_timescale(cfg.low_timescale_s)
            self._sleep(cfg.low_settle_s)
        elif frequency < cfg.mid_threshold_hz:
            self._sleep(cfg.mid_settle_s)

        try:
            ch1 = self._measure(cfg.ch1_slot, "PEAK")
            ch2 = self._measure(cfg.ch2_slot, "PEAK")
            phase = self._measure(cfg.phase_slot, "PHAS")
        except (LabtoolsError, ValueError) as exc:
            logger.warning("Measurement failed at %s Hz: %s", frequency, exc)
            return MeasurementRecord.failed(frequency)
        return MeasurementRecord(frequency, ch1_vpp=ch1, ch2_vpp=ch2, phase_deg=phase)

    def _measure(self, slot: int, metric: str) -> float:
        value = self._scope.measure(slot, metric)
        self._sleep(self._config.measure_delay_s)
        if value is None:
            raise MeasurementError(f"MEAS{slot}:RES?{metric} was not read")
        if math.isnan(value):
            raise MeasurementError(f"MEAS{slot}:RES?{metric} reported no result")
        return value

    def _report(self, index: int, total: int, record: MeasurementRecord) -> None:
        message = (
            f"Step {index}/{total}: {record.frequency_hz:g} Hz, "
            f"CH1 {record.ch1_vpp:.4g} Vpp, CH2 {record.ch2_vpp:.4g} Vpp, "
            f"ratio {record.ratio:.4g}, phase {record.phase_deg:.4g} deg"
        )
        logger.info("%s", message)
        if self._progress is not None:
            self._progress(message)


def run_sweep(
    session: InstrumentSession,
    config: SweepConfig | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
    progress: Callable[[str], None] | None = None,
) -> tuple[MeasurementRecord, ...]:
    """Prepare and run a sweep, closing *session* afterwards.

    The session is closed on every exit path, including failures.
    """
    try:
        orchestrator = SweepOrchestrator(
            session.function_generator,
            session.oscilloscope,
            config,
            sleep=sleep,
            progress=progress,
        )
        orchestrator.prepare()
        return orchestrator.run()
    finally:
        session.close()
