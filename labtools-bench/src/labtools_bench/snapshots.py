"""Screen-capture demonstration of the generator and scope together.

Three captures are taken: a ramp after calibration, the same ramp with peak
and frequency automeasurements shown, and an averaged square wave.
"""

from __future__ import annotations

import logging
from pathlib import Path

from labtools_bench.scope import OscilloscopeDriver
from labtools_bench.session import InstrumentSession

logger = logging.getLogger(__name__)


def capture_snapshots(session: InstrumentSession, output_dir: str | Path) -> tuple[Path, ...]:
    """Run the capture sequence and close *session* afterwards.

    Args:
        session: An open session.
        output_dir: Directory for the GIF files; created if missing.

    Returns:
        Paths of the images written.
    """
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    try:
        fn_gen = session.function_generator
        scope = session.oscilloscope
        _sine, ramp, square = fn_gen.dialect.waveforms

        fn_gen.set_waveform(ramp)
        fn_gen.set_frequency(4000)
        fn_gen.set_amplitude(2.5)
        scope.calibrate()
        written.append(_capture(scope, directory / "snapshot_ramp.gif"))

        scope.configure_automeasure("PEAK", "FREQ")
        written.append(_capture(scope, directory / "snapshot_automeasure.gif"))

        fn_gen.set_waveform(square)
        fn_gen.set_frequency(100)
        fn_gen.set_amplitude(1.0)
        scope.acquire_averaged(1024)
        written.append(_capture(scope, directory / "snapshot_square_averaged.gif"))
    finally:
        session.close()
    return tuple(path for path in written if path.exists())


def _capture(scope: OscilloscopeDriver, path: Path) -> Path:
    if scope.capture_screenshot(path) is None:
        logger.warning("No screenshot taken for %s", path.name)
    return path
