"""Oscilloscope driver (Rohde & Schwarz RTB2000 series).

Covers channel and probe setup, the timebase, automatic measurements,
averaged acquisition, the instrument error queue, and screen captures
fetched as definite-length binary blocks.
"""

from __future__ import annotations

import logging
import math
import time
from pathlib import Path
from typing import Callable

from labtools_core.errors import LabtoolsError, ValidationError
from labtools_scpi import ScpiConnection

from labtools_bench.fngen import ConnectionSource

logger = logging.getLogger(__name__)

AUTOMEASURE_TYPES: tuple[str, ...] = (
    "FREQ", "PER", "PEAK", "UPE", "LPE", "PPC", "NPC", "REC", "FEC", "HIGH",
    "LOW", "AMPL", "CRES", "MEAN", "RMS", "RTIM", "FTIM", "PDCY", "NDCY", "PPW",
    "NPW", "CYCM", "CYCR", "STDD", "TFR", "TPER", "DEL", "PHAS", "BWID", "POV",
    "NOV",
)  # fmt: skip
"""Keywords accepted by ``MEAS<n>:MAIN`` and ``MEAS<n>:RES?``."""

VALID_AVERAGES: frozenset[int] = frozenset(2**n for n in range(1, 11))
"""Average counts the acquisition system accepts without coercion."""

PROBE_ATTENUATION = 10
HORIZONTAL_DIVISIONS = 12
SCREENSHOT_NAME = "internal_ss"


def validate_metric(metric: str) -> str:
    """Upper-case *metric* and check it is an automeasure keyword.

    Raises:
        ValidationError: If the keyword is unknown.
    """
    upper = metric.strip().upper()
    if upper not in AUTOMEASURE_TYPES:
        raise ValidationError(
            f"Invalid automeasure type {metric!r}; valid types are {', '.join(AUTOMEASURE_TYPES)}"
        )
    return upper


class OscilloscopeDriver:
    """High-level oscilloscope driver.

    Every operation is skipped with a warning, returning None, when the
    session has no oscilloscope.

    Args:
        connection: Returns the scope connection, or None if absent.
        strict_averages: Reject average counts outside :data:`VALID_AVERAGES`
            instead of warning.
        frequency_source: Supplies the signal frequency when
            :meth:`acquire_averaged` is not given one, normally the function
            generator's :meth:`get_frequency`.
        sleep: Blocking wait function, replaceable in tests.
    """

    def __init__(
        self,
        connection: ConnectionSource,
        *,
        strict_averages: bool = False,
        frequency_source: Callable[[], float | None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._connection = connection
        self._strict_averages = strict_averages
        self._frequency_source = frequency_source
        self._sleep = sleep

    @property
    def is_connected(self) -> bool:
        """True if the session holds an oscilloscope connection."""
        return self._connection() is not None

    def identify(self) -> str | None:
        """Query the identification string (``*IDN?``)."""
        conn = self._require("identify")
        if conn is None:
            return None
        return conn.identify()

    # -- Setup --------------------------------------------------------------

    def calibrate(self) -> None:
        """Enable both channels, set 10:1 probes, and autoset."""
        conn = self._require("calibrate")
        if conn is None:
            return
        conn.command("CHAN1:STAT ON")
        conn.command("CHAN2:STAT ON")
        conn.command(f"PROB1:SET:ATT:MAN {PROBE_ATTENUATION}")
        conn.command(f"PROB2:SET:ATT:MAN {PROBE_ATTENUATION}")
        conn.command("AUT")

    def autoset(self) -> None:
        """Run the instrument's autoset (``AUT``)."""
        conn = self._require("autoset")
        if conn is not None:
            conn.command("AUT")

    def center_traces(self) -> None:
        """Move both channel traces to the vertical center."""
        conn = self._require("center traces")
        if conn is None:
            return
        conn.command("CHAN1:POS 0")
        conn.command("CHAN2:POS 0")

    def set_timescale(self, seconds_per_div: float) -> None:
        """Set the horizontal scale in seconds per division."""
        conn = self._require("set timescale")
        if conn is not None:
            conn.command(f"TIM:SCAL {seconds_per_div:.3E}")

    def fit_timescale(self, frequency_hz: float, periods: float = 3) -> float:
        """Scale the timebase to show *periods* cycles across the screen.

        Returns:
            The timescale sent, in seconds per division.

        Raises:
            ValidationError: If the frequency or period count is not positive.
        """
        if not frequency_hz > 0 or not periods > 0:
            raise ValidationError("frequency_hz and periods must be positive")
        seconds_per_div = periods / frequency_hz / HORIZONTAL_DIVISIONS
        self.set_timescale(seconds_per_div)
        return seconds_per_div

    def acquire_refresh(self) -> None:
        """Switch to plain refresh acquisition (no averaging)."""
        conn = self._require("acquire refresh")
        if conn is not None:
            conn.command("ACQ:TYPE Refresh")

    # -- Automatic measurements ---------------------------------------------

    def configure_automeasure(self, first: str, second: str) -> None:
        """Set up four measurement slots, two per channel.

        Slots 1 and 2 measure channel 1, slots 3 and 4 channel 2. Slots 1 and
        3 show *first*, slots 2 and 4 show *second*.

        Raises:
            ValidationError: If either keyword is not in
                :data:`AUTOMEASURE_TYPES`. Nothing is written.
        """
        first = validate_metric(first)
        second = validate_metric(second)
        conn = self._require("configure automeasure")
        if conn is None:
            return
        for slot in range(1, 5):
            conn.command(f"MEAS{slot} ON")
        conn.command("MEAS1:SOUR CH1")
        conn.command("MEAS2:SOUR CH1")
        conn.command("MEAS3:SOUR CH2")
        conn.command("MEAS4:SOUR CH2")
        conn.command(f"MEAS1:MAIN {first}")
        conn.command(f"MEAS2:MAIN {second}")
        conn.command(f"MEAS3:MAIN {first}")
        conn.command(f"MEAS4:MAIN {second}")

    def measure(self, slot: int, metric: str) -> float | None:
        """Read one automatic measurement result.

        Args:
            slot: Measurement slot number (1-based).
            metric: Automeasure keyword, e.g. ``"PEAK"`` or ``"PHAS"``.

        Returns:
            The parsed result, or None if the scope is not connected.

        Raises:
            ValidationError: If the slot or keyword is invalid.
            ValueError: If the reply is not a number.
        """
        if slot < 1:
            raise ValidationError(f"Measurement slot must be >= 1, got {slot}")
        metric = validate_metric(metric)
        conn = self._require("measure")
        if conn is None:
            return None
        return conn.query_number(f"MEAS{slot}:RES?{metric}")

    # -- Acquisition --------------------------------------------------------

    def acquire_averaged(self, count: int, frequency_hz: float | None = None) -> None:
        """Switch to averaged acquisition and wait for the average to fill.

        The wait is ``count / frequency`` seconds. The frequency comes from
        *frequency_hz* or, if not given, from the frequency source.

        Raises:
            ValidationError: If strict averages are on and *count* is not a
                power of two in 2..1024.
        """
        if count not in VALID_AVERAGES:
            if self._strict_averages:
                raise ValidationError(f"Average count must be a power of two in 2..1024, got {count}")
            logger.warning(
                "Average count %d is not a power of two in 2..1024; the scope may coerce it", count
            )
        conn = self._require("acquire averaged")
        if conn is None:
            return
        conn.command("ACQ:TYPE Refresh")
        conn.command("ACQ:TYPE Average")
        conn.command(f"ACQ:AVER:COUNT {count}")

        if frequency_hz is None and self._frequency_source is not None:
            frequency_hz = self._frequency_source()
        if frequency_hz is None or not math.isfinite(frequency_hz) or frequency_hz <= 0:
            logger.warning("No usable signal frequency; not waiting for %d averages", count)
            return
        self._sleep(count / frequency_hz)

    # -- Error queue --------------------------------------------------------

    def read_errors(self) -> tuple[str, ...]:
        """Drain the error queue if the status byte reports entries.

        Returns:
            Each entry in ``code,"message"`` form, oldest first.
        """
        conn = self._require("read errors")
        if conn is None:
            return ()
        return tuple(str(error) for error in conn.pending_errors())

    def check_errors(self) -> tuple[str, ...]:
        """Drain the error queue and log each entry as a warning."""
        errors = self.read_errors()
        for error in errors:
            logger.warning("Oscilloscope error: %s", error)
        return errors

    # -- Screen capture -----------------------------------------------------

    def capture_screenshot(self, target: str | Path) -> bytes | None:
        """Save the scope display as a GIF at *target*.

        The image is rendered to the scope's internal storage and then
        fetched as a definite-length block. The error queue is checked
        before rendering, before fetching, and once more on the way out.

        Returns:
            The image bytes written, or None if the scope is not connected.

        Raises:
            ValidationError: If *target* does not end in ``.gif``. No
                command is sent.
            ProtocolError: If the block transfer is malformed or short.
        """
        path = Path(target)
        if path.suffix.lower() != ".gif":
            raise ValidationError(f"Screenshot target must be a .gif file, got {path.name!r}")
        conn = self._require("capture screenshot")
        if conn is None:
            return None

        conn.command(f"MMEM:DEL '{SCREENSHOT_NAME}.gif'")
        try:
            # Deleting a missing file queues an error; clear it.
            conn.wait_complete("*CLS;")
            self.check_errors()
            conn.command(f"HCOP:LANG GIF;:MMEM:NAME '{SCREENSHOT_NAME}'")
            conn.command("HCOP:IMM")
            conn.wait_complete()
            self.check_errors()
            data = conn.query_block(f"MMEM:DATA? '{SCREENSHOT_NAME}.gif'")
            path.write_bytes(data)
            logger.info("Saved %d byte screenshot to %s", len(data), path)
            return data
        finally:
            try:
                conn.transport.flush()
                self.check_errors()
            except LabtoolsError as exc:
                logger.error("Error check after screenshot failed: %s", exc)

    # -- Private helpers ----------------------------------------------------

    def _require(self, action: str) -> ScpiConnection | None:
        conn = self._connection()
        if conn is None:
            logger.warning("Oscilloscope not connected; skipping %s", action)
        return conn
