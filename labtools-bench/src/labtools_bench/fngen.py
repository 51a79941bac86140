"""Function generator driver with per-model command dialects.

Two generator families speak different command sets for the same settings.
The dialect is chosen once, from the discovery classification, and the
driver delegates every wire command to it.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from labtools_core.errors import ProtocolError, ValidationError
from labtools_core.types.common import DeviceRole
from labtools_scpi import ScpiConnection

logger = logging.getLogger(__name__)

ConnectionSource = Callable[[], "ScpiConnection | None"]
"""Returns the live connection for a role, or None if the role is missing."""


def normalize_waveform(name: str, valid: tuple[str, ...]) -> str:
    """Upper-case *name* and check it against the dialect's waveform set.

    Raises:
        ValidationError: If the name is not one of *valid*.
    """
    upper = name.strip().upper()
    if upper not in valid:
        raise ValidationError(f"Invalid waveform {name!r}; valid waveforms are {', '.join(valid)}")
    return upper


# ---------------------------------------------------------------------------
# Dialects
# ---------------------------------------------------------------------------


class FnGenDialect(Protocol):
    """Wire commands for one function generator family.

    Waveform names passed to :meth:`set_waveform` are already validated and
    upper-cased.
    """

    name: str
    waveforms: tuple[str, ...]

    def set_amplitude(self, conn: ScpiConnection, volts: float) -> None: ...

    def get_amplitude(self, conn: ScpiConnection) -> float: ...

    def set_frequency(self, conn: ScpiConnection, frequency_hz: int) -> None: ...

    def get_frequency(self, conn: ScpiConnection) -> float: ...

    def set_waveform(self, conn: ScpiConnection, waveform: str) -> None: ...

    def get_waveform(self, conn: ScpiConnection) -> str: ...


class ModernDialect:
    """Source-subsystem commands (GW Instek AFG-2225)."""

    name = "modern"
    waveforms: tuple[str, ...] = ("SIN", "RAMP", "SQU")

    def set_amplitude(self, conn: ScpiConnection, volts: float) -> None:
        conn.command("SOUR1:VOLT:UNIT VPP")
        conn.command(f"SOUR1:AMP {volts:.3f}")

    def get_amplitude(self, conn: ScpiConnection) -> float:
        return conn.query_number("SOUR1:AMP?")

    def set_frequency(self, conn: ScpiConnection, frequency_hz: int) -> None:
        conn.command(f"SOUR1:FREQ {frequency_hz:d}Hz")

    def get_frequency(self, conn: ScpiConnection) -> float:
        return conn.query_number("SOUR1:FREQ?")

    def set_waveform(self, conn: ScpiConnection, waveform: str) -> None:
        conn.command(f"SOUR1:APPL:{waveform}")

    def get_waveform(self, conn: ScpiConnection) -> str:
        """Return the first token of the ``SOUR1:APPL?`` reply.

        The reply looks like ``"SIN 1.000000e+03,2.000,0.000"``.
        """
        reply = conn.query("SOUR1:APPL?").strip('"').strip()
        token = reply.replace(",", " ").split(None, 1)
        if not token:
            raise ProtocolError("Empty reply to SOUR1:APPL?")
        return token[0].upper()


class LegacyDialect:
    """Short-form commands with numeric waveform codes (GW Instek GFG)."""

    name = "legacy"
    waveforms: tuple[str, ...] = ("SIN", "TRI", "SQR")

    def set_amplitude(self, conn: ScpiConnection, volts: float) -> None:
        conn.command(f"AMPL:VOLT {volts:.3f}")

    def get_amplitude(self, conn: ScpiConnection) -> float:
        return conn.query_number("AMPL:VOLT ?")

    def set_frequency(self, conn: ScpiConnection, frequency_hz: int) -> None:
        conn.command(f"FREQ {frequency_hz:d}")

    def get_frequency(self, conn: ScpiConnection) -> float:
        return conn.query_number("FREQ ?")

    def set_waveform(self, conn: ScpiConnection, waveform: str) -> None:
        conn.command(f"FUNC:WAV {self.waveforms.index(waveform) + 1}")

    def get_waveform(self, conn: ScpiConnection) -> str:
        index = conn.query_int("FUNC:WAV ?")
        if not 1 <= index <= len(self.waveforms):
            raise ProtocolError(f"Unexpected waveform code {index} from FUNC:WAV ?")
        return self.waveforms[index - 1]


def dialect_for_role(role: DeviceRole | None) -> FnGenDialect:
    """Pick the dialect for a classified generator.

    Anything other than a legacy generator, including no generator at all,
    gets the modern dialect.
    """
    if role is DeviceRole.FN_GEN_LEGACY:
        return LegacyDialect()
    return ModernDialect()


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


class FunctionGeneratorDriver:
    """High-level function generator driver.

    Every operation is skipped with a warning, returning None, when the
    session has no function generator.

    Args:
        connection: Returns the generator connection, or None if absent.
        dialect: Command set spoken by the connected generator.
    """

    def __init__(self, connection: ConnectionSource, dialect: FnGenDialect) -> None:
        self._connection = connection
        self._dialect = dialect

    @property
    def dialect(self) -> FnGenDialect:
        """The dialect in use."""
        return self._dialect

    @property
    def is_connected(self) -> bool:
        """True if the session holds a generator connection."""
        return self._connection() is not None

    def identify(self) -> str | None:
        """Query the identification string (``*IDN?``)."""
        conn = self._require("identify")
        if conn is None:
            return None
        return conn.identify()

    # -- Amplitude ----------------------------------------------------------

    def set_amplitude(self, volts: float) -> None:
        """Set the peak-to-peak output amplitude.

        Args:
            volts: Amplitude in volts peak-to-peak.
        """
        conn = self._require("set amplitude")
        if conn is not None:
            self._dialect.set_amplitude(conn, volts)

    def get_amplitude(self) -> float | None:
        """Query the peak-to-peak output amplitude in volts."""
        conn = self._require("get amplitude")
        if conn is None:
            return None
        return self._dialect.get_amplitude(conn)

    # -- Frequency ----------------------------------------------------------

    def set_frequency(self, frequency_hz: float) -> None:
        """Set the output frequency.

        The instruments take whole hertz, so the value is rounded.

        Args:
            frequency_hz: Frequency in hertz.
        """
        conn = self._require("set frequency")
        if conn is not None:
            self._dialect.set_frequency(conn, int(round(frequency_hz)))

    def get_frequency(self) -> float | None:
        """Query the output frequency in hertz."""
        conn = self._require("get frequency")
        if conn is None:
            return None
        return self._dialect.get_frequency(conn)

    # -- Waveform -----------------------------------------------------------

    def set_waveform(self, name: str) -> None:
        """Select the output waveform.

        Args:
            name: Waveform name from the dialect's set, any case.

        Raises:
            ValidationError: If the name is not valid for this dialect.
                Nothing is written.
        """
        waveform = normalize_waveform(name, self._dialect.waveforms)
        conn = self._require("set waveform")
        if conn is not None:
            self._dialect.set_waveform(conn, waveform)

    def get_waveform(self) -> str | None:
        """Query the output waveform name."""
        conn = self._require("get waveform")
        if conn is None:
            return None
        return self._dialect.get_waveform(conn)

    # -- Private helpers ----------------------------------------------------

    def _require(self, action: str) -> ScpiConnection | None:
        conn = self._connection()
        if conn is None:
            logger.warning("Function generator not connected; skipping %s", action)
        return conn
