"""SCPI connection over a line-oriented transport.

This module provides the :class:`ScpiConnection` class, which wraps a
transport layer to provide high-level SCPI operations: commands and typed
queries with a settle delay after each exchange, optional automatic error
queue checking, definite-length block queries, and IEEE 488.2 common
commands.

Typical usage::

    from labtools_scpi import VisaResource, ScpiConnection

    transport = VisaResource("ASRL3::INSTR")
    transport.open()
    conn = ScpiConnection(transport)

    identity = conn.get_identity()
    conn.command("AUT")
    vpp = conn.query_number("MEAS1:RES?PEAK")

    conn.close()
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable

from labtools_core.types.common import InstrumentIdentity

from labtools_scpi.block import binary_mode, read_definite_block
from labtools_scpi.errors import ScpiCommandError, ScpiInstrumentError
from labtools_scpi.number import parse_int, parse_number

if TYPE_CHECKING:
    from labtools_scpi.transport import ScpiTransport

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_S = 0.25
"""Wait after each write; these instruments give no completion acknowledgment."""

ERROR_QUEUE_BIT = 0x04
"""Status byte bit set while the error/event queue is non-empty."""

MAX_QUEUE_DRAIN = 64
"""Most ``SYST:ERR?`` reads made while draining the error queue."""


def parse_idn_response(response: str) -> InstrumentIdentity:
    """Parse a SCPI ``*IDN?`` response into an :class:`InstrumentIdentity`.

    The standard ``*IDN?`` response format is four comma-separated fields::

        manufacturer,model,serial_number,firmware_version

    If the response contains more than four comma-separated fields, the
    extra fields are joined into the firmware string.

    Raises:
        ValueError: If the response has fewer than four fields.
    """
    parts = [p.strip() for p in response.split(",")]
    if len(parts) < 4:
        raise ValueError(
            f"Expected at least 4 comma-separated fields in *IDN? response, "
            f"got {len(parts)}: {response!r}"
        )
    return InstrumentIdentity(
        manufacturer=parts[0],
        model=parts[1],
        serial=parts[2],
        firmware=",".join(parts[3:]),
    )


class ScpiConnection:
    """High-level SCPI connection wrapping a transport.

    Every command and query is followed by a fixed settle delay, since the
    bench instruments this library drives acknowledge nothing. Automatic
    ``SYST:ERR?`` draining after each exchange is available but off by
    default; the oscilloscope driver checks the error queue explicitly at the
    points where it matters.

    Args:
        transport: An open :class:`ScpiTransport` instance.
        check_errors: If True, every command and query is followed by
            draining the instrument error queue. Errors raise
            :class:`ScpiCommandError`.
        settle_s: Seconds to wait after each command or query.
        sleep: Blocking wait function, replaceable in tests.

    Example:
        >>> conn = ScpiConnection(transport)
        >>> conn.reset()  # Send *RST
        >>> frequency = conn.query_number("SOUR1:FREQ?")
    """

    def __init__(
        self,
        transport: ScpiTransport,
        *,
        check_errors: bool = False,
        settle_s: float = DEFAULT_SETTLE_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._transport = transport
        self._check_errors = check_errors
        self._settle_s = settle_s
        self._sleep = sleep

    @property
    def transport(self) -> ScpiTransport:
        """The underlying transport."""
        return self._transport

    # -- Core operations -----------------------------------------------------

    def command(self, cmd: str, *, check: bool | None = None) -> None:
        """Send a SCPI command (no response expected).

        Args:
            cmd: The SCPI command string (e.g. ``"CHAN1:STAT ON"``).
            check: Override the instance-level error check setting.

        Raises:
            ScpiCommandError: If error checking is on and the instrument
                reports errors.
        """
        logger.debug("-> %s", cmd)
        self._transport.write(cmd)
        self._settle()
        self._check(check)

    def query(self, cmd: str, *, check: bool | None = None) -> str:
        """Send a SCPI query and return the response.

        Args:
            cmd: The SCPI query string (e.g. ``"SOUR1:FREQ?"``).
            check: Override the instance-level error check setting.

        Returns:
            The instrument response with surrounding whitespace stripped.
        """
        logger.debug("-> %s", cmd)
        self._transport.write(cmd)
        response = self._transport.read().strip()
        logger.debug("<- %s", response)
        self._settle()
        self._check(check)
        return response

    # -- Typed query variants ------------------------------------------------

    def query_number(self, cmd: str, *, check: bool | None = None) -> float:
        """Query and parse the response as a SCPI number.

        Raises:
            ValueError: If the response cannot be parsed as a number.
        """
        return parse_number(self.query(cmd, check=check))

    def query_int(self, cmd: str, *, check: bool | None = None) -> int:
        """Query and parse the response as an integer.

        Raises:
            ValueError: If the response is not a valid integer.
        """
        return parse_int(self.query(cmd, check=check))

    def query_block(self, cmd: str) -> bytes:
        """Send a query whose answer is a definite-length binary block.

        The transport is switched to binary reads for the transfer and put
        back in line mode (terminator restored, input flushed) afterwards,
        including when the transfer fails.

        Raises:
            ProtocolError: If the block framing is malformed or short.
        """
        logger.debug("-> %s", cmd)
        self._transport.write(cmd)
        with binary_mode(self._transport) as transport:
            return read_definite_block(transport)

    # -- IEEE 488.2 convenience methods --------------------------------------

    def identify(self) -> str:
        """Query the instrument identification string (``*IDN?``)."""
        return self.query("*IDN?")

    def get_identity(self) -> InstrumentIdentity:
        """Query and parse the instrument identification (``*IDN?``)."""
        return parse_idn_response(self.identify())

    def reset(self) -> None:
        """Send a reset command (``*RST``)."""
        self.command("*RST")

    def clear_status(self) -> None:
        """Clear the status registers and error queue (``*CLS``)."""
        self.command("*CLS")

    def wait_complete(self, prefix: str = "") -> str:
        """Block on an operation-complete query (``*OPC?``).

        Args:
            prefix: Commands to send in the same message, e.g. ``"*CLS;"``.

        Returns:
            The instrument's reply (normally ``"1"``).
        """
        return self.query(f"{prefix}*OPC?", check=False)

    def status_byte(self) -> int:
        """Read the status byte (``*STB?``)."""
        return self.query_int("*STB?", check=False)

    # -- Error queue ---------------------------------------------------------

    def get_errors(self) -> tuple[ScpiInstrumentError, ...]:
        """Drain the instrument error queue, oldest entry first.

        Stops at the empty-queue reply or after :data:`MAX_QUEUE_DRAIN`
        entries, whichever comes first.
        """
        errors: list[ScpiInstrumentError] = []
        for _ in range(MAX_QUEUE_DRAIN):
            error = ScpiInstrumentError.parse(self.query("SYST:ERR?", check=False))
            if error is None:
                break
            errors.append(error)
        else:
            logger.warning("Error queue still not empty after %d reads", MAX_QUEUE_DRAIN)
        return tuple(errors)

    def pending_errors(self) -> tuple[ScpiInstrumentError, ...]:
        """Drain the error queue only if the status byte says it is non-empty."""
        if not self.status_byte() & ERROR_QUEUE_BIT:
            return ()
        return self.get_errors()

    # -- Lifecycle -----------------------------------------------------------

    def close(self) -> None:
        """Close the underlying transport."""
        self._transport.close()

    # -- Private helpers -----------------------------------------------------

    def _settle(self) -> None:
        if self._settle_s > 0:
            self._sleep(self._settle_s)

    def _check(self, override: bool | None) -> None:
        """Drain the error queue and raise if errors are found."""
        should_check = self._check_errors if override is None else override
        if not should_check:
            return
        errors = self.get_errors()
        if errors:
            raise ScpiCommandError(errors)
