"""pyserial transport for SCPI instruments on plain serial ports.

Function generators on a USB-serial bridge do not need a VISA layer, so
they are driven through pyserial directly. As with :mod:`labtools_scpi.visa`,
the ``serial`` package is imported lazily on :meth:`SerialPort.open`.
"""

from __future__ import annotations

import logging
from typing import Any

from labtools_core.errors import InstrumentConnectionError, InstrumentIOError

logger = logging.getLogger(__name__)


class SerialPort:
    """SCPI transport backed by pyserial.

    Implements the :class:`ScpiTransport` protocol.

    Args:
        port: Serial port name (e.g. ``"COM4"`` or ``"/dev/ttyUSB0"``).
        baud_rate: Line speed in baud.
        timeout_s: Read timeout in seconds.
        read_termination: Character(s) that terminate read operations.
        write_termination: Character(s) appended to write operations.
        chunk_size: Largest binary read requested at once.
    """

    def __init__(
        self,
        port: str,
        *,
        baud_rate: int = 19200,
        timeout_s: float = 1.0,
        read_termination: str = "\n",
        write_termination: str = "\n",
        chunk_size: int = 4096,
    ) -> None:
        self._port = port
        self._baud_rate = baud_rate
        self._timeout_s = timeout_s
        self.read_termination = read_termination
        self._write_termination = write_termination
        self.chunk_size = chunk_size
        self._serial: Any = None

    @property
    def port(self) -> str:
        """The serial port name."""
        return self._port

    @property
    def is_open(self) -> bool:
        """Return True if the port is currently open."""
        return self._serial is not None

    @property
    def bytes_available(self) -> int:
        """Number of bytes waiting in the input buffer.

        Raises:
            InstrumentIOError: If the port is not open or cannot be queried.
        """
        handle = self._require_open()
        try:
            count: int = handle.in_waiting
        except Exception as exc:
            raise InstrumentIOError(f"Query of {self._port!r} input buffer failed: {exc}") from exc
        return count

    # -- Lifecycle -----------------------------------------------------------

    def open(self) -> None:
        """Open the serial port.

        Raises:
            InstrumentConnectionError: If ``pyserial`` is not installed or the
                port cannot be opened.
        """
        if self._serial is not None:
            return

        try:
            import serial  # type: ignore[import-untyped]  # pylint: disable=import-outside-toplevel
        except ImportError as exc:
            raise InstrumentConnectionError(
                "pyserial library is not installed. Install with: pip install pyserial"
            ) from exc

        try:
            self._serial = serial.Serial(
                self._port, baudrate=self._baud_rate, timeout=self._timeout_s
            )
        except Exception as exc:
            self._serial = None
            raise InstrumentConnectionError(
                f"Failed to open serial port {self._port!r}: {exc}"
            ) from exc

    def close(self) -> None:
        """Close the port. Safe to call multiple times."""
        if self._serial is not None:
            try:
                self._serial.close()
            except Exception:  # pylint: disable=broad-except
                logger.debug("Ignoring error while closing %s", self._port, exc_info=True)
            self._serial = None

    # -- Transport interface -------------------------------------------------

    def write(self, message: str) -> None:
        """Send a message followed by the write terminator.

        Raises:
            InstrumentIOError: If the port is not open or the write fails.
        """
        handle = self._require_open()
        try:
            handle.write((message + self._write_termination).encode("ascii"))
        except Exception as exc:
            raise InstrumentIOError(f"Write to {self._port!r} failed: {exc}") from exc

    def read(self) -> str:
        """Read one terminated line.

        Raises:
            InstrumentIOError: If the port is not open, the read fails, or the
                terminator did not arrive before the timeout.
        """
        handle = self._require_open()
        terminator = self.read_termination.encode("ascii")
        try:
            data: bytes = handle.read_until(terminator) if terminator else handle.read(
                self.chunk_size
            )
        except Exception as exc:
            raise InstrumentIOError(f"Read from {self._port!r} failed: {exc}") from exc
        if terminator and not data.endswith(terminator):
            raise InstrumentIOError(
                f"Read from {self._port!r} timed out after {self._timeout_s}s "
                f"(received {data!r})"
            )
        return data.decode("ascii", errors="replace").rstrip()

    def read_bytes(self, count: int) -> bytes:
        """Read up to *count* bytes; fewer if the timeout elapses first."""
        handle = self._require_open()
        try:
            data: bytes = handle.read(count)
        except Exception as exc:
            raise InstrumentIOError(f"Read from {self._port!r} failed: {exc}") from exc
        return data

    def flush(self) -> None:
        """Discard pending input."""
        handle = self._require_open()
        try:
            handle.reset_input_buffer()
        except Exception as exc:
            raise InstrumentIOError(f"Flush of {self._port!r} failed: {exc}") from exc

    # -- Private helpers -----------------------------------------------------

    def _require_open(self) -> Any:
        if self._serial is None:
            raise InstrumentIOError(f"Serial port {self._port!r} is not open")
        return self._serial


def list_serial_ports() -> tuple[str, ...]:
    """Return the device names of all serial ports on the system.

    Raises:
        InstrumentConnectionError: If ``pyserial`` is not installed.
    """
    try:
        from serial.tools import list_ports  # type: ignore[import-untyped]  # pylint: disable=import-outside-toplevel
    except ImportError as exc:
        raise InstrumentConnectionError(
            "pyserial library is not installed. Install with: pip install pyserial"
        ) from exc
    return tuple(info.device for info in list_ports.comports())
