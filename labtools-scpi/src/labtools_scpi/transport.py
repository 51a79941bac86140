"""SCPI transport protocol definition.

This module defines the :class:`ScpiTransport` protocol, which specifies the
interface that all SCPI transport implementations must provide. Transports
handle the physical layer communication with instruments.

Implementations include:
- :class:`labtools_scpi.VisaResource`: PyVISA-backed transport (instrument bus)
- :class:`labtools_scpi.SerialPort`: pyserial-backed transport (plain serial)
- Emulator transports in :mod:`labtools_bench.emulator`
"""

from __future__ import annotations

from typing import Protocol


class ScpiTransport(Protocol):
    """Protocol for SCPI message transport.

    Implementations provide the physical layer for sending commands to and
    receiving responses from SCPI instruments. Callers are responsible for
    opening the transport before passing it to :class:`ScpiConnection`.

    Besides line-oriented text exchange, a transport supports a binary mode
    used for definite-length block transfers: setting ``read_termination``
    to an empty string disables line termination, and :meth:`read_bytes`
    reads raw payload in pieces of at most ``chunk_size`` bytes.

    Example:
        >>> class MyTransport:
        ...     read_termination = "\\n"
        ...     chunk_size = 4096
        ...     def write(self, message: str) -> None: ...
        ...     def read(self) -> str: return "response"
        ...     def read_bytes(self, count: int) -> bytes: return b""
        ...     def flush(self) -> None: ...
        ...     def close(self) -> None: ...
        ...
        >>> transport: ScpiTransport = MyTransport()  # Type checks OK
    """

    read_termination: str
    """Character(s) terminating a text read; empty while in binary mode."""

    chunk_size: int
    """Largest number of bytes requested by a single binary read."""

    def write(self, message: str) -> None:
        """Send a message to the instrument.

        Args:
            message: The SCPI command or query string to send.
        """
        ...

    def read(self) -> str:
        """Read a response line from the instrument.

        Returns:
            The response string with trailing whitespace stripped.
        """
        ...

    def read_bytes(self, count: int) -> bytes:
        """Read up to *count* raw bytes.

        Returns fewer bytes (possibly none) if the read timed out first.
        """
        ...

    def flush(self) -> None:
        """Discard any pending input."""
        ...

    def close(self) -> None:
        """Close the transport and release resources."""
        ...
