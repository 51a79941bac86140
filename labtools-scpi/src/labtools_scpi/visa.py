"""PyVISA transport for SCPI instruments.

This module provides a VISA-based transport implementation for communicating
with SCPI instruments. It wraps the PyVISA library, which is lazily imported
to allow the rest of labtools-scpi to work without VISA installed.

Supported resource string formats include:
- Serial: ``ASRL3::INSTR`` (instrument bus over a COM port)
- USB: ``USB0::0x0AAD::0x01D6::123456::INSTR``
- TCPIP: ``TCPIP::192.168.1.100::INSTR``
"""

from __future__ import annotations

import logging
from typing import Any

from labtools_core.errors import InstrumentConnectionError, InstrumentIOError

logger = logging.getLogger(__name__)


def _import_pyvisa() -> Any:
    try:
        import pyvisa  # type: ignore[import-not-found]  # pylint: disable=import-outside-toplevel
    except ImportError as exc:
        raise InstrumentConnectionError(
            "pyvisa library is not installed. Install with: pip install pyvisa"
        ) from exc
    return pyvisa


def _close_quietly(handle: Any, what: str) -> None:
    try:
        handle.close()
    except Exception:  # pylint: disable=broad-except
        logger.debug("Ignoring error while closing %s", what, exc_info=True)


class VisaResource:
    """SCPI transport backed by PyVISA.

    Uses NI-style VISA resource strings (e.g. ``"ASRL3::INSTR"``) to address
    instruments.  The ``pyvisa`` library is imported lazily on :meth:`open`
    so the rest of ``labtools-scpi`` works without it installed.

    This class implements the :class:`ScpiTransport` protocol and can be
    passed to :class:`ScpiConnection` for high-level SCPI operations.

    Args:
        resource_string: VISA resource address.
        timeout_ms: I/O timeout in milliseconds (applied on open).
        read_termination: Character(s) that terminate read operations.
        write_termination: Character(s) appended to write operations.

    Example:
        >>> resource = VisaResource("ASRL3::INSTR")
        >>> resource.open()
        >>> resource.write("*IDN?")
        >>> print(resource.read())
        >>> resource.close()
    """

    def __init__(
        self,
        resource_string: str,
        *,
        timeout_ms: int = 5000,
        read_termination: str = "\n",
        write_termination: str = "\n",
    ) -> None:
        self._resource_string = resource_string
        self._timeout_ms = timeout_ms
        self._read_termination = read_termination
        self._write_termination = write_termination
        self._pyvisa: Any = None
        self._rm: Any = None
        self._resource: Any = None

    # -- Properties ----------------------------------------------------------

    @property
    def resource_string(self) -> str:
        """The VISA resource string."""
        return self._resource_string

    @property
    def is_open(self) -> bool:
        """Return True if the resource is currently open."""
        return self._resource is not None

    @property
    def read_termination(self) -> str:
        """Read terminator; an empty string means binary mode."""
        return self._read_termination

    @read_termination.setter
    def read_termination(self, value: str) -> None:
        self._read_termination = value
        if self._resource is not None:
            self._resource.read_termination = value

    @property
    def chunk_size(self) -> int:
        """Largest binary read, taken from the open resource's input buffer."""
        if self._resource is None:
            return 20 * 1024
        size: int = self._resource.chunk_size
        return size

    # -- Lifecycle -----------------------------------------------------------

    def open(self) -> None:
        """Open the VISA resource.

        Lazily imports ``pyvisa`` and creates a :class:`ResourceManager`.

        Raises:
            InstrumentConnectionError: If ``pyvisa`` is not installed or the
                resource cannot be opened.
        """
        if self._resource is not None:
            return

        self._pyvisa = _import_pyvisa()
        try:
            self._rm = self._pyvisa.ResourceManager()
            self._resource = self._rm.open_resource(
                self._resource_string,
                read_termination=self._read_termination,
                write_termination=self._write_termination,
            )
            self._resource.timeout = self._timeout_ms
        except Exception as exc:
            self._resource = None
            self.close()
            raise InstrumentConnectionError(
                f"Failed to open VISA resource {self._resource_string!r}: {exc}"
            ) from exc

    def close(self) -> None:
        """Close the VISA resource and resource manager.

        Safe to call multiple times.
        """
        if self._resource is not None:
            _close_quietly(self._resource, self._resource_string)
            self._resource = None
        if self._rm is not None:
            _close_quietly(self._rm, "VISA resource manager")
            self._rm = None

    # -- Transport interface -------------------------------------------------

    def write(self, message: str) -> None:
        """Send a message to the instrument.

        Args:
            message: The SCPI command or query string.

        Raises:
            InstrumentIOError: If the resource is not open or the write fails.
        """
        resource = self._require_open()
        try:
            resource.write(message)
        except Exception as exc:
            raise InstrumentIOError(
                f"Write to {self._resource_string!r} failed: {exc}"
            ) from exc

    def read(self) -> str:
        """Read a response from the instrument.

        Returns:
            The response string.

        Raises:
            InstrumentIOError: If the resource is not open or the read fails.
        """
        resource = self._require_open()
        try:
            result: str = resource.read()
        except Exception as exc:
            raise InstrumentIOError(
                f"Read from {self._resource_string!r} failed: {exc}"
            ) from exc
        return result

    def read_bytes(self, count: int) -> bytes:
        """Read exactly *count* bytes, or nothing if the read timed out.

        PyVISA raises on timeout rather than returning a short read; that
        case is reported as an empty result so callers see a short transfer.

        Raises:
            InstrumentIOError: If the resource is not open.
        """
        resource = self._require_open()
        try:
            data: bytes = resource.read_bytes(count)
        except self._pyvisa.errors.VisaIOError:
            return b""
        return data

    def flush(self) -> None:
        """Discard the resource's pending input buffer."""
        resource = self._require_open()
        try:
            resource.flush(self._pyvisa.constants.BufferOperation.discard_read_buffer)
        except Exception as exc:
            raise InstrumentIOError(
                f"Flush of {self._resource_string!r} failed: {exc}"
            ) from exc

    # -- Private helpers -----------------------------------------------------

    def _require_open(self) -> Any:
        if self._resource is None:
            raise InstrumentIOError("VISA resource is not open")
        return self._resource


def list_visa_resources() -> tuple[str, ...]:
    """Return the resource strings PyVISA can currently see.

    Raises:
        InstrumentConnectionError: If ``pyvisa`` is missing or has no backend.
    """
    pyvisa = _import_pyvisa()
    try:
        rm = pyvisa.ResourceManager()
    except Exception as exc:
        raise InstrumentConnectionError(f"Unable to create VISA resource manager: {exc}") from exc
    try:
        return tuple(rm.list_resources())
    finally:
        rm.close()
