"""Exception types for labtools-core.

This module defines the exception hierarchy used throughout labtools. All
labtools exceptions inherit from LabtoolsError, allowing consumers to catch
all framework-specific errors with a single except clause.

Exception hierarchy:
    LabtoolsError (base)
    +-- InstrumentConnectionError: Instrument not found or not openable
    |   +-- NoUsablePortsError: Discovery found no candidate ports
    +-- InstrumentIOError: Transport read/write failures
    +-- ProtocolError: Malformed binary block transfers
    +-- ValidationError: Inputs rejected before reaching the wire
    +-- MeasurementError: A sweep step could not be measured
    +-- SessionStateError: Commands issued outside an open session
"""


class LabtoolsError(Exception):
    """Base exception for all labtools errors.

    This is the root of the labtools exception hierarchy. Catch this to handle
    any framework-specific error.
    """


class InstrumentConnectionError(LabtoolsError):
    """Raised when an instrument cannot be found or opened.

    Within an :class:`InstrumentSession` this is not fatal: the affected role
    is marked unavailable and the session continues in degraded mode.
    """


class NoUsablePortsError(InstrumentConnectionError):
    """Raised when discovery is left with zero candidate ports.

    Discovery cannot proceed without at least one port to probe, so this is
    fatal to the discovery run.
    """


class InstrumentIOError(LabtoolsError):
    """Raised when a write to or read from an open transport fails.

    Wraps library-specific errors (PyVISA, pyserial) including timeouts.
    """


class ProtocolError(LabtoolsError):
    """Raised for malformed binary block transfers.

    This includes a missing ``#`` marker, a non-digit length header, or a
    payload whose size does not match the declared length.
    """


class ValidationError(LabtoolsError, ValueError):
    """Raised when an input is rejected locally, before any write to the wire.

    The message always names the valid set of values.
    """


class MeasurementError(LabtoolsError):
    """Raised when a sweep step's measurement query fails or does not parse.

    The sweep orchestrator isolates this error to the step that raised it.
    """


class SessionStateError(LabtoolsError):
    """Raised when a command is issued on a session that is not open.

    This occurs before :meth:`InstrumentSession.open` or after
    :meth:`InstrumentSession.close`.
    """
