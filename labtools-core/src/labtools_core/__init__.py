"""Core library for bench instrument automation.

This package provides foundational data types and error types for labtools.
It has no external dependencies (stdlib-only) so it can serve as the base
layer for the SCPI and bench packages.

Key components:
    - Types: Port and device classification types, the session's instrument
      roles, instrument identity, and the sweep's measurement record.
    - Errors: Hierarchy of exception types for connection, protocol,
      validation, and measurement failures.

Example:
    >>> from labtools_core import MeasurementRecord
    >>> record = MeasurementRecord(frequency_hz=1000.0, ch1_vpp=0.5, ch2_vpp=1.0, phase_deg=-3.2)
    >>> record.ratio
    2.0
"""

from labtools_core.errors import (
    InstrumentConnectionError,
    InstrumentIOError,
    LabtoolsError,
    MeasurementError,
    NoUsablePortsError,
    ProtocolError,
    SessionStateError,
    ValidationError,
)
from labtools_core.types import (
    COLUMNS,
    MISSING,
    Device,
    DeviceRole,
    InstrumentIdentity,
    InstrumentRole,
    MeasurementRecord,
    Port,
)

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Common types
    "Device",
    "DeviceRole",
    "InstrumentIdentity",
    "InstrumentRole",
    "Port",
    # Measurement types
    "COLUMNS",
    "MISSING",
    "MeasurementRecord",
    # Errors
    "InstrumentConnectionError",
    "InstrumentIOError",
    "LabtoolsError",
    "MeasurementError",
    "NoUsablePortsError",
    "ProtocolError",
    "SessionStateError",
    "ValidationError",
]
