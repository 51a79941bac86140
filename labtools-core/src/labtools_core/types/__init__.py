"""Type definitions for labtools.

Exports the discovery, session, and measurement types shared by the SCPI and
bench packages.
"""

from labtools_core.types.common import (
    Device,
    DeviceRole,
    InstrumentIdentity,
    InstrumentRole,
    Port,
)
from labtools_core.types.measurement import COLUMNS, MISSING, MeasurementRecord

__all__ = [
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
]
