"""Common types used across labtools modules.

This module provides foundational types for instrument discovery and session
management: the classification roles assigned to probed ports, the logical
instrument roles a session holds, and the instrument identification record.

Classes:
    Port: A serial port candidate seen during discovery.
    DeviceRole: Classification result for a probed port.
    InstrumentRole: Logical role an open session can hold a handle for.
    Device: A classified port.
    InstrumentIdentity: Parsed ``*IDN?`` response.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class InstrumentRole(Enum):
    """Logical instrument roles held by a session.

    A session owns at most one transport handle per role.
    """

    FUNCTION_GENERATOR = "function_generator"
    OSCILLOSCOPE = "oscilloscope"

    @property
    def label(self) -> str:
        """Human-readable role name for log messages."""
        return self.value.replace("_", " ")


class DeviceRole(Enum):
    """Classification assigned to a probed port.

    Attributes:
        FN_GEN_LEGACY: Function generator speaking the legacy (GW GFG) dialect.
        FN_GEN_MODERN: Function generator speaking the modern (AFG-2225) dialect.
        SCOPE: Oscilloscope.
        UNKNOWN: No known signature matched.
    """

    FN_GEN_LEGACY = "fn_gen_legacy"
    FN_GEN_MODERN = "fn_gen_modern"
    SCOPE = "scope"
    UNKNOWN = "unknown"

    @property
    def instrument_role(self) -> InstrumentRole | None:
        """The session role this classification fills, or None if unknown."""
        if self in (DeviceRole.FN_GEN_LEGACY, DeviceRole.FN_GEN_MODERN):
            return InstrumentRole.FUNCTION_GENERATOR
        if self is DeviceRole.SCOPE:
            return InstrumentRole.OSCILLOSCOPE
        return None


@dataclass(frozen=True)
class Port:
    """A serial port candidate.

    Attributes:
        name: Port identifier (e.g. ``"COM3"`` or ``"/dev/ttyUSB0"``).
        available: Whether the port could be opened during the release pass.
    """

    name: str
    available: bool = True


@dataclass(frozen=True)
class Device:
    """A port classified by discovery.

    Attributes:
        port: Port identifier the instrument answered on.
        role: Classification result.
        identification: Raw ``*IDN?`` response (empty if none was received).
    """

    port: str
    role: DeviceRole
    identification: str = ""


@dataclass(frozen=True)
class InstrumentIdentity:
    """Instrument identification metadata.

    Attributes:
        manufacturer: Manufacturer name (e.g. "Rohde&Schwarz").
        model: Model name/number (e.g. "RTB2004").
        serial: Serial number.
        firmware: Firmware version string.
    """

    manufacturer: str
    model: str
    serial: str
    firmware: str
