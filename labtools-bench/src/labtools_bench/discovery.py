"""Serial port discovery and instrument classification.

Discovery enumerates the serial ports, releases stale locks, drops ports whose
names are known to be irrelevant, probes the rest with ``*IDN?``, and
classifies each by substring match against vendor signatures.

Example:
    classifier = DeviceClassifier()
    devices = classifier.discover()
    roles = assign_roles(devices)
    scope = roles.get(InstrumentRole.OSCILLOSCOPE)
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Iterable
from typing import Protocol

from labtools_core.errors import InstrumentConnectionError, LabtoolsError, NoUsablePortsError
from labtools_core.types.common import Device, DeviceRole, InstrumentRole, Port
from labtools_scpi import SerialPort, list_serial_ports, list_visa_resources

from labtools_bench.config import DiscoveryConfig

logger = logging.getLogger(__name__)

_PORT_NUMBER_RE = re.compile(r"(\d+)$")


class ProbeHandle(Protocol):
    """What discovery needs from an opened port."""

    @property
    def bytes_available(self) -> int: ...

    def write(self, message: str) -> None: ...

    def read(self) -> str: ...

    def flush(self) -> None: ...

    def close(self) -> None: ...


PortOpener = Callable[[str, int, float], ProbeHandle]


def open_serial_port(port: str, baud_rate: int, timeout_s: float) -> SerialPort:
    """Open *port* with pyserial and return the transport."""
    handle = SerialPort(port, baud_rate=baud_rate, timeout_s=timeout_s)
    handle.open()
    return handle


def classify_identification(identification: str, config: DiscoveryConfig) -> DeviceRole:
    """Classify an ``*IDN?`` response by vendor signature.

    Signatures are checked in order: oscilloscope, legacy generator, modern
    generator. Anything else is :attr:`DeviceRole.UNKNOWN`.
    """
    if any(sig in identification for sig in config.scope_signatures):
        return DeviceRole.SCOPE
    if any(sig in identification for sig in config.legacy_signatures):
        return DeviceRole.FN_GEN_LEGACY
    if any(sig in identification for sig in config.modern_signatures):
        return DeviceRole.FN_GEN_MODERN
    return DeviceRole.UNKNOWN


def assign_roles(devices: Iterable[Device]) -> dict[InstrumentRole, Device]:
    """Pick one device per instrument role, first found wins.

    Legacy and modern generators compete for the same function-generator
    role. Later matches for a filled role are logged and ignored.
    """
    assigned: dict[InstrumentRole, Device] = {}
    for device in devices:
        role = device.role.instrument_role
        if role is None:
            continue
        if role in assigned:
            logger.warning(
                "Ignoring %s on %s: %s already assigned to %s",
                device.role.value,
                device.port,
                role.label,
                assigned[role].port,
            )
            continue
        assigned[role] = device
    return assigned


def visa_address_for_port(port: str) -> str:
    """Derive the instrument-bus address for a serial port.

    The port's trailing number selects the ``ASRL`` interface, so ``COM3``
    becomes ``ASRL3::INSTR``.

    Raises:
        InstrumentConnectionError: If the port name has no numeric suffix.
    """
    match = _PORT_NUMBER_RE.search(port)
    if match is None:
        raise InstrumentConnectionError(f"Cannot derive a VISA address from port {port!r}")
    return f"ASRL{int(match.group(1))}::INSTR"


def list_resources() -> tuple[tuple[str, ...], tuple[str, ...]]:
    """List serial ports and VISA resources visible to this machine.

    VISA enumeration problems are logged and reported as no resources.

    Returns:
        Tuple of (serial port names, VISA resource strings).
    """
    ports = list_serial_ports()
    try:
        resources = list_visa_resources()
    except InstrumentConnectionError as exc:
        logger.warning("Unable to fetch VISA resource list: %s", exc)
        resources = ()
    return ports, resources


class DeviceClassifier:
    """Finds which serial port hosts which instrument.

    Args:
        config: Probe settings and identification signatures.
        list_ports: Returns the names of all serial ports.
        open_port: Opens a port at a baud rate and timeout.
        sleep: Blocking wait function, replaceable in tests.
    """

    def __init__(
        self,
        config: DiscoveryConfig | None = None,
        *,
        list_ports: Callable[[], Iterable[str]] = list_serial_ports,
        open_port: PortOpener = open_serial_port,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or DiscoveryConfig()
        self._list_ports = list_ports
        self._open_port = open_port
        self._sleep = sleep

    @property
    def config(self) -> DiscoveryConfig:
        """The discovery settings in use."""
        return self._config

    def discover(self) -> tuple[Device, ...]:
        """Probe every candidate port and classify what answers.

        Returns:
            One :class:`Device` per candidate port, in enumeration order.
            Ports that fail to open or do not match a signature are
            :attr:`DeviceRole.UNKNOWN`.

        Raises:
            NoUsablePortsError: If no ports remain after filtering.
        """
        ports = [self.release(name) for name in self._list_ports()]
        candidates = [port for port in ports if not self.is_ignored(port.name)]
        logger.info("Filtered serial ports: %s", " ".join(p.name for p in candidates) or "(none)")

        if not candidates:
            raise NoUsablePortsError("No usable serial ports found. Check connections or try again.")

        devices: list[Device] = []
        for port in candidates:
            logger.info("Trying port: %s", port.name)
            try:
                identification = self.probe(port.name)
            except LabtoolsError as exc:
                logger.warning("Error with port %s: %s", port.name, exc)
                devices.append(Device(port=port.name, role=DeviceRole.UNKNOWN))
                continue

            role = classify_identification(identification, self._config)
            logger.info(
                "Device response from %s: %s (%s)",
                port.name,
                identification or "<no response>",
                role.value,
            )
            devices.append(Device(port=port.name, role=role, identification=identification))
        return tuple(devices)

    def release(self, name: str) -> Port:
        """Open and immediately close *name* to clear a stale lock.

        Failures are expected for ports in use or absent, and only mark the
        port as unavailable.
        """
        try:
            handle = self._open_port(name, self._config.release_baud_rate, self._config.probe_timeout_s)
        except LabtoolsError as exc:
            logger.debug("Could not release %s: %s", name, exc)
            return Port(name=name, available=False)
        handle.close()
        return Port(name=name, available=True)

    def is_ignored(self, name: str) -> bool:
        """True if the port name matches an irrelevant-port pattern."""
        return any(pattern in name for pattern in self._config.ignore_patterns)

    def probe(self, name: str) -> str:
        """Send ``*IDN?`` to *name* and return the reply.

        Returns:
            The identification string, or an empty string if nothing was
            waiting after the settle delay.
        """
        handle = self._open_port(name, self._config.probe_baud_rate, self._config.probe_timeout_s)
        try:
            self._sleep(self._config.probe_settle_s)
            handle.flush()
            handle.write("*IDN?")
            self._sleep(self._config.probe_settle_s)
            if handle.bytes_available > 0:
                return handle.read().strip()
            return ""
        finally:
            handle.close()
