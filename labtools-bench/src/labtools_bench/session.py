"""Instrument session owning one connection per instrument role.

The session turns discovery results into live connections: the function
generator over a plain serial port, the oscilloscope through VISA. A role
whose instrument is missing or fails to open is left empty and the session
carries on in degraded mode; drivers skip commands for it with a warning.

Example:
    devices = DeviceClassifier().discover()
    with InstrumentSession().open(devices) as session:
        session.function_generator.set_frequency(1000)
        vpp = session.oscilloscope.measure(1, "PEAK")
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from types import TracebackType

from labtools_core.errors import LabtoolsError, SessionStateError
from labtools_core.types.common import Device, InstrumentRole
from labtools_scpi import ScpiConnection, ScpiTransport, VisaResource

from labtools_bench.config import SessionConfig
from labtools_bench.discovery import assign_roles, open_serial_port, visa_address_for_port
from labtools_bench.fngen import FnGenDialect, FunctionGeneratorDriver, ModernDialect, dialect_for_role
from labtools_bench.scope import OscilloscopeDriver

logger = logging.getLogger(__name__)

SerialFactory = Callable[[str, int, float], ScpiTransport]
VisaFactory = Callable[[str, int], ScpiTransport]


def open_visa_resource(address: str, timeout_ms: int) -> VisaResource:
    """Open *address* through PyVISA and return the transport."""
    resource = VisaResource(address, timeout_ms=timeout_ms)
    resource.open()
    return resource


class InstrumentSession:
    """Holds at most one live connection per :class:`InstrumentRole`.

    Args:
        config: Baud rates, timeouts, and settle delays.
        serial_factory: Opens the function generator's serial port.
        visa_factory: Opens the oscilloscope's VISA resource.
        sleep: Blocking wait function, replaceable in tests.
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        *,
        serial_factory: SerialFactory = open_serial_port,
        visa_factory: VisaFactory = open_visa_resource,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or SessionConfig()
        self._serial_factory = serial_factory
        self._visa_factory = visa_factory
        self._sleep = sleep
        self._connections: dict[InstrumentRole, ScpiConnection] = {}
        self._dialect: FnGenDialect = ModernDialect()
        self._initialized = False

    # -- Properties ---------------------------------------------------------

    @property
    def config(self) -> SessionConfig:
        """The session settings in use."""
        return self._config

    @property
    def initialized(self) -> bool:
        """True between a successful :meth:`open` and :meth:`close`."""
        return self._initialized

    @property
    def dialect(self) -> FnGenDialect:
        """Command dialect of the function generator."""
        return self._dialect

    @property
    def function_generator(self) -> FunctionGeneratorDriver:
        """Driver for the function generator role."""
        return FunctionGeneratorDriver(
            lambda: self.connection(InstrumentRole.FUNCTION_GENERATOR), self._dialect
        )

    @property
    def oscilloscope(self) -> OscilloscopeDriver:
        """Driver for the oscilloscope role.

        Averaged acquisitions take their wait time from the generator's
        current frequency.
        """
        return OscilloscopeDriver(
            lambda: self.connection(InstrumentRole.OSCILLOSCOPE),
            strict_averages=self._config.strict_averages,
            frequency_source=self.function_generator.get_frequency,
            sleep=self._sleep,
        )

    # -- Lifecycle ----------------------------------------------------------

    def open(self, devices: Iterable[Device]) -> InstrumentSession:
        """Connect to the classified devices and reset them.

        Roles are filled first-found. A connection failure only leaves its
        role empty. If the reset fails, every connection opened so far is
        released before the error propagates.

        Returns:
            This session, for use as a context manager.

        Raises:
            SessionStateError: If the session is already open.
        """
        if self._initialized:
            raise SessionStateError("Instrument session is already open")

        try:
            self._open(devices)
        except BaseException:
            self.close()
            raise
        return self

    def is_ready(self, role: InstrumentRole) -> bool:
        """True if the session is open and holds a connection for *role*."""
        return self._initialized and role in self._connections

    def connection(self, role: InstrumentRole) -> ScpiConnection | None:
        """Return the connection for *role*, or None if it is missing.

        Raises:
            SessionStateError: If the session is not open.
        """
        if not self._initialized:
            raise SessionStateError("Instrument session is not open")
        return self._connections.get(role)

    def reset(self) -> None:
        """Send ``*RST`` to every connected instrument.

        Raises:
            SessionStateError: If the session is not open.
        """
        if not self._initialized:
            raise SessionStateError("Instrument session is not open")
        for role, conn in self._connections.items():
            logger.debug("Resetting %s", role.label)
            conn.reset()

    def close(self) -> None:
        """Reset and release every connected instrument.

        Safe to call more than once; later calls do nothing. A failing reset
        is logged and the transport is still closed.
        """
        if not self._initialized and not self._connections:
            return
        for role, conn in self._connections.items():
            try:
                conn.reset()
            except LabtoolsError as exc:
                logger.error("Failed to reset %s during close: %s", role.label, exc)
            try:
                conn.close()
            except LabtoolsError as exc:
                logger.error("Failed to close %s: %s", role.label, exc)
            else:
                logger.info("Released %s", role.label)
        self._connections.clear()
        self._initialized = False

    def __enter__(self) -> InstrumentSession:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    # -- Private helpers ----------------------------------------------------

    def _open(self, devices: Iterable[Device]) -> None:
        assigned = assign_roles(devices)
        generator = assigned.get(InstrumentRole.FUNCTION_GENERATOR)
        self._dialect = dialect_for_role(generator.role if generator else None)
        if generator is not None:
            self._connect(
                InstrumentRole.FUNCTION_GENERATOR,
                generator,
                lambda: self._serial_factory(
                    generator.port, self._config.fn_gen_baud_rate, self._config.fn_gen_timeout_s
                ),
            )
        scope = assigned.get(InstrumentRole.OSCILLOSCOPE)
        if scope is not None:
            self._connect(
                InstrumentRole.OSCILLOSCOPE,
                scope,
                lambda: self._visa_factory(
                    visa_address_for_port(scope.port), self._config.scope_timeout_ms
                ),
            )

        self._initialized = True
        for role in InstrumentRole:
            conn = self._connections.get(role)
            if conn is None:
                logger.warning("No %s connected", role.label)
                continue
            try:
                logger.info("%s identifies as: %s", role.label.capitalize(), conn.identify())
            except LabtoolsError as exc:
                logger.warning("%s did not identify: %s", role.label.capitalize(), exc)

        if self._connections:
            self.reset()
            self._sleep(self._config.post_reset_s)

    def _connect(
        self, role: InstrumentRole, device: Device, factory: Callable[[], ScpiTransport]
    ) -> None:
        try:
            transport = factory()
        except LabtoolsError as exc:
            logger.warning("Could not connect %s on %s: %s", role.label, device.port, exc)
            return
        self._connections[role] = ScpiConnection(
            transport, settle_s=self._config.settle_s, sleep=self._sleep
        )
        logger.info("Connected %s on %s", role.label, device.port)
