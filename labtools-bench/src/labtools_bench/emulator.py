"""In-process emulators for the bench instruments.

Each emulator implements the ``ScpiTransport`` protocol, so it can stand in
for a serial port or VISA resource anywhere a transport is expected. The
oscilloscope emulator can be wired to a function generator emulator; it then
reports the generator's signal on channel 1 and a first-order low-pass
response of it on channel 2.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from labtools_core.errors import InstrumentConnectionError

from labtools_bench.config import DiscoveryConfig, SessionConfig
from labtools_bench.discovery import DeviceClassifier, visa_address_for_port
from labtools_bench.session import InstrumentSession

# 1x1 pixel image returned by the emulated hard copy.
BLANK_GIF = (
    b"GIF89a\x01\x00\x01\x00\x80\x00\x00\x00\x00\x00\xff\xff\xff"
    b"!\xf9\x04\x01\x00\x00\x00\x00"
    b",\x00\x00\x00\x00\x01\x00\x01\x00\x00\x02\x02D\x01\x00;"
)

_ERR_UNDEFINED_HEADER = (-113, "Undefined header")
_ERR_PARAMETER = (-220, "Parameter error")
_ERR_FILE_NOT_FOUND = (-256, "File name not found")


def _split_query(line: str) -> tuple[str, str]:
    """Split ``"MEAS1:RES?PEAK"`` into ``("MEAS1:RES?", "PEAK")``."""
    header, _, args = line.partition("?")
    return header.strip().upper() + "?", args.strip()


def _split_command(line: str) -> tuple[str, str]:
    """Split ``"FREQ 1000"`` into ``("FREQ", "1000")``."""
    parts = line.split(None, 1)
    return parts[0].upper(), parts[1].strip() if len(parts) > 1 else ""


def _unquote(text: str) -> str:
    return text.strip().strip("'\"")


# ---------------------------------------------------------------------------
# Shared transport behavior
# ---------------------------------------------------------------------------


class _ScpiEmulator(ABC):
    """Response buffers and the IEEE 488.2 common commands."""

    def __init__(self, identity: str) -> None:
        if not identity:
            raise ValueError("identity must be non-empty")
        self._identity = identity
        self._response_buffer = ""
        self._binary_buffer = bytearray()
        self._error_queue: list[tuple[int, str]] = []
        self.read_termination = "\n"
        self.chunk_size = 4096
        self.commands: list[str] = []

    # -- Transport interface ------------------------------------------------

    @property
    def bytes_available(self) -> int:
        """Bytes waiting to be read."""
        pending = len(self._binary_buffer)
        if self._response_buffer:
            pending += len(self._response_buffer) + 1
        return pending

    def write(self, message: str) -> None:
        """Process one message, which may hold ``;``-separated units."""
        for unit in message.split(";"):
            line = unit.strip().lstrip(":")
            if not line:
                continue
            self.commands.append(line)
            if "?" in line:
                header, args = _split_query(line)
                self._response_buffer = self._query(header, args)
            else:
                header, args = _split_command(line)
                self._command(header, args)

    def read(self) -> str:
        """Return and clear the buffered response."""
        resp = self._response_buffer
        self._response_buffer = ""
        return resp

    def read_bytes(self, count: int) -> bytes:
        """Return up to *count* bytes of pending binary output."""
        data = bytes(self._binary_buffer[:count])
        del self._binary_buffer[:count]
        return data

    def flush(self) -> None:
        """Discard everything pending."""
        self._response_buffer = ""
        self._binary_buffer.clear()

    def close(self) -> None:
        """Close the emulator (no-op for in-process transport)."""

    # -- Test helpers -------------------------------------------------------

    def push_error(self, code: int, message: str) -> None:
        """Queue an instrument error as if a command had failed."""
        self._error_queue.append((code, message))

    @property
    def pending_error_count(self) -> int:
        """Number of entries in the error queue."""
        return len(self._error_queue)

    # -- Dispatch -----------------------------------------------------------

    def _query(self, header: str, args: str) -> str:
        if header == "*IDN?":
            return self._identity
        if header == "*OPC?":
            return "1"
        if header == "*STB?":
            return "4" if self._error_queue else "0"
        if header == "SYST:ERR?":
            return self._pop_error()
        handler = self._query_handlers().get(header)
        if handler is None:
            self._error_queue.append(_ERR_UNDEFINED_HEADER)
            return ""
        return handler(args)

    def _command(self, header: str, args: str) -> None:
        if header == "*RST":
            self._reset()
            return
        if header == "*CLS":
            self._error_queue.clear()
            return
        handler = self._command_handlers().get(header)
        if handler is None:
            self._error_queue.append(_ERR_UNDEFINED_HEADER)
            return
        handler(args)

    def _pop_error(self) -> str:
        if self._error_queue:
            code, msg = self._error_queue.pop(0)
            return f'{code},"{msg}"'
        return '0,"No error"'

    def _parse_float(self, args: str) -> float | None:
        try:
            return float(args)
        except ValueError:
            self._error_queue.append(_ERR_PARAMETER)
            return None

    @abstractmethod
    def _query_handlers(self) -> dict[str, Callable[[str], str]]:
        """Map query headers to their handlers."""

    @abstractmethod
    def _command_handlers(self) -> dict[str, Callable[[str], None]]:
        """Map command headers to their handlers."""

    @abstractmethod
    def _reset(self) -> None:
        """Restore power-on settings for *RST."""


# ---------------------------------------------------------------------------
# Function generator
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FunctionGeneratorEmulatorConfig:
    """Configuration for a function generator emulator.

    Args:
        identity: ``*IDN?`` response string.
        dialect: ``"modern"`` or ``"legacy"`` command set.
    """

    identity: str
    dialect: str = "modern"

    def __post_init__(self) -> None:
        if self.dialect not in ("modern", "legacy"):
            raise ValueError(f"dialect must be 'modern' or 'legacy', got {self.dialect!r}")


_MODERN_WAVEFORMS = ("SIN", "RAMP", "SQU")
_LEGACY_WAVEFORMS = ("SIN", "TRI", "SQR")


class FunctionGeneratorEmulator(_ScpiEmulator):
    """Function generator emulator speaking either command dialect.

    Args:
        config: Identity and dialect.
    """

    def __init__(self, config: FunctionGeneratorEmulatorConfig) -> None:
        super().__init__(config.identity)
        self._config = config
        self.amplitude_vpp = 1.0
        self.frequency_hz = 1000.0
        self.waveform = "SIN"
        self.amplitude_unit = "VPP"

    @property
    def dialect(self) -> str:
        """The emulated command dialect."""
        return self._config.dialect

    def _reset(self) -> None:
        self.amplitude_vpp = 1.0
        self.frequency_hz = 1000.0
        self.waveform = "SIN"
        self.amplitude_unit = "VPP"

    def _command(self, header: str, args: str) -> None:
        if self.dialect == "modern" and header.startswith("SOUR1:APPL:"):
            name = header.rsplit(":", 1)[1]
            if name in _MODERN_WAVEFORMS:
                self.waveform = name
            else:
                self._error_queue.append(_ERR_PARAMETER)
            return
        super()._command(header, args)

    def _query_handlers(self) -> dict[str, Callable[[str], str]]:
        if self.dialect == "modern":
            return {
                "SOUR1:AMP?": lambda _: f"{self.amplitude_vpp:.3f}",
                "SOUR1:FREQ?": lambda _: f"{self.frequency_hz:.6e}",
                "SOUR1:APPL?": lambda _: (
                    f'"{self.waveform} {self.frequency_hz:.6e},{self.amplitude_vpp:.3f},0.000"'
                ),
            }
        return {
            "AMPL:VOLT?": lambda _: f"{self.amplitude_vpp:.3f}",
            "FREQ?": lambda _: f"{self.frequency_hz:.3f}",
            "FUNC:WAV?": lambda _: str(_LEGACY_WAVEFORMS.index(self.waveform) + 1),
        }

    def _command_handlers(self) -> dict[str, Callable[[str], None]]:
        if self.dialect == "modern":
            return {
                "SOUR1:VOLT:UNIT": self._set_unit,
                "SOUR1:AMP": self._set_amplitude,
                "SOUR1:FREQ": self._set_modern_frequency,
            }
        return {
            "AMPL:VOLT": self._set_amplitude,
            "FREQ": self._set_frequency,
            "FUNC:WAV": self._set_legacy_waveform,
        }

    # -- Set handlers -------------------------------------------------------

    def _set_unit(self, args: str) -> None:
        self.amplitude_unit = args.upper()

    def _set_amplitude(self, args: str) -> None:
        value = self._parse_float(args)
        if value is not None:
            self.amplitude_vpp = value

    def _set_frequency(self, args: str) -> None:
        value = self._parse_float(args)
        if value is not None:
            self.frequency_hz = value

    def _set_modern_frequency(self, args: str) -> None:
        upper = args.upper()
        self._set_frequency(upper[:-2] if upper.endswith("HZ") else upper)

    def _set_legacy_waveform(self, args: str) -> None:
        try:
            index = int(args)
        except ValueError:
            self._error_queue.append(_ERR_PARAMETER)
            return
        if not 1 <= index <= len(_LEGACY_WAVEFORMS):
            self._error_queue.append(_ERR_PARAMETER)
            return
        self.waveform = _LEGACY_WAVEFORMS[index - 1]


# ---------------------------------------------------------------------------
# Oscilloscope
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OscilloscopeEmulatorConfig:
    """Configuration for an oscilloscope emulator.

    Args:
        identity: ``*IDN?`` response string.
        cutoff_hz: Corner frequency of the low-pass response on channel 2.
    """

    identity: str
    cutoff_hz: float = 100_000.0

    def __post_init__(self) -> None:
        if not self.identity:
            raise ValueError("identity must be non-empty")
        if self.cutoff_hz <= 0:
            raise ValueError("cutoff_hz must be > 0")


@dataclass
class _MeasurementSlot:
    enabled: bool = False
    source: str = "CH1"
    main: str = "FREQ"


MeasurementHook = Callable[[int, str], "str | None"]


class OscilloscopeEmulator(_ScpiEmulator):
    """Oscilloscope emulator with automeasure slots and hard copy.

    Args:
        config: Identity and channel 2 response.
        signal: Generator whose output is wired to both channels.
    """

    def __init__(
        self,
        config: OscilloscopeEmulatorConfig,
        signal: FunctionGeneratorEmulator | None = None,
    ) -> None:
        super().__init__(config.identity)
        self._config = config
        self._signal = signal
        self._results: dict[tuple[int, str], str] = {}
        self._files: dict[str, bytes] = {}
        self._hardcopy_name = "screenshot"
        self.measurement_hook: MeasurementHook | None = None
        self.hardcopy_enabled = True
        self._reset()

    def _reset(self) -> None:
        self.channel_on = {1: False, 2: False}
        self.probe_attenuation = {1: 1.0, 2: 1.0}
        self.position = {1: 0.0, 2: 0.0}
        self.timescale = 1e-3
        self.acquire_type = "REFRESH"
        self.average_count = 2
        self.hardcopy_language = "PNG"
        self.autoset_count = 0
        self.slots = {n: _MeasurementSlot(source="CH1" if n <= 2 else "CH2") for n in range(1, 9)}

    # -- Test helpers -------------------------------------------------------

    def set_result(self, slot: int, metric: str, value: float | str) -> None:
        """Fix the reply to ``MEAS<slot>:RES?<metric>``.

        A string value is returned verbatim, so malformed replies can be
        scripted.
        """
        self._results[(slot, metric.upper())] = (
            value if isinstance(value, str) else f"{value:.6E}"
        )

    def store_file(self, name: str, data: bytes) -> None:
        """Place a file in the emulated internal storage."""
        self._files[name] = data

    def has_file(self, name: str) -> bool:
        """True if *name* exists in the emulated internal storage."""
        return name in self._files

    # -- Dispatch -----------------------------------------------------------

    def _query(self, header: str, args: str) -> str:
        if header.startswith("MEAS") and header.endswith(":RES?"):
            return self._measure(header, args)
        return super()._query(header, args)

    def _command(self, header: str, args: str) -> None:
        target, _, _rest = header.partition(":")
        if target.startswith(("CHAN", "PROB", "MEAS")) and target[4:].isdigit():
            self._indexed_command(target[:4], int(target[4:]), header, args)
            return
        super()._command(header, args)

    def _query_handlers(self) -> dict[str, Callable[[str], str]]:
        return {
            "MMEM:DATA?": self._read_file,
            "TIM:SCAL?": lambda _: f"{self.timescale:.3E}",
            "ACQ:TYPE?": lambda _: self.acquire_type,
            "ACQ:AVER:COUNT?": lambda _: str(self.average_count),
        }

    def _command_handlers(self) -> dict[str, Callable[[str], None]]:
        return {
            "AUT": self._autoset,
            "TIM:SCAL": self._set_timescale,
            "ACQ:TYPE": self._set_acquire_type,
            "ACQ:AVER:COUNT": self._set_average_count,
            "HCOP:LANG": self._set_hardcopy_language,
            "MMEM:NAME": self._set_hardcopy_name,
            "HCOP:IMM": self._hardcopy,
            "MMEM:DEL": self._delete_file,
        }

    # -- Channel, probe, and measurement slots -------------------------------

    def _indexed_command(self, kind: str, index: int, header: str, args: str) -> None:
        setting = header.partition(":")[2]
        value = args.upper()
        if kind == "CHAN" and index in self.channel_on and setting == "STAT":
            self.channel_on[index] = value in ("ON", "1")
        elif kind == "CHAN" and index in self.position and setting == "POS":
            parsed = self._parse_float(args)
            if parsed is not None:
                self.position[index] = parsed
        elif kind == "PROB" and index in self.probe_attenuation and setting == "SET:ATT:MAN":
            parsed = self._parse_float(args)
            if parsed is not None:
                self.probe_attenuation[index] = parsed
        elif kind == "MEAS" and index in self.slots and setting == "":
            self.slots[index].enabled = value in ("ON", "1")
        elif kind == "MEAS" and index in self.slots and setting == "SOUR":
            self.slots[index].source = value
        elif kind == "MEAS" and index in self.slots and setting == "MAIN":
            self.slots[index].main = value
        else:
            self._error_queue.append(_ERR_UNDEFINED_HEADER)

    def _measure(self, header: str, args: str) -> str:
        digits = header[4:-5]
        if not digits.isdigit() or int(digits) not in self.slots:
            self._error_queue.append(_ERR_UNDEFINED_HEADER)
            return ""
        slot = int(digits)
        metric = (args or self.slots[slot].main).upper()
        if self.measurement_hook is not None:
            hooked = self.measurement_hook(slot, metric)
            if hooked is not None:
                return hooked
        if (slot, metric) in self._results:
            return self._results[(slot, metric)]
        return f"{self._simulate(self.slots[slot].source, metric):.6E}"

    def _simulate(self, source: str, metric: str) -> float:
        """Model the generator signal through a first-order low-pass on CH2."""
        if self._signal is None:
            return 0.0
        frequency = self._signal.frequency_hz
        amplitude = self._signal.amplitude_vpp
        normalized = frequency / self._config.cutoff_hz
        if metric == "PHAS":
            return -math.degrees(math.atan(normalized))
        if metric == "FREQ":
            return frequency
        if metric == "PER":
            return 1.0 / frequency if frequency else 0.0
        if metric == "PEAK":
            if source == "CH2":
                return amplitude / math.sqrt(1.0 + normalized**2)
            return amplitude
        return 0.0

    # -- Set handlers -------------------------------------------------------

    def _autoset(self, _args: str) -> None:
        self.autoset_count += 1

    def _set_timescale(self, args: str) -> None:
        value = self._parse_float(args)
        if value is not None:
            self.timescale = value

    def _set_acquire_type(self, args: str) -> None:
        self.acquire_type = args.upper()

    def _set_average_count(self, args: str) -> None:
        try:
            self.average_count = int(args)
        except ValueError:
            self._error_queue.append(_ERR_PARAMETER)

    def _set_hardcopy_language(self, args: str) -> None:
        self.hardcopy_language = args.upper()

    def _set_hardcopy_name(self, args: str) -> None:
        self._hardcopy_name = _unquote(args)

    def _hardcopy(self, _args: str) -> None:
        if not self.hardcopy_enabled:
            self._error_queue.append((-200, "Execution error"))
            return
        extension = self.hardcopy_language.lower()
        self._files[f"{self._hardcopy_name}.{extension}"] = BLANK_GIF

    def _delete_file(self, args: str) -> None:
        name = _unquote(args)
        if self._files.pop(name, None) is None:
            self._error_queue.append(_ERR_FILE_NOT_FOUND)

    # -- Query handlers -----------------------------------------------------

    def _read_file(self, args: str) -> str:
        name = _unquote(args)
        data = self._files.get(name)
        if data is None:
            self._error_queue.append(_ERR_FILE_NOT_FOUND)
            return ""
        length = str(len(data)).encode("ascii")
        self._binary_buffer = bytearray(
            b"#" + str(len(length)).encode("ascii") + length + data + b"\n"
        )
        return ""


# ---------------------------------------------------------------------------
# Emulated bench wiring
# ---------------------------------------------------------------------------


class EmulatedBench:
    """Serial ports and VISA resources backed by emulators.

    Supplies the port listing and open functions that discovery and the
    session take, so the whole workflow runs without hardware.

    Args:
        generator: Emulator answering on *generator_port*.
        scope: Emulator answering on *scope_port*.
        generator_port: Port name for the generator.
        scope_port: Port name for the scope.
        other_ports: Extra port names that open but never answer.
    """

    def __init__(
        self,
        generator: FunctionGeneratorEmulator | None = None,
        scope: OscilloscopeEmulator | None = None,
        *,
        generator_port: str = "COM3",
        scope_port: str = "COM4",
        other_ports: tuple[str, ...] = ("Bluetooth-Incoming-Port",),
    ) -> None:
        self.generator = generator
        self.scope = scope
        self._ports: dict[str, _ScpiEmulator | None] = {name: None for name in other_ports}
        if generator is not None:
            self._ports[generator_port] = generator
        if scope is not None:
            self._ports[scope_port] = scope

    def list_ports(self) -> tuple[str, ...]:
        """Names of every emulated serial port."""
        return tuple(self._ports)

    def open_port(self, port: str, baud_rate: int, timeout_s: float) -> _ScpiEmulator:
        """Open an emulated serial port.

        Raises:
            InstrumentConnectionError: If nothing answers on *port*.
        """
        emulator = self._ports.get(port)
        if emulator is None:
            raise InstrumentConnectionError(f"Failed to open serial port {port!r}: no device")
        emulator.flush()
        return emulator

    def open_visa(self, address: str, timeout_ms: int) -> _ScpiEmulator:
        """Open an emulated ``ASRL<n>::INSTR`` resource.

        Raises:
            InstrumentConnectionError: If no emulated port has that number.
        """
        for port, emulator in self._ports.items():
            if emulator is None or not port[-1:].isdigit():
                continue
            if address == visa_address_for_port(port):
                emulator.flush()
                return emulator
        raise InstrumentConnectionError(f"Failed to open VISA resource {address!r}")

    def classifier(self, config: DiscoveryConfig | None = None) -> DeviceClassifier:
        """A classifier probing the emulated ports without waiting."""
        return DeviceClassifier(
            config, list_ports=self.list_ports, open_port=self.open_port, sleep=_no_wait
        )

    def session(self, config: SessionConfig | None = None) -> InstrumentSession:
        """An unopened session connecting to the emulated ports without waiting."""
        return InstrumentSession(
            config, serial_factory=self.open_port, visa_factory=self.open_visa, sleep=_no_wait
        )


def _no_wait(_seconds: float) -> None:
    return None


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------


def make_afg2225_emulator(serial: str = "GEQ000001") -> FunctionGeneratorEmulator:
    """Create a GW Instek AFG-2225 emulator (modern dialect)."""
    return FunctionGeneratorEmulator(
        FunctionGeneratorEmulatorConfig(identity=f"GW INSTEK,AFG-2225,{serial},V1.08")
    )


def make_gfg_emulator(serial: str = "GEN000001") -> FunctionGeneratorEmulator:
    """Create a GW Instek GFG emulator (legacy dialect)."""
    return FunctionGeneratorEmulator(
        FunctionGeneratorEmulatorConfig(
            identity=f"GW, GFG-3015,{serial},V1.00", dialect="legacy"
        )
    )


def make_rtb_emulator(
    signal: FunctionGeneratorEmulator | None = None, serial: str = "1333.1005k04/102529"
) -> OscilloscopeEmulator:
    """Create a Rohde & Schwarz RTB2004 emulator."""
    return OscilloscopeEmulator(
        OscilloscopeEmulatorConfig(identity=f"Rohde&Schwarz,RTB2004,{serial},02.300"),
        signal,
    )
