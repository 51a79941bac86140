"""YAML configuration loading for bench automation.

Every settle delay, threshold, baud rate, and identification signature used
by discovery, the session, and the sweep lives here as a named default that a
YAML file can override.

Example YAML configuration:
    discovery:
      probe_baud_rate: 19200
      ignore_patterns: ["Bluetooth", "debug", "tty."]

    session:
      settle_s: 0.25
      strict_averages: false

    sweep:
      start_hz: 1.0
      stop_hz: 15000000.0
      points: 50
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml


@dataclass(frozen=True)
class DiscoveryConfig:
    """Port probing and classification settings.

    Attributes:
        release_baud_rate: Baud used for the open/close pass that clears
            stale port locks.
        probe_baud_rate: Baud used for the ``*IDN?`` probe.
        probe_timeout_s: Read timeout for the probe.
        probe_settle_s: Wait after opening and again after sending ``*IDN?``.
        ignore_patterns: Port-name substrings that are never probed.
        scope_signatures: ``*IDN?`` substrings identifying the oscilloscope.
        legacy_signatures: Substrings identifying a legacy-dialect generator.
        modern_signatures: Substrings identifying a modern-dialect generator.
    """

    release_baud_rate: int = 9600
    probe_baud_rate: int = 19200
    probe_timeout_s: float = 0.5
    probe_settle_s: float = 0.2
    ignore_patterns: tuple[str, ...] = ("Bluetooth", "debug", "tty.")
    scope_signatures: tuple[str, ...] = ("Rohde&Schwarz",)
    legacy_signatures: tuple[str, ...] = ("GW, GFG", "Function Generator")
    modern_signatures: tuple[str, ...] = ("AFG-2225",)


@dataclass(frozen=True)
class SessionConfig:
    """Instrument session settings.

    Attributes:
        fn_gen_baud_rate: Operational baud for the function generator.
        fn_gen_timeout_s: Read timeout for the function generator.
        scope_timeout_ms: VISA I/O timeout for the oscilloscope.
        settle_s: Wait after every command or query.
        post_reset_s: Wait after the opening ``*RST``.
        strict_averages: Reject average counts outside 2..1024 powers of two
            instead of warning and proceeding.
    """

    fn_gen_baud_rate: int = 19200
    fn_gen_timeout_s: float = 2.0
    scope_timeout_ms: int = 5000
    settle_s: float = 0.25
    post_reset_s: float = 1.0
    strict_averages: bool = False


@dataclass(frozen=True)
class SweepConfig:
    """Logarithmic frequency sweep settings.

    Attributes:
        start_hz: First sweep frequency (inclusive).
        stop_hz: Last sweep frequency (inclusive).
        points: Number of log-spaced frequencies.
        precision: Decimal places the planned frequencies are rounded to.
        amplitude_vpp: Generator amplitude set before the sweep.
        waveform: Generator waveform set before the sweep.
        stabilize_s: Wait after each frequency change.
        low_threshold_hz: Below this, force a coarse timescale.
        low_timescale_s: Timescale (s/div) forced below ``low_threshold_hz``.
        low_settle_s: Extra wait below ``low_threshold_hz``.
        mid_threshold_hz: Below this (and above the low threshold), wait extra.
        mid_settle_s: Extra wait below ``mid_threshold_hz``.
        measure_delay_s: Wait after each measurement query.
        ch1_slot: Measurement slot read for channel 1 peak-to-peak.
        ch2_slot: Measurement slot read for channel 2 peak-to-peak.
        phase_slot: Measurement slot read for the phase difference.
    """

    start_hz: float = 1.0
    stop_hz: float = 1.5e7
    points: int = 50
    precision: int = 2
    amplitude_vpp: float = 0.2
    waveform: str = "SIN"
    stabilize_s: float = 2.0
    low_threshold_hz: float = 5.0
    low_timescale_s: float = 200e-3
    low_settle_s: float = 5.0
    mid_threshold_hz: float = 200.0
    mid_settle_s: float = 2.0
    measure_delay_s: float = 0.5
    ch1_slot: int = 1
    ch2_slot: int = 4
    phase_slot: int = 6


@dataclass(frozen=True)
class BenchConfig:
    """Top-level configuration grouping all sections."""

    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    sweep: SweepConfig = field(default_factory=SweepConfig)


def _build_section(cls: type[Any], name: str, data: Any) -> Any:
    """Build one config dataclass from a YAML mapping.

    Lists are converted to tuples so the result stays hashable and frozen.

    Raises:
        ValueError: If the section is not a mapping or has unknown keys.
    """
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"{name} must be a mapping")

    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown {name} option(s): {', '.join(unknown)}")

    values = {k: tuple(v) if isinstance(v, list) else v for k, v in data.items()}
    return cls(**values)


def load_config(path: str | Path) -> BenchConfig:
    """Load bench configuration from a YAML file.

    Sections that are absent keep their defaults.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Parsed bench configuration.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ValueError: If the config is invalid.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return BenchConfig()
    if not isinstance(data, dict):
        raise ValueError("Config must be a YAML mapping")

    unknown = sorted(set(data) - {"discovery", "session", "sweep"})
    if unknown:
        raise ValueError(f"Unknown config section(s): {', '.join(unknown)}")

    return BenchConfig(
        discovery=_build_section(DiscoveryConfig, "discovery", data.get("discovery")),
        session=_build_section(SessionConfig, "session", data.get("session")),
        sweep=_build_section(SweepConfig, "sweep", data.get("sweep")),
    )
