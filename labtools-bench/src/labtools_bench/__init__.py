"""Bench automation for a function generator and oscilloscope pair.

This package finds instruments on serial ports, opens a session holding one
connection per instrument role, drives the generator and scope through typed
methods, and runs logarithmic gain/phase sweeps whose results are saved as
CSV.

Typical usage::

    from labtools_bench import DeviceClassifier, InstrumentSession, run_sweep

    devices = DeviceClassifier().discover()
    session = InstrumentSession().open(devices)
    records = run_sweep(session)  # closes the session
"""

from labtools_bench.config import (
    BenchConfig,
    DiscoveryConfig,
    SessionConfig,
    SweepConfig,
    load_config,
)
from labtools_bench.discovery import (
    DeviceClassifier,
    assign_roles,
    classify_identification,
    list_resources,
    visa_address_for_port,
)
from labtools_bench.emulator import (
    EmulatedBench,
    FunctionGeneratorEmulator,
    OscilloscopeEmulator,
    make_afg2225_emulator,
    make_gfg_emulator,
    make_rtb_emulator,
)
from labtools_bench.fngen import (
    FnGenDialect,
    FunctionGeneratorDriver,
    LegacyDialect,
    ModernDialect,
    dialect_for_role,
)
from labtools_bench.results import read_measurements_csv, write_measurements_csv
from labtools_bench.scope import AUTOMEASURE_TYPES, VALID_AVERAGES, OscilloscopeDriver
from labtools_bench.session import InstrumentSession
from labtools_bench.snapshots import capture_snapshots
from labtools_bench.sweep import SweepOrchestrator, SweepState, log_frequencies, run_sweep

__all__ = [
    # Configuration
    "BenchConfig",
    "DiscoveryConfig",
    "SessionConfig",
    "SweepConfig",
    "load_config",
    # Discovery
    "DeviceClassifier",
    "assign_roles",
    "classify_identification",
    "list_resources",
    "visa_address_for_port",
    # Emulators
    "EmulatedBench",
    "FunctionGeneratorEmulator",
    "OscilloscopeEmulator",
    "make_afg2225_emulator",
    "make_gfg_emulator",
    "make_rtb_emulator",
    # Function generator
    "FnGenDialect",
    "FunctionGeneratorDriver",
    "LegacyDialect",
    "ModernDialect",
    "dialect_for_role",
    # Oscilloscope
    "AUTOMEASURE_TYPES",
    "VALID_AVERAGES",
    "OscilloscopeDriver",
    # Session
    "InstrumentSession",
    # Sweep and results
    "SweepOrchestrator",
    "SweepState",
    "capture_snapshots",
    "log_frequencies",
    "read_measurements_csv",
    "run_sweep",
    "write_measurements_csv",
]
