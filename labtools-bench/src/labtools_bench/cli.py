"""Command-line interface for labtools bench automation.

Usage:
    # Show serial ports and VISA resources
    labtools list

    # Probe serial ports and classify the instruments found
    labtools discover

    # Run a gain/phase sweep and write the results CSV
    labtools sweep --config bench.yaml --output-dir results/

    # Capture the demonstration screenshots
    labtools snapshot --output-dir images/

    # Any command against in-process emulators instead of hardware
    labtools --emulate sweep --points 10
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path

from labtools_core.errors import LabtoolsError, NoUsablePortsError

from labtools_bench.config import BenchConfig, load_config
from labtools_bench.discovery import DeviceClassifier, assign_roles, list_resources
from labtools_bench.emulator import EmulatedBench, make_afg2225_emulator, make_rtb_emulator
from labtools_bench.results import write_measurements_csv
from labtools_bench.session import InstrumentSession
from labtools_bench.snapshots import capture_snapshots
from labtools_bench.sweep import run_sweep


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _emulated_bench() -> EmulatedBench:
    generator = make_afg2225_emulator()
    return EmulatedBench(generator, make_rtb_emulator(signal=generator))


def _load(args: argparse.Namespace) -> BenchConfig | None:
    """Load the --config file, printing the problem and returning None if invalid."""
    if not getattr(args, "config", None):
        return BenchConfig()
    try:
        return load_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}")
        return None


def _classifier_and_session(
    args: argparse.Namespace, config: BenchConfig
) -> tuple[DeviceClassifier, InstrumentSession]:
    if args.emulate:
        bench = _emulated_bench()
        return bench.classifier(config.discovery), bench.session(config.session)
    return DeviceClassifier(config.discovery), InstrumentSession(config.session)


def cmd_list(args: argparse.Namespace) -> int:
    """List serial ports and VISA resources."""
    if args.emulate:
        ports, resources = _emulated_bench().list_ports(), ()
    else:
        ports, resources = list_resources()

    print("Serial ports:")
    for port in ports:
        print(f"  {port}")
    if not ports:
        print("  (none)")
    print("VISA resources:")
    for resource in resources:
        print(f"  {resource}")
    if not resources:
        print("  (none)")
    return 0


def cmd_discover(args: argparse.Namespace) -> int:
    """Probe serial ports and print the classification."""
    config = _load(args)
    if config is None:
        return 1
    classifier, _session = _classifier_and_session(args, config)
    try:
        devices = classifier.discover()
    except NoUsablePortsError as exc:
        print(f"Error: {exc}")
        return 1

    for device in devices:
        print(f"{device.port}: {device.role.value} {device.identification or '(no response)'}")
    print()
    roles = assign_roles(devices)
    for role, device in roles.items():
        print(f"{role.label}: {device.port}")
    if not roles:
        print("No instruments recognized.")
    return 0


def cmd_sweep(args: argparse.Namespace) -> int:
    """Discover instruments, run a sweep, and save the results."""
    config = _load(args)
    if config is None:
        return 1
    overrides = {
        name: value
        for name, value in (("points", args.points), ("start_hz", args.start), ("stop_hz", args.stop))
        if value is not None
    }
    sweep_config = dataclasses.replace(config.sweep, **overrides)
    classifier, session = _classifier_and_session(args, config)

    try:
        devices = classifier.discover()
        session.open(devices)
        if args.emulate:
            records = run_sweep(session, sweep_config, sleep=lambda _s: None, progress=print)
        else:
            records = run_sweep(session, sweep_config, progress=print)
    except LabtoolsError as exc:
        print(f"Sweep failed: {exc}")
        return 1
    finally:
        session.close()

    path = write_measurements_csv(records, args.output_dir)
    failed = sum(1 for record in records if record.is_missing)
    print(f"\nWrote {len(records)} measurements ({failed} failed) to: {path}")
    return 0


def cmd_snapshot(args: argparse.Namespace) -> int:
    """Discover instruments and capture the demonstration screenshots."""
    config = _load(args)
    if config is None:
        return 1
    classifier, session = _classifier_and_session(args, config)
    try:
        session.open(classifier.discover())
        paths = capture_snapshots(session, args.output_dir)
    except LabtoolsError as exc:
        print(f"Snapshot failed: {exc}")
        return 1
    finally:
        session.close()

    for path in paths:
        print(f"Saved: {path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="labtools bench automation CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--emulate", action="store_true",
        help="Use in-process instrument emulators instead of hardware"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # list command
    subparsers.add_parser("list", help="List serial ports and VISA resources")

    # discover command
    discover_parser = subparsers.add_parser("discover", help="Classify connected instruments")
    discover_parser.add_argument("--config", "-c", help="YAML bench configuration")

    # sweep command
    sweep_parser = subparsers.add_parser("sweep", help="Run a gain/phase frequency sweep")
    sweep_parser.add_argument("--config", "-c", help="YAML bench configuration")
    sweep_parser.add_argument(
        "--output-dir", "-o", type=Path, default=Path("."),
        help="Directory for the results CSV (default: current directory)"
    )
    sweep_parser.add_argument(
        "--points", type=int,
        help="Number of log-spaced frequencies (default: from config, 50)"
    )
    sweep_parser.add_argument(
        "--start", type=float,
        help="Start frequency in Hz (default: from config, 1)"
    )
    sweep_parser.add_argument(
        "--stop", type=float,
        help="Stop frequency in Hz (default: from config, 15e6)"
    )

    # snapshot command
    snapshot_parser = subparsers.add_parser("snapshot", help="Capture demonstration screenshots")
    snapshot_parser.add_argument("--config", "-c", help="YAML bench configuration")
    snapshot_parser.add_argument(
        "--output-dir", "-o", type=Path, default=Path("."),
        help="Directory for the GIF files (default: current directory)"
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(args.debug)

    if args.command == "list":
        return cmd_list(args)
    elif args.command == "discover":
        return cmd_discover(args)
    elif args.command == "sweep":
        return cmd_sweep(args)
    elif args.command == "snapshot":
        return cmd_snapshot(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
