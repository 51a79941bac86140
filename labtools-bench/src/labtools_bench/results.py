"""CSV persistence for sweep results.

File layout::

    Frequency_Hz,CH1_Vpp,CH2_Vpp,CH2_div_CH1,Phase_Degrees
    1.0,0.2,0.19,0.95,-2.1
    1.4,nan,nan,nan,nan
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from labtools_core.types.measurement import COLUMNS, MeasurementRecord

logger = logging.getLogger(__name__)

FILE_PREFIX = "Scope_volt_and_phase_measurement_"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H%M%S"


def results_filename(timestamp: datetime) -> str:
    """Return the results file name for a run started at *timestamp*."""
    return f"{FILE_PREFIX}{timestamp.strftime(TIMESTAMP_FORMAT)}.csv"


def write_measurements_csv(
    records: Iterable[MeasurementRecord],
    output_dir: str | Path,
    timestamp: datetime | None = None,
) -> Path:
    """Write sweep records to a timestamped CSV file.

    Args:
        records: Records in sweep order.
        output_dir: Directory for the file; created if missing.
        timestamp: Time used in the file name (default: now).

    Returns:
        Path of the written file.
    """
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / results_filename(timestamp or datetime.now())

    count = 0
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(COLUMNS)
        for record in records:
            writer.writerow(record.as_row())
            count += 1

    logger.info("Wrote %d measurements to %s", count, path)
    return path


def read_measurements_csv(path: str | Path) -> tuple[MeasurementRecord, ...]:
    """Load records written by :func:`write_measurements_csv`.

    The ratio column is ignored since it is derived from the voltages.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the header does not match the results layout.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Results file not found: {path}")

    records: list[MeasurementRecord] = []
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.reader(f)
        header = next(reader, None)
        if header is None or tuple(header) != COLUMNS:
            raise ValueError(f"Unexpected results header in {path}: {header}")
        for row in reader:
            if not row:
                continue
            frequency, ch1, ch2, _ratio, phase = (float(value) for value in row)
            records.append(
                MeasurementRecord(frequency, ch1_vpp=ch1, ch2_vpp=ch2, phase_deg=phase)
            )
    return tuple(records)
