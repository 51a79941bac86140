"""Tests for the sweep measurement record."""

from __future__ import annotations

import math

import pytest

from labtools_core.types.measurement import COLUMNS, MISSING, MeasurementRecord


class TestRatio:
    """Tests for the derived ratio field."""

    def test_ratio_of_finite_values(self) -> None:
        record = MeasurementRecord(frequency_hz=1000.0, ch1_vpp=0.5, ch2_vpp=1.0, phase_deg=0.0)
        assert record.ratio == 2.0

    def test_zero_ch1_gives_missing(self) -> None:
        record = MeasurementRecord(frequency_hz=1000.0, ch1_vpp=0.0, ch2_vpp=1.0, phase_deg=0.0)
        assert math.isnan(record.ratio)

    def test_missing_ch1_gives_missing(self) -> None:
        record = MeasurementRecord(frequency_hz=1000.0, ch1_vpp=MISSING, ch2_vpp=1.0)
        assert math.isnan(record.ratio)

    def test_infinite_ch2_gives_missing(self) -> None:
        record = MeasurementRecord(frequency_hz=1000.0, ch1_vpp=0.5, ch2_vpp=float("inf"))
        assert math.isnan(record.ratio)


class TestFailed:
    """Tests for MeasurementRecord.failed."""

    def test_all_fields_missing(self) -> None:
        record = MeasurementRecord.failed(42.0)
        assert record.frequency_hz == 42.0
        assert math.isnan(record.ch1_vpp)
        assert math.isnan(record.ch2_vpp)
        assert math.isnan(record.ratio)
        assert math.isnan(record.phase_deg)
        assert record.is_missing

    def test_measured_record_not_missing(self) -> None:
        record = MeasurementRecord(frequency_hz=1.0, ch1_vpp=0.2, ch2_vpp=0.1, phase_deg=5.0)
        assert not record.is_missing


class TestAsRow:
    """Tests for tabular conversion."""

    def test_row_matches_columns(self) -> None:
        record = MeasurementRecord(frequency_hz=10.0, ch1_vpp=0.5, ch2_vpp=0.25, phase_deg=-12.5)
        row = record.as_row()
        assert len(row) == len(COLUMNS)
        assert row == (10.0, 0.5, 0.25, 0.5, -12.5)

    def test_frozen(self) -> None:
        record = MeasurementRecord(frequency_hz=10.0)
        with pytest.raises(AttributeError):
            record.ch1_vpp = 1.0  # type: ignore[misc]
