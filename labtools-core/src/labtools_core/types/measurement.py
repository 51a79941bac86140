"""Measurement record produced by a frequency sweep."""

from __future__ import annotations

import math
from dataclasses import dataclass

MISSING = float("nan")
"""Sentinel recorded for values a sweep step could not measure."""

COLUMNS: tuple[str, ...] = (
    "Frequency_Hz",
    "CH1_Vpp",
    "CH2_Vpp",
    "CH2_div_CH1",
    "Phase_Degrees",
)
"""Tabular column names, in :meth:`MeasurementRecord.as_row` order."""


@dataclass(frozen=True)
class MeasurementRecord:
    """One sweep step's result.

    ``ratio`` is derived rather than stored, so it always equals
    ``ch2_vpp / ch1_vpp`` when both are finite (and ``ch1_vpp`` is non-zero)
    and is NaN otherwise.

    Attributes:
        frequency_hz: Planned generator frequency for the step.
        ch1_vpp: Channel 1 peak-to-peak voltage, or NaN.
        ch2_vpp: Channel 2 peak-to-peak voltage, or NaN.
        phase_deg: Channel 1 to channel 2 phase in degrees, or NaN.
    """

    frequency_hz: float
    ch1_vpp: float = MISSING
    ch2_vpp: float = MISSING
    phase_deg: float = MISSING

    @classmethod
    def failed(cls, frequency_hz: float) -> MeasurementRecord:
        """Build the record for a step whose measurement failed."""
        return cls(frequency_hz=frequency_hz)

    @property
    def ratio(self) -> float:
        """Channel 2 over channel 1 amplitude ratio, or NaN."""
        if not (math.isfinite(self.ch1_vpp) and math.isfinite(self.ch2_vpp)):
            return MISSING
        if self.ch1_vpp == 0.0:
            return MISSING
        return self.ch2_vpp / self.ch1_vpp

    @property
    def is_missing(self) -> bool:
        """True when every measured field holds the missing-value sentinel."""
        return all(
            math.isnan(v) for v in (self.ch1_vpp, self.ch2_vpp, self.ratio, self.phase_deg)
        )

    def as_row(self) -> tuple[float, float, float, float, float]:
        """Return the record as a row matching :data:`COLUMNS`."""
        return (self.frequency_hz, self.ch1_vpp, self.ch2_vpp, self.ratio, self.phase_deg)
