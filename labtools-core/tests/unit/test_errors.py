"""Tests for the labtools exception hierarchy."""

import pytest

from labtools_core.errors import (
    InstrumentConnectionError,
    InstrumentIOError,
    LabtoolsError,
    MeasurementError,
    NoUsablePortsError,
    ProtocolError,
    SessionStateError,
    ValidationError,
)


class TestHierarchy:
    """All errors derive from LabtoolsError."""

    @pytest.mark.parametrize(
        "error_type",
        [
            InstrumentConnectionError,
            InstrumentIOError,
            MeasurementError,
            NoUsablePortsError,
            ProtocolError,
            SessionStateError,
            ValidationError,
        ],
    )
    def test_is_labtools_error(self, error_type: type[Exception]) -> None:
        assert issubclass(error_type, LabtoolsError)

    def test_no_usable_ports_is_connection_error(self) -> None:
        assert issubclass(NoUsablePortsError, InstrumentConnectionError)

    def test_validation_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            raise ValidationError("Invalid wave, valid options: SIN RAMP SQU")
