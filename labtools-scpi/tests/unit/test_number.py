"""Tests for SCPI number parsing."""

from __future__ import annotations

import math

import pytest

from labtools_scpi.number import parse_int, parse_number


class TestParseNumber:
    """Tests for parse_number."""

    def test_nr1_integer(self) -> None:
        assert parse_number("42") == 42.0

    def test_nr2_fixed_point(self) -> None:
        assert parse_number("-0.5") == -0.5

    def test_nr3_scientific(self) -> None:
        assert parse_number("2.0400E-01") == pytest.approx(0.204)

    def test_surrounding_whitespace(self) -> None:
        assert parse_number("  1.5\n") == 1.5

    def test_nan(self) -> None:
        assert math.isnan(parse_number("NAN"))

    def test_negative_infinity(self) -> None:
        assert parse_number("NINF") == float("-inf")

    def test_reserved_nan_magnitude(self) -> None:
        assert math.isnan(parse_number("9.91E+37"))

    def test_reserved_infinity_magnitude(self) -> None:
        assert parse_number("9.9E37") == float("inf")
        assert parse_number("-9.9E37") == float("-inf")

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError, match="Invalid SCPI number"):
            parse_number("abc")

    def test_empty_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_number("")


class TestParseInt:
    """Tests for parse_int."""

    def test_integer(self) -> None:
        assert parse_int("3") == 3

    def test_integral_float_form(self) -> None:
        assert parse_int("4.0") == 4

    def test_fractional_rejected(self) -> None:
        with pytest.raises(ValueError, match="Invalid SCPI integer"):
            parse_int("4.5")

    def test_garbage_rejected(self) -> None:
        with pytest.raises(ValueError, match="Invalid SCPI integer"):
            parse_int("SIN")
