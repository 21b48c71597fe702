"""Tests for report formatting helpers."""

import numpy as np
import pytest

from kala.utils.formatting import (
    comma_separated_string_to_int_array,
    format_count_percent,
    format_decimal_with_comma,
    format_integer_with_comma,
    format_percent,
)


# ============================================================================
# Decimal formatting
# ============================================================================


class TestFormatDecimalWithComma:
    """Test floor-based decimal formatting."""

    def test_default_rounds_to_one_place(self):
        assert format_decimal_with_comma(1234567.8912) == "1,234,567.9"

    def test_truncation(self):
        assert format_decimal_with_comma(1234567.8912, decimal_places=2, round_decimal=False) == "1,234,567.89"

    def test_negative_number_uses_floor(self):
        """The integer part of a negative number rounds toward minus infinity."""
        assert format_decimal_with_comma(-1234567.8912) == "-1,234,568.1"

    def test_zero_places_leaves_trailing_point(self):
        assert format_decimal_with_comma(1234.5678, decimal_places=0, round_decimal=True) == "1,234."

    def test_small_number(self):
        assert format_decimal_with_comma(2.25, decimal_places=2) == "2.25"

    def test_fraction_does_not_carry(self):
        assert format_decimal_with_comma(999.999) == "999.0"

    def test_missing_value(self):
        assert format_decimal_with_comma(None) == "NA"
        assert format_decimal_with_comma(float('nan')) == "NA"


# ============================================================================
# Counts and percentages
# ============================================================================


class TestFormatCountPercent:
    """Test count and percent formatting."""

    def test_count_percent(self):
        assert format_count_percent(123456, 0.789) == "123,456 (78.9%)"

    def test_zero_with_two_digits(self):
        assert format_count_percent(0, 0, percent_digits=2) == "0 (0.00%)"

    def test_format_percent_default_digits(self):
        assert format_percent(0.789) == "78.90%"

    def test_integer_with_comma(self):
        assert format_integer_with_comma(1234567) == "1,234,567"
        assert format_integer_with_comma(1000.0) == "1,000"

    def test_integer_missing(self):
        assert format_integer_with_comma(None) == "NA"


# ============================================================================
# Id list parsing
# ============================================================================


class TestCommaSeparatedStringToIntArray:
    """Test parsing of comma-separated id lists."""

    def test_empty_items_dropped(self):
        result = comma_separated_string_to_int_array("8,,9,,,10")
        np.testing.assert_array_equal(result, [8, 9, 10])

    def test_empty_string(self):
        assert len(comma_separated_string_to_int_array("")) == 0

    def test_none(self):
        assert len(comma_separated_string_to_int_array(None)) == 0

    def test_invalid_item_becomes_nan_with_warning(self):
        with pytest.warns(RuntimeWarning):
            result = comma_separated_string_to_int_array("14,abc,16")

        assert len(result) == 3
        assert result[0] == 14
        assert np.isnan(result[1])
        assert result[2] == 16

    def test_whitespace_ignored(self):
        np.testing.assert_array_equal(comma_separated_string_to_int_array(" 1, 2 ,3"), [1, 2, 3])
