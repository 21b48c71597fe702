"""
Formatting Utilities

Helper functions for rendering counts, percentages and decimals in report
tables, and for parsing comma-separated id lists.
"""

import math
import warnings
from typing import Any, Optional, Union

import numpy as np
import pandas as pd


Number = Union[int, float]


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value)) or value is pd.NA


def format_integer_with_comma(number: Optional[Number]) -> str:
    """
    Format a whole number with thousands separators.

    Non-whole numbers are truncated toward zero and rendered without
    separators.

    Args:
        number: Number to format

    Returns:
        Formatted string, "NA" for missing values
    """
    if _is_missing(number):
        return "NA"
    truncated = int(number)
    if float(number) == truncated:
        return f"{truncated:,}"
    return str(truncated)


def format_percent(x: Optional[Number], digits: int = 2) -> str:
    """
    Format a proportion as a percentage.

    Args:
        x: Proportion (0-1)
        digits: Number of decimal places

    Returns:
        Formatted string with % sign (e.g. 0.789 -> '78.90%')
    """
    if _is_missing(x):
        return "NA%"
    return f"{100 * x:.{digits}f}%"


def format_count_percent(count: Optional[Number], percent: Optional[Number],
                         percent_digits: int = 1) -> str:
    """
    Format a count and its proportion as 'count (percent%)'.

    Args:
        count: Count value
        percent: Proportion (0-1)
        percent_digits: Decimal places of the percentage

    Returns:
        Formatted string (e.g. '123,456 (78.9%)')
    """
    return f"{format_integer_with_comma(count)} ({format_percent(percent, percent_digits)})"


def format_decimal_with_comma(number: Optional[Number], decimal_places: int = 1,
                              round_decimal: bool = True) -> str:
    """
    Format a decimal number with thousands separators.

    The integer part is the floor of the number, so the fraction is always
    in [0, 1). The fraction is rounded or truncated on its own and is never
    carried into the integer part (999.999 rounds to '999.0').

    Args:
        number: Number to format
        decimal_places: Digits after the decimal point
        round_decimal: Round the fraction if True, truncate it otherwise

    Returns:
        Formatted string (e.g. -1234567.8912 -> '-1,234,568.1')
    """
    if _is_missing(number):
        return "NA"

    integer_part = math.floor(number)
    decimal_part = number - integer_part

    if round_decimal:
        decimal_part = round(decimal_part, decimal_places)
    else:
        scale = 10 ** decimal_places
        decimal_part = math.trunc(decimal_part * scale) / scale

    # drop the leading "0." (or the whole "1" when no places are kept)
    fraction = f"{decimal_part:.{decimal_places}f}"[2:]
    return f"{integer_part:,}.{fraction}"


def comma_separated_string_to_int_array(text: Optional[str]) -> np.ndarray:
    """
    Parse a comma-separated list of ids.

    Empty items are dropped and surrounding whitespace is ignored. Items
    that are not numbers become NaN and a warning is issued.

    Args:
        text: String such as '8,,9,10'

    Returns:
        Float array of parsed values
    """
    if _is_missing(text):
        return np.array([], dtype=float)

    items = [item.strip() for item in str(text).split(",") if item.strip() != ""]
    values = []
    invalid = []
    for item in items:
        try:
            values.append(float(item))
        except ValueError:
            values.append(np.nan)
            invalid.append(item)

    if invalid:
        warnings.warn(f"Could not parse ids {invalid}; they were set to NaN", RuntimeWarning)

    return np.array(values, dtype=float)
