"""
Formatting and table helpers shared by the report builders.
"""

from .formatting import (
    format_integer_with_comma,
    format_percent,
    format_count_percent,
    format_decimal_with_comma,
    comma_separated_string_to_int_array,
)
from .tables import compare_tables, pivot_wider

__all__ = [
    'format_integer_with_comma',
    'format_percent',
    'format_count_percent',
    'format_decimal_with_comma',
    'comma_separated_string_to_int_array',
    'compare_tables',
    'pivot_wider',
]
