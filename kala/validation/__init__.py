"""
Input validation for kala tables.
"""

from .schema import (
    require_columns,
    missing_columns,
    check_time_ref,
    CDM_COLUMNS,
    TIME_REF_COLUMNS,
)

__all__ = [
    'require_columns',
    'missing_columns',
    'check_time_ref',
    'CDM_COLUMNS',
    'TIME_REF_COLUMNS',
]
