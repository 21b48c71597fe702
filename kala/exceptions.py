"""
Exceptions and warnings raised by kala.

Argument and schema problems fail fast with an exception. Conditions that
leave nothing to compute are reported as warnings and an empty result, so
batch runs can tell "nothing to compute" apart from a crash.
"""

from typing import Iterable, Optional


class KalaError(Exception):
    """Base class for kala errors."""


class ConfigurationError(KalaError, ValueError):
    """Bad or missing arguments."""


class SchemaError(KalaError, ValueError):
    """An input table is missing required columns."""

    def __init__(self, missing_columns: Iterable[str], table_name: Optional[str] = None):
        self.missing_columns = list(missing_columns)
        self.table_name = table_name
        where = f" in {table_name}" if table_name else ""
        super().__init__(
            f"Required columns missing{where}: {', '.join(self.missing_columns)}"
        )


class EmptyResultWarning(UserWarning):
    """The input had no rows, or filtering removed all of them."""


class DataMismatchWarning(UserWarning):
    """Two covariate datasets disagree and only their common part is used."""
