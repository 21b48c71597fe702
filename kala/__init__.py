"""
kala - temporal feature reports and incidence/prevalence time series

Computes rate time series from common-data-model cohort tables and turns
feature extraction output into windowed report tables and standardized
difference comparisons.
"""

__version__ = "1.0.0"

from .config import get_config, reload_config, ConfigManager
from .exceptions import (
    KalaError,
    ConfigurationError,
    SchemaError,
    EmptyResultWarning,
    DataMismatchWarning,
)
from .data_processing import CdmSource, CovariateData, load_covariate_data

__all__ = [
    "get_config",
    "reload_config",
    "ConfigManager",
    "KalaError",
    "ConfigurationError",
    "SchemaError",
    "EmptyResultWarning",
    "DataMismatchWarning",
    "CdmSource",
    "CovariateData",
    "load_covariate_data",
]
