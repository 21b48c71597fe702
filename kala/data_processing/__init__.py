"""
Tabular inputs: CDM tables and feature extraction output.
"""

from .cdm_source import CdmSource
from .covariate_data import CovariateData, load_covariate_data, as_covariate_data

__all__ = [
    'CdmSource',
    'CovariateData',
    'load_covariate_data',
    'as_covariate_data',
]
