"""
Schema Validation

Required-column checks for the tables kala consumes: covariate data,
time references and CDM tables.
"""

import logging
from typing import Dict, Iterable, List, Optional

import pandas as pd

from ..exceptions import ConfigurationError, SchemaError


logger = logging.getLogger(__name__)


COVARIATE_COLUMNS = ['cohortDefinitionId', 'covariateId', 'sumValue', 'averageValue']
COVARIATE_CONTINUOUS_COLUMNS = ['cohortDefinitionId', 'covariateId', 'countValue', 'averageValue']
COVARIATE_REF_COLUMNS = ['covariateId', 'covariateName', 'analysisId', 'conceptId']
ANALYSIS_REF_COLUMNS = ['analysisId', 'analysisName', 'domainId']
TIME_REF_COLUMNS = ['timeId', 'startDay', 'endDay']

CDM_COLUMNS: Dict[str, List[str]] = {
    'cohort': ['cohort_definition_id', 'subject_id', 'cohort_start_date', 'cohort_end_date'],
    'person': ['person_id', 'year_of_birth', 'gender_concept_id'],
    'observation_period': ['person_id', 'observation_period_start_date', 'observation_period_end_date'],
    'concept': ['concept_id', 'concept_name'],
}


def missing_columns(data: pd.DataFrame, required: Iterable[str]) -> List[str]:
    """Required columns not present in data, in the order given."""
    return [column for column in required if column not in data.columns]


def require_columns(data: pd.DataFrame, required: Iterable[str],
                    table_name: Optional[str] = None) -> pd.DataFrame:
    """
    Check that a table has every required column.

    Args:
        data: Table to check
        required: Column names that must be present
        table_name: Name used in the error message

    Returns:
        The table, unchanged

    Raises:
        SchemaError: naming every missing column
    """
    if not isinstance(data, pd.DataFrame):
        raise ConfigurationError(f"{table_name or 'data'} must be a pandas DataFrame")

    missing = missing_columns(data, required)
    if missing:
        logger.error(f"{table_name or 'table'} is missing columns: {missing}")
        raise SchemaError(missing, table_name)
    return data


def check_time_ref(time_ref: Optional[pd.DataFrame]) -> pd.DataFrame:
    """
    Check a caller-supplied time reference.

    Only the window bounds are required; a timeId column is optional.

    Raises:
        ConfigurationError: if time_ref is not a table with startDay and endDay
    """
    if not isinstance(time_ref, pd.DataFrame) or missing_columns(time_ref, ['startDay', 'endDay']):
        raise ConfigurationError("please check timeRef: it needs startDay and endDay columns")
    return time_ref
