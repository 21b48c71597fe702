"""Pytest configuration and shared fixtures for kala tests."""

import numpy as np
import pandas as pd
import pytest

from kala.config import reload_config
from kala.data_processing.cdm_source import CdmSource
from kala.data_processing.covariate_data import CovariateData


KALA_ENV_VARS = [
    'KALA_DATA_DIR', 'KALA_OUTPUT_DIR', 'KALA_WASHOUT_PERIOD', 'KALA_FIRST_OCCURRENCE_ONLY',
    'KALA_RATE_TYPE', 'KALA_MIN_AVERAGE_VALUE', 'KALA_PARALLEL_WORKERS', 'KALA_DEBUG',
]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Give every test built-in configuration defaults.

    Environment overrides are cleared and the config directory points at an
    empty temporary directory.
    """
    for name in KALA_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    config = reload_config(config_dir)
    yield config
    reload_config(config_dir)


@pytest.fixture
def cdm_source() -> CdmSource:
    """Three persons observed 2010-2012 and two cohorts.

    Cohort 1 has one episode for person 1 and two for person 2; cohort 2 is
    empty.
    """
    person = pd.DataFrame({
        'person_id': [1, 2, 3],
        'year_of_birth': [1980, 1990, 1985],
        'gender_concept_id': [8507, 8532, 8507],
    })
    observation_period = pd.DataFrame({
        'person_id': [1, 2, 3],
        'observation_period_start_date': pd.to_datetime(['2010-01-01'] * 3),
        'observation_period_end_date': pd.to_datetime(['2012-12-31'] * 3),
    })
    cohort = pd.DataFrame({
        'cohort_definition_id': [1, 1, 1],
        'subject_id': [1, 2, 2],
        'cohort_start_date': pd.to_datetime(['2011-03-01', '2011-06-01', '2012-02-01']),
        'cohort_end_date': pd.to_datetime(['2011-03-10', '2011-06-30', '2012-02-05']),
    })
    concept = pd.DataFrame({
        'concept_id': [8507, 8532],
        'concept_name': ['MALE', 'FEMALE'],
    })
    return CdmSource(cohort=cohort, person=person, observation_period=observation_period, concept=concept)


@pytest.fixture
def time_ref() -> pd.DataFrame:
    return pd.DataFrame({
        'timeId': [1, 2],
        'startDay': [-365, -30],
        'endDay': [-1, -1],
    })


@pytest.fixture
def covariate_ref() -> pd.DataFrame:
    return pd.DataFrame({
        'covariateId': [201826210, 316866210, 1902, 8507001, 1150],
        'covariateName': [
            'condition_era group during day -365 through -1 days relative to index: Type 2 diabetes',
            'condition_era group during day -365 through -1 days relative to index: Hypertension',
            'Charlson index - Romano adaptation',
            'gender = MALE',
            'cohort: Celecoxib',
        ],
        'analysisId': [210, 210, 902, 1, 150],
        'conceptId': [201826, 316866, 0, 8507, 0],
    })


@pytest.fixture
def analysis_ref() -> pd.DataFrame:
    return pd.DataFrame({
        'analysisId': [210, 902, 1, 150],
        'analysisName': ['ConditionGroupEraLongTerm', 'CharlsonIndex', 'DemographicsGender', 'CohortCovariates'],
        'domainId': ['Condition', 'Condition', 'Demographics', 'Cohort'],
    })


@pytest.fixture
def covariates() -> pd.DataFrame:
    """Binary covariates of cohorts 1 and 4, windowed and non-time-varying."""
    return pd.DataFrame({
        'cohortDefinitionId': [1, 1, 1, 1, 1, 1, 4, 4, 4, 4],
        'covariateId': [201826210, 316866210, 201826210, 316866210, 8507001, 1150,
                        201826210, 316866210, 201826210, 8507001],
        'timeId': [1, 1, 2, 2, np.nan, 2, 1, 1, 2, np.nan],
        'sumValue': [300, 1200, 100, 5, 1000, 50, 100, 400, 20, 900],
        'averageValue': [0.15, 0.6, 0.05, 0.0025, 0.5, 0.025, 0.1, 0.4, 0.02, 0.45],
    })


@pytest.fixture
def covariates_continuous() -> pd.DataFrame:
    return pd.DataFrame({
        'cohortDefinitionId': [1, 4],
        'covariateId': [1902, 1902],
        'timeId': [np.nan, np.nan],
        'countValue': [1500, 1800],
        'averageValue': [2.25, 1.75],
        'standardDeviation': [1.5, 1.5],
        'medianValue': [2.0, 1.0],
        'p10Value': [0.0, 0.0],
        'p25Value': [1.0, 1.0],
        'p75Value': [3.0, 2.0],
        'p90Value': [4.0, 4.0],
    })


@pytest.fixture
def covariate_data(covariates, covariates_continuous, covariate_ref, analysis_ref, time_ref) -> CovariateData:
    """Covariate data for cohorts 1 and 4 with two time windows."""
    return CovariateData(
        covariates=covariates,
        covariates_continuous=covariates_continuous,
        covariate_ref=covariate_ref,
        analysis_ref=analysis_ref,
        time_ref=time_ref,
    )
