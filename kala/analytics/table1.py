"""
Table 1 Specifications

A Table 1 specification groups covariates under display labels: one row
per label with the covariate ids (comma-separated) shown under it.
"""

import logging
import re
from typing import Iterable, Optional, Union

import numpy as np
import pandas as pd

from ..data_processing.covariate_data import CovariateData
from ..exceptions import ConfigurationError
from ..validation.schema import require_columns


logger = logging.getLogger(__name__)


TABLE1_COLUMNS = ['label', 'analysisId', 'covariateIds']


def _join_ids(ids: Iterable) -> str:
    """Comma-join ids, writing whole numbers without a decimal part."""
    rendered = []
    for value in ids:
        value = float(value)
        rendered.append(str(int(value)) if value.is_integer() else str(value))
    return ",".join(rendered)


def camel_case_to_title_case(text: str) -> str:
    """
    Convert a camelCase name to Title Case words.

    Args:
        text: Name such as 'ConditionGroupEraLongTerm' or 'Chads2Vasc'

    Returns:
        Title string such as 'Condition Group Era Long Term' or 'Chads 2 Vasc'
    """
    spaced = re.sub(r"([A-Z])", r" \1", text)
    spaced = re.sub(r"([a-z])([0-9])", r"\1 \2", spaced)
    spaced = " ".join(spaced.split())
    return spaced[:1].upper() + spaced[1:]


def get_table1_specifications_row(analysis_id: int,
                                  concept_ids: Optional[Iterable[int]] = None,
                                  covariate_ids: Optional[Iterable[int]] = None,
                                  label: str = "Feature cohorts") -> pd.DataFrame:
    """
    Build one Table 1 specification row.

    Concept ids are turned into covariate ids with the
    conceptId * 1000 + analysisId convention and added after the explicit
    covariate ids; duplicates are dropped.

    Args:
        analysis_id: Analysis the covariates belong to
        concept_ids: Concept ids of the covariates
        covariate_ids: Covariate ids
        label: Display label

    Returns:
        One-row DataFrame with label, analysisId and covariateIds
    """
    if concept_ids is None and covariate_ids is None:
        raise ConfigurationError("please provide at least concept_ids or covariate_ids")
    if not np.isscalar(analysis_id):
        raise ConfigurationError("analysis_id must be a single value")
    if not isinstance(label, str):
        raise ConfigurationError("label must be a single string")

    ids = list(covariate_ids or [])
    ids += [concept_id * 1000 + analysis_id for concept_id in (concept_ids or [])]
    unique_ids = list(dict.fromkeys(float(i) for i in ids))

    return pd.DataFrame([{
        'label': label,
        'analysisId': analysis_id,
        'covariateIds': _join_ids(unique_ids),
    }])


def get_table1_specifications_from_covariate_data(
        covariate_data: Union[CovariateData, None] = None,
        covariate_ref: Optional[pd.DataFrame] = None,
        analysis_ref: Optional[pd.DataFrame] = None) -> pd.DataFrame:
    """
    Build a Table 1 specification with one label per analysis.

    Args:
        covariate_data: Covariate data to read the reference tables from
        covariate_ref: Covariate reference (instead of covariate_data)
        analysis_ref: Analysis reference (instead of covariate_data)

    Returns:
        DataFrame with label, analysisId and covariateIds, one row per
        distinct analysis, in analysis reference order
    """
    if covariate_data is not None:
        covariate_ref = covariate_data.covariate_ref
        analysis_ref = covariate_data.analysis_ref
    if covariate_ref is None or analysis_ref is None:
        raise ConfigurationError("covariate_data or both covariate_ref and analysis_ref are required")

    require_columns(covariate_ref, ['covariateId', 'analysisId'], table_name="covariate_ref")
    require_columns(analysis_ref, ['analysisId', 'analysisName'], table_name="analysis_ref")

    analyses = analysis_ref[['analysisId', 'analysisName']].drop_duplicates()
    rows = []
    for analysis_id, analysis_name in analyses.itertuples(index=False):
        ids = covariate_ref.loc[covariate_ref['analysisId'] == analysis_id, 'covariateId'].unique()
        rows.append({
            'label': camel_case_to_title_case(str(analysis_name)),
            'analysisId': analysis_id,
            'covariateIds': _join_ids(ids),
        })

    logger.debug(f"Built {len(rows)} table1 rows from covariate data")
    return pd.DataFrame(rows, columns=TABLE1_COLUMNS)
