"""
Covariate Settings

Settings objects describing what an external feature extraction engine
should compute: temporal domain covariates and cohort-based covariates over
the default time windows, plus the cohort/covariate id conventions.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..exceptions import ConfigurationError
from ..validation.schema import require_columns
from .time_windows import get_default_time_windows


logger = logging.getLogger(__name__)


COHORT_COVARIATE_ANALYSIS_ID = 150
VALUE_TYPES = ('binary', 'count')


def convert_cohort_id_to_covariate_id(cohort_ids: Union[int, float, Sequence],
                                      analysis_id: int = COHORT_COVARIATE_ANALYSIS_ID):
    """
    Covariate id of a cohort-based covariate: cohort_id * 1000 + analysis_id.

    Args:
        cohort_ids: One cohort id or a sequence of them
        analysis_id: Analysis id of the cohort covariates

    Returns:
        float for a scalar input, a float numpy array otherwise
    """
    if np.isscalar(cohort_ids):
        return float(cohort_ids) * 1000 + analysis_id
    return np.asarray(cohort_ids, dtype=float) * 1000 + analysis_id


def convert_covariate_id_to_concept_id(covariate_ids: Union[int, float, Sequence],
                                       analysis_id: int = COHORT_COVARIATE_ANALYSIS_ID):
    """Inverse of convert_cohort_id_to_covariate_id."""
    if np.isscalar(covariate_ids):
        return (float(covariate_ids) - analysis_id) / 1000
    return (np.asarray(covariate_ids, dtype=float) - analysis_id) / 1000


def _temporal_days(time_windows: Optional[pd.DataFrame]) -> pd.DataFrame:
    """Distinct (startDay, endDay) pairs with both bounds, stably sorted by startDay."""
    if time_windows is None:
        time_windows = get_default_time_windows()
    require_columns(time_windows, ['startDay', 'endDay'], table_name="time_windows")

    days = time_windows[['startDay', 'endDay']].dropna().drop_duplicates()
    days = days.sort_values('startDay', kind='mergesort').reset_index(drop=True)
    return days.astype('int64')


@dataclass
class TemporalCovariateSettings:
    """Domains to extract per time window."""
    temporal_start_days: List[int]
    temporal_end_days: List[int]
    use_condition_occurrence: bool = True
    use_procedure_occurrence: bool = True
    use_drug_era_start: bool = True
    use_measurement: bool = True
    use_condition_era_start: bool = True
    use_condition_era_overlap: bool = True
    use_visit_count: bool = True
    use_visit_concept_count: bool = True
    use_condition_era_group_start: bool = True
    use_condition_era_group_overlap: bool = True
    # drug exposure produces too many concepts to be on by default
    use_drug_exposure: bool = False
    use_drug_era_overlap: bool = True
    use_drug_era_group_start: bool = True
    use_drug_era_group_overlap: bool = True
    use_observation: bool = True
    use_device_exposure: bool = True
    included_covariate_ids: List[int] = field(default_factory=list)
    temporal: bool = True

    def __post_init__(self):
        if len(self.temporal_start_days) != len(self.temporal_end_days):
            raise ConfigurationError("temporal_start_days and temporal_end_days must have the same length")

    def time_windows(self) -> pd.DataFrame:
        """The windows as a startDay/endDay table."""
        return pd.DataFrame({'startDay': self.temporal_start_days, 'endDay': self.temporal_end_days})

    @property
    def enabled_domains(self) -> List[str]:
        return [name[len('use_'):] for name, value in asdict(self).items()
                if name.startswith('use_') and value]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def get_default_temporal_covariate_settings(time_windows: Optional[pd.DataFrame] = None,
                                            **flags) -> TemporalCovariateSettings:
    """
    Temporal covariate settings over the default time windows.

    Args:
        time_windows: Windows to extract (None = full default catalog)
        **flags: Domain switches such as use_drug_exposure=True

    Returns:
        TemporalCovariateSettings
    """
    unknown = [name for name in flags if not name.startswith('use_')
               or name not in TemporalCovariateSettings.__dataclass_fields__]
    if unknown:
        raise ConfigurationError(f"Unknown covariate settings: {unknown}")

    days = _temporal_days(time_windows)
    settings = TemporalCovariateSettings(
        temporal_start_days=days['startDay'].tolist(),
        temporal_end_days=days['endDay'].tolist(),
        **flags,
    )
    logger.debug(f"Temporal covariate settings over {len(days)} windows, domains: {settings.enabled_domains}")
    return settings


@dataclass
class CohortBasedCovariateSettings:
    """Covariates that flag membership of other cohorts per time window."""
    covariate_cohort_database_schema: str
    covariate_cohort_table: str
    covariate_cohorts: pd.DataFrame
    temporal_start_days: List[int]
    temporal_end_days: List[int]
    included_covariate_ids: List[int] = field(default_factory=list)
    analysis_id: int = COHORT_COVARIATE_ANALYSIS_ID
    value_type: str = "binary"
    temporal: bool = True
    temporal_sequence: bool = False
    warn_on_analysis_id_overlap: bool = True

    def __post_init__(self):
        if self.value_type not in VALUE_TYPES:
            raise ConfigurationError(f"value_type must be one of {list(VALUE_TYPES)}, got {self.value_type!r}")
        require_columns(self.covariate_cohorts, ['cohortId', 'cohortName'], table_name="covariate_cohorts")
        if len(self.temporal_start_days) != len(self.temporal_end_days):
            raise ConfigurationError("temporal_start_days and temporal_end_days must have the same length")

    @property
    def covariate_ids(self) -> np.ndarray:
        """Covariate ids the cohorts produce."""
        return convert_cohort_id_to_covariate_id(self.covariate_cohorts['cohortId'].tolist(), self.analysis_id)


def prepare_cohort_covariate_settings(covariate_cohort_definition_set: pd.DataFrame,
                                      covariate_cohort_database_schema: str,
                                      covariate_cohort_table: str,
                                      time_windows: Optional[pd.DataFrame] = None,
                                      analysis_id: int = COHORT_COVARIATE_ANALYSIS_ID,
                                      include_covariate_ids: Optional[Sequence[int]] = None,
                                      value_type: str = "binary",
                                      temporal_settings: Optional[TemporalCovariateSettings] = None
                                      ) -> List[Union[CohortBasedCovariateSettings, TemporalCovariateSettings]]:
    """
    Assemble the settings handed to the extraction engine.

    Args:
        covariate_cohort_definition_set: cohortId and cohortName of the
            covariate cohorts
        covariate_cohort_database_schema: Schema holding the cohort table
        covariate_cohort_table: Cohort table name
        time_windows: Windows to extract (None = full default catalog)
        analysis_id: Analysis id of the cohort covariates
        include_covariate_ids: Restrict the covariate cohorts to these
            cohort ids
        value_type: 'binary' or 'count'
        temporal_settings: Domain settings extracted alongside, if any

    Returns:
        List with the cohort-based settings, followed by temporal_settings
        when given
    """
    require_columns(covariate_cohort_definition_set, ['cohortId', 'cohortName'],
                    table_name="covariate_cohort_definition_set")

    cohorts = covariate_cohort_definition_set[['cohortId', 'cohortName']].drop_duplicates()
    if include_covariate_ids is not None:
        cohorts = cohorts[cohorts['cohortId'].isin(list(include_covariate_ids))]
        if cohorts.empty:
            raise ConfigurationError("none of include_covariate_ids are in the covariate cohort definition set")
    cohorts = cohorts.reset_index(drop=True)

    days = _temporal_days(time_windows)
    settings: List[Union[CohortBasedCovariateSettings, TemporalCovariateSettings]] = [
        CohortBasedCovariateSettings(
            covariate_cohort_database_schema=covariate_cohort_database_schema,
            covariate_cohort_table=covariate_cohort_table,
            covariate_cohorts=cohorts,
            temporal_start_days=days['startDay'].tolist(),
            temporal_end_days=days['endDay'].tolist(),
            included_covariate_ids=cohorts['cohortId'].tolist(),
            analysis_id=analysis_id,
            value_type=value_type,
        )
    ]
    if temporal_settings is not None:
        settings.append(temporal_settings)

    logger.info(f"Prepared covariate settings for {len(cohorts)} covariate cohorts over {len(days)} windows")
    return settings
