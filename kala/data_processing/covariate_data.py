"""
Covariate Data Container

Holds the tables produced by a feature extraction run (covariates,
continuous covariates and their reference tables), validates their columns
and stores them as a directory of parquet files.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd

from ..exceptions import ConfigurationError
from ..validation.schema import (
    require_columns,
    COVARIATE_COLUMNS,
    COVARIATE_CONTINUOUS_COLUMNS,
    COVARIATE_REF_COLUMNS,
    ANALYSIS_REF_COLUMNS,
    TIME_REF_COLUMNS,
)


logger = logging.getLogger(__name__)


TABLE_NAMES = ['covariates', 'covariates_continuous', 'covariate_ref', 'analysis_ref', 'time_ref']

REQUIRED_COLUMNS = {
    'covariates': COVARIATE_COLUMNS,
    'covariates_continuous': COVARIATE_CONTINUOUS_COLUMNS,
    'covariate_ref': COVARIATE_REF_COLUMNS,
    'analysis_ref': ANALYSIS_REF_COLUMNS,
    'time_ref': TIME_REF_COLUMNS,
}


def _normalize_cohort_column(table: Optional[pd.DataFrame]) -> Optional[pd.DataFrame]:
    """Accept cohortId as another name for cohortDefinitionId."""
    if table is None:
        return None
    if 'cohortDefinitionId' not in table.columns and 'cohortId' in table.columns:
        table = table.rename(columns={'cohortId': 'cohortDefinitionId'})
    return table


@dataclass
class CovariateData:
    """
    Feature extraction output for one or more cohorts.

    `covariates` holds binary covariates (sumValue/averageValue per
    cohort, covariate and time window) and `covariates_continuous` holds
    distribution statistics. A missing timeId marks a non-time-varying
    covariate. `time_ref` is absent when nothing was extracted per window.
    """
    covariates: pd.DataFrame
    covariate_ref: pd.DataFrame
    analysis_ref: pd.DataFrame
    covariates_continuous: Optional[pd.DataFrame] = None
    time_ref: Optional[pd.DataFrame] = None
    metadata: Dict[str, object] = field(default_factory=dict)

    def __post_init__(self):
        self.covariates = _normalize_cohort_column(self.covariates)
        self.covariates_continuous = _normalize_cohort_column(self.covariates_continuous)

        for name in TABLE_NAMES:
            table = getattr(self, name)
            if table is None:
                if name in ('covariates', 'covariate_ref', 'analysis_ref'):
                    raise ConfigurationError(f"CovariateData needs a {name} table")
                continue
            require_columns(table, REQUIRED_COLUMNS[name], table_name=name)

    @property
    def has_time_ref(self) -> bool:
        return self.time_ref is not None and len(self.time_ref) > 0

    @property
    def cohort_ids(self) -> List[int]:
        ids = set(self.covariates['cohortDefinitionId'].dropna())
        if self.covariates_continuous is not None:
            ids |= set(self.covariates_continuous['cohortDefinitionId'].dropna())
        return sorted(int(i) for i in ids)

    def summary(self) -> Dict[str, object]:
        """Row counts per table."""
        return {
            name: (None if getattr(self, name) is None else len(getattr(self, name)))
            for name in TABLE_NAMES
        }

    def save(self, path: Union[str, Path]) -> Path:
        """
        Save every table as <path>/<table>.parquet.

        Args:
            path: Output directory, created if needed

        Returns:
            The output directory
        """
        output_dir = Path(path)
        output_dir.mkdir(exist_ok=True, parents=True)

        for name in TABLE_NAMES:
            table = getattr(self, name)
            if table is not None:
                table.to_parquet(output_dir / f"{name}.parquet", index=False)

        logger.info(f"Saved covariate data to {output_dir}: {self.summary()}")
        return output_dir


def load_covariate_data(path: Union[str, Path]) -> CovariateData:
    """
    Load covariate data saved with CovariateData.save.

    Args:
        path: Directory holding the parquet files

    Returns:
        CovariateData instance
    """
    input_dir = Path(path)
    if not input_dir.is_dir():
        raise FileNotFoundError(f"Covariate data directory not found: {input_dir}")

    start_time = datetime.now()
    tables = {}
    for name in TABLE_NAMES:
        file_path = input_dir / f"{name}.parquet"
        tables[name] = pd.read_parquet(file_path) if file_path.exists() else None

    covariate_data = CovariateData(**tables, metadata={'source': str(input_dir)})
    load_time = (datetime.now() - start_time).total_seconds()
    logger.info(f"Loaded covariate data from {input_dir} in {load_time:.2f} seconds")
    return covariate_data


def as_covariate_data(data: Union[CovariateData, str, Path, None]) -> Optional[CovariateData]:
    """Pass CovariateData through, load it when given a path."""
    if data is None or isinstance(data, CovariateData):
        return data
    return load_covariate_data(data)
