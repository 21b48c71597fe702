"""
CDM Data Source

In-memory view of the common-data-model tables the rate computations read:
cohort episodes, persons, observation periods and concept names.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd

from ..config import get_config
from ..validation.schema import require_columns, CDM_COLUMNS


logger = logging.getLogger(__name__)


DATE_COLUMNS = {
    'cohort': ['cohort_start_date', 'cohort_end_date'],
    'observation_period': ['observation_period_start_date', 'observation_period_end_date'],
}


class CdmSource:
    """
    Tabular CDM data source.

    Tables are validated for required columns and their date columns are
    parsed on construction. Any storage engine can feed this class as long
    as it returns these tables as DataFrames.
    """

    def __init__(self,
                 cohort: pd.DataFrame,
                 person: pd.DataFrame,
                 observation_period: pd.DataFrame,
                 concept: Optional[pd.DataFrame] = None):
        tables = {
            'cohort': cohort,
            'person': person,
            'observation_period': observation_period,
            'concept': concept if concept is not None else pd.DataFrame(
                {'concept_id': pd.Series([], dtype='int64'), 'concept_name': pd.Series([], dtype=object)}
            ),
        }

        self._tables: Dict[str, pd.DataFrame] = {}
        for name, table in tables.items():
            require_columns(table, CDM_COLUMNS[name], table_name=name)
            table = table.copy()
            for column in DATE_COLUMNS.get(name, []):
                table[column] = pd.to_datetime(table[column]).dt.normalize()
            self._tables[name] = table

        logger.debug(
            "CDM source: " + ", ".join(f"{name}={len(t)}" for name, t in self._tables.items())
        )

    @classmethod
    def from_parquet(cls, data_path: Optional[Union[str, Path]] = None) -> 'CdmSource':
        """
        Load <table>.parquet files for every CDM table.

        Args:
            data_path: Directory with the parquet files (None = config data_dir)

        Returns:
            CdmSource instance
        """
        data_path = Path(data_path) if data_path else get_config().paths.data_dir
        tables = {}
        for name in CDM_COLUMNS:
            file_path = data_path / f"{name}.parquet"
            if not file_path.exists():
                if name == 'concept':
                    continue
                raise FileNotFoundError(f"Data file not found: {file_path}")
            logger.info(f"Loading {file_path.name} from parquet")
            tables[name] = pd.read_parquet(file_path)
        return cls(**tables)

    @property
    def cohort(self) -> pd.DataFrame:
        return self._tables['cohort']

    @property
    def person(self) -> pd.DataFrame:
        return self._tables['person']

    @property
    def observation_period(self) -> pd.DataFrame:
        return self._tables['observation_period']

    @property
    def concept(self) -> pd.DataFrame:
        return self._tables['concept']

    @property
    def cohort_ids(self) -> List[int]:
        return sorted(int(i) for i in self.cohort['cohort_definition_id'].dropna().unique())

    def get_cohort(self, cohort_id: int) -> pd.DataFrame:
        """Episodes of one cohort."""
        episodes = self.cohort[self.cohort['cohort_definition_id'] == cohort_id]
        return episodes.reset_index(drop=True)

    def gender_names(self) -> pd.DataFrame:
        """gender_concept_id to sentence-cased gender label."""
        names = self.concept[['concept_id', 'concept_name']].drop_duplicates('concept_id')
        return pd.DataFrame({
            'gender_concept_id': names['concept_id'],
            'gender': names['concept_name'].astype(str).str.capitalize(),
        })
