"""
Time Window Catalog

The fixed catalog of relative time windows (day offsets around the index
date) used to bucket covariates: fixed prior windows, 30-day and yearly
sequences before and after index, and cumulative windows from index.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from ..exceptions import ConfigurationError


logger = logging.getLogger(__name__)


CATALOG_PATH = Path(__file__).resolve().parent.parent / "resources" / "feature_extraction_time_windows.csv"

PERIOD_TYPES = ('month', 'year')

# curated cumulative windows used by the standard reports
SELECTED_START_DAYS = (-391, -301, -181, -91, -31)
SELECTED_END_DAYS = (0, 31, 91, 181, 241, 361)

# (timeId, startDay, endDay) as numbered by the feature extraction engine
COMMON_SEQUENTIAL_TIME_PERIODS = (
    [(time_id, start, -1) for time_id, start in zip(
        (15, 21, 23, 25, 27, 29, 31, 33, 36, 38, 41, 44, 47),
        range(-391, 0, 30),
    )]
    + [(53, 0, 0)]
    + [(time_id, 1, end) for time_id, end in zip(range(58, 71), range(1, 362, 30))]
)

WINDOW_COLUMNS = ['startDay', 'endDay', 'periodName', 'windowType']


@lru_cache(maxsize=1)
def _load_catalog() -> pd.DataFrame:
    """Read the packaged window catalog once per process."""
    catalog = pd.read_csv(CATALOG_PATH, dtype={'windowType': object, 'sequenceCumulative': object,
                                               'period': object})
    catalog['startDay'] = catalog['startDay'].astype('Int64')
    catalog['endDay'] = catalog['endDay'].astype('Int64')
    catalog['sequenceCumulative'] = (
        catalog['sequenceCumulative'].map({'TRUE': True, 'FALSE': False}).astype('boolean')
    )
    logger.debug(f"Loaded {len(catalog)} time windows from {CATALOG_PATH.name}")
    return catalog


def get_time_window_catalog() -> pd.DataFrame:
    """A copy of the full catalog, including its cumulative and period flags."""
    return _load_catalog().copy()


def period_name(start_day, end_day) -> str:
    """Name of a window, e.g. 'd-30d-1'; missing bounds render as 'NA'."""
    def render(day):
        return "NA" if pd.isna(day) else str(int(day))
    return f"d{render(start_day)}d{render(end_day)}"


def _with_period_names(windows: pd.DataFrame) -> pd.DataFrame:
    windows = windows.copy()
    windows['periodName'] = [
        period_name(start, end) for start, end in zip(windows['startDay'], windows['endDay'])
    ]
    return windows


def get_default_time_windows(cumulative: Optional[bool] = None,
                             period_types: Optional[Sequence[str]] = None,
                             selected_cumulative: Optional[bool] = None) -> pd.DataFrame:
    """
    Get a slice of the default time-window catalog.

    Windows that carry no cumulative flag cannot be classified, so when
    `cumulative` is given they are reported as a single placeholder window
    with missing bounds ('dNAdNA').

    Args:
        cumulative: Keep only cumulative (True) or non-cumulative (False) windows
        period_types: Keep only windows of these sequence types ('month', 'year')
        selected_cumulative: If True keep only the curated standard windows

    Returns:
        DataFrame with startDay, endDay, periodName and windowType
    """
    if cumulative is not None and not isinstance(cumulative, bool):
        raise ConfigurationError(f"cumulative must be True, False or None, got {cumulative!r}")

    if period_types is not None:
        if isinstance(period_types, str):
            period_types = [period_types]
        invalid = [p for p in period_types if p not in PERIOD_TYPES]
        if invalid:
            raise ConfigurationError(
                f"period_types must be a subset of {list(PERIOD_TYPES)}, got {invalid}"
            )

    windows = get_time_window_catalog()

    if cumulative is not None:
        flag = windows['sequenceCumulative']
        keep = (flag.isna() | (flag == cumulative)).fillna(False).astype(bool)
        windows = windows[keep].copy()
        unflagged = windows['sequenceCumulative'].isna()
        windows.loc[unflagged, ['startDay', 'endDay']] = pd.NA
        windows.loc[unflagged, ['windowType', 'period']] = None

    if period_types is not None:
        windows = windows[windows['period'].isin(list(period_types))]

    if selected_cumulative:
        selected = (
            windows['startDay'].isin(SELECTED_START_DAYS)
            | windows['endDay'].isin(SELECTED_END_DAYS)
            | ((windows['startDay'] == 0) & (windows['endDay'] == 0)).fillna(False)
        )
        windows = windows[selected.fillna(False).astype(bool)]

    windows = _with_period_names(windows)
    return windows[WINDOW_COLUMNS].drop_duplicates().reset_index(drop=True)


def get_covariate_settings_time_windows(temporal_start_days: Sequence[int],
                                        temporal_end_days: Sequence[int]) -> pd.DataFrame:
    """
    Look up caller-supplied windows in the default catalog.

    Windows are paired by position and every pair is kept, duplicates
    included. A pair the catalog does not know keeps its bounds with a
    missing periodName and windowType. A pair the catalog lists more than
    once (e.g. -365..-1) yields one row per catalog entry.

    Args:
        temporal_start_days: Start day of each window
        temporal_end_days: End day of each window, same length

    Returns:
        DataFrame with startDay, endDay, periodName and windowType
    """
    if temporal_start_days is None or temporal_end_days is None:
        raise ConfigurationError("temporal_start_days and temporal_end_days are required")
    if len(temporal_start_days) != len(temporal_end_days):
        raise ConfigurationError(
            f"temporal_start_days ({len(temporal_start_days)}) and temporal_end_days "
            f"({len(temporal_end_days)}) must have the same length"
        )

    pairs = pd.DataFrame({
        'startDay': pd.array(list(temporal_start_days), dtype='Int64'),
        'endDay': pd.array(list(temporal_end_days), dtype='Int64'),
    })
    catalog = get_default_time_windows()
    catalog = catalog[catalog['startDay'].notna() & catalog['endDay'].notna()]

    return pairs.merge(catalog, on=['startDay', 'endDay'], how='left')[WINDOW_COLUMNS]


def get_common_sequential_time_periods() -> pd.DataFrame:
    """
    Get the monthly sequential windows with their timeIds.

    Thirteen cumulative windows before index, the index date itself and
    thirteen cumulative windows after index, sorted by timeId.
    """
    periods = pd.DataFrame(COMMON_SEQUENTIAL_TIME_PERIODS, columns=['timeId', 'startDay', 'endDay'])
    return periods.sort_values('timeId').reset_index(drop=True)

