"""
Date Span Algebra

Collapsing of overlapping date spans and conversion between date spans and
date vectors, optionally cut at calendar-unit boundaries.
"""

import logging
from typing import Iterable, List, Optional, Union

import numpy as np
import pandas as pd

from ..exceptions import ConfigurationError
from ..validation.schema import require_columns


logger = logging.getLogger(__name__)


# pandas period aliases per calendar unit; weeks depend on their first day
CALENDAR_UNITS = {
    'day': 'D',
    'month': 'M',
    'quarter': 'Q',
    'year': 'Y',
}
WEEK_PERIODS = {
    1: 'W-SUN',  # weeks run Monday..Sunday
    7: 'W-SAT',  # weeks run Sunday..Saturday
}


def _as_dates(values: pd.Series) -> pd.Series:
    return pd.to_datetime(values).dt.normalize()


def collapse_date_span(spans: pd.DataFrame,
                       gap: int,
                       start_date: str = "startDate",
                       end_date: str = "endDate",
                       group: Optional[Union[str, List[str]]] = None) -> pd.DataFrame:
    """
    Merge overlapping or nearby date spans.

    Spans are sorted by start date (within each group). A span joins the
    current run when its start is no later than the running maximum end
    date of the run plus `gap` days. The running maximum is cumulative, so a
    long span keeps absorbing later spans even after shorter ones end.

    Args:
        spans: DataFrame with start and end date columns
        gap: Days allowed between spans that are still merged (0 merges
            overlapping spans only, 1 also merges back-to-back spans)
        start_date: Name of the start date column
        end_date: Name of the end date column
        group: Column(s) whose values are collapsed separately

    Returns:
        One row per run with the group columns, the earliest start and the
        latest end, sorted by group and start date
    """
    if not isinstance(spans, pd.DataFrame):
        raise ConfigurationError("spans must be a pandas DataFrame")
    if gap is None or int(gap) != gap or gap < 0:
        raise ConfigurationError(f"gap must be a non-negative whole number of days, got {gap!r}")

    group_columns = [group] if isinstance(group, str) else list(group or [])
    require_columns(spans, group_columns + [start_date, end_date], table_name="spans")

    data = spans[group_columns + [start_date, end_date]].copy()
    if data.isna().any().any():
        raise ConfigurationError("spans must not contain missing values")

    data[start_date] = _as_dates(data[start_date])
    data[end_date] = _as_dates(data[end_date])
    data = data[data[end_date] >= data[start_date]]
    data = data.sort_values(group_columns + [start_date], kind='mergesort').reset_index(drop=True)

    reach = data[end_date] + pd.Timedelta(days=int(gap))
    if group_columns:
        previous_reach = reach.groupby([data[c] for c in group_columns]).cummax()
        previous_reach = previous_reach.groupby([data[c] for c in group_columns]).shift()
    else:
        previous_reach = reach.cummax().shift()

    # NaT on the first row of each group compares False, so a run never starts early
    new_run = data[start_date] > previous_reach
    if group_columns:
        first_in_group = ~data.duplicated(subset=group_columns)
        new_run = new_run | first_in_group
    run_id = new_run.cumsum()

    collapsed = (
        data.groupby(group_columns + [run_id.rename('_run')], sort=False)
        .agg(**{start_date: (start_date, 'min'), end_date: (end_date, 'max')})
        .reset_index()
        .drop(columns='_run')
    )

    logger.debug(f"Collapsed {len(spans)} spans into {len(collapsed)}")
    return collapsed


def convert_date_span_to_date_vector(spans: pd.DataFrame,
                                     start_date: str = "startDate",
                                     end_date: str = "endDate") -> pd.DatetimeIndex:
    """
    Expand date spans into the sorted, unique days they cover.

    Args:
        spans: DataFrame with start and end date columns (both inclusive)
        start_date: Name of the start date column
        end_date: Name of the end date column

    Returns:
        DatetimeIndex of every covered day
    """
    require_columns(spans, [start_date, end_date], table_name="spans")
    bounds = spans[[start_date, end_date]].dropna().drop_duplicates()

    days = [
        pd.date_range(start, end, freq='D').values
        for start, end in zip(_as_dates(bounds[start_date]), _as_dates(bounds[end_date]))
    ]
    if not days:
        return pd.DatetimeIndex([])
    return pd.DatetimeIndex(np.unique(np.concatenate(days)))


def _period_frequency(unit: str, week_start: Optional[int]) -> str:
    if unit == 'week':
        week_start = 7 if week_start is None else week_start
        if week_start not in WEEK_PERIODS:
            raise ConfigurationError(f"week_start must be 1 (Monday) or 7 (Sunday), got {week_start!r}")
        freq = WEEK_PERIODS[week_start]
    elif unit in CALENDAR_UNITS:
        freq = CALENDAR_UNITS[unit]
    else:
        raise ConfigurationError(
            f"unit must be one of {['day', 'week'] + list(CALENDAR_UNITS)[1:]}, got {unit!r}"
        )

    return freq


def calendar_bucket_bounds(dates, unit: str, week_start: Optional[int] = None) -> pd.DataFrame:
    """
    First and last day of the calendar unit containing each date.

    Args:
        dates: Dates to bucket
        unit: One of 'day', 'week', 'month', 'quarter', 'year'
        week_start: 1 (Monday) or 7 (Sunday, default) for unit='week'

    Returns:
        DataFrame with bucketStart and bucketEnd, one row per date
    """
    periods = pd.DatetimeIndex(pd.to_datetime(dates)).to_period(_period_frequency(unit, week_start))
    return pd.DataFrame({
        'bucketStart': periods.start_time.normalize(),
        'bucketEnd': periods.end_time.normalize(),
    })


def convert_date_vector_to_date_span(dates: Iterable,
                                     unit: Optional[str] = None,
                                     week_start: Optional[int] = None) -> pd.DataFrame:
    """
    Turn a set of days into spans of consecutive days.

    Consecutive means exactly one calendar day apart. When `unit` is given
    every run is further cut at the unit's boundaries, giving one span per
    run and calendar bucket it touches.

    Args:
        dates: Dates in any order, duplicates allowed
        unit: One of 'day', 'week', 'month', 'quarter', 'year'
        week_start: First day of the week for unit='week', 1 (Monday) or
            7 (Sunday, default)

    Returns:
        DataFrame with startDate and endDate columns
    """
    days = pd.DatetimeIndex(pd.to_datetime(pd.Index(dates)).dropna()).normalize().unique().sort_values()
    if len(days) == 0:
        return pd.DataFrame({
            'startDate': pd.Series([], dtype='datetime64[ns]'),
            'endDate': pd.Series([], dtype='datetime64[ns]'),
        })

    day_series = pd.Series(days)
    run_id = (day_series.diff() != pd.Timedelta(days=1)).cumsum()
    runs = (
        day_series.groupby(run_id)
        .agg(['min', 'max'])
        .rename(columns={'min': 'startDate', 'max': 'endDate'})
        .reset_index(drop=True)
    )

    if unit is None:
        return runs

    buckets = calendar_bucket_bounds(days, unit, week_start).drop_duplicates()
    crossed = runs.merge(buckets, how='cross')
    crossed = crossed[
        (crossed['bucketStart'] <= crossed['endDate']) & (crossed['bucketEnd'] >= crossed['startDate'])
    ]

    spans = pd.DataFrame({
        'startDate': crossed[['startDate', 'bucketStart']].max(axis=1),
        'endDate': crossed[['endDate', 'bucketEnd']].min(axis=1),
    })
    return spans.sort_values('startDate', kind='mergesort').reset_index(drop=True)
