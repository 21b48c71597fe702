"""
Incidence and Prevalence Rates

Period-level rates per 1,000 person-years and day-level at-risk, incidence
and prevalence counts for one cohort, stratified by age decade and gender.

Stages of one rate computation: input validation, calendar periods,
numerator, denominator, join and stratify, optional gap fill, output.
"""

import logging
import time
import warnings
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..config import get_config
from ..data_processing.cdm_source import CdmSource
from ..exceptions import ConfigurationError, EmptyResultWarning
from ..validation.schema import require_columns
from .date_span import (
    calendar_bucket_bounds,
    collapse_date_span,
    convert_date_span_to_date_vector,
    convert_date_vector_to_date_span,
)


logger = logging.getLogger(__name__)


RATE_TYPES = ('incidence', 'prevalence')

RATE_COLUMNS = [
    'periodBegin', 'periodEnd', 'ageGroup', 'gender', 'cohortCount', 'personYears',
    'ratePer1000', 'cohortId', 'rateType', 'firstOccurrenceOnly', 'washoutPeriod',
]

DAY_LEVEL_MEASURES = [
    'inObservation', 'atRisk', 'atRiskFirst', 'incidence', 'prevalence',
    'incidenceFirst', 'prevalenceFirst',
]

# marginal groupings unioned into one rate table, in output order
STRATIFICATIONS = ([], ['ageGroup'], ['gender'], ['ageGroup', 'gender'])

STRATUM_KEYS = ['ageDecade', 'gender_concept_id']


class RateStage(Enum):
    """Stages of a rate computation, used in log messages."""
    INPUT_VALIDATION = "input validation"
    PERIOD_CONSTRUCTION = "period construction"
    NUMERATOR_COMPUTE = "numerator"
    DENOMINATOR_COMPUTE = "denominator"
    JOIN_AND_STRATIFY = "join and stratify"
    GAP_FILL = "gap fill"
    OUTPUT = "output"


def _stage(stage: RateStage, cohort_id: int):
    logger.debug(f"Cohort {cohort_id}: {stage.value}")


def age_group_label(decade: int) -> str:
    """Age decade as a range label, e.g. 3 -> '30-39'."""
    decade = int(decade)
    return f"{10 * decade:02d}-{10 * decade + 9:02d}"


def _age_decade(dates: pd.Series, year_of_birth: pd.Series) -> pd.Series:
    return ((dates.dt.year - year_of_birth) // 10).astype('int64')


def _empty_rates() -> pd.DataFrame:
    return pd.DataFrame({column: pd.Series([], dtype=object) for column in RATE_COLUMNS})


def _empty_day_series() -> pd.DataFrame:
    columns = ['calendarDate', 'ageGroup', 'gender'] + DAY_LEVEL_MEASURES
    return pd.DataFrame({column: pd.Series([], dtype=object) for column in columns})


def _warn_empty(message: str):
    logger.warning(message)
    warnings.warn(message, EmptyResultWarning, stacklevel=3)


def _empty_strata(date_columns: List[str], value_column: str) -> pd.DataFrame:
    """Empty per-stratum table with merge-compatible dtypes."""
    columns = {column: pd.Series([], dtype='datetime64[ns]') for column in date_columns}
    columns.update({key: pd.Series([], dtype='int64') for key in STRATUM_KEYS})
    columns[value_column] = pd.Series([], dtype='int64')
    return pd.DataFrame(columns)


# ============================================================================
# Cohort summary and calendar periods
# ============================================================================

def get_cohort_summary(source: CdmSource, cohort_id: int) -> pd.DataFrame:
    """
    Summarize the episodes of one cohort.

    Args:
        source: CDM data source
        cohort_id: Cohort definition id

    Returns:
        One-row DataFrame with record, person and person-year counts and the
        earliest/latest start and end dates
    """
    episodes = source.get_cohort(cohort_id)
    starts = episodes['cohort_start_date']
    ends = episodes['cohort_end_date']

    summary = pd.DataFrame([{
        'cohortId': cohort_id,
        'records': len(episodes),
        'persons': episodes['subject_id'].nunique(),
        'personYears': float((ends - starts).dt.days.sum()) / 365.25,
        'cohortStartDateMin': starts.min(),
        'cohortStartDateMax': starts.max(),
        'cohortEndDateMin': ends.min(),
        'cohortEndDateMax': ends.max(),
    }])

    if len(episodes) == 0:
        _warn_empty(f"Cohort with ID {cohort_id} appears to be empty. Was it instantiated?")

    return summary


def default_calendar_periods(summary: pd.DataFrame, unit: str = "year") -> pd.DataFrame:
    """
    Calendar periods spanning a cohort's observed date range.

    The range from the earliest start to the latest end is cut at calendar
    unit boundaries; the first and last periods are clipped to the range.

    Args:
        summary: Output of get_cohort_summary
        unit: Calendar unit ('year', 'quarter', 'month', 'week', 'day')

    Returns:
        DataFrame with periodBegin and periodEnd
    """
    days = convert_date_span_to_date_vector(
        summary, start_date='cohortStartDateMin', end_date='cohortEndDateMax'
    )
    periods = convert_date_vector_to_date_span(days, unit=unit)
    return periods.rename(columns={'startDate': 'periodBegin', 'endDate': 'periodEnd'})


# ============================================================================
# Episode helpers
# ============================================================================

def _first_occurrence(episodes: pd.DataFrame) -> pd.DataFrame:
    """Earliest start and earliest end of each subject."""
    return (
        episodes.groupby('subject_id', as_index=False)
        .agg(cohort_start_date=('cohort_start_date', 'min'),
             cohort_end_date=('cohort_end_date', 'min'))
    )


def _eligible_episodes(episodes: pd.DataFrame,
                       source: CdmSource,
                       washout_period: int) -> pd.DataFrame:
    """
    Episodes starting inside an observation period after the washout.

    Adds year_of_birth and gender_concept_id of the subject.
    """
    washout = pd.Timedelta(days=washout_period)
    joined = (
        episodes.merge(source.person[['person_id', 'year_of_birth', 'gender_concept_id']],
                       left_on='subject_id', right_on='person_id')
        .merge(source.observation_period[['person_id', 'observation_period_start_date',
                                          'observation_period_end_date']], on='person_id')
    )
    eligible = joined[
        (joined['observation_period_start_date'] + washout <= joined['cohort_start_date'])
        & (joined['observation_period_end_date'] >= joined['cohort_start_date'])
    ]
    return eligible[['subject_id', 'cohort_start_date', 'cohort_end_date',
                     'year_of_birth', 'gender_concept_id']].reset_index(drop=True)


def _observation_at_risk(source: CdmSource, washout_period: int) -> pd.DataFrame:
    """Observation periods with their first washout_period days removed."""
    observation = source.observation_period.merge(
        source.person[['person_id', 'year_of_birth', 'gender_concept_id']], on='person_id'
    )
    observation = observation.assign(
        start_date=observation['observation_period_start_date'] + pd.Timedelta(days=washout_period),
        end_date=observation['observation_period_end_date'],
    )
    return observation[observation['start_date'] < observation['end_date']][
        ['person_id', 'year_of_birth', 'gender_concept_id', 'start_date', 'end_date']
    ].reset_index(drop=True)


def _validate_common(cohort_id, washout_period):
    if isinstance(cohort_id, bool) or not isinstance(cohort_id, (int, np.integer)):
        raise ConfigurationError(f"cohort_id must be an integer, got {cohort_id!r}")
    if isinstance(washout_period, bool) or not isinstance(washout_period, (int, np.integer)) \
            or washout_period < 0:
        raise ConfigurationError(f"washout_period must be a non-negative integer, got {washout_period!r}")


# ============================================================================
# Period-level rates
# ============================================================================

def _rate_numerator(episodes: pd.DataFrame, periods: pd.DataFrame, rate_type: str) -> pd.DataFrame:
    """Episodes per period and stratum; incidence by start, prevalence by overlap."""
    crossed = episodes.merge(periods, how='cross')
    if rate_type == 'incidence':
        in_period = (crossed['cohort_start_date'] >= crossed['periodBegin']) \
            & (crossed['cohort_start_date'] <= crossed['periodEnd'])
    else:
        in_period = (crossed['cohort_end_date'] >= crossed['periodBegin']) \
            & (crossed['cohort_start_date'] <= crossed['periodEnd'])
    crossed = crossed[in_period].copy()
    if crossed.empty:
        return _empty_strata(['periodBegin', 'periodEnd'], 'cohortCount')

    crossed['ageDecade'] = _age_decade(crossed['cohort_start_date'], crossed['year_of_birth'])
    return (
        crossed.groupby(['periodBegin', 'periodEnd'] + STRATUM_KEYS)
        .size()
        .rename('cohortCount')
        .reset_index()
    )


def _person_time(observation: pd.DataFrame,
                 periods: pd.DataFrame,
                 first_starts: Optional[pd.DataFrame]) -> pd.DataFrame:
    """
    Person-years at risk per period and stratum.

    Observation is clipped to each period. With first_starts given, time at
    risk ends at the subject's first cohort start and periods entirely after
    it contribute nothing.
    """
    crossed = observation.merge(periods, how='cross')
    crossed = crossed[
        (crossed['start_date'] <= crossed['periodEnd']) & (crossed['end_date'] >= crossed['periodBegin'])
    ].copy()

    crossed['ageDecade'] = _age_decade(crossed['periodBegin'], crossed['year_of_birth'])
    crossed['start_date'] = crossed[['start_date', 'periodBegin']].max(axis=1)
    crossed['end_date'] = crossed[['end_date', 'periodEnd']].min(axis=1)

    if first_starts is not None:
        crossed = crossed.merge(first_starts, left_on='person_id', right_on='subject_id', how='left')
        had_event = crossed['first_start_date'].notna() & (crossed['first_start_date'] <= crossed['end_date'])
        crossed.loc[had_event, 'end_date'] = crossed.loc[had_event, 'first_start_date']
        crossed = crossed[crossed['end_date'] >= crossed['start_date']]

    crossed = crossed.assign(personYears=(crossed['end_date'] - crossed['start_date']).dt.days / 365.25)
    return (
        crossed.groupby(['periodBegin', 'periodEnd'] + STRATUM_KEYS)['personYears']
        .sum()
        .reset_index()
    )


def _label_strata(data: pd.DataFrame, source: CdmSource) -> pd.DataFrame:
    """Replace decade and gender concept with their display labels."""
    labelled = data.merge(source.gender_names(), on='gender_concept_id', how='left')
    labelled['gender'] = labelled['gender'].fillna('Unknown')
    labelled['ageGroup'] = labelled['ageDecade'].map(age_group_label)
    return labelled.drop(columns=['ageDecade', 'gender_concept_id'])


def rate_per_1000(count: pd.Series, person_years: pd.Series) -> pd.Series:
    """1000 * count / person_years, NaN wherever person_years is zero."""
    count = count.astype(float)
    person_years = person_years.astype(float)
    with np.errstate(divide='ignore', invalid='ignore'):
        rate = np.where(person_years > 0, 1000.0 * count / person_years, np.nan)
    return pd.Series(rate, index=count.index)


def _rollup(strata: pd.DataFrame) -> pd.DataFrame:
    """Union of sums by period alone, by age, by gender and by both."""
    pieces = []
    for grouping in STRATIFICATIONS:
        piece = (
            strata.groupby(['periodBegin', 'periodEnd'] + grouping)[['cohortCount', 'personYears']]
            .sum()
            .reset_index()
        )
        for column in ('ageGroup', 'gender'):
            if column not in grouping:
                piece[column] = None
        pieces.append(piece)

    rates = pd.concat(pieces, ignore_index=True)
    rates['ratePer1000'] = rate_per_1000(rates['cohortCount'], rates['personYears'])
    return rates


def compute_rate(source: CdmSource,
                 cohort_id: int,
                 first_occurrence_only: Optional[bool] = None,
                 washout_period: Optional[int] = None,
                 rate_type: Optional[str] = None,
                 calendar_periods: Optional[pd.DataFrame] = None) -> pd.DataFrame:
    """
    Compute incidence or prevalence rates per 1,000 person-years.

    Args:
        source: CDM data source
        cohort_id: Cohort definition id
        first_occurrence_only: Keep only each subject's earliest episode
            (None = config default)
        washout_period: Days of prior observation required (None = config default)
        rate_type: 'incidence' or 'prevalence' (None = config default)
        calendar_periods: DataFrame with periodBegin and periodEnd; overlapping
            periods are merged. None = calendar years of the cohort's range.

    Returns:
        Long DataFrame with one row per period and stratum, including the
        marginal rows by period, age group and gender (nulls mark the
        collapsed stratum). Empty when the cohort has no records.
    """
    config = get_config()
    first_occurrence_only = config.rates.first_occurrence_only \
        if first_occurrence_only is None else first_occurrence_only
    washout_period = config.rates.washout_period if washout_period is None else washout_period
    rate_type = config.rates.rate_type if rate_type is None else rate_type

    _stage(RateStage.INPUT_VALIDATION, cohort_id)
    _validate_common(cohort_id, washout_period)
    if rate_type not in RATE_TYPES:
        raise ConfigurationError(f"rate_type must be one of {list(RATE_TYPES)}, got {rate_type!r}")
    if not isinstance(first_occurrence_only, bool):
        raise ConfigurationError("first_occurrence_only must be True or False")
    if calendar_periods is not None:
        require_columns(calendar_periods, ['periodBegin', 'periodEnd'], table_name="calendar_periods")
        if len(calendar_periods) == 0:
            raise ConfigurationError("calendar_periods must have at least one row")

    logger.info(f"Computing {rate_type} rates for cohort {cohort_id}")
    start_time = time.time()

    summary = get_cohort_summary(source, cohort_id)
    if summary['records'].iloc[0] == 0:
        return _empty_rates()

    _stage(RateStage.PERIOD_CONSTRUCTION, cohort_id)
    if calendar_periods is None:
        calendar_periods = default_calendar_periods(summary, config.rates.period_unit)
    periods = collapse_date_span(calendar_periods, gap=0, start_date='periodBegin', end_date='periodEnd')

    episodes = source.get_cohort(cohort_id)
    if first_occurrence_only:
        episodes = _first_occurrence(episodes)

    _stage(RateStage.NUMERATOR_COMPUTE, cohort_id)
    numerator = _rate_numerator(_eligible_episodes(episodes, source, washout_period), periods, rate_type)

    _stage(RateStage.DENOMINATOR_COMPUTE, cohort_id)
    first_starts = None
    if first_occurrence_only:
        first_starts = episodes[['subject_id', 'cohort_start_date']].rename(
            columns={'cohort_start_date': 'first_start_date'}
        )
    denominator = _person_time(_observation_at_risk(source, washout_period), periods, first_starts)

    if denominator.empty:
        _warn_empty(f"No observation time at risk for cohort {cohort_id}")
        return _empty_rates()

    _stage(RateStage.JOIN_AND_STRATIFY, cohort_id)
    strata = denominator.merge(numerator, on=['periodBegin', 'periodEnd'] + STRATUM_KEYS, how='left')
    strata['cohortCount'] = strata['cohortCount'].fillna(0).astype('int64')
    rates = _rollup(_label_strata(strata, source))

    _stage(RateStage.OUTPUT, cohort_id)
    rates['cohortId'] = cohort_id
    rates['rateType'] = rate_type
    rates['firstOccurrenceOnly'] = first_occurrence_only
    rates['washoutPeriod'] = washout_period

    logger.info(f"Computing rates took {time.time() - start_time:.2f} secs")
    return rates[RATE_COLUMNS]


# ============================================================================
# Day-level series
# ============================================================================

def _count_persons_by_day(spans: pd.DataFrame, dates: pd.DatetimeIndex) -> pd.DataFrame:
    """
    Number of spans covering each day, per stratum.

    Spans carry start_date, end_date (inclusive), year_of_birth and
    gender_concept_id and must not overlap for the same person. Spans are
    cut at year boundaries because the age decade follows the calendar year.
    """
    columns = ['calendarDate'] + STRATUM_KEYS + ['count']
    first_day, last_day = dates[0], dates[-1]

    spans = spans.assign(
        start_date=spans['start_date'].clip(lower=first_day),
        end_date=spans['end_date'].clip(upper=last_day),
    )
    spans = spans[spans['start_date'] <= spans['end_date']]
    if spans.empty:
        return _empty_strata(['calendarDate'], 'count')

    spans = spans.assign(year=[
        list(range(start, end + 1))
        for start, end in zip(spans['start_date'].dt.year, spans['end_date'].dt.year)
    ]).explode('year').reset_index(drop=True)
    spans['year'] = spans['year'].astype('int64')

    year_start = pd.to_datetime(spans['year'].astype(str) + '-01-01')
    year_end = pd.to_datetime(spans['year'].astype(str) + '-12-31')
    segment_start = spans['start_date'].where(spans['start_date'] > year_start, year_start)
    segment_end = spans['end_date'].where(spans['end_date'] < year_end, year_end)
    spans['ageDecade'] = (spans['year'] - spans['year_of_birth']) // 10

    events = pd.concat([
        pd.DataFrame({'date': segment_start, 'delta': 1}),
        pd.DataFrame({'date': segment_end + pd.Timedelta(days=1), 'delta': -1}),
    ], ignore_index=True)
    events['ageDecade'] = pd.concat([spans['ageDecade'], spans['ageDecade']]).values
    events['gender_concept_id'] = pd.concat([spans['gender_concept_id'], spans['gender_concept_id']]).values
    events['stratum'] = events.groupby(STRATUM_KEYS).ngroup()

    strata = events[['stratum'] + STRATUM_KEYS].drop_duplicates('stratum')
    grid = pd.date_range(first_day, last_day + pd.Timedelta(days=1), freq='D')
    running = (
        events.groupby(['date', 'stratum'])['delta'].sum()
        .unstack('stratum')
        .reindex(grid, fill_value=0)
        .fillna(0)
        .cumsum()
        .loc[dates]
    )
    running.index.name = 'calendarDate'

    counts = running.reset_index().melt(id_vars='calendarDate', var_name='stratum', value_name='count')
    counts = counts[counts['count'] > 0].merge(strata, on='stratum')
    counts['count'] = counts['count'].astype('int64')
    return counts[columns]


def _count_starts_by_day(episodes: pd.DataFrame, dates: pd.DatetimeIndex) -> pd.DataFrame:
    """Distinct subjects starting an episode on each day, per stratum."""
    starts = episodes.drop_duplicates(['subject_id', 'cohort_start_date'])
    starts = starts[starts['cohort_start_date'].isin(dates)]
    if starts.empty:
        return _empty_strata(['calendarDate'], 'count')
    starts = starts.assign(
        calendarDate=starts['cohort_start_date'],
        ageDecade=_age_decade(starts['cohort_start_date'], starts['year_of_birth']),
    )
    return (
        starts.groupby(['calendarDate'] + STRATUM_KEYS)
        .size()
        .rename('count')
        .reset_index()
    )


def _episode_spans(episodes: pd.DataFrame) -> pd.DataFrame:
    """Episodes merged per subject so nobody is counted twice on one day."""
    collapsed = collapse_date_span(
        episodes[['subject_id', 'cohort_start_date', 'cohort_end_date']],
        gap=0, start_date='cohort_start_date', end_date='cohort_end_date', group='subject_id',
    )
    demographics = episodes[['subject_id', 'year_of_birth', 'gender_concept_id']].drop_duplicates('subject_id')
    return collapsed.merge(demographics, on='subject_id').rename(
        columns={'cohort_start_date': 'start_date', 'cohort_end_date': 'end_date'}
    )


def compute_time_series_day(source: CdmSource,
                            cohort_id: int,
                            washout_period: Optional[int] = None,
                            start_date=None,
                            end_date=None,
                            regularize: bool = False) -> pd.DataFrame:
    """
    Compute day-level observation, at-risk, incidence and prevalence counts.

    For every calendar day, age group and gender:

    - inObservation: persons observed after their washout
    - incidence / prevalence: subjects starting / in an eligible episode
    - incidenceFirst / prevalenceFirst: the same using only each subject's
      first episode
    - atRisk: inObservation - prevalence + incidence (a subject incident
      today is still at risk today)
    - atRiskFirst: observed persons whose first episode has not started
      before that day

    Age is taken at the calendar day for every count.

    Args:
        source: CDM data source
        cohort_id: Cohort definition id
        washout_period: Days of prior observation required (None = config default)
        start_date: First day of the series (None = earliest cohort start)
        end_date: Last day of the series (None = latest cohort end)
        regularize: Insert zero rows for days missing inside each stratum's range

    Returns:
        DataFrame with calendarDate, ageGroup, gender and the count columns
        listed in DAY_LEVEL_MEASURES; empty when the cohort has no records
    """
    washout_period = get_config().rates.washout_period if washout_period is None else washout_period
    _stage(RateStage.INPUT_VALIDATION, cohort_id)
    _validate_common(cohort_id, washout_period)

    logger.info(f"Computing day-level time series for cohort {cohort_id}")
    start_time = time.time()

    summary = get_cohort_summary(source, cohort_id)
    if summary['records'].iloc[0] == 0:
        return _empty_day_series()

    _stage(RateStage.PERIOD_CONSTRUCTION, cohort_id)
    first_day = pd.Timestamp(start_date) if start_date is not None else summary['cohortStartDateMin'].iloc[0]
    last_day = pd.Timestamp(end_date) if end_date is not None else summary['cohortEndDateMax'].iloc[0]
    if last_day < first_day:
        raise ConfigurationError(f"end_date {last_day.date()} is before start_date {first_day.date()}")
    dates = pd.date_range(first_day.normalize(), last_day.normalize(), freq='D')

    _stage(RateStage.DENOMINATOR_COMPUTE, cohort_id)
    demographics = source.person[['person_id', 'year_of_birth', 'gender_concept_id']]
    observation = collapse_date_span(
        _observation_at_risk(source, washout_period)[['person_id', 'start_date', 'end_date']],
        gap=0, start_date='start_date', end_date='end_date', group='person_id',
    ).merge(demographics, on='person_id')

    episodes = source.get_cohort(cohort_id)
    first_starts = (
        episodes.groupby('subject_id', as_index=False)['cohort_start_date'].min()
        .rename(columns={'subject_id': 'person_id', 'cohort_start_date': 'first_start_date'})
    )
    at_risk_first = observation.merge(first_starts, on='person_id', how='left')
    clip = at_risk_first['first_start_date'].notna() & (at_risk_first['first_start_date'] < at_risk_first['end_date'])
    at_risk_first.loc[clip, 'end_date'] = at_risk_first.loc[clip, 'first_start_date']

    _stage(RateStage.NUMERATOR_COMPUTE, cohort_id)
    all_episodes = _eligible_episodes(episodes, source, washout_period)
    first_episodes = _eligible_episodes(_first_occurrence(episodes), source, washout_period)

    counts: Dict[str, pd.DataFrame] = {
        'inObservation': _count_persons_by_day(observation, dates),
        'atRiskFirst': _count_persons_by_day(at_risk_first, dates),
        'incidence': _count_starts_by_day(all_episodes, dates),
        'prevalence': _count_persons_by_day(_episode_spans(all_episodes), dates),
        'incidenceFirst': _count_starts_by_day(first_episodes, dates),
        'prevalenceFirst': _count_persons_by_day(_episode_spans(first_episodes), dates),
    }

    _stage(RateStage.JOIN_AND_STRATIFY, cohort_id)
    keys = ['calendarDate'] + STRATUM_KEYS
    series = counts['inObservation'].rename(columns={'count': 'inObservation'})
    if series.empty:
        _warn_empty(f"No observation time at risk for cohort {cohort_id}")
        return _empty_day_series()

    for measure, table in counts.items():
        if measure == 'inObservation':
            continue
        series = series.merge(table.rename(columns={'count': measure}), on=keys, how='left')
        series[measure] = series[measure].fillna(0).astype('int64')
    series['atRisk'] = series['inObservation'] - series['prevalence'] + series['incidence']

    series = _label_strata(series, source)
    series = series[['calendarDate', 'ageGroup', 'gender'] + DAY_LEVEL_MEASURES]
    series = series.sort_values(['calendarDate', 'ageGroup', 'gender']).reset_index(drop=True)

    if regularize:
        _stage(RateStage.GAP_FILL, cohort_id)
        series = fill_time_series_gaps(series)

    _stage(RateStage.OUTPUT, cohort_id)
    logger.info(f"Computing day-level series took {time.time() - start_time:.2f} secs")
    return series


# ============================================================================
# Time-series helpers
# ============================================================================

def fill_time_series_gaps(series: pd.DataFrame,
                          index: str = "calendarDate",
                          keys: Sequence[str] = ('ageGroup', 'gender'),
                          measures: Optional[Sequence[str]] = None,
                          freq: str = "D") -> pd.DataFrame:
    """
    Insert zero rows for missing dates inside each key's observed range.

    Each key combination is filled from its own first to its own last date;
    dates outside that range are not added.

    Args:
        series: Long time series
        index: Date column
        keys: Columns identifying one series
        measures: Count columns set to 0 on inserted rows (None = the
            day-level count columns present in series)
        freq: pandas frequency of the index

    Returns:
        Gap-filled series sorted by keys and date
    """
    keys = list(keys)
    if measures is None:
        measures = [m for m in DAY_LEVEL_MEASURES if m in series.columns]
    measures = list(measures)
    require_columns(series, [index] + keys + measures, table_name="series")

    if series.empty:
        return series.copy()

    pieces = []
    for key_values, group in series.groupby(keys, dropna=False, sort=True):
        if not isinstance(key_values, tuple):
            key_values = (key_values,)
        group = group.set_index(index).sort_index()
        full_index = pd.date_range(group.index.min(), group.index.max(), freq=freq, name=index)
        filled = group.reindex(full_index)
        filled[measures] = filled[measures].fillna(0).astype('int64')
        for key, value in zip(keys, key_values):
            filled[key] = value
        pieces.append(filled.reset_index())

    filled = pd.concat(pieces, ignore_index=True)
    added = len(filled) - len(series)
    if added:
        logger.info(f"Filled {added} missing dates with zero counts")
    return filled[list(series.columns)]


def summarise_time_series_by_period(series: pd.DataFrame,
                                    unit: str,
                                    measures: Optional[Sequence[str]] = None,
                                    keys: Sequence[str] = ('ageGroup', 'gender'),
                                    index: str = "calendarDate",
                                    week_start: Optional[int] = None) -> pd.DataFrame:
    """
    Sum a day-level series into calendar periods.

    Args:
        series: Day-level series
        unit: 'week', 'month', 'quarter' or 'year'
        measures: Columns to sum (None = day-level count columns present)
        keys: Stratum columns kept in the output
        index: Date column
        week_start: 1 (Monday) or 7 (Sunday, default) for unit='week'

    Returns:
        DataFrame with periodBegin, periodEnd, the keys and summed measures
    """
    keys = list(keys)
    if measures is None:
        measures = [m for m in DAY_LEVEL_MEASURES if m in series.columns]
    measures = list(measures)
    require_columns(series, [index] + keys + measures, table_name="series")

    buckets = calendar_bucket_bounds(series[index], unit, week_start)
    bucketed = series.reset_index(drop=True).assign(
        periodBegin=buckets['bucketStart'].values,
        periodEnd=buckets['bucketEnd'].values,
    )
    return (
        bucketed.groupby(['periodBegin', 'periodEnd'] + keys, dropna=False)[measures]
        .sum()
        .reset_index()
    )
