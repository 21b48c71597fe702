"""
Standardized Differences

Per-covariate standardized mean differences between two cohorts, computed
for every time window the two covariate datasets share and optionally for
the non-time-varying covariates.
"""

import logging
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from ..config import get_config
from ..data_processing.covariate_data import CovariateData, as_covariate_data
from ..exceptions import ConfigurationError, DataMismatchWarning
from ..utils.formatting import comma_separated_string_to_int_array
from ..utils.tables import compare_tables
from ..validation.schema import check_time_ref, require_columns
from .table1 import get_table1_specifications_from_covariate_data
from .time_windows import period_name


logger = logging.getLogger(__name__)


STD_DIFF_COLUMNS = ['startDay', 'endDay', 'covariateId', 'covariateName',
                    'mean1', 'sd1', 'mean2', 'sd2', 'sd', 'stdDiff']

REPORT_ROUNDING = {
    'mean1': 2,
    'mean2': 2,
    'sd1': 2,
    'sd2': 2,
    'sd': 2,
    'stdDiff': 4,
    'ratio': 3,
    'difference': 2,
}


@dataclass
class StandardizedDifferenceReport:
    """Standardized differences with derived columns, and the Table 1 view."""
    raw: pd.DataFrame
    report: Optional[pd.DataFrame] = None


def _empty_std_diff() -> pd.DataFrame:
    return pd.DataFrame({column: pd.Series([], dtype=float) for column in STD_DIFF_COLUMNS}).astype(
        {'covariateName': object}
    )


def _cohort_subset(table: Optional[pd.DataFrame], cohort_id: int, time_id: Optional[int]) -> Optional[pd.DataFrame]:
    """Rows of one cohort in one window; time_id None selects non-time-varying rows."""
    if table is None:
        return None
    rows = table[table['cohortDefinitionId'] == cohort_id]
    if 'timeId' not in rows.columns:
        return rows if time_id is None else rows.iloc[0:0]
    if time_id is None:
        return rows[rows['timeId'].isna()]
    return rows[rows['timeId'] == time_id]


def _means_and_sds(covariate_data: CovariateData, cohort_id: int, time_id: Optional[int]) -> pd.DataFrame:
    """
    Mean and standard deviation per covariate.

    Binary covariates use sqrt(p * (1 - p)); continuous covariates their
    standardDeviation column.
    """
    binary = _cohort_subset(covariate_data.covariates, cohort_id, time_id)
    binary = pd.DataFrame({
        'covariateId': binary['covariateId'].values,
        'mean': binary['averageValue'].astype(float).values,
        'sd': np.sqrt(binary['averageValue'].astype(float) * (1 - binary['averageValue'].astype(float))).values,
    })

    continuous = _cohort_subset(covariate_data.covariates_continuous, cohort_id, time_id)
    if continuous is None or continuous.empty:
        return binary

    require_columns(continuous, ['standardDeviation'], table_name="covariates_continuous")
    continuous = pd.DataFrame({
        'covariateId': continuous['covariateId'].values,
        'mean': continuous['averageValue'].astype(float).values,
        'sd': continuous['standardDeviation'].astype(float).values,
    })
    return pd.concat([binary, continuous], ignore_index=True)


def compute_standardized_difference(covariate_data1: CovariateData,
                                    covariate_data2: CovariateData,
                                    cohort_id1: int,
                                    cohort_id2: int,
                                    time_id: Optional[int] = None) -> pd.DataFrame:
    """
    Standardized mean difference per covariate for one window.

    Covariates found in only one cohort get mean and sd 0 in the other.
    The pooled sd is sqrt((sd1^2 + sd2^2) / 2) and stdDiff is
    (mean1 - mean2) / sd, NaN when both are 0.

    Args:
        covariate_data1: Covariate data of the first cohort
        covariate_data2: Covariate data of the second cohort
        cohort_id1: Cohort id within covariate_data1
        cohort_id2: Cohort id within covariate_data2
        time_id: Window to compare; None compares the non-time-varying rows

    Returns:
        DataFrame with covariateId, covariateName, mean1, sd1, mean2, sd2,
        sd and stdDiff, sorted by descending absolute stdDiff (NaN last)
    """
    first = _means_and_sds(covariate_data1, cohort_id1, time_id).rename(columns={'mean': 'mean1', 'sd': 'sd1'})
    second = _means_and_sds(covariate_data2, cohort_id2, time_id).rename(columns={'mean': 'mean2', 'sd': 'sd2'})

    result = first.merge(second, on='covariateId', how='outer')
    result[['mean1', 'sd1', 'mean2', 'sd2']] = result[['mean1', 'sd1', 'mean2', 'sd2']].fillna(0)

    with np.errstate(divide='ignore', invalid='ignore'):
        result['sd'] = np.sqrt((result['sd1'] ** 2 + result['sd2'] ** 2) / 2)
        result['stdDiff'] = (result['mean1'] - result['mean2']) / result['sd']

    names = pd.concat([
        covariate_data1.covariate_ref[['covariateId', 'covariateName']],
        covariate_data2.covariate_ref[['covariateId', 'covariateName']],
    ]).drop_duplicates('covariateId')
    result = result.merge(names, on='covariateId', how='left')

    result = result.assign(_order=result['stdDiff'].abs()).sort_values(
        '_order', ascending=False, na_position='last', kind='mergesort'
    )
    columns = ['covariateId', 'covariateName', 'mean1', 'sd1', 'mean2', 'sd2', 'sd', 'stdDiff']
    return result[columns].reset_index(drop=True)


def _shared_time_ref(covariate_data1: CovariateData, covariate_data2: CovariateData) -> pd.DataFrame:
    """Windows both datasets have; a mismatch warns and keeps the common ones."""
    time_ref1 = covariate_data1.time_ref
    time_ref2 = covariate_data2.time_ref
    if time_ref1 is None or time_ref2 is None:
        return pd.DataFrame({'timeId': [], 'startDay': [], 'endDay': []})

    comparison = compare_tables(time_ref1, time_ref2)
    if comparison['identical']:
        return time_ref1

    message = "covariate data is not identical: using the time windows both datasets share"
    logger.warning(message)
    warnings.warn(message, DataMismatchWarning, stacklevel=3)
    return time_ref1.merge(time_ref2[['timeId', 'startDay', 'endDay']], on=['timeId', 'startDay', 'endDay'])


def get_feature_extraction_standardized_difference(
        covariate_data1: Union[CovariateData, str, None] = None,
        covariate_data2: Union[CovariateData, str, None] = None,
        cohort_id1: int = None,
        cohort_id2: int = None,
        include_non_time_varying: bool = True,
        time_ref: Optional[pd.DataFrame] = None,
        max_workers: Optional[int] = None) -> Optional[pd.DataFrame]:
    """
    Standardized differences between two cohorts across time windows.

    Windows are those the two datasets share, restricted to the
    (startDay, endDay) pairs of `time_ref` when given. Windows may run on
    a thread pool; the result stays in window order, with the
    non-time-varying rows (null startDay and endDay) last.

    Args:
        covariate_data1: CovariateData or saved directory for the first cohort
        covariate_data2: CovariateData or saved directory for the second cohort
        cohort_id1: Cohort id in covariate_data1
        cohort_id2: Cohort id in covariate_data2
        include_non_time_varying: Also compare covariates without a window
        time_ref: Windows to compute, with startDay and endDay columns
        max_workers: Threads (None = config parallel_workers)

    Returns:
        DataFrame with startDay, endDay, covariateId, covariateName, mean1,
        sd1, mean2, sd2, sd, stdDiff; None when neither windows nor
        non-time-varying covariates were requested
    """
    if time_ref is None and not include_non_time_varying:
        logger.info("includeNonTimeVarying is FALSE and timeRef is NULL. no results.")
        return None

    if covariate_data1 is None and covariate_data2 is None:
        raise ConfigurationError("covariate_data1/2 and paths are all NULL")
    if covariate_data1 is None or covariate_data2 is None:
        raise ConfigurationError("both covariate_data1 and covariate_data2 are required")
    if cohort_id1 is None or cohort_id2 is None:
        raise ConfigurationError("cohort_id1 and cohort_id2 are required")

    if time_ref is not None:
        check_time_ref(time_ref)

    covariate_data1 = as_covariate_data(covariate_data1)
    covariate_data2 = as_covariate_data(covariate_data2)

    windows = _shared_time_ref(covariate_data1, covariate_data2)
    if time_ref is not None:
        wanted = time_ref[['startDay', 'endDay']].drop_duplicates()
        windows = windows.merge(wanted.astype(windows[['startDay', 'endDay']].dtypes.to_dict()),
                                on=['startDay', 'endDay'])
    windows = windows.sort_values(['startDay', 'endDay'], kind='mergesort').reset_index(drop=True)

    if len(windows) == 0:
        logger.info("no valid time windows")

    def compute_window(window) -> pd.DataFrame:
        logger.info(f"working on {window.startDay} to {window.endDay}")
        result = compute_standardized_difference(
            covariate_data1, covariate_data2, cohort_id1, cohort_id2, time_id=window.timeId
        )
        return result.assign(startDay=window.startDay, endDay=window.endDay)

    max_workers = get_config().analytics.parallel_workers if max_workers is None else max_workers
    window_rows = list(windows.itertuples(index=False))
    if max_workers > 1 and len(window_rows) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            pieces: List[pd.DataFrame] = list(executor.map(compute_window, window_rows))
    else:
        pieces = [compute_window(window) for window in window_rows]

    if include_non_time_varying:
        logger.info("working on non time varying")
        pieces.append(compute_standardized_difference(
            covariate_data1, covariate_data2, cohort_id1, cohort_id2, time_id=None
        ).assign(startDay=np.nan, endDay=np.nan))

    pieces = [piece for piece in pieces if not piece.empty]
    if not pieces:
        return _empty_std_diff()
    return pd.concat(pieces, ignore_index=True)[STD_DIFF_COLUMNS]


def _std_diff_period_name(start_day, end_day) -> str:
    if pd.isna(start_day) or pd.isna(end_day):
        return "nonTimeVarying"
    return period_name(start_day, end_day)


def get_standardized_difference_report(std_diff: pd.DataFrame,
                                       covariate_ref: pd.DataFrame,
                                       table1_specifications: Optional[pd.DataFrame] = None
                                       ) -> StandardizedDifferenceReport:
    """
    Add report columns to standardized differences.

    Adds analysisId and conceptId from the covariate reference, ratio
    (mean1 / mean2, NaN when mean2 is 0), difference (mean1 - mean2),
    absDifference and periodName. With Table 1 specifications the rows are
    also grouped under their labels: a header row per label, then the
    rounded rows with indented covariate names.

    Args:
        std_diff: Output of get_feature_extraction_standardized_difference
        covariate_ref: Covariate reference with analysisId and conceptId
        table1_specifications: Labels with covariateIds

    Returns:
        StandardizedDifferenceReport
    """
    require_columns(std_diff, STD_DIFF_COLUMNS, table_name="std_diff")
    require_columns(covariate_ref, ['covariateId', 'analysisId', 'conceptId'], table_name="covariate_ref")

    raw = std_diff.merge(
        covariate_ref[['covariateId', 'analysisId', 'conceptId']].drop_duplicates('covariateId'),
        on='covariateId',
    )
    raw['ratio'] = raw['mean1'] / raw['mean2'].where(raw['mean2'] != 0)
    raw['difference'] = raw['mean1'] - raw['mean2']
    raw['absDifference'] = raw['difference'].abs()
    raw['periodName'] = [_std_diff_period_name(s, e) for s, e in zip(raw['startDay'], raw['endDay'])]

    if table1_specifications is None:
        return StandardizedDifferenceReport(raw=raw)

    require_columns(table1_specifications, ['label', 'covariateIds'], table_name="table1_specifications")
    pieces = []
    for label_id, spec in enumerate(table1_specifications.itertuples(index=False), start=1):
        ids = comma_separated_string_to_int_array(spec.covariateIds)
        rows = raw[raw['covariateId'].isin(ids)]
        if rows.empty:
            continue

        rows = rows.round(REPORT_ROUNDING)
        rows['absDifference'] = rows['difference'].abs()
        rows['covariateName'] = "    " + rows['covariateName'].astype(str).str.replace(r".*: ", "", n=1, regex=True)
        header = pd.DataFrame([{
            'labelId': label_id,
            'label': spec.label,
            'covariateId': 0,
            'periodName': "",
            'covariateName': spec.label,
        }])
        pieces.append(header)
        pieces.append(rows.assign(labelId=label_id, label=spec.label))

    report = pd.concat(pieces, ignore_index=True) if pieces else pd.DataFrame(columns=['labelId', 'label'] + list(raw.columns))
    report = report[['labelId', 'label'] + [c for c in report.columns if c not in ('labelId', 'label')]]
    return StandardizedDifferenceReport(raw=raw, report=report)


def get_standardized_difference_across_databases(
        pairs_by_database: Mapping[str, Tuple[Union[CovariateData, str], Union[CovariateData, str]]],
        cohort_id1: int,
        cohort_id2: int,
        include_non_time_varying: bool = True,
        time_ref: Optional[pd.DataFrame] = None,
        table1_specifications: Optional[pd.DataFrame] = None) -> Optional[StandardizedDifferenceReport]:
    """
    Standardized differences for the same two cohorts in several databases.

    Args:
        pairs_by_database: (first, second) covariate data per database id
        cohort_id1: First cohort id
        cohort_id2: Second cohort id
        include_non_time_varying: Also compare covariates without a window
        time_ref: Windows to compute
        table1_specifications: Labels for the grouped view (None = one
            label per analysis of the last database)

    Returns:
        StandardizedDifferenceReport whose raw rows carry databaseId, or
        None when no database produced results
    """
    pieces = []
    covariate_refs = []
    last_data = None
    for database_id, (first, second) in pairs_by_database.items():
        logger.info(f"Computing standardized differences for database {database_id}")
        first = as_covariate_data(first)
        second = as_covariate_data(second)
        std_diff = get_feature_extraction_standardized_difference(
            first, second, cohort_id1, cohort_id2,
            include_non_time_varying=include_non_time_varying,
            time_ref=time_ref,
        )
        if std_diff is None or std_diff.empty:
            logger.warning(f"No standardized differences for database {database_id}")
            continue
        pieces.append(std_diff.assign(databaseId=database_id))
        covariate_refs.extend([first.covariate_ref, second.covariate_ref])
        last_data = first

    if not pieces:
        return None

    if table1_specifications is None:
        table1_specifications = get_table1_specifications_from_covariate_data(last_data)
        if len(table1_specifications) == 0:
            table1_specifications = None

    covariate_ref = pd.concat(covariate_refs, ignore_index=True)
    return get_standardized_difference_report(pd.concat(pieces, ignore_index=True), covariate_ref,
                                              table1_specifications)
