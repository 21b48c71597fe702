"""
Feature Extraction Reports

Turns covariate data into report tables: covariates are joined to their
time windows and analysis metadata, filtered, formatted (count and percent
for binary covariates, distribution statistics for continuous ones) and
pivoted to one column per time window. Optional Table 1 specifications
group the rows under labels.
"""

import logging
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..config import get_config
from ..data_processing.covariate_data import CovariateData, as_covariate_data
from ..exceptions import ConfigurationError, EmptyResultWarning, SchemaError
from ..utils.formatting import (
    comma_separated_string_to_int_array,
    format_count_percent,
    format_decimal_with_comma,
)
from ..utils.tables import pivot_wider
from ..validation.schema import missing_columns, require_columns
from .table1 import get_table1_specifications_from_covariate_data
from .time_windows import period_name


logger = logging.getLogger(__name__)


NON_TIME_VARYING = "nonTimeVarying"

ID_COLUMNS = ['covariateId', 'covariateName', 'conceptId', 'analysisId', 'analysisName', 'domainId']
LABEL_COLUMNS = ['labelId', 'label']
REPORT_COLUMNS = ID_COLUMNS + ['timeId', 'periodName', 'sumValue', 'averageValue']
SIMPLE_ID_COLUMNS = ['labelId', 'label', 'covariateId', 'Characteristic', 'periodName']


class DistributionStatistic(Enum):
    """Distribution statistics of continuous covariates, by column name."""
    AVERAGE = "averageValue"
    STANDARD_DEVIATION = "standardDeviation"
    MEDIAN = "medianValue"
    P10 = "p10Value"
    P25 = "p25Value"
    P75 = "p75Value"
    P90 = "p90Value"

    @property
    def column(self) -> str:
        return self.value

    @property
    def short_name(self) -> str:
        """Name shown after the covariate name, e.g. 'median' or 'p25'."""
        return self.value.replace("Value", "", 1)

    @classmethod
    def parse(cls, statistics: Iterable[Union['DistributionStatistic', str]]) -> List['DistributionStatistic']:
        """Members for a list of members or column names."""
        parsed = []
        for statistic in statistics:
            if isinstance(statistic, cls):
                parsed.append(statistic)
                continue
            try:
                parsed.append(cls(statistic))
            except ValueError:
                raise ConfigurationError(
                    f"Unknown distribution statistic '{statistic}'. "
                    f"Choose from {[member.value for member in cls]}"
                )
        if not parsed:
            raise ConfigurationError("at least one distribution statistic is required")
        return parsed


@dataclass
class FeatureReport:
    """Report output: unformatted long rows and the display table."""
    raw: pd.DataFrame
    formatted: pd.DataFrame
    formatted_full: Optional[pd.DataFrame] = None


# ============================================================================
# Row assembly
# ============================================================================

def _covariate_analysis(covariate_data: CovariateData,
                        included_covariate_ids: Optional[Sequence] = None,
                        excluded_covariate_ids: Optional[Sequence] = None) -> pd.DataFrame:
    """Covariate reference joined with analysis names and domains."""
    metadata = covariate_data.covariate_ref[['covariateId', 'analysisId', 'covariateName', 'conceptId']].merge(
        covariate_data.analysis_ref[['analysisId', 'analysisName', 'domainId']], on='analysisId'
    )
    if included_covariate_ids is not None:
        metadata = metadata[metadata['covariateId'].isin(list(included_covariate_ids))]
    if excluded_covariate_ids is not None:
        metadata = metadata[~metadata['covariateId'].isin(list(excluded_covariate_ids))]
    return metadata


def _cohort_rows(table: pd.DataFrame, cohort_id: int, time_varying: bool) -> pd.DataFrame:
    rows = table[table['cohortDefinitionId'] == cohort_id]
    if time_varying:
        if 'timeId' not in rows.columns:
            return rows.iloc[0:0].assign(timeId=np.nan)
        return rows[rows['timeId'].notna()]
    if 'timeId' in rows.columns:
        return rows[rows['timeId'].isna()]
    return rows.assign(timeId=np.nan)


def _attach_windows(rows: pd.DataFrame,
                    windows: Optional[pd.DataFrame],
                    metadata: pd.DataFrame) -> pd.DataFrame:
    """
    Join rows to their window and metadata and sort them for display.

    Windowed rows are ordered by window then by descending averageValue;
    non-time-varying rows (windows is None) by descending averageValue.
    """
    if windows is None:
        joined = rows.assign(periodName=NON_TIME_VARYING).merge(metadata, on='covariateId')
        return joined.sort_values('averageValue', ascending=False, kind='mergesort')

    joined = rows.merge(windows, on='timeId').merge(metadata, on='covariateId')
    return joined.sort_values(['startDay', 'endDay', 'averageValue'],
                              ascending=[True, True, False], kind='mergesort')


def _binary_rows(covariates: pd.DataFrame, windows: Optional[pd.DataFrame],
                 metadata: pd.DataFrame, min_average_value: float) -> pd.DataFrame:
    rows = _attach_windows(covariates, windows, metadata)[REPORT_COLUMNS]
    rows = rows[rows['averageValue'] > min_average_value]
    return rows.assign(continuous=0).reset_index(drop=True)


def _continuous_rows(covariates: pd.DataFrame, windows: Optional[pd.DataFrame],
                     metadata: pd.DataFrame, min_average_value: float,
                     statistics: List[DistributionStatistic]) -> pd.DataFrame:
    """
    One row per covariate, window and statistic.

    The statistic goes to averageValue and its short name is appended to
    the covariate name. countValue is attached afterwards as sumValue since
    it applies once per covariate and window.
    """
    stat_columns = [statistic.column for statistic in statistics]
    missing = missing_columns(covariates, stat_columns)
    if missing:
        raise SchemaError(missing, "covariates_continuous")

    joined = _attach_windows(covariates, windows, metadata)
    counts = joined[['covariateId', 'periodName', 'countValue']].rename(columns={'countValue': 'sumValue'})

    joined = joined[joined['averageValue'] > min_average_value]
    wide = joined[ID_COLUMNS + ['timeId', 'periodName'] + stat_columns].reset_index(drop=True)
    wide['_row'] = np.arange(len(wide))

    long = wide.melt(id_vars=ID_COLUMNS + ['timeId', 'periodName', '_row'], value_vars=stat_columns,
                     var_name='statistic', value_name='value')
    long['_stat'] = long['statistic'].map({column: i for i, column in enumerate(stat_columns)})
    long = long.sort_values(['_row', '_stat'], kind='mergesort')

    short_names = {statistic.column: statistic.short_name for statistic in statistics}
    long['covariateName'] = long['covariateName'].astype(str) + " (" + long['statistic'].map(short_names) + ")"
    long = long.rename(columns={'value': 'averageValue'}).drop(columns=['statistic', '_row', '_stat'])

    rows = long.merge(counts, on=['covariateId', 'periodName'])
    return rows[REPORT_COLUMNS].assign(continuous=1).reset_index(drop=True)


def _format_rows(rows: pd.DataFrame, decimal_places: int, percent_digits: int,
                round_decimal: bool = True) -> pd.DataFrame:
    """Add the display string: count (percent) or a decimal value."""
    report = [
        format_decimal_with_comma(average, decimal_places, round_decimal=round_decimal) if continuous
        else format_count_percent(count, average, percent_digits)
        for continuous, count, average in zip(rows['continuous'], rows['sumValue'], rows['averageValue'])
    ]
    return rows.assign(report=report)


def _section(covariate_data: CovariateData, cohort_id: int, windows: Optional[pd.DataFrame],
             metadata: pd.DataFrame, min_average_value: float,
             statistics: List[DistributionStatistic]) -> pd.DataFrame:
    """Binary then continuous rows of either the windowed or the non-time-varying part."""
    time_varying = windows is not None
    pieces = [_binary_rows(_cohort_rows(covariate_data.covariates, cohort_id, time_varying),
                           windows, metadata, min_average_value)]
    if covariate_data.covariates_continuous is not None:
        pieces.append(_continuous_rows(
            _cohort_rows(covariate_data.covariates_continuous, cohort_id, time_varying),
            windows, metadata, min_average_value, statistics,
        ))
    pieces = [piece for piece in pieces if not piece.empty]
    if not pieces:
        return pd.DataFrame(columns=REPORT_COLUMNS + ['continuous'])
    return pd.concat(pieces, ignore_index=True)


def _select_windows(time_ref: Optional[pd.DataFrame],
                    start_days: Optional[Sequence[int]],
                    end_days: Optional[Sequence[int]]) -> Optional[pd.DataFrame]:
    """Time reference rows to report, with their periodName."""
    if (start_days is None) != (end_days is None):
        raise ConfigurationError("start_days and end_days must be given together")
    if time_ref is None:
        return None

    windows = time_ref[['timeId', 'startDay', 'endDay']]
    if start_days is not None:
        if len(start_days) != len(end_days):
            raise ConfigurationError("start_days and end_days must have the same length")
        wanted = pd.DataFrame({'startDay': list(start_days), 'endDay': list(end_days)}).drop_duplicates()
        windows = windows.merge(wanted.astype(windows[['startDay', 'endDay']].dtypes.to_dict()),
                                on=['startDay', 'endDay'])

    windows = windows.assign(periodName=[period_name(s, e) for s, e in zip(windows['startDay'], windows['endDay'])])
    return windows


def _validate_table1(table1_specifications: Optional[pd.DataFrame]):
    if table1_specifications is None:
        return
    require_columns(table1_specifications, ['label', 'covariateIds'], table_name="table1_specifications")
    if len(table1_specifications) == 0:
        raise ConfigurationError("please check table1_specifications: it has no rows")


def _group_by_table1(report: pd.DataFrame, table1_specifications: pd.DataFrame) -> pd.DataFrame:
    """
    Group report rows under the Table 1 labels.

    Each label with matching rows gets a header row (covariateId 0, the
    label as covariateName, empty periodName) followed by its rows. A
    covariate listed under several labels appears under each of them.
    """
    pieces = []
    for label_id, spec in enumerate(table1_specifications.itertuples(index=False), start=1):
        ids = comma_separated_string_to_int_array(spec.covariateIds)
        matched = report[report['covariateId'].isin(ids)].drop_duplicates()
        if matched.empty:
            continue

        matched = matched.sort_values(list(matched.columns), kind='mergesort', na_position='last')
        header = pd.DataFrame([{
            'labelId': label_id,
            'label': spec.label,
            'covariateId': 0,
            'periodName': "",
            'covariateName': spec.label,
        }])
        pieces.append(header)
        pieces.append(matched.assign(labelId=label_id, label=spec.label))

    if not pieces:
        return pd.DataFrame(columns=LABEL_COLUMNS + list(report.columns))

    grouped = pd.concat(pieces, ignore_index=True)
    return grouped[LABEL_COLUMNS + [c for c in grouped.columns if c not in LABEL_COLUMNS]]


def _prepend_title_row(report: pd.DataFrame, title: str) -> pd.DataFrame:
    """A row holding only covariateName, placed above the table."""
    title_row = pd.DataFrame({'covariateName': [title]})
    return pd.concat([title_row, report], ignore_index=True)[list(report.columns)]


# ============================================================================
# Reports
# ============================================================================

def get_feature_extraction_report_by_time_windows(
        covariate_data: Union[CovariateData, str],
        cohort_id: int,
        start_days: Optional[Sequence[int]] = None,
        end_days: Optional[Sequence[int]] = None,
        include_non_time_varying: bool = False,
        time_varying: bool = True,
        min_average_value: Optional[float] = None,
        included_covariate_ids: Optional[Sequence[int]] = None,
        excluded_covariate_ids: Optional[Sequence[int]] = None,
        table1_specifications: Optional[pd.DataFrame] = None,
        database_id: Optional[str] = None,
        cohort_name: Optional[str] = None,
        report_name: Optional[str] = None,
        format: bool = True,
        distribution_statistics: Optional[Sequence[Union[DistributionStatistic, str]]] = None,
        pivot: bool = True,
        round_decimal: Optional[bool] = None) -> Optional[FeatureReport]:
    """
    Build a covariate report with one column per time window.

    Args:
        covariate_data: CovariateData or a directory saved with CovariateData.save
        cohort_id: Cohort to report on
        start_days: Window start days; with end_days, the (start, end) pairs
            to report. None = every window of the time reference.
        end_days: Window end days, paired with start_days by position
        include_non_time_varying: Also report covariates without a timeId
        time_varying: Report windowed covariates
        min_average_value: Covariates at or below this averageValue are
            dropped (None = config default)
        included_covariate_ids: Only report these covariates
        excluded_covariate_ids: Never report these covariates
        table1_specifications: Labels grouping the covariates (label,
            covariateIds); restricts the report to the listed covariates
        database_id: Title row with the database id
        cohort_name: Title row with the cohort name
        report_name: Title row with the report name
        format: Add display strings; when False averageValue is pivoted
        distribution_statistics: Statistics of continuous covariates
            (None = config default)
        pivot: Pivot to one column per periodName
        round_decimal: Round continuous values to decimal_places if True,
            truncate them if False (None = config default)

    Returns:
        FeatureReport, or None when no rows are left after filtering
    """
    report_config = get_config().report
    min_average_value = report_config.min_average_value if min_average_value is None else min_average_value
    statistics = DistributionStatistic.parse(
        report_config.distribution_statistics if distribution_statistics is None else distribution_statistics
    )

    _validate_table1(table1_specifications)
    covariate_data = as_covariate_data(covariate_data)
    if covariate_data is None:
        raise ConfigurationError("covariate_data is required")

    if table1_specifications is not None:
        table1_ids = comma_separated_string_to_int_array(
            ",".join(table1_specifications['covariateIds'].astype(str))
        )
        if included_covariate_ids is not None:
            included_covariate_ids = [i for i in included_covariate_ids if i in set(table1_ids)]
        else:
            included_covariate_ids = list(table1_ids)

    metadata = _covariate_analysis(covariate_data, included_covariate_ids, excluded_covariate_ids)

    sections = []
    if include_non_time_varying:
        sections.append(_section(covariate_data, cohort_id, None, metadata, min_average_value, statistics))
    if time_varying:
        windows = _select_windows(covariate_data.time_ref, start_days, end_days)
        if windows is not None:
            sections.append(_section(covariate_data, cohort_id, windows, metadata, min_average_value, statistics))

    sections = [section for section in sections if not section.empty]
    if not sections:
        message = f"No results for cohort {cohort_id}"
        logger.warning(message)
        warnings.warn(message, EmptyResultWarning, stacklevel=2)
        return None

    report = pd.concat(sections, ignore_index=True)
    concept_ids = pd.Series(np.where(
        report['conceptId'] == 0,
        (report['covariateId'] - report['analysisId']) / 1000,
        report['conceptId'],
    ), index=report.index)
    if (concept_ids.dropna() % 1 == 0).all():
        concept_ids = concept_ids.astype('Int64')
    report = report.assign(conceptId=concept_ids)

    if format:
        round_decimal = report_config.round_decimal if round_decimal is None else round_decimal
        report = _format_rows(report, report_config.decimal_places, report_config.percent_digits,
                              round_decimal)
    report = report.drop(columns='continuous')
    raw = report.copy()

    id_columns = ID_COLUMNS
    if table1_specifications is not None:
        report = _group_by_table1(report, table1_specifications)
        id_columns = LABEL_COLUMNS + ID_COLUMNS

    if pivot:
        report = pivot_wider(report, id_columns, names_from='periodName',
                             values_from='report' if format else 'averageValue')

    for title in (cohort_name, database_id, report_name):
        if title is not None:
            report = _prepend_title_row(report, title)

    logger.info(f"Report for cohort {cohort_id}: {len(raw)} rows, {len(report)} formatted rows")
    return FeatureReport(raw=raw, formatted=report)


def get_feature_extraction_report_across_databases(
        covariate_data_by_database: Mapping[str, Union[CovariateData, str]],
        cohort_id: int,
        start_days: Optional[Sequence[int]] = None,
        end_days: Optional[Sequence[int]] = None,
        include_non_time_varying: bool = False,
        time_varying: bool = True,
        min_average_value: Optional[float] = None,
        included_covariate_ids: Optional[Sequence[int]] = None,
        excluded_covariate_ids: Optional[Sequence[int]] = None,
        table1_specifications: Optional[pd.DataFrame] = None,
        simple: bool = True,
        round_decimal: Optional[bool] = None) -> Optional[FeatureReport]:
    """
    Build one report with a column per database.

    Each database's report is built unpivoted, then the display strings are
    spread by databaseId; covariates missing in a database show "0".
    Without table1_specifications one label per analysis is used, derived
    from the first database.

    Args:
        covariate_data_by_database: CovariateData (or saved directory) per database id
        cohort_id: Cohort to report on
        simple: Keep only label, covariate id, Characteristic and periodName
            as row keys
        (other arguments as in get_feature_extraction_report_by_time_windows)

    Returns:
        FeatureReport with the long rows of every database as raw, or None
        when no database has results
    """
    raw_pieces = []
    formatted_pieces = []

    for database_id, data in covariate_data_by_database.items():
        logger.info(f"Building report for database {database_id}")
        data = as_covariate_data(data)
        if table1_specifications is None:
            derived = get_table1_specifications_from_covariate_data(data)
            table1_specifications = derived if len(derived) > 0 else None

        report = get_feature_extraction_report_by_time_windows(
            covariate_data=data,
            cohort_id=cohort_id,
            start_days=start_days,
            end_days=end_days,
            include_non_time_varying=include_non_time_varying,
            time_varying=time_varying,
            min_average_value=min_average_value,
            included_covariate_ids=included_covariate_ids,
            excluded_covariate_ids=excluded_covariate_ids,
            table1_specifications=table1_specifications,
            format=True,
            pivot=False,
            round_decimal=round_decimal,
        )
        if report is None:
            continue
        raw_pieces.append(report.raw.assign(databaseId=database_id))
        formatted_pieces.append(report.formatted.assign(databaseId=database_id))

    if not formatted_pieces:
        return None

    combined = pd.concat(formatted_pieces, ignore_index=True)
    combined['Characteristic'] = "  " + combined['covariateName'].astype(str).str.replace(
        r".*: ", "", n=1, regex=True
    )

    id_columns = [c for c in combined.columns if c not in ('sumValue', 'averageValue', 'report', 'databaseId')]
    if simple:
        id_columns = [c for c in SIMPLE_ID_COLUMNS if c in id_columns]

    wide = pivot_wider(combined, id_columns, names_from='databaseId', values_from='report', fill_value="0")
    database_columns = list(dict.fromkeys(combined['databaseId']))
    # label header rows carry no values
    wide.loc[wide['covariateId'] == 0, database_columns] = ""
    if 'labelId' in wide.columns:
        wide = wide[wide['labelId'].notna()]
    sort_columns = [c for c in ['labelId', 'label', 'periodName', 'covariateId', 'Characteristic']
                    if c in wide.columns]
    wide = wide.sort_values(sort_columns, kind='mergesort').reset_index(drop=True)

    return FeatureReport(raw=pd.concat(raw_pieces, ignore_index=True), formatted=wide)


def get_feature_extraction_report_non_time_varying(
        covariate_data_by_database: Mapping[str, Union[CovariateData, str]],
        cohort_id: int,
        remove: Optional[str] = None,
        min_average_value: Optional[float] = None,
        round_decimal: Optional[bool] = None) -> Optional[FeatureReport]:
    """
    Report non-time-varying covariates across databases.

    Labels matching `remove` (a regular expression; None = config default)
    are dropped from `formatted`; `formatted_full` keeps them.
    """
    report = get_feature_extraction_report_across_databases(
        covariate_data_by_database,
        cohort_id=cohort_id,
        include_non_time_varying=True,
        time_varying=False,
        min_average_value=min_average_value,
        simple=True,
        round_decimal=round_decimal,
    )
    if report is None:
        return None

    remove = get_config().report.non_time_varying_remove_pattern if remove is None else remove
    full = report.formatted
    if 'label' not in full.columns:
        return FeatureReport(raw=report.raw, formatted=full, formatted_full=full)
    keep = ~full['label'].astype(str).str.contains(remove, regex=True)
    logger.info(f"Removing {int((~keep).sum())} rows matching '{remove}' from the report")

    return FeatureReport(raw=report.raw, formatted=full[keep].reset_index(drop=True), formatted_full=full)
