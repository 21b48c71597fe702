"""Tests for feature extraction reports."""

import numpy as np
import pandas as pd
import pytest

from kala.analytics.feature_report import (
    NON_TIME_VARYING,
    DistributionStatistic,
    get_feature_extraction_report_across_databases,
    get_feature_extraction_report_by_time_windows,
    get_feature_extraction_report_non_time_varying,
)
from kala.analytics.table1 import get_table1_specifications_from_covariate_data
from kala.data_processing.covariate_data import CovariateData
from kala.exceptions import ConfigurationError, EmptyResultWarning


def cell(report, covariate_id, column, name_column='covariateId'):
    rows = report[report[name_column] == covariate_id]
    assert len(rows) == 1
    return rows.iloc[0][column]


@pytest.fixture
def second_database(covariates, covariates_continuous, covariate_ref, analysis_ref, time_ref):
    """The same cohorts without the cohort covariate."""
    return CovariateData(
        covariates=covariates[covariates['covariateId'] != 1150].reset_index(drop=True),
        covariates_continuous=covariates_continuous,
        covariate_ref=covariate_ref,
        analysis_ref=analysis_ref,
        time_ref=time_ref,
    )


# ============================================================================
# Distribution statistics
# ============================================================================


class TestDistributionStatistic:
    """Test statistic parsing."""

    def test_parse_names_and_members(self):
        parsed = DistributionStatistic.parse(['medianValue', DistributionStatistic.P25])

        assert parsed == [DistributionStatistic.MEDIAN, DistributionStatistic.P25]

    def test_short_names(self):
        assert DistributionStatistic.MEDIAN.short_name == "median"
        assert DistributionStatistic.STANDARD_DEVIATION.short_name == "standardDeviation"

    def test_unknown_statistic(self):
        with pytest.raises(ConfigurationError, match="modeValue"):
            DistributionStatistic.parse(['modeValue'])

    def test_empty_list(self):
        with pytest.raises(ConfigurationError):
            DistributionStatistic.parse([])


# ============================================================================
# Report by time windows
# ============================================================================


class TestReportByTimeWindows:
    """Test the single-database report."""

    def test_windowed_report(self, covariate_data):
        report = get_feature_extraction_report_by_time_windows(covariate_data, cohort_id=1)

        formatted = report.formatted
        assert list(formatted.columns)[-2:] == ['d-365d-1', 'd-30d-1']
        assert formatted['covariateId'].tolist() == [316866210, 201826210, 1150]
        assert cell(formatted, 316866210, 'd-365d-1') == "1,200 (60.0%)"
        assert cell(formatted, 201826210, 'd-30d-1') == "100 (5.0%)"
        assert pd.isna(cell(formatted, 1150, 'd-365d-1'))

    def test_min_average_value_filters(self, covariate_data):
        report = get_feature_extraction_report_by_time_windows(covariate_data, cohort_id=1)

        # 316866210 in d-30d-1 has averageValue 0.0025
        assert pd.isna(cell(report.formatted, 316866210, 'd-30d-1'))
        assert len(report.raw) == 4

    def test_raw_rows_ordered_by_window_then_value(self, covariate_data):
        report = get_feature_extraction_report_by_time_windows(covariate_data, cohort_id=1)

        assert list(zip(report.raw['periodName'], report.raw['covariateId'])) == [
            ('d-365d-1', 316866210), ('d-365d-1', 201826210),
            ('d-30d-1', 201826210), ('d-30d-1', 1150),
        ]

    def test_concept_id_backfilled(self, covariate_data):
        report = get_feature_extraction_report_by_time_windows(covariate_data, cohort_id=1)

        assert cell(report.formatted, 1150, 'conceptId') == 1
        assert cell(report.formatted, 201826210, 'conceptId') == 201826

    def test_concept_id_stays_integer(self, covariate_data):
        report = get_feature_extraction_report_by_time_windows(covariate_data, cohort_id=1)

        assert report.formatted['conceptId'].dtype == 'Int64'
        assert report.raw['conceptId'].tolist() == [316866, 201826, 201826, 1]

    def test_selected_windows(self, covariate_data):
        report = get_feature_extraction_report_by_time_windows(
            covariate_data, cohort_id=1, start_days=[-30], end_days=[-1]
        )

        assert 'd-365d-1' not in report.formatted.columns
        assert set(report.raw['periodName']) == {'d-30d-1'}

    def test_start_days_without_end_days(self, covariate_data):
        with pytest.raises(ConfigurationError, match="together"):
            get_feature_extraction_report_by_time_windows(covariate_data, cohort_id=1, start_days=[-30])

    def test_unformatted_report(self, covariate_data):
        report = get_feature_extraction_report_by_time_windows(covariate_data, cohort_id=1, format=False)

        assert 'report' not in report.raw.columns
        assert cell(report.formatted, 316866210, 'd-365d-1') == 0.6

    def test_unpivoted_report(self, covariate_data):
        report = get_feature_extraction_report_by_time_windows(covariate_data, cohort_id=1, pivot=False)

        assert len(report.formatted) == 4
        assert 'periodName' in report.formatted.columns

    def test_excluded_covariates(self, covariate_data):
        report = get_feature_extraction_report_by_time_windows(
            covariate_data, cohort_id=1, excluded_covariate_ids=[1150]
        )

        assert 1150 not in report.formatted['covariateId'].tolist()

    def test_non_time_varying_section_first(self, covariate_data):
        report = get_feature_extraction_report_by_time_windows(
            covariate_data, cohort_id=1, include_non_time_varying=True
        )

        assert report.raw['periodName'].iloc[0] == NON_TIME_VARYING
        assert list(report.formatted.columns)[6:] == [NON_TIME_VARYING, 'd-365d-1', 'd-30d-1']

    def test_continuous_statistics(self, covariate_data):
        report = get_feature_extraction_report_by_time_windows(
            covariate_data, cohort_id=1, include_non_time_varying=True, time_varying=False,
            distribution_statistics=['standardDeviation', 'medianValue', 'p75Value'],
        )

        raw = report.raw
        charlson = raw[raw['covariateId'] == 1902]
        assert charlson['covariateName'].tolist() == [
            "Charlson index - Romano adaptation (standardDeviation)",
            "Charlson index - Romano adaptation (median)",
            "Charlson index - Romano adaptation (p75)",
        ]
        assert charlson['report'].tolist() == ["1.5", "2.0", "3.0"]
        assert set(charlson['sumValue']) == {1500}
        assert raw['covariateId'].iloc[0] == 8507001

    def test_continuous_rounding_or_truncation(self, covariate_data):
        options = dict(cohort_id=4, include_non_time_varying=True, time_varying=False,
                       distribution_statistics=['averageValue'])

        rounded = get_feature_extraction_report_by_time_windows(covariate_data, **options).raw
        truncated = get_feature_extraction_report_by_time_windows(covariate_data, round_decimal=False,
                                                                  **options).raw

        # cohort 4 Charlson averageValue is 1.75
        assert rounded.loc[rounded['covariateId'] == 1902, 'report'].tolist() == ["1.8"]
        assert truncated.loc[truncated['covariateId'] == 1902, 'report'].tolist() == ["1.7"]

    def test_truncation_from_config(self, covariate_data, isolated_config):
        isolated_config.report.round_decimal = False

        report = get_feature_extraction_report_non_time_varying({'db1': covariate_data}, cohort_id=4)

        charlson = report.formatted[report.formatted['covariateId'] == 1902]
        assert "1.7" in charlson['db1'].tolist()

    def test_titles_prepended(self, covariate_data):
        report = get_feature_extraction_report_by_time_windows(
            covariate_data, cohort_id=1, cohort_name="Celecoxib", database_id="db1", report_name="Report"
        )

        assert report.formatted['covariateName'].tolist()[:3] == ["Report", "db1", "Celecoxib"]
        assert pd.isna(report.formatted['covariateId'].iloc[0])

    def test_empty_cohort(self, covariate_data):
        with pytest.warns(EmptyResultWarning, match="99"):
            report = get_feature_extraction_report_by_time_windows(covariate_data, cohort_id=99)

        assert report is None

    def test_saved_directory(self, covariate_data, tmp_path):
        covariate_data.save(tmp_path)

        report = get_feature_extraction_report_by_time_windows(str(tmp_path), cohort_id=4)

        assert cell(report.formatted, 316866210, 'd-365d-1') == "400 (40.0%)"


class TestReportWithTable1:
    """Test label grouping."""

    @pytest.fixture
    def report(self, covariate_data):
        table1 = get_table1_specifications_from_covariate_data(covariate_data)
        return get_feature_extraction_report_by_time_windows(
            covariate_data, cohort_id=1, table1_specifications=table1
        )

    def test_header_rows(self, report):
        formatted = report.formatted

        assert formatted['covariateId'].tolist() == [0, 201826210, 316866210, 0, 1150]
        assert formatted['covariateName'].iloc[0] == "Condition Group Era Long Term"
        assert formatted['label'].iloc[3] == "Cohort Covariates"
        assert formatted['labelId'].tolist() == [1, 1, 1, 4, 4]

    def test_header_rows_have_no_values(self, report):
        headers = report.formatted[report.formatted['covariateId'] == 0]

        assert headers[['d-365d-1', 'd-30d-1']].isna().all().all()

    def test_included_ids_intersect_table1(self, covariate_data):
        table1 = get_table1_specifications_from_covariate_data(covariate_data)

        report = get_feature_extraction_report_by_time_windows(
            covariate_data, cohort_id=1, table1_specifications=table1, included_covariate_ids=[1150, 999]
        )

        assert report.formatted['covariateId'].tolist() == [0, 1150]

    def test_empty_specifications(self, covariate_data):
        empty = pd.DataFrame({'label': [], 'covariateIds': []})

        with pytest.raises(ConfigurationError, match="no rows"):
            get_feature_extraction_report_by_time_windows(covariate_data, cohort_id=1,
                                                          table1_specifications=empty)


# ============================================================================
# Across databases
# ============================================================================


class TestReportAcrossDatabases:
    """Test the multi-database report."""

    def test_one_column_per_database(self, covariate_data, second_database):
        report = get_feature_extraction_report_across_databases(
            {'db1': covariate_data, 'db2': second_database}, cohort_id=1
        )

        formatted = report.formatted
        assert list(formatted.columns) == ['labelId', 'label', 'covariateId', 'Characteristic', 'periodName',
                                           'db1', 'db2']
        assert formatted['covariateId'].tolist() == [0, 201826210, 201826210, 316866210, 0, 1150]
        assert formatted['periodName'].tolist()[:3] == ["", "d-30d-1", "d-365d-1"]

    def test_missing_covariate_shows_zero(self, covariate_data, second_database):
        report = get_feature_extraction_report_across_databases(
            {'db1': covariate_data, 'db2': second_database}, cohort_id=1
        )

        row = report.formatted[report.formatted['covariateId'] == 1150].iloc[0]
        assert row['db1'] == "50 (2.5%)"
        assert row['db2'] == "0"

    def test_headers_blank(self, covariate_data, second_database):
        report = get_feature_extraction_report_across_databases(
            {'db1': covariate_data, 'db2': second_database}, cohort_id=1
        )

        headers = report.formatted[report.formatted['covariateId'] == 0]
        assert (headers[['db1', 'db2']] == "").all().all()
        assert headers['Characteristic'].tolist() == ["  Condition Group Era Long Term", "  Cohort Covariates"]

    def test_characteristic_strips_prefix(self, covariate_data, second_database):
        report = get_feature_extraction_report_across_databases(
            {'db1': covariate_data, 'db2': second_database}, cohort_id=1
        )

        names = set(report.formatted['Characteristic'])
        assert "  Type 2 diabetes" in names
        assert "  Hypertension" in names

    def test_raw_tagged_with_database(self, covariate_data, second_database):
        report = get_feature_extraction_report_across_databases(
            {'db1': covariate_data, 'db2': second_database}, cohort_id=1
        )

        assert report.raw.groupby('databaseId').size().to_dict() == {'db1': 4, 'db2': 3}

    def test_no_results(self, covariate_data):
        with pytest.warns(EmptyResultWarning):
            report = get_feature_extraction_report_across_databases({'db1': covariate_data}, cohort_id=99)

        assert report is None


class TestReportNonTimeVarying:
    """Test the non-time-varying report."""

    def test_remove_pattern(self, covariate_data, second_database):
        report = get_feature_extraction_report_non_time_varying(
            {'db1': covariate_data, 'db2': second_database}, cohort_id=1, remove="Charlson"
        )

        assert set(report.formatted['label']) == {"Demographics Gender"}
        assert set(report.formatted_full['label']) == {"Demographics Gender", "Charlson Index"}
        assert set(report.formatted['periodName']) == {"", NON_TIME_VARYING}

    def test_default_pattern_keeps_charlson(self, covariate_data):
        report = get_feature_extraction_report_non_time_varying({'db1': covariate_data}, cohort_id=4)

        charlson = report.formatted[report.formatted['label'] == "Charlson Index"]
        # header plus one row per default statistic
        assert len(charlson) == 6
        assert np.all(report.formatted['db1'].notna())
