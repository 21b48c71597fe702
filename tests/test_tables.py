"""Tests for table comparison and pivoting."""

import pandas as pd
import pytest

from kala.utils.tables import compare_tables, pivot_wider


# ============================================================================
# compare_tables
# ============================================================================


class TestCompareTables:
    """Test order-insensitive table comparison."""

    def test_identical_ignoring_column_and_row_order(self):
        first = pd.DataFrame({'a': [1, 2, 3], 'b': ['x', 'y', 'z']})
        second = pd.DataFrame({'b': ['z', 'x', 'y'], 'a': [3, 1, 2]})

        result = compare_tables(first, second)

        assert result['identical'] is True
        assert result['additional_columns_in_first'] == []
        assert result['additional_columns_in_second'] == []
        assert 'additional_rows_in_first' not in result

    def test_extra_row(self):
        first = pd.DataFrame({'a': [1, 2, 3], 'b': ['x', 'y', 'z']})
        second = pd.DataFrame({'a': [1, 2], 'b': ['x', 'y']})

        result = compare_tables(first, second)

        assert result['identical'] is False
        assert result['additional_rows_in_first'] == 1
        assert result['additional_rows_in_second'] == -1
        extra = result['present_in_first_not_second']
        assert len(extra) == 1
        assert extra.iloc[0]['a'] == 3
        assert extra.iloc[0]['b'] == 'z'
        assert len(result['present_in_second_not_first']) == 0

    def test_different_columns_skip_row_comparison(self):
        first = pd.DataFrame({'a': [1], 'b': [2]})
        second = pd.DataFrame({'a': [1], 'c': [2]})

        result = compare_tables(first, second)

        assert result['identical'] is False
        assert result['additional_columns_in_first'] == ['b']
        assert result['additional_columns_in_second'] == ['c']
        assert 'present_in_first_not_second' not in result

    def test_same_rows_different_values(self):
        first = pd.DataFrame({'timeId': [1, 2], 'startDay': [-365, -30], 'endDay': [-1, -1]})
        second = pd.DataFrame({'timeId': [1, 2], 'startDay': [-365, -180], 'endDay': [-1, -1]})

        result = compare_tables(first, second)

        assert result['identical'] is False
        assert result['additional_rows_in_first'] == 0
        assert result['present_in_first_not_second']['startDay'].tolist() == [-30]
        assert result['present_in_second_not_first']['startDay'].tolist() == [-180]


# ============================================================================
# pivot_wider
# ============================================================================


class TestPivotWider:
    """Test the long-to-wide pivot."""

    def test_column_and_row_order_follow_first_appearance(self):
        long = pd.DataFrame({
            'covariateId': [2, 2, 1],
            'periodName': ['d-30d-1', 'd-365d-1', 'd-365d-1'],
            'report': ['a', 'b', 'c'],
        })

        wide = pivot_wider(long, ['covariateId'], names_from='periodName', values_from='report')

        assert list(wide.columns) == ['covariateId', 'd-30d-1', 'd-365d-1']
        assert wide['covariateId'].tolist() == [2, 1]
        assert wide.loc[0, 'd-365d-1'] == 'b'
        assert pd.isna(wide.loc[1, 'd-30d-1'])

    def test_fill_value(self):
        long = pd.DataFrame({
            'id': [1, 2],
            'databaseId': ['db1', 'db2'],
            'report': ['x', 'y'],
        })

        wide = pivot_wider(long, ['id'], names_from='databaseId', values_from='report', fill_value="0")

        assert wide['db1'].tolist() == ['x', '0']
        assert wide['db2'].tolist() == ['0', 'y']

    def test_row_without_name_is_kept(self):
        long = pd.DataFrame({
            'covariateName': ['Conditions', 'Diabetes'],
            'periodName': ['', 'd-365d-1'],
            'report': [None, '10 (1.0%)'],
        })

        wide = pivot_wider(long, ['covariateName'], names_from='periodName', values_from='report')

        assert wide['covariateName'].tolist() == ['Conditions', 'Diabetes']
        assert list(wide.columns) == ['covariateName', 'd-365d-1']
        assert pd.isna(wide.loc[0, 'd-365d-1'])

    def test_missing_column_raises(self):
        with pytest.raises(ValueError, match="not found"):
            pivot_wider(pd.DataFrame({'a': [1]}), ['a'], names_from='b', values_from='c')
