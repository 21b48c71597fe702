"""Tests for date span collapsing and date vector conversion."""

import pandas as pd
import pytest

from kala.analytics.date_span import (
    calendar_bucket_bounds,
    collapse_date_span,
    convert_date_span_to_date_vector,
    convert_date_vector_to_date_span,
)
from kala.exceptions import ConfigurationError


def spans_of(*pairs, **extra):
    frame = pd.DataFrame({
        'startDate': pd.to_datetime([start for start, _ in pairs]),
        'endDate': pd.to_datetime([end for _, end in pairs]),
    })
    for name, values in extra.items():
        frame[name] = values
    return frame


def as_pairs(frame):
    return [
        (start.strftime('%Y-%m-%d'), end.strftime('%Y-%m-%d'))
        for start, end in zip(frame['startDate'], frame['endDate'])
    ]


# ============================================================================
# collapse_date_span
# ============================================================================


class TestCollapseDateSpan:
    """Test merging of overlapping spans."""

    def test_overlapping_spans_merge(self):
        spans = spans_of(('2020-01-01', '2020-01-05'), ('2020-01-03', '2020-01-10'), ('2020-01-11', '2020-01-15'))

        result = collapse_date_span(spans, gap=0)

        assert as_pairs(result) == [('2020-01-01', '2020-01-10'), ('2020-01-11', '2020-01-15')]

    def test_gap_merges_adjacent_spans(self):
        spans = spans_of(('2020-01-01', '2020-01-05'), ('2020-01-03', '2020-01-10'), ('2020-01-11', '2020-01-15'))

        result = collapse_date_span(spans, gap=1)

        assert as_pairs(result) == [('2020-01-01', '2020-01-15')]

    def test_running_maximum_end(self):
        """A long span absorbs later spans after a short one ends."""
        spans = spans_of(('2020-01-01', '2020-01-31'), ('2020-01-05', '2020-01-06'), ('2020-01-20', '2020-01-25'))

        result = collapse_date_span(spans, gap=0)

        assert as_pairs(result) == [('2020-01-01', '2020-01-31')]

    def test_unsorted_input(self):
        spans = spans_of(('2020-03-01', '2020-03-05'), ('2020-01-01', '2020-01-05'))

        result = collapse_date_span(spans, gap=0)

        assert as_pairs(result) == [('2020-01-01', '2020-01-05'), ('2020-03-01', '2020-03-05')]

    def test_idempotent(self):
        spans = spans_of(('2020-01-01', '2020-01-05'), ('2020-01-04', '2020-01-08'), ('2020-02-01', '2020-02-03'))

        once = collapse_date_span(spans, gap=0)
        twice = collapse_date_span(once, gap=0)

        assert as_pairs(once) == as_pairs(twice)

    def test_grouped(self):
        spans = spans_of(
            ('2020-01-01', '2020-01-05'), ('2020-01-04', '2020-01-08'), ('2020-01-04', '2020-01-08'),
            personId=[1, 1, 2],
        )

        result = collapse_date_span(spans, gap=0, group='personId')

        assert result['personId'].tolist() == [1, 2]
        assert as_pairs(result) == [('2020-01-01', '2020-01-08'), ('2020-01-04', '2020-01-08')]

    def test_groups_do_not_merge_across(self):
        spans = spans_of(('2020-01-01', '2020-01-10'), ('2020-01-05', '2020-01-06'), personId=[2, 1])

        result = collapse_date_span(spans, gap=0, group=['personId'])

        assert result['personId'].tolist() == [1, 2]
        assert as_pairs(result) == [('2020-01-05', '2020-01-06'), ('2020-01-01', '2020-01-10')]

    def test_custom_column_names(self):
        spans = pd.DataFrame({
            'cohort_start_date': pd.to_datetime(['2020-01-01', '2020-01-02']),
            'cohort_end_date': pd.to_datetime(['2020-01-03', '2020-01-04']),
        })

        result = collapse_date_span(spans, gap=0, start_date='cohort_start_date', end_date='cohort_end_date')

        assert list(result.columns) == ['cohort_start_date', 'cohort_end_date']
        assert len(result) == 1

    def test_gap_is_required(self):
        spans = spans_of(('2020-01-01', '2020-01-05'))

        with pytest.raises(ConfigurationError, match="gap"):
            collapse_date_span(spans, gap=None)

    def test_negative_gap_rejected(self):
        with pytest.raises(ConfigurationError):
            collapse_date_span(spans_of(('2020-01-01', '2020-01-05')), gap=-1)

    def test_missing_dates_rejected(self):
        spans = pd.DataFrame({'startDate': [pd.NaT], 'endDate': pd.to_datetime(['2020-01-01'])})

        with pytest.raises(ConfigurationError, match="missing"):
            collapse_date_span(spans, gap=0)

    def test_not_a_data_frame(self):
        with pytest.raises(ConfigurationError):
            collapse_date_span([('2020-01-01', '2020-01-02')], gap=0)


# ============================================================================
# Date vectors
# ============================================================================


class TestDateVectors:
    """Test conversion between spans and day vectors."""

    def test_span_to_vector_is_sorted_and_unique(self):
        spans = spans_of(('2020-01-01', '2020-01-03'), ('2020-01-02', '2020-01-05'), ('2020-01-10', '2020-01-10'))

        days = convert_date_span_to_date_vector(spans)

        assert len(days) == 6
        assert days[0] == pd.Timestamp('2020-01-01')
        assert days[-1] == pd.Timestamp('2020-01-10')
        assert days.is_monotonic_increasing

    def test_round_trip_matches_collapse(self):
        spans = spans_of(('2020-01-01', '2020-01-03'), ('2020-01-02', '2020-01-05'), ('2020-01-10', '2020-01-10'))

        rebuilt = convert_date_vector_to_date_span(convert_date_span_to_date_vector(spans))

        assert as_pairs(rebuilt) == as_pairs(collapse_date_span(spans, gap=1))

    def test_vector_to_span_unordered_with_duplicates(self):
        dates = pd.to_datetime(['2020-01-03', '2020-01-01', '2020-01-02', '2020-01-02', '2020-01-07'])

        result = convert_date_vector_to_date_span(dates)

        assert as_pairs(result) == [('2020-01-01', '2020-01-03'), ('2020-01-07', '2020-01-07')]

    def test_empty_vector(self):
        result = convert_date_vector_to_date_span([])

        assert result.empty
        assert list(result.columns) == ['startDate', 'endDate']

    def test_split_by_month(self):
        dates = pd.date_range('2020-01-30', '2020-02-02')

        result = convert_date_vector_to_date_span(dates, unit='month')

        assert as_pairs(result) == [('2020-01-30', '2020-01-31'), ('2020-02-01', '2020-02-02')]

    def test_split_by_year(self):
        dates = pd.date_range('2019-12-31', '2020-01-01')

        result = convert_date_vector_to_date_span(dates, unit='year')

        assert as_pairs(result) == [('2019-12-31', '2019-12-31'), ('2020-01-01', '2020-01-01')]

    def test_split_by_week_starting_sunday(self):
        # 2024-01-06 is a Saturday
        dates = pd.date_range('2024-01-05', '2024-01-08')

        result = convert_date_vector_to_date_span(dates, unit='week')

        assert as_pairs(result) == [('2024-01-05', '2024-01-06'), ('2024-01-07', '2024-01-08')]

    def test_split_by_week_starting_monday(self):
        dates = pd.date_range('2024-01-05', '2024-01-08')

        result = convert_date_vector_to_date_span(dates, unit='week', week_start=1)

        assert as_pairs(result) == [('2024-01-05', '2024-01-07'), ('2024-01-08', '2024-01-08')]

    def test_split_by_day(self):
        result = convert_date_vector_to_date_span(pd.date_range('2020-01-01', '2020-01-03'), unit='day')

        assert len(result) == 3

    def test_invalid_unit(self):
        with pytest.raises(ConfigurationError, match="unit"):
            convert_date_vector_to_date_span(pd.date_range('2020-01-01', '2020-01-03'), unit='decade')

    def test_invalid_week_start(self):
        with pytest.raises(ConfigurationError, match="week_start"):
            convert_date_vector_to_date_span(pd.date_range('2020-01-01', '2020-01-03'), unit='week', week_start=3)


class TestCalendarBucketBounds:
    """Test calendar bucket lookup."""

    def test_quarter(self):
        bounds = calendar_bucket_bounds(['2020-05-17'], 'quarter')

        assert bounds.loc[0, 'bucketStart'] == pd.Timestamp('2020-04-01')
        assert bounds.loc[0, 'bucketEnd'] == pd.Timestamp('2020-06-30')

    def test_leap_february(self):
        bounds = calendar_bucket_bounds(['2020-02-10'], 'month')

        assert bounds.loc[0, 'bucketEnd'] == pd.Timestamp('2020-02-29')
