"""
Table Utilities

Order-insensitive comparison of two tables and a long-to-wide pivot keyed
by explicit id columns.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd


logger = logging.getLogger(__name__)


def _sorted_rows(data: pd.DataFrame, columns: List[str]) -> pd.DataFrame:
    ordered = data[columns]
    if columns and len(ordered) > 0:
        ordered = ordered.sort_values(by=columns, kind='mergesort', na_position='last')
    return ordered.reset_index(drop=True)


def _rows_not_in(first: pd.DataFrame, second: pd.DataFrame) -> pd.DataFrame:
    """Distinct rows of first that do not appear in second."""
    columns = list(first.columns)
    if not columns:
        return first.iloc[0:0]
    merged = first.drop_duplicates().merge(
        second.drop_duplicates(), how='left', on=columns, indicator=True
    )
    return merged[merged['_merge'] == 'left_only'][columns].reset_index(drop=True)


def compare_tables(first: pd.DataFrame, second: pd.DataFrame) -> Dict[str, Any]:
    """
    Compare two tables ignoring column order and row order.

    Column sets are compared first; when they differ the rows are not
    compared at all. Otherwise both tables are put in the same column order,
    sorted by every column and compared value by value.

    Args:
        first: First table
        second: Second table

    Returns:
        Dict with 'identical', 'additional_columns_in_first' and
        'additional_columns_in_second'. When the columns match but the rows
        do not, also 'additional_rows_in_first', 'additional_rows_in_second',
        'present_in_first_not_second' and 'present_in_second_not_first'.
    """
    first_columns = sorted(first.columns)
    second_columns = sorted(second.columns)

    result = {
        'identical': False,
        'additional_columns_in_first': [c for c in first_columns if c not in second_columns],
        'additional_columns_in_second': [c for c in second_columns if c not in first_columns],
    }

    if first_columns != second_columns:
        logger.info("Tables have different columns; rows were not compared")
        return result

    first_sorted = _sorted_rows(first, first_columns)
    second_sorted = _sorted_rows(second, first_columns)

    result['identical'] = (
        first_sorted.shape == second_sorted.shape and first_sorted.equals(second_sorted)
    )

    if not result['identical']:
        result['additional_rows_in_first'] = len(first_sorted) - len(second_sorted)
        result['additional_rows_in_second'] = len(second_sorted) - len(first_sorted)
        result['present_in_first_not_second'] = _rows_not_in(first_sorted, second_sorted)
        result['present_in_second_not_first'] = _rows_not_in(second_sorted, first_sorted)

    return result


def pivot_wider(long: pd.DataFrame,
                id_columns: Sequence[str],
                names_from: str,
                values_from: str,
                fill_value: Optional[Any] = None) -> pd.DataFrame:
    """
    Pivot a long table to one column per distinct value of `names_from`.

    Rows keep the order in which their id combination first appears and new
    columns keep the order in which their name first appears. Rows whose
    `names_from` value is missing or empty still produce a row, with every
    pivoted cell empty. The first value wins when a cell is duplicated.

    Args:
        long: Long-format table
        id_columns: Columns identifying one output row
        names_from: Column whose values become column names
        values_from: Column holding the cell values
        fill_value: Value for missing cells (None leaves them empty)

    Returns:
        Wide DataFrame with the id columns followed by the pivoted columns
    """
    id_columns = list(id_columns)
    missing = [c for c in id_columns + [names_from, values_from] if c not in long.columns]
    if missing:
        raise ValueError(f"Columns {missing} not found in data")

    rows = long[id_columns].drop_duplicates().reset_index(drop=True)
    rows['_row'] = range(len(rows))

    keyed = long.merge(rows, on=id_columns, how='left')
    names = keyed[names_from]
    cells = keyed[names.notna() & (names.astype(str) != "")]
    column_order = list(dict.fromkeys(cells[names_from]))

    if cells.empty:
        wide = pd.DataFrame(index=rows['_row'])
    else:
        wide = (
            cells.drop_duplicates(subset=['_row', names_from])
            .pivot(index='_row', columns=names_from, values=values_from)
            .reindex(columns=column_order)
        )
    wide.columns.name = None

    result = rows.join(wide, on='_row').drop(columns='_row')
    if fill_value is not None and column_order:
        result[column_order] = result[column_order].fillna(fill_value)
    return result
