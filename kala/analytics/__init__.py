"""
kala Analytics

Date spans, time windows, rates, feature reports and standardized
differences.
"""

from .base import AnalysisResult
from .date_span import (
    collapse_date_span,
    convert_date_span_to_date_vector,
    convert_date_vector_to_date_span,
)
from .time_windows import (
    get_default_time_windows,
    get_covariate_settings_time_windows,
    get_common_sequential_time_periods,
    get_time_window_catalog,
)
from .rates import (
    compute_rate,
    compute_time_series_day,
    fill_time_series_gaps,
    summarise_time_series_by_period,
    get_cohort_summary,
)
from .table1 import get_table1_specifications_row, get_table1_specifications_from_covariate_data
from .feature_report import (
    DistributionStatistic,
    FeatureReport,
    get_feature_extraction_report_by_time_windows,
    get_feature_extraction_report_across_databases,
    get_feature_extraction_report_non_time_varying,
)
from .standardized_difference import (
    compute_standardized_difference,
    get_feature_extraction_standardized_difference,
    get_standardized_difference_report,
    get_standardized_difference_across_databases,
)
from .covariate_settings import (
    convert_cohort_id_to_covariate_id,
    convert_covariate_id_to_concept_id,
    get_default_temporal_covariate_settings,
    prepare_cohort_covariate_settings,
)

__all__ = [
    'AnalysisResult',
    'collapse_date_span',
    'convert_date_span_to_date_vector',
    'convert_date_vector_to_date_span',
    'get_default_time_windows',
    'get_covariate_settings_time_windows',
    'get_common_sequential_time_periods',
    'get_time_window_catalog',
    'compute_rate',
    'compute_time_series_day',
    'fill_time_series_gaps',
    'summarise_time_series_by_period',
    'get_cohort_summary',
    'get_table1_specifications_row',
    'get_table1_specifications_from_covariate_data',
    'DistributionStatistic',
    'FeatureReport',
    'get_feature_extraction_report_by_time_windows',
    'get_feature_extraction_report_across_databases',
    'get_feature_extraction_report_non_time_varying',
    'compute_standardized_difference',
    'get_feature_extraction_standardized_difference',
    'get_standardized_difference_report',
    'get_standardized_difference_across_databases',
    'convert_cohort_id_to_covariate_id',
    'convert_covariate_id_to_concept_id',
    'get_default_temporal_covariate_settings',
    'prepare_cohort_covariate_settings',
]
