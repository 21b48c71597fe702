"""Tests for Table 1 specifications."""

import pandas as pd
import pytest

from kala.analytics.table1 import (
    TABLE1_COLUMNS,
    camel_case_to_title_case,
    get_table1_specifications_from_covariate_data,
    get_table1_specifications_row,
)
from kala.exceptions import ConfigurationError, SchemaError


class TestCamelCaseToTitleCase:
    """Test label generation from analysis names."""

    @pytest.mark.parametrize("name,expected", [
        ("ConditionGroupEraLongTerm", "Condition Group Era Long Term"),
        ("Chads2Vasc", "Chads 2 Vasc"),
        ("demographicsGender", "Demographics Gender"),
        ("Dcsi", "Dcsi"),
    ])
    def test_conversion(self, name, expected):
        assert camel_case_to_title_case(name) == expected


class TestTable1SpecificationsRow:
    """Test single specification rows."""

    def test_concept_ids_become_covariate_ids(self):
        row = get_table1_specifications_row(150, concept_ids=[1, 4])

        assert list(row.columns) == TABLE1_COLUMNS
        assert row.loc[0, 'covariateIds'] == "1150,4150"
        assert row.loc[0, 'label'] == "Feature cohorts"
        assert row.loc[0, 'analysisId'] == 150

    def test_covariate_ids_first_and_unique(self):
        row = get_table1_specifications_row(210, concept_ids=[201826], covariate_ids=[316866210, 201826210],
                                            label="Conditions")

        assert row.loc[0, 'covariateIds'] == "316866210,201826210"
        assert row.loc[0, 'label'] == "Conditions"

    def test_ids_required(self):
        with pytest.raises(ConfigurationError, match="at least"):
            get_table1_specifications_row(150)

    def test_single_analysis_id(self):
        with pytest.raises(ConfigurationError, match="analysis_id"):
            get_table1_specifications_row([150, 151], concept_ids=[1])

    def test_label_must_be_string(self):
        with pytest.raises(ConfigurationError, match="label"):
            get_table1_specifications_row(150, concept_ids=[1], label=["a", "b"])


class TestTable1FromCovariateData:
    """Test specifications derived from reference tables."""

    def test_one_row_per_analysis(self, covariate_data):
        table1 = get_table1_specifications_from_covariate_data(covariate_data)

        assert table1['label'].tolist() == [
            "Condition Group Era Long Term", "Charlson Index", "Demographics Gender", "Cohort Covariates",
        ]
        assert table1['covariateIds'].tolist() == ["201826210,316866210", "1902", "8507001", "1150"]

    def test_reference_tables_directly(self, covariate_ref, analysis_ref):
        table1 = get_table1_specifications_from_covariate_data(
            covariate_ref=covariate_ref, analysis_ref=analysis_ref
        )

        assert len(table1) == 4

    def test_analysis_without_covariates(self, covariate_ref):
        analysis_ref = pd.DataFrame({'analysisId': [999], 'analysisName': ['Unused']})

        table1 = get_table1_specifications_from_covariate_data(
            covariate_ref=covariate_ref, analysis_ref=analysis_ref
        )

        assert table1.loc[0, 'covariateIds'] == ""

    def test_missing_inputs(self):
        with pytest.raises(ConfigurationError):
            get_table1_specifications_from_covariate_data()

    def test_missing_columns(self, covariate_ref):
        with pytest.raises(SchemaError, match="analysisName"):
            get_table1_specifications_from_covariate_data(
                covariate_ref=covariate_ref, analysis_ref=pd.DataFrame({'analysisId': [1]})
            )
