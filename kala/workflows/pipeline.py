"""
Rate Pipeline

Batch orchestration of rate computations: one step per cohort, rate type
and first-occurrence setting, each tracked with its status and timing so a
run over many cohorts can tell empty cohorts from failures.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from itertools import product
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union
import json
import logging
import traceback
import warnings

import pandas as pd

from ..analytics.base import AnalysisResult
from ..analytics.rates import RATE_TYPES, compute_rate
from ..config import get_config
from ..data_processing.cdm_source import CdmSource
from ..exceptions import ConfigurationError, EmptyResultWarning


logger = logging.getLogger(__name__)


class WorkflowStatus(Enum):
    """Lifecycle of a rate step; EMPTY marks a step that ran but produced no rows."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    EMPTY = "empty"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RateStep:
    """One rate computation in a pipeline."""
    cohort_id: int
    rate_type: str
    first_occurrence_only: bool
    washout_period: Optional[int] = None
    status: WorkflowStatus = WorkflowStatus.PENDING
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def name(self) -> str:
        occurrence = "first" if self.first_occurrence_only else "all"
        return f"cohort_{self.cohort_id}_{self.rate_type}_{occurrence}"

    @property
    def execution_time(self) -> float:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return 0


class RatePipeline:
    """
    Runs compute_rate over a grid of cohorts and settings.

    Steps run in the order they were added. A failing step is recorded and,
    unless fail_fast is set, the remaining steps still run. An empty rate
    table marks the step EMPTY rather than FAILED.
    """

    def __init__(self, source: CdmSource, name: str = "rates",
                 calendar_periods: Optional[pd.DataFrame] = None):
        self.name = name
        self.source = source
        self.calendar_periods = calendar_periods
        self.config = get_config()

        self.steps: Dict[str, RateStep] = {}
        self.results: Dict[str, AnalysisResult] = {}
        self.start_time = None
        self.end_time = None
        self.status = WorkflowStatus.PENDING

    def add_step(self, cohort_id: int, rate_type: Optional[str] = None,
                 first_occurrence_only: Optional[bool] = None,
                 washout_period: Optional[int] = None) -> 'RatePipeline':
        """
        Queue one rate computation.

        Args:
            cohort_id: Cohort definition id
            rate_type: 'incidence' or 'prevalence' (None = config default)
            first_occurrence_only: None = config default
            washout_period: None = config default

        Returns:
            Self for method chaining
        """
        rate_type = self.config.rates.rate_type if rate_type is None else rate_type
        if rate_type not in RATE_TYPES:
            raise ConfigurationError(f"rate_type must be one of {list(RATE_TYPES)}, got {rate_type!r}")
        if first_occurrence_only is None:
            first_occurrence_only = self.config.rates.first_occurrence_only

        step = RateStep(cohort_id=cohort_id, rate_type=rate_type,
                        first_occurrence_only=first_occurrence_only, washout_period=washout_period)
        if step.name in self.steps:
            raise ValueError(f"Step '{step.name}' already exists in pipeline")

        self.steps[step.name] = step
        return self

    def add_grid(self, cohort_ids: Optional[Sequence[int]] = None,
                 rate_types: Sequence[str] = RATE_TYPES,
                 first_occurrence_options: Sequence[bool] = (True, False),
                 washout_period: Optional[int] = None) -> 'RatePipeline':
        """Queue every combination of cohort, rate type and first-occurrence flag."""
        cohort_ids = self.source.cohort_ids if cohort_ids is None else cohort_ids
        for cohort_id, rate_type, first_only in product(cohort_ids, rate_types, first_occurrence_options):
            self.add_step(cohort_id, rate_type, first_only, washout_period)
        return self

    def execute(self, steps_to_run: Optional[List[str]] = None,
                fail_fast: bool = False,
                save_results: bool = False) -> Dict[str, Any]:
        """
        Execute the queued steps.

        Args:
            steps_to_run: Step names to execute (None = all steps)
            fail_fast: Stop at the first failed step
            save_results: Save results and the report to the output directory

        Returns:
            Execution report with per-step status, error, timing and rows
        """
        logger.info(f"Starting rate pipeline: {self.name} ({len(self.steps)} steps)")

        self.start_time = datetime.now()
        self.status = WorkflowStatus.RUNNING

        for step_name, step in self.steps.items():
            if steps_to_run is not None and step_name not in steps_to_run:
                step.status = WorkflowStatus.SKIPPED
                logger.info(f"Skipping step: {step_name}")
                continue

            if not self._execute_step(step) and fail_fast:
                logger.error(f"Stopping pipeline after failed step '{step_name}'")
                break

        failed_steps = [name for name, step in self.steps.items() if step.status == WorkflowStatus.FAILED]
        if failed_steps:
            self.status = WorkflowStatus.FAILED
            logger.error(f"Pipeline failed. Failed steps: {failed_steps}")
        else:
            self.status = WorkflowStatus.COMPLETED
            logger.info("Pipeline completed successfully")

        self.end_time = datetime.now()
        execution_report = self._generate_execution_report()

        if save_results:
            self._save_pipeline_results(execution_report)

        return execution_report

    def _execute_step(self, step: RateStep) -> bool:
        """Run one step; False when it failed."""
        logger.info(f"Executing step: {step.name}")
        step.start_time = datetime.now()
        step.status = WorkflowStatus.RUNNING

        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", EmptyResultWarning)
                rates = compute_rate(
                    self.source,
                    step.cohort_id,
                    first_occurrence_only=step.first_occurrence_only,
                    washout_period=step.washout_period,
                    rate_type=step.rate_type,
                    calendar_periods=self.calendar_periods,
                )
        except Exception as e:
            step.status = WorkflowStatus.FAILED
            step.error = str(e)
            step.end_time = datetime.now()
            logger.error(f"Step '{step.name}' failed: {e}")
            logger.debug(traceback.format_exc())
            return False

        step.result = AnalysisResult(
            name=step.name,
            description=f"{step.rate_type} rate per 1,000 person-years for cohort {step.cohort_id}",
            data=rates,
            metadata={
                'cohort_id': step.cohort_id,
                'rate_type': step.rate_type,
                'first_occurrence_only': step.first_occurrence_only,
                'washout_period': step.washout_period,
            },
        )
        self.results[step.name] = step.result
        step.status = WorkflowStatus.EMPTY if step.result.is_empty else WorkflowStatus.COMPLETED
        step.end_time = datetime.now()

        logger.info(f"Step '{step.name}' {step.status.value} in {step.execution_time:.2f} seconds")
        return True

    def _generate_execution_report(self) -> Dict[str, Any]:
        total_time = (self.end_time - self.start_time).total_seconds() if self.end_time else 0

        step_reports = []
        for step in self.steps.values():
            step_reports.append({
                'step_name': step.name,
                'cohort_id': step.cohort_id,
                'rate_type': step.rate_type,
                'first_occurrence_only': step.first_occurrence_only,
                'status': step.status.value,
                'execution_time_seconds': step.execution_time,
                'error': step.error,
                'rows': len(step.result.data) if step.result is not None else 0,
            })

        def count(status: WorkflowStatus) -> int:
            return len([s for s in self.steps.values() if s.status == status])

        return {
            'pipeline_name': self.name,
            'overall_status': self.status.value,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'total_execution_time_seconds': total_time,
            'total_steps': len(self.steps),
            'completed_steps': count(WorkflowStatus.COMPLETED),
            'empty_steps': count(WorkflowStatus.EMPTY),
            'failed_steps': count(WorkflowStatus.FAILED),
            'skipped_steps': count(WorkflowStatus.SKIPPED),
            'step_details': step_reports,
        }

    def combined_rates(self) -> pd.DataFrame:
        """All non-empty rate tables stacked."""
        tables = [result.data for result in self.results.values() if not result.is_empty]
        if not tables:
            return pd.DataFrame()
        return pd.concat(tables, ignore_index=True)

    def _save_pipeline_results(self, execution_report: Dict[str, Any],
                               output_dir: Optional[Union[str, Path]] = None):
        """Save the report and every result to the output directory."""
        output_dir = Path(output_dir) if output_dir else self.config.paths.output_dir
        output_dir.mkdir(exist_ok=True, parents=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

        report_file = output_dir / f"pipeline_{self.name}_{timestamp}_report.json"
        with open(report_file, 'w') as f:
            json.dump(execution_report, f, indent=2, default=str)

        for result in self.results.values():
            result.save(output_dir)

        logger.info(f"Pipeline results saved to: {output_dir}")

    def get_step_result(self, step_name: str) -> Optional[AnalysisResult]:
        """The AnalysisResult a step produced, or None if it has not run."""
        if step_name not in self.steps:
            raise ValueError(f"Step '{step_name}' not found")
        return self.steps[step_name].result

    def get_pipeline_summary(self) -> Dict[str, Any]:
        """Step names, parameters and statuses without running anything."""
        return {
            'name': self.name,
            'total_steps': len(self.steps),
            'status': self.status.value,
            'step_status': {name: step.status.value for name, step in self.steps.items()},
        }
