"""
Batch workflows over the analytics modules.
"""

from .pipeline import RatePipeline, RateStep, WorkflowStatus

__all__ = [
    'RatePipeline',
    'RateStep',
    'WorkflowStatus',
]
