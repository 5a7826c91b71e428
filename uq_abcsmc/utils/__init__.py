"""
Utilities module for UQ-ABCSMC.

This module provides the summary statistics and distance metrics used to compare
simulated and observed trajectories.
"""
from .distances import (
    Euclidean,
    SumSquaredDifferences,
    Manhattan,
    Chebyshev,
    DISTANCE_METRICS,
    get_distance_metric,
    evaluate_distance,
)

from .sumstats import (
    summ_func_KeepAll,
    summ_func_FinalValues,
    summ_func_InitialValues,
    summ_func_Mean,
    summ_func_Moments,
    summ_func_MinMax,
    SUMMARY_STATISTICS,
    get_summary_statistic,
)

__all__ = [
    'Euclidean',
    'SumSquaredDifferences',
    'Manhattan',
    'Chebyshev',
    'DISTANCE_METRICS',
    'get_distance_metric',
    'evaluate_distance',
    'summ_func_KeepAll',
    'summ_func_FinalValues',
    'summ_func_InitialValues',
    'summ_func_Mean',
    'summ_func_Moments',
    'summ_func_MinMax',
    'SUMMARY_STATISTICS',
    'get_summary_statistic',
]
