import numpy as np
from typing import Callable, Union

from ..errors import ConfigurationError, ShapeMismatch
from .sumstats import get_summary_statistic

def _difference(model_summary:np.ndarray, obs_summary:np.ndarray) -> np.ndarray:
    model_summary = np.asarray(model_summary, dtype=np.float64)
    obs_summary = np.asarray(obs_summary, dtype=np.float64)
    if model_summary.shape != obs_summary.shape:
        raise ShapeMismatch(model_summary.shape, obs_summary.shape)
    return model_summary - obs_summary

def Euclidean(model_summary:np.ndarray, obs_summary:np.ndarray)-> float:
    """
    Compute the Euclidean distance (L2 norm) between simulated and observed summaries.
    Args:
        model_summary (np.ndarray): Summary of the simulated trajectories.
        obs_summary (np.ndarray): Summary of the observed trajectories (same shape).
    Returns:
        float: The Euclidean distance between the two summaries.
    """
    diff = _difference(model_summary, obs_summary)
    return float(np.sqrt(np.sum(diff ** 2)))

def SumSquaredDifferences(model_summary:np.ndarray, obs_summary:np.ndarray)-> float:
    """
    Compute the sum of squared differences between simulated and observed summaries.
    Args:
        model_summary (np.ndarray): Summary of the simulated trajectories.
        obs_summary (np.ndarray): Summary of the observed trajectories (same shape).
    Returns:
        float: The sum of squared differences.
    """
    diff = _difference(model_summary, obs_summary)
    return float(np.sum(diff ** 2))

def Manhattan(model_summary:np.ndarray, obs_summary:np.ndarray)-> float:
    """
    Compute the Manhattan distance (L1 norm) between simulated and observed summaries.
    Args:
        model_summary (np.ndarray): Summary of the simulated trajectories.
        obs_summary (np.ndarray): Summary of the observed trajectories (same shape).
    Returns:
        float: The Manhattan distance.
    """
    diff = _difference(model_summary, obs_summary)
    return float(np.sum(np.abs(diff)))

def Chebyshev(model_summary:np.ndarray, obs_summary:np.ndarray)-> float:
    """
    Compute the Chebyshev distance (L∞ norm) between simulated and observed summaries.
    Args:
        model_summary (np.ndarray): Summary of the simulated trajectories.
        obs_summary (np.ndarray): Summary of the observed trajectories (same shape).
    Returns:
        float: The Chebyshev distance.
    """
    diff = _difference(model_summary, obs_summary)
    if diff.size == 0:
        return 0.0
    return float(np.max(np.abs(diff)))

DISTANCE_METRICS = {
    'euclidean': Euclidean,
    'sum_squared': SumSquaredDifferences,
    'manhattan': Manhattan,
    'chebyshev': Chebyshev,
}

def get_distance_metric(distance_metric:Union[str, Callable]) -> Callable:
    """
    Resolve a distance metric given by name or as a callable.
    Args:
        distance_metric (str or callable): One of DISTANCE_METRICS keys or a function (model_summary, obs_summary) -> float.
    Returns:
        callable: The distance function.
    """
    if callable(distance_metric):
        return distance_metric
    try:
        return DISTANCE_METRICS[distance_metric]
    except KeyError:
        raise ConfigurationError(f"Unknown distance metric '{distance_metric}'. Valid metrics: {list(DISTANCE_METRICS.keys())}")

def evaluate_distance(simulated:np.ndarray, observed:np.ndarray, summary_statistic:Union[str, Callable] = 'keep_all', distance_metric:Union[str, Callable] = 'euclidean') -> float:
    """
    Distance between simulated and observed trajectories.

    Both matrices (n_trajectories x n_timepoints) are reduced with the same summary statistic
    before the metric is applied. The summaries must have identical shapes; nothing is broadcast
    or truncated.
    Args:
        simulated (np.ndarray): Simulated trajectories.
        observed (np.ndarray): Observed trajectories.
        summary_statistic (str or callable): Summary statistic name or function.
        distance_metric (str or callable): Distance metric name or function.
    Returns:
        float: Non-negative distance.
    Raises:
        ShapeMismatch: If the summaries have different shapes.
        ValueError: If the metric returns a negative or non-finite value.
    """
    summary_func = get_summary_statistic(summary_statistic)
    metric_func = get_distance_metric(distance_metric)
    sim_summary = np.asarray(summary_func(np.atleast_2d(np.asarray(simulated, dtype=np.float64))), dtype=np.float64)
    obs_summary = np.asarray(summary_func(np.atleast_2d(np.asarray(observed, dtype=np.float64))), dtype=np.float64)
    if sim_summary.shape != obs_summary.shape:
        raise ShapeMismatch(sim_summary.shape, obs_summary.shape)
    distance = float(metric_func(sim_summary, obs_summary))
    if np.isnan(distance) or distance < 0.0:
        if np.all(np.isfinite(sim_summary)):
            raise ValueError(f"Distance metric returned an invalid value: {distance}")
        # Diverged simulation (inf/nan trajectory) can never be accepted
        return float('inf')
    return distance
