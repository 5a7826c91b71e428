import numpy as np
from typing import Callable, Union

from ..errors import ConfigurationError

# Every summary statistic maps a trajectory matrix (n_trajectories x n_timepoints) to an array.

def summ_func_KeepAll(trajectories:np.ndarray) -> np.ndarray:
    """Identity: the raw trajectories are compared elementwise."""
    return np.asarray(trajectories, dtype=np.float64)

def summ_func_FinalValues(trajectories:np.ndarray) -> np.ndarray:
    """
    Value of each trajectory at the last time point.

    Parameters:
    - trajectories: np.ndarray -> Matrix (n_trajectories x n_timepoints).

    Returns:
    - np.ndarray -> Vector with n_trajectories entries.
    """
    return np.asarray(trajectories, dtype=np.float64)[:, -1]

def summ_func_InitialValues(trajectories:np.ndarray) -> np.ndarray:
    """Value of each trajectory at the first time point."""
    return np.asarray(trajectories, dtype=np.float64)[:, 0]

def summ_func_Mean(trajectories:np.ndarray) -> np.ndarray:
    """Time average of each trajectory."""
    return np.mean(np.asarray(trajectories, dtype=np.float64), axis=1)

def summ_func_Moments(trajectories:np.ndarray) -> np.ndarray:
    """
    First two moments over time of each trajectory.

    Parameters:
    - trajectories: np.ndarray -> Matrix (n_trajectories x n_timepoints).

    Returns:
    - np.ndarray -> Matrix (n_trajectories x 2) with the mean and standard deviation.
    """
    data = np.asarray(trajectories, dtype=np.float64)
    return np.stack([np.mean(data, axis=1), np.std(data, axis=1)], axis=1)

def summ_func_MinMax(trajectories:np.ndarray) -> np.ndarray:
    """Minimum and maximum over time of each trajectory, shape (n_trajectories x 2)."""
    data = np.asarray(trajectories, dtype=np.float64)
    return np.stack([np.min(data, axis=1), np.max(data, axis=1)], axis=1)

SUMMARY_STATISTICS = {
    'keep_all': summ_func_KeepAll,
    'final_values': summ_func_FinalValues,
    'initial_values': summ_func_InitialValues,
    'mean': summ_func_Mean,
    'moments': summ_func_Moments,
    'min_max': summ_func_MinMax,
}

def get_summary_statistic(summary_statistic:Union[str, Callable]) -> Callable:
    """
    Resolve a summary statistic given by name or as a callable.

    Parameters:
    - summary_statistic: str or callable -> One of SUMMARY_STATISTICS keys or a function of the trajectory matrix.

    Returns:
    - callable -> The summary statistic function.
    """
    if callable(summary_statistic):
        return summary_statistic
    try:
        return SUMMARY_STATISTICS[summary_statistic]
    except KeyError:
        raise ConfigurationError(f"Unknown summary statistic '{summary_statistic}'. Valid statistics: {list(SUMMARY_STATISTICS.keys())}")
