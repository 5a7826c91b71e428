import logging
import threading
from typing import Optional, Tuple

import numpy as np
import torch
from botorch import fit_gpytorch_mll
from botorch.models.gp_regression import SingleTaskGP
from botorch.models.transforms.input import Normalize
from botorch.models.transforms.outcome import Standardize
from gpytorch.mlls import ExactMarginalLogLikelihood

from ..errors import DegenerateTrainingSet

logger = logging.getLogger(__name__)


def min_design_points(n_params: int) -> int:
    """Smallest training set accepted for a GP over ``n_params`` inputs."""
    return n_params + 2


class DistanceEmulator:
    """
    Gaussian process surrogate of the ABC distance as a function of the parameter vector.

    Attributes:
        model (SingleTaskGP): Fitted botorch model (inputs normalised, outcome standardised).
        n_params (int): Dimension of the parameter vector.
        n_train (int): Number of design points used for training.
    """

    def __init__(self, model: SingleTaskGP, n_params: int, n_train: int):
        self.model = model
        self.n_params = n_params
        self.n_train = n_train
        # Posterior caches are built lazily on first prediction
        self._lock = threading.Lock()

    def predict(self, params) -> Tuple[np.ndarray, np.ndarray]:
        """
        Predict the distance at one or several parameter vectors.
        Args:
            params (array-like): Shape (n_params,) or (n_points, n_params).
        Returns:
            tuple: (mean, std). Scalars for a single vector, arrays otherwise.
        """
        x = np.asarray(params, dtype=np.float64)
        single = x.ndim == 1
        x = np.atleast_2d(x)
        if x.shape[1] != self.n_params:
            raise ValueError(f"Emulator expects {self.n_params} parameters, got {x.shape[1]}")
        with self._lock, torch.no_grad():
            posterior = self.model.posterior(torch.tensor(x, dtype=torch.float64))
            mean = posterior.mean.squeeze(-1).numpy()
            std = posterior.variance.clamp_min(0.0).sqrt().squeeze(-1).numpy()
        if single:
            return float(mean[0]), float(std[0])
        return mean, std

    def state_dict(self) -> dict:
        return self.model.state_dict()


def fit_distance_emulator(design_params, design_distances, model_index: Optional[int] = None, population: Optional[int] = None) -> DistanceEmulator:
    """
    Fit a GP mapping parameter vectors to distances.

    Non-finite distances (diverged simulations) are dropped before training.
    Args:
        design_params (array-like): Design points, shape (n_points, n_params).
        design_distances (array-like): True distances at the design points, shape (n_points,).
        model_index (int, optional): Model index, for error context.
        population (int, optional): Population index, for error context.
    Returns:
        DistanceEmulator: The fitted emulator.
    Raises:
        DegenerateTrainingSet: Too few finite points, or all distances identical.
    """
    x = np.atleast_2d(np.asarray(design_params, dtype=np.float64))
    y = np.asarray(design_distances, dtype=np.float64).reshape(-1)
    if x.shape[0] != y.shape[0]:
        raise ValueError(f"{x.shape[0]} design points but {y.shape[0]} distances")
    finite = np.isfinite(y) & np.all(np.isfinite(x), axis=1)
    x, y = x[finite], y[finite]
    n_params = x.shape[1]
    required = min_design_points(n_params)
    if x.shape[0] < required:
        raise DegenerateTrainingSet(
            f"{x.shape[0]} usable design points, at least {required} required for {n_params} parameters",
            model_index, population,
        )
    if np.ptp(y) == 0.0:
        raise DegenerateTrainingSet(f"all {len(y)} design distances are identical ({y[0]})", model_index, population)
    if np.any(np.ptp(x, axis=0) == 0.0):
        raise DegenerateTrainingSet("design points do not vary in every parameter", model_index, population)

    train_x = torch.tensor(x, dtype=torch.float64)
    train_y = torch.tensor(y, dtype=torch.float64).unsqueeze(-1)
    model = SingleTaskGP(
        train_x,
        train_y,
        input_transform=Normalize(d=n_params),
        outcome_transform=Standardize(m=1),
    )
    mll = ExactMarginalLogLikelihood(model.likelihood, model)
    fit_gpytorch_mll(mll)
    model.eval()
    logger.debug(f"Fitted distance emulator on {x.shape[0]} points (population {population}, model {model_index})")
    return DistanceEmulator(model, n_params, x.shape[0])
