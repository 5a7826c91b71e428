"""
Trajectory scorers: turn a candidate parameter vector into a distance to the observed data.

The driver only talks to :class:`TrajectoryScorer`. :class:`DirectScorer` runs the simulator
for every candidate; :class:`EmulatedScorer` trains a GP surrogate of the distance at the start
of each population and scores candidates with its prediction.
"""
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, NamedTuple, Optional, Union

import numpy as np
import torch

from ..emulation import DistanceEmulator, fit_distance_emulator
from ..errors import DegenerateTrainingSet, ShapeMismatch
from ..utils.distances import evaluate_distance
from .particles import ModelState


class Score(NamedTuple):
    distance: float
    accepted: bool
    n_simulations: int
    std: float = 0.0


def model_evaluation_error(error: Exception, population: int, model: ModelState) -> Exception:
    """Attach population and model context to an error raised while evaluating a model."""
    if isinstance(error, ShapeMismatch):
        return ShapeMismatch(error.simulated_shape, error.observed_shape, population, model.index)
    return RuntimeError(f"Error in model evaluation (population {population}, model '{model.name}'): {error}")


class TrajectoryScorer(ABC):
    """
    Common interface of the direct and emulated scoring strategies.

    Args:
        observed (np.ndarray): Observed trajectories (n_trajectories x n_timepoints).
        summary_statistic (str or callable): Summary statistic applied to both matrices.
        distance_metric (str or callable): Distance metric between summaries.
        logger (logging.Logger, optional): Logger for progress messages.
    """
    uses_emulator = False

    def __init__(self, observed: np.ndarray, summary_statistic: Union[str, Callable] = 'keep_all', distance_metric: Union[str, Callable] = 'euclidean', logger: Optional[logging.Logger] = None):
        self.observed = observed
        self.summary_statistic = summary_statistic
        self.distance_metric = distance_metric
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.design_simulations = 0

    def simulate_distance(self, model: ModelState, params: np.ndarray) -> float:
        """Run the true simulator and compute the distance to the observed data."""
        trajectories = np.atleast_2d(np.asarray(model.simulate(params), dtype=np.float64))
        return evaluate_distance(trajectories, self.observed, self.summary_statistic, self.distance_metric)

    def prepare_population(self, population: int, models: List[ModelState], alive: List[bool], propose: Callable, rng: np.random.Generator, map_func: Callable = map):
        """Hook called before the acceptance loop of every population."""
        self.design_simulations = 0

    def emulated_models(self, n_models: int) -> List[bool]:
        return [False] * n_models

    @abstractmethod
    def score(self, model: ModelState, params: np.ndarray, threshold: float) -> Score:
        """Distance of ``params`` and whether it is accepted at ``threshold``."""


class DirectScorer(TrajectoryScorer):
    """Score every candidate with the true simulator."""

    def score(self, model, params, threshold):
        distance = self.simulate_distance(model, params)
        return Score(distance, distance <= threshold, 1)


class EmulatedScorer(TrajectoryScorer):
    """
    Score candidates with a per-model GP emulator of the distance.

    A candidate is accepted when ``mean + confidence * std <= threshold``; the recorded distance is
    the predicted mean. With ``verify=True`` the emulator acts as a pre-filter and accepted
    candidates are confirmed by the true simulator. When a model's design sample is degenerate the
    scorer falls back to direct simulation for that model for the current population.

    Args:
        n_design_points (int): Design points drawn per model and population.
        confidence (float): Multiplier of the predictive standard deviation.
        verify (bool): Confirm emulator acceptances with the true simulator.
    """
    uses_emulator = True

    def __init__(self, observed, summary_statistic='keep_all', distance_metric='euclidean', logger=None, n_design_points: int = 50, confidence: float = 1.0, verify: bool = False):
        super().__init__(observed, summary_statistic, distance_metric, logger)
        self.n_design_points = n_design_points
        self.confidence = confidence
        self.verify = verify
        self.emulators: Dict[int, DistanceEmulator] = {}

    def _draw_design(self, model: ModelState, propose: Callable, rng: np.random.Generator) -> np.ndarray:
        max_draws = 100 * self.n_design_points
        design = []
        draws = 0
        while len(design) < self.n_design_points and draws < max_draws:
            params = propose(model.index, rng)
            draws += 1
            if model.prior.in_support(params):
                design.append(params)
        return np.array(design, dtype=np.float64).reshape(len(design), model.n_params)

    def _design_distance(self, model, params, population):
        try:
            return self.simulate_distance(model, params)
        except Exception as e:
            raise model_evaluation_error(e, population, model) from e

    def prepare_population(self, population, models, alive, propose, rng, map_func=map):
        """Train one emulator per live model on design points drawn under the current proposal."""
        self.design_simulations = 0
        self.emulators = {}
        torch.manual_seed(int(rng.integers(2**31 - 1)))
        for model in models:
            if not alive[model.index]:
                continue
            design = self._draw_design(model, propose, rng)
            distances = np.array(list(map_func(lambda p, m=model: self._design_distance(m, p, population), design)), dtype=np.float64)
            self.design_simulations += len(design)
            try:
                self.emulators[model.index] = fit_distance_emulator(design, distances, model.index, population)
                self.logger.info(f"🧠 Population {population}: emulator for model '{model.name}' trained on {len(design)} design points")
            except DegenerateTrainingSet as e:
                self.logger.warning(f"⚠️ {e}. Falling back to direct simulation for model '{model.name}'.")

    def emulated_models(self, n_models):
        return [m in self.emulators for m in range(n_models)]

    def score(self, model, params, threshold):
        emulator = self.emulators.get(model.index)
        if emulator is None:
            distance = self.simulate_distance(model, params)
            return Score(distance, distance <= threshold, 1)
        mean, std = emulator.predict(params)
        # Negative predictions are clipped to keep distances non-negative
        mean = max(mean, 0.0)
        accepted = mean + self.confidence * std <= threshold
        if not accepted:
            return Score(mean, False, 0, std)
        if self.verify:
            distance = self.simulate_distance(model, params)
            return Score(distance, distance <= threshold, 1, std)
        return Score(mean, True, 0, std)
