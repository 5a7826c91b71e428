"""
Particle and population bookkeeping for ABC-SMC model selection.
"""
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import numpy as np

from .kernels import ProposalKernel
from .priors import Prior


@dataclass
class Particle:
    """Accepted (or candidate) parameter vector of one model."""
    model_index: int
    params: np.ndarray
    distance: float
    weight: float = 1.0


@dataclass
class ModelState:
    """Read-only description of one candidate model plus its proposal kernel."""
    index: int
    name: str
    simulate: Callable
    prior: Prior
    kernel: ProposalKernel

    @property
    def n_params(self) -> int:
        return self.prior.n_params


@dataclass
class PopulationRecord:
    """
    Completed population.

    Attributes:
        index (int): Population index in the schedule.
        threshold (float): Acceptance threshold of the population.
        accepted_counts (np.ndarray): Accepted particles per model (sums to n_particles).
        proposed_counts (np.ndarray): Scored or support-rejected candidates per model.
        params (list): Per model, accepted parameter vectors (n_accepted x n_params).
        weights (list): Per model, unnormalised importance weights.
        distances (list): Per model, distances of the accepted particles.
        emulated (list): Per model, whether the emulator scored the candidates.
        n_simulations (int): Calls to the true simulator during the population.
    """
    index: int
    threshold: float
    accepted_counts: np.ndarray
    proposed_counts: np.ndarray
    params: List[np.ndarray]
    weights: List[np.ndarray]
    distances: List[np.ndarray]
    emulated: List[bool] = field(default_factory=list)
    n_simulations: int = 0

    @property
    def n_particles(self) -> int:
        return int(np.sum(self.accepted_counts))

    @property
    def model_probabilities(self) -> np.ndarray:
        return self.accepted_counts / float(self.n_particles)

    @property
    def acceptance_rates(self) -> np.ndarray:
        proposed = np.asarray(self.proposed_counts, dtype=np.float64)
        rates = np.zeros_like(proposed)
        np.divide(self.accepted_counts, proposed, out=rates, where=proposed > 0)
        return rates

    def normalized_weights(self, model_index: int) -> np.ndarray:
        weights = self.weights[model_index]
        return weights / np.sum(weights)

    def particles(self) -> List[Particle]:
        out = []
        for m, (params, weights, distances) in enumerate(zip(self.params, self.weights, self.distances)):
            for p, w, d in zip(params, weights, distances):
                out.append(Particle(m, np.array(p), float(d), float(w)))
        return out


class PopulationStore:
    """
    Accepted particles and marginal counts of one ABC-SMC run.

    Owned by a single run; acceptance is check-and-increment under a lock so that no more than
    ``n_particles`` particles are recorded for a population even with concurrent scorers.
    """

    def __init__(self, models: List[ModelState], n_particles: int):
        self.models = models
        self.n_models = len(models)
        self.n_particles = n_particles
        self.populations: List[PopulationRecord] = []
        self._lock = threading.Lock()
        self._current_index: Optional[int] = None
        self._current_threshold: Optional[float] = None
        self._reset_current()

    def _reset_current(self):
        self._accepted: List[List[Particle]] = [[] for _ in range(self.n_models)]
        self._accepted_counts = np.zeros(self.n_models, dtype=int)
        self._proposed_counts = np.zeros(self.n_models, dtype=int)
        self._accepted_total = 0

    def start_population(self, index: int, threshold: float):
        if self._current_index is not None:
            raise RuntimeError(f"Population {self._current_index} has not been finalized")
        self._reset_current()
        self._current_index = index
        self._current_threshold = threshold

    @property
    def accepted_total(self) -> int:
        return self._accepted_total

    @property
    def is_full(self) -> bool:
        return self._accepted_total >= self.n_particles

    @property
    def accepted_counts(self) -> np.ndarray:
        return self._accepted_counts.copy()

    @property
    def proposed_counts(self) -> np.ndarray:
        return self._proposed_counts.copy()

    def record_proposal(self, model_index: int):
        with self._lock:
            self._proposed_counts[model_index] += 1

    def try_accept(self, particle: Particle) -> bool:
        """Store ``particle`` unless the population already holds ``n_particles`` particles."""
        if particle.distance > self._current_threshold:
            raise ValueError(
                f"Particle distance {particle.distance} exceeds threshold {self._current_threshold}"
            )
        with self._lock:
            if self._accepted_total >= self.n_particles:
                return False
            self._accepted[particle.model_index].append(particle)
            self._accepted_counts[particle.model_index] += 1
            self._accepted_total += 1
            return True

    def finalize_population(self, emulated: Optional[List[bool]] = None, n_simulations: int = 0) -> PopulationRecord:
        if self._current_index is None:
            raise RuntimeError("No population in progress")
        if self._accepted_total != self.n_particles:
            raise RuntimeError(
                f"Population {self._current_index} holds {self._accepted_total}/{self.n_particles} particles"
            )
        params, weights, distances = [], [], []
        for m, model in enumerate(self.models):
            accepted = self._accepted[m]
            params.append(np.array([p.params for p in accepted], dtype=np.float64).reshape(len(accepted), model.n_params))
            weights.append(np.array([p.weight for p in accepted], dtype=np.float64))
            distances.append(np.array([p.distance for p in accepted], dtype=np.float64))
        record = PopulationRecord(
            index=self._current_index,
            threshold=self._current_threshold,
            accepted_counts=self._accepted_counts.copy(),
            proposed_counts=self._proposed_counts.copy(),
            params=params,
            weights=weights,
            distances=distances,
            emulated=list(emulated) if emulated is not None else [False] * self.n_models,
            n_simulations=n_simulations,
        )
        self.populations.append(record)
        self._current_index = None
        self._current_threshold = None
        return record

    @property
    def last_population(self) -> Optional[PopulationRecord]:
        return self.populations[-1] if self.populations else None
