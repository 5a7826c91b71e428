"""
Component-wise perturbation kernels used to move particles between populations.

A kernel is fitted on the particles of one model in the previous population, then used to
perturb ancestors and to evaluate the transition density K(ancestor -> candidate) that enters
the importance weight.
"""
import copy
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Union

import numpy as np
from scipy.stats import norm

from ..errors import ConfigurationError
from .priors import Prior


class ProposalKernel(ABC):
    """Interface of a per-model, per-parameter perturbation kernel."""

    def __init__(self, scale: Optional[Sequence[float]] = None):
        # A user-given scale is kept fixed across populations
        self.fixed_scale = None if scale is None else np.asarray(scale, dtype=np.float64)
        self.scale = self.fixed_scale

    def fit(self, particles: np.ndarray, weights: np.ndarray, prior: Prior):
        """Adapt the kernel scale to the previous population of the model."""
        particles = np.atleast_2d(np.asarray(particles, dtype=np.float64))
        weights = np.asarray(weights, dtype=np.float64)
        if self.fixed_scale is not None:
            if self.fixed_scale.shape != (particles.shape[1],):
                raise ConfigurationError(
                    f"Kernel scale has {self.fixed_scale.size} entries for {particles.shape[1]} parameters"
                )
            self.scale = self.fixed_scale
            return self
        scale = self._adaptive_scale(particles, weights / np.sum(weights))
        floor = 0.1 * prior.spread()
        self.scale = np.where(scale > 0.0, scale, floor)
        return self

    @abstractmethod
    def _adaptive_scale(self, particles: np.ndarray, weights: np.ndarray) -> np.ndarray:
        """Per-parameter scale computed from normalised weights."""

    @abstractmethod
    def perturb(self, params: np.ndarray, rng: np.random.Generator) -> np.ndarray:
        """Draw a candidate around ``params``."""

    @abstractmethod
    def density(self, ancestors: np.ndarray, params: np.ndarray) -> np.ndarray:
        """Transition densities K(ancestor_j -> params), one entry per ancestor row."""

    def _check_fitted(self):
        if self.scale is None:
            raise RuntimeError(f"{type(self).__name__} must be fitted before use")


class UniformKernel(ProposalKernel):
    """
    Uniform perturbation on [x - h, x + h] for each parameter.

    The adaptive half-width h is half the range of the previous particles.
    """

    def _adaptive_scale(self, particles, weights):
        return 0.5 * (np.max(particles, axis=0) - np.min(particles, axis=0))

    def perturb(self, params, rng):
        self._check_fitted()
        params = np.asarray(params, dtype=np.float64)
        return params + rng.uniform(-self.scale, self.scale)

    def density(self, ancestors, params):
        self._check_fitted()
        ancestors = np.atleast_2d(np.asarray(ancestors, dtype=np.float64))
        inside = np.all(np.abs(np.asarray(params, dtype=np.float64) - ancestors) <= self.scale, axis=1)
        return inside * np.prod(1.0 / (2.0 * self.scale))


class NormalKernel(ProposalKernel):
    """
    Gaussian perturbation with independent components.

    The adaptive variance is twice the weighted variance of the previous particles.
    """

    def _adaptive_scale(self, particles, weights):
        mean = np.sum(weights[:, None] * particles, axis=0)
        variance = np.sum(weights[:, None] * (particles - mean) ** 2, axis=0)
        return np.sqrt(2.0 * variance)

    def perturb(self, params, rng):
        self._check_fitted()
        params = np.asarray(params, dtype=np.float64)
        return params + rng.normal(0.0, self.scale)

    def density(self, ancestors, params):
        self._check_fitted()
        ancestors = np.atleast_2d(np.asarray(ancestors, dtype=np.float64))
        return np.prod(norm.pdf(np.asarray(params, dtype=np.float64), loc=ancestors, scale=self.scale), axis=1)


KERNELS = {
    'uniform': UniformKernel,
    'normal': NormalKernel,
}


def get_kernel(kernel: Union[str, ProposalKernel]) -> ProposalKernel:
    """Return a fresh kernel from a name or a copy of a kernel instance."""
    if isinstance(kernel, ProposalKernel):
        return copy.deepcopy(kernel)
    try:
        return KERNELS[kernel]()
    except (KeyError, TypeError):
        raise ConfigurationError(f"Unknown kernel '{kernel}'. Valid kernels: {list(KERNELS.keys())}")
