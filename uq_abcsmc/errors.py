"""
Exceptions raised by UQ-ABCSMC.

Fatal conditions (configuration, shape, budget) abort the whole run. Prior support
violations are recovered inside the sampler as silent rejections, and degenerate
emulator training sets make the emulated scorer fall back to direct simulation.
"""
from typing import Optional


class UQABCSMCError(Exception):
    """Base class for all UQ-ABCSMC errors."""


class ConfigurationError(UQABCSMCError, ValueError):
    """Invalid run configuration, detected before any population runs."""


class PriorSupportViolation(UQABCSMCError, ValueError):
    """Parameter vector outside the support of a prior."""

    def __init__(self, params, model_index: Optional[int] = None):
        self.params = params
        self.model_index = model_index
        where = f" of model {model_index}" if model_index is not None else ""
        super().__init__(f"Parameter vector {list(params)} has zero density under the prior{where}.")


class ShapeMismatch(UQABCSMCError, ValueError):
    """Summary statistics of simulated and observed data have different shapes."""

    def __init__(self, simulated_shape, observed_shape, population: Optional[int] = None, model_index: Optional[int] = None):
        self.simulated_shape = tuple(simulated_shape)
        self.observed_shape = tuple(observed_shape)
        self.population = population
        self.model_index = model_index
        msg = f"Summary statistic shape {self.simulated_shape} does not match observed shape {self.observed_shape}"
        if population is not None:
            msg += f" (population {population}, model {model_index})"
        super().__init__(msg + ".")


class ExhaustedBudget(UQABCSMCError, RuntimeError):
    """A population could not reach its target number of accepted particles."""

    def __init__(self, population: int, threshold: float, accepted: int, n_particles: int, attempts: int):
        self.population = population
        self.threshold = threshold
        self.accepted = accepted
        self.n_particles = n_particles
        self.attempts = attempts
        super().__init__(
            f"Population {population} (threshold {threshold}) accepted only {accepted}/{n_particles} "
            f"particles after {attempts} attempts."
        )


class DegenerateTrainingSet(UQABCSMCError, RuntimeError):
    """The design-of-experiments sample cannot train an emulator."""

    def __init__(self, reason: str, model_index: Optional[int] = None, population: Optional[int] = None):
        self.reason = reason
        self.model_index = model_index
        self.population = population
        where = ""
        if population is not None or model_index is not None:
            where = f" (population {population}, model {model_index})"
        super().__init__(f"Degenerate emulator training set{where}: {reason}")
