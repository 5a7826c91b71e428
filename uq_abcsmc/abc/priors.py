"""
Prior distributions over model parameters.

A prior is an ordered list of independent univariate distributions, one per parameter.
Any object exposing ``sample(rng)``/``density(x)`` or scipy's ``rvs``/``pdf`` can be used
as a component; :class:`RV` wraps a named ``scipy.stats`` distribution.
"""
from typing import List, Optional, Sequence

import numpy as np
from scipy import stats

from ..errors import ConfigurationError, PriorSupportViolation


class RV:
    """
    Univariate random variable backed by ``scipy.stats``.

    Example:
        RV('uniform', 0.0, 2.0)        # uniform on [0, 2]
        RV('norm', loc=1.0, scale=0.1)
    """

    def __init__(self, name: str, *args, **kwargs):
        try:
            dist_class = getattr(stats, name)
        except AttributeError:
            raise ConfigurationError(f"Unknown scipy.stats distribution '{name}'")
        self.name = name
        self.args = args
        self.kwargs = kwargs
        self.distribution = dist_class(*args, **kwargs)

    def sample(self, rng: np.random.Generator) -> float:
        return float(self.distribution.rvs(random_state=rng))

    def density(self, x: float) -> float:
        return float(self.distribution.pdf(x))

    def std(self) -> float:
        return float(self.distribution.std())

    def __repr__(self):
        params = [repr(a) for a in self.args] + [f"{k}={v!r}" for k, v in self.kwargs.items()]
        return f"RV({self.name!r}, {', '.join(params)})"


class _ScipyComponent:
    """Adapter for a frozen scipy distribution (``rvs``/``pdf``)."""

    def __init__(self, distribution):
        self.distribution = distribution

    def sample(self, rng: np.random.Generator) -> float:
        return float(self.distribution.rvs(random_state=rng))

    def density(self, x: float) -> float:
        return float(self.distribution.pdf(x))

    def std(self) -> float:
        return float(self.distribution.std())


def _as_component(component):
    if hasattr(component, 'sample') and hasattr(component, 'density'):
        return component
    if hasattr(component, 'rvs') and hasattr(component, 'pdf'):
        return _ScipyComponent(component)
    raise ConfigurationError(f"Prior component {component!r} must expose sample()/density() or rvs()/pdf()")


class Prior:
    """
    Product of independent univariate distributions.

    Args:
        components (list): Univariate distributions, one per parameter.
        parameter_names (list, optional): Names of the parameters. Defaults to par_0, par_1, ...
    """

    def __init__(self, components: Sequence, parameter_names: Optional[List[str]] = None):
        if len(components) == 0:
            raise ConfigurationError("A prior needs at least one parameter distribution")
        self.components = [_as_component(c) for c in components]
        if parameter_names is None:
            parameter_names = [f"par_{i}" for i in range(len(self.components))]
        if len(parameter_names) != len(self.components):
            raise ConfigurationError(
                f"{len(parameter_names)} parameter names given for {len(self.components)} prior components"
            )
        self.parameter_names = list(parameter_names)

    @classmethod
    def from_dict(cls, dic_components: dict) -> "Prior":
        """Build a prior from an ordered {parameter_name: distribution} dictionary."""
        return cls(list(dic_components.values()), list(dic_components.keys()))

    def __len__(self):
        return len(self.components)

    @property
    def n_params(self) -> int:
        return len(self.components)

    def sample(self, rng: np.random.Generator) -> np.ndarray:
        return np.array([c.sample(rng) for c in self.components], dtype=np.float64)

    def density(self, params) -> float:
        params = np.asarray(params, dtype=np.float64)
        if params.shape != (self.n_params,):
            raise ValueError(f"Expected {self.n_params} parameters, got shape {params.shape}")
        value = 1.0
        for component, x in zip(self.components, params):
            value *= component.density(x)
            if value == 0.0:
                return 0.0
        return value

    def in_support(self, params) -> bool:
        return self.density(params) > 0.0

    def check_support(self, params, model_index: Optional[int] = None) -> float:
        """Prior density of ``params``; raises PriorSupportViolation if it is zero."""
        density = self.density(params)
        if not density > 0.0:
            raise PriorSupportViolation(params, model_index)
        return density

    def spread(self) -> np.ndarray:
        """Per-parameter standard deviation (1.0 where the component does not provide one)."""
        spread = []
        for component in self.components:
            try:
                value = component.std()
            except (AttributeError, TypeError, ValueError):
                value = np.nan
            spread.append(value if np.isfinite(value) and value > 0 else 1.0)
        return np.array(spread, dtype=np.float64)


def as_prior(prior, parameter_names: Optional[List[str]] = None) -> Prior:
    """Coerce a Prior, a list of distributions or a {name: distribution} dict into a Prior."""
    if isinstance(prior, Prior):
        return prior
    if isinstance(prior, dict):
        return Prior.from_dict(prior)
    if isinstance(prior, (list, tuple)):
        return Prior(prior, parameter_names)
    raise ConfigurationError(f"Unsupported prior type: {type(prior).__name__}")
