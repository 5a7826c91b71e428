"""
UQ-ABCSMC: Approximate Bayesian Computation model selection

This package provides ABC-SMC model selection between competing dynamical-system models,
with optional Gaussian process emulation of the distance to the observed data.
"""

from uq_abcsmc.VERSION import __version__
from uq_abcsmc.errors import (
    UQABCSMCError,
    ConfigurationError,
    PriorSupportViolation,
    ShapeMismatch,
    ExhaustedBudget,
    DegenerateTrainingSet,
)

# Import submodules to make them available
from . import utils
from . import emulation
from . import database
from . import abc

from uq_abcsmc.abc import (
    ModelSelectionContext,
    run_abc_model_selection,
    ModelSelectionHistory,
    load_history,
    Prior,
    RV,
)

__all__ = [
    '__version__',
    'UQABCSMCError',
    'ConfigurationError',
    'PriorSupportViolation',
    'ShapeMismatch',
    'ExhaustedBudget',
    'DegenerateTrainingSet',
    'ModelSelectionContext',
    'run_abc_model_selection',
    'ModelSelectionHistory',
    'load_history',
    'Prior',
    'RV',
    'abc',
    'emulation',
    'database',
    'utils',
]
