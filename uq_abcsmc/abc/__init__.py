"""
Approximate Bayesian Computation (ABC) for UQ-ABCSMC.

This module provides the ABC-SMC model selection driver, the particle bookkeeping,
proposal kernels, priors and the direct/emulated trajectory scorers.
"""

from .abc_context import (
    ModelSelectionContext,
    run_abc_model_selection,
    run_population,
)
from .history import (
    ModelSelectionHistory,
    load_history,
)
from .kernels import (
    ProposalKernel,
    UniformKernel,
    NormalKernel,
    get_kernel,
)
from .particles import (
    Particle,
    ModelState,
    PopulationRecord,
    PopulationStore,
)
from .priors import (
    RV,
    Prior,
    as_prior,
)
from .scorers import (
    Score,
    TrajectoryScorer,
    DirectScorer,
    EmulatedScorer,
    model_evaluation_error,
)

__all__ = [
    'ModelSelectionContext',
    'run_abc_model_selection',
    'run_population',
    'ModelSelectionHistory',
    'load_history',
    'ProposalKernel',
    'UniformKernel',
    'NormalKernel',
    'get_kernel',
    'Particle',
    'ModelState',
    'PopulationRecord',
    'PopulationStore',
    'RV',
    'Prior',
    'as_prior',
    'Score',
    'TrajectoryScorer',
    'DirectScorer',
    'EmulatedScorer',
    'model_evaluation_error',
]
