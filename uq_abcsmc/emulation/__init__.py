"""
Emulation module for UQ-ABCSMC.

Gaussian process surrogates (botorch/gpytorch) of the ABC distance, trained once per
population from design points drawn under the current proposal distribution.
"""

from .gp_emulator import (
    DistanceEmulator,
    fit_distance_emulator,
    min_design_points,
)

__all__ = [
    'DistanceEmulator',
    'fit_distance_emulator',
    'min_design_points',
]
