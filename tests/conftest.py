"""Shared fixtures for the UQ-ABCSMC tests."""
import logging

import numpy as np
import pytest

from uq_abcsmc import RV

TIME = np.linspace(0.0, 10.0, 11)


def logistic_growth(params):
    """Closed-form logistic growth x(t) = K / (1 + (K - 1) exp(-r t)), x(0) = 1."""
    r, K = params
    return (K / (1.0 + (K - 1.0) * np.exp(-r * TIME)))[None, :]


def linear_growth(params):
    """Linear growth x(t) = 1 + s t."""
    s, = params
    return (1.0 + s * TIME)[None, :]


@pytest.fixture
def logger():
    test_logger = logging.getLogger("uq_abcsmc.tests")
    test_logger.setLevel(logging.WARNING)
    return test_logger


@pytest.fixture
def observed():
    return logistic_growth([1.0, 10.0])


@pytest.fixture
def models():
    return [
        {
            'name': 'logistic',
            'simulate': logistic_growth,
            'prior': {'r': RV('uniform', 0.0, 3.0), 'K': RV('uniform', 5.0, 10.0)},
        },
        {
            'name': 'linear',
            'simulate': linear_growth,
            'prior': {'s': RV('uniform', 0.0, 2.0)},
        },
    ]
