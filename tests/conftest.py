# tests/conftest.py
"""Shared models and fixtures for the ADVI test suite."""

import numpy as np
import pytest

from ADVI import FunctionModel, ParameterSpec, Transform


def normal_at_three():
    """Single unconstrained parameter with log density -0.5 * (x - 3)^2."""
    return FunctionModel(lambda x: -0.5 * (x[0] - 3.0) ** 2,
                         lambda x: np.array([-(x[0] - 3.0)]))


def lognormal_target():
    """Positive parameter whose posterior is LogNormal(0, 1)."""
    def log_density(x):
        return -np.log(x[0]) - 0.5 * np.log(x[0]) ** 2

    def gradient(x):
        return np.array([-1.0 / x[0] - np.log(x[0]) / x[0]])

    return FunctionModel(log_density, gradient)


@pytest.fixture
def scalar_real():
    return Transform([ParameterSpec("x")])


@pytest.fixture
def scalar_positive():
    return Transform([ParameterSpec("x", "positive")])


@pytest.fixture
def normal_model():
    return normal_at_three()


@pytest.fixture
def lognormal_model():
    return lognormal_target()


@pytest.fixture
def mixed_transform():
    """One parameter of every constraint kind."""
    return Transform([
        ParameterSpec("mu", "real", 2),
        ParameterSpec("sigma", "positive"),
        ParameterSpec("shift", "lower", lower=-1.0),
        ParameterSpec("cap", "upper", upper=2.0),
        ParameterSpec("rho", "interval", lower=-3.0, upper=5.0),
        ParameterSpec("cuts", "ordered", 3),
        ParameterSpec("weights", "simplex", 4),
    ])


@pytest.fixture
def mixed_theta():
    return np.array([-2.5, 4.1,          # mu
                     0.3,                # sigma
                     -0.5,               # shift
                     1.9,                # cap
                     4.0,                # rho
                     -1.0, 0.5, 2.0,     # cuts
                     0.1, 0.2, 0.3, 0.4  # weights
                     ])
