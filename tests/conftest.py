"""
pytest configuration and shared fixtures.
"""

import pytest
import numpy as np


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def knots_0125():
    """Knot vector with boundary {0, 5} and internal knots {1, 2}."""
    return np.array([0.0, 1.0, 2.0, 5.0])


@pytest.fixture
def coefs_0125():
    """Simplex coefficients for knots_0125 with degree 3 (6 basis terms)."""
    return np.array([0.1, 0.2, 0.25, 0.15, 0.2, 0.1])


@pytest.fixture
def weibull_data(rng):
    """Right-censored Weibull(shape 1.5, scale 4) times with one binary covariate."""
    n = 120
    trt = (rng.uniform(size=n) < 0.5).astype(float)
    scale = 4.0 * np.exp(0.4 * trt)
    t_event = scale * rng.weibull(1.5, size=n)
    t_cens = rng.uniform(2.0, 8.0, size=n)
    time = np.minimum(t_event, t_cens)
    event = (t_event <= t_cens).astype(float)
    return time, event, trt.reshape(-1, 1)
