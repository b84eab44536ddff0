"""
Pytest configuration and shared fixtures for nutsmc tests.
"""

import jax
import matplotlib

# Energy-drift and reversibility checks need double precision
jax.config.update("jax_enable_x64", True)
matplotlib.use("Agg")

import pytest
import jax.numpy as jnp
from jax import random

from nutsmc.hamiltonian import GradientOracle


@pytest.fixture
def key():
    """Default JAX random key for reproducible tests."""
    return random.PRNGKey(42)


@pytest.fixture
def harmonic_oracle():
    """1-D harmonic oscillator: log p(x) = -x^2 / 2."""
    return GradientOracle(lambda x: -0.5 * jnp.sum(x**2))


@pytest.fixture
def normal_oracle():
    """3-D diagonal Gaussian with standard deviations (1, 2, 0.5)."""
    scales = jnp.array([1.0, 2.0, 0.5])
    return GradientOracle(lambda x: -0.5 * jnp.sum((x / scales) ** 2))
