"""Welford's online algorithm for estimating mean and diagonal variance.

The functional core (welford_init / welford_update / welford_variance) works on
an immutable WelfordState; MassMatrixEstimator wraps it for the windowed
mass matrix adaptation, adding Stan's shrinkage toward a small constant.
"""
from typing import NamedTuple

import jax.numpy as jnp
from jax import jit

# Stan's regularization of the windowed variance estimate
_SHRINKAGE_PRIOR = 5.0
_SHRINKAGE_TARGET = 1e-3


class WelfordState(NamedTuple):
    """State for Welford's online estimator.

    Attributes:
        count: Number of samples seen so far (scalar).
        mean: Running mean of samples (n_dim,).
        m2: Sum of squared differences from the mean (n_dim,).
    """
    count: jnp.ndarray
    mean: jnp.ndarray
    m2: jnp.ndarray


def welford_init(n_dim: int) -> WelfordState:
    """Initialize Welford estimator state with zeros."""
    return WelfordState(
        count=jnp.array(0.0),
        mean=jnp.zeros(n_dim),
        m2=jnp.zeros(n_dim),
    )


@jit
def welford_update(state: WelfordState, x: jnp.ndarray) -> WelfordState:
    """Update Welford state with a single new sample of shape (n_dim,)."""
    x = x.astype(state.mean.dtype)
    count = state.count + 1.0
    delta = x - state.mean
    mean = state.mean + delta / count
    delta2 = x - mean
    m2 = state.m2 + delta * delta2

    return WelfordState(count, mean, m2)


def welford_variance(state: WelfordState) -> jnp.ndarray:
    """Sample variance m2 / (n - 1); ones when fewer than two samples were seen."""
    if float(state.count) < 2:
        return jnp.ones_like(state.mean)
    return state.m2 / (state.count - 1.0)


class MassMatrixEstimator:
    """Running diagonal variance of warm-up draws within one adaptation window."""

    def __init__(self, n_dim: int):
        self.n_dim = n_dim
        self.state = welford_init(n_dim)

    @property
    def count(self) -> int:
        return int(self.state.count)

    def add_sample(self, position: jnp.ndarray) -> None:
        self.state = welford_update(self.state, jnp.asarray(position))

    def reset(self) -> None:
        self.state = welford_init(self.n_dim)

    def variance(self) -> jnp.ndarray:
        return welford_variance(self.state)

    def regularized_variance(self) -> jnp.ndarray:
        """Variance shrunk toward 1e-3 with weight 5 / (n + 5), as Stan does.

        Used as the new inverse mass matrix diagonal at a window end. With
        fewer than 2 samples the unit default is returned unshrunk.
        """
        n = float(self.state.count)
        var = self.variance()
        if n < 2:
            return var
        return (n / (n + _SHRINKAGE_PRIOR)) * var + _SHRINKAGE_TARGET * (
            _SHRINKAGE_PRIOR / (n + _SHRINKAGE_PRIOR)
        )
