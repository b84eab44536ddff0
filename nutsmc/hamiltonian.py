"""Hamiltonian building blocks shared by every kernel.

- GradientOracle: log density and gradient of the target, with an explicit
  autodiff configuration and an evaluation counter
- HamiltonianState: phase-space point with cached log density and gradient
- kinetic_energy / hamiltonian: energy under a diagonal mass matrix
- sample_momentum: momentum draw from N(0, M)
"""
from __future__ import annotations
from typing import Callable, NamedTuple, Optional, Tuple

import jax
import jax.numpy as jnp
from jax import random

from nutsmc.config import OracleConfig
from nutsmc.error_handling import ConfigurationError, GradientOracleError

# Type aliases
Array = jnp.ndarray
LogProbFn = Callable[[Array], Array]  # Maps x -> log p(x)
ValueAndGradFn = Callable[[Array], Tuple[Array, Array]]  # Maps x -> (log p(x), grad)


class HamiltonianState(NamedTuple):
    """Point in phase space.

    Attributes:
        position: Position theta, shape (n_dim,)
        momentum: Momentum r, shape (n_dim,)
        log_prob: Log density at position (scalar)
        grad_log_prob: Gradient of the log density at position, shape (n_dim,)
    """
    position: Array
    momentum: Array
    log_prob: Array
    grad_log_prob: Array


class Transition(NamedTuple):
    """Outcome of one kernel proposal.

    Attributes:
        position: New position (the input position when nothing moved)
        log_prob: Log density at the new position
        grad_log_prob: Gradient at the new position
        accept_stat: Acceptance statistic fed to step size adaptation, in [0, 1]
        accepted: Whether the position changed
        n_leapfrog: Leapfrog steps taken
        tree_depth: Last NUTS tree depth expanded (0 for fixed-length HMC)
        diverged: Whether any leaf exceeded the divergence threshold
        terminated: Whether a U-turn or divergence stopped the trajectory
    """
    position: Array
    log_prob: float
    grad_log_prob: Array
    accept_stat: float
    accepted: bool
    n_leapfrog: int
    tree_depth: int
    diverged: bool
    terminated: bool


def _forward_value_and_grad(log_prob_fn: LogProbFn) -> ValueAndGradFn:
    grad_fn = jax.jacfwd(log_prob_fn)

    def value_and_grad(x):
        return log_prob_fn(x), grad_fn(x)

    return value_and_grad


class GradientOracle:
    """Log density and gradient of the target distribution.

    Either `log_prob_fn` (a JAX-traceable function, differentiated according to
    `config`) or `value_and_grad_fn` (any callable returning the value and the
    gradient) must be given, not both.

    Any exception raised while evaluating the user's function is re-raised as
    GradientOracleError. Non-finite values are returned as they are.
    `num_evals` counts every call to `log_density` and `gradient`.
    """

    def __init__(
        self,
        log_prob_fn: Optional[LogProbFn] = None,
        value_and_grad_fn: Optional[ValueAndGradFn] = None,
        config: Optional[OracleConfig] = None,
    ):
        if (log_prob_fn is None) == (value_and_grad_fn is None):
            raise ConfigurationError(
                "GradientOracle needs exactly one of log_prob_fn or value_and_grad_fn"
            )
        self.config = config if config is not None else OracleConfig()
        self.num_evals = 0

        if log_prob_fn is not None:
            if self.config.mode == "reverse":
                vg = jax.value_and_grad(log_prob_fn)
            else:
                vg = _forward_value_and_grad(log_prob_fn)
            if self.config.jit:
                vg = jax.jit(vg)
                log_prob_fn = jax.jit(log_prob_fn)
            self._log_prob_fn = log_prob_fn
            self._value_and_grad_fn = vg
        else:
            self._log_prob_fn = lambda x: value_and_grad_fn(x)[0]
            self._value_and_grad_fn = value_and_grad_fn

    def log_density(self, position: Array) -> float:
        self.num_evals += 1
        try:
            value = self._log_prob_fn(jnp.asarray(position))
            return float(value)
        except Exception as exc:
            raise GradientOracleError(f"log density evaluation failed: {exc}") from exc

    def gradient(self, position: Array) -> Tuple[float, Array]:
        """Evaluate log p(position) and its gradient.

        Returns:
            Tuple of (log_prob as a Python float, gradient with the position's shape)
        """
        position = jnp.asarray(position)
        self.num_evals += 1
        try:
            value, grad = self._value_and_grad_fn(position)
            value = float(value)
            grad = jnp.asarray(grad, dtype=position.dtype).reshape(position.shape)
        except Exception as exc:
            raise GradientOracleError(f"gradient evaluation failed: {exc}") from exc
        return value, grad

    __call__ = gradient

    def init_state(self, position: Array, momentum: Array) -> HamiltonianState:
        """Phase-space state at `position`, evaluating the oracle once."""
        position = jnp.asarray(position)
        log_prob, grad = self.gradient(position)
        return HamiltonianState(position, momentum, log_prob, grad)


def kinetic_energy(momentum: Array, inv_mass_matrix: Array) -> float:
    """1/2 r^T M^{-1} r for a diagonal inverse mass matrix."""
    return float(0.5 * jnp.sum(inv_mass_matrix * momentum**2))


def hamiltonian(momentum: Array, log_prob: float, inv_mass_matrix: Array) -> float:
    """Total energy H = -log p(theta) + 1/2 r^T M^{-1} r.

    Non-finite inputs give a non-finite energy; callers treat that as divergence.
    """
    return -float(log_prob) + kinetic_energy(momentum, inv_mass_matrix)


def sample_momentum(key: Array, inv_mass_matrix: Array) -> Array:
    """Draw r ~ N(0, M) with M = diag(1 / inv_mass_matrix)."""
    inv_mass_matrix = jnp.asarray(inv_mass_matrix)
    z = random.normal(key, inv_mass_matrix.shape, dtype=inv_mass_matrix.dtype)
    return z / jnp.sqrt(inv_mass_matrix)
