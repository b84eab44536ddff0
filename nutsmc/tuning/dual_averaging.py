"""Dual averaging step size adaptation (Hoffman & Gelman 2014, Section 3.2).

- DualAveragingState / da_init / da_update / da_reset: functional core
- StepSizeAdapter: stateful wrapper used during warm-up
- find_reasonable_step_size: initial step size heuristic (Algorithm 4)
"""
from __future__ import annotations
from typing import NamedTuple, Optional

import numpy as np
import jax.numpy as jnp

from nutsmc.hamiltonian import GradientOracle, hamiltonian, sample_momentum
from nutsmc.log import SimpleLogger
from nutsmc.samplers.HMC import leapfrog

# Type aliases
Array = jnp.ndarray


class DualAveragingState(NamedTuple):
    """State of the dual averaging iteration.

    Attributes:
        log_step: x, log of the step size used for sampling
        log_step_bar: x_bar, weighted average of x (log of the final step size)
        H_bar: Running average of (target - acceptance statistic)
        mu: Shrinkage point for x
        count: Iterations since the last (re)start
        gamma, t0, kappa: Algorithm constants
    """
    log_step: float
    log_step_bar: float
    H_bar: float
    mu: float
    count: int
    gamma: float
    t0: float
    kappa: float


def da_init(
    initial_step_size: float,
    gamma: float = 0.05,
    t0: float = 10.0,
    kappa: float = 0.75,
    mu_factor: float = 10.0,
) -> DualAveragingState:
    log_step = float(np.log(initial_step_size))
    return DualAveragingState(
        log_step=log_step,
        log_step_bar=0.0,
        H_bar=0.0,
        mu=float(np.log(mu_factor * initial_step_size)),
        count=0,
        gamma=gamma,
        t0=t0,
        kappa=kappa,
    )


def da_update(state: DualAveragingState, accept_stat: float, target_accept: float) -> DualAveragingState:
    """One dual averaging iteration.

    Args:
        state: Current state
        accept_stat: Acceptance statistic of the last transition, clipped to <= 1
        target_accept: Target acceptance statistic delta

    Returns:
        Updated state
    """
    alpha = min(1.0, float(accept_stat))
    m = state.count + 1
    eta = 1.0 / (m + state.t0)
    H_bar = (1.0 - eta) * state.H_bar + eta * (target_accept - alpha)
    log_step = state.mu - (np.sqrt(m) / state.gamma) * H_bar
    w = m ** (-state.kappa)
    log_step_bar = w * log_step + (1.0 - w) * state.log_step_bar
    return state._replace(
        log_step=float(log_step),
        log_step_bar=float(log_step_bar),
        H_bar=float(H_bar),
        count=m,
    )


def da_reset(state: DualAveragingState, step_size: float, mu_factor: float = 10.0) -> DualAveragingState:
    """Restart the iteration around `step_size`, e.g. after a mass matrix update."""
    return state._replace(
        log_step=float(np.log(step_size)),
        log_step_bar=0.0,
        H_bar=0.0,
        mu=float(np.log(mu_factor * step_size)),
        count=0,
    )


class StepSizeAdapter:
    """Warm-up step size controller.

    `step_size` is exp(x) while adapting; after `finalize()` it is the frozen
    min(1, exp(x_bar)).
    """

    def __init__(
        self,
        initial_step_size: float,
        target_accept: float = 0.8,
        gamma: float = 0.05,
        t0: float = 10.0,
        kappa: float = 0.75,
        mu_factor: float = 10.0,
        logger: Optional[SimpleLogger] = None,
    ):
        self.target_accept = target_accept
        self.mu_factor = mu_factor
        self.logger = logger if logger is not None else SimpleLogger(verbose=0)
        self.state = da_init(initial_step_size, gamma, t0, kappa, mu_factor)
        self.final_step_size: Optional[float] = None

    @property
    def step_size(self) -> float:
        if self.final_step_size is not None:
            return self.final_step_size
        return float(np.exp(self.state.log_step))

    def adapt(self, accept_stat: float, update_mu: bool = False) -> None:
        new_state = da_update(self.state, accept_stat, self.target_accept)
        if not np.isfinite(new_state.log_step):
            self.logger.warn(
                f"dual averaging produced a non-finite step size "
                f"(accept_stat={accept_stat}); keeping step size {self.step_size:.5g}"
            )
            return
        self.state = new_state
        if update_mu:
            self.state = da_reset(new_state, float(np.exp(new_state.log_step)), self.mu_factor)

    def finalize(self) -> float:
        if self.state.count > 0:
            self.final_step_size = float(min(1.0, np.exp(self.state.log_step_bar)))
        else:
            self.final_step_size = float(np.exp(self.state.log_step))
        return self.final_step_size


def find_reasonable_step_size(
    key: Array,
    position: Array,
    oracle: GradientOracle,
    inv_mass_matrix: Array,
    initial_step_size: float = 1.0,
    target_accept: float = 0.5,
    min_step_size: float = 1e-6,
    max_step_size: float = 1e2,
    max_iter: int = 100,
) -> float:
    """Heuristic initial step size (Hoffman & Gelman 2014, Algorithm 4).

    Doubles or halves the step size until the one-step acceptance ratio crosses
    `target_accept`, within [min_step_size, max_step_size] and at most
    `max_iter` trials.
    """
    momentum = sample_momentum(key, inv_mass_matrix)
    state0 = oracle.init_state(position, momentum)
    H0 = hamiltonian(momentum, state0.log_prob, inv_mass_matrix)
    if not np.isfinite(H0):
        return float(initial_step_size)

    def accept_ratio(eps):
        state1, valid = leapfrog(state0, eps, 1, oracle, inv_mass_matrix)
        if not valid:
            return 0.0
        H1 = hamiltonian(state1.momentum, state1.log_prob, inv_mass_matrix)
        if not np.isfinite(H1):
            return 0.0
        return float(np.exp(min(0.0, H0 - H1)))

    eps = float(initial_step_size)
    direction = 1.0 if accept_ratio(eps) > target_accept else -1.0

    for _ in range(max_iter):
        trial = eps * 2.0**direction
        if trial < min_step_size or trial > max_step_size:
            break
        eps = trial
        alpha = accept_ratio(eps)
        if (direction > 0 and alpha < target_accept) or (direction < 0 and alpha > target_accept):
            break

    return eps
