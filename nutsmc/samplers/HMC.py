"""Hamiltonian Monte Carlo (HMC) with a fixed number of leapfrog steps.

This module implements:
- Leapfrog integration under a diagonal inverse mass matrix, stopping at the
  first non-finite step
- A Metropolis-Hastings HMC transition used by the static HMC and HMCDA kernels
"""
from __future__ import annotations
from typing import Tuple

import numpy as np
import jax.numpy as jnp
from jax import random

from nutsmc.hamiltonian import (
    GradientOracle,
    HamiltonianState,
    Transition,
    hamiltonian,
    sample_momentum,
)

# Type aliases
Array = jnp.ndarray


def leapfrog(
    state: HamiltonianState,
    step_size: float,
    direction: int,
    oracle: GradientOracle,
    inv_mass_matrix: Array,
    num_steps: int = 1,
) -> Tuple[HamiltonianState, bool]:
    """Perform leapfrog integration for Hamiltonian dynamics.

    Args:
        state: Starting phase-space state (with cached gradient)
        step_size: Integration step size eps > 0
        direction: +1 to integrate forward in time, -1 backward
        oracle: Gradient oracle of the target
        inv_mass_matrix: Diagonal of M^{-1}, shape (n_dim,)
        num_steps: Number of leapfrog steps

    Returns:
        Tuple of (final_state, valid). `valid` is False if a step produced a
        non-finite position, momentum or log density; the state returned is then
        the one reached at that step and no further steps are taken.
    """
    eps = direction * step_size
    half = 0.5 * eps
    pos, mom = state.position, state.momentum
    log_prob, grad = state.log_prob, state.grad_log_prob

    for _ in range(num_steps):
        # Half step for momentum
        mom = mom + half * grad
        # Full step for position
        pos = pos + eps * inv_mass_matrix * mom
        log_prob, grad = oracle.gradient(pos)
        # Half step for momentum
        mom = mom + half * grad

        new_state = HamiltonianState(pos, mom, log_prob, grad)
        finite = (
            np.isfinite(log_prob)
            and bool(jnp.all(jnp.isfinite(pos)))
            and bool(jnp.all(jnp.isfinite(mom)))
        )
        if not finite:
            return new_state, False

    return HamiltonianState(pos, mom, log_prob, grad), True


def hmc_transition(
    key: Array,
    position: Array,
    step_size: float,
    num_steps: int,
    oracle: GradientOracle,
    inv_mass_matrix: Array,
) -> Transition:
    """One HMC step with Metropolis-Hastings acceptance.

    The acceptance statistic is min(1, exp(H0 - H1)); an invalid trajectory has
    H1 = +inf, so it is rejected with statistic 0 and flagged as divergent.
    """
    k_momentum, k_accept = random.split(key)
    momentum = sample_momentum(k_momentum, inv_mass_matrix)
    current = oracle.init_state(position, momentum)
    H0 = hamiltonian(momentum, current.log_prob, inv_mass_matrix)

    proposal, valid = leapfrog(current, step_size, 1, oracle, inv_mass_matrix, num_steps)
    H1 = hamiltonian(proposal.momentum, proposal.log_prob, inv_mass_matrix) if valid else np.inf
    if not np.isfinite(H1):
        H1 = np.inf

    if np.isfinite(H0):
        accept_stat = float(np.exp(min(0.0, H0 - H1)))
    else:
        accept_stat = 0.0
    accepted = bool(random.uniform(k_accept) < accept_stat)

    if accepted:
        new_pos, new_lp, new_grad = proposal.position, proposal.log_prob, proposal.grad_log_prob
    else:
        new_pos, new_lp, new_grad = current.position, current.log_prob, current.grad_log_prob

    return Transition(
        position=new_pos,
        log_prob=new_lp,
        grad_log_prob=new_grad,
        accept_stat=accept_stat,
        accepted=accepted,
        n_leapfrog=num_steps,
        tree_depth=0,
        diverged=not np.isfinite(H1),
        terminated=not valid,
    )
