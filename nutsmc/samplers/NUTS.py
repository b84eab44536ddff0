"""No-U-Turn Sampler (NUTS) transition.

This module implements the NUTS algorithm from Hoffman & Gelman (2014) with:
- Recursive tree doubling in a random direction each iteration
- Slice sampling for the candidate, with multinomial-style subtree selection
- U-turn and divergence termination
- Acceptance statistic alpha / n_alpha from the last doubling, for dual averaging

Reference: Hoffman & Gelman (2014), "The No-U-Turn Sampler: Adaptively Setting
Path Lengths in Hamiltonian Monte Carlo"
"""
from __future__ import annotations
from typing import NamedTuple

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
from nutsmc.samplers.HMC import leapfrog

# Type aliases
Array = jnp.ndarray


class Tree(NamedTuple):
    """Result of building a subtree of 2^depth leapfrog steps.

    Attributes:
        minus: Backward-most state of the subtree
        plus: Forward-most state of the subtree
        proposal: Candidate state drawn from the subtree
        n_valid: Number of states inside the slice
        continues: False once a U-turn or divergence was seen
        alpha_sum: Sum of min(1, exp(H0 - H)) over leaves
        n_alpha: Number of leaves contributing to alpha_sum
        n_leapfrog: Number of leapfrog steps taken
        diverged: Whether any leaf diverged
    """
    minus: HamiltonianState
    plus: HamiltonianState
    proposal: HamiltonianState
    n_valid: int
    continues: bool
    alpha_sum: float
    n_alpha: int
    n_leapfrog: int
    diverged: bool


def no_u_turn(minus: HamiltonianState, plus: HamiltonianState) -> bool:
    """True while the span (minus, plus) is still expanding at both ends."""
    span = plus.position - minus.position
    return bool(jnp.dot(span, minus.momentum) >= 0) and bool(jnp.dot(span, plus.momentum) >= 0)


def build_tree(
    key: Array,
    state: HamiltonianState,
    log_u: float,
    direction: int,
    depth: int,
    step_size: float,
    H0: float,
    oracle: GradientOracle,
    inv_mass_matrix: Array,
    delta_max: float = 1000.0,
) -> Tree:
    """Recursively build a subtree of depth `depth` starting from `state`.

    Args:
        key: JAX random key; split into (first subtree, second subtree, selection)
        state: Boundary state to extend from
        log_u: Log slice variable, log(u) - H0
        direction: -1 (backward) or +1 (forward)
        depth: Subtree depth j; the subtree holds 2^j leaves
        step_size: Leapfrog step size
        H0: Hamiltonian at the start of the iteration
        oracle: Gradient oracle of the target
        inv_mass_matrix: Diagonal inverse mass matrix
        delta_max: Energy error threshold for divergence

    Returns:
        Tree
    """
    if depth == 0:
        new_state, valid = leapfrog(state, step_size, direction, oracle, inv_mass_matrix)
        H = hamiltonian(new_state.momentum, new_state.log_prob, inv_mass_matrix) if valid else np.inf
        if np.isnan(H):
            H = np.inf
        n_valid = 1 if np.isfinite(H) and log_u <= -H else 0
        continues = bool(log_u < delta_max - H)
        alpha = float(np.exp(min(0.0, H0 - H)))
        return Tree(new_state, new_state, new_state, n_valid, continues, alpha, 1, 1, not continues)

    k_first, k_second, k_select = random.split(key, 3)
    tree = build_tree(
        k_first, state, log_u, direction, depth - 1, step_size, H0, oracle, inv_mass_matrix, delta_max
    )
    if not tree.continues:
        return tree

    start = tree.minus if direction == -1 else tree.plus
    tree2 = build_tree(
        k_second, start, log_u, direction, depth - 1, step_size, H0, oracle, inv_mass_matrix, delta_max
    )
    if direction == -1:
        minus, plus = tree2.minus, tree.plus
    else:
        minus, plus = tree.minus, tree2.plus

    n_valid = tree.n_valid + tree2.n_valid
    proposal = tree.proposal
    if n_valid > 0 and float(random.uniform(k_select)) < tree2.n_valid / n_valid:
        proposal = tree2.proposal

    return Tree(
        minus=minus,
        plus=plus,
        proposal=proposal,
        n_valid=n_valid,
        continues=tree2.continues and no_u_turn(minus, plus),
        alpha_sum=tree.alpha_sum + tree2.alpha_sum,
        n_alpha=tree.n_alpha + tree2.n_alpha,
        n_leapfrog=tree.n_leapfrog + tree2.n_leapfrog,
        diverged=tree.diverged or tree2.diverged,
    )


def nuts_transition(
    key: Array,
    position: Array,
    step_size: float,
    oracle: GradientOracle,
    inv_mass_matrix: Array,
    max_depth: int = 5,
    delta_max: float = 1000.0,
) -> Transition:
    """Perform one NUTS iteration from `position`.

    Depths 0..max_depth are expanded at most, so a trajectory has at most
    2^(max_depth + 1) - 1 leapfrog steps. A non-finite starting energy returns
    the input position with acceptance statistic 0, flagged as divergent.
    """
    k_momentum, k_slice, key = random.split(key, 3)
    momentum = sample_momentum(k_momentum, inv_mass_matrix)
    state0 = oracle.init_state(position, momentum)
    H0 = hamiltonian(momentum, state0.log_prob, inv_mass_matrix)
    if not np.isfinite(H0):
        return Transition(
            position=state0.position,
            log_prob=state0.log_prob,
            grad_log_prob=state0.grad_log_prob,
            accept_stat=0.0,
            accepted=False,
            n_leapfrog=0,
            tree_depth=0,
            diverged=True,
            terminated=True,
        )

    # log(0) = -inf is a valid slice level
    log_u = float(jnp.log(random.uniform(k_slice))) - H0

    minus = plus = proposal = state0
    n_valid = 1
    continues = True
    depth = 0
    tree = None
    n_leapfrog = 0
    diverged = False

    while continues and depth <= max_depth:
        key, k_dir, k_tree, k_accept = random.split(key, 4)
        direction = 1 if float(random.uniform(k_dir)) < 0.5 else -1

        start = minus if direction == -1 else plus
        tree = build_tree(
            k_tree, start, log_u, direction, depth, step_size, H0, oracle, inv_mass_matrix, delta_max
        )
        if direction == -1:
            minus = tree.minus
        else:
            plus = tree.plus

        if tree.continues and float(random.uniform(k_accept)) < min(1.0, tree.n_valid / n_valid):
            proposal = tree.proposal

        n_valid += tree.n_valid
        continues = tree.continues and no_u_turn(minus, plus)
        n_leapfrog += tree.n_leapfrog
        diverged = diverged or tree.diverged
        depth += 1

    if tree is None:
        accept_stat = 0.0
    else:
        accept_stat = tree.alpha_sum / tree.n_alpha

    return Transition(
        position=proposal.position,
        log_prob=proposal.log_prob,
        grad_log_prob=proposal.grad_log_prob,
        accept_stat=float(accept_stat),
        accepted=proposal is not state0,
        n_leapfrog=n_leapfrog,
        tree_depth=max(depth - 1, 0),
        diverged=diverged,
        terminated=not continues,
    )
