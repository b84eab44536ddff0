"""Sampling driver: runs the step/adapt loop and collects per-iteration output.

`sample` works with any HamiltonianSampler; `nuts_run`, `hmc_run` and
`hmcda_run` build the oracle, descriptor and sampler from a log density.
"""
from __future__ import annotations
import time
from typing import Callable, NamedTuple, Optional

import numpy as np
import jax.numpy as jnp

from nutsmc.config import HMC, HMCDA, NUTS, AdaptationConfig, OracleConfig
from nutsmc.hamiltonian import GradientOracle
from nutsmc.log import format_vector
from nutsmc.samplers.hamiltonian_sampler import HamiltonianSampler

# Type aliases
Array = jnp.ndarray
LogProbFn = Callable[[Array], Array]


class SampleResult(NamedTuple):
    """Output of one chain, warm-up included.

    Attributes:
        samples: Positions, shape (n_iters, n_dim)
        log_probs: Log density of each position, shape (n_iters,)
        accept_stats: Acceptance statistic of each transition, shape (n_iters,)
        step_sizes: Step size used by each transition, shape (n_iters,)
        tree_depths: Last tree depth of each transition, shape (n_iters,)
        n_leapfrog: Leapfrog steps of each transition, shape (n_iters,)
        divergent: Divergence flag of each transition, shape (n_iters,)
        accepted: Whether each transition moved, shape (n_iters,)
        n_warmup: Number of leading warm-up iterations
        final_step_size: Step size after warm-up
        inv_mass_matrix: Diagonal inverse mass matrix after warm-up, shape (n_dim,)
        n_grad_evals: Oracle evaluations during the sampling loop (construction and
            the initial step size search are not included)
        elapsed_time: Wall-clock seconds
    """
    samples: np.ndarray
    log_probs: np.ndarray
    accept_stats: np.ndarray
    step_sizes: np.ndarray
    tree_depths: np.ndarray
    n_leapfrog: np.ndarray
    divergent: np.ndarray
    accepted: np.ndarray
    n_warmup: int
    final_step_size: float
    inv_mass_matrix: np.ndarray
    n_grad_evals: int
    elapsed_time: float

    def draws(self) -> np.ndarray:
        """Post-warm-up samples."""
        return self.samples[self.n_warmup:]


def sample(sampler: HamiltonianSampler, n_iters: Optional[int] = None, log_every: int = 100) -> SampleResult:
    """Run `n_iters` iterations (default: the descriptor's n_iters).

    Each iteration calls `sampler.propose` and then `sampler.adapt`, in that
    order, so the adapted step size and mass matrix take effect from the next
    iteration.
    """
    algorithm = sampler.algorithm
    n_iters = algorithm.n_iters if n_iters is None else n_iters
    n_warmup = min(algorithm.n_adapts, n_iters) if algorithm.adaptive else 0
    logger = sampler.logger
    alg_name = type(algorithm).__name__

    samples = np.zeros((n_iters, sampler.dim))
    log_probs = np.zeros(n_iters)
    accept_stats = np.zeros(n_iters)
    step_sizes = np.zeros(n_iters)
    tree_depths = np.zeros(n_iters, dtype=np.int32)
    n_leapfrog = np.zeros(n_iters, dtype=np.int32)
    divergent = np.zeros(n_iters, dtype=bool)
    accepted = np.zeros(n_iters, dtype=bool)

    evals_before = sampler.oracle.num_evals
    position = sampler.init_position
    start_time = time.time()

    for i in range(n_iters):
        step_sizes[i] = sampler.step_size
        transition = sampler.propose(position)
        position = transition.position
        sampler.adapt(transition.accept_stat, position)

        samples[i] = np.asarray(position)
        log_probs[i] = transition.log_prob
        accept_stats[i] = transition.accept_stat
        tree_depths[i] = transition.tree_depth
        n_leapfrog[i] = transition.n_leapfrog
        divergent[i] = transition.diverged
        accepted[i] = transition.accepted

        if log_every and (i + 1) % log_every == 0:
            logger.log(
                f"  [{alg_name}] iteration {i + 1}/{n_iters}: step size = {step_sizes[i]:.4g}, "
                f"accept stat = {np.mean(accept_stats[max(0, i + 1 - log_every):i + 1]):.3f}, "
                f"divergences = {int(np.sum(divergent[:i + 1]))}",
                level=2,
            )

    elapsed = time.time() - start_time
    n_grad_evals = sampler.oracle.num_evals - evals_before
    inv_mass_matrix = np.asarray(sampler.inv_mass_matrix)

    logger.log(f"[{alg_name}] Finished with")
    logger.log(f"  Running time        = {elapsed:.3f}s;")
    if not isinstance(algorithm, NUTS):
        logger.log(f"  Accept rate         = {np.mean(accepted):.3f};")
    logger.log(f"  #lf / sample        = {np.sum(n_leapfrog) / max(n_iters, 1):.3f};")
    logger.log(f"  #evals / sample     = {n_grad_evals / max(n_iters, 1):.3f};")
    logger.log(f"  pre-cond. metric    = {format_vector(inv_mass_matrix)}.")

    return SampleResult(
        samples=samples,
        log_probs=log_probs,
        accept_stats=accept_stats,
        step_sizes=step_sizes,
        tree_depths=tree_depths,
        n_leapfrog=n_leapfrog,
        divergent=divergent,
        accepted=accepted,
        n_warmup=n_warmup,
        final_step_size=float(sampler.step_size),
        inv_mass_matrix=inv_mass_matrix,
        n_grad_evals=n_grad_evals,
        elapsed_time=elapsed,
    )


def _run(key, algorithm, log_prob_fn, init_position, oracle_config, verbose):
    oracle = GradientOracle(log_prob_fn, config=oracle_config)
    sampler = HamiltonianSampler(algorithm, oracle, init_position, key, verbose=verbose)
    return sample(sampler)


def nuts_run(
    key: Array,
    log_prob_fn: LogProbFn,
    init_position: Array,
    n_iters: int = 1000,
    n_adapts: Optional[int] = None,
    delta: float = 0.8,
    max_depth: int = 5,
    delta_max: float = 1000.0,
    adaptation: Optional[AdaptationConfig] = None,
    oracle_config: Optional[OracleConfig] = None,
    verbose: int = 1,
) -> SampleResult:
    """Run NUTS with three-phase adaptation on a single chain.

    Args:
        key: JAX random key
        log_prob_fn: JAX-traceable log density
        init_position: Initial position, shape (n_dim,)
        n_iters: Total iterations, warm-up included
        n_adapts: Warm-up iterations (default: min(1000, n_iters / 2))
        delta: Target acceptance statistic
        max_depth: Maximum tree depth
        delta_max: Divergence threshold on the energy error
        adaptation: Warm-up settings
        oracle_config: Autodiff settings for the gradient oracle
        verbose: Console verbosity

    Returns:
        SampleResult
    """
    algorithm = NUTS(
        n_iters,
        n_adapts=n_adapts,
        delta=delta,
        max_depth=max_depth,
        delta_max=delta_max,
        adaptation=adaptation or AdaptationConfig(),
    )
    return _run(key, algorithm, log_prob_fn, init_position, oracle_config, verbose)


def hmc_run(
    key: Array,
    log_prob_fn: LogProbFn,
    init_position: Array,
    n_iters: int,
    step_size: float,
    num_steps: int,
    oracle_config: Optional[OracleConfig] = None,
    verbose: int = 1,
) -> SampleResult:
    """Run static HMC (fixed step size and number of steps, no warm-up)."""
    algorithm = HMC(n_iters, step_size, num_steps)
    return _run(key, algorithm, log_prob_fn, init_position, oracle_config, verbose)


def hmcda_run(
    key: Array,
    log_prob_fn: LogProbFn,
    init_position: Array,
    n_iters: int,
    n_adapts: int,
    delta: float = 0.8,
    trajectory_length: float = 1.0,
    adaptation: Optional[AdaptationConfig] = None,
    oracle_config: Optional[OracleConfig] = None,
    verbose: int = 1,
) -> SampleResult:
    """Run HMC with dual averaging over a fixed trajectory length."""
    algorithm = HMCDA(
        n_iters,
        n_adapts,
        delta=delta,
        trajectory_length=trajectory_length,
        adaptation=adaptation or AdaptationConfig(),
    )
    return _run(key, algorithm, log_prob_fn, init_position, oracle_config, verbose)
