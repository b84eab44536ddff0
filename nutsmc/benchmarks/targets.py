"""
Target distributions for benchmarking the Hamiltonian samplers.

Each target provides:
- log_prob_fn: JAX-traceable log p(x) for a single position of shape (dim,)
- dim: Dimensionality
- true_mean / true_cov: Known moments (for validation)
- name / description
- init_sampler: Optional custom initialization, key -> position of shape (dim,)
"""

from typing import Callable, NamedTuple, Optional
import jax.numpy as jnp
import jax.random as random


class TargetDistribution(NamedTuple):
    """Container for a benchmark target distribution."""
    log_prob_fn: Callable[[jnp.ndarray], jnp.ndarray]
    dim: int
    true_mean: jnp.ndarray
    true_cov: Optional[jnp.ndarray]
    name: str
    description: str
    init_sampler: Optional[Callable] = None  # key -> position


def _gaussian_log_prob(cov_inv: jnp.ndarray, log_det_cov: jnp.ndarray):
    def log_prob_fn(x):
        D = x.shape[-1]
        return -0.5 * (x @ cov_inv @ x + log_det_cov + D * jnp.log(2.0 * jnp.pi))
    return log_prob_fn


def standard_normal(dim: int = 10) -> TargetDistribution:
    """Standard normal N(0, I): basic correctness on a well-conditioned target."""
    def log_prob_fn(x):
        D = x.shape[-1]
        return -0.5 * (jnp.sum(x**2) + D * jnp.log(2.0 * jnp.pi))

    return TargetDistribution(
        log_prob_fn=log_prob_fn,
        dim=dim,
        true_mean=jnp.zeros(dim),
        true_cov=jnp.eye(dim),
        name=f"StandardNormal{dim}D",
        description=f"{dim}D standard normal N(0, I) - tests basic correctness",
    )


def harmonic_oscillator(dim: int = 1, omega: float = 1.0) -> TargetDistribution:
    """Potential U(x) = omega^2 |x|^2 / 2, i.e. N(0, I / omega^2).

    Hamiltonian trajectories are exact ellipses, so energy drift and U-turn
    periods are known in closed form.
    """
    def log_prob_fn(x):
        return -0.5 * omega**2 * jnp.sum(x**2)

    return TargetDistribution(
        log_prob_fn=log_prob_fn,
        dim=dim,
        true_mean=jnp.zeros(dim),
        true_cov=jnp.eye(dim) / omega**2,
        name=f"HarmonicOscillator{dim}D_omega{omega}",
        description=f"{dim}D harmonic oscillator with frequency {omega} - tests integrator accuracy",
    )


def correlated_gaussian(dim: int = 10, correlation: float = 0.9) -> TargetDistribution:
    """
    Gaussian with compound symmetry covariance: Sigma_ij = rho if i != j, 1 if i == j.

    A diagonal mass matrix cannot remove this correlation; tests trajectory length.
    """
    cov = (1.0 - correlation) * jnp.eye(dim) + correlation * jnp.ones((dim, dim))

    # Closed-form inverse and log determinant of compound symmetry
    a = 1.0 / (1.0 - correlation)
    b = -correlation / ((1.0 - correlation) * (1.0 + (dim - 1) * correlation))
    cov_inv = a * jnp.eye(dim) + b * jnp.ones((dim, dim))
    log_det_cov = (dim - 1) * jnp.log(1.0 - correlation) + jnp.log(1.0 + (dim - 1) * correlation)

    return TargetDistribution(
        log_prob_fn=_gaussian_log_prob(cov_inv, log_det_cov),
        dim=dim,
        true_mean=jnp.zeros(dim),
        true_cov=cov,
        name=f"CorrelatedGaussian{dim}D_rho{correlation}",
        description=f"{dim}D Gaussian with correlation rho={correlation} - tests handling of correlation",
    )


def ill_conditioned_gaussian(dim: int = 10, condition_number: float = 100.0) -> TargetDistribution:
    """
    Diagonal Gaussian with variances linearly spaced from 1 to condition_number.

    Without mass matrix adaptation the step size is bound by the narrowest
    direction; tests the windowed variance estimate.
    """
    eigenvalues = jnp.linspace(1.0, condition_number, dim)

    def log_prob_fn(x):
        D = x.shape[-1]
        return -0.5 * (jnp.sum(x**2 / eigenvalues) + jnp.sum(jnp.log(eigenvalues)) + D * jnp.log(2.0 * jnp.pi))

    return TargetDistribution(
        log_prob_fn=log_prob_fn,
        dim=dim,
        true_mean=jnp.zeros(dim),
        true_cov=jnp.diag(eigenvalues),
        name=f"IllConditionedGaussian{dim}D_kappa{condition_number}",
        description=f"{dim}D Gaussian with condition number {condition_number} - tests preconditioning",
    )


def neals_funnel(dim: int = 10) -> TargetDistribution:
    """
    Neal's funnel distribution: challenging hierarchical model.

    Structure:
        x[0] ~ N(0, 3)           # "neck" variable
        x[i] ~ N(0, exp(x[0]))   for i > 0

    The neck produces divergences for any fixed step size.
    """
    D_rest = dim - 1

    def log_prob_fn(x):
        x0 = x[0]
        x_rest = x[1:]
        log_p_x0 = -0.5 * (x0**2 / 9.0 + jnp.log(2.0 * jnp.pi * 9.0))
        log_p_rest = -0.5 * (jnp.sum(x_rest**2) / jnp.exp(x0) + D_rest * x0 + D_rest * jnp.log(2.0 * jnp.pi))
        return log_p_x0 + log_p_rest

    def init_sampler(key):
        key1, key2 = random.split(key)
        x0 = random.normal(key1, (1,)) * 3.0
        # Moderate scale on the rest avoids starting deep in the neck
        x_rest = random.normal(key2, (D_rest,))
        return jnp.concatenate([x0, x_rest])

    # Var[x_i] = E[exp(x0)] = exp(4.5) for i > 0 (log-normal moment)
    var_rest = jnp.exp(4.5)
    true_cov = jnp.diag(jnp.concatenate([jnp.array([9.0]), jnp.ones(D_rest) * var_rest]))

    return TargetDistribution(
        log_prob_fn=log_prob_fn,
        dim=dim,
        true_mean=jnp.zeros(dim),
        true_cov=true_cov,
        name=f"NealsFunnel{dim}D",
        description=f"{dim}D Neal's funnel - tests varying curvature and divergence reporting",
        init_sampler=init_sampler,
    )


_TARGETS = {
    'standard_normal': standard_normal,
    'harmonic_oscillator': harmonic_oscillator,
    'correlated_gaussian': correlated_gaussian,
    'ill_conditioned_gaussian': ill_conditioned_gaussian,
    'neals_funnel': neals_funnel,
}


def get_target(name: str, dim: int = 10, **kwargs) -> TargetDistribution:
    """
    Get a target distribution by name.

    Args:
        name: One of list_targets()
        dim: Dimensionality for the target.
        **kwargs: Additional arguments passed to target factory.

    Returns:
        TargetDistribution object.
    """
    if name not in _TARGETS:
        raise ValueError(f"Unknown target '{name}'. Available: {list(_TARGETS.keys())}")
    return _TARGETS[name](dim=dim, **kwargs)


def list_targets():
    """Names accepted by get_target."""
    return list(_TARGETS.keys())
