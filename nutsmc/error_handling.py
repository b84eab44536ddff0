"""
Error types and validation utilities for the Hamiltonian samplers.

Configuration problems fail fast with ConfigurationError. A failing gradient
oracle raises GradientOracleError. Numerical divergence is never an error; it
is reported through the run diagnosis below.
"""

from typing import Any, Dict, Iterable, List

import numpy as np
import jax.numpy as jnp


class ConfigurationError(ValueError):
    """Raised when a sampler or adaptation configuration is invalid."""


class GradientOracleError(RuntimeError):
    """Raised when the log-density/gradient oracle itself fails."""


def raise_if_invalid(errors: List[str], what: str) -> None:
    """Raise a single ConfigurationError listing every problem found."""
    if errors:
        raise ConfigurationError(f"Invalid {what}:\n  " + "\n  ".join(errors))


def check_positive_int(errors: List[str], name: str, value: Any, allow_zero: bool = False) -> None:
    if not isinstance(value, (int, np.integer)) or isinstance(value, bool):
        errors.append(f"{name} must be an integer, got {value!r}")
        return
    if value < 0 or (value == 0 and not allow_zero):
        bound = ">= 0" if allow_zero else ">= 1"
        errors.append(f"{name} must be {bound}, got {value}")


def check_positive_float(errors: List[str], name: str, value: Any) -> None:
    try:
        value = float(value)
    except (TypeError, ValueError):
        errors.append(f"{name} must be a number, got {value!r}")
        return
    if not np.isfinite(value) or value <= 0.0:
        errors.append(f"{name} must be a finite positive number, got {value}")


def all_finite(*arrays: Iterable) -> bool:
    """True when every entry of every array is finite."""
    return all(bool(jnp.all(jnp.isfinite(jnp.asarray(a)))) for a in arrays)


def diagnose_run(result, max_depth: int = None) -> Dict[str, Any]:
    """
    Analyze a sampling run for common problems.

    Args:
        result: SampleResult from nutsmc.sampling.sample
        max_depth: Maximum tree depth of the NUTS kernel, if any

    Returns:
        diagnostics: Dictionary with 'issues', 'warnings' and 'info' lists
    """
    diagnostics = {
        'issues': [],
        'warnings': [],
        'info': [],
    }

    samples = np.asarray(result.samples)
    n_iters = samples.shape[0]
    draws = samples[result.n_warmup:]

    if not np.all(np.isfinite(samples)):
        diagnostics['issues'].append(
            "Samples contain NaN or Inf values - sampler became unstable"
        )

    divergent = np.asarray(result.divergent)[result.n_warmup:]
    n_div = int(np.sum(divergent))
    if n_div > 0:
        frac = n_div / max(len(divergent), 1)
        target = diagnostics['issues'] if frac > 0.05 else diagnostics['warnings']
        target.append(
            f"{n_div} divergent transition(s) after warm-up ({100 * frac:.1f}%)"
        )

    if max_depth is not None and len(draws) > 0:
        depths = np.asarray(result.tree_depths)[result.n_warmup:]
        saturated = int(np.sum(depths >= max_depth))
        if saturated > 0.1 * len(depths):
            diagnostics['warnings'].append(
                f"{saturated} transition(s) hit the maximum tree depth {max_depth}"
            )

    if len(draws) > 1 and np.all(np.var(draws, axis=0) < 1e-10):
        diagnostics['warnings'].append("Chain appears stuck (near-zero variance)")

    diagnostics['info'].append(f"Total iterations: {n_iters}")
    diagnostics['info'].append(f"Warm-up iterations: {result.n_warmup}")
    diagnostics['info'].append(f"Number of parameters: {samples.shape[-1]}")
    diagnostics['info'].append(f"Final step size: {result.final_step_size:.5g}")

    return diagnostics
