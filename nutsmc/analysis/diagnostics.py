"""Convergence diagnostics for sampler output, computed with ArviZ."""
from typing import Dict, Optional

import numpy as np
import arviz as az


def _as_draws_chains_dims(samples) -> np.ndarray:
    samples = np.asarray(samples)
    if samples.ndim == 1:
        return samples[:, None, None]
    if samples.ndim == 2:
        return samples[:, None, :]
    if samples.ndim == 3:
        return samples
    raise ValueError("samples must have shape (n_samples, n_dim) or (n_samples, n_chains, n_dim)")


def compute_diagnostics(samples) -> Dict:
    """Compute convergence diagnostics and summary statistics.

    A single chain is passed to ArviZ as two chains, its first and second
    halves (an odd last draw is dropped).

    Args:
        samples: Array of shape (n_samples, n_dim) for one chain, or
            (n_samples, n_chains, n_dim)

    Returns:
        Dictionary with split R-hat, bulk/tail ESS and the ArviZ summary table
    """
    samples = _as_draws_chains_dims(samples)
    n_samples, n_chains, n_dim = samples.shape

    # ArviZ expects (chain, draw, *shape)
    posterior = samples.transpose(1, 0, 2)
    if n_chains == 1:
        half = n_samples // 2
        posterior = posterior[0, : 2 * half].reshape(2, half, n_dim)

    idata = az.from_dict(
        posterior={"x": posterior},
        coords={"dim": np.arange(n_dim)},
        dims={"x": ["dim"]},
    )

    rhat_values = az.rhat(idata, var_names=["x"])["x"].values
    ess_bulk = az.ess(idata, var_names=["x"], method="bulk")["x"].values
    ess_tail = az.ess(idata, var_names=["x"], method="tail")["x"].values
    summary = az.summary(idata, var_names=["x"])

    return {
        "rhat_max": float(np.max(rhat_values)),
        "rhat_mean": float(np.mean(rhat_values)),
        "rhat_per_dim": rhat_values,
        "ess_bulk_min": float(np.min(ess_bulk)),
        "ess_bulk_mean": float(np.mean(ess_bulk)),
        "ess_tail_min": float(np.min(ess_tail)),
        "n_samples": n_samples,
        "n_chains": n_chains,
        "summary": summary,
    }


def ess_per_gradient(diagnostics: Dict, n_grad_evals: int) -> float:
    """Minimum bulk ESS per gradient evaluation."""
    if n_grad_evals <= 0:
        return 0.0
    return diagnostics["ess_bulk_min"] / n_grad_evals


def check_summary_statistics(diagnostics: Dict, true_mean, true_var: Optional[np.ndarray] = None, tolerance: float = 0.15) -> bool:
    """Check estimated means (and variances, via the summary sd) against known values."""
    summary = diagnostics["summary"]
    est_mean = summary["mean"].values
    ok = bool(np.all(np.abs(est_mean - np.asarray(true_mean)) < tolerance))
    if true_var is not None:
        est_var = summary["sd"].values ** 2
        ok = ok and bool(np.all(np.abs(est_var - np.asarray(true_var)) < tolerance * np.maximum(1.0, np.asarray(true_var))))
    return ok


def print_diagnostics(diagnostics: Dict, rhat_threshold: float = 1.01) -> None:
    print(f"\nSplit R-hat (rank-normalized):")
    print(f"  Max: {diagnostics['rhat_max']:.4f}")
    print(f"  Mean: {diagnostics['rhat_mean']:.4f}")
    rhat_pass = diagnostics['rhat_max'] < rhat_threshold
    print(f"  Status: {'PASS' if rhat_pass else 'FAIL'} (threshold: {rhat_threshold})")

    print(f"\nEffective Sample Size:")
    print(f"  Bulk min: {diagnostics['ess_bulk_min']:.1f}")
    print(f"  Bulk mean: {diagnostics['ess_bulk_mean']:.1f}")
    print(f"  Tail min: {diagnostics['ess_tail_min']:.1f}")

    print(f"\nSummary:")
    print(diagnostics["summary"])
