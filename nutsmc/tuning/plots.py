"""Plotting utilities for adaptation and sampling diagnostics."""
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from typing import Dict, Optional


def _finish(output_file: Optional[str], what: str):
    plt.tight_layout()
    if output_file:
        plt.savefig(output_file, dpi=300, bbox_inches='tight')
        print(f"  Saved {what} plot to {output_file}")
    else:
        plt.show()
    plt.close()


def plot_adaptation_history(result, target_accept: Optional[float] = None, max_depth: Optional[int] = None,
                            sampler_name: str = "NUTS", output_file: str = None):
    """Plot step size, acceptance statistic and tree depth over a run.

    Args:
        result: SampleResult from nutsmc.sampling.sample
        target_accept: Target acceptance statistic, drawn as a reference line
        max_depth: Maximum tree depth, drawn as a reference line (NUTS only)
        sampler_name: Name of sampler for plot title
        output_file: Path to save plot (if None, displays interactively)
    """
    sns.set_style("whitegrid")

    show_depth = max_depth is not None
    n_plots = 3 if show_depth else 2
    fig, axes = plt.subplots(n_plots, 1, figsize=(10, 4 * n_plots), sharex=True)

    iterations = np.arange(1, len(result.step_sizes) + 1)
    n_warmup = result.n_warmup

    axes[0].plot(iterations, result.step_sizes, 'b-', linewidth=1.5, label='Step size')
    axes[0].set_yscale('log')
    axes[0].set_ylabel('Step Size', fontsize=12)
    axes[0].set_title(f'{sampler_name} Adaptation History', fontsize=14, fontweight='bold')

    # Running mean smooths the per-iteration statistic
    window = max(1, min(50, len(iterations) // 20))
    smoothed = np.convolve(result.accept_stats, np.ones(window) / window, mode='same')
    axes[1].plot(iterations, result.accept_stats, 'g-', alpha=0.2, linewidth=0.5)
    axes[1].plot(iterations, smoothed, 'g-', linewidth=1.5, label=f'Acceptance stat ({window}-iter mean)')
    if target_accept is not None:
        axes[1].axhline(target_accept, color='orange', linestyle='--', linewidth=1.5,
                        label=f'Target ({target_accept:.3f})')
    axes[1].set_ylabel('Acceptance Statistic', fontsize=12)

    if show_depth:
        axes[2].plot(iterations, result.tree_depths, 'm-', linewidth=0.8, label='Tree depth')
        axes[2].axhline(max_depth, color='red', linestyle='--', linewidth=1.5,
                        label=f'Max depth ({max_depth})')
        divergent = np.flatnonzero(result.divergent) + 1
        if len(divergent) > 0:
            axes[2].plot(divergent, result.tree_depths[divergent - 1], 'rx', markersize=4, label='Divergent')
        axes[2].set_ylabel('Tree Depth', fontsize=12)

    for ax in axes:
        if n_warmup > 0:
            ax.axvline(n_warmup, color='k', linestyle=':', linewidth=1.2, label='End of warm-up')
        ax.legend(loc='best')
        ax.grid(True, alpha=0.3)
    axes[-1].set_xlabel('Iteration', fontsize=12)

    _finish(output_file, "adaptation history")


def plot_sampling_diagnostics(samples: np.ndarray, diagnostics: Dict,
                              sampler_name: str = "NUTS", output_file: str = None):
    """Plot trace plots and marginals of the first dimensions.

    Args:
        samples: Array of shape (n_samples, n_dim) or (n_samples, n_chains, n_dim)
        diagnostics: Dictionary from nutsmc.analysis.diagnostics.compute_diagnostics
        sampler_name: Name of sampler for plot title
        output_file: Path to save plot (if None, displays interactively)
    """
    samples_np = np.array(samples)
    if samples_np.ndim == 2:
        samples_np = samples_np[:, None, :]
    n_samples, n_chains, n_dim = samples_np.shape

    # Plot only first 4 dimensions to keep it manageable
    plot_dims = min(4, n_dim)

    sns.set_style("whitegrid")
    fig, axes = plt.subplots(plot_dims, 2, figsize=(12, 3 * plot_dims))
    if plot_dims == 1:
        axes = axes.reshape(1, -1)

    for i in range(plot_dims):
        for chain in range(n_chains):
            axes[i, 0].plot(samples_np[:, chain, i], alpha=0.6, linewidth=0.5, label=f'Chain {chain+1}')
        axes[i, 0].set_ylabel(f'x[{i}]', fontsize=10)
        axes[i, 0].set_title(f'Trace Plot (dim {i})', fontsize=10)
        axes[i, 0].grid(True, alpha=0.3)

        for chain in range(n_chains):
            sns.histplot(samples_np[:, chain, i], bins=30, stat='density', alpha=0.4,
                         ax=axes[i, 1], label=f'Chain {chain+1}')
        axes[i, 1].set_xlabel(f'x[{i}]', fontsize=10)
        axes[i, 1].set_ylabel('Density', fontsize=10)
        axes[i, 1].set_title(f'Marginal (dim {i})', fontsize=10)

    fig.suptitle(
        f"{sampler_name}: R-hat max {diagnostics['rhat_max']:.3f}, "
        f"bulk ESS min {diagnostics['ess_bulk_min']:.0f}",
        fontsize=12, fontweight='bold',
    )

    _finish(output_file, "sampling diagnostics")
