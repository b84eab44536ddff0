"""Command-line entry point: run a Hamiltonian sampler on a benchmark target."""
import argparse
import os

import jax
from jax import random
import numpy as np

from nutsmc.analysis.diagnostics import compute_diagnostics, ess_per_gradient, print_diagnostics
from nutsmc.benchmarks.targets import get_target, list_targets
from nutsmc.config import HMC, HMCDA, NUTS, AdaptationConfig, OracleConfig
from nutsmc.error_handling import diagnose_run
from nutsmc.hamiltonian import GradientOracle
from nutsmc.samplers.hamiltonian_sampler import HamiltonianSampler
from nutsmc.sampling import sample


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a Hamiltonian Monte Carlo sampler on a benchmark target")

    # Sampler selection
    parser.add_argument("--sampler", choices=["nuts", "hmc", "hmcda"], default="nuts",
                        help="Kernel to run")
    parser.add_argument("--target", choices=list_targets(), default="standard_normal",
                        help="Benchmark target")
    parser.add_argument("--dim", type=int, default=10,
                        help="Dimensionality of the target")

    # Parameters
    parser.add_argument("--n-iters", type=int, default=2000,
                        help="Total iterations, warm-up included")
    parser.add_argument("--n-adapts", type=int, default=None,
                        help="Warm-up iterations (NUTS default: min(1000, n_iters / 2))")
    parser.add_argument("--delta", type=float, default=0.8,
                        help="Target acceptance statistic")
    parser.add_argument("--max-depth", type=int, default=5,
                        help="Maximum NUTS tree depth")
    parser.add_argument("--step-size", type=float, default=0.1,
                        help="Step size for static HMC")
    parser.add_argument("--num-steps", type=int, default=10,
                        help="Leapfrog steps for static HMC")
    parser.add_argument("--trajectory-length", type=float, default=1.0,
                        help="Trajectory length for HMCDA")
    parser.add_argument("--no-mass-matrix", action="store_true",
                        help="Disable mass matrix adaptation (use identity matrix)")
    parser.add_argument("--forward-mode", action="store_true",
                        help="Differentiate the target in forward mode")
    parser.add_argument("--x64", action="store_true",
                        help="Enable 64-bit floats in JAX")

    # Output
    parser.add_argument("--plot-dir", type=str, default=None,
                        help="Directory to save adaptation and trace plots")
    parser.add_argument("--seed", type=int, default=42,
                        help="Random seed")
    parser.add_argument("--verbose", type=int, default=1,
                        help="0 silent, 1 adaptation events and summary, 2 progress lines")
    return parser


def build_algorithm(args):
    adaptation = AdaptationConfig(adapt_mass_matrix=not args.no_mass_matrix)
    if args.sampler == "hmc":
        return HMC(args.n_iters, args.step_size, args.num_steps)
    if args.sampler == "hmcda":
        n_adapts = args.n_adapts if args.n_adapts is not None else min(1000, args.n_iters // 2)
        return HMCDA(args.n_iters, n_adapts, delta=args.delta,
                     trajectory_length=args.trajectory_length, adaptation=adaptation)
    return NUTS(args.n_iters, n_adapts=args.n_adapts, delta=args.delta,
                max_depth=args.max_depth, adaptation=adaptation)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.x64:
        jax.config.update("jax_enable_x64", True)

    target = get_target(args.target, dim=args.dim)
    algorithm = build_algorithm(args)

    key = random.PRNGKey(args.seed)
    key, init_key, run_key = random.split(key, 3)
    if target.init_sampler is not None:
        init_position = target.init_sampler(init_key)
    else:
        init_position = random.uniform(init_key, (target.dim,), minval=-2.0, maxval=2.0)

    print(f"\n{'='*60}")
    print(f"{type(algorithm).__name__} on {target.name}")
    print(f"  {target.description}")
    print(f"{'='*60}")

    oracle = GradientOracle(
        target.log_prob_fn,
        config=OracleConfig(mode="forward" if args.forward_mode else "reverse"),
    )
    sampler = HamiltonianSampler(algorithm, oracle, init_position, run_key, verbose=args.verbose)
    result = sample(sampler)

    draws = result.draws()
    diagnostics = compute_diagnostics(draws)
    print_diagnostics(diagnostics)
    print(f"\nESS per gradient: {ess_per_gradient(diagnostics, result.n_grad_evals):.6f}")

    report = diagnose_run(result, max_depth=getattr(algorithm, "max_depth", None))
    for line in report['info']:
        print(f"  {line}")
    for line in report['warnings']:
        print(f"  WARNING: {line}")
    for line in report['issues']:
        print(f"  ISSUE: {line}")

    if args.plot_dir:
        from nutsmc.tuning.plots import plot_adaptation_history, plot_sampling_diagnostics

        os.makedirs(args.plot_dir, exist_ok=True)
        name = f"{args.sampler}_{args.target}"
        plot_adaptation_history(
            result,
            target_accept=getattr(algorithm, "delta", None),
            max_depth=getattr(algorithm, "max_depth", None),
            sampler_name=type(algorithm).__name__,
            output_file=os.path.join(args.plot_dir, f"{name}_adaptation.png"),
        )
        plot_sampling_diagnostics(
            np.asarray(draws),
            diagnostics,
            sampler_name=type(algorithm).__name__,
            output_file=os.path.join(args.plot_dir, f"{name}_diagnostics.png"),
        )

    return 1 if report['issues'] else 0


if __name__ == "__main__":
    raise SystemExit(main())
