"""Configuration objects for Hamiltonian samplers.

Every object here is a frozen dataclass validated on construction, so a bad
setting fails before any iteration runs. The algorithm descriptors (HMC,
HMCDA, NUTS) double as the tags HamiltonianSampler dispatches on.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from nutsmc.error_handling import (
    check_positive_float,
    check_positive_int,
    raise_if_invalid,
)

_DEFAULT_TARGET_ACCEPT = 0.8
_DEFAULT_MAX_DEPTH = 5
_DEFAULT_DELTA_MAX = 1000.0
_MAX_DEFAULT_ADAPTS = 1000

_ORACLE_MODES = ("reverse", "forward")


@dataclass(frozen=True)
class OracleConfig:
    """How the gradient oracle differentiates a JAX log density.

    Attributes:
        mode: 'reverse' (jax.value_and_grad) or 'forward' (jax.jacfwd)
        jit: Compile the log density and its gradient with jax.jit
    """
    mode: str = "reverse"
    jit: bool = True

    def __post_init__(self):
        errors = []
        if self.mode not in _ORACLE_MODES:
            errors.append(f"mode must be one of {_ORACLE_MODES}, got {self.mode!r}")
        raise_if_invalid(errors, "oracle configuration")


@dataclass(frozen=True)
class AdaptationConfig:
    """Three-phase warm-up settings (Stan defaults).

    Attributes:
        init_buffer: Initial fast interval (step size only)
        term_buffer: Terminal fast interval (step size only)
        window_size: Length of the first slow window, doubled each window
        gamma, t0, kappa: Dual averaging constants
        mu_factor: Dual averaging shrinks log(step) toward log(mu_factor * step)
        init_step_size: Initial step size; found heuristically when None
        adapt_step_size: Run dual averaging during warm-up
        adapt_mass_matrix: Refit the diagonal inverse mass matrix at window ends
    """
    init_buffer: int = 75
    term_buffer: int = 50
    window_size: int = 25
    gamma: float = 0.05
    t0: float = 10.0
    kappa: float = 0.75
    mu_factor: float = 10.0
    init_step_size: Optional[float] = None
    adapt_step_size: bool = True
    adapt_mass_matrix: bool = True

    def __post_init__(self):
        errors = []
        check_positive_int(errors, "init_buffer", self.init_buffer, allow_zero=True)
        check_positive_int(errors, "term_buffer", self.term_buffer, allow_zero=True)
        check_positive_int(errors, "window_size", self.window_size)
        check_positive_float(errors, "gamma", self.gamma)
        check_positive_float(errors, "t0", self.t0)
        check_positive_float(errors, "mu_factor", self.mu_factor)
        if not 0.5 < self.kappa <= 1.0:
            errors.append(f"kappa must be in (0.5, 1], got {self.kappa}")
        if self.init_step_size is not None:
            check_positive_float(errors, "init_step_size", self.init_step_size)
        raise_if_invalid(errors, "adaptation configuration")


def _check_adaptive(errors, n_iters, n_adapts, delta):
    check_positive_int(errors, "n_iters", n_iters)
    check_positive_int(errors, "n_adapts", n_adapts, allow_zero=True)
    if not errors and n_adapts > n_iters:
        errors.append(f"n_adapts ({n_adapts}) cannot exceed n_iters ({n_iters})")
    if not 0.0 < delta < 1.0:
        errors.append(f"delta must be in (0, 1), got {delta}")


@dataclass(frozen=True)
class HMC:
    """Static HMC: fixed step size and number of leapfrog steps, no adaptation."""
    n_iters: int
    step_size: float
    num_steps: int

    adaptive = False

    def __post_init__(self):
        errors = []
        check_positive_int(errors, "n_iters", self.n_iters)
        check_positive_float(errors, "step_size", self.step_size)
        check_positive_int(errors, "num_steps", self.num_steps)
        raise_if_invalid(errors, "HMC configuration")


@dataclass(frozen=True)
class HMCDA:
    """HMC with dual-averaging step size and a fixed trajectory length."""
    n_iters: int
    n_adapts: int
    delta: float = _DEFAULT_TARGET_ACCEPT
    trajectory_length: float = 1.0
    adaptation: AdaptationConfig = field(default_factory=AdaptationConfig)

    adaptive = True

    def __post_init__(self):
        errors = []
        _check_adaptive(errors, self.n_iters, self.n_adapts, self.delta)
        check_positive_float(errors, "trajectory_length", self.trajectory_length)
        raise_if_invalid(errors, "HMCDA configuration")


@dataclass(frozen=True)
class NUTS:
    """No-U-Turn sampler with three-phase adaptation.

    Attributes:
        n_iters: Number of iterations, warm-up included
        n_adapts: Warm-up length; defaults to min(1000, round(n_iters / 2))
        delta: Target acceptance statistic, in (0, 1)
        max_depth: Maximum tree depth j_max (depths 0..max_depth are expanded)
        delta_max: Energy error beyond which a leaf is divergent
    """
    n_iters: int
    n_adapts: Optional[int] = None
    delta: float = _DEFAULT_TARGET_ACCEPT
    max_depth: int = _DEFAULT_MAX_DEPTH
    delta_max: float = _DEFAULT_DELTA_MAX
    adaptation: AdaptationConfig = field(default_factory=AdaptationConfig)

    adaptive = True

    def __post_init__(self):
        if self.n_adapts is None and isinstance(self.n_iters, int):
            object.__setattr__(
                self, "n_adapts", min(_MAX_DEFAULT_ADAPTS, int(round(self.n_iters / 2)))
            )
        errors = []
        _check_adaptive(errors, self.n_iters, self.n_adapts, self.delta)
        check_positive_int(errors, "max_depth", self.max_depth, allow_zero=True)
        check_positive_float(errors, "delta_max", self.delta_max)
        raise_if_invalid(errors, "NUTS configuration")
