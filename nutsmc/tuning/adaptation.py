"""Stan-style windowed adaptation of step size and diagonal mass matrix.

Warm-up is split into three phases:
- fast_init: step size only (init_buffer iterations)
- slow: doubling windows; the diagonal variance of the draws in each window
  becomes the new inverse mass matrix, and dual averaging restarts
- fast_final: step size only (term_buffer iterations)

After n_adapts iterations the step size is frozen at its averaged value.
"""
from __future__ import annotations
from typing import List, NamedTuple, Optional, Tuple

import numpy as np
import jax.numpy as jnp

from nutsmc.config import AdaptationConfig
from nutsmc.log import SimpleLogger, format_vector
from nutsmc.tuning.dual_averaging import DualAveragingState, StepSizeAdapter
from nutsmc.tuning.welford import MassMatrixEstimator, WelfordState

# Below this many warm-up iterations no mass matrix window is opened (Stan)
_MIN_WINDOWED_ADAPTS = 20


class WindowSchedule:
    """Iteration counter and window boundaries of the three-phase warm-up.

    `n` counts completed warm-up iterations (1-based once advanced). When the
    default buffers do not fit in `n_adapts`, they are shrunk to 15% / 10% of
    the warm-up with one slow window in between; with fewer than 20 warm-up
    iterations only the step size is adapted.
    """

    def __init__(
        self,
        n_adapts: int,
        init_buffer: int = 75,
        term_buffer: int = 50,
        window_size: int = 25,
        logger: Optional[SimpleLogger] = None,
    ):
        self.n = 0
        self.n_adapts = n_adapts
        self.logger = logger if logger is not None else SimpleLogger(verbose=0)
        if n_adapts < init_buffer + window_size + term_buffer:
            requested = (init_buffer, term_buffer, window_size)
            if n_adapts < _MIN_WINDOWED_ADAPTS:
                init_buffer, term_buffer, window_size = n_adapts, 0, 0
            else:
                init_buffer = int(0.15 * n_adapts)
                term_buffer = int(0.1 * n_adapts)
                window_size = n_adapts - init_buffer - term_buffer
            if n_adapts > 0:
                self.logger.warn(
                    f"{n_adapts} warm-up iterations cannot hold init_buffer, term_buffer, "
                    f"window_size = {requested}; using {(init_buffer, term_buffer, window_size)}"
                )
        self.init_buffer = init_buffer
        self.term_buffer = term_buffer
        self.window_size = window_size
        if window_size > 0:
            self.next_window = init_buffer + window_size - 1
        else:
            self.next_window = n_adapts

    @property
    def last_window_end(self) -> int:
        return self.n_adapts - self.term_buffer - 1

    def advance(self) -> bool:
        """Count one warm-up iteration; False once warm-up is over."""
        if self.n >= self.n_adapts:
            return False
        self.n += 1
        return True

    def in_adaptation(self) -> bool:
        return (
            self.n >= self.init_buffer
            and self.n < self.n_adapts - self.term_buffer
            and self.n != self.n_adapts
        )

    def is_window_end(self) -> bool:
        return self.n == self.next_window and self.n != self.n_adapts

    def compute_next_window(self) -> None:
        if self.next_window == self.last_window_end:
            return
        self.window_size *= 2
        self.next_window = self.n + self.window_size
        if self.next_window != self.last_window_end:
            if self.next_window + 2 * self.window_size >= self.n_adapts - self.term_buffer:
                self.next_window = self.last_window_end

    @property
    def frozen(self) -> bool:
        return self.n >= self.n_adapts

    def phase(self) -> str:
        if self.frozen:
            return "frozen"
        if self.n < self.init_buffer:
            return "fast_init"
        if self.n >= self.n_adapts - self.term_buffer:
            return "fast_final"
        return "slow"


def next_window_sequence(n_adapts: int, init_buffer: int = 75, term_buffer: int = 50, window_size: int = 25) -> List[int]:
    """Iteration counts at which mass matrix windows end."""
    schedule = WindowSchedule(n_adapts, init_buffer, term_buffer, window_size)
    ends = []
    while schedule.advance():
        if schedule.is_window_end():
            ends.append(schedule.n)
            schedule.compute_next_window()
    return ends


def build_schedule(n_adapts: int, init_buffer: int = 75, term_buffer: int = 50, window_size: int = 25) -> List[Tuple[int, int, str]]:
    """Build the windowed schedule as a list of (start, end, type) tuples.

    Ranges are half-open over the warm-up counter n; the step size is frozen
    at n = n_adapts.
    Types: 'fast_init', 'slow', 'fast_final'.
    """
    schedule = WindowSchedule(n_adapts, init_buffer, term_buffer, window_size)
    if n_adapts == 0:
        return []
    if schedule.window_size == 0:
        return [(1, n_adapts, "fast_init")]

    intervals = []
    if schedule.init_buffer > 1:
        intervals.append((1, schedule.init_buffer, "fast_init"))
    start = schedule.init_buffer
    for end in next_window_sequence(n_adapts, init_buffer, term_buffer, window_size):
        intervals.append((start, end + 1, "slow"))
        start = end + 1
    intervals.append((start, n_adapts, "fast_final"))
    return intervals


class AdaptationState(NamedTuple):
    """Snapshot of a ThreePhaseAdapter."""
    n: int
    n_adapts: int
    init_buffer: int
    term_buffer: int
    window_size: int
    next_window: int
    dual_averaging: DualAveragingState
    welford: WelfordState


class ThreePhaseAdapter:
    """Adapts step size and inverse mass matrix over n_adapts warm-up iterations.

    Args:
        n_adapts: Number of warm-up iterations
        dim: Dimension of the target
        initial_step_size: Starting step size for dual averaging
        target_accept: Target acceptance statistic delta
        config: Buffers, window size and dual averaging constants
        logger: Console logger
    """

    def __init__(
        self,
        n_adapts: int,
        dim: int,
        initial_step_size: float,
        target_accept: float = 0.8,
        config: Optional[AdaptationConfig] = None,
        logger: Optional[SimpleLogger] = None,
    ):
        self.config = config if config is not None else AdaptationConfig()
        self.logger = logger if logger is not None else SimpleLogger(verbose=0)
        self.schedule = WindowSchedule(
            n_adapts,
            self.config.init_buffer,
            self.config.term_buffer,
            self.config.window_size,
            logger=self.logger,
        )
        self.step_size_adapter = StepSizeAdapter(
            initial_step_size,
            target_accept=target_accept,
            gamma=self.config.gamma,
            t0=self.config.t0,
            kappa=self.config.kappa,
            mu_factor=self.config.mu_factor,
            logger=self.logger,
        )
        self.mass_matrix_estimator = MassMatrixEstimator(dim)
        self.inv_mass_matrix = jnp.ones(dim)

        self.logger.log(f"Adaptation Schedule ({n_adapts} steps):")
        for s, e, t in build_schedule(
            n_adapts, self.config.init_buffer, self.config.term_buffer, self.config.window_size
        ):
            self.logger.log(f"  [{s:4d} - {e:4d}) {t}")

    @property
    def step_size(self) -> float:
        return self.step_size_adapter.step_size

    @property
    def frozen(self) -> bool:
        return self.schedule.frozen

    @property
    def state(self) -> AdaptationState:
        s = self.schedule
        return AdaptationState(
            n=s.n,
            n_adapts=s.n_adapts,
            init_buffer=s.init_buffer,
            term_buffer=s.term_buffer,
            window_size=s.window_size,
            next_window=s.next_window,
            dual_averaging=self.step_size_adapter.state,
            welford=self.mass_matrix_estimator.state,
        )

    def adapt(
        self,
        accept_stat: float,
        position: jnp.ndarray,
        adapt_step_size: Optional[bool] = None,
        adapt_mass_matrix: Optional[bool] = None,
    ) -> None:
        """Feed one warm-up transition; a no-op once warm-up is over."""
        if adapt_step_size is None:
            adapt_step_size = self.config.adapt_step_size
        if adapt_mass_matrix is None:
            adapt_mass_matrix = self.config.adapt_mass_matrix

        schedule = self.schedule
        if not schedule.advance():
            return

        if schedule.n == schedule.n_adapts:
            if adapt_step_size:
                self.step_size_adapter.finalize()
            self.logger.log(
                f"  Adapted step size = {self.step_size:.5g}, "
                f"inv mass = {format_vector(np.asarray(self.inv_mass_matrix))}; "
                f"{schedule.n} iterations used for adaptation."
            )
            return

        window_end = schedule.is_window_end()
        if adapt_step_size:
            self.step_size_adapter.adapt(accept_stat, update_mu=window_end)

        if adapt_mass_matrix:
            if schedule.in_adaptation():
                self.mass_matrix_estimator.add_sample(position)
            if window_end:
                self.inv_mass_matrix = self.mass_matrix_estimator.regularized_variance()
                self.mass_matrix_estimator.reset()
                self.logger.log(
                    f"  Window finished at iteration {schedule.n}. Updated Mass Matrix. "
                    f"Range: [{float(jnp.min(self.inv_mass_matrix)):.4f}, "
                    f"{float(jnp.max(self.inv_mass_matrix)):.4f}]"
                )

        if window_end:
            schedule.compute_next_window()
