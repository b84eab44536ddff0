"""Single-chain Hamiltonian sampler with warm-up adaptation.

The kernel is selected by the type of the algorithm descriptor (HMC, HMCDA or
NUTS from nutsmc.config); every kernel returns a Transition, and `step`
projects it to (position, accept_stat).
"""
from __future__ import annotations
from typing import Optional, Tuple

import numpy as np
import jax.numpy as jnp
from jax import random

from nutsmc.config import HMC, HMCDA, NUTS
from nutsmc.error_handling import ConfigurationError
from nutsmc.hamiltonian import GradientOracle, Transition
from nutsmc.log import SimpleLogger
from nutsmc.samplers.HMC import hmc_transition
from nutsmc.samplers.NUTS import nuts_transition
from nutsmc.tuning.adaptation import AdaptationState, ThreePhaseAdapter
from nutsmc.tuning.dual_averaging import find_reasonable_step_size

# Type aliases
Array = jnp.ndarray


def _hmc_kernel(sampler: "HamiltonianSampler", key: Array, position: Array) -> Transition:
    return hmc_transition(
        key,
        position,
        sampler.step_size,
        sampler.algorithm.num_steps,
        sampler.oracle,
        sampler.inv_mass_matrix,
    )


def _hmcda_kernel(sampler: "HamiltonianSampler", key: Array, position: Array) -> Transition:
    step_size = sampler.step_size
    num_steps = max(1, int(round(sampler.algorithm.trajectory_length / step_size)))
    return hmc_transition(key, position, step_size, num_steps, sampler.oracle, sampler.inv_mass_matrix)


def _nuts_kernel(sampler: "HamiltonianSampler", key: Array, position: Array) -> Transition:
    return nuts_transition(
        key,
        position,
        sampler.step_size,
        sampler.oracle,
        sampler.inv_mass_matrix,
        max_depth=sampler.algorithm.max_depth,
        delta_max=sampler.algorithm.delta_max,
    )


_KERNELS = {
    HMC: _hmc_kernel,
    HMCDA: _hmcda_kernel,
    NUTS: _nuts_kernel,
}


class HamiltonianSampler:
    """Owns the random key, adaptation state and kernel of one chain.

    Args:
        algorithm: HMC, HMCDA or NUTS descriptor
        oracle: Gradient oracle of the target
        init_position: Starting position, shape (n_dim,)
        key: JAX random key
        verbose: 0 silent, 1 adaptation events, 2 progress lines
    """

    def __init__(self, algorithm, oracle: GradientOracle, init_position: Array, key: Array, verbose: int = 1):
        if type(algorithm) not in _KERNELS:
            raise ConfigurationError(
                f"Unknown algorithm {type(algorithm).__name__}; expected one of "
                f"{[k.__name__ for k in _KERNELS]}"
            )
        init_position = jnp.asarray(init_position)
        if init_position.ndim != 1 or init_position.shape[0] == 0:
            raise ConfigurationError(
                f"init_position must be a non-empty vector, got shape {init_position.shape}"
            )

        self.algorithm = algorithm
        self.oracle = oracle
        self.dim = int(init_position.shape[0])
        self.init_position = init_position
        self.logger = SimpleLogger(verbose)
        self.last_transition: Optional[Transition] = None
        self._kernel = _KERNELS[type(algorithm)]
        self._key = key

        init_lp = oracle.log_density(init_position)
        if not np.isfinite(init_lp):
            self.logger.warn(f"log density at the initial position is {init_lp}")

        self.adapter: Optional[ThreePhaseAdapter] = None
        if algorithm.adaptive:
            config = algorithm.adaptation
            if config.init_step_size is not None:
                initial_step_size = config.init_step_size
            else:
                initial_step_size = find_reasonable_step_size(
                    self._next_key(), init_position, oracle, jnp.ones(self.dim)
                )
                self.logger.log(f"  Found initial step size {initial_step_size:.5g}")
            self.adapter = ThreePhaseAdapter(
                algorithm.n_adapts,
                self.dim,
                initial_step_size,
                target_accept=algorithm.delta,
                config=config,
                logger=self.logger,
            )

    def _next_key(self) -> Array:
        self._key, subkey = random.split(self._key)
        return subkey

    @property
    def step_size(self) -> float:
        if self.adapter is None:
            return float(self.algorithm.step_size)
        return self.adapter.step_size

    @property
    def inv_mass_matrix(self) -> Array:
        if self.adapter is None:
            return jnp.ones(self.dim)
        return self.adapter.inv_mass_matrix

    @property
    def adaptation_state(self) -> Optional[AdaptationState]:
        if self.adapter is None:
            return None
        return self.adapter.state

    def propose(self, position: Array) -> Transition:
        """Run one kernel transition from `position`."""
        transition = self._kernel(self, self._next_key(), jnp.asarray(position))
        self.last_transition = transition
        return transition

    def step(self, position: Array) -> Tuple[Array, float]:
        transition = self.propose(position)
        return transition.position, transition.accept_stat

    def adapt(self, accept_stat: float, position: Array) -> None:
        """Feed the last transition to warm-up adaptation (no-op for static HMC)."""
        if self.adapter is not None:
            self.adapter.adapt(accept_stat, position)
