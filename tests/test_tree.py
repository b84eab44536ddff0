"""
NUTS tree builder and transition tests.

Run with: pytest tests/test_tree.py -v
"""

import numpy as np
import pytest
import jax.numpy as jnp
from jax import random

from nutsmc.hamiltonian import HamiltonianState, hamiltonian
from nutsmc.samplers.HMC import leapfrog
from nutsmc.samplers.NUTS import build_tree, no_u_turn, nuts_transition


@pytest.fixture
def start(harmonic_oracle):
    return harmonic_oracle.init_state(jnp.array([0.0]), jnp.array([1.0]))


def _H0(state):
    return hamiltonian(state.momentum, state.log_prob, jnp.ones(1))


class TestBuildTree:

    @pytest.mark.parametrize("direction", [1, -1])
    def test_depth_two_boundaries_match_leapfrog(self, key, harmonic_oracle, start, direction):
        inv_mass = jnp.ones(1)
        tree = build_tree(key, start, -1e9, direction, 2, 0.1, _H0(start), harmonic_oracle, inv_mass)

        far, _ = leapfrog(start, 0.1, direction, harmonic_oracle, inv_mass, 4)
        near, _ = leapfrog(start, 0.1, direction, harmonic_oracle, inv_mass, 1)
        outer, inner = (tree.plus, tree.minus) if direction == 1 else (tree.minus, tree.plus)

        np.testing.assert_allclose(outer.position, far.position, atol=1e-12)
        np.testing.assert_allclose(outer.momentum, far.momentum, atol=1e-12)
        np.testing.assert_allclose(inner.position, near.position, atol=1e-12)

    def test_depth_two_counts(self, key, harmonic_oracle, start):
        tree = build_tree(key, start, -1e9, 1, 2, 0.1, _H0(start), harmonic_oracle, jnp.ones(1))

        assert tree.n_alpha == 4
        assert tree.n_leapfrog == 4
        assert tree.n_valid == 4
        assert tree.continues
        assert not tree.diverged
        # Energy is nearly conserved, so every leaf has alpha close to 1
        assert 3.9 < tree.alpha_sum <= 4.0

    def test_no_leaf_inside_a_high_slice(self, key, harmonic_oracle, start):
        H0 = _H0(start)
        tree = build_tree(key, start, -H0 + 0.5, 1, 2, 0.1, H0, harmonic_oracle, jnp.ones(1))

        assert tree.n_valid == 0
        assert tree.continues
        assert tree.n_alpha == 4

    def test_proposal_is_a_leaf(self, key, harmonic_oracle, start):
        inv_mass = jnp.ones(1)
        tree = build_tree(key, start, -1e9, 1, 3, 0.1, _H0(start), harmonic_oracle, inv_mass)
        leaves = [leapfrog(start, 0.1, 1, harmonic_oracle, inv_mass, k)[0].position for k in range(1, 9)]
        assert any(np.allclose(tree.proposal.position, leaf, atol=1e-12) for leaf in leaves)

    def test_same_key_same_tree(self, key, harmonic_oracle, start):
        a = build_tree(key, start, -1e9, 1, 3, 0.1, _H0(start), harmonic_oracle, jnp.ones(1))
        b = build_tree(key, start, -1e9, 1, 3, 0.1, _H0(start), harmonic_oracle, jnp.ones(1))
        np.testing.assert_array_equal(a.proposal.position, b.proposal.position)

    def test_divergent_leaf_stops_tree(self, key):
        from nutsmc.hamiltonian import GradientOracle

        def log_prob(x):
            return jnp.where(x[0] > 0.05, jnp.nan, -0.5 * jnp.sum(x**2))

        oracle = GradientOracle(log_prob)
        state = oracle.init_state(jnp.array([0.0]), jnp.array([1.0]))
        tree = build_tree(key, state, -1e9, 1, 3, 0.1, _H0(state), oracle, jnp.ones(1))

        assert not tree.continues
        assert tree.diverged
        assert tree.n_valid == 0
        assert tree.n_leapfrog == 1


class TestNoUTurn:

    def _state(self, q, p):
        q, p = jnp.array(q), jnp.array(p)
        return HamiltonianState(q, p, 0.0, jnp.zeros_like(q))

    def test_expanding_span(self):
        assert no_u_turn(self._state([0.0], [1.0]), self._state([1.0], [1.0]))

    def test_forward_end_turned_back(self):
        assert not no_u_turn(self._state([0.0], [1.0]), self._state([1.0], [-0.1]))

    def test_backward_end_turned_back(self):
        assert not no_u_turn(self._state([0.0], [-0.5]), self._state([1.0], [1.0]))


class TestNutsTransition:

    def test_u_turn_terminates_trajectories(self, key, harmonic_oracle):
        max_depth = 5
        position = jnp.array([0.5])
        n_terminated = 0
        n_trials = 200
        for i in range(n_trials):
            t = nuts_transition(random.fold_in(key, i), position, 0.5, harmonic_oracle, jnp.ones(1), max_depth)
            assert t.tree_depth <= max_depth
            assert t.n_leapfrog <= 2 ** (max_depth + 1) - 1
            n_terminated += int(t.terminated)
            position = t.position

        assert n_terminated / n_trials >= 0.95

    def test_acceptance_statistic_in_unit_interval(self, key, normal_oracle):
        position = jnp.array([0.1, -0.3, 0.2])
        for i in range(20):
            t = nuts_transition(random.fold_in(key, i), position, 0.4, normal_oracle, jnp.ones(3))
            assert 0.0 <= t.accept_stat <= 1.0
            position = t.position

    def test_non_finite_start_energy(self, key):
        from nutsmc.hamiltonian import GradientOracle

        oracle = GradientOracle(lambda x: -jnp.inf * jnp.sum(x**2))
        position = jnp.array([1.0])
        t = nuts_transition(key, position, 0.1, oracle, jnp.ones(1))

        assert t.diverged
        assert t.accept_stat == 0.0
        assert not t.accepted
        np.testing.assert_array_equal(t.position, position)

    def test_reproducible_with_same_key(self, key, normal_oracle):
        position = jnp.array([0.1, -0.3, 0.2])
        a = nuts_transition(key, position, 0.3, normal_oracle, jnp.ones(3))
        b = nuts_transition(key, position, 0.3, normal_oracle, jnp.ones(3))
        np.testing.assert_array_equal(a.position, b.position)
        assert a.n_leapfrog == b.n_leapfrog
