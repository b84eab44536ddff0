"""
Dual averaging step size adaptation tests.

Run with: pytest tests/test_dual_averaging.py -v
"""

import numpy as np
import pytest
import jax.numpy as jnp

from nutsmc.tuning.dual_averaging import (
    StepSizeAdapter,
    da_init,
    da_reset,
    da_update,
    find_reasonable_step_size,
)


class TestDualAveragingUpdate:

    def test_init(self):
        state = da_init(0.5)
        assert state.log_step == pytest.approx(np.log(0.5))
        assert state.mu == pytest.approx(np.log(5.0))
        assert state.count == 0
        assert state.H_bar == 0.0
        assert state.log_step_bar == 0.0

    def test_first_update(self):
        state = da_update(da_init(1.0), accept_stat=0.3, target_accept=0.8)
        # m = 1: eta = 1/11, H_bar = 0.5/11, x = mu - H_bar / gamma, x_bar = x
        expected_h = 0.5 / 11.0
        expected_x = np.log(10.0) - expected_h / 0.05
        assert state.count == 1
        assert state.H_bar == pytest.approx(expected_h)
        assert state.log_step == pytest.approx(expected_x)
        assert state.log_step_bar == pytest.approx(expected_x)

    def test_acceptance_above_one_is_clipped(self):
        a = da_update(da_init(1.0), accept_stat=5.0, target_accept=0.8)
        b = da_update(da_init(1.0), accept_stat=1.0, target_accept=0.8)
        assert a == b

    def test_reset(self):
        state = da_update(da_init(1.0), accept_stat=0.2, target_accept=0.8)
        reset = da_reset(state, 0.25)
        assert reset.count == 0
        assert reset.H_bar == 0.0
        assert reset.log_step_bar == 0.0
        assert reset.mu == pytest.approx(np.log(2.5))
        assert reset.log_step == pytest.approx(np.log(0.25))


class TestStepSizeAdapter:

    def test_converges_on_exponential_acceptance(self):
        """With alpha(eps) = exp(-eps), the target 0.8 is reached at eps = -log(0.8)."""
        delta = 0.8
        adapter = StepSizeAdapter(1.0, target_accept=delta)
        for _ in range(1000):
            adapter.adapt(np.exp(-adapter.step_size))

        eps_bar = np.exp(adapter.state.log_step_bar)
        assert abs(np.exp(-eps_bar) - delta) < 0.05

        final = adapter.finalize()
        assert final == pytest.approx(min(1.0, eps_bar))
        assert adapter.step_size == final

    def test_update_mu_restarts_around_current_step(self):
        adapter = StepSizeAdapter(1.0, target_accept=0.8)
        for _ in range(10):
            adapter.adapt(0.5)
        adapter.adapt(0.5, update_mu=True)

        step = adapter.step_size
        assert adapter.state.count == 0
        assert adapter.state.H_bar == 0.0
        assert adapter.state.log_step_bar == 0.0
        assert adapter.state.mu == pytest.approx(np.log(10.0 * step))

    def test_non_finite_update_keeps_state(self, capsys):
        from nutsmc.log import SimpleLogger

        adapter = StepSizeAdapter(1.0, target_accept=0.8, logger=SimpleLogger(verbose=1))
        adapter.adapt(0.6)
        before = adapter.state
        adapter.adapt(-np.inf)

        assert adapter.state == before
        assert "WARNING" in capsys.readouterr().out

    def test_finalize_is_capped_at_one(self):
        adapter = StepSizeAdapter(1.0, target_accept=0.8)
        for _ in range(50):
            adapter.adapt(1.0)
        assert adapter.finalize() <= 1.0

    def test_finalize_without_updates_keeps_step(self):
        adapter = StepSizeAdapter(0.3)
        assert adapter.finalize() == pytest.approx(0.3)


class TestFindReasonableStepSize:

    def test_within_bounds(self, key, harmonic_oracle):
        eps = find_reasonable_step_size(key, jnp.array([0.5]), harmonic_oracle, jnp.ones(1))
        assert 1e-6 <= eps <= 1e2

    def test_shrinks_for_narrow_target(self, key):
        from nutsmc.hamiltonian import GradientOracle

        narrow = GradientOracle(lambda x: -0.5 * jnp.sum((x / 0.01) ** 2))
        eps = find_reasonable_step_size(key, jnp.array([0.01]), narrow, jnp.ones(1))
        assert eps < 0.1
