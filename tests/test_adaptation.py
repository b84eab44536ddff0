"""
Three-phase window schedule and adapter tests.

Run with: pytest tests/test_adaptation.py -v
"""

import numpy as np
import pytest
import jax.numpy as jnp

from nutsmc.config import AdaptationConfig
from nutsmc.tuning.adaptation import (
    ThreePhaseAdapter,
    WindowSchedule,
    build_schedule,
    next_window_sequence,
)


class TestWindowSchedule:

    def test_default_window_ends(self):
        assert next_window_sequence(1000) == [99, 149, 249, 449, 949]

    def test_default_schedule(self):
        assert build_schedule(1000) == [
            (1, 75, 'fast_init'),
            (75, 100, 'slow'),
            (100, 150, 'slow'),
            (150, 250, 'slow'),
            (250, 450, 'slow'),
            (450, 950, 'slow'),
            (950, 1000, 'fast_final'),
        ]

    def test_initial_state(self):
        schedule = WindowSchedule(1000)
        assert schedule.n == 0
        assert schedule.next_window == 99
        assert schedule.phase() == 'fast_init'

    def test_phases(self):
        schedule = WindowSchedule(1000)
        phases = {}
        while schedule.advance():
            phases.setdefault(schedule.phase(), schedule.n)
            if schedule.is_window_end():
                schedule.compute_next_window()
        assert phases == {'fast_init': 1, 'slow': 75, 'fast_final': 950, 'frozen': 1000}

    def test_next_window_never_decreases(self):
        schedule = WindowSchedule(3000)
        seen = [schedule.next_window]
        while schedule.advance():
            if schedule.is_window_end():
                schedule.compute_next_window()
            seen.append(schedule.next_window)
        assert all(b >= a for a, b in zip(seen, seen[1:]))
        assert all(0 <= w <= 3000 for w in seen)

    def test_last_window_absorbs_remainder(self):
        ends = next_window_sequence(600)
        assert ends[-1] == 600 - 50 - 1
        # 25, 50, 100, then 300 instead of 200
        assert ends == [99, 149, 249, 549]

    def test_short_warmup_single_window(self):
        schedule = WindowSchedule(100)
        assert (schedule.init_buffer, schedule.term_buffer, schedule.window_size) == (15, 10, 75)
        assert next_window_sequence(100) == [89]

    def test_very_short_warmup_has_no_window(self):
        assert next_window_sequence(10) == []
        schedule = WindowSchedule(10)
        while schedule.advance():
            assert not schedule.in_adaptation()
        assert build_schedule(10) == [(1, 10, 'fast_init')]

    def test_no_warmup(self):
        schedule = WindowSchedule(0)
        assert not schedule.advance()
        assert schedule.frozen
        assert build_schedule(0) == []


class TestThreePhaseAdapter:

    def test_learns_inverse_mass_matrix(self):
        rng = np.random.default_rng(1)
        scales = np.array([2.0, 0.5])
        adapter = ThreePhaseAdapter(1000, 2, initial_step_size=0.5)

        for _ in range(1000):
            adapter.adapt(0.8, jnp.asarray(rng.normal(size=2) * scales))

        np.testing.assert_allclose(adapter.inv_mass_matrix, scales**2, rtol=0.25)
        assert adapter.frozen

    def test_welford_reset_at_window_end(self):
        adapter = ThreePhaseAdapter(1000, 1, initial_step_size=0.5)
        for i in range(99):
            adapter.adapt(0.8, jnp.array([float(i)]))
        state = adapter.state
        assert state.n == 99
        assert float(state.welford.count) == 0
        assert state.next_window == 149
        assert state.window_size == 50

    def test_samples_counted_only_in_slow_phase(self):
        adapter = ThreePhaseAdapter(1000, 1, initial_step_size=0.5)
        for i in range(80):
            adapter.adapt(0.8, jnp.array([float(i)]))
        # Iterations 75..80 were added
        assert float(adapter.state.welford.count) == 6

    def test_step_size_frozen_after_warmup(self):
        adapter = ThreePhaseAdapter(200, 1, initial_step_size=0.5)
        for _ in range(200):
            adapter.adapt(0.6, jnp.zeros(1))
        frozen_step = adapter.step_size
        assert frozen_step <= 1.0

        adapter.adapt(0.0, jnp.zeros(1))
        adapter.adapt(1.0, jnp.zeros(1))
        assert adapter.step_size == frozen_step
        assert adapter.state.n == 200

    def test_mass_matrix_adaptation_can_be_disabled(self):
        adapter = ThreePhaseAdapter(
            300, 2, initial_step_size=0.5, config=AdaptationConfig(adapt_mass_matrix=False)
        )
        for i in range(300):
            adapter.adapt(0.8, jnp.array([float(i), -float(i)]))
        np.testing.assert_array_equal(adapter.inv_mass_matrix, jnp.ones(2))

    def test_step_size_adaptation_can_be_disabled(self):
        adapter = ThreePhaseAdapter(
            300, 1, initial_step_size=0.5, config=AdaptationConfig(adapt_step_size=False)
        )
        for _ in range(300):
            adapter.adapt(0.1, jnp.zeros(1))
        assert adapter.step_size == pytest.approx(0.5)

    def test_window_with_one_sample_keeps_unit_mass_matrix(self):
        config = AdaptationConfig(init_buffer=0, term_buffer=0, window_size=2)
        adapter = ThreePhaseAdapter(50, 2, initial_step_size=0.5, config=config)
        adapter.adapt(0.8, jnp.array([3.0, -3.0]))

        assert adapter.state.n == 1
        assert float(adapter.state.welford.count) == 0
        np.testing.assert_array_equal(adapter.inv_mass_matrix, jnp.ones(2))

    def test_short_warmup_reports_rewritten_buffers(self, capsys):
        from nutsmc.log import SimpleLogger

        adapter = ThreePhaseAdapter(100, 1, initial_step_size=0.5, logger=SimpleLogger(verbose=1))
        out = capsys.readouterr().out
        assert "WARNING" in out
        assert "(75, 50, 25)" in out
        assert "(15, 10, 75)" in out
        assert adapter.state.init_buffer == 15

    def test_fitting_buffers_are_not_reported(self, capsys):
        from nutsmc.log import SimpleLogger

        ThreePhaseAdapter(1000, 1, initial_step_size=0.5, logger=SimpleLogger(verbose=1))
        assert "WARNING" not in capsys.readouterr().out
