# =============================================================================
# test_pose_smoother.py — Scenario tests for PoseSmoothingPipeline
# Run: pytest test_pose_smoother.py
# =============================================================================

import numpy as np
import pytest

from kalman_engine.data_structures import KalmanSettings
from kalman_engine.kalman_filter import (
    build_process_noise_cov, build_transition_matrix,
)
from kalman_engine.pose_smoother import PoseSmoothingPipeline

DT = 1.0 / 30.0


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now

    def advance(self, dt: float = DT) -> None:
        self.now += dt


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def smoother(clock):
    return PoseSmoothingPipeline(clock=clock)


def _warm_up(smoother, clock, pose=np.zeros(6)):
    result = smoother.on_frame(pose)
    assert not result.valid
    clock.advance()


class TestReset:

    def test_baseline_after_construction(self, smoother):
        s = smoother.settings
        base = build_process_noise_cov(0.03, s.process_sigma_pos, s.process_sigma_rot)
        kf = smoother.estimator

        assert not smoother.initialized
        assert np.all(kf.state == 0.0)
        assert np.all(np.isposinf(smoother.minimal_state_var))
        np.testing.assert_array_equal(kf.state_cov, base)
        np.testing.assert_array_equal(kf.process_noise_cov, base)
        np.testing.assert_array_equal(kf.transition_matrix, build_transition_matrix(0.03))
        np.testing.assert_allclose(np.diag(kf.measurement_noise_cov), np.full(6, 0.1))
        assert np.all(smoother.deadzone.last_output == 0.0)
        assert smoother.time_since_last_measurement == 0.0

    def test_explicit_reset_restores_baseline(self, smoother, clock):
        _warm_up(smoother, clock)
        for i in range(10):
            smoother.on_frame(np.full(6, float(i + 1)))
            clock.advance()

        smoother.reset()

        s = smoother.settings
        base = build_process_noise_cov(0.03, s.process_sigma_pos, s.process_sigma_rot)
        assert not smoother.initialized
        assert np.all(smoother.estimator.state == 0.0)
        assert np.all(np.isposinf(smoother.minimal_state_var))
        np.testing.assert_array_equal(smoother.estimator.state_cov, base)


class TestFirstCall:

    def test_first_call_has_no_estimate(self, smoother):
        result = smoother.on_frame([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
        assert result.valid is False
        assert result.pose is None
        assert smoother.initialized

    def test_filter_into_leaves_buffer_untouched_on_warm_up(self, smoother, clock):
        out = np.array([9.0, 8.0, 7.0, 6.0, 5.0, 4.0])
        before = out.copy()

        assert smoother.filter_into(np.ones(6), out) is False
        np.testing.assert_array_equal(out, before)

        clock.advance()
        assert smoother.filter_into(np.full(6, 2.0), out) is True
        assert not np.array_equal(out, before)

    def test_second_call_produces_estimate(self, smoother, clock):
        _warm_up(smoother, clock)
        result = smoother.on_frame([1.0, 0, 0, 0, 0, 0])
        assert result.valid
        assert result.new_measurement
        assert result.pose.shape == (6,)
        assert 0.0 < result.pose[0] < 1.0


class TestNewMeasurementDetection:

    def test_repeated_input_holds_output(self, smoother, clock):
        """Two identical consecutive inputs give identical outputs."""
        _warm_up(smoother, clock)
        pose = np.array([0.5, -0.2, 1.0, 3.0, -1.0, 0.25])

        first = smoother.on_frame(pose)
        state = smoother.estimator.state.copy()
        clock.advance()
        second = smoother.on_frame(pose.copy())

        assert first.new_measurement and not second.new_measurement
        np.testing.assert_array_equal(first.pose, second.pose)
        np.testing.assert_array_equal(smoother.estimator.state, state)

    def test_held_frames_accumulate_time(self, smoother, clock):
        _warm_up(smoother, clock)
        pose = np.ones(6)
        smoother.on_frame(pose)
        for _ in range(3):
            clock.advance(0.01)
            smoother.on_frame(pose)
        assert smoother.time_since_last_measurement == pytest.approx(0.03)

        clock.advance(0.01)
        smoother.on_frame(pose * 2.0)
        assert smoother.time_since_last_measurement == 0.0

    def test_tiny_difference_counts_as_new(self, smoother, clock):
        _warm_up(smoother, clock)
        pose = np.ones(6)
        smoother.on_frame(pose)
        clock.advance()
        nudged = pose.copy()
        nudged[4] = np.nextafter(nudged[4], 2.0)
        assert smoother.on_frame(nudged).new_measurement

    def test_explicit_flag_overrides_heuristic(self, smoother, clock):
        _warm_up(smoother, clock)
        pose = np.ones(6)
        smoother.on_frame(pose)
        clock.advance()
        result = smoother.on_frame(pose, new_measurement=True)
        assert result.new_measurement

        clock.advance()
        result = smoother.on_frame(pose * 3.0, new_measurement=False)
        assert not result.new_measurement


class TestConvergence:

    def test_constant_input_converges(self, smoother, clock):
        target = np.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.0])
        _warm_up(smoother, clock)

        early_dz = 0.0
        result = None
        for i in range(900):
            result = smoother.on_frame(target, new_measurement=True)
            if i < 60:
                early_dz = max(early_dz, float(np.max(result.deadzone)))
            clock.advance()

        np.testing.assert_allclose(result.pose, target, atol=1e-3)
        final_dz = float(np.max(result.deadzone))
        assert final_dz < 1e-3
        assert final_dz <= early_dz + 1e-6

    def test_minimal_variance_floor_never_increases(self, smoother, clock):
        rng = np.random.default_rng(2)
        _warm_up(smoother, clock)
        prev = smoother.minimal_state_var
        for _ in range(200):
            smoother.on_frame(rng.normal(scale=0.3, size=6))
            clock.advance()
            floor = smoother.minimal_state_var
            assert np.all(floor <= prev)
            assert np.all(smoother.deadzone.dz_size >= 0.0)
            prev = floor

    def test_noisy_input_is_smoothed(self, smoother, clock):
        rng = np.random.default_rng(9)
        _warm_up(smoother, clock)
        raw, out = [], []
        for _ in range(600):
            pose = rng.normal(scale=0.3, size=6)
            raw.append(pose)
            out.append(smoother.on_frame(pose).pose)
            clock.advance()
        raw, out = np.array(raw[300:]), np.array(out[300:])
        assert np.std(np.diff(out, axis=0)) < 0.5 * np.std(np.diff(raw, axis=0))


class TestAdaptiveAlpha:

    def test_alpha_bounds_along_a_run(self, smoother, clock):
        rng = np.random.default_rng(4)
        _warm_up(smoother, clock)
        pose = np.zeros(6)
        for i in range(400):
            # Alternate quiet holds and violent jumps
            step = 50.0 if i % 100 == 50 else 0.01
            pose = pose + rng.normal(scale=step, size=6)
            result = smoother.on_frame(pose)
            assert 0.001 <= result.alpha <= 1000.0
            clock.advance(rng.uniform(0.005, 0.1))

    def test_large_motion_raises_alpha(self, smoother, clock):
        _warm_up(smoother, clock)
        rng = np.random.default_rng(8)
        for _ in range(100):
            smoother.on_frame(rng.normal(scale=0.01, size=6))
            clock.advance()
        quiet_alpha = smoother.scaler.alpha

        for i in range(5):
            smoother.on_frame(np.full(6, 20.0 * (i + 1)))
            clock.advance()
        assert smoother.scaler.alpha > quiet_alpha


class TestSettings:

    def test_noise_slider_change_triggers_reset(self, smoother, clock):
        _warm_up(smoother, clock)
        for i in range(5):
            smoother.on_frame(np.full(6, float(i + 1)))
            clock.advance()

        noisier = KalmanSettings(noise_pos_slider=0.75)
        result = smoother.on_frame(np.full(6, 9.0), settings=noisier)

        assert not result.valid
        assert smoother.settings is noisier
        assert np.all(smoother.estimator.state == 0.0)
        np.testing.assert_allclose(
            np.diag(smoother.estimator.measurement_noise_cov)[:3], np.full(3, 1.0))

    def test_other_fields_wait_for_reset(self, smoother, clock):
        _warm_up(smoother, clock)
        smoother.on_frame(np.ones(6))
        clock.advance()

        tweaked = KalmanSettings(deadzone_scale=2.0, adaptivity_window=1.0)
        result = smoother.on_frame(np.full(6, 2.0), settings=tweaked)

        assert result.valid
        assert smoother.settings.deadzone_scale == 8.0
        assert smoother.scaler.window_length == 0.25

        smoother.reset()
        assert smoother.settings is tweaked
        assert smoother.scaler.window_length == 1.0

    def test_update_settings_is_picked_up_next_frame(self, smoother, clock):
        _warm_up(smoother, clock)
        smoother.update_settings(KalmanSettings(noise_rot_slider=0.25))
        result = smoother.on_frame(np.ones(6))
        assert not result.valid
        np.testing.assert_allclose(
            np.diag(smoother.estimator.measurement_noise_cov)[3:], np.full(3, 0.01))


class TestErrors:

    @pytest.mark.parametrize("bad", [
        np.zeros(5),
        np.zeros(7),
        [0, 0, 0, 0, 0, np.nan],
        [0, 0, np.inf, 0, 0, 0],
    ])
    def test_bad_pose_rejected(self, smoother, bad):
        with pytest.raises(ValueError):
            smoother.on_frame(bad)

    def test_singular_update_holds_state(self, clock):
        settings = KalmanSettings(process_sigma_pos=0.0, process_sigma_rot=0.0)
        smoother = PoseSmoothingPipeline(settings=settings, clock=clock)
        smoother.estimator.measurement_noise_cov = np.zeros((6, 6))
        _warm_up(smoother, clock)

        result = smoother.on_frame(np.ones(6))

        assert result.valid
        np.testing.assert_array_equal(result.pose, np.zeros(6))
        assert np.all(smoother.estimator.state == 0.0)
