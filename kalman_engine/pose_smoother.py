# =============================================================================
# kalman_engine/pose_smoother.py
#
# PoseSmoothingPipeline — the single per-frame interface between the host
# and the smoothing engine.
#
# Call flow per frame:
#   1. Settings change detection         → reset() if a noise slider moved
#   2. Warm-up on the first call         → start clock, no estimate yet
#   3. New-measurement detection         → raw input differs from last one
#   4. Clock read / restart              → dt accumulated since last measurement
#   5. Adaptive scaler + predict/correct → only for a new measurement
#   6. Deadzone sizing from variance     → sqrt(var − min_var) · scale
#   7. DeadzoneFilter.filter()           → smoothed pose
#
# States:  UNINITIALIZED ──first call──→ RUNNING
#                ↑                          │
#                └──── reset() ─────────────┘
# =============================================================================

from typing import Callable, Optional

import numpy as np

from config import NUM_MEASUREMENT_DOF, KALMAN_NOMINAL_DT
from core.logger import get_logger
from core.timer import Timer
from kalman_engine.data_structures import KalmanSettings, SmoothedPose
from kalman_engine.deadzone_filter import DeadzoneFilter
from kalman_engine.kalman_filter import (
    LinearKalmanEstimator, AdaptiveProcessNoiseScaler,
    build_transition_matrix, build_process_noise_cov,
    build_measurement_matrix, build_measurement_noise_cov,
)

log = get_logger(__name__)


class PoseSmoothingPipeline:
    """
    Adaptive Kalman + deadzone smoother for a 6-DoF head pose.

    Usage:
        smoother = PoseSmoothingPipeline()

        # Once per host tick:
        result = smoother.on_frame(raw_pose)        # returns SmoothedPose
        if result.valid:
            use(result.pose)

    The very first call after construction or reset() only starts the
    clock and returns SmoothedPose(valid=False).
    """

    def __init__(
        self,
        settings: Optional[KalmanSettings] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._settings = settings if settings is not None else KalmanSettings()
        self._active   = self._settings

        self._timer    = Timer(clock)
        self._kf       = LinearKalmanEstimator()
        self._scaler   = AdaptiveProcessNoiseScaler(self._settings.adaptivity_window)
        self._dz       = DeadzoneFilter(self._settings.deadzone_exponent)

        self._frame_count = 0
        self.reset()

        log.info("PoseSmoothingPipeline initialized.")

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def reset(self) -> None:
        """Rebuild every model matrix from the live settings and go UNINITIALIZED."""
        s = self._settings
        self._active = s

        self._kf.reset()
        self._scaler.reset()
        self._scaler.window_length = s.adaptivity_window

        self._kf.transition_matrix     = build_transition_matrix(KALMAN_NOMINAL_DT)
        self._kf.measurement_matrix    = build_measurement_matrix()
        self._kf.measurement_noise_cov = build_measurement_noise_cov(
            s.measurement_variance_pos, s.measurement_variance_rot)

        self._scaler.base_cov = build_process_noise_cov(
            KALMAN_NOMINAL_DT, s.process_sigma_pos, s.process_sigma_rot)
        self._kf.process_noise_cov = self._scaler.base_cov.copy()
        self._kf.state_cov         = self._scaler.base_cov.copy()

        self._dz.exponent = s.deadzone_exponent
        self._dz.reset()

        self._last_input   = np.zeros(NUM_MEASUREMENT_DOF)
        self._last_output: Optional[np.ndarray] = None
        self._minimal_state_var = np.full(NUM_MEASUREMENT_DOF, np.inf)
        self._dt_since_last_input = 0.0
        self._measurement_count = 0
        self._noise_snapshot = s.noise_key
        self._first_run = True

        log.info(f"PoseSmoothingPipeline reset "
                 f"(R_pos={s.measurement_variance_pos:g}, "
                 f"R_rot={s.measurement_variance_rot:g}, "
                 f"dz_scale={s.deadzone_scale:g})")

    def update_settings(self, settings: KalmanSettings) -> None:
        """
        Replace the live settings. A noise-slider change resets on the next
        frame; other fields wait for the next reset().
        """
        self._settings = settings

    # ── Main Update ───────────────────────────────────────────────────────────

    def on_frame(
        self,
        raw_pose,
        settings: Optional[KalmanSettings] = None,
        new_measurement: Optional[bool] = None,
    ) -> SmoothedPose:
        """
        Smooth one raw pose sample.

        Args:
            raw_pose:        6 values (x, y, z, yaw, pitch, roll)
            settings:        Optional new settings snapshot
            new_measurement: Explicit "fresh upstream frame" signal. When None,
                             any component differing from the previous raw
                             input counts as new. That heuristic misreads float
                             noise as a new frame and misses a frame that
                             repeats its value exactly; it relies on the source
                             holding its value steady between frames.

        Returns:
            SmoothedPose — valid=False only on the warm-up call.
        """
        raw = self._validate_pose(raw_pose)
        self._frame_count += 1

        # ── 1. Settings change detection ──────────────────────────────────
        if settings is not None:
            self._settings = settings
        if self._settings.noise_key != self._noise_snapshot:
            log.info(f"Noise sliders changed {self._noise_snapshot} → "
                     f"{self._settings.noise_key}; resetting.")
            self.reset()

        # ── 2. Warm-up ────────────────────────────────────────────────────
        if self._first_run:
            self._timer.start()
            self._first_run = False
            return SmoothedPose(valid=False, alpha=self._scaler.alpha,
                                deadzone=self._dz.dz_size.copy())

        # ── 3. New-measurement detection ──────────────────────────────────
        if new_measurement is None:
            new_measurement = bool(np.any(raw != self._last_input))

        # ── 4. Timing ─────────────────────────────────────────────────────
        dt = self._timer.elapsed_seconds()
        self._timer.start()
        self._dt_since_last_input += dt

        # Held frame: estimator untouched, so is the output
        if not new_measurement and self._last_output is not None:
            return SmoothedPose(pose=self._last_output.copy(), valid=True,
                                new_measurement=False, alpha=self._scaler.alpha,
                                deadzone=self._dz.dz_size.copy())

        # ── 5. Kalman step ────────────────────────────────────────────────
        if new_measurement:
            self._kalman_step(raw, self._dt_since_last_input)
            self._dt_since_last_input = 0.0
            self._last_input = raw

        # ── 6. Deadzone sizing ────────────────────────────────────────────
        output   = self._kf.pose
        variance = self._kf.pose_variance
        self._minimal_state_var = np.minimum(self._minimal_state_var, variance)
        self._dz.dz_size = (np.sqrt(np.maximum(variance - self._minimal_state_var, 0.0))
                            * self._active.deadzone_scale)

        # ── 7. Deadzone ───────────────────────────────────────────────────
        output = self._dz.filter(output)
        self._last_output = output.copy()

        return SmoothedPose(pose=output, valid=True,
                            new_measurement=new_measurement,
                            alpha=self._scaler.alpha,
                            deadzone=self._dz.dz_size.copy())

    def filter_into(self, raw_pose, out: np.ndarray) -> bool:
        """
        Buffer-based entry point for hosts that own the output storage.

        Writes the smoothed pose into `out` and returns True. On the warm-up
        call `out` keeps its previous contents and False is returned.
        """
        result = self.on_frame(raw_pose)
        if not result.valid:
            return False
        out[:NUM_MEASUREMENT_DOF] = result.pose
        return True

    # ── Internals ─────────────────────────────────────────────────────────────

    def _kalman_step(self, raw: np.ndarray, dt: float) -> bool:
        s = self._active
        before = self._kf.snapshot()

        self._kf.transition_matrix = build_transition_matrix(dt)
        self._scaler.base_cov = build_process_noise_cov(
            dt, s.process_sigma_pos, s.process_sigma_rot)
        self._scaler.update(self._kf, dt)

        try:
            self._kf.predict()
            self._kf.correct(raw)
        except np.linalg.LinAlgError as exc:
            log.warning(f"Measurement update failed ({exc}); holding previous state.")
            self._kf.restore(before)
            return False

        self._measurement_count += 1
        if self._measurement_count == 1:
            log.debug(f"First measurement after reset: {np.round(raw, 3).tolist()}")
        return True

    @staticmethod
    def _validate_pose(raw_pose) -> np.ndarray:
        raw = np.array(raw_pose, dtype=float).reshape(-1)
        if raw.shape != (NUM_MEASUREMENT_DOF,):
            raise ValueError(f"pose must have {NUM_MEASUREMENT_DOF} components, "
                             f"got {raw.shape[0]}")
        if not np.all(np.isfinite(raw)):
            raise ValueError(f"pose contains non-finite values: {raw.tolist()}")
        return raw

    # ── Utility ───────────────────────────────────────────────────────────────

    @property
    def initialized(self) -> bool:
        """False until the warm-up call has started the clock."""
        return not self._first_run

    @property
    def settings(self) -> KalmanSettings:
        """Settings the current model matrices were built from."""
        return self._active

    @property
    def estimator(self) -> LinearKalmanEstimator:
        return self._kf

    @property
    def scaler(self) -> AdaptiveProcessNoiseScaler:
        return self._scaler

    @property
    def deadzone(self) -> DeadzoneFilter:
        return self._dz

    @property
    def minimal_state_var(self) -> np.ndarray:
        return self._minimal_state_var.copy()

    @property
    def time_since_last_measurement(self) -> float:
        return self._dt_since_last_input

    @property
    def frame_count(self) -> int:
        return self._frame_count
