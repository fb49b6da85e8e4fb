# =============================================================================
# kalman_engine/kalman_filter.py
#
# A wrapper around filterpy's KalmanFilter sized for 6-DoF head pose, plus
# the Mehra-style adaptive process-noise scaler that tunes it online.
#
# Mathematical model (constant-velocity, 6 pose axes):
#   State vector:  x = [pose(6), velocity(6)]ᵀ
#   Observation:   z = pose(6)
#
# State transition:  x_k = F·x_{k−1} + noise
# Observation:       z_k = H·x_k     + noise
#
# F = [[I, dt·I],    H = [I, 0]
#      [0,    I]]
#
# Process noise per pose/velocity pair (constant velocity + Brownian motion):
#
# Q_i = a · [[1, c],     a = σ²·dt,  b = 20,  c = 1
#            [c, b]]
# =============================================================================

import numpy as np
from filterpy.kalman import KalmanFilter as _KF

from config import (
    NUM_STATE_DOF, NUM_MEASUREMENT_DOF, NUM_TRANSLATION_AXES,
    KALMAN_VELOCITY_NOISE_FACTOR, KALMAN_CROSS_NOISE_FACTOR,
    KALMAN_ADAPTIVITY_WINDOW, KALMAN_ALPHA_MIN, KALMAN_ALPHA_MAX,
)
from core.logger import get_logger

log = get_logger(__name__)

NS = NUM_STATE_DOF
NZ = NUM_MEASUREMENT_DOF


def _checked(value, shape: tuple, name: str) -> np.ndarray:
    arr = np.asarray(value, dtype=float)
    if arr.shape != shape:
        raise ValueError(f"{name} must have shape {shape}, got {arr.shape}")
    return arr


def symmetrize(m: np.ndarray) -> np.ndarray:
    """Return (M + Mᵀ)/2, removing asymmetry left by floating-point error."""
    return 0.5 * (m + m.T)


# ── Model Matrices ────────────────────────────────────────────────────────────

def build_transition_matrix(dt: float) -> np.ndarray:
    """Constant-velocity transition: identity plus dt at (i, i+6)."""
    F = np.eye(NS)
    for i in range(NZ):
        F[i, i + NZ] = dt
    return F


def build_process_noise_cov(dt: float, sigma_pos: float, sigma_rot: float) -> np.ndarray:
    """
    Un-scaled process-noise covariance for an interval of dt seconds.

    Velocity is modeled noisier than direct position drift and positively
    correlated with it.
    """
    b = KALMAN_VELOCITY_NOISE_FACTOR
    c = KALMAN_CROSS_NOISE_FACTOR
    a_pos = sigma_pos * sigma_pos * dt
    a_rot = sigma_rot * sigma_rot * dt

    Q = np.zeros((NS, NS))
    for i in range(NZ):
        a = a_pos if i < NUM_TRANSLATION_AXES else a_rot
        Q[i, i]           = a
        Q[i, i + NZ]      = a * c
        Q[i + NZ, i]      = a * c
        Q[i + NZ, i + NZ] = a * b
    return Q


def build_measurement_matrix() -> np.ndarray:
    """Selects the 6 pose components out of the 12-dimensional state."""
    H = np.zeros((NZ, NS))
    H[:, :NZ] = np.eye(NZ)
    return H


def build_measurement_noise_cov(variance_pos: float, variance_rot: float) -> np.ndarray:
    R = np.zeros((NZ, NZ))
    for i in range(NUM_TRANSLATION_AXES):
        R[i, i] = variance_pos
        R[i + NUM_TRANSLATION_AXES, i + NUM_TRANSLATION_AXES] = variance_rot
    return R


# ── Estimator ─────────────────────────────────────────────────────────────────

class LinearKalmanEstimator:
    """
    12-state / 6-measurement linear Kalman filter.

    Usage:
        kf = LinearKalmanEstimator()
        kf.transition_matrix = build_transition_matrix(dt)
        ...
        kf.predict()
        kf.correct(measured_pose)
        pose = kf.pose
    """

    def __init__(self):
        # dim_x=12 (pose + velocity), dim_z=6 (we only observe pose)
        self._kf = _KF(dim_x=NS, dim_z=NZ)
        self.reset()
        log.debug(f"LinearKalmanEstimator initialized (dim_x={NS}, dim_z={NZ})")

    def reset(self) -> None:
        """Zero the state and every model matrix."""
        kf = self._kf
        kf.x       = np.zeros(NS)
        kf.x_prior = np.zeros(NS)
        kf.x_post  = np.zeros(NS)
        kf.F       = np.zeros((NS, NS))
        kf.Q       = np.zeros((NS, NS))
        kf.H       = np.zeros((NZ, NS))
        kf.R       = np.zeros((NZ, NZ))
        kf.P       = np.zeros((NS, NS))
        kf.P_prior = np.zeros((NS, NS))
        kf.P_post  = np.zeros((NS, NS))
        kf.K       = np.zeros((NS, NZ))
        kf.y       = np.zeros(NZ)
        kf.S       = np.zeros((NZ, NZ))

    # ── Kalman Cycle ──────────────────────────────────────────────────────────

    def predict(self) -> None:
        """Time update: x⁻ = F·x, P⁻ = F·P·Fᵀ + Q."""
        self._kf.predict()

    def correct(self, measurement) -> None:
        """
        Measurement update against a 6-component pose.

        Raises numpy.linalg.LinAlgError if H·P⁻·Hᵀ + R is singular, which can
        only happen with a degenerate measurement-noise configuration.
        """
        z = _checked(measurement, (NZ,), "measurement")
        self._kf.update(z)
        # Keep P symmetric PSD despite round-off
        P = symmetrize(self._kf.P)
        d = np.diag_indices(NS)
        P[d] = np.maximum(P[d], 0.0)
        self._kf.P = P

    def snapshot(self) -> dict:
        """Copy of everything predict/correct may mutate."""
        kf = self._kf
        return {name: np.array(getattr(kf, name), copy=True)
                for name in ("x", "x_prior", "P", "P_prior", "K", "y", "S", "Q")}

    def restore(self, snap: dict) -> None:
        for name, value in snap.items():
            setattr(self._kf, name, np.array(value, copy=True))

    # ── Model Matrices ────────────────────────────────────────────────────────

    @property
    def transition_matrix(self) -> np.ndarray:
        return self._kf.F

    @transition_matrix.setter
    def transition_matrix(self, value) -> None:
        self._kf.F = _checked(value, (NS, NS), "transition_matrix")

    @property
    def process_noise_cov(self) -> np.ndarray:
        return self._kf.Q

    @process_noise_cov.setter
    def process_noise_cov(self, value) -> None:
        self._kf.Q = _checked(value, (NS, NS), "process_noise_cov")

    @property
    def measurement_matrix(self) -> np.ndarray:
        return self._kf.H

    @measurement_matrix.setter
    def measurement_matrix(self, value) -> None:
        self._kf.H = _checked(value, (NZ, NS), "measurement_matrix")

    @property
    def measurement_noise_cov(self) -> np.ndarray:
        return self._kf.R

    @measurement_noise_cov.setter
    def measurement_noise_cov(self, value) -> None:
        self._kf.R = _checked(value, (NZ, NZ), "measurement_noise_cov")

    # ── State ─────────────────────────────────────────────────────────────────

    @property
    def state(self) -> np.ndarray:
        return self._kf.x

    @state.setter
    def state(self, value) -> None:
        self._kf.x = _checked(value, (NS,), "state")

    @property
    def state_cov(self) -> np.ndarray:
        return self._kf.P

    @state_cov.setter
    def state_cov(self, value) -> None:
        self._kf.P = _checked(value, (NS, NS), "state_cov")

    @property
    def state_prior(self) -> np.ndarray:
        return self._kf.x_prior

    @property
    def state_cov_prior(self) -> np.ndarray:
        return self._kf.P_prior

    @property
    def kalman_gain(self) -> np.ndarray:
        return self._kf.K

    @property
    def innovation(self) -> np.ndarray:
        return np.ravel(self._kf.y)

    @property
    def pose(self) -> np.ndarray:
        """Current pose estimate (first 6 state components)."""
        return np.array(self._kf.x[:NZ], dtype=float)

    @property
    def pose_variance(self) -> np.ndarray:
        """Per-axis variance of the pose estimate."""
        return np.diag(self._kf.P)[:NZ].copy()


# ── Adaptive Process Noise ────────────────────────────────────────────────────
#
# Running estimate of the innovation covariance C (EMA, weight f = dt/(dt+T)):
#
#   T1 = tr(C − R)         variance the fixed measurement noise cannot explain
#   T2 = tr(H·P⁻·Hᵀ)       variance the model already attributes to the process
#   alpha = sqrt(T1 / T2)  clamped to [0.001, 1000]
#
# Q = alpha · Q_base.  Reference: R. Mehra, "On the identification of
# variances and adaptive Kalman filtering", IEEE TAC 1970.

class AdaptiveProcessNoiseScaler:
    """
    Rescales the estimator's process noise so the filter becomes responsive
    after real motion and quiet once stationary.

    Uses innovation, measurement_matrix, measurement_noise_cov and
    state_cov_prior from the estimator; sets its process_noise_cov.
    """

    def __init__(self, window_length: float = KALMAN_ADAPTIVITY_WINDOW):
        self.window_length = window_length
        self.reset()

    def reset(self) -> None:
        self.base_cov = np.zeros((NS, NS))
        self.innovation_cov_estimate = np.zeros((NZ, NZ))
        self.alpha = 1.0

    def update(self, kf: LinearKalmanEstimator, dt: float) -> float:
        """Fold the latest innovation into the estimate and rescale Q. Returns alpha."""
        innovation = kf.innovation
        ddT = np.outer(innovation, innovation)

        denom = dt + self.window_length
        f = dt / denom if denom > 0.0 else 1.0
        self.innovation_cov_estimate = f * ddT + (1.0 - f) * self.innovation_cov_estimate

        H = kf.measurement_matrix
        T1 = np.trace(self.innovation_cov_estimate - kf.measurement_noise_cov)
        T2 = np.trace(H @ kf.state_cov_prior @ H.T)

        alpha = KALMAN_ALPHA_MIN
        if T1 > 0.0 and T2 > 0.0:
            alpha = float(np.sqrt(T1 / T2))
        self.alpha = float(np.clip(alpha, KALMAN_ALPHA_MIN, KALMAN_ALPHA_MAX))

        kf.process_noise_cov = self.alpha * self.base_cov
        return self.alpha
