# =============================================================================
# kalman_engine/data_structures.py
# Shared dataclasses that flow between the modules of the smoothing pipeline.
# Settings are immutable snapshots: a change is a new object, never a mutation.
# =============================================================================

from dataclasses import dataclass, field
from typing import Optional
import math
import numpy as np

from config import (
    KALMAN_NOISE_POS_SLIDER, KALMAN_NOISE_ROT_SLIDER,
    SLIDER_MIN_LOG10, SLIDER_MAX_LOG10,
    KALMAN_ADAPTIVITY_WINDOW, KALMAN_DEADZONE_SCALE, KALMAN_DEADZONE_EXPONENT,
    KALMAN_PROCESS_SIGMA_POS, KALMAN_PROCESS_SIGMA_ROT,
    NUM_MEASUREMENT_DOF,
)


# ── Slider Mapping ────────────────────────────────────────────────────────────
#
#   |-------|-------|-------|-------|     4 decades
#  -3      -2      -1       0       1     power of 10
#
# Inside each decade the value walks 1.0 → 9.9 in steps of 0.1, so the
# slider gives fine control at every order of magnitude.

def map_slider_value(value: float) -> float:
    """
    Map a slider position in [0, 1] to a physical measurement variance.

    0.0 → 0.001,  0.5 → 0.1,  1.0 → 10.0
    """
    num_divisions = SLIDER_MAX_LOG10 - SLIDER_MIN_LOG10
    scaled = value * num_divisions
    k = int(scaled)                     # Which decade
    f = scaled - k                      # Position inside the decade
    multiplier = int((f * 9.0 + 1.0) * 10.0) / 10.0
    return (10.0 ** (SLIDER_MIN_LOG10 + k)) * multiplier


# ── Settings ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class KalmanSettings:
    """
    Complete configuration snapshot for the pose smoother.

    Changing either noise slider resets the pipeline on the next frame;
    the remaining fields are picked up by the next reset().
    """
    # Measurement noise sliders in [0, 1]
    noise_pos_slider: float = KALMAN_NOISE_POS_SLIDER
    noise_rot_slider: float = KALMAN_NOISE_ROT_SLIDER
    # Deadzone
    deadzone_scale: float    = KALMAN_DEADZONE_SCALE
    deadzone_exponent: float = KALMAN_DEADZONE_EXPONENT
    # Process noise (Brownian disturbance sigma per translation / rotation axis)
    process_sigma_pos: float = KALMAN_PROCESS_SIGMA_POS
    process_sigma_rot: float = KALMAN_PROCESS_SIGMA_ROT
    # EMA time constant of the adaptive process-noise scaler (seconds)
    adaptivity_window: float = KALMAN_ADAPTIVITY_WINDOW

    def __post_init__(self):
        for name in ("noise_pos_slider", "noise_rot_slider"):
            v = getattr(self, name)
            if not (0.0 <= v <= 1.0):
                raise ValueError(f"{name} must lie in [0, 1], got {v!r}")
        # Strictly positive measurement noise keeps the innovation covariance invertible
        for name, variance in (("position", self.measurement_variance_pos),
                               ("rotation", self.measurement_variance_rot)):
            if not (variance > 0.0 and math.isfinite(variance)):
                raise ValueError(f"{name} measurement variance must be positive, "
                                 f"got {variance!r}")
        for name in ("deadzone_scale", "process_sigma_pos",
                     "process_sigma_rot", "adaptivity_window"):
            v = getattr(self, name)
            if not (v >= 0.0 and math.isfinite(v)):
                raise ValueError(f"{name} must be a non-negative number, got {v!r}")
        if not (self.deadzone_exponent > 0.0 and math.isfinite(self.deadzone_exponent)):
            raise ValueError(f"deadzone_exponent must be positive, "
                             f"got {self.deadzone_exponent!r}")

    @property
    def measurement_variance_pos(self) -> float:
        return map_slider_value(self.noise_pos_slider)

    @property
    def measurement_variance_rot(self) -> float:
        return map_slider_value(self.noise_rot_slider)

    @property
    def noise_key(self) -> tuple:
        """The two values whose change forces a full reset."""
        return (self.noise_pos_slider, self.noise_rot_slider)


# ── Pipeline Output ───────────────────────────────────────────────────────────

@dataclass
class SmoothedPose:
    """
    Result of one PoseSmoothingPipeline.on_frame() call.
    `valid` is False only on the warm-up call, when no estimate exists yet.
    """
    # Filtered (x, y, z, yaw, pitch, roll); None until the first estimate
    pose: Optional[np.ndarray] = None
    valid: bool = False
    # True if this call consumed a fresh upstream measurement
    new_measurement: bool = False
    # Adaptive process-noise scale in effect after this frame
    alpha: float = 1.0
    # Per-axis deadzone half-width applied this frame
    deadzone: np.ndarray = field(
        default_factory=lambda: np.zeros(NUM_MEASUREMENT_DOF))
