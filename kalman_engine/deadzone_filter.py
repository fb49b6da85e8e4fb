# =============================================================================
# kalman_engine/deadzone_filter.py
#
# Soft, amplitude-dependent deadzone applied per axis to the Kalman output.
#
#   delta    = input − last_output
#   f        = (|delta| / dz) ^ exponent
#   response = f / (f + 1) · delta
#
# Small deltas are damped toward zero (output holds still); deltas much
# larger than dz pass almost unchanged, so there is no steady-state offset.
# An axis with dz = 0 is a passthrough.
# =============================================================================

import numpy as np

from config import NUM_MEASUREMENT_DOF, KALMAN_DEADZONE_EXPONENT


class DeadzoneFilter:
    """
    Per-axis nonlinear small-signal suppressor.

    dz_size is recomputed by the pipeline every frame from the estimator's
    variance; this class only applies it.
    """

    def __init__(self, exponent: float = KALMAN_DEADZONE_EXPONENT):
        self.exponent = exponent
        self.reset()

    def reset(self) -> None:
        self.last_output = np.zeros(NUM_MEASUREMENT_DOF)
        self._dz_size = np.zeros(NUM_MEASUREMENT_DOF)

    @property
    def dz_size(self) -> np.ndarray:
        return self._dz_size

    @dz_size.setter
    def dz_size(self, value) -> None:
        dz = np.asarray(value, dtype=float).reshape(NUM_MEASUREMENT_DOF)
        # Negative or NaN widths collapse to a passthrough
        self._dz_size = np.where(dz > 0.0, dz, 0.0)

    def filter(self, pose) -> np.ndarray:
        x = np.asarray(pose, dtype=float).reshape(NUM_MEASUREMENT_DOF)
        out = x.copy()

        active = self._dz_size > 0.0
        if np.any(active):
            last = self.last_output[active]
            delta = x[active] - last
            with np.errstate(over="ignore", invalid="ignore"):
                f = (np.abs(delta) / self._dz_size[active]) ** self.exponent
                response = f / (f + 1.0) * delta
            # f = inf means the delta dwarfs the deadzone: pass it through
            response = np.where(np.isinf(f), delta, response)
            out[active] = last + response

        self.last_output = out.copy()
        return out
