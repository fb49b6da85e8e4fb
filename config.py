# =============================================================================
# config.py — Central Configuration for the Kalman Head-Pose Smoother
# All tunable parameters live here. Never hardcode values in modules.
# =============================================================================

import os

# ── Paths ─────────────────────────────────────────────────────────────────────
BASE_DIR    = os.path.dirname(os.path.abspath(__file__))
LOGS_DIR    = os.path.join(BASE_DIR, "logs")
os.makedirs(LOGS_DIR, exist_ok=True)

# ── Pose Layout ───────────────────────────────────────────────────────────────
# Translation first (cm), rotation second (degrees)
POSE_AXES               = ["x", "y", "z", "yaw", "pitch", "roll"]
NUM_MEASUREMENT_DOF     = 6       # Observed pose components
NUM_STATE_DOF           = 12      # Pose + per-axis velocity
NUM_TRANSLATION_AXES    = 3

# ── Noise Sliders ─────────────────────────────────────────────────────────────
# Slider positions in [0, 1]; mapped to a measurement variance on a log scale
KALMAN_NOISE_POS_SLIDER = 0.5     # → 0.1 cm²
KALMAN_NOISE_ROT_SLIDER = 0.5     # → 0.1 deg²
SLIDER_MIN_LOG10        = -3      # Slider 0.0 → 10^-3
SLIDER_MAX_LOG10        = 1       # Slider 1.0 → 10^1

# ── Kalman Filter ─────────────────────────────────────────────────────────────
KALMAN_NOMINAL_DT           = 0.03    # Interval used to seed matrices on reset (s)
KALMAN_PROCESS_SIGMA_POS    = 0.5     # Brownian disturbance, translation
KALMAN_PROCESS_SIGMA_ROT    = 0.5     # Brownian disturbance, rotation
KALMAN_VELOCITY_NOISE_FACTOR= 20.0    # Velocity variance relative to pose variance
KALMAN_CROSS_NOISE_FACTOR   = 1.0     # Pose↔velocity covariance relative to pose variance

# ── Adaptive Process Noise ────────────────────────────────────────────────────
KALMAN_ADAPTIVITY_WINDOW    = 0.25    # EMA time constant for innovation covariance (s)
KALMAN_ALPHA_MIN            = 0.001
KALMAN_ALPHA_MAX            = 1000.0

# ── Deadzone ──────────────────────────────────────────────────────────────────
KALMAN_DEADZONE_SCALE       = 8.0     # dz = sqrt(var − min_var) · scale
KALMAN_DEADZONE_EXPONENT    = 2.0     # Steepness of the soft response curve

# ── Offline Replay ────────────────────────────────────────────────────────────
REPLAY_FPS              = 30
REPLAY_TIME_COLUMN      = "t"
DEMO_FRAMES             = 600
DEMO_NOISE_POS          = 0.3     # Std-dev of synthetic translation jitter (cm)
DEMO_NOISE_ROT          = 0.3     # Std-dev of synthetic rotation jitter (deg)

# ── Logging ───────────────────────────────────────────────────────────────────
LOG_FILE_PATTERN        = "pose_smoother_%Y%m%d.log"   # strftime pattern
LOG_CONSOLE_LEVEL       = "INFO"
LOG_FILE_LEVEL          = "DEBUG"
LOG_FORMAT              = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT         = "%H:%M:%S"
