# =============================================================================
# verify_setup.py — Run this once to confirm your environment is ready
# Usage: python verify_setup.py
# =============================================================================

import sys

PASS = "  ✅ PASS"
FAIL = "  ❌ FAIL"
WARN = "  ⚠️  WARN"

print("\n" + "="*60)
print("  Pose Smoother Environment Verification")
print("="*60)

# ── Python Version ────────────────────────────────────────────────
v = sys.version_info
status = PASS if v.major == 3 and v.minor >= 10 else WARN
print(f"{status}  Python {v.major}.{v.minor}.{v.micro}  (3.10+ recommended)")

# ── Core Imports ──────────────────────────────────────────────────
checks = {
    "numpy":            ("numpy",       "import numpy as np"),
    "scipy":            ("scipy",       "import scipy"),
    "filterpy":         ("filterpy",    "from filterpy.kalman import KalmanFilter"),
    "pytest":           ("pytest",      "import pytest"),
}

for package, (_, import_str) in checks.items():
    try:
        exec(import_str)
        print(f"{PASS}  {package}")
    except ImportError as e:
        print(f"{FAIL}  {package}  →  {e}")

# ── Config Import ─────────────────────────────────────────────────
try:
    import config
    print(f"{PASS}  config.py loaded successfully")
except Exception as e:
    print(f"{FAIL}  config.py failed to load: {e}")

# ── Smoke Test ────────────────────────────────────────────────────
# 60 frames of a constant pose through the full pipeline on a fake clock
try:
    from kalman_engine.pose_smoother import PoseSmoothingPipeline

    now = [0.0]
    smoother = PoseSmoothingPipeline(clock=lambda: now[0])
    result = None
    for i in range(60):
        now[0] = i / 30.0
        result = smoother.on_frame([1.0, 2.0, 60.0, 5.0, 0.0, 0.0],
                                   new_measurement=True)
    status = PASS if result is not None and result.valid else FAIL
    print(f"{status}  Pipeline smoke test (60 frames)")
except Exception as e:
    print(f"{FAIL}  Pipeline smoke test failed: {e}")

# ── Folder Structure ──────────────────────────────────────────────
import os
expected_dirs = ["core", "kalman_engine", "logs"]
for d in expected_dirs:
    status = PASS if os.path.isdir(d) else FAIL
    print(f"{status}  Folder: {d}/")

print("\n" + "="*60)
print("  Verification complete. Fix any ❌ before proceeding.")
print("="*60 + "\n")
