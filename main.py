"""
main.py — Pose Smoother Entry Point
Replays recorded or synthetic head-pose streams through the smoothing
pipeline and reports how much jitter was removed.

Pipeline per frame:
  1. Read raw pose (x, y, z, yaw, pitch, roll) from CSV or generator
  2. Advance the simulated clock by the frame interval
  3. PoseSmoothingPipeline.on_frame()   → SmoothedPose
  4. Collect smoothed output for jitter statistics / CSV export

Usage:
  python main.py replay poses.csv -o smoothed.csv
  python main.py replay poses.csv --fps 60 --pos-noise 0.4
  python main.py demo --frames 900 --seed 3
  python main.py demo --debug               # verbose output
"""

import sys
import argparse
import logging
from typing import Optional

import numpy as np

import config
from core.logger import get_logger, set_console_level
from kalman_engine.data_structures import KalmanSettings
from kalman_engine.pose_smoother import PoseSmoothingPipeline

log = get_logger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Argument parsing
# ──────────────────────────────────────────────────────────────────────────────

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Adaptive Kalman head-pose smoother")
    p.add_argument("--pos-noise", type=float, default=config.KALMAN_NOISE_POS_SLIDER,
                   help="Translation noise slider in [0, 1] "
                        f"(default: {config.KALMAN_NOISE_POS_SLIDER}).")
    p.add_argument("--rot-noise", type=float, default=config.KALMAN_NOISE_ROT_SLIDER,
                   help="Rotation noise slider in [0, 1] "
                        f"(default: {config.KALMAN_NOISE_ROT_SLIDER}).")
    p.add_argument("--debug", action="store_true",
                   help="Enable verbose debug output.")

    sub = p.add_subparsers(dest="command", required=True)

    rp = sub.add_parser("replay", help="Smooth a recorded CSV of raw poses.")
    rp.add_argument("input", help="CSV with header x,y,z,yaw,pitch,roll[,t].")
    rp.add_argument("-o", "--output", default=None,
                    help="Write smoothed poses to this CSV.")
    rp.add_argument("--fps", type=float, default=config.REPLAY_FPS,
                    help=f"Frame rate when the CSV has no '{config.REPLAY_TIME_COLUMN}' "
                         f"column (default: {config.REPLAY_FPS}).")

    dp = sub.add_parser("demo", help="Smooth a synthetic noisy trajectory.")
    dp.add_argument("--frames", type=int, default=config.DEMO_FRAMES)
    dp.add_argument("--fps", type=float, default=config.REPLAY_FPS)
    dp.add_argument("--seed", type=int, default=0)

    return p.parse_args(argv)


# ──────────────────────────────────────────────────────────────────────────────
# Simulated clock
# ──────────────────────────────────────────────────────────────────────────────

class ReplayClock:
    """Clock that only moves when the replay loop says so."""

    def __init__(self, t0: float = 0.0):
        self.now = t0

    def __call__(self) -> float:
        return self.now


# ──────────────────────────────────────────────────────────────────────────────
# I/O
# ──────────────────────────────────────────────────────────────────────────────

def load_pose_csv(path: str):
    """
    Returns:
        (poses (N, 6), timestamps (N,) or None)
    """
    data = np.genfromtxt(path, delimiter=",", names=True, dtype=float)
    data = np.atleast_1d(data)
    missing = [ax for ax in config.POSE_AXES if ax not in data.dtype.names]
    if missing:
        raise ValueError(f"{path}: missing pose columns {missing}")

    poses = np.column_stack([data[ax] for ax in config.POSE_AXES])
    times = None
    if config.REPLAY_TIME_COLUMN in data.dtype.names:
        times = np.asarray(data[config.REPLAY_TIME_COLUMN], dtype=float)
    return poses, times


def save_pose_csv(path: str, poses: np.ndarray, times: np.ndarray) -> None:
    header = ",".join([config.REPLAY_TIME_COLUMN] + config.POSE_AXES)
    np.savetxt(path, np.column_stack([times, poses]), delimiter=",",
               header=header, comments="", fmt="%.6f")


# ──────────────────────────────────────────────────────────────────────────────
# Replay
# ──────────────────────────────────────────────────────────────────────────────

def smooth_sequence(
    poses: np.ndarray,
    times: Optional[np.ndarray] = None,
    fps: float = config.REPLAY_FPS,
    settings: Optional[KalmanSettings] = None,
):
    """
    Run every row of `poses` through a fresh pipeline.

    Frames before the first valid estimate are echoed unchanged.

    Returns:
        (smoothed (N, 6), timestamps (N,))
    """
    n = len(poses)
    if times is None:
        times = np.arange(n, dtype=float) / fps

    clock = ReplayClock(float(times[0]) if n else 0.0)
    smoother = PoseSmoothingPipeline(settings=settings, clock=clock)

    smoothed = np.array(poses, dtype=float, copy=True)
    for i in range(n):
        clock.now = float(times[i])
        result = smoother.on_frame(poses[i])
        if result.valid:
            smoothed[i] = result.pose
        elif i > 0:
            smoothed[i] = smoothed[i - 1]

    return smoothed, times


def jitter(poses: np.ndarray) -> np.ndarray:
    """Per-axis std-dev of frame-to-frame differences."""
    if len(poses) < 2:
        return np.zeros(poses.shape[1] if poses.ndim == 2 else config.NUM_MEASUREMENT_DOF)
    return np.std(np.diff(poses, axis=0), axis=0)


def report(raw: np.ndarray, smoothed: np.ndarray) -> None:
    j_raw, j_smooth = jitter(raw), jitter(smoothed)
    print(f"  {'axis':>6} | {'raw jitter':>11} | {'smoothed':>11} | {'ratio':>7}")
    print("  " + "-" * 46)
    for ax, a, b in zip(config.POSE_AXES, j_raw, j_smooth):
        ratio = a / b if b > 1e-12 else float("inf")
        print(f"  {ax:>6} | {a:11.5f} | {b:11.5f} | {ratio:7.1f}")


def synthetic_trajectory(frames: int, fps: float, seed: int = 0) -> np.ndarray:
    """Hold, then a smooth 20° yaw / 5 cm x turn, then hold; plus white noise."""
    rng = np.random.default_rng(seed)
    t = np.arange(frames) / fps
    duration = t[-1] if frames > 1 else 1.0

    # Smoothstep between 40 % and 60 % of the run
    s = np.clip((t / max(duration, 1e-9) - 0.4) / 0.2, 0.0, 1.0)
    s = s * s * (3.0 - 2.0 * s)

    truth = np.zeros((frames, config.NUM_MEASUREMENT_DOF))
    truth[:, 0] = 5.0 * s
    truth[:, 2] = 60.0
    truth[:, 3] = 20.0 * s

    noise = np.empty_like(truth)
    noise[:, :3] = rng.normal(0.0, config.DEMO_NOISE_POS, size=(frames, 3))
    noise[:, 3:] = rng.normal(0.0, config.DEMO_NOISE_ROT, size=(frames, 3))
    return truth + noise


# ──────────────────────────────────────────────────────────────────────────────
# Entry
# ──────────────────────────────────────────────────────────────────────────────

def main(argv=None) -> int:
    args = parse_args(argv)
    if args.debug:
        set_console_level(logging.DEBUG)

    try:
        settings = KalmanSettings(noise_pos_slider=args.pos_noise,
                                  noise_rot_slider=args.rot_noise)
    except ValueError as exc:
        log.error(f"Invalid settings: {exc}")
        return 2

    if args.command == "replay":
        try:
            raw, times = load_pose_csv(args.input)
        except (OSError, ValueError) as exc:
            log.error(f"Cannot read {args.input}: {exc}")
            return 1
        smoothed, times = smooth_sequence(raw, times, fps=args.fps, settings=settings)
        if args.output:
            save_pose_csv(args.output, smoothed, times)
            log.info(f"Wrote {len(smoothed)} smoothed poses to {args.output}")
    else:
        raw = synthetic_trajectory(args.frames, args.fps, seed=args.seed)
        smoothed, _ = smooth_sequence(raw, fps=args.fps, settings=settings)

    print(f"\n[main] {len(raw)} frames")
    report(raw, smoothed)
    return 0


if __name__ == "__main__":
    sys.exit(main())
