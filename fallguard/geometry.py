# fallguard/geometry.py

"""
Stateless biomechanical measurements on a single frame (or a frame pair).

Every function accepts missing data (None frame, NaN joint) and falls back to
the value that contributes no risk: 180 degrees for angles, 100 for
stability, 1.0 for impact, False for fall signals.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple

import numpy as np

from .config import RiskConfig
from .landmarks import (
    KEY_LANDMARKS, LEFT_KNEE, LEFT_WRIST, RIGHT_KNEE, RIGHT_WRIST,
    ankle_center, hip_center, planar_distance, point, shoulder_center,
)

_DEFAULT = RiskConfig()

SAFE_ANGLE = 180.0


class SpineStatus(str, Enum):
    GOOD = "good"
    POOR = "poor"


class MovementTrend(str, Enum):
    ANALYZING = "analyzing"
    STABLE    = "stable"
    LOWERING  = "lowering"    # lowering / sitting down
    RISING    = "rising"      # standing up


# ── Angles ────────────────────────────────────────────────────────────────────

def joint_angle(a, b, c) -> float:
    """
    Angle at vertex b between b->a and b->c, in degrees [0, 180].
    z is used when present (world landmarks), otherwise treated as 0.
    """
    if a is None or b is None or c is None:
        return SAFE_ANGLE
    pa, pb, pc = _xyz(a), _xyz(b), _xyz(c)
    if pa is None or pb is None or pc is None:
        return SAFE_ANGLE

    v1 = pa - pb
    v2 = pc - pb
    mag = float(np.linalg.norm(v1) * np.linalg.norm(v2))
    if mag == 0.0 or not np.isfinite(mag):
        return SAFE_ANGLE

    cos = np.clip(np.dot(v1, v2) / mag, -1.0, 1.0)
    return float(np.clip(np.degrees(np.arccos(cos)), 0.0, 180.0))


def knee_angle(landmarks, hip_idx: int, knee_idx: int, ankle_idx: int) -> float:
    return joint_angle(point(landmarks, hip_idx), point(landmarks, knee_idx), point(landmarks, ankle_idx))


def spine_angle(landmarks) -> Optional[float]:
    """Tilt of the shoulder-centre -> hip-centre line from vertical, degrees."""
    shoulder = shoulder_center(landmarks)
    hip      = hip_center(landmarks)
    if shoulder is None or hip is None:
        return None
    dx = abs(hip[0] - shoulder[0])
    dy = abs(hip[1] - shoulder[1])
    if dx == 0.0 and dy == 0.0:
        return None
    return float(np.degrees(np.arctan2(dx, dy)))


def spine_status(landmarks, config: RiskConfig = _DEFAULT) -> SpineStatus:
    angle = spine_angle(landmarks)
    if angle is not None and angle > config.spine_poor_angle:
        return SpineStatus.POOR
    return SpineStatus.GOOD


# ── Balance ───────────────────────────────────────────────────────────────────

def stability_score(landmarks, config: RiskConfig = _DEFAULT) -> float:
    """100 when the hips sit right above the ankles, dropping with lateral offset."""
    hip   = hip_center(landmarks)
    ankle = ankle_center(landmarks)
    if hip is None or ankle is None:
        return 100.0
    deviation = abs(hip[0] - ankle[0])
    return float(max(0.0, 100.0 - deviation * config.stability_gain))


def has_hand_support(landmarks, config: RiskConfig = _DEFAULT) -> bool:
    """True when a visible wrist rests near a visible knee (hands on knees, pushing up)."""
    for w_idx in (LEFT_WRIST, RIGHT_WRIST):
        wrist = point(landmarks, w_idx)
        if wrist is None or not wrist[3] >= config.hand_min_visibility:
            continue
        for k_idx in (LEFT_KNEE, RIGHT_KNEE):
            knee = point(landmarks, k_idx)
            if knee is None or not knee[3] >= config.hand_min_visibility:
                continue
            if planar_distance(wrist, knee) < config.hand_support_distance:
                return True
    return False


def visibility_score(landmarks) -> float:
    """Mean visibility of shoulders, hips, knees and ankles."""
    if landmarks is None:
        return 0.0
    vis = np.nan_to_num(landmarks[KEY_LANDMARKS, 3], nan=0.0)
    return float(vis.mean())


# ── Vertical motion ───────────────────────────────────────────────────────────

def hip_velocity(current, previous) -> float:
    """Hip-centre dy between frames; positive means moving down the image."""
    cur  = hip_center(current)
    prev = hip_center(previous)
    if cur is None or prev is None:
        return 0.0
    return float(cur[1] - prev[1])


def impact_factor(current, previous, config: RiskConfig = _DEFAULT) -> float:
    dy = hip_velocity(current, previous)
    if dy <= config.impact_threshold:
        return 1.0
    return 1.0 + (dy - config.impact_threshold) * config.impact_gain


def is_freefall(current, previous, previous_velocity: float,
                config: RiskConfig = _DEFAULT) -> Tuple[bool, float]:
    """
    Rapid downward hip motion that is still accelerating.

    Returns (freefall, dy). The caller keeps dy and passes it back as
    previous_velocity on the next frame. Without a previous frame the
    baseline restarts at 0.
    """
    if previous is None or hip_center(current) is None or hip_center(previous) is None:
        return False, 0.0
    dy    = hip_velocity(current, previous)
    accel = dy - previous_velocity
    return (accel > config.freefall_accel and dy > config.freefall_velocity), dy


def is_geometric_fall(landmarks, config: RiskConfig = _DEFAULT) -> bool:
    """Torso close to horizontal and hips in the lower half of the frame."""
    shoulder = shoulder_center(landmarks)
    hip      = hip_center(landmarks)
    if shoulder is None or hip is None:
        return False
    dx = abs(shoulder[0] - hip[0])
    dy = abs(shoulder[1] - hip[1])
    if dx == 0.0 and dy == 0.0:
        return False
    angle = np.degrees(np.arctan2(dy, dx))
    return bool(angle < config.fall_torso_angle and hip[1] > config.fall_hip_y)


def movement_trend(current, previous, config: RiskConfig = _DEFAULT) -> MovementTrend:
    if previous is None or hip_center(previous) is None or hip_center(current) is None:
        return MovementTrend.ANALYZING
    dy = hip_velocity(current, previous)
    if abs(dy) <= config.trend_threshold:
        return MovementTrend.STABLE
    return MovementTrend.LOWERING if dy > 0 else MovementTrend.RISING


def _xyz(p) -> Optional[np.ndarray]:
    arr = np.asarray(p, dtype=float)
    if arr.shape[0] < 2 or not (np.isfinite(arr[0]) and np.isfinite(arr[1])):
        return None
    out = np.zeros(3)
    out[:2] = arr[:2]
    if arr.shape[0] >= 3 and np.isfinite(arr[2]):
        out[2] = arr[2]
    return out
