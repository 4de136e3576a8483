# fallguard/landmarks.py

"""
33-point skeleton topology and the per-frame input container.

Landmarks travel through the pipeline as np.ndarray [33, 4] with columns
(x, y, z, visibility). Image-space coordinates are normalised to [0, 1] with
y growing downwards; world-space coordinates are metres, hip-centred. A joint
that was never observed is a row of NaN.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

NUM_LANDMARKS = 33

LEFT_SHOULDER,  RIGHT_SHOULDER  = 11, 12
LEFT_WRIST,     RIGHT_WRIST     = 15, 16
LEFT_HIP,       RIGHT_HIP       = 23, 24
LEFT_KNEE,      RIGHT_KNEE      = 25, 26
LEFT_ANKLE,     RIGHT_ANKLE     = 27, 28
LEFT_HEEL,      RIGHT_HEEL      = 29, 30

# Shoulders and lower body: the joints the risk metrics depend on
KEY_LANDMARKS = [11, 12, 23, 24, 25, 26, 27, 28]


@dataclass
class FrameSample:
    """
    One processed video frame as delivered by the pose model.

    image     : np.ndarray [33, 4] normalised image coordinates
    world     : np.ndarray [33, 4] world coordinates in metres, or None
    timestamp : capture time in seconds
    """
    image     : np.ndarray
    world     : Optional[np.ndarray] = None
    timestamp : float = 0.0

    def __post_init__(self):
        self.image = as_landmark_array(self.image)
        if self.world is not None:
            self.world = as_landmark_array(self.world)


def as_landmark_array(values) -> np.ndarray:
    """Coerce to float [33, 4]; a 3-column input gets visibility 1.0."""
    arr = np.asarray(values, dtype=float)
    if arr.ndim != 2 or arr.shape[0] != NUM_LANDMARKS or arr.shape[1] not in (3, 4):
        raise ValueError(f"expected landmark array of shape [33, 4], got {arr.shape}")
    if arr.shape[1] == 3:
        arr = np.hstack([arr, np.ones((NUM_LANDMARKS, 1))])
    return arr


def empty_landmarks() -> np.ndarray:
    return np.full((NUM_LANDMARKS, 4), np.nan)


def point(landmarks: Optional[np.ndarray], idx: int) -> Optional[np.ndarray]:
    """
    Returns the (x, y, z, visibility) row for idx, or None when the frame or
    the joint is missing. A NaN z is replaced by 0 so 2D inputs still work.
    """
    if landmarks is None or idx >= len(landmarks):
        return None
    row = landmarks[idx]
    if not (np.isfinite(row[0]) and np.isfinite(row[1])):
        return None
    if not np.isfinite(row[2]):
        row = row.copy()
        row[2] = 0.0
    return row


def midpoint(landmarks: Optional[np.ndarray], idx_a: int, idx_b: int) -> Optional[np.ndarray]:
    a = point(landmarks, idx_a)
    b = point(landmarks, idx_b)
    if a is None or b is None:
        return None
    return (a[:3] + b[:3]) / 2.0


def hip_center(landmarks):
    return midpoint(landmarks, LEFT_HIP, RIGHT_HIP)


def shoulder_center(landmarks):
    return midpoint(landmarks, LEFT_SHOULDER, RIGHT_SHOULDER)


def ankle_center(landmarks):
    return midpoint(landmarks, LEFT_ANKLE, RIGHT_ANKLE)


def planar_distance(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.hypot(a[0] - b[0], a[1] - b[1]))


def from_pose_results(results, timestamp: float = 0.0) -> Optional[FrameSample]:
    """
    Adapt a MediaPipe Pose result object into a FrameSample.

    Only the attribute shape is relied upon (results.pose_landmarks.landmark
    and results.pose_world_landmarks.landmark, each a sequence of objects with
    x, y, z, visibility), so the model library is not imported here.
    Returns None when no subject was detected.
    """
    if results is None or not getattr(results, "pose_landmarks", None):
        return None

    lm    = results.pose_landmarks.landmark
    image = np.array([[p.x, p.y, p.z, p.visibility] for p in lm])

    world = None
    world_result = getattr(results, "pose_world_landmarks", None)
    if world_result:
        world = np.array([[p.x, p.y, p.z, p.visibility] for p in world_result.landmark])

    return FrameSample(image=image, world=world, timestamp=timestamp)
