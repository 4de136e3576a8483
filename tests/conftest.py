"""
Synthetic skeletons shared by the tests.

Image space follows the pose model: x, y in [0, 1], y grows downwards.
"""
import math

import numpy as np
import pytest

from fallguard.landmarks import NUM_LANDMARKS


def _skeleton(joints, visibility=0.99):
    arr = np.zeros((NUM_LANDMARKS, 4))
    arr[:, 0] = 0.5
    arr[:, 1] = 0.15          # head region for every joint not listed
    arr[:, 3] = visibility
    for idx, (x, y) in joints.items():
        arr[idx, 0] = x
        arr[idx, 1] = y
    return arr


def standing_image(offset_y=0.0, visibility=0.99):
    """Upright subject, hips straight above the ankles, arms away from the knees."""
    return _skeleton({
        11: (0.45, 0.30 + offset_y), 12: (0.55, 0.30 + offset_y),
        15: (0.30, 0.50 + offset_y), 16: (0.70, 0.50 + offset_y),
        23: (0.47, 0.50 + offset_y), 24: (0.53, 0.50 + offset_y),
        25: (0.47, 0.70 + offset_y), 26: (0.53, 0.70 + offset_y),
        27: (0.47, 0.90 + offset_y), 28: (0.53, 0.90 + offset_y),
        29: (0.47, 0.92 + offset_y), 30: (0.53, 0.92 + offset_y),
        31: (0.47, 0.93 + offset_y), 32: (0.53, 0.93 + offset_y),
    }, visibility)


def fallen_image():
    """Subject lying across the lower half of the frame."""
    return _skeleton({
        11: (0.20, 0.78), 12: (0.20, 0.82),
        15: (0.25, 0.70), 16: (0.25, 0.90),
        23: (0.50, 0.78), 24: (0.50, 0.82),
        25: (0.70, 0.78), 26: (0.70, 0.82),
        27: (0.90, 0.78), 28: (0.90, 0.82),
        29: (0.92, 0.78), 30: (0.92, 0.82),
        31: (0.93, 0.78), 32: (0.93, 0.82),
    })


def world_with_knee_angle(angle_deg, visibility=0.99):
    """World landmarks (metres) whose two knees both bend to angle_deg."""
    arr = np.zeros((NUM_LANDMARKS, 4))
    arr[:, 3] = visibility
    bend = math.radians(180.0 - angle_deg)
    for hip, knee, ankle, x in ((23, 25, 27, -0.1), (24, 26, 28, 0.1)):
        arr[hip, :3]   = (x, 0.0, 0.0)
        arr[knee, :3]  = (x, 0.45, 0.0)
        arr[ankle, :3] = (x, 0.45 + 0.45 * math.cos(bend), 0.45 * math.sin(bend))
    return arr


@pytest.fixture
def standing():
    return standing_image()


@pytest.fixture
def fallen():
    return fallen_image()


@pytest.fixture
def skeletons():
    """Factories for tests that need variations of the base poses."""
    class _Skeletons:
        standing = staticmethod(standing_image)
        fallen   = staticmethod(fallen_image)
        world    = staticmethod(world_with_knee_angle)
    return _Skeletons
