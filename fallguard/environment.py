# fallguard/environment.py

"""
Turns raw object-detector output into the two things the risk pipeline cares
about: seat regions (for sitting detection) and an obstacle-near-feet hazard.

Seat regions are rebuilt from scratch on every scan; individual seats are not
tracked across frames, so a seat that the detector drops for a frame is gone
for that frame.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .config import RiskConfig
from .landmarks import LEFT_HEEL, RIGHT_HEEL, point

logger = logging.getLogger(__name__)

SEAT_LABELS   = ('chair', 'couch', 'bench', 'bed')
IGNORE_LABELS = ('person',)

_DEFAULT = RiskConfig()


@dataclass
class Detection:
    """One detector box; bbox is (x, y, w, h) in pixels."""
    bbox  : Tuple[float, float, float, float]
    label : str
    score : float = 1.0


@dataclass
class SeatRegion:
    """Normalised (x, y, w, h) box of something the subject may sit on."""
    bbox     : Tuple[float, float, float, float]
    bottom_y : float
    label    : str

    def contains(self, x: float, y: float) -> bool:
        bx, by, bw, bh = self.bbox
        return bx < x < bx + bw and by < y < by + bh


@dataclass
class EnvironmentScan:
    seats        : List[SeatRegion] = field(default_factory=list)
    hazard       : float = 0.0          # 0 or config.hazard_level
    hazard_label : Optional[str] = None


def scan_detections(
    detections: Iterable[Detection],
    frame_width: float,
    frame_height: float,
    landmarks: Optional[np.ndarray],
    config: RiskConfig = _DEFAULT,
) -> EnvironmentScan:
    """
    detections   : detector output for the current frame
    frame_width  : pixel width used to normalise boxes
    frame_height : pixel height
    landmarks    : smoothed image landmarks [33, 4] used to locate the feet

    Returns an EnvironmentScan. Degenerate frame sizes yield an empty scan.
    """
    scan = EnvironmentScan()
    if not frame_width or not frame_height or frame_width <= 0 or frame_height <= 0:
        return scan

    feet = _feet_point(landmarks)

    for det in detections:
        bx, by, bw, bh = _normalise(det.bbox, frame_width, frame_height)

        if det.label in SEAT_LABELS:
            scan.seats.append(SeatRegion(bbox=(bx, by, bw, bh), bottom_y=by + bh, label=det.label))
            continue
        if det.label in IGNORE_LABELS or feet is None:
            continue

        cx, cy = bx + bw / 2.0, by + bh / 2.0
        dist = float(np.hypot(cx - feet[0], cy - feet[1]))
        if dist < config.hazard_distance and cy > config.hazard_min_y:
            scan.hazard = config.hazard_level
            scan.hazard_label = det.label

    if scan.hazard:
        logger.debug("Obstacle hazard near feet: %s", scan.hazard_label)
    return scan


def _normalise(bbox: Sequence[float], width: float, height: float):
    x, y, w, h = (float(v) for v in bbox)
    return x / width, y / height, w / width, h / height


def _feet_point(landmarks) -> Optional[Tuple[float, float]]:
    """Mean heel x, lowest heel y (largest image y)."""
    left  = point(landmarks, LEFT_HEEL)
    right = point(landmarks, RIGHT_HEEL)
    if left is None or right is None:
        return None
    return (left[0] + right[0]) / 2.0, max(left[1], right[1])
