# fallguard/support.py

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

import numpy as np

from .config import RiskConfig
from .environment import SeatRegion
from .landmarks import (
    LEFT_ANKLE, LEFT_KNEE, RIGHT_ANKLE, RIGHT_KNEE,
    hip_center, planar_distance, point,
)

logger = logging.getLogger(__name__)


@dataclass
class LegSupport:
    """
    Per-leg support state.

    grounded        : foot at (or near) floor level this frame
    stability_timer : consecutive frames the foot has stayed still
    supported       : grounded, or still long enough to be standing on something
    stable_elevated : still for longer than stability_frames (step, box, stool)
    """
    grounded        : bool = False
    stability_timer : int  = 0
    supported       : bool = False
    stable_elevated : bool = False


class SupportClassifier:
    """
    Decides which legs are carrying weight and whether the subject is seated.

    Floor level is the lowest ankle in the image; a foot counts as grounded
    when it is within a fraction of the shin length of that level. The shin
    length is measured on every frame so the threshold follows the subject's
    distance from the camera.

    A foot raised onto a step or box is still load-bearing once it has been
    motionless for `stability_frames` frames.
    """

    def __init__(self, config: Optional[RiskConfig] = None):
        self.config = config or RiskConfig()
        self.left   = LegSupport()
        self.right  = LegSupport()

    # ── Public API ────────────────────────────────────────────────────────────

    def update(self, landmarks: np.ndarray, previous: Optional[np.ndarray]) -> Tuple[LegSupport, LegSupport]:
        """
        landmarks : smoothed image landmarks [33, 4] for this frame
        previous  : smoothed landmarks of the previous frame, or None
        Returns (left, right) LegSupport snapshots.
        """
        left_ankle  = point(landmarks, LEFT_ANKLE)
        right_ankle = point(landmarks, RIGHT_ANKLE)

        left_grounded, right_grounded = self._grounded(landmarks, left_ankle, right_ankle)

        self.left  = self._advance(self.left,  left_grounded,  left_ankle,  point(previous, LEFT_ANKLE))
        self.right = self._advance(self.right, right_grounded, right_ankle, point(previous, RIGHT_ANKLE))
        return self.left, self.right

    def is_sitting(self, landmarks: np.ndarray, seats: Iterable[SeatRegion]) -> bool:
        """Hip centre inside a seat box whose bottom edge lines up with the feet."""
        hip   = hip_center(landmarks)
        left  = point(landmarks, LEFT_ANKLE)
        right = point(landmarks, RIGHT_ANKLE)
        if hip is None or left is None or right is None:
            return False

        feet_y = max(left[1], right[1])
        for seat in seats:
            if seat.contains(hip[0], hip[1]) and abs(seat.bottom_y - feet_y) < self.config.seat_depth_tolerance:
                logger.debug("Sitting on %s", seat.label)
                return True
        return False

    def reset(self):
        self.left  = LegSupport()
        self.right = LegSupport()

    # ── Private helpers ───────────────────────────────────────────────────────

    def _grounded(self, landmarks, left_ankle, right_ankle):
        if left_ankle is None or right_ankle is None:
            # Only one foot visible: it defines floor level on its own
            return left_ankle is not None, right_ankle is not None

        shins = [
            planar_distance(k, a)
            for k, a in ((point(landmarks, LEFT_KNEE), left_ankle),
                         (point(landmarks, RIGHT_KNEE), right_ankle))
            if k is not None
        ]
        avg_shin  = sum(shins) / len(shins) if shins else 0.0
        threshold = self.config.grounded_shin_fraction * avg_shin

        ground_level = max(left_ankle[1], right_ankle[1])
        return (left_ankle[1] >= ground_level - threshold,
                right_ankle[1] >= ground_level - threshold)

    def _advance(self, leg: LegSupport, grounded: bool, ankle, prev_ankle) -> LegSupport:
        timer = 0
        if ankle is not None and prev_ankle is not None:
            if planar_distance(ankle, prev_ankle) < self.config.foot_still_epsilon:
                timer = leg.stability_timer + 1

        stable_elevated = timer > self.config.stability_frames
        return LegSupport(
            grounded        = bool(grounded),
            stability_timer = timer,
            supported       = bool(grounded) or stable_elevated,
            stable_elevated = stable_elevated,
        )
