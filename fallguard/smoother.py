# fallguard/smoother.py

import logging
from typing import List, Optional

import numpy as np

from .config import RiskConfig
from .kalman import JointFilter
from .landmarks import NUM_LANDMARKS, empty_landmarks

logger = logging.getLogger(__name__)


class PoseSmoother:
    """
    Owns one JointFilter per skeleton joint.

    Filters are created lazily: a joint gets its filter on the first frame
    where it is visible, so joints that never showed up stay NaN in the
    output. Every frame each existing filter predicts; only joints above the
    visibility floor are corrected, the rest coast on their velocity.
    """

    def __init__(self, config: Optional[RiskConfig] = None):
        self.config = config or RiskConfig()
        self._filters: List[Optional[JointFilter]] = [None] * NUM_LANDMARKS
        self._visibility = np.zeros(NUM_LANDMARKS)

        self._last_timestamp = None
        self._mean_dt        = None
        self._irregular_run  = 0
        self.last_dt_irregular = False

    # ── Public API ────────────────────────────────────────────────────────────

    def update(self, landmarks: np.ndarray, timestamp: Optional[float] = None) -> np.ndarray:
        """
        landmarks : np.ndarray [33, 4] (x, y, z, visibility)
        Returns the smoothed [33, 4] array.
        """
        self._track_timing(timestamp)
        floor = self.config.visibility_floor

        for i in range(NUM_LANDMARKS):
            row = landmarks[i]
            vis = row[3] if np.isfinite(row[3]) else 0.0
            observed = vis >= floor and np.isfinite(row[0]) and np.isfinite(row[1])

            f = self._filters[i]
            if f is None:
                if observed:
                    self._filters[i] = JointFilter(row[:3], self.config)
                    self._visibility[i] = vis
                continue

            f.predict()
            if observed:
                f.update(row[:3])
            self._visibility[i] = vis

        return self.smoothed()

    def coast(self) -> Optional[np.ndarray]:
        """Predict-only step for a frame without a subject."""
        self.last_dt_irregular = False
        if not self.has_state:
            return None
        for f in self._filters:
            if f is not None:
                f.predict()
        return self.smoothed()

    def smoothed(self) -> np.ndarray:
        out = empty_landmarks()
        for i, f in enumerate(self._filters):
            if f is not None:
                out[i, :3] = f.position
                out[i, 3]  = self._visibility[i]
        return out

    def forecast(self, steps: int) -> np.ndarray:
        out = empty_landmarks()
        for i, f in enumerate(self._filters):
            if f is not None:
                out[i, :3] = f.forecast(steps)
                out[i, 3]  = self._visibility[i]
        return out

    @property
    def has_state(self) -> bool:
        return any(f is not None for f in self._filters)

    def reset(self):
        self._filters = [None] * NUM_LANDMARKS
        self._visibility[:] = 0.0
        self._last_timestamp   = None
        self._mean_dt          = None
        self._irregular_run    = 0
        self.last_dt_irregular = False

    # ── Private helpers ───────────────────────────────────────────────────────

    def _track_timing(self, timestamp):
        """Flag frames whose spacing breaks the one-step-per-frame assumption."""
        self.last_dt_irregular = False
        if timestamp is None:
            return
        if self._last_timestamp is not None:
            dt = timestamp - self._last_timestamp
            if dt > 0:
                if self._mean_dt is not None and dt > self.config.irregular_dt_factor * self._mean_dt:
                    self.last_dt_irregular = True
                    self._irregular_run += 1
                    logger.warning(
                        "Irregular frame spacing: dt=%.3fs vs mean %.3fs, "
                        "constant-velocity estimate will lag", dt, self._mean_dt,
                    )
                    # A sustained slowdown is the new frame rate, not a stall
                    if self._irregular_run >= self.config.irregular_rebase_frames:
                        logger.info("Frame rate changed: mean frame spacing rebased to %.3fs", dt)
                        self._mean_dt = dt
                        self._irregular_run = 0
                else:
                    self._irregular_run = 0
                    self._mean_dt = dt if self._mean_dt is None else 0.9 * self._mean_dt + 0.1 * dt
        self._last_timestamp = timestamp
