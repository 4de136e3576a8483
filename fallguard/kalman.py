# fallguard/kalman.py

"""
Constant-velocity Kalman filter for a single 3D joint.

State is [x, y, z, vx, vy, vz] with a diagonal error covariance. The update
treats x, y and z as independent scalar filters and corrects velocity with
half the position gain instead of carrying position/velocity cross
covariance. This is a deliberate simplification so 33 joints can be updated
every frame cheaply; it behaves like a steady-state alpha-beta filter.

The motion model assumes one unit step per frame. When frames arrive at
irregular intervals the estimate lags; PoseSmoother flags such frames.
"""

from __future__ import annotations

import numpy as np

from .config import RiskConfig


class JointFilter:
    """
    Usage
    -----
        f = JointFilter((0.5, 0.4, 0.0))
        f.predict()
        f.update((0.51, 0.41, 0.0))
        x, y, z = f.position
    """

    def __init__(self, initial, config: RiskConfig | None = None):
        config = config or RiskConfig()
        self._q       = config.process_noise
        self._r       = config.measurement_noise
        self._k_vel   = config.velocity_gain_ratio
        self._epsilon = config.covariance_epsilon

        self.state      = np.zeros(6)
        self.state[:3]  = _as_point(initial)
        self.covariance = np.full(6, float(config.initial_covariance))

    # ── Public API ────────────────────────────────────────────────────────────

    def predict(self):
        """Project ahead one frame. Call every frame, with or without a measurement."""
        self.state[:3] += self.state[3:]
        self.covariance += self._q
        np.maximum(self.covariance, 0.0, out=self.covariance)

    def update(self, measurement):
        z = _as_point(measurement)

        p_pos = self.covariance[:3]
        p_vel = self.covariance[3:]

        innovation = z - self.state[:3]
        s = np.maximum(p_pos + self._r, self._epsilon)
        k_pos = p_pos / s
        k_vel = self._k_vel * k_pos

        self.state[:3] += k_pos * innovation
        self.state[3:] += k_vel * innovation

        self.covariance[:3] = (1.0 - k_pos) * p_pos
        self.covariance[3:] = (1.0 - k_vel) * p_vel
        np.maximum(self.covariance, 0.0, out=self.covariance)

    def forecast(self, steps: int) -> np.ndarray:
        """Position extrapolated `steps` frames ahead; state is untouched."""
        return self.state[:3] + self.state[3:] * steps

    @property
    def position(self) -> np.ndarray:
        return self.state[:3].copy()

    @property
    def velocity(self) -> np.ndarray:
        return self.state[3:].copy()


def _as_point(values) -> np.ndarray:
    p = np.asarray(values, dtype=float)[:3].copy()
    if len(p) < 3:
        p = np.pad(p, (0, 3 - len(p)))
    p[~np.isfinite(p)] = 0.0
    return p
