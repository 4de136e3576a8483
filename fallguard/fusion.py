# fallguard/fusion.py

import math
from dataclasses import dataclass
from typing import Optional

from .config import RiskConfig
from .geometry import SAFE_ANGLE, SpineStatus
from .support import LegSupport


@dataclass(frozen=True)
class RiskSnapshot:
    """
    Fused risk for one frame. All risk values are in [0, 100].

    knee_risk       : load on the most bent supported knee
    stability_risk  : 100 - stability score
    env_risk        : obstacle hazard near the feet
    spine_status    : GOOD | POOR
    impact_factor   : >= 1.0, amplification from fast descent
    composite_risk  : weighted fusion after overrides
    """
    knee_risk       : float
    stability_risk  : float
    env_risk        : float
    spine_status    : SpineStatus
    impact_factor   : float
    composite_risk  : float
    stability_score : float = 100.0
    effective_angle : float = SAFE_ANGLE
    freefall        : bool  = False
    hand_support    : bool  = False

    @classmethod
    def safe(cls) -> "RiskSnapshot":
        """Snapshot used whenever there is not enough information to judge."""
        return cls(
            knee_risk      = 0.0,
            stability_risk = 0.0,
            env_risk       = 0.0,
            spine_status   = SpineStatus.GOOD,
            impact_factor  = 1.0,
            composite_risk = 0.0,
        )


class RiskFusion:
    """
    Weighted combination of knee load, balance and environment.

    The overrides are applied in a fixed order: freefall forces 100, a poor
    spine then adds its penalty, and only then is the result clamped. Changing
    that order changes the output at the boundaries.
    """

    def __init__(self, config: Optional[RiskConfig] = None):
        self.config = config or RiskConfig()

    def effective_angle(
        self,
        left_angle: float,
        right_angle: float,
        left: LegSupport,
        right: LegSupport,
        sitting: bool,
        hand_support: bool,
    ) -> float:
        """Most bent knee among load-bearing legs, 180 when none bears load."""
        angle = SAFE_ANGLE
        if not sitting:
            loaded = [a for a, leg in ((left_angle, left), (right_angle, right)) if leg.supported]
            if loaded:
                angle = min(_finite(a, SAFE_ANGLE) for a in loaded)
        if hand_support:
            angle += self.config.hand_support_bonus
        return angle

    def fuse(
        self,
        effective_angle: float,
        stability_score: float,
        hazard: float,
        spine: SpineStatus,
        freefall: bool,
        impact: float = 1.0,
        hand_support: bool = False,
    ) -> RiskSnapshot:
        cfg = self.config

        effective_angle = _finite(effective_angle, SAFE_ANGLE)
        stability_score = _clamp(_finite(stability_score, 100.0))
        hazard          = _finite(hazard, 0.0)

        knee_load      = max(0.0, cfg.knee_safe_angle - effective_angle)
        stability_risk = 100.0 - stability_score
        env_risk       = _clamp(hazard * 100.0)

        composite = (knee_load * cfg.knee_weight
                     + stability_risk * cfg.stability_weight
                     + env_risk * cfg.env_weight)

        if freefall:
            composite = 100.0
        if spine == SpineStatus.POOR:
            composite += cfg.spine_penalty
        composite = _clamp(composite)

        return RiskSnapshot(
            knee_risk       = _clamp(knee_load),
            stability_risk  = stability_risk,
            env_risk        = env_risk,
            spine_status    = spine,
            impact_factor   = max(1.0, _finite(impact, 1.0)),
            composite_risk  = composite,
            stability_score = stability_score,
            effective_angle = effective_angle,
            freefall        = bool(freefall),
            hand_support    = bool(hand_support),
        )


def _finite(value: float, fallback: float) -> float:
    value = float(value)
    return value if math.isfinite(value) else fallback


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))
