# fallguard/config.py

"""
Tunable thresholds for the risk pipeline.

Every constant used by the filters, classifiers and the fusion step lives in
RiskConfig so it can be overridden per session (or through the environment)
without touching the code. Defaults are the values the pipeline was tuned
with on 30 fps webcam footage.

Usage
-----
    from fallguard.config import RiskConfig, load_config

    config = RiskConfig(fall_trigger_frames=30)   # explicit override
    config = load_config()                        # .env / FALLGUARD_* vars
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "FALLGUARD_"


@dataclass(frozen=True)
class RiskConfig:
    # ── Joint filter ──────────────────────────────────────────────────────────
    process_noise       : float = 0.01    # q, added to every covariance entry on predict
    measurement_noise   : float = 0.05    # r, webcam jitter (higher = smoother, slower)
    initial_covariance  : float = 1.0
    velocity_gain_ratio : float = 0.5     # velocity gain as a fraction of position gain
    covariance_epsilon  : float = 1e-9

    # ── Pose smoother ─────────────────────────────────────────────────────────
    visibility_floor    : float = 0.05    # below this a joint is treated as absent
    forecast_steps      : int   = 15      # ghost skeleton horizon, 0 disables
    irregular_dt_factor : float = 3.0     # dt above factor x mean dt is flagged
    irregular_rebase_frames : int = 3     # consecutive flags before the mean adopts the new rate

    # ── Visibility gate ───────────────────────────────────────────────────────
    visibility_threshold   : float = 0.6  # mean visibility of the key joints
    blocked_after_frames   : int   = 5    # low-visibility streak -> camera blocked
    env_clear_after_frames : int   = 10   # low-visibility streak -> hazard cleared

    # ── Geometry ──────────────────────────────────────────────────────────────
    stability_gain        : float = 500.0
    spine_poor_angle      : float = 45.0
    impact_threshold      : float = 0.015
    impact_gain           : float = 30.0
    freefall_accel        : float = 0.015
    freefall_velocity     : float = 0.02
    fall_torso_angle      : float = 45.0  # torso angle from horizontal
    fall_hip_y            : float = 0.5
    trend_threshold       : float = 0.005

    # ── Support ───────────────────────────────────────────────────────────────
    grounded_shin_fraction : float = 0.3
    foot_still_epsilon     : float = 0.002
    stability_frames       : int   = 10
    seat_depth_tolerance   : float = 0.1
    hand_support_distance  : float = 0.15
    hand_min_visibility    : float = 0.5
    hand_support_bonus     : float = 30.0

    # ── Environment ───────────────────────────────────────────────────────────
    hazard_distance : float = 0.2
    hazard_min_y    : float = 0.5
    hazard_level    : float = 0.8

    # ── Fusion ────────────────────────────────────────────────────────────────
    knee_safe_angle   : float = 140.0
    knee_weight       : float = 0.3
    stability_weight  : float = 0.4
    env_weight        : float = 0.2
    spine_penalty     : float = 10.0
    high_risk_level   : float = 85.0

    # ── Fall confirmation ─────────────────────────────────────────────────────
    fall_risk_level     : float = 95.0
    fall_trigger_frames : int   = 60      # ~2 s at 30 fps

    def __post_init__(self):
        for name in ("measurement_noise", "covariance_epsilon"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.process_noise < 0:
            raise ValueError("process_noise must be non-negative")
        if not 0.0 <= self.visibility_floor <= 1.0:
            raise ValueError("visibility_floor must be within [0, 1]")
        if self.fall_trigger_frames < 1:
            raise ValueError("fall_trigger_frames must be at least 1")
        if self.forecast_steps < 0:
            raise ValueError("forecast_steps must be non-negative")
        if self.irregular_rebase_frames < 1:
            raise ValueError("irregular_rebase_frames must be at least 1")

    def with_overrides(self, **overrides) -> "RiskConfig":
        return replace(self, **overrides)


def load_config(dotenv_path: str | None = None, base: RiskConfig | None = None) -> RiskConfig:
    """
    Build a RiskConfig from environment overrides.

    Every field can be set as FALLGUARD_<FIELD_NAME> (upper case), either in
    the process environment or in a .env file. If dotenv_path is None,
    python-dotenv searches upward from the current directory.

    Raises ValueError when a variable cannot be parsed.
    """
    load_dotenv(dotenv_path=dotenv_path)

    base = base or RiskConfig()
    overrides = {}
    for f in fields(RiskConfig):
        raw = os.environ.get(ENV_PREFIX + f.name.upper())
        if raw is None or raw.strip() == "":
            continue
        cast = int if isinstance(getattr(base, f.name), int) else float
        try:
            overrides[f.name] = cast(raw)
        except ValueError:
            raise ValueError(
                f"{ENV_PREFIX}{f.name.upper()}={raw!r} is not a valid {cast.__name__}"
            ) from None

    if overrides:
        logger.info("Config overrides from environment: %s", ", ".join(sorted(overrides)))
    return base.with_overrides(**overrides)
