# fallguard/pipeline.py

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Tuple

import numpy as np

from .config import RiskConfig
from .environment import Detection, EnvironmentScan, scan_detections
from .fall_state import FallState, FallStateMachine
from .fusion import RiskFusion, RiskSnapshot
from .geometry import (
    SAFE_ANGLE, MovementTrend, has_hand_support, impact_factor, is_freefall,
    is_geometric_fall, knee_angle, movement_trend, spine_status,
    stability_score, visibility_score,
)
from .landmarks import (
    LEFT_ANKLE, LEFT_HIP, LEFT_KNEE, RIGHT_ANKLE, RIGHT_HIP, RIGHT_KNEE,
    FrameSample,
)
from .smoother import PoseSmoother
from .support import LegSupport, SupportClassifier

logger = logging.getLogger(__name__)


# ── Result dataclass ──────────────────────────────────────────────────────────

@dataclass
class FrameResult:
    """
    Everything the pipeline produces for a single frame.

    snapshot         : fused RiskSnapshot (safe snapshot when analysis was skipped)
    left_leg         : LegSupport for the left leg
    right_leg        : LegSupport for the right leg
    sitting          : subject seated on a detected seat
    left_knee_angle  : knee angle shown to the user (180 when unloaded/sitting)
    right_knee_angle : same for the right knee
    fall_state       : FallState.NORMAL | ACCUMULATING | CONFIRMED
    alarm            : True only on the frame the fall became confirmed
    status           : 'active' | 'sitting' | 'low_visibility' | 'camera_blocked' | 'no_pose'
    trend            : MovementTrend of the hips
    hazard_label     : class of the obstacle near the feet, or None
    smoothed         : smoothed image landmarks [33, 4], or None
    forecast         : landmarks extrapolated forecast_steps ahead, or None
    visibility       : mean visibility of the key joints
    dt_irregular     : frame spacing broke the one-step-per-frame assumption
    timestamp        : capture time of the frame, None when there was no frame
    """
    snapshot         : RiskSnapshot
    left_leg         : LegSupport
    right_leg        : LegSupport
    sitting          : bool
    left_knee_angle  : float
    right_knee_angle : float
    fall_state       : FallState
    alarm            : bool
    status           : str
    trend            : MovementTrend
    hazard_label     : Optional[str]
    smoothed         : Optional[np.ndarray]
    forecast         : Optional[np.ndarray]
    visibility       : float
    dt_irregular     : bool = False
    timestamp        : Optional[float] = None

    @property
    def risk(self) -> float:
        return self.snapshot.composite_risk


class RiskPipeline:
    """
    Frame-by-frame fall-risk pipeline for one monitored subject.

    Every frame is processed by:
      • PoseSmoother      — per-joint Kalman smoothing (+ forecast)
      • geometry          — knee angles, balance, spine, vertical motion
      • SupportClassifier — which legs bear load, sitting on a seat
      • RiskFusion        — composite 0–100 risk
      • FallStateMachine  — sustained fall confirmation

    Usage
    -----
    pipeline = RiskPipeline(on_alarm=lambda r: print('FALL', r.risk))
    for sample, detections in stream:
        result = pipeline.process_frame(sample, detections, frame_size=(1280, 720))
    pipeline.reset()      # after the caregiver acknowledged the alarm
    """

    def __init__(
        self,
        config: Optional[RiskConfig] = None,
        on_alarm: Optional[Callable[[FrameResult], None]] = None,
        smooth_analysis: bool = True,
        debug: bool = False,
    ):
        """
        smooth_analysis : run the metrics on the smoothed skeleton (default)
                          or on the raw pose model output
        debug           : log per-frame metrics at DEBUG level
        """
        self.config = config or RiskConfig()
        self.on_alarm        = on_alarm
        self.smooth_analysis = smooth_analysis
        self.debug           = debug

        self._smoother = PoseSmoother(self.config)
        self._support  = SupportClassifier(self.config)
        self._fusion   = RiskFusion(self.config)
        self._fall     = FallStateMachine(self.config.fall_trigger_frames)

        self._env               = EnvironmentScan()
        self._previous          = None    # landmarks of the last analysed frame
        self._previous_velocity = 0.0
        self._low_vis_frames    = 0
        self._high_risk         = False

    # ── Main entry point ──────────────────────────────────────────────────────

    def process_frame(
        self,
        frame: Optional[FrameSample],
        detections: Optional[Iterable[Detection]] = None,
        frame_size: Optional[Tuple[int, int]] = None,
    ) -> FrameResult:
        """
        frame      : FrameSample, or None when the pose model found nobody
        detections : detector output for this frame, or None if the detector
                     did not run (the last scan stays in effect)
        frame_size : (width, height) in pixels, needed to normalise detections
        """
        # ── 1. No subject ─────────────────────────────────────────────────────
        if frame is None:
            return self._no_subject()

        # ── 2. Smoothing ──────────────────────────────────────────────────────
        smoothed = self._smoother.update(frame.image, frame.timestamp)
        forecast = None
        if self.config.forecast_steps > 0:
            forecast = self._smoother.forecast(self.config.forecast_steps)

        landmarks  = smoothed if self.smooth_analysis else frame.image
        visibility = visibility_score(frame.image)

        # ── 3. Visibility gate ────────────────────────────────────────────────
        if visibility < self.config.visibility_threshold:
            self._low_vis_frames += 1
            if self._low_vis_frames > self.config.env_clear_after_frames:
                self._env = EnvironmentScan()
            status = ('camera_blocked' if self._low_vis_frames > self.config.blocked_after_frames
                      else 'low_visibility')
            self._previous          = landmarks
            self._previous_velocity = 0.0
            return self._safe_result(status, smoothed, forecast, visibility, frame.timestamp)
        self._low_vis_frames = 0

        # ── 4. Environment ────────────────────────────────────────────────────
        if detections is not None and frame_size is not None:
            width, height = frame_size
            self._env = scan_detections(detections, width, height, landmarks, self.config)

        # ── 5. Geometry + support ─────────────────────────────────────────────
        previous = self._previous
        world    = frame.world if frame.world is not None else landmarks

        left_angle  = knee_angle(world, LEFT_HIP,  LEFT_KNEE,  LEFT_ANKLE)
        right_angle = knee_angle(world, RIGHT_HIP, RIGHT_KNEE, RIGHT_ANKLE)

        left_leg, right_leg = self._support.update(landmarks, previous)
        sitting = self._support.is_sitting(landmarks, self._env.seats)
        hands   = has_hand_support(landmarks, self.config)

        impact    = impact_factor(landmarks, previous, self.config)
        stability = stability_score(landmarks, self.config)
        spine     = spine_status(landmarks, self.config)
        freefall, self._previous_velocity = is_freefall(
            landmarks, previous, self._previous_velocity, self.config)

        # ── 6. Fusion ─────────────────────────────────────────────────────────
        effective = self._fusion.effective_angle(
            left_angle, right_angle, left_leg, right_leg, sitting, hands)
        snapshot = self._fusion.fuse(
            effective, stability, self._env.hazard, spine, freefall, impact, hands)
        self._log_risk(snapshot)

        # ── 7. Fall confirmation ──────────────────────────────────────────────
        fall_condition = (is_geometric_fall(landmarks, self.config)
                          or snapshot.composite_risk >= self.config.fall_risk_level)
        alarm = self._fall.update(fall_condition)

        result = FrameResult(
            snapshot         = snapshot,
            left_leg         = left_leg,
            right_leg        = right_leg,
            sitting          = sitting,
            left_knee_angle  = left_angle if left_leg.supported and not sitting else SAFE_ANGLE,
            right_knee_angle = right_angle if right_leg.supported and not sitting else SAFE_ANGLE,
            fall_state       = self._fall.state,
            alarm            = alarm,
            status           = 'sitting' if sitting else 'active',
            trend            = movement_trend(landmarks, previous, self.config),
            hazard_label     = self._env.hazard_label,
            smoothed         = smoothed,
            forecast         = forecast,
            visibility       = visibility,
            dt_irregular     = self._smoother.last_dt_irregular,
            timestamp        = frame.timestamp,
        )

        if self.debug:
            logger.debug(
                "risk=%.1f knee=%.1f stab=%.1f env=%.1f spine=%s impact=%.2f "
                "L=%.0f%s R=%.0f%s sit=%s fall=%s/%d",
                snapshot.composite_risk, snapshot.knee_risk, snapshot.stability_risk,
                snapshot.env_risk, snapshot.spine_status.value, snapshot.impact_factor,
                left_angle, '*' if left_leg.supported else '',
                right_angle, '*' if right_leg.supported else '',
                sitting, self._fall.state.name, self._fall.count,
            )

        if alarm:
            logger.warning("FALL DETECTED (risk %.0f%%)", snapshot.composite_risk)
            if self.on_alarm is not None:
                self.on_alarm(result)

        self._previous = landmarks
        return result

    def reset(self, full: bool = False):
        """
        External reset signal: clears the fall counter and a confirmed alarm.
        full=True also drops the filters and every motion baseline, as for a
        new subject.
        """
        self._fall.reset()
        if full:
            self._smoother.reset()
            self._support.reset()
            self._env               = EnvironmentScan()
            self._previous          = None
            self._previous_velocity = 0.0
            self._low_vis_frames    = 0
            self._high_risk         = False
        logger.info("System reset%s: alarm cleared", " (full)" if full else "")

    @property
    def fall_state(self) -> FallState:
        return self._fall.state

    # ── Private helpers ───────────────────────────────────────────────────────

    def _no_subject(self) -> FrameResult:
        """Coast the filters and drop everything that needs a previous frame."""
        smoothed = self._smoother.coast()
        forecast = None
        if smoothed is not None and self.config.forecast_steps > 0:
            forecast = self._smoother.forecast(self.config.forecast_steps)

        self._fall.update(False)
        self._support.reset()
        self._previous          = None
        self._previous_velocity = 0.0
        self._low_vis_frames   += 1
        self._high_risk         = False
        return self._safe_result('no_pose', smoothed, forecast, 0.0, None)

    def _safe_result(self, status, smoothed, forecast, visibility, timestamp) -> FrameResult:
        return FrameResult(
            snapshot         = RiskSnapshot.safe(),
            left_leg         = LegSupport(),
            right_leg        = LegSupport(),
            sitting          = False,
            left_knee_angle  = SAFE_ANGLE,
            right_knee_angle = SAFE_ANGLE,
            fall_state       = self._fall.state,
            alarm            = False,
            status           = status,
            trend            = MovementTrend.ANALYZING,
            hazard_label     = None,
            smoothed         = smoothed,
            forecast         = forecast,
            visibility       = visibility,
            dt_irregular     = self._smoother.last_dt_irregular,
            timestamp        = timestamp,
        )

    def _log_risk(self, snapshot: RiskSnapshot):
        high = snapshot.composite_risk > self.config.high_risk_level
        if high and not self._high_risk:
            logger.warning("High fall risk: %.0f%%", snapshot.composite_risk)
        self._high_risk = high
