import logging

import numpy as np
import pytest

from fallguard import (
    Detection, FallState, FrameSample, MovementTrend, RiskConfig, RiskPipeline,
    SpineStatus,
)

FRAME_SIZE = (1000, 1000)


def _sample(image, world=None, t=0.0):
    return FrameSample(image=image, world=world, timestamp=t)


class TestScenarios:

    def test_sustained_geometric_fall_fires_one_alarm_on_frame_60(self, fallen):
        alarms = []
        pipeline = RiskPipeline(on_alarm=alarms.append)
        fired = []
        for i in range(120):
            result = pipeline.process_frame(_sample(fallen, t=i / 30.0))
            fired.append(result.alarm)

        assert fired.index(True) == 59
        assert fired.count(True) == 1
        assert len(alarms) == 1
        assert alarms[0].fall_state is FallState.CONFIRMED
        assert pipeline.fall_state is FallState.CONFIRMED

    def test_stable_standing_stays_low_risk(self, standing, skeletons):
        world = skeletons.world(170.0)
        pipeline = RiskPipeline()
        for i in range(300):
            result = pipeline.process_frame(_sample(standing, world, t=i / 30.0))
            assert result.risk < 10.0
        assert result.left_leg.supported and result.right_leg.supported
        assert result.left_knee_angle == pytest.approx(170.0)
        assert result.snapshot.spine_status is SpineStatus.GOOD
        assert result.fall_state is FallState.NORMAL
        assert result.status == 'active'

    def test_accelerating_descent_forces_max_risk(self, skeletons, caplog):
        world = skeletons.world(170.0)
        pipeline = RiskPipeline(smooth_analysis=False)
        results = []
        with caplog.at_level(logging.WARNING, logger='fallguard.pipeline'):
            for i, offset in enumerate((0.0, 0.01, 0.03, 0.07)):
                results.append(pipeline.process_frame(_sample(skeletons.standing(offset), world, t=i / 30.0)))

        assert [r.snapshot.freefall for r in results] == [False, False, False, True]
        assert results[-1].risk == 100.0
        assert all(r.risk < 100.0 for r in results[:-1])
        assert results[-1].snapshot.impact_factor > 1.0
        assert results[-1].trend is MovementTrend.LOWERING
        assert 'High fall risk' in caplog.text


class TestMissingInput:

    def test_no_subject_returns_safe_result(self):
        result = RiskPipeline().process_frame(None)
        assert result.status == 'no_pose'
        assert result.risk == 0.0
        assert result.smoothed is None
        assert not result.alarm

    def test_no_subject_resets_fall_counter(self, fallen):
        pipeline = RiskPipeline()
        for _ in range(30):
            pipeline.process_frame(_sample(fallen))
        pipeline.process_frame(None)
        assert not any(pipeline.process_frame(_sample(fallen)).alarm for _ in range(59))
        assert pipeline.process_frame(_sample(fallen)).alarm

    def test_no_subject_coasts_filters(self, standing):
        pipeline = RiskPipeline()
        pipeline.process_frame(_sample(standing))
        result = pipeline.process_frame(None)
        assert result.smoothed is not None
        assert result.smoothed[:, :3] == pytest.approx(standing[:, :3])

    def test_low_visibility_skips_analysis(self, skeletons):
        pipeline = RiskPipeline()
        dim = skeletons.standing(visibility=0.3)
        statuses = [pipeline.process_frame(_sample(dim)).status for _ in range(7)]
        assert statuses[:5] == ['low_visibility'] * 5
        assert statuses[5:] == ['camera_blocked'] * 2

        result = pipeline.process_frame(_sample(dim))
        assert result.snapshot.composite_risk == 0.0
        assert result.smoothed is not None

    def test_low_visibility_does_not_advance_or_reset_fall_counter(self, fallen):
        pipeline = RiskPipeline()
        dim = fallen.copy()
        dim[:, 3] = 0.3
        for _ in range(50):
            assert not pipeline.process_frame(_sample(fallen)).alarm
        for _ in range(20):
            assert not pipeline.process_frame(_sample(dim)).alarm
        alarms = [pipeline.process_frame(_sample(fallen)).alarm for _ in range(10)]
        assert alarms == [False] * 9 + [True]

    def test_low_visibility_restarts_velocity_baseline(self, skeletons):
        # Hips already moving at 0.035/frame before the dim frame; after it,
        # a 0.04 drop must be measured from rest, not from the old velocity
        pipeline = RiskPipeline(smooth_analysis=False)
        pipeline.process_frame(_sample(skeletons.standing()))
        pipeline.process_frame(_sample(skeletons.standing(offset_y=0.035)))
        pipeline.process_frame(_sample(skeletons.standing(offset_y=0.035, visibility=0.3)))
        result = pipeline.process_frame(_sample(skeletons.standing(offset_y=0.075)))
        assert result.snapshot.freefall
        assert result.risk == 100.0

    def test_missing_world_falls_back_to_image(self, standing):
        result = RiskPipeline().process_frame(_sample(standing, None))
        assert result.left_knee_angle == pytest.approx(180.0)
        assert result.risk == 0.0


class TestEnvironment:

    def test_obstacle_raises_env_risk(self, standing, skeletons):
        world = skeletons.world(170.0)
        result = RiskPipeline().process_frame(
            _sample(standing, world), [Detection((450, 870, 100, 100), 'toy')], FRAME_SIZE)
        assert result.snapshot.env_risk == pytest.approx(80.0)
        assert result.risk == pytest.approx(16.0)
        assert result.hazard_label == 'toy'

    def test_last_scan_kept_while_detector_idle(self, standing):
        pipeline = RiskPipeline()
        pipeline.process_frame(_sample(standing), [Detection((450, 870, 100, 100), 'toy')], FRAME_SIZE)
        assert pipeline.process_frame(_sample(standing)).snapshot.env_risk == pytest.approx(80.0)
        assert pipeline.process_frame(_sample(standing), [], FRAME_SIZE).snapshot.env_risk == 0.0

    def test_hazard_cleared_after_long_low_visibility(self, standing, skeletons):
        dim = skeletons.standing(visibility=0.3)
        pipeline = RiskPipeline()
        pipeline.process_frame(_sample(standing), [Detection((450, 870, 100, 100), 'toy')], FRAME_SIZE)
        for _ in range(3):
            pipeline.process_frame(_sample(dim))
        assert pipeline.process_frame(_sample(standing)).snapshot.env_risk == pytest.approx(80.0)

        for _ in range(11):
            pipeline.process_frame(_sample(dim))
        assert pipeline.process_frame(_sample(standing)).snapshot.env_risk == 0.0

    def test_sitting_masks_knee_load(self, standing, skeletons):
        world = skeletons.world(90.0)
        pipeline = RiskPipeline()
        bent = pipeline.process_frame(_sample(standing, world))
        assert bent.risk == pytest.approx(15.0)

        seated = pipeline.process_frame(
            _sample(standing, world), [Detection((400, 400, 200, 500), 'chair')], FRAME_SIZE)
        assert seated.sitting
        assert seated.status == 'sitting'
        assert seated.left_knee_angle == 180.0
        assert seated.risk == 0.0

    def test_hand_support_reduces_knee_risk(self, standing, skeletons):
        world = skeletons.world(90.0)
        frame = standing.copy()
        frame[15, :2] = frame[25, :2] + (0.05, 0.0)
        result = RiskPipeline().process_frame(_sample(frame, world))
        assert result.snapshot.hand_support
        assert result.snapshot.knee_risk == pytest.approx(20.0)


class TestLifecycle:

    def test_reset_clears_confirmed_alarm(self, fallen, caplog):
        pipeline = RiskPipeline(RiskConfig(fall_trigger_frames=3))
        for _ in range(5):
            pipeline.process_frame(_sample(fallen))
        assert pipeline.fall_state is FallState.CONFIRMED

        with caplog.at_level(logging.INFO, logger='fallguard.pipeline'):
            pipeline.reset()
        assert pipeline.fall_state is FallState.NORMAL
        assert 'System reset' in caplog.text

        alarms = [pipeline.process_frame(_sample(fallen)).alarm for _ in range(3)]
        assert alarms == [False, False, True]

    def test_full_reset_drops_filters(self, standing):
        pipeline = RiskPipeline()
        pipeline.process_frame(_sample(standing))
        pipeline.reset(full=True)
        assert pipeline.process_frame(None).smoothed is None

    def test_forecast_toggle(self, standing):
        result = RiskPipeline().process_frame(_sample(standing))
        assert result.forecast.shape == (33, 4)
        result = RiskPipeline(RiskConfig(forecast_steps=0)).process_frame(_sample(standing))
        assert result.forecast is None

    def test_irregular_timing_reported(self, standing):
        pipeline = RiskPipeline()
        for i in range(5):
            pipeline.process_frame(_sample(standing, t=i / 30.0))
        result = pipeline.process_frame(_sample(standing, t=2.0))
        assert result.dt_irregular
        assert result.timestamp == 2.0

    def test_debug_logging(self, standing, caplog):
        pipeline = RiskPipeline(debug=True)
        with caplog.at_level(logging.DEBUG, logger='fallguard.pipeline'):
            pipeline.process_frame(_sample(standing))
        assert 'risk=' in caplog.text

    def test_snapshot_values_are_finite(self, standing):
        frame = standing.copy()
        frame[[23, 24, 27, 28], :2] = np.nan
        result = RiskPipeline().process_frame(_sample(frame))
        snap = result.snapshot
        for value in (snap.knee_risk, snap.stability_risk, snap.env_risk,
                      snap.impact_factor, snap.composite_risk):
            assert np.isfinite(value)
