# fallguard/__init__.py
"""
fallguard
=========
Real-time biomechanical fall-risk estimation from 3D pose landmarks.

Public API
----------
RiskPipeline        — main entry point; feed it FrameSamples, get FrameResult back
FrameResult         — dataclass returned by RiskPipeline.process_frame()
FrameSample         — one frame of image + world landmarks from the pose model
RiskConfig          — every threshold and weight, with defaults

Individual components (use directly only if you need fine-grained control):
JointFilter         — constant-velocity Kalman filter for one joint
PoseSmoother        — 33 joint filters + short-horizon forecast
SupportClassifier   — load-bearing legs and sitting detection
RiskFusion          — composite 0–100 risk index
FallStateMachine    — sustained fall confirmation

Typical usage
-------------
    from fallguard import RiskPipeline, from_pose_results

    pipeline = RiskPipeline(on_alarm=lambda r: print('FALL', r.risk))

    for results, detections in stream:          # pose model + detector output
        sample = from_pose_results(results, timestamp=time.time())
        result = pipeline.process_frame(sample, detections, frame_size=(1280, 720))
        print(result.status, round(result.risk))

    pipeline.reset()                            # caregiver acknowledged the alarm
"""

from .config        import RiskConfig, load_config
from .landmarks     import FrameSample, from_pose_results
from .kalman        import JointFilter
from .smoother      import PoseSmoother
from .geometry      import SpineStatus, MovementTrend
from .environment   import Detection, SeatRegion, EnvironmentScan, scan_detections
from .support       import LegSupport, SupportClassifier
from .fusion        import RiskFusion, RiskSnapshot
from .fall_state    import FallState, FallStateMachine
from .pipeline      import RiskPipeline, FrameResult

__all__ = [
    'RiskPipeline',
    'FrameResult',
    'FrameSample',
    'RiskConfig',
    'load_config',
    'from_pose_results',
    'JointFilter',
    'PoseSmoother',
    'SpineStatus',
    'MovementTrend',
    'Detection',
    'SeatRegion',
    'EnvironmentScan',
    'scan_detections',
    'LegSupport',
    'SupportClassifier',
    'RiskFusion',
    'RiskSnapshot',
    'FallState',
    'FallStateMachine',
]

__version__ = '0.1.0'
