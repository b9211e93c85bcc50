"""
Ball detection and tracking engine for goal target training.

Detects a moving ball and the coloured targets inside a goal, tracks the
ball across frames and reports impacts on the targets.
"""

from .frames import Frame, UnsupportedFrameFormat, to_canonical
from .geometry import Region
from .detection import Detection, DetectorKind, TargetSet
from .modes import InvalidMode, Mode, ModeController, ModeParameters
from .calibration import CalibrationProfile, CalibrationStore, compute_profile
from .config import EngineConfig, load_config, save_config
from .ball_detector import SimpleBallDetector, UnifiedBallDetector
from .target_detector import TargetDetector
from .tracking import StatsSnapshot, Tracker
from .impact import ImpactEvaluator, ImpactEvent, ImpactState
from .engine import (
    FrameResult,
    TrackingEngine,
    calibrate,
    detect_ball,
    detect_impact,
    detect_motion,
    detect_simple_ball,
    detect_targets,
    get_default_engine,
    get_statistics,
    reset_tracking,
    set_mode,
)

__all__ = [
    # Engine
    'TrackingEngine',
    'FrameResult',
    'get_default_engine',
    'detect_ball',
    'detect_simple_ball',
    'detect_targets',
    'detect_impact',
    'reset_tracking',
    'get_statistics',
    'set_mode',
    'calibrate',
    'detect_motion',
    # Types
    'Frame',
    'Region',
    'Detection',
    'DetectorKind',
    'TargetSet',
    'Mode',
    'ModeParameters',
    'CalibrationProfile',
    'StatsSnapshot',
    'ImpactEvent',
    'ImpactState',
    # Components
    'ModeController',
    'CalibrationStore',
    'UnifiedBallDetector',
    'SimpleBallDetector',
    'TargetDetector',
    'Tracker',
    'ImpactEvaluator',
    'compute_profile',
    'to_canonical',
    # Config
    'EngineConfig',
    'load_config',
    'save_config',
    # Errors
    'UnsupportedFrameFormat',
    'InvalidMode',
]
