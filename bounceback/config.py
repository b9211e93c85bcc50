"""
Engine configuration.

All tunables live in plain dataclasses with documented defaults and can be
loaded from / saved to a JSON file:

    {
        "mode": "balanced",
        "impact": {"cooldown_frames": 15, "proximity_px": 10},
        "ball": {"enable_frequency_strategy": false}
    }

Unknown keys are ignored with a warning.
"""

import json
import logging
from dataclasses import dataclass, field, fields, asdict, is_dataclass
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class FrameConfig:
    """Frame adapter settings."""
    color_order: Optional[str] = None   # None = BGR / BGRA
    max_width: Optional[int] = None     # Downsample wider frames


@dataclass
class BallDetectorConfig:
    """Ball strategies. Sizes are full resolution pixels."""
    # Blob gates shared by the colour and shape strategies
    min_ball_area: float = 200
    max_ball_area: float = 50000
    min_circularity: float = 0.5
    min_contrast: float = 15            # Gray level difference ball vs. surround
    min_aspect: float = 0.9
    max_aspect: float = 1.1

    # Hough circles
    min_radius: int = 5
    max_radius: int = 50
    hough_param1: float = 100
    hough_param2: float = 30

    # Colour strategy ignores target coloured blobs this close to a known target
    target_exclusion_px: float = 50
    ball_colors: Tuple[str, ...] = ('white', 'yellow', 'orange', 'red')

    # Soccer ball (white or black panels)
    soccer_min_area: float = 500
    soccer_max_area: float = 20000
    soccer_min_circularity: float = 0.7
    soccer_blur: int = 7

    # Frequency domain matched filter (experimental)
    enable_frequency_strategy: bool = False
    frequency_radii: Tuple[int, ...] = (8, 12, 18, 26)
    frequency_min_score: float = 0.45

    # Parallel fan-out
    max_workers: int = 4


@dataclass
class MotionConfig:
    """Frame differencing settings."""
    diff_threshold: int = 25
    background_alpha: float = 0.05      # Running background learning rate
    blur_kernel: int = 5
    # Ball strategy blob gates
    min_area: float = 150
    max_area: float = 5000
    # Diagnostic motion regions
    region_min_area: float = 100
    region_max_area: float = 10000


@dataclass
class TargetDetectorConfig:
    """Stationary target search inside the goal region."""
    blur_kernel: int = 11
    hough_param1: float = 120
    hough_param2: float = 35
    min_radius: int = 30
    max_radius: int = 120
    min_color_fill: float = 0.3         # Share of the disc matching yellow/red
    contour_min_area: float = 2000
    contour_max_area: float = 50000
    tape_min_area: float = 5000         # Pink goal tape hull
    max_targets: int = 8
    target_colors: Tuple[str, ...] = ('yellow', 'red')


@dataclass
class ImpactConfig:
    """Impact evaluator tunables."""
    cooldown_frames: int = 15   # Calls suppressed after an impact
    proximity_px: float = 10.0  # Allowed distance beyond the target radius


@dataclass
class TrackingConfig:
    lost_after_frames: int = 10   # Consecutive misses before the ball counts as lost
    history_size: int = 5


@dataclass
class EngineConfig:
    """Top level engine configuration."""
    mode: str = "balanced"
    frame: FrameConfig = field(default_factory=FrameConfig)
    ball: BallDetectorConfig = field(default_factory=BallDetectorConfig)
    motion: MotionConfig = field(default_factory=MotionConfig)
    target: TargetDetectorConfig = field(default_factory=TargetDetectorConfig)
    impact: ImpactConfig = field(default_factory=ImpactConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    # Per mode overrides, e.g. {"fast": {"confidence_threshold": 0.7}}
    mode_parameters: Dict[str, dict] = field(default_factory=dict)
    # Apply the calibration's recommended mode on calibrate()
    auto_mode_from_calibration: bool = False
    # Calibration profile to load at startup
    calibration_path: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'EngineConfig':
        config = cls()
        update_config_from_dict(config, data)
        return config


def update_config_from_dict(config, data: dict):
    """Recursively copy known keys from `data` onto a config dataclass."""
    known = {f.name: f for f in fields(config)}
    for key, value in data.items():
        if key not in known:
            logger.warning("[Config] Ignoring unknown key '%s' in %s", key, type(config).__name__)
            continue
        current = getattr(config, key)
        if is_dataclass(current):
            if not isinstance(value, dict):
                raise ValueError(f"'{key}' must be an object")
            update_config_from_dict(current, value)
        elif isinstance(current, tuple) and isinstance(value, list):
            setattr(config, key, tuple(value))
        else:
            setattr(config, key, value)


def load_config(path: Optional[str] = "config.json") -> EngineConfig:
    """
    Load engine configuration from JSON.

    A missing file yields the defaults; a malformed file raises ValueError.
    """
    if not path:
        return EngineConfig()
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.info("[Config] No config file found at %s, using defaults", path)
        return EngineConfig()
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"invalid config file {path}: top level must be an object")
    logger.info("[Config] Loaded from %s", path)
    return EngineConfig.from_dict(data)


def save_config(config: EngineConfig, path: str):
    with open(path, 'w') as f:
        json.dump(config.to_dict(), f, indent=2)
    logger.info("[Config] Saved to %s", path)
