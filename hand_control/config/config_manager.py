"""
Configuration Management for the hand control pipeline

Loads and provides access to configuration from config.json.
Allows startup configuration of every gesture threshold, smoothing factor,
scheduler interval and follow-controller gain.
Supports both plain values and the [value, description] format.
"""

import copy
import json
import logging
from typing import Dict, Any, Optional, Tuple
from pathlib import Path

logger = logging.getLogger(__name__)


class Config:
    """
    Singleton configuration manager that loads from config.json
    """
    _instance = None
    _config_data: Dict[str, Any] = {}
    _config_path: str = ""

    def __new__(cls, *args, **kwargs):
        # Allow passing through extra args (e.g., Config(path)) without
        # breaking the singleton __new__ signature.
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration from JSON file.

        Args:
            config_path: Path to config.json. If provided, force reload from
                         that path. If None, load from the default location
                         only on first initialization.
        """
        if config_path is not None:
            self._config_path = str(config_path)
            self.reload()
            return

        if not self._config_data:  # Only load once
            config_path = Path(__file__).parent / "config.json"
            self._config_path = str(config_path)
            self.reload()

    def reload(self):
        """Reload configuration from file."""
        try:
            with open(self._config_path, 'r') as f:
                self._config_data = json.load(f)
            logger.info("✓ Loaded configuration from %s", self._config_path)
        except FileNotFoundError:
            logger.warning("⚠ Config file not found: %s (using default values)", self._config_path)
            self._config_data = self._get_defaults()
        except json.JSONDecodeError as e:
            logger.warning("⚠ Error parsing config file: %s (using default values)", e)
            self._config_data = self._get_defaults()

    def save(self):
        """Save current configuration back to file."""
        try:
            with open(self._config_path, 'w') as f:
                json.dump(self._config_data, f, indent=2)
            logger.info("✓ Saved configuration to %s", self._config_path)
        except OSError as e:
            logger.error("✗ Error saving config: %s", e)

    def get(self, *keys, default=None) -> Any:
        """
        Get configuration value using dot notation.
        Handles both plain values and the [value, description] format.

        Examples:
            config.get('camera', 'width')  # Returns 640
            config.get('gesture_thresholds', 'pointing', 'on_frames')

        Args:
            keys: Path to value (e.g., 'gesture_thresholds', 'armed', 'fist_threshold')
            default: Default value if path doesn't exist

        Returns:
            Configuration value or default
        """
        current = self._config_data
        for key in keys:
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default

        # [value, description] format
        if isinstance(current, list) and len(current) >= 1:
            return current[0]

        return current

    def get_with_description(self, *keys, default=None) -> Tuple[Any, str]:
        """
        Get configuration value AND description.

        Returns:
            Tuple of (value, description) or (default, "")
        """
        current = self._config_data
        for key in keys:
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return (default, "")

        if isinstance(current, list):
            if len(current) >= 2:
                return (current[0], current[1])
            elif len(current) == 1:
                return (current[0], "")

        return (current, "")

    def set(self, *keys, value):
        """
        Set configuration value using dot notation.

        Example:
            config.set('scheduler', 'frame_interval_ms', value=33)
        """
        if len(keys) == 0:
            return

        current = self._config_data
        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        # Keep the description when overwriting a [value, description] entry
        existing = current.get(keys[-1])
        if isinstance(existing, list) and len(existing) >= 2:
            current[keys[-1]] = [value, existing[1]]
        else:
            current[keys[-1]] = value

    def _get_defaults(self) -> Dict:
        """Return default configuration values."""
        return copy.deepcopy(DEFAULTS)

    @property
    def data(self) -> Dict:
        """Get entire configuration dictionary."""
        return self._config_data

    @property
    def path(self) -> str:
        return self._config_path


DEFAULTS: Dict[str, Any] = {
    "smoothing": {
        "move_alpha": 0.25,
        "pinch_alpha": 0.25,
        "point_alpha": 0.25,
        "fist_alpha": 0.25
    },
    "gesture_thresholds": {
        "armed": {
            "fist_threshold": 0.20,
            "arm_on_frames": 2,
            "disarm_factor": 1.5
        },
        "pointing": {
            "mag_on": 0.35,
            "mag_off": 0.18,
            "straight_on": 0.9,
            "straight_off": 0.75,
            "on_frames": 4,
            "off_frames": 6,
            "scale_floor": 0.05
        },
        "pinch_mode": {
            "pinch_on": 0.10,
            "pinch_off": 0.16
        }
    },
    "emitter": {
        "min_delta": 0.01,
        "pinch_min_delta": None
    },
    "scheduler": {
        "frame_interval_ms": 16,
        "async_detection": False,
        "liveness_period_s": 15.0
    },
    "follow": {
        "scheme": "linear",
        "base_speed": 0.6,
        "speed_cap": 3.0,
        "gain": 1.0,
        "epsilon": 0.001
    },
    "object": {
        "drag_scale": 1.0,
        "invert_y": True,
        "orbit_range_deg": 60.0,
        "pinch_min": 0.02,
        "pinch_max": 0.30,
        "scale_min": 0.5,
        "scale_max": 2.0,
        "point_suppress_after_pinch_s": 0.18
    },
    "camera": {
        "index": 0,
        "width": 640,
        "height": 480,
        "fps": 60,
        "stale_after_s": 2.0
    },
    "model": {
        "path": None,
        "url": "https://storage.googleapis.com/mediapipe-models/hand_landmarker/hand_landmarker/float16/1/hand_landmarker.task",
        "use_gpu": False,
        "min_detection_confidence": 0.5,
        "min_tracking_confidence": 0.5
    },
    "display": {
        "show_preview": True,
        "flip_horizontal": True,
        "window_name": "hand control"
    },
    "logging": {
        "level": "INFO"
    }
}


# Global configuration instance
config = Config()
