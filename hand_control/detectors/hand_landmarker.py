"""
MediaPipe HandLandmarker adapter.

Wraps the Tasks API hand landmarker (VIDEO running mode, one hand) behind
`detect(sample, timestamp_ms) -> Optional[Frame]`, the only call the
scheduler makes into the pose estimator.
"""

import logging
import urllib.request
from pathlib import Path
from typing import Optional

import mediapipe as mp
import numpy as np
from mediapipe.tasks.python import vision as mp_vision
from mediapipe.tasks.python.core.base_options import BaseOptions

from hand_control.detectors.gesture_detectors import Frame, Landmark

logger = logging.getLogger(__name__)

HAND_LANDMARKER_MODEL_URL = 'https://storage.googleapis.com/mediapipe-models/hand_landmarker/hand_landmarker/float16/1/hand_landmarker.task'
HAND_LANDMARKER_MODEL_PATH = Path(__file__).parent.parent / 'models' / 'hand_landmarker.task'


def ensure_model_downloaded(model_path: Optional[Path] = None, url: str = HAND_LANDMARKER_MODEL_URL) -> str:
    """Download the hand landmarker model if not present and return its path."""
    model_path = Path(model_path) if model_path else HAND_LANDMARKER_MODEL_PATH
    model_path.parent.mkdir(parents=True, exist_ok=True)

    if not model_path.exists():
        logger.info("📥 Downloading hand landmarker model...")
        urllib.request.urlretrieve(url, str(model_path))
        logger.info("✓ Model downloaded to %s", model_path)

    return str(model_path)


def frame_from_result(result, timestamp: float) -> Optional[Frame]:
    """Convert a HandLandmarkerResult into a Frame (first hand only)."""
    hands = getattr(result, 'hand_landmarks', None)
    if not hands or not hands[0]:
        return None
    landmarks = tuple(
        Landmark(float(lm.x), float(lm.y), float(getattr(lm, 'z', 0.0) or 0.0))
        for lm in hands[0]
    )
    return Frame(landmarks=landmarks, timestamp=timestamp)


class MediaPipeHandDetector:
    """
    Single-hand landmark estimator.

    Timestamps passed to `detect` must increase strictly; equal or older
    timestamps are bumped by 1 ms as the VIDEO running mode requires.
    """

    def __init__(
        self,
        model_path: Optional[str] = None,
        use_gpu: bool = False,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        model_url: str = HAND_LANDMARKER_MODEL_URL,
    ):
        path = ensure_model_downloaded(model_path, model_url)
        delegate = BaseOptions.Delegate.GPU if use_gpu else BaseOptions.Delegate.CPU
        options = mp_vision.HandLandmarkerOptions(
            base_options=BaseOptions(model_asset_path=path, delegate=delegate),
            running_mode=mp_vision.RunningMode.VIDEO,
            num_hands=1,
            min_hand_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
        )
        self.landmarker = mp_vision.HandLandmarker.create_from_options(options)
        self._last_ts_ms = -1
        logger.info("✓ MediaPipe HandLandmarker initialized (%s)", "GPU" if use_gpu else "CPU")

    @classmethod
    def from_config(cls, cfg) -> 'MediaPipeHandDetector':
        return cls(
            model_path=cfg.get('model', 'path', default=None),
            use_gpu=cfg.get('model', 'use_gpu', default=False),
            min_detection_confidence=cfg.get('model', 'min_detection_confidence', default=0.5),
            min_tracking_confidence=cfg.get('model', 'min_tracking_confidence', default=0.5),
            model_url=cfg.get('model', 'url', default=HAND_LANDMARKER_MODEL_URL),
        )

    def detect(self, sample: np.ndarray, timestamp_ms: float) -> Optional[Frame]:
        """Run the landmarker on one RGB image; None means no hand."""
        ts = int(timestamp_ms)
        if ts <= self._last_ts_ms:
            ts = self._last_ts_ms + 1
        self._last_ts_ms = ts

        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=np.ascontiguousarray(sample))
        result = self.landmarker.detect_for_video(mp_image, ts)
        return frame_from_result(result, timestamp_ms / 1000.0)

    def close(self) -> None:
        try:
            self.landmarker.close()
        except Exception as e:
            logger.warning("⚠ Error closing hand landmarker: %s", e)
