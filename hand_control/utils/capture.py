"""
Camera capture and liveness keepalive.

CameraSource wraps cv2.VideoCapture behind the small capability the
pipeline needs: current_sample(), is_live(), reacquire(), release().
LivenessMonitor periodically checks that capability from its own thread
and reacquires a stale source; it shares nothing else with the pipeline.
"""

import logging
import threading
import time
from typing import Callable, Optional

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class CameraSource:
    """OpenCV webcam exposing the latest frame (RGB) on demand."""

    def __init__(
        self,
        camera_idx: int = 0,
        width: int = 640,
        height: int = 480,
        fps: int = 60,
        flip_horizontal: bool = True,
        stale_after_s: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.camera_idx = camera_idx
        self.width = width
        self.height = height
        self.fps = fps
        self.flip_horizontal = flip_horizontal
        self.stale_after_s = stale_after_s
        self.clock = clock

        self.cap = None
        self.last_frame_bgr: Optional[np.ndarray] = None
        self.last_read_time: Optional[float] = None
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, cfg, camera_idx: Optional[int] = None) -> 'CameraSource':
        return cls(
            camera_idx=cfg.get('camera', 'index', default=0) if camera_idx is None else camera_idx,
            width=cfg.get('camera', 'width', default=640),
            height=cfg.get('camera', 'height', default=480),
            fps=cfg.get('camera', 'fps', default=60),
            flip_horizontal=cfg.get('display', 'flip_horizontal', default=True),
            stale_after_s=cfg.get('camera', 'stale_after_s', default=2.0),
        )

    def open(self) -> 'CameraSource':
        """Open the device; raises RuntimeError when it is unavailable."""
        cap = cv2.VideoCapture(self.camera_idx)
        if not cap.isOpened():
            cap.release()
            raise RuntimeError(f"❌ Could not open camera {self.camera_idx}")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        cap.set(cv2.CAP_PROP_FPS, self.fps)

        actual_width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        actual_height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        actual_fps = cap.get(cv2.CAP_PROP_FPS)
        logger.info("✓ Camera initialized: %dx%d @ %.1f FPS", actual_width, actual_height, actual_fps)

        with self._lock:
            self.cap = cap
            # A fresh source gets a full stale window before the monitor may reopen it
            self.last_read_time = self.clock()
        return self

    def current_sample(self) -> Optional[np.ndarray]:
        """Read the next frame and return it as RGB, or None when the read failed."""
        with self._lock:
            cap = self.cap
            if cap is None:
                return None
            ret, frame_bgr = cap.read()
            if not ret or frame_bgr is None:
                return None
            if self.flip_horizontal:
                frame_bgr = cv2.flip(frame_bgr, 1)
            self.last_frame_bgr = frame_bgr
            self.last_read_time = self.clock()
        return cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)

    def is_live(self) -> bool:
        with self._lock:
            if self.cap is None or not self.cap.isOpened():
                return False
            if self.last_read_time is None:
                return True
            return (self.clock() - self.last_read_time) <= self.stale_after_s

    def reacquire(self) -> 'CameraSource':
        """Release the current device handle and open it again."""
        logger.warning("⚠ Camera %s stale, reacquiring...", self.camera_idx)
        self.release()
        return self.open()

    def release(self) -> None:
        with self._lock:
            cap, self.cap = self.cap, None
        if cap is not None:
            try:
                cap.release()
            except cv2.error as e:
                logger.warning("⚠ Error releasing camera: %s", e)


class LivenessMonitor:
    """
    Periodic keepalive for a capture source.

    Runs `check_once()` every `period_s` on a daemon thread until `stop()`.
    Only the capture handle is shared; pipeline state is never touched here.
    """

    def __init__(self, source, period_s: float = 15.0):
        if period_s <= 0:
            raise ValueError("period_s must be > 0")
        self.source = source
        self.period_s = float(period_s)
        self.reacquire_count = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def check_once(self) -> bool:
        """
        Check the source and reacquire it when stale.

        Returns True when the source was live (or successfully reacquired).
        Errors are logged and retried on the next period.
        """
        try:
            if self.source.is_live():
                return True
            self.source.reacquire()
            self.reacquire_count += 1
            logger.info("✓ Capture source reacquired")
            return True
        except Exception as e:
            logger.warning("⚠ Liveness check failed, will retry: %s", e)
            return False

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="capture-liveness", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.period_s):
            self.check_once()

    def stop(self, timeout: Optional[float] = 1.0) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
