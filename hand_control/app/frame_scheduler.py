"""
Frame Scheduler

Drives the gesture pipeline once per display frame:

- throttles to a minimum inter-frame interval (early ticks are dropped, not queued)
- never lets a detection overlap another one (single-flight); a tick that
  finds a detection still in flight is skipped entirely
- treats detector exceptions and missing capture samples as "no hand"
- keeps a LivenessMonitor running on the capture source
- tears everything down deterministically on shutdown()

Detection runs inline by default. With async_detection it runs on a
single-worker executor and its result is applied on the next tick, always
from the thread that calls tick().
"""

import enum
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Optional

from hand_control.app.control_dispatcher import ControlDispatcher
from hand_control.app.pipeline import ControlOutput, GesturePipeline
from hand_control.utils.capture import LivenessMonitor

logger = logging.getLogger(__name__)


class PipelineInitError(RuntimeError):
    """The detector or capture source could not be created."""


class TickResult(enum.Enum):
    NOT_RUNNING = 'not_running'
    DROPPED = 'dropped'        # arrived sooner than the frame interval
    BUSY = 'busy'              # a detection is still in flight
    SUBMITTED = 'submitted'    # async detection started, nothing applied yet
    PROCESSED = 'processed'    # a frame (or "no hand") went through the pipeline


@dataclass
class SchedulerSettings:
    frame_interval_ms: float = 16.0
    async_detection: bool = False
    liveness_period_s: float = 15.0

    def __post_init__(self):
        if self.frame_interval_ms < 0:
            raise ValueError("frame_interval_ms must be >= 0")
        if self.liveness_period_s <= 0:
            raise ValueError("liveness_period_s must be > 0")

    @property
    def frame_interval_s(self) -> float:
        return self.frame_interval_ms / 1000.0

    @classmethod
    def from_config(cls, cfg) -> 'SchedulerSettings':
        d = cls()
        return cls(
            frame_interval_ms=float(cfg.get('scheduler', 'frame_interval_ms', default=d.frame_interval_ms)),
            async_detection=bool(cfg.get('scheduler', 'async_detection', default=d.async_detection)),
            liveness_period_s=float(cfg.get('scheduler', 'liveness_period_s', default=d.liveness_period_s)),
        )


class FrameScheduler:
    def __init__(
        self,
        pipeline: GesturePipeline,
        dispatcher: ControlDispatcher,
        detector_factory: Callable[[], Any],
        capture_factory: Callable[[], Any],
        settings: Optional[SchedulerSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            pipeline: gesture pipeline owned exclusively by this scheduler
            dispatcher: receives one ControlOutput per processed tick
            detector_factory: returns an object with detect(sample, timestamp_ms) -> Optional[Frame]
            capture_factory: returns an object with current_sample(), is_live(), reacquire(), release()
            settings: throttle / async / liveness settings
            clock: monotonic clock in seconds
        """
        self.pipeline = pipeline
        self.dispatcher = dispatcher
        self.detector_factory = detector_factory
        self.capture_factory = capture_factory
        self.settings = settings or SchedulerSettings()
        self.clock = clock

        self.detector = None
        self.capture = None
        self.monitor: Optional[LivenessMonitor] = None
        self.executor: Optional[ThreadPoolExecutor] = None

        self.running = False
        self.failed = False
        self.last_output: Optional[ControlOutput] = None
        self.last_frame = None
        self._last_tick: Optional[float] = None
        self._detecting = False
        self._in_flight: Optional[Future] = None

        self.stats = {result: 0 for result in TickResult}
        self.detector_errors = 0

    # Lifecycle

    def start(self) -> 'FrameScheduler':
        """
        Create the detector and capture source and begin accepting ticks.

        On failure the dispatcher gets a single on_hand_presence(False), the
        scheduler stays stopped and PipelineInitError is raised.
        """
        if self.running:
            return self
        try:
            self.detector = self.detector_factory()
            self.capture = self.capture_factory()
        except Exception as e:
            logger.error("❌ Pipeline initialization failed: %s", e)
            self.failed = True
            self._release_resources()
            self.dispatcher.report_presence(False)
            raise PipelineInitError(str(e)) from e

        self.failed = False
        self.monitor = LivenessMonitor(self.capture, self.settings.liveness_period_s)
        self.monitor.start()
        if self.settings.async_detection:
            self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hand-detect")
        self._last_tick = None
        self.running = True
        logger.info("✓ Frame scheduler started (interval %.0f ms, %s detection)",
                    self.settings.frame_interval_ms,
                    "async" if self.settings.async_detection else "inline")
        return self

    def restart(self) -> 'FrameScheduler':
        """Tear down and start again; gesture state is kept."""
        self.shutdown()
        return self.start()

    def shutdown(self) -> None:
        """Stop ticking, cancel in-flight detection, stop the keepalive and release resources."""
        was_running = self.running
        self.running = False
        if self._in_flight is not None:
            self._in_flight.cancel()
            self._in_flight = None
        self._release_resources()
        if was_running:
            logger.info("✓ Frame scheduler stopped")

    def _release_resources(self) -> None:
        if self.monitor is not None:
            self.monitor.stop()
            self.monitor = None
        if self.executor is not None:
            # Waits for a detection that is already running; queued work is cancelled
            self.executor.shutdown(wait=True, cancel_futures=True)
            self.executor = None
        if self.capture is not None:
            try:
                self.capture.release()
            except Exception as e:
                logger.warning("⚠ Error releasing capture source: %s", e)
            self.capture = None
        if self.detector is not None:
            close = getattr(self.detector, 'close', None)
            if close is not None:
                try:
                    close()
                except Exception as e:
                    logger.warning("⚠ Error closing hand detector: %s", e)
            self.detector = None

    # Per-frame callback

    @property
    def busy(self) -> bool:
        if self._detecting:
            return True
        return self._in_flight is not None and not self._in_flight.done()

    def tick(self, now: Optional[float] = None) -> TickResult:
        result = self._tick(self.clock() if now is None else float(now))
        self.stats[result] += 1
        return result

    def _tick(self, now: float) -> TickResult:
        if not self.running:
            return TickResult.NOT_RUNNING

        if self._last_tick is not None and now - self._last_tick < self.settings.frame_interval_s:
            return TickResult.DROPPED

        if self.busy:
            logger.debug("Detection still in flight, skipping tick")
            return TickResult.BUSY

        applied = False
        if self._in_flight is not None:
            frame = self._collect(self._in_flight)
            self._in_flight = None
            self._apply(frame)
            applied = True

        self._last_tick = now
        sample = self._read_sample()
        if sample is None:
            if not applied:
                self._apply(None)
            return TickResult.PROCESSED

        if self.executor is not None:
            self._in_flight = self.executor.submit(self._detect, sample, now)
            return TickResult.PROCESSED if applied else TickResult.SUBMITTED

        self._detecting = True
        try:
            frame = self._detect(sample, now)
        except Exception as e:
            frame = self._detector_failed(e)
        finally:
            self._detecting = False
        self._apply(frame)
        return TickResult.PROCESSED

    def _read_sample(self):
        try:
            return self.capture.current_sample()
        except Exception as e:
            logger.warning("⚠ Capture read failed: %s", e)
            return None

    def _detect(self, sample, now: float):
        return self.detector.detect(sample, now * 1000.0)

    def _collect(self, future: Future):
        try:
            return future.result()
        except Exception as e:
            return self._detector_failed(e)

    def _detector_failed(self, error: Exception):
        self.detector_errors += 1
        logger.warning("⚠ Hand detection failed, treating as no hand: %s", error)
        return None

    def _apply(self, frame) -> None:
        if not self.running:
            return
        output = self.pipeline.process(frame)
        self.last_frame = frame
        self.last_output = output
        self.dispatcher.dispatch(output)
