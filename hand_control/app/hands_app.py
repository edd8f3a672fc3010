#!/usr/bin/env python3
"""
Hand control - Main Application

Webcam hand tracking driving an on-screen object:
  ✊ fist (hold)        - arm / unlock the object
  👉 point (while armed) - drag the object
  🤏 pinch              - scale the object
  ↔ wrist left/right   - orbit the object
"""

import argparse
import logging
import sys
import time
from typing import Optional

import cv2

from hand_control.app.control_dispatcher import ControlDispatcher
from hand_control.app.follow_controller import FollowSettings
from hand_control.app.frame_scheduler import FrameScheduler, PipelineInitError, SchedulerSettings
from hand_control.app.object_controller import ObjectController, ObjectSettings
from hand_control.app.pipeline import GesturePipeline, PipelineSettings
from hand_control.config.config_manager import Config, config
from hand_control.detectors.hand_landmarker import MediaPipeHandDetector
from hand_control.utils.capture import CameraSource
from hand_control.utils.visual_feedback import VisualFeedback

logger = logging.getLogger(__name__)

DISPLAY_INTERVAL_S = 1.0 / 60.0


class HandControlApplication:
    """Wires camera, detector, pipeline, scheduler and the object controller together."""

    def __init__(self, cfg=config, camera_idx: Optional[int] = None,
                 show_preview: Optional[bool] = None, async_detection: Optional[bool] = None):
        self.config = cfg
        self.camera_idx = camera_idx

        scheduler_settings = SchedulerSettings.from_config(cfg)
        if async_detection is not None:
            scheduler_settings.async_detection = async_detection

        self.pipeline = GesturePipeline(PipelineSettings.from_config(cfg))
        self.object_ctrl = ObjectController(ObjectSettings.from_config(cfg), FollowSettings.from_config(cfg))
        self.dispatcher = ControlDispatcher([self.object_ctrl])
        self.camera: Optional[CameraSource] = None
        self.scheduler = FrameScheduler(
            self.pipeline,
            self.dispatcher,
            detector_factory=lambda: MediaPipeHandDetector.from_config(cfg),
            capture_factory=self._open_camera,
            settings=scheduler_settings,
        )

        self.show_preview = cfg.get('display', 'show_preview', default=True) if show_preview is None else show_preview
        self.window_name = cfg.get('display', 'window_name', default='hand control')
        self.visual = VisualFeedback()

        self.running = False
        self.frame_count = 0
        self.fps = 0.0
        self.fps_time = time.time()

    def _open_camera(self) -> CameraSource:
        self.camera = CameraSource.from_config(self.config, self.camera_idx).open()
        return self.camera

    def run(self):
        """Run until 'q' or Ctrl+C. Raises PipelineInitError if the camera or model is unavailable."""
        self.scheduler.start()
        self.running = True
        self.print_controls()
        try:
            while self.running:
                loop_start = time.monotonic()
                self.scheduler.tick(loop_start)
                view = self.object_ctrl.tick(loop_start)

                self.frame_count += 1
                if self.frame_count % 30 == 0:
                    now = time.time()
                    self.fps = 30.0 / max(1e-6, now - self.fps_time)
                    self.fps_time = now

                if self.show_preview:
                    self._draw_preview(view)
                    self._handle_key(cv2.waitKey(1) & 0xFF)

                remaining = DISPLAY_INTERVAL_S - (time.monotonic() - loop_start)
                if remaining > 0:
                    time.sleep(remaining)
        finally:
            self.cleanup()

    def _draw_preview(self, view):
        if self.camera is None or self.camera.last_frame_bgr is None:
            return
        frame_bgr = self.camera.last_frame_bgr.copy()
        gestures = self.pipeline.gestures
        output = self.scheduler.last_output
        detected = output.detected if output is not None else False
        self.visual.draw_hand(frame_bgr, self.scheduler.last_frame, gestures)
        self.visual.draw_object(frame_bgr, view)
        self.visual.draw_status_panel(frame_bgr, detected, gestures, self.fps)
        cv2.imshow(self.window_name, frame_bgr)

    def _handle_key(self, key: int):
        if key == 255:
            return
        try:
            k = chr(key).lower()
        except ValueError:
            return
        if k == 'q':
            self.running = False
        elif k == 'f':
            self.object_ctrl.finalize()
        elif k == 'h':
            self.print_controls()

    def cleanup(self):
        """Clean up resources."""
        logger.info("🧹 Cleaning up...")
        self.running = False
        self.scheduler.shutdown()
        self.dispatcher.close()
        if self.show_preview:
            cv2.destroyAllWindows()
        logger.info("✓ Hand control stopped")

    def print_controls(self):
        print("\n" + "=" * 60)
        print("CONTROLS")
        print("=" * 60)
        print("  Q - Quit")
        print("  F - Fix the current object in place")
        print("  H - Show this help")
        print("\n  ✊ Fist (hold)          - Arm / unlock the object")
        print("  👉 Point (while armed) - Drag the object")
        print("  🤏 Pinch               - Scale the object")
        print("  ↔  Move wrist          - Orbit the object")
        print("=" * 60 + "\n")


def configure_logging(level_name: str):
    logging.basicConfig(
        level=getattr(logging, str(level_name).upper(), logging.INFO),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Hand control - gesture-driven object control from a webcam"
    )
    parser.add_argument(
        '--camera', type=int, default=None,
        help='Camera device index (default: from config)'
    )
    parser.add_argument(
        '--config', type=str, default=None,
        help='Path to config.json (default: bundled config.json)'
    )
    parser.add_argument(
        '--no-preview', action='store_true',
        help='Run headless (no preview window)'
    )
    parser.add_argument(
        '--async-detect', action='store_true',
        help='Run hand detection on a worker thread'
    )
    parser.add_argument(
        '--debug', action='store_true',
        help='Verbose logging'
    )
    args = parser.parse_args(argv)

    cfg = Config(args.config) if args.config else config
    configure_logging('DEBUG' if args.debug else cfg.get('logging', 'level', default='INFO'))

    try:
        app = HandControlApplication(
            cfg,
            camera_idx=args.camera,
            show_preview=False if args.no_preview else None,
            async_detection=True if args.async_detect else None,
        )
        app.run()
    except PipelineInitError as e:
        logger.error("❌ Could not start: %s", e)
        return 1
    except ValueError as e:
        logger.error("❌ Invalid configuration: %s", e)
        return 1
    except KeyboardInterrupt:
        logger.warning("⚠ Interrupted by user")

    return 0


if __name__ == "__main__":
    sys.exit(main())
