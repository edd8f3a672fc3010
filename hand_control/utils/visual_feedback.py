"""
Visual Feedback Overlay

Preview window overlay: hand skeleton, gesture modes, and the controlled
object's position / scale / azimuth.
"""

import cv2
import numpy as np
from dataclasses import dataclass
from typing import Optional

from hand_control.detectors.gesture_detectors import Frame, GestureState
from hand_control.utils.math_utils import landmarks_to_array


# MediaPipe hand connections (joint index pairs)
HAND_CONNECTIONS = (
    (0, 1), (1, 2), (2, 3), (3, 4),
    (0, 5), (5, 6), (6, 7), (7, 8),
    (5, 9), (9, 10), (10, 11), (11, 12),
    (9, 13), (13, 14), (14, 15), (15, 16),
    (13, 17), (17, 18), (18, 19), (19, 20),
    (0, 17),
)


@dataclass
class UIColors:
    """BGR palette."""
    skeleton = (0, 255, 255)
    joint = (255, 128, 0)
    armed = (0, 0, 255)
    pointing = (255, 200, 100)
    pinch = (255, 0, 255)
    object_fill = (0, 200, 0)
    object_locked = (120, 120, 120)
    text_primary = (255, 255, 255)
    inactive = (100, 100, 120)
    background = (20, 20, 30)


class VisualFeedback:
    def __init__(self, panel_alpha: float = 0.45):
        self.colors = UIColors()
        self.panel_alpha = panel_alpha

    def draw_hand(self, frame_bgr: np.ndarray, hand: Optional[Frame], gestures: GestureState) -> None:
        if hand is None:
            return
        h, w = frame_bgr.shape[:2]
        pts = landmarks_to_array(hand.landmarks)
        finite = np.isfinite(pts).all(axis=1)

        color = self.colors.skeleton
        if gestures.armed:
            color = self.colors.armed
        for a, b in HAND_CONNECTIONS:
            if a < len(pts) and b < len(pts) and finite[a] and finite[b]:
                pa = (int(pts[a, 0] * w), int(pts[a, 1] * h))
                pb = (int(pts[b, 0] * w), int(pts[b, 1] * h))
                cv2.line(frame_bgr, pa, pb, color, 2, cv2.LINE_AA)
        for i in np.flatnonzero(finite):
            cv2.circle(frame_bgr, (int(pts[i, 0] * w), int(pts[i, 1] * h)), 3, self.colors.joint, -1)

        # Highlight the index tip while pointing, thumb+index while pinching
        if gestures.pointing and len(pts) > 8 and finite[8]:
            cv2.circle(frame_bgr, (int(pts[8, 0] * w), int(pts[8, 1] * h)), 10, self.colors.pointing, 2)
        if gestures.pinch_mode and len(pts) > 8 and finite[4] and finite[8]:
            mid = (pts[4] + pts[8]) / 2.0
            cv2.circle(frame_bgr, (int(mid[0] * w), int(mid[1] * h)), 12, self.colors.pinch, 2)

    def draw_status_panel(self, frame_bgr: np.ndarray, detected: bool, gestures: GestureState, fps: float = 0.0) -> None:
        lines = [
            (f"hand: {'yes' if detected else 'no'}", detected),
            (f"armed: {'ON' if gestures.armed else 'off'} ({gestures.arm_on_streak})", gestures.armed),
            (f"pointing: {'ON' if gestures.pointing else 'off'} "
             f"(+{gestures.pointing_on_streak}/-{gestures.pointing_off_streak})", gestures.pointing),
            (f"pinch: {'ON' if gestures.pinch_mode else 'off'}", gestures.pinch_mode),
        ]
        if fps > 0:
            lines.append((f"FPS: {fps:.1f}", True))

        x, y, line_h = 10, 10, 20
        overlay = frame_bgr.copy()
        cv2.rectangle(overlay, (x, y), (x + 260, y + 10 + line_h * len(lines)), self.colors.background, -1)
        cv2.addWeighted(overlay, self.panel_alpha, frame_bgr, 1 - self.panel_alpha, 0, frame_bgr)
        for i, (text, active) in enumerate(lines):
            color = self.colors.text_primary if active else self.colors.inactive
            cv2.putText(frame_bgr, text, (x + 8, y + 22 + i * line_h),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 1, cv2.LINE_AA)

    def draw_object(self, frame_bgr: np.ndarray, view) -> None:
        """Draw the controlled object; position is in [-1, 1] object space mapped onto the frame."""
        if not view.visible:
            return
        h, w = frame_bgr.shape[:2]
        cx = int((view.position[0] * 0.5 + 0.5) * w)
        cy = int((-view.position[1] * 0.5 + 0.5) * h)
        radius = max(4, int(30 * view.scale))
        color = self.colors.object_locked if view.locked else self.colors.object_fill
        cv2.circle(frame_bgr, (cx, cy), radius, color, 2, cv2.LINE_AA)

        # Azimuth as a heading tick
        theta = np.deg2rad(view.azimuth_deg)
        end = (int(cx + radius * np.sin(theta)), int(cy - radius * np.cos(theta)))
        cv2.line(frame_bgr, (cx, cy), end, color, 2, cv2.LINE_AA)
        label = f"s={view.scale:.2f} az={view.azimuth_deg:+.0f}"
        cv2.putText(frame_bgr, label, (cx - radius, cy + radius + 16),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.45, self.colors.text_primary, 1, cv2.LINE_AA)

