import numpy as np
from dataclasses import dataclass, replace
from typing import Optional, Sequence, Tuple

from hand_control.utils.math_utils import landmarks_to_array, euclidean, clamp, points_available


# Data Structures

@dataclass(frozen=True)
class Landmark:
    """One tracked joint in normalized image coordinates (x, y in 0..1, z relative depth)."""
    x: float
    y: float
    z: float = 0.0


@dataclass(frozen=True)
class Frame:
    """
    One hand as returned by the pose estimator for a single tick.
    Individual landmarks may be None when the estimator did not return them.
    """
    landmarks: Tuple[Optional[Landmark], ...]
    timestamp: float = 0.0


@dataclass(frozen=True)
class FeatureSet:
    """
    Per-frame derived features for a single hand.
    All spatial values are in normalized landmark units. A feature is None
    when the landmarks it needs were missing this tick.
    """
    move_x: Optional[float] = None
    pinch_distance: Optional[float] = None
    fist_compactness: Optional[float] = None
    pointing_vector: Optional[Tuple[float, float]] = None
    pointing_magnitude: Optional[float] = None
    pointing_straightness: Optional[float] = None


@dataclass(frozen=True)
class GestureState:
    """
    Hysteresis state of the three gesture machines.
    pinch_mode is never True while pointing is True.
    """
    armed: bool = False
    pointing: bool = False
    pinch_mode: bool = False
    arm_on_streak: int = 0
    pointing_on_streak: int = 0
    pointing_off_streak: int = 0


# MediaPipe Hand Landmark indices
LANDMARK_NAMES = {
    'WRIST': 0,
    'THUMB_CMC': 1, 'THUMB_MCP': 2, 'THUMB_IP': 3, 'THUMB_TIP': 4,
    'INDEX_MCP': 5, 'INDEX_PIP': 6, 'INDEX_DIP': 7, 'INDEX_TIP': 8,
    'MIDDLE_MCP': 9, 'MIDDLE_PIP': 10, 'MIDDLE_DIP': 11, 'MIDDLE_TIP': 12,
    'RING_MCP': 13, 'RING_PIP': 14, 'RING_DIP': 15, 'RING_TIP': 16,
    'PINKY_MCP': 17, 'PINKY_PIP': 18, 'PINKY_DIP': 19, 'PINKY_TIP': 20,
}

NUM_LANDMARKS = 21

FINGERTIPS = (
    LANDMARK_NAMES['THUMB_TIP'],
    LANDMARK_NAMES['INDEX_TIP'],
    LANDMARK_NAMES['MIDDLE_TIP'],
    LANDMARK_NAMES['RING_TIP'],
    LANDMARK_NAMES['PINKY_TIP'],
)


def compute_hand_features(
    frame: Optional[Frame],
    scale_floor: float = 0.05,
) -> Optional[FeatureSet]:
    """
    Derive the control features from one landmark frame.

    Returns None when no hand is present (frame is None or carries no usable
    landmark). Features whose landmarks are missing are left as None; this
    function never raises on a partial frame.
    """
    if frame is None or not frame.landmarks:
        return None

    norm = landmarks_to_array(frame.landmarks)
    if norm.shape[0] == 0 or not np.isfinite(norm).any():
        return None

    wrist = LANDMARK_NAMES['WRIST']
    thumb_tip = LANDMARK_NAMES['THUMB_TIP']
    idx_mcp = LANDMARK_NAMES['INDEX_MCP']
    idx_pip = LANDMARK_NAMES['INDEX_PIP']
    idx_dip = LANDMARK_NAMES['INDEX_DIP']
    idx_tip = LANDMARK_NAMES['INDEX_TIP']

    move_x = None
    if points_available(norm, [wrist]):
        move_x = clamp(norm[wrist, 0], 0.0, 1.0)

    pinch_distance = None
    if points_available(norm, [thumb_tip, idx_tip]):
        pinch_distance = float(euclidean(norm[thumb_tip], norm[idx_tip]))

    # Smaller = more closed fist
    fist_compactness = None
    if points_available(norm, (wrist,) + FINGERTIPS):
        fist_compactness = float(np.mean(euclidean(norm[list(FINGERTIPS)], norm[wrist])))

    pointing_vector = None
    pointing_magnitude = None
    pointing_straightness = None
    if points_available(norm, [wrist, idx_mcp, idx_tip]):
        # Translation-invariant: index tip relative to wrist, scaled by hand size
        scale = max(float(scale_floor), float(euclidean(norm[idx_mcp], norm[wrist])))
        rel = (norm[idx_tip] - norm[wrist]) / scale
        rx = clamp(rel[0], -1.0, 1.0)
        ry = clamp(rel[1], -1.0, 1.0)
        pointing_vector = (rx, ry)
        pointing_magnitude = float(np.hypot(rx, ry))

        # chord / path length across MCP -> PIP -> DIP -> TIP (1.0 = straight)
        if points_available(norm, [idx_pip, idx_dip]):
            chain = norm[[idx_mcp, idx_pip, idx_dip, idx_tip]]
            seg = float(np.sum(euclidean(chain[1:], chain[:-1])))
            chord = float(euclidean(norm[idx_mcp], norm[idx_tip]))
            pointing_straightness = chord / seg if seg > 1e-6 else 0.0

    return FeatureSet(
        move_x=move_x,
        pinch_distance=pinch_distance,
        fist_compactness=fist_compactness,
        pointing_vector=pointing_vector,
        pointing_magnitude=pointing_magnitude,
        pointing_straightness=pointing_straightness,
    )


class ArmedDetector:
    """
    Fist-closure arming with hysteresis.

    Arms after `arm_on_frames` consecutive frames with smoothed compactness
    below `fist_threshold`; disarms on the first frame above
    `fist_threshold * disarm_factor`.
    """

    def __init__(self, fist_threshold: float = 0.20, arm_on_frames: int = 2, disarm_factor: float = 1.5):
        if arm_on_frames < 1:
            raise ValueError("arm_on_frames must be >= 1")
        if disarm_factor < 1.0:
            raise ValueError("disarm_factor must be >= 1.0")
        self.fist_threshold = float(fist_threshold)
        self.arm_on_frames = int(arm_on_frames)
        self.disarm_factor = float(disarm_factor)

    @property
    def disarm_threshold(self) -> float:
        return self.fist_threshold * self.disarm_factor

    def step(self, state: GestureState, compactness: float) -> Tuple[GestureState, Optional[bool]]:
        if not state.armed:
            if compactness < self.fist_threshold:
                streak = state.arm_on_streak + 1
                if streak >= self.arm_on_frames:
                    return replace(state, armed=True, arm_on_streak=streak), True
                return replace(state, arm_on_streak=streak), None
            return replace(state, arm_on_streak=0), None

        if compactness > self.disarm_threshold:
            return replace(state, armed=False, arm_on_streak=0), False
        return state, None


class PointingDetector:
    """
    Extended-index pointing with an asymmetric ON/OFF band and frame streaks.

    Frames that are neither ON nor OFF reset both streaks, so ambiguous
    frames never accumulate toward a transition.
    """

    def __init__(
            self,
            mag_on: float = 0.35,
            mag_off: float = 0.18,
            straight_on: float = 0.9,
            straight_off: float = 0.75,
            on_frames: int = 4,
            off_frames: int = 6,
        ):
        if not mag_off < mag_on:
            raise ValueError("mag_off must be lower than mag_on")
        if not straight_off < straight_on:
            raise ValueError("straight_off must be lower than straight_on")
        if on_frames < 1 or off_frames < 1:
            raise ValueError("on_frames and off_frames must be >= 1")
        self.mag_on = float(mag_on)
        self.mag_off = float(mag_off)
        self.straight_on = float(straight_on)
        self.straight_off = float(straight_off)
        self.on_frames = int(on_frames)
        self.off_frames = int(off_frames)

    def classify(self, magnitude: float, straightness: float) -> Optional[bool]:
        """True for an ON frame, False for an OFF frame, None when ambiguous."""
        if magnitude > self.mag_on and straightness > self.straight_on:
            return True
        if magnitude < self.mag_off or straightness < self.straight_off:
            return False
        return None

    def step(
        self, state: GestureState, magnitude: float, straightness: float
    ) -> Tuple[GestureState, Optional[bool]]:
        verdict = self.classify(magnitude, straightness)
        if verdict is True:
            on_streak, off_streak = state.pointing_on_streak + 1, 0
        elif verdict is False:
            on_streak, off_streak = 0, state.pointing_off_streak + 1
        else:
            on_streak, off_streak = 0, 0

        new_state = replace(state, pointing_on_streak=on_streak, pointing_off_streak=off_streak)
        if not state.pointing and on_streak >= self.on_frames:
            return replace(new_state, pointing=True), True
        if state.pointing and off_streak >= self.off_frames:
            return replace(new_state, pointing=False), False
        return new_state, None


class PinchModeDetector:
    """
    Thumb-index pinch mode. Single-frame thresholds, disabled while pointing.
    """

    def __init__(self, pinch_on: float = 0.10, pinch_off: float = 0.16):
        if not pinch_off > pinch_on:
            raise ValueError("pinch_off must be greater than pinch_on")
        self.pinch_on = float(pinch_on)
        self.pinch_off = float(pinch_off)

    def force_off(self, state: GestureState) -> Tuple[GestureState, Optional[bool]]:
        if state.pinch_mode:
            return replace(state, pinch_mode=False), False
        return state, None

    def step(self, state: GestureState, pinch_distance: Optional[float]) -> Tuple[GestureState, Optional[bool]]:
        """
        Args:
            state: state after the pointing machine ran this tick
            pinch_distance: smoothed thumb-index distance, or None when not sampled this tick
        """
        if state.pointing:
            return self.force_off(state)
        if pinch_distance is None:
            return state, None
        if not state.pinch_mode and pinch_distance < self.pinch_on:
            return replace(state, pinch_mode=True), True
        if state.pinch_mode and pinch_distance > self.pinch_off:
            return replace(state, pinch_mode=False), False
        return state, None


def frame_from_points(points: Sequence, timestamp: float = 0.0) -> Frame:
    """Build a Frame from (x, y[, z]) tuples; None entries mark missing joints."""
    landmarks = []
    for p in points:
        if p is None:
            landmarks.append(None)
        else:
            landmarks.append(Landmark(*[float(v) for v in p]))
    return Frame(landmarks=tuple(landmarks), timestamp=float(timestamp))


__all__ = [
    'Landmark',
    'Frame',
    'FeatureSet',
    'GestureState',
    'LANDMARK_NAMES',
    'NUM_LANDMARKS',
    'FINGERTIPS',
    'compute_hand_features',
    'ArmedDetector',
    'PointingDetector',
    'PinchModeDetector',
    'frame_from_points',
]
