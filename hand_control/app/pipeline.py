"""
Gesture-to-control pipeline

Turns one landmark frame per tick into a ControlOutput:
features -> per-channel EWMA -> Armed / Pointing / PinchMode machines -> change gates.

All mutable data (smoothers, gesture state, last-emitted values) lives in a
single PipelineState that is handed to `process_tick` by exclusive reference.
The pipeline is single-writer: callers must never run two ticks concurrently
(FrameScheduler guarantees this).
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

from hand_control.detectors.gesture_detectors import (
    ArmedDetector,
    FeatureSet,
    Frame,
    GestureState,
    PinchModeDetector,
    PointingDetector,
    compute_hand_features,
)
from hand_control.utils.math_utils import EWMA

logger = logging.getLogger(__name__)


@dataclass
class PipelineSettings:
    """Smoothing, hysteresis and gating constants (normalized landmark units)."""
    move_alpha: float = 0.25
    pinch_alpha: float = 0.25
    point_alpha: float = 0.25
    fist_alpha: float = 0.25

    fist_threshold: float = 0.20
    arm_on_frames: int = 2
    disarm_factor: float = 1.5

    mag_on: float = 0.35
    mag_off: float = 0.18
    straight_on: float = 0.9
    straight_off: float = 0.75
    pointing_on_frames: int = 4
    pointing_off_frames: int = 6
    scale_floor: float = 0.05

    pinch_on: float = 0.10
    pinch_off: float = 0.16

    min_delta: float = 0.01
    pinch_min_delta: Optional[float] = None

    def __post_init__(self):
        for name in ('move_alpha', 'pinch_alpha', 'point_alpha', 'fist_alpha'):
            alpha = getattr(self, name)
            if not 0.0 < alpha <= 1.0:
                raise ValueError(f"{name} must be in (0, 1], got {alpha}")
        if self.min_delta < 0:
            raise ValueError("min_delta must be >= 0")
        if self.pinch_min_delta is not None and self.pinch_min_delta < 0:
            raise ValueError("pinch_min_delta must be >= 0 or None")
        if self.scale_floor <= 0:
            raise ValueError("scale_floor must be > 0")

    @classmethod
    def from_config(cls, cfg) -> 'PipelineSettings':
        d = cls()

        def thr(gesture, key, default):
            return cfg.get('gesture_thresholds', gesture, key, default=default)

        pinch_min_delta = cfg.get('emitter', 'pinch_min_delta', default=d.pinch_min_delta)
        if pinch_min_delta is not None:
            pinch_min_delta = float(pinch_min_delta)

        return cls(
            move_alpha=float(cfg.get('smoothing', 'move_alpha', default=d.move_alpha)),
            pinch_alpha=float(cfg.get('smoothing', 'pinch_alpha', default=d.pinch_alpha)),
            point_alpha=float(cfg.get('smoothing', 'point_alpha', default=d.point_alpha)),
            fist_alpha=float(cfg.get('smoothing', 'fist_alpha', default=d.fist_alpha)),
            fist_threshold=float(thr('armed', 'fist_threshold', d.fist_threshold)),
            arm_on_frames=int(thr('armed', 'arm_on_frames', d.arm_on_frames)),
            disarm_factor=float(thr('armed', 'disarm_factor', d.disarm_factor)),
            mag_on=float(thr('pointing', 'mag_on', d.mag_on)),
            mag_off=float(thr('pointing', 'mag_off', d.mag_off)),
            straight_on=float(thr('pointing', 'straight_on', d.straight_on)),
            straight_off=float(thr('pointing', 'straight_off', d.straight_off)),
            pointing_on_frames=int(thr('pointing', 'on_frames', d.pointing_on_frames)),
            pointing_off_frames=int(thr('pointing', 'off_frames', d.pointing_off_frames)),
            scale_floor=float(thr('pointing', 'scale_floor', d.scale_floor)),
            pinch_on=float(thr('pinch_mode', 'pinch_on', d.pinch_on)),
            pinch_off=float(thr('pinch_mode', 'pinch_off', d.pinch_off)),
            min_delta=float(cfg.get('emitter', 'min_delta', default=d.min_delta)),
            pinch_min_delta=pinch_min_delta,
        )


@dataclass
class ControlOutput:
    """
    One tick's emission. `detected` is always set; every other field is
    present (not None) only when its gate fired this tick.
    """
    detected: bool
    move_x: Optional[float] = None
    pinch_distance: Optional[float] = None
    point: Optional[Tuple[float, float]] = None
    armed_changed: Optional[bool] = None
    pointing_changed: Optional[bool] = None
    pinch_mode_changed: Optional[bool] = None

    @property
    def is_empty(self) -> bool:
        """True when nothing beyond hand presence is reported."""
        return all(v is None for v in (
            self.move_x, self.pinch_distance, self.point,
            self.armed_changed, self.pointing_changed, self.pinch_mode_changed,
        ))


class ChangeGate:
    """Remembers the last emitted value; passes a new one only when it moved more than min_delta."""

    def __init__(self, min_delta: Optional[float]):
        self.min_delta = min_delta
        self.last: Optional[float] = None

    def offer(self, value: float) -> bool:
        if self.min_delta is not None and self.last is not None \
                and abs(value - self.last) <= self.min_delta:
            return False
        self.last = value
        return True


class PointGate:
    """Pair gate for pointing: emits when either axis moved more than min_delta."""

    def __init__(self, min_delta: float):
        self.min_delta = min_delta
        self.last: Optional[Tuple[float, float]] = None

    def offer(self, x: float, y: float) -> bool:
        if self.last is not None:
            lx, ly = self.last
            if abs(x - lx) <= self.min_delta and abs(y - ly) <= self.min_delta:
                return False
        self.last = (x, y)
        return True


@dataclass
class ChannelSmoothers:
    """One EWMA per tracked channel."""
    move_x: EWMA
    pinch_distance: EWMA
    point_x: EWMA
    point_y: EWMA
    fist_compactness: EWMA

    @classmethod
    def from_settings(cls, s: PipelineSettings) -> 'ChannelSmoothers':
        return cls(
            move_x=EWMA(s.move_alpha),
            pinch_distance=EWMA(s.pinch_alpha),
            point_x=EWMA(s.point_alpha),
            point_y=EWMA(s.point_alpha),
            fist_compactness=EWMA(s.fist_alpha),
        )


@dataclass
class PipelineState:
    """Everything the pipeline mutates between ticks."""
    smoothers: ChannelSmoothers
    gestures: GestureState = field(default_factory=GestureState)
    move_gate: Optional[ChangeGate] = None
    pinch_gate: Optional[ChangeGate] = None
    point_gate: Optional[PointGate] = None
    frames_processed: int = 0
    last_features: Optional[FeatureSet] = None

    @classmethod
    def initial(cls, s: PipelineSettings) -> 'PipelineState':
        return cls(
            smoothers=ChannelSmoothers.from_settings(s),
            move_gate=ChangeGate(s.min_delta),
            pinch_gate=ChangeGate(s.pinch_min_delta),
            point_gate=PointGate(s.min_delta),
        )


class GestureDetectors:
    """The three hysteresis machines built from one set of settings."""

    def __init__(self, s: PipelineSettings):
        self.armed = ArmedDetector(s.fist_threshold, s.arm_on_frames, s.disarm_factor)
        self.pointing = PointingDetector(
            mag_on=s.mag_on,
            mag_off=s.mag_off,
            straight_on=s.straight_on,
            straight_off=s.straight_off,
            on_frames=s.pointing_on_frames,
            off_frames=s.pointing_off_frames,
        )
        self.pinch_mode = PinchModeDetector(s.pinch_on, s.pinch_off)


def process_tick(
    state: PipelineState,
    features: Optional[FeatureSet],
    detectors: GestureDetectors,
) -> ControlOutput:
    """
    Apply one tick of features to `state` and return what should be emitted.

    With no features (no hand) nothing is updated and only presence=False is
    reported; smoothers and hysteresis state carry over untouched.
    """
    state.frames_processed += 1
    state.last_features = features
    if features is None:
        return ControlOutput(detected=False)

    out = ControlOutput(detected=True)
    sm = state.smoothers
    gs = state.gestures

    if features.move_x is not None:
        smoothed_x = float(sm.move_x.update(features.move_x))
        if state.move_gate.offer(smoothed_x):
            out.move_x = smoothed_x

    smoothed_pinch = None
    if features.pinch_distance is not None:
        # Downstream scale control wants the raw per-frame distance
        if state.pinch_gate.offer(features.pinch_distance):
            out.pinch_distance = features.pinch_distance
        smoothed_pinch = float(sm.pinch_distance.update(features.pinch_distance))

    if features.fist_compactness is not None:
        compactness = float(sm.fist_compactness.update(features.fist_compactness))
        gs, out.armed_changed = detectors.armed.step(gs, compactness)
        if out.armed_changed is not None:
            logger.info("%s Armed %s (compactness %.3f)",
                        "✊" if out.armed_changed else "✋",
                        "ON" if out.armed_changed else "OFF", compactness)

    if features.pointing_magnitude is not None and features.pointing_straightness is not None:
        gs, out.pointing_changed = detectors.pointing.step(
            gs, features.pointing_magnitude, features.pointing_straightness)
        if out.pointing_changed is not None:
            logger.info("👉 Pointing %s", "ON" if out.pointing_changed else "OFF")

    # Reads the pointing state resolved above
    gs, out.pinch_mode_changed = detectors.pinch_mode.step(gs, smoothed_pinch)
    if out.pinch_mode_changed is not None:
        logger.info("🤏 Pinch mode %s", "ON" if out.pinch_mode_changed else "OFF")

    state.gestures = gs

    if gs.pointing and not gs.pinch_mode and features.pointing_vector is not None:
        rx, ry = features.pointing_vector
        px = float(sm.point_x.update(rx))
        py = float(sm.point_y.update(ry))
        if state.point_gate.offer(px, py):
            out.point = (px, py)

    return out


class GesturePipeline:
    """
    Stateful wrapper around `process_tick` for one tracked hand.

    Usage:
        pipeline = GesturePipeline(PipelineSettings.from_config(config))
        output = pipeline.process(frame)   # frame may be None (no hand)
    """

    def __init__(self, settings: Optional[PipelineSettings] = None):
        self.settings = settings or PipelineSettings()
        self.detectors = GestureDetectors(self.settings)
        self.state = PipelineState.initial(self.settings)

    def process(self, frame: Optional[Frame]) -> ControlOutput:
        features = compute_hand_features(frame, scale_floor=self.settings.scale_floor)
        return process_tick(self.state, features, self.detectors)

    @property
    def gestures(self) -> GestureState:
        return self.state.gestures

    def reset(self) -> None:
        """Drop all smoothing and hysteresis history."""
        self.state = PipelineState.initial(self.settings)
