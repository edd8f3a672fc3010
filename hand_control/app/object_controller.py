"""
Object Controller

Consumer of the control events that owns the animated object's lifecycle:
spawn on first detection, unlock on arming, drag while pointing, scale while
pinching, orbit with the wrist, finalize on request.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from hand_control.app.follow_controller import FollowController, FollowSettings, TargetLatch
from hand_control.utils.math_utils import clamp

logger = logging.getLogger(__name__)


@dataclass
class ObjectSettings:
    drag_scale: float = 1.0
    invert_y: bool = True
    orbit_range_deg: float = 60.0
    pinch_min: float = 0.02
    pinch_max: float = 0.30
    scale_min: float = 0.5
    scale_max: float = 2.0
    # TODO: measure pinch/point cross-talk with the async detector and retune or drop this window
    point_suppress_after_pinch_s: float = 0.18

    def __post_init__(self):
        if self.pinch_max <= self.pinch_min:
            raise ValueError("pinch_max must be greater than pinch_min")
        if self.scale_max < self.scale_min:
            raise ValueError("scale_max must be >= scale_min")
        if self.point_suppress_after_pinch_s < 0:
            raise ValueError("point_suppress_after_pinch_s must be >= 0")

    @classmethod
    def from_config(cls, cfg) -> 'ObjectSettings':
        d = cls()

        def get(key, default):
            return cfg.get('object', key, default=default)

        return cls(
            drag_scale=float(get('drag_scale', d.drag_scale)),
            invert_y=bool(get('invert_y', d.invert_y)),
            orbit_range_deg=float(get('orbit_range_deg', d.orbit_range_deg)),
            pinch_min=float(get('pinch_min', d.pinch_min)),
            pinch_max=float(get('pinch_max', d.pinch_max)),
            scale_min=float(get('scale_min', d.scale_min)),
            scale_max=float(get('scale_max', d.scale_max)),
            point_suppress_after_pinch_s=float(get('point_suppress_after_pinch_s', d.point_suppress_after_pinch_s)),
        )


@dataclass
class ObjectSnapshot:
    """A finalized (fixed) object instance."""
    position: Tuple[float, float]
    scale: float
    azimuth_deg: float


@dataclass
class ObjectView:
    """What the renderer needs each display frame."""
    visible: bool = False
    position: Tuple[float, float] = (0.0, 0.0)
    scale: float = 1.0
    azimuth_deg: float = 0.0
    auto_rotate: bool = True
    locked: bool = True


class ObjectController:
    def __init__(
        self,
        settings: Optional[ObjectSettings] = None,
        follow_settings: Optional[FollowSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or ObjectSettings()
        self.clock = clock
        self.latch = TargetLatch()
        self.follow = FollowController(follow_settings, latch=self.latch)

        # Latest gesture modes as reported by the pipeline
        self.hand_present = False
        self.armed = False
        self.pointing = False
        self.pinch_mode = False

        self.scale = 1.0
        self.azimuth_deg = 0.0
        self.last_pinch_update: Optional[float] = None
        self.finalized: List[ObjectSnapshot] = []

    # Listener callbacks (see ControlDispatcher)

    def on_hand_presence(self, detected: bool) -> None:
        if detected and not self.follow.active:
            self._spawn()
        self.hand_present = bool(detected)

    def on_armed_changed(self, armed: bool) -> None:
        self.armed = bool(armed)
        if armed:
            self.follow.unlock()

    def on_pointing_changed(self, pointing: bool) -> None:
        self.pointing = bool(pointing)

    def on_pinch_mode_changed(self, pinch_mode: bool) -> None:
        self.pinch_mode = bool(pinch_mode)

    def on_move(self, x: float) -> None:
        # [0, 1] -> [-range/2, +range/2]
        self.azimuth_deg = (clamp(x, 0.0, 1.0) - 0.5) * self.settings.orbit_range_deg

    def on_pinch_distance(self, distance: float) -> None:
        if not self.pinch_mode or not self.follow.active:
            return
        s = self.settings
        t = clamp((distance - s.pinch_min) / (s.pinch_max - s.pinch_min), 0.0, 1.0)
        self.scale = s.scale_min + t * (s.scale_max - s.scale_min)
        self.last_pinch_update = self.clock()

    def on_point_drag(self, x: float, y: float) -> None:
        if not self.drag_enabled():
            return
        now = self.clock()
        window = self.settings.point_suppress_after_pinch_s
        if window > 0 and self.last_pinch_update is not None and now - self.last_pinch_update < window:
            return
        s = self.settings
        tx = x * s.drag_scale
        ty = (-y if s.invert_y else y) * s.drag_scale
        self.latch.publish(tx, ty, now)

    # Lifecycle

    def drag_enabled(self) -> bool:
        st = self.follow.state
        return (st is not None and not st.locked
                and self.armed and self.pointing and not self.pinch_mode)

    def _spawn(self) -> None:
        self.latch.clear()
        self.follow.spawn()
        self.scale = 1.0
        self.last_pinch_update = None
        logger.info("🌱 New object instance (locked to center)")

    def finalize(self) -> Optional[ObjectSnapshot]:
        """Fix the current instance in place; the next detection spawns a new one."""
        if not self.follow.active:
            return None
        snap = ObjectSnapshot(position=self.follow.position, scale=self.scale, azimuth_deg=self.azimuth_deg)
        self.finalized.append(snap)
        self.follow.destroy()
        logger.info("📌 Object fixed at (%.3f, %.3f) scale %.2f", snap.position[0], snap.position[1], snap.scale)
        return snap

    def tick(self, now: Optional[float] = None) -> ObjectView:
        """Advance the follow controller one display frame and describe the object."""
        now = self.clock() if now is None else now
        position = self.follow.tick(now)
        st = self.follow.state
        return ObjectView(
            visible=st is not None,
            position=position,
            scale=self.scale,
            azimuth_deg=self.azimuth_deg,
            auto_rotate=not self.hand_present,
            locked=st.locked if st is not None else True,
        )
