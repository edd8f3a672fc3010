"""
Follow Controller

Moves a displayed object position toward a gesture-specified target once per
display frame. Speed grows with how fast the target itself has been moving,
so quick drags are tracked closely and slow ones settle smoothly.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

from hand_control.utils.math_utils import step_toward, vector_length

logger = logging.getLogger(__name__)

ORIGIN = (0.0, 0.0)
SCHEMES = ('linear', 'exponential')


@dataclass
class FollowSettings:
    scheme: str = 'linear'
    base_speed: float = 0.6
    speed_cap: float = 3.0
    gain: float = 1.0
    epsilon: float = 1e-3

    def __post_init__(self):
        if self.scheme not in SCHEMES:
            raise ValueError(f"Unknown follow scheme '{self.scheme}', expected one of {SCHEMES}")
        if self.base_speed <= 0:
            raise ValueError("base_speed must be > 0")
        if self.speed_cap < 0 or self.gain < 0 or self.epsilon < 0:
            raise ValueError("speed_cap, gain and epsilon must be >= 0")

    @classmethod
    def from_config(cls, cfg) -> 'FollowSettings':
        d = cls()
        return cls(
            scheme=str(cfg.get('follow', 'scheme', default=d.scheme)),
            base_speed=float(cfg.get('follow', 'base_speed', default=d.base_speed)),
            speed_cap=float(cfg.get('follow', 'speed_cap', default=d.speed_cap)),
            gain=float(cfg.get('follow', 'gain', default=d.gain)),
            epsilon=float(cfg.get('follow', 'epsilon', default=d.epsilon)),
        )


@dataclass
class MotionState:
    """Position/target pair for one spawned object instance."""
    position: Tuple[float, float] = ORIGIN
    target: Tuple[float, float] = ORIGIN
    last_target_velocity: float = 0.0
    last_target_timestamp: Optional[float] = None
    locked: bool = True

    @property
    def distance(self) -> float:
        return vector_length(self.target[0] - self.position[0], self.target[1] - self.position[1])


class TargetLatch:
    """
    Single-writer / single-reader hand-off of the latest drag target.

    The detection tick publishes, the display tick reads; last write wins and
    neither side ever blocks. The stored tuple is replaced as a whole, so a
    reader never sees a half-written update.
    """

    def __init__(self):
        self._value: Optional[Tuple[float, float, float]] = None
        self._version = 0

    def publish(self, x: float, y: float, timestamp: float) -> None:
        self._value = (float(x), float(y), float(timestamp))
        self._version += 1

    def read(self) -> Tuple[int, Optional[Tuple[float, float, float]]]:
        """Return (version, (x, y, timestamp)) of the latest write."""
        value = self._value
        return self._version, value

    def clear(self) -> None:
        self._value = None
        self._version += 1


class FollowController:
    """
    Usage:
        ctrl = FollowController(FollowSettings())
        ctrl.spawn()              # locked at origin
        ctrl.unlock()             # armed
        ctrl.set_target(0.4, 0.2, now)
        ctrl.tick(now)            # once per display frame
    """

    def __init__(self, settings: Optional[FollowSettings] = None, latch: Optional[TargetLatch] = None):
        self.settings = settings or FollowSettings()
        self.latch = latch
        self.state: Optional[MotionState] = None
        self._last_tick: Optional[float] = None
        self._seen_version = latch.read()[0] if latch is not None else 0

    @property
    def active(self) -> bool:
        return self.state is not None

    @property
    def position(self) -> Tuple[float, float]:
        return self.state.position if self.state is not None else ORIGIN

    def spawn(self) -> MotionState:
        """Create (or reset) the motion state for a new object instance, locked at the origin."""
        self.state = MotionState()
        self._last_tick = None
        if self.latch is not None:
            self._seen_version = self.latch.read()[0]
        logger.debug("Spawned object instance at origin (locked)")
        return self.state

    def destroy(self) -> None:
        self.state = None
        self._last_tick = None

    def lock(self) -> None:
        if self.state is None:
            return
        self.state.locked = True
        self.state.position = ORIGIN
        self.state.target = ORIGIN
        self.state.last_target_velocity = 0.0
        self.state.last_target_timestamp = None

    def unlock(self) -> None:
        if self.state is not None and self.state.locked:
            self.state.locked = False
            logger.info("🔓 Object unlocked")

    def set_target(self, x: float, y: float, timestamp: float) -> bool:
        """
        Accept a new drag target. Ignored while locked or before spawn.

        Returns True when the target was applied.
        """
        st = self.state
        if st is None or st.locked:
            return False

        new_target = (float(x), float(y))
        if st.last_target_timestamp is not None:
            dt = float(timestamp) - st.last_target_timestamp
            if dt > 0:
                moved = vector_length(new_target[0] - st.target[0], new_target[1] - st.target[1])
                st.last_target_velocity = moved / dt
        st.target = new_target
        st.last_target_timestamp = float(timestamp)
        return True

    def current_speed(self) -> float:
        st = self.state
        velocity = st.last_target_velocity if st is not None else 0.0
        s = self.settings
        return s.base_speed + min(s.speed_cap, velocity * s.gain)

    def _drain_latch(self) -> None:
        if self.latch is None:
            return
        version, value = self.latch.read()
        if version == self._seen_version:
            return
        self._seen_version = version
        if value is not None:
            self.set_target(*value)

    def tick(self, now: float) -> Tuple[float, float]:
        """Advance the displayed position by one display frame and return it."""
        st = self.state
        if st is None:
            return ORIGIN

        self._drain_latch()
        dt = 0.0 if self._last_tick is None else max(0.0, float(now) - self._last_tick)
        self._last_tick = float(now)

        if st.locked:
            st.position = ORIGIN
            st.target = ORIGIN
            return st.position

        distance = st.distance
        if distance <= self.settings.epsilon:
            st.position = st.target
            return st.position
        if dt <= 0.0:
            return st.position

        speed = self.current_speed()
        if self.settings.scheme == 'linear':
            step = min(distance, speed * dt)
        else:
            step = distance * (1.0 - math.exp(-speed * dt))
        st.position = step_toward(st.position, st.target, step)
        return st.position
