"""
Control Dispatcher

Decouples the gesture pipeline from whatever consumes its output. It receives
one ControlOutput per processed tick and fans it out to every registered
listener as fire-and-forget callbacks:

    on_hand_presence(bool)
    on_armed_changed(bool), on_pointing_changed(bool), on_pinch_mode_changed(bool)
    on_move(x), on_pinch_distance(d), on_point_drag(x, y)

Listeners implement any subset of these methods. Callbacks run synchronously
inside the scheduler tick and must not block. A failing listener is logged and
never stops the others.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from hand_control.app.pipeline import ControlOutput

logger = logging.getLogger(__name__)

CALLBACK_NAMES = (
    'on_hand_presence',
    'on_armed_changed',
    'on_pointing_changed',
    'on_pinch_mode_changed',
    'on_move',
    'on_pinch_distance',
    'on_point_drag',
)


class CallbackListener:
    """Listener built from plain callables, e.g. CallbackListener(on_move=print)."""

    def __init__(self, **callbacks: Callable):
        unknown = set(callbacks) - set(CALLBACK_NAMES)
        if unknown:
            raise ValueError(f"Unknown callbacks: {sorted(unknown)}")
        for name, func in callbacks.items():
            setattr(self, name, func)


class ControlDispatcher:
    def __init__(self, listeners: Optional[List[Any]] = None):
        self.listeners: List[Any] = list(listeners or [])
        self.closed = False
        self.stats: Dict[str, int] = {name: 0 for name in CALLBACK_NAMES}

    def add_listener(self, listener: Any) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: Any) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def close(self) -> None:
        """Stop delivering events; later dispatches are dropped."""
        self.closed = True

    def dispatch(self, output: ControlOutput) -> None:
        """
        Deliver one tick's output.

        Order: presence, then state edges (armed, pointing, pinch mode), then
        continuous channels, so listeners see the new modes before the values
        those modes gate.
        """
        if self.closed:
            return

        self._emit('on_hand_presence', output.detected)
        if output.armed_changed is not None:
            self._emit('on_armed_changed', output.armed_changed)
        if output.pointing_changed is not None:
            self._emit('on_pointing_changed', output.pointing_changed)
        if output.pinch_mode_changed is not None:
            self._emit('on_pinch_mode_changed', output.pinch_mode_changed)
        if output.move_x is not None:
            self._emit('on_move', output.move_x)
        if output.pinch_distance is not None:
            self._emit('on_pinch_distance', output.pinch_distance)
        if output.point is not None:
            self._emit('on_point_drag', output.point[0], output.point[1])

    def report_presence(self, detected: bool) -> None:
        """Presence-only report (initialization failure path)."""
        if self.closed:
            return
        self._emit('on_hand_presence', detected)

    def _emit(self, name: str, *args) -> None:
        self.stats[name] += 1
        for listener in list(self.listeners):
            func = getattr(listener, name, None)
            if func is None:
                continue
            try:
                func(*args)
            except Exception as e:
                logger.warning("⚠ Listener %s.%s failed: %s",
                               type(listener).__name__, name, e, exc_info=logger.isEnabledFor(logging.DEBUG))
