import unittest
from unittest.mock import Mock, call
import sys
import os

# Add path to source
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from hand_control.app.control_dispatcher import CALLBACK_NAMES, ControlDispatcher
from hand_control.app.frame_scheduler import FrameScheduler, SchedulerSettings
from hand_control.app.pipeline import (
    ChangeGate,
    ChannelSmoothers,
    GesturePipeline,
    PipelineSettings,
    PipelineState,
    PointGate,
)
from hand_poses import FIST, PINCH, POINT, frame, point_pose, shifted, without


class ScriptedDetector:
    """Returns the scripted frames in order, one per detect() call."""

    def __init__(self, frames):
        self.frames = list(frames)
        self.calls = 0

    def detect(self, sample, timestamp_ms):
        f = self.frames[self.calls]
        self.calls += 1
        return f

    def close(self):
        pass


class StaticCapture:
    def current_sample(self):
        return 'sample'

    def is_live(self):
        return True

    def reacquire(self):
        return self

    def release(self):
        pass


class TestGates(unittest.TestCase):
    def test_change_gate(self):
        gate = ChangeGate(0.01)
        self.assertTrue(gate.offer(0.5))
        self.assertFalse(gate.offer(0.5))
        self.assertFalse(gate.offer(0.509))
        self.assertTrue(gate.offer(0.52))
        # Compared against the last emitted value, not the last offered one
        self.assertFalse(gate.offer(0.529))

    def test_ungated(self):
        gate = ChangeGate(None)
        self.assertTrue(gate.offer(0.2))
        self.assertTrue(gate.offer(0.2))

    def test_point_gate_either_axis(self):
        gate = PointGate(0.01)
        self.assertTrue(gate.offer(0.1, 0.1))
        self.assertFalse(gate.offer(0.105, 0.1))
        self.assertTrue(gate.offer(0.1, 0.2))

    def test_state_gates(self):
        settings = PipelineSettings()
        bare = PipelineState(smoothers=ChannelSmoothers.from_settings(settings))
        self.assertIsNone(bare.move_gate)
        self.assertIsNone(bare.pinch_gate)
        self.assertIsNone(bare.point_gate)

        state = PipelineState.initial(settings)
        self.assertIsInstance(state.move_gate, ChangeGate)
        self.assertIsInstance(state.pinch_gate, ChangeGate)
        self.assertIsInstance(state.point_gate, PointGate)


class TestGesturePipeline(unittest.TestCase):
    def setUp(self):
        self.pipeline = GesturePipeline(PipelineSettings())

    def run_frames(self, points_list):
        return [self.pipeline.process(None if p is None else frame(p)) for p in points_list]

    def test_no_hand_reports_presence_only(self):
        for out in self.run_frames([None] * 5):
            self.assertFalse(out.detected)
            self.assertTrue(out.is_empty)

    def test_no_hand_keeps_state(self):
        self.run_frames([FIST, FIST])
        self.assertTrue(self.pipeline.gestures.armed)
        before = self.pipeline.state.smoothers.fist_compactness.scalar()
        self.run_frames([None] * 10)
        self.assertTrue(self.pipeline.gestures.armed)
        self.assertEqual(self.pipeline.state.smoothers.fist_compactness.scalar(), before)

    def test_duplicate_move_is_gated(self):
        outs = self.run_frames([FIST, FIST, FIST])
        self.assertAlmostEqual(outs[0].move_x, 0.5)
        self.assertIsNone(outs[1].move_x)
        self.assertIsNone(outs[2].move_x)

    def test_move_reemitted_after_large_change(self):
        self.run_frames([FIST])
        out = self.pipeline.process(frame(shifted(FIST, dx=0.2)))
        # EWMA(0.25): 0.5 -> 0.55
        self.assertAlmostEqual(out.move_x, 0.55)

    def test_pinch_emits_raw_distance(self):
        outs = self.run_frames([POINT, PINCH])
        self.assertAlmostEqual(outs[1].pinch_distance, 0.04, places=6)

    def test_pointing_emits_point_only_while_pointing(self):
        outs = self.run_frames([point_pose(0), point_pose(10), point_pose(20), point_pose(30)])
        for out in outs[:3]:
            self.assertIsNone(out.point)
        self.assertTrue(outs[3].pointing_changed)
        self.assertIsNotNone(outs[3].point)
        # First smoothed sample is taken as-is
        self.assertAlmostEqual(outs[3].point[0], 0.25 * 0.5 / 0.15, places=6)
        self.assertAlmostEqual(outs[3].point[1], -1.0)

    def test_pinch_mode_never_on_while_pointing(self):
        outs = self.run_frames([POINT] * 4)
        self.assertTrue(outs[3].pointing_changed)

        outs = []
        for _ in range(6):
            outs.append(self.pipeline.process(frame(PINCH)))
            gestures = self.pipeline.gestures
            self.assertFalse(gestures.pinch_mode and gestures.pointing)
        for out in outs[:5]:
            self.assertIsNone(out.pinch_mode_changed)
        self.assertFalse(outs[5].pointing_changed)
        self.assertTrue(outs[5].pinch_mode_changed)
        self.assertTrue(self.pipeline.gestures.pinch_mode)
        self.assertFalse(self.pipeline.gestures.pointing)

    def test_pinch_mode_scenario_unsmoothed(self):
        pipeline = GesturePipeline(PipelineSettings(pinch_alpha=1.0))
        outs = [pipeline.process(frame(p)) for p in [FIST, PINCH, FIST]]
        self.assertIsNone(outs[0].pinch_mode_changed)
        self.assertTrue(outs[1].pinch_mode_changed)
        self.assertFalse(outs[2].pinch_mode_changed)

    def test_missing_index_joints_do_not_end_pointing(self):
        outs = self.run_frames([POINT] * 4)
        self.assertTrue(outs[3].pointing_changed)
        streaks = (self.pipeline.gestures.pointing_on_streak, self.pipeline.gestures.pointing_off_streak)

        outs = self.run_frames([without(POINT, 6, 7)] * 6)
        for out in outs:
            self.assertIsNone(out.pointing_changed)
        gestures = self.pipeline.gestures
        self.assertTrue(gestures.pointing)
        self.assertEqual((gestures.pointing_on_streak, gestures.pointing_off_streak), streaks)

    def test_partial_frame_does_not_emit_nan(self):
        out = self.pipeline.process(frame(without(FIST, 4, 8)))
        self.assertTrue(out.detected)
        self.assertIsNone(out.pinch_distance)
        self.assertAlmostEqual(out.move_x, 0.5)
        self.assertIsNone(self.pipeline.state.smoothers.pinch_distance.value)
        self.assertIsNone(self.pipeline.state.smoothers.fist_compactness.value)

    def test_reset(self):
        self.run_frames([FIST, FIST])
        self.pipeline.reset()
        self.assertFalse(self.pipeline.gestures.armed)
        self.assertIsNone(self.pipeline.state.smoothers.move_x.value)

    def test_invalid_settings(self):
        with self.assertRaises(ValueError):
            PipelineSettings(move_alpha=0.0)
        with self.assertRaises(ValueError):
            PipelineSettings(min_delta=-1)


class TestEndToEnd(unittest.TestCase):
    """Scheduler -> pipeline -> dispatcher with scripted detector output."""

    def build(self, frames):
        self.listener = Mock(spec=list(CALLBACK_NAMES))
        self.detector = ScriptedDetector(frames)
        self.scheduler = FrameScheduler(
            GesturePipeline(PipelineSettings()),
            ControlDispatcher([self.listener]),
            detector_factory=lambda: self.detector,
            capture_factory=StaticCapture,
            settings=SchedulerSettings(frame_interval_ms=16),
        )
        self.scheduler.start()
        self.addCleanup(self.scheduler.shutdown)

    def test_arms_exactly_on_second_fist_frame(self):
        self.build([None] + [frame(FIST)] * 10)

        self.scheduler.tick(0.0)
        self.assertEqual(self.listener.mock_calls, [call.on_hand_presence(False)])

        self.scheduler.tick(0.1)
        self.listener.on_armed_changed.assert_not_called()

        self.scheduler.tick(0.2)
        self.listener.on_armed_changed.assert_called_once_with(True)

        for i in range(3, 11):
            self.scheduler.tick(i * 0.1)
        self.listener.on_armed_changed.assert_called_once_with(True)
        self.assertEqual(self.detector.calls, 11)
        self.listener.on_move.assert_called_once_with(0.5)
        self.listener.on_pinch_mode_changed.assert_not_called()
        self.listener.on_pointing_changed.assert_not_called()

    def test_event_order_within_tick(self):
        self.build([frame(FIST)] * 2)
        self.scheduler.tick(0.0)
        self.listener.reset_mock()
        self.scheduler.tick(0.1)
        names = [c[0] for c in self.listener.mock_calls]
        self.assertEqual(names[0], 'on_hand_presence')
        self.assertIn('on_armed_changed', names)
        self.assertLess(names.index('on_armed_changed'), names.index('on_pinch_distance'))


if __name__ == '__main__':
    unittest.main()
