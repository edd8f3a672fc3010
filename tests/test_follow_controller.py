import unittest
import sys
import os

# Add path to source
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from hand_control.app.follow_controller import FollowController, FollowSettings, TargetLatch

FRAME_DT = 1.0 / 60.0


class TestFollowController(unittest.TestCase):
    def make_controller(self, **settings):
        ctrl = FollowController(FollowSettings(**settings))
        ctrl.spawn()
        ctrl.unlock()
        return ctrl

    def converge(self, ctrl, frames):
        distances = []
        for i in range(frames):
            ctrl.tick(i * FRAME_DT)
            distances.append(ctrl.state.distance)
        return distances

    def assert_monotonic_without_overshoot(self, ctrl, distances):
        for previous, current in zip(distances, distances[1:]):
            self.assertLessEqual(current, previous + 1e-12)
        self.assertLessEqual(ctrl.position[0], 1.0)
        self.assertEqual(ctrl.position, ctrl.state.target)

    def test_linear_scheme(self):
        ctrl = self.make_controller(scheme='linear')
        ctrl.set_target(1.0, 0.0, 0.0)
        distances = self.converge(ctrl, 200)
        self.assert_monotonic_without_overshoot(ctrl, distances)

        # Holding at the target is idempotent
        ctrl.tick(200 * FRAME_DT)
        self.assertEqual(ctrl.position, (1.0, 0.0))

    def test_exponential_scheme(self):
        ctrl = self.make_controller(scheme='exponential')
        ctrl.set_target(1.0, 0.0, 0.0)
        distances = self.converge(ctrl, 1000)
        self.assert_monotonic_without_overshoot(ctrl, distances)

    def test_linear_step_size(self):
        ctrl = self.make_controller(scheme='linear', base_speed=0.6)
        ctrl.set_target(1.0, 0.0, 0.0)
        ctrl.tick(0.0)
        self.assertEqual(ctrl.position, (0.0, 0.0))
        ctrl.tick(0.5)
        self.assertAlmostEqual(ctrl.position[0], 0.3)

    def test_velocity_raises_speed(self):
        ctrl = self.make_controller(base_speed=0.6, speed_cap=3.0, gain=1.0)
        ctrl.set_target(0.0, 0.0, 0.0)
        self.assertAlmostEqual(ctrl.current_speed(), 0.6)
        ctrl.set_target(0.3, 0.4, 0.5)
        self.assertAlmostEqual(ctrl.state.last_target_velocity, 1.0)
        self.assertAlmostEqual(ctrl.current_speed(), 1.6)

    def test_speed_is_capped(self):
        ctrl = self.make_controller(base_speed=0.6, speed_cap=3.0, gain=1.0)
        ctrl.set_target(0.0, 0.0, 0.0)
        ctrl.set_target(1.0, 0.0, 0.01)
        self.assertAlmostEqual(ctrl.current_speed(), 3.6)

    def test_locked_ignores_targets(self):
        ctrl = FollowController(FollowSettings())
        ctrl.spawn()
        self.assertTrue(ctrl.state.locked)
        self.assertFalse(ctrl.set_target(0.5, 0.5, 0.0))
        ctrl.tick(0.0)
        ctrl.tick(1.0)
        self.assertEqual(ctrl.position, (0.0, 0.0))

    def test_lock_recenters(self):
        ctrl = self.make_controller()
        ctrl.set_target(0.5, 0.5, 0.0)
        self.converge(ctrl, 100)
        ctrl.lock()
        self.assertEqual(ctrl.position, (0.0, 0.0))
        self.assertEqual(ctrl.state.target, (0.0, 0.0))

    def test_not_spawned(self):
        ctrl = FollowController()
        self.assertFalse(ctrl.active)
        self.assertFalse(ctrl.set_target(0.5, 0.5, 0.0))
        self.assertEqual(ctrl.tick(0.0), (0.0, 0.0))

    def test_invalid_settings(self):
        with self.assertRaises(ValueError):
            FollowSettings(scheme='spring')
        with self.assertRaises(ValueError):
            FollowSettings(base_speed=0.0)


class TestTargetLatch(unittest.TestCase):
    def test_last_write_wins(self):
        latch = TargetLatch()
        v0, value = latch.read()
        self.assertIsNone(value)
        latch.publish(0.1, 0.2, 1.0)
        latch.publish(0.3, 0.4, 2.0)
        v1, value = latch.read()
        self.assertEqual(v1, v0 + 2)
        self.assertEqual(value, (0.3, 0.4, 2.0))

    def test_controller_drains_latch_once(self):
        latch = TargetLatch()
        ctrl = FollowController(FollowSettings(), latch=latch)
        ctrl.spawn()
        ctrl.unlock()

        latch.publish(0.4, 0.0, 0.0)
        ctrl.tick(0.0)
        self.assertEqual(ctrl.state.target, (0.4, 0.0))

        # A stale value is not re-applied after the target changed directly
        ctrl.set_target(0.1, 0.0, 0.1)
        ctrl.tick(0.1)
        self.assertEqual(ctrl.state.target, (0.1, 0.0))

    def test_publish_before_unlock_is_dropped(self):
        latch = TargetLatch()
        ctrl = FollowController(FollowSettings(), latch=latch)
        ctrl.spawn()
        latch.publish(0.4, 0.0, 0.0)
        ctrl.tick(0.0)
        ctrl.unlock()
        ctrl.tick(0.1)
        self.assertEqual(ctrl.state.target, (0.0, 0.0))


if __name__ == '__main__':
    unittest.main()
