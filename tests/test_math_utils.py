import math
import unittest
import sys
import os

import numpy as np

# Add path to source
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from hand_control.detectors.gesture_detectors import Landmark
from hand_control.utils.math_utils import EWMA, landmarks_to_array, points_available, step_toward, euclidean


class TestEWMA(unittest.TestCase):
    def test_first_sample_taken_as_is(self):
        s = EWMA(alpha=0.25)
        self.assertIsNone(s.scalar())
        self.assertAlmostEqual(float(s.update(0.42)), 0.42)

    def test_constant_input_is_fixed_point(self):
        s = EWMA(alpha=0.25)
        for _ in range(20):
            value = float(s.update(0.15))
        self.assertAlmostEqual(value, 0.15)

    def test_converges_toward_new_level(self):
        s = EWMA(alpha=0.25)
        s.update(0.0)
        previous = 1.0
        for _ in range(40):
            value = float(s.update(1.0))
            # Distance to the new level strictly shrinks
            self.assertLess(1.0 - value, previous)
            previous = 1.0 - value
        self.assertLess(previous, 1e-4)

    def test_update_rule(self):
        s = EWMA(alpha=0.25)
        s.update(0.2)
        self.assertAlmostEqual(float(s.update(0.6)), 0.25 * 0.6 + 0.75 * 0.2)

    def test_alpha_out_of_range(self):
        with self.assertRaises(ValueError):
            EWMA(alpha=0.0)
        with self.assertRaises(ValueError):
            EWMA(alpha=1.5)

    def test_reset(self):
        s = EWMA(alpha=0.5)
        s.update(3.0)
        s.reset()
        self.assertIsNone(s.value)
        self.assertAlmostEqual(float(s.update(1.0)), 1.0)


class TestLandmarkHelpers(unittest.TestCase):
    def test_missing_landmarks_become_nan(self):
        arr = landmarks_to_array([Landmark(0.1, 0.2), None, Landmark(0.3, 0.4)])
        self.assertEqual(arr.shape, (3, 2))
        self.assertTrue(np.isnan(arr[1]).all())
        self.assertTrue(points_available(arr, [0, 2]))
        self.assertFalse(points_available(arr, [0, 1]))

    def test_points_available_out_of_range(self):
        arr = landmarks_to_array([Landmark(0.1, 0.2)])
        self.assertFalse(points_available(arr, [4]))
        self.assertFalse(points_available(arr, []))

    def test_euclidean_rowwise(self):
        d = euclidean([[0, 0], [3, 4]], [0, 0])
        np.testing.assert_allclose(d, [0.0, 5.0])

    def test_step_toward_never_overshoots(self):
        self.assertEqual(step_toward((0.0, 0.0), (1.0, 0.0), 5.0), (1.0, 0.0))
        x, y = step_toward((0.0, 0.0), (3.0, 4.0), 1.0)
        self.assertAlmostEqual(math.hypot(x, y), 1.0)
        self.assertAlmostEqual(y / x, 4.0 / 3.0)


if __name__ == '__main__':
    unittest.main()
