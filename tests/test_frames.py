import unittest

import numpy as np

from mpc_drive.errors import InvalidTelemetry
from mpc_drive.frames import to_vehicle_frame, to_world_frame


class TestFrames(unittest.TestCase):
    def setUp(self):
        self.ptsx = [-32.16, -43.49, -61.09, -78.29, -93.05, -107.75]
        self.ptsy = [113.36, 105.94, 92.88, 78.73, 65.34, 50.57]

    def test_round_trip_all_headings(self):
        px, py = -40.62, 108.73
        for psi in np.linspace(-np.pi, np.pi, 13):
            xs, ys = to_vehicle_frame(self.ptsx, self.ptsy, px, py, psi)
            wx, wy = to_world_frame(xs, ys, px, py, psi)
            np.testing.assert_allclose(wx, self.ptsx, atol=1e-9)
            np.testing.assert_allclose(wy, self.ptsy, atol=1e-9)

    def test_point_ahead_lands_on_positive_x_axis(self):
        # car at (1, 1) facing +y: (1, 3) is 2 m straight ahead
        xs, ys = to_vehicle_frame([1.0, 1.0], [3.0, 1.0], 1.0, 1.0, np.pi / 2)
        self.assertAlmostEqual(xs[0], 2.0, places=9)
        self.assertAlmostEqual(ys[0], 0.0, places=9)
        # and the car itself maps to the origin
        self.assertAlmostEqual(xs[1], 0.0, places=9)
        self.assertAlmostEqual(ys[1], 0.0, places=9)

    def test_point_on_the_left_has_positive_y(self):
        # car facing +y, a point at smaller world x is on its left
        xs, ys = to_vehicle_frame([0.0, 1.0], [1.0, 5.0], 1.0, 1.0, np.pi / 2)
        self.assertAlmostEqual(xs[0], 0.0, places=9)
        self.assertAlmostEqual(ys[0], 1.0, places=9)

    def test_zero_pose_is_identity(self):
        xs, ys = to_vehicle_frame(self.ptsx, self.ptsy, 0.0, 0.0, 0.0)
        np.testing.assert_allclose(xs, self.ptsx)
        np.testing.assert_allclose(ys, self.ptsy)

    def test_requires_two_waypoints(self):
        with self.assertRaises(InvalidTelemetry):
            to_vehicle_frame([1.0], [2.0], 0.0, 0.0, 0.0)

    def test_length_mismatch(self):
        with self.assertRaises(InvalidTelemetry):
            to_vehicle_frame([1.0, 2.0, 3.0], [2.0, 3.0], 0.0, 0.0, 0.0)


if __name__ == "__main__":
    unittest.main()
