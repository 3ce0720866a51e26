import os
import tempfile
import unittest

import numpy as np

from mpc_drive.load_track import (
    build_track,
    load_track_from_csv,
    make_ellipse_track,
    nearest_index,
    plot_track,
    upcoming_waypoints,
)


class TestTrack(unittest.TestCase):
    def test_build_track_straight(self):
        track = build_track([0.0, 3.0, 6.0], [0.0, 4.0, 8.0])
        np.testing.assert_allclose(track.s_m, [0.0, 5.0, 10.0])
        self.assertAlmostEqual(track.length_m, 10.0)
        np.testing.assert_allclose(track.heading_rad, np.arctan2(4.0, 3.0))

    def test_heading_average_across_pi(self):
        # heading flips from +179 deg to -179 deg: the average must stay near pi
        track = build_track([0.0, -1.0, -2.0], [0.0, 0.01745, 0.0])
        self.assertGreater(abs(track.heading_rad[1]), 3.0)

    def test_build_track_rejects_bad_input(self):
        with self.assertRaises(ValueError):
            build_track([0.0], [0.0])
        with self.assertRaises(ValueError):
            build_track([0.0, 1.0], [0.0])

    def test_load_csv(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "lake_track_waypoints.csv")
            with open(path, "w") as f:
                f.write("x,y\n179.3083,98.67102\n172.3083,117.181\n165.5735,125.3523\n")
            track = load_track_from_csv(path)
        self.assertEqual(len(track), 3)
        self.assertAlmostEqual(track.x_m[0], 179.3083)

    def test_load_csv_requires_columns(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "bad.csv")
            with open(path, "w") as f:
                f.write("lat,lon\n1,2\n3,4\n")
            with self.assertRaises(ValueError):
                load_track_from_csv(path)

    def test_ellipse(self):
        track = make_ellipse_track(200.0, 100.0, 200)
        self.assertEqual(len(track), 200)
        self.assertAlmostEqual(track.x_m[0], 200.0)
        # counter-clockwise: heading at the start points up
        self.assertAlmostEqual(track.heading_rad[0], np.pi / 2, places=1)

    def test_upcoming_waypoints_wrap_around(self):
        track = make_ellipse_track(200.0, 100.0, 200)
        last = len(track) - 1
        self.assertEqual(nearest_index(track, track.x_m[last], track.y_m[last]), last)
        xs, ys = upcoming_waypoints(track, track.x_m[last], track.y_m[last], n=6)
        self.assertEqual(len(xs), 6)
        np.testing.assert_allclose(xs[:2], track.x_m[[last - 1, last]])
        np.testing.assert_allclose(xs[2:], track.x_m[:4])

    def test_plot_track(self):
        fig = plot_track(make_ellipse_track(), show=False)
        self.assertIsNotNone(fig)


if __name__ == "__main__":
    unittest.main()
