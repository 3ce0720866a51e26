import unittest
from unittest import mock

import numpy as np

from config import load_config
from mpc_drive.errors import ControllerFault
from mpc_drive.load_track import build_track, make_ellipse_track
from mpc_drive.simulate_car import cross_track_error, run_mpc_simulation, simulate_vehicle_step


class TestVehicleStep(unittest.TestCase):
    def setUp(self):
        self.cfg = load_config()
        self.state = {"x": 0.0, "y": 0.0, "psi": 0.0, "v": 10.0}

    def test_straight(self):
        s = simulate_vehicle_step(self.state, 0.0, 0.0, self.cfg, 0.1)
        self.assertAlmostEqual(s["x"], 1.0)
        self.assertAlmostEqual(s["psi"], 0.0)
        self.assertAlmostEqual(s["v"], 10.0)

    def test_positive_command_turns_clockwise(self):
        s = simulate_vehicle_step(self.state, 0.5, 0.0, self.cfg, 0.1)
        self.assertLess(s["psi"], 0.0)

    def test_commands_are_clipped(self):
        s = simulate_vehicle_step(self.state, 3.0, 5.0, self.cfg, 0.1)
        self.assertAlmostEqual(s["steer"], np.deg2rad(self.cfg["car"]["max_steer_deg"]))
        self.assertAlmostEqual(s["throttle"], 1.0)

    def test_braking_never_reverses(self):
        state = dict(self.state, v=0.05)
        s = simulate_vehicle_step(state, 0.0, -1.0, self.cfg, 0.1)
        self.assertEqual(s["v"], 0.0)


class TestClosedLoop(unittest.TestCase):
    def test_cross_track_error_sign(self):
        track = build_track(np.arange(0.0, 50.0, 5.0), np.zeros(10))
        self.assertAlmostEqual(cross_track_error(track, 12.0, 1.5), 1.5)
        self.assertAlmostEqual(cross_track_error(track, 12.0, -0.5), -0.5)

    def test_short_run_stays_on_track(self):
        cfg = load_config(overrides={"sim": {"start_speed": 10.0}})
        track = make_ellipse_track()
        log, state = run_mpc_simulation(track, cfg, duration_s=2.0, debug_step=0)

        self.assertIsNone(state["fault"])
        self.assertGreaterEqual(len(log["time"]), 39)
        self.assertLess(np.max(np.abs(log["cte"])), 2.0)
        self.assertGreater(state["v"], 10.0)
        for key in ("x", "y", "psi", "v", "steer", "throttle", "held", "solve_time"):
            self.assertEqual(len(log[key]), len(log["time"]))

    def test_fault_stops_the_run(self):
        controller = mock.MagicMock()
        controller.step.side_effect = ControllerFault(5)
        log, state = run_mpc_simulation(make_ellipse_track(), load_config(),
                                        duration_s=1.0, debug_step=0,
                                        controller=controller)
        self.assertIsInstance(state["fault"], ControllerFault)
        self.assertEqual(log["time"], [])


if __name__ == "__main__":
    unittest.main()
