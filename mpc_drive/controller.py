"""
Per-vehicle control loop: telemetry in, steering/throttle command out.

Each tick runs Transform -> Fit -> Predict -> Optimize. A Controller owns
all state that crosses tick boundaries (previous actuation, warm-start seed,
failure counter), so every connected vehicle needs its own instance.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from config import default_config, validate_config
from mpc_drive.errors import (
    ControllerError,
    ControllerFault,
    InvalidTelemetry,
    SolverDidNotConverge,
    UnderdeterminedFit,
)
from mpc_drive.frames import to_vehicle_frame
from mpc_drive.mpc import MPC
from mpc_drive.polyfit import cte_and_epsi, polyfit, sample_curve
from mpc_drive.vehicle_model import predict_latency_state

logger = logging.getLogger(__name__)


def _opt_float(value):
    return None if value is None else float(value)


@dataclass
class Telemetry:
    ptsx: List[float]
    ptsy: List[float]
    x: float
    y: float
    psi: float
    speed: float
    steering_angle: Optional[float] = None    # applied wheel angle [rad], + = clockwise
    throttle: Optional[float] = None

    @classmethod
    def from_message(cls, data):
        """Build from a decoded simulator telemetry payload."""
        try:
            return cls(
                ptsx=[float(p) for p in data["ptsx"]],
                ptsy=[float(p) for p in data["ptsy"]],
                x=float(data["x"]),
                y=float(data["y"]),
                psi=float(data["psi"]),
                speed=float(data["speed"]),
                steering_angle=_opt_float(data.get("steering_angle")),
                throttle=_opt_float(data.get("throttle")),
            )
        except KeyError as exc:
            raise InvalidTelemetry(f"missing telemetry field {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise InvalidTelemetry(f"bad telemetry field: {exc}") from exc


def validate_telemetry(t, max_steer=None, throttle_bounds=None, tol=1e-6):
    """
    Reject malformed or out-of-range telemetry. The previously applied
    steering angle and throttle are range-checked when bounds are given.
    """
    if len(t.ptsx) != len(t.ptsy):
        raise InvalidTelemetry(
            f"waypoint x/y length mismatch: {len(t.ptsx)} != {len(t.ptsy)}"
        )
    if len(t.ptsx) < 2:
        raise InvalidTelemetry(f"need at least 2 waypoints, got {len(t.ptsx)}")

    scalars = {"x": t.x, "y": t.y, "psi": t.psi, "speed": t.speed}
    if t.steering_angle is not None:
        scalars["steering_angle"] = t.steering_angle
    if t.throttle is not None:
        scalars["throttle"] = t.throttle
    for name, value in scalars.items():
        if not math.isfinite(value):
            raise InvalidTelemetry(f"{name} is not finite: {value}")

    if not (np.all(np.isfinite(t.ptsx)) and np.all(np.isfinite(t.ptsy))):
        raise InvalidTelemetry("waypoints contain NaN or inf")
    if t.speed < 0:
        raise InvalidTelemetry(f"speed must be >= 0, got {t.speed}")
    if (max_steer is not None and t.steering_angle is not None
            and abs(t.steering_angle) > max_steer + tol):
        raise InvalidTelemetry(
            f"steering_angle {t.steering_angle} outside +/-{max_steer:.4f} rad"
        )
    if throttle_bounds is not None and t.throttle is not None:
        lo, hi = throttle_bounds
        if not lo - tol <= t.throttle <= hi + tol:
            raise InvalidTelemetry(f"throttle {t.throttle} outside [{lo}, {hi}]")
    return t


@dataclass
class ActuatorCommand:
    delta: float = 0.0       # steering [rad], + = counter-clockwise
    a: float = 0.0           # throttle / brake


@dataclass
class SteerCommand:
    steering: float          # normalized to [-1, 1], + = clockwise
    throttle: float
    actuation: ActuatorCommand
    mpc_x: List[float] = field(default_factory=list)
    mpc_y: List[float] = field(default_factory=list)
    next_x: List[float] = field(default_factory=list)
    next_y: List[float] = field(default_factory=list)
    held: bool = False
    error: Optional[ControllerError] = None

    def to_message(self):
        return {
            "steering_angle": self.steering,
            "throttle": self.throttle,
            "mpc_x": list(self.mpc_x),
            "mpc_y": list(self.mpc_y),
            "next_x": list(self.next_x),
            "next_y": list(self.next_y),
        }


class Controller:
    def __init__(self, cfg=None, on_error=None):
        self.cfg = cfg if cfg is not None else default_config()
        validate_config(self.cfg)

        car = self.cfg["car"]
        ctl = self.cfg["controller"]
        self.Lf = float(car["Lf"])
        self.max_steer = float(np.deg2rad(car["max_steer_deg"]))
        self.throttle_bounds = (float(car["throttle_min"]), float(car["throttle_max"]))
        self.latency = float(ctl["latency_s"])
        self.poly_order = int(ctl["poly_order"])
        self.max_failures = int(ctl["max_consecutive_failures"])

        self.mpc = MPC(self.cfg)
        self.on_error = on_error

        self.previous = ActuatorCommand()
        self.consecutive_failures = 0
        self.faulted = False

    def solve(self, telemetry):
        """
        Run the full pipeline for one telemetry record.

        Raises InvalidTelemetry, UnderdeterminedFit or SolverDidNotConverge;
        controller state other than the warm-start seed is left untouched.
        """
        t = validate_telemetry(telemetry, self.max_steer, self.throttle_bounds)

        xs, ys = to_vehicle_frame(t.ptsx, t.ptsy, t.x, t.y, t.psi)
        coeffs = polyfit(xs, ys, self.poly_order)
        cte, epsi = cte_and_epsi(coeffs)

        steering_angle = t.steering_angle
        if steering_angle is None:
            steering_angle = -self.previous.delta
        throttle = t.throttle if t.throttle is not None else self.previous.a

        x0 = predict_latency_state(
            t.speed, cte, epsi, steering_angle, throttle, self.Lf, self.latency
        )

        sol = self.mpc.solve(x0.as_array(), coeffs)

        disp = self.cfg["display"]
        next_x, next_y = sample_curve(coeffs, disp["step"], int(disp["n_points"]))

        actuation = ActuatorCommand(delta=sol.delta, a=sol.a)
        cmd = self._command_from(actuation)
        cmd.mpc_x, cmd.mpc_y = sol.xs.tolist(), sol.ys.tolist()
        cmd.next_x, cmd.next_y = next_x.tolist(), next_y.tolist()

        logger.debug(
            "cte=%.3f epsi=%.3f -> delta=%.4f a=%.3f (%d it, %.3fs)",
            cte, epsi, sol.delta, sol.a, sol.iterations, sol.solve_time,
        )
        return cmd

    def step(self, telemetry):
        """
        Tick entry point. Always returns a command unless the controller
        has faulted, in which case ControllerFault is raised.
        """
        if self.faulted:
            raise ControllerFault(self.consecutive_failures)

        try:
            cmd = self.solve(telemetry)
        except (InvalidTelemetry, UnderdeterminedFit) as exc:
            self._report(exc)
            return self._hold(exc)
        except SolverDidNotConverge as exc:
            self.consecutive_failures += 1
            self._report(exc)
            if self.consecutive_failures >= self.max_failures:
                self.faulted = True
                fault = ControllerFault(self.consecutive_failures)
                logger.error("%s", fault)
                if self.on_error is not None:
                    self.on_error(fault)
                raise fault from exc
            return self._hold(exc)

        self.consecutive_failures = 0
        self.previous = cmd.actuation
        return cmd

    def reset(self):
        """Clear the fault and every piece of cross-tick state."""
        self.previous = ActuatorCommand()
        self.consecutive_failures = 0
        self.faulted = False
        self.mpc.reset()

    def _command_from(self, actuation, **kwargs):
        steering = float(np.clip(-actuation.delta / self.max_steer, -1.0, 1.0))
        return SteerCommand(
            steering=steering, throttle=actuation.a, actuation=actuation, **kwargs
        )

    def _hold(self, exc):
        return self._command_from(self.previous, held=True, error=exc)

    def _report(self, exc):
        logger.warning("%s: %s", type(exc).__name__, exc)
        if self.on_error is not None:
            self.on_error(exc)
