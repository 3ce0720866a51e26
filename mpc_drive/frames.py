"""
World <-> vehicle frame transforms.

The vehicle frame has its origin at the car and its x-axis along the
heading. Going world -> vehicle translates by (-px, -py) and then rotates
by -psi; vehicle -> world undoes both in reverse order.
"""
import numpy as np

from mpc_drive.errors import InvalidTelemetry


def to_vehicle_frame(ptsx, ptsy, px, py, psi):
    ptsx = np.asarray(ptsx, dtype=float).ravel()
    ptsy = np.asarray(ptsy, dtype=float).ravel()
    if ptsx.size != ptsy.size:
        raise InvalidTelemetry(
            f"waypoint x/y length mismatch: {ptsx.size} != {ptsy.size}"
        )
    if ptsx.size < 2:
        raise InvalidTelemetry(f"need at least 2 waypoints, got {ptsx.size}")

    dx = ptsx - px
    dy = ptsy - py
    cos_p = np.cos(-psi)
    sin_p = np.sin(-psi)

    xs = dx * cos_p - dy * sin_p
    ys = dx * sin_p + dy * cos_p
    return xs, ys


def to_world_frame(xs, ys, px, py, psi):
    xs = np.asarray(xs, dtype=float).ravel()
    ys = np.asarray(ys, dtype=float).ravel()

    cos_p = np.cos(psi)
    sin_p = np.sin(psi)

    wx = xs * cos_p - ys * sin_p + px
    wy = xs * sin_p + ys * cos_p + py
    return wx, wy
