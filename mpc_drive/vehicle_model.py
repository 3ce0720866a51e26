"""
Kinematic bicycle model.

Inside the controller steering follows the mathematical convention
(positive delta turns the car counter-clockwise). The simulator reports
steering-wheel angles with the opposite sign, so the latency predictor
negates the reported angle before calling the model.
"""
from typing import NamedTuple

import casadi as ca
import numpy as np

from mpc_drive.polyfit import polyderiv, polyeval

nx, nu = 6, 2          # [x, y, psi, v, cte, epsi], [delta, a]
X_, Y_, PSI, V, CTE, EPSI = range(nx)
DELTA, ACCEL = range(nu)


class VehicleState(NamedTuple):
    x: float
    y: float
    psi: float
    v: float
    cte: float
    epsi: float

    def as_array(self):
        return np.array(self, dtype=float)


def kinematic_step(state, delta, a, Lf, dt):
    """One Euler step of the bicycle model with cte/epsi carried along."""
    x, y, psi, v, cte, epsi = state
    yaw_step = v * delta / Lf * dt
    return VehicleState(
        x=x + v * np.cos(psi) * dt,
        y=y + v * np.sin(psi) * dt,
        psi=psi + yaw_step,
        v=v + a * dt,
        cte=cte + v * np.sin(epsi) * dt,
        epsi=epsi + yaw_step,
    )


def predict_latency_state(v, cte, epsi, steering_angle, throttle, Lf, latency):
    """
    Where the car will be once the next command takes effect.

    Starts from the nominal vehicle-frame state (0, 0, 0, v, cte, epsi) and
    applies the previously used actuation for `latency` seconds.
    `steering_angle` is the wheel angle (positive = clockwise).
    """
    nominal = VehicleState(0.0, 0.0, 0.0, v, cte, epsi)
    if latency <= 0:
        return nominal
    return kinematic_step(nominal, -steering_angle, throttle, Lf, latency)


# ---------------------------------------------------------------
# Horizon model: cte/epsi are re-anchored to the reference curve
# at every step. The CasADi and numpy versions must stay identical.
# ---------------------------------------------------------------
def tracking_step_cas(xk, uk, coeffs, Lf, dt):
    x, y, psi, v = xk[X_], xk[Y_], xk[PSI], xk[V]
    epsi = xk[EPSI]
    delta, a = uk[DELTA], uk[ACCEL]

    f_x = polyeval(coeffs, x)
    psi_des = ca.atan(polyderiv(coeffs, x))
    yaw_step = v * delta / Lf * dt

    return ca.vertcat(
        x + v * ca.cos(psi) * dt,
        y + v * ca.sin(psi) * dt,
        psi + yaw_step,
        v + a * dt,
        (f_x - y) + v * ca.sin(epsi) * dt,
        (psi_des - psi) - yaw_step,
    )


def tracking_step_num(xk, uk, coeffs, Lf, dt):
    x, y, psi, v = xk[X_], xk[Y_], xk[PSI], xk[V]
    epsi = xk[EPSI]
    delta, a = uk[DELTA], uk[ACCEL]

    f_x = polyeval(coeffs, x)
    psi_des = np.arctan(polyderiv(coeffs, x))
    yaw_step = v * delta / Lf * dt

    return np.array([
        x + v * np.cos(psi) * dt,
        y + v * np.sin(psi) * dt,
        psi + yaw_step,
        v + a * dt,
        (f_x - y) + v * np.sin(epsi) * dt,
        (psi_des - psi) - yaw_step,
    ])


def rollout_num(x0, U, coeffs, Lf, dt):
    """State matrix (nx, N) obtained by applying the columns of U from x0."""
    U = np.asarray(U, dtype=float)
    X = np.zeros((nx, U.shape[1] + 1))
    X[:, 0] = np.asarray(x0, dtype=float)
    for k in range(U.shape[1]):
        X[:, k + 1] = tracking_step_num(X[:, k], U[:, k], coeffs, Lf, dt)
    return X
