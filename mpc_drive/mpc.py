"""
Receding-horizon trajectory optimizer.

The NLP is built once per MPC instance with CasADi's Opti stack: the state
trajectory X (nx, N) and actuators U (nu, N-1) are decision variables, the
kinematic model enters as equality (defect) constraints, the first column
of X is pinned to the latency-compensated initial state and the reference
polynomial is a parameter. IPOPT solves it with the sparse Jacobian CasADi
derives by automatic differentiation.
"""
import logging
import time
from dataclasses import dataclass

import casadi as ca
import numpy as np

from config import default_config
from mpc_drive.errors import SolverDidNotConverge
from mpc_drive.vehicle_model import (
    ACCEL,
    CTE,
    DELTA,
    EPSI,
    V,
    X_,
    Y_,
    nu,
    nx,
    rollout_num,
    tracking_step_cas,
)

logger = logging.getLogger(__name__)


@dataclass
class MPCSolution:
    delta: float              # first steering angle [rad], math convention
    a: float                  # first throttle
    xs: np.ndarray            # predicted path, vehicle frame
    ys: np.ndarray
    X: np.ndarray             # (nx, N)
    U: np.ndarray             # (nu, N-1)
    cost: float
    iterations: int
    solve_time: float
    warm_started: bool


class MPC:
    def __init__(self, cfg=None):
        cfg = cfg if cfg is not None else default_config()
        car = cfg["car"]
        self.opts = dict(cfg["mpc"])

        self.N = int(self.opts["N"])
        self.dt = float(self.opts["dt"])
        self.Lf = float(car["Lf"])
        self.max_steer = float(np.deg2rad(car["max_steer_deg"]))
        self.a_min = float(car["throttle_min"])
        self.a_max = float(car["throttle_max"])
        self.n_coeffs = int(cfg["controller"]["poly_order"]) + 1
        self.warm_start = bool(self.opts["warm_start"])

        self._U_prev = None
        self.last_solve_time = 0.0
        self._build_nlp()

    # ================================================================
    #  Build NLP (once) -----------------------------------------------
    # ================================================================
    def _build_nlp(self):
        N, o = self.N, self.opts

        opti = ca.Opti()
        X = opti.variable(nx, N)
        U = opti.variable(nu, N - 1)

        x0_p = opti.parameter(nx)
        coeffs_p = opti.parameter(self.n_coeffs)
        coeffs = [coeffs_p[i] for i in range(self.n_coeffs)]

        opti.subject_to(X[:, 0] == x0_p)

        J = 0
        for k in range(N):
            J += o["w_cte"] * X[CTE, k]**2
            J += o["w_epsi"] * X[EPSI, k]**2
            J += o["w_v"] * (X[V, k] - o["ref_v"])**2

        for k in range(N - 1):
            xk1 = tracking_step_cas(X[:, k], U[:, k], coeffs, self.Lf, self.dt)
            opti.subject_to(X[:, k + 1] == xk1)

            J += o["w_delta"] * U[DELTA, k]**2 + o["w_a"] * U[ACCEL, k]**2
            if k < N - 2:
                J += o["w_ddelta"] * (U[DELTA, k + 1] - U[DELTA, k])**2
                J += o["w_da"] * (U[ACCEL, k + 1] - U[ACCEL, k])**2

        opti.subject_to(opti.bounded(-self.max_steer, U[DELTA, :], self.max_steer))
        opti.subject_to(opti.bounded(self.a_min, U[ACCEL, :], self.a_max))

        opti.minimize(J)

        p_opts = {"expand": bool(o["expand"]), "print_time": False}
        s_opts = {
            "max_iter": int(o["max_iter"]),
            "max_cpu_time": float(o["max_cpu_time"]),
            "tol": float(o["tol"]),
            "print_level": 0,
            "sb": "yes",
        }
        opti.solver("ipopt", p_opts, s_opts)

        self._opti = opti
        self._X, self._U = X, U
        self._x0_p, self._coeffs_p = x0_p, coeffs_p
        self._J = J

    # ================================================================
    #  Solve ----------------------------------------------------------
    # ================================================================
    def solve(self, x0, coeffs, U_init=None):
        """
        Solve the horizon problem from x0 for the given reference curve.

        U_init seeds the actuators explicitly; otherwise the previous
        solution shifted by one step is used when warm starting is on,
        and zeros are used on a cold start. The state seed is always a
        rollout from x0, so it lives in the current tick's frame.
        """
        x0 = np.asarray(x0, dtype=float).ravel()
        coeffs = np.asarray(coeffs, dtype=float).ravel()
        if x0.size != nx:
            raise ValueError(f"x0 must have {nx} entries, got {x0.size}")
        if coeffs.size != self.n_coeffs:
            raise ValueError(
                f"expected {self.n_coeffs} curve coefficients, got {coeffs.size}"
            )

        U0, warm = self._initial_controls(U_init)
        X0 = rollout_num(x0, U0, coeffs, self.Lf, self.dt)

        opti = self._opti
        opti.set_value(self._x0_p, x0)
        opti.set_value(self._coeffs_p, coeffs)
        opti.set_initial(self._X, X0)
        opti.set_initial(self._U, U0)

        t0 = time.perf_counter()
        try:
            sol = opti.solve()
        except RuntimeError as exc:
            self.last_solve_time = time.perf_counter() - t0
            status = opti.return_status()
            self._U_prev = None
            logger.debug("IPOPT failed after %.3fs: %s", self.last_solve_time, status)
            raise SolverDidNotConverge(status) from exc
        solve_time = time.perf_counter() - t0
        self.last_solve_time = solve_time

        Xsol = np.asarray(sol.value(self._X), dtype=float).reshape(nx, self.N)
        Usol = np.asarray(sol.value(self._U), dtype=float).reshape(nu, self.N - 1)
        iterations = int(sol.stats().get("iter_count", -1))

        if self.warm_start:
            self._U_prev = Usol.copy()

        logger.debug(
            "solved in %d iterations (%.3fs, warm=%s)", iterations, solve_time, warm
        )

        return MPCSolution(
            delta=float(np.clip(Usol[DELTA, 0], -self.max_steer, self.max_steer)),
            a=float(np.clip(Usol[ACCEL, 0], self.a_min, self.a_max)),
            xs=Xsol[X_, :].copy(),
            ys=Xsol[Y_, :].copy(),
            X=Xsol,
            U=Usol,
            cost=float(sol.value(self._J)),
            iterations=iterations,
            solve_time=solve_time,
            warm_started=warm,
        )

    def _initial_controls(self, U_init):
        shape = (nu, self.N - 1)
        if U_init is not None:
            return np.asarray(U_init, dtype=float).reshape(shape), True
        if self.warm_start and self._U_prev is not None:
            # shift & pad
            U = np.hstack([self._U_prev[:, 1:], self._U_prev[:, -1:]])
            return U, True
        return np.zeros(shape), False

    def reset(self):
        """Forget the warm-start seed."""
        self._U_prev = None
