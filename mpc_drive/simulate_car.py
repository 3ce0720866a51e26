from collections import deque

import numpy as np

from config import default_config
from mpc_drive.controller import Controller, Telemetry
from mpc_drive.errors import ControllerFault
from mpc_drive.load_track import nearest_index, upcoming_waypoints


def simulate_vehicle_step(state, steer_cmd, throttle_cmd, cfg, dt):
    """
    World-frame kinematic bicycle, standing in for the simulator.

    steer_cmd is the normalized command in [-1, 1] with the simulator's
    sign convention (positive steers clockwise).
    """
    car = cfg["car"]
    max_steer = np.deg2rad(car["max_steer_deg"])

    x = state["x"]
    y = state["y"]
    psi = state["psi"]
    v = state["v"]

    steer = np.clip(steer_cmd, -1.0, 1.0) * max_steer
    throttle = np.clip(throttle_cmd, car["throttle_min"], car["throttle_max"])

    # wheel angle -> yaw rate (clockwise steering lowers psi)
    psi_dot = v * (-steer) / car["Lf"]

    return {
        "x": x + v * np.cos(psi) * dt,
        "y": y + v * np.sin(psi) * dt,
        "psi": psi + psi_dot * dt,
        "v": max(0.0, v + throttle * dt),
        "steer": float(steer),
        "throttle": float(throttle),
    }


def cross_track_error(track, x, y):
    """Signed lateral offset from the nearest waypoint's tangent, + = left."""
    i = nearest_index(track, x, y)
    h = track.heading_rad[i]
    dx = x - track.x_m[i]
    dy = y - track.y_m[i]
    return float(-dx * np.sin(h) + dy * np.cos(h))


def run_mpc_simulation(track, cfg=None, duration_s=30.0, debug_step=20,
                       controller=None):
    """
    Closed loop: simulated car -> telemetry -> Controller.step -> latency
    queue -> simulated car. Returns the log and the final state.
    """
    cfg = cfg if cfg is not None else default_config()
    sim = cfg["sim"]
    dt = sim["dt"]
    latency = cfg["controller"]["latency_s"]
    max_steer = np.deg2rad(cfg["car"]["max_steer_deg"])
    control_every = max(1, int(round(sim["control_period"] / dt)))

    if controller is None:
        controller = Controller(cfg)

    # ------------------------------------
    # INITIAL STATE
    # ------------------------------------
    state = {
        "x": float(track.x_m[0]),
        "y": float(track.y_m[0]),
        "psi": float(track.heading_rad[0]),
        "v": float(sim["start_speed"]),
        "steer": 0.0,
        "throttle": 0.0,
    }

    pending = deque()            # (apply_at, steer_cmd, throttle_cmd)
    steer_cmd, throttle_cmd = 0.0, 0.0

    log = {
        "time": [], "x": [], "y": [], "psi": [], "v": [], "cte": [],
        "steer": [], "throttle": [], "held": [], "solve_time": [],
    }

    t = 0.0
    step = 0
    n_ticks = 0
    n_held = 0
    fault = None
    distance = 0.0
    held = False

    while t < duration_s:

        if step % control_every == 0:
            ptsx, ptsy = upcoming_waypoints(
                track, state["x"], state["y"], n=int(sim["n_waypoints"])
            )
            telemetry = Telemetry(
                ptsx=ptsx.tolist(),
                ptsy=ptsy.tolist(),
                x=state["x"],
                y=state["y"],
                psi=state["psi"],
                speed=state["v"],
                steering_angle=steer_cmd * max_steer,
                throttle=throttle_cmd,
            )
            try:
                cmd = controller.step(telemetry)
            except ControllerFault as exc:
                print(f"⚠️ t={t:.2f}s: {exc}")
                fault = exc
                break

            n_ticks += 1
            held = cmd.held
            n_held += int(held)
            pending.append((t + latency, cmd.steering, cmd.throttle))

            if debug_step and n_ticks % debug_step == 0:
                print(
                    f"[t={t:.1f}s] v={state['v']:.2f}m/s, "
                    f"steer={cmd.steering:+.3f}, throttle={cmd.throttle:+.3f}, "
                    f"cte={cross_track_error(track, state['x'], state['y']):+.2f}m"
                )

        # commands take effect once their latency has elapsed
        while pending and pending[0][0] <= t + 1e-9:
            _, steer_cmd, throttle_cmd = pending.popleft()

        prev_x, prev_y = state["x"], state["y"]
        state = simulate_vehicle_step(state, steer_cmd, throttle_cmd, cfg, dt)
        distance += float(np.hypot(state["x"] - prev_x, state["y"] - prev_y))

        log["time"].append(t)
        log["x"].append(float(state["x"]))
        log["y"].append(float(state["y"]))
        log["psi"].append(float(state["psi"]))
        log["v"].append(float(state["v"]))
        log["cte"].append(cross_track_error(track, state["x"], state["y"]))
        log["steer"].append(float(steer_cmd))
        log["throttle"].append(float(throttle_cmd))
        log["held"].append(held)
        log["solve_time"].append(controller.mpc.last_solve_time)

        t += dt
        step += 1

    # ------------------------------------
    # SUMMARY OUTPUT
    # ------------------------------------
    cte = np.abs(np.array(log["cte"])) if log["cte"] else np.zeros(1)
    print("\nMPC Simulation finished:")
    print(f"  Time:              {t:.1f} sec")
    print(f"  Distance:          {distance:.1f} m")
    print(f"  Control ticks:     {n_ticks} ({n_held} held)")
    print(f"  Mean |cte|:        {cte.mean():.3f} m")
    print(f"  Max |cte|:         {cte.max():.3f} m")
    if fault is not None:
        print(f"  Stopped early:     {fault}")

    state["fault"] = fault
    return log, state
