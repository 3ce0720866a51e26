import copy
import json

car_config = {
    # Geometry
    "Lf": 2.67,               # CoG to front axle [m]
    "max_steer_deg": 25.0,

    # Actuators
    "throttle_min": -1.0,
    "throttle_max": 1.0,
}

mpc_config = {
    # Horizon
    "N": 10,
    "dt": 0.1,
    "ref_v": 30.0,            # target speed [m/s]

    # Weights (cte, epsi and steering smoothness dominate)
    "w_cte": 2000.0,
    "w_epsi": 2000.0,
    "w_v": 1.0,
    "w_delta": 5.0,
    "w_a": 5.0,
    "w_ddelta": 200.0,
    "w_da": 10.0,

    # IPOPT budget
    "max_iter": 200,
    "max_cpu_time": 0.5,      # soft deadline per tick [s]
    "tol": 1e-6,
    "expand": True,

    "warm_start": True,
}

controller_config = {
    "latency_s": 0.1,                 # actuation latency [s]
    "poly_order": 3,
    "max_consecutive_failures": 5,
}

display_config = {
    # reference curve sample sent back for visualization only
    "step": 3.0,
    "n_points": 15,
}

sim_config = {
    "dt": 0.05,
    "control_period": 0.1,
    "n_waypoints": 6,
    "start_speed": 0.0,
}


def default_config():
    """Fresh copy of every tunable, grouped by section."""
    return copy.deepcopy({
        "car": car_config,
        "mpc": mpc_config,
        "controller": controller_config,
        "display": display_config,
        "sim": sim_config,
    })


def _deep_update(base, overrides):
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


def load_config(path=None, overrides=None):
    """
    Defaults, then a JSON override file, then an in-memory override dict.
    Only the keys present in the overrides are replaced.
    """
    cfg = default_config()
    if path is not None:
        with open(path, "r") as f:
            _deep_update(cfg, json.load(f))
    if overrides:
        _deep_update(cfg, copy.deepcopy(overrides))
    validate_config(cfg)
    return cfg


def validate_config(cfg):
    car = cfg["car"]
    mpc = cfg["mpc"]
    ctl = cfg["controller"]

    if int(mpc["N"]) < 3:
        raise ValueError(f"mpc.N must be >= 3, got {mpc['N']}")
    if mpc["dt"] <= 0:
        raise ValueError(f"mpc.dt must be positive, got {mpc['dt']}")
    if car["Lf"] <= 0:
        raise ValueError(f"car.Lf must be positive, got {car['Lf']}")
    if not 0 < car["max_steer_deg"] < 90:
        raise ValueError(f"car.max_steer_deg out of range: {car['max_steer_deg']}")
    if car["throttle_min"] >= car["throttle_max"]:
        raise ValueError("car.throttle_min must be below car.throttle_max")
    if ctl["latency_s"] < 0:
        raise ValueError(f"controller.latency_s must be >= 0, got {ctl['latency_s']}")
    if int(ctl["max_consecutive_failures"]) < 1:
        raise ValueError("controller.max_consecutive_failures must be >= 1")
    for key in ("w_cte", "w_epsi", "w_v", "w_delta", "w_a", "w_ddelta", "w_da"):
        if mpc[key] < 0:
            raise ValueError(f"mpc.{key} must be >= 0, got {mpc[key]}")
    return cfg
