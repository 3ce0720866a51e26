import csv
import json

import matplotlib.pyplot as plt
import numpy as np


def save_log_to_json(log, out_file="results/log.json"):
    with open(out_file, 'w') as f:
        # 'indent' makes the JSON output more readable
        json.dump(log, f, indent=4, default=float)
    print(f"Log successfully saved to {out_file}")


def export_mpc_csv(log, out_file="results/driving_instructions.csv"):
    """
    Save the closed-loop log to CSV:
    time, position, heading, speed, steering, throttle, cte
    """
    with open(out_file, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow([
            "time_s",
            "x_m",
            "y_m",
            "psi_deg",
            "speed_mps",
            "steer_norm",
            "throttle",
            "cte_m",
            "held",
        ])

        for i in range(len(log["time"])):
            writer.writerow([
                log["time"][i],
                log["x"][i],
                log["y"][i],
                np.rad2deg(log["psi"][i]),
                log["v"][i],
                log["steer"][i],
                log["throttle"][i],
                log["cte"][i],
                int(log["held"][i]),
            ])

    print(f"CSV log saved to {out_file}")


# =========================================================
# ================== Plotting Functions ===================
# =========================================================

def plot_trajectory(log, track, show=True):
    fig, ax = plt.subplots(figsize=(7, 7))

    ax.plot(track.x_m, track.y_m, 'k--', linewidth=1, label="Waypoints")
    ax.plot(log["x"], log["y"], 'b-', linewidth=1.2, label="Car path")
    if log["x"]:
        ax.scatter(log["x"][0], log["y"][0], color='red', s=40, label="Start")

    ax.set_title("Closed-loop MPC run")
    ax.set_xlabel("x [m]")
    ax.set_ylabel("y [m]")
    ax.set_aspect("equal", "box")
    ax.grid(True)
    ax.legend()
    if show:
        plt.show()
    return fig


def plot_simulation_metrics(log, show=True):
    time = np.array(log["time"])
    v = np.array(log["v"])
    throttle = np.array(log["throttle"])
    steer = np.array(log["steer"])
    cte = np.array(log["cte"])

    fig, axs = plt.subplots(4, 1, figsize=(10, 12), sharex=True)

    # ---- 1. Speed ----
    axs[0].plot(time, v, label="Speed (m/s)", color='b')
    axs[0].set_ylabel("Speed (m/s)")
    axs[0].grid(True)
    axs[0].set_title("Vehicle Speed, Throttle, Steering, and Cross-Track Error")

    # ---- 2. Throttle ----
    axs[1].plot(time, throttle, label="Throttle", color='g')
    axs[1].set_ylabel("Throttle")
    axs[1].set_ylim([-1.05, 1.05])
    axs[1].grid(True)

    # ---- 3. Steering ----
    axs[2].plot(time, steer, label="Steer (normalized)", color='orange')
    axs[2].set_ylabel("Steer [-1, 1]")
    axs[2].set_ylim([-1.05, 1.05])
    axs[2].grid(True)

    # ---- 4. Cross-track error ----
    axs[3].plot(time, cte, label="CTE (m)", color='purple')
    axs[3].axhline(0.0, color='k', linewidth=0.8)
    axs[3].set_ylabel("CTE (m)")
    axs[3].grid(True)

    axs[3].set_xlabel("Time (s)")

    plt.tight_layout()
    if show:
        plt.show()
    return fig
