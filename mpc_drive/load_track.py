import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from dataclasses import dataclass


@dataclass
class Track:
    s_m: np.ndarray
    x_m: np.ndarray
    y_m: np.ndarray
    heading_rad: np.ndarray
    length_m: float

    def __len__(self):
        return len(self.x_m)


def build_track(x_m, y_m) -> Track:
    x_m = np.asarray(x_m, dtype=float)
    y_m = np.asarray(y_m, dtype=float)
    if x_m.size != y_m.size:
        raise ValueError(f"x/y length mismatch: {x_m.size} != {y_m.size}")
    if x_m.size < 2:
        raise ValueError("a track needs at least 2 waypoints")

    # distance along track
    dx = np.diff(x_m)
    dy = np.diff(y_m)
    ds = np.sqrt(dx**2 + dy**2)
    s_m = np.concatenate(([0.0], np.cumsum(ds)))

    # heading: segment direction, averaged at interior points
    segment_heading = np.arctan2(dy, dx)  # N-1

    heading = np.zeros_like(x_m)
    heading[0] = segment_heading[0]
    heading[-1] = segment_heading[-1]
    if len(segment_heading) > 1:
        # average on the unit circle so +pi/-pi neighbours don't cancel
        heading[1:-1] = np.arctan2(
            np.sin(segment_heading[:-1]) + np.sin(segment_heading[1:]),
            np.cos(segment_heading[:-1]) + np.cos(segment_heading[1:]),
        )

    return Track(
        s_m=s_m,
        x_m=x_m,
        y_m=y_m,
        heading_rad=heading,
        length_m=float(s_m[-1]),
    )


def load_track_from_csv(file_path="lake_track_waypoints.csv", sep=",") -> Track:
    """
    Waypoint file with `x` and `y` columns, one waypoint per row
    (the simulator's lake_track_waypoints.csv layout).
    """
    df = pd.read_csv(file_path, sep=sep)
    df.columns = [c.strip().lower() for c in df.columns]
    if "x" not in df.columns or "y" not in df.columns:
        raise ValueError(f"{file_path}: expected 'x' and 'y' columns, got {list(df.columns)}")

    df = df.dropna(subset=["x", "y"])
    return build_track(df["x"].to_numpy(float), df["y"].to_numpy(float))


def make_ellipse_track(a_m=200.0, b_m=100.0, n_points=200) -> Track:
    """Counter-clockwise ellipse; waypoint windows wrap around to close it."""
    t = np.linspace(0.0, 2.0 * np.pi, n_points, endpoint=False)
    return build_track(a_m * np.cos(t), b_m * np.sin(t))


def nearest_index(track: Track, x, y):
    d2 = (track.x_m - x)**2 + (track.y_m - y)**2
    return int(np.argmin(d2))


def upcoming_waypoints(track: Track, x, y, n=6, behind=1):
    """
    The window of waypoints the simulator would send: starting `behind`
    points before the nearest waypoint and wrapping around the loop.
    """
    i0 = nearest_index(track, x, y) - behind
    idx = np.arange(i0, i0 + n) % len(track)
    return track.x_m[idx].copy(), track.y_m[idx].copy()


# =========================================================
# ================== Plotting Functions ===================
# =========================================================

def plot_track(track: Track, show_start=True, show=True):

    fig = plt.figure(figsize=(6, 6))
    plt.plot(track.x_m, track.y_m, linewidth=1.5)

    if show_start:
        plt.scatter(track.x_m[0], track.y_m[0], color="red")
        plt.text(track.x_m[0], track.y_m[0], " START", fontsize=8)

    plt.gca().set_aspect("equal", "box")
    plt.xlabel("x [m]")
    plt.ylabel("y [m]")
    plt.title("Reference Waypoints")
    plt.grid(True)
    if show:
        plt.show()
    return fig
