import logging
import pathlib
import sys

from config import load_config
from mpc_drive.load_track import load_track_from_csv, make_ellipse_track
from mpc_drive.simulate_car import run_mpc_simulation
from mpc_drive.utils import export_mpc_csv, plot_simulation_metrics, plot_trajectory, save_log_to_json

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# usage: python main.py [waypoints.csv] [overrides.json]
track_file = sys.argv[1] if len(sys.argv) > 1 else None
config_file = sys.argv[2] if len(sys.argv) > 2 else None

cfg = load_config(config_file)
track = load_track_from_csv(track_file) if track_file else make_ellipse_track()

out_dir = pathlib.Path("./results")
out_dir.mkdir(parents=True, exist_ok=True)

log, final_state = run_mpc_simulation(track, cfg, duration_s=60.0, debug_step=50)
save_log_to_json(log, out_dir / "log.json")
export_mpc_csv(log, out_dir / "mpc_log.csv")
plot_trajectory(log, track)
plot_simulation_metrics(log)
