"""Command-line interface for the canard ground station."""

import argparse
import logging
import sys
from pathlib import Path

import numpy as np
import polars as pl

from canard.commands import GroundStation
from canard.config import load_sim_config
from canard.flightlog import load_flight_log, simulation_time_base
from canard.logging import configure_logging
from canard.protocol.wire import ReplayData

LOGGER = logging.getLogger(__name__)


class _ProgressPrinter:
    def on_progress(self, timestamp: int) -> None:
        print(f"  ... t = {timestamp / 1000.0:.2f} s", file=sys.stderr)

    def on_disconnect(self) -> None:
        print("Device disconnected", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="canard", description="Ground station for the canard apogee controller"
    )
    parser.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")
    parser.add_argument("--log-file", type=Path, default=None, help="Also log to this file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("status", help="Print the device configuration")

    download = subparsers.add_parser("download", help="Download the stored flight log")
    download.add_argument("path", type=Path, help="Destination CSV file")

    upload = subparsers.add_parser("upload-replay", help="Upload an actuator replay")
    upload.add_argument("path", type=Path, help="CSV with columns delay,angle")

    simulate = subparsers.add_parser("simulate", help="Run the offline flight simulation")
    simulate.add_argument("config", type=Path, help="Simulator configuration (JSON)")
    simulate.add_argument("--flight-log", type=Path, help="Re-simulate on a flight log's time base")
    simulate.add_argument("--duration", type=float, default=60.0, help="Uniform grid length [s]")
    simulate.add_argument("--step", type=float, default=0.01, help="Uniform grid step [s]")
    simulate.add_argument("--vx", type=float, default=0.0, help="Initial lateral velocity [m/s]")
    simulate.add_argument("--vz", type=float, default=0.0, help="Initial vertical velocity [m/s]")
    simulate.add_argument("--altitude", type=float, default=0.0, help="Initial altitude [m]")
    simulate.add_argument("--temperature", type=float, default=15.0, help="Ground temperature [C]")
    simulate.add_argument("--output", type=Path, help="Write the trajectory to this CSV")

    logs = subparsers.add_parser("logs", help="List flight logs, newest first")
    logs.add_argument("directory", type=Path)

    return parser


def _connect(station: GroundStation) -> bool:
    if station.connect():
        return True
    LOGGER.error("No flight controller found or it could not be opened")
    return False


def _status(station: GroundStation) -> int:
    if not _connect(station):
        return 1
    status = station.get_status()
    if not station.is_connected():
        return 1
    print(f"Flight log stored: {'yes' if status.has_data else 'no'}")
    for name, value in status.config.to_dict().items():
        print(f"{name:>10} = {value}")
    return 0


def _download(station: GroundStation, path: Path) -> int:
    if not _connect(station):
        return 1
    station.add_listener(_ProgressPrinter())
    written = station.download_telemetry(path)
    if written is None:
        return 1
    print(f"Wrote {written} frames to {path}")
    return 0


def _upload(station: GroundStation, path: Path) -> int:
    table = pl.read_csv(path, schema_overrides={"delay": pl.Int32, "angle": pl.Float64})
    steps = [
        ReplayData(delay=int(row["delay"]), angle=float(row["angle"]))
        for row in table.iter_rows(named=True)
    ]
    if not _connect(station):
        return 1
    if not station.upload_replay(steps):
        return 1
    print(f"Uploaded {len(steps)} replay steps")
    return 0


def _simulate(args: argparse.Namespace) -> int:
    config = load_sim_config(args.config)
    if args.flight_log is not None:
        times, counts = simulation_time_base(load_flight_log(args.flight_log))
    else:
        times = np.arange(0.0, args.duration + args.step / 2, args.step)
        counts = None

    result = GroundStation.run_simulation(
        config,
        times,
        counts,
        initial_vx=args.vx,
        initial_vz=args.vz,
        initial_altitude=args.altitude,
        temperature=args.temperature,
    )
    print(f"Samples: {len(result)}")
    print(f"Apogee:  {result.apogee:.1f} m")
    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        result.to_dataframe().write_csv(args.output)
        print(f"Trajectory written to {args.output}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.log_level, log_path=args.log_file)

    if args.command == "simulate":
        return _simulate(args)

    if args.command == "logs":
        for name in GroundStation.list_flight_logs(args.directory):
            print(name)
        return 0

    with GroundStation() as station:
        if args.command == "status":
            return _status(station)
        if args.command == "download":
            return _download(station, args.path)
        if args.command == "upload-replay":
            return _upload(station, args.path)

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
