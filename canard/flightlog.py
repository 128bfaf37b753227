"""Flight log persistence: CSV sink for downloaded telemetry and the log catalog.

A flight log is a CSV file with a header row and one row per telemetry
``Frame``, columns in wire field order.

Example:
    >>> from canard.flightlog import CsvFrameSink, list_flight_logs, load_flight_log
    >>>
    >>> with CsvFrameSink("logs/flight_03.csv") as sink:
    ...     sink.write(frames)
    >>> list_flight_logs("logs")
    ['flight_03', 'flight_02', 'flight_01']
    >>> times, counts = simulation_time_base(load_flight_log("logs/flight_03.csv"))
"""

import logging
from pathlib import Path
from typing import Sequence

import numpy as np
import polars as pl
from beartype import beartype
from numpy.typing import NDArray

from canard.protocol.wire import Frame
from canard.typecheck import TOWER

logger = logging.getLogger(__name__)

_INTEGER_COLUMNS = {"time", "state", "sample_count"}

FRAME_SCHEMA = {
    name: (pl.UInt32 if name in _INTEGER_COLUMNS else pl.Float32)
    for name in Frame.columns()
}


# =============================================================================
# Sinks
# =============================================================================


def frames_to_dataframe(frames: Sequence[Frame]) -> pl.DataFrame:
    """Tabulate frames, one row each, columns in wire order."""
    columns = Frame.columns()
    rows = [[getattr(frame, name) for name in columns] for frame in frames]
    return pl.DataFrame(rows, schema=FRAME_SCHEMA, orient="row")


class CsvFrameSink:
    """Append frames to a CSV file as they arrive.

    Rows go to a ``.part`` file next to ``path``; ``close()`` moves it over
    ``path`` and ``discard()`` deletes it, so an interrupted download never
    replaces an existing log. The header is written with the first batch
    (or on close if no frame ever arrived).
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.partial_path = self.path.with_name(self.path.name + ".part")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.partial_path, "w", newline="", encoding="utf-8")
        self._header_written = False
        self.rows_written = 0

    def write(self, frames: Sequence[Frame]) -> None:
        if not frames:
            return
        text = frames_to_dataframe(frames).write_csv(
            include_header=not self._header_written
        )
        self._file.write(text)
        self._file.flush()
        self._header_written = True
        self.rows_written += len(frames)

    def close(self) -> None:
        if self._file.closed:
            return
        if not self._header_written:
            self._file.write(",".join(Frame.columns()) + "\n")
            self._header_written = True
        self._file.close()
        self.partial_path.replace(self.path)
        logger.info("Wrote %d telemetry rows to %s", self.rows_written, self.path)

    def discard(self) -> None:
        """Drop everything written so far and leave ``path`` untouched."""
        if self._file.closed:
            return
        self._file.close()
        self.partial_path.unlink(missing_ok=True)
        logger.info("Discarded partial flight log %s", self.partial_path)

    def __enter__(self) -> "CsvFrameSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.discard()


# =============================================================================
# Reading Logs
# =============================================================================


@beartype(conf=TOWER)
def load_flight_log(path: str | Path) -> pl.DataFrame:
    """Read a flight log written by ``CsvFrameSink``."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Flight log not found at {path}")
    return pl.read_csv(path, schema_overrides=FRAME_SCHEMA)


@beartype(conf=TOWER)
def simulation_time_base(
    log: pl.DataFrame,
) -> tuple[NDArray[np.float64], NDArray[np.int64]]:
    """Times [s] and per-sample control counts for re-simulating a flight."""
    times = log["time"].cast(pl.Float64).to_numpy() / 1000.0
    counts = log["sample_count"].cast(pl.Int64).to_numpy()
    return np.ascontiguousarray(times), np.ascontiguousarray(counts)


@beartype(conf=TOWER)
def list_flight_logs(directory: str | Path) -> list[str]:
    """Names (without extension) of the CSV logs in a directory, newest first."""
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Flight log directory not found at {directory}")
    logs = [p for p in directory.iterdir() if p.is_file() and p.suffix == ".csv"]
    logs.sort(key=lambda p: p.stat().st_ctime, reverse=True)
    return [p.stem for p in logs]
