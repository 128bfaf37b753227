"""Logging configuration helpers."""

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str = "INFO", *, log_path: Path | None = None) -> None:
    """Configure root logging handlers.

    Args:
        level: Log level name, e.g. "INFO"
        log_path: Optional file to mirror the console output into
    """
    logging.captureWarnings(True)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    logging.getLogger("serial").setLevel(logging.WARNING)
    logging.getLogger("numba").setLevel(logging.WARNING)
