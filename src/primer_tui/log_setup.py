"""File logging for the TUI; the terminal belongs to curses while it runs."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

DEFAULT_LOG_DIR = "logs"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def log_file_path(log_dir: Path | str, now: datetime | None = None) -> Path:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return Path(log_dir) / f"tui_{stamp}.log"


def configure_logging(debug: bool = False, log_dir: Path | str = DEFAULT_LOG_DIR, now: datetime | None = None) -> Path:
    """Point the root logger at a fresh timestamped file and return its path.

    Raises ``OSError`` when the directory or file cannot be created.
    """

    path = log_file_path(log_dir, now)
    path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=path,
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        force=True,
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger(__name__).info("log file created path=%s", path)
    return path
