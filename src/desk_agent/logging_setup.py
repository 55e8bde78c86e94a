# src/desk_agent/logging_setup.py

from __future__ import annotations

import logging
import os
import sys
import time
from datetime import date
from pathlib import Path

logger = logging.getLogger(__name__)


class _ConsoleNoiseFilter(logging.Filter):
    """
    Make interactive console usable:
    - allow most desk_agent logs
    - keep the background scheduler quiet on the console unless WARNING+
      (the console already prints task results itself)
    - suppress third-party noise unless ERROR+
    - suppress Python warnings (captured as 'py.warnings') unless ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name.startswith("desk_agent."):
            if name.startswith("desk_agent.tasks.timer_registry"):
                return record.levelno >= logging.WARNING
            return True

        if name == "py.warnings":
            return record.levelno >= logging.ERROR

        return record.levelno >= logging.ERROR


def log_file_for_day(log_dir: str | Path, day: date | None = None) -> Path:
    """One file per day: app-YYYY-MM-DD.log."""
    day = day or date.today()
    return Path(log_dir) / f"app-{day.isoformat()}.log"


def clean_old_logs(log_dir: str | Path, keep_days: int = 7) -> int:
    """Delete log files older than keep_days (by mtime). Returns the number removed."""
    log_dir = Path(log_dir)
    if not log_dir.is_dir():
        return 0

    max_age = max(0, int(keep_days)) * 24 * 60 * 60
    now = time.time()
    removed = 0

    for path in log_dir.glob("app-*.log"):
        try:
            if now - path.stat().st_mtime > max_age:
                path.unlink()
                removed += 1
                logger.info("Removed old log file %s", path.name)
        except OSError:
            logger.warning("Failed to remove old log file %s", path, exc_info=True)

    return removed


class DailyFileHandler(logging.FileHandler):
    """
    File handler writing to app-YYYY-MM-DD.log for the current local day.

    The day is checked on every record; on a new day the handler switches files
    and prunes files older than keep_days.
    """

    def __init__(self, log_dir: str | Path, *, keep_days: int = 7, encoding: str = "utf-8") -> None:
        self._log_dir = Path(log_dir)
        self._keep_days = keep_days
        self._day = date.today()
        super().__init__(str(log_file_for_day(self._log_dir, self._day)), encoding=encoding)

    def emit(self, record: logging.LogRecord) -> None:
        today = date.today()
        if today != self._day:
            self._switch_day(today)
        super().emit(record)

    def _switch_day(self, today: date) -> None:
        # Called with the handler lock held (Handler.handle).
        self._day = today
        if self.stream is not None:
            try:
                self.stream.flush()
            finally:
                self.stream.close()
                self.stream = None
        self.baseFilename = os.path.abspath(log_file_for_day(self._log_dir, today))
        clean_old_logs(self._log_dir, keep_days=self._keep_days)


def setup_logging(
    *,
    log_dir: str | Path = ".local/desk-agent/logs",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    keep_days: int = 7,
) -> None:
    """
    Configure logging with:
    - Console handler: readable + filtered for interactive use
    - File handler: full logs for debugging, one file per day

    Call this ONCE, very early (before first logger.info).
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    fh = DailyFileHandler(log_dir, keep_days=keep_days)
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    logging.captureWarnings(True)

    for noisy in ("httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    clean_old_logs(log_dir, keep_days=keep_days)
