# src/flowdesk/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "flowdesk.log"

# httpx logs one INFO line per request; our client already logs the outcome.
_QUIET_LIBS = ("httpx", "httpcore")

# Modules whose results the console already shows as notices or replies.
# Their INFO lines would interleave with the prompt, so they stay in the file.
_FILE_ONLY_PREFIXES = ("flowdesk.api.", "flowdesk.tasks.")


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the interactive console readable.

    Session, startup and connector lines pass. Request traces and store or
    coordinator bookkeeping only reach the console at WARNING and above.
    Anything outside flowdesk (captured warnings included) needs ERROR.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name == "flowdesk" or name.startswith("flowdesk."):
            if name.startswith(_FILE_ONLY_PREFIXES):
                return record.levelno >= logging.WARNING
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/flowdesk",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Console handler on stderr plus a full log file at `<log_dir>/flowdesk.log`.

    Call once, before the first log line. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
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

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    for lib in _QUIET_LIBS:
        logging.getLogger(lib).setLevel(logging.WARNING)

    logging.captureWarnings(True)
    return log_file
