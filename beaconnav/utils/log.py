"""
Logging for beaconnav.

Every module takes `logger = get_logger(__name__)`. Console output goes
through Rich. Runs of `beaconnav replay` and `beaconnav scan` also append
JSON lines to `replay.log` / `scan.log` in the working directory, so a
walked route (reached waypoints, lost signals, scan restarts and failed
restarts with their tracebacks) can be reviewed after the fact.
"""

import logging
import sys
import json
from pathlib import Path

from rich.logging import RichHandler

# commands whose runs are worth keeping a JSON log of
FILE_LOGGED_COMMANDS = ("replay", "scan")


class JSONFormatter(logging.Formatter):
    """
    Formatter that serializes log records to JSON.
    """
    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level":     record.levelname,
            "logger":    record.name,
            "message":   record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def get_logger(name: str, level: int | str = logging.INFO) -> logging.Logger:
    """
    Return a configured logger for the given name.

    Attaches:
    - a RichHandler for console output
    - when the command is 'replay' or 'scan', a FileHandler writing JSON logs
      to {cwd}/{command}.log

    Parameters
    ----------
    name
        Logger name (typically __name__).
    level
        Log level (int or string), defaults to INFO.

    Returns
    -------
    logging.Logger
        Configured logger instance.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        # Console via Rich
        console_handler = RichHandler(rich_tracebacks=True)
        console_handler.setLevel(level)
        logger.addHandler(console_handler)

        # File output for long-running commands, as structured JSON
        if len(sys.argv) > 1 and sys.argv[1] in FILE_LOGGED_COMMANDS:
            log_path = Path.cwd() / f"{sys.argv[1]}.log"
            file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(JSONFormatter())
            logger.addHandler(file_handler)

    return logger
