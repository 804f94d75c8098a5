from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

# logger name -> file that gets a copy of its records
DEDICATED_LOGS = {
    "marketledger.sales": "sales.log",
    "marketledger.reports": "reports.log",
}


class JsonFormatter(logging.Formatter):
    """One JSON object per line: time, level, logger, message (+ exception)."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _handler(path: Path, level: int) -> RotatingFileHandler:
    fh = RotatingFileHandler(path, maxBytes=2_000_000, backupCount=5, encoding="utf-8")
    fh.setFormatter(JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    fh.setLevel(level)
    return fh


def attach_dedicated_logs(logs_dir: Path, level: int = logging.INFO) -> None:
    """Gives the sales and reports loggers their own files.

    A logger that already has a handler is left alone, so repeated calls do
    not duplicate lines.
    """
    for name, filename in DEDICATED_LOGS.items():
        logger = logging.getLogger(name)
        if logger.handlers:
            continue
        logger.addHandler(_handler(logs_dir / filename, level))
        logger.setLevel(level)


def setup_logging(logs_dir: Path, level: int = logging.INFO) -> None:
    logs_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        root.addHandler(_handler(logs_dir / "app.log", level))
        root.addHandler(_handler(logs_dir / "errors.log", logging.ERROR))

    attach_dedicated_logs(logs_dir, level)
