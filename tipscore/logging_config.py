"""Logging setup for the batch jobs.

Each job run gets a short run id. ``setup_logging`` attaches a
``RunContextFilter`` to every handler it installs, so any record that leaves
through them carries ``run_id`` and ``job`` without callers passing
``extra``. Both the text and the JSON formats print the pair, which lets one
price tick be followed from the quote fetch through to the score recompute.

Usage:
    run_id = setup_logging("update_prices", structured=True)
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import uuid
from pathlib import Path

LOG_DIR = Path(__file__).resolve().parent.parent / "data" / "logs"

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(job)s %(run_id)s] %(name)s: %(message)s"


class RunContextFilter(logging.Filter):
    """Stamp run_id and job on records that don't already carry them."""

    def __init__(self, run_id: str, job: str) -> None:
        super().__init__()
        self.run_id = run_id
        self.job = job

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "run_id", ""):
            record.run_id = self.run_id
        if not getattr(record, "job", ""):
            record.job = self.job
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line; tip context from ``extra`` is copied when present."""

    CONTEXT_FIELDS = ("tip_id", "creator_id", "symbol", "exchange")

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "job": getattr(record, "job", ""),
            "run_id": getattr(record, "run_id", ""),
            "msg": record.getMessage(),
        }
        for key in self.CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _structured_from_env() -> bool:
    return os.environ.get("STRUCTURED_LOGGING", "").lower() in ("true", "1")


def setup_logging(
    job: str = "tipscore",
    *,
    structured: bool = False,
    log_dir: Path | str | None = None,
    level: int = logging.INFO,
) -> str:
    """Configure the root logger for one job run and return its run id.

    Console output is always text. The file handler writes ``<job>.log`` in
    ``log_dir`` (default data/logs/), rotated at midnight and kept 30 days,
    as JSON when ``structured`` or STRUCTURED_LOGGING is set.
    """
    run_id = uuid.uuid4().hex[:12]
    log_path = Path(log_dir) if log_dir else LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    # 前回の run のハンドラを閉じてから差し替える
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(TEXT_FORMAT))

    file_handler = logging.handlers.TimedRotatingFileHandler(
        log_path / f"{job}.log",
        when="midnight",
        backupCount=30,
        encoding="utf-8",
    )
    if structured or _structured_from_env():
        file_handler.setFormatter(JSONFormatter())
    else:
        file_handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    context = RunContextFilter(run_id, job)
    for handler in (console, file_handler):
        handler.addFilter(context)
        root.addHandler(handler)

    return run_id
