from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .paths import get_logs_dir

__all__ = ["JsonLogFormatter", "configure_json_logging", "level_from_name"]

LOG_FILENAME = "mediascanner.log.jsonl"

# attributes every LogRecord carries; anything else arrived through ``extra=``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_") or key in payload:
                continue
            try:
                json.dumps(value)
            except TypeError:
                value = repr(value)
            payload[key] = value
        return json.dumps(payload, ensure_ascii=False)


def _has_file_handler(logger: logging.Logger, log_path: Path) -> bool:
    target = str(log_path.resolve())
    return any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == target
        for handler in logger.handlers
    )


def configure_json_logging(
    working_dir: Path,
    name: str = "mediascanner",
    *,
    level: int = logging.INFO,
    console: bool = False,
) -> logging.Logger:
    """Attach the JSONL file handler (and optionally a stderr handler) to *name*."""

    logs_dir = get_logs_dir(working_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / LOG_FILENAME
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if not _has_file_handler(logger, log_path):
        handler = logging.FileHandler(log_path, encoding="utf-8")
        handler.setFormatter(JsonLogFormatter())
        logger.addHandler(handler)
    if console and not any(getattr(h, "_mediascanner_console", False) for h in logger.handlers):
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        stream._mediascanner_console = True  # type: ignore[attr-defined]
        logger.addHandler(stream)
    logger.propagate = False
    return logger


def level_from_name(value: Optional[str]) -> int:
    if not value:
        return logging.INFO
    resolved = logging.getLevelName(str(value).upper())
    return resolved if isinstance(resolved, int) else logging.INFO
