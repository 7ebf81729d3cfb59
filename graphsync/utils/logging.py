from __future__ import annotations

import datetime as dt
import json
import logging
from pathlib import Path
from typing import Any, Dict

# attributes every LogRecord carries; anything else arrived through ``extra=``
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", logging.NOTSET, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "taskName",
}


class JsonFormatter(logging.Formatter):
    """One JSON object per record: time, level, logger, event name, then any extras."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        created = dt.datetime.fromtimestamp(record.created, tz=dt.timezone.utc)
        payload: Dict[str, Any] = {
            "time": created.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, value) for key, value in vars(record).items() if key not in _STANDARD_ATTRS
        )
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(log_dir: Path, level: int = logging.INFO, filename: str = "graphsync.log") -> Path:
    """Route the root logger to ``<log_dir>/<filename>`` and stderr, both as JSON lines."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / filename
    formatter = JsonFormatter()
    handlers = [logging.FileHandler(log_path, encoding="utf-8"), logging.StreamHandler()]
    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    return log_path


__all__ = ["JsonFormatter", "setup_logging"]
