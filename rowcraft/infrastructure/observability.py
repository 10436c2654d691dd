"""Structured Logging — JSON output for rowcraft's statement and error logs.

Invariants:
    - Every line carries timestamp, level, logger name, and message
    - Statement logs from orm/execution.py carry `sql` and `model`; adapter
      failures add `operation` and `error_code`; association and delete
      warnings add `association` or `row_count`
    - fmt="json" emits one JSON object per line, anything else a plain text line

Design Decisions:
    - setup_logging is opt-in and returns its handler, so an application that
      embeds rowcraft can remove it again; importing rowcraft configures nothing
"""

import logging
import json
from datetime import datetime, timezone

EXTRA_FIELDS = (
    "model", "association", "sql", "row_count", "error_code", "operation",
)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with rowcraft's known extras lifted to the top level."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Handler:
    """Attach one handler to the root logger and return it."""
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
        ))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler
