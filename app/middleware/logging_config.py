"""
Structured logging configuration.

- Development: human-readable colored format, tagged with the demande
  sequence number when a record carries one
- Production: JSON format (log aggregator compatible)
- Log level: controlled via LOG_LEVEL env variable

Records gain structured fields through ``extra=``:
    timing middleware   method, path, status_code, duration_ms, remote_addr, request_id
    lifecycle / service demande_id, sequence_number, status
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

REQUEST_FIELDS = ("method", "path", "status_code", "duration_ms", "remote_addr", "request_id")
DEMANDE_FIELDS = ("demande_id", "sequence_number", "status")


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with any request / demande fields present."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "line": record.lineno,
        }
        for key in REQUEST_FIELDS + DEMANDE_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line format for development."""

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        tag = getattr(record, "sequence_number", None)
        tag_str = f" [{tag}]" if tag else ""
        duration = getattr(record, "duration_ms", None)
        dur_str = f" [{duration:.0f}ms]" if duration is not None else ""
        base = (
            f"{color}{ts} {record.levelname:<8}{self.RESET} "
            f"{record.name}:{tag_str} {record.getMessage()}{dur_str}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def configure_logging(app):
    """
    Install a single stderr handler on the root logger.

    LOG_LEVEL defaults to INFO in production and DEBUG otherwise.
    Production uses JSONFormatter, development and testing ReadableFormatter.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    # Replaced, not appended: create_app runs more than once under tests
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if is_prod else "readable")
