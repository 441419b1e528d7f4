"""
Logging for the intake service and its reconcilers.

Every sync step logs with ``extra={"submission_id": ..., "target": ...}``
and every reconciler run with ``extra={"job_name": ...}``; request timing
adds the HTTP fields. Both formatters lift those attributes out of the
record so one submission can be followed from intake through its mirror
writes, registration and status backfill.

    LOG_FORMAT=json|console   (default: json when APP_ENV is "production")
    LOG_LEVEL=DEBUG|INFO|...  (default: INFO in production, DEBUG otherwise)
"""

import json
import logging
import os
import sys
import time

# Sync context: which submission, which destination, which job
SYNC_FIELDS = ("submission_id", "target", "job_name", "triggered_by")
# Request context, set by the timing middleware
REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr")

# Third-party loggers and the level they are capped at
_LIBRARY_LEVELS = {
    "apscheduler": logging.WARNING,
    "googleapiclient.discovery_cache": logging.ERROR,
    "google.auth": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "urllib3": logging.WARNING,
    "werkzeug": logging.WARNING,
}

_HANDLER_NAME = "fieldsync"


def _collect(record: logging.LogRecord, names) -> dict:
    return {name: getattr(record, name) for name in names if getattr(record, name, None) is not None}


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line, sync and request context nested under their own keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
                  + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        sync = _collect(record, SYNC_FIELDS)
        if sync:
            entry["sync"] = sync
        http = _collect(record, REQUEST_FIELDS)
        if http:
            entry["http"] = http
        if record.exc_info and record.exc_info[0] is not None:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Single-line text for local runs: ``12:00:01 INFO  logger [sub=1a2b3c4d target=mirror_fs] msg``."""

    LEVEL_COLORS = {
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[41m",
    }

    def __init__(self, color: bool = False):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<5}"
        if self.color and record.levelname in self.LEVEL_COLORS:
            level = f"{self.LEVEL_COLORS[record.levelname]}{level}\033[0m"

        tags = []
        submission_id = getattr(record, "submission_id", None)
        if submission_id:
            tags.append(f"sub={str(submission_id)[:8]}")
        for name in ("target", "job_name"):
            value = getattr(record, name, None)
            if value:
                tags.append(f"{'job' if name == 'job_name' else name}={value}")
        tag_str = f" [{' '.join(tags)}]" if tags else ""

        line = f"{time.strftime('%H:%M:%S', time.localtime(record.created))} {level} {record.name}{tag_str} {record.getMessage()}"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install the fieldsync handler on the root logger. Safe to call once per app."""
    is_production = app.config.get("APP_ENV") == "production"
    log_format = os.getenv("LOG_FORMAT", "json" if is_production else "console").lower()
    level_name = os.getenv("LOG_LEVEL", "INFO" if is_production else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    if log_format == "json":
        formatter = JsonLineFormatter()
    else:
        formatter = ConsoleFormatter(color=sys.stderr.isatty())

    root = logging.getLogger()
    # Replace only our own handler; test runners attach theirs to root too
    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)
    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(level)

    for name, cap in _LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(cap)
    app.logger.setLevel(level)

    if not app.config.get("TESTING", False):
        app.logger.info("Logging configured level=%s format=%s", level_name, log_format)
