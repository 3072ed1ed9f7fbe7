"""
Spike Server — Structured Logging
===================================

What:  Configures the process-wide logger from Settings (level + encoding).
How:   One stdout handler on the root logger with either a JSON formatter
       (one object per line, extra fields flattened in) or a console formatter.
       Two filters enrich every record:
       - ServiceFieldsFilter: service, version, env, pid
       - RequestContextFilter: request_id from the active request context
Who:   Called once by the application lifespan (and by `serve()` before uvicorn).
When:  Startup; re-running replaces the handler this module installed.

Log Format (JSON encoding):
    {"ts": "...", "level": "info", "logger": "spike.access", "msg": "http_access",
     "service": "spike-server", "version": "0.1.0", "env": "dev", "pid": 4242,
     "request_id": "5f0c...", "method": "GET", "path": "/healthz", ...}

Levels:
    debug | info | warn | error  →  DEBUG | INFO | WARNING | ERROR
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from spike.config import Settings
from spike.middleware.context import current_request_id

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

# Attributes every LogRecord carries; anything else arrived through `extra=`
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

_HANDLER_MARK = "_spike_handler"


class ServiceFieldsFilter(logging.Filter):
    """Stamps static service identity on every record."""

    def __init__(self, service: str, version: str, env: str):
        super().__init__()
        self.service = service
        self.version = version
        self.env = env
        self.pid = os.getpid()

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service
        record.version = self.version
        record.env = self.env
        record.pid = self.pid
        return True


class RequestContextFilter(logging.Filter):
    """Adds request_id from the active request unless the caller passed one explicitly."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "request_id", ""):
            rid = current_request_id()
            if rid:
                record.request_id = rid
        return True


def extra_fields(record: logging.LogRecord) -> dict:
    return {k: v for k, v in vars(record).items() if k not in _RESERVED and not k.startswith("_")}


class JSONFormatter(logging.Formatter):
    """One JSON object per line; exceptions render under "stack"."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(extra_fields(record))
        if record.exc_info:
            payload["stack"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable lines for local development."""

    def __init__(self):
        super().__init__("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = {k: v for k, v in extra_fields(record).items() if k not in {"service", "version", "env", "pid"}}
        if fields:
            line += " | " + " ".join(f"{k}={v}" for k, v in fields.items())
        return line


def setup_logging(settings: Settings) -> logging.Logger:
    """
    Configure the root logger for the given settings and return the app logger.

    Raises:
        ValueError: unknown level or encoding (Settings validation normally
                    catches both first)
    """
    if settings.log_level not in LEVELS:
        raise ValueError(f"unknown log level: {settings.log_level}")
    if settings.log_encoding == "json":
        formatter: logging.Formatter = JSONFormatter()
    elif settings.log_encoding == "console":
        formatter = ConsoleFormatter()
    else:
        raise ValueError(f"unknown log encoding: {settings.log_encoding}")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(ServiceFieldsFilter(settings.app_name, settings.app_version, settings.app_env))
    handler.addFilter(RequestContextFilter())
    setattr(handler, _HANDLER_MARK, True)

    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, _HANDLER_MARK, False):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(LEVELS[settings.log_level])

    # Silence noisy third-party loggers; the AccessLog stage replaces uvicorn's
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger("spike")
