"""
Logging utilities for KOT Printer.

- RequestIdFilter attaches request_id and path (when in a Flask request context)
- JsonFormatter emits structured logs when KOTPRINTER_JSON_LOGS=true
- configure_logging() initializes root logging with journald or console and
  integrates with Flask's logger
"""

from __future__ import annotations

import logging
import os


class RequestIdFilter(logging.Filter):
    """
    Attach request-scoped metadata (request_id, path) to log records.
    Safely degrades outside of a Flask request context (print jobs run in
    worker threads and event loops, not requests).
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            from flask import g, has_request_context, request  # lazy import

            record.request_id = g.request_id if has_request_context() and hasattr(g, "request_id") else "-"
            record.path = request.path if has_request_context() else "-"
        except Exception:
            record.request_id = "-"
            record.path = "-"
        return True


class JsonFormatter(logging.Formatter):
    """
    Minimal JSON formatter that includes timestamp, level, logger, message, request_id, and path.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        from json import dumps

        base = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        path = getattr(record, "path", None)
        if path is not None:
            base["path"] = path
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return dumps(base, ensure_ascii=False)


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure root logging for the application.

    Behavior:
    - Sets root logger level (KOTPRINTER_LOG_LEVEL overrides the argument)
    - Clears any existing handlers to avoid duplicates on reload
    - Chooses JSON or plain formatter based on KOTPRINTER_JSON_LOGS
    - Prefer systemd's JournalHandler, fallback to StreamHandler
    - Adds RequestIdFilter so formatters can reference %(request_id)s
    - Ensures Flask app logger propagates to root (no separate handlers)

    Returns the configured root logger.
    """
    root = logging.getLogger()
    env_level = os.environ.get("KOTPRINTER_LOG_LEVEL")
    if env_level:
        level = logging.getLevelName(env_level.upper()) if not env_level.isdigit() else int(env_level)
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)

    # Avoid duplicate logs in dev reloads or repeated factory calls
    root.handlers = []

    json_logs = os.environ.get("KOTPRINTER_JSON_LOGS", "false").lower() in ("1", "true", "yes")
    formatter: logging.Formatter
    if json_logs:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("[%(asctime)s] %(levelname)s %(request_id)s %(name)s: %(message)s")

    # Prefer systemd journal when available
    try:
        from systemd.journal import JournalHandler  # type: ignore

        handler: logging.Handler = JournalHandler()
        handler.setFormatter(formatter)
    except Exception:
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)

    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)

    flask_logger = logging.getLogger("flask.app")
    flask_logger.handlers = []
    flask_logger.propagate = True

    return root


__all__ = ["JsonFormatter", "RequestIdFilter", "configure_logging"]
