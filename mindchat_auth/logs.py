"""Structured auth logging.

Every event is emitted through stdlib `logging` on the ``mindchat_auth.events``
logger with a numeric code (see `log_codes`). The record carries the full
entry as ``record.auth_event`` so formatters and tests can inspect it:

    {
      "timestamp": "...", "level": "WARNING", "code": 4005,
      "category": "supabase", "message": "...",
      "context": {"ip": ..., "method": ..., "path": ..., "request_id": ...},
      "metadata": {...}, "error": {"name": ..., "message": ..., "stack": ...}
    }

Production uses `JsonFormatter` (one JSON object per line), development uses
`PrettyFormatter` with ANSI colors. Stack traces are only attached in
development.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
import uuid
from typing import Any, Dict, Optional

from mindchat_auth.log_codes import event_category, event_level
from mindchat_auth.util.time import utcnow_iso


EVENT_LOGGER_NAME = "mindchat_auth.events"

_COLORS = {
    "reset": "\x1b[0m",
    "red": "\x1b[31m",
    "yellow": "\x1b[33m",
    "blue": "\x1b[34m",
    "magenta": "\x1b[35m",
    "cyan": "\x1b[36m",
    "gray": "\x1b[90m",
}

_LEVEL_COLORS = {
    logging.DEBUG: "gray",
    logging.INFO: "blue",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "magenta",
}


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:16]}"


class AuthLogger:
    """Emit coded auth events with bound request context."""

    def __init__(
        self,
        *,
        context: Optional[Dict[str, Any]] = None,
        include_stack: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._context: Dict[str, Any] = dict(context or {})
        self._include_stack = include_stack
        self._logger = logger or logging.getLogger(EVENT_LOGGER_NAME)

    @property
    def context(self) -> Dict[str, Any]:
        return dict(self._context)

    def child(self, **context: Any) -> "AuthLogger":
        merged = {**self._context, **{k: v for k, v in context.items() if v is not None}}
        return AuthLogger(context=merged, include_stack=self._include_stack, logger=self._logger)

    def _entry(
        self,
        code: int,
        message: str,
        context: Optional[Dict[str, Any]],
        metadata: Optional[Dict[str, Any]],
        error: Optional[BaseException],
    ) -> Dict[str, Any]:
        level = event_level(code)
        ctx = {**self._context, **{k: v for k, v in (context or {}).items() if v is not None}}
        ctx.setdefault("request_id", new_request_id())
        entry: Dict[str, Any] = {
            "timestamp": utcnow_iso(),
            "level": logging.getLevelName(level),
            "code": int(code),
            "category": event_category(code),
            "message": message,
            "context": ctx,
        }
        if metadata:
            entry["metadata"] = dict(metadata)
        if error is not None:
            err: Dict[str, Any] = {"name": type(error).__name__, "message": str(error)}
            if self._include_stack and error.__traceback__ is not None:
                err["stack"] = "".join(
                    traceback.format_exception(type(error), error, error.__traceback__)
                )
            entry["error"] = err
        return entry

    def log(
        self,
        code: int,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        entry = self._entry(code, message, context, metadata, None)
        self._logger.log(event_level(code), message, extra={"auth_event": entry})

    def log_error(
        self,
        code: int,
        message: str,
        error: BaseException,
        context: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        entry = self._entry(code, message, context, metadata, error)
        self._logger.log(event_level(code), message, extra={"auth_event": entry})


class JsonFormatter(logging.Formatter):
    """One JSON object per line. Non-event records get a minimal envelope."""

    def format(self, record: logging.LogRecord) -> str:
        entry = getattr(record, "auth_event", None)
        if entry is None:
            entry = {
                "timestamp": utcnow_iso(),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            }
        return json.dumps(entry, default=str, sort_keys=False)


class PrettyFormatter(logging.Formatter):
    """Human-readable console output for development."""

    def __init__(self, *, colors: bool = True) -> None:
        super().__init__()
        self._colors = colors

    def _c(self, name: str) -> str:
        return _COLORS[name] if self._colors else ""

    def format(self, record: logging.LogRecord) -> str:
        entry = getattr(record, "auth_event", None)
        color = self._c(_LEVEL_COLORS.get(record.levelno, "reset"))
        reset = self._c("reset")
        gray = self._c("gray")

        if entry is None:
            return f"{color}{record.levelname:<8}{reset} {record.name}: {record.getMessage()}"

        parts = [
            f"{color}[{entry['timestamp']}]{reset}",
            f"{color}{entry['level']:<8}{reset}",
            f"{self._c('cyan')}{entry['category'].upper():<10}{reset}",
            f"{gray}[{entry['code']}]{reset}",
            entry["message"],
        ]
        ip = entry.get("context", {}).get("ip")
        if ip:
            parts.append(f"{gray}({ip}){reset}")

        err = entry.get("error")
        if err:
            parts.append(f"\n{color}Error: {err['message']}{reset}")
            if err.get("stack"):
                parts.append(f"\n{gray}{err['stack']}{reset}")

        metadata = entry.get("metadata")
        if metadata:
            parts.append(f"\n{gray}Metadata: {json.dumps(metadata, indent=2, default=str)}{reset}")

        return " ".join(parts)


def setup_logging(level: str = "INFO", *, json_format: bool = False) -> None:
    """Configure the root logger for the API process."""
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if json_format else PrettyFormatter(colors=sys.stdout.isatty()))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(numeric_level)

    # Reduce noise from verbose libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
