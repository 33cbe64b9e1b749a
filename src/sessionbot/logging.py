from __future__ import annotations

import errno
import logging
import re
import sys
from typing import Any

import structlog

# Long unbroken base64 runs are almost always key material or session secrets.
SECRET_BLOB_RE = re.compile(r"[A-Za-z0-9+/=_-]{48,}")


def redact_secrets_processor(_, __, event_dict):
    """Processor to redact credential-looking blobs from log messages."""
    for key in ("event", "error"):
        value = event_dict.get(key)
        if not isinstance(value, str):
            continue
        redacted = SECRET_BLOB_RE.sub("[REDACTED]", value)
        if redacted != value:
            event_dict[key] = redacted
    return event_dict


class SafeStreamHandler(logging.StreamHandler):
    def handleError(self, record: logging.LogRecord) -> None:
        exc = sys.exc_info()[1]
        if isinstance(exc, BrokenPipeError):
            try:
                self.stream.close()
            except Exception:
                pass
            return
        if isinstance(exc, OSError) and exc.errno == errno.EPIPE:
            try:
                self.stream.close()
            except Exception:
                pass
            return
        super().handleError(record)


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


def bind_session(session_id: str, **extra: Any) -> None:
    structlog.contextvars.bind_contextvars(session_id=session_id, **extra)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


def setup_logging(*, debug: bool = False) -> None:
    """Configure structlog with console output and secret redaction."""

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_secrets_processor,
            structlog.dev.ConsoleRenderer(colors=True)
            if debug
            else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = SafeStreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[handler],
        force=True,
    )
