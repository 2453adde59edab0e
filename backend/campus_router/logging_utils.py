from __future__ import annotations

import contextvars
import logging
from pathlib import Path
from tempfile import gettempdir
from typing import Any

from pythonjsonlogger import jsonlogger

from .settings import settings

LOGGER_NAME = "campus_router"

# Fields stamped onto every record logged while a route request is being served.
_REQUEST_FIELDS: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "campus_router_request_fields",
    default=None,
)


class _RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        fields = _REQUEST_FIELDS.get()
        if fields:
            for key, value in fields.items():
                if not hasattr(record, key):
                    setattr(record, key, value)
        return True


def bind_request(request_id: str, **fields: Any) -> contextvars.Token[dict[str, Any] | None]:
    """Attach ``request_id`` (and any extra fields) to log lines emitted in this context.

    The context is copied into worker threads started with ``run_in_threadpool``,
    so warnings raised by the route search carry the id of the request that
    triggered them.
    """
    return _REQUEST_FIELDS.set({"request_id": request_id, **fields})


def reset_request(token: contextvars.Token[dict[str, Any] | None] | None) -> None:
    if token is None:
        return
    _REQUEST_FIELDS.reset(token)


def _parse_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _resolve_log_dir(configured_out_dir: str) -> Path | None:
    candidates = (
        Path(configured_out_dir) / "logs",
        Path.cwd() / "out" / "logs",
        Path(gettempdir()) / "campus-router" / "logs",
    )
    for log_dir in candidates:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            marker = log_dir / ".writetest"
            marker.touch(exist_ok=True)
            marker.unlink(missing_ok=True)
            return log_dir
        except OSError:
            continue
    return None


def get_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)

    # Prevent duplicate handlers (common with reloaders)
    if getattr(logger, "_configured", False):
        return logger

    logger.setLevel(_parse_level(settings.log_level))
    logger.propagate = False
    logger.addFilter(_RequestContextFilter())

    formatter = jsonlogger.JsonFormatter()

    sh = logging.StreamHandler()
    sh.setFormatter(formatter)
    logger.addHandler(sh)

    log_dir = _resolve_log_dir(settings.out_dir)
    if log_dir is not None:
        try:
            fh = logging.FileHandler(log_dir / "router.log.jsonl", encoding="utf-8")
            fh.setFormatter(formatter)
            logger.addHandler(fh)
        except OSError:
            pass

    logger._configured = True  # type: ignore[attr-defined]
    return logger


LOGGER: logging.Logger | None = None


def _logger() -> logging.Logger:
    global LOGGER
    if LOGGER is None:
        LOGGER = get_logger()
    return LOGGER


def log_event(event: str, **fields: Any) -> None:
    # Structured: event is message + a top-level key
    _logger().info(event, extra={"event": event, **fields})


def log_warning(event: str, **fields: Any) -> None:
    _logger().warning(event, extra={"event": event, **fields})
