"""
Structured Logging Infrastructure

JSON lines in production, a readable one-line format in DEBUG. Two context
values ride along on every record emitted while they are set:

- correlation_id: one per HTTP request (see CorrelationIdMiddleware), so the
  token exchange, order fetch and store write of a delivery can be joined
- platform: the delivery platform whose webhook is being processed
"""
import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Iterator

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
platform_var: ContextVar[str] = ContextVar("platform", default="")

_QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "sqlalchemy.engine")


class JSONFormatter(logging.Formatter):
    """One JSON object per record"""

    def __init__(self, app_name: str | None = None) -> None:
        super().__init__()
        self.app_name = app_name

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if self.app_name:
            entry["app"] = self.app_name

        for key, var in (("correlation_id", correlation_id_var), ("platform", platform_var)):
            value = var.get()
            if value:
                entry[key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            entry["extra"] = extra_data

        return json.dumps(entry, ensure_ascii=False, default=str)


class ContextFilter(logging.Filter):
    """Copies the context values onto the record for the text format"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or "-"
        record.platform = platform_var.get() or "-"
        return True


class StructuredLogger(logging.Logger):
    """Logger whose level methods accept ``extra_data={...}``"""

    def _log_with_extra(
        self,
        level: int,
        msg: str,
        args: tuple,
        extra_data: dict[str, Any] | None,
        **kwargs: Any,
    ) -> None:
        if not self.isEnabledFor(level):
            return
        if extra_data:
            kwargs["extra"] = {**kwargs.get("extra", {}), "extra_data": extra_data}
        # skip this helper and the level method when resolving funcName/lineno
        kwargs.setdefault("stacklevel", 3)
        self._log(level, msg, args, **kwargs)

    def debug(self, msg: str, *args: Any, extra_data: dict[str, Any] | None = None, **kwargs: Any) -> None:
        self._log_with_extra(logging.DEBUG, msg, args, extra_data, **kwargs)

    def info(self, msg: str, *args: Any, extra_data: dict[str, Any] | None = None, **kwargs: Any) -> None:
        self._log_with_extra(logging.INFO, msg, args, extra_data, **kwargs)

    def warning(self, msg: str, *args: Any, extra_data: dict[str, Any] | None = None, **kwargs: Any) -> None:
        self._log_with_extra(logging.WARNING, msg, args, extra_data, **kwargs)

    def error(self, msg: str, *args: Any, extra_data: dict[str, Any] | None = None, **kwargs: Any) -> None:
        self._log_with_extra(logging.ERROR, msg, args, extra_data, **kwargs)


logging.setLoggerClass(StructuredLogger)


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    app_name: str = "food-delivery-integration"
) -> None:
    """
    Configure the root logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL (any case)
        json_format: JSON lines; False gives the human-readable format
        app_name: added to every JSON record
    """
    numeric_level = getattr(logging, level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    if json_format:
        handler.setFormatter(JSONFormatter(app_name=app_name))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | [%(correlation_id)s %(platform)s] | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        handler.addFilter(ContextFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(numeric_level)
    root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current context; generates one if empty"""
    cid = correlation_id or generate_correlation_id()
    correlation_id_var.set(cid)
    return cid


def get_correlation_id() -> str:
    """Current correlation ID, generating and persisting one if not set"""
    cid = correlation_id_var.get()
    if not cid:
        cid = set_correlation_id()
    return cid


@contextmanager
def bind_platform(platform: str) -> Iterator[None]:
    """Tag every record logged inside the block with ``platform``"""
    token = platform_var.set(platform)
    try:
        yield
    finally:
        platform_var.reset(token)


def get_logger(name: str) -> StructuredLogger:
    return logging.getLogger(name)  # type: ignore[return-value]


def log_async_operation(operation_name: str):
    """
    Time an outbound call.

    DEBUG on start, INFO on completion, WARNING on failure (the exception is
    re-raised untouched; the caller decides how bad it is).
    """
    def decorator(func):
        logger = get_logger(func.__module__)

        @wraps(func)
        async def wrapper(*args, **kwargs):
            started = time.monotonic()

            def _elapsed() -> float:
                return round(time.monotonic() - started, 4)

            logger.debug(
                f"Starting {operation_name}",
                extra_data={"operation": operation_name, "status": "started"}
            )
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.warning(
                    f"Failed {operation_name}: {e}",
                    extra_data={
                        "operation": operation_name,
                        "status": "failed",
                        "duration_seconds": _elapsed(),
                        "error_type": type(e).__name__,
                    },
                )
                raise

            logger.info(
                f"Completed {operation_name}",
                extra_data={
                    "operation": operation_name,
                    "status": "completed",
                    "duration_seconds": _elapsed(),
                }
            )
            return result

        return wrapper
    return decorator
