"""
Structured logging service with correlation ID tracking.
Provides JSON-formatted logs for production observability.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any
from functools import lru_cache


# Context variable for request correlation ID
correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Get the current correlation ID from context."""
    return correlation_id_ctx.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """
    Set correlation ID for current context.
    Generates a new ID if none provided.
    """
    cid = correlation_id or str(uuid.uuid4())[:8]
    correlation_id_ctx.set(cid)
    return cid


class JSONFormatter(logging.Formatter):
    """
    Log formatter that emits one JSON object per record.

    Fields: timestamp, level, logger, message, correlation_id,
    source (module/function/line) and any extra keyword context.
    """

    RESERVED_ATTRS = {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "taskName",
    }

    def __init__(self, include_source: bool = True):
        super().__init__()
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        cid = get_correlation_id()
        if cid:
            log_data["correlation_id"] = cid

        if self.include_source:
            log_data["source"] = {
                "module": record.module,
                "function": record.funcName,
                "line": record.lineno,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {}
        for key, value in record.__dict__.items():
            if key not in self.RESERVED_ATTRS and not key.startswith("_"):
                try:
                    json.dumps(value)
                    extra[key] = value
                except (TypeError, ValueError):
                    # Decimal, UUID and datetime values end up here
                    extra[key] = str(value)

        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data)


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that accepts keyword context.

    Usage:
        logger = get_logger(__name__)
        logger.info("Trade settled", trade_id=trade.id, outcome="win")
    """

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        extra = kwargs.get("extra", {})

        cid = get_correlation_id()
        if cid:
            extra["correlation_id"] = cid

        for key, value in list(kwargs.items()):
            if key not in ("exc_info", "stack_info", "stacklevel", "extra"):
                extra[key] = value
                del kwargs[key]

        kwargs["extra"] = extra
        return msg, kwargs


@lru_cache(maxsize=128)
def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger by name."""
    return ContextLogger(logging.getLogger(name), {})


def setup_structured_logging(
    level: str = "INFO",
    json_output: bool = True,
    include_source: bool = True,
) -> None:
    """
    Configure root logging for the application.

    Args:
        level: Minimum log level
        json_output: Use JSON formatting (True for production)
        include_source: Include source file/line info
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_output:
        handler.setFormatter(JSONFormatter(include_source=include_source))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class RequestLoggingMiddleware:
    """
    ASGI middleware for request/response logging with correlation IDs.

    Assigns a correlation ID to each HTTP request (or reuses the incoming
    x-correlation-id header) and echoes it back on the response.
    """

    def __init__(self, app):
        self.app = app
        self.logger = get_logger("api.requests")

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            return await self.app(scope, receive, send)

        headers = dict(scope.get("headers", []))
        correlation_id = headers.get(b"x-correlation-id", b"").decode() or None
        correlation_id = set_correlation_id(correlation_id)

        method = scope.get("method", "UNKNOWN")
        path = scope.get("path", "/")

        start_time = datetime.now(timezone.utc)
        response_status = 0

        async def send_wrapper(message):
            nonlocal response_status
            if message["type"] == "http.response.start":
                response_status = message["status"]
                headers = list(message.get("headers", []))
                headers.append((b"x-correlation-id", correlation_id.encode()))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as e:
            self.logger.error(
                f"Request failed: {method} {path}",
                method=method,
                path=path,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            raise
        finally:
            duration_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
            log_level = logging.WARNING if response_status >= 400 else logging.INFO

            self.logger.log(
                log_level,
                f"Request completed: {method} {path} -> {response_status}",
                method=method,
                path=path,
                status=response_status,
                duration_ms=round(duration_ms, 2),
            )


def log_trade_event(
    event_type: str,
    trade_id: str,
    **kwargs: Any
) -> None:
    """
    Log a binary trade lifecycle event with standard fields.

    Args:
        event_type: trade_placed, trade_settled, double_settlement, ...
        trade_id: BinaryTrade id
        **kwargs: Additional event-specific data
    """
    logger = get_logger("trading.events")
    logger.info(
        f"Trade event: {event_type}",
        event_type=event_type,
        trade_id=trade_id,
        **kwargs
    )


def log_system_event(
    event_type: str,
    component: str,
    **kwargs: Any
) -> None:
    """
    Log a system-level event.

    Args:
        event_type: startup, shutdown, recovery, ...
        component: System component name
        **kwargs: Additional event data
    """
    logger = get_logger("system.events")
    logger.info(
        f"System event: {event_type}",
        event_type=event_type,
        component=component,
        **kwargs
    )


def log_security_event(
    event_type: str,
    user_id: str | None = None,
    **kwargs: Any
) -> None:
    """Log a security-related event such as a rejected token or foreign trade access."""
    logger = get_logger("security.events")
    logger.warning(
        f"Security event: {event_type}",
        event_type=event_type,
        user_id=user_id,
        **kwargs
    )
