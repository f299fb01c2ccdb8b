import logging
import logging.handlers
import sys
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


request_id_var: ContextVar[str] = ContextVar("request_id_var", default="")
user_id_var: ContextVar[str] = ContextVar("user_id_var", default="")

_HANDLER_MARK = "_storefront_chat_handler"


class ContextFilter(logging.Filter):

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("")  # type: ignore[attr-defined]
        record.user_id = user_id_var.get("")  # type: ignore[attr-defined]
        return True


class ContextFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        parts = [f"[{record.levelname}]"]
        request_id = getattr(record, "request_id", "")
        user_id = getattr(record, "user_id", "")
        if request_id:
            parts.append(f"[req {request_id[:8]}]")
        if user_id:
            parts.append(f"[user {user_id}]")

        formatted = f"{self.formatTime(record, self.datefmt)} {''.join(parts)} {record.name}:{record.lineno} - {record.getMessage()}"
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            formatted += "\n" + record.exc_text
        return formatted


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Attach stdout (and optionally rotating file) handlers to the package logger.

    Safe to call more than once; handlers are only installed the first time.
    """
    logger = logging.getLogger("storefront_chat")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if any(getattr(h, _HANDLER_MARK, False) for h in logger.handlers):
        return logger

    formatter = ContextFormatter(datefmt="%Y-%m-%d %H:%M:%S")
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(ContextFilter())
        setattr(handler, _HANDLER_MARK, True)
        logger.addHandler(handler)
    logger.propagate = False
    return logger


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag every HTTP request with an id, taken from X-Request-ID when the client sends one."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response
