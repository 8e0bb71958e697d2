"""
Structured JSON logging configuration for studio-storage.

- Uses python's logging + python-json-logger for structured logs.
- Provides request_id context via ContextVar; the API middleware sets it per request.
- Call configure_logging() once at startup.
"""
import logging
from contextvars import ContextVar
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

# Context var to carry request id across threadpool and async contexts
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="unknown")


class RequestIdFilter(logging.Filter):
    def filter(self, record):
        record.request_id = request_id_ctx.get()
        return True


def configure_logging(level: Optional[str] = None):
    root = logging.getLogger()
    if root.handlers:
        # already configured (uvicorn, pytest caplog, ...)
        return

    if level is None:
        from studio_storage.config import cfg
        level = cfg.STUDIO_LOG_LEVEL
    root.setLevel(str(level).upper())
    handler = logging.StreamHandler()
    fmt_fields = [
        "asctime", "levelname", "name", "message", "request_id", "module", "funcName", "lineno"
    ]
    formatter = JsonFormatter(fmt=" ".join(f"%({f})s" for f in fmt_fields))
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)


def set_request_id(request_id: str):
    request_id_ctx.set(request_id)
