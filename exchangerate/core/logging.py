"""Structured JSON logging shared by the HTTP API, the CLI and the client.

Records carry the active request id (HTTP API only) plus any cache/upstream
context passed through ``extra=``.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional, TextIO

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

ROOT_LOGGER = "exchangerate"

# extra= fields copied into the JSON document when present
CONTEXT_FIELDS = ("cache_key", "backend", "endpoint", "status", "duration_ms")


def get_logger(area: str) -> logging.Logger:
    """Logger for one area of the package, e.g. ``get_logger("cache")``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{area}")


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.request_id = request_id_ctx.get() or "-"
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        doc: Dict[str, Any] = {
            "time": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                doc[field] = value
        if record.exc_info:
            doc["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(doc, ensure_ascii=False, default=str)


def init_logging(debug: bool = False, stream: Optional[TextIO] = None) -> None:
    """Install the JSON handler on the root logger.

    The CLI passes stderr so log lines never mix with command output on stdout.
    """
    root = logging.getLogger()
    root.handlers.clear()
    level = logging.DEBUG if debug else logging.INFO
    root.setLevel(level)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)


async def request_context_middleware(request, call_next):  # type: ignore
    token = request_id_ctx.set(uuid.uuid4().hex)
    logger = get_logger("request")
    started = time.perf_counter()
    try:
        response = await call_next(request)
        logger.info(
            "%s %s",
            request.method,
            request.url.path,
            extra={
                "status": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            },
        )
        response.headers["X-Request-ID"] = request_id_ctx.get() or ""
        return response
    finally:
        request_id_ctx.reset(token)
