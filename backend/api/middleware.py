"""
Request plumbing shared by every endpoint: correlation IDs, JSON log
records carrying retrieval context, and the per-client rate limit.
"""
import json
import logging
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from config.settings import get_settings

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Passed with logger.<level>(..., extra={...}) by the retrieval code
LOG_CONTEXT_FIELDS = ("symbol", "date", "artifact_key", "category", "source")

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")

# Counters live in process memory. The limit string is read from settings
# each time it is evaluated, so TTB_RATE_LIMIT follows reset_settings().
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[lambda: get_settings().rate_limit],
    storage_uri="memory://",
)


def rate_limit_exceeded_handler(_request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"error": f"Rate limit exceeded: {exc.detail}"},
        headers={"Retry-After": "60"},
    )


def _access_log_level(path: str, status_code: int) -> int:
    if status_code >= 500:
        return logging.WARNING
    if path.startswith("/api/"):
        return logging.INFO
    return logging.DEBUG


async def correlation_id_middleware(request: Request, call_next) -> Response:
    """
    Tag the request with the caller's X-Request-ID (or a fresh one), echo it
    on the response and write one access line per request.

    Artifact lookups are logged at INFO, root and /status hits at DEBUG,
    and anything that ends in a 5xx at WARNING.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER, "").strip() or uuid.uuid4().hex[:16]
    token = request_id_ctx.set(request_id)
    started = time.monotonic()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        logger.log(
            _access_log_level(request.url.path, status_code),
            "%s %s -> %d in %.1fms",
            request.method,
            request.url.path,
            status_code,
            (time.monotonic() - started) * 1000,
        )
        request_id_ctx.reset(token)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with the request ID and any retrieval context."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = request_id_ctx.get()
        if request_id:
            payload["request_id"] = request_id
        for name in LOG_CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_structured_logging(log_level: str = "INFO") -> None:
    """Send JSON records to stderr at log_level; existing handlers switch to JSON too."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    if not any(type(handler) is logging.StreamHandler for handler in root.handlers):
        root.addHandler(logging.StreamHandler())
    formatter = StructuredFormatter()
    for handler in root.handlers:
        handler.setFormatter(formatter)
