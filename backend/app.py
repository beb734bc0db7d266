"""
TTB Signals FastAPI Backend
Serves the latest technical analysis artifacts produced by the daily job.

Production features:
- Health check with artifact source status
- Request correlation IDs for log tracing
- Structured JSON logging
- Rate limiting
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import uvicorn

from api.routes import router as api_router, get_artifact_source
from api.middleware import (
    StructuredFormatter,
    correlation_id_middleware,
    configure_structured_logging,
    limiter,
    rate_limit_exceeded_handler,
)
from api.health import APP_VERSION, SERVICE_NAME, build_health_response, mark_startup
from api.models import StatusResponse
from config.settings import get_settings
from services.logging_service import configure_file_logging, prune_log_files

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    """Configure logging and warm up the artifact source."""
    settings = get_settings()
    configure_structured_logging(settings.log_level)
    mark_startup()
    logger.info("%s starting up (env=%s)", SERVICE_NAME, settings.environment)

    # ── File logging ─────────────────────────────────────────────────────
    if settings.log_directory:
        try:
            log_file = configure_file_logging(
                settings.log_directory,
                retention_days=settings.log_retention_days,
                formatter=StructuredFormatter(),
            )
            pruned = prune_log_files(settings.log_directory, settings.log_retention_days)
            logger.info("Logging to %s (pruned %d old files)", log_file, pruned)
        except OSError:
            logger.warning("File logging could not be configured (non-blocking)", exc_info=True)

    # ── Artifact source warm-up ──────────────────────────────────────────
    try:
        source = get_artifact_source()
        health = source.health_check()
        if health.get("status") != "up":
            logger.warning("Artifact source %s is not ready: %s", source.name, health.get("error"))
    except Exception:
        logger.exception("Artifact source could not be initialized; the next request will try again")

    try:
        yield
    finally:
        logger.info("%s shut down", SERVICE_NAME)


app = FastAPI(
    title=SERVICE_NAME,
    description="Latest technical analysis signals and AI analysis per symbol and date",
    version=APP_VERSION,
    lifespan=_lifespan,
    openapi_tags=[
        {"name": "Technical Analysis", "description": "Daily signals and analysis artifacts"},
    ],
)

# ── Rate Limiter ─────────────────────────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Compress responses >= 500 bytes
app.add_middleware(GZipMiddleware, minimum_size=500)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# ── Correlation ID middleware (outermost - wraps everything) ─────────────────
@app.middleware("http")
async def _correlation_id(request: Request, call_next):
    return await correlation_id_middleware(request, call_next)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Keep the {"error": ...} body shape for failures outside the route handlers."""
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": SERVICE_NAME}


@app.get("/status", response_model=StatusResponse)
async def status():
    """
    Health check endpoint.
    Reports artifact source status and process uptime.
    """
    return build_health_response()


# Include API routes
app.include_router(api_router)


if __name__ == "__main__":
    uvicorn.run("app:app", host="127.0.0.1", port=8000, reload=get_settings().environment == "development")
