"""
Health check endpoint.

Reports subsystem status instead of a static response. The only subsystem
is the artifact source; the check never downloads artifacts.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict

logger = logging.getLogger(__name__)

# Track startup time for uptime reporting
_startup_time: float = time.monotonic()
_startup_utc: str = datetime.now(timezone.utc).isoformat()

APP_VERSION = "0.1.0"
SERVICE_NAME = "TTB Signals API"


def mark_startup() -> None:
    """Call once at startup to record the process start time."""
    global _startup_time, _startup_utc
    _startup_time = time.monotonic()
    _startup_utc = datetime.now(timezone.utc).isoformat()


def _check_artifact_source() -> Dict[str, Any]:
    try:
        from api.routes import get_artifact_source
        return get_artifact_source().health_check()
    except Exception as exc:
        logger.warning("Artifact source health check failed", exc_info=True)
        return {"status": "down", "source": "unknown", "error": str(exc)[:200]}


def build_health_response() -> Dict[str, Any]:
    """
    Build the health check payload.

    Returns a dict with:
      status: "healthy" | "degraded" | "unhealthy"
      checks: per-subsystem status
      uptime_seconds: process uptime
      version: app version
    """
    checks: Dict[str, Dict[str, Any]] = {
        "artifact_source": _check_artifact_source(),
    }

    source_status = checks["artifact_source"].get("status")
    if source_status == "down":
        status = "unhealthy"
    elif source_status != "up":
        status = "degraded"
    else:
        status = "healthy"

    return {
        "status": status,
        "service": SERVICE_NAME,
        "version": APP_VERSION,
        "uptime_seconds": round(time.monotonic() - _startup_time, 1),
        "started_at": _startup_utc,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
