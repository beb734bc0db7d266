"""
API Routes.
Defines the technical analysis REST endpoints.
"""
import asyncio
import logging
import threading
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from config.paths import default_artifact_directory
from config.settings import Settings, get_settings, has_gcs_configuration, ARTIFACT_SOURCE_GCS
from services.artifact_source import (
    ArtifactSource,
    LocalArtifactSource,
    SourceConfigurationError,
    StorageError,
)
from services.technical_analysis import (
    ArtifactNotFound,
    ArtifactQuery,
    MalformedArtifact,
    RetrievalResult,
    TechnicalAnalysisService,
)

from .models import (
    ErrorResponse,
    RefreshRequest,
    RefreshResponse,
    TechnicalAnalysisResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)

FETCH_FAILED_MESSAGE = "Failed to fetch technical analysis"
REFRESH_FAILED_MESSAGE = "Failed to refresh data"

# Returns the artifact source; endpoints call it inside their error mapping
ArtifactSourceProvider = Callable[[], ArtifactSource]

# ============================================================================
# Artifact Source Initialization
# ============================================================================

_artifact_source_instance: Optional[ArtifactSource] = None
_state_lock = threading.RLock()


def build_artifact_source(settings: Settings) -> ArtifactSource:
    """
    Create the artifact source selected by configuration.

    Raises:
        SourceConfigurationError: The GCS source is selected without a bucket
    """
    if settings.artifact_source == ARTIFACT_SOURCE_GCS:
        if not has_gcs_configuration(settings):
            raise SourceConfigurationError("GCS artifact source selected but TTB_GCS_BUCKET is empty")
        from integrations.gcs_source import GCSArtifactSource
        return GCSArtifactSource(
            bucket_name=settings.gcs_bucket,
            project=settings.gcs_project,
            credentials_file=settings.gcs_credentials_file,
            timeout=settings.storage_timeout_seconds,
        )
    return LocalArtifactSource(settings.local_artifact_dir or default_artifact_directory())


def get_artifact_source() -> ArtifactSource:
    """
    Get or create the process-wide artifact source.

    Returns:
        Configured artifact source (GCS or local)
    """
    global _artifact_source_instance
    with _state_lock:
        if _artifact_source_instance is None:
            settings = get_settings()
            _artifact_source_instance = build_artifact_source(settings)
            logger.info("Artifact source initialized: %s", _artifact_source_instance.name)
        return _artifact_source_instance


def invalidate_artifact_source() -> None:
    """Drop the cached artifact source; the next request rebuilds it from settings."""
    global _artifact_source_instance
    with _state_lock:
        _artifact_source_instance = None


def get_source_provider() -> ArtifactSourceProvider:
    return get_artifact_source


async def _retrieve(
    source_provider: ArtifactSourceProvider,
    query: ArtifactQuery,
    settings: Settings,
) -> RetrievalResult:
    """Run the blocking retrieval off the event loop, bounded by the request timeout."""
    service = TechnicalAnalysisService(source_provider(), prefix_root=settings.artifact_prefix_root)
    return await asyncio.wait_for(
        asyncio.to_thread(service.fetch, query),
        timeout=settings.request_timeout_seconds,
    )


def _log_context(query: Optional[ArtifactQuery]) -> dict:
    if query is None:
        return {}
    return {"symbol": query.symbol, "date": query.date}


def _log_failure(query: Optional[ArtifactQuery], exc: Exception) -> None:
    """Log a retrieval failure with as much context as the error carries."""
    context = _log_context(query)
    where = f"symbol={query.symbol} date={query.date}" if query is not None else "before the query was built"
    if isinstance(exc, MalformedArtifact):
        logger.error(
            "Malformed artifact %s key=%s category=%s reason=%s",
            where,
            exc.key,
            exc.category.value,
            exc.reason,
            extra={**context, "artifact_key": exc.key, "category": exc.category.value},
        )
    elif isinstance(exc, StorageError):
        logger.error("Artifact storage failure %s: %s", where, exc, extra=context)
    elif isinstance(exc, SourceConfigurationError):
        logger.error("Artifact source is misconfigured %s: %s", where, exc, extra=context)
    elif isinstance(exc, asyncio.TimeoutError):
        logger.error("Artifact retrieval timed out %s", where, extra=context)
    else:
        logger.exception("Unexpected error retrieving artifacts %s", where, extra=context)


# ============================================================================
# Technical Analysis Endpoints
# ============================================================================

@router.get(
    "/api/technical-analysis",
    response_model=TechnicalAnalysisResponse,
    responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Technical Analysis"],
)
async def get_technical_analysis(
    symbol: Optional[str] = Query(None, description="Ticker symbol, defaults to the configured symbol"),
    date: Optional[str] = Query(None, description="Calendar date YYYY-MM-DD, defaults to today (UTC)"),
    source_provider: ArtifactSourceProvider = Depends(get_source_provider),
):
    """
    Get the latest signals and analysis artifacts for a symbol and date.
    """
    query = None
    try:
        settings = get_settings()
        query = ArtifactQuery.from_params(symbol, date, settings.default_symbol)
        result = await _retrieve(source_provider, query, settings)
    except ArtifactNotFound as e:
        logger.info("No artifacts symbol=%s date=%s: %s", query.symbol, query.date, e, extra=_log_context(query))
        return JSONResponse(status_code=404, content={"error": str(e)})
    except Exception as e:
        _log_failure(query, e)
        return JSONResponse(status_code=500, content={"error": FETCH_FAILED_MESSAGE})

    return TechnicalAnalysisResponse(
        technical_data=result.technical_data,
        gemini_analysis=result.gemini_analysis,
    )


@router.post(
    "/api/technical-analysis/refresh",
    response_model=RefreshResponse,
    responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Technical Analysis"],
)
async def refresh_technical_analysis(
    payload: Optional[RefreshRequest] = None,
    source_provider: ArtifactSourceProvider = Depends(get_source_provider),
):
    """
    Re-read the latest artifacts, e.g. after the producer has written a newer run.
    """
    payload = payload or RefreshRequest()
    query = None
    try:
        settings = get_settings()
        query = ArtifactQuery.from_params(payload.symbol, payload.date, settings.default_symbol)
        result = await _retrieve(source_provider, query, settings)
    except ArtifactNotFound as e:
        logger.info(
            "Refresh found no artifacts symbol=%s date=%s: %s",
            query.symbol,
            query.date,
            e,
            extra=_log_context(query),
        )
        return JSONResponse(status_code=404, content={"success": False, "error": str(e)})
    except Exception as e:
        _log_failure(query, e)
        return JSONResponse(status_code=500, content={"success": False, "error": REFRESH_FAILED_MESSAGE})

    logger.info("Refreshed technical analysis symbol=%s date=%s", query.symbol, query.date, extra=_log_context(query))
    return RefreshResponse(
        success=True,
        technical_data=result.technical_data,
        gemini_analysis=result.gemini_analysis,
    )
