"""
API Data Models and Contracts.
Defines Pydantic models for request/response validation.
"""
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Response Models
# ============================================================================

class StatusResponse(BaseModel):
    """Backend status response."""
    status: str = Field(..., description="Service status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    uptime_seconds: float = Field(..., description="Process uptime in seconds")
    started_at: str = Field(..., description="Process start time (UTC, ISO 8601)")
    timestamp: str = Field(..., description="Response time (UTC, ISO 8601)")
    checks: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="Per-subsystem status")


class TechnicalAnalysisResponse(BaseModel):
    """Latest signals and analysis artifacts for a symbol and date."""
    model_config = ConfigDict(populate_by_name=True)

    technical_data: Any = Field(..., alias="technicalData", description="Parsed signals artifact")
    gemini_analysis: Optional[Any] = Field(
        None,
        alias="geminiAnalysis",
        description="Parsed analysis artifact, null when none has been produced yet",
    )


class RefreshResponse(TechnicalAnalysisResponse):
    """Result of an explicit refresh."""
    success: bool = Field(True, description="Whether the refresh succeeded")


class ErrorResponse(BaseModel):
    """Error body used by the artifact endpoints."""
    error: str = Field(..., description="Error message")
    success: Optional[bool] = Field(None, description="Present on refresh responses")


# ============================================================================
# Request Models
# ============================================================================

class RefreshRequest(BaseModel):
    """Refresh request. Missing fields fall back to the configured defaults."""
    symbol: Optional[str] = Field(None, description="Ticker symbol", max_length=64)
    date: Optional[str] = Field(None, description="Calendar date, YYYY-MM-DD", max_length=32)
