"""
Configuration module for the TTB Signals backend.

Provides settings management using pydantic-settings.
Supports loading from environment variables and .env files.
"""

from .settings import (
    Settings,
    get_settings,
    reset_settings,
    has_gcs_configuration,
    ARTIFACT_SOURCE_GCS,
    ARTIFACT_SOURCE_LOCAL,
)
from .paths import APP_IDENTIFIER, default_artifact_directory

__all__ = [
    "Settings",
    "get_settings",
    "reset_settings",
    "has_gcs_configuration",
    "ARTIFACT_SOURCE_GCS",
    "ARTIFACT_SOURCE_LOCAL",
    "APP_IDENTIFIER",
    "default_artifact_directory",
]
