"""
Application Settings and Configuration.

Loads configuration from environment variables and .env files.
Covers artifact source selection, storage credentials and HTTP behaviour.
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


ARTIFACT_SOURCE_GCS = "gcs"
ARTIFACT_SOURCE_LOCAL = "local"
ARTIFACT_SOURCES = {ARTIFACT_SOURCE_GCS, ARTIFACT_SOURCE_LOCAL}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables:
        TTB_ARTIFACT_SOURCE: Where artifacts are read from ("gcs" or "local")
        TTB_GCS_BUCKET: Bucket holding the daily analysis artifacts
        TTB_LOCAL_ARTIFACT_DIR: Root directory for the local artifact source
        TTB_DEFAULT_SYMBOL: Symbol used when a request does not name one
    """

    # Application Configuration
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Artifact source
    artifact_source: str = Field(default=ARTIFACT_SOURCE_GCS, alias="TTB_ARTIFACT_SOURCE")
    artifact_prefix_root: str = Field(default="daily", alias="TTB_ARTIFACT_PREFIX_ROOT")
    default_symbol: str = Field(default="RGTI", alias="TTB_DEFAULT_SYMBOL")

    # Google Cloud Storage
    gcs_bucket: str = Field(default="ttb-bucket1", alias="TTB_GCS_BUCKET")
    gcs_project: Optional[str] = Field(default=None, alias="GOOGLE_CLOUD_PROJECT")
    gcs_credentials_file: Optional[str] = Field(default=None, alias="TTB_GCS_CREDENTIALS_FILE")
    storage_timeout_seconds: float = Field(default=30.0, alias="TTB_STORAGE_TIMEOUT_SECONDS")

    # Local filesystem source
    # Unset means config.paths.default_artifact_directory(), resolved when the source is built
    local_artifact_dir: Optional[str] = Field(default=None, alias="TTB_LOCAL_ARTIFACT_DIR")

    # HTTP
    request_timeout_seconds: float = Field(default=60.0, alias="TTB_REQUEST_TIMEOUT_SECONDS")
    rate_limit: str = Field(default="120/minute", alias="TTB_RATE_LIMIT")
    cors_allowed_origins: str = Field(default="http://localhost:3000", alias="TTB_CORS_ALLOWED_ORIGINS")

    # Logging
    log_directory: Optional[str] = Field(default=None, alias="TTB_LOG_DIRECTORY")
    log_retention_days: int = Field(default=30, alias="TTB_LOG_RETENTION_DAYS")

    @field_validator("artifact_source")
    @classmethod
    def validate_artifact_source(cls, v: str) -> str:
        """Normalize source name and reject unknown backends."""
        normalized = str(v or "").strip().lower()
        if normalized not in ARTIFACT_SOURCES:
            raise ValueError(f"artifact source must be one of {sorted(ARTIFACT_SOURCES)}, got {v!r}")
        return normalized

    @field_validator("gcs_credentials_file", "local_artifact_dir", "log_directory")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank path settings as unset."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("artifact_prefix_root")
    @classmethod
    def strip_prefix_slashes(cls, v: str) -> str:
        return str(v or "").strip().strip("/")

    def cors_origins(self) -> list[str]:
        """Comma-separated CORS origins as a list."""
        return [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _settings
    _settings = None


def has_gcs_configuration(settings: Optional[Settings] = None) -> bool:
    """
    Check if a bucket is configured for the GCS artifact source.

    Args:
        settings: Settings to check, defaults to the process settings

    Returns:
        True if a non-empty bucket name is set
    """
    settings = settings or get_settings()
    return bool(settings.gcs_bucket and settings.gcs_bucket.strip())
