"""Configuration management for the ingestion service."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # Source Configuration
    source_base_url: str = Field(default="https://www.fia.com")
    sources_file: Path = Field(default=Path("registry/sources.yaml"))
    user_agent: str = Field(default="regdocs-ingestion/1.0")

    # HTTP Configuration
    request_timeout: float = Field(default=30.0, gt=0)
    download_timeout: float = Field(default=300.0, gt=0)
    max_document_bytes: int = Field(default=50 * 1024 * 1024, gt=0)

    # Processing Configuration
    max_concurrent_documents: int = Field(default=4, ge=1, le=64)
    poll_interval: float = Field(default=300.0, gt=0)
    run_timeout: Optional[float] = Field(default=None, gt=0)
    ingestion_cron: str = Field(default="*/5 * * * *")

    # Retry Configuration
    max_retries: int = Field(default=3, ge=1, le=10)
    retry_backoff: float = Field(default=1.0, ge=0)
    retry_backoff_max: float = Field(default=30.0, ge=0)
    notify_max_retries: int = Field(default=5, ge=1, le=20)

    # Metadata Store Configuration
    database_url: str = Field(default="sqlite:///regdocs.db")
    database_echo: bool = Field(default=False)

    # Object Store Configuration
    s3_endpoint: str = Field(default="https://s3.us-east-1.amazonaws.com")
    s3_bucket: str = Field(default="regdocs")
    s3_region: str = Field(default="us-east-1")
    s3_access_key: str = Field(default="")
    s3_secret_key: str = Field(default="")
    s3_acl: Optional[str] = Field(default="public-read")
    s3_key_prefix: str = Field(default="")
    s3_public_url: Optional[str] = Field(default=None)

    # Rendering Configuration
    render_dpi: int = Field(default=110, ge=36, le=600)
    render_jpeg_quality: int = Field(default=85, ge=1, le=95)
    render_max_pages: int = Field(default=200, ge=1)

    # Notification Configuration
    inngest_app_id: str = Field(default="regdocs-ingestion")
    inngest_event_key: Optional[str] = Field(default=None)
    inngest_is_production: bool = Field(default=False)
    notification_event_name: str = Field(default="regdocs/document.ingested")

    # API Configuration
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_reload: bool = Field(default=False)

    @property
    def object_store_base_url(self) -> str:
        """Base URL objects are addressed under (path-style bucket)."""
        return f"{self.s3_endpoint.rstrip('/')}/{self.s3_bucket}"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
