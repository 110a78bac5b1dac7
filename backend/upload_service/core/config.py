"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support.

    ``aws_region`` and ``s3_bucket`` have no defaults: constructing the
    settings without them raises a validation error and the service refuses
    to start.
    """

    # App metadata
    app_name: str = Field(default="upload-service", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")

    # Environment
    env: str = Field(default="dev", description="Environment: dev|prod")
    host: str = Field(default="0.0.0.0", description="Server bind address")
    port: int = Field(default=8080, description="Server port")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format (json|text)")

    # Object store
    aws_region: str = Field(..., min_length=1, description="Region of the destination bucket")
    s3_bucket: str = Field(..., min_length=1, description="Destination bucket name")
    s3_endpoint_url: Optional[str] = Field(default=None, description="Custom endpoint for S3-compatible stores")
    object_key_prefix: str = Field(default="raw/", description="Logical prefix for generated object keys")
    upload_timeout_seconds: float = Field(default=30 * 60, gt=0, description="Ceiling for a single push")
    multipart_threshold_bytes: int = Field(default=5 * 1024 * 1024, ge=5 * 1024 * 1024)
    multipart_chunk_bytes: int = Field(default=5 * 1024 * 1024, ge=5 * 1024 * 1024)

    # Spooling
    max_upload_bytes: int = Field(default=1 << 30, gt=0, description="Hard bound on request body size")
    spool_chunk_size: int = Field(default=32 * 1024, gt=0, description="Copy chunk size in bytes")
    spool_dir: Optional[str] = Field(default=None, description="Directory for temp files (system default if unset)")

    @property
    def is_dev(self) -> bool:
        return (self.env or "dev").lower() == "dev"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        frozen = True


@lru_cache
def get_settings() -> Settings:
    """Build the process-wide settings once, at startup."""
    return Settings()
