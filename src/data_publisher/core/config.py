"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_STORE_BACKENDS = ("local", "s3")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )
    log_json: bool = Field(
        default=False,
        description="Emit console logs as serialized JSON",
    )

    # Remote store
    store_backend: str = Field(
        default="local",
        description="Remote store backend: 'local' (directory tree) or 's3' (S3-compatible object storage)",
    )
    store_root: str = Field(
        default="./store",
        description="Root directory for the local store backend",
    )

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in _STORE_BACKENDS:
            msg = f"store_backend must be one of {', '.join(_STORE_BACKENDS)}"
            raise ValueError(msg)
        return v

    # S3 / S3-compatible object storage
    s3_endpoint_url: str | None = Field(
        default=None,
        description="Custom endpoint URL for S3-compatible storage (e.g. Cloudflare R2, MinIO)",
    )
    s3_access_key_id: str | None = Field(
        default=None,
        description="S3 access key",
    )
    s3_secret_access_key: str | None = Field(
        default=None,
        description="S3 secret key",
    )
    s3_region: str = Field(
        default="auto",
        description="S3 region name",
    )
    s3_bucket: str | None = Field(
        default=None,
        description="S3 bucket name (required for the s3 backend)",
    )
    s3_prefix: str = Field(
        default="",
        description="Key prefix within the S3 bucket",
    )

    # Publishing
    require_checksum_cache: str = Field(
        default="bam,cram",
        description="Comma-separated file suffixes that must ship with a precomputed .md5 cache file",
    )
    max_errors: int | None = Field(
        default=None,
        description="Maximum per-file errors tolerated per publish before remaining batches are abandoned",
        ge=0,
    )
    max_workers: int = Field(
        default=1,
        description="Concurrent uploads within one destination batch",
        gt=0,
        le=32,
    )
    restart_file: str | None = Field(
        default=None,
        description="Default restart file recording published files for idempotent reruns",
    )

    @property
    def require_checksum_cache_list(self) -> list[str]:
        """Parse the checksum cache suffix string into a list of lower-case suffixes.

        Returns:
            Suffixes without leading dots.
        """
        if not self.require_checksum_cache.strip():
            return []
        return [s.strip().lstrip(".").lower() for s in self.require_checksum_cache.split(",") if s.strip()]

    @property
    def restart_file_path(self) -> Path | None:
        """Return the default restart file as a Path, or None."""
        return Path(self.restart_file) if self.restart_file else None


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
