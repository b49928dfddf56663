"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables (or a .env file) with
sensible defaults. Variable names follow the deployment this gateway
replaced, so existing env files keep working:
- NODE_ENV, FILE_SERVER_URL, KEY1, MAX_FILE_SIZE_MB
- FILEBASE_BUCKET, FILEBASE_REGION, FILEBASE_ACCESS_KEY, FILEBASE_SECRET_KEY

Mock mode enables local development without a Filebase account.
"""

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Built once per process by get_settings() and injected everywhere else.
    """

    # API Configuration
    api_title: str = "CID Upload Gateway"
    api_version: str = "0.1.0"
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("environment", "node_env"),
        description="Runtime mode, echoed by / and /healthz."
    )
    api_key: str = Field(
        default="",
        validation_alias=AliasChoices("api_key", "key1"),
        description="Shared secret expected in the x-api-key header. Empty rejects every upload."
    )
    file_server_url: str = Field(
        default="http://localhost:5002",
        description="Public base URL used to build the fallback file_server_url link."
    )

    # Filebase (S3-compatible) Storage Configuration
    filebase_bucket: str = Field(
        default="",
        description="Bucket that receives uploads"
    )
    filebase_region: str = Field(
        default="us-east-1",
        description="Bucket region"
    )
    filebase_access_key: str = Field(
        default="",
        description="S3 access key ID"
    )
    filebase_secret_key: str = Field(
        default="",
        description="S3 secret access key"
    )
    filebase_endpoint_url: str = Field(
        default="https://s3.filebase.com",
        description="S3 endpoint. Any S3-compatible store that writes a cid metadata field works."
    )
    storage_mock_mode: bool = Field(
        default=False,
        description="Use an in-memory store instead of Filebase. Enables local dev without credentials."
    )
    mock_cid_after_lookups: int = Field(
        default=1,
        ge=1,
        description="Mock store only: metadata lookups an object needs before its CID appears."
    )

    # Upload Behavior
    max_file_size_mb: int = Field(
        default=100,
        description="Maximum upload size in MB."
    )
    cid_max_wait_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How long an upload request waits for the backend to assign a CID."
    )
    cid_max_attempts: Optional[int] = Field(
        default=None,
        ge=1,
        description="Optional cap on metadata lookups per upload. Unset means the time budget alone applies."
    )
    cid_poll_initial_delay_seconds: float = Field(
        default=0.5,
        gt=0,
        description="First delay between metadata lookups. Doubles after every miss."
    )
    cid_poll_max_delay_seconds: float = Field(
        default=4.0,
        gt=0,
        description="Upper bound for the delay between metadata lookups."
    )
    ipfs_gateway_url: str = Field(
        default="https://ipfs.filebase.io/ipfs",
        description="Gateway base for the gateway_url link returned with a CID."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def bucket_name(self) -> str:
        """Bucket used for uploads. Mock mode falls back to a fixed name."""
        if self.storage_mock_mode and not self.filebase_bucket:
            return "mock-bucket"
        return self.filebase_bucket

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on whether we're in mock mode.
        """
        missing = []

        if not self.api_key:
            missing.append("KEY1")

        # Storage only required if not in mock mode
        if not self.storage_mock_mode:
            if not self.filebase_bucket:
                missing.append("FILEBASE_BUCKET")
            if not self.filebase_access_key:
                missing.append("FILEBASE_ACCESS_KEY")
            if not self.filebase_secret_key:
                missing.append("FILEBASE_SECRET_KEY")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache means we only load settings once per process.
    For tests, call get_settings.cache_clear() or override the dependency.
    """
    return Settings()
