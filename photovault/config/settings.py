"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

Mock mode enables local development without a real bucket.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# S3 rejects multipart parts smaller than this (except the last one)
MIN_MULTIPART_CHUNK_BYTES = 5 * 1024 * 1024


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like cors_origins), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "PhotoVault Storage API"
    api_version: str = "v1"

    # S3/R2 Storage Configuration
    s3_bucket_name: str = Field(
        default="photovault-media",
        description="Bucket holding every user's prefix"
    )
    s3_region: str = Field(
        default="eu-central-1",
        description="Bucket region. Also used to build object URLs."
    )
    s3_endpoint_url: Optional[str] = Field(
        default=None,
        description="Custom S3-compatible endpoint (R2, MinIO). None means AWS S3."
    )
    s3_access_key_id: str = Field(
        default="",
        description="Static access key. Leave empty to use session or default credentials."
    )
    s3_secret_access_key: str = Field(
        default="",
        description="Static secret key paired with s3_access_key_id"
    )
    s3_mock_mode: bool = Field(
        default=False,
        description="Use in-memory mock instead of a real bucket. Enables local dev without object storage."
    )

    # Cognito Identity Configuration
    cognito_identity_pool_id: str = Field(
        default="",
        description="Cognito Identity Pool issuing per-user credentials"
    )
    cognito_login_provider: str = Field(
        default="accounts.google.com",
        description="Logins map key for the federated ID token"
    )

    # Upload Behavior
    upload_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Per-item upload timeout applied by the batch coordinator"
    )
    upload_chunk_size_bytes: int = Field(
        default=8 * 1024 * 1024,
        ge=MIN_MULTIPART_CHUNK_BYTES,
        description="Multipart chunk size. Cancellation is checked at every chunk boundary."
    )
    object_extension: str = Field(
        default="jpg",
        description="Extension appended to every object key"
    )
    staging_dir: Optional[Path] = Field(
        default=None,
        description="Where staging copies of streaming sources live. None means the system temp dir."
    )
    account_state_path: Path = Field(
        default=Path.home() / ".photovault" / "account.json",
        description="Durable file holding the signed-in identity and its storage prefix"
    )

    # Accounting
    list_page_size: int = Field(
        default=1000,
        ge=1,
        le=1000,
        description="Objects requested per list call when computing statistics"
    )
    presigned_url_expiry_seconds: int = Field(
        default=3600,
        description="Lifetime of download URLs returned by the file listing"
    )
    required_role_marker: str = Field(
        default="PhotoUploaderCognitoRole",
        description="Substring the caller's role ARN must contain. Empty disables the role check."
    )
    identity_id_header: str = Field(
        default="X-Verified-Identity-Id",
        description="Header the signing gateway sets with the caller's verified identity id"
    )
    principal_arn_header: str = Field(
        default="X-Verified-Principal-Arn",
        description="Header the signing gateway sets with the caller's role ARN"
    )
    stats_endpoint_url: str = Field(
        default="",
        description="URL of the signed statistics endpoint used by the client"
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
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def public_base_url(self) -> str:
        """
        Base URL objects are addressed under.

        AWS uses virtual-hosted style; custom endpoints are path style
        because that is what we configure boto3 with for them.
        """
        if self.s3_endpoint_url:
            return f"{self.s3_endpoint_url.rstrip('/')}/{self.s3_bucket_name}"
        return f"https://{self.s3_bucket_name}.s3.{self.s3_region}.amazonaws.com"

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on whether we're in mock mode.
        """
        missing = []

        if not self.s3_mock_mode:
            if not self.s3_bucket_name:
                missing.append("S3_BUCKET_NAME")
            # static keys come in pairs
            if self.s3_access_key_id and not self.s3_secret_access_key:
                missing.append("S3_SECRET_ACCESS_KEY")
            if self.s3_endpoint_url and not self.s3_access_key_id:
                missing.append("S3_ACCESS_KEY_ID")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache means we only load settings once per process.
    For tests, call get_settings.cache_clear() to reset.
    """
    return Settings()
