"""
Application configuration using Pydantic Settings.

Automatically loads environment variables from .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "sqlite:///./integratepdf.db"
    auto_create_tables: bool = False

    # Debug flags
    sql_debug: bool = False
    debug: bool = False

    # AI extraction (OpenAI-compatible completion endpoint, Gemini by default)
    ai_api_key: str | None = None
    ai_base_url: str | None = "https://generativelanguage.googleapis.com/v1beta/openai/"
    ai_model: str = "gemini-2.5-flash"
    ai_input_mode: str = "file"  # "file" or "images"
    ai_max_pages: int = 10
    extraction_method: str = "gemini"
    extraction_mode: str = "sync"  # "sync" or "background"

    # Blob storage
    storage_backend: str = "local"  # "local" or "supabase"
    local_storage_dir: str = "./storage"
    storage_bucket: str = "documents"
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None

    # Identity provider
    identity_jwt_secret: str | None = None
    identity_jwt_public_key: str | None = None
    identity_jwt_issuer: str | None = None
    identity_jwt_audience: str | None = None
    webhook_signing_secret: str | None = None

    # Secrets at rest
    encryption_key: str | None = None

    # Google Sheets OAuth
    google_client_id: str | None = None
    google_client_secret: str | None = None
    google_redirect_uri: str | None = None
    app_url: str = "http://localhost:3000"

    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Upload limits
    max_upload_bytes: int = 10 * 1024 * 1024
    default_monthly_limit: int = 10

    # Rate limiting
    rate_limit_backend: str = "memory"  # "memory" or "redis"
    redis_url: str = "redis://localhost:6379/0"
    upload_rate_limit: int = 20
    upload_rate_window_seconds: int = 3600

    # Outbound HTTP
    http_timeout: float = 30.0

    model_config = SettingsConfigDict(
        # Load from .env file in the package directory
        env_file=Path(__file__).parent / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
        # Case insensitive environment variable names
        case_sensitive=False,
    )

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application configuration loaded from environment.
    """
    return Settings()
