"""Application configuration."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from controle_api.constants.paths import DATA_DIR


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Controle de Empresas API"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"

    # Hosted backend (required - no defaults for security)
    supabase_url: str = Field(
        description="Base URL of the hosted backend. Must be set via environment variable."
    )
    supabase_anon_key: str = Field(min_length=1)
    supabase_service_role_key: str = Field(min_length=1)

    # Backup tuning
    backup_page_size: int = Field(default=1000, gt=0)
    backup_batch_size: int = Field(default=500, gt=0)

    # Batch provisioning (delays in seconds)
    provisioning_request_delay_seconds: float = 0.3
    provisioning_backoff_seconds: float = 0.5
    provisioning_max_attempts: int = Field(default=3, ge=1)
    identity_list_page_size: int = Field(default=1000, gt=0)
    identity_list_max_pages: int = Field(default=10, gt=0)

    # Local state (folder cache, auto-backup settings, history)
    data_dir: Path = DATA_DIR

    # Auto-backup job
    auto_backup_check_minutes: int = 60

    # CORS settings
    cors_origins: str = "http://localhost:3000"  # Comma-separated list

    # Trusted proxies for rate limiting (comma-separated IP/CIDR ranges)
    trusted_proxies: str = ""

    # Rate limiting settings (requests per minute)
    rate_limit_default: int = 100
    rate_limit_backup_export: int = 5
    rate_limit_backup_restore: int = 2
    rate_limit_user_batch: int = 5
    rate_limit_user_create: int = 10

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Validate settings for security requirements."""
        if self.environment == "production" and self.debug:
            raise ValueError(
                "DEBUG mode cannot be enabled in production environment. "
                "This would expose API documentation and detailed error messages."
            )

        if not self.supabase_url.startswith(("http://", "https://")):
            raise ValueError("SUPABASE_URL must start with 'http://' or 'https://'")

        return self

    @property
    def state_file(self) -> Path:
        """Get the local state file path."""
        return self.data_dir / "local_state.json"

    @property
    def downloads_dir(self) -> Path:
        """Get the directory used when a backup falls back to a plain download."""
        return self.data_dir / "downloads"

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def trusted_proxies_list(self) -> list[str]:
        """Get trusted proxies as a list."""
        if not self.trusted_proxies:
            return []
        return [proxy.strip() for proxy in self.trusted_proxies.split(",") if proxy.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
