"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/citycare"

    # API settings
    api_prefix: str = "/api"
    frontend_url: str = "http://localhost:5173"
    port: int = 5000
    rate_limit_per_minute: int = Field(default=60, ge=1)

    # Media uploads
    upload_dir: str = "uploads"
    max_upload_bytes: int = 50 * 1024 * 1024
    max_images: int = 5
    max_videos: int = 2

    # Notifications
    notification_limit: int = Field(default=50, ge=1)

    # Authorization
    enforce_admin_role: bool = False
    admin_emails_str: str = Field(default="", alias="ADMIN_EMAILS")

    @property
    def admin_emails(self) -> set[str]:
        """Parse the comma-separated admin allow-list."""
        return {
            email.strip().lower()
            for email in self.admin_emails_str.split(",")
            if email.strip()
        }

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.frontend_url.split(",") if origin.strip()]

    # Environment
    environment: Literal["development", "test", "production"] = "development"
    debug: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
