"""Application configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables.

    Priority (highest to lowest):
    1. Environment variables (e.g. ``DEFAULT_SPANS='[7, 28]'``)
    2. .env file (for local development)
    3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Application
    # =========================================================================
    app_name: str = "Rolling Tally API"
    debug: bool = False

    # =========================================================================
    # Database
    # =========================================================================
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/tally",
        description="PostgreSQL connection URL",
    )

    # =========================================================================
    # CORS
    # =========================================================================
    cors_origins: list[str] = ["http://localhost:3000"]

    # =========================================================================
    # API Settings
    # =========================================================================
    api_v1_prefix: str = "/api/v1"

    # =========================================================================
    # Propagation
    # =========================================================================
    default_spans: list[int] = Field(
        default=[7, 28],
        description="Rolling-total window lengths used when none are given",
    )
    dedupe_tasks: bool = Field(
        default=True,
        description="Drop tasks already waiting in the work queue",
    )


settings = Settings()
