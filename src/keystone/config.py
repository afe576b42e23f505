"""Keystone application configuration via environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Global application settings loaded from environment / .env file."""

    # General
    keystone_env: str = "development"
    keystone_debug: bool = True
    keystone_api_key: str = "changeme-generate-a-real-key"
    keystone_cors_origins: str = "*"  # comma separated

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "keystone"
    postgres_password: str = "keystone_dev_password"
    postgres_db: str = "keystone"

    # Full SQLAlchemy URL; overrides the POSTGRES_* settings when set
    # (e.g. "sqlite+aiosqlite:///./keystone.db" for a local sandbox).
    database_url_override: str = Field(default="", validation_alias="DATABASE_URL")

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.keystone_cors_origins.split(",") if o.strip()]

    # Background scheduler
    keystone_scheduler_enabled: bool = True
    keystone_report_hour: int = 6  # UTC hour for scheduled report runs
    keystone_indicator_sweep_minutes: int = 60

    # Response planning
    default_response_effectiveness: int = 50

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
