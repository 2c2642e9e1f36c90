from __future__ import annotations

import re
from typing import Any, Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Database connection and pool settings.

    Either POSTGRES_URL is given, or the URL is assembled from POSTGRES_USER,
    POSTGRES_PASSWORD, POSTGRES_DB, POSTGRES_HOST and POSTGRES_PORT.
    """

    POSTGRES_URL: Optional[str] = Field(default=None, description="Full PostgreSQL connection URL")
    POSTGRES_USER: Optional[str] = Field(default=None)
    POSTGRES_PASSWORD: Optional[str] = Field(default=None)
    POSTGRES_DB: Optional[str] = Field(default=None)
    POSTGRES_HOST: str = Field(default="localhost")
    POSTGRES_PORT: int = Field(default=5432)

    # Engine and pool
    SQL_ECHO: bool = Field(default=False, description="Log every SQL statement")
    DB_POOL_SIZE: int = Field(default=10, ge=1)
    DB_MAX_OVERFLOW: int = Field(default=20, ge=0)
    DB_POOL_RECYCLE_SECONDS: int = Field(default=1800, ge=0, description="0 disables recycling")

    ENVIRONMENT: Optional[str] = Field(default=None, description="Environment label (dev/test/prod)")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def database_url(self) -> str:
        """Driver-neutral postgresql:// URL."""
        if self.POSTGRES_URL:
            return self.POSTGRES_URL
        if not all([self.POSTGRES_USER, self.POSTGRES_PASSWORD, self.POSTGRES_DB]):
            raise ValueError(
                "Database configuration missing: set POSTGRES_URL, or POSTGRES_USER, "
                "POSTGRES_PASSWORD and POSTGRES_DB."
            )
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def async_database_url(self) -> str:
        """URL using the asyncpg driver, for the application engine and online migrations."""
        return re.sub(r"^postgres(ql)?(\+\w+)?://", "postgresql+asyncpg://", self.database_url)

    @property
    def sync_database_url(self) -> str:
        """URL without a driver tag, used for offline (SQL script) migrations."""
        return re.sub(r"^postgres(ql)?(\+\w+)?://", "postgresql://", self.database_url)

    def engine_options(self) -> Dict[str, Any]:
        """Keyword arguments for create_async_engine."""
        options: Dict[str, Any] = {
            "echo": self.SQL_ECHO,
            "pool_pre_ping": True,
            "pool_size": self.DB_POOL_SIZE,
            "max_overflow": self.DB_MAX_OVERFLOW,
        }
        if self.DB_POOL_RECYCLE_SECONDS:
            options["pool_recycle"] = self.DB_POOL_RECYCLE_SECONDS
        return options


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return database settings read from the environment."""
    return Settings()
