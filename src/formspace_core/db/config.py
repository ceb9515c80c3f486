"""
Database configuration from environment variables.

Supports both Cloud SQL (production) and direct connection (local development).
"""

from typing import Any, Dict, Optional

from pydantic_settings import BaseSettings
from pydantic import Field


class DatabaseConfig(BaseSettings):
    """
    Database configuration loaded from environment variables.

    The Cloud SQL connector is used only when both USE_CLOUD_SQL_CONNECTOR
    and CLOUD_SQL_INSTANCE are set; otherwise DATABASE_URL (or the individual
    credentials) is used directly.
    """

    # Cloud SQL settings
    CLOUD_SQL_INSTANCE: Optional[str] = Field(default=None)
    USE_CLOUD_SQL_CONNECTOR: bool = Field(default=False)
    CLOUD_SQL_IP_TYPE: str = Field(default="PUBLIC")  # PUBLIC or PRIVATE

    # Database credentials
    DATABASE_USER: str = Field(default="postgres")
    DATABASE_PASSWORD: str = Field(default="")
    DATABASE_NAME: str = Field(default="formspace")
    DATABASE_HOST: str = Field(default="localhost")
    DATABASE_PORT: int = Field(default=5432)

    # Direct connection URL (overrides individual settings)
    DATABASE_URL: Optional[str] = Field(default=None)

    # Connection pool settings
    DB_POOL_SIZE: int = Field(default=5)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=1800)  # 30 minutes
    DB_ECHO: bool = Field(default=False)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def use_cloud_sql(self) -> bool:
        """True when engines should connect through the Cloud SQL connector."""
        return bool(self.USE_CLOUD_SQL_CONNECTOR and self.CLOUD_SQL_INSTANCE)

    def pool_kwargs(self) -> Dict[str, Any]:
        """QueuePool settings for server databases."""
        return {
            "pool_size": self.DB_POOL_SIZE,
            "max_overflow": self.DB_MAX_OVERFLOW,
            "pool_timeout": self.DB_POOL_TIMEOUT,
            "pool_recycle": self.DB_POOL_RECYCLE,
        }

    def get_connection_url(self) -> str:
        """Get the async database connection URL."""
        if self.DATABASE_URL:
            url = self.DATABASE_URL
            if url.startswith("postgres://"):
                url = url.replace("postgres://", "postgresql+asyncpg://", 1)
            elif url.startswith("postgresql://"):
                url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
            return url
        return (
            f"postgresql+asyncpg://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}"
            f"@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"
        )


def get_db_config() -> DatabaseConfig:
    """Get database configuration (allows reloading from env)."""
    return DatabaseConfig()
