"""Application configuration management"""

from functools import lru_cache
from pathlib import Path
from urllib.parse import quote_plus

from pydantic import field_validator
from pydantic_settings import BaseSettings

# Base directory: project root
_BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    APP_NAME: str = "Audit Retention Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 1

    # Database
    DATABASE_URL: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = ""
    POSTGRES_USER: str = "audit"
    POSTGRES_PASSWORD: str = "audit"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    # Database initialization discipline
    DB_INIT_MODE: str = "create_all"  # migrate | create_all | off
    DB_REQUIRE_HEAD: bool = True

    # Retention and archival
    AUDIT_ARCHIVE_DIR: str = ""
    AUDIT_BATCH_SIZE: int = 100
    AUDIT_DEFAULT_RETENTION_DAYS: int = 365
    AUDIT_AVG_RECORD_SIZE_BYTES: int = 1024

    # Background retention worker
    RUN_EMBEDDED_WORKER: bool = False
    RETENTION_WORKER_INTERVAL_SECONDS: float = 86400.0

    # File Paths
    EXPORTS_DIR: str = ""

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("AUDIT_BATCH_SIZE", "AUDIT_DEFAULT_RETENTION_DAYS")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    def _resolve_path(self, value: str, default: str) -> str:
        """Resolve path - use absolute if empty or relative"""
        if not value or value.startswith(".."):
            return str(_BASE_DIR / default)
        return value

    def get_archive_dir(self) -> str:
        return self._resolve_path(self.AUDIT_ARCHIVE_DIR, "storage/audit-archives")

    def get_exports_dir(self) -> str:
        return self._resolve_path(self.EXPORTS_DIR, "exports")

    def get_log_file(self) -> str:
        p = self.LOG_FILE
        if not p or p.startswith(".."):
            return str(_BASE_DIR / "logs" / "audit_retention.log")
        return p

    def get_database_url(self) -> str:
        """
        Resolve database URL.

        Priority:
          1) Explicit DATABASE_URL
          2) Construct from POSTGRES_* parts when POSTGRES_DB is set
          3) Local SQLite file
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        if self.POSTGRES_DB:
            user = quote_plus(self.POSTGRES_USER)
            password = quote_plus(self.POSTGRES_PASSWORD)
            return (
                f"postgresql://{user}:{password}"
                f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )

        return f"sqlite:///{_BASE_DIR / 'audit_retention.db'}"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
