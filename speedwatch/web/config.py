"""
Web Configuration - Centralized settings management
"""
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

PROJECT_ROOT = Path(__file__).parent.parent.parent

# Load project-level .env if present (real environment variables win)
_project_env = PROJECT_ROOT / ".env"
if _project_env.exists():
    load_dotenv(_project_env)


def _env_bool(key: str, default: str) -> bool:
    return os.getenv(key, default).strip().lower() in ("1", "true", "yes", "on")


class AppConfig(BaseModel):
    """Application configuration with environment variable support"""

    # Server settings
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    log_level: str = "INFO"

    # Storage
    storage_backend: str = "sqlite"  # "sqlite" or "memory"
    db_path: Path = PROJECT_ROOT / "data" / "telemetry.db"
    fallback_to_memory: bool = True
    memory_capacity: int = Field(default=1000, ge=1)
    recovery_interval_s: float = Field(default=30.0, ge=0)
    id_strategy: str = "counter"  # "counter" or "max_plus_one"

    # Retention and paging
    retention_cap: int = Field(default=500, ge=0)
    recent_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=100, ge=1)

    # Rate limiting (slowapi syntax, empty string disables)
    rate_limit: str = "120/minute"

    @field_validator("storage_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        if value not in ("sqlite", "memory"):
            raise ValueError("storage_backend must be 'sqlite' or 'memory'")
        return value

    @field_validator("id_strategy")
    @classmethod
    def _check_strategy(cls, value: str) -> str:
        if value not in ("counter", "max_plus_one"):
            raise ValueError("id_strategy must be 'counter' or 'max_plus_one'")
        return value

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Load configuration from environment variables"""
        return cls(
            host=os.getenv("SPEEDWATCH_HOST", "127.0.0.1"),
            port=int(os.getenv("SPEEDWATCH_PORT", "8000")),
            debug=_env_bool("SPEEDWATCH_DEBUG", "0"),
            log_level=os.getenv("SPEEDWATCH_LOG_LEVEL", "INFO").upper(),
            storage_backend=os.getenv("SPEEDWATCH_STORAGE_BACKEND", "sqlite"),
            db_path=Path(os.getenv("SPEEDWATCH_DB_PATH", str(PROJECT_ROOT / "data" / "telemetry.db"))),
            fallback_to_memory=_env_bool("SPEEDWATCH_FALLBACK_TO_MEMORY", "1"),
            memory_capacity=int(os.getenv("SPEEDWATCH_MEMORY_CAPACITY", "1000")),
            recovery_interval_s=float(os.getenv("SPEEDWATCH_RECOVERY_INTERVAL_S", "30")),
            id_strategy=os.getenv("SPEEDWATCH_ID_STRATEGY", "counter"),
            retention_cap=int(os.getenv("SPEEDWATCH_RETENTION_CAP", "500")),
            recent_page_size=int(os.getenv("SPEEDWATCH_RECENT_PAGE_SIZE", "20")),
            max_page_size=int(os.getenv("SPEEDWATCH_MAX_PAGE_SIZE", "100")),
            rate_limit=os.getenv("SPEEDWATCH_RATE_LIMIT", "120/minute"),
        )
