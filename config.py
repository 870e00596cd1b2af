"""
Application configuration

Settings are read from environment variables (a local .env file is loaded
first when present). Everything has a development-friendly default so the
app runs with no configuration at all.
"""

import logging
import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

BACKENDS = ("memory", "file", "database")

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


class ConfigError(ValueError):
    """Raised when an environment variable holds an unusable value."""


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


class Settings(BaseModel):
    storage_backend: str = Field("memory", description="memory, file or database")
    data_dir: str = Field("./data", description="Directory for the file backend")
    database_url: str = Field("sqlite:///./stories.db", description="SQLAlchemy URL")
    auto_approve_stories: bool = Field(False, description="Approve submissions on creation")
    featured_stories_limit: int = Field(3, ge=0, description="Cap for the featured endpoint, 0 = no cap")
    tolerate_read_errors: bool = Field(False, description="Degrade unreadable data files to empty")
    log_level: str = "INFO"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "Settings":
        if load_env_file:
            load_dotenv()

        backend = os.getenv("STORAGE_BACKEND", "memory").strip().lower()
        if backend not in BACKENDS:
            raise ConfigError(
                f"STORAGE_BACKEND must be one of {', '.join(BACKENDS)}, got {backend!r}"
            )

        limit = _env_int("FEATURED_STORIES_LIMIT", 3)
        if limit < 0:
            raise ConfigError("FEATURED_STORIES_LIMIT must not be negative")

        log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ConfigError(f"LOG_LEVEL must be a logging level name, got {log_level!r}")

        origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

        return cls(
            storage_backend=backend,
            data_dir=os.getenv("DATA_DIR", "./data"),
            database_url=os.getenv("DATABASE_URL", "sqlite:///./stories.db"),
            auto_approve_stories=_env_bool("AUTO_APPROVE_STORIES", False),
            featured_stories_limit=limit,
            tolerate_read_errors=_env_bool("TOLERATE_READ_ERRORS", False),
            log_level=log_level,
            cors_origins=origins or ["*"],
        )

    @property
    def featured_limit(self) -> Optional[int]:
        return self.featured_stories_limit or None
