"""
Core configuration for Power Monitor.

Provides:
- Path and source constants (DEFAULT_CONFIG_FILE, SECRETS_DIR, ENV_PREFIX)
- The effective configuration model (AppConfig)
- The Reading record
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from power_monitor.core.errors import (
    ConfigError,
    InvalidValueError,
    MissingRequiredError,
)
from power_monitor.core.reading import Reading
from power_monitor.notifications.config import NotificationsConfig


# ---------------------------------------------------------------------------
# Source constants
# ---------------------------------------------------------------------------

DEFAULT_CONFIG_FILE: Path = Path("config.yaml")
SECRETS_DIR: Path = Path("/run/secrets")
ENV_PREFIX: str = "UPM_"
DEFAULT_SERVICE_URL: str = "https://online.uestc.edu.cn/site"
DEFAULT_DATABASE_URL: str = "sqlite:///power_monitor.db"

# Keys that may be supplied as one file each under SECRETS_DIR
SECRET_KEYS: tuple[str, ...] = ("username", "password", "service_url", "database_url")
REQUIRED_KEYS: tuple[str, ...] = ("username", "password")


# ---------------------------------------------------------------------------
# Configuration model
# ---------------------------------------------------------------------------


class AppConfig(BaseModel):
    """Resolved, validated configuration snapshot. Read-only after startup."""

    model_config = ConfigDict(frozen=True)

    username: str = ""
    password: str = ""
    service_url: str = DEFAULT_SERVICE_URL
    database_url: str = DEFAULT_DATABASE_URL
    interval_seconds: int = Field(default=60, gt=0)
    login_type: Literal["password", "wechat"] = "password"
    cookie_file: str = "cookies.json"
    notify: NotificationsConfig = Field(default_factory=NotificationsConfig)


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "SECRETS_DIR",
    "ENV_PREFIX",
    "DEFAULT_SERVICE_URL",
    "DEFAULT_DATABASE_URL",
    "SECRET_KEYS",
    "REQUIRED_KEYS",
    "AppConfig",
    "ConfigError",
    "InvalidValueError",
    "MissingRequiredError",
    "NotificationsConfig",
    "Reading",
]
