"""
Configuration errors. Any of these at startup is fatal.
"""

from __future__ import annotations

from typing import Any


class ConfigError(Exception):
    """The effective configuration could not be built."""


class MissingRequiredError(ConfigError):
    """A required key has no value in any source."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"missing required configuration key '{key}'")


class InvalidValueError(ConfigError):
    """A value could not be coerced to, or validated as, its field type."""

    def __init__(self, key: str, raw: Any, reason: str = "") -> None:
        self.key = key
        self.raw = raw
        message = f"invalid value for '{key}': {raw!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)
