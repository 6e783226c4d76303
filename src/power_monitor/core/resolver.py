"""
ConfigResolver: builds the EffectiveConfig from layered sources.

Every leaf key of the configuration model is resolved on its own, first hit
wins, in this order:

    1. environment      UPM_NOTIFY__THRESHOLD -> notify.threshold
    2. secrets dir      /run/secrets/<key>, credential-like keys only
    3. config file      YAML, nested mappings
    4. model defaults

String-typed sources (environment, secrets) are coerced to the field type;
anything that does not parse raises InvalidValueError rather than falling
back to the default.
"""

from __future__ import annotations

import json
import logging
import os
import types
import typing
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping, Optional

import yaml
from pydantic import BaseModel, ValidationError

from power_monitor.core import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    REQUIRED_KEYS,
    SECRET_KEYS,
    SECRETS_DIR,
    AppConfig,
)
from power_monitor.core.errors import (
    ConfigError,
    InvalidValueError,
    MissingRequiredError,
)
from power_monitor.notifications.config import NotificationsConfig
from power_monitor.notifications.validator import ChannelValidator, Verdict

logger = logging.getLogger(__name__)

Lookup = Callable[[str], Optional[Any]]

# Fields computed by the resolver rather than read from a source
_DERIVED_FIELDS = {"channels"}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


def env_source(
    environ: Mapping[str, str] | None = None, prefix: str = ENV_PREFIX
) -> Lookup:
    """Environment lookup: ``notify.threshold`` reads ``UPM_NOTIFY__THRESHOLD``."""
    env = os.environ if environ is None else environ

    def lookup(key: str) -> Optional[str]:
        return env.get(prefix + key.replace(".", "__").upper())

    return lookup


def secrets_source(
    directory: Path = SECRETS_DIR, keys: tuple[str, ...] = SECRET_KEYS
) -> Lookup:
    """One file per secret key; content is stripped."""

    def lookup(key: str) -> Optional[str]:
        if key not in keys:
            return None
        path = directory / key
        if not path.is_file():
            return None
        try:
            return path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigError(f"cannot read secret file {path}: {exc}") from exc

    return lookup


def file_source(data: Mapping[str, Any]) -> Lookup:
    """Walk a nested mapping by dotted key."""

    def lookup(key: str) -> Optional[Any]:
        node: Any = data
        for part in key.split("."):
            if not isinstance(node, Mapping) or part not in node:
                return None
            node = node[part]
        return node

    return lookup


def load_file(path: Path) -> dict[str, Any]:
    """Load the YAML config file. A missing file is an empty config."""
    if not path.exists():
        logger.info("Config file %s not found, using other sources only", path)
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"cannot parse {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return data


def first_hit(*sources: Lookup) -> Lookup:
    """Compose lookups in priority order."""

    def lookup(key: str) -> Optional[Any]:
        for source in sources:
            value = source(key)
            if value is not None:
                return value
        return None

    return lookup


# ---------------------------------------------------------------------------
# Key enumeration and coercion
# ---------------------------------------------------------------------------


def iter_keys(model: type[BaseModel], prefix: str = "") -> Iterator[tuple[str, Any]]:
    """Yield ``(dotted_key, annotation)`` for every leaf field of ``model``."""
    for name, field in model.model_fields.items():
        if name in _DERIVED_FIELDS:
            continue
        annotation = _unwrap_optional(field.annotation)
        if typing.get_origin(annotation) is typing.Literal and name == "type":
            continue  # channel tag, fixed per block
        key = f"{prefix}{name}"
        if isinstance(annotation, type) and issubclass(annotation, BaseModel):
            yield from iter_keys(annotation, prefix=f"{key}.")
        else:
            yield key, annotation


def _unwrap_optional(annotation: Any) -> Any:
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def coerce(key: str, raw: str, annotation: Any) -> Any:
    """Convert a string from env/secrets to the field's type."""
    origin = typing.get_origin(annotation)
    text = raw.strip()
    try:
        if annotation is bool:
            lowered = text.lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ValueError("expected a boolean")
        if annotation is int:
            return int(text)
        if annotation is float:
            return float(text)
        if origin is list:
            if text.startswith("["):
                value = json.loads(text)
                if not isinstance(value, list):
                    raise ValueError("expected a JSON array")
                return value
            return [part.strip() for part in text.split(",") if part.strip()]
        if origin is dict:
            value = json.loads(text)
            if not isinstance(value, dict):
                raise ValueError("expected a JSON object")
            return value
    except ValueError as exc:
        raise InvalidValueError(key, raw, str(exc)) from exc
    return raw


def _set_path(tree: dict[str, Any], key: str, value: Any) -> None:
    parts = key.split(".")
    node = tree
    for part in parts[:-1]:
        node = node.setdefault(part, {})
    node[parts[-1]] = value


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def resolve_config(
    file_path: Path | str | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    secrets_dir: Path | None = None,
    validator: ChannelValidator | None = None,
) -> AppConfig:
    """Build and validate the effective configuration.

    Raises ConfigError (MissingRequiredError / InvalidValueError) when the
    process must not start.
    """
    path = Path(file_path) if file_path is not None else DEFAULT_CONFIG_FILE
    string_sources = first_hit(
        env_source(environ),
        secrets_source(secrets_dir if secrets_dir is not None else SECRETS_DIR),
    )
    from_file = file_source(load_file(path))

    tree: dict[str, Any] = {}
    for key, annotation in iter_keys(AppConfig):
        raw = string_sources(key)
        if raw is not None:
            _set_path(tree, key, coerce(key, raw, annotation))
            continue
        value = from_file(key)
        if value is not None:
            # YAML reads student ids and chat ids as numbers
            if annotation is str and isinstance(value, (int, float)) and not isinstance(value, bool):
                value = str(value)
            _set_path(tree, key, value)

    for key in REQUIRED_KEYS:
        if not str(tree.get(key) or "").strip():
            raise MissingRequiredError(key)

    try:
        config = AppConfig.model_validate(tree)
    except ValidationError as exc:
        first = exc.errors()[0]
        key = ".".join(str(part) for part in first["loc"])
        raise InvalidValueError(key, first.get("input"), first["msg"]) from exc

    if not config.notify.enabled:
        logger.info("Notifications disabled")
        return config

    channels = select_channels(config.notify, validator or ChannelValidator())
    notify = config.notify.model_copy(update={"channels": channels})
    return config.model_copy(update={"notify": notify})


def select_channels(
    notify: NotificationsConfig, validator: ChannelValidator
) -> list:
    """Validate each requested channel and return the active ones."""
    active = []
    rejected: list[str] = []
    for kind in notify.selected_kinds():
        channel = notify.channel_config(kind)
        result = validator.validate(channel)
        if result.verdict == Verdict.VALID:
            active.append(channel)
        elif result.verdict == Verdict.SKIP:
            logger.warning("Skipping %s channel: %s", kind, result.reason)
        else:
            logger.error("Rejecting %s channel: %s", kind, result.reason)
            rejected.append(f"{kind}: {result.reason}")

    if not active and rejected:
        raise ConfigError(
            "no usable notification channel; rejected " + "; ".join(rejected)
        )
    if not active:
        logger.warning("Notifications enabled but no channel is fully configured")
    else:
        logger.info(
            "Active notification channels: %s", ", ".join(c.type for c in active)
        )
    return active
