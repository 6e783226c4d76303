"""Tests for power_monitor.core configuration and the layered resolver."""

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from power_monitor.core import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_DATABASE_URL,
    ENV_PREFIX,
    SECRETS_DIR,
    AppConfig,
)
from power_monitor.core.errors import (
    ConfigError,
    InvalidValueError,
    MissingRequiredError,
)
from power_monitor.core.resolver import (
    coerce,
    env_source,
    file_source,
    first_hit,
    iter_keys,
    resolve_config,
    secrets_source,
)
from power_monitor.notifications.config import NotificationsConfig


BASE = {"username": "2022000000", "password": "hunter2"}


@pytest.fixture
def config_file(temp_dir):
    """Write a YAML config and return its path."""

    def _write(data):
        path = temp_dir / "config.yaml"
        path.write_text(yaml.dump(data))
        return path

    return _write


@pytest.fixture
def secrets_dir(temp_dir):
    path = temp_dir / "secrets"
    path.mkdir()
    return path


def _resolve(path, environ=None, secrets=None, **kwargs):
    return resolve_config(
        path,
        environ=environ or {},
        secrets_dir=secrets or path.parent / "no-secrets",
        **kwargs,
    )


class TestConstants:
    def test_defaults(self):
        assert DEFAULT_CONFIG_FILE.name == "config.yaml"
        assert str(SECRETS_DIR) == "/run/secrets"
        assert ENV_PREFIX == "UPM_"

    def test_app_config_defaults(self):
        config = AppConfig()
        assert config.interval_seconds == 60
        assert config.login_type == "password"
        assert config.database_url == DEFAULT_DATABASE_URL
        assert isinstance(config.notify, NotificationsConfig)

    def test_app_config_is_read_only(self):
        config = AppConfig(username="a", password="b")
        with pytest.raises(Exception):
            config.username = "c"


class TestSources:
    def test_env_source_uses_prefix_and_double_underscore(self):
        lookup = env_source({"UPM_NOTIFY__THRESHOLD": "12.5", "UPM_USERNAME": "u"})
        assert lookup("notify.threshold") == "12.5"
        assert lookup("username") == "u"
        assert lookup("password") is None

    def test_secrets_source_reads_only_secret_keys(self, secrets_dir):
        (secrets_dir / "password").write_text("  s3cret\n")
        (secrets_dir / "interval_seconds").write_text("5")
        lookup = secrets_source(secrets_dir)
        assert lookup("password") == "s3cret"
        assert lookup("interval_seconds") is None
        assert lookup("username") is None

    def test_unreadable_secret_file_is_config_error(self, secrets_dir):
        (secrets_dir / "password").write_text("s3cret")
        lookup = secrets_source(secrets_dir)
        with patch.object(Path, "read_text", side_effect=PermissionError("denied")):
            with pytest.raises(ConfigError, match="password"):
                lookup("password")

    def test_file_source_walks_nested_keys(self):
        lookup = file_source({"notify": {"ntfy": {"priority": 4}}, "username": "x"})
        assert lookup("notify.ntfy.priority") == 4
        assert lookup("username") == "x"
        assert lookup("notify.telegram.bot_token") is None
        assert lookup("username.deeper") is None

    def test_first_hit_order(self):
        lookup = first_hit(lambda k: None, lambda k: "second", lambda k: "third")
        assert lookup("any") == "second"

    def test_iter_keys_covers_nested_channel_fields(self):
        keys = dict(iter_keys(AppConfig))
        assert "notify.threshold" in keys
        assert "notify.pushover.retry_seconds" in keys
        assert "notify.channels" not in keys
        assert "notify.ntfy.type" not in keys


class TestCoerce:
    @pytest.mark.parametrize("raw,expected", [
        ("true", True), ("YES", True), ("1", True), ("off", False), ("0", False),
    ])
    def test_bool(self, raw, expected):
        assert coerce("notify.enabled", raw, bool) is expected

    def test_list_comma_separated(self):
        assert coerce("k", "console, ntfy", list[str]) == ["console", "ntfy"]

    def test_list_json(self):
        assert coerce("k", '["a, b", "c"]', list[str]) == ["a, b", "c"]

    def test_invalid_int(self):
        with pytest.raises(InvalidValueError) as exc_info:
            coerce("interval_seconds", "ten", int)
        assert exc_info.value.key == "interval_seconds"
        assert exc_info.value.raw == "ten"

    def test_invalid_bool(self):
        with pytest.raises(InvalidValueError):
            coerce("notify.enabled", "maybe", bool)


class TestResolveConfig:
    def test_file_values(self, config_file):
        path = config_file({**BASE, "interval_seconds": 300, "notify": {"threshold": 5}})
        config = _resolve(path)
        assert config.username == "2022000000"
        assert config.interval_seconds == 300
        assert config.notify.threshold == 5.0

    def test_missing_file_uses_env(self, temp_dir):
        config = _resolve(
            temp_dir / "absent.yaml",
            environ={"UPM_USERNAME": "u", "UPM_PASSWORD": "p"},
        )
        assert config.username == "u"
        assert config.interval_seconds == 60

    def test_missing_username(self, config_file):
        path = config_file({"password": "p"})
        with pytest.raises(MissingRequiredError) as exc_info:
            _resolve(path)
        assert exc_info.value.key == "username"

    def test_empty_password_is_missing(self, config_file):
        path = config_file({"username": "u", "password": ""})
        with pytest.raises(MissingRequiredError) as exc_info:
            _resolve(path)
        assert exc_info.value.key == "password"

    def test_numeric_username_kept_as_string(self, config_file):
        path = config_file({"username": 2022000000, "password": "p"})
        assert _resolve(path).username == "2022000000"

    def test_env_beats_secret_and_file(self, config_file, secrets_dir):
        path = config_file({**BASE, "database_url": "sqlite:///file.db"})
        (secrets_dir / "database_url").write_text("sqlite:///secret.db")
        config = _resolve(
            path,
            environ={"UPM_DATABASE_URL": "sqlite:///env.db"},
            secrets=secrets_dir,
        )
        assert config.database_url == "sqlite:///env.db"

    def test_secret_beats_file(self, config_file, secrets_dir):
        path = config_file(BASE)
        (secrets_dir / "password").write_text("from-secret\n")
        config = _resolve(path, secrets=secrets_dir)
        assert config.password == "from-secret"

    def test_nested_env_override(self, config_file):
        path = config_file({**BASE, "notify": {"threshold": 10, "cooldown_minutes": 30}})
        config = _resolve(path, environ={"UPM_NOTIFY__THRESHOLD": "25.5"})
        assert config.notify.threshold == 25.5
        # sibling keys still come from the file
        assert config.notify.cooldown_minutes == 30

    def test_invalid_env_value_is_error_not_default(self, config_file):
        path = config_file(BASE)
        with pytest.raises(InvalidValueError) as exc_info:
            _resolve(path, environ={"UPM_NOTIFY__THRESHOLD": "lots"})
        assert exc_info.value.key == "notify.threshold"
        assert exc_info.value.raw == "lots"

    def test_invalid_file_value(self, config_file):
        path = config_file({**BASE, "interval_seconds": "soon"})
        with pytest.raises(InvalidValueError) as exc_info:
            _resolve(path)
        assert exc_info.value.key == "interval_seconds"

    def test_out_of_range_heartbeat_hour(self, config_file):
        path = config_file({**BASE, "notify": {"heartbeat_hour": 24}})
        with pytest.raises(InvalidValueError):
            _resolve(path)

    def test_malformed_yaml(self, temp_dir):
        path = temp_dir / "config.yaml"
        path.write_text("username: [unclosed\n")
        with pytest.raises(ConfigError):
            _resolve(path)


class TestChannelSelection:
    def test_disabled_notifications_have_no_channels(self, config_file):
        path = config_file({**BASE, "notify": {"enabled": False, "notify_types": ["console"]}})
        assert _resolve(path).notify.channels == []

    def test_default_is_console(self, config_file):
        path = config_file({**BASE, "notify": {"enabled": True}})
        channels = _resolve(path).notify.channels
        assert [c.type for c in channels] == ["console"]

    def test_legacy_notify_type(self, config_file):
        path = config_file({
            **BASE,
            "notify": {
                "enabled": True,
                "notify_type": "telegram",
                "telegram": {"bot_token": "123:ABC", "chat_id": -100123},
            },
        })
        channels = _resolve(path).notify.channels
        assert [c.type for c in channels] == ["telegram"]
        assert channels[0].chat_id == "-100123"

    def test_notify_types_wins_over_legacy(self, config_file):
        path = config_file({
            **BASE,
            "notify": {
                "enabled": True,
                "notify_type": "telegram",
                "notify_types": ["console"],
                "telegram": {"bot_token": "123:ABC", "chat_id": "1"},
            },
        })
        channels = _resolve(path).notify.channels
        assert [c.type for c in channels] == ["console"]

    def test_notify_types_from_env(self, config_file, public_validator):
        path = config_file({
            **BASE,
            "notify": {"enabled": True, "ntfy": {"topic_url": "https://ntfy.sh/dorm"}},
        })
        config = _resolve(
            path,
            environ={"UPM_NOTIFY__NOTIFY_TYPES": "console,ntfy"},
            validator=public_validator,
        )
        assert [c.type for c in config.notify.channels] == ["console", "ntfy"]

    def test_unknown_kind_is_invalid(self, config_file):
        path = config_file({**BASE, "notify": {"enabled": True, "notify_types": ["pager"]}})
        with pytest.raises(InvalidValueError):
            _resolve(path)

    def test_channel_missing_credentials_is_skipped(self, config_file):
        path = config_file({
            **BASE,
            "notify": {"enabled": True, "notify_types": ["console", "telegram"]},
        })
        channels = _resolve(path).notify.channels
        assert [c.type for c in channels] == ["console"]

    def test_all_skipped_is_not_fatal(self, config_file):
        path = config_file({
            **BASE,
            "notify": {"enabled": True, "notify_types": ["pushover"]},
        })
        assert _resolve(path).notify.channels == []

    def test_rejected_sole_channel_is_fatal(self, config_file, public_validator):
        path = config_file({
            **BASE,
            "notify": {
                "enabled": True,
                "notify_types": ["ntfy"],
                "ntfy": {"topic_url": "http://ntfy.sh/dorm"},
            },
        })
        with pytest.raises(ConfigError):
            _resolve(path, validator=public_validator)

    def test_rejected_channel_dropped_when_others_remain(self, config_file, public_validator):
        path = config_file({
            **BASE,
            "notify": {
                "enabled": True,
                "notify_types": ["console", "webhook"],
                "webhook": {"url": "https://127.0.0.1/hook"},
            },
        })
        channels = _resolve(path, validator=public_validator).notify.channels
        assert [c.type for c in channels] == ["console"]

    def test_env_overrides_channel_field(self, config_file, public_validator):
        path = config_file({
            **BASE,
            "notify": {
                "enabled": True,
                "notify_types": ["pushover"],
                "pushover": {"api_token": "file-token", "user_key": "user"},
            },
        })
        config = _resolve(
            path,
            environ={
                "UPM_NOTIFY__PUSHOVER__API_TOKEN": "env-token",
                "UPM_NOTIFY__PUSHOVER__PRIORITY": "1",
            },
            validator=public_validator,
        )
        (channel,) = config.notify.channels
        assert channel.api_token == "env-token"
        assert channel.priority == 1
