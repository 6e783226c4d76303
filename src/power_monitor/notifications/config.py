"""
Configuration models for the notification system.

Each channel kind has its own block carrying only the fields its transport
needs. The blocks share a ``type`` tag so the active set can be held as one
discriminated union.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

ChannelKind = Literal["console", "webhook", "telegram", "pushover", "ntfy", "email"]


class _ChannelBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class ConsoleConfig(_ChannelBase):
    type: Literal["console"] = "console"


class WebhookConfig(_ChannelBase):
    type: Literal["webhook"] = "webhook"
    url: str = ""
    secret: str = ""  # HMAC-SHA256 signing key, optional
    headers: dict[str, str] = Field(default_factory=dict)


class TelegramConfig(_ChannelBase):
    type: Literal["telegram"] = "telegram"
    bot_token: str = ""
    chat_id: str = ""


class PushoverConfig(_ChannelBase):
    type: Literal["pushover"] = "pushover"
    api_token: str = ""
    user_key: str = ""
    priority: int = 0  # -2..2, 2 = emergency (re-delivered until acknowledged)
    retry_seconds: int = 60
    expire_seconds: int = 3600
    sound: str = ""
    device: str = ""


class NtfyConfig(_ChannelBase):
    type: Literal["ntfy"] = "ntfy"
    topic_url: str = ""
    token: str = ""
    priority: int = 3  # 1..5
    tags: list[str] = Field(default_factory=list)
    click_action: str = ""
    icon: str = ""
    markdown: bool = False
    actions: list[str] = Field(default_factory=list)  # ntfy short format


class EmailConfig(_ChannelBase):
    type: Literal["email"] = "email"
    smtp_host: str = ""
    smtp_port: int = 587
    username: str = ""
    password: str = ""
    from_addr: str = ""
    to_addrs: list[str] = Field(default_factory=list)
    encryption: Literal["starttls", "tls", "none"] = "starttls"


ChannelConfig = Annotated[
    Union[
        ConsoleConfig,
        WebhookConfig,
        TelegramConfig,
        PushoverConfig,
        NtfyConfig,
        EmailConfig,
    ],
    Field(discriminator="type"),
]


class NotificationsConfig(BaseModel):
    """Top-level notifications configuration (the ``notify`` block)."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    threshold: float = 10.0  # CNY
    cooldown_minutes: int = Field(default=60, ge=0)
    heartbeat_enabled: bool = False
    heartbeat_hour: int = Field(default=8, ge=0, le=23)
    login_failure_enabled: bool = True
    fetch_failure_enabled: bool = False
    timeout_seconds: float = Field(default=15.0, gt=0)

    notify_type: ChannelKind = "console"  # legacy single-channel key
    notify_types: list[ChannelKind] = Field(default_factory=list)

    console: ConsoleConfig = Field(default_factory=ConsoleConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    pushover: PushoverConfig = Field(default_factory=PushoverConfig)
    ntfy: NtfyConfig = Field(default_factory=NtfyConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)

    # Filled in by the resolver after validation
    channels: list[ChannelConfig] = Field(default_factory=list)

    def selected_kinds(self) -> list[str]:
        """Channel kinds requested by configuration, in order, deduplicated.

        ``notify_types`` wins entirely over the legacy ``notify_type``.
        """
        kinds = self.notify_types or [self.notify_type]
        return list(dict.fromkeys(kinds))

    def channel_config(self, kind: str) -> ChannelConfig:
        """Return the configuration block for one channel kind."""
        return getattr(self, kind)
