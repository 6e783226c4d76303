"""
ChannelValidator: decides whether a configured channel may be used.

A channel is Valid, Skipped (required credentials absent) or Rejected
(present but unsafe or out of range). Outbound URLs must be https and must
not reach loopback, link-local or private addresses; the check runs against
the actual DNS answers for the host, not only literal IPs.
"""

from __future__ import annotations

import ipaddress
import socket
from enum import Enum
from typing import Callable
from urllib.parse import urlsplit

from pydantic import BaseModel

from power_monitor.notifications.config import ChannelConfig

HostResolver = Callable[[str], list[str]]

_REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "console": (),
    "webhook": ("url",),
    "telegram": ("bot_token", "chat_id"),
    "pushover": ("api_token", "user_key"),
    "ntfy": ("topic_url",),
    "email": ("smtp_host", "from_addr", "to_addrs"),
}

_URL_FIELDS: dict[str, str] = {
    "webhook": "url",
    "ntfy": "topic_url",
}


class Verdict(str, Enum):
    VALID = "valid"
    SKIP = "skip"
    REJECT = "reject"


class ValidationResult(BaseModel):
    verdict: Verdict
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.verdict == Verdict.VALID


class ChannelRejected(Exception):
    """An outbound target failed the safety check."""


def resolve_host(host: str) -> list[str]:
    """Return every address the system resolver gives for ``host``."""
    infos = socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
    return [info[4][0] for info in infos]


def is_public_address(address: str) -> bool:
    ip = ipaddress.ip_address(address.split("%", 1)[0])
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return not (
        ip.is_loopback
        or ip.is_link_local
        or ip.is_private
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


class ChannelValidator:
    """Validates channel configuration completeness and outbound-URL safety."""

    def __init__(self, resolver: HostResolver | None = None) -> None:
        self.resolver = resolver or resolve_host

    def validate(self, config: ChannelConfig) -> ValidationResult:
        missing = [
            name for name in _REQUIRED_FIELDS[config.type] if not getattr(config, name)
        ]
        if missing:
            return ValidationResult(
                verdict=Verdict.SKIP,
                reason=f"missing {', '.join(missing)}",
            )

        url_field = _URL_FIELDS.get(config.type)
        if url_field:
            try:
                self.check_url(getattr(config, url_field))
            except ChannelRejected as exc:
                return ValidationResult(verdict=Verdict.REJECT, reason=str(exc))

        problem = _range_problem(config)
        if problem:
            return ValidationResult(verdict=Verdict.REJECT, reason=problem)

        return ValidationResult(verdict=Verdict.VALID)

    def check_url(self, url: str) -> None:
        """Raise ChannelRejected unless ``url`` is https to a public host."""
        parts = urlsplit(url)
        if parts.scheme.lower() != "https":
            raise ChannelRejected(f"scheme must be https, got '{parts.scheme or 'none'}'")
        host = parts.hostname
        if not host:
            raise ChannelRejected("URL has no host")

        try:
            addresses = [str(ipaddress.ip_address(host))]
        except ValueError:
            try:
                addresses = self.resolver(host)
            except (OSError, UnicodeError) as exc:
                raise ChannelRejected(f"cannot resolve host '{host}': {exc}") from exc

        if not addresses:
            raise ChannelRejected(f"host '{host}' resolved to no addresses")
        for address in addresses:
            if not is_public_address(address):
                raise ChannelRejected(
                    f"host '{host}' resolves to non-public address {address}"
                )


def _range_problem(config: ChannelConfig) -> str:
    if config.type == "pushover":
        if not -2 <= config.priority <= 2:
            return f"pushover priority must be between -2 and 2, got {config.priority}"
        if config.retry_seconds < 30:
            return f"pushover retry_seconds must be at least 30, got {config.retry_seconds}"
        if not 30 <= config.expire_seconds <= 10800:
            return (
                "pushover expire_seconds must be between 30 and 10800, "
                f"got {config.expire_seconds}"
            )
    elif config.type == "ntfy":
        if not 1 <= config.priority <= 5:
            return f"ntfy priority must be between 1 and 5, got {config.priority}"
    elif config.type == "email":
        if not 0 < config.smtp_port < 65536:
            return f"invalid smtp_port {config.smtp_port}"
    return ""
