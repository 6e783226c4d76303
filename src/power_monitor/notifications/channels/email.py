"""
Email channel: SMTP notifications.

Supports STARTTLS, implicit TLS and plain connections. SMTP is blocking, so
the session runs in a worker thread; a connection failure only fails this
channel.
"""

from __future__ import annotations

import asyncio
import smtplib
from email.message import EmailMessage

from power_monitor.notifications.channel import NotificationChannel
from power_monitor.notifications.events import NotificationEvent


class EmailChannel(NotificationChannel):
    """SMTP email notification channel."""

    name: str = "email"

    def __init__(
        self,
        smtp_host: str = "localhost",
        smtp_port: int = 587,
        username: str = "",
        password: str = "",
        from_addr: str = "",
        to_addrs: list[str] | None = None,
        encryption: str = "starttls",
        timeout: float = 15.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.from_addr = from_addr
        self.to_addrs = to_addrs or []
        self.encryption = encryption
        self.timeout = timeout

    async def send(self, event: NotificationEvent) -> None:
        if not self.to_addrs:
            return
        msg = self.build_message(event)
        await asyncio.to_thread(self._smtp_send, msg)

    def build_message(self, event: NotificationEvent) -> EmailMessage:
        msg = EmailMessage()
        subject = f"[Power Monitor] {event.title}"
        if event.escalated:
            subject = f"[URGENT] {subject}"
            msg["X-Priority"] = "1"
            msg["Importance"] = "high"
        msg["Subject"] = subject
        msg["From"] = self.from_addr
        msg["To"] = ", ".join(self.to_addrs)

        lines = [event.summary, ""]
        lines.extend(f"{label}: {value}" for label, value in event.fields())
        lines.append("")
        lines.append(f"Sent at {event.timestamp}")
        msg.set_content("\n".join(lines))
        return msg

    def _smtp_send(self, msg: EmailMessage) -> None:
        if self.encryption == "tls":
            server: smtplib.SMTP = smtplib.SMTP_SSL(
                self.smtp_host, self.smtp_port, timeout=self.timeout
            )
        else:
            server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout)
        with server:
            if self.encryption == "starttls":
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.send_message(msg)
