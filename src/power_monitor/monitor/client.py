"""
PortalClient: reads the dormitory electricity balance from the campus portal.

The portal is behind the university SSO. Completing that handshake (password
or WeChat QR login) is done outside this process; it leaves the session
cookies in ``cookie_file`` as a JSON object of name -> value. The client
reuses those cookies and writes refreshed ones back.

Everything here is blocking; the scheduler calls it from a worker thread.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import httpx
from pydantic import BaseModel, Field, ValidationError

from power_monitor.core import DEFAULT_SERVICE_URL
from power_monitor.core.reading import Reading

logger = logging.getLogger(__name__)


class LoginError(Exception):
    """No usable session could be established."""


class FetchError(Exception):
    """The balance could not be read with the current session."""


class SessionExpiredError(FetchError):
    """The portal no longer accepts the session cookies."""


class PortalSession(BaseModel):
    cookies: dict[str, str] = Field(default_factory=dict)

    def cookie_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self.cookies.items())


class _Envelope(BaseModel):
    e: int
    m: str = ""
    d: dict[str, Any] | None = None


class PortalClient:
    """Opaque remote-account client: ``login()`` and ``fetch_balance()``."""

    def __init__(
        self,
        service_url: str = DEFAULT_SERVICE_URL,
        *,
        username: str = "",
        login_type: str = "password",
        cookie_file: str | Path = "cookies.json",
        timeout: float = 30.0,
    ) -> None:
        self.service_url = service_url.rstrip("/")
        self.username = username
        self.login_type = login_type
        self.cookie_file = Path(cookie_file)
        self._http = httpx.Client(timeout=timeout, follow_redirects=False)

    def close(self) -> None:
        self._http.close()

    def login(self) -> PortalSession:
        """Load the stored SSO session for this account."""
        if not self.cookie_file.is_file():
            raise LoginError(
                f"no stored {self.login_type} session for {self.username or 'account'}: "
                f"{self.cookie_file} does not exist"
            )
        try:
            cookies = json.loads(self.cookie_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise LoginError(f"cannot read {self.cookie_file}: {exc}") from exc
        if not isinstance(cookies, dict) or not cookies:
            raise LoginError(f"{self.cookie_file} holds no session cookies")
        logger.info("Loaded %d session cookies from %s", len(cookies), self.cookie_file)
        return PortalSession(cookies={str(k): str(v) for k, v in cookies.items()})

    def fetch_balance(self, session: PortalSession) -> Reading:
        """Query the bedroom endpoint and parse one Reading."""
        url = f"{self.service_url}/bedroom"
        try:
            resp = self._http.get(url, headers={"Cookie": session.cookie_header()})
        except httpx.HTTPError as exc:
            raise FetchError(f"request to {url} failed: {exc}") from exc

        if resp.status_code in (401, 403) or resp.is_redirect:
            raise SessionExpiredError(f"portal answered {resp.status_code}, session expired")
        if resp.is_error:
            raise FetchError(f"portal answered HTTP {resp.status_code}")

        try:
            envelope = _Envelope.model_validate(resp.json())
        except json.JSONDecodeError as exc:
            # The SSO login page comes back as HTML with 200
            raise SessionExpiredError("portal returned a non-JSON page") from exc
        except ValidationError as exc:
            raise FetchError(f"unexpected response shape: {exc}") from exc

        if envelope.e != 0:
            raise FetchError(f"portal error {envelope.e}: {envelope.m}")
        if envelope.d is None:
            raise FetchError("portal returned no bedroom data")

        try:
            reading = Reading.model_validate(envelope.d)
        except ValidationError as exc:
            raise FetchError(f"cannot parse bedroom data: {exc}") from exc

        self._store_cookies(session, resp.cookies)
        return reading

    def _store_cookies(self, session: PortalSession, fresh: httpx.Cookies) -> None:
        updates = {name: value for name, value in fresh.items()}
        if not updates:
            return
        session.cookies.update(updates)
        try:
            self.cookie_file.write_text(json.dumps(session.cookies), encoding="utf-8")
        except OSError:
            logger.warning("Could not persist refreshed cookies to %s", self.cookie_file)
