"""
Session management for the Aveksa command API.

Aveksa hands out an opaque session token from its ``loginUser`` command,
already formatted as ``token=<opaque>``.  The token is appended verbatim to
every command URL.  Sessions are created lazily: the first command goes out
without a token, the server answers 401, and only then does the adapter log
in.  Refreshes are serialised so that concurrent callers that all observed
the same 401 trigger a single login.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from xml.sax.saxutils import escape

import httpx

from aveksa_bridge.core.adapter import CommandResult
from aveksa_bridge.core.errors import ErrorKind

logger = logging.getLogger(__name__)

COMMAND_PATH = "/aveksa/command.submit"
LOGIN_COMMAND = "loginUser"


class SessionState(Enum):
    NO_TOKEN = "no_token"
    VALID = "valid"
    REFRESHING = "refreshing"


class SessionManager:
    """
    Owns the current session token for one adapter instance.

    The refresh lock is an asyncio.Lock, so an instance (and the
    httpx.AsyncClient it is used with) is bound to a single event loop.
    Hosts calling from several threads need one adapter per loop.
    """

    def __init__(self, base_url: str, username: str, password: str) -> None:
        self._base_url = base_url.rstrip("/")
        self._username = username
        self._password = password
        self._token = ""
        self._lock = asyncio.Lock()

    @property
    def login_url(self) -> str:
        return f"{self._base_url}{COMMAND_PATH}?cmd={LOGIN_COMMAND}"

    @property
    def state(self) -> SessionState:
        if self._lock.locked():
            return SessionState.REFRESHING
        return SessionState.VALID if self._token else SessionState.NO_TOKEN

    def current_token(self) -> str:
        """Cached token, or ``""`` when no login has happened yet."""
        return self._token

    def invalidate(self) -> None:
        self._token = ""

    async def refresh(
        self, client: httpx.AsyncClient, stale_token: str | None = None
    ) -> CommandResult:
        """
        Log in and cache the new token.

        *stale_token* is the token the caller used when it saw the 401.  If
        another caller has replaced it while this one waited for the lock,
        the already-refreshed token is returned without a second login.

        On failure the cached token is left as it was.
        """
        async with self._lock:
            if stale_token is not None and self._token and self._token != stale_token:
                logger.debug("Session already refreshed by a concurrent caller")
                return CommandResult.ok(self._token)

            result = await self._login(client)
            if result.success:
                self._token = result.data
            return result

    async def _login(self, client: httpx.AsyncClient) -> CommandResult:
        body = (
            f"<username>{escape(self._username)}</username>"
            f"<password>{escape(self._password)}</password>"
        )
        try:
            resp = await client.post(
                self.login_url,
                content=body,
                headers={"Content-Type": "application/xml"},
            )
        except httpx.HTTPError as exc:
            logger.error("Login request to %s failed: %s", self.login_url, exc)
            return CommandResult.fail(ErrorKind.AUTH, f"Login request failed: {exc}")

        if not resp.is_success:
            logger.error(
                "Login rejected: %s %s", resp.status_code, resp.reason_phrase
            )
            return CommandResult.fail(
                ErrorKind.AUTH,
                f"Login failed for user {self._username!r}: "
                f"{resp.status_code} {resp.reason_phrase}",
            )

        token = resp.text.rstrip("\r\n")
        if not token:
            return CommandResult.fail(ErrorKind.AUTH, "Login returned an empty token")
        logger.debug("Obtained new Aveksa session for %s", self._username)
        return CommandResult.ok(token)
