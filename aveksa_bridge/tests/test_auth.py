"""Tests for the Aveksa session manager."""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from aveksa_bridge.core.auth import SessionManager, SessionState
from aveksa_bridge.core.errors import AuthError, ErrorKind


def _client(*responses):
    client = AsyncMock()
    client.post = AsyncMock(side_effect=list(responses))
    return client


@pytest.fixture
def session():
    return SessionManager("https://h/", "admin", "secret")


class TestSessionState:
    def test_starts_without_token(self, session):
        assert session.current_token() == ""
        assert session.state == SessionState.NO_TOKEN

    def test_login_url(self, session):
        assert session.login_url == "https://h/aveksa/command.submit?cmd=loginUser"

    @pytest.mark.asyncio
    async def test_valid_after_refresh(self, session):
        await session.refresh(_client(httpx.Response(200, text="token=abc")))
        assert session.state == SessionState.VALID

    def test_invalidate(self, session):
        session._token = "token=abc"
        session.invalidate()
        assert session.state == SessionState.NO_TOKEN


class TestRefresh:
    @pytest.mark.asyncio
    async def test_strips_trailing_newlines(self, session):
        result = await session.refresh(_client(httpx.Response(200, text="token=abc\r\n")))
        assert result.success
        assert session.current_token() == "token=abc"

    @pytest.mark.asyncio
    async def test_escapes_credentials(self):
        session = SessionManager("https://h", "a&b", "<p>")
        client = _client(httpx.Response(200, text="token=x"))
        await session.refresh(client)
        assert client.post.call_args.kwargs["content"] == (
            "<username>a&amp;b</username><password>&lt;p&gt;</password>"
        )

    @pytest.mark.asyncio
    async def test_rejected_login_keeps_token(self, session):
        session._token = "token=old"
        result = await session.refresh(_client(httpx.Response(403)))

        assert not result.success
        assert result.error is ErrorKind.AUTH
        assert session.current_token() == "token=old"
        with pytest.raises(AuthError, match="403"):
            result.raise_for_error()

    @pytest.mark.asyncio
    async def test_transport_failure(self, session):
        result = await session.refresh(_client(httpx.ConnectTimeout("timed out")))
        assert result.error is ErrorKind.AUTH
        assert "timed out" in result.message

    @pytest.mark.asyncio
    async def test_empty_token(self, session):
        result = await session.refresh(_client(httpx.Response(200, text="\n")))
        assert not result.success
        assert session.current_token() == ""

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_log_in_once(self, session):
        async def slow_login(*args, **kwargs):
            await asyncio.sleep(0.01)
            return httpx.Response(200, text="token=new\n")

        client = AsyncMock()
        client.post = AsyncMock(side_effect=slow_login)

        first, second = await asyncio.gather(
            session.refresh(client, stale_token=""),
            session.refresh(client, stale_token=""),
        )

        assert client.post.await_count == 1
        assert first.data == second.data == "token=new"

    @pytest.mark.asyncio
    async def test_refresh_after_invalidate_logs_in(self, session):
        session._token = "token=X"
        session.invalidate()
        client = _client(httpx.Response(200, text="token=Y"))

        result = await session.refresh(client, stale_token="token=X")

        client.post.assert_awaited_once()
        assert result.data == "token=Y"
        assert session.current_token() == "token=Y"

    @pytest.mark.asyncio
    async def test_explicit_refresh_always_logs_in(self, session):
        session._token = "token=old"
        client = _client(httpx.Response(200, text="token=new"))
        await session.refresh(client)
        assert client.post.await_count == 1
        assert session.current_token() == "token=new"
