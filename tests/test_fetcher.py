from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from xraysync.config import SyncConfig
from xraysync.exceptions import FetchAuthError, FetchError
from xraysync.fetcher import DesiredStateFetcher

SECRET = "s3cr3t-value"


class FakeControlPlane:
    """Serves ``/api/internal/sync`` the way the control plane does."""

    def __init__(self) -> None:
        self.body: Any = {"uuids": ["u-1", "u-2"]}
        self.status = 200
        self.raw_text: str | None = None
        self.raw_body: bytes | None = None
        self.delay = 0.0
        self.seen_secrets: list[str | None] = []

    async def handle(self, request: web.Request) -> web.StreamResponse:
        secret = request.headers.get("X-Server-Secret")
        self.seen_secrets.append(secret)
        if self.delay:
            await asyncio.sleep(self.delay)
        if secret != SECRET:
            return web.Response(status=401, text="invalid or missing X-Server-Secret")
        if self.raw_body is not None:
            return web.Response(status=self.status, body=self.raw_body, content_type="application/json")
        if self.raw_text is not None:
            return web.Response(status=self.status, text=self.raw_text, content_type="application/json")
        return web.json_response(self.body, status=self.status)


@pytest.fixture
def control_plane() -> FakeControlPlane:
    return FakeControlPlane()


@pytest_asyncio.fixture
async def server(control_plane: FakeControlPlane) -> AsyncIterator[TestServer]:
    app = web.Application()
    app.router.add_get("/api/internal/sync", control_plane.handle)
    test_server = TestServer(app)
    await test_server.start_server()
    try:
        yield test_server
    finally:
        await test_server.close()


@pytest_asyncio.fixture
async def make_fetcher(server: TestServer) -> AsyncIterator[Callable[..., DesiredStateFetcher]]:
    async with aiohttp.ClientSession() as session:

        def _make(**overrides: Any) -> DesiredStateFetcher:
            kwargs: dict[str, Any] = {
                "server_secret": SECRET,
                "control_plane_url": str(server.make_url("/")),
            }
            kwargs.update(overrides)
            return DesiredStateFetcher(SyncConfig(**kwargs), session)

        yield _make


@pytest.mark.asyncio
async def test_fetch_sends_secret_and_parses_legacy_shape(
    make_fetcher: Callable[..., DesiredStateFetcher],
    control_plane: FakeControlPlane,
) -> None:
    desired = await make_fetcher().fetch()

    assert desired.identities == {"u-1", "u-2"}
    assert control_plane.seen_secrets == [SECRET]


@pytest.mark.asyncio
async def test_fetch_parses_member_shape(
    make_fetcher: Callable[..., DesiredStateFetcher],
    control_plane: FakeControlPlane,
) -> None:
    control_plane.body = {"members": [{"identity": "u-1", "tier": 3, "label": "Alice"}]}

    desired = await make_fetcher().fetch()

    member = desired.get("u-1")
    assert member is not None
    assert (member.tier, member.label) == (3, "Alice")


@pytest.mark.asyncio
async def test_wrong_secret_is_auth_error(make_fetcher: Callable[..., DesiredStateFetcher]) -> None:
    with pytest.raises(FetchAuthError) as exc_info:
        await make_fetcher(server_secret="wrong").fetch()

    assert exc_info.value.status_code == 401
    assert exc_info.value.endpoint == "/api/internal/sync"


@pytest.mark.asyncio
async def test_server_error_is_fetch_error(
    make_fetcher: Callable[..., DesiredStateFetcher],
    control_plane: FakeControlPlane,
) -> None:
    control_plane.status = 500
    control_plane.body = {"error": "database error"}

    with pytest.raises(FetchError) as exc_info:
        await make_fetcher().fetch()

    assert not isinstance(exc_info.value, FetchAuthError)
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["not json", '{"unexpected": true}', '{"uuids": [""]}'])
async def test_malformed_body_is_fetch_error(
    make_fetcher: Callable[..., DesiredStateFetcher],
    control_plane: FakeControlPlane,
    raw: str,
) -> None:
    control_plane.raw_text = raw

    with pytest.raises(FetchError):
        await make_fetcher().fetch()


@pytest.mark.asyncio
async def test_undecodable_body_is_fetch_error(
    make_fetcher: Callable[..., DesiredStateFetcher],
    control_plane: FakeControlPlane,
) -> None:
    control_plane.raw_body = b'{"uuids": ["\xff\xfe"]}'

    with pytest.raises(FetchError, match="Undecodable") as exc_info:
        await make_fetcher().fetch()

    assert exc_info.value.status_code == 200


@pytest.mark.asyncio
async def test_timeout_is_fetch_error(
    make_fetcher: Callable[..., DesiredStateFetcher],
    control_plane: FakeControlPlane,
) -> None:
    control_plane.delay = 0.5

    with pytest.raises(FetchError, match="timed out"):
        await make_fetcher(fetch_timeout=0.05).fetch()


@pytest.mark.asyncio
async def test_unreachable_control_plane_is_fetch_error() -> None:
    async with aiohttp.ClientSession() as session:
        fetcher = DesiredStateFetcher(
            SyncConfig(server_secret=SECRET, control_plane_url="http://127.0.0.1:1", fetch_timeout=2.0),
            session,
        )
        with pytest.raises(FetchError):
            await fetcher.fetch()


@pytest.mark.asyncio
async def test_secret_never_logged(
    make_fetcher: Callable[..., DesiredStateFetcher],
    caplog: pytest.LogCaptureFixture,
) -> None:
    with caplog.at_level(logging.DEBUG, logger="xraysync"):
        await make_fetcher().fetch()

    assert caplog.records
    assert all(SECRET not in record.getMessage() for record in caplog.records)
