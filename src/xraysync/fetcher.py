"""Desired-state read call against the control plane."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import aiohttp
from pydantic import ValidationError

from xraysync._constants import SYNC_ENDPOINT, USER_AGENT
from xraysync._redact import redact_for_log
from xraysync.config import SyncConfig
from xraysync.exceptions import FetchAuthError, FetchError
from xraysync.models.member import DesiredState, SyncPayload

_logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    """Structural fetcher interface consumed by the engine.

    Lets tests hand the engine a canned desired state without an HTTP server.
    """

    async def fetch(self) -> DesiredState: ...


class DesiredStateFetcher:
    """Fetches the authoritative member list over an authenticated GET.

    No retry happens here; a failed fetch turns the whole cycle into a no-op
    and the scheduler's next tick tries again.
    """

    def __init__(self, config: SyncConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._url = f"{config.control_plane_url.rstrip('/')}{SYNC_ENDPOINT}"
        self._timeout = aiohttp.ClientTimeout(total=config.fetch_timeout)

    @property
    def url(self) -> str:
        return self._url

    async def fetch(self) -> DesiredState:
        """Return the current desired state.

        Raises
        ------
        FetchAuthError
            The control plane rejected the shared secret.
        FetchError
            Transport failure, timeout, non-2xx status or malformed body.
        """
        headers = {
            self._config.secret_header: self._config.server_secret,
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        _logger.debug(
            "GET %s headers=%s",
            self._url,
            redact_for_log(headers, sensitive_keys=frozenset({self._config.secret_header.lower()})),
        )

        try:
            async with self._http.get(self._url, headers=headers, timeout=self._timeout) as resp:
                raw = await resp.read()
                status = resp.status
                charset = resp.charset or "utf-8"
        except TimeoutError as exc:
            raise FetchError(
                f"Request to {SYNC_ENDPOINT} timed out after {self._config.fetch_timeout}s",
                endpoint=SYNC_ENDPOINT,
            ) from exc
        except aiohttp.ClientError as exc:
            raise FetchError(f"Request to {SYNC_ENDPOINT} failed: {exc}", endpoint=SYNC_ENDPOINT) from exc

        if status in (401, 403):
            raise FetchAuthError(
                f"HTTP {status} from {SYNC_ENDPOINT}: shared secret rejected",
                status_code=status,
                endpoint=SYNC_ENDPOINT,
            )
        if not 200 <= status < 300:
            preview = raw[:200].decode("utf-8", errors="replace")
            raise FetchError(
                f"HTTP {status} from {SYNC_ENDPOINT}: {preview}",
                status_code=status,
                endpoint=SYNC_ENDPOINT,
            )

        try:
            text = raw.decode(charset)
        except (UnicodeDecodeError, LookupError) as exc:
            raise FetchError(
                f"Undecodable body from {SYNC_ENDPOINT} (charset {charset}): {exc}",
                status_code=status,
                endpoint=SYNC_ENDPOINT,
            ) from exc

        try:
            body: Any = json.loads(text)
        except json.JSONDecodeError as exc:
            raise FetchError(
                f"Invalid JSON from {SYNC_ENDPOINT}: {text[:200]}",
                status_code=status,
                endpoint=SYNC_ENDPOINT,
            ) from exc

        try:
            payload = SyncPayload.model_validate(body)
        except ValidationError as exc:
            raise FetchError(
                f"Malformed sync payload from {SYNC_ENDPOINT}: {exc.error_count()} error(s)",
                status_code=status,
                endpoint=SYNC_ENDPOINT,
            ) from exc

        desired = DesiredState(payload.members)
        _logger.debug("Fetched desired state members=%d", len(desired))
        return desired
