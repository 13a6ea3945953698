"""Connection supervision for the Xray gRPC API.

Session model: one long-lived ``grpc.aio`` channel. The agent blocks at
startup until the channel is READY; afterwards, a transport fault reported by
the mutation client drops the channel and a single background task reconnects
on the retry interval. While disconnected, :meth:`ConnectionSupervisor.channel`
raises :class:`TargetUnavailableError` so mutation calls fail fast instead of
queueing.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from typing import Any, Protocol

import grpc
import grpc.aio

from xraysync.exceptions import TargetUnavailableError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how many times to retry connecting.

    Parameters
    ----------
    interval : float
        Delay before the second attempt, in seconds.
    multiplier : float
        Growth factor applied per further attempt. ``1.0`` is a fixed interval.
    max_interval : float
        Ceiling for the computed delay.
    max_attempts : int or None
        Total attempts before giving up. ``None`` retries forever.
    sleep : callable
        Awaitable sleep used between attempts; tests pass a fake clock.
    """

    interval: float = 10.0
    multiplier: float = 1.0
    max_interval: float = 300.0
    max_attempts: int | None = None
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, compare=False)

    def delay_for(self, attempt: int) -> float:
        """Delay after failed attempt number *attempt* (1-based)."""
        delay = self.interval * (self.multiplier ** max(0, attempt - 1))
        return min(delay, self.max_interval)

    def delays(self) -> Iterator[float]:
        """Delays between attempts; finite only when ``max_attempts`` is set."""
        attempt = 1
        while self.max_attempts is None or attempt < self.max_attempts:
            yield self.delay_for(attempt)
            attempt += 1


class _Channel(Protocol):
    def unary_unary(self, method: str, request_serializer: Any = None, response_deserializer: Any = None) -> Any: ...

    async def channel_ready(self) -> None: ...

    async def close(self, grace: float | None = None) -> None: ...


ChannelFactory = Callable[[str, bool], _Channel]


def parse_grpc_target(address: str) -> tuple[str, bool]:
    """Split an ``XRAY_GRPC_ADDR`` value into ``(host:port, use_tls)``."""
    value = address.strip()
    secure = False
    if "://" in value:
        scheme, value = value.split("://", 1)
        secure = scheme.lower() in {"https", "grpcs"}
    value = value.rstrip("/")
    if not value:
        raise ValueError(f"Invalid gRPC address: {address!r}")
    return value, secure


def default_channel_factory(target: str, secure: bool) -> _Channel:
    if secure:
        return grpc.aio.secure_channel(target, grpc.ssl_channel_credentials())
    return grpc.aio.insecure_channel(target)


class ConnectionSupervisor:
    """Owns the channel that mutation calls ride on."""

    def __init__(
        self,
        address: str,
        *,
        connect_timeout: float = 5.0,
        retry_policy: RetryPolicy | None = None,
        channel_factory: ChannelFactory = default_channel_factory,
    ) -> None:
        self._address = address
        self._target, self._secure = parse_grpc_target(address)
        self._connect_timeout = connect_timeout
        self._retry = retry_policy or RetryPolicy()
        self._channel_factory = channel_factory
        self._channel: _Channel | None = None
        self._stale: list[_Channel] = []
        self._reconnect_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def target(self) -> str:
        return self._target

    @property
    def is_connected(self) -> bool:
        return self._channel is not None

    @property
    def is_reconnecting(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    async def _open(self) -> _Channel:
        channel = self._channel_factory(self._target, self._secure)
        try:
            await asyncio.wait_for(channel.channel_ready(), self._connect_timeout)
        except BaseException:
            await channel.close()
            raise
        return channel

    async def _attempt(self) -> bool:
        try:
            channel = await self._open()
        except (TimeoutError, grpc.RpcError, OSError) as exc:
            _logger.warning("Xray gRPC connect to %s failed: %s", self._address, str(exc) or type(exc).__name__)
            return False
        if self._channel is not None:
            # A concurrent attempt won the race; keep its channel.
            await channel.close()
            return True
        self._channel = channel
        _logger.info("Connected to Xray gRPC at %s", self._address)
        return True

    async def connect(self) -> None:
        """Block until connected, retrying per the policy.

        Raises
        ------
        TargetUnavailableError
            When a bounded policy runs out of attempts.
        """
        self._closed = False
        task = self._reconnect_task
        if task is not None and not task.done():
            await asyncio.wait({task})
        if self._channel is not None:
            return
        if await self._attempt():
            return
        attempts = 1
        for delay in self._retry.delays():
            _logger.info("Retrying Xray gRPC connect in %.1fs", delay)
            await self._retry.sleep(delay)
            attempts += 1
            if await self._attempt():
                return
        raise TargetUnavailableError(f"Could not connect to Xray gRPC at {self._address} after {attempts} attempt(s)")

    def channel(self) -> _Channel:
        """Return the live channel or raise while disconnected."""
        if self._channel is None:
            raise TargetUnavailableError(f"Not connected to Xray gRPC at {self._address}")
        return self._channel

    def mark_unavailable(self, cause: str = "") -> None:
        """Drop the current channel and reconnect in the background."""
        if self._closed:
            return
        channel = self._channel
        self._channel = None
        if channel is not None:
            _logger.warning("Lost Xray gRPC connection to %s: %s", self._address, cause or "unavailable")
            self._stale.append(channel)
        if not self.is_reconnecting:
            self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_loop())
            self._reconnect_task.add_done_callback(self._on_reconnect_done)

    def _on_reconnect_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error("Xray gRPC reconnect loop stopped: %r", exc, exc_info=exc)

    async def _close_stale(self) -> None:
        while self._stale:
            await self._stale.pop().close()

    async def _reconnect_loop(self) -> None:
        await self._close_stale()
        attempt = 1
        while not self._closed and self._channel is None:
            await self._retry.sleep(self._retry.delay_for(attempt))
            if self._closed:
                return
            if await self._attempt():
                return
            attempt += 1

    async def close(self) -> None:
        """Stop reconnecting and close the channel."""
        self._closed = True
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._close_stale()
        channel = self._channel
        self._channel = None
        if channel is not None:
            await channel.close()

    async def __aenter__(self) -> ConnectionSupervisor:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()
