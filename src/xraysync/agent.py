"""High-level async agent wiring fetcher, supervisor, engine and scheduler."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from xraysync.config import SyncConfig
from xraysync.engine import ReconciliationEngine
from xraysync.exceptions import XraySyncError
from xraysync.fetcher import DesiredStateFetcher
from xraysync.models.report import CycleReport
from xraysync.mutation import XrayMutationClient
from xraysync.scheduler import Scheduler
from xraysync.supervisor import ChannelFactory, ConnectionSupervisor, RetryPolicy, default_channel_factory

_logger = logging.getLogger(__name__)


class SyncAgent:
    """Keeps one Xray inbound in sync with the control plane.

    Usage::

        async with SyncAgent(SyncConfig.from_env()) as agent:
            await agent.run()
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        retry_policy: RetryPolicy | None = None,
        channel_factory: ChannelFactory = default_channel_factory,
        on_report: Callable[[CycleReport], None] | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._retry_policy = retry_policy or RetryPolicy(interval=config.connect_retry_interval)
        self._channel_factory = channel_factory
        self._on_report = on_report
        self._supervisor: ConnectionSupervisor | None = None
        self._engine: ReconciliationEngine | None = None
        self._scheduler: Scheduler | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SyncAgent:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._supervisor = ConnectionSupervisor(
            self._config.xray_grpc_addr,
            connect_timeout=self._config.connect_timeout,
            retry_policy=self._retry_policy,
            channel_factory=self._channel_factory,
        )
        self._engine = ReconciliationEngine(
            DesiredStateFetcher(self._config, self._http_session),
            XrayMutationClient(self._config, self._supervisor),
            max_concurrency=self._config.max_concurrency,
            reconcile_attributes=self._config.reconcile_attributes,
        )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.stop()
        if self._supervisor is not None:
            await self._supervisor.close()
            self._supervisor = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._engine = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_engine(self) -> ReconciliationEngine:
        if self._engine is None:
            raise XraySyncError("Agent not initialized. Use 'async with SyncAgent(...) as agent:'")
        return self._engine

    def _require_supervisor(self) -> ConnectionSupervisor:
        if self._supervisor is None:
            raise XraySyncError("Agent not initialized. Use 'async with SyncAgent(...) as agent:'")
        return self._supervisor

    def _handle_report(self, report: CycleReport) -> None:
        if report.fetched:
            _logger.debug(
                "Cycle done desired=%d observed=%d ok=%d failed=%d",
                report.desired_count,
                report.observed_count,
                len(report.succeeded),
                len(report.failed),
            )
        if self._on_report is not None:
            self._on_report(report)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def engine(self) -> ReconciliationEngine:
        return self._require_engine()

    @property
    def supervisor(self) -> ConnectionSupervisor:
        return self._require_supervisor()

    async def connect(self) -> None:
        """Block until the Xray API is reachable (fail-closed startup)."""
        await self._require_supervisor().connect()

    async def run_once(self) -> CycleReport:
        """Connect if needed and run a single reconciliation cycle."""
        await self.connect()
        report = await self._require_engine().run_cycle()
        self._handle_report(report)
        return report

    async def run(self, *, max_cycles: int | None = None) -> None:
        """Connect, then reconcile every ``sync_interval`` seconds until stopped."""
        engine = self._require_engine()
        await self.connect()
        self._scheduler = Scheduler(
            engine.run_cycle,
            interval=self._config.sync_interval,
            on_report=self._handle_report,
            max_cycles=max_cycles,
        )
        _logger.info(
            "Syncing inbound %s from %s every %.0fs",
            self._config.inbound_tag,
            self._config.control_plane_url,
            self._config.sync_interval,
        )
        try:
            await self._scheduler.run()
        finally:
            self._scheduler = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.is_running

    def stop(self) -> None:
        """Stop the scheduler after the current cycle."""
        if self._scheduler is not None:
            self._scheduler.stop()
