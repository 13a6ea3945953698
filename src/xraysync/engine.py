"""Reconciliation engine: fetch → diff → apply.

The engine is the only writer of its :class:`ObservedState`, and it writes
only after the proxy confirmed an operation. Every delta runs to completion
(success or failure) before the cycle returns; a failed identity is simply
recomputed into the next cycle's delta, so there is no retry queue.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from xraysync.exceptions import FetchError, MutationError, MutationRejectedError
from xraysync.fetcher import Fetcher
from xraysync.models.member import Member
from xraysync.models.report import CycleReport, OperationKind, OperationResult, Outcome
from xraysync.mutation import MutationClient
from xraysync.state.diff import MemberDelta, compute_delta
from xraysync.state.observed import ObservedState

_logger = logging.getLogger(__name__)


def _outcome_for(exc: MutationError) -> Outcome:
    if isinstance(exc, MutationRejectedError):
        return Outcome.REJECTED
    return Outcome.UNAVAILABLE


class ReconciliationEngine:
    """Converges one mutation target onto the fetched desired state.

    Parameters
    ----------
    fetcher
        Source of the desired member set.
    client
        Mutation API for the target (one inbound tag).
    observed
        Starting observed state. Defaults to empty, which is the only safe
        value for a freshly started process.
    max_concurrency
        Upper bound of in-flight mutation calls within a cycle.
    reconcile_attributes
        Whether tier/account changes of an already-applied identity are
        re-applied.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        client: MutationClient,
        *,
        observed: ObservedState | None = None,
        max_concurrency: int = 8,
        reconcile_attributes: bool = True,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._fetcher = fetcher
        self._client = client
        self._observed = observed if observed is not None else ObservedState()
        self._max_concurrency = max_concurrency
        self._reconcile_attributes = reconcile_attributes
        self._cycle_lock = asyncio.Lock()

    @property
    def observed(self) -> ObservedState:
        return self._observed

    async def run_cycle(self) -> CycleReport:
        """Run one reconciliation pass and report what happened.

        Concurrent callers are serialized; cycles never overlap.
        """
        async with self._cycle_lock:
            return await self._run_cycle()

    async def _run_cycle(self) -> CycleReport:
        report = CycleReport(observed_count=len(self._observed))

        try:
            desired = await self._fetcher.fetch()
        except FetchError as exc:
            _logger.warning("Desired-state fetch failed, skipping cycle: %s", exc)
            report.fetch_error = str(exc)
            report.finished_at = datetime.now(UTC)
            return report

        delta = compute_delta(desired, self._observed, include_updates=self._reconcile_attributes)
        report.desired_count = len(desired)
        report.to_add = len(delta.to_add)
        report.to_remove = len(delta.to_remove)
        report.to_update = len(delta.to_update)

        if delta.is_empty:
            _logger.debug("In sync: %d member(s)", len(self._observed))
        else:
            _logger.info(
                "Applying delta add=%d remove=%d update=%d",
                len(delta.to_add),
                len(delta.to_remove),
                len(delta.to_update),
            )
            report.results = await self._apply(delta)

        report.observed_count = len(self._observed)
        report.finished_at = datetime.now(UTC)
        return report

    async def _apply(self, delta: MemberDelta) -> list[OperationResult]:
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def bounded(op: Callable[[], Awaitable[OperationResult]]) -> OperationResult:
            async with semaphore:
                return await op()

        operations: list[Callable[[], Awaitable[OperationResult]]] = []
        operations.extend(functools.partial(self._add, m) for m in delta.to_add)
        operations.extend(functools.partial(self._remove, i) for i in delta.to_remove)
        operations.extend(functools.partial(self._update, m) for m in delta.to_update)

        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(bounded(op)) for op in operations]
        return [task.result() for task in tasks]

    # ------------------------------------------------------------------
    # Per-identity operations
    # ------------------------------------------------------------------

    def _failed(self, identity: str, kind: OperationKind, exc: MutationError) -> OperationResult:
        outcome = _outcome_for(exc)
        level = logging.ERROR if outcome == Outcome.REJECTED else logging.WARNING
        _logger.log(
            level,
            "Mutation failed identity=%s operation=%s outcome=%s cause=%s",
            identity,
            kind.value,
            outcome.value,
            exc,
        )
        return OperationResult(identity=identity, kind=kind, outcome=outcome, cause=str(exc))

    async def _add(self, member: Member) -> OperationResult:
        try:
            await self._client.add_member(member)
        except MutationError as exc:
            return self._failed(member.identity, OperationKind.ADD, exc)
        self._observed.record_added(member)
        _logger.info("Added user identity=%s tier=%d", member.identity, member.tier)
        return OperationResult(identity=member.identity, kind=OperationKind.ADD, outcome=Outcome.OK)

    async def _remove(self, identity: str) -> OperationResult:
        try:
            await self._client.remove_member(identity)
        except MutationError as exc:
            return self._failed(identity, OperationKind.REMOVE, exc)
        self._observed.record_removed(identity)
        _logger.info("Removed user identity=%s", identity)
        return OperationResult(identity=identity, kind=OperationKind.REMOVE, outcome=Outcome.OK)

    async def _update(self, member: Member) -> OperationResult:
        # Xray has no in-place user update: remove, then add with new attributes.
        try:
            await self._client.remove_member(member.identity)
        except MutationError as exc:
            return self._failed(member.identity, OperationKind.UPDATE, exc)
        self._observed.record_removed(member.identity)

        try:
            await self._client.add_member(member)
        except MutationError as exc:
            return self._failed(member.identity, OperationKind.UPDATE, exc)
        self._observed.record_added(member)
        _logger.info("Updated user identity=%s tier=%d", member.identity, member.tier)
        return OperationResult(identity=member.identity, kind=OperationKind.UPDATE, outcome=Outcome.OK)
