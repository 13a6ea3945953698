"""Per-cycle reconciliation report.

Every mutation issued during a cycle produces one :class:`OperationResult`.
The engine logs failures as they happen; the report exists so callers
(the scheduler hook, the CLI, tests) can inspect outcomes without parsing
log output.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class OperationKind(StrEnum):
    ADD = "add"
    REMOVE = "remove"
    UPDATE = "update"


class Outcome(StrEnum):
    OK = "ok"
    UNAVAILABLE = "unavailable"
    REJECTED = "rejected"


class OperationResult(BaseModel):
    """Outcome of one mutation call."""

    model_config = ConfigDict(frozen=True)

    identity: str
    kind: OperationKind
    outcome: Outcome
    cause: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == Outcome.OK


class CycleReport(BaseModel):
    """What a single fetch → diff → apply pass did."""

    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    fetch_error: str | None = None
    desired_count: int = 0
    observed_count: int = 0
    to_add: int = 0
    to_remove: int = 0
    to_update: int = 0
    results: list[OperationResult] = Field(default_factory=list)

    @property
    def fetched(self) -> bool:
        return self.fetch_error is None

    @property
    def succeeded(self) -> list[OperationResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> list[OperationResult]:
        return [r for r in self.results if not r.ok]

    @property
    def converged(self) -> bool:
        """Fetch succeeded and every issued operation succeeded."""
        return self.fetched and not self.failed

    def results_for(self, kind: OperationKind) -> list[OperationResult]:
        return [r for r in self.results if r.kind == kind]

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
