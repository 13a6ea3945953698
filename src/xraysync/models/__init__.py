"""Typed models used by the reconciliation agent."""

from xraysync.models.member import DesiredState, Member, SyncPayload
from xraysync.models.report import CycleReport, OperationKind, OperationResult, Outcome

__all__ = [
    "CycleReport",
    "DesiredState",
    "Member",
    "OperationKind",
    "OperationResult",
    "Outcome",
    "SyncPayload",
]
