"""xraysync - keep Xray inbound users in sync with a control plane."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("xraysync")
except PackageNotFoundError:
    __version__ = "0+local"
from xraysync.agent import SyncAgent
from xraysync.config import SyncConfig
from xraysync.engine import ReconciliationEngine
from xraysync.exceptions import (
    FetchAuthError,
    FetchError,
    MutationError,
    MutationRejectedError,
    SyncConfigError,
    TargetUnavailableError,
    XraySyncError,
)
from xraysync.fetcher import DesiredStateFetcher
from xraysync.models import (
    CycleReport,
    DesiredState,
    Member,
    OperationKind,
    OperationResult,
    Outcome,
)
from xraysync.mutation import MutationClient, XrayMutationClient
from xraysync.scheduler import Scheduler
from xraysync.state import MemberDelta, ObservedState, compute_delta
from xraysync.supervisor import ConnectionSupervisor, RetryPolicy

__all__ = [
    "__version__",
    "ConnectionSupervisor",
    "CycleReport",
    "DesiredState",
    "DesiredStateFetcher",
    "FetchAuthError",
    "FetchError",
    "Member",
    "MemberDelta",
    "MutationClient",
    "MutationError",
    "MutationRejectedError",
    "ObservedState",
    "OperationKind",
    "OperationResult",
    "Outcome",
    "ReconciliationEngine",
    "RetryPolicy",
    "Scheduler",
    "SyncAgent",
    "SyncConfig",
    "SyncConfigError",
    "TargetUnavailableError",
    "XraySyncError",
    "compute_delta",
]
