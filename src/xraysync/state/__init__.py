"""State layer.

The engine's record of what it has applied to the proxy, and the pure
delta computation between that record and the desired member set.
"""

from xraysync.state.diff import MemberDelta, compute_delta
from xraysync.state.observed import ObservedState

__all__ = ["MemberDelta", "ObservedState", "compute_delta"]
