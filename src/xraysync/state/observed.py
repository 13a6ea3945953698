"""In-memory record of members applied to the proxy by this process.

Only identities the engine itself added (and has not yet removed) are ever
stored here. A fresh process starts empty, which is what keeps a cold start
from removing users it never added.
"""

from __future__ import annotations

from collections.abc import Iterator

from xraysync.models.member import Member


class ObservedState:
    """Identity → Member map owned by a single engine instance."""

    def __init__(self) -> None:
        self._members: dict[str, Member] = {}

    def record_added(self, member: Member) -> None:
        """Record a confirmed successful add."""
        self._members[member.identity] = member

    def record_removed(self, identity: str) -> None:
        """Record a confirmed successful remove."""
        self._members.pop(identity, None)

    def get(self, identity: str) -> Member | None:
        return self._members.get(identity)

    @property
    def identities(self) -> frozenset[str]:
        return frozenset(self._members)

    def snapshot(self) -> dict[str, Member]:
        return dict(self._members)

    def __contains__(self, identity: object) -> bool:
        return identity in self._members

    def __iter__(self) -> Iterator[Member]:
        return iter(list(self._members.values()))

    def __len__(self) -> int:
        return len(self._members)

    def __repr__(self) -> str:
        return f"ObservedState(members={len(self._members)})"
