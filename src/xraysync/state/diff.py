"""Deterministic delta between desired and observed membership.

This module contains no I/O. The engine feeds it one fetched
:class:`DesiredState` and its own :class:`ObservedState` and gets back the
calls to make.
"""

from __future__ import annotations

from dataclasses import dataclass

from xraysync.models.member import DesiredState, Member
from xraysync.state.observed import ObservedState


@dataclass(frozen=True)
class MemberDelta:
    """Operations needed to converge observed onto desired.

    ``to_add`` and ``to_remove`` are disjoint by construction; ``to_update``
    only holds identities present on both sides.
    """

    to_add: tuple[Member, ...] = ()
    to_remove: tuple[str, ...] = ()
    to_update: tuple[Member, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.to_add or self.to_remove or self.to_update)

    def __len__(self) -> int:
        return len(self.to_add) + len(self.to_remove) + len(self.to_update)


def compute_delta(
    desired: DesiredState,
    observed: ObservedState,
    *,
    include_updates: bool = True,
) -> MemberDelta:
    """Compute add/remove/update sets.

    Membership tests are by identity only. Ordering is sorted by identity so
    repeated runs over the same inputs issue the same calls.
    """
    to_add = tuple(sorted((m for m in desired if m.identity not in observed), key=lambda m: m.identity))
    to_remove = tuple(sorted(identity for identity in observed.identities if identity not in desired))

    to_update: tuple[Member, ...] = ()
    if include_updates:
        changed: list[Member] = []
        for member in desired:
            current = observed.get(member.identity)
            if current is not None and current.attributes() != member.attributes():
                changed.append(member)
        to_update = tuple(sorted(changed, key=lambda m: m.identity))

    return MemberDelta(to_add=to_add, to_remove=to_remove, to_update=to_update)
