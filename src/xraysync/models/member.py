"""Member and desired-state models.

The control plane has shipped two response shapes over time:

* ``{"uuids": ["…", …]}``: bare identities, tier 0, no label.
* ``{"members": [{"identity": "…", "tier": 1, "label": "…"}, …]}``

Both (and a bare JSON list of either form) validate into :class:`SyncPayload`.
An object carrying neither key is rejected rather than read as "no members".
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

_logger = logging.getLogger(__name__)


class Member(BaseModel):
    """An account entitled to proxy access.

    Parameters
    ----------
    identity : str
        Stable, opaque account identifier (the control plane's user UUID).
        Sent to Xray as the user ``email`` and as the account id/password.
    tier : int
        Xray user level.
    label : str or None
        Display name. Never sent to the proxy.
    account : dict
        Protocol-specific account parameters (e.g. VLESS ``flow``) passed
        through to the proxy untouched.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    identity: str = Field(validation_alias=AliasChoices("identity", "uuid", "id"))
    tier: int = Field(default=0, ge=0, validation_alias=AliasChoices("tier", "level"))
    label: str | None = Field(default=None, validation_alias=AliasChoices("label", "email"))
    account: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _from_bare_identity(cls, values: Any) -> Any:
        if isinstance(values, str):
            return {"identity": values}
        return values

    @field_validator("identity")
    @classmethod
    def _require_identity(cls, value: str) -> str:
        if not value:
            raise ValueError("identity must be non-empty")
        return value

    @field_validator("tier", mode="before")
    @classmethod
    def _none_tier_is_default(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("account", mode="before")
    @classmethod
    def _stringify_account(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, Mapping):
            return {str(k): str(v) for k, v in value.items() if v is not None}
        return value

    def attributes(self) -> tuple[int, tuple[tuple[str, str], ...]]:
        """Fields that reach the proxy besides the identity."""
        return self.tier, tuple(sorted(self.account.items()))


class SyncPayload(BaseModel):
    """Decoded body of the control plane's sync endpoint."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    members: list[Member]

    @model_validator(mode="before")
    @classmethod
    def _normalize_shapes(cls, values: Any) -> Any:
        if isinstance(values, list):
            return {"members": values}
        if isinstance(values, dict) and "members" not in values and "uuids" in values:
            return {"members": values["uuids"]}
        return values


class DesiredState:
    """Members the control plane currently wants active on this server.

    Built once per cycle and discarded afterwards. Duplicated identities
    collapse to their last occurrence.
    """

    def __init__(self, members: Iterable[Member] = ()) -> None:
        by_identity: dict[str, Member] = {}
        for member in members:
            if member.identity in by_identity:
                _logger.warning("Duplicate identity in desired state identity=%s; keeping last", member.identity)
            by_identity[member.identity] = member
        self._members = by_identity

    @property
    def identities(self) -> frozenset[str]:
        return frozenset(self._members)

    def get(self, identity: str) -> Member | None:
        return self._members.get(identity)

    def __contains__(self, identity: object) -> bool:
        return identity in self._members

    def __iter__(self) -> Iterator[Member]:
        return iter(self._members.values())

    def __len__(self) -> int:
        return len(self._members)

    def __repr__(self) -> str:
        return f"DesiredState(members={len(self._members)})"
