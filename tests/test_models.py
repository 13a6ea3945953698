from __future__ import annotations

import pytest
from pydantic import ValidationError

from xraysync.models.member import DesiredState, Member, SyncPayload
from xraysync.models.report import CycleReport, OperationKind, OperationResult, Outcome


def test_legacy_uuid_list_payload() -> None:
    payload = SyncPayload.model_validate({"uuids": ["a1", " b2 "]})

    assert [m.identity for m in payload.members] == ["a1", "b2"]
    assert all(m.tier == 0 and m.label is None for m in payload.members)


def test_member_payload_with_aliases() -> None:
    payload = SyncPayload.model_validate(
        {
            "members": [
                {"identity": "a1", "tier": 2, "label": "alice"},
                {"uuid": "b2", "level": 1, "email": "bob@example.com", "account": {"flow": "xtls-rprx-vision"}},
                {"id": "c3", "tier": None},
            ]
        }
    )

    a, b, c = payload.members
    assert (a.identity, a.tier, a.label) == ("a1", 2, "alice")
    assert (b.identity, b.tier, b.label) == ("b2", 1, "bob@example.com")
    assert b.account == {"flow": "xtls-rprx-vision"}
    assert (c.identity, c.tier) == ("c3", 0)


def test_bare_list_payload() -> None:
    payload = SyncPayload.model_validate(["a1", {"identity": "b2"}])

    assert [m.identity for m in payload.members] == ["a1", "b2"]


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"error": "nope"},
        {"uuids": None},
        {"members": [{"identity": ""}]},
        {"members": [{"identity": "a1", "tier": -1}]},
        "not-a-payload",
    ],
)
def test_malformed_payload_is_rejected(body: object) -> None:
    with pytest.raises(ValidationError):
        SyncPayload.model_validate(body)


def test_desired_state_collapses_duplicates_to_last() -> None:
    desired = DesiredState([Member(identity="a1", tier=1), Member(identity="a1", tier=3)])

    assert len(desired) == 1
    assert desired.identities == frozenset({"a1"})
    member = desired.get("a1")
    assert member is not None
    assert member.tier == 3


def test_cycle_report_helpers() -> None:
    report = CycleReport(
        results=[
            OperationResult(identity="a", kind=OperationKind.ADD, outcome=Outcome.OK),
            OperationResult(identity="b", kind=OperationKind.ADD, outcome=Outcome.UNAVAILABLE, cause="down"),
            OperationResult(identity="c", kind=OperationKind.REMOVE, outcome=Outcome.OK),
        ]
    )

    assert report.fetched
    assert not report.converged
    assert [r.identity for r in report.failed] == ["b"]
    assert [r.identity for r in report.results_for(OperationKind.REMOVE)] == ["c"]

    dumped = report.to_dict()
    assert dumped["results"][1] == {"identity": "b", "kind": "add", "outcome": "unavailable", "cause": "down"}
