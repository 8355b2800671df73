"""Tests for AccessGuard and AccessPolicy."""

import pytest

from access import AccessGuard, AccessPolicy
from conftest import ADMIN, ALICE, BOB, E18
from ledger import SystemPaused, Unauthorized, ValidationError
from shared_types import Capability, EventType


class TestPolicy:
    def test_capabilities(self, ledger):
        policy = AccessPolicy([ADMIN, ""])
        assert policy.capabilities(ADMIN, ledger) == {Capability.ADMIN, Capability.ORACLE}
        assert policy.capabilities(ALICE, ledger) == set()
        assert policy.admins == frozenset({ADMIN})

    def test_identity_comparison_is_exact(self, ledger):
        policy = AccessPolicy([ADMIN])
        assert not policy.allows(ADMIN.lower(), Capability.ADMIN, ledger)


@pytest.mark.parametrize(
    "operation,args",
    [
        ("set_accuracy_threshold", (100,)),
        ("pause", ()),
        ("unpause", ()),
        ("grant_oracle", (BOB,)),
        ("revoke_oracle", (ADMIN,)),
        ("bulk_resolve", ([{"id": 1, "actual_price": 1}],)),
    ],
)
def test_non_admin_rejected_before_state_changes(guard, ledger, operation, args):
    before = ledger.config()
    with pytest.raises(Unauthorized):
        getattr(guard, operation)(ALICE, *args)
    assert ledger.config() == before
    assert ledger.events() == []


def test_threshold_update(guard, ledger):
    assert guard.set_accuracy_threshold(ADMIN, 250) == {"old": 500, "new": 250}
    assert ledger.config().accuracy_threshold == 250
    with pytest.raises(ValidationError):
        guard.set_accuracy_threshold(ADMIN, 10_001)
    assert ledger.config().accuracy_threshold == 250


def test_pause_blocks_submit_until_unpaused(guard, submit):
    assert guard.pause(ADMIN) is True
    with pytest.raises(SystemPaused):
        submit()
    assert guard.unpause(ADMIN) is True
    assert guard.unpause(ADMIN) is False
    assert submit() == 1


def test_oracle_grant_enables_resolution(guard, ledger, submit, clock):
    pid = submit()
    clock.advance(3600)
    guard.grant_oracle(ADMIN, BOB)
    ledger.resolve(pid, 52_000 * E18, BOB)

    assert guard.revoke_oracle(ADMIN, BOB) is True
    assert guard.revoke_oracle(ADMIN, BOB) is False
    types = [e.type for e in ledger.events()]
    assert types.count(EventType.ORACLE_GRANTED) == 1
    assert types.count(EventType.ORACLE_REVOKED) == 1


class TestBulkResolve:
    def test_partial_success(self, guard, ledger, submit, clock):
        ids = [submit() for _ in range(3)]
        late = submit(target_time=clock() + 10 * 3600)
        clock.advance(3600)

        report = guard.bulk_resolve(
            ADMIN,
            [{"id": pid, "actual_price": 52_000 * E18} for pid in ids]
            + [{"prediction_id": late, "actual_price": 52_000 * E18}],
        )

        assert report["resolved"] == 3
        assert report["failed"] == 1
        assert report["summary"] == {"total": 4, "successful": 3, "failed": 1}
        assert [d["prediction_id"] for d in report["details"]] == ids
        assert report["details"][0]["accuracy_score"] == 10_000
        assert report["errors"][0]["prediction_id"] == late
        assert report["errors"][0]["code"] == "too_early"
        assert ledger.get(late).resolved is False

    def test_failures_do_not_block_later_items(self, guard, ledger, submit, clock):
        pid = submit()
        clock.advance(3600)
        report = guard.bulk_resolve(
            ADMIN,
            [
                {"id": 42, "actual_price": 1},
                {"id": pid, "actual_price": 0},
                {"actual_price": 5},
                {"id": pid, "actual_price": 51_000 * E18},
                {"id": pid, "actual_price": 51_000 * E18},
            ],
        )
        assert report["resolved"] == 1
        assert [e.get("code") for e in report["errors"]] == [
            "not_found",
            None,
            None,
            "already_resolved",
        ]
        assert report["errors"][1]["error"] == "Invalid prediction data"

    def test_malformed_items_are_reported_not_raised(self, guard, ledger, submit, clock):
        pid = submit()
        clock.advance(3600)
        report = guard.bulk_resolve(
            ADMIN, [None, 5, "1", {"id": pid, "actual_price": 52_000 * E18}]
        )
        assert report["resolved"] == 1
        assert report["failed"] == 3
        assert report["errors"] == [
            {"prediction_id": None, "error": "Invalid prediction data"}
        ] * 3
        assert ledger.get(pid).resolved is True

    def test_admin_without_oracle_role_can_bulk_resolve(self, ledger, submit, clock):
        late_admin = "0xADD0000000000000000000000000000000000cc"
        guard = AccessGuard(ledger, AccessPolicy([ADMIN, late_admin]))
        pid = submit()
        clock.advance(3600)
        assert ledger.is_oracle(late_admin) is False

        report = guard.bulk_resolve(late_admin, [{"id": pid, "actual_price": 52_000 * E18}])

        assert report["resolved"] == 1
        assert report["errors"] == []
        assert ledger.get(pid).accuracy_score == 10_000

    def test_bulk_path_keeps_other_resolution_checks(self, ledger, submit, clock):
        late_admin = "0xADD0000000000000000000000000000000000cc"
        guard = AccessGuard(ledger, AccessPolicy([late_admin]))
        pid = submit()
        report = guard.bulk_resolve(late_admin, [{"id": pid, "actual_price": 52_000 * E18}])
        assert report["errors"][0]["code"] == "too_early"

    def test_empty_batch_rejected(self, guard):
        with pytest.raises(ValidationError):
            guard.bulk_resolve(ADMIN, [])
