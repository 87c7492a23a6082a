from pathlib import Path

import pytest

from payroll.membership import MembershipStore

ALICE = "0x" + "A1" * 20
BOB = "0x" + "b2" * 20


def test_roles_are_checked_case_insensitively_by_address():
    store = MembershipStore()
    store.set_member_roles("t1", ALICE, ["admin", " member ", "admin", ""])

    assert store.roles_of("t1", ALICE) == ["admin", "member"]
    assert store.has_role("t1", ALICE.lower(), "member")
    assert not store.has_role("t1", ALICE, "owner")
    assert not store.has_role("t2", ALICE, "admin")


def test_members_keep_insertion_order_and_can_be_removed():
    store = MembershipStore()
    store.set_member_roles("t1", BOB, ["member"])
    store.set_member_roles("t1", ALICE, ["member"])

    assert store.list_members("t1") == [BOB.lower(), ALICE.lower()]
    assert store.remove_member("t1", BOB)
    assert not store.remove_member("t1", BOB)
    assert store.list_members("t1") == [ALICE.lower()]


def test_invalid_member_address_is_rejected():
    store = MembershipStore()

    with pytest.raises(ValueError):
        store.set_member_roles("t1", "alice", ["member"])


def test_memberships_persist(tmp_path: Path):
    path = tmp_path / "memberships.json"
    MembershipStore(path).set_member_roles("t1", ALICE, ["member"])

    assert MembershipStore(path).has_role("t1", ALICE, "member")
