"""Tests for the pure conversation authorization rules."""

from dataclasses import dataclass, field

import pytest

from murmur.core.errors import ValidationError
from murmur.models import ConversationType
from murmur.services import membership


@dataclass
class FakeConversation:
    type: ConversationType
    created_by: str
    participant_ids: list[str] = field(default_factory=list)
    admin_ids: list[str] = field(default_factory=list)


@dataclass
class FakeMessage:
    sender_id: str


@pytest.fixture
def group() -> FakeConversation:
    return FakeConversation(
        type=ConversationType.GROUP,
        created_by="alice",
        participant_ids=["alice", "bob", "carol"],
        admin_ids=["alice"],
    )


@pytest.fixture
def private() -> FakeConversation:
    return FakeConversation(
        type=ConversationType.PRIVATE,
        created_by="alice",
        participant_ids=["alice", "bob"],
        # Stray admin data must not grant anything in a private chat.
        admin_ids=["alice"],
    )


def test_participants_and_outsiders(group) -> None:
    assert membership.is_participant(group, "bob")
    assert not membership.is_participant(group, "mallory")


def test_admin_only_exists_in_groups(group, private) -> None:
    assert membership.is_admin(group, "alice")
    assert not membership.is_admin(group, "bob")
    assert not membership.is_admin(private, "alice")


def test_only_group_admins_modify_and_add(group, private) -> None:
    assert membership.can_modify(group, "alice")
    assert not membership.can_modify(group, "bob")
    assert not membership.can_modify(private, "alice")
    assert membership.can_add_participant(group, "alice")
    assert not membership.can_add_participant(group, "carol")
    assert not membership.can_add_participant(private, "bob")


def test_removal_rules(group, private) -> None:
    assert membership.can_remove_participant(group, "alice", "bob")
    assert membership.can_remove_participant(group, "bob", "bob")
    assert not membership.can_remove_participant(group, "bob", "carol")
    assert not membership.can_remove_participant(group, "mallory", "mallory")
    assert not membership.can_remove_participant(private, "alice", "bob")


def test_delete_rules(group, private) -> None:
    assert membership.can_delete(group, "alice")
    assert not membership.can_delete(group, "bob")
    assert membership.can_delete(private, "alice")
    assert not membership.can_delete(private, "bob")

    group.admin_ids.append("bob")
    assert membership.can_delete(group, "bob")


def test_message_delete_rules(group, private) -> None:
    from_bob = FakeMessage(sender_id="bob")

    assert membership.can_delete_message(group, from_bob, "bob")
    assert membership.can_delete_message(group, from_bob, "alice")
    assert not membership.can_delete_message(group, from_bob, "carol")
    assert not membership.can_delete_message(private, from_bob, "alice")


def test_normalize_private_forces_creator_in() -> None:
    participants, admins = membership.normalize_participants(
        ConversationType.PRIVATE, "alice", ["bob", "alice", "bob"]
    )

    assert participants == ["alice", "bob"]
    assert admins == []


@pytest.mark.parametrize("others", [[], ["alice"], ["bob", "carol"]])
def test_normalize_private_needs_exactly_one_other(others) -> None:
    with pytest.raises(ValidationError, match="exactly one other participant"):
        membership.normalize_participants(ConversationType.PRIVATE, "alice", others)


def test_normalize_group_makes_creator_admin() -> None:
    participants, admins = membership.normalize_participants(
        ConversationType.GROUP, "alice", ["bob", "carol", "bob"]
    )

    assert participants == ["alice", "bob", "carol"]
    assert admins == ["alice"]


def test_normalize_group_needs_another_member() -> None:
    with pytest.raises(ValidationError):
        membership.normalize_participants(ConversationType.GROUP, "alice", ["alice"])
