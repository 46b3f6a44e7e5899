import pytest

from golfclub.cli import (
    create_club,
    update_club,
    join_club,
    leave_club,
    remove_member,
    transfer_manager,
)
from golfclub.models import User
from golfclub.services.exceptions import (
    AlreadyMember,
    CannotRemoveManager,
    Forbidden,
    ManagerCannotLeave,
    NotAMember,
    NotFound,
    ValidationError,
)


def _setup():
    users = {
        uid: User(user_id=uid, email=f"{uid}@example.com", name=uid.upper())
        for uid in ("a", "b", "c")
    }
    clubs = {}
    create_club(users, clubs, "a", "c1", "Club")
    return users, clubs


def _consistent(users, clubs):
    for cid, club in clubs.items():
        assert club.manager_id in club.members
        assert cid in users[club.manager_id].managed_clubs
        for uid in club.members:
            assert cid in users[uid].clubs
    for uid, user in users.items():
        for cid in user.clubs:
            assert uid in clubs[cid].members
        for cid in user.managed_clubs:
            assert clubs[cid].manager_id == uid


def test_create_club_sets_manager_and_member():
    users, clubs = _setup()
    club = clubs["c1"]
    assert club.manager_id == "a"
    assert club.members == {"a"}
    assert users["a"].clubs == {"c1"}
    assert users["a"].managed_clubs == {"c1"}


def test_create_club_requires_name():
    users, clubs = _setup()
    with pytest.raises(ValidationError):
        create_club(users, clubs, "b", "c2", "  ")


def test_join_and_leave_round_trip():
    users, clubs = _setup()
    join_club(clubs, users, "c1", "b")
    assert "b" in clubs["c1"].members
    assert "c1" in users["b"].clubs
    _consistent(users, clubs)

    leave_club(clubs, users, "c1", "b")
    assert "b" not in clubs["c1"].members
    assert "c1" not in users["b"].clubs
    _consistent(users, clubs)


def test_join_twice():
    users, clubs = _setup()
    join_club(clubs, users, "c1", "b")
    with pytest.raises(AlreadyMember):
        join_club(clubs, users, "c1", "b")


def test_join_unknown_club():
    users, clubs = _setup()
    with pytest.raises(NotFound):
        join_club(clubs, users, "nope", "b")


def test_manager_cannot_leave():
    users, clubs = _setup()
    with pytest.raises(ManagerCannotLeave):
        leave_club(clubs, users, "c1", "a")


def test_leave_when_not_member():
    users, clubs = _setup()
    with pytest.raises(NotAMember):
        leave_club(clubs, users, "c1", "b")


def test_remove_member_rules():
    users, clubs = _setup()
    join_club(clubs, users, "c1", "b")
    join_club(clubs, users, "c1", "c")

    with pytest.raises(Forbidden):
        remove_member(clubs, users, "c1", "b", "c")
    with pytest.raises(CannotRemoveManager):
        remove_member(clubs, users, "c1", "a", "a")
    with pytest.raises(NotFound):
        remove_member(clubs, users, "c1", "a", "ghost")

    remove_member(clubs, users, "c1", "a", "c")
    assert "c" not in clubs["c1"].members
    assert "c1" not in users["c"].clubs
    with pytest.raises(NotAMember):
        remove_member(clubs, users, "c1", "a", "c")
    _consistent(users, clubs)


def test_transfer_requires_manager():
    users, clubs = _setup()
    join_club(clubs, users, "c1", "b")
    with pytest.raises(Forbidden):
        transfer_manager(clubs, users, "c1", "b", "b")


def test_transfer_to_non_member():
    users, clubs = _setup()
    with pytest.raises(NotAMember):
        transfer_manager(clubs, users, "c1", "a", "b")
    assert clubs["c1"].manager_id == "a"


def test_transfer_to_self_is_noop():
    users, clubs = _setup()
    transfer_manager(clubs, users, "c1", "a", "a")
    assert clubs["c1"].manager_id == "a"
    assert users["a"].managed_clubs == {"c1"}


def test_transfer_then_old_manager_leaves():
    users, clubs = _setup()
    join_club(clubs, users, "c1", "b")
    transfer_manager(clubs, users, "c1", "a", "b")
    assert clubs["c1"].manager_id == "b"
    assert "c1" in users["b"].managed_clubs
    assert "c1" not in users["a"].managed_clubs

    # the new manager is now bound by the same rule
    with pytest.raises(ManagerCannotLeave):
        leave_club(clubs, users, "c1", "b")

    # the old manager lost the role and may now leave
    leave_club(clubs, users, "c1", "a")
    assert clubs["c1"].members == {"b"}
    _consistent(users, clubs)

    with pytest.raises(Forbidden):
        update_club(clubs, "c1", "a", name="Renamed")
    update_club(clubs, "c1", "b", name="Renamed", description="Links")
    assert clubs["c1"].name == "Renamed"
    assert clubs["c1"].description == "Links"
