import sqlite3
import pytest

import golfclub.storage as storage
from golfclub.services import clubs as club_service
from golfclub.services import users as user_service


def test_club_creation_rolls_back(monkeypatch):
    uid = user_service.create_user("a@example.com", "A", "pw")

    def failing_save_user(user, conn=None):
        raise RuntimeError("fail")

    monkeypatch.setattr(club_service, "save_user", failing_save_user)

    with pytest.raises(RuntimeError):
        club_service.create_club(uid, "Club", club_id="c1")

    assert storage.get_club("c1") is None
    with storage._connect() as conn:
        assert conn.execute(
            "SELECT COUNT(*) FROM club_members WHERE club_id = 'c1'"
        ).fetchone()[0] == 0
    assert storage.get_user(uid).clubs == set()


def test_join_rolls_back_club_rows(monkeypatch):
    a = user_service.create_user("a@example.com", "A", "pw")
    b = user_service.create_user("b@example.com", "B", "pw")
    cid = club_service.create_club(a, "Club")

    def failing_save_user(user, conn=None):
        raise RuntimeError("fail")

    monkeypatch.setattr(club_service, "save_user", failing_save_user)

    with pytest.raises(RuntimeError):
        club_service.join_club(cid, b)

    assert storage.get_club(cid).members == {a}
    assert storage.get_user(b).clubs == set()


def test_store_error_returns_500(client, signup, monkeypatch):
    _, headers = signup("a@example.com", "A")

    def broken(user_id):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(club_service, "list_member_clubs", broken)
    resp = client.get("/clubs", headers=headers)
    assert resp.status_code == 500
    assert resp.json()["detail"] == "Internal storage error"


def test_scores_ordered_newest_first():
    import datetime
    from golfclub.services import scores as score_service

    uid = user_service.create_user("a@example.com", "A", "pw")
    d1 = datetime.datetime(2024, 5, 1, 9)
    d2 = datetime.datetime(2024, 5, 3, 9)
    score_service.record_score(uid, [4], date=d1)
    score_service.record_score(uid, [5], date=d2)

    scores = score_service.list_scores(uid)
    assert [s.date for s in scores] == [d2, d1]
    assert all(isinstance(s.id, int) for s in scores)


def test_stale_club_snapshot_keeps_member_rows():
    a = user_service.create_user("a@example.com", "A", "pw")
    b = user_service.create_user("b@example.com", "B", "pw")
    c = user_service.create_user("c@example.com", "C", "pw")
    cid = club_service.create_club(a, "Club")
    stale = storage.get_club(cid)

    club_service.join_club(cid, b)
    stale.name = "Renamed"
    storage.save_club(stale)
    club_service.join_club(cid, c)

    club = storage.get_club(cid)
    assert club.name == "Renamed"
    assert club.members == {a, b, c}
    assert not club_service.reconcile_memberships().changed


def test_leave_deletes_only_own_row():
    a = user_service.create_user("a@example.com", "A", "pw")
    b = user_service.create_user("b@example.com", "B", "pw")
    c = user_service.create_user("c@example.com", "C", "pw")
    cid = club_service.create_club(a, "Club")
    club_service.join_club(cid, b)
    club_service.join_club(cid, c)

    club_service.leave_club(cid, b)
    club_service.remove_club_member(cid, a, c)
    assert storage.get_club(cid).members == {a}
    with storage._connect() as conn:
        assert conn.execute(
            "SELECT COUNT(*) FROM club_members WHERE club_id = ?", (cid,)
        ).fetchone()[0] == 1
