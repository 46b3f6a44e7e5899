from __future__ import annotations
from loguru import logger
from .exceptions import NotFound
from ..cli import (
    generate_id,
    create_club as cli_create_club,
    update_club as cli_update_club,
    join_club as cli_join_club,
    leave_club as cli_leave_club,
    remove_member as cli_remove_member,
    transfer_manager as cli_transfer_manager,
    reconcile as cli_reconcile,
)
from ..storage import (
    add_club_member,
    get_club,
    get_users,
    list_clubs,
    list_member_clubs,
    load_users,
    remove_club_member as delete_member_row,
    create_club as create_club_record,
    save_club,
    save_user,
    transaction,
)
from ..models import Club, ReconcileReport
from .helpers import get_club_or_404, user_ref


def _load_club(club_id: str, conn) -> Club:
    """Read and lock the current club row inside ``conn``; never a cached copy."""
    club = get_club(club_id, conn=conn, lock=True)
    if not club:
        raise NotFound("Club not found")
    return club


def club_detail(club: Club) -> dict:
    """Return club data with manager and members expanded."""
    users = get_users([club.manager_id, *club.members])
    members = [user_ref(users[uid]) for uid in sorted(club.members) if uid in users]
    members.sort(key=lambda m: (m["name"] or "").lower())
    return {
        "club_id": club.club_id,
        "name": club.name,
        "description": club.description,
        "manager": user_ref(users.get(club.manager_id)),
        "members": members,
        "created": club.created.isoformat(),
    }


def create_club(user_id: str, name: str, description: str | None = None, club_id: str | None = None) -> str:
    """Create a club managed by ``user_id``.

    The club row, its first member row and the creator's user record are
    written in one transaction.
    """
    cid = club_id or generate_id()
    with transaction() as conn:
        users = get_users([user_id], conn=conn)
        clubs = {}
        club = cli_create_club(users, clubs, user_id, cid, name, description)
        create_club_record(club, conn=conn)
        save_user(users[user_id], conn=conn)
    logger.info("Club {} created by {}", cid, user_id)
    return cid


def list_user_clubs(user_id: str) -> list[dict]:
    return [club_detail(c) for c in list_member_clubs(user_id)]


def get_club_info(club_id: str) -> dict:
    return club_detail(get_club_or_404(club_id))


def update_club_info(club_id: str, actor_id: str, name: str | None = None, description: str | None = None) -> dict:
    """Update club name or description (manager only)."""
    with transaction() as conn:
        club = _load_club(club_id, conn)
        cli_update_club({club_id: club}, club_id, actor_id, name=name, description=description)
        save_club(club, conn=conn)
    return club_detail(club)


def join_club(club_id: str, user_id: str) -> None:
    with transaction() as conn:
        club = _load_club(club_id, conn)
        users = get_users([user_id], conn=conn, lock=True)
        cli_join_club({club_id: club}, users, club_id, user_id)
        add_club_member(club_id, user_id, conn=conn)
        save_user(users[user_id], conn=conn)
    logger.info("User {} joined club {}", user_id, club_id)


def leave_club(club_id: str, user_id: str) -> None:
    with transaction() as conn:
        club = _load_club(club_id, conn)
        users = get_users([user_id], conn=conn, lock=True)
        cli_leave_club({club_id: club}, users, club_id, user_id)
        delete_member_row(club_id, user_id, conn=conn)
        if user_id in users:
            save_user(users[user_id], conn=conn)
    logger.info("User {} left club {}", user_id, club_id)


def remove_club_member(club_id: str, actor_id: str, user_id: str) -> None:
    """Remove ``user_id`` from the club; ``actor_id`` must be the manager."""
    with transaction() as conn:
        club = _load_club(club_id, conn)
        users = get_users([user_id], conn=conn, lock=True)
        cli_remove_member({club_id: club}, users, club_id, actor_id, user_id)
        delete_member_row(club_id, user_id, conn=conn)
        save_user(users[user_id], conn=conn)
    logger.info("User {} removed from club {} by {}", user_id, club_id, actor_id)


def transfer_management(club_id: str, actor_id: str, new_manager_id: str) -> None:
    """Hand management to another member; club and both users change together."""
    with transaction() as conn:
        club = _load_club(club_id, conn)
        users = get_users([club.manager_id, new_manager_id], conn=conn, lock=True)
        cli_transfer_manager({club_id: club}, users, club_id, actor_id, new_manager_id)
        save_club(club, conn=conn)
        for u in users.values():
            save_user(u, conn=conn)
    logger.info("Management of club {} transferred from {} to {}", club_id, actor_id, new_manager_id)


def reconcile_memberships() -> ReconcileReport:
    """Detect and repair broken User/Club cross references."""
    with transaction() as conn:
        clubs = {c.club_id: c for c in list_clubs(conn=conn)}
        users = load_users(conn=conn)
        report = cli_reconcile(clubs, users)
        if report.changed:
            for cid, uid in report.added_members:
                add_club_member(cid, uid, conn=conn)
            for cid, uid in report.removed_members:
                delete_member_row(cid, uid, conn=conn)
            touched_users = {
                uid
                for uid, _ in (
                    report.added_user_clubs
                    + report.removed_user_clubs
                    + report.added_managed
                    + report.removed_managed
                )
            }
            for uid in touched_users:
                save_user(users[uid], conn=conn)
    for label, items in vars(report).items():
        for a, b in items:
            logger.info("Reconcile {}: {} {}", label, a, b)
    return report
