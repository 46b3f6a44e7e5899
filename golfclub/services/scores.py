from __future__ import annotations
import datetime
from loguru import logger
from .exceptions import Forbidden
from ..cli import new_score, edit_score, can_view_score
from ..storage import (
    create_score,
    update_score_record,
    delete_score_record,
    list_user_scores,
    get_club,
    get_user,
    transaction,
)
from ..models import Score
from .helpers import get_club_or_404, get_score_or_404, club_ref


def score_to_dict(score: Score, with_user: bool = False) -> dict:
    data = {
        "score_id": score.id,
        "user_id": score.user_id,
        "date": score.date.isoformat(),
        "hole_scores": list(score.hole_scores),
        "total_score": score.total_score,
        "holes_played": score.holes_played,
        "club": club_ref(get_club(score.club_id)) if score.club_id else None,
        "notes": score.notes,
    }
    if with_user:
        owner = get_user(score.user_id)
        data["user"] = {"user_id": owner.user_id, "name": owner.name} if owner else None
    return data


def _authorize_view(score: Score, user_id: str, action: str) -> None:
    # the manager is looked up fresh for every check
    club = get_club(score.club_id) if score.club_id else None
    if not can_view_score(score, user_id, club):
        raise Forbidden(f"Not authorized to {action} this score")


def record_score(
    user_id: str,
    hole_scores,
    club_id: str | None = None,
    notes: str | None = None,
    date: datetime.datetime | None = None,
) -> Score:
    """Validate and store a new round for ``user_id``."""
    if club_id:
        get_club_or_404(club_id)
    score = new_score(user_id, hole_scores, club_id=club_id, notes=notes, date=date)
    with transaction() as conn:
        create_score(score, conn=conn)
    logger.info("Score {} recorded for {} (total {})", score.id, user_id, score.total_score)
    return score


def get_score(score_id: int | str, user_id: str) -> Score:
    score = get_score_or_404(score_id)
    _authorize_view(score, user_id, "view")
    return score


def update_score(score_id: int | str, user_id: str, hole_scores=None, notes: str | None = None) -> Score:
    """Owner or club manager edits a score; totals are recomputed."""
    score = get_score_or_404(score_id)
    _authorize_view(score, user_id, "update")
    edit_score(score, hole_scores=hole_scores, notes=notes)
    with transaction() as conn:
        update_score_record(score, conn=conn)
    return score


def delete_score(score_id: int | str, user_id: str) -> None:
    """Only the owner may delete a score, managers included."""
    score = get_score_or_404(score_id)
    if score.user_id != user_id:
        raise Forbidden("Not authorized to delete this score")
    with transaction() as conn:
        delete_score_record(score.id, conn=conn)
    logger.info("Score {} deleted by {}", score_id, user_id)


def list_scores(user_id: str) -> list[Score]:
    return list_user_scores(user_id)
