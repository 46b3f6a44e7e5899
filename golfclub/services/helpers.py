from .exceptions import NotFound
from ..storage import get_club, get_score
from ..models import User, Club, Score


def get_club_or_404(club_id: str) -> Club:
    club = get_club(club_id)
    if not club:
        raise NotFound("Club not found")
    return club


def get_score_or_404(score_id: int | str) -> Score:
    try:
        score_id = int(score_id)
    except (TypeError, ValueError):
        raise NotFound("Score not found")
    score = get_score(score_id)
    if not score:
        raise NotFound("Score not found")
    return score


def club_ref(club: Club | None) -> dict | None:
    if club is None:
        return None
    return {"club_id": club.club_id, "name": club.name}


def user_ref(user: User | None) -> dict | None:
    if user is None:
        return None
    return {"user_id": user.user_id, "name": user.name, "email": user.email}
