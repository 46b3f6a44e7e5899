import datetime
import statistics
from .exceptions import ValidationError
from .helpers import get_club_or_404
from ..models import ClubStats, Score
from ..storage import list_club_scores


def parse_day(value: str | datetime.date | None) -> datetime.date | None:
    """Return the calendar day for a ``YYYY-MM-DD`` string."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        raise ValidationError("Date must be formatted as YYYY-MM-DD")


def day_window(day: datetime.date) -> tuple[datetime.datetime, datetime.datetime]:
    """Return ``[day 00:00, next day 00:00)``."""
    start = datetime.datetime.combine(day, datetime.time())
    return start, start + datetime.timedelta(days=1)


def compute_stats(scores: list[Score]) -> ClubStats:
    """Mean, min and max total over ``scores``; zeros when empty."""
    if not scores:
        return ClubStats()
    totals = [s.total_score for s in scores]
    return ClubStats(
        average_score=statistics.fmean(totals),
        lowest_score=min(totals),
        highest_score=max(totals),
        total_rounds=len(totals),
    )


def club_stats(club_id: str, date: str | datetime.date | None = None) -> ClubStats:
    get_club_or_404(club_id)
    day = parse_day(date)
    if day is None:
        scores = list_club_scores(club_id)
    else:
        start, end = day_window(day)
        scores = list_club_scores(club_id, start, end)
    return compute_stats(scores)


def stats_to_dict(stats: ClubStats) -> dict:
    return {
        "average_score": stats.average_score,
        "lowest_score": stats.lowest_score,
        "highest_score": stats.highest_score,
        "total_rounds": stats.total_rounds,
    }
