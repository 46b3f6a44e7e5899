import argparse
import datetime
import uuid
from passlib.context import CryptContext

from .models import (
    User,
    Club,
    Score,
    ReconcileReport,
    MIN_HOLES,
    MAX_HOLES,
)
from .services.exceptions import (
    AlreadyMember,
    CannotRemoveManager,
    Forbidden,
    InvalidCredentials,
    InvalidHoleCount,
    ManagerCannotLeave,
    NotAMember,
    NotFound,
    ValidationError,
)


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def check_password(user: User, password: str) -> bool:
    if not user.password_hash:
        return False
    try:
        return pwd_context.verify(password, user.password_hash)
    except (ValueError, TypeError):
        return False


def generate_id() -> str:
    """Return a random UUID based identifier for new users and clubs."""
    return uuid.uuid4().hex


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def register_user(users, email: str, name: str, password: str | None, user_id: str | None = None) -> str:
    """Add a new account to ``users`` and return its id.

    An empty ``password`` creates an account that can only sign in through an
    identity provider.
    """
    email = normalize_email(email)
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    if not name or not name.strip():
        raise ValidationError("Name is required")
    for u in users.values():
        if u.email == email:
            raise ValidationError("Email already registered")
    uid = user_id or generate_id()
    if uid in users:
        raise ValidationError("User exists")
    users[uid] = User(
        user_id=uid,
        email=email,
        name=name.strip(),
        password_hash=hash_password(password) if password else "",
    )
    return uid


def authenticate(user: User | None, password: str) -> User:
    """Return ``user`` if ``password`` matches its local credential."""
    if user is None:
        raise InvalidCredentials("Incorrect email or password")
    if not user.has_password:
        raise InvalidCredentials("Account exists with social login")
    if not check_password(user, password):
        raise InvalidCredentials("Incorrect email or password")
    return user


# --- scores -------------------------------------------------------------------

def validate_hole_scores(hole_scores) -> list[int]:
    """Return ``hole_scores`` as a list of positive integers.

    Raises :class:`InvalidHoleCount` unless between ``MIN_HOLES`` and
    ``MAX_HOLES`` entries are given.
    """
    if not isinstance(hole_scores, (list, tuple)):
        raise InvalidHoleCount(f"Must provide between {MIN_HOLES} and {MAX_HOLES} hole scores")
    if not MIN_HOLES <= len(hole_scores) <= MAX_HOLES:
        raise InvalidHoleCount(f"Must provide between {MIN_HOLES} and {MAX_HOLES} hole scores")
    for s in hole_scores:
        # bool is an int subclass but never a stroke count
        if isinstance(s, bool) or not isinstance(s, int) or s < 1:
            raise ValidationError("Hole scores must be positive integers")
    return list(hole_scores)


def apply_hole_scores(score: Score, hole_scores) -> None:
    """Set hole scores and recompute the derived total and holes played."""
    holes = validate_hole_scores(hole_scores)
    score.hole_scores = holes
    score.total_score = sum(holes)
    score.holes_played = len(holes)


def new_score(
    user_id: str,
    hole_scores,
    club_id: str | None = None,
    notes: str | None = None,
    date: datetime.datetime | None = None,
) -> Score:
    score = Score(
        user_id=user_id,
        hole_scores=[],
        club_id=club_id,
        notes=notes,
        date=date or datetime.datetime.utcnow(),
    )
    apply_hole_scores(score, hole_scores)
    return score


def edit_score(score: Score, hole_scores=None, notes: str | None = None) -> None:
    """Apply a partial update; omitted or empty fields keep their value."""
    if hole_scores is not None:
        apply_hole_scores(score, hole_scores)
    if notes:
        score.notes = notes


def can_view_score(score: Score, user_id: str, club: Club | None) -> bool:
    """Owners and the current manager of the score's club may view or edit."""
    if score.user_id == user_id:
        return True
    return club is not None and club.manager_id == user_id


# --- clubs --------------------------------------------------------------------

def _get_club(clubs, club_id: str) -> Club:
    club = clubs.get(club_id)
    if not club:
        raise NotFound("Club not found")
    return club


def _get_user(users, user_id: str) -> User:
    user = users.get(user_id)
    if not user:
        raise NotFound("User not found")
    return user


def _require_manager(club: Club, actor_id: str) -> None:
    if actor_id != club.manager_id:
        raise Forbidden("Not authorized as club manager")


def create_club(users, clubs, user_id: str, club_id: str, name: str, description: str | None = None):
    """Create a club managed by ``user_id`` who also becomes its first member."""
    user = _get_user(users, user_id)
    if not name or not name.strip():
        raise ValidationError("Club name is required")
    if club_id in clubs:
        raise ValidationError("Club already exists")
    clubs[club_id] = Club(
        club_id=club_id,
        name=name.strip(),
        description=description,
        manager_id=user_id,
        members={user_id},
    )
    user.clubs.add(club_id)
    user.managed_clubs.add(club_id)
    return clubs[club_id]


def update_club(clubs, club_id: str, actor_id: str, name: str | None = None, description: str | None = None):
    club = _get_club(clubs, club_id)
    _require_manager(club, actor_id)
    if name is not None:
        if not name.strip():
            raise ValidationError("Club name is required")
        club.name = name.strip()
    if description is not None:
        club.description = description
    return club


def join_club(clubs, users, club_id: str, user_id: str):
    club = _get_club(clubs, club_id)
    user = _get_user(users, user_id)
    if user_id in club.members:
        raise AlreadyMember("Already a member")
    club.members.add(user_id)
    user.clubs.add(club_id)


def leave_club(clubs, users, club_id: str, user_id: str):
    """Member leaves a club; the manager must transfer management first."""
    club = _get_club(clubs, club_id)
    if user_id == club.manager_id:
        raise ManagerCannotLeave("Club manager cannot leave. Transfer management first.")
    if user_id not in club.members:
        raise NotAMember("Not a member of this club")
    club.members.discard(user_id)
    user = users.get(user_id)
    if user:
        user.clubs.discard(club_id)


def remove_member(clubs, users, club_id: str, actor_id: str, user_id: str):
    """Manager removes another member from the club."""
    club = _get_club(clubs, club_id)
    _require_manager(club, actor_id)
    user = _get_user(users, user_id)
    if user_id == club.manager_id:
        raise CannotRemoveManager("Cannot remove club manager")
    if user_id not in club.members:
        raise NotAMember("User is not a member of this club")
    club.members.discard(user_id)
    user.clubs.discard(club_id)


def transfer_manager(clubs, users, club_id: str, actor_id: str, target_id: str):
    """Hand club management to another member."""
    club = _get_club(clubs, club_id)
    _require_manager(club, actor_id)
    target = _get_user(users, target_id)
    if target_id not in club.members:
        raise NotAMember("New manager must be a club member")
    if target_id == club.manager_id:
        return

    old_manager = users.get(club.manager_id)
    club.manager_id = target_id
    if old_manager:
        old_manager.managed_clubs.discard(club_id)
    target.managed_clubs.add(club_id)
    target.clubs.add(club_id)


def reconcile(clubs, users) -> ReconcileReport:
    """Repair User/Club cross references in place.

    Club rows are authoritative for membership and management; user
    references to clubs that no longer exist are dropped.
    """
    report = ReconcileReport()
    for cid, club in clubs.items():
        if club.manager_id not in club.members and club.manager_id in users:
            club.members.add(club.manager_id)
            report.added_members.append((cid, club.manager_id))
        for uid in sorted(club.members):
            if uid not in users:
                club.members.discard(uid)
                report.removed_members.append((cid, uid))
                continue
            if cid not in users[uid].clubs:
                users[uid].clubs.add(cid)
                report.added_user_clubs.append((uid, cid))
        manager = users.get(club.manager_id)
        if manager and cid not in manager.managed_clubs:
            manager.managed_clubs.add(cid)
            report.added_managed.append((club.manager_id, cid))

    for uid, user in users.items():
        for cid in sorted(user.clubs):
            club = clubs.get(cid)
            if club is None or uid not in club.members:
                user.clubs.discard(cid)
                report.removed_user_clubs.append((uid, cid))
        for cid in sorted(user.managed_clubs):
            club = clubs.get(cid)
            if club is None or club.manager_id != uid:
                user.managed_clubs.discard(cid)
                report.removed_managed.append((uid, cid))
    return report


def _parse_holes(value: str) -> list[int]:
    return [int(s) for s in value.split(",") if s.strip()]


def main():
    from .logs import setup_logging
    from .services import clubs as club_service
    from .services import scores as score_service
    from .services import stats as stats_service
    from .services import users as user_service

    parser = argparse.ArgumentParser(description='Golf club score tracker')
    sub = parser.add_subparsers(dest='cmd')

    sub.add_parser('init_db')

    reg = sub.add_parser('register_user')
    reg.add_argument('email')
    reg.add_argument('name')
    reg.add_argument('password')

    cclub = sub.add_parser('create_club')
    cclub.add_argument('user_id')
    cclub.add_argument('name')
    cclub.add_argument('--description')

    rscore = sub.add_parser('record_score')
    rscore.add_argument('user_id')
    rscore.add_argument('holes', type=_parse_holes, help='comma separated hole scores')
    rscore.add_argument('--club')
    rscore.add_argument('--notes')

    stats = sub.add_parser('club_stats')
    stats.add_argument('club_id')
    stats.add_argument('--date')

    sub.add_parser('reconcile')

    serve = sub.add_parser('serve')
    serve.add_argument('--host', default='127.0.0.1')
    serve.add_argument('--port', type=int, default=8000)

    args = parser.parse_args()
    setup_logging()

    if args.cmd == 'init_db':
        from . import storage
        storage._connect().close()
        print('Database initialised')
    elif args.cmd == 'register_user':
        uid = user_service.create_user(args.email, args.name, args.password)
        print(uid)
    elif args.cmd == 'create_club':
        cid = club_service.create_club(args.user_id, args.name, args.description)
        print(cid)
    elif args.cmd == 'record_score':
        score = score_service.record_score(args.user_id, args.holes, club_id=args.club, notes=args.notes)
        print(f"{score.id}: total {score.total_score} over {score.holes_played} holes")
    elif args.cmd == 'club_stats':
        s = stats_service.club_stats(args.club_id, args.date)
        print(
            f"rounds {s.total_rounds}  average {s.average_score:.1f}  "
            f"lowest {s.lowest_score}  highest {s.highest_score}"
        )
    elif args.cmd == 'reconcile':
        report = club_service.reconcile_memberships()
        if report.changed:
            for label, items in vars(report).items():
                for a, b in items:
                    print(f"{label}: {a} {b}")
        else:
            print('No inconsistencies found')
    elif args.cmd == 'serve':
        import uvicorn
        uvicorn.run('golfclub.api:app', host=args.host, port=args.port)
    else:
        parser.print_help()


if __name__ == '__main__':
    main()
