import json
import datetime
import sqlite3
from pathlib import Path
from typing import Dict, Generator
from contextlib import contextmanager
from urllib.parse import urlparse

import psycopg2
import psycopg2.extras


from .config import DB_FILE, get_database_url
from .models import User, Club, Score


# ``DB_FILE`` is imported from ``golfclub.config`` so tests can monkeypatch it.
DATABASE_URL = get_database_url()
IS_PG = DATABASE_URL.startswith("postgres")


class _PgCursor:
    def __init__(self, cursor):
        self._c = cursor

    def execute(self, query, params=None):
        q = query.replace("?", "%s")
        self._c.execute(q, params or [])
        return self

    def executemany(self, query, seq):
        q = query.replace("?", "%s")
        self._c.executemany(q, seq)
        return self

    def fetchone(self):
        return self._c.fetchone()

    def fetchall(self):
        return self._c.fetchall()

    def __iter__(self):
        return iter(self._c)

    def __getattr__(self, name):
        return getattr(self._c, name)


class _PgConnection:
    def __init__(self, conn):
        self._conn = conn

    def cursor(self, *a, **kw):
        return _PgCursor(self._conn.cursor(*a, **kw))

    def execute(self, query, params=None):
        return self.cursor().execute(query, params)

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()

    def __getattr__(self, name):
        return getattr(self._conn, name)


def _ts(value: datetime.datetime) -> str:
    """Return a sortable UTC timestamp string for ``value``."""
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="microseconds")


def _connect():
    """Return a DB connection based on ``DATABASE_URL``."""
    if IS_PG:
        conn = psycopg2.connect(DATABASE_URL, cursor_factory=psycopg2.extras.RealDictCursor)
        _init_schema(conn)
        return _PgConnection(conn)
    else:
        path = DB_FILE
        if DATABASE_URL.startswith("sqlite://"):
            path = Path(urlparse(DATABASE_URL).path)
        conn = sqlite3.connect(path)
        conn.row_factory = sqlite3.Row
        _init_schema(conn)
        return conn


@contextmanager
def transaction() -> Generator[object, None, None]:
    """Context manager yielding a connection with an active transaction."""
    conn = _connect()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _init_schema(conn) -> None:
    cur = conn.cursor()
    score_pk = "id SERIAL PRIMARY KEY" if IS_PG else "id INTEGER PRIMARY KEY AUTOINCREMENT"
    cur.execute(
        """CREATE TABLE IF NOT EXISTS users (
        user_id TEXT PRIMARY KEY,
        email TEXT UNIQUE NOT NULL,
        name TEXT,
        password_hash TEXT,
        google_id TEXT,
        facebook_id TEXT,
        clubs TEXT,
        managed_clubs TEXT,
        created TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS clubs (
        club_id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        manager_id TEXT NOT NULL,
        created TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS club_members (
        club_id TEXT,
        user_id TEXT,
        PRIMARY KEY (club_id, user_id)
    )"""
    )
    cur.execute(
        f"""CREATE TABLE IF NOT EXISTS scores (
        {score_pk},
        user_id TEXT NOT NULL,
        club_id TEXT,
        date TEXT NOT NULL,
        hole_scores TEXT NOT NULL,
        total_score INTEGER NOT NULL,
        holes_played INTEGER NOT NULL,
        notes TEXT
    )"""
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_scores_user ON scores(user_id)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_scores_club_date ON scores(club_id, date)")
    cur.execute(
        """CREATE TABLE IF NOT EXISTS revoked_tokens (
        jti TEXT PRIMARY KEY,
        expires TEXT
    )"""
    )
    # add new columns if an older database is missing them
    if not IS_PG:
        cols = {row[1] for row in cur.execute("PRAGMA table_info('users')")}
        if "facebook_id" not in cols:
            cur.execute("ALTER TABLE users ADD COLUMN facebook_id TEXT")
        cols = {row[1] for row in cur.execute("PRAGMA table_info('clubs')")}
        if "description" not in cols:
            cur.execute("ALTER TABLE clubs ADD COLUMN description TEXT")
    conn.commit()


def _row_to_user(row) -> User:
    return User(
        user_id=row["user_id"],
        email=row["email"],
        name=row["name"],
        password_hash=row["password_hash"] or "",
        google_id=row["google_id"],
        facebook_id=row["facebook_id"],
        clubs=set(json.loads(row["clubs"] or "[]")),
        managed_clubs=set(json.loads(row["managed_clubs"] or "[]")),
        created=datetime.datetime.fromisoformat(row["created"])
        if row["created"]
        else datetime.datetime.utcnow(),
    )


def _row_to_club(row, members) -> Club:
    return Club(
        club_id=row["club_id"],
        name=row["name"],
        description=row["description"],
        manager_id=row["manager_id"],
        members=set(members),
        created=datetime.datetime.fromisoformat(row["created"])
        if row["created"]
        else datetime.datetime.utcnow(),
    )


def _row_to_score(row) -> Score:
    return Score(
        id=row["id"],
        user_id=row["user_id"],
        club_id=row["club_id"],
        date=datetime.datetime.fromisoformat(row["date"]),
        hole_scores=list(json.loads(row["hole_scores"])),
        total_score=row["total_score"],
        holes_played=row["holes_played"],
        notes=row["notes"],
    )


# --- users ------------------------------------------------------------------

def create_user(user: User, conn: sqlite3.Connection | None = None) -> None:
    """Insert a new user account."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO users(
            user_id, email, name, password_hash, google_id, facebook_id,
            clubs, managed_clubs, created
        ) VALUES (?,?,?,?,?,?,?,?,?)
        """,
        (
            user.user_id,
            user.email,
            user.name,
            user.password_hash,
            user.google_id,
            user.facebook_id,
            json.dumps(sorted(user.clubs)),
            json.dumps(sorted(user.managed_clubs)),
            _ts(user.created),
        ),
    )
    if close:
        conn.commit()
        conn.close()


def save_user(user: User, conn: sqlite3.Connection | None = None) -> None:
    """Persist a single user's profile and club references."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    cur.execute(
        """
        UPDATE users SET
            email = ?, name = ?, password_hash = ?, google_id = ?,
            facebook_id = ?, clubs = ?, managed_clubs = ?
        WHERE user_id = ?
        """,
        (
            user.email,
            user.name,
            user.password_hash,
            user.google_id,
            user.facebook_id,
            json.dumps(sorted(user.clubs)),
            json.dumps(sorted(user.managed_clubs)),
            user.user_id,
        ),
    )
    if close:
        conn.commit()
        conn.close()


def _for_update(lock: bool) -> str:
    # sqlite serialises writers on its own
    return " FOR UPDATE" if lock and IS_PG else ""


def _fetch_user(cur, column: str, value, lock: bool = False) -> User | None:
    row = cur.execute(
        f"SELECT * FROM users WHERE {column} = ?" + _for_update(lock), (value,)
    ).fetchone()
    return _row_to_user(row) if row else None


def get_user(user_id: str, conn: sqlite3.Connection | None = None) -> User | None:
    """Return a single :class:`User` by id or ``None`` if not found."""
    close = conn is None
    if conn is None:
        conn = _connect()
    user = _fetch_user(conn.cursor(), "user_id", user_id)
    if close:
        conn.close()
    return user


def get_user_by_email(email: str) -> User | None:
    conn = _connect()
    user = _fetch_user(conn.cursor(), "email", email)
    conn.close()
    return user


def get_user_by_provider(provider: str, subject: str) -> User | None:
    """Return the user linked to an identity provider subject id."""
    column = {"google": "google_id", "facebook": "facebook_id"}[provider]
    conn = _connect()
    user = _fetch_user(conn.cursor(), column, subject)
    conn.close()
    return user


def get_users(user_ids, conn: sqlite3.Connection | None = None, lock: bool = False) -> Dict[str, User]:
    """Return the users with the given ids keyed by id; unknown ids are skipped.

    ``lock`` holds the rows until ``conn`` commits (Postgres only).
    """
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    users: Dict[str, User] = {}
    for uid in sorted(set(user_ids)):
        user = _fetch_user(cur, "user_id", uid, lock=lock)
        if user:
            users[uid] = user
    if close:
        conn.close()
    return users


def load_users(conn: sqlite3.Connection | None = None) -> Dict[str, User]:
    """Load every user account."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    users = {row["user_id"]: _row_to_user(row) for row in cur.execute("SELECT * FROM users")}
    if close:
        conn.close()
    return users


# --- clubs ------------------------------------------------------------------

def create_club(club: Club, conn: sqlite3.Connection | None = None) -> None:
    """Insert a new club record and its member rows."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    cur.execute(
        "INSERT INTO clubs(club_id, name, description, manager_id, created) VALUES (?,?,?,?,?)",
        (club.club_id, club.name, club.description, club.manager_id, _ts(club.created)),
    )
    for uid in sorted(club.members):
        add_club_member(club.club_id, uid, conn=conn)
    if close:
        conn.commit()
        conn.close()


def save_club(club: Club, conn: sqlite3.Connection | None = None) -> None:
    """Persist a club's name, description and manager.

    Member rows are written one at a time through :func:`add_club_member`
    and :func:`remove_club_member`.
    """
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    cur.execute(
        "UPDATE clubs SET name = ?, description = ?, manager_id = ? WHERE club_id = ?",
        (club.name, club.description, club.manager_id, club.club_id),
    )
    if close:
        conn.commit()
        conn.close()


def add_club_member(club_id: str, user_id: str, conn: sqlite3.Connection | None = None) -> None:
    """Insert a user into ``club_members``."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    if IS_PG:
        cur.execute(
            "INSERT INTO club_members(club_id, user_id) VALUES (?, ?) ON CONFLICT DO NOTHING",
            (club_id, user_id),
        )
    else:
        cur.execute(
            "INSERT OR IGNORE INTO club_members(club_id, user_id) VALUES (?, ?)",
            (club_id, user_id),
        )
    if close:
        conn.commit()
        conn.close()


def remove_club_member(club_id: str, user_id: str, conn: sqlite3.Connection | None = None) -> None:
    """Delete a membership record."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    cur.execute(
        "DELETE FROM club_members WHERE club_id = ? AND user_id = ?",
        (club_id, user_id),
    )
    if close:
        conn.commit()
        conn.close()


def _club_members(cur, club_id: str) -> list[str]:
    return [
        r["user_id"]
        for r in cur.execute(
            "SELECT user_id FROM club_members WHERE club_id = ?", (club_id,)
        ).fetchall()
    ]


def get_club(club_id: str, conn: sqlite3.Connection | None = None, lock: bool = False) -> Club | None:
    """Return a single :class:`Club` by id or ``None`` if not found.

    Always reads the current row; manager checks rely on this. ``lock``
    holds the club row until ``conn`` commits (Postgres only).
    """
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    row = cur.execute(
        "SELECT * FROM clubs WHERE club_id = ?" + _for_update(lock), (club_id,)
    ).fetchone()
    club = _row_to_club(row, _club_members(cur, club_id)) if row else None
    if close:
        conn.close()
    return club


def list_clubs(conn: sqlite3.Connection | None = None) -> list[Club]:
    """Return all clubs."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    rows = cur.execute("SELECT * FROM clubs ORDER BY created").fetchall()
    clubs = [_row_to_club(row, _club_members(cur, row["club_id"])) for row in rows]
    if close:
        conn.close()
    return clubs


def list_member_clubs(user_id: str) -> list[Club]:
    """Return the clubs whose member rows include ``user_id``."""
    conn = _connect()
    cur = conn.cursor()
    rows = cur.execute(
        """
        SELECT c.* FROM clubs c
        JOIN club_members m ON m.club_id = c.club_id
        WHERE m.user_id = ?
        ORDER BY c.created
        """,
        (user_id,),
    ).fetchall()
    clubs = [_row_to_club(row, _club_members(cur, row["club_id"])) for row in rows]
    conn.close()
    return clubs


# --- scores -----------------------------------------------------------------

def create_score(score: Score, conn: sqlite3.Connection | None = None) -> int:
    """Insert a score record and return its id."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    params = (
        score.user_id,
        score.club_id,
        _ts(score.date),
        json.dumps(score.hole_scores),
        score.total_score,
        score.holes_played,
        score.notes,
    )
    query = (
        "INSERT INTO scores(user_id, club_id, date, hole_scores, total_score, holes_played, notes) "
        "VALUES (?,?,?,?,?,?,?)"
    )
    if IS_PG:
        score_id = cur.execute(query + " RETURNING id", params).fetchone()["id"]
    else:
        score_id = cur.execute(query, params).lastrowid
    if close:
        conn.commit()
        conn.close()
    score.id = score_id
    return score_id


def update_score_record(score: Score, conn: sqlite3.Connection | None = None) -> None:
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    cur.execute(
        """
        UPDATE scores SET
            club_id = ?, date = ?, hole_scores = ?, total_score = ?,
            holes_played = ?, notes = ?
        WHERE id = ?
        """,
        (
            score.club_id,
            _ts(score.date),
            json.dumps(score.hole_scores),
            score.total_score,
            score.holes_played,
            score.notes,
            score.id,
        ),
    )
    if close:
        conn.commit()
        conn.close()


def get_score(score_id: int) -> Score | None:
    conn = _connect()
    cur = conn.cursor()
    row = cur.execute("SELECT * FROM scores WHERE id = ?", (score_id,)).fetchone()
    conn.close()
    return _row_to_score(row) if row else None


def delete_score_record(score_id: int, conn: sqlite3.Connection | None = None) -> None:
    close = conn is None
    if conn is None:
        conn = _connect()
    conn.cursor().execute("DELETE FROM scores WHERE id = ?", (score_id,))
    if close:
        conn.commit()
        conn.close()


def list_user_scores(user_id: str) -> list[Score]:
    """Return a user's scores, newest round first."""
    conn = _connect()
    cur = conn.cursor()
    rows = cur.execute(
        "SELECT * FROM scores WHERE user_id = ? ORDER BY date DESC, id DESC",
        (user_id,),
    ).fetchall()
    conn.close()
    return [_row_to_score(r) for r in rows]


def list_club_scores(
    club_id: str,
    start: datetime.datetime | None = None,
    end: datetime.datetime | None = None,
) -> list[Score]:
    """Return a club's scores, optionally within ``[start, end)``."""
    query = "SELECT * FROM scores WHERE club_id = ?"
    params: list = [club_id]
    if start is not None:
        query += " AND date >= ?"
        params.append(_ts(start))
    if end is not None:
        query += " AND date < ?"
        params.append(_ts(end))
    conn = _connect()
    cur = conn.cursor()
    rows = cur.execute(query + " ORDER BY date", params).fetchall()
    conn.close()
    return [_row_to_score(r) for r in rows]


# --- revoked tokens -----------------------------------------------------------

def revoke_token(jti: str, expires: datetime.datetime) -> None:
    """Remember a token id until its natural expiry."""
    conn = _connect()
    cur = conn.cursor()
    if IS_PG:
        cur.execute(
            """
            INSERT INTO revoked_tokens(jti, expires) VALUES (?,?)
            ON CONFLICT (jti) DO UPDATE SET expires = EXCLUDED.expires
            """,
            (jti, _ts(expires)),
        )
    else:
        cur.execute(
            "INSERT OR REPLACE INTO revoked_tokens(jti, expires) VALUES (?,?)",
            (jti, _ts(expires)),
        )
    # expired entries can never match a valid token again
    cur.execute(
        "DELETE FROM revoked_tokens WHERE expires < ?",
        (_ts(datetime.datetime.utcnow()),),
    )
    conn.commit()
    conn.close()


def is_token_revoked(jti: str) -> bool:
    conn = _connect()
    cur = conn.cursor()
    row = cur.execute("SELECT 1 FROM revoked_tokens WHERE jti = ?", (jti,)).fetchone()
    conn.close()
    return row is not None
