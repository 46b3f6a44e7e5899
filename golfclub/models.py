from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import List, Optional, Set

# Allowed number of hole scores on a single round
MIN_HOLES = 1
MAX_HOLES = 18


@dataclass
class User:
    """Account data for authentication and club membership."""

    user_id: str
    email: str
    name: str
    # empty for accounts created through an identity provider
    password_hash: str = ""
    google_id: Optional[str] = None
    facebook_id: Optional[str] = None
    # ids of clubs the user belongs to
    clubs: Set[str] = field(default_factory=set)
    # ids of clubs the user manages
    managed_clubs: Set[str] = field(default_factory=set)
    created: datetime.datetime = field(default_factory=datetime.datetime.utcnow)

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)


@dataclass
class Club:
    club_id: str
    name: str
    manager_id: str
    description: str | None = None
    # the manager is always one of the members
    members: Set[str] = field(default_factory=set)
    created: datetime.datetime = field(default_factory=datetime.datetime.utcnow)


@dataclass
class Score:
    """One recorded round."""

    user_id: str
    hole_scores: List[int]
    date: datetime.datetime = field(default_factory=datetime.datetime.utcnow)
    club_id: str | None = None
    notes: str | None = None
    id: int | None = None
    # derived from ``hole_scores``; see :func:`golfclub.cli.apply_hole_scores`
    total_score: int = 0
    holes_played: int = 0


@dataclass
class ClubStats:
    average_score: float = 0.0
    lowest_score: int = 0
    highest_score: int = 0
    total_rounds: int = 0


@dataclass
class ReconcileReport:
    """Repairs made by a membership reconciliation pass."""

    added_user_clubs: List[tuple[str, str]] = field(default_factory=list)
    removed_user_clubs: List[tuple[str, str]] = field(default_factory=list)
    added_managed: List[tuple[str, str]] = field(default_factory=list)
    removed_managed: List[tuple[str, str]] = field(default_factory=list)
    added_members: List[tuple[str, str]] = field(default_factory=list)
    removed_members: List[tuple[str, str]] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any(
            (
                self.added_user_clubs,
                self.removed_user_clubs,
                self.added_managed,
                self.removed_managed,
                self.added_members,
                self.removed_members,
            )
        )
