"""
Status Enums for the Competition Core

Canonical definitions for tournament, registration and match lifecycle
states, plus the game and format catalogues.
All cogs and services should import from here.
"""

from enum import Enum


class TournamentStatus(str, Enum):
    """Tournament lifecycle states."""

    DRAFT = "DRAFT"  # Created, still editable
    OPEN = "OPEN"  # Registration open, accepting teams
    CLOSED = "CLOSED"  # Registration closed, approvals still allowed
    ONGOING = "ONGOING"  # Bracket built, matches in progress
    COMPLETED = "COMPLETED"  # Final match decided
    CANCELLED = "CANCELLED"  # Abandoned by the organizer


class RegistrationStatus(str, Enum):
    """Team registration states."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


class MatchStatus(str, Enum):
    """Match lifecycle states."""

    PENDING = "PENDING"  # Created, teams may still be unresolved
    SCHEDULED = "SCHEDULED"  # Time set, both teams known
    LIVE = "LIVE"  # Being played
    COMPLETED = "COMPLETED"  # Result reported
    CANCELLED = "CANCELLED"  # Voided


class TournamentFormat(str, Enum):
    SINGLE_ELIMINATION = "SINGLE_ELIMINATION"
    DOUBLE_ELIMINATION = "DOUBLE_ELIMINATION"
    ROUND_ROBIN = "ROUND_ROBIN"
    SWISS = "SWISS"
    GROUPS_PLAYOFFS = "GROUPS_PLAYOFFS"


class GameType(str, Enum):
    DOTA2 = "DOTA2"
    CS2 = "CS2"


GAME_LABELS = {
    GameType.DOTA2.value: "Dota 2",
    GameType.CS2.value: "Counter-Strike 2",
}

FORMAT_LABELS = {
    TournamentFormat.SINGLE_ELIMINATION.value: "Single Elimination",
    TournamentFormat.DOUBLE_ELIMINATION.value: "Double Elimination",
    TournamentFormat.ROUND_ROBIN.value: "Round Robin",
    TournamentFormat.SWISS.value: "Swiss",
    TournamentFormat.GROUPS_PLAYOFFS.value: "Groups + Playoffs",
}
