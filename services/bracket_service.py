"""
services/bracket_service.py — Bracket Projection
=================================================
Read-only view of a tournament's matches grouped into named rounds with
team names resolved. Nothing here is stored; the view is rebuilt from the
matches table on every read.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Optional

from database import EntityStore
from services.match_service import Match, MatchService
from services.team_service import TeamService


def round_name(rounds: int, round: int) -> str:
    """
    Display name for ``round`` of a bracket with ``rounds`` rounds.

    >>> [round_name(3, r) for r in (1, 2, 3)]
    ['Quarter-Final', 'Semi-Final', 'Final']
    >>> round_name(4, 1)
    'Round 1'
    """
    distance = rounds - round
    if distance == 0:
        return "Final"
    if distance == 1:
        return "Semi-Final"
    if distance == 2:
        return "Quarter-Final"
    return f"Round {round}"


@dataclass
class BracketMatch:
    """A match as shown in a bracket."""

    id: str
    round: int
    position: int
    status: str
    team1_id: Optional[str] = None
    team2_id: Optional[str] = None
    team1_name: Optional[str] = None
    team2_name: Optional[str] = None
    team1_score: int = 0
    team2_score: int = 0
    winner_id: Optional[str] = None
    winner_slot: Optional[int] = None
    best_of: int = 1
    next_match_id: Optional[str] = None
    scheduled_at: Optional[str] = None


@dataclass
class BracketRound:
    number: int
    name: str
    matches: list[BracketMatch] = field(default_factory=list)


@dataclass
class Bracket:
    tournament_id: str
    format: str
    rounds: int
    matches: list[BracketMatch] = field(default_factory=list)

    def by_round(self) -> list[BracketRound]:
        """Matches grouped per round, each round ordered by position."""
        grouped: dict[int, list[BracketMatch]] = {}
        for match in self.matches:
            grouped.setdefault(match.round, []).append(match)
        return [
            BracketRound(
                number=number,
                name=round_name(self.rounds, number),
                matches=sorted(grouped[number], key=lambda m: m.position),
            )
            for number in sorted(grouped)
        ]

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Bracket":
        return cls(
            tournament_id=data["tournament_id"],
            format=data["format"],
            rounds=data["rounds"],
            matches=[BracketMatch(**m) for m in data.get("matches", [])],
        )


def project(
    tournament_id: str,
    format: str,
    matches: list[Match],
    names: dict[str, str],
) -> Bracket:
    """Build the bracket view from stored matches and a team-name lookup."""
    ordered = sorted(matches, key=lambda m: (m.round, m.position))
    return Bracket(
        tournament_id=tournament_id,
        format=format,
        rounds=max((m.round for m in ordered), default=0),
        matches=[
            BracketMatch(
                id=m.id,
                round=m.round,
                position=m.position,
                status=m.status,
                team1_id=m.team1_id,
                team2_id=m.team2_id,
                team1_name=names.get(m.team1_id) if m.team1_id else None,
                team2_name=names.get(m.team2_id) if m.team2_id else None,
                team1_score=m.team1_score,
                team2_score=m.team2_score,
                winner_id=m.winner_id,
                winner_slot=m.winner_slot,
                best_of=m.best_of,
                next_match_id=m.next_match_id,
                scheduled_at=m.scheduled_at,
            )
            for m in ordered
        ],
    )


class BracketService:
    """Bracket reads over the match and team services."""

    def __init__(
        self,
        store: EntityStore,
        matches: Optional[MatchService] = None,
        teams: Optional[TeamService] = None,
    ):
        self.store = store
        self.matches = matches or MatchService(store)
        self.teams = teams or TeamService(store)

    async def get_bracket(self, tournament_id: str) -> Bracket:
        tournament = await self.matches.tournaments.get_tournament(tournament_id)
        matches = await self.matches.list_matches(tournament_id)
        team_ids = [t for m in matches for t in (m.team1_id, m.team2_id) if t]
        names = await self.teams.team_names(team_ids)
        return project(tournament_id, tournament.format, matches, names)
