"""
services/match_service.py — Match & Bracket Progression
========================================================
Scheduling, results and per-game detail for bracket matches.

Match status:
  PENDING → SCHEDULED → LIVE → COMPLETED   (SCHEDULED and LIVE optional)
  any non-terminal → CANCELLED

A reported result, the winner's propagation into the downstream match and
the tournament auto-completion check are one transaction: either all of it
lands or none of it does.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import asdict, dataclass
from typing import Optional

from database import EntityStore
from services.errors import (
    BracketCorruption,
    InvalidMatchState,
    NotFound,
    TeamsNotResolved,
    TiedScoreNotAllowed,
    ValidationError,
    WinnerMismatch,
)
from services.events import (
    InvalidationBus,
    game_keys,
    match_keys,
    publish,
    result_keys,
)
from services.status_enums import MatchStatus
from services.status_helpers import (
    REPORTABLE_MATCH_STATUSES,
    is_match_finished,
    sql_placeholders,
)
from services.tournament_service import TournamentService
from utils.helpers import from_mapping, new_id, now_iso, to_iso

log = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Data Classes
# -----------------------------------------------------------------------------


@dataclass
class Match:
    """Bracket match."""

    id: str
    tournament_id: str
    round: int
    position: int
    team1_id: Optional[str] = None
    team2_id: Optional[str] = None  # None = not resolved yet
    team1_score: int = 0
    team2_score: int = 0
    winner_id: Optional[str] = None
    status: str = MatchStatus.PENDING.value
    best_of: int = 1
    next_match_id: Optional[str] = None  # Where the winner goes
    scheduled_at: Optional[str] = None
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def teams_resolved(self) -> bool:
        return bool(self.team1_id and self.team2_id)

    @property
    def winner_slot(self) -> Optional[int]:
        """1 or 2 for the slot holding the winner, None while undecided."""
        if self.winner_id and self.winner_id == self.team1_id:
            return 1
        if self.winner_id and self.winner_id == self.team2_id:
            return 2
        return None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data) -> "Match":
        return from_mapping(cls, data)


@dataclass
class Game:
    """One game (map) inside a match."""

    id: str
    match_id: str
    game_number: int
    team1_score: int = 0
    team2_score: int = 0
    winner_id: Optional[str] = None
    duration_minutes: Optional[int] = None
    map: Optional[str] = None
    created_at: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data) -> "Game":
        return from_mapping(cls, data)


def _score(value, label: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a number.")
    try:
        score = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number.") from None
    if score < 0:
        raise ValidationError(f"{label} cannot be negative.")
    return score


# -----------------------------------------------------------------------------
# Match Service
# -----------------------------------------------------------------------------


class MatchService:
    """
    Service for match progression.

    Provides:
    - lookups by id, by (round, position) and per tournament
    - schedule / start / cancel
    - result reporting with winner propagation and auto-completion
    - per-game detail
    """

    def __init__(
        self,
        store: EntityStore,
        bus: Optional[InvalidationBus] = None,
        tournaments: Optional[TournamentService] = None,
    ):
        self.store = store
        self.bus = bus
        self.tournaments = tournaments or TournamentService(store)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_match(self, match_id: str) -> Match:
        row = await self.store.fetchone("SELECT * FROM matches WHERE id = ?", (match_id,))
        if not row:
            raise NotFound(f"Match {match_id} not found.")
        return Match.from_dict(row)

    async def get_match_at(self, tournament_id: str, round: int, position: int) -> Match:
        row = await self.store.fetchone(
            "SELECT * FROM matches WHERE tournament_id = ? AND round = ? AND position = ?",
            (tournament_id, round, position),
        )
        if not row:
            raise NotFound(f"No match at round {round}, position {position}.")
        return Match.from_dict(row)

    async def list_matches(
        self, tournament_id: str, round: Optional[int] = None
    ) -> list[Match]:
        """Matches ordered by round then position."""
        await self.tournaments.get_tournament(tournament_id)
        sql = "SELECT * FROM matches WHERE tournament_id = ?"
        params: list = [tournament_id]
        if round is not None:
            sql += " AND round = ?"
            params.append(round)
        rows = await self.store.fetchall(f"{sql} ORDER BY round ASC, position ASC", params)
        return [Match.from_dict(row) for row in rows]

    async def list_games(self, match_id: str) -> list[Game]:
        await self.get_match(match_id)
        rows = await self.store.fetchall(
            "SELECT * FROM games WHERE match_id = ? ORDER BY game_number ASC",
            (match_id,),
        )
        return [Game.from_dict(row) for row in rows]

    # -------------------------------------------------------------------------
    # Status commands
    # -------------------------------------------------------------------------

    async def schedule_match(self, match_id: str, when) -> Match:
        """PENDING → SCHEDULED at ``when``. Both teams must be known."""
        if when is None:
            raise ValidationError("A scheduled time is required.")
        try:
            scheduled_at = to_iso(when)
        except ValueError:
            raise ValidationError(f"'{when}' is not a valid timestamp.") from None

        async with self.store.transaction():
            match = await self.get_match(match_id)
            if match.status != MatchStatus.PENDING.value:
                raise InvalidMatchState(f"Only PENDING matches can be scheduled (match is {match.status}).")
            if not match.teams_resolved:
                raise TeamsNotResolved()

            changed = await self.store.execute(
                """
                UPDATE matches SET status = ?, scheduled_at = ?, updated_at = ?
                WHERE id = ? AND status = ?
                  AND team1_id IS NOT NULL AND team2_id IS NOT NULL
                """,
                (
                    MatchStatus.SCHEDULED.value,
                    scheduled_at,
                    now_iso(),
                    match_id,
                    MatchStatus.PENDING.value,
                ),
            )
            if not changed:
                raise InvalidMatchState("Match changed, try again.")

        log.info(f"[MATCH] Scheduled {match_id} for {scheduled_at}")
        publish(self.bus, match_keys(match.tournament_id, match_id))
        return await self.get_match(match_id)

    async def start_match(self, match_id: str) -> Match:
        """PENDING/SCHEDULED → LIVE."""
        startable = (MatchStatus.PENDING.value, MatchStatus.SCHEDULED.value)
        async with self.store.transaction():
            match = await self.get_match(match_id)
            if match.status not in startable:
                raise InvalidMatchState(f"Match is {match.status}; it cannot go live.")
            if not match.teams_resolved:
                raise TeamsNotResolved()

            changed = await self.store.execute(
                f"""
                UPDATE matches SET status = ?, started_at = ?, updated_at = ?
                WHERE id = ? AND status IN ({sql_placeholders(startable)})
                """,
                (MatchStatus.LIVE.value, now_iso(), now_iso(), match_id, *startable),
            )
            if not changed:
                raise InvalidMatchState("Match changed, try again.")

        log.info(f"[MATCH] Match {match_id} is live")
        publish(self.bus, match_keys(match.tournament_id, match_id))
        return await self.get_match(match_id)

    async def cancel_match(self, match_id: str) -> Match:
        """
        Void a match that has not finished.

        The winner slot downstream stays empty. If this settles the last
        open final, the tournament completes as it would after a result.
        """
        async with self.store.transaction():
            match = await self.get_match(match_id)
            if is_match_finished(match.status):
                raise InvalidMatchState(f"Match is already {match.status}.")

            changed = await self.store.execute(
                f"""
                UPDATE matches SET status = ?, ended_at = ?, updated_at = ?
                WHERE id = ? AND status IN ({sql_placeholders(REPORTABLE_MATCH_STATUSES)})
                """,
                (
                    MatchStatus.CANCELLED.value,
                    now_iso(),
                    now_iso(),
                    match_id,
                    *REPORTABLE_MATCH_STATUSES,
                ),
            )
            if not changed:
                raise InvalidMatchState("Match changed, try again.")
            completed = await self.tournaments.complete_if_finished(match.tournament_id)
            slug = await self._slug(match.tournament_id)

        log.info(f"[MATCH] Cancelled {match_id}")
        keys = match_keys(match.tournament_id, match_id)
        if completed:
            keys = result_keys(match.tournament_id, slug, match_id, None)
        publish(self.bus, keys)
        return await self.get_match(match_id)

    async def _slug(self, tournament_id: str) -> Optional[str]:
        return await self.store.fetchval(
            "SELECT slug FROM tournaments WHERE id = ?", (tournament_id,)
        )

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    async def report_result(
        self,
        match_id: str,
        team1_score,
        team2_score,
        winner_id: Optional[str] = None,
    ) -> Match:
        """
        Record the final score of a match.

        When ``winner_id`` is omitted the team with the higher score wins.
        The winner is copied into the first empty slot of the downstream
        match (team1 first); the downstream match keeps its status.

        Raises:
            ValidationError / TiedScoreNotAllowed before touching the store
            InvalidMatchState, TeamsNotResolved, WinnerMismatch
            BracketCorruption if the downstream match has no free slot
        """
        score1 = _score(team1_score, "Team 1 score")
        score2 = _score(team2_score, "Team 2 score")
        if score1 == score2:
            raise TiedScoreNotAllowed(f"A {score1}-{score2} result has no winner.")

        async with self.store.transaction():
            match = await self.get_match(match_id)
            if match.status not in REPORTABLE_MATCH_STATUSES:
                raise InvalidMatchState(f"Match is already {match.status}.")
            if not match.teams_resolved:
                raise TeamsNotResolved()

            leader = match.team1_id if score1 > score2 else match.team2_id
            if winner_id is None:
                winner_id = leader
            if winner_id not in (match.team1_id, match.team2_id):
                log.error(
                    f"[MATCH] Winner {winner_id} is not in match {match_id} "
                    f"({match.team1_id} vs {match.team2_id})"
                )
                raise WinnerMismatch()
            if winner_id != leader:
                log.error(f"[MATCH] Winner {winner_id} of {match_id} has the lower score")
                raise WinnerMismatch("The winner must have the higher score.")

            now = now_iso()
            changed = await self.store.execute(
                f"""
                UPDATE matches
                SET team1_score = ?, team2_score = ?, winner_id = ?,
                    status = ?, ended_at = ?, updated_at = ?
                WHERE id = ? AND status IN ({sql_placeholders(REPORTABLE_MATCH_STATUSES)})
                """,
                (
                    score1,
                    score2,
                    winner_id,
                    MatchStatus.COMPLETED.value,
                    now,
                    now,
                    match_id,
                    *REPORTABLE_MATCH_STATUSES,
                ),
            )
            if not changed:
                raise InvalidMatchState("Match changed, try again.")

            if match.next_match_id:
                await self._advance_winner(match, winner_id)

            await self.tournaments.complete_if_finished(match.tournament_id)
            slug = await self._slug(match.tournament_id)

        log.info(
            f"[MATCH] Match {match_id} completed {score1}-{score2}, winner={winner_id}"
        )
        publish(
            self.bus,
            result_keys(match.tournament_id, slug, match_id, match.next_match_id),
        )
        return await self.get_match(match_id)

    async def _advance_winner(self, match: Match, winner_id: str) -> None:
        """Fill the first empty slot of the downstream match."""
        now = now_iso()
        for slot in ("team1_id", "team2_id"):
            filled = await self.store.execute(
                f"""
                UPDATE matches SET {slot} = ?, updated_at = ?
                WHERE id = ? AND {slot} IS NULL
                """,
                (winner_id, now, match.next_match_id),
            )
            if filled:
                log.info(
                    f"[MATCH] {winner_id} advances to {match.next_match_id} ({slot})"
                )
                return

        log.error(
            f"[MATCH] Bracket corruption: downstream match {match.next_match_id} "
            f"of {match.id} has no free slot"
        )
        raise BracketCorruption(
            f"Match {match.next_match_id} already has both teams; result not recorded."
        )

    # -------------------------------------------------------------------------
    # Games
    # -------------------------------------------------------------------------

    async def add_game(
        self,
        match_id: str,
        game_number,
        team1_score,
        team2_score,
        winner_id: str,
        duration_minutes: Optional[int] = None,
        map: Optional[str] = None,
    ) -> Game:
        """Record one game of a best-of series. The match status is untouched."""
        number = _score(game_number, "Game number")
        if number < 1:
            raise ValidationError("Game numbers start at 1.")
        score1 = _score(team1_score, "Team 1 score")
        score2 = _score(team2_score, "Team 2 score")
        if duration_minutes is not None:
            duration_minutes = _score(duration_minutes, "Duration")
        if not winner_id:
            raise ValidationError("Game winner is required.")

        game_id = new_id()
        async with self.store.transaction():
            match = await self.get_match(match_id)
            if match.status == MatchStatus.CANCELLED.value:
                raise InvalidMatchState("Match was cancelled.")
            if number > match.best_of:
                raise ValidationError(
                    f"Game {number} exceeds best-of-{match.best_of}."
                )
            if winner_id not in (match.team1_id, match.team2_id):
                raise WinnerMismatch("Game winner is not one of the match's teams.")

            try:
                await self.store.execute(
                    """
                    INSERT INTO games (
                        id, match_id, game_number, team1_score, team2_score,
                        winner_id, duration_minutes, map, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        game_id,
                        match_id,
                        number,
                        score1,
                        score2,
                        winner_id,
                        duration_minutes,
                        map,
                        now_iso(),
                    ),
                )
            except sqlite3.IntegrityError:
                raise ValidationError(
                    f"Game {number} is already recorded for this match."
                ) from None

        log.info(f"[MATCH] Game {number} of {match_id} recorded, winner={winner_id}")
        publish(self.bus, game_keys(match.tournament_id, match_id))
        row = await self.store.fetchone("SELECT * FROM games WHERE id = ?", (game_id,))
        return Game.from_dict(row)
