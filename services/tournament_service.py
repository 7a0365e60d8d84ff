"""
services/tournament_service.py — Tournament Lifecycle Engine
=============================================================
Tournament CRUD and the status state machine.

Status progression:
  DRAFT → OPEN → CLOSED → ONGOING → COMPLETED
    ↘______↘_______↘________↘→ CANCELLED

Every transition is a conditional UPDATE (``WHERE status = ?``) checked by
row count, so two racing commands cannot both move the same tournament.
Starting builds the bracket and flips the status in one transaction.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from database import EntityStore
from services.bracket_builders import DEFAULT_BUILDERS, BracketBuilder
from services.errors import (
    AlreadyTerminal,
    BracketUnavailable,
    DeletionNotAllowed,
    ImmutableAfterPublish,
    InsufficientTeams,
    InvalidTransition,
    NotFound,
    TooManyTeams,
    ValidationError,
)
from services.events import (
    InvalidationBus,
    deletion_keys,
    lifecycle_keys,
    publish,
    tournament_header_keys,
    tournament_list_key,
)
from services.status_enums import (
    GameType,
    MatchStatus,
    RegistrationStatus,
    TournamentFormat,
    TournamentStatus,
)
from services.status_helpers import (
    DELETABLE_TOURNAMENT_STATUSES,
    is_tournament_deletable,
    is_tournament_editable,
    is_tournament_terminal,
    sql_placeholders,
    transition_target,
)
from utils.helpers import (
    enum_value,
    from_mapping,
    is_valid_slug,
    new_id,
    now_iso,
    slugify,
    to_iso,
)

log = logging.getLogger(__name__)

DEFAULT_MAX_TEAMS = 16
DEFAULT_MIN_TEAMS = 2
DEFAULT_TEAM_SIZE = 5

EDITABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "game",
        "format",
        "max_teams",
        "min_teams",
        "team_size",
        "registration_start",
        "registration_end",
        "start_date",
        "end_date",
    }
)

DATE_FIELDS = ("registration_start", "registration_end", "start_date", "end_date")


# -----------------------------------------------------------------------------
# Data Classes
# -----------------------------------------------------------------------------


@dataclass
class Tournament:
    """Tournament record."""

    id: str
    name: str
    slug: str
    game: str
    format: str
    status: str
    organizer_id: str
    max_teams: int = DEFAULT_MAX_TEAMS
    min_teams: int = DEFAULT_MIN_TEAMS
    team_size: int = DEFAULT_TEAM_SIZE
    description: Optional[str] = None
    registration_start: Optional[str] = None
    registration_end: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data) -> "Tournament":
        return from_mapping(cls, data)


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------


def _validate_fields(values: dict) -> dict:
    """Check and normalize tournament fields. Raises ValidationError."""
    name = values.get("name")
    if name is None or not str(name).strip():
        raise ValidationError("Tournament name is required.")
    values["name"] = str(name).strip()

    if values.get("game") not in {g.value for g in GameType}:
        raise ValidationError(f"Unknown game: {values.get('game')}")
    if values.get("format") not in {f.value for f in TournamentFormat}:
        raise ValidationError(f"Unknown format: {values.get('format')}")

    try:
        max_teams = int(values["max_teams"])
        min_teams = int(values["min_teams"])
        team_size = int(values["team_size"])
    except (TypeError, ValueError):
        raise ValidationError("Team limits must be whole numbers.") from None
    if min_teams < 2:
        raise ValidationError("A tournament needs at least 2 teams.")
    if max_teams < min_teams:
        raise ValidationError("max_teams cannot be lower than min_teams.")
    if team_size < 1:
        raise ValidationError("team_size must be at least 1.")
    values.update(max_teams=max_teams, min_teams=min_teams, team_size=team_size)

    for key in DATE_FIELDS:
        try:
            values[key] = to_iso(values.get(key))
        except ValueError:
            raise ValidationError(f"{key} is not a valid timestamp.") from None

    if values["registration_start"] and values["registration_end"]:
        if values["registration_end"] < values["registration_start"]:
            raise ValidationError("Registration cannot end before it starts.")
    if values["start_date"] and values["end_date"]:
        if values["end_date"] < values["start_date"]:
            raise ValidationError("Tournament cannot end before it starts.")

    return values


# -----------------------------------------------------------------------------
# Tournament Service
# -----------------------------------------------------------------------------


class TournamentService:
    """
    Service for tournament records and the lifecycle state machine.

    Provides:
    - create / update (DRAFT only) / delete (DRAFT, COMPLETED, CANCELLED)
    - open, close, start, cancel
    - auto-completion once every final match is settled
    """

    def __init__(
        self,
        store: EntityStore,
        bus: Optional[InvalidationBus] = None,
        builders: Optional[dict[str, BracketBuilder]] = None,
    ):
        self.store = store
        self.bus = bus
        self.builders: dict[str, BracketBuilder] = dict(DEFAULT_BUILDERS)
        if builders:
            self.builders.update(builders)

    def register_builder(self, format: str, builder: BracketBuilder) -> None:
        """Make ``start`` use ``builder`` for tournaments of ``format``."""
        self.builders[enum_value(format)] = builder

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_tournament(self, tournament_id: str) -> Tournament:
        row = await self.store.fetchone(
            "SELECT * FROM tournaments WHERE id = ?", (tournament_id,)
        )
        if not row:
            raise NotFound(f"Tournament {tournament_id} not found.")
        return Tournament.from_dict(row)

    async def get_by_slug(self, slug: str) -> Tournament:
        row = await self.store.fetchone(
            "SELECT * FROM tournaments WHERE slug = ?", (slug,)
        )
        if not row:
            raise NotFound(f"No tournament with slug '{slug}'.")
        return Tournament.from_dict(row)

    async def list_tournaments(
        self,
        status: Optional[str] = None,
        game: Optional[str] = None,
    ) -> list[Tournament]:
        """All tournaments, newest first, optionally filtered."""
        clauses, params = [], []
        if status:
            clauses.append("status = ?")
            params.append(enum_value(status))
        if game:
            clauses.append("game = ?")
            params.append(enum_value(game))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await self.store.fetchall(
            f"SELECT * FROM tournaments {where} ORDER BY created_at DESC", params
        )
        return [Tournament.from_dict(row) for row in rows]

    async def _unique_slug(self, base: str) -> str:
        slug, suffix = base, 2
        while await self.store.fetchval(
            "SELECT 1 FROM tournaments WHERE slug = ?", (slug,)
        ):
            slug = f"{base}-{suffix}"
            suffix += 1
        return slug

    # -------------------------------------------------------------------------
    # Create / edit / delete
    # -------------------------------------------------------------------------

    async def create_tournament(
        self,
        name: str,
        game: str,
        format: str,
        organizer_id: str,
        slug: Optional[str] = None,
        description: Optional[str] = None,
        max_teams: int = DEFAULT_MAX_TEAMS,
        min_teams: int = DEFAULT_MIN_TEAMS,
        team_size: int = DEFAULT_TEAM_SIZE,
        registration_start=None,
        registration_end=None,
        start_date=None,
        end_date=None,
    ) -> Tournament:
        """
        Create a tournament in DRAFT.

        When ``slug`` is omitted it is derived from the name and suffixed
        (``-2``, ``-3`` ...) until unique. An explicit slug must already be
        URL-safe and unused.
        """
        if not organizer_id:
            raise ValidationError("Organizer is required.")
        values = _validate_fields(
            {
                "name": name,
                "game": enum_value(game),
                "format": enum_value(format),
                "max_teams": max_teams,
                "min_teams": min_teams,
                "team_size": team_size,
                "registration_start": registration_start,
                "registration_end": registration_end,
                "start_date": start_date,
                "end_date": end_date,
            }
        )
        if slug is not None and not is_valid_slug(slug):
            raise ValidationError(
                "Slug may only contain lower-case letters, digits and dashes."
            )

        tournament_id = new_id()
        now = now_iso()
        async with self.store.transaction():
            if slug is None:
                slug = await self._unique_slug(slugify(values["name"]))
            elif await self.store.fetchval(
                "SELECT 1 FROM tournaments WHERE slug = ?", (slug,)
            ):
                raise ValidationError(f"Slug '{slug}' is already in use.")

            await self.store.execute(
                """
                INSERT INTO tournaments (
                    id, name, slug, description, game, format, status,
                    organizer_id, max_teams, min_teams, team_size,
                    registration_start, registration_end, start_date, end_date,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    tournament_id,
                    values["name"],
                    slug,
                    description,
                    values["game"],
                    values["format"],
                    TournamentStatus.DRAFT.value,
                    str(organizer_id),
                    values["max_teams"],
                    values["min_teams"],
                    values["team_size"],
                    values["registration_start"],
                    values["registration_end"],
                    values["start_date"],
                    values["end_date"],
                    now,
                    now,
                ),
            )

        log.info(
            f"[TOURNAMENT] Created tournament {tournament_id} ({slug}): "
            f"{values['name']} ({values['game']}, {values['format']})"
        )
        publish(self.bus, [tournament_list_key()])
        return await self.get_tournament(tournament_id)

    async def update_tournament(self, tournament_id: str, **changes) -> Tournament:
        """Edit a DRAFT tournament. The slug can never change."""
        if "slug" in changes:
            raise ValidationError("The slug cannot be changed after creation.")
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown tournament field(s): {', '.join(sorted(unknown))}"
            )

        async with self.store.transaction():
            current = await self.get_tournament(tournament_id)
            if not is_tournament_editable(current.status):
                raise ImmutableAfterPublish(
                    f"Tournament is {current.status}; it can only be edited in DRAFT."
                )

            merged = current.to_dict()
            merged.update({k: enum_value(v) for k, v in changes.items()})
            values = _validate_fields(merged)
            if not changes:
                return current

            columns = sorted(changes)
            assignments = ", ".join(f"{column} = ?" for column in columns)
            updated = await self.store.execute(
                f"""
                UPDATE tournaments SET {assignments}, updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    *(values[column] for column in columns),
                    now_iso(),
                    tournament_id,
                    TournamentStatus.DRAFT.value,
                ),
            )
            if not updated:
                raise ImmutableAfterPublish()

        log.info(f"[TOURNAMENT] Updated tournament {tournament_id}: {columns}")
        publish(self.bus, tournament_header_keys(tournament_id, current.slug))
        return await self.get_tournament(tournament_id)

    async def delete_tournament(self, tournament_id: str) -> None:
        """Delete a tournament with its registrations, matches and games."""
        async with self.store.transaction():
            current = await self.get_tournament(tournament_id)
            if not is_tournament_deletable(current.status):
                raise DeletionNotAllowed(
                    f"Tournament is {current.status}; cancel it before deleting."
                )
            match_ids = [
                row["id"]
                for row in await self.store.fetchall(
                    "SELECT id FROM matches WHERE tournament_id = ?", (tournament_id,)
                )
            ]
            statuses = tuple(DELETABLE_TOURNAMENT_STATUSES)
            deleted = await self.store.execute(
                f"DELETE FROM tournaments WHERE id = ? AND status IN ({sql_placeholders(statuses)})",
                (tournament_id, *statuses),
            )
            if not deleted:
                raise DeletionNotAllowed()

        log.info(f"[TOURNAMENT] Deleted tournament {tournament_id} ({current.slug})")
        publish(self.bus, deletion_keys(tournament_id, current.slug, match_ids))

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def _move(self, tournament: Tournament, action: str, **stamps) -> str:
        """Conditionally move ``tournament`` along the ``action`` edge."""
        target = transition_target(action, tournament.status)
        if target is None:
            raise InvalidTransition(
                f"Cannot {action} a tournament that is {tournament.status}."
            )

        assignments = "".join(f", {column} = COALESCE({column}, ?)" for column in stamps)
        changed = await self.store.execute(
            f"""
            UPDATE tournaments SET status = ?, updated_at = ?{assignments}
            WHERE id = ? AND status = ?
            """,
            (target, now_iso(), *stamps.values(), tournament.id, tournament.status),
        )
        if not changed:
            # Someone else moved it between our read and write.
            raise InvalidTransition(f"Tournament {tournament.id} changed status, try again.")

        log.info(f"[TOURNAMENT] Tournament {tournament.id} status {tournament.status} → {target}")
        return target

    async def open(self, tournament_id: str) -> Tournament:
        """DRAFT → OPEN: start accepting registrations."""
        async with self.store.transaction():
            tournament = await self.get_tournament(tournament_id)
            await self._move(tournament, "open")
        publish(self.bus, lifecycle_keys(tournament_id, tournament.slug, bracket=False))
        return await self.get_tournament(tournament_id)

    async def close(self, tournament_id: str) -> Tournament:
        """OPEN → CLOSED: stop accepting registrations."""
        async with self.store.transaction():
            tournament = await self.get_tournament(tournament_id)
            await self._move(tournament, "close")
        publish(self.bus, lifecycle_keys(tournament_id, tournament.slug, bracket=False))
        return await self.get_tournament(tournament_id)

    async def start(self, tournament_id: str) -> Tournament:
        """
        CLOSED → ONGOING.

        Seeds the approved teams in approval order, asks the builder for the
        tournament's format for the bracket and stores it together with the
        status change.
        """
        async with self.store.transaction():
            tournament = await self.get_tournament(tournament_id)
            if transition_target("start", tournament.status) is None:
                raise InvalidTransition(
                    f"Cannot start a tournament that is {tournament.status}."
                )

            rows = await self.store.fetchall(
                """
                SELECT team_id FROM registrations
                WHERE tournament_id = ? AND status = ?
                ORDER BY updated_at ASC, created_at ASC, rowid ASC
                """,
                (tournament_id, RegistrationStatus.APPROVED.value),
            )
            team_ids = [row["team_id"] for row in rows]
            if len(team_ids) < tournament.min_teams:
                raise InsufficientTeams(
                    f"{len(team_ids)} approved team(s); at least {tournament.min_teams} needed."
                )
            if len(team_ids) > tournament.max_teams:
                raise TooManyTeams(
                    f"{len(team_ids)} approved teams; the limit is {tournament.max_teams}."
                )

            builder = self.builders.get(tournament.format)
            if builder is None:
                raise BracketUnavailable(
                    f"No bracket builder for {tournament.format} tournaments."
                )
            planned = builder.build(team_ids)
            if not planned:
                raise BracketUnavailable("Bracket builder produced no matches.")

            ids = [new_id() for _ in planned]
            now = now_iso()
            await self.store.executemany(
                """
                INSERT INTO matches (
                    id, tournament_id, round, position, team1_id, team2_id,
                    status, best_of, next_match_id, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        ids[m.index],
                        tournament_id,
                        m.round,
                        m.position,
                        m.team1_id,
                        m.team2_id,
                        MatchStatus.PENDING.value,
                        m.best_of,
                        ids[m.next_index] if m.next_index is not None else None,
                        now,
                        now,
                    )
                    for m in planned
                ],
            )
            await self._move(tournament, "start", start_date=now)

        log.info(
            f"[TOURNAMENT] Started {tournament_id} with {len(team_ids)} teams, "
            f"{len(planned)} matches"
        )
        publish(self.bus, lifecycle_keys(tournament_id, tournament.slug, bracket=True))
        return await self.get_tournament(tournament_id)

    async def cancel(self, tournament_id: str) -> Tournament:
        """Cancel from any non-terminal status; open matches are voided too."""
        async with self.store.transaction():
            tournament = await self.get_tournament(tournament_id)
            if is_tournament_terminal(tournament.status):
                raise AlreadyTerminal(f"Tournament is already {tournament.status}.")

            await self._move(tournament, "cancel")
            open_statuses = (
                MatchStatus.PENDING.value,
                MatchStatus.SCHEDULED.value,
                MatchStatus.LIVE.value,
            )
            voided_ids = [
                row["id"]
                for row in await self.store.fetchall(
                    f"""
                    SELECT id FROM matches
                    WHERE tournament_id = ? AND status IN ({sql_placeholders(open_statuses)})
                    """,
                    (tournament_id, *open_statuses),
                )
            ]
            voided = await self.store.execute(
                f"""
                UPDATE matches SET status = ?, updated_at = ?
                WHERE tournament_id = ? AND status IN ({sql_placeholders(open_statuses)})
                """,
                (MatchStatus.CANCELLED.value, now_iso(), tournament_id, *open_statuses),
            )

        if voided:
            log.info(f"[TOURNAMENT] Cancelled {voided} open match(es) of {tournament_id}")
        publish(
            self.bus,
            lifecycle_keys(tournament_id, tournament.slug, bracket=True, match_ids=voided_ids),
        )
        return await self.get_tournament(tournament_id)

    async def complete_if_finished(self, tournament_id: str) -> bool:
        """
        ONGOING → COMPLETED once every final match is settled.

        A final match is one with no downstream match. At least one of them
        must have been played; a bracket where everything was voided stays
        ONGOING. Runs inside the caller's transaction and publishes nothing.
        """
        row = await self.store.fetchone(
            """
            SELECT
                COUNT(*) AS finals,
                SUM(CASE WHEN status IN (?, ?) THEN 1 ELSE 0 END) AS settled,
                SUM(CASE WHEN status = ? THEN 1 ELSE 0 END) AS played
            FROM matches
            WHERE tournament_id = ? AND next_match_id IS NULL
            """,
            (
                MatchStatus.COMPLETED.value,
                MatchStatus.CANCELLED.value,
                MatchStatus.COMPLETED.value,
                tournament_id,
            ),
        )
        if not row or not row["finals"] or row["settled"] != row["finals"] or not row["played"]:
            return False

        tournament = await self.get_tournament(tournament_id)
        if tournament.status != TournamentStatus.ONGOING.value:
            return False
        await self._move(tournament, "complete", end_date=now_iso())
        log.info(f"[TOURNAMENT] Tournament {tournament_id} completed")
        return True
