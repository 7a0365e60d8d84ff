"""
services/team_service.py — Team Roster Records
-----------------------------------------------
Plain CRUD for teams. The competition core only references teams by id;
this service exists so registrations and brackets can resolve names and so
``available_teams`` has a team list to subtract from.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Optional

from database import EntityStore
from services.errors import NotFound, StateConflict, ValidationError
from services.events import InvalidationBus, publish, team_keys
from services.status_helpers import ACTIVE_REGISTRATION_STATUSES, sql_placeholders
from services.status_enums import TournamentStatus
from utils.helpers import from_mapping, new_id, now_iso

log = logging.getLogger(__name__)


@dataclass
class Team:
    """Team record."""

    id: str
    name: str
    tag: str
    country: str
    logo_url: Optional[str] = None
    socials: dict = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data) -> "Team":
        team = from_mapping(cls, data)
        if isinstance(team.socials, str):
            team.socials = json.loads(team.socials or "{}")
        team.socials = team.socials or {}
        return team


def _require_text(value: Optional[str], label: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{label} is required.")
    return str(value).strip()


class TeamService:
    """
    Service for team records.

    Provides:
    - create/update/delete with required-field validation
    - lookups by id and full listing (sorted by name)
    """

    def __init__(self, store: EntityStore, bus: Optional[InvalidationBus] = None):
        self.store = store
        self.bus = bus

    async def create_team(
        self,
        name: str,
        tag: str,
        country: str,
        logo_url: Optional[str] = None,
        socials: Optional[dict] = None,
    ) -> Team:
        name = _require_text(name, "Team name")
        tag = _require_text(tag, "Team tag")
        country = _require_text(country, "Country")

        team_id = new_id()
        now = now_iso()
        await self.store.execute(
            """
            INSERT INTO teams (id, name, tag, country, logo_url, socials, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (team_id, name, tag, country, logo_url, json.dumps(socials or {}), now, now),
        )
        log.info(f"[TEAM] Created team {team_id}: {name} [{tag}]")
        publish(self.bus, team_keys())
        return await self.get_team(team_id)

    async def get_team(self, team_id: str) -> Team:
        row = await self.store.fetchone("SELECT * FROM teams WHERE id = ?", (team_id,))
        if not row:
            raise NotFound(f"Team {team_id} not found.")
        return Team.from_dict(row)

    async def find_team(self, team_id: str) -> Optional[Team]:
        row = await self.store.fetchone("SELECT * FROM teams WHERE id = ?", (team_id,))
        return Team.from_dict(row) if row else None

    async def list_teams(self) -> list[Team]:
        rows = await self.store.fetchall("SELECT * FROM teams ORDER BY name COLLATE NOCASE")
        return [Team.from_dict(row) for row in rows]

    async def team_names(self, team_ids) -> dict[str, str]:
        """Map of id -> name for the given ids (unknown ids are omitted)."""
        ids = [t for t in set(team_ids) if t]
        if not ids:
            return {}
        rows = await self.store.fetchall(
            f"SELECT id, name FROM teams WHERE id IN ({sql_placeholders(ids)})",
            ids,
        )
        return {row["id"]: row["name"] for row in rows}

    async def _referencing_tournaments(self, team_id: str) -> list[str]:
        """Tournaments whose registrations or matches name this team."""
        rows = await self.store.fetchall(
            """
            SELECT tournament_id FROM registrations WHERE team_id = ?
            UNION
            SELECT tournament_id FROM matches WHERE team1_id = ? OR team2_id = ?
            """,
            (team_id, team_id, team_id),
        )
        return [row["tournament_id"] for row in rows]

    async def update_team(self, team_id: str, **changes) -> Team:
        allowed = {"name", "tag", "country", "logo_url", "socials"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"Unknown team field(s): {', '.join(sorted(unknown))}")

        await self.get_team(team_id)

        updates = {}
        for key, value in changes.items():
            if key in ("name", "tag", "country"):
                value = _require_text(value, key.capitalize())
            if key == "socials":
                value = json.dumps(value or {})
            updates[key] = value
        if not updates:
            return await self.get_team(team_id)

        assignments = ", ".join(f"{column} = ?" for column in updates)
        async with self.store.transaction():
            await self.store.execute(
                f"UPDATE teams SET {assignments}, updated_at = ? WHERE id = ?",
                (*updates.values(), now_iso(), team_id),
            )
            tournament_ids = await self._referencing_tournaments(team_id)
        log.info(f"[TEAM] Updated team {team_id}: {sorted(updates)}")
        publish(self.bus, team_keys(tournament_ids))
        return await self.get_team(team_id)

    async def delete_team(self, team_id: str) -> None:
        """
        Delete a team.

        Refused while the team holds an active registration in a tournament
        that has not finished.
        """
        async with self.store.transaction():
            await self.get_team(team_id)
            live = (
                TournamentStatus.DRAFT.value,
                TournamentStatus.OPEN.value,
                TournamentStatus.CLOSED.value,
                TournamentStatus.ONGOING.value,
            )
            blocking = await self.store.fetchval(
                f"""
                SELECT COUNT(*) FROM registrations r
                JOIN tournaments t ON t.id = r.tournament_id
                WHERE r.team_id = ?
                  AND r.status IN ({sql_placeholders(ACTIVE_REGISTRATION_STATUSES)})
                  AND t.status IN ({sql_placeholders(live)})
                """,
                (team_id, *ACTIVE_REGISTRATION_STATUSES, *live),
            )
            if blocking:
                raise StateConflict(
                    "Team is registered in a tournament that has not finished."
                )
            tournament_ids = await self._referencing_tournaments(team_id)
            await self.store.execute("DELETE FROM teams WHERE id = ?", (team_id,))

        log.info(f"[TEAM] Deleted team {team_id}")
        publish(self.bus, team_keys(tournament_ids))
