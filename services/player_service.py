"""
services/player_service.py — Player Roster Records
---------------------------------------------------
Minimal player management and team membership.

Players are outside the competition core; tournaments never reference
them directly.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import asdict, dataclass, field
from typing import Optional

from database import EntityStore
from services.errors import NotFound, StateConflict, ValidationError
from utils.helpers import from_mapping, new_id, now_iso

log = logging.getLogger(__name__)


@dataclass
class Player:
    """Player profile."""

    id: str
    name: str
    nickname: str
    country: str
    steam_id_64: Optional[str] = None
    discord_id: Optional[str] = None
    socials: dict = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def steam_id_32(self) -> Optional[str]:
        """32-bit account id derived from the SteamID64."""
        if not self.steam_id_64:
            return None
        return str(int(self.steam_id_64) - 76561197960265728)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["steam_id_32"] = self.steam_id_32
        return data

    @classmethod
    def from_dict(cls, data) -> "Player":
        player = from_mapping(cls, data)
        if isinstance(player.socials, str):
            player.socials = json.loads(player.socials or "{}")
        player.socials = player.socials or {}
        return player


@dataclass
class RosterEntry:
    """A player's membership in a team."""

    player_id: str
    team_id: str
    role: Optional[str] = None
    joined_at: Optional[str] = None


class PlayerService:
    """
    Service for player profiles and roster membership.

    Provides:
    - create/get/list/delete players
    - add_to_team / remove_from_team / list_roster
    """

    def __init__(self, store: EntityStore):
        self.store = store

    async def create_player(
        self,
        name: str,
        nickname: str,
        country: str,
        steam_id_64: Optional[str] = None,
        discord_id: Optional[str] = None,
        team_id: Optional[str] = None,
        role: Optional[str] = None,
    ) -> Player:
        """Create a player, optionally placing them straight onto a team."""
        for value, label in ((name, "Name"), (nickname, "Nickname"), (country, "Country")):
            if not value or not str(value).strip():
                raise ValidationError(f"{label} is required.")
        if steam_id_64 is not None and not str(steam_id_64).isdigit():
            raise ValidationError("steam_id_64 must be numeric.")

        player_id = new_id()
        now = now_iso()
        async with self.store.transaction():
            await self.store.execute(
                """
                INSERT INTO players (
                    id, name, nickname, country, steam_id_64, discord_id,
                    socials, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, '{}', ?, ?)
                """,
                (player_id, name.strip(), nickname.strip(), country.strip(),
                 steam_id_64, discord_id, now, now),
            )
            if team_id:
                await self.add_to_team(player_id, team_id, role)

        log.info(f"[PLAYER] Created player {player_id}: {nickname}")
        return await self.get_player(player_id)

    async def get_player(self, player_id: str) -> Player:
        row = await self.store.fetchone("SELECT * FROM players WHERE id = ?", (player_id,))
        if not row:
            raise NotFound(f"Player {player_id} not found.")
        return Player.from_dict(row)

    async def list_players(self) -> list[Player]:
        rows = await self.store.fetchall("SELECT * FROM players ORDER BY nickname COLLATE NOCASE")
        return [Player.from_dict(row) for row in rows]

    async def delete_player(self, player_id: str) -> None:
        deleted = await self.store.execute("DELETE FROM players WHERE id = ?", (player_id,))
        if not deleted:
            raise NotFound(f"Player {player_id} not found.")
        log.info(f"[PLAYER] Deleted player {player_id}")

    # -------------------------------------------------------------------------
    # Roster membership
    # -------------------------------------------------------------------------

    async def add_to_team(
        self, player_id: str, team_id: str, role: Optional[str] = None
    ) -> RosterEntry:
        team = await self.store.fetchone("SELECT id FROM teams WHERE id = ?", (team_id,))
        if not team:
            raise NotFound(f"Team {team_id} not found.")
        await self.get_player(player_id)

        now = now_iso()
        try:
            await self.store.execute(
                "INSERT INTO player_teams (player_id, team_id, role, joined_at) VALUES (?, ?, ?, ?)",
                (player_id, team_id, role, now),
            )
        except sqlite3.IntegrityError:
            raise StateConflict("Player is already on this team.") from None

        log.info(f"[PLAYER] {player_id} joined team {team_id}")
        return RosterEntry(player_id=player_id, team_id=team_id, role=role, joined_at=now)

    async def remove_from_team(self, player_id: str, team_id: str) -> None:
        removed = await self.store.execute(
            "DELETE FROM player_teams WHERE player_id = ? AND team_id = ?",
            (player_id, team_id),
        )
        if not removed:
            raise NotFound("Player is not on this team.")
        log.info(f"[PLAYER] {player_id} left team {team_id}")

    async def list_roster(self, team_id: str) -> list[Player]:
        rows = await self.store.fetchall(
            """
            SELECT p.* FROM players p
            JOIN player_teams pt ON pt.player_id = p.id
            WHERE pt.team_id = ?
            ORDER BY pt.joined_at ASC
            """,
            (team_id,),
        )
        return [Player.from_dict(row) for row in rows]
