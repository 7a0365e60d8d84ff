"""
services/gateway.py — Front-end Command Gateway
================================================
The cogs issue commands through one interface whether the bot owns its
store (``LocalCommands`` over the services) or talks to a remote one
(``StoreClient``). Method names follow the REST client.
"""

from __future__ import annotations

from typing import Optional

from services.core import CoreServices


class LocalCommands:
    """StoreClient-shaped command surface over in-process services."""

    def __init__(self, core: CoreServices):
        self.core = core

    # Teams
    async def create_team(self, **fields):
        return await self.core.teams.create_team(**fields)

    async def delete_team(self, team_id: str) -> None:
        await self.core.teams.delete_team(team_id)

    # Tournaments
    async def create_tournament(self, **fields):
        return await self.core.tournaments.create_tournament(**fields)

    async def update_tournament(self, tournament_id: str, **changes):
        return await self.core.tournaments.update_tournament(tournament_id, **changes)

    async def delete_tournament(self, tournament_id: str) -> None:
        await self.core.tournaments.delete_tournament(tournament_id)

    async def open_tournament(self, tournament_id: str):
        return await self.core.tournaments.open(tournament_id)

    async def close_tournament(self, tournament_id: str):
        return await self.core.tournaments.close(tournament_id)

    async def start_tournament(self, tournament_id: str):
        return await self.core.tournaments.start(tournament_id)

    async def cancel_tournament(self, tournament_id: str):
        return await self.core.tournaments.cancel(tournament_id)

    # Registrations
    async def register(
        self,
        tournament_id: str,
        team_id: str,
        registered_by: str,
        notes: Optional[str] = None,
    ):
        return await self.core.registrations.register(
            tournament_id, team_id, registered_by, notes
        )

    async def approve_registration(self, registration_id: str, approver_id: str):
        return await self.core.registrations.approve(registration_id, approver_id)

    async def reject_registration(self, registration_id: str, approver_id: str):
        return await self.core.registrations.reject(registration_id, approver_id)

    async def withdraw_registration(
        self, registration_id: str, tournament_id: Optional[str] = None
    ):
        return await self.core.registrations.withdraw(registration_id)

    # Matches
    async def schedule_match(self, match_id: str, scheduled_at):
        return await self.core.matches.schedule_match(match_id, scheduled_at)

    async def start_match(self, match_id: str):
        return await self.core.matches.start_match(match_id)

    async def cancel_match(self, match_id: str):
        return await self.core.matches.cancel_match(match_id)

    async def report_result(
        self,
        match_id: str,
        team1_score: int,
        team2_score: int,
        winner_id: Optional[str] = None,
    ):
        return await self.core.matches.report_result(
            match_id, team1_score, team2_score, winner_id
        )

    async def add_game(self, match_id: str, game_number: int, team1_score: int,
                       team2_score: int, winner_id: str,
                       duration_minutes: Optional[int] = None, map: Optional[str] = None):
        return await self.core.matches.add_game(
            match_id, game_number, team1_score, team2_score, winner_id,
            duration_minutes=duration_minutes, map=map,
        )
