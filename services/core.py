"""
services/core.py — Service Wiring
==================================
One place that builds every core service over a shared store and
invalidation bus. The bot and the tests both start from here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from database import EntityStore
from services.bracket_service import BracketService
from services.events import InvalidationBus
from services.match_service import MatchService
from services.player_service import PlayerService
from services.registration_service import RegistrationService
from services.team_service import TeamService
from services.tournament_service import TournamentService


@dataclass
class CoreServices:
    store: EntityStore
    bus: InvalidationBus
    teams: TeamService
    players: PlayerService
    tournaments: TournamentService
    registrations: RegistrationService
    matches: MatchService
    brackets: BracketService

    @classmethod
    def create(
        cls, store: EntityStore, bus: Optional[InvalidationBus] = None
    ) -> "CoreServices":
        bus = bus or InvalidationBus()
        teams = TeamService(store, bus)
        tournaments = TournamentService(store, bus)
        matches = MatchService(store, bus, tournaments=tournaments)
        return cls(
            store=store,
            bus=bus,
            teams=teams,
            players=PlayerService(store),
            tournaments=tournaments,
            registrations=RegistrationService(store, bus),
            matches=matches,
            brackets=BracketService(store, matches=matches, teams=teams),
        )
