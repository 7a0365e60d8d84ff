"""
services/sync_service.py — Client Synchronization Layer
========================================================
Read-through cache and view facade used by the front end.

Commands never patch cached data. They publish the keys they touched on the
InvalidationBus; ``SyncCache`` drops those keys and the next read goes back
to the data source. A fetch that was already running when its key was
invalidated still answers its callers but is not kept.

Data sources (``LocalSource`` over the services, or ``StoreClient`` over
REST) return the same dataclasses, so views do not care which is wired.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Hashable, Iterable, Optional, Protocol

from services.bracket_service import Bracket
from services.core import CoreServices
from services.events import (
    InvalidationBus,
    bracket_key,
    games_key,
    match_key,
    matches_key,
    registrations_key,
    teams_key,
    tournament_key,
    tournament_list_key,
    tournament_slug_key,
)
from services.match_service import Game, Match
from services.registration_service import Registration, available_from
from services.team_service import Team
from services.tournament_service import Tournament
from utils.helpers import enum_value

log = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Any]]


# -----------------------------------------------------------------------------
# Cache
# -----------------------------------------------------------------------------


class SyncCache:
    """
    Keyed read-through cache.

    - ``get(key, loader)`` returns the cached value or awaits ``loader``;
      concurrent misses on one key share a single fetch.
    - ``invalidate(keys)`` drops the entries. A fetch in flight for a
      dropped key is not stored, and later callers start a new fetch.
    """

    def __init__(self, bus: Optional[InvalidationBus] = None):
        self._entries: dict[Hashable, Any] = {}
        self._inflight: dict[Hashable, asyncio.Task] = {}
        self._generation: dict[Hashable, int] = {}
        self.hits = 0
        self.misses = 0
        self._unsubscribe = bus.subscribe(self.invalidate) if bus else None

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def peek(self, key: Hashable, default: Any = None) -> Any:
        return self._entries.get(key, default)

    async def get(self, key: Hashable, loader: Loader) -> Any:
        if key in self._entries:
            self.hits += 1
            return self._entries[key]

        task = self._inflight.get(key)
        if task is None:
            self.misses += 1
            generation = self._generation.get(key, 0)
            task = asyncio.ensure_future(self._load(key, loader, generation))
            self._inflight[key] = task
        # A caller giving up must not cancel the fetch other callers share.
        return await asyncio.shield(task)

    async def _load(self, key: Hashable, loader: Loader, generation: int) -> Any:
        try:
            value = await loader()
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]
        if self._generation.get(key, 0) == generation:
            self._entries[key] = value
        else:
            log.debug(f"[SYNC] Discarded stale fetch for {key}")
        return value

    def invalidate(self, keys: Iterable[Hashable]) -> None:
        for key in keys:
            self._entries.pop(key, None)
            self._inflight.pop(key, None)
            self._generation[key] = self._generation.get(key, 0) + 1

    def clear(self) -> None:
        self.invalidate(list(self._entries) + list(self._inflight))

    def close(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None


# -----------------------------------------------------------------------------
# Data sources
# -----------------------------------------------------------------------------


class DataSource(Protocol):
    async def list_tournaments(self) -> list[Tournament]: ...
    async def get_tournament(self, tournament_id: str) -> Tournament: ...
    async def get_tournament_by_slug(self, slug: str) -> Tournament: ...
    async def list_registrations(self, tournament_id: str) -> list[Registration]: ...
    async def list_matches(self, tournament_id: str) -> list[Match]: ...
    async def get_match(self, match_id: str) -> Match: ...
    async def get_bracket(self, tournament_id: str) -> Bracket: ...
    async def list_games(self, match_id: str) -> list[Game]: ...
    async def list_teams(self) -> list[Team]: ...


class LocalSource:
    """Reads straight from the in-process services."""

    def __init__(self, core: CoreServices):
        self.core = core

    async def list_tournaments(self) -> list[Tournament]:
        return await self.core.tournaments.list_tournaments()

    async def get_tournament(self, tournament_id: str) -> Tournament:
        return await self.core.tournaments.get_tournament(tournament_id)

    async def get_tournament_by_slug(self, slug: str) -> Tournament:
        return await self.core.tournaments.get_by_slug(slug)

    async def list_registrations(self, tournament_id: str) -> list[Registration]:
        return await self.core.registrations.list_registrations(tournament_id)

    async def list_matches(self, tournament_id: str) -> list[Match]:
        return await self.core.matches.list_matches(tournament_id)

    async def get_match(self, match_id: str) -> Match:
        return await self.core.matches.get_match(match_id)

    async def get_bracket(self, tournament_id: str) -> Bracket:
        return await self.core.brackets.get_bracket(tournament_id)

    async def list_games(self, match_id: str) -> list[Game]:
        return await self.core.matches.list_games(match_id)

    async def list_teams(self) -> list[Team]:
        return await self.core.teams.list_teams()


# -----------------------------------------------------------------------------
# Views
# -----------------------------------------------------------------------------


class TournamentViews:
    """
    Cached read models for the front end.

    Every method maps to one cache key, except ``available_teams`` which is
    recomputed from the cached team list and registration list each call.
    """

    def __init__(self, source: DataSource, cache: SyncCache):
        self.source = source
        self.cache = cache

    async def tournaments(
        self, status: Optional[str] = None, game: Optional[str] = None
    ) -> list[Tournament]:
        items = await self.cache.get(tournament_list_key(), self.source.list_tournaments)
        if status:
            items = [t for t in items if t.status == enum_value(status)]
        if game:
            items = [t for t in items if t.game == enum_value(game)]
        return items

    async def tournament(self, tournament_id: str) -> Tournament:
        return await self.cache.get(
            tournament_key(tournament_id),
            lambda: self.source.get_tournament(tournament_id),
        )

    async def tournament_by_slug(self, slug: str) -> Tournament:
        return await self.cache.get(
            tournament_slug_key(slug),
            lambda: self.source.get_tournament_by_slug(slug),
        )

    async def registrations(self, tournament_id: str) -> list[Registration]:
        return await self.cache.get(
            registrations_key(tournament_id),
            lambda: self.source.list_registrations(tournament_id),
        )

    async def teams(self) -> list[Team]:
        return await self.cache.get(teams_key(), self.source.list_teams)

    async def available_teams(self, tournament_id: str) -> list[Team]:
        teams = await self.teams()
        registrations = await self.registrations(tournament_id)
        return available_from(teams, registrations)

    async def matches(self, tournament_id: str) -> list[Match]:
        return await self.cache.get(
            matches_key(tournament_id),
            lambda: self.source.list_matches(tournament_id),
        )

    async def match(self, match_id: str) -> Match:
        return await self.cache.get(
            match_key(match_id), lambda: self.source.get_match(match_id)
        )

    async def bracket(self, tournament_id: str) -> Bracket:
        return await self.cache.get(
            bracket_key(tournament_id),
            lambda: self.source.get_bracket(tournament_id),
        )

    async def games(self, match_id: str) -> list[Game]:
        return await self.cache.get(
            games_key(match_id), lambda: self.source.list_games(match_id)
        )
