"""
services/events.py — Invalidation Events
=========================================
Every successful command publishes the cache keys whose data it may have
changed. The sync layer subscribes and drops exactly those keys.

Keys are tuples so that related views share a readable prefix:

    ("tournaments",)                       tournament list
    ("tournaments", id)                    tournament detail
    ("tournaments", "slug", slug)          tournament detail by slug
    ("tournaments", id, "registrations")
    ("tournaments", id, "matches")
    ("tournaments", id, "bracket")
    ("matches", id)
    ("matches", id, "games")
    ("teams",)
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

log = logging.getLogger(__name__)

CacheKey = tuple
Subscriber = Callable[[tuple], None]


# -----------------------------------------------------------------------------
# Key builders
# -----------------------------------------------------------------------------


def tournament_list_key() -> CacheKey:
    return ("tournaments",)


def tournament_key(tournament_id: str) -> CacheKey:
    return ("tournaments", tournament_id)


def tournament_slug_key(slug: str) -> CacheKey:
    return ("tournaments", "slug", slug)


def registrations_key(tournament_id: str) -> CacheKey:
    return ("tournaments", tournament_id, "registrations")


def matches_key(tournament_id: str) -> CacheKey:
    return ("tournaments", tournament_id, "matches")


def bracket_key(tournament_id: str) -> CacheKey:
    return ("tournaments", tournament_id, "bracket")


def match_key(match_id: str) -> CacheKey:
    return ("matches", match_id)


def games_key(match_id: str) -> CacheKey:
    return ("matches", match_id, "games")


def teams_key() -> CacheKey:
    return ("teams",)


# -----------------------------------------------------------------------------
# Per-command key sets
# -----------------------------------------------------------------------------


def tournament_header_keys(tournament_id: str, slug: Optional[str]) -> list[CacheKey]:
    """List, detail and slug lookup: everything showing tournament fields."""
    keys = [tournament_list_key(), tournament_key(tournament_id)]
    if slug:
        keys.append(tournament_slug_key(slug))
    return keys


def lifecycle_keys(
    tournament_id: str,
    slug: Optional[str],
    *,
    bracket: bool,
    match_ids: Iterable[str] = (),
) -> list[CacheKey]:
    """``match_ids`` are matches whose status the transition changed."""
    keys = tournament_header_keys(tournament_id, slug)
    if bracket:
        keys += [matches_key(tournament_id), bracket_key(tournament_id)]
    keys += [match_key(match_id) for match_id in match_ids]
    return keys


def deletion_keys(
    tournament_id: str, slug: Optional[str], match_ids: Iterable[str] = ()
) -> list[CacheKey]:
    keys = tournament_header_keys(tournament_id, slug) + [
        registrations_key(tournament_id),
        matches_key(tournament_id),
        bracket_key(tournament_id),
    ]
    for match_id in match_ids:
        keys += [match_key(match_id), games_key(match_id)]
    return keys


def registration_keys(tournament_id: str) -> list[CacheKey]:
    # available_teams is derived from this list on read, so it needs no key.
    return [registrations_key(tournament_id)]


def match_keys(tournament_id: str, match_id: str) -> list[CacheKey]:
    return [matches_key(tournament_id), bracket_key(tournament_id), match_key(match_id)]


def result_keys(
    tournament_id: str,
    slug: Optional[str],
    match_id: str,
    next_match_id: Optional[str],
) -> list[CacheKey]:
    keys = match_keys(tournament_id, match_id)
    if next_match_id:
        keys.append(match_key(next_match_id))
    # The result may complete the tournament.
    return keys + tournament_header_keys(tournament_id, slug)


def game_keys(tournament_id: str, match_id: str) -> list[CacheKey]:
    return [games_key(match_id), match_key(match_id), matches_key(tournament_id)]


def team_keys(tournament_ids: Iterable[str] = ()) -> list[CacheKey]:
    """Team list plus the views of ``tournament_ids`` that show team names."""
    keys = [teams_key()]
    for tournament_id in tournament_ids:
        keys += [registrations_key(tournament_id), bracket_key(tournament_id)]
    return keys


# -----------------------------------------------------------------------------
# Bus
# -----------------------------------------------------------------------------


class InvalidationBus:
    """
    Fan-out of invalidated key sets to subscribers.

    Subscribers are plain callables taking a tuple of keys. A failing
    subscriber is logged and does not stop delivery to the others; the
    command that published has already committed.
    """

    def __init__(self):
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, keys: Iterable[CacheKey]) -> tuple:
        unique = tuple(dict.fromkeys(keys))
        if not unique:
            return unique
        log.debug(f"[SYNC] Invalidate {len(unique)} key(s): {unique}")
        for callback in list(self._subscribers):
            try:
                callback(unique)
            except Exception:
                log.exception("[SYNC] Invalidation subscriber failed")
        return unique


def publish(bus: Optional[InvalidationBus], keys: Iterable[CacheKey]) -> None:
    """Publish on ``bus`` if one is wired."""
    if bus is not None:
        bus.publish(keys)
