"""
services/store_client.py — Async REST Client for the Entity Store

Talks to a remote Entity Store over its JSON REST surface and hands back
the same dataclasses the local services return, so ``TournamentViews`` can
read through either one.

Errors come back as ``{"error": "<reason>", "code": "<ErrorClassName>"}``.
A known code is rebuilt into the matching ``CommandRejected`` subclass;
5xx responses, network errors and timeouts become ``StoreUnavailable``;
anything else becomes ``StoreAPIError``.

Mutations publish the same invalidation keys the local services do.
"""

from __future__ import annotations

import asyncio
import json as jsonlib
import logging
from typing import Any, Iterable, Optional

import aiohttp

from config.settings import STORE_TIMEOUT_SECONDS
from services.bracket_service import Bracket
from services.errors import CommandRejected, StoreUnavailable, error_from_code
from services.events import (
    InvalidationBus,
    deletion_keys,
    game_keys,
    lifecycle_keys,
    match_keys,
    publish,
    registration_keys,
    result_keys,
    teams_key,
    team_keys,
    tournament_header_keys,
    tournament_list_key,
)
from services.match_service import Game, Match
from services.player_service import Player
from services.registration_service import Registration
from services.status_helpers import is_match_finished
from services.team_service import Team
from services.tournament_service import Tournament
from utils.helpers import enum_value, to_iso

log = logging.getLogger(__name__)


class StoreAPIError(CommandRejected):
    """The store answered with an error this client does not know.

    Attributes:
        status: HTTP status code
        message: Error message from the API
    """

    def __init__(self, status: int, message: str):
        self.status = status
        super().__init__(f"Store API error [{status}]: {message}")


class StoreClient:
    """Async HTTP client for the Entity Store REST surface.

    Covers:
    - team and player CRUD, roster membership
    - tournament CRUD and lifecycle transitions
    - the registration workflow
    - matches, results and per-game detail

    Every request carries ``Authorization: Bearer <token>`` when a token was
    given.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        bus: Optional[InvalidationBus] = None,
        timeout: float = STORE_TIMEOUT_SECONDS,
    ):
        """Initialize the client.

        Args:
            base_url: Base URL of the store (e.g., "http://localhost:8080/api")
            token: Bearer token, passed through untouched
            session: Optional shared aiohttp session (created if not provided)
            bus: Invalidation bus to publish to after successful mutations
            timeout: Total seconds allowed per request
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.bus = bus
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        # tournament id -> slug, learned from responses, for slug-key invalidation
        self._slugs: dict[str, str] = {}
        # tournaments whose registrations or bracket were read, for team renames
        self._named_views: set[str] = set()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if we own it."""
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None
            log.info("[STORE-CLIENT] Session closed")

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _error(self, status: int, body: str) -> CommandRejected:
        try:
            data = jsonlib.loads(body) if body else {}
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        message = data.get("error") or body or f"HTTP {status}"

        if status >= 500:
            return StoreUnavailable(f"Store error [{status}]: {message}")
        known = error_from_code(data.get("code"), message)
        if known is not None:
            return known
        return StoreAPIError(status, message)

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Make an authenticated request to the store.

        Returns:
            Parsed JSON response ({} for empty bodies)

        Raises:
            CommandRejected subclass matching the error code
            StoreUnavailable on 5xx, network failure or timeout
            StoreAPIError for any other error status
        """
        session = await self._get_session()
        url = f"{self.base_url}{endpoint}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            async with session.request(
                method,
                url,
                json=json,
                params=params or None,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                body = await resp.text()

                if resp.status >= 400:
                    log.warning(
                        f"[STORE-CLIENT] {method} {endpoint} -> {resp.status}: {body}"
                    )
                    raise self._error(resp.status, body)

                if resp.status == 204 or not body:
                    return {}
                return jsonlib.loads(body)

        except aiohttp.ClientError as e:
            log.error(f"[STORE-CLIENT] Network error: {e}")
            raise StoreUnavailable(f"Network error: {e}") from e
        except asyncio.TimeoutError:
            log.error(f"[STORE-CLIENT] {method} {endpoint} timed out")
            raise StoreUnavailable(
                f"Store did not answer within {self.timeout:g}s."
            ) from None

    def _tournament(self, data: dict) -> Tournament:
        tournament = Tournament.from_dict(data)
        self._slugs[tournament.id] = tournament.slug
        return tournament

    # -------------------------------------------------------------------------
    # Teams
    # -------------------------------------------------------------------------

    async def list_teams(self) -> list[Team]:
        data = await self._request("GET", "/team")
        return [Team.from_dict(item) for item in data]

    async def get_team(self, team_id: str) -> Team:
        return Team.from_dict(await self._request("GET", f"/team/{team_id}"))

    async def create_team(self, **fields) -> Team:
        team = Team.from_dict(await self._request("POST", "/team", json=fields))
        publish(self.bus, [teams_key()])
        return team

    async def update_team(self, team_id: str, **changes) -> Team:
        team = Team.from_dict(await self._request("PUT", f"/team/{team_id}", json=changes))
        publish(self.bus, team_keys(self._named_views))
        return team

    async def delete_team(self, team_id: str) -> None:
        await self._request("DELETE", f"/team/{team_id}")
        publish(self.bus, team_keys(self._named_views))

    # -------------------------------------------------------------------------
    # Players
    # -------------------------------------------------------------------------

    async def list_players(self) -> list[Player]:
        data = await self._request("GET", "/player")
        return [Player.from_dict(item) for item in data]

    async def get_player(self, player_id: str) -> Player:
        return Player.from_dict(await self._request("GET", f"/player/{player_id}"))

    async def create_player(self, **fields) -> Player:
        return Player.from_dict(await self._request("POST", "/player", json=fields))

    async def update_player(self, player_id: str, **changes) -> Player:
        return Player.from_dict(
            await self._request("PUT", f"/player/{player_id}", json=changes)
        )

    async def delete_player(self, player_id: str) -> None:
        await self._request("DELETE", f"/player/{player_id}")

    async def add_player_to_team(
        self, player_id: str, team_id: str, role: Optional[str] = None
    ) -> dict[str, Any]:
        return await self._request(
            "POST", f"/player/{player_id}/team", json={"team_id": team_id, "role": role}
        )

    async def remove_player_from_team(self, player_id: str, team_id: str) -> None:
        await self._request("DELETE", f"/player/{player_id}/team/{team_id}")

    # -------------------------------------------------------------------------
    # Tournaments
    # -------------------------------------------------------------------------

    async def list_tournaments(
        self, status: Optional[str] = None, game: Optional[str] = None
    ) -> list[Tournament]:
        data = await self._request(
            "GET",
            "/tournament",
            params={"status": enum_value(status), "game": enum_value(game)},
        )
        return [self._tournament(item) for item in data]

    async def get_tournament(self, tournament_id: str) -> Tournament:
        return self._tournament(await self._request("GET", f"/tournament/{tournament_id}"))

    async def get_tournament_by_slug(self, slug: str) -> Tournament:
        return self._tournament(await self._request("GET", f"/tournament/slug/{slug}"))

    async def create_tournament(self, **fields) -> Tournament:
        body = {k: enum_value(v) for k, v in fields.items()}
        tournament = self._tournament(await self._request("POST", "/tournament", json=body))
        publish(self.bus, [tournament_list_key()])
        return tournament

    async def update_tournament(self, tournament_id: str, **changes) -> Tournament:
        body = {k: enum_value(v) for k, v in changes.items()}
        tournament = self._tournament(
            await self._request("PUT", f"/tournament/{tournament_id}", json=body)
        )
        publish(self.bus, tournament_header_keys(tournament_id, tournament.slug))
        return tournament

    async def _match_ids(self, tournament_id: str, open_only: bool = False) -> list[str]:
        """Ids of the tournament's matches, read before a command that touches them."""
        return [
            m.id
            for m in await self.list_matches(tournament_id)
            if not (open_only and is_match_finished(m.status))
        ]

    async def delete_tournament(self, tournament_id: str) -> None:
        match_ids = await self._match_ids(tournament_id)
        await self._request("DELETE", f"/tournament/{tournament_id}")
        publish(
            self.bus,
            deletion_keys(tournament_id, self._slugs.pop(tournament_id, None), match_ids),
        )
        self._named_views.discard(tournament_id)

    async def _transition(
        self, tournament_id: str, action: str, bracket: bool, match_ids: Iterable[str] = ()
    ) -> Tournament:
        tournament = self._tournament(
            await self._request("POST", f"/tournament/{tournament_id}/{action}")
        )
        publish(
            self.bus,
            lifecycle_keys(tournament_id, tournament.slug, bracket=bracket, match_ids=match_ids),
        )
        return tournament

    async def open_tournament(self, tournament_id: str) -> Tournament:
        return await self._transition(tournament_id, "open", bracket=False)

    async def close_tournament(self, tournament_id: str) -> Tournament:
        return await self._transition(tournament_id, "close", bracket=False)

    async def start_tournament(self, tournament_id: str) -> Tournament:
        return await self._transition(tournament_id, "start", bracket=True)

    async def cancel_tournament(self, tournament_id: str) -> Tournament:
        voided = await self._match_ids(tournament_id, open_only=True)
        return await self._transition(tournament_id, "cancel", bracket=True, match_ids=voided)

    async def get_bracket(self, tournament_id: str) -> Bracket:
        self._named_views.add(tournament_id)
        return Bracket.from_dict(
            await self._request("GET", f"/tournament/{tournament_id}/bracket")
        )

    # -------------------------------------------------------------------------
    # Registrations
    # -------------------------------------------------------------------------

    async def list_registrations(self, tournament_id: str) -> list[Registration]:
        self._named_views.add(tournament_id)
        data = await self._request("GET", f"/tournament/{tournament_id}/registrations")
        return [Registration.from_dict(item) for item in data]

    async def register(
        self,
        tournament_id: str,
        team_id: str,
        registered_by: str,
        notes: Optional[str] = None,
    ) -> Registration:
        registration = Registration.from_dict(
            await self._request(
                "POST",
                f"/tournament/{tournament_id}/register",
                json={"team_id": team_id, "registered_by": registered_by, "notes": notes},
            )
        )
        publish(self.bus, registration_keys(tournament_id))
        return registration

    async def _decide(self, registration_id: str, action: str, approver_id: str) -> Registration:
        registration = Registration.from_dict(
            await self._request(
                "POST",
                f"/registration/{registration_id}/{action}",
                json={"approver_id": approver_id},
            )
        )
        publish(self.bus, registration_keys(registration.tournament_id))
        return registration

    async def approve_registration(self, registration_id: str, approver_id: str) -> Registration:
        return await self._decide(registration_id, "approve", approver_id)

    async def reject_registration(self, registration_id: str, approver_id: str) -> Registration:
        return await self._decide(registration_id, "reject", approver_id)

    async def withdraw_registration(
        self, registration_id: str, tournament_id: Optional[str] = None
    ) -> Optional[Registration]:
        """Withdraw; ``tournament_id`` is needed for invalidation if the store answers 204."""
        data = await self._request("DELETE", f"/registration/{registration_id}")
        registration = Registration.from_dict(data) if data else None
        tournament_id = registration.tournament_id if registration else tournament_id
        if tournament_id:
            publish(self.bus, registration_keys(tournament_id))
        return registration

    # -------------------------------------------------------------------------
    # Matches
    # -------------------------------------------------------------------------

    async def list_matches(self, tournament_id: str) -> list[Match]:
        data = await self._request("GET", f"/tournament/{tournament_id}/matches")
        return [Match.from_dict(item) for item in data]

    async def get_match(self, match_id: str) -> Match:
        return Match.from_dict(await self._request("GET", f"/match/{match_id}"))

    async def schedule_match(self, match_id: str, scheduled_at) -> Match:
        match = Match.from_dict(
            await self._request(
                "PUT",
                f"/match/{match_id}/schedule",
                json={"scheduled_at": to_iso(scheduled_at)},
            )
        )
        publish(self.bus, match_keys(match.tournament_id, match_id))
        return match

    async def start_match(self, match_id: str) -> Match:
        match = Match.from_dict(await self._request("POST", f"/match/{match_id}/start"))
        publish(self.bus, match_keys(match.tournament_id, match_id))
        return match

    async def cancel_match(self, match_id: str) -> Match:
        match = Match.from_dict(await self._request("POST", f"/match/{match_id}/cancel"))
        # Cancelling the last open final can complete the tournament.
        publish(
            self.bus,
            result_keys(match.tournament_id, self._slugs.get(match.tournament_id), match_id, None),
        )
        return match

    async def report_result(
        self,
        match_id: str,
        team1_score: int,
        team2_score: int,
        winner_id: Optional[str] = None,
    ) -> Match:
        match = Match.from_dict(
            await self._request(
                "POST",
                f"/match/{match_id}/result",
                json={
                    "team1_score": team1_score,
                    "team2_score": team2_score,
                    "winner_id": winner_id,
                },
            )
        )
        publish(
            self.bus,
            result_keys(
                match.tournament_id,
                self._slugs.get(match.tournament_id),
                match_id,
                match.next_match_id,
            ),
        )
        return match

    async def list_games(self, match_id: str) -> list[Game]:
        data = await self._request("GET", f"/match/{match_id}/games")
        return [Game.from_dict(item) for item in data]

    async def add_game(
        self,
        match_id: str,
        game_number: int,
        team1_score: int,
        team2_score: int,
        winner_id: str,
        duration_minutes: Optional[int] = None,
        map: Optional[str] = None,
    ) -> Game:
        game = Game.from_dict(
            await self._request(
                "POST",
                f"/match/{match_id}/games",
                json={
                    "game_number": game_number,
                    "team1_score": team1_score,
                    "team2_score": team2_score,
                    "winner_id": winner_id,
                    "duration_minutes": duration_minutes,
                    "map": map,
                },
            )
        )
        match = await self.get_match(match_id)
        publish(self.bus, game_keys(match.tournament_id, match_id))
        return game
