"""
Tests for the REST store client against a small in-process aiohttp app.
"""

import pytest
from aiohttp import test_utils, web

from services.errors import (
    AlreadyDecided,
    CapacityExceeded,
    StoreUnavailable,
    TiedScoreNotAllowed,
)
from services.events import (
    InvalidationBus,
    bracket_key,
    games_key,
    match_key,
    matches_key,
    registrations_key,
    teams_key,
    tournament_key,
    tournament_slug_key,
)
from services.store_client import StoreAPIError, StoreClient
from services.sync_service import SyncCache, TournamentViews

TOURNAMENT = {
    "id": "t1",
    "name": "Remote Cup",
    "slug": "remote-cup",
    "game": "CS2",
    "format": "SINGLE_ELIMINATION",
    "status": "DRAFT",
    "organizer_id": "org",
    "max_teams": 8,
    "min_teams": 2,
    "team_size": 5,
}

MATCH = {
    "id": "m1",
    "tournament_id": "t1",
    "round": 1,
    "position": 0,
    "team1_id": "a",
    "team2_id": "b",
    "status": "PENDING",
    "best_of": 1,
    "next_match_id": "m3",
}


class FakeStore:
    """Records requests and serves canned answers."""

    def __init__(self):
        self.requests = []
        self.tournament = dict(TOURNAMENT)

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/api/tournament", self.list_tournaments)
        app.router.add_get("/api/tournament/{id}", self.get_tournament)
        app.router.add_delete("/api/tournament/{id}", self.delete_tournament)
        app.router.add_get("/api/tournament/{id}/matches", self.list_matches)
        app.router.add_get("/api/tournament/{id}/bracket", self.bracket)
        app.router.add_put("/api/team/{id}", self.update_team)
        app.router.add_post("/api/tournament/{id}/{action}", self.transition)
        app.router.add_post("/api/registration/{id}/approve", self.approve)
        app.router.add_delete("/api/registration/{id}", self.withdraw)
        app.router.add_post("/api/match/{id}/result", self.result)
        app.router.add_get("/api/broken", self.broken)
        app.router.add_get("/api/teapot", self.teapot)
        return app

    def _record(self, request: web.Request):
        self.requests.append((request.method, request.path, request.headers.get("Authorization")))

    async def list_tournaments(self, request):
        self._record(request)
        statuses = request.query.getall("status", [])
        items = [self.tournament] if not statuses or self.tournament["status"] in statuses else []
        return web.json_response(items)

    async def get_tournament(self, request):
        self._record(request)
        if request.match_info["id"] != "t1":
            return web.json_response({"error": "Tournament not found.", "code": "NotFound"}, status=404)
        return web.json_response(self.tournament)

    async def delete_tournament(self, request):
        self._record(request)
        return web.Response(status=204)

    async def list_matches(self, request):
        self._record(request)
        return web.json_response(
            [
                MATCH,
                dict(MATCH, id="m2", position=1, status="COMPLETED", winner_id="c"),
                dict(
                    MATCH,
                    id="m3",
                    round=2,
                    position=0,
                    team1_id=None,
                    team2_id=None,
                    next_match_id=None,
                ),
            ]
        )

    async def bracket(self, request):
        self._record(request)
        return web.json_response(
            {
                "tournament_id": request.match_info["id"],
                "format": "SINGLE_ELIMINATION",
                "rounds": 2,
                "matches": [],
            }
        )

    async def update_team(self, request):
        self._record(request)
        team = {"id": request.match_info["id"], "name": "Alpha", "tag": "A", "country": "SE"}
        team.update(await request.json())
        return web.json_response(team)

    async def transition(self, request):
        self._record(request)
        action = request.match_info["action"]
        target = {"open": "OPEN", "close": "CLOSED", "start": "ONGOING", "cancel": "CANCELLED"}[action]
        self.tournament["status"] = target
        return web.json_response(self.tournament)

    async def approve(self, request):
        self._record(request)
        if request.match_info["id"] == "full":
            return web.json_response(
                {"error": "Tournament already has 8 approved teams.", "code": "CapacityExceeded"},
                status=409,
            )
        if request.match_info["id"] == "done":
            return web.json_response(
                {"error": "Registration is already APPROVED.", "code": "AlreadyDecided"},
                status=409,
            )
        body = await request.json()
        return web.json_response(
            {
                "id": request.match_info["id"],
                "tournament_id": "t1",
                "team_id": "a",
                "status": "APPROVED",
                "registered_by": "cap",
                "decided_by": body["approver_id"],
            }
        )

    async def withdraw(self, request):
        self._record(request)
        return web.Response(status=204)

    async def result(self, request):
        self._record(request)
        body = await request.json()
        if body["team1_score"] == body["team2_score"]:
            return web.json_response(
                {"error": "Tied scores are not allowed.", "code": "TiedScoreNotAllowed"},
                status=400,
            )
        winner = "a" if body["team1_score"] > body["team2_score"] else "b"
        return web.json_response(
            dict(
                MATCH,
                status="COMPLETED",
                team1_score=body["team1_score"],
                team2_score=body["team2_score"],
                winner_id=winner,
            )
        )

    async def broken(self, request):
        return web.Response(status=503, text="maintenance")

    async def teapot(self, request):
        return web.json_response({"error": "I'm a teapot", "code": "Teapot"}, status=418)


@pytest.fixture
def fake():
    return FakeStore()


@pytest.fixture
async def server(fake):
    server = test_utils.TestServer(fake.app())
    await server.start_server()
    yield server
    await server.close()


@pytest.fixture
def bus():
    return InvalidationBus()


@pytest.fixture
async def client(server, bus):
    client = StoreClient(str(server.make_url("/api/")), token="secret", bus=bus, timeout=5)
    yield client
    await client.close()


class TestStoreClient:
    """Test requests, error mapping and invalidation."""

    async def test_bearer_token_is_sent(self, client, fake):
        tournament = await client.get_tournament("t1")

        assert tournament.slug == "remote-cup"
        assert fake.requests == [("GET", "/api/tournament/t1", "Bearer secret")]

    async def test_no_token_no_header(self, server, fake):
        client = StoreClient(str(server.make_url("/api")))
        try:
            await client.list_tournaments()
        finally:
            await client.close()
        assert fake.requests[0][2] is None

    async def test_list_passes_filters(self, client):
        assert [t.id for t in await client.list_tournaments(status="DRAFT")] == ["t1"]
        assert await client.list_tournaments(status="OPEN") == []

    async def test_known_code_becomes_typed_error(self, client):
        with pytest.raises(CapacityExceeded) as exc_info:
            await client.approve_registration("full", "admin")
        assert "8 approved teams" in str(exc_info.value)

    async def test_success_equivalent_survives_the_wire(self, client):
        with pytest.raises(AlreadyDecided) as exc_info:
            await client.approve_registration("done", "admin")
        assert exc_info.value.success_equivalent

    async def test_validation_error_from_store(self, client):
        with pytest.raises(TiedScoreNotAllowed):
            await client.report_result("m1", 1, 1)

    async def test_server_error_is_store_unavailable(self, client):
        with pytest.raises(StoreUnavailable) as exc_info:
            await client._request("GET", "/broken")
        assert exc_info.value.retryable

    async def test_unknown_error_is_store_api_error(self, client):
        with pytest.raises(StoreAPIError) as exc_info:
            await client._request("GET", "/teapot")
        assert exc_info.value.status == 418

    async def test_network_failure_is_store_unavailable(self, bus):
        client = StoreClient("http://127.0.0.1:9/api", bus=bus, timeout=2)
        try:
            with pytest.raises(StoreUnavailable):
                await client.get_tournament("t1")
        finally:
            await client.close()

    async def test_transition_publishes_lifecycle_keys(self, client, bus):
        published = []
        bus.subscribe(published.append)

        tournament = await client.start_tournament("t1")

        assert tournament.status == "ONGOING"
        keys = set(published[0])
        assert {
            tournament_key("t1"),
            tournament_slug_key("remote-cup"),
            matches_key("t1"),
            bracket_key("t1"),
        } <= keys

    async def test_result_publishes_match_keys(self, client, bus):
        published = []
        bus.subscribe(published.append)

        match = await client.report_result("m1", 2, 0)

        assert match.winner_id == "a"
        assert {match_key("m1"), match_key("m3"), bracket_key("t1")} <= set(published[0])

    async def test_rejected_command_publishes_nothing(self, client, bus):
        published = []
        bus.subscribe(published.append)

        with pytest.raises(CapacityExceeded):
            await client.approve_registration("full", "admin")
        assert published == []

    async def test_withdraw_without_body_uses_given_tournament(self, client, bus):
        published = []
        bus.subscribe(published.append)

        assert await client.withdraw_registration("r1", tournament_id="t1") is None
        assert published == [(registrations_key("t1"),)]

    async def test_views_read_through_client(self, client, bus, fake):
        cache = SyncCache(bus)
        views = TournamentViews(client, cache)

        assert (await views.tournament("t1")).status == "DRAFT"
        assert (await views.tournament("t1")).status == "DRAFT"
        assert len(fake.requests) == 1

        await client.open_tournament("t1")
        assert (await views.tournament("t1")).status == "OPEN"
        cache.close()

    async def test_cancel_publishes_voided_match_keys(self, client, bus):
        published = []
        bus.subscribe(published.append)

        await client.cancel_tournament("t1")

        keys = set(published[0])
        assert {match_key("m1"), match_key("m3"), bracket_key("t1")} <= keys
        assert match_key("m2") not in keys

    async def test_delete_publishes_match_and_game_keys(self, client, bus, fake):
        published = []
        bus.subscribe(published.append)

        await client.delete_tournament("t1")

        keys = set(published[0])
        for match_id in ("m1", "m2", "m3"):
            assert match_key(match_id) in keys
            assert games_key(match_id) in keys
        assert [r[0] for r in fake.requests] == ["GET", "DELETE"]

    async def test_team_update_refreshes_viewed_brackets(self, client, bus):
        published = []
        bus.subscribe(published.append)

        await client.update_team("a", name="Renamed")
        assert published[-1] == (teams_key(),)

        await client.get_bracket("t1")
        team = await client.update_team("a", name="Renamed again")

        assert team.name == "Renamed again"
        assert {teams_key(), bracket_key("t1")} <= set(published[-1])
