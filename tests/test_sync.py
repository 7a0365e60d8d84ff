"""
Tests for the read-through cache and the cached views.
"""

import asyncio

import pytest

from conftest import make_teams, make_tournament, started_tournament
from services.errors import InvalidTransition, NotFound
from services.events import InvalidationBus
from services.sync_service import LocalSource, SyncCache, TournamentViews


class CountingLoader:
    """Loader that counts calls and can be held open."""

    def __init__(self, value="v"):
        self.value = value
        self.calls = 0
        self.release = asyncio.Event()
        self.release.set()

    async def __call__(self):
        self.calls += 1
        await self.release.wait()
        return self.value


@pytest.fixture
def views(core):
    cache = SyncCache(core.bus)
    yield TournamentViews(LocalSource(core), cache)
    cache.close()


class TestSyncCache:
    """Test caching, sharing and invalidation."""

    async def test_second_read_is_a_hit(self):
        cache = SyncCache()
        loader = CountingLoader()

        assert await cache.get(("k",), loader) == "v"
        assert await cache.get(("k",), loader) == "v"
        assert loader.calls == 1
        assert (cache.hits, cache.misses) == (1, 1)

    async def test_concurrent_misses_share_one_fetch(self):
        cache = SyncCache()
        loader = CountingLoader()
        loader.release.clear()

        pending = [asyncio.ensure_future(cache.get(("k",), loader)) for _ in range(5)]
        await asyncio.sleep(0)
        loader.release.set()

        assert await asyncio.gather(*pending) == ["v"] * 5
        assert loader.calls == 1

    async def test_invalidate_forces_reload(self):
        cache = SyncCache()
        loader = CountingLoader()
        await cache.get(("k",), loader)

        cache.invalidate([("k",)])
        assert ("k",) not in cache

        await cache.get(("k",), loader)
        assert loader.calls == 2

    async def test_invalidate_only_named_keys(self):
        cache = SyncCache()
        await cache.get(("a",), CountingLoader("a"))
        await cache.get(("b",), CountingLoader("b"))

        cache.invalidate([("a",)])

        assert ("a",) not in cache
        assert cache.peek(("b",)) == "b"

    async def test_stale_inflight_fetch_is_not_stored(self):
        cache = SyncCache()
        old = CountingLoader("old")
        old.release.clear()

        first = asyncio.ensure_future(cache.get(("k",), old))
        await asyncio.sleep(0)
        cache.invalidate([("k",)])

        new = CountingLoader("new")
        assert await cache.get(("k",), new) == "new"

        old.release.set()
        assert await first == "old"
        assert cache.peek(("k",)) == "new"

    async def test_failed_fetch_is_not_cached(self):
        cache = SyncCache()

        async def broken():
            raise NotFound("gone")

        with pytest.raises(NotFound):
            await cache.get(("k",), broken)
        assert ("k",) not in cache
        assert await cache.get(("k",), CountingLoader("back")) == "back"

    async def test_bus_drives_invalidation(self):
        bus = InvalidationBus()
        cache = SyncCache(bus)
        await cache.get(("k",), CountingLoader())

        bus.publish([("k",)])
        assert ("k",) not in cache

    async def test_close_unsubscribes(self):
        bus = InvalidationBus()
        cache = SyncCache(bus)
        await cache.get(("k",), CountingLoader())
        cache.close()

        bus.publish([("k",)])
        assert ("k",) in cache

    def test_failing_subscriber_does_not_block_others(self):
        bus = InvalidationBus()
        seen = []

        def broken(keys):
            raise RuntimeError("subscriber bug")

        bus.subscribe(broken)
        bus.subscribe(seen.append)

        assert bus.publish([("a",), ("a",), ("b",)]) == (("a",), ("b",))
        assert seen == [(("a",), ("b",))]


class TestTournamentViews:
    """Test views over the local services."""

    async def test_command_refreshes_cached_tournament(self, core, views):
        tournament = await make_tournament(core)
        assert (await views.tournament_by_slug(tournament.slug)).status == "DRAFT"
        assert (await views.tournament(tournament.id)).status == "DRAFT"

        await core.tournaments.open(tournament.id)

        assert (await views.tournament_by_slug(tournament.slug)).status == "OPEN"
        assert (await views.tournament(tournament.id)).status == "OPEN"

    async def test_list_picks_up_new_tournament(self, core, views):
        assert await views.tournaments() == []
        await make_tournament(core, name="Fresh Cup")

        assert [t.name for t in await views.tournaments()] == ["Fresh Cup"]
        assert await views.tournaments(status="OPEN") == []

    async def test_available_teams_follow_registrations(self, core, views):
        teams = await make_teams(core, 3)
        tournament = await make_tournament(core)
        await core.tournaments.open(tournament.id)
        assert len(await views.available_teams(tournament.id)) == 3

        registration = await core.registrations.register(tournament.id, teams[0].id, "cap")
        available = await views.available_teams(tournament.id)
        assert teams[0].id not in {t.id for t in available}

        await core.registrations.reject(registration.id, "admin")
        available = await views.available_teams(tournament.id)
        assert teams[0].id in {t.id for t in available}

    async def test_new_team_appears(self, core, views):
        assert await views.teams() == []
        await make_teams(core, 1)
        assert [t.name for t in await views.teams()] == ["Team 1"]

    async def test_result_refreshes_bracket_and_match(self, core, views):
        tournament, _, matches = await started_tournament(core, 4)
        first = matches[0]
        bracket = await views.bracket(tournament.id)
        assert bracket.matches[0].winner_slot is None
        assert (await views.match(first.next_match_id)).team1_id is None

        await core.matches.report_result(first.id, 2, 0)

        bracket = await views.bracket(tournament.id)
        assert bracket.matches[0].winner_slot == 1
        assert (await views.match(first.next_match_id)).team1_id == first.team1_id

    async def test_games_refresh(self, core, views):
        _, _, matches = await started_tournament(core, 2)
        match = matches[0]
        assert await views.games(match.id) == []

        await core.matches.add_game(match.id, 1, 13, 7, match.team1_id)

        assert [g.game_number for g in await views.games(match.id)] == [1]

    async def test_rejected_command_keeps_cache(self, core, views):
        tournament = await make_tournament(core)
        cached = await views.tournament(tournament.id)

        with pytest.raises(InvalidTransition):
            await core.tournaments.close(tournament.id)

        assert await views.tournament(tournament.id) is cached

    async def test_cancel_refreshes_cached_matches(self, core, views):
        tournament, _, matches = await started_tournament(core, 4)
        first = matches[0]
        assert (await views.match(first.id)).status == "PENDING"
        assert (await views.match(first.next_match_id)).status == "PENDING"

        await core.tournaments.cancel(tournament.id)

        assert (await views.match(first.id)).status == "CANCELLED"
        assert (await views.match(first.next_match_id)).status == "CANCELLED"

    async def test_delete_drops_cached_match_and_games(self, core, views):
        tournament, _, matches = await started_tournament(core, 2)
        match = matches[0]
        await core.matches.add_game(match.id, 1, 13, 7, match.team1_id)
        await views.match(match.id)
        assert len(await views.games(match.id)) == 1

        await core.tournaments.cancel(tournament.id)
        await core.tournaments.delete_tournament(tournament.id)

        with pytest.raises(NotFound):
            await views.match(match.id)
        with pytest.raises(NotFound):
            await views.games(match.id)

    async def test_team_rename_refreshes_bracket_and_registrations(self, core, views):
        tournament, teams, _ = await started_tournament(core, 4)
        bracket = await views.bracket(tournament.id)
        assert "Team 1" in {m.team1_name for m in bracket.matches}
        assert "Team 1" in {r.team_name for r in await views.registrations(tournament.id)}

        await core.teams.update_team(teams[0].id, name="Renamed")

        bracket = await views.bracket(tournament.id)
        names = {m.team1_name for m in bracket.matches} | {m.team2_name for m in bracket.matches}
        assert "Renamed" in names
        assert "Team 1" not in names
        registrations = await views.registrations(tournament.id)
        assert "Renamed" in {r.team_name for r in registrations}

    async def test_team_delete_refreshes_bracket(self, core, views):
        tournament, teams, _ = await started_tournament(core, 2)
        await core.tournaments.cancel(tournament.id)
        bracket = await views.bracket(tournament.id)
        assert {bracket.matches[0].team1_name, bracket.matches[0].team2_name} == {
            "Team 1",
            "Team 2",
        }

        await core.teams.delete_team(teams[0].id)

        bracket = await views.bracket(tournament.id)
        assert "Team 1" not in {bracket.matches[0].team1_name, bracket.matches[0].team2_name}
