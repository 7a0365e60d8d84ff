"""
Pytest configuration and fixtures for LeagueOps Core tests.
"""

import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import EntityStore  # noqa: E402
from services.core import CoreServices  # noqa: E402
from services.events import InvalidationBus  # noqa: E402


class BusRecorder:
    """Collects every key set published on a bus."""

    def __init__(self, bus: InvalidationBus):
        self.published: list[tuple] = []
        bus.subscribe(self.published.append)

    @property
    def keys(self) -> set:
        return {key for batch in self.published for key in batch}

    def clear(self) -> None:
        self.published.clear()


@pytest.fixture
async def store():
    """Fresh in-memory Entity Store with the full schema."""
    store = await EntityStore.open(":memory:", timeout=5)
    yield store
    await store.close()


@pytest.fixture
def bus():
    return InvalidationBus()


@pytest.fixture
def recorder(bus):
    return BusRecorder(bus)


@pytest.fixture
def core(store, bus):
    return CoreServices.create(store, bus)


# -----------------------------------------------------------------------------
# Scenario helpers
# -----------------------------------------------------------------------------


async def make_teams(core: CoreServices, count: int) -> list:
    """Create ``count`` teams named Team 1..N with tags T1..TN."""
    return [
        await core.teams.create_team(f"Team {i}", f"T{i}", "SE")
        for i in range(1, count + 1)
    ]


async def make_tournament(core: CoreServices, **overrides):
    fields = {
        "name": "Spring Cup",
        "game": "DOTA2",
        "format": "SINGLE_ELIMINATION",
        "organizer_id": "org-1",
    }
    fields.update(overrides)
    return await core.tournaments.create_tournament(**fields)


async def ready_tournament(core: CoreServices, team_count: int, **overrides):
    """
    A CLOSED tournament with ``team_count`` approved teams, approved in
    team order so seed N is Team N.

    Returns (tournament, teams).
    """
    teams = await make_teams(core, team_count)
    overrides.setdefault("max_teams", max(team_count, 2))
    tournament = await make_tournament(core, **overrides)
    await core.tournaments.open(tournament.id)
    for team in teams:
        registration = await core.registrations.register(tournament.id, team.id, "captain")
        await core.registrations.approve(registration.id, "admin")
    tournament = await core.tournaments.close(tournament.id)
    return tournament, teams


async def started_tournament(core: CoreServices, team_count: int, **overrides):
    """ONGOING tournament plus its teams and matches."""
    tournament, teams = await ready_tournament(core, team_count, **overrides)
    tournament = await core.tournaments.start(tournament.id)
    matches = await core.matches.list_matches(tournament.id)
    return tournament, teams, matches
