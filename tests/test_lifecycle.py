"""
Tests for the tournament lifecycle state machine.
"""

import pytest

from conftest import make_teams, make_tournament, ready_tournament, started_tournament
from services.errors import (
    AlreadyTerminal,
    BracketUnavailable,
    DeletionNotAllowed,
    ImmutableAfterPublish,
    InsufficientTeams,
    InvalidTransition,
    NotFound,
    TooManyTeams,
    ValidationError,
)
from services.events import (
    bracket_key,
    matches_key,
    tournament_key,
    tournament_list_key,
    tournament_slug_key,
)
from services.status_enums import GameType, TournamentFormat, TournamentStatus

# -----------------------------------------------------------------------------
# Test: Create / Edit / Delete
# -----------------------------------------------------------------------------


class TestTournamentRecords:
    """Test creation, editing and deletion rules."""

    async def test_create_tournament(self, core):
        """Should create a tournament in DRAFT with defaults."""
        tournament = await make_tournament(core, name="Test Cup")

        assert tournament.status == "DRAFT"
        assert tournament.slug == "test-cup"
        assert tournament.max_teams == 16
        assert tournament.min_teams == 2
        assert tournament.team_size == 5

    async def test_create_accepts_enum_members(self, core):
        tournament = await core.tournaments.create_tournament(
            name="Enum Cup",
            game=GameType.CS2,
            format=TournamentFormat.ROUND_ROBIN,
            organizer_id="org",
        )
        assert tournament.game == "CS2"
        assert tournament.format == "ROUND_ROBIN"

    async def test_slug_is_made_unique(self, core):
        first = await make_tournament(core, name="Winter Open")
        second = await make_tournament(core, name="Winter Open")
        third = await make_tournament(core, name="Winter  Open!")

        assert first.slug == "winter-open"
        assert second.slug == "winter-open-2"
        assert third.slug == "winter-open-3"

    async def test_explicit_slug_must_be_valid_and_unused(self, core):
        await make_tournament(core, slug="major")

        with pytest.raises(ValidationError):
            await make_tournament(core, slug="major")
        with pytest.raises(ValidationError):
            await make_tournament(core, slug="Not A Slug")

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": "   "},
            {"game": "CHESS"},
            {"format": "LADDER"},
            {"min_teams": 1},
            {"min_teams": 8, "max_teams": 4},
            {"team_size": 0},
            {"registration_start": "not-a-date"},
            {"start_date": "2025-06-02T00:00:00Z", "end_date": "2025-06-01T00:00:00Z"},
        ],
    )
    async def test_create_rejects_invalid_fields(self, core, overrides):
        with pytest.raises(ValidationError):
            await make_tournament(core, **overrides)
        assert await core.tournaments.list_tournaments() == []

    async def test_update_in_draft(self, core):
        tournament = await make_tournament(core)
        updated = await core.tournaments.update_tournament(
            tournament.id, name="Renamed Cup", max_teams=8
        )

        assert updated.name == "Renamed Cup"
        assert updated.max_teams == 8
        assert updated.slug == tournament.slug

    async def test_slug_cannot_change(self, core):
        tournament = await make_tournament(core)
        with pytest.raises(ValidationError):
            await core.tournaments.update_tournament(tournament.id, slug="other")

    async def test_update_after_open_is_rejected(self, core):
        tournament = await make_tournament(core)
        await core.tournaments.open(tournament.id)

        with pytest.raises(ImmutableAfterPublish):
            await core.tournaments.update_tournament(tournament.id, name="Late edit")
        assert (await core.tournaments.get_tournament(tournament.id)).name == "Spring Cup"

    async def test_delete_draft(self, core):
        tournament = await make_tournament(core)
        await core.tournaments.delete_tournament(tournament.id)

        with pytest.raises(NotFound):
            await core.tournaments.get_tournament(tournament.id)

    @pytest.mark.parametrize("steps", [["open"], ["open", "close"]])
    async def test_delete_refused_while_active(self, core, steps):
        tournament = await make_tournament(core)
        for step in steps:
            await getattr(core.tournaments, step)(tournament.id)

        with pytest.raises(DeletionNotAllowed):
            await core.tournaments.delete_tournament(tournament.id)

    async def test_delete_cancelled_removes_children(self, core, store):
        tournament, _, _ = await started_tournament(core, 4)
        await core.tournaments.cancel(tournament.id)
        await core.tournaments.delete_tournament(tournament.id)

        assert await store.fetchval("SELECT COUNT(*) FROM matches") == 0
        assert await store.fetchval("SELECT COUNT(*) FROM registrations") == 0

    async def test_list_filters(self, core):
        dota = await make_tournament(core, name="Dota Cup", game="DOTA2")
        await make_tournament(core, name="CS Cup", game="CS2")
        await core.tournaments.open(dota.id)

        assert [t.name for t in await core.tournaments.list_tournaments(game="DOTA2")] == ["Dota Cup"]
        assert [t.id for t in await core.tournaments.list_tournaments(status=TournamentStatus.OPEN)] == [dota.id]
        assert len(await core.tournaments.list_tournaments()) == 2

    async def test_get_by_slug(self, core):
        tournament = await make_tournament(core, name="Slug Cup")
        assert (await core.tournaments.get_by_slug("slug-cup")).id == tournament.id
        with pytest.raises(NotFound):
            await core.tournaments.get_by_slug("missing")


# -----------------------------------------------------------------------------
# Test: Transitions
# -----------------------------------------------------------------------------


class TestTransitions:
    """Test the status state machine."""

    async def test_full_progression(self, core):
        tournament, _ = await ready_tournament(core, 2)
        assert tournament.status == "CLOSED"

        started = await core.tournaments.start(tournament.id)
        assert started.status == "ONGOING"
        assert started.start_date is not None

    async def test_cannot_start_from_draft(self, core):
        tournament = await make_tournament(core)
        with pytest.raises(InvalidTransition):
            await core.tournaments.start(tournament.id)

    async def test_cannot_close_draft(self, core):
        tournament = await make_tournament(core)
        with pytest.raises(InvalidTransition):
            await core.tournaments.close(tournament.id)

    async def test_cannot_reopen(self, core):
        tournament = await make_tournament(core)
        await core.tournaments.open(tournament.id)
        await core.tournaments.close(tournament.id)

        with pytest.raises(InvalidTransition):
            await core.tournaments.open(tournament.id)

    @pytest.mark.parametrize("steps", [[], ["open"], ["open", "close"]])
    async def test_cancel_from_any_active_status(self, core, steps):
        tournament = await make_tournament(core)
        for step in steps:
            await getattr(core.tournaments, step)(tournament.id)

        cancelled = await core.tournaments.cancel(tournament.id)
        assert cancelled.status == "CANCELLED"

    async def test_cancel_twice_is_already_terminal(self, core, recorder):
        tournament = await make_tournament(core)
        cancelled = await core.tournaments.cancel(tournament.id)
        recorder.clear()

        for _ in range(2):
            with pytest.raises(AlreadyTerminal):
                await core.tournaments.cancel(tournament.id)

        after = await core.tournaments.get_tournament(tournament.id)
        assert (after.status, after.updated_at) == ("CANCELLED", cancelled.updated_at)
        assert recorder.published == []

    async def test_cancel_ongoing_voids_open_matches(self, core):
        tournament, _, matches = await started_tournament(core, 4)
        first = matches[0]
        await core.matches.report_result(first.id, 1, 0)

        await core.tournaments.cancel(tournament.id)
        statuses = {m.id: m.status for m in await core.matches.list_matches(tournament.id)}

        assert statuses[first.id] == "COMPLETED"
        assert {s for mid, s in statuses.items() if mid != first.id} == {"CANCELLED"}

    async def test_terminal_statuses_do_not_move(self, core):
        tournament = await make_tournament(core)
        await core.tournaments.cancel(tournament.id)

        for action in ("open", "close", "start"):
            with pytest.raises(InvalidTransition):
                await getattr(core.tournaments, action)(tournament.id)

    async def test_transition_publishes_tournament_keys(self, core, recorder):
        tournament = await make_tournament(core)
        recorder.clear()

        await core.tournaments.open(tournament.id)

        assert {
            tournament_list_key(),
            tournament_key(tournament.id),
            tournament_slug_key(tournament.slug),
        } <= recorder.keys

    async def test_failed_transition_publishes_nothing(self, core, recorder):
        tournament = await make_tournament(core)
        recorder.clear()

        with pytest.raises(InvalidTransition):
            await core.tournaments.start(tournament.id)
        assert recorder.published == []


# -----------------------------------------------------------------------------
# Test: Starting
# -----------------------------------------------------------------------------


class TestStart:
    """Test bracket creation on start."""

    async def test_start_needs_min_teams(self, core, store):
        teams = await make_teams(core, 2)
        tournament = await make_tournament(core, min_teams=2, max_teams=4)
        await core.tournaments.open(tournament.id)
        approved = await core.registrations.register(tournament.id, teams[0].id, "cap")
        await core.registrations.approve(approved.id, "admin")
        await core.registrations.register(tournament.id, teams[1].id, "cap")  # stays PENDING
        await core.tournaments.close(tournament.id)

        with pytest.raises(InsufficientTeams):
            await core.tournaments.start(tournament.id)

        assert (await core.tournaments.get_tournament(tournament.id)).status == "CLOSED"
        assert await store.fetchval("SELECT COUNT(*) FROM matches") == 0

    async def test_start_refuses_more_than_max(self, core, store):
        tournament, _ = await ready_tournament(core, 3, max_teams=3)
        await store.execute(
            "UPDATE tournaments SET max_teams = 2 WHERE id = ?", (tournament.id,)
        )

        with pytest.raises(TooManyTeams):
            await core.tournaments.start(tournament.id)

    async def test_start_without_builder(self, core, store):
        tournament, _ = await ready_tournament(core, 4, format="SWISS")

        with pytest.raises(BracketUnavailable):
            await core.tournaments.start(tournament.id)

        assert (await core.tournaments.get_tournament(tournament.id)).status == "CLOSED"
        assert await store.fetchval("SELECT COUNT(*) FROM matches") == 0

    async def test_registered_builder_is_used(self, core):
        from services.bracket_builders import RoundRobinBuilder

        core.tournaments.register_builder(TournamentFormat.SWISS, RoundRobinBuilder())
        tournament, _ = await ready_tournament(core, 4, format="SWISS")

        await core.tournaments.start(tournament.id)
        assert len(await core.matches.list_matches(tournament.id)) == 6

    async def test_start_builds_seeded_bracket(self, core):
        tournament, teams, matches = await started_tournament(core, 4)
        ids = [t.id for t in teams]

        first_round = [m for m in matches if m.round == 1]
        assert [(m.team1_id, m.team2_id) for m in first_round] == [
            (ids[0], ids[3]),
            (ids[1], ids[2]),
        ]
        final = [m for m in matches if m.round == 2]
        assert len(final) == 1
        assert all(m.next_match_id == final[0].id for m in first_round)
        assert final[0].next_match_id is None

    async def test_start_ignores_withdrawn_and_rejected(self, core):
        teams = await make_teams(core, 4)
        tournament = await make_tournament(core)
        await core.tournaments.open(tournament.id)
        registrations = [
            await core.registrations.register(tournament.id, t.id, "cap") for t in teams
        ]
        await core.registrations.approve(registrations[0].id, "admin")
        await core.registrations.approve(registrations[1].id, "admin")
        await core.registrations.approve(registrations[2].id, "admin")
        await core.registrations.reject(registrations[3].id, "admin")
        await core.registrations.withdraw(registrations[2].id)
        await core.tournaments.close(tournament.id)

        await core.tournaments.start(tournament.id)
        matches = await core.matches.list_matches(tournament.id)

        assert len(matches) == 1
        assert {matches[0].team1_id, matches[0].team2_id} == {teams[0].id, teams[1].id}

    async def test_start_publishes_bracket_keys(self, core, recorder):
        tournament, _ = await ready_tournament(core, 2)
        recorder.clear()

        await core.tournaments.start(tournament.id)

        assert {matches_key(tournament.id), bracket_key(tournament.id)} <= recorder.keys
