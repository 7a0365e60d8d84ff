"""
Tests for the team registration workflow.
"""

import asyncio

import pytest

from conftest import make_teams, make_tournament
from services.errors import (
    AlreadyDecided,
    CapacityExceeded,
    DuplicateRegistration,
    InvalidRegistrationState,
    NotFound,
    RegistrationClosed,
    TournamentInProgress,
    ValidationError,
)
from services.events import registrations_key
from services.registration_service import available_from


async def _open_tournament(core, **overrides):
    tournament = await make_tournament(core, **overrides)
    return await core.tournaments.open(tournament.id)


class TestRegister:
    """Test submitting registrations."""

    async def test_register_creates_pending(self, core):
        team = (await make_teams(core, 1))[0]
        tournament = await _open_tournament(core)

        registration = await core.registrations.register(
            tournament.id, team.id, "captain", notes="Ready"
        )

        assert registration.status == "PENDING"
        assert registration.team_name == "Team 1"
        assert registration.team_tag == "T1"
        assert registration.notes == "Ready"

    async def test_register_only_while_open(self, core):
        team = (await make_teams(core, 1))[0]
        tournament = await make_tournament(core)

        with pytest.raises(RegistrationClosed):
            await core.registrations.register(tournament.id, team.id, "captain")

        await core.tournaments.open(tournament.id)
        await core.tournaments.close(tournament.id)
        with pytest.raises(RegistrationClosed):
            await core.registrations.register(tournament.id, team.id, "captain")

    async def test_register_unknown_team(self, core):
        tournament = await _open_tournament(core)
        with pytest.raises(NotFound):
            await core.registrations.register(tournament.id, "no-such-team", "captain")

    async def test_register_requires_team_and_user(self, core):
        tournament = await _open_tournament(core)
        with pytest.raises(ValidationError):
            await core.registrations.register(tournament.id, "", "captain")
        with pytest.raises(ValidationError):
            await core.registrations.register(tournament.id, "team", "")

    async def test_duplicate_active_registration(self, core):
        team = (await make_teams(core, 1))[0]
        tournament = await _open_tournament(core)
        await core.registrations.register(tournament.id, team.id, "captain")

        with pytest.raises(DuplicateRegistration):
            await core.registrations.register(tournament.id, team.id, "captain")

    async def test_concurrent_duplicates_yield_one(self, core):
        team = (await make_teams(core, 1))[0]
        tournament = await _open_tournament(core)

        results = await asyncio.gather(
            core.registrations.register(tournament.id, team.id, "a"),
            core.registrations.register(tournament.id, team.id, "b"),
            return_exceptions=True,
        )

        assert sum(1 for r in results if isinstance(r, DuplicateRegistration)) == 1
        assert len(await core.registrations.list_registrations(tournament.id)) == 1

    async def test_register_again_after_rejection(self, core):
        team = (await make_teams(core, 1))[0]
        tournament = await _open_tournament(core)
        first = await core.registrations.register(tournament.id, team.id, "captain")
        await core.registrations.reject(first.id, "admin")

        second = await core.registrations.register(tournament.id, team.id, "captain")
        assert second.status == "PENDING"
        assert second.id != first.id

    async def test_register_when_full(self, core):
        teams = await make_teams(core, 3)
        tournament = await _open_tournament(core, max_teams=2)
        for team in teams[:2]:
            registration = await core.registrations.register(tournament.id, team.id, "cap")
            await core.registrations.approve(registration.id, "admin")

        with pytest.raises(CapacityExceeded):
            await core.registrations.register(tournament.id, teams[2].id, "cap")

    async def test_register_publishes_registration_key(self, core, recorder):
        team = (await make_teams(core, 1))[0]
        tournament = await _open_tournament(core)
        recorder.clear()

        await core.registrations.register(tournament.id, team.id, "captain")
        assert registrations_key(tournament.id) in recorder.keys


class TestDecisions:
    """Test approval and rejection."""

    async def test_approve(self, core):
        team = (await make_teams(core, 1))[0]
        tournament = await _open_tournament(core)
        registration = await core.registrations.register(tournament.id, team.id, "cap")

        approved = await core.registrations.approve(registration.id, "admin")

        assert approved.status == "APPROVED"
        assert approved.decided_by == "admin"
        assert await core.registrations.count_approved(tournament.id) == 1

    async def test_approve_while_closed(self, core):
        team = (await make_teams(core, 1))[0]
        tournament = await _open_tournament(core)
        registration = await core.registrations.register(tournament.id, team.id, "cap")
        await core.tournaments.close(tournament.id)

        approved = await core.registrations.approve(registration.id, "admin")
        assert approved.status == "APPROVED"

    async def test_approve_over_capacity_stays_pending(self, core):
        teams = await make_teams(core, 3)
        tournament = await _open_tournament(core, max_teams=2)
        registrations = [
            await core.registrations.register(tournament.id, t.id, "cap") for t in teams
        ]
        await core.registrations.approve(registrations[0].id, "admin")
        await core.registrations.approve(registrations[1].id, "admin")

        with pytest.raises(CapacityExceeded):
            await core.registrations.approve(registrations[2].id, "admin")

        third = await core.registrations.get_registration(registrations[2].id)
        assert third.status == "PENDING"
        assert await core.registrations.count_approved(tournament.id) == 2

    async def test_racing_approvals_never_exceed_capacity(self, core):
        teams = await make_teams(core, 4)
        tournament = await _open_tournament(core, max_teams=2)
        registrations = [
            await core.registrations.register(tournament.id, t.id, "cap") for t in teams
        ]

        results = await asyncio.gather(
            *(core.registrations.approve(r.id, "admin") for r in registrations),
            return_exceptions=True,
        )

        assert sum(1 for r in results if isinstance(r, CapacityExceeded)) == 2
        assert await core.registrations.count_approved(tournament.id) == 2

    async def test_second_decision_is_already_decided(self, core):
        team = (await make_teams(core, 1))[0]
        tournament = await _open_tournament(core)
        registration = await core.registrations.register(tournament.id, team.id, "cap")
        await core.registrations.approve(registration.id, "admin")

        with pytest.raises(AlreadyDecided) as exc_info:
            await core.registrations.approve(registration.id, "admin")
        assert exc_info.value.success_equivalent

        with pytest.raises(AlreadyDecided):
            await core.registrations.reject(registration.id, "admin")

    async def test_decide_withdrawn_registration(self, core):
        team = (await make_teams(core, 1))[0]
        tournament = await _open_tournament(core)
        registration = await core.registrations.register(tournament.id, team.id, "cap")
        await core.registrations.withdraw(registration.id)

        with pytest.raises(InvalidRegistrationState):
            await core.registrations.approve(registration.id, "admin")

    async def test_decisions_closed_after_start(self, core):
        teams = await make_teams(core, 3)
        tournament = await _open_tournament(core)
        registrations = [
            await core.registrations.register(tournament.id, t.id, "cap") for t in teams
        ]
        await core.registrations.approve(registrations[0].id, "admin")
        await core.registrations.approve(registrations[1].id, "admin")
        await core.tournaments.close(tournament.id)
        await core.tournaments.start(tournament.id)

        with pytest.raises(InvalidRegistrationState):
            await core.registrations.approve(registrations[2].id, "admin")
        with pytest.raises(InvalidRegistrationState):
            await core.registrations.reject(registrations[2].id, "admin")

    async def test_unknown_registration(self, core):
        with pytest.raises(NotFound):
            await core.registrations.approve("missing", "admin")


class TestWithdraw:
    """Test withdrawals."""

    async def test_withdraw_approved_before_start(self, core):
        team = (await make_teams(core, 1))[0]
        tournament = await _open_tournament(core)
        registration = await core.registrations.register(tournament.id, team.id, "cap")
        await core.registrations.approve(registration.id, "admin")

        withdrawn = await core.registrations.withdraw(registration.id)

        assert withdrawn.status == "WITHDRAWN"
        assert await core.registrations.count_approved(tournament.id) == 0

    async def test_withdraw_twice(self, core):
        team = (await make_teams(core, 1))[0]
        tournament = await _open_tournament(core)
        registration = await core.registrations.register(tournament.id, team.id, "cap")
        await core.registrations.withdraw(registration.id)

        with pytest.raises(InvalidRegistrationState):
            await core.registrations.withdraw(registration.id)

    async def test_withdraw_blocked_once_started(self, core):
        teams = await make_teams(core, 2)
        tournament = await _open_tournament(core)
        registrations = [
            await core.registrations.register(tournament.id, t.id, "cap") for t in teams
        ]
        for registration in registrations:
            await core.registrations.approve(registration.id, "admin")
        await core.tournaments.close(tournament.id)
        await core.tournaments.start(tournament.id)

        with pytest.raises(TournamentInProgress):
            await core.registrations.withdraw(registrations[0].id)


class TestAvailableTeams:
    """Test the available-teams derivation."""

    async def test_available_excludes_active(self, core):
        teams = await make_teams(core, 4)
        tournament = await _open_tournament(core)
        pending = await core.registrations.register(tournament.id, teams[0].id, "cap")
        approved = await core.registrations.register(tournament.id, teams[1].id, "cap")
        await core.registrations.approve(approved.id, "admin")
        rejected = await core.registrations.register(tournament.id, teams[2].id, "cap")
        await core.registrations.reject(rejected.id, "admin")

        available = await core.registrations.available_teams(tournament.id)

        assert {t["id"] for t in available} == {teams[2].id, teams[3].id}
        assert pending.status == "PENDING"

    async def test_withdrawn_team_reappears(self, core):
        teams = await make_teams(core, 2)
        tournament = await _open_tournament(core)
        registration = await core.registrations.register(tournament.id, teams[0].id, "cap")
        await core.registrations.withdraw(registration.id)

        available = await core.registrations.available_teams(tournament.id)
        assert {t["id"] for t in available} == {teams[0].id, teams[1].id}

    def test_available_from_plain_dicts(self):
        teams = [{"id": "a"}, {"id": "b"}, {"id": "c"}]
        registrations = [
            {"team_id": "a", "status": "APPROVED"},
            {"team_id": "b", "status": "WITHDRAWN"},
            {"team_id": "c", "status": "PENDING"},
        ]
        assert available_from(teams, registrations) == [{"id": "b"}]

    async def test_list_filters_by_status(self, core):
        teams = await make_teams(core, 2)
        tournament = await _open_tournament(core)
        first = await core.registrations.register(tournament.id, teams[0].id, "cap")
        await core.registrations.register(tournament.id, teams[1].id, "cap")
        await core.registrations.approve(first.id, "admin")

        approved = await core.registrations.list_registrations(tournament.id, status="APPROVED")
        assert [r.id for r in approved] == [first.id]

    async def test_list_for_unknown_tournament(self, core):
        with pytest.raises(NotFound):
            await core.registrations.list_registrations("missing")
