"""
services/registration_service.py — Team Registration Workflow
==============================================================
Teams apply to OPEN tournaments; approvers decide while the tournament is
OPEN or CLOSED; teams may withdraw until the bracket exists.

Registration status:
  PENDING → APPROVED | REJECTED | WITHDRAWN
  APPROVED → WITHDRAWN

Decisions are single conditional UPDATEs. Approval additionally re-checks
the tournament status and the APPROVED count inside its WHERE clause, so
two approvers racing for the last seat cannot both win it.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import asdict, dataclass
from typing import Iterable, Optional

from database import EntityStore
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
from services.events import InvalidationBus, publish, registration_keys
from services.status_enums import RegistrationStatus, TournamentStatus
from services.status_helpers import (
    ACTIVE_REGISTRATION_STATUSES,
    DECIDED_REGISTRATION_STATUSES,
    DECISION_WINDOW,
    WITHDRAWAL_BLOCKED,
    sql_placeholders,
)
from utils.helpers import enum_value, from_mapping, new_id, now_iso

log = logging.getLogger(__name__)


@dataclass
class Registration:
    """Registration record, optionally enriched with the team's name and tag."""

    id: str
    tournament_id: str
    team_id: str
    status: str
    registered_by: str
    decided_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    team_name: Optional[str] = None
    team_tag: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_REGISTRATION_STATUSES

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data) -> "Registration":
        return from_mapping(cls, data)


def available_from(teams: Iterable, registrations: Iterable) -> list:
    """
    Teams that hold no PENDING or APPROVED registration.

    Works on anything with ``id`` / ``team_id`` and ``status`` attributes or
    keys, so the sync layer can call it on cached JSON as well.
    """

    def _get(obj, name):
        return obj[name] if isinstance(obj, dict) else getattr(obj, name)

    taken = {
        _get(r, "team_id")
        for r in registrations
        if _get(r, "status") in ACTIVE_REGISTRATION_STATUSES
    }
    return [team for team in teams if _get(team, "id") not in taken]


_SELECT_ENRICHED = """
    SELECT r.*, t.name AS team_name, t.tag AS team_tag
    FROM registrations r
    LEFT JOIN teams t ON t.id = r.team_id
"""


class RegistrationService:
    """
    Service for the registration workflow.

    Provides:
    - register (OPEN only, one active registration per team)
    - approve / reject (OPEN or CLOSED, capacity-checked approval)
    - withdraw (until the tournament starts)
    - listings and the available-teams derivation
    """

    def __init__(self, store: EntityStore, bus: Optional[InvalidationBus] = None):
        self.store = store
        self.bus = bus

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_registration(self, registration_id: str) -> Registration:
        row = await self.store.fetchone(
            f"{_SELECT_ENRICHED} WHERE r.id = ?", (registration_id,)
        )
        if not row:
            raise NotFound(f"Registration {registration_id} not found.")
        return Registration.from_dict(row)

    async def _tournament_row(self, tournament_id: str):
        row = await self.store.fetchone(
            "SELECT id, status, max_teams FROM tournaments WHERE id = ?",
            (tournament_id,),
        )
        if not row:
            raise NotFound(f"Tournament {tournament_id} not found.")
        return row

    async def list_registrations(
        self, tournament_id: str, status: Optional[str] = None
    ) -> list[Registration]:
        """Registrations of a tournament in submission order."""
        await self._tournament_row(tournament_id)
        params: list = [tournament_id]
        where = "WHERE r.tournament_id = ?"
        if status:
            where += " AND r.status = ?"
            params.append(enum_value(status))
        rows = await self.store.fetchall(
            f"{_SELECT_ENRICHED} {where} ORDER BY r.created_at ASC", params
        )
        return [Registration.from_dict(row) for row in rows]

    async def count_approved(self, tournament_id: str) -> int:
        count = await self.store.fetchval(
            "SELECT COUNT(*) FROM registrations WHERE tournament_id = ? AND status = ?",
            (tournament_id, RegistrationStatus.APPROVED.value),
        )
        return int(count or 0)

    async def available_teams(self, tournament_id: str) -> list[dict]:
        """All teams minus those with an active registration for the tournament."""
        registrations = await self.list_registrations(tournament_id)
        teams = await self.store.fetchall(
            "SELECT id, name, tag, country FROM teams ORDER BY name COLLATE NOCASE"
        )
        return available_from([dict(row) for row in teams], registrations)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def register(
        self,
        tournament_id: str,
        team_id: str,
        registered_by: str,
        notes: Optional[str] = None,
    ) -> Registration:
        """Create a PENDING registration for ``team_id``."""
        if not team_id:
            raise ValidationError("Team is required.")
        if not registered_by:
            raise ValidationError("registered_by is required.")

        registration_id = new_id()
        now = now_iso()
        async with self.store.transaction():
            tournament = await self._tournament_row(tournament_id)
            if tournament["status"] != TournamentStatus.OPEN.value:
                raise RegistrationClosed(
                    f"Registration is not open (tournament is {tournament['status']})."
                )

            team = await self.store.fetchone(
                "SELECT id, name FROM teams WHERE id = ?", (team_id,)
            )
            if not team:
                raise NotFound(f"Team {team_id} not found.")

            existing = await self.store.fetchval(
                f"""
                SELECT status FROM registrations
                WHERE tournament_id = ? AND team_id = ?
                  AND status IN ({sql_placeholders(ACTIVE_REGISTRATION_STATUSES)})
                """,
                (tournament_id, team_id, *ACTIVE_REGISTRATION_STATUSES),
            )
            if existing:
                raise DuplicateRegistration(
                    f"{team['name']} already has a {existing.lower()} registration."
                )

            if await self.count_approved(tournament_id) >= tournament["max_teams"]:
                raise CapacityExceeded(
                    f"Tournament is full ({tournament['max_teams']} teams)."
                )

            try:
                await self.store.execute(
                    """
                    INSERT INTO registrations (
                        id, tournament_id, team_id, status, registered_by,
                        notes, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        registration_id,
                        tournament_id,
                        team_id,
                        RegistrationStatus.PENDING.value,
                        str(registered_by),
                        notes,
                        now,
                        now,
                    ),
                )
            except sqlite3.IntegrityError:
                raise DuplicateRegistration() from None

        log.info(
            f"[REGISTRATION] {team['name']} registered for {tournament_id} "
            f"by {registered_by} (#{registration_id})"
        )
        publish(self.bus, registration_keys(tournament_id))
        return await self.get_registration(registration_id)

    async def _explain_refusal(self, registration_id: str, approving: bool):
        """Work out why a conditional decision UPDATE matched no row."""
        registration = await self.get_registration(registration_id)
        if registration.status in DECIDED_REGISTRATION_STATUSES:
            return AlreadyDecided(f"Registration is already {registration.status}.")
        if registration.status != RegistrationStatus.PENDING.value:
            return InvalidRegistrationState(
                f"Registration is {registration.status}."
            )
        tournament = await self._tournament_row(registration.tournament_id)
        if tournament["status"] not in DECISION_WINDOW:
            return InvalidRegistrationState(
                f"Registrations cannot be decided while the tournament is {tournament['status']}."
            )
        if approving:
            return CapacityExceeded(
                f"Tournament already has {tournament['max_teams']} approved teams."
            )
        return InvalidRegistrationState("Registration changed, try again.")

    async def approve(self, registration_id: str, approver_id: str) -> Registration:
        """
        PENDING → APPROVED.

        The UPDATE only matches while the registration is PENDING, the
        tournament is OPEN or CLOSED and fewer than max_teams are approved.
        """
        if not approver_id:
            raise ValidationError("approver_id is required.")

        async with self.store.transaction():
            changed = await self.store.execute(
                f"""
                UPDATE registrations
                SET status = ?, decided_by = ?, updated_at = ?
                WHERE id = ?
                  AND status = ?
                  AND (SELECT t.status FROM tournaments t
                       WHERE t.id = registrations.tournament_id)
                      IN ({sql_placeholders(DECISION_WINDOW)})
                  AND (SELECT COUNT(*) FROM registrations r2
                       WHERE r2.tournament_id = registrations.tournament_id
                         AND r2.status = ?)
                      < (SELECT t.max_teams FROM tournaments t
                         WHERE t.id = registrations.tournament_id)
                """,
                (
                    RegistrationStatus.APPROVED.value,
                    str(approver_id),
                    now_iso(),
                    registration_id,
                    RegistrationStatus.PENDING.value,
                    *DECISION_WINDOW,
                    RegistrationStatus.APPROVED.value,
                ),
            )
            if not changed:
                raise await self._explain_refusal(registration_id, approving=True)
            registration = await self.get_registration(registration_id)

        log.info(
            f"[REGISTRATION] Approved #{registration_id} "
            f"({registration.team_name}) by {approver_id}"
        )
        publish(self.bus, registration_keys(registration.tournament_id))
        return registration

    async def reject(self, registration_id: str, approver_id: str) -> Registration:
        """PENDING → REJECTED. The team may register again afterwards."""
        if not approver_id:
            raise ValidationError("approver_id is required.")

        async with self.store.transaction():
            changed = await self.store.execute(
                f"""
                UPDATE registrations
                SET status = ?, decided_by = ?, updated_at = ?
                WHERE id = ?
                  AND status = ?
                  AND (SELECT t.status FROM tournaments t
                       WHERE t.id = registrations.tournament_id)
                      IN ({sql_placeholders(DECISION_WINDOW)})
                """,
                (
                    RegistrationStatus.REJECTED.value,
                    str(approver_id),
                    now_iso(),
                    registration_id,
                    RegistrationStatus.PENDING.value,
                    *DECISION_WINDOW,
                ),
            )
            if not changed:
                raise await self._explain_refusal(registration_id, approving=False)
            registration = await self.get_registration(registration_id)

        log.info(
            f"[REGISTRATION] Rejected #{registration_id} "
            f"({registration.team_name}) by {approver_id}"
        )
        publish(self.bus, registration_keys(registration.tournament_id))
        return registration

    async def withdraw(self, registration_id: str) -> Registration:
        """PENDING/APPROVED → WITHDRAWN, allowed until the tournament starts."""
        async with self.store.transaction():
            registration = await self.get_registration(registration_id)
            if not registration.is_active:
                raise InvalidRegistrationState(
                    f"Registration is already {registration.status}."
                )
            tournament = await self._tournament_row(registration.tournament_id)
            if tournament["status"] in WITHDRAWAL_BLOCKED:
                raise TournamentInProgress(
                    f"Tournament is {tournament['status']}; withdrawing is no longer possible."
                )

            changed = await self.store.execute(
                f"""
                UPDATE registrations SET status = ?, updated_at = ?
                WHERE id = ? AND status IN ({sql_placeholders(ACTIVE_REGISTRATION_STATUSES)})
                """,
                (
                    RegistrationStatus.WITHDRAWN.value,
                    now_iso(),
                    registration_id,
                    *ACTIVE_REGISTRATION_STATUSES,
                ),
            )
            if not changed:
                raise InvalidRegistrationState("Registration changed, try again.")
            registration = await self.get_registration(registration_id)

        log.info(f"[REGISTRATION] Withdrew #{registration_id} ({registration.team_name})")
        publish(self.bus, registration_keys(registration.tournament_id))
        return registration
