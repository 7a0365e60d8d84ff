# services/status_helpers.py
from __future__ import annotations

from typing import Iterable, Optional

from services.status_enums import MatchStatus, RegistrationStatus, TournamentStatus


# ── Tournament lifecycle ───────────────────────────────────────────────────

# action -> (allowed source statuses, target status)
TOURNAMENT_TRANSITIONS: dict[str, tuple[frozenset[str], str]] = {
    "open": (
        frozenset({TournamentStatus.DRAFT.value}),
        TournamentStatus.OPEN.value,
    ),
    "close": (
        frozenset({TournamentStatus.OPEN.value}),
        TournamentStatus.CLOSED.value,
    ),
    "start": (
        frozenset({TournamentStatus.CLOSED.value}),
        TournamentStatus.ONGOING.value,
    ),
    "complete": (
        frozenset({TournamentStatus.ONGOING.value}),
        TournamentStatus.COMPLETED.value,
    ),
    "cancel": (
        frozenset(
            {
                TournamentStatus.DRAFT.value,
                TournamentStatus.OPEN.value,
                TournamentStatus.CLOSED.value,
                TournamentStatus.ONGOING.value,
            }
        ),
        TournamentStatus.CANCELLED.value,
    ),
}

TERMINAL_TOURNAMENT_STATUSES = frozenset(
    {TournamentStatus.COMPLETED.value, TournamentStatus.CANCELLED.value}
)

DELETABLE_TOURNAMENT_STATUSES = frozenset(
    {
        TournamentStatus.DRAFT.value,
        TournamentStatus.COMPLETED.value,
        TournamentStatus.CANCELLED.value,
    }
)


def transition_target(action: str, status: str) -> Optional[str]:
    """Target status for ``action`` from ``status``, or None if no edge exists."""
    sources, target = TOURNAMENT_TRANSITIONS[action]
    return target if status in sources else None


def is_tournament_terminal(status: str) -> bool:
    return status in TERMINAL_TOURNAMENT_STATUSES


def is_tournament_editable(status: str) -> bool:
    return status == TournamentStatus.DRAFT.value


def is_tournament_deletable(status: str) -> bool:
    return status in DELETABLE_TOURNAMENT_STATUSES


# ── Registration helpers ───────────────────────────────────────────────────

ACTIVE_REGISTRATION_STATUSES = (
    RegistrationStatus.PENDING.value,
    RegistrationStatus.APPROVED.value,
)

DECIDED_REGISTRATION_STATUSES = (
    RegistrationStatus.APPROVED.value,
    RegistrationStatus.REJECTED.value,
)

# Tournament statuses in which approvers may decide registrations.
DECISION_WINDOW = (
    TournamentStatus.OPEN.value,
    TournamentStatus.CLOSED.value,
)

# Once the bracket exists, teams forfeit instead of withdrawing.
WITHDRAWAL_BLOCKED = (
    TournamentStatus.ONGOING.value,
    TournamentStatus.COMPLETED.value,
)


# ── Match status helpers ───────────────────────────────────────────────────

REPORTABLE_MATCH_STATUSES = (
    MatchStatus.PENDING.value,
    MatchStatus.SCHEDULED.value,
    MatchStatus.LIVE.value,
)


def is_match_finished(status: str) -> bool:
    """Completed or cancelled."""
    return status in (
        MatchStatus.COMPLETED.value,
        MatchStatus.CANCELLED.value,
    )


def sql_placeholders(values: Iterable) -> str:
    """``?, ?, ?`` for an IN clause."""
    return ", ".join("?" for _ in values)
