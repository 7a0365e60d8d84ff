"""
services/errors.py — Command Rejection Taxonomy
================================================
Every command in the core either succeeds or raises one of these.

    CommandRejected
    ├── ValidationError        malformed input, raised before the store is touched
    ├── NotFound
    ├── StateConflict          current state forbids the command
    ├── IntegrityFailure       a guarantee the system owns was broken
    └── TransientFailure       store timeout / network failure

``str(exc)`` is always a human-readable reason suitable for showing to a
user. ``exc.code`` is the class name and travels over the wire so that
``StoreClient`` can rebuild the same exception on the other side.
"""

from __future__ import annotations

from typing import Optional


class CommandRejected(Exception):
    """Base class for every rejected command."""

    retryable = False
    success_equivalent = False
    default_message = "Command rejected."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return type(self).__name__


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------


class ValidationError(CommandRejected):
    default_message = "Invalid input."


class TiedScoreNotAllowed(ValidationError):
    default_message = "Tied scores are not allowed; a match needs a winner."


class NotFound(CommandRejected):
    default_message = "Not found."


# -----------------------------------------------------------------------------
# State conflicts
# -----------------------------------------------------------------------------


class StateConflict(CommandRejected):
    default_message = "The current state does not allow this command."


class InvalidTransition(StateConflict):
    default_message = "Tournament is not in the required status."


class AlreadyTerminal(StateConflict):
    default_message = "Tournament is already completed or cancelled."


class ImmutableAfterPublish(StateConflict):
    default_message = "Tournament can only be edited while in DRAFT."


class DeletionNotAllowed(StateConflict):
    default_message = "Cancel the tournament before deleting it."


class InsufficientTeams(StateConflict):
    default_message = "Not enough approved teams to start."


class TooManyTeams(StateConflict):
    default_message = "More approved teams than the tournament allows."


class BracketUnavailable(StateConflict):
    default_message = "No bracket builder is available for this format."


class RegistrationClosed(StateConflict):
    default_message = "Registration is not open for this tournament."


class DuplicateRegistration(StateConflict):
    default_message = "This team already has an active registration."


class CapacityExceeded(StateConflict):
    default_message = "Tournament is already at capacity."


class InvalidRegistrationState(StateConflict):
    default_message = "Registration cannot be changed in its current state."


class AlreadyDecided(StateConflict):
    """Registration was already approved or rejected.

    A caller that re-sent a decision after a timeout should treat this as
    the outcome it asked for.
    """

    success_equivalent = True
    default_message = "Registration has already been decided."


class TournamentInProgress(StateConflict):
    default_message = "Tournament has started; teams must forfeit instead of withdrawing."


class TeamsNotResolved(StateConflict):
    default_message = "Both teams must be known first."


class InvalidMatchState(StateConflict):
    default_message = "Match is not in a state that allows this."


# -----------------------------------------------------------------------------
# Integrity
# -----------------------------------------------------------------------------


class IntegrityFailure(CommandRejected):
    default_message = "Data integrity check failed."


class WinnerMismatch(IntegrityFailure):
    default_message = "Winner is not one of the two teams in this match."


class BracketCorruption(IntegrityFailure):
    default_message = "Bracket is inconsistent: downstream match has no free slot."


# -----------------------------------------------------------------------------
# Transient
# -----------------------------------------------------------------------------


class TransientFailure(CommandRejected):
    retryable = True
    default_message = "Store is temporarily unavailable."


class StoreUnavailable(TransientFailure):
    pass


ERRORS_BY_CODE: dict[str, type[CommandRejected]] = {
    cls.__name__: cls
    for cls in (
        CommandRejected,
        ValidationError,
        TiedScoreNotAllowed,
        NotFound,
        StateConflict,
        InvalidTransition,
        AlreadyTerminal,
        ImmutableAfterPublish,
        DeletionNotAllowed,
        InsufficientTeams,
        TooManyTeams,
        BracketUnavailable,
        RegistrationClosed,
        DuplicateRegistration,
        CapacityExceeded,
        InvalidRegistrationState,
        AlreadyDecided,
        TournamentInProgress,
        TeamsNotResolved,
        InvalidMatchState,
        IntegrityFailure,
        WinnerMismatch,
        BracketCorruption,
        TransientFailure,
        StoreUnavailable,
    )
}


def error_from_code(code: Optional[str], message: str) -> Optional[CommandRejected]:
    """Rebuild a known rejection from its wire code."""
    cls = ERRORS_BY_CODE.get(code or "")
    return cls(message) if cls else None
