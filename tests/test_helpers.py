"""
Tests for shared helpers and the rejection taxonomy.
"""

from datetime import datetime

import pytest

from services.errors import (
    AlreadyDecided,
    CommandRejected,
    StateConflict,
    StoreUnavailable,
    TiedScoreNotAllowed,
    ValidationError,
    error_from_code,
)
from services.status_enums import TournamentStatus
from services.status_helpers import transition_target
from utils.helpers import enum_value, is_valid_slug, slugify, to_iso


class TestSlugs:
    @pytest.mark.parametrize(
        "name,slug",
        [
            ("The International 2025!", "the-international-2025"),
            ("  ESL   Pro League ", "esl-pro-league"),
            ("Ünïcode Cup", "n-code-cup"),
            ("!!!", "tournament"),
        ],
    )
    def test_slugify(self, name, slug):
        assert slugify(name) == slug

    def test_is_valid_slug(self):
        assert is_valid_slug("spring-cup-2")
        assert not is_valid_slug("Spring Cup")
        assert not is_valid_slug("-edge-")
        assert not is_valid_slug("")


class TestTimestamps:
    def test_naive_datetime_is_utc(self):
        assert to_iso(datetime(2025, 6, 1, 18, 0)) == "2025-06-01T18:00:00+00:00"

    def test_zulu_string(self):
        assert to_iso("2025-06-01T18:00:00Z") == "2025-06-01T18:00:00+00:00"

    def test_none_passes_through(self):
        assert to_iso(None) is None

    def test_garbage(self):
        with pytest.raises(ValueError):
            to_iso("tomorrow")


class TestEnums:
    def test_enum_value(self):
        assert enum_value(TournamentStatus.OPEN) == "OPEN"
        assert enum_value("OPEN") == "OPEN"
        assert enum_value(None) is None

    def test_transition_table(self):
        assert transition_target("open", "DRAFT") == "OPEN"
        assert transition_target("start", "OPEN") is None
        assert transition_target("cancel", "ONGOING") == "CANCELLED"
        assert transition_target("cancel", "COMPLETED") is None


class TestErrors:
    def test_hierarchy(self):
        assert issubclass(TiedScoreNotAllowed, ValidationError)
        assert issubclass(AlreadyDecided, StateConflict)
        assert issubclass(StoreUnavailable, CommandRejected)

    def test_flags(self):
        assert StoreUnavailable().retryable
        assert not ValidationError().retryable
        assert AlreadyDecided().success_equivalent
        assert not StateConflict().success_equivalent

    def test_code_round_trip(self):
        error = error_from_code(TiedScoreNotAllowed().code, "3-3 has no winner")

        assert isinstance(error, TiedScoreNotAllowed)
        assert str(error) == "3-3 has no winner"
        assert error_from_code("SomethingElse", "x") is None
        assert error_from_code(None, "x") is None

    def test_default_message(self):
        assert str(ValidationError()) == "Invalid input."
