"""
Unit tests for CardRepository against an in-memory SQLite database.
"""

from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from memoria.db.models import Base, CardRecord
from memoria.errors import CardNotFound, PersistenceWriteError
from memoria.scheduling.engine import SchedulingEngine
from memoria.scheduling.models import CardState, Rating, ReviewSettings

USER = "learner-123"


class TestCards:
    def test_add_and_get_round_trip(self, repository, now):
        added = repository.add_card(USER, "deck-1", "Front", "Back", now=now, card_id="c1")

        stored = repository.get_card("c1", USER)

        assert stored == added
        assert stored.next_review_at.tzinfo is not None
        assert stored.is_new

    def test_generated_id(self, repository, now):
        card = repository.add_card(USER, "deck-1", "Front", now=now)

        assert len(card.card_id) == 36
        assert repository.get_card(card.card_id, USER) is not None

    def test_scoped_to_user(self, repository, now):
        repository.add_card(USER, "deck-1", "Front", now=now, card_id="c1")

        assert repository.get_card("c1", "someone-else") is None
        with pytest.raises(CardNotFound):
            repository.require_card("c1", "someone-else")

    def test_write_persists_scheduling_state(self, repository, now):
        card = repository.add_card(USER, "deck-1", "Front", now=now, card_id="c1")
        rated = SchedulingEngine().compute_next_state(card, Rating.HARD, now=now)

        repository.write_card(rated)

        assert repository.get_card("c1", USER) == rated

    def test_override_round_trip_and_clear(self, repository, now):
        card = repository.add_card(USER, "deck-1", "Front", now=now, card_id="c1")
        overridden = card.with_override(now + timedelta(days=9), "Needs more time")

        repository.write_card(overridden)
        stored = repository.get_card("c1", USER)

        assert stored.override.reason == "Needs more time"
        assert stored.override.previous_review_at == now
        assert stored.next_review_at == now + timedelta(days=9)

        repository.write_card(SchedulingEngine().compute_next_state(stored, Rating.GOOD, now=now))

        assert repository.get_card("c1", USER).override is None

    def test_write_unknown_card(self, repository, now):
        with pytest.raises(CardNotFound):
            repository.write_card(CardState.new("ghost", now))

    def test_write_failure_raises_persistence_error(self, repository, db_engine, now):
        card = repository.add_card(USER, "deck-1", "Front", now=now, card_id="c1")
        Base.metadata.drop_all(db_engine)

        with pytest.raises(PersistenceWriteError) as exc_info:
            repository.write_card(card)

        assert exc_info.value.retryable


class TestLookupByFront:
    def test_resolve_by_id_then_front(self, repository, now):
        repository.add_card(USER, "deck-1", "What is TCP?", now=now, card_id="c1")

        assert repository.resolve_card("c1", USER).card_id == "c1"
        assert repository.resolve_card("What is TCP?", USER).card_id == "c1"
        assert repository.resolve_card("What is UDP?", USER) is None

    def test_duplicate_fronts_resolve_to_oldest(self, repository, now):
        repository.add_card(USER, "deck-1", "Same", now=now, card_id="newer")
        repository.add_card(USER, "deck-1", "Same", now=now - timedelta(days=1), card_id="older")

        assert repository.find_card_by_front("Same", USER).card_id == "older"


class TestQueries:
    @pytest.fixture
    def deck(self, repository, now):
        repository.add_card(USER, "deck-1", "due-late", now=now - timedelta(hours=1), card_id="a")
        repository.add_card(USER, "deck-1", "due-early", now=now - timedelta(days=1), card_id="b")
        repository.add_card(USER, "deck-1", "future", now=now + timedelta(days=2), card_id="c")
        repository.add_card(USER, "deck-2", "other deck", now=now + timedelta(days=1), card_id="d")
        return repository

    def test_due_cards_earliest_first(self, deck, now):
        due = deck.find_due_cards("deck-1", now, user_id=USER)

        assert [c.card_id for c in due] == ["b", "a"]

    def test_due_includes_exact_now(self, deck, now):
        deck.add_card(USER, "deck-1", "exact", now=now, card_id="e")

        assert "e" in [c.card_id for c in deck.find_due_cards("deck-1", now, user_id=USER)]

    def test_deleted_cards_hidden(self, deck, db_engine, now):
        with Session(db_engine) as s:
            s.get(CardRecord, "b").deleted_at = now
            s.commit()

        assert [c.card_id for c in deck.find_due_cards("deck-1", now, user_id=USER)] == ["a"]
        assert deck.get_card("b", USER) is None
        with pytest.raises(CardNotFound):
            deck.write_card(CardState.new("b", now))

    def test_upcoming_across_decks(self, deck, now):
        upcoming = deck.find_upcoming(USER, now)

        assert [c.card_id for c in upcoming] == ["d", "c"]
        assert [c.card_id for c in deck.find_upcoming(USER, now, limit=1)] == ["d"]


class TestSettings:
    def test_defaults_when_absent(self, repository):
        assert repository.get_settings(USER) == ReviewSettings()

    def test_save_and_replace(self, repository):
        repository.save_settings(USER, ReviewSettings(good_days=4))
        repository.save_settings(
            USER, ReviewSettings(good_days=5, enable_max_interval=True, max_interval_days=14)
        )

        settings = repository.get_settings(USER)

        assert settings.good_days == 5
        assert settings.enable_max_interval
        assert settings.max_interval_days == 14
        assert repository.get_settings("someone-else") == ReviewSettings()


class TestReviewLog:
    def test_log_and_read_back(self, repository, now):
        repository.add_card(USER, "deck-1", "Front", now=now, card_id="c1")
        repository.log_review("c1", USER, Rating.GOOD, now)
        repository.log_review("c1", USER, 1, now + timedelta(minutes=1))

        events = repository.reviews_for_user(USER)

        assert [e.rating for e in events] == [Rating.GOOD, Rating.AGAIN]
        assert events[0].reviewed_at == now
        assert repository.reviews_for_user(USER, since=now + timedelta(seconds=1))[0].rating is Rating.AGAIN
