"""
Review modes: Study and Practice traversal of a deck.

- Study: due cards only; every rating runs the engine, is persisted and
  logged, and the session queue applies the Again-requeue rule.
- Practice: the whole deck, optionally shuffled once at start; free
  forward/backward navigation with no effect on scheduling.

The mode is fixed when the session starts.
"""

from __future__ import annotations

import random
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger

from .engine import SchedulingEngine
from .models import CardState, Rating, ReviewSettings, ensure_utc, utc_now
from .queue import SessionQueue

if TYPE_CHECKING:
    from memoria.db.repository import CardRepository


class ReviewMode(str, Enum):
    STUDY = "study"
    PRACTICE = "practice"


@dataclass
class RatingOutcome:
    """What happened to a card after one rating in a study session."""

    card: CardState
    rating: Rating
    requeued: bool


class StudySession:
    """A schedule-affecting pass over the due cards of a deck."""

    mode = ReviewMode.STUDY

    def __init__(
        self,
        repository: CardRepository,
        engine: SchedulingEngine,
        user_id: str,
        cards: Iterable[CardState],
        settings: ReviewSettings | None = None,
    ):
        self.repository = repository
        self.engine = engine
        self.user_id = user_id
        self.settings = settings or ReviewSettings()
        self.queue = SessionQueue(cards)

    @property
    def current(self) -> CardState | None:
        return self.queue.current

    @property
    def is_complete(self) -> bool:
        return self.queue.is_complete

    def preview(self, now: datetime | None = None) -> dict[Rating, datetime]:
        """Due dates each rating would give the current card."""
        card = self.queue.serve()
        return self.engine.preview(card, self.settings, now)

    def rate(self, rating: Rating | int, now: datetime | None = None) -> RatingOutcome:
        """
        Rate the current card.

        The new state is written before the queue advances, so a failed
        write leaves the same card current and the rating can be retried.

        Raises:
            InvalidRating: rating not 1-4
            QueueEmpty: session already complete
            PersistenceWriteError: the card could not be saved
        """
        rating = Rating.parse(rating)
        now = ensure_utc(now) if now is not None else utc_now()
        card = self.queue.serve()

        new_state = self.engine.compute_next_state(card, rating, self.settings, now)
        self.repository.write_card(new_state)
        self.repository.log_review(card.card_id, self.user_id, rating, now)

        requeued = self.queue.apply_rating(new_state, rating)
        return RatingOutcome(card=new_state, rating=rating, requeued=requeued)


class PracticeSession:
    """A schedule-inert walk over every card in a deck."""

    mode = ReviewMode.PRACTICE

    def __init__(
        self,
        cards: Iterable[CardState],
        shuffle: bool = False,
        rng: random.Random | None = None,
    ):
        ordered = list(cards)
        if shuffle:
            (rng or random.Random()).shuffle(ordered)
        self.cards: tuple[CardState, ...] = tuple(ordered)
        self.shuffled = shuffle
        self.index = 0

    def __len__(self) -> int:
        return len(self.cards)

    @property
    def current(self) -> CardState | None:
        return self.cards[self.index] if self.cards else None

    @property
    def has_next(self) -> bool:
        return self.index < len(self.cards) - 1

    @property
    def has_previous(self) -> bool:
        return self.index > 0

    def next(self) -> CardState | None:
        """Advance one card; stays on the last card at the end."""
        if self.has_next:
            self.index += 1
        return self.current

    def previous(self) -> CardState | None:
        """Step back one card; stays on the first card at the start."""
        if self.has_previous:
            self.index -= 1
        return self.current


class ReviewModeRouter:
    """Selects the card set and session type for a review mode."""

    def __init__(
        self,
        repository: CardRepository,
        engine: SchedulingEngine | None = None,
        rng: random.Random | None = None,
    ):
        self.repository = repository
        self.engine = engine or SchedulingEngine()
        self.rng = rng

    def start(
        self,
        deck_id: str,
        user_id: str,
        mode: ReviewMode | str = ReviewMode.STUDY,
        shuffle: bool = False,
        now: datetime | None = None,
    ) -> StudySession | PracticeSession:
        """
        Start a session over a deck.

        Args:
            deck_id: Deck to review
            user_id: Requesting user; cards outside this scope are ignored
            mode: ReviewMode.STUDY or ReviewMode.PRACTICE
            shuffle: Randomly permute the practice deck once
            now: Reference time for the due-card query

        Raises:
            ValueError: unknown mode, or shuffle requested for a study session
        """
        mode = ReviewMode(mode)

        if mode is ReviewMode.PRACTICE:
            cards = self.repository.find_all_cards(deck_id, user_id=user_id)
            logger.info(f"Practice session: {len(cards)} cards from deck {deck_id}")
            return PracticeSession(cards, shuffle=shuffle, rng=self.rng)

        if shuffle:
            raise ValueError("Study sessions keep due order; shuffle applies to practice only")

        now = ensure_utc(now) if now is not None else utc_now()
        cards = self.repository.find_due_cards(deck_id, now, user_id=user_id)
        settings = self.repository.get_settings(user_id)
        logger.info(f"Study session: {len(cards)} due cards from deck {deck_id}")
        return StudySession(self.repository, self.engine, user_id, cards, settings)
