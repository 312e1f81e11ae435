"""
Card Repository: persistence contract for the scheduling core.

Provides:
- Card lookup scoped to a user (by id, or by front text)
- Per-user review settings with defaults when absent
- Per-card state writes (each its own transaction)
- Due / full-deck / upcoming queries for sessions and listings
- Review log for statistics

Soft-deleted cards are invisible to every query.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from memoria.db.database import session_scope
from memoria.db.models import CardRecord, CardReviewRecord, UserSettingsRecord
from memoria.errors import CardNotFound, PersistenceWriteError
from memoria.scheduling.models import (
    CardState,
    Override,
    Rating,
    ReviewSettings,
    ensure_utc,
    utc_now,
)


@dataclass(frozen=True)
class ReviewEvent:
    """A logged rating."""

    card_id: str
    rating: Rating
    reviewed_at: datetime


def _to_state(record: CardRecord) -> CardState:
    override = None
    if record.override_reason is not None and record.override_previous_date is not None:
        override = Override(
            reason=record.override_reason,
            previous_review_at=ensure_utc(record.override_previous_date),
        )
    return CardState(
        card_id=record.id,
        deck_id=record.deck_id,
        front=record.front,
        back=record.back,
        ease_factor=record.ease_factor,
        interval_days=record.interval,
        repetitions=record.repetitions,
        last_rating=Rating(record.last_rating) if record.last_rating is not None else None,
        next_review_at=ensure_utc(record.next_review_date),
        override=override,
    )


class CardRepository:
    """SQLAlchemy-backed implementation of the card persistence contract."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        """
        Initialize the repository.

        Args:
            session_factory: Custom session factory (defaults to the configured database)
        """
        self._session_factory = session_factory

    def _scope(self):
        return session_scope(self._session_factory)

    @staticmethod
    def _visible(user_id: str | None = None):
        query = select(CardRecord).where(CardRecord.deleted_at.is_(None))
        if user_id is not None:
            query = query.where(CardRecord.user_id == user_id)
        return query

    # =========================================================================
    # Card Lookup
    # =========================================================================

    def get_card(self, card_id: str, user_id: str) -> CardState | None:
        """
        Get a card owned by a user.

        Returns:
            CardState, or None if no visible card matches
        """
        with self._scope() as session:
            record = session.scalars(
                self._visible(user_id).where(CardRecord.id == card_id)
            ).first()
            return _to_state(record) if record else None

    def require_card(self, card_id: str, user_id: str) -> CardState:
        """Like get_card, but raises CardNotFound instead of returning None."""
        card = self.get_card(card_id, user_id)
        if card is None:
            raise CardNotFound(card_id, user_id)
        return card

    def find_card_by_front(self, front: str, user_id: str) -> CardState | None:
        """Get the oldest visible card of a user whose front text matches exactly."""
        with self._scope() as session:
            record = session.scalars(
                self._visible(user_id)
                .where(CardRecord.front == front)
                .order_by(CardRecord.created_at, CardRecord.id)
            ).first()
            return _to_state(record) if record else None

    def resolve_card(self, identifier: str, user_id: str) -> CardState | None:
        """Resolve a test result's source card by id, falling back to front text."""
        return self.get_card(identifier, user_id) or self.find_card_by_front(identifier, user_id)

    # =========================================================================
    # Session Queries
    # =========================================================================

    def find_due_cards(
        self,
        deck_id: str,
        now: datetime | None = None,
        user_id: str | None = None,
    ) -> list[CardState]:
        """
        Get cards of a deck due at or before now, earliest first.

        Args:
            deck_id: Deck to query
            now: Reference time (current UTC time if None)
            user_id: Restrict to this user's cards
        """
        now = ensure_utc(now) if now is not None else utc_now()
        with self._scope() as session:
            records = session.scalars(
                self._visible(user_id)
                .where(CardRecord.deck_id == deck_id, CardRecord.next_review_date <= now)
                .order_by(CardRecord.next_review_date, CardRecord.id)
            ).all()
            return [_to_state(r) for r in records]

    def find_all_cards(self, deck_id: str, user_id: str | None = None) -> list[CardState]:
        """Get every visible card of a deck in creation order."""
        with self._scope() as session:
            records = session.scalars(
                self._visible(user_id)
                .where(CardRecord.deck_id == deck_id)
                .order_by(CardRecord.created_at, CardRecord.id)
            ).all()
            return [_to_state(r) for r in records]

    def find_upcoming(
        self,
        user_id: str,
        now: datetime | None = None,
        limit: int = 100,
    ) -> list[CardState]:
        """Get a user's cards scheduled after now, soonest first."""
        now = ensure_utc(now) if now is not None else utc_now()
        with self._scope() as session:
            records = session.scalars(
                self._visible(user_id)
                .where(CardRecord.next_review_date > now)
                .order_by(CardRecord.next_review_date, CardRecord.id)
                .limit(limit)
            ).all()
            return [_to_state(r) for r in records]

    # =========================================================================
    # Writes
    # =========================================================================

    def add_card(
        self,
        user_id: str,
        deck_id: str,
        front: str,
        back: str = "",
        now: datetime | None = None,
        card_id: str | None = None,
    ) -> CardState:
        """Create a never-studied card due immediately."""
        state = CardState.new(
            card_id or str(uuid4()), now, deck_id=deck_id, front=front, back=back
        )
        try:
            with self._scope() as session:
                session.add(
                    CardRecord(
                        id=state.card_id,
                        user_id=user_id,
                        deck_id=deck_id,
                        front=front,
                        back=back,
                        ease_factor=state.ease_factor,
                        interval=state.interval_days,
                        repetitions=state.repetitions,
                        next_review_date=state.next_review_at,
                        created_at=state.next_review_at,
                    )
                )
        except SQLAlchemyError as e:
            raise PersistenceWriteError(f"Could not create card: {e}") from e
        return state

    def write_card(self, state: CardState) -> None:
        """
        Persist a card's scheduling state.

        Raises:
            CardNotFound: no visible card with this id
            PersistenceWriteError: the database rejected the write
        """
        try:
            with self._scope() as session:
                record = session.scalars(
                    self._visible().where(CardRecord.id == state.card_id)
                ).first()
                if record is None:
                    raise CardNotFound(state.card_id)

                record.ease_factor = state.ease_factor
                record.interval = state.interval_days
                record.repetitions = state.repetitions
                record.last_rating = int(state.last_rating) if state.last_rating is not None else None
                record.next_review_date = ensure_utc(state.next_review_at)
                if state.override is None:
                    record.override_reason = None
                    record.override_previous_date = None
                else:
                    record.override_reason = state.override.reason
                    record.override_previous_date = ensure_utc(state.override.previous_review_at)
        except SQLAlchemyError as e:
            logger.error(f"Write failed for card {state.card_id}: {e}")
            raise PersistenceWriteError(f"Could not save card {state.card_id}: {e}") from e

        logger.debug(
            f"Saved card {state.card_id}: next_review={state.next_review_at.isoformat()}, "
            f"override={'yes' if state.override else 'no'}"
        )

    # =========================================================================
    # Settings
    # =========================================================================

    def get_settings(self, user_id: str) -> ReviewSettings:
        """Get a user's review settings, defaults for anything not set."""
        with self._scope() as session:
            record = session.get(UserSettingsRecord, user_id)
            if record is None:
                return ReviewSettings()
            return ReviewSettings.from_mapping(
                {
                    "again_interval_minutes": record.again_interval_minutes,
                    "hard_interval_days": record.hard_interval_days,
                    "good_interval_days": record.good_interval_days,
                    "easy_interval_days": record.easy_interval_days,
                    "enable_max_interval": record.enable_max_interval,
                    "max_interval_days": record.max_interval_days,
                }
            )

    def save_settings(self, user_id: str, settings: ReviewSettings) -> None:
        """Create or replace a user's review settings."""
        try:
            with self._scope() as session:
                session.merge(
                    UserSettingsRecord(
                        user_id=user_id,
                        again_interval_minutes=settings.again_minutes,
                        hard_interval_days=settings.hard_days,
                        good_interval_days=settings.good_days,
                        easy_interval_days=settings.easy_days,
                        enable_max_interval=settings.enable_max_interval,
                        max_interval_days=settings.max_interval_days,
                    )
                )
        except SQLAlchemyError as e:
            raise PersistenceWriteError(f"Could not save settings for {user_id}: {e}") from e

    # =========================================================================
    # Review Log
    # =========================================================================

    def log_review(
        self,
        card_id: str,
        user_id: str,
        rating: Rating | int,
        reviewed_at: datetime | None = None,
    ) -> None:
        """Record a rating event."""
        reviewed_at = ensure_utc(reviewed_at) if reviewed_at is not None else utc_now()
        try:
            with self._scope() as session:
                session.add(
                    CardReviewRecord(
                        card_id=card_id,
                        user_id=user_id,
                        rating=int(Rating.parse(rating)),
                        reviewed_at=reviewed_at,
                    )
                )
        except SQLAlchemyError as e:
            raise PersistenceWriteError(f"Could not log review for {card_id}: {e}") from e

    def reviews_for_user(self, user_id: str, since: datetime | None = None) -> list[ReviewEvent]:
        """Get a user's logged ratings, oldest first."""
        query = select(CardReviewRecord).where(CardReviewRecord.user_id == user_id)
        if since is not None:
            query = query.where(CardReviewRecord.reviewed_at >= ensure_utc(since))
        with self._scope() as session:
            records = session.scalars(
                query.order_by(CardReviewRecord.reviewed_at, CardReviewRecord.id)
            ).all()
            return [
                ReviewEvent(
                    card_id=r.card_id,
                    rating=Rating(r.rating),
                    reviewed_at=ensure_utc(r.reviewed_at),
                )
                for r in records
            ]
