"""
SQLAlchemy models for persisted scheduling state.

Tables:
- cards: content plus SRS state and the override audit trail
- user_settings: per-user review intervals
- card_reviews: one row per rating in a study session
"""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return str(uuid4())


class CardRecord(Base):
    """A flashcard and its scheduling state."""

    __tablename__ = "cards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    deck_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    front: Mapped[str] = mapped_column(Text, nullable=False, default="")
    back: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # SRS state
    ease_factor: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    interval: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repetitions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_rating: Mapped[int | None] = mapped_column(Integer)
    next_review_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Override audit trail; both set or both null
    override_reason: Mapped[str | None] = mapped_column(Text)
    override_previous_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("idx_cards_deck_next_review", "deck_id", "next_review_date"),)

    def __repr__(self) -> str:
        return f"<CardRecord id={self.id} deck={self.deck_id} next_review={self.next_review_date}>"


class UserSettingsRecord(Base):
    """Review intervals chosen by a user. Null columns mean 'use the default'."""

    __tablename__ = "user_settings"

    user_id: Mapped[str] = mapped_column(Text, primary_key=True)
    again_interval_minutes: Mapped[int | None] = mapped_column(Integer)
    hard_interval_days: Mapped[int | None] = mapped_column(Integer)
    good_interval_days: Mapped[int | None] = mapped_column(Integer)
    easy_interval_days: Mapped[int | None] = mapped_column(Integer)
    enable_max_interval: Mapped[bool] = mapped_column(Boolean, default=False)
    max_interval_days: Mapped[int | None] = mapped_column(Integer)


class CardReviewRecord(Base):
    """A single rating event."""

    __tablename__ = "card_reviews"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    card_id: Mapped[str] = mapped_column(
        ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    reviewed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
