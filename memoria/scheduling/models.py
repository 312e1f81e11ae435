"""
Scheduling data model.

Pure data structures with no I/O: the rating scale, the per-card
scheduling state with its optional override audit trail, and the
per-user interval settings.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any

from loguru import logger

from memoria.errors import InvalidRating

INITIAL_EASE = 2.5
MINIMUM_EASE = 1.3


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime. Naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# Rating
# =============================================================================


class Rating(IntEnum):
    """
    User rating for a review.

    The numeric codes are part of the external contract: the UI sends
    1-4 and downstream checks (repeat-Hard detection, success test)
    depend on the ordering.
    """

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @property
    def is_success(self) -> bool:
        """Good and Easy count as successful recall."""
        return self >= Rating.GOOD

    @classmethod
    def parse(cls, value: object) -> Rating:
        """
        Coerce an integer code into a Rating.

        Raises:
            InvalidRating: for anything other than the integers 1-4
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidRating(value)
        try:
            return cls(value)
        except ValueError:
            raise InvalidRating(value) from None


# =============================================================================
# Card State
# =============================================================================


@dataclass(frozen=True)
class Override:
    """Audit trail left by the AI override: why, and what the date was before."""

    reason: str
    previous_review_at: datetime


@dataclass(frozen=True)
class CardState:
    """
    Scheduling state of a single card.

    Instances are immutable; the engine, the override adapter and the
    reset operation all return replacements.
    """

    card_id: str
    front: str = ""
    back: str = ""
    deck_id: str | None = None
    ease_factor: float = INITIAL_EASE
    interval_days: int = 0
    repetitions: int = 0
    last_rating: Rating | None = None
    next_review_at: datetime = field(default_factory=utc_now)
    override: Override | None = None

    @classmethod
    def new(cls, card_id: str, now: datetime | None = None, **content: Any) -> CardState:
        """Create a never-studied card due immediately."""
        return cls(card_id=card_id, next_review_at=ensure_utc(now or utc_now()), **content)

    @property
    def is_new(self) -> bool:
        return self.repetitions == 0 and self.last_rating is None and self.interval_days == 0

    @property
    def is_overridden(self) -> bool:
        """True when next_review_at is the oracle's choice, not the engine's."""
        return self.override is not None

    def is_due(self, now: datetime | None = None) -> bool:
        return self.next_review_at <= ensure_utc(now or utc_now())

    def as_new(self, now: datetime | None = None) -> CardState:
        """Return this card with its scheduling state back at creation defaults."""
        return replace(
            self,
            ease_factor=INITIAL_EASE,
            interval_days=0,
            repetitions=0,
            last_rating=None,
            next_review_at=ensure_utc(now or utc_now()),
            override=None,
        )

    def with_override(self, new_review_at: datetime, reason: str) -> CardState:
        """Substitute an externally chosen due date, keeping the SRS fields."""
        return replace(
            self,
            next_review_at=ensure_utc(new_review_at),
            override=Override(reason=reason, previous_review_at=self.next_review_at),
        )


# =============================================================================
# Review Settings
# =============================================================================

# Column names used by the settings table, mapped to field names.
_SETTING_ALIASES = {
    "again_interval_minutes": "again_minutes",
    "hard_interval_days": "hard_days",
    "good_interval_days": "good_days",
    "easy_interval_days": "easy_days",
}


@dataclass(frozen=True)
class ReviewSettings:
    """Per-user interval settings read by the engine."""

    again_minutes: int = 1
    hard_days: int = 1
    good_days: int = 3
    easy_days: int = 7
    enable_max_interval: bool = False  # "exam mode": cap day intervals
    max_interval_days: int = 30

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> ReviewSettings:
        """
        Build settings from a loosely populated mapping.

        Absent keys, None values and non-positive intervals fall back to
        their defaults; a missing settings record is never an error.
        """
        if not data:
            return cls()

        normalized = {_SETTING_ALIASES.get(key, key): value for key, value in data.items()}
        defaults = cls()
        values: dict[str, Any] = {}

        for f in fields(cls):
            value = normalized.get(f.name)
            if value is None:
                continue
            if f.name == "enable_max_interval":
                values[f.name] = bool(value)
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                logger.warning(
                    f"Ignoring invalid setting {f.name}={value!r}, "
                    f"using default {getattr(defaults, f.name)}"
                )
                continue
            values[f.name] = value

        return cls(**values)

    def summary(self) -> str:
        """Human-readable summary handed to the oracle."""
        text = (
            f"Again: {self.again_minutes} minute(s), Hard: {self.hard_days} day(s), "
            f"Good: {self.good_days} day(s), Easy: {self.easy_days} day(s)"
        )
        if self.enable_max_interval:
            text += f", maximum interval: {self.max_interval_days} day(s)"
        return text
