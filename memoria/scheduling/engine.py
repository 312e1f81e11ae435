"""
SM-2 Variant Scheduling Engine.

Implements:
- Rating-driven interval computation (minutes for Again, days otherwise)
- Accelerated shrink for consecutive Hard ratings
- Ease factor update applied to every rating
- Optional interval caps ("exam mode")

Rating Scale:
1 - Again: forgotten, show again in a few minutes
2 - Hard:  recalled with serious difficulty
3 - Good:  recalled correctly
4 - Easy:  recalled effortlessly

Unlike textbook SM-2, the ease factor is also updated on Again and Hard,
so every lapse makes the card's mature intervals grow more slowly.
"""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime, timedelta

from loguru import logger

from .models import (
    MINIMUM_EASE,
    CardState,
    Rating,
    ReviewSettings,
    ensure_utc,
    utc_now,
)

ABSOLUTE_MAX_INTERVAL_DAYS = 3650  # ten years
HARD_REPEAT_FACTOR = 0.5


def next_ease_factor(ease_factor: float, rating: Rating) -> float:
    """
    Apply the SM-2 ease update for a rating.

    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), floored at 1.3 and
    kept to two decimals.
    """
    q = int(rating)
    delta = 0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)
    return max(MINIMUM_EASE, round(ease_factor + delta, 2))


def describe_interval(delta: timedelta) -> str:
    """Short label for a scheduling delta, e.g. '10m', '5h', '3d'."""
    minutes = max(0, round(delta.total_seconds() / 60))
    if minutes < 60:
        return f"{minutes}m"
    if minutes < 24 * 60:
        return f"{minutes // 60}h"
    return f"{minutes // (24 * 60)}d"


class SchedulingEngine:
    """
    Computes the next scheduling state of a card from a rating.

    The engine is pure: it holds no per-card state, performs no I/O and
    never mutates its input. Each call recomputes the interval from the
    previous state rather than adding to it.
    """

    def __init__(self, max_interval_days: int = ABSOLUTE_MAX_INTERVAL_DAYS):
        """
        Initialize the engine.

        Args:
            max_interval_days: Hard ceiling on any day interval
        """
        self.max_interval_days = max_interval_days

    def compute_next_state(
        self,
        card: CardState,
        rating: Rating | int,
        settings: ReviewSettings | None = None,
        now: datetime | None = None,
    ) -> CardState:
        """
        Calculate the card's state after a rating.

        Args:
            card: Current state of the card
            rating: 1-4 (Again, Hard, Good, Easy)
            settings: User interval settings (defaults if None)
            now: Reference time (current UTC time if None)

        Returns:
            Replacement CardState with any prior override cleared

        Raises:
            InvalidRating: if rating is not 1-4; nothing is computed
        """
        rating = Rating.parse(rating)
        settings = settings or ReviewSettings()
        now = ensure_utc(now) if now is not None else utc_now()

        repetitions = card.repetitions
        interval = card.interval_days

        if rating == Rating.AGAIN:
            repetitions = 0
            interval = 0
            next_review_at = now + timedelta(minutes=settings.again_minutes)
        else:
            if rating == Rating.HARD:
                repetitions = 0
                if card.last_rating == Rating.HARD:
                    interval = max(1, math.ceil(interval * HARD_REPEAT_FACTOR))
                else:
                    interval = settings.hard_days
            else:
                repetitions += 1
                if repetitions == 1:
                    interval = settings.good_days
                elif repetitions == 2:
                    interval = settings.easy_days
                else:
                    # Ease has two decimals; rounding first keeps float noise
                    # (5 * 2.2 == 11.000000000000002) out of the ceiling.
                    interval = math.ceil(round(interval * card.ease_factor, 4))

            interval = self._cap_interval(interval, settings)
            next_review_at = now + timedelta(days=interval)

        new_state = replace(
            card,
            ease_factor=next_ease_factor(card.ease_factor, rating),
            interval_days=interval,
            repetitions=repetitions,
            last_rating=rating,
            next_review_at=next_review_at,
            override=None,
        )

        logger.debug(
            f"Scheduled {card.card_id}: rating={rating.label}, interval={interval}d, "
            f"ease={new_state.ease_factor}, next_review={next_review_at.isoformat()}"
        )
        return new_state

    def preview(
        self,
        card: CardState,
        settings: ReviewSettings | None = None,
        now: datetime | None = None,
    ) -> dict[Rating, datetime]:
        """
        Get the due date each rating would produce, for button labels.

        Returns:
            Mapping of Rating to the resulting next_review_at
        """
        now = ensure_utc(now) if now is not None else utc_now()
        return {
            rating: self.compute_next_state(card, rating, settings, now).next_review_at
            for rating in Rating
        }

    def _cap_interval(self, interval: int, settings: ReviewSettings) -> int:
        interval = min(interval, self.max_interval_days)
        if settings.enable_max_interval:
            interval = min(interval, settings.max_interval_days)
        return interval
