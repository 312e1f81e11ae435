"""
Review statistics from the rating log.

- Daily activity over a trailing window (reviews and correct reviews)
- Current streak of consecutive study days
- Retention rate: share of ratings that were Good or Easy
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta

from memoria.db.repository import ReviewEvent
from memoria.scheduling.models import utc_now


@dataclass(frozen=True)
class DailyActivity:
    day: date
    reviews: int
    correct: int


@dataclass
class ReviewStats:
    total_reviews: int = 0
    correct_reviews: int = 0
    retention_rate: int = 0  # percent
    current_streak: int = 0
    reviews_today: int = 0
    daily: list[DailyActivity] = field(default_factory=list)


def current_streak(study_days: set[date], today: date) -> int:
    """
    Count consecutive study days ending today.

    A streak is still alive if the learner studied yesterday but not yet today.
    """
    check = today if today in study_days else today - timedelta(days=1)
    streak = 0
    while check in study_days:
        streak += 1
        check -= timedelta(days=1)
    return streak


def compute_review_stats(
    reviews: Iterable[ReviewEvent],
    today: date | None = None,
    window_days: int = 14,
) -> ReviewStats:
    """
    Summarize a user's review log. Days are UTC calendar days.

    Args:
        reviews: Logged ratings
        today: Last day of the window (today in UTC if None)
        window_days: Length of the daily activity window
    """
    today = today or utc_now().date()
    reviews = list(reviews)

    per_day: dict[date, list[ReviewEvent]] = {}
    for review in reviews:
        per_day.setdefault(review.reviewed_at.date(), []).append(review)

    daily = []
    for offset in range(window_days - 1, -1, -1):
        day = today - timedelta(days=offset)
        events = per_day.get(day, [])
        daily.append(
            DailyActivity(
                day=day,
                reviews=len(events),
                correct=sum(1 for e in events if e.rating.is_success),
            )
        )

    total = len(reviews)
    correct = sum(1 for r in reviews if r.rating.is_success)

    return ReviewStats(
        total_reviews=total,
        correct_reviews=correct,
        retention_rate=round(correct * 100 / total) if total else 0,
        current_streak=current_streak(set(per_day), today),
        reviews_today=len(per_day.get(today, [])),
        daily=daily,
    )
