"""
Review scheduling core.

Components:
- SchedulingEngine: SM-2 variant, (card, rating, settings) -> card'
- SessionQueue: FIFO session order with Again-requeue
- ReviewModeRouter: Study vs Practice traversal
- ResetOperation: return cards to never-studied
"""

from .engine import SchedulingEngine, describe_interval, next_ease_factor
from .models import CardState, Override, Rating, ReviewSettings
from .modes import PracticeSession, RatingOutcome, ReviewMode, ReviewModeRouter, StudySession
from .queue import QueueStatus, SessionQueue
from .reset import ResetOperation

__all__ = [
    # Data model
    "CardState",
    "Override",
    "Rating",
    "ReviewSettings",
    # Scheduling
    "SchedulingEngine",
    "describe_interval",
    "next_ease_factor",
    # Sessions
    "SessionQueue",
    "QueueStatus",
    "ReviewMode",
    "ReviewModeRouter",
    "StudySession",
    "PracticeSession",
    "RatingOutcome",
    # Maintenance
    "ResetOperation",
]
