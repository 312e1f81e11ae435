"""Persistence layer: SQLAlchemy models, engine/session handling, card repository."""

from .database import get_engine, get_session_factory, init_db, reset_engine, session_scope
from .models import Base, CardRecord, CardReviewRecord, UserSettingsRecord
from .repository import CardRepository, ReviewEvent

__all__ = [
    "Base",
    "CardRecord",
    "CardReviewRecord",
    "UserSettingsRecord",
    "CardRepository",
    "ReviewEvent",
    "get_engine",
    "get_session_factory",
    "init_db",
    "reset_engine",
    "session_scope",
]
