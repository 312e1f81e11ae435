"""Exceptions raised by the scheduling core and its collaborators."""

from __future__ import annotations


class MemoriaError(Exception):
    """Base class for every error memoria raises on purpose."""


class InvalidRating(MemoriaError, ValueError):
    """A rating outside Again/Hard/Good/Easy (1-4)."""

    def __init__(self, rating: object):
        self.rating = rating
        super().__init__(f"Rating must be one of 1, 2, 3, 4 (got {rating!r})")


class CardNotFound(MemoriaError, LookupError):
    """No card with this identifier exists in the user's scope."""

    def __init__(self, card_id: str, user_id: str | None = None):
        self.card_id = card_id
        self.user_id = user_id
        scope = f" for user {user_id}" if user_id else ""
        super().__init__(f"Card not found: {card_id}{scope}")


class QueueEmpty(MemoriaError):
    """Rating was attempted on a session with no cards left."""


class OracleError(MemoriaError):
    """The reasoning oracle failed or returned an unusable suggestion."""


class PersistenceWriteError(MemoriaError):
    """A card write did not reach the database. Safe to retry."""

    retryable = True
