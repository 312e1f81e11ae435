"""
Session Queue: ordering and requeue policy for one study pass.

The queue is strict FIFO. A card rated Again goes to the back of the
queue carrying its freshly computed state, so it is shown again before
the session ends; any other rating retires the card for this session.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator
from enum import Enum

from memoria.errors import QueueEmpty

from .models import CardState, Rating


class QueueStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class SessionQueue:
    """
    In-memory card queue for a single session.

    Not safe for concurrent use: one session, one consumer.
    """

    def __init__(self, cards: Iterable[CardState] = ()):
        self._queue: deque[CardState] = deque(cards)
        self._started = False
        self.reviewed = 0
        self.requeued = 0

    def __len__(self) -> int:
        return len(self._queue)

    def __iter__(self) -> Iterator[CardState]:
        return iter(tuple(self._queue))

    @property
    def status(self) -> QueueStatus:
        if not self._queue:
            return QueueStatus.COMPLETE
        if not self._started:
            return QueueStatus.PENDING
        return QueueStatus.IN_PROGRESS

    @property
    def is_complete(self) -> bool:
        return not self._queue

    @property
    def current(self) -> CardState | None:
        """The card at the front of the queue, without serving it."""
        return self._queue[0] if self._queue else None

    @property
    def remaining(self) -> int:
        return len(self._queue)

    @property
    def progress(self) -> float:
        """Fraction of rating events done versus events still queued."""
        total = self.reviewed + len(self._queue)
        return self.reviewed / total if total else 1.0

    def serve(self) -> CardState:
        """
        Return the front card and mark the session in progress.

        Raises:
            QueueEmpty: if the session is complete
        """
        if not self._queue:
            raise QueueEmpty("No cards left in this session")
        self._started = True
        return self._queue[0]

    def apply_rating(self, new_state: CardState, rating: Rating | int) -> bool:
        """
        Retire the front card, requeueing it at the back if rated Again.

        Args:
            new_state: The front card's state after the rating
            rating: The rating that produced new_state

        Returns:
            True if the card was requeued

        Raises:
            QueueEmpty: if the session is complete
            ValueError: if new_state is not the front card
        """
        rating = Rating.parse(rating)
        front = self.serve()
        if new_state.card_id != front.card_id:
            raise ValueError(
                f"Rated card {new_state.card_id} is not the current card {front.card_id}"
            )

        self._queue.popleft()
        self.reviewed += 1

        if rating == Rating.AGAIN:
            self._queue.append(new_state)
            self.requeued += 1
            return True
        return False
