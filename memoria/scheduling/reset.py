"""Bulk reset of cards to their never-studied state."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

from loguru import logger

from .models import ensure_utc, utc_now

if TYPE_CHECKING:
    from memoria.db.repository import CardRepository


class ResetOperation:
    """
    Returns cards to creation defaults and clears any AI override.

    Card identity is kept; only scheduling state changes. Resetting a
    card that is already new is harmless.
    """

    def __init__(self, repository: CardRepository):
        self.repository = repository

    def reset(
        self,
        card_ids: Iterable[str],
        user_id: str,
        now: datetime | None = None,
    ) -> list[str]:
        """
        Reset cards owned by a user.

        Args:
            card_ids: Cards to reset; ids outside the user's scope are skipped
            user_id: Requesting user
            now: New due time (current UTC time if None)

        Returns:
            Ids of the cards actually reset

        Raises:
            ValueError: if no card ids were given
        """
        ids = list(dict.fromkeys(card_ids))
        if not ids:
            raise ValueError("No card IDs provided")

        now = ensure_utc(now) if now is not None else utc_now()
        reset_ids: list[str] = []

        for card_id in ids:
            card = self.repository.get_card(card_id, user_id)
            if card is None:
                logger.debug(f"Reset skipped unknown card {card_id} for user {user_id}")
                continue
            self.repository.write_card(card.as_new(now))
            reset_ids.append(card_id)

        logger.info(f"Reset {len(reset_ids)}/{len(ids)} cards for user {user_id}")
        return reset_ids
