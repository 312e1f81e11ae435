"""
AI Override Adapter: reschedule cards from graded test results.

For every answered test question the adapter finds the card the question
came from, asks the oracle for a new due date, and writes that date with
an audit trail (reason + previous date). Ease, interval and repetitions
are left alone, so the next engine-computed rating picks up from the
card's SRS state and clears the override.

Each card is an independent unit of work. Under FailurePolicy.ISOLATE any
failure (oracle, lookup or write) is logged and reported, and the rest of
the batch still completes. Results are grouped by the card they resolve
to: different cards are processed concurrently, results for the same card
one after another, so every override records the date it replaced.

The repository is synchronous. Its calls are short single-row transactions
and run on the event loop thread; only the oracle call is awaited, which is
where concurrent cards interleave.

FailurePolicy.FAIL_FAST reproduces the older behaviour: cards are processed
one after another and the first failure aborts the batch.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from loguru import logger

from memoria.scheduling.models import ReviewSettings

from .oracle import Oracle, OracleRequest

if TYPE_CHECKING:
    from memoria.db.repository import CardRepository


class FailurePolicy(str, Enum):
    ISOLATE = "isolate"
    FAIL_FAST = "fail_fast"


@dataclass(frozen=True)
class GradedResult:
    """One graded test question and the card it was generated from."""

    question: str
    user_answer: str | None
    correct_answer: str
    source_card: str  # card id, or the card's front text

    @property
    def answered(self) -> bool:
        return bool(self.user_answer)

    @property
    def is_correct(self) -> bool:
        return self.user_answer == self.correct_answer

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GradedResult:
        """Parse a result in either camelCase (API) or snake_case form."""
        source = (
            data.get("source_card")
            or data.get("sourceCardIdentifier")
            or data.get("sourceCardId")
            or data.get("sourceCardFront")
            or ""
        )
        return cls(
            question=data.get("question", ""),
            user_answer=data.get("user_answer", data.get("userAnswer")),
            correct_answer=data.get("correct_answer", data.get("correctAnswer", "")),
            source_card=source,
        )


@dataclass
class OverrideReport:
    """Outcome of one batch."""

    updated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)  # (source_card, error)
    unanswered: int = 0

    @property
    def ok(self) -> bool:
        return not self.failed


class AIOverrideAdapter:
    """Applies oracle-chosen due dates to the cards behind a graded test."""

    def __init__(
        self,
        repository: CardRepository,
        oracle: Oracle,
        policy: FailurePolicy | str = FailurePolicy.ISOLATE,
    ):
        self.repository = repository
        self.oracle = oracle
        self.policy = FailurePolicy(policy)

    async def process(
        self,
        results: Iterable[GradedResult],
        user_id: str,
        language: str = "English",
    ) -> OverrideReport:
        """
        Reschedule the cards behind a graded test.

        Args:
            results: Graded questions; unanswered ones are ignored
            user_id: Requesting user; cards are resolved in this scope only
            language: Language of the oracle's reason text

        Returns:
            OverrideReport listing updated, skipped and failed cards

        Raises:
            Exception: under FAIL_FAST, the first oracle, lookup or write failure
        """
        results = list(results)
        answered = [r for r in results if r.answered]
        report = OverrideReport(unanswered=len(results) - len(answered))
        settings = self.repository.get_settings(user_id)

        if self.policy is FailurePolicy.FAIL_FAST:
            for result in answered:
                try:
                    await self._process_one(result, user_id, settings, language, report)
                except Exception:
                    logger.error(
                        f"Override batch aborted at {result.source_card!r} "
                        f"after {len(report.updated)} update(s)"
                    )
                    raise
        else:
            groups = self._group_by_card(answered, user_id, report)
            await asyncio.gather(
                *(
                    self._process_card(group, user_id, settings, language, report)
                    for group in groups.values()
                )
            )

        logger.info(
            f"Override batch for {user_id}: {len(report.updated)} updated, "
            f"{len(report.skipped)} skipped, {len(report.failed)} failed, "
            f"{report.unanswered} unanswered"
        )
        return report

    def _group_by_card(
        self,
        results: list[GradedResult],
        user_id: str,
        report: OverrideReport,
    ) -> dict[str, list[GradedResult]]:
        """Bucket results by the card they resolve to, keeping batch order."""
        groups: dict[str, list[GradedResult]] = {}
        for result in results:
            try:
                card = self.repository.resolve_card(result.source_card, user_id)
            except Exception as e:
                logger.warning(f"Lookup failed for {result.source_card!r}: {e}")
                report.failed.append((result.source_card, str(e)))
                continue
            if card is None:
                logger.debug(f"No card for test result {result.source_card!r}, skipping")
                report.skipped.append(result.source_card)
                continue
            groups.setdefault(card.card_id, []).append(result)
        return groups

    async def _process_card(
        self,
        results: list[GradedResult],
        user_id: str,
        settings: ReviewSettings,
        language: str,
        report: OverrideReport,
    ) -> None:
        # Results for one card run in order so each override sees the previous one.
        for result in results:
            try:
                await self._process_one(result, user_id, settings, language, report)
            except Exception as e:  # Intentionally broad - one card never stops the batch
                logger.warning(f"Override failed for {result.source_card!r}: {e}")
                report.failed.append((result.source_card, str(e)))

    async def _process_one(
        self,
        result: GradedResult,
        user_id: str,
        settings: ReviewSettings,
        language: str,
        report: OverrideReport,
    ) -> None:
        card = self.repository.resolve_card(result.source_card, user_id)
        if card is None:
            logger.debug(f"No card for test result {result.source_card!r}, skipping")
            report.skipped.append(result.source_card)
            return

        request = OracleRequest(
            card_content=card.front,
            current_due_date=card.next_review_at,
            correct=result.is_correct,
            user_settings_summary=settings.summary(),
            target_language=language,
        )
        suggestion = await self.oracle.suggest(request)

        updated = card.with_override(suggestion.new_review_at, suggestion.reason)
        self.repository.write_card(updated)
        report.updated.append(card.card_id)

        logger.debug(
            f"Override {card.card_id}: {card.next_review_at.isoformat()} -> "
            f"{updated.next_review_at.isoformat()} ({suggestion.reason})"
        )
