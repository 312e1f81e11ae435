"""
Reasoning oracle client for AI due-date overrides.

Asks a Gemini model to pick a new absolute review date for a card after a
graded test answer, and to explain the choice in the learner's language.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

import httpx
from loguru import logger

from memoria.config import Settings
from memoria.errors import OracleError
from memoria.scheduling.models import ensure_utc, utc_now

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_BARE_JSON = re.compile(r"\{.*\}", re.DOTALL)


@dataclass
class OracleRequest:
    """What the oracle is told about one card."""

    card_content: str
    current_due_date: datetime
    correct: bool
    user_settings_summary: str
    target_language: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "card_content": self.card_content,
            "current_due_date": ensure_utc(self.current_due_date).isoformat(),
            "correct": self.correct,
            "user_settings_summary": self.user_settings_summary,
            "target_language": self.target_language,
        }

    def to_prompt(self, now: datetime | None = None) -> str:
        now = ensure_utc(now) if now is not None else utc_now()
        outcome = "CORRECTLY" if self.correct else "INCORRECTLY"
        return f"""You are a tutor scheduling spaced-repetition flashcards. A learner has just
answered a test question generated from one of their cards. Decide the card's
new review date.

Context:
- Card: "{self.card_content}"
- Current review date: {ensure_utc(self.current_due_date).isoformat()}
- Current time (UTC): {now.isoformat()}
- The learner answered the question {outcome}.
- Learner's interval settings: {self.user_settings_summary}

Rules:
1. If the answer was INCORRECT, move the review EARLIER so the card is seen soon,
   on the scale of the learner's Again/Hard intervals.
2. If the answer was CORRECT, move the review LATER, further than the current
   review date when the card already looks mastered.
3. Reply with ONLY a JSON object with two keys: "new_review_date" (absolute UTC
   timestamp, format YYYY-MM-DDTHH:mm:ss.sssZ) and "reason" (one short sentence
   in {self.target_language} explaining the change).

Example:
{{"new_review_date": "2025-10-16T12:00:00.000Z", "reason": "Moved earlier after a wrong test answer."}}
"""


@dataclass(frozen=True)
class OracleSuggestion:
    """The oracle's chosen due date and its explanation."""

    new_review_at: datetime
    reason: str


class Oracle(Protocol):
    async def suggest(self, request: OracleRequest) -> OracleSuggestion: ...


def parse_suggestion(text: str) -> OracleSuggestion:
    """
    Parse the oracle's reply.

    Accepts a bare JSON object or one wrapped in a ```json fence. The date
    must be an absolute ISO-8601 timestamp; it is normalised to UTC.

    Raises:
        OracleError: if the reply is not usable
    """
    match = _FENCED_JSON.search(text) or _BARE_JSON.search(text)
    if match is None:
        raise OracleError(f"Oracle reply contains no JSON object: {text[:120]!r}")

    raw = match.group(1) if match.re is _FENCED_JSON else match.group(0)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise OracleError(f"Oracle reply is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise OracleError("Oracle reply is not a JSON object")

    date_text = data.get("new_review_date")
    reason = data.get("reason")
    if not isinstance(date_text, str) or not date_text.strip():
        raise OracleError("Oracle reply is missing 'new_review_date'")
    if not isinstance(reason, str) or not reason.strip():
        raise OracleError("Oracle reply is missing 'reason'")

    try:
        new_review_at = datetime.fromisoformat(date_text.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise OracleError(f"Oracle date is not ISO-8601: {date_text!r}") from e
    if new_review_at.tzinfo is None:
        raise OracleError(f"Oracle date has no timezone: {date_text!r}")

    return OracleSuggestion(new_review_at=ensure_utc(new_review_at), reason=reason.strip())


class GeminiOracle:
    """HTTP client for the Gemini generateContent API."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        api_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_ms: int = 30000,
        retry_attempts: int = 3,
        backoff_seconds: float = 1.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize Gemini oracle.

        Args:
            api_key: Gemini API key
            model: Model name
            api_url: Base URL for the REST API
            timeout_ms: Request timeout in milliseconds
            retry_attempts: Number of attempts on retryable failures
            backoff_seconds: First backoff delay; doubles on each retry
            client: Preconfigured client (tests inject a MockTransport)
        """
        self.api_key = api_key
        self.model = model
        self.api_url = api_url.rstrip("/")
        self.retry_attempts = max(1, retry_attempts)
        self.backoff_seconds = backoff_seconds
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_ms / 1000.0),
            follow_redirects=True,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> GeminiOracle:
        if not settings.gemini_api_key:
            raise OracleError("GEMINI_API_KEY is not configured")
        return cls(
            api_key=settings.gemini_api_key,
            model=settings.ai_model,
            api_url=settings.gemini_api_url,
            timeout_ms=settings.oracle_timeout_ms,
            retry_attempts=settings.oracle_retry_attempts,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> GeminiOracle:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/models/{self.model}:generateContent"

    async def suggest(self, request: OracleRequest) -> OracleSuggestion:
        """
        Ask the model for a new review date.

        Raises:
            OracleError: on client errors, exhausted retries, or an unusable reply
        """
        payload = {
            "contents": [{"role": "user", "parts": [{"text": request.to_prompt()}]}],
            "generationConfig": {"responseMimeType": "application/json", "temperature": 0.2},
        }
        data = await self._post(payload)
        return parse_suggestion(self._extract_text(data))

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        last_error: Exception | None = None

        for attempt in range(self.retry_attempts):
            try:
                response = await self.client.post(
                    self.endpoint,
                    json=payload,
                    headers={"x-goog-api-key": self.api_key},
                )
                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException as e:
                last_error = e
                logger.warning(
                    f"Oracle timeout on attempt {attempt + 1}/{self.retry_attempts}"
                )

            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code < 500:
                    # Don't retry on 4xx client errors
                    logger.error(f"Oracle client error: {e.response.status_code}")
                    raise OracleError(
                        f"Oracle rejected the request ({e.response.status_code})"
                    ) from e
                logger.warning(
                    f"Oracle server error {e.response.status_code} on attempt "
                    f"{attempt + 1}/{self.retry_attempts}"
                )

            except httpx.RequestError as e:
                last_error = e
                logger.warning(
                    f"Oracle request error on attempt {attempt + 1}/{self.retry_attempts}: {e}"
                )

            except ValueError as e:
                raise OracleError(f"Oracle returned a non-JSON body: {e}") from e

            if attempt < self.retry_attempts - 1:
                await asyncio.sleep(self.backoff_seconds * 2**attempt)

        raise OracleError(
            f"Oracle unavailable after {self.retry_attempts} attempts: {last_error}"
        ) from last_error

    @staticmethod
    def _extract_text(data: dict[str, Any]) -> str:
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise OracleError("Oracle response has no candidate content") from e
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
        if not text.strip():
            raise OracleError("Oracle response is empty")
        return text
