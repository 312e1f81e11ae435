"""
Unit tests for the Gemini oracle client and reply parsing.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import HTTPStatusError, Request, Response, TimeoutException

from memoria.config import Settings
from memoria.errors import OracleError
from memoria.override.oracle import (
    GeminiOracle,
    OracleRequest,
    parse_suggestion,
)


def gemini_body(text):
    """Wrap reply text the way generateContent returns it."""
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


REPLY = json.dumps(
    {"new_review_date": "2025-10-16T09:30:00.000Z", "reason": "Moved earlier after a miss."}
)


@pytest.fixture
def sample_request(now):
    return OracleRequest(
        card_content="What is the OSI model?",
        current_due_date=now + timedelta(days=10),
        correct=False,
        user_settings_summary="Again: 1 minute(s), Hard: 1 day(s), Good: 3 day(s), Easy: 7 day(s)",
        target_language="Dutch",
    )


@pytest_asyncio.fixture
async def oracle():
    oracle = GeminiOracle(api_key="test-key", retry_attempts=3, backoff_seconds=0)
    yield oracle
    await oracle.close()


class TestOracleRequest:
    def test_to_dict(self, sample_request):
        data = sample_request.to_dict()

        assert data["card_content"] == "What is the OSI model?"
        assert data["current_due_date"] == "2025-10-25T12:00:00+00:00"
        assert data["correct"] is False
        assert data["target_language"] == "Dutch"

    def test_prompt_carries_context(self, sample_request, now):
        prompt = sample_request.to_prompt(now)

        assert "What is the OSI model?" in prompt
        assert "INCORRECTLY" in prompt
        assert "2025-10-25T12:00:00+00:00" in prompt
        assert now.isoformat() in prompt
        assert "in Dutch" in prompt
        assert "new_review_date" in prompt

    def test_prompt_for_correct_answer(self, sample_request, now):
        sample_request.correct = True

        assert "answered the question CORRECTLY" in sample_request.to_prompt(now)


class TestParseSuggestion:
    def test_bare_json(self):
        suggestion = parse_suggestion(REPLY)

        assert suggestion.new_review_at == datetime(2025, 10, 16, 9, 30, tzinfo=timezone.utc)
        assert suggestion.reason == "Moved earlier after a miss."

    def test_fenced_json(self):
        suggestion = parse_suggestion(f"Here you go:\n```json\n{REPLY}\n```")

        assert suggestion.reason == "Moved earlier after a miss."

    def test_offset_normalised_to_utc(self):
        text = json.dumps({"new_review_date": "2025-10-16T11:30:00+02:00", "reason": "Later."})

        suggestion = parse_suggestion(text)

        assert suggestion.new_review_at == datetime(2025, 10, 16, 9, 30, tzinfo=timezone.utc)
        assert suggestion.new_review_at.utcoffset() == timedelta(0)

    @pytest.mark.parametrize(
        "text",
        [
            "no json here",
            "{not json}",
            json.dumps({"reason": "missing date"}),
            json.dumps({"new_review_date": "2025-10-16T09:30:00Z"}),
            json.dumps({"new_review_date": "next tuesday", "reason": "x"}),
            json.dumps({"new_review_date": "2025-10-16T09:30:00", "reason": "naive"}),
            json.dumps({"new_review_date": "2025-10-16T09:30:00Z", "reason": "  "}),
        ],
    )
    def test_unusable_replies(self, text):
        with pytest.raises(OracleError):
            parse_suggestion(text)


class TestGeminiOracle:
    def test_from_settings_requires_key(self):
        with pytest.raises(OracleError):
            GeminiOracle.from_settings(Settings(gemini_api_key=None))

    def test_endpoint(self):
        oracle = GeminiOracle(api_key="k", model="gemini-test", api_url="https://example.test/v1/")

        assert oracle.endpoint == "https://example.test/v1/models/gemini-test:generateContent"

    @pytest.mark.asyncio
    async def test_suggest_success(self, oracle, sample_request, monkeypatch):
        captured = {}

        async def mock_post(url, **kwargs):
            captured["url"] = url
            captured["headers"] = kwargs["headers"]
            captured["json"] = kwargs["json"]
            return Response(200, json=gemini_body(REPLY), request=Request("POST", url))

        monkeypatch.setattr(oracle.client, "post", mock_post)

        suggestion = await oracle.suggest(sample_request)

        assert suggestion.reason == "Moved earlier after a miss."
        assert captured["url"].endswith(":generateContent")
        assert captured["headers"]["x-goog-api-key"] == "test-key"
        prompt = captured["json"]["contents"][0]["parts"][0]["text"]
        assert "What is the OSI model?" in prompt

    @pytest.mark.asyncio
    async def test_timeout_retry(self, oracle, sample_request, monkeypatch):
        call_count = 0

        async def mock_post(url, **kwargs):
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise TimeoutException("Timeout")
            return Response(200, json=gemini_body(REPLY), request=Request("POST", url))

        monkeypatch.setattr(oracle.client, "post", mock_post)

        suggestion = await oracle.suggest(sample_request)

        assert call_count == 2
        assert suggestion.reason == "Moved earlier after a miss."

    @pytest.mark.asyncio
    async def test_server_error_retry(self, oracle, sample_request, monkeypatch):
        call_count = 0

        async def mock_post(url, **kwargs):
            nonlocal call_count
            call_count += 1
            request = Request("POST", url)
            if call_count < 3:
                return Response(503, json={"error": "overloaded"}, request=request)
            return Response(200, json=gemini_body(REPLY), request=request)

        monkeypatch.setattr(oracle.client, "post", mock_post)

        await oracle.suggest(sample_request)

        assert call_count == 3

    @pytest.mark.asyncio
    async def test_client_error_no_retry(self, oracle, sample_request, monkeypatch):
        call_count = 0

        async def mock_post(url, **kwargs):
            nonlocal call_count
            call_count += 1
            response = Response(400, json={"error": "Bad request"})
            raise HTTPStatusError("Client error", request=Request("POST", url), response=response)

        monkeypatch.setattr(oracle.client, "post", mock_post)

        with pytest.raises(OracleError):
            await oracle.suggest(sample_request)

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_all_retries_exhausted(self, oracle, sample_request, monkeypatch):
        call_count = 0

        async def mock_post(url, **kwargs):
            nonlocal call_count
            call_count += 1
            raise TimeoutException("Timeout")

        monkeypatch.setattr(oracle.client, "post", mock_post)

        with pytest.raises(OracleError, match="after 3 attempts"):
            await oracle.suggest(sample_request)

        assert call_count == 3

    @pytest.mark.asyncio
    async def test_empty_candidates(self, oracle, sample_request, monkeypatch):
        async def mock_post(url, **kwargs):
            return Response(200, json={"candidates": []}, request=Request("POST", url))

        monkeypatch.setattr(oracle.client, "post", mock_post)

        with pytest.raises(OracleError):
            await oracle.suggest(sample_request)

    @pytest.mark.asyncio
    async def test_unparseable_reply(self, oracle, sample_request, monkeypatch):
        async def mock_post(url, **kwargs):
            return Response(200, json=gemini_body("I cannot help"), request=Request("POST", url))

        monkeypatch.setattr(oracle.client, "post", mock_post)

        with pytest.raises(OracleError):
            await oracle.suggest(sample_request)
