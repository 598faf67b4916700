"""
Unit tests for the content generation backends.
"""

import json

import httpx
import pytest
import pytest_asyncio
from httpx import Request, Response

from practice_core.content.generator import CandidateContent, ContentGenerationClient, LocalFallbackGenerator
from practice_core.core.errors import GenerationTimeout
from practice_core.core.tiers import DifficultyTier

ENDPOINT = "http://localhost:8099/generate"


@pytest.fixture
def sample_response():
    """Sample generation service response."""
    return {
        "text": "Ava buys 3 notebooks for 2 dollars each. How much does she spend?",
        "answer": "6",
        "explanation": "3 * 2 = 6",
        "formula_id": "multiplication_cost",
    }


@pytest_asyncio.fixture
async def client():
    """Generation client instance."""
    client = ContentGenerationClient(ENDPOINT, timeout_seconds=5.0)
    yield client
    await client.close()


class TestCandidateContent:
    """Tests for parsing backend responses."""

    def test_from_dict(self, sample_response):
        candidate = CandidateContent.from_response(sample_response, "AR", DifficultyTier.MEDIUM)

        assert candidate.text.startswith("Ava buys 3 notebooks")
        assert candidate.answer == "6"
        assert candidate.formula_id == "multiplication_cost"
        assert candidate.difficulty_tier == DifficultyTier.MEDIUM
        assert candidate.source == "remote"
        assert candidate.embedding is None

    def test_from_json_string(self, sample_response):
        candidate = CandidateContent.from_response(json.dumps(sample_response), "AR", DifficultyTier.EASY)
        assert candidate.answer == "6"

    def test_text_field_holding_json(self, sample_response):
        wrapped = {"text": json.dumps({"problem": "What is 7 times 8?", "answer": 56})}
        candidate = CandidateContent.from_response(wrapped, "MK", DifficultyTier.EASY)

        assert candidate.text == "What is 7 times 8?"
        assert candidate.answer == "56"

    def test_embedding_is_parsed(self):
        candidate = CandidateContent.from_response(
            {"text": "What is 7 times 8?", "embedding": [1, 0, 2]}, "MK", DifficultyTier.EASY
        )
        assert candidate.embedding == [1.0, 0.0, 2.0]

    @pytest.mark.parametrize("data", [{}, {"answer": "6"}, [1, 2, 3]])
    def test_missing_text_raises(self, data):
        with pytest.raises(ValueError):
            CandidateContent.from_response(data, "AR", DifficultyTier.EASY)


class TestContentGenerationClient:
    """Tests for ContentGenerationClient."""

    @pytest.mark.asyncio
    async def test_request_candidate_success(self, client, sample_response, monkeypatch):
        """Test a successful generation request."""
        sent = {}

        async def mock_post(url, **kwargs):
            sent.update(kwargs["json"])
            request = Request("POST", url)
            return Response(200, json=sample_response, request=request)

        monkeypatch.setattr(client.client, "post", mock_post)

        candidate = await client.request_candidate("AR", DifficultyTier.HARD, ["previous item"])

        assert candidate.answer == "6"
        assert candidate.topic == "AR"
        assert sent == {"topic": "AR", "difficulty": "hard", "exclusion_hints": ["previous item"]}

    @pytest.mark.asyncio
    async def test_timeout_becomes_generation_timeout(self, client, monkeypatch):
        """Test that a transport timeout surfaces as GenerationTimeout."""
        async def mock_post(url, **kwargs):
            raise httpx.TimeoutException("Timeout")

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(GenerationTimeout):
            await client.request_candidate("AR", DifficultyTier.EASY, [])

    @pytest.mark.asyncio
    async def test_server_error_raises_http_error(self, client, monkeypatch):
        """Test that a 5xx response propagates as an HTTP error."""
        async def mock_post(url, **kwargs):
            request = Request("POST", url)
            return Response(503, json={"detail": "overloaded"}, request=request)

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(httpx.HTTPStatusError):
            await client.request_candidate("AR", DifficultyTier.EASY, [])


class TestLocalFallbackGenerator:
    """Tests for the template generator."""

    def test_same_seed_same_sequence(self):
        a = LocalFallbackGenerator(seed=3)
        b = LocalFallbackGenerator(seed=3)

        assert [a.generate("AR").text for _ in range(5)] == [b.generate("AR").text for _ in range(5)]

    @pytest.mark.parametrize(
        "topic, formula_id",
        [("AR", "division_batches"), ("MK", "division_floor"), ("WK", "add_subtract")],
    )
    def test_topic_templates(self, topic, formula_id):
        candidate = LocalFallbackGenerator(seed=1).generate(topic, DifficultyTier.MEDIUM)

        assert candidate.formula_id == formula_id
        assert candidate.source == "local"
        assert candidate.topic == topic
        assert candidate.difficulty_tier == DifficultyTier.MEDIUM
        assert candidate.answer

    def test_division_answer_is_consistent(self):
        candidate = LocalFallbackGenerator(seed=9).generate("AR")
        total, per_batch = (int(n) for n in candidate.text.split() if n.isdigit())

        assert total // per_batch == int(candidate.answer)
        assert total % per_batch == 0

    @pytest.mark.asyncio
    async def test_request_candidate_matches_backend_protocol(self):
        candidate = await LocalFallbackGenerator(seed=2).request_candidate("MK", DifficultyTier.EASY, [])
        assert candidate.formula_id == "division_floor"
