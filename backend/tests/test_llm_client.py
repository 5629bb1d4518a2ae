"""Tests for the OpenAI wrapper: token estimate, cost, error conversion."""
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest
from openai import APIError, APITimeoutError

from services.llm_client import (
    CompletionServiceError,
    EmbeddingServiceError,
    LLMServiceError,
    OpenAIClient,
    calculate_cost,
    estimate_tokens,
)

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/embeddings")


@pytest.fixture
def client():
    return OpenAIClient(api_key="sk-test", embedding_model="text-embedding-3-small",
                        summary_model="gpt-4o-mini", dimensions=1536, timeout=5)


class TestEstimates:

    @pytest.mark.parametrize("text, tokens", [("", 0), ("abcd", 1), ("abcde", 2), ("x" * 400, 100)])
    def test_estimate_tokens(self, text, tokens):
        assert estimate_tokens(text) == tokens

    def test_cost_known_model(self):
        assert calculate_cost("gpt-4o-mini", 1_000_000, 1_000_000) == pytest.approx(0.75)

    def test_cost_unknown_model(self):
        assert calculate_cost("local-model", 5000, 5000) == 0.0


class TestErrorConversion:

    def test_hierarchy(self):
        assert issubclass(EmbeddingServiceError, LLMServiceError)
        assert issubclass(CompletionServiceError, LLMServiceError)

    async def test_embed_returns_vector(self, client):
        response = SimpleNamespace(
            data=[SimpleNamespace(embedding=[0.1, 0.2])],
            usage=SimpleNamespace(total_tokens=3),
        )
        client.client.embeddings.create = AsyncMock(return_value=response)
        assert await client.embed("flash code 74") == [0.1, 0.2]
        kwargs = client.client.embeddings.create.await_args.kwargs
        assert kwargs["dimensions"] == 1536

    async def test_embed_timeout(self, client):
        client.client.embeddings.create = AsyncMock(side_effect=APITimeoutError(REQUEST))
        with pytest.raises(EmbeddingServiceError):
            await client.embed("flash code 74")

    async def test_embed_api_error(self, client):
        client.client.embeddings.create = AsyncMock(
            side_effect=APIError("quota exceeded", REQUEST, body=None)
        )
        with pytest.raises(EmbeddingServiceError, match="quota exceeded"):
            await client.embed("flash code 74")

    async def test_complete_api_error(self, client):
        client.client.chat.completions.create = AsyncMock(
            side_effect=APIError("overloaded", REQUEST, body=None)
        )
        with pytest.raises(CompletionServiceError):
            await client.complete([{"role": "user", "content": "hi"}], 0.3, 200)

    async def test_complete_defaults_to_summary_model(self, client):
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="Short summary."))]
        )
        client.client.chat.completions.create = AsyncMock(return_value=response)
        assert await client.complete([{"role": "user", "content": "hi"}], 0.3, 200) == "Short summary."
        assert client.client.chat.completions.create.await_args.kwargs["model"] == "gpt-4o-mini"

    async def test_stream_chat_yields_deltas(self, client):
        def chunk(content):
            return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])

        async def stream():
            for c in (chunk("Check "), chunk(None), SimpleNamespace(choices=[]), chunk("the fuse.")):
                yield c

        client.client.chat.completions.create = AsyncMock(return_value=stream())
        deltas = [d async for d in client.stream_chat([], "gpt-4o-mini", 0.6, 100)]
        assert deltas == ["Check ", "the fuse."]
