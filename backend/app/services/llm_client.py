"""
OpenAI client for the manual assistant: embeddings, completions, streaming.

Single place that talks to the OpenAI API. Callers get plain strings and
float vectors back; SDK errors are converted to EmbeddingServiceError /
CompletionServiceError so the retrieval core never sees openai exceptions.
"""
from __future__ import annotations

import logging
import math
from typing import AsyncIterator, Optional

from openai import APIError, APITimeoutError, AsyncOpenAI

from config import settings

logger = logging.getLogger("manualchat.llm")

# USD per 1M tokens (input, output)
MODEL_COSTS: dict[str, tuple[float, float]] = {
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o": (2.50, 10.00),
    "text-embedding-3-small": (0.02, 0.0),
}


class LLMServiceError(Exception):
    """Base exception for OpenAI-backed operations."""
    pass


class EmbeddingServiceError(LLMServiceError):
    """Query embedding could not be generated."""
    pass


class CompletionServiceError(LLMServiceError):
    """Chat completion (plain or streaming) failed."""
    pass


def estimate_tokens(text: str) -> int:
    """Rough token count: 1 token ≈ 4 characters, rounded up.

    Not a real tokenizer. Dense tables and part numbers tokenize worse
    than prose, so budgets built on this are approximate.
    """
    return math.ceil(len(text) / 4)


def calculate_cost(model: str, input_tokens: int, output_tokens: int = 0) -> float:
    """Estimated USD cost of a request; unknown models cost 0."""
    input_price, output_price = MODEL_COSTS.get(model, (0.0, 0.0))
    return (input_tokens / 1_000_000) * input_price + (output_tokens / 1_000_000) * output_price


class OpenAIClient:
    """Thin async wrapper over AsyncOpenAI used by retrieval and the chat API."""

    def __init__(
        self,
        api_key: str = "",
        embedding_model: str = "",
        summary_model: str = "",
        dimensions: int = 0,
        timeout: Optional[int] = None,
    ):
        self.embedding_model = embedding_model or settings.OPENAI_EMBEDDING_MODEL
        self.summary_model = summary_model or settings.OPENAI_SUMMARY_MODEL
        self.dimensions = dimensions or settings.EMBEDDING_DIMENSIONS
        self.timeout = timeout or settings.AI_TIMEOUT
        self.client = AsyncOpenAI(
            api_key=api_key or settings.OPENAI_API_KEY,
            timeout=self.timeout,
        )

    async def embed(self, text: str) -> list[float]:
        """Embed one text into a fixed-length vector."""
        try:
            response = await self.client.embeddings.create(
                model=self.embedding_model,
                input=text,
                dimensions=self.dimensions,
            )
        except APITimeoutError:
            raise EmbeddingServiceError(
                f"Embedding request timed out after {self.timeout}s"
            )
        except APIError as e:
            raise EmbeddingServiceError(f"Embedding API error: {e.message}")

        embedding = response.data[0].embedding
        logger.debug(
            "Embedded %d chars (%d tokens) with %s",
            len(text), response.usage.total_tokens, self.embedding_model,
        )
        return embedding

    async def complete(
        self,
        messages: list[dict],
        temperature: float,
        max_tokens: int,
        model: str = "",
    ) -> str:
        """Non-streaming chat completion, returns the message text."""
        model = model or self.summary_model
        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except APITimeoutError:
            raise CompletionServiceError(f"{model} timed out after {self.timeout}s")
        except APIError as e:
            raise CompletionServiceError(f"{model} API error: {e.message}")

        return response.choices[0].message.content or ""

    async def stream_chat(
        self,
        messages: list[dict],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> AsyncIterator[str]:
        """Stream content deltas of a chat completion."""
        try:
            stream = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
            )
            async for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except APITimeoutError:
            raise CompletionServiceError(f"{model} timed out after {self.timeout}s")
        except APIError as e:
            raise CompletionServiceError(f"{model} API error: {e.message}")

    async def close(self) -> None:
        await self.client.close()
