"""Tests for conversation formatting and summarization."""
import pytest

from services.conversation import (
    SUMMARY_MAX_TOKENS,
    SUMMARY_TEMPERATURE,
    ConversationTurn,
    build_conversation_context,
    summarize_if_needed,
    truncate_conversation,
)
from services.llm_client import CompletionServiceError, estimate_tokens

from conftest import FakeLLM


def turns(count, size=20):
    roles = ("user", "assistant")
    return [
        ConversationTurn(role=roles[i % 2], content=f"turn {i} " + "x" * size)
        for i in range(count)
    ]


class TestBuildConversationContext:

    def test_formats_roles(self):
        context = build_conversation_context([
            ConversationTurn("user", "Unit shows flash code 74"),
            ConversationTurn("assistant", "Check the high pressure switch."),
        ])
        assert context == (
            "User: Unit shows flash code 74\n\n"
            "Assistant: Check the high pressure switch."
        )

    def test_empty(self):
        assert build_conversation_context([]) == ""

    def test_pure(self):
        history = turns(4)
        assert build_conversation_context(history) == build_conversation_context(history)


class TestTruncateConversation:

    def test_keeps_last_blocks(self):
        context = build_conversation_context(turns(20))
        truncated = truncate_conversation(context, keep_blocks=10)
        assert truncated.startswith("User: turn 10 ")
        assert truncated.count("\n\n") == 9


class TestSummarizeIfNeeded:

    async def test_empty_returns_empty(self, fake_llm):
        assert await summarize_if_needed("", fake_llm) == ""
        assert fake_llm.complete_calls == []

    async def test_under_budget_passthrough(self, fake_llm):
        context = build_conversation_context(turns(4))
        assert await summarize_if_needed(context, fake_llm) == context
        assert fake_llm.complete_calls == []

    async def test_long_history_summarized(self, fake_llm):
        """Ten 4000-char turns are far over an 8000-token budget."""
        context = build_conversation_context(turns(10, size=4000))
        assert estimate_tokens(context) > 8000

        result = await summarize_if_needed(context, fake_llm, token_budget=8000)

        assert result == f"[Previous conversation summary: {fake_llm.summary}]"
        call = fake_llm.complete_calls[0]
        assert call["temperature"] == SUMMARY_TEMPERATURE
        assert call["max_tokens"] == SUMMARY_MAX_TOKENS
        assert call["messages"][-1]["content"] == context

    @pytest.mark.parametrize("error", [
        CompletionServiceError("rate limited"),
        RuntimeError("connection reset"),
    ])
    async def test_summary_failure_truncates(self, error):
        llm = FakeLLM(complete_error=error)
        context = build_conversation_context(turns(20, size=2000))

        result = await summarize_if_needed(context, llm, token_budget=8000)

        assert result
        assert estimate_tokens(result) < estimate_tokens(context)
        assert result == truncate_conversation(context, keep_blocks=10)

    async def test_few_huge_turns_halved_on_failure(self):
        llm = FakeLLM(complete_error=CompletionServiceError("timeout"))
        context = build_conversation_context(turns(4, size=20000))

        result = await summarize_if_needed(context, llm, token_budget=8000)

        assert result
        assert estimate_tokens(result) < estimate_tokens(context)
        assert context.endswith(result)

    async def test_blank_summary_still_wrapped(self):
        llm = FakeLLM(summary="   ")
        context = build_conversation_context(turns(10, size=4000))
        result = await summarize_if_needed(context, llm)
        assert result.startswith("[Previous conversation summary: ")
