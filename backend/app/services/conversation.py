"""Conversation history → bounded text block for the system prompt.

History longer than the token budget is compressed by a short, cheap
summary call. Summarization is best effort: on failure the block is cut
down to the last few exchanges instead.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Protocol

from services.llm_client import LLMServiceError, estimate_tokens

logger = logging.getLogger("manualchat.conversation")

DEFAULT_TOKEN_BUDGET = 8000
SUMMARY_TEMPERATURE = 0.3
SUMMARY_MAX_TOKENS = 200
# Last ~5 user/assistant exchanges
FALLBACK_KEEP_BLOCKS = 10

SUMMARY_PROMPT = (
    "Summarize this equipment troubleshooting conversation in 3-4 concise "
    "sentences. Focus on: 1) The main issue being discussed, 2) Key "
    "information already provided, 3) Steps already tried or discussed."
)

_ROLE_LABELS = {"user": "User", "assistant": "Assistant"}


@dataclass(frozen=True)
class ConversationTurn:
    role: str  # "user" | "assistant"
    content: str
    timestamp: Optional[datetime] = None


class Completer(Protocol):
    async def complete(
        self, messages: list[dict], temperature: float, max_tokens: int, model: str = ""
    ) -> str: ...


def build_conversation_context(turns: Iterable[ConversationTurn]) -> str:
    """Render turns as "User: ..." / "Assistant: ..." blocks separated by blank lines.

    The caller trims history to its window first; this only formats.
    """
    return "\n\n".join(
        f"{_ROLE_LABELS.get(t.role, t.role.capitalize())}: {t.content}" for t in turns
    )


def truncate_conversation(context: str, keep_blocks: int = FALLBACK_KEEP_BLOCKS) -> str:
    """Keep only the last ``keep_blocks`` blank-line separated blocks."""
    return "\n\n".join(context.split("\n\n")[-keep_blocks:])


async def summarize_if_needed(
    context: str,
    llm: Completer,
    token_budget: int = DEFAULT_TOKEN_BUDGET,
) -> str:
    """Return ``context`` unchanged if it fits the budget, otherwise a summary.

    A summary comes back wrapped as "[Previous conversation summary: ...]".
    If the summary call fails the last exchanges are kept instead; this
    function does not raise on LLM errors.
    """
    if not context:
        return ""

    tokens = estimate_tokens(context)
    if tokens <= token_budget:
        return context

    logger.info("Summarizing long conversation (%d tokens)", tokens)
    try:
        summary = await llm.complete(
            [
                {"role": "system", "content": SUMMARY_PROMPT},
                {"role": "user", "content": context},
            ],
            temperature=SUMMARY_TEMPERATURE,
            max_tokens=SUMMARY_MAX_TOKENS,
        )
    except LLMServiceError as e:
        logger.warning("Conversation summary failed, truncating instead: %s", e)
        return _fallback(context, tokens)
    except Exception as e:
        logger.error("Unexpected error summarizing conversation: %s", e, exc_info=True)
        return _fallback(context, tokens)

    summary = (summary or "").strip() or context
    logger.info("Summarized: %d → %d tokens", tokens, estimate_tokens(summary))
    return f"[Previous conversation summary: {summary}]"


def _fallback(context: str, tokens: int) -> str:
    truncated = truncate_conversation(context)
    if estimate_tokens(truncated) >= tokens:
        # Few very long blocks: keep the tail within half the original size
        truncated = context[-(len(context) // 2):]
    return truncated
