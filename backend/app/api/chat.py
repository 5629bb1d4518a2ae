"""Manual chat API: ask a question about a saved unit, stream the answer.

POST /api/chat/ask                   -> SSE stream: context, warning, token, complete | error
GET  /api/chat/sessions/{session_id} -> stored questions/answers of a session
"""
from __future__ import annotations

import json
import logging
import re
import time
import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models import async_session, get_session
from services.chat_context import ContextAssembler, ChatContext, Coverage, UnitNotFoundError
from services.chat_history import answer_sources, get_chat_session, save_exchange
from services.conversation import ConversationTurn
from services.llm_client import LLMServiceError, calculate_cost, estimate_tokens
from services.manual_store import ManualStore
from services.prompt_builder import build_system_prompt

router = APIRouter(prefix="/api/chat", tags=["chat"])
logger = logging.getLogger("manualchat.api.chat")

LOW_CONFIDENCE_WARNING = (
    "The manual sections found may not directly address your question. "
    "The answer might be limited."
)
NO_SECTIONS_WARNING = (
    "No relevant sections found in the manual for this question. "
    "Searching for general information..."
)
NO_MANUALS_WARNING = (
    "No active manuals are available for this model yet. "
    "The answer will not be based on manual content."
)

_DIAGNOSTIC_CODE_RE = re.compile(r"\b(flash|error|fault|diagnostic)\s*code\s*\d+", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class ChatMessageIn(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    timestamp: Optional[str] = None


class AskRequest(BaseModel):
    unit_id: uuid.UUID
    chat_session_id: Optional[uuid.UUID] = None
    question: Optional[str] = None                   # single question
    messages: Optional[list[ChatMessageIn]] = None   # conversation, last one is the question


class StoredExchange(BaseModel):
    id: uuid.UUID
    question: str
    answer: str
    confidence: float
    processing_time_ms: int
    sources: list | None = None
    timestamp: str | None = None


class ChatSessionOut(BaseModel):
    id: uuid.UUID
    unit_id: uuid.UUID
    title: str
    last_message_at: str | None = None
    messages: list[StoredExchange]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def resolve_question(
    req: AskRequest,
    window: int = 10,
    max_chars: int = 500,
) -> tuple[str, list[ConversationTurn]]:
    """Split the request into (current question, prior turns).

    With ``messages`` the last ``window`` are kept and the final one must
    come from the user. Otherwise ``question`` is required.
    """
    history: list[ConversationTurn] = []
    if req.messages:
        recent = req.messages[-window:]
        last = recent[-1]
        if last.role != "user":
            raise HTTPException(400, "Last message must be from user")
        question = last.content
        history = [ConversationTurn(role=m.role, content=m.content) for m in recent[:-1]]
    elif req.question:
        question = req.question
    else:
        raise HTTPException(400, "Either question or messages array is required")

    question = question.strip()
    if not question:
        raise HTTPException(400, "Question is empty")
    if len(question) > max_chars:
        raise HTTPException(400, f"Question is too long (max {max_chars} characters)")
    return question, history


def is_complex_question(question: str) -> bool:
    """Codes, troubleshooting and long questions go to the stronger model."""
    lowered = question.lower()
    return bool(
        _DIAGNOSTIC_CODE_RE.search(question)
        or "troubleshoot" in lowered
        or "diagnose" in lowered
        or "why" in lowered
        or ("?" in question and len(question.split()) > 10)
    )


def format_sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str, ensure_ascii=False)}\n\n"


def coverage_warnings(context: ChatContext) -> list[str]:
    coverage = context.coverage
    if coverage is Coverage.NO_MANUALS:
        return [NO_MANUALS_WARNING]
    if coverage is Coverage.NO_SECTIONS:
        return [NO_SECTIONS_WARNING]
    if coverage is Coverage.LOW_CONFIDENCE:
        return [LOW_CONFIDENCE_WARNING]
    return []


def context_event(context: ChatContext) -> dict:
    return {
        "unit": context.unit.nickname,
        "model": f"{context.model.oem} {context.model.model_number}",
        "manuals_count": len(context.manuals),
        "sections_count": len(context.relevant_sections),
        "coverage": context.coverage.value,
        "low_confidence": context.low_confidence,
        "avg_similarity": round(context.avg_similarity, 4),
    }


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/ask")
async def ask_question(
    req: AskRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> StreamingResponse:
    """Gather manual context, then stream the answer as Server-Sent Events."""
    question, history = resolve_question(
        req,
        window=settings.RETRIEVAL_CONVERSATION_WINDOW,
        max_chars=settings.MAX_QUESTION_CHARS,
    )
    logger.info(
        "Chat request: unit=%s question=%r history=%d", req.unit_id, question, len(history)
    )
    started = time.monotonic()

    llm = request.app.state.llm
    assembler = ContextAssembler(ManualStore(session), llm, request.app.state.retrieval_config)
    try:
        context = await assembler.gather_chat_context(req.unit_id, question, conversation_history=history)
    except UnitNotFoundError as e:
        raise HTTPException(404, str(e))
    except LLMServiceError as e:
        logger.error("Context gathering failed: %s", e)
        raise HTTPException(502, f"Search service unavailable: {e}")

    system_prompt = build_system_prompt(context)
    complex_question = is_complex_question(question)
    model = settings.OPENAI_COMPLEX_MODEL if complex_question else settings.OPENAI_CHAT_MODEL
    input_tokens = estimate_tokens(system_prompt + question)
    logger.info(
        "AI request: model=%s input_tokens~%d sections=%d avg_similarity=%.2f",
        model, input_tokens, len(context.relevant_sections), context.avg_similarity,
    )

    async def event_stream():
        yield format_sse("context", context_event(context))
        for message in coverage_warnings(context):
            yield format_sse("warning", {"message": message})

        answer_parts: list[str] = []
        output_tokens = 0
        try:
            async for delta in llm.stream_chat(
                [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": question},
                ],
                model=model,
                temperature=settings.CHAT_TEMPERATURE,
                max_tokens=settings.CHAT_MAX_TOKENS,
            ):
                answer_parts.append(delta)
                output_tokens += estimate_tokens(delta)
                yield format_sse("token", {"content": delta})
        except LLMServiceError as e:
            logger.error("Answer streaming failed: %s", e)
            yield format_sse("error", {"error": str(e)})
            return

        processing_ms = int((time.monotonic() - started) * 1000)
        cost = calculate_cost(model, input_tokens, output_tokens)
        logger.info(
            "Response complete: output_tokens~%d time=%dms cost=$%.6f",
            output_tokens, processing_ms, cost,
        )

        chat_session_id, question_id = req.chat_session_id, None
        try:
            async with async_session() as write_session:
                chat_session_id, question_id = await save_exchange(
                    write_session,
                    context,
                    question,
                    "".join(answer_parts),
                    intent="complex" if complex_question else "simple",
                    processing_time_ms=processing_ms,
                    chat_session_id=req.chat_session_id,
                )
        except Exception as e:
            # Answer already delivered; losing the record must not fail the stream
            logger.warning("Failed to save question: %s", e)

        yield format_sse("complete", {
            "chat_session_id": chat_session_id,
            "question_id": question_id,
            "stats": {
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "processing_time_ms": processing_ms,
                "cost": cost,
            },
            "sources": answer_sources(context),
        })

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.get("/sessions/{session_id}", response_model=ChatSessionOut)
async def read_chat_session(
    session_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> ChatSessionOut:
    chat_session = await get_chat_session(session, session_id)
    if not chat_session:
        raise HTTPException(404, "Chat session not found")
    return ChatSessionOut(
        id=chat_session.id,
        unit_id=chat_session.unit_id,
        title=chat_session.title,
        last_message_at=chat_session.last_message_at.isoformat() if chat_session.last_message_at else None,
        messages=[
            StoredExchange(
                id=q.id,
                question=q.question_text,
                answer=q.answer_text,
                confidence=q.confidence_score,
                processing_time_ms=q.processing_time_ms,
                sources=q.answer_sources,
                timestamp=q.created_at.isoformat() if q.created_at else None,
            )
            for q in chat_session.questions
        ],
    )
