"""Chat sessions + answered questions persistence.

Called by the chat API after an answer has been streamed. Nothing here is
used for retrieval: prior turns reach the assembler from the client.
"""
from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models.base import utcnow
from models.chat import ChatSession, QuestionRecord
from services.chat_context import ChatContext

logger = logging.getLogger("manualchat.chat_history")

SESSION_TITLE_CHARS = 50


def answer_sources(context: ChatContext) -> list[dict]:
    """Citations for the client and the stored record."""
    return [
        {
            "manual_id": str(s.manual_id),
            "manual_title": s.manual_title,
            "section_id": str(s.id),
            "section_title": s.section_title,
            "section_type": s.section_type,
            "page_reference": s.page_reference,
            "confidence": s.similarity,
        }
        for s in context.relevant_sections
    ]


async def save_exchange(
    session: AsyncSession,
    context: ChatContext,
    question: str,
    answer: str,
    intent: str,
    processing_time_ms: int,
    chat_session_id: Optional[uuid.UUID] = None,
) -> tuple[uuid.UUID, uuid.UUID]:
    """Store one question/answer, creating the chat session if needed.

    Returns:
        (chat_session_id, question_id)
    """
    chat_session = None
    if chat_session_id is not None:
        chat_session = await session.get(ChatSession, chat_session_id)
        if chat_session is None:
            logger.warning("Chat session %s not found, starting a new one", chat_session_id)
        elif chat_session.unit_id != context.unit.id:
            logger.warning(
                "Chat session %s belongs to unit %s, not %s; starting a new one",
                chat_session_id, chat_session.unit_id, context.unit.id,
            )
            chat_session = None

    if chat_session is None:
        chat_session = ChatSession(
            unit_id=context.unit.id,
            title=question[:SESSION_TITLE_CHARS],
        )
        session.add(chat_session)
        await session.flush()
        logger.info("Created chat session %s", chat_session.id)
    chat_session.last_message_at = utcnow()

    record = QuestionRecord(
        chat_session_id=chat_session.id,
        model_id=context.model.id,
        manual_id=context.manuals[0].id if context.manuals else None,
        question_text=question,
        answer_text=answer,
        context={
            "intent": intent,
            "serial_number": context.unit.serial_number,
            "coverage": context.coverage.value,
            "relevant_sections": [
                {"id": str(s.id), "similarity": s.similarity, "page_reference": s.page_reference}
                for s in context.relevant_sections
            ],
        },
        answer_sources=answer_sources(context),
        confidence_score=context.avg_similarity if context.relevant_sections else 0.5,
        processing_time_ms=processing_time_ms,
    )
    session.add(record)
    await session.commit()
    return chat_session.id, record.id


async def get_chat_session(session: AsyncSession, chat_session_id: uuid.UUID) -> Optional[ChatSession]:
    stmt = (
        select(ChatSession)
        .where(ChatSession.id == chat_session_id)
        .options(selectinload(ChatSession.questions))
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
