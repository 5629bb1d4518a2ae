"""Chat sessions and answered questions.

One ChatSession per conversation about a saved unit; each answered question
is stored as a QuestionRecord with the sections that grounded the answer.
Written by the chat API after streaming finishes, never by retrieval.
"""
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, UUIDPrimaryKeyMixin


class ChatSession(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "chat_sessions"

    __table_args__ = (
        Index("ix_chat_sessions_unit", "unit_id"),
        Index("ix_chat_sessions_last_message", "last_message_at"),
    )

    unit_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("saved_units.id", ondelete="CASCADE"))
    title: Mapped[str] = mapped_column(String(100))  # first 50 chars of the opening question
    last_message_at: Mapped[datetime] = mapped_column(server_default=func.now())
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    questions = relationship(
        "QuestionRecord",
        back_populates="chat_session",
        cascade="all, delete-orphan",
        order_by="QuestionRecord.created_at",
    )


class QuestionRecord(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "questions"

    __table_args__ = (
        Index("ix_questions_session", "chat_session_id"),
    )

    chat_session_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("chat_sessions.id", ondelete="CASCADE")
    )
    model_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("equipment_models.id", ondelete="CASCADE"))
    manual_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("manuals.id", ondelete="SET NULL"), default=None
    )
    question_text: Mapped[str] = mapped_column(Text)
    answer_text: Mapped[str] = mapped_column(Text, default="")
    context: Mapped[dict | None] = mapped_column(JSON, default=None)         # intent, section ids + scores
    answer_sources: Mapped[list | None] = mapped_column(JSON, default=None)  # citations shown to the user
    confidence_score: Mapped[float] = mapped_column(default=0.0)
    processing_time_ms: Mapped[int] = mapped_column(default=0)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    chat_session = relationship("ChatSession", back_populates="questions")
