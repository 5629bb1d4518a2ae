"""Manuals and their page-tagged sections.

Each ManualSection row = one excerpt produced by the ingestion pipeline,
with a pgvector embedding used by the hybrid retrieval in
services/manual_search.py. Sections are never modified after ingestion.
"""
from __future__ import annotations

import enum
import uuid

from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from config import settings
from models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ManualStatus(str, enum.Enum):
    PROCESSING = "processing"
    ACTIVE = "active"
    QUARANTINED = "quarantined"  # failed validation, hidden from chat
    FAILED = "failed"


class SectionType(str, enum.Enum):
    TROUBLESHOOTING = "troubleshooting"
    SPECIFICATIONS = "specifications"
    WIRING = "wiring"
    PARTS = "parts"
    MAINTENANCE = "maintenance"
    INSTALLATION = "installation"
    SAFETY = "safety"
    GENERAL = "general"


class Manual(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "manuals"

    __table_args__ = (
        Index("ix_manuals_model_status", "model_id", "status"),
    )

    model_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("equipment_models.id", ondelete="CASCADE"))
    title: Mapped[str] = mapped_column(String(500))
    manual_type: Mapped[str] = mapped_column(String(50), default="service")  # service, installation, owner...
    page_count: Mapped[int | None] = mapped_column(default=None)
    status: Mapped[ManualStatus] = mapped_column(default=ManualStatus.PROCESSING)
    source_url: Mapped[str | None] = mapped_column(String(1000), default=None)

    model = relationship("EquipmentModel", back_populates="manuals")
    sections = relationship("ManualSection", back_populates="manual", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Manual {self.title} ({self.status.value})>"


class ManualSection(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "manual_sections"

    __table_args__ = (
        Index("ix_manual_sections_manual", "manual_id"),
    )

    manual_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("manuals.id", ondelete="CASCADE"))
    section_title: Mapped[str | None] = mapped_column(String(500), default=None)
    section_type: Mapped[str] = mapped_column(String(50), default=SectionType.GENERAL.value)
    content: Mapped[str] = mapped_column(Text)  # may contain [TABLE] + " | " rows
    page_reference: Mapped[str | None] = mapped_column(String(50), default=None)  # "Page 22", "Pages 12-14"
    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(settings.EMBEDDING_DIMENSIONS), default=None
    )
    # keywords, model_numbers, part_numbers extracted at ingestion
    section_metadata: Mapped[dict | None] = mapped_column(JSON, default=None)

    manual = relationship("Manual", back_populates="sections")

    def __repr__(self) -> str:
        return f"<ManualSection {self.section_title!r} ({self.page_reference})>"
