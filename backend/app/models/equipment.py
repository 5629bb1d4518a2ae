"""Equipment catalogue: OEM → product line → model → technician's saved unit."""
from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Oem(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "oems"

    name: Mapped[str] = mapped_column(String(200), unique=True)  # "Carrier", "Trane"

    product_lines = relationship("ProductLine", back_populates="oem", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Oem {self.name}>"


class ProductLine(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "product_lines"

    oem_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("oems.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(200))  # "Infinity Series"

    oem = relationship("Oem", back_populates="product_lines")
    models = relationship("EquipmentModel", back_populates="product_line", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<ProductLine {self.name}>"


class EquipmentModel(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "equipment_models"

    __table_args__ = (
        Index("ix_equipment_models_number", "model_number"),
    )

    product_line_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("product_lines.id", ondelete="CASCADE")
    )
    model_number: Mapped[str] = mapped_column(String(100))  # "25VNA8"
    specifications: Mapped[dict | None] = mapped_column(JSON, default=None)  # tonnage, voltage, refrigerant...

    product_line = relationship("ProductLine", back_populates="models")
    manuals = relationship("Manual", back_populates="model", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<EquipmentModel {self.model_number}>"


class SavedUnit(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "saved_units"

    model_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("equipment_models.id", ondelete="CASCADE"))
    nickname: Mapped[str] = mapped_column(String(200))  # "Roof unit #2"
    serial_number: Mapped[str | None] = mapped_column(String(100), default=None)
    location: Mapped[str | None] = mapped_column(String(500), default=None)
    install_date: Mapped[date | None] = mapped_column(default=None)
    notes: Mapped[str | None] = mapped_column(Text, default=None)

    model = relationship("EquipmentModel")

    def __repr__(self) -> str:
        return f"<SavedUnit {self.nickname}>"
