"""Read-side queries for units, manuals and manual sections.

The retrieval core only reads: unit with its model/product line/OEM,
active manuals of a model, ILIKE section matches, and nearest sections
by pgvector cosine distance.
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models.equipment import EquipmentModel, ProductLine, SavedUnit
from models.manual import Manual, ManualSection, ManualStatus
from services.manual_search import SectionRow

logger = logging.getLogger("manualchat.manual_store")

_SECTION_COLUMNS = (
    ManualSection.id,
    ManualSection.manual_id,
    ManualSection.content,
    ManualSection.section_title,
    ManualSection.section_type,
    ManualSection.page_reference,
    Manual.title.label("manual_title"),
)


def _to_section_row(r) -> SectionRow:
    return SectionRow(
        id=r.id,
        manual_id=r.manual_id,
        content=r.content,
        section_title=r.section_title,
        section_type=r.section_type,
        page_reference=r.page_reference,
        manual_title=r.manual_title,
    )


class ManualStore:
    """Queries bound to one AsyncSession (one chat request)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_unit(self, unit_id: Any) -> Optional[SavedUnit]:
        """Saved unit with model → product line → OEM loaded, or None."""
        stmt = (
            select(SavedUnit)
            .where(SavedUnit.id == unit_id)
            .options(
                selectinload(SavedUnit.model)
                .selectinload(EquipmentModel.product_line)
                .selectinload(ProductLine.oem)
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_active_manuals(self, model_id: Any) -> list[Manual]:
        """Manuals of a model that finished ingestion; processing/quarantined are skipped."""
        stmt = (
            select(Manual)
            .where(Manual.model_id == model_id, Manual.status == ManualStatus.ACTIVE)
            .order_by(Manual.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_sections_containing(
        self,
        search_terms: Sequence[str],
        manual_ids: Sequence[Any],
        limit: int,
    ) -> list[SectionRow]:
        """Sections whose content ILIKE-matches any wildcard term."""
        if not search_terms or not manual_ids:
            return []

        stmt = (
            select(*_SECTION_COLUMNS)
            .join(Manual, ManualSection.manual_id == Manual.id)
            .where(
                ManualSection.manual_id.in_(manual_ids),
                or_(*[ManualSection.content.ilike(term) for term in search_terms]),
            )
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [_to_section_row(r) for r in result.all()]

    async def find_nearest_sections(
        self,
        embedding: Sequence[float],
        manual_ids: Sequence[Any],
        limit: int,
    ) -> list[tuple[SectionRow, float]]:
        """Closest embedded sections by cosine distance (pgvector ``<=>``)."""
        if not manual_ids:
            return []

        distance = ManualSection.embedding.cosine_distance(embedding)
        stmt = (
            select(*_SECTION_COLUMNS, distance.label("distance"))
            .join(Manual, ManualSection.manual_id == Manual.id)
            .where(
                ManualSection.manual_id.in_(manual_ids),
                ManualSection.embedding.isnot(None),
            )
            .order_by(distance)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [(_to_section_row(r), float(r.distance)) for r in result.all()]
