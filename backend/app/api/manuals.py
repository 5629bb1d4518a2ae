"""Manual section search API: inspect what retrieval returns for a unit.

GET /api/manuals/search?unit_id=...&q=...  -> hybrid (keyword + vector) search
GET /api/manuals/patterns?q=...            -> technical patterns detected in a question
"""
from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from models import get_session
from services.llm_client import LLMServiceError
from services.manual_search import average_similarity, hybrid_search
from services.manual_store import ManualStore
from services.patterns import detect_technical_patterns

router = APIRouter(prefix="/api/manuals", tags=["manuals"])
logger = logging.getLogger("manualchat.api.manuals")


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class SectionHitOut(BaseModel):
    id: str
    manual_id: str
    manual_title: str
    section_title: str
    section_type: str
    page_reference: str
    similarity: float
    is_keyword_match: bool
    content: str


class SearchOut(BaseModel):
    unit_id: uuid.UUID
    manuals_count: int
    avg_similarity: float
    hits: list[SectionHitOut]


class PatternsOut(BaseModel):
    has_pattern: bool
    patterns: list[str]
    search_terms: list[str]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/search", response_model=SearchOut)
async def search_sections(
    request: Request,
    unit_id: uuid.UUID = Query(..., description="Saved unit"),
    q: str = Query(..., min_length=2, description="Question text"),
    limit: Optional[int] = Query(None, ge=1, le=50),
    session: AsyncSession = Depends(get_session),
) -> SearchOut:
    """Hybrid search over the active manuals of the unit's model."""
    config = request.app.state.retrieval_config
    store = ManualStore(session)

    unit = await store.get_unit(unit_id)
    if unit is None:
        raise HTTPException(404, f"Unit not found: {unit_id}")
    manuals = await store.list_active_manuals(unit.model_id)

    hits = []
    if manuals:
        try:
            hits = await hybrid_search(
                store,
                request.app.state.llm,
                q,
                [m.id for m in manuals],
                limit=limit or config.section_result_limit,
                min_similarity=config.vector_similarity_floor,
                min_content_length=config.min_section_chars,
            )
        except LLMServiceError as e:
            logger.error("Search failed: %s", e)
            raise HTTPException(502, f"Search service unavailable: {e}")

    return SearchOut(
        unit_id=unit_id,
        manuals_count=len(manuals),
        avg_similarity=average_similarity(hits),
        hits=[
            SectionHitOut(
                id=str(h.id),
                manual_id=str(h.manual_id),
                manual_title=h.manual_title,
                section_title=h.section_title,
                section_type=h.section_type,
                page_reference=h.page_reference,
                similarity=h.similarity,
                is_keyword_match=h.is_keyword_match,
                content=h.content,
            )
            for h in hits
        ],
    )


@router.get("/patterns", response_model=PatternsOut)
async def detect_patterns(q: str = Query(..., min_length=1)) -> PatternsOut:
    detection = detect_technical_patterns(q)
    return PatternsOut(
        has_pattern=detection.has_pattern,
        patterns=detection.patterns,
        search_terms=detection.search_terms,
    )
