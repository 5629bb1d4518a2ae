"""Hybrid manual-section search: ILIKE keyword matches + pgvector similarity.

Keyword hits (from detected technical patterns) always rank first with a
fixed similarity of 1.0; vector hits fill the remaining slots. Both kinds
drop sections shorter than the minimum length (header-only fragments).
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence

from services.patterns import detect_technical_patterns

logger = logging.getLogger("manualchat.manual_search")

DEFAULT_SECTION_LIMIT = 20
DEFAULT_MIN_SIMILARITY = 0.55
DEFAULT_MIN_SECTION_CHARS = 50

# Keyword matches are exact by construction, not scored
KEYWORD_SIMILARITY = 1.0

UNTITLED_SECTION = "Untitled Section"
UNKNOWN_PAGE = "Unknown page"


@dataclass(frozen=True)
class SectionRow:
    """Manual section as read from the store, joined with its manual title."""
    id: Any
    manual_id: Any
    content: str
    section_title: Optional[str]
    section_type: str
    page_reference: Optional[str]
    manual_title: str


@dataclass(frozen=True)
class SearchHit:
    id: Any
    manual_id: Any
    content: str
    section_title: str
    section_type: str
    page_reference: str
    manual_title: str
    similarity: float
    is_keyword_match: bool

    @classmethod
    def from_row(cls, row: SectionRow, similarity: float, is_keyword_match: bool) -> "SearchHit":
        return cls(
            id=row.id,
            manual_id=row.manual_id,
            content=row.content,
            section_title=row.section_title or UNTITLED_SECTION,
            section_type=row.section_type,
            page_reference=row.page_reference or UNKNOWN_PAGE,
            manual_title=row.manual_title,
            similarity=similarity,
            is_keyword_match=is_keyword_match,
        )


class SectionStore(Protocol):
    async def find_sections_containing(
        self, search_terms: Sequence[str], manual_ids: Sequence[Any], limit: int
    ) -> list[SectionRow]: ...

    async def find_nearest_sections(
        self, embedding: Sequence[float], manual_ids: Sequence[Any], limit: int
    ) -> list[tuple[SectionRow, float]]: ...


class Embedder(Protocol):
    async def embed(self, text: str) -> list[float]: ...


def distance_to_similarity(distance: float) -> float:
    """Map a cosine distance in [0, 2] onto a similarity in [0, 1].

    Only valid for pgvector's ``<=>`` operator. Swapping in L2 or inner
    product distance needs a different mapping.
    """
    return 1 - distance / 2


async def keyword_search(
    store: SectionStore,
    search_terms: Sequence[str],
    manual_ids: Sequence[Any],
    limit: int = 5,
    min_content_length: int = DEFAULT_MIN_SECTION_CHARS,
) -> list[SearchHit]:
    """Sections whose content contains ANY of the wildcard terms.

    Args:
        store: Section store scoped by manual ids.
        search_terms: ILIKE wildcards (e.g. "%A40%").
        manual_ids: Manuals of the unit's model.
        limit: Max rows requested from the store.
        min_content_length: Shorter sections are dropped.

    Returns:
        Hits with similarity 1.0 in store order, at most ``limit``.
    """
    if not search_terms or not manual_ids:
        return []

    logger.info("Keyword search: %d terms across %d manuals", len(search_terms), len(manual_ids))
    rows = await store.find_sections_containing(search_terms, manual_ids, limit)

    hits = [
        SearchHit.from_row(row, KEYWORD_SIMILARITY, is_keyword_match=True)
        for row in rows[:limit]
    ]
    filtered = [h for h in hits if len(h.content) >= min_content_length]
    if len(filtered) != len(hits):
        logger.info(
            "Filtered out %d short keyword sections (< %d chars)",
            len(hits) - len(filtered), min_content_length,
        )
    return filtered


async def vector_search(
    store: SectionStore,
    embedder: Embedder,
    question: str,
    manual_ids: Sequence[Any],
    limit: int = DEFAULT_SECTION_LIMIT,
    min_similarity: float = DEFAULT_MIN_SIMILARITY,
    min_content_length: int = DEFAULT_MIN_SECTION_CHARS,
) -> list[SearchHit]:
    """Semantic search over section embeddings.

    Over-fetches ``2 * limit`` nearest sections so that the similarity and
    length filters do not starve the result. May return fewer than
    ``limit`` hits. Embedding failures propagate to the caller.
    """
    if not manual_ids:
        return []

    embedding = await embedder.embed(question)
    return await nearest_hits(store, embedding, manual_ids, limit, min_similarity, min_content_length)


async def nearest_hits(
    store: SectionStore,
    embedding: Sequence[float],
    manual_ids: Sequence[Any],
    limit: int = DEFAULT_SECTION_LIMIT,
    min_similarity: float = DEFAULT_MIN_SIMILARITY,
    min_content_length: int = DEFAULT_MIN_SECTION_CHARS,
) -> list[SearchHit]:
    """Store half of vector search, for an already computed embedding."""
    candidates = await store.find_nearest_sections(embedding, manual_ids, limit * 2)

    hits = []
    for row, distance in candidates:
        similarity = distance_to_similarity(distance)
        if similarity < min_similarity:
            continue
        if len(row.content) < min_content_length:
            continue
        if similarity > 1.0:
            # Negative distance: the store is not returning cosine distance
            logger.debug(
                "Similarity %.4f > 1 for section %s (distance %.4f), clamped",
                similarity, row.id, distance,
            )
            similarity = 1.0
        hits.append(SearchHit.from_row(row, similarity, is_keyword_match=False))

    logger.info(
        "Vector search: %d of %d candidates >= %.2f similarity",
        len(hits), len(candidates), min_similarity,
    )
    return hits


def merge_hits(
    keyword_hits: Sequence[SearchHit],
    vector_hits: Sequence[SearchHit],
    limit: int,
) -> list[SearchHit]:
    """Keyword hits first, then vector hits not already present, top ``limit``.

    Stable sort by similarity descending: keyword hits (1.0) keep their
    store order ahead of every vector hit.
    """
    merged: list[SearchHit] = []
    seen: set = set()
    for hit in list(keyword_hits) + list(vector_hits):
        if hit.id in seen:
            continue
        seen.add(hit.id)
        merged.append(hit)

    merged.sort(key=lambda h: h.similarity, reverse=True)
    return merged[:limit]


async def gather_cancelling(*aws: Awaitable) -> list:
    """Like asyncio.gather, but a failure cancels the sibling tasks."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise


async def hybrid_search(
    store: SectionStore,
    embedder: Embedder,
    question: str,
    manual_ids: Sequence[Any],
    limit: int = DEFAULT_SECTION_LIMIT,
    min_similarity: float = DEFAULT_MIN_SIMILARITY,
    min_content_length: int = DEFAULT_MIN_SECTION_CHARS,
    detect: Callable = detect_technical_patterns,
) -> list[SearchHit]:
    """Keyword + vector search for one question, merged and ranked.

    Keyword search runs only when technical patterns are found; vector
    search always runs. Only the question embedding overlaps the keyword
    query: both store queries share one database session, so they run
    one after the other.

    Returns:
        Up to ``limit`` unique hits, keyword matches first. Empty when
        nothing matched.
    """
    logger.info("Hybrid search for: %r", question[:50])
    if not manual_ids:
        return []

    detection = detect(question)

    async def _keyword() -> list[SearchHit]:
        if not detection.has_pattern:
            return []
        return await keyword_search(
            store, detection.search_terms, manual_ids, limit, min_content_length
        )

    keyword_hits, embedding = await gather_cancelling(_keyword(), embedder.embed(question))
    vector_hits = await nearest_hits(
        store, embedding, manual_ids, limit, min_similarity, min_content_length
    )

    results = merge_hits(keyword_hits, vector_hits, limit)
    keyword_count = sum(1 for h in results if h.is_keyword_match)
    logger.info(
        "Hybrid results: %d (%d keyword + %d vector), avg similarity %.2f",
        len(results), keyword_count, len(results) - keyword_count,
        average_similarity(results),
    )
    for i, hit in enumerate(results, 1):
        logger.debug(
            "  %d. [%.2f] %s: %s",
            i, hit.similarity, hit.section_title, hit.content[:300].replace("\n", " "),
        )
    return results


def average_similarity(hits: Sequence[SearchHit]) -> float:
    """Mean similarity, 0.0 for no hits."""
    if not hits:
        return 0.0
    return sum(h.similarity for h in hits) / len(hits)
