"""Shared fakes: in-memory manual store and OpenAI client stand-ins."""
from __future__ import annotations

import asyncio
import re
import uuid
from dataclasses import dataclass
from datetime import date
from types import SimpleNamespace
from typing import Optional

import pytest

from services.llm_client import EmbeddingServiceError
from services.manual_search import SectionRow

FILLER = " Refer to the wiring diagram and the sequence of operation for details."


def long_text(text: str) -> str:
    """Pad text past the 50-char retrievable minimum."""
    return text + FILLER


def make_row(
    content: str,
    section_id: Optional[str] = None,
    manual_id: str = "manual-1",
    section_title: Optional[str] = "Troubleshooting",
    section_type: str = "troubleshooting",
    page_reference: Optional[str] = "Page 22",
    manual_title: str = "25VNA8 Service and Troubleshooting Guide",
) -> SectionRow:
    return SectionRow(
        id=section_id or str(uuid.uuid4()),
        manual_id=manual_id,
        content=content,
        section_title=section_title,
        section_type=section_type,
        page_reference=page_reference,
        manual_title=manual_title,
    )


@dataclass
class StoredSection:
    row: SectionRow
    distance: Optional[float] = None  # None = no embedding stored


def _ilike(term: str, text: str) -> bool:
    pattern = ".*".join(re.escape(part) for part in term.split("%"))
    return re.fullmatch(pattern, text, re.IGNORECASE | re.DOTALL) is not None


class FakeStore:
    """In-memory ManualStore: ILIKE emulation and preset cosine distances."""

    def __init__(self, units=None, manuals=None, sections=None, keyword_delay: float = 0.0):
        self.units = {u.id: u for u in (units or [])}
        self.manuals = list(manuals or [])
        self.sections: list[StoredSection] = list(sections or [])
        self.keyword_delay = keyword_delay
        self.keyword_calls: list[tuple] = []
        self.nearest_calls: list[tuple] = []
        self.keyword_cancelled = False

    async def get_unit(self, unit_id):
        return self.units.get(unit_id)

    async def list_active_manuals(self, model_id):
        return [m for m in self.manuals if m.model_id == model_id and m.status == "active"]

    async def find_sections_containing(self, search_terms, manual_ids, limit):
        self.keyword_calls.append((list(search_terms), list(manual_ids), limit))
        if self.keyword_delay:
            try:
                await asyncio.sleep(self.keyword_delay)
            except asyncio.CancelledError:
                self.keyword_cancelled = True
                raise
        rows = [
            s.row for s in self.sections
            if s.row.manual_id in manual_ids
            and any(_ilike(term, s.row.content) for term in search_terms)
        ]
        return rows[:limit]

    async def find_nearest_sections(self, embedding, manual_ids, limit):
        self.nearest_calls.append((list(embedding), list(manual_ids), limit))
        candidates = [
            (s.row, s.distance) for s in self.sections
            if s.row.manual_id in manual_ids and s.distance is not None
        ]
        candidates.sort(key=lambda pair: pair[1])
        return candidates[:limit]


class FakeLLM:
    """Embedding/completion/streaming stand-in for OpenAIClient."""

    def __init__(self, summary: str = "Technician is chasing flash code 74 after a reset.",
                 complete_error: Optional[Exception] = None,
                 embed_error: Optional[Exception] = None,
                 tokens: Optional[list[str]] = None,
                 stream_error: Optional[Exception] = None):
        self.summary = summary
        self.complete_error = complete_error
        self.embed_error = embed_error
        self.tokens = tokens if tokens is not None else ["Check ", "the charge."]
        self.stream_error = stream_error
        self.embed_calls: list[str] = []
        self.complete_calls: list[dict] = []
        self.stream_calls: list[dict] = []

    async def embed(self, text: str) -> list[float]:
        self.embed_calls.append(text)
        if self.embed_error:
            raise self.embed_error
        return [0.1, 0.2, 0.3]

    async def complete(self, messages, temperature, max_tokens, model=""):
        self.complete_calls.append(
            {"messages": messages, "temperature": temperature, "max_tokens": max_tokens}
        )
        if self.complete_error:
            raise self.complete_error
        return self.summary

    async def stream_chat(self, messages, model, temperature, max_tokens):
        self.stream_calls.append({"messages": messages, "model": model})
        for token in self.tokens:
            yield token
        if self.stream_error:
            raise self.stream_error


def make_unit(unit_id=None, model_id="model-1", **overrides):
    oem = SimpleNamespace(name=overrides.pop("oem", "Carrier"))
    product_line = SimpleNamespace(name=overrides.pop("product_line", "Infinity Series"), oem=oem)
    model = SimpleNamespace(
        id=model_id,
        model_number=overrides.pop("model_number", "25VNA8"),
        specifications=overrides.pop("specifications", {"tonnage": 3, "refrigerant": "R-410A"}),
        product_line=product_line,
    )
    fields = dict(
        id=unit_id or str(uuid.uuid4()),
        model_id=model_id,
        model=model,
        nickname="Roof unit #2",
        serial_number="4518E12345",
        location="Building C roof",
        install_date=date(2021, 5, 14),
        notes=None,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def make_manual(manual_id="manual-1", model_id="model-1", status="active", **overrides):
    fields = dict(
        id=manual_id,
        model_id=model_id,
        title="25VNA8 Service and Troubleshooting Guide",
        manual_type="service",
        page_count=64,
        status=status,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def failing_embedder():
    return FakeLLM(embed_error=EmbeddingServiceError("embedding API down"))
