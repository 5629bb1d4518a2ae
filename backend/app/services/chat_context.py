"""Chat context assembly for one question about a saved unit.

Given unit id + question (+ recent turns) → ChatContext with:
  - unit and model snapshot (nickname, OEM, model number, specifications)
  - active manuals of the model
  - hybrid-searched manual sections, ranked, at most section_result_limit
  - conversation history block (verbatim or summarized)
  - coverage signal: no manuals / no sections / low confidence / ok

No-manual and no-section outcomes are data, not exceptions. Only an
unknown unit id and external service failures (embedding, database) raise.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional, Sequence

from services.conversation import (
    ConversationTurn,
    build_conversation_context,
    summarize_if_needed,
)
from services.llm_client import estimate_tokens
from services.manual_search import (
    SearchHit,
    average_similarity,
    gather_cancelling,
    hybrid_search,
)

logger = logging.getLogger("manualchat.chat_context")


class UnitNotFoundError(LookupError):
    """Saved unit id does not resolve to a record."""

    def __init__(self, unit_id: Any):
        self.unit_id = unit_id
        super().__init__(f"Unit not found: {unit_id}")


@dataclass(frozen=True)
class RetrievalConfig:
    vector_similarity_floor: float = 0.55
    low_confidence_threshold: float = 0.60
    section_result_limit: int = 20
    conversation_window_size: int = 10
    summarization_token_budget: int = 8000
    min_section_chars: int = 50

    @classmethod
    def from_settings(cls, s) -> "RetrievalConfig":
        return cls(
            vector_similarity_floor=s.RETRIEVAL_VECTOR_SIMILARITY_FLOOR,
            low_confidence_threshold=s.RETRIEVAL_LOW_CONFIDENCE_THRESHOLD,
            section_result_limit=s.RETRIEVAL_SECTION_RESULT_LIMIT,
            conversation_window_size=s.RETRIEVAL_CONVERSATION_WINDOW,
            summarization_token_budget=s.RETRIEVAL_SUMMARIZATION_TOKEN_BUDGET,
            min_section_chars=s.RETRIEVAL_MIN_SECTION_CHARS,
        )


class Coverage(str, enum.Enum):
    NO_MANUALS = "no_manuals"
    NO_SECTIONS = "no_sections"
    LOW_CONFIDENCE = "low_confidence"
    OK = "ok"


@dataclass(frozen=True)
class UnitSnapshot:
    id: Any
    nickname: str
    serial_number: Optional[str] = None
    location: Optional[str] = None
    install_date: Optional[date] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ModelSnapshot:
    id: Any
    model_number: str
    product_line: str
    oem: str
    specifications: Optional[dict] = None


@dataclass(frozen=True)
class ManualSummary:
    id: Any
    title: str
    type: str
    page_count: int = 0


@dataclass
class ChatContext:
    unit: UnitSnapshot
    model: ModelSnapshot
    manuals: list[ManualSummary] = field(default_factory=list)
    relevant_sections: list[SearchHit] = field(default_factory=list)
    conversation_history: Optional[str] = None
    low_confidence_threshold: float = 0.60

    @property
    def avg_similarity(self) -> float:
        return average_similarity(self.relevant_sections)

    @property
    def low_confidence(self) -> bool:
        # Zero means "no sections", reported separately
        avg = self.avg_similarity
        return 0 < avg < self.low_confidence_threshold

    @property
    def coverage(self) -> Coverage:
        if not self.manuals:
            return Coverage.NO_MANUALS
        if not self.relevant_sections:
            return Coverage.NO_SECTIONS
        if self.low_confidence:
            return Coverage.LOW_CONFIDENCE
        return Coverage.OK


def _as_turn(turn) -> ConversationTurn:
    if isinstance(turn, ConversationTurn):
        return turn
    return ConversationTurn(
        role=turn["role"], content=turn["content"], timestamp=turn.get("timestamp")
    )


class ContextAssembler:
    """Builds ChatContext objects.

    Args:
        store: ManualStore-like object (get_unit, list_active_manuals and
            the section queries used by hybrid search).
        llm: Embedding + completion client (embed, complete).
        config: Retrieval thresholds and limits.
    """

    def __init__(self, store, llm, config: Optional[RetrievalConfig] = None):
        self.store = store
        self.llm = llm
        self.config = config or RetrievalConfig()

    async def gather_chat_context(
        self,
        unit_id: Any,
        question: str,
        limit: Optional[int] = None,
        conversation_history: Optional[Sequence] = None,
    ) -> ChatContext:
        """Collect everything the system prompt needs for one question.

        Raises:
            UnitNotFoundError: unit_id does not exist.
            EmbeddingServiceError: the question could not be embedded.
        """
        cfg = self.config
        if limit is None:
            limit = cfg.section_result_limit
        history = [_as_turn(t) for t in (conversation_history or [])]
        history = history[-cfg.conversation_window_size:] if cfg.conversation_window_size else []

        logger.info("Gathering context for unit %s (%d history turns)", unit_id, len(history))

        unit = await self.store.get_unit(unit_id)
        if unit is None:
            raise UnitNotFoundError(unit_id)

        model = unit.model
        product_line = model.product_line
        logger.info(
            "Unit: %s (%s %s)", unit.nickname, product_line.oem.name, model.model_number
        )

        manuals = await self.store.list_active_manuals(model.id)
        manual_ids = [m.id for m in manuals]
        logger.info("Found %d active manuals", len(manuals))

        sections, conversation = await gather_cancelling(
            self._search(question, manual_ids, limit),
            self._conversation(history),
        )

        context = ChatContext(
            unit=UnitSnapshot(
                id=unit.id,
                nickname=unit.nickname,
                serial_number=unit.serial_number or None,
                location=unit.location or None,
                install_date=unit.install_date or None,
                notes=unit.notes or None,
            ),
            model=ModelSnapshot(
                id=model.id,
                model_number=model.model_number,
                product_line=product_line.name,
                oem=product_line.oem.name,
                specifications=model.specifications,
            ),
            manuals=[
                ManualSummary(
                    id=m.id,
                    title=m.title,
                    type=m.manual_type,
                    page_count=m.page_count or 0,
                )
                for m in manuals
            ],
            relevant_sections=sections,
            conversation_history=conversation or None,
            low_confidence_threshold=cfg.low_confidence_threshold,
        )

        if context.coverage is Coverage.LOW_CONFIDENCE:
            logger.warning(
                "Low similarity score: %.2f - answer may not be accurate",
                context.avg_similarity,
            )
        else:
            logger.info("Coverage: %s", context.coverage.value)
        return context

    async def _search(self, question: str, manual_ids: list, limit: int) -> list[SearchHit]:
        if not manual_ids:
            return []
        return await hybrid_search(
            self.store,
            self.llm,
            question,
            manual_ids,
            limit=limit,
            min_similarity=self.config.vector_similarity_floor,
            min_content_length=self.config.min_section_chars,
        )

    async def _conversation(self, history: list[ConversationTurn]) -> str:
        if not history:
            return ""
        raw = build_conversation_context(history)
        block = await summarize_if_needed(
            raw, self.llm, token_budget=self.config.summarization_token_budget
        )
        logger.info("Conversation context: %d tokens", estimate_tokens(block))
        return block
