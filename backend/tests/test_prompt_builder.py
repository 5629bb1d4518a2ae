"""Tests for system prompt rendering."""
from datetime import date

from services.chat_context import (
    ChatContext,
    ManualSummary,
    ModelSnapshot,
    UnitSnapshot,
)
from services.manual_search import SearchHit
from services.prompt_builder import (
    DEFAULT_MANUAL_TITLE,
    NO_SECTIONS_TEXT,
    build_system_prompt,
)

from conftest import make_row

MANUAL_TITLE = "25VNA8 Service and Troubleshooting Guide"


def context(sections=(), manuals=True, history=None, **unit_fields):
    unit = dict(id="unit-1", nickname="Roof unit #2", serial_number="4518E12345")
    unit.update(unit_fields)
    return ChatContext(
        unit=UnitSnapshot(**unit),
        model=ModelSnapshot(
            id="model-1",
            model_number="25VNA8",
            product_line="Infinity Series",
            oem="Carrier",
            specifications={"tonnage": 3},
        ),
        manuals=[ManualSummary(id="manual-1", title=MANUAL_TITLE, type="service", page_count=64)]
        if manuals else [],
        relevant_sections=list(sections),
        conversation_history=history,
    )


def section(content, similarity=0.9, **row_fields):
    return SearchHit.from_row(make_row(content, **row_fields), similarity, is_keyword_match=False)


class TestBuildSystemPrompt:

    def test_sections_rendered_with_source(self):
        prompt = build_system_prompt(context([
            section("Flash code 45 means thermistor fault.", 1.0,
                    section_title="Diagnostic Codes", page_reference="Page 22"),
            section("Thermistor resistance table.", 0.734, section_title="Thermistors",
                    page_reference="Page 38"),
        ]))

        assert "### Section 1: Diagnostic Codes" in prompt
        assert f"**Source**: {MANUAL_TITLE}, Page 22" in prompt
        assert "**Relevance**: 100%" in prompt
        assert "### Section 2: Thermistors" in prompt
        assert "**Relevance**: 73%" in prompt
        assert "Flash code 45 means thermistor fault." in prompt
        assert "NO MANUAL SECTIONS WERE RETRIEVED" not in prompt

    def test_sections_in_rank_order(self):
        prompt = build_system_prompt(context([
            section("first", section_title="Alpha"),
            section("second", section_title="Beta"),
        ]))
        assert prompt.index("Section 1: Alpha") < prompt.index("Section 2: Beta")

    def test_citation_example_uses_real_title(self):
        prompt = build_system_prompt(context([section("x")]))
        assert f'"{MANUAL_TITLE}, Page 22"' in prompt
        assert "NEVER say" in prompt

    def test_no_sections_fallback(self):
        prompt = build_system_prompt(context())
        assert NO_SECTIONS_TEXT in prompt
        assert "Contacting Carrier technical support" in prompt
        assert "### Section 1:" not in prompt

    def test_no_manuals_default_title(self):
        prompt = build_system_prompt(context(manuals=False))
        assert f"{DEFAULT_MANUAL_TITLE}, Page 22" in prompt
        assert "No manuals are available" in prompt

    def test_unit_identity(self):
        prompt = build_system_prompt(context(install_date=date(2021, 5, 14), location=None))
        assert "Carrier 25VNA8" in prompt
        assert "**Unit Name**: Roof unit #2" in prompt
        assert "**Serial Number**: 4518E12345" in prompt
        assert "**Installed**: 2021-05-14" in prompt
        assert "**Location**" not in prompt
        assert '"tonnage": 3' in prompt

    def test_serial_omitted_when_missing(self):
        prompt = build_system_prompt(context(serial_number=None))
        assert "Serial Number" not in prompt

    def test_history_block(self):
        prompt = build_system_prompt(context(history="User: flash code 74\n\nAssistant: Check the switch."))
        assert "## CONVERSATION HISTORY" in prompt
        assert "User: flash code 74" in prompt

    def test_no_history_block(self):
        assert "## CONVERSATION HISTORY" not in build_system_prompt(context())

    def test_no_unfilled_placeholders(self):
        prompt = build_system_prompt(context([section("x")]))
        assert "{oem}" not in prompt
        assert "{example_title}" not in prompt
        assert "{no_sections}" not in prompt
