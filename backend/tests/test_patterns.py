"""Tests for technical pattern detection."""
import re

import pytest

from services.patterns import (
    BROAD_TERMS,
    BroadTermRule,
    DiagnosticCodeRule,
    PatternRule,
    detect_technical_patterns,
)


class TestDiagnosticCodes:
    """Diagnostic/error/fault codes must always trigger keyword search."""

    def test_flash_code_detected(self):
        """A flash code question yields the bare and CODE-prefixed wildcards."""
        detection = detect_technical_patterns("flash code 74")
        assert detection.has_pattern
        assert "%74%" in detection.search_terms
        assert "%CODE74%" in detection.search_terms
        assert "% 74 %" in detection.search_terms
        assert "%Code 74%" in detection.search_terms

    def test_alphanumeric_fault_code_uppercased(self):
        detection = detect_technical_patterns("what does fault code e1 mean")
        assert "%E1%" in detection.search_terms
        assert "%e1%" in detection.search_terms

    def test_standalone_code(self):
        """Bare codes like A40 are detected without a "code" label."""
        detection = detect_technical_patterns("Tell me about a40")
        assert "standalone:A40" in detection.patterns
        assert "%A40%" in detection.search_terms
        assert "%CODE A40%" not in detection.search_terms

    def test_similar_codes_stay_distinct(self):
        a40 = detect_technical_patterns("What is A40?").search_terms
        a41 = detect_technical_patterns("What is A41?").search_terms
        assert "%A40%" in a40 and "%A40%" not in a41
        assert "%A41%" in a41


class TestIndicators:

    def test_led_with_number(self):
        detection = detect_technical_patterns("LED 3 is blinking")
        for term in ("%LED3%", "%LED 3%", "%led3%", "%led 3%"):
            assert term in detection.search_terms

    def test_short_led_form_case_insensitive(self):
        detection = detect_technical_patterns("ld1 keeps flashing")
        assert detection.has_pattern
        for term in ("%LD1%", "%ld1%", "%LD 1%", "%Ld1%"):
            assert term in detection.search_terms

    def test_component_indicator_phrase(self):
        detection = detect_technical_patterns("the status light is red")
        assert "status light" in detection.patterns
        assert "%STATUS LIGHT%" in detection.search_terms
        assert "%Status light%" in detection.search_terms

    def test_short_component_name_ignored(self):
        """Component names under 5 letters ("the led") are not phrases."""
        detection = detect_technical_patterns("the led")
        assert not any(p.endswith(" led") for p in detection.patterns)


class TestIdentifiers:

    def test_part_number(self):
        detection = detect_technical_patterns("Where is P/N: ABC-123 used")
        assert "%ABC-123%" in detection.search_terms
        assert "%abc-123%" in detection.search_terms

    def test_serial_number(self):
        detection = detect_technical_patterns("serial: X12345")
        assert "%X12345%" in detection.search_terms

    def test_model_number(self):
        detection = detect_technical_patterns("model 25vna8 wiring")
        assert "%25vna8%" in detection.search_terms
        assert "%25VNA8%" in detection.search_terms

    def test_size_reference(self):
        detection = detect_technical_patterns("charging chart for size 24B")
        assert "%Size 24B%" in detection.search_terms
        assert "%Sizes%24B%" in detection.search_terms


class TestMeasurementsAndTerminals:

    @pytest.mark.parametrize("question, term", [
        ("is this a 3 ton unit", "%3 ton%"),
        ("208 volt supply", "%208 volt%"),
        ("airflow of 1200 cfm", "%1200 cfm%"),
        ("rated 16 seer", "%16 seer%"),
    ])
    def test_measurement(self, question, term):
        assert term in detect_technical_patterns(question).search_terms

    def test_terminal_reference(self):
        detection = detect_technical_patterns("what goes on terminal R")
        assert "%R%" in detection.search_terms
        assert "%r%" in detection.search_terms

    def test_pin_designator(self):
        detection = detect_technical_patterns("voltage at pin y1")
        assert "%Y1%" in detection.search_terms


class TestBroadTerms:

    def test_broad_terms_three_forms(self):
        detection = detect_technical_patterns("How do I install the compressor")
        assert "broad:install" in detection.patterns
        assert "broad:compressor" in detection.patterns
        for term in ("%compressor%", "%Compressor%", "%COMPRESSOR%"):
            assert term in detection.search_terms

    def test_multiword_broad_term(self):
        detection = detect_technical_patterns("steps for the pump out procedure")
        assert "broad:pump out" in detection.patterns
        assert "%PUMP OUT%" in detection.search_terms

    def test_vocabulary_size(self):
        assert len(BROAD_TERMS) >= 40


class TestDetection:

    def test_no_pattern_passthrough(self):
        detection = detect_technical_patterns("hello")
        assert detection.has_pattern is False
        assert detection.patterns == []
        assert detection.search_terms == []

    def test_deterministic(self):
        question = "How do I reset flash code 45 on LD1?"
        first = detect_technical_patterns(question)
        second = detect_technical_patterns(question)
        assert first.patterns == second.patterns
        assert first.search_terms == second.search_terms

    def test_search_terms_unique(self):
        detection = detect_technical_patterns("error code 45 and fault code 45")
        assert len(detection.search_terms) == len(set(detection.search_terms))

    def test_custom_rule_set(self):
        """Rules are pluggable; only the given rules run."""

        class ValveTagRule(PatternRule):
            name = "valve_tag"
            regex = re.compile(r"\bV-(\d+)\b")

            def terms(self, m):
                return (f"%V-{m.group(1)}%",)

        detection = detect_technical_patterns(
            "reset V-12 now", rules=[ValveTagRule(), DiagnosticCodeRule()]
        )
        assert detection.patterns == ["V-12"]
        assert detection.search_terms == ["%V-12%"]

    def test_broad_rule_custom_vocabulary(self):
        rule = BroadTermRule(["defrost"])
        matches = rule.match("Defrost board timing")
        assert [m.label for m in matches] == ["broad:defrost"]
