"""Technical pattern detection for manual questions.

Finds the parts of a question that embeddings handle badly (diagnostic
codes, LED names, part/model/serial numbers, ratings, terminal letters,
procedure words) and turns them into ILIKE wildcards for keyword search.
"A40" and "A41" embed almost identically, so these must match exactly.

Rules favour recall: a spurious keyword hit only costs a slot in the
merged result, a missed one drops the exact table row the technician
asked about.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable

logger = logging.getLogger("manualchat.patterns")


@dataclass(frozen=True)
class PatternMatch:
    """One recognised fragment and the wildcards it contributes."""
    label: str
    search_terms: tuple[str, ...]


@dataclass
class PatternDetection:
    patterns: list[str] = field(default_factory=list)
    search_terms: list[str] = field(default_factory=list)

    @property
    def has_pattern(self) -> bool:
        return bool(self.patterns)


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

class PatternRule:
    """Regex-driven rule: every match yields a label and wildcard variants."""

    name = "rule"
    regex: re.Pattern

    def prepare(self, question: str) -> str:
        return question

    def label(self, m: re.Match) -> str:
        return m.group(0)

    def terms(self, m: re.Match) -> Iterable[str]:
        raise NotImplementedError

    def match(self, question: str) -> list[PatternMatch]:
        return [
            PatternMatch(self.label(m), tuple(self.terms(m)))
            for m in self.regex.finditer(self.prepare(question))
        ]


class DiagnosticCodeRule(PatternRule):
    """"flash code 74", "error 123", "fault code E1", "alarm code B12"."""

    name = "diagnostic_code"
    regex = re.compile(
        r"\b(?:flash|error|fault|diagnostic|trouble|alarm|the)?\s*code\s*[:\s]*"
        r"([a-z]+\d+|[a-z]?\d+[a-z]?)\b",
        re.IGNORECASE,
    )

    def terms(self, m):
        code = m.group(1).upper()
        return (
            f"%{code}%",
            f"% {code}%",
            f"%{code} %",
            f"% {code} %",
            f"%code%{code}%",
            f"%Code {code}%",
            f"%CODE{code}%",
            f"%{code.lower()}%",
        )


class StandaloneCodeRule(PatternRule):
    """Bare option/diagnostic codes: "What is A40?", "E1"."""

    name = "standalone_code"
    regex = re.compile(r"\b([A-Z]\d+[A-Z]?)\b")

    def prepare(self, question):
        return question.upper()

    def label(self, m):
        return f"standalone:{m.group(1)}"

    def terms(self, m):
        code = m.group(1)
        return (
            f"%{code}%",
            f"% {code}%",
            f"%{code} %",
            f"% {code} %",
            f"%CODE{code}%",
        )


class IndicatorRule(PatternRule):
    """"LED 200", "light 3", "indicator 5"."""

    name = "indicator"
    regex = re.compile(r"\b(led|light|indicator|display|lamp)\s*(\d{1,3})\b", re.IGNORECASE)

    def terms(self, m):
        kind, num = m.group(1), m.group(2)
        return (
            f"%{kind.upper()}{num}%",
            f"%{kind.upper()} {num}%",
            f"%{kind.lower()}{num}%",
            f"%{kind.lower()} {num}%",
        )


class ShortLedRule(PatternRule):
    """Board LED short forms: "LD1", "ld5"."""

    name = "short_led"
    regex = re.compile(r"\bld(\d+)\b", re.IGNORECASE)

    def terms(self, m):
        num = m.group(1)
        return (f"%LD{num}%", f"%ld{num}%", f"%LD {num}%", f"%Ld{num}%")


class ComponentIndicatorRule(PatternRule):
    """"status light", "power indicator" (component name of 5+ letters)."""

    name = "component_indicator"
    regex = re.compile(r"\b([a-z]{5,})\s+(led|light|indicator|display|lamp)\b", re.IGNORECASE)

    def terms(self, m):
        phrase = m.group(0)
        return (f"%{phrase}%", f"%{phrase.upper()}%", f"%{_capitalize(phrase)}%")


class LabeledIdentifierRule(PatternRule):
    """Identifier after an explicit label: "part 12345", "P/N: ABC-123", "serial X1234"."""

    def __init__(self, name: str, regex: str, lowercase_variant: bool = False):
        self.name = name
        self.regex = re.compile(regex, re.IGNORECASE)
        self.lowercase_variant = lowercase_variant

    def terms(self, m):
        ident = m.group(1)
        variants = [f"%{ident}%", f"%{ident.upper()}%"]
        if self.lowercase_variant:
            variants.append(f"%{ident.lower()}%")
        return variants


class MeasurementRule(PatternRule):
    """Ratings: "3 ton", "208 volt", "1200 cfm", "16 seer"."""

    name = "measurement"
    regex = re.compile(
        r"\b(\d+\.?\d*)\s*(ton|btu|btuh|volt|amp|hz|cfm|seer|eer|cop)\b",
        re.IGNORECASE,
    )

    def terms(self, m):
        return (f"%{m.group(0)}%",)


class SizeRule(PatternRule):
    """"size 24B", "model 036", only with an explicit prefix."""

    name = "size"
    regex = re.compile(r"\b(?:size|model)\s+(\d{2,3}[A-Z]?)\b", re.IGNORECASE)

    def terms(self, m):
        num = m.group(1)
        return (f"%Size {num}%", f"%Sizes%{num}%")


class TerminalRule(PatternRule):
    """"terminal R", "wire C", "connect Y1", "pin w2"."""

    name = "terminal"
    regex = re.compile(
        r"\b(terminal|wire|connect|pin)\s+([a-z]\d?|[a-z]{1,2}\d*)\b",
        re.IGNORECASE,
    )

    def terms(self, m):
        terminal = m.group(2)
        return (f"%{terminal}%", f"%{terminal.upper()}%", f"%{terminal.lower()}%")


BROAD_TERMS: tuple[str, ...] = (
    "reset", "reboot", "restart", "power cycle",
    "troubleshoot", "diagnose", "problem", "issue",
    "startup", "start-up", "start up", "initial startup",
    "shutdown", "shut down", "turn off",
    "maintenance", "service", "cleaning", "filter",
    "calibration", "adjustment", "setting",
    "installation", "install", "mounting",
    "wiring", "electrical", "connection",
    "safety", "warning", "caution",
    "operation", "operating", "how to use",
    "specifications", "spec", "capacity", "rating",
    "overview", "introduction", "description",
    # refrigerant handling
    "refrigerant", "r-134a", "r-410a", "r-22", "freon",
    "charging", "charge", "recharge",
    "evacuate", "evacuation", "vacuum",
    "recovery", "recover",
    "transfer", "transferring",
    "pumpout", "pump out", "pump-out",
    "storage", "tank", "storage tank",
    "leak test", "leak check", "leak detection",
    "pressure test", "pressure check",
    # general procedures
    "replace", "replacement", "change",
    "repair", "fix",
    "inspect", "inspection", "check",
    "remove", "removal", "disconnect",
    "valve", "valves",
    "compressor", "condenser", "evaporator",
)


class BroadTermRule(PatternRule):
    """Procedure and component vocabulary, matched as plain substrings."""

    name = "broad_term"

    def __init__(self, vocabulary: Iterable[str] = BROAD_TERMS):
        self.vocabulary = tuple(vocabulary)

    def match(self, question: str) -> list[PatternMatch]:
        lowered = question.lower()
        return [
            PatternMatch(
                f"broad:{term}",
                (f"%{term}%", f"%{_capitalize(term)}%", f"%{term.upper()}%"),
            )
            for term in self.vocabulary
            if term in lowered
        ]


DEFAULT_RULES: tuple[PatternRule, ...] = (
    DiagnosticCodeRule(),
    StandaloneCodeRule(),
    IndicatorRule(),
    ShortLedRule(),
    ComponentIndicatorRule(),
    LabeledIdentifierRule(
        "part_number",
        r"\b(?:part|component|p/n)[:\s#]*([a-z0-9-]{3,})\b",
        lowercase_variant=True,
    ),
    LabeledIdentifierRule("model_number", r"\b(?:model)[:\s]*([a-z0-9-]{3,})\b"),
    LabeledIdentifierRule("serial_number", r"\b(?:serial)[:\s#]*([a-z0-9-]{4,})\b"),
    MeasurementRule(),
    SizeRule(),
    TerminalRule(),
    BroadTermRule(),
)


def detect_technical_patterns(
    question: str,
    rules: Iterable[PatternRule] = DEFAULT_RULES,
) -> PatternDetection:
    """Run every rule over the question, in order.

    Search terms are de-duplicated keeping first occurrence, so the
    keyword query stays the same for the same question.
    """
    detection = PatternDetection()
    seen: set[str] = set()

    for rule in rules:
        for match in rule.match(question):
            detection.patterns.append(match.label)
            for term in match.search_terms:
                if term not in seen:
                    seen.add(term)
                    detection.search_terms.append(term)

    if detection.has_pattern:
        logger.info("Detected patterns: %s", ", ".join(detection.patterns))
    return detection
