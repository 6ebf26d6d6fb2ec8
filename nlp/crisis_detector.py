"""
Crisis Detector
===============
Keyword/phrase crisis screening across every supported language.

- Runs against all language tables, not just the session language.
- critical: self-harm intent plus a time marker, or an explicit plan.
- high: self-harm ideation, severe distress, or someone else in danger.
- Benign idioms ("killed it at work") are stripped before matching.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from rapidfuzz import fuzz

from nlp.preprocessor import normalize_text

logger = logging.getLogger(__name__)

PATTERNS_PATH = os.getenv(
    "CRISIS_PATTERNS_PATH",
    os.path.join(os.path.dirname(__file__), "..", "config", "crisis_patterns.json"),
)
FUZZY_THRESHOLD = float(os.getenv("CRISIS_FUZZY_THRESHOLD", "85"))

_CATEGORIES = ("self_harm", "distress", "third_party", "lethality", "time_markers")


class CrisisLevel(str, Enum):
    NONE = "none"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class CrisisAssessment:
    level: CrisisLevel
    matched: List[str] = field(default_factory=list)
    language: Optional[str] = None

    @property
    def is_crisis(self) -> bool:
        return self.level != CrisisLevel.NONE


class CrisisDetector:
    """Scores a message as none/high/critical. When in doubt it says high."""

    def __init__(self, patterns: Optional[Dict] = None):
        data = patterns if patterns is not None else self._load_patterns()
        self.benign = [re.compile(p) for p in data.get("benign", [])]
        self.fuzzy_terms = [normalize_text(t) for t in data.get("fuzzy_terms", [])]
        self.tables: Dict[str, Dict[str, List[re.Pattern]]] = {}
        for language, table in data.get("languages", {}).items():
            self.tables[language] = {
                category: [re.compile(p) for p in table.get(category, [])]
                for category in _CATEGORIES
            }
        logger.info(f"Crisis detector loaded for languages: {', '.join(sorted(self.tables))}")

    @staticmethod
    def _load_patterns() -> Dict:
        with open(PATTERNS_PATH, "r", encoding="utf-8") as f:
            return json.load(f)

    def assess(self, text: str) -> CrisisAssessment:
        normalized = normalize_text(text)
        for idiom in self.benign:
            normalized = idiom.sub(" ", normalized)
        if not normalized.strip():
            return CrisisAssessment(CrisisLevel.NONE)

        best = CrisisAssessment(CrisisLevel.NONE)
        for language, table in self.tables.items():
            result = self._assess_language(language, table, normalized)
            if _rank(result.level) > _rank(best.level):
                best = result
            if best.level == CrisisLevel.CRITICAL:
                break

        if best.level == CrisisLevel.NONE:
            fuzzy_hit = self._fuzzy_match(normalized)
            if fuzzy_hit:
                best = CrisisAssessment(CrisisLevel.HIGH, [fuzzy_hit])

        if best.is_crisis:
            logger.warning(f"Crisis signal detected: level={best.level.value} language={best.language}")
        return best

    def detect(self, text: str) -> CrisisLevel:
        return self.assess(text).level

    def _assess_language(self, language, table, normalized) -> CrisisAssessment:
        def hits(category):
            return [p.pattern for p in table[category] if p.search(normalized)]

        lethality = hits("lethality")
        if lethality:
            return CrisisAssessment(CrisisLevel.CRITICAL, lethality, language)

        intent = hits("self_harm")
        if intent:
            if hits("time_markers"):
                return CrisisAssessment(CrisisLevel.CRITICAL, intent, language)
            return CrisisAssessment(CrisisLevel.HIGH, intent, language)

        concern = hits("third_party") + hits("distress")
        if concern:
            return CrisisAssessment(CrisisLevel.HIGH, concern, language)
        return CrisisAssessment(CrisisLevel.NONE)

    def _fuzzy_match(self, normalized: str) -> Optional[str]:
        """Typo tolerance for the strongest terms ("suicde", "sucidal")."""
        tokens = normalized.split()
        for term in self.fuzzy_terms:
            width = len(term.split())
            for i in range(len(tokens) - width + 1):
                window = " ".join(tokens[i:i + width])
                if len(window) >= 5 and fuzz.ratio(window, term) >= FUZZY_THRESHOLD:
                    return term
        return None


def _rank(level: CrisisLevel) -> int:
    return {CrisisLevel.NONE: 0, CrisisLevel.HIGH: 1, CrisisLevel.CRITICAL: 2}[level]
