import json
import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Tuple

from core.errors import ClassificationMiss
from nlp.preprocessor import any_phrase, normalize_text

logger = logging.getLogger(__name__)

RULES_PATH = os.path.join(os.path.dirname(__file__), '..', 'config', 'intent_rules.json')


@dataclass(frozen=True)
class IntentRule:
    intent: str
    phrases: Tuple[str, ...]


def load_rules(path: Optional[str] = None) -> Tuple[List[IntentRule], str]:
    with open(path or RULES_PATH, 'r', encoding='utf-8') as f:
        data = json.load(f)
    rules = [IntentRule(r['intent'], tuple(r['phrases'])) for r in data['rules']]
    return rules, data.get('reset_keyword', 'reset')


INTENT_RULES, RESET_KEYWORD = load_rules()


def classify_intent(text: str, rules: Optional[List[IntentRule]] = None) -> str:
    """
    Classify an idle-state message against the ordered rule table.

    The first rule with a matching phrase wins; rule order is the tie-break.

    Raises:
        ClassificationMiss: when no rule matches
    """
    normalized = normalize_text(text)
    for rule in rules if rules is not None else INTENT_RULES:
        if any_phrase(rule.phrases, normalized):
            logger.debug(f"Intent matched: {rule.intent}")
            return rule.intent
    raise ClassificationMiss(f"no intent rule matched ({len(normalized)} chars)")


def is_reset(text: str) -> bool:
    return normalize_text(text) == RESET_KEYWORD
