"""
PHQ-4 score calculator.

Items 1-2 form the depression subscale (PHQ-2), items 3-4 the anxiety
subscale (GAD-2). Each item is scored 0-3, so the total runs 0-12.
"""

from typing import NamedTuple, Sequence

from core.errors import ValidationError
from database.models import AssessmentRecord, Severity

QUESTION_COUNT = 4
MIN_ANSWER = 0
MAX_ANSWER = 3
REFERRAL_THRESHOLD = 6


class Phq4Score(NamedTuple):
    depression: int
    anxiety: int
    total: int
    severity: Severity


def severity_for(total: int) -> Severity:
    if total <= 2:
        return Severity.MINIMAL
    if total <= 5:
        return Severity.MILD
    if total <= 8:
        return Severity.MODERATE
    return Severity.SEVERE


def validate_answer(value: int) -> int:
    if not MIN_ANSWER <= value <= MAX_ANSWER:
        raise ValidationError(f"PHQ-4 answer out of range: {value}")
    return value


def calculate_scores(answers: Sequence[int]) -> Phq4Score:
    if len(answers) != QUESTION_COUNT:
        raise ValidationError(f"PHQ-4 needs {QUESTION_COUNT} answers, got {len(answers)}")
    for value in answers:
        validate_answer(value)
    depression = answers[0] + answers[1]
    anxiety = answers[2] + answers[3]
    total = depression + anxiety
    return Phq4Score(depression, anxiety, total, severity_for(total))


def build_record(user_id: str, answers: Sequence[int], language: str = "en") -> AssessmentRecord:
    score = calculate_scores(answers)
    return AssessmentRecord(
        user_id=user_id,
        answers=list(answers),
        depression_score=score.depression,
        anxiety_score=score.anxiety,
        total_score=score.total,
        severity_level=score.severity,
        language=language,
    )


def needs_referral(total: int) -> bool:
    return total >= REFERRAL_THRESHOLD
