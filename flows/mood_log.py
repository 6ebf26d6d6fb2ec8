"""
Mood Log Flow
=============
entry (score 1-10) -> emotion_selection -> notes -> logged.
"""

import logging
from typing import List, Optional

from core import fsm
from core.errors import ValidationError
from core.models import Action, ActionType, Flow, FlowResponse, MoodContext, Priority, Session
from database.models import MoodRecord
from flows.base import BaseFlow
from nlp.crisis_detector import CrisisDetector, CrisisLevel
from nlp.preprocessor import any_phrase, normalize_text, parse_leading_int

logger = logging.getLogger(__name__)

MIN_SCORE = 1
MAX_SCORE = 10
SKIP_PHRASES = ['skip', 'none', 'nothing', 'no', '跳过', 'lewati']

ENTRY, EMOTIONS, NOTES = 0, 1, 2


def parse_mood_score(text: str) -> int:
    value = parse_leading_int(text)
    if value is None or not MIN_SCORE <= value <= MAX_SCORE:
        raise ValidationError(f"Mood score must be {MIN_SCORE}-{MAX_SCORE}", ENTRY)
    return value


def parse_emotions(text: str) -> List[str]:
    """Split a comma-separated reply into trimmed, non-empty tags."""
    separators = text.replace('，', ',').replace('、', ',')
    return [tag.strip().lower() for tag in separators.split(',') if tag.strip()]


class MoodLogFlow(BaseFlow):
    flow = Flow.MOOD_LOG

    def __init__(self, translator, detector: Optional[CrisisDetector] = None):
        super().__init__(translator)
        self.detector = detector or CrisisDetector()

    def start(self, text: str, session: Session) -> FlowResponse:
        return self._score_prompt(session, MoodContext())

    def handle(self, text: str, session: Session) -> FlowResponse:
        step = session.flow_step
        if step == ENTRY:
            return self._handle_score(text, session)
        if step == EMOTIONS:
            return self._handle_emotions(text, session)
        if step == NOTES:
            return self._handle_notes(text, session)
        return self.start(text, session)

    def _score_prompt(self, session, context=None) -> FlowResponse:
        return self.respond(
            'mood_score_prompt',
            session.language,
            quick_replies=[str(n) for n in range(MIN_SCORE, MAX_SCORE + 1)],
            next_step=ENTRY,
            context=context,
        )

    def _handle_score(self, text, session) -> FlowResponse:
        try:
            score = parse_mood_score(text)
        except ValidationError:
            return self._score_prompt(session)
        return self.respond(
            'mood_emotion_prompt',
            session.language,
            next_step=fsm.advance(Flow.MOOD_LOG, ENTRY),
            context=MoodContext(score=score),
        )

    def _handle_emotions(self, text, session) -> FlowResponse:
        current = session.context if isinstance(session.context, MoodContext) else MoodContext()
        return self.respond(
            'mood_notes_prompt',
            session.language,
            quick_replies=[self.text('skip', session.language)],
            next_step=fsm.advance(Flow.MOOD_LOG, EMOTIONS),
            context=current.model_copy(update={'emotions': parse_emotions(text)}),
        )

    def _handle_notes(self, text, session) -> FlowResponse:
        save = self.finalize(text, session)
        return self.respond(
            'mood_logged',
            session.language,
            buttons=self.buttons([('main_menu', 'main_menu')], session.language),
            next_step=fsm.advance(Flow.MOOD_LOG, NOTES),
            should_end_flow=True,
            priority=Priority.LOW,
            actions=[save],
        )

    def finalize(self, notes: str, session: Session) -> Action:
        """Build the save-mood action for the notes step, re-scanning the notes for crisis signals."""
        context = session.context if isinstance(session.context, MoodContext) else MoodContext()
        notes = (notes or '').strip()
        if any_phrase(SKIP_PHRASES, normalize_text(notes)) and len(notes.split()) == 1:
            notes = ''
        level = self.detector.detect(notes) if notes else CrisisLevel.NONE
        record = MoodRecord(
            user_id=session.user_id,
            score=context.score if context.score is not None else MIN_SCORE,
            emotions=context.emotions,
            notes=notes,
            crisis_level=level.value,
        )
        return self.action(session, ActionType.SAVE_MOOD, record=record.model_dump(mode='json'))

    def is_awaiting_notes(self, session: Session) -> bool:
        return session.current_flow == Flow.MOOD_LOG and session.flow_step == NOTES
