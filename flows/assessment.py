"""
PHQ-4 Assessment Flow
=====================
intro (0) -> question 1..4 -> complete (5).

flow_step n in 1..4 means the session is waiting for the answer to question n.
Invalid answers re-emit the same question and leave the answers untouched.
"""

import logging

from core import fsm
from core.errors import ValidationError
from core.models import ActionType, AssessmentContext, Flow, FlowResponse, Priority, Session
from core.phq4 import QUESTION_COUNT, build_record, needs_referral, validate_answer
from database.models import ReferralRequest, ReferralType, Severity, Urgency
from flows.base import BaseFlow
from nlp.preprocessor import any_phrase, normalize_text, parse_leading_int

logger = logging.getLogger(__name__)

ANSWER_KEYS = ['not_at_all', 'several_days', 'more_than_half', 'nearly_every_day']
LATER_PHRASES = ['later', 'maybe later', 'skip', 'not now', 'no', '稍后', 'nanti', 'lewati']
LEARN_PHRASES = ['learn', 'learn more', 'more info', 'explain', 'what is', '了解', 'pelajari']


class AssessmentFlow(BaseFlow):
    flow = Flow.ASSESSMENT

    def start(self, text: str, session: Session) -> FlowResponse:
        return self._intro(session, next_context=AssessmentContext())

    def handle(self, text: str, session: Session) -> FlowResponse:
        step = session.flow_step
        if step == 0:
            return self._handle_intro(text, session)
        if 1 <= step <= QUESTION_COUNT:
            return self._handle_answer(text, session, step)
        logger.warning(f"Assessment in unexpected step {step}; restarting intro")
        return self.start(text, session)

    # --- Step 0 ---

    def _intro(self, session, extra_explanation=False, next_context=None) -> FlowResponse:
        lang = session.language
        message = self.text('phq4_intro', lang)
        if extra_explanation:
            message = f"{self.text('phq4_explanation', lang)}\n\n{message}"
        return FlowResponse(
            message=message,
            message_key='phq4_explanation' if extra_explanation else 'phq4_intro',
            quick_replies=[self.text(k, lang) for k in ('start_now', 'learn_more', 'maybe_later')],
            next_step=0,
            context=next_context,
            priority=Priority.LOW,
        )

    def _handle_intro(self, text, session) -> FlowResponse:
        normalized = normalize_text(text)
        if any_phrase(LATER_PHRASES, normalized):
            return self.respond('assessment_postponed', session.language, should_end_flow=True)
        if any_phrase(LEARN_PHRASES, normalized):
            return self._intro(session, extra_explanation=True)
        return self._question(1, session, AssessmentContext(answers=[]))

    # --- Steps 1-4 ---

    def _question(self, number, session, next_context=None) -> FlowResponse:
        lang = session.language
        return self.respond(
            f'phq4_q{number}',
            lang,
            quick_replies=[f"{i} - {self.text(key, lang)}" for i, key in enumerate(ANSWER_KEYS)],
            next_step=number,
            context=next_context,
            priority=Priority.LOW,
        )

    def _handle_answer(self, text, session, step) -> FlowResponse:
        try:
            value = parse_leading_int(text)
            if value is None:
                raise ValidationError("PHQ-4 answer is not a number", step)
            validate_answer(value)
        except ValidationError as e:
            logger.info(f"Invalid PHQ-4 answer at step {step}: {e}")
            return self._question(step, session)

        current = session.context.answers if isinstance(session.context, AssessmentContext) else []
        answers = list(current) + [value]
        next_step = fsm.advance(Flow.ASSESSMENT, step)

        if len(answers) < QUESTION_COUNT:
            return self._question(next_step, session, AssessmentContext(answers=answers))
        return self._complete(answers, session, next_step)

    # --- Step 5 ---

    def _complete(self, answers, session, next_step) -> FlowResponse:
        record = build_record(session.user_id, answers, session.language)
        severe = record.severity_level == Severity.SEVERE
        logger.info(
            f"PHQ-4 completed: total={record.total_score} severity={record.severity_level.value}"
        )

        referral = None
        if needs_referral(record.total_score):
            referral = ReferralRequest(
                urgency=Urgency.HIGH if severe else Urgency.MEDIUM,
                referral_type=ReferralType.CRISIS if severe else ReferralType.COUNSELING,
                notes=f"PHQ-4 total {record.total_score} ({record.severity_level.value})",
            )

        return self.respond(
            f'phq4_result_{record.severity_level.value}',
            session.language,
            buttons=self.buttons([('browse_resources', 'view_resources'), ('main_menu', 'main_menu')], session.language),
            next_step=next_step,
            should_end_flow=True,
            priority=Priority.HIGH if severe else Priority.MEDIUM,
            actions=[self.action(session, ActionType.SAVE_ASSESSMENT, record=record.model_dump(mode='json'))],
            referral=referral,
        )
