"""
Flow Router
===========
- Crisis check first, on every message, whatever flow is active.
- Otherwise continue the active flow at its current step.
- From idle, the first matching intent rule picks a flow or a one-off reply.
"""

import logging
from typing import Dict, Optional, Tuple

from core.errors import ClassificationMiss
from core.models import EmptyContext, Flow, FlowResponse, InteractionType, Priority, Session
from flows.assessment import AssessmentFlow
from flows.base import BaseFlow
from flows.crisis import CrisisFlow, ResourceLookup, render_resources
from flows.mood_log import MoodLogFlow
from flows.onboarding import OnboardingFlow
from nlp.crisis_detector import CrisisAssessment, CrisisDetector, CrisisLevel
from nlp.intent import classify_intent
from nlp.translator import Translator

logger = logging.getLogger(__name__)

GENERAL_RESOURCE_CATEGORY = "general"
GENERAL_RESOURCE_LIMIT = 5


class FlowRouter:
    """Decides which flow handles a message and returns its response."""

    def __init__(self, translator: Translator, resource_lookup: ResourceLookup,
                 detector: Optional[CrisisDetector] = None):
        self.translator = translator
        self.resource_lookup = resource_lookup
        self.detector = detector or CrisisDetector()
        self.crisis = CrisisFlow(translator, resource_lookup)
        self.mood_log = MoodLogFlow(translator, self.detector)
        self.flows: Dict[Flow, BaseFlow] = {
            Flow.ONBOARDING: OnboardingFlow(translator),
            Flow.ASSESSMENT: AssessmentFlow(translator),
            Flow.MOOD_LOG: self.mood_log,
            Flow.CRISIS: self.crisis,
        }
        # Shares the stateless helpers (respond, buttons, log_action)
        self._idle = BaseFlow(translator)

    def route(self, session: Session, text: str) -> Tuple[Flow, FlowResponse]:
        """Route one message.

        Args:
            session: Session as loaded (already reset if it timed out)
            text: Raw inbound text

        Returns:
            (handler flow, response); the engine applies the response to the session
        """
        assessment = self.detector.assess(text)
        if assessment.is_crisis:
            return Flow.CRISIS, self._preempt(session, text, assessment)

        if session.current_flow != Flow.IDLE:
            handler = self.flows[session.current_flow]
            logger.debug(f"Continuing {session.current_flow.value} at step {session.flow_step}")
            return session.current_flow, handler.handle(text, session)

        return self._route_idle(session, text)

    def detect(self, text: str) -> CrisisLevel:
        return self.detector.detect(text)

    def crisis_entry(self, session: Session, level: CrisisLevel = CrisisLevel.HIGH) -> FlowResponse:
        """Crisis step-0 response, used for pre-emption and for failed crisis turns."""
        return self.crisis.immediate_response(session, trigger_level=level.value)

    # --- Crisis pre-emption ---

    def _preempt(self, session: Session, text: str, assessment: CrisisAssessment) -> FlowResponse:
        logger.warning(
            f"Crisis pre-emption: level={assessment.level.value} "
            f"interrupted_flow={session.current_flow.value} step={session.flow_step}"
        )
        response = self.crisis_entry(session, assessment.level)

        # A mood entry interrupted at its notes step is still saved, after the crisis actions
        if self.mood_log.is_awaiting_notes(session):
            save = self.mood_log.finalize(text, session)
            response = response.model_copy(update={'actions': response.actions + [save]})
        return response

    # --- Idle routing ---

    def _route_idle(self, session: Session, text: str) -> Tuple[Flow, FlowResponse]:
        try:
            intent = classify_intent(text)
        except ClassificationMiss as e:
            logger.debug(f"Intent fallback to help: {e}")
            return Flow.IDLE, self.help_response(session)

        if intent == 'assessment':
            return Flow.ASSESSMENT, self._start(Flow.ASSESSMENT, text, session)
        if intent == 'mood_log':
            return Flow.MOOD_LOG, self._start(Flow.MOOD_LOG, text, session)
        if intent == 'resources':
            return Flow.IDLE, self.resources_response(session)
        if intent == 'greeting':
            if session.is_new_user:
                return Flow.ONBOARDING, self._start(Flow.ONBOARDING, text, session)
            return Flow.IDLE, self._idle.respond('welcome', session.language, priority=Priority.LOW)
        return Flow.IDLE, self.help_response(session)

    def _start(self, flow: Flow, text: str, session: Session) -> FlowResponse:
        logger.info(f"Starting {flow.value} flow")
        fresh = session.model_copy(update={'current_flow': flow, 'flow_step': 0, 'context': EmptyContext()})
        return self.flows[flow].start(text, fresh)

    # --- Stateless responses ---

    def help_response(self, session: Session) -> FlowResponse:
        lang = session.language
        return self._idle.respond(
            'help_menu',
            lang,
            buttons=self._idle.buttons([
                ('take_assessment', 'take_assessment'),
                ('log_mood', 'log_mood'),
                ('browse_resources', 'browse_resources'),
            ], lang),
            priority=Priority.LOW,
        )

    def resources_response(self, session: Session) -> FlowResponse:
        lang = session.language
        resources = self.resource_lookup(GENERAL_RESOURCE_CATEGORY, lang, GENERAL_RESOURCE_LIMIT)[:GENERAL_RESOURCE_LIMIT]
        if not resources:
            return self._idle.respond('resources_empty', lang, priority=Priority.LOW)

        message = f"{self.translator.resolve('resources_intro', lang)}\n\n{render_resources(resources, lang)}"
        return FlowResponse(
            message=message.rstrip(),
            message_key='resources_intro',
            buttons=self._idle.buttons([('main_menu', 'main_menu')], lang),
            priority=Priority.LOW,
            actions=[
                self._idle.log_action(session, InteractionType.RESOURCE_ACCESSED,
                                      resource_id=r.id, context='resource_request')
                for r in resources
            ],
        )
