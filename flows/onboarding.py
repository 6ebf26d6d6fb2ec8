import logging
from typing import Dict, Optional

from core import fsm
from core.models import ActionType, Flow, FlowResponse, OnboardingContext, Priority, Session
from flows.base import BaseFlow
from nlp.preprocessor import any_phrase, normalize_text

logger = logging.getLogger(__name__)

LANGUAGE_MAP = {1: 'en', 2: 'zh', 3: 'bn', 4: 'ta', 5: 'my', 6: 'id'}
AGE_MAP = {1: '18-25', 2: '26-35', 3: '36-45', 4: '46-55', 5: '56+'}
LOCATION_MAP = {1: 'Singapore', 2: 'Malaysia', 3: 'Hong Kong', 4: 'Middle East', 5: 'Other'}
WORKER_CATEGORY_MAP = {
    1: 'Domestic Helper',
    2: 'Construction Worker',
    3: 'Healthcare Worker',
    4: 'Factory Worker',
    5: 'Service Industry',
    6: 'Other',
}

CONSENT_YES = ['yes', 'y', 'agree', 'i agree', 'ya', '同意', 'হ্যাঁ', 'ஆம்', 'ဟုတ်ကဲ့']
CONSENT_NO = ['no', 'n', 'decline', 'tidak', '不同意', 'না', 'இல்லை', 'မဟုတ်ဘူး']

# step -> (prompt key, menu, context field)
MENU_STEPS = {
    1: ('language_select', LANGUAGE_MAP, 'language'),
    2: ('age_question', AGE_MAP, 'age_range'),
    3: ('location_question', LOCATION_MAP, 'location'),
    4: ('worker_category', WORKER_CATEGORY_MAP, 'worker_category'),
}
CONSENT_STEP = 5


def parse_menu_choice(text: str, menu: Dict[int, str]) -> Optional[str]:
    """Return the menu value for an exact numeric reply, else None."""
    normalized = normalize_text(text)
    if not normalized.isdigit():
        return None
    return menu.get(int(normalized))


def classify_consent(text: str) -> Optional[bool]:
    normalized = normalize_text(text)
    # "不同意" contains "同意", so check the refusal set first
    if any_phrase(CONSENT_NO, normalized):
        return False
    if any_phrase(CONSENT_YES, normalized):
        return True
    return None


class OnboardingFlow(BaseFlow):
    """welcome -> language -> age -> location -> category -> consent -> complete."""

    flow = Flow.ONBOARDING

    def start(self, text: str, session: Session) -> FlowResponse:
        lang = session.language
        return FlowResponse(
            message=f"{self.text('onboarding_welcome', lang)}\n\n{self.text('language_select', lang)}",
            message_key='language_select',
            next_step=fsm.advance(Flow.ONBOARDING, 0),
            context=OnboardingContext(),
            priority=Priority.LOW,
        )

    def handle(self, text: str, session: Session) -> FlowResponse:
        step = session.flow_step
        if step in MENU_STEPS:
            return self._handle_menu(text, session, step)
        if step == CONSENT_STEP:
            return self._handle_consent(text, session)
        return self.start(text, session)

    def _prompt(self, step, language, **fields) -> FlowResponse:
        if step == CONSENT_STEP:
            return self.respond('consent_request', language, next_step=step, **fields)
        key = MENU_STEPS[step][0]
        return self.respond(key, language, next_step=step, **fields)

    def _handle_menu(self, text, session, step) -> FlowResponse:
        _, menu, field_name = MENU_STEPS[step]
        choice = parse_menu_choice(text, menu)
        if choice is None:
            return self._prompt(step, session.language)

        current = session.context if isinstance(session.context, OnboardingContext) else OnboardingContext()
        context = current.model_copy(update={field_name: choice})
        next_step = fsm.advance(Flow.ONBOARDING, step)

        if field_name == 'language':
            logger.info(f"Onboarding language selected: {choice}")
            return self._prompt(next_step, choice, context=context, set_language=choice)
        return self._prompt(next_step, session.language, context=context)

    def _handle_consent(self, text, session) -> FlowResponse:
        consent = classify_consent(text)
        if consent is None:
            return self._prompt(CONSENT_STEP, session.language)

        if not consent:
            logger.info("Onboarding consent declined; no account created")
            return self.respond('consent_declined', session.language, should_end_flow=True)

        data = session.context if isinstance(session.context, OnboardingContext) else OnboardingContext()
        account = {
            'language': data.language or session.language,
            'age_range': data.age_range,
            'location': data.location,
            'worker_category': data.worker_category,
            'consent_given': True,
        }
        return self.respond(
            'onboarding_complete',
            session.language,
            next_step=fsm.advance(Flow.ONBOARDING, CONSENT_STEP),
            should_end_flow=True,
            mark_onboarded=True,
            actions=[self.action(session, ActionType.CREATE_ACCOUNT, onboarding=account)],
        )
