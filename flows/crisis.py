"""
Crisis Flow
===========
immediate_response (0) -> safety_check (1) -> provide_resources (2) -> follow_up_support (3).

- Step 0 always logs a crisis intervention and asks for the user's situation.
- Step 1 jumps to immediate help for danger replies; anything that is not
  clearly "safe" is shown resources straight away.
- Every follow-up branch ends the flow.
"""

import logging
import os
import re
from typing import Callable, List, Optional

from core import fsm
from core.models import CrisisContext, Flow, FlowResponse, InteractionType, Priority, Session
from database.models import ReferralRequest, ReferralType, Resource, Urgency
from flows.base import BaseFlow
from nlp.preprocessor import any_phrase, normalize_text

logger = logging.getLogger(__name__)

ResourceLookup = Callable[[str, str, int], List[Resource]]

CRISIS_RESOURCE_LIMIT = int(os.getenv("CRISIS_RESOURCE_LIMIT", "5"))
CRISIS_CATEGORY = "crisis"
FOLLOWUP_DELAY_HOURS = 24

IMMEDIATE, SAFETY_CHECK, RESOURCES, FOLLOW_UP = 0, 1, 2, 3

# Danger phrases are checked before safe phrases: "not safe" contains "safe"
DANGER_PHRASES = [
    'not safe', 'unsafe', 'not ok', 'not okay', 'help', 'emergency', 'immediate', 'urgent', 'danger',
    '不安全', '帮助', '紧急', 'tidak aman', 'bantuan', 'darurat',
]
SAFE_PHRASES = ['safe', 'i am safe', 'im safe', 'ok', 'okay', 'fine', '安全', 'aman']

# A negation shortly before a safe word reads as danger: "i dont feel safe", "never ok here"
NEGATED_SAFETY = [
    re.compile(
        r"(?<!\w)(?:not|dont|doesnt|isnt|arent|cant|never|no longer|hardly)"
        r"(?:\s+\w+){0,3}?\s+(?:safe|ok|okay|fine|alright)(?!\w)"
    ),
    re.compile(
        r"(?<!\w)(?:tidak|tak|bukan|belum|gak|nggak|enggak|tdk)"
        r"(?:\s+\w+){0,3}?\s+(?:aman|baik|oke)(?!\w)"
    ),
    re.compile(r"[不没][^\s]{0,4}(?:安全|好)"),
]

FOLLOW_UP_BRANCHES = [
    ('hotline', ['call', 'hotline', 'phone', '电话', 'ফোন', 'telepon']),
    ('safety_plan', ['safety', 'plan', 'planning', '安全', 'পরিকল্পনা', 'rencana']),
    ('professional', ['professional', 'therapy', 'therapist', 'counselor', 'doctor', '专业', 'পেশাদার', 'profesional']),
    ('followup', ['followup', 'follow up', 'check', 'schedule', '跟进', 'ফলোআপ', 'tindak lanjut']),
]


def is_danger_reply(normalized):
    return any_phrase(DANGER_PHRASES, normalized) or any(p.search(normalized) for p in NEGATED_SAFETY)


class CrisisFlow(BaseFlow):
    flow = Flow.CRISIS

    def __init__(self, translator, resource_lookup: ResourceLookup):
        super().__init__(translator)
        self.resource_lookup = resource_lookup

    def handle(self, text: str, session: Session) -> FlowResponse:
        step = session.flow_step
        if step == SAFETY_CHECK:
            return self._safety_check(text, session)
        if step == RESOURCES:
            return self.provide_resources(session)
        if step == FOLLOW_UP:
            return self._follow_up(text, session)
        return self.immediate_response(session)

    # --- Step 0 ---

    def immediate_response(self, session: Session, trigger_level: str = "high") -> FlowResponse:
        lang = session.language
        return self.respond(
            'crisis_immediate_response',
            lang,
            quick_replies=[self.text(k, lang) for k in ('crisis_safe_now', 'crisis_need_help', 'crisis_someone_else')],
            next_flow=Flow.CRISIS,
            next_step=fsm.advance(Flow.CRISIS, IMMEDIATE),
            context=CrisisContext(trigger_level=trigger_level),
            priority=Priority.CRITICAL,
            actions=[self.log_action(session, InteractionType.CRISIS_INTERVENTION, trigger_level=trigger_level)],
        )

    # --- Step 1 ---

    def _safety_check(self, text, session) -> FlowResponse:
        normalized = normalize_text(text)
        lang = session.language
        if is_danger_reply(normalized):
            logger.warning("Crisis safety check: immediate help requested")
            return self.respond(
                'crisis_immediate_help',
                lang,
                buttons=self.buttons([
                    ('call_emergency', 'call_emergency'),
                    ('crisis_chat', 'crisis_chat'),
                    ('safety_plan', 'safety_plan'),
                ], lang),
                next_step=fsm.advance(Flow.CRISIS, SAFETY_CHECK, 'escalate'),
                priority=Priority.CRITICAL,
                referral=ReferralRequest(
                    urgency=Urgency.CRITICAL,
                    referral_type=ReferralType.EMERGENCY,
                    notes="Crisis intervention required - immediate safety concern",
                ),
            )
        if any_phrase(SAFE_PHRASES, normalized):
            return self.respond(
                'crisis_glad_safe',
                lang,
                quick_replies=[self.text(k, lang) for k in ('crisis_talk_more', 'crisis_get_resources')],
                next_step=fsm.advance(Flow.CRISIS, SAFETY_CHECK),
                priority=Priority.HIGH,
            )
        return self.provide_resources(session, next_step=fsm.advance(Flow.CRISIS, SAFETY_CHECK, 'show_resources'))

    # --- Step 2 ---

    def provide_resources(self, session: Session, next_step: Optional[int] = None) -> FlowResponse:
        lang = session.language
        resources = self.resource_lookup(CRISIS_CATEGORY, lang, CRISIS_RESOURCE_LIMIT)[:CRISIS_RESOURCE_LIMIT]

        message = self.text('crisis_resources_intro', lang) + '\n\n'
        if resources:
            message += render_resources(resources, lang)
        else:
            message += self.text('crisis_resources_unavailable', lang)

        actions = [
            self.log_action(session, InteractionType.RESOURCE_ACCESSED, resource_id=r.id, context='crisis_intervention')
            for r in resources
        ]
        return FlowResponse(
            message=message.rstrip(),
            message_key='crisis_resources_intro',
            buttons=self.buttons([
                ('call_hotline', 'call_hotline'),
                ('safety_planning', 'create_safety_plan'),
                ('professional_help', 'find_professional'),
                ('followup_check', 'schedule_followup'),
            ], lang),
            next_step=next_step if next_step is not None else fsm.advance(Flow.CRISIS, RESOURCES),
            priority=Priority.HIGH,
            actions=actions,
            referral=ReferralRequest(
                urgency=Urgency.HIGH,
                referral_type=ReferralType.CRISIS,
                resource_id=resources[0].id if resources else None,
                notes="Crisis resources provided",
            ),
        )

    # --- Step 3 ---

    def _follow_up(self, text, session) -> FlowResponse:
        normalized = normalize_text(text)
        branch = next(
            (name for name, phrases in FOLLOW_UP_BRANCHES if any_phrase(phrases, normalized)),
            'continue',
        )
        logger.info(f"Crisis follow-up branch: {branch}")
        handlers = {
            'hotline': self._hotline,
            'safety_plan': self._safety_plan,
            'professional': self._professional,
            'followup': self._followup,
            'continue': self._continue,
        }
        return handlers[branch](session)

    def _hotline(self, session) -> FlowResponse:
        return self.respond(
            'hotline_info',
            session.language,
            buttons=self.buttons([('back_to_resources', 'back_to_resources'), ('main_menu', 'main_menu')], session.language),
            should_end_flow=True,
            priority=Priority.HIGH,
        )

    def _safety_plan(self, session) -> FlowResponse:
        return self.respond(
            'safety_plan_created',
            session.language,
            buttons=self.buttons([
                ('review_plan', 'review_plan'),
                ('share_plan', 'share_plan'),
                ('main_menu', 'main_menu'),
            ], session.language),
            should_end_flow=True,
            priority=Priority.MEDIUM,
            actions=[self.log_action(session, InteractionType.SAFETY_PLAN_CREATED)],
            referral=ReferralRequest(
                urgency=Urgency.HIGH,
                referral_type=ReferralType.CRISIS,
                notes="Safety plan created during crisis follow-up",
            ),
        )

    def _professional(self, session) -> FlowResponse:
        return self.respond(
            'professional_help_info',
            session.language,
            buttons=self.buttons([
                ('find_therapist', 'find_therapist'),
                ('emergency_services', 'emergency_services'),
                ('main_menu', 'main_menu'),
            ], session.language),
            should_end_flow=True,
            priority=Priority.HIGH,
        )

    def _followup(self, session) -> FlowResponse:
        return self.respond(
            'followup_scheduled',
            session.language,
            buttons=self.buttons([('immediate_support', 'need_immediate_support'), ('main_menu', 'main_menu')], session.language),
            should_end_flow=True,
            priority=Priority.MEDIUM,
            actions=[self.log_action(
                session,
                InteractionType.FOLLOWUP_SCHEDULED,
                delay_hours=FOLLOWUP_DELAY_HOURS,
                crisis_level='high',
            )],
        )

    def _continue(self, session) -> FlowResponse:
        lang = session.language
        return self.respond(
            'continue_support',
            lang,
            quick_replies=[self.text(k, lang) for k in ('feeling_better', 'still_struggling', 'need_more_help')],
            buttons=self.buttons([('crisis_resources', 'view_resources'), ('main_menu', 'main_menu')], lang),
            should_end_flow=True,
            priority=Priority.MEDIUM,
        )


def render_resources(resources: List[Resource], language: str) -> str:
    """Render resources as a numbered list with contact details."""
    lines = []
    for index, resource in enumerate(resources, start=1):
        lines.append(f"{index}. **{resource.localized('title', language)}**")
        description = resource.localized('description', language)
        if description:
            lines.append(f"   {description}")
        if resource.contact_info.get('phone'):
            lines.append(f"   📞 {resource.contact_info['phone']}")
        if resource.contact_info.get('website'):
            lines.append(f"   🌐 {resource.contact_info['website']}")
        lines.append('')
    return '\n'.join(lines)
