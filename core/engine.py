"""
Conversation Engine
===================
One inbound message in, one FlowResponse and an ordered action list out.

- Load (or lazily create) the session, expire it after two silent hours mid-flow.
- 'reset' returns to idle without routing the message.
- Route, apply the response to the session, persist, derive actions.
- Store failures are reported in TurnResult.errors and answered with a
  generic reply; a crisis turn always answers with the crisis message.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from core import fsm
from core.errors import PersistenceError
from core.models import (
    Action, ActionType, CrisisContext, EmptyContext, Flow, FlowResponse,
    InteractionType, Priority, Session, TurnResult,
)
from core.router import FlowRouter
from core.session import SessionStore, as_utc, is_expired, reset_session, touch_session
from flows.crisis import ResourceLookup
from nlp.crisis_detector import CrisisDetector, CrisisLevel
from nlp.intent import is_reset
from nlp.translator import Translator

logger = logging.getLogger(__name__)

ESCALATION_PRIORITIES = (Priority.HIGH, Priority.CRITICAL)


class ConversationEngine:
    def __init__(self, session_store: SessionStore, translator: Translator,
                 resource_lookup: ResourceLookup, detector: Optional[CrisisDetector] = None):
        self.session_store = session_store
        self.translator = translator
        self.router = FlowRouter(translator, resource_lookup, detector)

    def handle_inbound_message(self, identity: str, text: str,
                               received_at: Optional[datetime] = None) -> TurnResult:
        """Process one turn for one identity.

        The caller must serialize turns per identity.

        Args:
            identity: External sender identity
            text: Raw message text
            received_at: When the message was received (defaults to now, UTC)

        Returns:
            TurnResult with the response, ordered actions, reported errors and
            whether the previous flow had expired
        """
        received_at = as_utc(received_at or datetime.now(timezone.utc))
        errors: List[str] = []

        # --- Load ---
        try:
            session = self.session_store.load(identity)
        except PersistenceError as e:
            logger.error(f"Session load failed: {e}")
            errors.append(str(e))
            return self._fallback_turn(Session.new(identity), text, received_at, errors, persist=False)

        if session is None:
            session = Session.new(identity, self.translator.default_language)
            logger.info(f"New session created for user {session.user_id}")

        # --- Timeout ---
        expired = is_expired(session, received_at)
        if expired:
            logger.info(
                f"Session expired for user {session.user_id} in "
                f"{session.current_flow.value} step {session.flow_step}"
            )
            session = reset_session(session)
        elif not fsm.is_valid_step(session.current_flow, session.flow_step):
            logger.error(
                f"Invalid step {session.flow_step} for {session.current_flow.value}; resetting to idle"
            )
            session = reset_session(session)

        # --- Reset keyword ---
        if is_reset(text):
            return self._reset_turn(session, received_at, errors, expired)

        # --- Route ---
        try:
            handler_flow, response = self.router.route(session, text)
        except Exception as e:
            logger.exception(f"Routing failed in {session.current_flow.value} step {session.flow_step}")
            errors.append(f"routing failed: {e}")
            return self._fallback_turn(session, text, received_at, errors, expired=expired)

        if expired:
            notice = self.translator.resolve('session_expired', session.language)
            response = response.model_copy(update={'message': f"{notice}\n\n{response.message}"})

        # --- Apply and persist ---
        updated = self.apply_response(session, handler_flow, response, received_at)
        try:
            self.session_store.save(updated)
        except PersistenceError as e:
            logger.error(f"Session save failed: {e}")
            errors.append(str(e))
            if response.priority not in ESCALATION_PRIORITIES:
                return self._fallback_turn(session, text, received_at, errors, expired=expired, persist=False)

        actions = self._derive_actions(updated, handler_flow, response, received_at, expired)
        return TurnResult(response, actions, errors, expired)

    # --- Session mutation ---

    def apply_response(self, session: Session, handler_flow: Flow, response: FlowResponse,
                       received_at: datetime) -> Session:
        """Apply a response's session mutation; the engine is the only writer."""
        flow = response.next_flow or handler_flow
        same_flow = flow == session.current_flow
        if response.next_step is not None:
            step = response.next_step
        else:
            step = session.flow_step if same_flow else 0
        if response.context is not None:
            context = response.context
        else:
            context = session.context if same_flow else EmptyContext()

        updates = {'current_flow': flow, 'flow_step': step, 'context': context}
        if response.set_language:
            updates['language'] = response.set_language
        if response.mark_onboarded:
            updates['is_new_user'] = False

        if response.should_end_flow or flow == Flow.IDLE:
            updates.update(current_flow=Flow.IDLE, flow_step=0, context=EmptyContext())
        elif not fsm.is_valid_step(flow, step):
            logger.error(f"Flow {flow.value} requested invalid step {step}; returning to idle")
            updates.update(current_flow=Flow.IDLE, flow_step=0, context=EmptyContext())

        return touch_session(session.model_copy(update=updates), received_at)

    # --- Special turns ---

    def _reset_turn(self, session, received_at, errors, expired) -> TurnResult:
        session = touch_session(reset_session(session), received_at)
        response = FlowResponse(
            message=self.translator.resolve('reset_ack', session.language),
            message_key='reset_ack',
        )
        try:
            self.session_store.save(session)
        except PersistenceError as e:
            logger.error(f"Session save failed on reset: {e}")
            errors.append(str(e))
            response = self._generic_response(session)
        actions = [self._stamp(self._log(session, InteractionType.SESSION_RESET, Flow.IDLE, response), received_at)]
        return TurnResult(response, actions, errors, expired)

    def _fallback_turn(self, session: Session, text: str, received_at: datetime, errors: List[str],
                       expired: bool = False, persist: bool = True) -> TurnResult:
        """Answer a failed turn; crisis turns still get the crisis message."""
        try:
            level = self.router.detect(text)
        except Exception as e:
            logger.exception("Crisis detection failed; treating turn as crisis")
            errors.append(f"crisis detection failed: {e}")
            level = CrisisLevel.HIGH

        if level != CrisisLevel.NONE or session.current_flow == Flow.CRISIS:
            response = self.router.crisis_entry(session, level if level != CrisisLevel.NONE else CrisisLevel.HIGH)
            handler_flow = Flow.CRISIS
        else:
            response = self._generic_response(session)
            handler_flow = session.current_flow

        updated = self.apply_response(session, handler_flow, response, received_at)
        if persist:
            try:
                self.session_store.save(updated)
            except PersistenceError as e:
                logger.error(f"Session save failed during fallback: {e}")
                errors.append(str(e))

        actions = self._derive_actions(updated, handler_flow, response, received_at, expired,
                                       interaction=InteractionType.FALLBACK_USED)
        return TurnResult(response, actions, errors, expired)

    def _generic_response(self, session: Session) -> FlowResponse:
        return FlowResponse(
            message=self.translator.resolve('fallback_generic', session.language),
            message_key='fallback_generic',
        )

    # --- Actions ---

    def _derive_actions(self, session: Session, handler_flow: Flow, response: FlowResponse,
                        received_at: datetime, expired: bool,
                        interaction: InteractionType = InteractionType.MESSAGE_PROCESSED) -> List[Action]:
        actions = [self._log(session, interaction, handler_flow, response)]
        if expired:
            actions.append(self._log(session, InteractionType.SESSION_EXPIRED, handler_flow, response))
        actions.extend(response.actions)

        if response.priority in ESCALATION_PRIORITIES:
            trigger = session.context.trigger_level if isinstance(session.context, CrisisContext) else None
            logger.warning(f"Escalating {response.priority.value} priority turn for user {session.user_id}")
            actions.append(Action(
                type=ActionType.ESCALATE_CRISIS,
                user_id=session.user_id,
                identity=session.anonymous_id,
                payload={
                    'priority': response.priority.value,
                    'flow': handler_flow.value,
                    'message_key': response.message_key,
                    'trigger_level': trigger,
                    'language': session.language,
                },
            ))

        if response.referral is not None:
            referral = response.referral
            actions.append(Action(
                type=ActionType.CREATE_REFERRAL,
                user_id=session.user_id,
                identity=session.anonymous_id,
                payload={
                    'urgency': referral.urgency.value,
                    'referral_type': referral.referral_type.value,
                    'resource_id': referral.resource_id,
                    'notes': referral.notes,
                    'language': session.language,
                },
            ))
        return [self._stamp(action, received_at) for action in actions]

    @staticmethod
    def _log(session: Session, interaction: InteractionType, handler_flow: Flow,
             response: FlowResponse) -> Action:
        return Action(
            type=ActionType.LOG_INTERACTION,
            user_id=session.user_id,
            identity=session.anonymous_id,
            payload={
                'interaction_type': interaction.value,
                'flow': handler_flow.value,
                'step': session.flow_step,
                'message_key': response.message_key,
                'priority': response.priority.value,
            },
        )

    @staticmethod
    def _stamp(action: Action, received_at: datetime) -> Action:
        return action.model_copy(update={'created_at': received_at})
