import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List

from core.errors import PersistenceError
from core.models import Action, ActionType
from database import repository

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    executed: List[str] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def _log_interaction(action: Action) -> None:
    payload = dict(action.payload)
    interaction_type = payload.pop('interaction_type', 'message_processed')
    repository.log_interaction(action.user_id, interaction_type, payload)


def _escalate(action: Action) -> None:
    repository.record_crisis_alert(action.user_id, action.payload.get('priority', 'high'), action.payload)


def _create_referral(action: Action) -> None:
    p = action.payload
    repository.create_referral(
        action.user_id,
        p['urgency'],
        p.get('resource_id'),
        referral_type=p.get('referral_type', 'counseling'),
        notes=p.get('notes', ''),
        language=p.get('language', 'en'),
    )


def _create_account(action: Action) -> None:
    repository.create_account(action.identity, action.user_id, action.payload['onboarding'])


def _save_assessment(action: Action) -> None:
    repository.save_assessment(action.payload['record'])


def _save_mood(action: Action) -> None:
    repository.save_mood(action.payload['record'])


HANDLERS: Dict[ActionType, Callable[[Action], None]] = {
    ActionType.LOG_INTERACTION: _log_interaction,
    ActionType.ESCALATE_CRISIS: _escalate,
    ActionType.CREATE_REFERRAL: _create_referral,
    ActionType.CREATE_ACCOUNT: _create_account,
    ActionType.SAVE_ASSESSMENT: _save_assessment,
    ActionType.SAVE_MOOD: _save_mood,
}


def execute_actions(actions: List[Action]) -> DispatchResult:
    """Execute a turn's actions in order.

    Interaction logs are fire-and-forget: a failure is logged and skipped.
    Other failures are collected so the caller can retry them; later actions
    still run.
    """
    result = DispatchResult()
    for action in actions:
        try:
            HANDLERS[action.type](action)
            result.executed.append(action.type.value)
        except PersistenceError as e:
            if action.type == ActionType.LOG_INTERACTION:
                logger.warning(f"Interaction log dropped: {e}")
                continue
            logger.error(f"Action {action.type.value} failed: {e}")
            result.failed.append({'type': action.type.value, 'error': str(e)})
    return result
