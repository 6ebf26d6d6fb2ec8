import logging
from typing import Any, List

from core.models import Action, ActionType, Button, Flow, FlowResponse, InteractionType, Session
from nlp.translator import Translator

logger = logging.getLogger(__name__)


class BaseFlow:
    """Shared helpers for the flow state machines.

    Flows never write to the session; they describe the mutation in the
    returned FlowResponse and the engine applies it.
    """

    flow: Flow = Flow.IDLE

    def __init__(self, translator: Translator):
        self.translator = translator

    def start(self, text: str, session: Session) -> FlowResponse:
        return self.handle(text, session)

    def handle(self, text: str, session: Session) -> FlowResponse:
        raise NotImplementedError

    # --- Helpers ---

    def text(self, key: str, language: str) -> str:
        return self.translator.resolve(key, language)

    def respond(self, key: str, language: str, **fields: Any) -> FlowResponse:
        return FlowResponse(message=self.text(key, language), message_key=key, **fields)

    def buttons(self, pairs: List[tuple], language: str) -> List[Button]:
        return [Button(id=button_id, title=self.text(key, language)) for button_id, key in pairs]

    def action(self, session: Session, action_type: ActionType, **payload: Any) -> Action:
        return Action(
            type=action_type,
            user_id=session.user_id,
            identity=session.anonymous_id,
            payload=payload,
        )

    def log_action(self, session: Session, interaction: InteractionType, **metadata: Any) -> Action:
        return self.action(
            session,
            ActionType.LOG_INTERACTION,
            interaction_type=interaction.value,
            flow=self.flow.value,
            language=session.language,
            **metadata,
        )
