from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, NamedTuple, Optional, Sequence, Union
import uuid

from database.models import ReferralRequest


class Flow(str, Enum):
    IDLE = "idle"
    ONBOARDING = "onboarding"
    ASSESSMENT = "assessment"
    MOOD_LOG = "mood_log"
    CRISIS = "crisis"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ActionType(str, Enum):
    LOG_INTERACTION = "log_interaction"
    ESCALATE_CRISIS = "escalate_crisis"
    CREATE_REFERRAL = "create_referral"
    CREATE_ACCOUNT = "create_account"
    SAVE_ASSESSMENT = "save_assessment"
    SAVE_MOOD = "save_mood"


class InteractionType(str, Enum):
    MESSAGE_PROCESSED = "message_processed"
    SESSION_EXPIRED = "session_expired"
    SESSION_RESET = "session_reset"
    CRISIS_INTERVENTION = "crisis_intervention"
    RESOURCE_ACCESSED = "resource_accessed"
    SAFETY_PLAN_CREATED = "safety_plan_created"
    FOLLOWUP_SCHEDULED = "followup_scheduled"
    FALLBACK_USED = "fallback_used"


# ============== Flow Contexts ==============

class EmptyContext(BaseModel):
    kind: Literal["empty"] = "empty"


class OnboardingContext(BaseModel):
    kind: Literal["onboarding"] = "onboarding"
    language: Optional[str] = None
    age_range: Optional[str] = None
    location: Optional[str] = None
    worker_category: Optional[str] = None


class AssessmentContext(BaseModel):
    kind: Literal["assessment"] = "assessment"
    answers: List[int] = Field(default_factory=list)


class MoodContext(BaseModel):
    kind: Literal["mood_log"] = "mood_log"
    score: Optional[int] = None
    emotions: List[str] = Field(default_factory=list)


class CrisisContext(BaseModel):
    kind: Literal["crisis"] = "crisis"
    trigger_level: str = "high"


FlowContext = Annotated[
    Union[EmptyContext, OnboardingContext, AssessmentContext, MoodContext, CrisisContext],
    Field(discriminator="kind"),
]


# ============== Core Models ==============

class Session(BaseModel):
    user_id: str
    anonymous_id: str
    language: str = "en"
    current_flow: Flow = Flow.IDLE
    flow_step: int = 0
    context: FlowContext = Field(default_factory=EmptyContext)
    last_activity: Optional[datetime] = None
    is_new_user: bool = True

    @classmethod
    def new(cls, identity: str, language: str = "en") -> "Session":
        return cls(user_id=str(uuid.uuid4()), anonymous_id=identity, language=language)


class Button(BaseModel):
    id: str
    title: str


class Action(BaseModel):
    type: ActionType
    user_id: str
    identity: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class FlowResponse(BaseModel):
    message: str
    message_key: Optional[str] = None
    quick_replies: List[str] = Field(default_factory=list)
    buttons: List[Button] = Field(default_factory=list)
    next_flow: Optional[Flow] = None
    next_step: Optional[int] = None
    context: Optional[FlowContext] = None
    should_end_flow: bool = False
    priority: Priority = Priority.LOW
    actions: List[Action] = Field(default_factory=list)
    referral: Optional[ReferralRequest] = None
    set_language: Optional[str] = None
    mark_onboarded: bool = False


class TurnResult(NamedTuple):
    response: FlowResponse
    actions: List[Action]
    errors: Sequence[str] = ()
    session_expired: bool = False
