from pydantic import BaseModel, Field
from typing import Optional, Dict, List, Union
from enum import Enum


class Severity(str, Enum):
    MINIMAL = "minimal"
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class Urgency(str, Enum):
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ReferralType(str, Enum):
    COUNSELING = "counseling"
    CRISIS = "crisis"
    EMERGENCY = "emergency"


LocalizedText = Union[str, Dict[str, str]]


# ============== Collaborator Records ==============

class Resource(BaseModel):
    id: str
    title: LocalizedText
    description: LocalizedText = ""
    contact_info: Dict[str, str] = Field(default_factory=dict)
    category: str = "crisis"

    def localized(self, field: str, language: str) -> str:
        """Resolve a localized field, falling back to English."""
        value = getattr(self, field)
        if isinstance(value, str):
            return value
        return value.get(language) or value.get("en") or "No content available"


class AssessmentRecord(BaseModel):
    user_id: str
    answers: List[int] = Field(..., min_length=4, max_length=4)
    depression_score: int = Field(..., ge=0, le=6)
    anxiety_score: int = Field(..., ge=0, le=6)
    total_score: int = Field(..., ge=0, le=12)
    severity_level: Severity
    language: str = "en"

    model_config = {"frozen": True}


class MoodRecord(BaseModel):
    user_id: str
    score: int = Field(..., ge=1, le=10)
    emotions: List[str] = Field(default_factory=list)
    notes: str = ""
    crisis_level: str = "none"

    model_config = {"frozen": True}


class AccountRecord(BaseModel):
    identity: str
    user_id: str
    language: str
    age_range: Optional[str] = None
    location: Optional[str] = None
    worker_category: Optional[str] = None
    consent_given: bool = True


class ReferralRequest(BaseModel):
    urgency: Urgency
    referral_type: ReferralType
    resource_id: Optional[str] = None
    notes: str = ""
