# crmhub/modules/quizzes/models.py
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from crmhub.models.api_common import PyObjectId

STEP_TYPES = Literal[
    "single_choice", "multiple_choice", "text_input", "number_input",
    "lead_capture", "result", "info",
]
QUIZ_EVENT_TYPES = Literal[
    "quiz_view", "step_view", "step_complete", "lead_captured",
    "quiz_complete", "cta_click", "drop_off",
]


def _new_id() -> str:
    return uuid4().hex


class QuizOption(BaseModel):
    id: str = Field(default_factory=_new_id)
    label: str
    value: Optional[str] = None
    score: int = 0
    next_step_id: Optional[str] = None
    result_tag: Optional[str] = None
    position: int = 0


class QuizStep(BaseModel):
    id: str = Field(default_factory=_new_id)
    step_type: STEP_TYPES
    title: str
    subtitle: Optional[str] = None
    position: int = 0
    is_required: bool = True
    next_step_id: Optional[str] = None
    capture_name: bool = False
    capture_email: bool = False
    capture_whatsapp: bool = False
    capture_cpf: bool = False
    result_title: Optional[str] = None
    result_description: Optional[str] = None
    result_cta_url: Optional[str] = None
    options: List[QuizOption] = Field(default_factory=list)


class LeadCaptureData(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    whatsapp: Optional[str] = None
    cpf: Optional[str] = None


class QuizAnswer(BaseModel):
    """Resposta enviada para um passo: opções, texto ou dados de captura."""
    selected_option_ids: List[str] = Field(default_factory=list)
    text_value: Optional[str] = None
    lead: Optional[LeadCaptureData] = None


# --- DB ---
class QuizInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    name: str
    slug: str
    description: Optional[str] = None
    is_active: bool = True
    requires_lead_capture: bool = False
    default_funnel_stage_id: Optional[str] = None
    default_seller_id: Optional[str] = None
    steps: List[QuizStep] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)

    @property
    def ordered_steps(self) -> List[QuizStep]:
        return sorted(self.steps, key=lambda s: s.position)


class QuizSessionInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    quiz_id: str
    lead_id: Optional[str] = None
    current_step_id: Optional[str] = None
    answers: Dict[str, QuizAnswer] = Field(default_factory=dict)
    captured: LeadCaptureData = Field(default_factory=LeadCaptureData)
    utm: Dict[str, Optional[str]] = Field(default_factory=dict)
    total_score: int = 0
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class QuizEventInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    quiz_id: str
    session_id: Optional[str] = None
    step_id: Optional[str] = None
    event_type: QUIZ_EVENT_TYPES
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    model_config = ConfigDict(populate_by_name=True)


# --- API ---
class QuizCreateAPI(BaseModel):
    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1, pattern=r"^[a-z0-9-]+$")
    description: Optional[str] = None
    is_active: bool = True
    requires_lead_capture: bool = False
    default_funnel_stage_id: Optional[str] = None
    default_seller_id: Optional[str] = None
    steps: List[QuizStep] = Field(default_factory=list)


class QuizStartAPI(BaseModel):
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_content: Optional[str] = None
    utm_term: Optional[str] = None


class QuizSessionAPI(BaseModel):
    session_id: str
    quiz_id: str
    current_step: Optional[QuizStep] = None
    total_score: int = 0
    is_completed: bool = False
    lead_id: Optional[str] = None
