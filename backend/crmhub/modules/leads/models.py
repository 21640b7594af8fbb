# crmhub/modules/leads/models.py
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from crmhub.models.api_common import PyObjectId

SCHEDULED_MESSAGE_STATUS = Literal["pending", "sending", "sent", "failed", "cancelled"]
FOLLOWUP_SOURCE_TYPES = Literal["manual", "integration", "sale", "quiz", "receptive"]


class LeadAddress(BaseModel):
    label: str = "Principal"
    is_primary: bool = False
    street: Optional[str] = None
    street_number: Optional[str] = None
    complement: Optional[str] = None
    neighborhood: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    cep: Optional[str] = None


class LeadInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    name: str
    whatsapp: str
    email: Optional[str] = None
    cpf: Optional[str] = None
    stage: str = "cloud"
    funnel_stage_id: Optional[str] = None
    assigned_to: Optional[str] = None
    responsibles: List[str] = Field(default_factory=list)
    observations: Optional[str] = None
    negotiated_value: float = 0
    paid_value: float = 0
    stars: int = 0
    addresses: List[LeadAddress] = Field(default_factory=list)
    product_interest_ids: List[str] = Field(default_factory=list)
    source: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)

    @property
    def primary_address(self) -> Optional[LeadAddress]:
        return next((a for a in self.addresses if a.is_primary), None)


class FunnelStageInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    name: str
    position: int = 0
    default_followup_reason_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class NonPurchaseReasonInDB(BaseModel):
    """Motivo de não-compra; agrupa os templates de follow-up."""
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    name: str
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class MessageTemplateInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    non_purchase_reason_id: str
    message_template: str
    delay_minutes: int = 0
    position: int = 0
    is_active: bool = True
    send_start_hour: Optional[int] = Field(default=None, ge=0, le=23)
    send_end_hour: Optional[int] = Field(default=None, ge=1, le=24)
    media_url: Optional[str] = None
    media_filename: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class ScheduledMessageInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    lead_id: str
    lead_name: Optional[str] = None
    lead_whatsapp: Optional[str] = None
    template_id: Optional[str] = None
    non_purchase_reason_id: Optional[str] = None
    message: str
    final_message: Optional[str] = None
    media_url: Optional[str] = None
    media_filename: Optional[str] = None
    scheduled_at: datetime
    original_scheduled_at: Optional[datetime] = None
    status: SCHEDULED_MESSAGE_STATUS = "pending"
    claimed_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    wamid: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class LeadFollowupInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    lead_id: str
    user_id: str
    scheduled_at: datetime
    source_type: FOLLOWUP_SOURCE_TYPES = "manual"
    reason: Optional[str] = None
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class LeadNonPurchaseInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    lead_id: str
    reason_id: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class AutomationConfigInDB(BaseModel):
    """Configuração de automação por organização (uma por tenant)."""
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    sale_funnel_stage_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


# --- API ---
class LeadCreateAPI(BaseModel):
    name: str = Field(..., min_length=1)
    whatsapp: str = Field(..., min_length=8)
    email: Optional[EmailStr] = None
    cpf: Optional[str] = None
    stage: str = "cloud"
    funnel_stage_id: Optional[str] = None
    assigned_to: Optional[str] = None
    responsibles: List[str] = Field(default_factory=list)
    observations: Optional[str] = None
    stars: int = Field(default=0, ge=0, le=5)
    addresses: List[LeadAddress] = Field(default_factory=list)
    source: Optional[str] = None


class LeadUpdateAPI(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    cpf: Optional[str] = None
    stage: Optional[str] = None
    assigned_to: Optional[str] = None
    responsibles: Optional[List[str]] = None
    observations: Optional[str] = None
    stars: Optional[int] = Field(None, ge=0, le=5)
    addresses: Optional[List[LeadAddress]] = None


class StageMoveAPI(BaseModel):
    funnel_stage_id: str


class FunnelStageCreateAPI(BaseModel):
    name: str = Field(..., min_length=1)
    position: int = 0
    default_followup_reason_id: Optional[str] = None


class NonPurchaseReasonCreateAPI(BaseModel):
    name: str = Field(..., min_length=1)


class MessageTemplateCreateAPI(BaseModel):
    message_template: str = Field(..., min_length=1)
    delay_minutes: int = Field(default=0, ge=0)
    position: int = 0
    is_active: bool = True
    send_start_hour: Optional[int] = Field(default=None, ge=0, le=23)
    send_end_hour: Optional[int] = Field(default=None, ge=1, le=24)
    media_url: Optional[str] = None
    media_filename: Optional[str] = None


class ScheduleReasonAPI(BaseModel):
    non_purchase_reason_id: str


class CancelMessagesAPI(BaseModel):
    reason: str = Field(default="Cancelado manualmente", min_length=1)


class FollowupCreateAPI(BaseModel):
    scheduled_at: datetime
    reason: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("scheduled_at")
    @classmethod
    def _naive_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


class AutomationConfigAPI(BaseModel):
    sale_funnel_stage_id: Optional[str] = None
