# crmhub/modules/reconciliation/models.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from crmhub.models.api_common import PyObjectId
from .matching import CallRecord

CONVERSATION_MODES = Literal["receptive_call", "active_call", "receptive_whatsapp", "active_whatsapp"]


class ReceptiveAttendanceInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    phone_searched: str
    user_id: str
    lead_id: Optional[str] = None
    product_id: Optional[str] = None
    sale_id: Optional[str] = None
    non_purchase_reason_id: Optional[str] = None
    conversation_mode: CONVERSATION_MODES = "receptive_call"
    completed: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class ReconciliationConfigInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    blacklist_numbers: List[str] = Field(default_factory=list)
    cnpj_numbers: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class MatchedAttendance(CallRecord):
    receptive_id: str
    lead_id: Optional[str] = None
    user_name: str = ""
    conversation_mode: str = ""
    lead_name: str = ""
    lead_stage: str = ""
    product_name: str = ""
    sale_id: Optional[str] = None
    sale_total_cents: Optional[int] = None
    sale_status: Optional[str] = None
    reason_name: str = ""
    completed: bool = False
    attendance_created_at: datetime


class LeadOnlyMatch(CallRecord):
    lead_id: str
    lead_name: str
    lead_stage: str = ""
    lead_whatsapp: str
    followup_reason: Optional[str] = None
    followup_scheduled_at: Optional[datetime] = None
    responsible_name: Optional[str] = None


class ValidationResult(BaseModel):
    calls_without_record: List[CallRecord] = Field(default_factory=list)
    calls_with_record_no_sale: List[MatchedAttendance] = Field(default_factory=list)
    calls_with_record_and_sale: List[MatchedAttendance] = Field(default_factory=list)
    calls_with_lead_only: List[LeadOnlyMatch] = Field(default_factory=list)


class CallValidationInDB(BaseModel):
    """Resumo persistido de uma conferência de ligações."""
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    uploaded_by: str
    file_name: str
    total_calls: int
    calls_without_record: int
    calls_with_record_no_sale: int
    validation_data: ValidationResult
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


# --- API ---
class ReceptiveAttendanceCreateAPI(BaseModel):
    phone_searched: str = Field(..., min_length=8)
    lead_id: Optional[str] = None
    product_id: Optional[str] = None
    sale_id: Optional[str] = None
    non_purchase_reason_id: Optional[str] = None
    conversation_mode: CONVERSATION_MODES = "receptive_call"
    completed: bool = False


class ReconciliationConfigAPI(BaseModel):
    blacklist_numbers: List[str] = Field(default_factory=list)
    cnpj_numbers: List[str] = Field(default_factory=list)
