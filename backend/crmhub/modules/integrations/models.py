# crmhub/modules/integrations/models.py
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from crmhub.models.api_common import PyObjectId
from crmhub.modules.sales.models import SALE_STATUSES
from .mapping import MAPPING_TARGETS, FieldMappingRule

INTEGRATION_STATUSES = Literal["active", "inactive"]
EVENT_MODES = Literal["lead", "sale", "both"]
LOG_STATUSES = Literal["success", "error", "test", "ping", "rejected", "rate_limited", "partial"]
TRANSFORM_TYPES = Literal["none", "phone_normalize", "uppercase", "lowercase", "trim"]


class IntegrationInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    name: str
    status: INTEGRATION_STATUSES = "active"
    auth_token: str
    default_stage: str = "cloud"
    default_responsible_user_ids: List[str] = Field(default_factory=list)
    default_product_id: Optional[str] = None
    auto_followup_days: Optional[int] = None
    non_purchase_reason_id: Optional[str] = None
    event_mode: EVENT_MODES = "lead"
    sale_status_on_create: SALE_STATUSES = "draft"
    sale_tag: Optional[str] = None
    field_mappings: List[FieldMappingRule] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class IntegrationLogInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    integration_id: str
    direction: Literal["inbound", "outbound"] = "inbound"
    status: LOG_STATUSES
    event_type: Optional[str] = None
    request_payload: Optional[Any] = None
    response_payload: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    lead_id: Optional[str] = None
    processing_time_ms: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


# --- API ---
class FieldMappingAPI(BaseModel):
    source_field: str = Field(..., min_length=1)
    target_field: MAPPING_TARGETS
    transform_type: TRANSFORM_TYPES = "none"


class IntegrationCreateAPI(BaseModel):
    name: str = Field(..., min_length=1)
    default_stage: str = "cloud"
    default_responsible_user_ids: List[str] = Field(default_factory=list)
    default_product_id: Optional[str] = None
    auto_followup_days: Optional[int] = Field(default=None, ge=1)
    non_purchase_reason_id: Optional[str] = None
    event_mode: EVENT_MODES = "lead"
    sale_status_on_create: SALE_STATUSES = "draft"
    sale_tag: Optional[str] = None
    field_mappings: List[FieldMappingAPI] = Field(default_factory=list)


class IntegrationUpdateAPI(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    status: Optional[INTEGRATION_STATUSES] = None
    default_stage: Optional[str] = None
    default_responsible_user_ids: Optional[List[str]] = None
    default_product_id: Optional[str] = None
    auto_followup_days: Optional[int] = Field(default=None, ge=1)
    non_purchase_reason_id: Optional[str] = None
    event_mode: Optional[EVENT_MODES] = None
    sale_status_on_create: Optional[SALE_STATUSES] = None
    sale_tag: Optional[str] = None


class WebhookResult(BaseModel):
    """Resposta de sucesso do webhook."""
    success: bool = True
    action: Literal["created", "updated"]
    lead_id: str
    sale_id: Optional[str] = None
    message: str
