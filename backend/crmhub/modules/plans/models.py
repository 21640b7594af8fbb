# crmhub/modules/plans/models.py
from datetime import datetime
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from crmhub.models.api_common import PyObjectId

SUBSCRIPTION_STATUSES = Literal["active", "trialing", "past_due", "canceled"]


class PlanInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    name: str
    description: Optional[str] = None
    price_cents: int = 0
    is_active: bool = True
    features: Dict[str, bool] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class OrgFeatureOverrideInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    feature_key: str
    is_enabled: bool
    override_reason: Optional[str] = None
    overridden_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class OrgSubscriptionInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    plan_id: str
    status: SUBSCRIPTION_STATUSES = "active"
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


# --- API ---
class PlanCreateAPI(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price_cents: int = Field(default=0, ge=0)
    features: Dict[str, bool] = Field(default_factory=dict)


class FeatureToggleAPI(BaseModel):
    is_enabled: bool


class FeatureOverrideAPI(BaseModel):
    is_enabled: bool
    override_reason: Optional[str] = None


class SubscriptionAPI(BaseModel):
    plan_id: str
    status: SUBSCRIPTION_STATUSES = "active"


class EffectiveFeaturesAPI(BaseModel):
    organization_id: str
    plan_id: Optional[str] = None
    plan_name: Optional[str] = None
    features: Dict[str, bool]
