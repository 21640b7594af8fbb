# crmhub/modules/sales/models.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from crmhub.models.api_common import PyObjectId
from .pricing import DiscountType, InstallmentFlow, SaleItemInput

SALE_STATUSES = Literal[
    "draft", "pending_expedition", "dispatched", "delivered",
    "payment_pending", "payment_confirmed", "cancelled", "returned",
]
DELIVERY_TYPES = Literal["pickup", "motoboy", "carrier"]
DELIVERY_STATUSES = Literal[
    "pending",
    "delivered_normal",
    "delivered_missing_prescription",
    "delivered_no_money",
    "delivered_no_card_limit",
    "delivered_customer_absent",
    "delivered_customer_denied",
    "delivered_customer_gave_up",
    "delivered_wrong_product",
    "delivered_missing_product",
    "delivered_insufficient_address",
    "delivered_wrong_time",
    "delivered_other",
]
DELIVERY_SHIFTS = Literal["morning", "afternoon", "full_day"]
PAYMENT_STATUSES = Literal["not_paid", "will_pay_before", "paid_now"]


class SaleItem(SaleItemInput):
    total_cents: int = 0


class StatusHistoryEntry(BaseModel):
    previous_status: Optional[str] = None
    new_status: str
    changed_by: str
    changed_at: datetime
    notes: Optional[str] = None


class SaleInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    romaneio_number: int
    lead_id: str
    created_by: str
    seller_user_id: Optional[str] = None
    status: SALE_STATUSES = "draft"

    items: List[SaleItem] = Field(default_factory=list)
    subtotal_cents: int = 0
    discount_type: Optional[DiscountType] = None
    discount_value: float = 0
    discount_cents: int = 0
    shipping_cost_cents: int = 0
    total_cents: int = 0
    seller_commission_cents: int = 0
    seller_commission_percentage: float = 0

    payment_method_id: Optional[str] = None
    payment_installments: Optional[int] = None
    payment_status: Optional[PAYMENT_STATUSES] = None
    payment_notes: Optional[str] = None

    delivery_type: DELIVERY_TYPES = "pickup"
    delivery_region_id: Optional[str] = None
    assigned_delivery_user_id: Optional[str] = None
    scheduled_delivery_date: Optional[datetime] = None
    scheduled_delivery_shift: Optional[DELIVERY_SHIFTS] = None
    shipping_carrier_id: Optional[str] = None
    tracking_code: Optional[str] = None
    delivery_status: DELIVERY_STATUSES = "pending"
    delivery_notes: Optional[str] = None

    expedition_validated_at: Optional[datetime] = None
    expedition_validated_by: Optional[str] = None
    dispatched_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    payment_confirmed_at: Optional[datetime] = None
    payment_confirmed_by: Optional[str] = None
    returned_at: Optional[datetime] = None
    returned_by: Optional[str] = None
    return_reason_id: Optional[str] = None
    return_notes: Optional[str] = None

    external_order_id: Optional[str] = None
    external_order_url: Optional[str] = None
    external_source: Optional[str] = None
    observation_1: Optional[str] = None
    observation_2: Optional[str] = None

    status_history: List[StatusHistoryEntry] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class SaleInstallmentInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    sale_id: str
    installment_number: int
    total_installments: int
    amount_cents: int
    fee_cents: int = 0
    fee_percentage: float = 0
    net_amount_cents: int
    due_date: datetime
    status: str = "pending"
    acquirer_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class PaymentMethodInDB(BaseModel):
    """Forma de pagamento: define prazo de recebimento e taxas das parcelas."""
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    name: str
    installment_flow: InstallmentFlow = "regular"
    settlement_days: int = 30
    fee_percentage: float = 0
    anticipation_fee_percentage: float = 0
    max_installments: int = 1
    acquirer_id: Optional[str] = None
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class DeliveryRegionInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    name: str
    assigned_user_id: Optional[str] = None
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class PostSaleSurveyInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    sale_id: str
    lead_id: str
    delivery_type: Optional[str] = None
    status: Literal["pending", "completed"] = "pending"
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


# --- API ---
class SaleCreateAPI(BaseModel):
    lead_id: str
    seller_user_id: Optional[str] = None
    items: List[SaleItemInput] = Field(default_factory=list)
    discount_type: Optional[DiscountType] = None
    discount_value: float = Field(default=0, ge=0)
    shipping_cost_cents: int = Field(default=0, ge=0)
    seller_commission_cents: Optional[int] = None
    seller_commission_percentage: Optional[float] = None
    payment_method_id: Optional[str] = None
    payment_installments: int = Field(default=1, ge=1)
    payment_status: Optional[PAYMENT_STATUSES] = None
    payment_notes: Optional[str] = None
    delivery_type: DELIVERY_TYPES = "pickup"
    delivery_region_id: Optional[str] = None
    scheduled_delivery_date: Optional[datetime] = None
    scheduled_delivery_shift: Optional[DELIVERY_SHIFTS] = None
    shipping_carrier_id: Optional[str] = None
    delivery_notes: Optional[str] = None
    external_order_id: Optional[str] = None
    external_order_url: Optional[str] = None
    external_source: Optional[str] = None
    observation_1: Optional[str] = None
    observation_2: Optional[str] = None


class SaleUpdateAPI(BaseModel):
    status: Optional[SALE_STATUSES] = None
    seller_user_id: Optional[str] = None
    assigned_delivery_user_id: Optional[str] = None
    delivery_status: Optional[DELIVERY_STATUSES] = None
    delivery_notes: Optional[str] = None
    delivered_at: Optional[datetime] = None
    tracking_code: Optional[str] = None
    scheduled_delivery_date: Optional[datetime] = None
    scheduled_delivery_shift: Optional[DELIVERY_SHIFTS] = None
    payment_status: Optional[PAYMENT_STATUSES] = None
    payment_notes: Optional[str] = None
    return_reason_id: Optional[str] = None
    return_notes: Optional[str] = None
    observation_1: Optional[str] = None
    observation_2: Optional[str] = None
    status_notes: Optional[str] = None


class PaymentMethodCreateAPI(BaseModel):
    name: str = Field(..., min_length=1)
    installment_flow: InstallmentFlow = "regular"
    settlement_days: int = Field(default=30, ge=0)
    fee_percentage: float = Field(default=0, ge=0)
    anticipation_fee_percentage: float = Field(default=0, ge=0)
    max_installments: int = Field(default=1, ge=1)
    acquirer_id: Optional[str] = None


class DeliveryRegionCreateAPI(BaseModel):
    name: str = Field(..., min_length=1)
    assigned_user_id: Optional[str] = None
