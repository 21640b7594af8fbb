# crmhub/modules/stock/models.py
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from crmhub.models.api_common import PyObjectId

MOVEMENT_TYPES = Literal["reservation", "unreservation", "sale_deduction", "cancellation_restore", "adjustment"]


class ProductInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    name: str
    sku: Optional[str] = None
    price_cents: int = 0
    stock_quantity: int = 0
    stock_reserved: int = 0
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)

    @computed_field
    @property
    def stock_available(self) -> int:
        return self.stock_quantity - self.stock_reserved


class StockMovementInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    product_id: str
    sale_id: Optional[str] = None
    movement_type: MOVEMENT_TYPES
    quantity: int
    previous_quantity: Optional[int] = None
    new_quantity: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(populate_by_name=True)


# --- API ---
class ProductCreateAPI(BaseModel):
    name: str = Field(..., min_length=1)
    sku: Optional[str] = None
    price_cents: int = Field(default=0, ge=0)
    stock_quantity: int = Field(default=0, ge=0)
    is_active: bool = True


class StockAdjustAPI(BaseModel):
    delta: int = Field(..., description="Positivo entra, negativo sai.")
    notes: Optional[str] = None
