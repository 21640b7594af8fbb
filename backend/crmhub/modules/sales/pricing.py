# crmhub/modules/sales/pricing.py
"""
Cálculo de totais, comissão e parcelas de uma venda.

Todos os valores monetários são inteiros em centavos. Arredondamento sempre
half-up (0.5 sobe), igual ao Math.round do frontend para valores positivos.
"""

from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Literal, Optional, Sequence

from pydantic import BaseModel, Field, model_validator

DiscountType = Literal["percentage", "fixed"]
InstallmentFlow = Literal["regular", "anticipation"]


def round_half_up(value: Decimal | float | int) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class SaleItemInput(BaseModel):
    product_id: str
    product_name: str
    quantity: int = Field(..., gt=0)
    unit_price_cents: int = Field(..., ge=0)
    discount_cents: int = Field(default=0, ge=0)
    commission_percentage: float = 0
    commission_cents: int = 0
    kit_id: Optional[str] = None
    kit_quantity: int = 1
    multiplier: Optional[int] = None
    requisition_number: Optional[str] = None

    @model_validator(mode="after")
    def _default_multiplier(self):
        if self.multiplier is None:
            self.multiplier = self.quantity
        return self


class SaleTotals(BaseModel):
    subtotal_cents: int
    discount_cents: int
    shipping_cost_cents: int
    total_cents: int
    seller_commission_cents: int
    seller_commission_percentage: float


class PaymentTerms(BaseModel):
    installment_flow: InstallmentFlow = "regular"
    settlement_days: int = Field(default=30, ge=0)
    anticipation_fee_percentage: float = 0
    fee_percentage: float = 0
    acquirer_id: Optional[str] = None


class Installment(BaseModel):
    installment_number: int
    total_installments: int
    amount_cents: int
    fee_cents: int
    fee_percentage: float
    net_amount_cents: int
    due_date: datetime
    status: str = "pending"
    acquirer_id: Optional[str] = None


def item_total_cents(item: SaleItemInput) -> int:
    return item.unit_price_cents * item.quantity - item.discount_cents


def compute_discount_cents(subtotal_cents: int, discount_type: Optional[DiscountType], discount_value: Optional[float]) -> int:
    if not discount_type or not discount_value:
        return 0
    if discount_type == "percentage":
        return round_half_up(Decimal(subtotal_cents) * Decimal(str(discount_value)) / 100)
    if discount_type == "fixed":
        return int(discount_value)
    raise ValueError(f"Unknown discount type: {discount_type}")


def compute_sale_totals(
    items: Sequence[SaleItemInput],
    discount_type: Optional[DiscountType] = None,
    discount_value: Optional[float] = None,
    shipping_cost_cents: int = 0,
    seller_commission_cents: Optional[int] = None,
    seller_commission_percentage: Optional[float] = None,
) -> SaleTotals:
    """Subtotal, desconto, frete, total e comissão do vendedor."""
    if not items:
        raise ValueError("A sale needs at least one item")

    subtotal = sum(item_total_cents(item) for item in items)
    discount = compute_discount_cents(subtotal, discount_type, discount_value)
    total = subtotal - discount + (shipping_cost_cents or 0)

    commission = seller_commission_cents
    if commission is None:
        commission = sum(item.commission_cents for item in items)

    percentage = seller_commission_percentage
    if percentage is None:
        percentage = (commission / total) * 100 if total > 0 else 0.0

    return SaleTotals(
        subtotal_cents=subtotal,
        discount_cents=discount,
        shipping_cost_cents=shipping_cost_cents or 0,
        total_cents=total,
        seller_commission_cents=commission,
        seller_commission_percentage=percentage,
    )


def compute_installments(
    total_cents: int,
    count: int,
    terms: PaymentTerms,
    start_date: datetime,
) -> List[Installment]:
    """
    Divide o total em `count` parcelas. O resto da divisão vai para a primeira.

    Fluxo regular: parcela i vence em start + settlement_days * i, sem taxa.
    Fluxo antecipação: todas vencem em start + settlement_days e pagam a taxa
    de antecipação sobre o próprio valor.
    """
    if count < 1:
        raise ValueError("Installment count must be at least 1")
    if total_cents < 0:
        raise ValueError("Total cannot be negative")

    base = total_cents // count
    remainder = total_cents - base * count
    anticipation = terms.installment_flow == "anticipation"

    installments: List[Installment] = []
    for i in range(count):
        amount = base + remainder if i == 0 else base
        if anticipation:
            due_date = start_date + timedelta(days=terms.settlement_days)
            fee_percentage = terms.anticipation_fee_percentage
            fee = round_half_up(Decimal(amount) * Decimal(str(fee_percentage)) / 100)
        else:
            due_date = start_date + timedelta(days=terms.settlement_days * (i + 1))
            fee_percentage = terms.fee_percentage
            fee = 0

        installments.append(Installment(
            installment_number=i + 1,
            total_installments=count,
            amount_cents=amount,
            fee_cents=fee,
            fee_percentage=fee_percentage,
            net_amount_cents=amount - fee,
            due_date=due_date,
            acquirer_id=terms.acquirer_id,
        ))
    return installments
