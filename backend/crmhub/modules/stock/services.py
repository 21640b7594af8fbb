# crmhub/modules/stock/services.py

from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from loguru import logger

from crmhub.core.database import get_database
from crmhub.core.security import CurrentPrincipal
from .models import ProductInDB
from .repository import ProductRepository, StockMovementRepository


def item_stock_quantity(item: Any) -> int:
    """Unidades físicas de um item: multiplicador do kit, senão a quantidade."""
    return item.multiplier or item.quantity


class StockService:
    """Reserva, baixa e devolução de estoque a partir dos itens de uma venda."""

    def __init__(self, db: AsyncIOMotorDatabase, organization_id: str):
        self.organization_id = organization_id
        self.products = ProductRepository(db, organization_id)
        self.movements = StockMovementRepository(db, organization_id)

    async def _move(self, sale: Any, movement_type: str, quantity_sign: int, reserved_sign: int) -> int:
        log = logger.bind(organization_id=self.organization_id, sale_id=str(sale.id), movement=movement_type)
        moved = 0
        for item in sale.items:
            qty = item_stock_quantity(item)
            before = await self.products.get_by_id(item.product_id)
            if before is None:
                log.warning(f"Product {item.product_id} not found. Skipping stock movement.")
                continue
            after = await self.products.increment_stock(
                item.product_id,
                quantity_delta=quantity_sign * qty,
                reserved_delta=reserved_sign * qty,
            )
            if after is None:
                continue
            await self.movements.create({
                "product_id": item.product_id,
                "sale_id": str(sale.id),
                "movement_type": movement_type,
                "quantity": qty,
                "previous_quantity": before.stock_quantity,
                "new_quantity": after.stock_quantity,
            })
            moved += 1
        log.info(f"Stock movement applied to {moved} item(s).")
        return moved

    async def reserve_for_sale(self, sale: Any) -> int:
        return await self._move(sale, "reservation", quantity_sign=0, reserved_sign=1)

    async def unreserve_for_sale(self, sale: Any) -> int:
        return await self._move(sale, "unreservation", quantity_sign=0, reserved_sign=-1)

    async def deduct_for_delivered_sale(self, sale: Any) -> int:
        return await self._move(sale, "sale_deduction", quantity_sign=-1, reserved_sign=-1)

    async def restore_for_cancelled_delivered_sale(self, sale: Any) -> int:
        return await self._move(sale, "cancellation_restore", quantity_sign=1, reserved_sign=0)

    async def adjust(self, product_id: str, delta: int, user_id: str, notes: Optional[str] = None) -> ProductInDB:
        before = await self.products.get_by_id(product_id)
        if before is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
        if before.stock_quantity + delta < 0:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Stock cannot become negative")
        after = await self.products.increment_stock(product_id, quantity_delta=delta)
        await self.movements.create({
            "product_id": product_id,
            "movement_type": "adjustment",
            "quantity": delta,
            "previous_quantity": before.stock_quantity,
            "new_quantity": after.stock_quantity,
            "notes": notes or f"Ajuste manual por {user_id}",
        })
        return after


async def get_stock_service(
    principal: CurrentPrincipal,
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> StockService:
    return StockService(db, principal.organization_id)
