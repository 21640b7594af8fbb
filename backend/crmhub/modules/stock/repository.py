# crmhub/modules/stock/repository.py

from typing import Optional

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from loguru import logger

from crmhub.core.database import get_database
from crmhub.core.repository import BaseRepository, utcnow
from crmhub.core.security import CurrentPrincipal
from .models import ProductInDB, StockMovementInDB

PRODUCTS_COLLECTION = "products"
STOCK_MOVEMENTS_COLLECTION = "stock_movements"


class ProductRepository(BaseRepository[ProductInDB]):
    model = ProductInDB
    collection_name = PRODUCTS_COLLECTION

    async def create_indexes(self):
        await self.collection.create_index([("organization_id", ASCENDING), ("sku", ASCENDING)], sparse=True)
        await self.collection.create_index([("organization_id", ASCENDING), ("name", ASCENDING)])

    async def get_by_sku(self, sku: str) -> Optional[ProductInDB]:
        if not sku:
            return None
        return await self.get_by({"sku": sku})

    async def increment_stock(self, product_id: str, quantity_delta: int = 0, reserved_delta: int = 0) -> Optional[ProductInDB]:
        """$inc atômico de estoque/reserva. Reserva nunca fica negativa."""
        obj_id = self._to_objectid(product_id)
        if not obj_id:
            return None
        log = logger.bind(product_id=product_id, quantity_delta=quantity_delta, reserved_delta=reserved_delta)
        try:
            document = await self.collection.find_one_and_update(
                self._scoped({"_id": obj_id}),
                {"$inc": {"stock_quantity": quantity_delta, "stock_reserved": reserved_delta},
                 "$set": {"updated_at": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
            if document and document.get("stock_reserved", 0) < 0:
                document = await self.collection.find_one_and_update(
                    {"_id": obj_id},
                    {"$set": {"stock_reserved": 0}},
                    return_document=ReturnDocument.AFTER,
                )
        except Exception as e:
            self._handle_db_exception(e, "increment_stock", obj_id)
        if document is None:
            log.warning("Product not found for stock movement.")
            return None
        return self._validate(document)


class StockMovementRepository(BaseRepository[StockMovementInDB]):
    model = StockMovementInDB
    collection_name = STOCK_MOVEMENTS_COLLECTION

    async def create_indexes(self):
        await self.collection.create_index([("organization_id", ASCENDING), ("product_id", ASCENDING), ("created_at", DESCENDING)])
        await self.collection.create_index("sale_id", sparse=True)


async def get_product_repository(
    principal: CurrentPrincipal,
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> ProductRepository:
    return ProductRepository(db, principal.organization_id)
