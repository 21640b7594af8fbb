# crmhub/modules/sales/repository.py

from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.results import UpdateResult

from crmhub.core.repository import BaseRepository, utcnow
from .models import (
    DeliveryRegionInDB,
    PaymentMethodInDB,
    PostSaleSurveyInDB,
    SaleInDB,
    SaleInstallmentInDB,
)


class SaleRepository(BaseRepository[SaleInDB]):
    model = SaleInDB
    collection_name = "sales"

    async def create_indexes(self):
        await self.collection.create_index(
            [("organization_id", ASCENDING), ("romaneio_number", ASCENDING)], unique=True
        )
        await self.collection.create_index([("organization_id", ASCENDING), ("status", ASCENDING), ("created_at", DESCENDING)])
        await self.collection.create_index([("organization_id", ASCENDING), ("lead_id", ASCENDING)])

    async def update_with_history(
        self, sale_id: str, changes: Dict[str, Any], history_entry: Optional[Dict[str, Any]] = None
    ) -> Optional[SaleInDB]:
        """$set dos campos e, se houver mudança de status, $push no histórico na mesma operação."""
        obj_id = self._to_objectid(sale_id)
        if not obj_id:
            return None
        update: Dict[str, Any] = {"$set": dict(changes, updated_at=utcnow())}
        if history_entry:
            update["$push"] = {"status_history": history_entry}
        try:
            result: UpdateResult = await self.collection.update_one(self._scoped({"_id": obj_id}), update)
        except Exception as e:
            self._handle_db_exception(e, "update_with_history", obj_id)
        if result.matched_count == 0:
            return None
        return await self.get_by_id(obj_id)


class SaleInstallmentRepository(BaseRepository[SaleInstallmentInDB]):
    model = SaleInstallmentInDB
    collection_name = "sale_installments"

    async def list_for_sale(self, sale_id: str) -> List[SaleInstallmentInDB]:
        return await self.list_by({"sale_id": sale_id}, limit=0, sort=[("installment_number", ASCENDING)])


class PaymentMethodRepository(BaseRepository[PaymentMethodInDB]):
    model = PaymentMethodInDB
    collection_name = "payment_methods"


class DeliveryRegionRepository(BaseRepository[DeliveryRegionInDB]):
    model = DeliveryRegionInDB
    collection_name = "delivery_regions"


class PostSaleSurveyRepository(BaseRepository[PostSaleSurveyInDB]):
    model = PostSaleSurveyInDB
    collection_name = "post_sale_surveys"

    async def create_indexes(self):
        await self.collection.create_index([("organization_id", ASCENDING), ("sale_id", ASCENDING)], unique=True)
