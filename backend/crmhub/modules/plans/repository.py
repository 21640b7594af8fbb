# crmhub/modules/plans/repository.py

from typing import Any, Dict, Optional

from pymongo import ASCENDING

from crmhub.core.repository import BaseRepository, utcnow
from .models import OrgFeatureOverrideInDB, OrgSubscriptionInDB, PlanInDB


class PlanRepository(BaseRepository[PlanInDB]):
    """Planos são globais (não pertencem a uma organização)."""
    model = PlanInDB
    collection_name = "subscription_plans"

    async def set_feature(self, plan_id: str, feature_key: str, is_enabled: bool) -> Optional[PlanInDB]:
        return await self.update(plan_id, {f"features.{feature_key}": is_enabled})


class OrgFeatureOverrideRepository(BaseRepository[OrgFeatureOverrideInDB]):
    model = OrgFeatureOverrideInDB
    collection_name = "org_feature_overrides"

    async def create_indexes(self):
        await self.collection.create_index([("organization_id", ASCENDING), ("feature_key", ASCENDING)], unique=True)

    async def upsert(self, feature_key: str, data: Dict[str, Any]) -> Optional[OrgFeatureOverrideInDB]:
        now = utcnow()
        try:
            await self.collection.update_one(
                self._scoped({"feature_key": feature_key}),
                {"$set": dict(data, updated_at=now), "$setOnInsert": {"created_at": now}},
                upsert=True,
            )
        except Exception as e:
            self._handle_db_exception(e, "upsert", query={"feature_key": feature_key})
        return await self.get_by({"feature_key": feature_key})


class OrgSubscriptionRepository(BaseRepository[OrgSubscriptionInDB]):
    model = OrgSubscriptionInDB
    collection_name = "org_subscriptions"

    async def get_current(self) -> Optional[OrgSubscriptionInDB]:
        subscriptions = await self.list_by({}, limit=1, sort=[("created_at", -1)])
        return subscriptions[0] if subscriptions else None

    async def upsert(self, data: Dict[str, Any]) -> Optional[OrgSubscriptionInDB]:
        now = utcnow()
        try:
            await self.collection.update_one(
                self._scoped(),
                {"$set": dict(data, updated_at=now), "$setOnInsert": {"created_at": now}},
                upsert=True,
            )
        except Exception as e:
            self._handle_db_exception(e, "upsert")
        return await self.get_current()
