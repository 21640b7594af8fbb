# crmhub/modules/plans/services.py

from typing import List, Optional

from fastapi import Depends, HTTPException, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from loguru import logger

from crmhub.core.database import get_database
from crmhub.core.security import CurrentPrincipal, Principal, SuperAdminPrincipal
from .features import is_known_feature, resolve_features
from .models import (
    EffectiveFeaturesAPI,
    FeatureOverrideAPI,
    OrgFeatureOverrideInDB,
    OrgSubscriptionInDB,
    PlanCreateAPI,
    PlanInDB,
    SubscriptionAPI,
)
from .repository import OrgFeatureOverrideRepository, OrgSubscriptionRepository, PlanRepository


def _ensure_known(feature_key: str) -> None:
    if not is_known_feature(feature_key):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown feature '{feature_key}'")


class PlanService:
    def __init__(self, db: AsyncIOMotorDatabase, organization_id: str):
        self.organization_id = organization_id
        self.plans = PlanRepository(db)
        self.overrides = OrgFeatureOverrideRepository(db, organization_id)
        self.subscriptions = OrgSubscriptionRepository(db, organization_id)

    async def create_plan(self, payload: PlanCreateAPI) -> PlanInDB:
        for key in payload.features:
            _ensure_known(key)
        plan = await self.plans.create(payload)
        logger.bind(plan_id=str(plan.id)).info(f"Plan '{plan.name}' created.")
        return plan

    async def list_plans(self) -> List[PlanInDB]:
        return await self.plans.list_by({}, limit=0, sort=[("price_cents", 1)])

    async def set_plan_feature(self, plan_id: str, feature_key: str, is_enabled: bool) -> PlanInDB:
        _ensure_known(feature_key)
        plan = await self.plans.set_feature(plan_id, feature_key, is_enabled)
        if plan is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan not found")
        return plan

    async def set_override(self, principal: Principal, feature_key: str, payload: FeatureOverrideAPI) -> OrgFeatureOverrideInDB:
        _ensure_known(feature_key)
        override = await self.overrides.upsert(feature_key, {
            "is_enabled": payload.is_enabled,
            "override_reason": payload.override_reason,
            "overridden_by": principal.user_id,
        })
        logger.bind(organization_id=self.organization_id, feature=feature_key).info(
            f"Feature override set: enabled={payload.is_enabled}."
        )
        return override

    async def set_subscription(self, payload: SubscriptionAPI) -> OrgSubscriptionInDB:
        if await self.plans.get_by_id(payload.plan_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan not found")
        return await self.subscriptions.upsert(payload.model_dump())

    async def effective_features(self) -> EffectiveFeaturesAPI:
        """Features da organização: plano da assinatura + overrides. Sem assinatura, só overrides."""
        subscription = await self.subscriptions.get_current()
        plan = await self.plans.get_by_id(subscription.plan_id) if subscription else None
        overrides = await self.overrides.list_by({}, limit=0)
        return EffectiveFeaturesAPI(
            organization_id=self.organization_id,
            plan_id=str(plan.id) if plan else None,
            plan_name=plan.name if plan else None,
            features=resolve_features(plan.features if plan else {}, overrides),
        )


async def get_plan_service(
    principal: CurrentPrincipal,
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> PlanService:
    return PlanService(db, principal.organization_id)


async def get_platform_plan_service(
    principal: SuperAdminPrincipal,
    organization_id: Optional[str] = Query(None, description="Organização alvo; padrão é a do token."),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> PlanService:
    return PlanService(db, organization_id or principal.organization_id)
