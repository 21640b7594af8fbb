# crmhub/modules/plans/routers.py
from typing import Dict, List

from fastapi import APIRouter, Body, Depends, Path, status

from crmhub.core.security import CurrentPrincipal, SuperAdminPrincipal
from .features import features_by_group
from .models import (
    EffectiveFeaturesAPI,
    FeatureOverrideAPI,
    FeatureToggleAPI,
    OrgFeatureOverrideInDB,
    OrgSubscriptionInDB,
    PlanCreateAPI,
    PlanInDB,
    SubscriptionAPI,
)
from .services import PlanService, get_plan_service, get_platform_plan_service

plans_router = APIRouter()


@plans_router.get("/features/catalog", response_model=Dict[str, Dict[str, str]], summary="Available features grouped")
async def feature_catalog_endpoint(principal: CurrentPrincipal):
    return features_by_group()


@plans_router.get("/features/effective", response_model=EffectiveFeaturesAPI, summary="Effective features of the organization")
async def effective_features_endpoint(
    principal: CurrentPrincipal,
    plan_service: PlanService = Depends(get_plan_service),
):
    return await plan_service.effective_features()


@plans_router.put("/features/overrides/{feature_key}", response_model=OrgFeatureOverrideInDB, summary="Override a feature for the organization")
async def set_override_endpoint(
    principal: SuperAdminPrincipal,
    payload: FeatureOverrideAPI,
    feature_key: str = Path(...),
    plan_service: PlanService = Depends(get_platform_plan_service),
):
    return await plan_service.set_override(principal, feature_key, payload)


@plans_router.put("/subscription", response_model=OrgSubscriptionInDB, summary="Set organization subscription")
async def set_subscription_endpoint(
    principal: SuperAdminPrincipal,
    payload: SubscriptionAPI,
    plan_service: PlanService = Depends(get_platform_plan_service),
):
    return await plan_service.set_subscription(payload)


@plans_router.post("", response_model=PlanInDB, status_code=status.HTTP_201_CREATED, summary="Create plan")
async def create_plan_endpoint(
    principal: SuperAdminPrincipal,
    payload: PlanCreateAPI,
    plan_service: PlanService = Depends(get_plan_service),
):
    return await plan_service.create_plan(payload)


@plans_router.get("", response_model=List[PlanInDB], summary="List plans")
async def list_plans_endpoint(
    principal: CurrentPrincipal,
    plan_service: PlanService = Depends(get_plan_service),
):
    return await plan_service.list_plans()


@plans_router.put("/{plan_id}/features/{feature_key}", response_model=PlanInDB, summary="Enable/disable a plan feature")
async def set_plan_feature_endpoint(
    principal: SuperAdminPrincipal,
    payload: FeatureToggleAPI = Body(...),
    plan_id: str = Path(...),
    feature_key: str = Path(...),
    plan_service: PlanService = Depends(get_plan_service),
):
    return await plan_service.set_plan_feature(plan_id, feature_key, payload.is_enabled)
