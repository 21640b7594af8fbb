# crmhub/modules/leads/routers.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from crmhub.core.config import settings
from crmhub.core.security import AdminPrincipal, CurrentPrincipal
from crmhub.modules.integrations.mapping import normalize_phone
from crmhub.models.api_common import DetailResponse
from .models import (
    AutomationConfigAPI,
    AutomationConfigInDB,
    CancelMessagesAPI,
    FollowupCreateAPI,
    FunnelStageCreateAPI,
    FunnelStageInDB,
    LeadCreateAPI,
    LeadFollowupInDB,
    LeadInDB,
    LeadUpdateAPI,
    MessageTemplateCreateAPI,
    MessageTemplateInDB,
    NonPurchaseReasonCreateAPI,
    NonPurchaseReasonInDB,
    ScheduledMessageInDB,
    ScheduleReasonAPI,
    StageMoveAPI,
)
from .services import LeadService, get_lead_service

leads_router = APIRouter()
funnel_router = APIRouter()
followup_config_router = APIRouter()


# --- Leads ---
@leads_router.post("", response_model=LeadInDB, status_code=status.HTTP_201_CREATED, summary="Create lead")
async def create_lead_endpoint(
    payload: LeadCreateAPI,
    principal: CurrentPrincipal,
    lead_service: LeadService = Depends(get_lead_service),
):
    if await lead_service.leads.get_by_whatsapp(normalize_phone(payload.whatsapp, settings.DEFAULT_COUNTRY_CODE)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A lead with this WhatsApp already exists")
    return await lead_service.create_lead(payload, created_by=principal.user_id)


@leads_router.get("", response_model=List[LeadInDB], summary="List leads")
async def list_leads_endpoint(
    principal: CurrentPrincipal,
    lead_service: LeadService = Depends(get_lead_service),
    funnel_stage_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None, min_length=2),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
):
    return await lead_service.list_leads(funnel_stage_id, search, skip, limit)


@leads_router.get("/{lead_id}", response_model=LeadInDB, summary="Get lead")
async def get_lead_endpoint(
    principal: CurrentPrincipal,
    lead_id: str = Path(...),
    lead_service: LeadService = Depends(get_lead_service),
):
    return await lead_service.get_lead(lead_id)


@leads_router.patch("/{lead_id}", response_model=LeadInDB, summary="Update lead")
async def update_lead_endpoint(
    payload: LeadUpdateAPI,
    principal: CurrentPrincipal,
    lead_id: str = Path(...),
    lead_service: LeadService = Depends(get_lead_service),
):
    return await lead_service.update_lead(lead_id, payload)


@leads_router.post("/{lead_id}/stage", response_model=LeadInDB, summary="Move lead to a funnel stage")
async def move_lead_endpoint(
    payload: StageMoveAPI,
    principal: CurrentPrincipal,
    lead_id: str = Path(...),
    lead_service: LeadService = Depends(get_lead_service),
):
    lead = await lead_service.get_lead(lead_id)
    return await lead_service.move_to_stage(lead, payload.funnel_stage_id)


@leads_router.post("/{lead_id}/non-purchase", response_model=DetailResponse, summary="Mark non-purchase and schedule follow-ups")
async def schedule_reason_endpoint(
    payload: ScheduleReasonAPI,
    principal: CurrentPrincipal,
    lead_id: str = Path(...),
    lead_service: LeadService = Depends(get_lead_service),
):
    lead = await lead_service.get_lead(lead_id)
    created = await lead_service.mark_non_purchase(lead, payload.non_purchase_reason_id)
    return DetailResponse(detail=f"{created} message(s) scheduled")


@leads_router.get("/{lead_id}/scheduled-messages", response_model=List[ScheduledMessageInDB], summary="Scheduled messages of a lead")
async def list_lead_messages_endpoint(
    principal: CurrentPrincipal,
    lead_id: str = Path(...),
    status_filter: Optional[str] = Query(None, alias="status"),
    lead_service: LeadService = Depends(get_lead_service),
):
    return await lead_service.list_scheduled_messages(lead_id=lead_id, status_filter=status_filter)


@leads_router.post("/{lead_id}/scheduled-messages/cancel", response_model=DetailResponse, summary="Cancel pending messages")
async def cancel_lead_messages_endpoint(
    payload: CancelMessagesAPI,
    principal: CurrentPrincipal,
    lead_id: str = Path(...),
    lead_service: LeadService = Depends(get_lead_service),
):
    cancelled = await lead_service.cancel_pending_messages(lead_id, payload.reason)
    return DetailResponse(detail=f"{cancelled} message(s) cancelled")


@leads_router.post("/{lead_id}/followups", response_model=LeadFollowupInDB, status_code=status.HTTP_201_CREATED, summary="Create follow-up")
async def create_followup_endpoint(
    payload: FollowupCreateAPI,
    principal: CurrentPrincipal,
    lead_id: str = Path(...),
    lead_service: LeadService = Depends(get_lead_service),
):
    return await lead_service.create_followup(lead_id, principal.user_id, payload)


@leads_router.get("/{lead_id}/followups", response_model=List[LeadFollowupInDB], summary="List follow-ups of a lead")
async def list_followups_endpoint(
    principal: CurrentPrincipal,
    lead_id: str = Path(...),
    lead_service: LeadService = Depends(get_lead_service),
):
    return await lead_service.list_followups(lead_id)


# --- Funil ---
@funnel_router.post("", response_model=FunnelStageInDB, status_code=status.HTTP_201_CREATED, summary="Create funnel stage")
async def create_stage_endpoint(
    payload: FunnelStageCreateAPI,
    principal: AdminPrincipal,
    lead_service: LeadService = Depends(get_lead_service),
):
    if payload.default_followup_reason_id and not await lead_service.reasons.get_by_id(payload.default_followup_reason_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Non-purchase reason not found")
    return await lead_service.stages.create(payload)


@funnel_router.get("", response_model=List[FunnelStageInDB], summary="List funnel stages")
async def list_stages_endpoint(
    principal: CurrentPrincipal,
    lead_service: LeadService = Depends(get_lead_service),
):
    return await lead_service.stages.list_by({}, limit=0, sort=[("position", 1)])


# --- Motivos, templates, automação ---
@followup_config_router.post("/reasons", response_model=NonPurchaseReasonInDB, status_code=status.HTTP_201_CREATED, summary="Create non-purchase reason")
async def create_reason_endpoint(
    payload: NonPurchaseReasonCreateAPI,
    principal: AdminPrincipal,
    lead_service: LeadService = Depends(get_lead_service),
):
    return await lead_service.reasons.create(payload)


@followup_config_router.get("/reasons", response_model=List[NonPurchaseReasonInDB], summary="List non-purchase reasons")
async def list_reasons_endpoint(
    principal: CurrentPrincipal,
    lead_service: LeadService = Depends(get_lead_service),
):
    return await lead_service.reasons.list_by({}, limit=0, sort=[("name", 1)])


@followup_config_router.post(
    "/reasons/{reason_id}/templates",
    response_model=MessageTemplateInDB,
    status_code=status.HTTP_201_CREATED,
    summary="Add message template to a reason",
)
async def create_template_endpoint(
    payload: MessageTemplateCreateAPI,
    principal: AdminPrincipal,
    reason_id: str = Path(...),
    lead_service: LeadService = Depends(get_lead_service),
):
    if not await lead_service.reasons.get_by_id(reason_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Non-purchase reason not found")
    return await lead_service.templates.create(dict(payload.model_dump(), non_purchase_reason_id=reason_id))


@followup_config_router.get("/reasons/{reason_id}/templates", response_model=List[MessageTemplateInDB], summary="List templates of a reason")
async def list_templates_endpoint(
    principal: CurrentPrincipal,
    reason_id: str = Path(...),
    lead_service: LeadService = Depends(get_lead_service),
):
    return await lead_service.templates.list_by({"non_purchase_reason_id": reason_id}, limit=0, sort=[("position", 1)])


@followup_config_router.get("/scheduled-messages", response_model=List[ScheduledMessageInDB], summary="List scheduled messages")
async def list_messages_endpoint(
    principal: CurrentPrincipal,
    lead_service: LeadService = Depends(get_lead_service),
    status_filter: Optional[str] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    return await lead_service.list_scheduled_messages(status_filter=status_filter, skip=skip, limit=limit)


@followup_config_router.get("/automation", response_model=Optional[AutomationConfigInDB], summary="Get automation config")
async def get_automation_endpoint(
    principal: CurrentPrincipal,
    lead_service: LeadService = Depends(get_lead_service),
):
    return await lead_service.get_automation_config()


@followup_config_router.put("/automation", response_model=AutomationConfigInDB, summary="Save automation config")
async def save_automation_endpoint(
    payload: AutomationConfigAPI,
    principal: AdminPrincipal,
    lead_service: LeadService = Depends(get_lead_service),
):
    return await lead_service.save_automation_config(payload.model_dump())
