# crmhub/modules/leads/services.py

import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from loguru import logger

from crmhub.core.config import settings
from crmhub.core.database import get_database
from crmhub.core.repository import utcnow
from crmhub.core.security import CurrentPrincipal
from crmhub.modules.integrations.mapping import normalize_phone
from crmhub.modules.whatsapp.service import send_text_message
from .models import (
    AutomationConfigInDB,
    FollowupCreateAPI,
    FunnelStageInDB,
    LeadCreateAPI,
    LeadFollowupInDB,
    LeadInDB,
    LeadUpdateAPI,
    ScheduledMessageInDB,
)
from .repository import (
    AutomationConfigRepository,
    FunnelStageRepository,
    LeadFollowupRepository,
    LeadNonPurchaseRepository,
    LeadRepository,
    MessageTemplateRepository,
    NonPurchaseReasonRepository,
    ScheduledMessageRepository,
)
from .scheduling import build_scheduled_messages

SALE_CANCEL_REASON = "Venda efetuada para o cliente"


class LeadService:
    """
    Regras de leads, etapas do funil e follow-ups automáticos.

    Com `organization_id=None` os repositórios ficam sem escopo; é o modo usado
    pelo worker para despachar mensagens de todas as organizações.
    """

    def __init__(self, db: AsyncIOMotorDatabase, organization_id: Optional[str] = None):
        self.organization_id = organization_id
        self.leads = LeadRepository(db, organization_id)
        self.stages = FunnelStageRepository(db, organization_id)
        self.reasons = NonPurchaseReasonRepository(db, organization_id)
        self.templates = MessageTemplateRepository(db, organization_id)
        self.messages = ScheduledMessageRepository(db, organization_id)
        self.followups = LeadFollowupRepository(db, organization_id)
        self.non_purchases = LeadNonPurchaseRepository(db, organization_id)
        self.automation = AutomationConfigRepository(db, organization_id)
        self.tz = ZoneInfo(settings.TIMEZONE)

    # --- Leads ---
    async def create_lead(self, payload: LeadCreateAPI | Dict[str, Any], created_by: Optional[str] = None) -> LeadInDB:
        data = payload.model_dump() if isinstance(payload, LeadCreateAPI) else dict(payload)
        data["whatsapp"] = normalize_phone(data.get("whatsapp"), settings.DEFAULT_COUNTRY_CODE)
        if not data["whatsapp"]:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="WhatsApp is required")
        if data.get("funnel_stage_id") and not await self.stages.get_by_id(data["funnel_stage_id"]):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Funnel stage not found")
        if created_by and not data.get("assigned_to"):
            data["assigned_to"] = created_by
        lead = await self.leads.create(data)
        logger.bind(organization_id=self.organization_id, lead_id=str(lead.id)).info("Lead created.")
        return lead

    async def get_lead(self, lead_id: str) -> LeadInDB:
        lead = await self.leads.get_by_id(lead_id)
        if lead is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found")
        return lead

    async def list_leads(
        self,
        funnel_stage_id: Optional[str] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[LeadInDB]:
        query: Dict[str, Any] = {}
        if funnel_stage_id:
            query["funnel_stage_id"] = funnel_stage_id
        if search:
            digits = "".join(ch for ch in search if ch.isdigit())
            clauses: List[Dict[str, Any]] = [{"name": {"$regex": re.escape(search), "$options": "i"}}]
            if digits:
                clauses.append({"whatsapp": {"$regex": digits}})
            query["$or"] = clauses
        return await self.leads.list_by(query, skip=skip, limit=limit, sort=[("created_at", -1)])

    async def update_lead(self, lead_id: str, payload: LeadUpdateAPI) -> LeadInDB:
        lead = await self.leads.update(lead_id, payload)
        if lead is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found")
        return lead

    async def upsert_by_whatsapp(self, data: Dict[str, Any]) -> LeadInDB:
        """Atualiza o lead com o mesmo WhatsApp (só campos vazios) ou cria um novo."""
        whatsapp = normalize_phone(data.get("whatsapp"), settings.DEFAULT_COUNTRY_CODE)
        existing = await self.leads.get_by_whatsapp(whatsapp)
        if existing is None:
            return await self.create_lead(dict(data, whatsapp=whatsapp))
        missing = {
            key: value for key, value in data.items()
            if key != "whatsapp" and value and not getattr(existing, key, None)
        }
        if not missing:
            return existing
        return await self.leads.update(str(existing.id), missing)

    async def move_to_stage(self, lead: LeadInDB, stage_id: str) -> LeadInDB:
        stage = await self.stages.get_by_id(stage_id)
        if stage is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Funnel stage not found")
        updated = await self.leads.update(str(lead.id), {"funnel_stage_id": str(stage.id)})
        logger.bind(organization_id=self.organization_id, lead_id=str(lead.id)).info(f"Lead moved to stage '{stage.name}'.")
        return updated or lead

    async def find_stage_by_name(self, fragment: str) -> Optional[FunnelStageInDB]:
        return await self.stages.find_by_name_fragment(fragment)

    # --- Follow-ups ---
    async def schedule_reason_followups(self, lead: LeadInDB, reason_id: str, now: Optional[datetime] = None) -> int:
        """Agenda as mensagens dos templates ativos do motivo. Retorna quantas foram criadas."""
        log = logger.bind(organization_id=self.organization_id, lead_id=str(lead.id), reason_id=reason_id)
        reason = await self.reasons.get_by_id(reason_id)
        if reason is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Non-purchase reason not found")
        templates = await self.templates.list_active_for_reason(reason_id)
        if not templates:
            log.info("Reason has no active templates. Nothing to schedule.")
            return 0
        messages = build_scheduled_messages(templates, lead, reason_id, now or utcnow(), self.tz)
        created = await self.messages.insert_many(messages)
        log.success(f"{created} follow-up message(s) scheduled.")
        return created

    async def mark_non_purchase(self, lead: LeadInDB, reason_id: str, notes: Optional[str] = None) -> int:
        await self.non_purchases.create({"lead_id": str(lead.id), "reason_id": reason_id, "notes": notes})
        return await self.schedule_reason_followups(lead, reason_id)

    async def cancel_pending_messages(self, lead_id: str, reason: str) -> int:
        cancelled = await self.messages.cancel_pending_for_lead(lead_id, reason)
        if cancelled:
            logger.bind(organization_id=self.organization_id, lead_id=lead_id).info(
                f"{cancelled} pending message(s) cancelled: {reason}"
            )
        return cancelled

    async def list_scheduled_messages(
        self,
        lead_id: Optional[str] = None,
        status_filter: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[ScheduledMessageInDB]:
        query: Dict[str, Any] = {}
        if lead_id:
            query["lead_id"] = lead_id
        if status_filter:
            query["status"] = status_filter
        return await self.messages.list_by(query, skip=skip, limit=limit, sort=[("scheduled_at", 1)])

    async def create_followup(
        self,
        lead_id: str,
        user_id: str,
        payload: FollowupCreateAPI | Dict[str, Any],
        source_type: str = "manual",
    ) -> LeadFollowupInDB:
        data = payload.model_dump() if isinstance(payload, FollowupCreateAPI) else dict(payload)
        await self.get_lead(lead_id)
        return await self.followups.create(dict(data, lead_id=lead_id, user_id=user_id, source_type=source_type))

    async def list_followups(self, lead_id: str) -> List[LeadFollowupInDB]:
        return await self.followups.list_by({"lead_id": lead_id}, limit=0, sort=[("scheduled_at", -1)])

    # --- Automação ---
    async def get_automation_config(self) -> Optional[AutomationConfigInDB]:
        return await self.automation.get_for_org()

    async def save_automation_config(self, data: Dict[str, Any]) -> AutomationConfigInDB:
        stage_id = data.get("sale_funnel_stage_id")
        if stage_id and not await self.stages.get_by_id(stage_id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Funnel stage not found")
        return await self.automation.upsert(data)

    async def run_post_sale_automation(self, lead_id: str) -> None:
        """Move o lead para a etapa "venda" configurada e agenda o follow-up padrão da etapa."""
        log = logger.bind(organization_id=self.organization_id, lead_id=lead_id)
        config = await self.automation.get_for_org()
        if config is None or not config.sale_funnel_stage_id:
            return
        lead = await self.leads.get_by_id(lead_id)
        if lead is None:
            log.warning("Post-sale automation skipped: lead not found.")
            return
        stage = await self.stages.get_by_id(config.sale_funnel_stage_id)
        if stage is None:
            log.warning(f"Post-sale automation skipped: stage {config.sale_funnel_stage_id} not found.")
            return
        lead = await self.move_to_stage(lead, str(stage.id))
        if stage.default_followup_reason_id:
            await self.schedule_reason_followups(lead, stage.default_followup_reason_id)

    # --- Worker ---
    async def dispatch_due_messages(self, now: Optional[datetime] = None, batch_size: Optional[int] = None) -> Dict[str, int]:
        """Envia as mensagens pendentes vencidas e marca cada uma como sent/failed."""
        now = now or utcnow()
        batch_size = batch_size or settings.FOLLOWUP_DISPATCH_BATCH
        log = logger.bind(service="LeadService", task="dispatch_due_messages")
        sent = failed = 0
        for _ in range(batch_size):
            message = await self.messages.claim_due(now)
            if message is None:
                break
            text = message.final_message or message.message
            ok, wamid = await send_text_message(message.lead_whatsapp or "", text)
            if ok:
                await self.messages.mark_result(str(message.id), sent=True, wamid=wamid)
                sent += 1
            else:
                await self.messages.mark_result(str(message.id), sent=False, error="WhatsApp send failed")
                failed += 1
        if sent or failed:
            log.info(f"Dispatch finished: sent={sent} failed={failed}")
        return {"sent": sent, "failed": failed}


async def get_lead_service(
    principal: CurrentPrincipal,
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> LeadService:
    return LeadService(db, principal.organization_id)
