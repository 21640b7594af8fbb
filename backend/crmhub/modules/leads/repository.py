# crmhub/modules/leads/repository.py

import re
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.results import UpdateResult
from loguru import logger

from crmhub.core.config import settings
from crmhub.core.repository import BaseRepository, utcnow
from .models import (
    AutomationConfigInDB,
    FunnelStageInDB,
    LeadFollowupInDB,
    LeadInDB,
    LeadNonPurchaseInDB,
    MessageTemplateInDB,
    NonPurchaseReasonInDB,
    ScheduledMessageInDB,
)


class LeadRepository(BaseRepository[LeadInDB]):
    model = LeadInDB
    collection_name = "leads"

    async def create_indexes(self):
        await self.collection.create_index([("organization_id", ASCENDING), ("whatsapp", ASCENDING)])
        await self.collection.create_index([("organization_id", ASCENDING), ("funnel_stage_id", ASCENDING)])
        await self.collection.create_index([("organization_id", ASCENDING), ("created_at", DESCENDING)])

    async def get_by_whatsapp(self, whatsapp: str) -> Optional[LeadInDB]:
        if not whatsapp:
            return None
        return await self.get_by({"whatsapp": whatsapp})

    async def increment_values(self, lead_id: str, negotiated: float = 0, paid: float = 0) -> bool:
        """Soma em negotiated_value / paid_value (reais) de forma atômica."""
        obj_id = self._to_objectid(lead_id)
        if not obj_id:
            return False
        try:
            result: UpdateResult = await self.collection.update_one(
                self._scoped({"_id": obj_id}),
                {"$inc": {"negotiated_value": negotiated, "paid_value": paid}, "$set": {"updated_at": utcnow()}},
            )
        except Exception as e:
            self._handle_db_exception(e, "increment_values", obj_id)
        if result.matched_count == 0:
            logger.bind(lead_id=lead_id).warning("Lead not found when incrementing values.")
        return result.matched_count > 0

    async def append_observation(self, lead_id: str, block: str) -> Optional[LeadInDB]:
        lead = await self.get_by_id(lead_id)
        if lead is None:
            return None
        observations = f"{lead.observations}\n\n{block}" if lead.observations else block
        return await self.update(lead_id, {"observations": observations})


class FunnelStageRepository(BaseRepository[FunnelStageInDB]):
    model = FunnelStageInDB
    collection_name = "funnel_stages"

    async def find_by_name_fragment(self, fragment: str) -> Optional[FunnelStageInDB]:
        """Primeira etapa cujo nome contém o trecho (case-insensitive)."""
        return await self.get_by({"name": {"$regex": re.escape(fragment), "$options": "i"}})


class NonPurchaseReasonRepository(BaseRepository[NonPurchaseReasonInDB]):
    model = NonPurchaseReasonInDB
    collection_name = "non_purchase_reasons"

    async def names_by_ids(self, reason_ids: Iterable[str]) -> Dict[str, str]:
        object_ids = [oid for oid in (self._to_objectid(rid) for rid in set(reason_ids)) if oid]
        if not object_ids:
            return {}
        reasons = await self.list_by({"_id": {"$in": object_ids}}, limit=0)
        return {str(r.id): r.name for r in reasons}


class MessageTemplateRepository(BaseRepository[MessageTemplateInDB]):
    model = MessageTemplateInDB
    collection_name = "message_templates"

    async def list_active_for_reason(self, reason_id: str) -> List[MessageTemplateInDB]:
        return await self.list_by(
            {"non_purchase_reason_id": reason_id, "is_active": True},
            limit=0,
            sort=[("position", ASCENDING)],
        )


class ScheduledMessageRepository(BaseRepository[ScheduledMessageInDB]):
    model = ScheduledMessageInDB
    collection_name = "scheduled_messages"

    async def create_indexes(self):
        await self.collection.create_index([("status", ASCENDING), ("scheduled_at", ASCENDING)])
        await self.collection.create_index([("organization_id", ASCENDING), ("lead_id", ASCENDING), ("status", ASCENDING)])

    async def insert_many(self, messages: List[Dict]) -> int:
        if not messages:
            return 0
        now = utcnow()
        documents = []
        for message in messages:
            document = dict(message, created_at=now, updated_at=now)
            if self.organization_id is not None:
                document["organization_id"] = self.organization_id
            documents.append(document)
        try:
            result = await self.collection.insert_many(documents)
        except Exception as e:
            self._handle_db_exception(e, "insert_many")
        return len(result.inserted_ids)

    async def cancel_pending_for_lead(self, lead_id: str, reason: str) -> int:
        now = utcnow()
        try:
            result: UpdateResult = await self.collection.update_many(
                self._scoped({"lead_id": lead_id, "status": "pending"}),
                {"$set": {"status": "cancelled", "cancelled_at": now, "cancel_reason": reason, "updated_at": now}},
            )
        except Exception as e:
            self._handle_db_exception(e, "cancel_pending_for_lead", query={"lead_id": lead_id})
        return result.modified_count

    async def claim_due(self, now: datetime, claim_timeout: Optional[timedelta] = None) -> Optional[ScheduledMessageInDB]:
        """
        Reserva atomicamente uma mensagem pendente vencida (pending -> sending)
        para que dois workers não enviem a mesma mensagem.

        Uma mensagem em `sending` cujo `claimed_at` passou de `claim_timeout`
        (worker morreu antes do mark_result) é reservada de novo.
        """
        if claim_timeout is None:
            claim_timeout = timedelta(minutes=settings.FOLLOWUP_CLAIM_TIMEOUT_MINUTES)
        stale_before = now - claim_timeout
        query = {
            "scheduled_at": {"$lte": now},
            "$or": [
                {"status": "pending"},
                {"status": "sending", "claimed_at": {"$lte": stale_before}},
                # reservas antigas, sem claimed_at
                {"status": "sending", "claimed_at": None},
            ],
        }
        try:
            document = await self.collection.find_one_and_update(
                self._scoped(query),
                {"$set": {"status": "sending", "claimed_at": now, "updated_at": utcnow()}},
                sort=[("scheduled_at", ASCENDING)],
                return_document=ReturnDocument.AFTER,
            )
        except Exception as e:
            self._handle_db_exception(e, "claim_due")
        if document is None:
            return None
        return self._validate(document)

    async def mark_result(self, message_id: str, sent: bool, wamid: Optional[str] = None, error: Optional[str] = None) -> None:
        now = utcnow()
        update = {"status": "sent", "sent_at": now, "wamid": wamid} if sent else {"status": "failed", "error": error}
        update["updated_at"] = now
        try:
            await self.collection.update_one({"_id": self._to_objectid(message_id)}, {"$set": update})
        except Exception as e:
            self._handle_db_exception(e, "mark_result", message_id)


class LeadFollowupRepository(BaseRepository[LeadFollowupInDB]):
    model = LeadFollowupInDB
    collection_name = "lead_followups"

    async def latest_by_lead(self, lead_ids: Iterable[str]) -> Dict[str, LeadFollowupInDB]:
        """Follow-up mais recente (scheduled_at desc) de cada lead."""
        lead_ids = list(set(lead_ids))
        if not lead_ids:
            return {}
        followups = await self.list_by({"lead_id": {"$in": lead_ids}}, limit=0, sort=[("scheduled_at", DESCENDING)])
        latest: Dict[str, LeadFollowupInDB] = {}
        for followup in followups:
            latest.setdefault(followup.lead_id, followup)
        return latest


class LeadNonPurchaseRepository(BaseRepository[LeadNonPurchaseInDB]):
    model = LeadNonPurchaseInDB
    collection_name = "lead_non_purchase"


class AutomationConfigRepository(BaseRepository[AutomationConfigInDB]):
    model = AutomationConfigInDB
    collection_name = "automation_configs"

    async def get_for_org(self) -> Optional[AutomationConfigInDB]:
        return await self.get_by({})

    async def upsert(self, data: Dict) -> AutomationConfigInDB:
        now = utcnow()
        try:
            await self.collection.update_one(
                self._scoped(),
                {"$set": dict(data, updated_at=now), "$setOnInsert": {"created_at": now}},
                upsert=True,
            )
        except Exception as e:
            self._handle_db_exception(e, "upsert")
        return await self.get_for_org()
