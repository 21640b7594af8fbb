# crmhub/modules/reconciliation/services.py

from datetime import datetime, time, timedelta, timezone
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from loguru import logger

from crmhub.core.config import settings
from crmhub.core.database import get_database
from crmhub.core.security import CurrentPrincipal, Principal
from crmhub.modules.leads.repository import LeadFollowupRepository, LeadRepository, NonPurchaseReasonRepository
from crmhub.modules.members.repository import UserRepository
from crmhub.modules.sales.repository import SaleRepository
from crmhub.modules.stock.repository import ProductRepository
from .matching import filter_blocked, find_matching_attendance, find_matching_lead, parse_call_date, parse_calls_csv
from .models import (
    CallValidationInDB,
    LeadOnlyMatch,
    MatchedAttendance,
    ReceptiveAttendanceCreateAPI,
    ReceptiveAttendanceInDB,
    ReconciliationConfigAPI,
    ReconciliationConfigInDB,
    ValidationResult,
)
from .repository import CallValidationRepository, ReceptiveAttendanceRepository, ReconciliationConfigRepository


class ReconciliationService:
    """Confere o CSV de ligações contra atendimentos receptivos, vendas e leads."""

    def __init__(self, db: AsyncIOMotorDatabase, organization_id: str):
        self.organization_id = organization_id
        self.attendances = ReceptiveAttendanceRepository(db, organization_id)
        self.configs = ReconciliationConfigRepository(db, organization_id)
        self.validations = CallValidationRepository(db, organization_id)
        self.leads = LeadRepository(db, organization_id)
        self.followups = LeadFollowupRepository(db, organization_id)
        self.reasons = NonPurchaseReasonRepository(db, organization_id)
        self.sales = SaleRepository(db, organization_id)
        self.products = ProductRepository(db, organization_id)
        self.users = UserRepository(db)
        self.tz = ZoneInfo(settings.TIMEZONE)

    def _local_day_start_utc(self, day: datetime) -> datetime:
        local = datetime.combine(day.date(), time.min, tzinfo=self.tz)
        return local.astimezone(timezone.utc).replace(tzinfo=None)

    async def reconcile(self, principal: Principal, csv_text: str, file_name: str) -> CallValidationInDB:
        log = logger.bind(organization_id=self.organization_id, file_name=file_name)
        config = await self.get_config()
        calls = parse_calls_csv(csv_text)
        if config is not None:
            calls = filter_blocked(calls, config.blacklist_numbers, config.cnpj_numbers)
        if not calls:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid calls found in file")

        dated = [(call, parse_call_date(call.created_at)) for call in calls]
        dates = [d for _, d in dated if d is not None]
        if not dates:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Could not parse call dates")

        start = self._local_day_start_utc(min(dates))
        end = self._local_day_start_utc(max(dates) + timedelta(days=1))
        attendances = await self.attendances.list_between(start, end)
        leads = await self.leads.list_by({}, limit=0)
        latest_followups = await self.followups.latest_by_lead(str(lead.id) for lead in leads)
        log.info(f"Reconciling {len(calls)} call(s) against {len(attendances)} attendance(s) and {len(leads)} lead(s).")

        leads_by_id = {str(lead.id): lead for lead in leads}
        user_names = await self.users.names_by_ids(
            [a.user_id for a in attendances] + [lead.assigned_to for lead in leads if lead.assigned_to]
        )
        reason_names = await self.reasons.names_by_ids(a.non_purchase_reason_id for a in attendances if a.non_purchase_reason_id)

        result = ValidationResult()
        for call, call_date in dated:
            attendance = find_matching_attendance(call, call_date, attendances, self.tz) if call_date else None
            if attendance is not None:
                matched = await self._describe_attendance(call.model_dump(), attendance, leads_by_id, user_names, reason_names)
                if matched.sale_id:
                    result.calls_with_record_and_sale.append(matched)
                else:
                    result.calls_with_record_no_sale.append(matched)
                continue

            lead = find_matching_lead(call, leads)
            if lead is not None:
                followup = latest_followups.get(str(lead.id))
                result.calls_with_lead_only.append(LeadOnlyMatch(
                    **call.model_dump(),
                    lead_id=str(lead.id),
                    lead_name=lead.name,
                    lead_stage=lead.stage,
                    lead_whatsapp=lead.whatsapp,
                    followup_reason=followup.reason if followup else None,
                    followup_scheduled_at=followup.scheduled_at if followup else None,
                    responsible_name=user_names.get(lead.assigned_to) if lead.assigned_to else None,
                ))
                continue

            result.calls_without_record.append(call)

        validation = await self.validations.create({
            "uploaded_by": principal.user_id,
            "file_name": file_name,
            "total_calls": len(calls),
            "calls_without_record": len(result.calls_without_record),
            "calls_with_record_no_sale": len(result.calls_with_record_no_sale),
            "validation_data": result.model_dump(),
        })
        log.success(
            f"Reconciliation stored: total={len(calls)} without_record={validation.calls_without_record} "
            f"record_no_sale={validation.calls_with_record_no_sale}"
        )
        return validation

    async def _describe_attendance(
        self,
        call_data: Dict,
        attendance: ReceptiveAttendanceInDB,
        leads_by_id: Dict,
        user_names: Dict[str, str],
        reason_names: Dict[str, str],
    ) -> MatchedAttendance:
        lead = leads_by_id.get(attendance.lead_id) if attendance.lead_id else None
        product = await self.products.get_by_id(attendance.product_id) if attendance.product_id else None
        sale = await self.sales.get_by_id(attendance.sale_id) if attendance.sale_id else None
        return MatchedAttendance(
            **call_data,
            receptive_id=str(attendance.id),
            lead_id=attendance.lead_id,
            user_name=user_names.get(attendance.user_id, ""),
            conversation_mode=attendance.conversation_mode,
            lead_name=lead.name if lead else "",
            lead_stage=lead.stage if lead else "",
            product_name=product.name if product else "",
            sale_id=attendance.sale_id,
            sale_total_cents=sale.total_cents if sale else None,
            sale_status=sale.status if sale else None,
            reason_name=reason_names.get(attendance.non_purchase_reason_id or "", ""),
            completed=attendance.completed,
            attendance_created_at=attendance.created_at,
        )

    async def get_config(self) -> Optional[ReconciliationConfigInDB]:
        return await self.configs.get_by({})

    async def save_config(self, payload: ReconciliationConfigAPI) -> ReconciliationConfigInDB:
        data = {
            "blacklist_numbers": [entry.strip() for entry in payload.blacklist_numbers if entry.strip()],
            "cnpj_numbers": [entry.strip() for entry in payload.cnpj_numbers if entry.strip()],
        }
        return await self.configs.upsert(data)

    async def list_validations(self) -> List[CallValidationInDB]:
        return await self.validations.recent(20)

    async def record_attendance(self, principal: Principal, payload: ReceptiveAttendanceCreateAPI) -> ReceptiveAttendanceInDB:
        return await self.attendances.create(dict(payload.model_dump(), user_id=principal.user_id))


async def get_reconciliation_service(
    principal: CurrentPrincipal,
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> ReconciliationService:
    return ReconciliationService(db, principal.organization_id)
