# crmhub/modules/sales/services.py

from typing import Any, Dict, List, Optional

from fastapi import Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from loguru import logger

from crmhub.core.config import settings
from crmhub.core.counters import CounterService
from crmhub.core.database import get_database
from crmhub.core.repository import utcnow
from crmhub.core.security import CurrentPrincipal, Principal
from crmhub.modules.leads.services import SALE_CANCEL_REASON, LeadService
from crmhub.modules.stock.services import StockService
from .models import SaleCreateAPI, SaleInDB, SaleInstallmentInDB, SaleItem, SaleUpdateAPI
from .pricing import PaymentTerms, compute_installments, compute_sale_totals, item_total_cents
from .repository import (
    DeliveryRegionRepository,
    PaymentMethodRepository,
    PostSaleSurveyRepository,
    SaleInstallmentRepository,
    SaleRepository,
)

RETURNED_STAGE_NAME = "TELE ENTREGA VOLTOU"
_RESCHEDULE_CLEARED_FIELDS = (
    "dispatched_at", "delivered_at", "return_reason_id", "return_notes", "returned_at", "returned_by",
)


class SaleService:
    """Ciclo de vida da venda (romaneio) e seus efeitos colaterais."""

    def __init__(self, db: AsyncIOMotorDatabase, organization_id: str):
        self.organization_id = organization_id
        self.sales = SaleRepository(db, organization_id)
        self.installments = SaleInstallmentRepository(db, organization_id)
        self.payment_methods = PaymentMethodRepository(db, organization_id)
        self.regions = DeliveryRegionRepository(db, organization_id)
        self.surveys = PostSaleSurveyRepository(db, organization_id)
        self.counters = CounterService(db)
        self.stock = StockService(db, organization_id)
        self.leads = LeadService(db, organization_id)

    async def create_sale(self, principal: Principal, payload: SaleCreateAPI) -> SaleInDB:
        log = logger.bind(organization_id=self.organization_id, lead_id=payload.lead_id, user_id=principal.user_id)
        try:
            totals = compute_sale_totals(
                payload.items,
                payload.discount_type,
                payload.discount_value,
                payload.shipping_cost_cents,
                payload.seller_commission_cents,
                payload.seller_commission_percentage,
            )
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        lead = await self.leads.leads.get_by_id(payload.lead_id)
        if lead is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found")

        assigned_delivery_user_id = None
        if payload.delivery_type == "motoboy" and payload.delivery_region_id:
            region = await self.regions.get_by_id(payload.delivery_region_id)
            if region is not None:
                assigned_delivery_user_id = region.assigned_user_id

        romaneio_number = await self.counters.next_romaneio_number(self.organization_id)
        now = utcnow()
        data = payload.model_dump(exclude={"items"})
        data.update(totals.model_dump())
        data.update({
            "romaneio_number": romaneio_number,
            "created_by": principal.user_id,
            "seller_user_id": payload.seller_user_id or principal.user_id,
            "status": "draft",
            "assigned_delivery_user_id": assigned_delivery_user_id,
            "items": [
                SaleItem(**item.model_dump(), total_cents=item_total_cents(item)).model_dump()
                for item in payload.items
            ],
            "status_history": [{
                "previous_status": None, "new_status": "draft",
                "changed_by": principal.user_id, "changed_at": now, "notes": "Venda criada",
            }],
        })
        sale = await self.sales.create(data)
        log = log.bind(sale_id=str(sale.id), romaneio=romaneio_number)
        log.success(f"Sale created. Total: {sale.total_cents} cents.")

        # efeitos colaterais: falhas são logadas e a venda permanece
        try:
            await self.stock.reserve_for_sale(sale)
        except Exception as e:
            log.error(f"Stock reservation failed: {e}")

        try:
            await self.leads.cancel_pending_messages(sale.lead_id, SALE_CANCEL_REASON)
        except Exception as e:
            log.error(f"Failed to cancel scheduled messages: {e}")

        if payload.payment_method_id:
            try:
                await self._create_installments(sale, payload.payment_method_id, payload.payment_installments)
            except Exception as e:
                log.error(f"Installment creation failed: {e}")

        await self.leads.leads.increment_values(sale.lead_id, negotiated=sale.total_cents / 100)

        try:
            await self.leads.run_post_sale_automation(sale.lead_id)
        except Exception as e:
            log.error(f"Post-sale automation failed: {e}")

        return sale

    async def _create_installments(self, sale: SaleInDB, payment_method_id: str, count: int) -> List[SaleInstallmentInDB]:
        method = await self.payment_methods.get_by_id(payment_method_id)
        if method is None:
            logger.bind(sale_id=str(sale.id)).warning(f"Payment method {payment_method_id} not found. No installments created.")
            return []
        terms = PaymentTerms(
            installment_flow=method.installment_flow,
            # 0 no cadastro = prazo padrão da plataforma
            settlement_days=method.settlement_days or settings.DEFAULT_SETTLEMENT_DAYS,
            anticipation_fee_percentage=method.anticipation_fee_percentage,
            fee_percentage=method.fee_percentage,
            acquirer_id=method.acquirer_id,
        )
        created = []
        for installment in compute_installments(sale.total_cents, count or 1, terms, sale.created_at):
            created.append(await self.installments.create(dict(installment.model_dump(), sale_id=str(sale.id))))
        return created

    async def update_sale(
        self,
        principal: Principal,
        sale_id: str,
        payload: SaleUpdateAPI,
        previous_status: Optional[str] = None,
    ) -> SaleInDB:
        sale = await self.get_sale(sale_id)
        previous_status = previous_status or sale.status
        new_status = payload.status
        log = logger.bind(organization_id=self.organization_id, sale_id=sale_id, status=new_status)

        changes: Dict[str, Any] = payload.model_dump(exclude_unset=True, exclude={"status_notes"})
        now = utcnow()

        if new_status == "pending_expedition":
            changes["expedition_validated_at"] = now
            changes["expedition_validated_by"] = principal.user_id
        elif new_status == "dispatched":
            changes["dispatched_at"] = now
        elif new_status == "delivered":
            changes["delivered_at"] = payload.delivered_at or now
        elif new_status == "payment_confirmed":
            changes["payment_confirmed_at"] = now
            changes["payment_confirmed_by"] = principal.user_id
        elif new_status == "returned":
            changes["returned_at"] = now
            changes["returned_by"] = principal.user_id
        elif new_status == "draft" and previous_status == "returned":
            for field in _RESCHEDULE_CLEARED_FIELDS:
                changes[field] = None
            changes["delivery_status"] = "pending"

        history_entry = None
        if new_status:
            history_entry = {
                "previous_status": previous_status, "new_status": new_status,
                "changed_by": principal.user_id, "changed_at": now, "notes": payload.status_notes,
            }
        updated = await self.sales.update_with_history(sale_id, changes, history_entry)
        if updated is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sale not found")

        if new_status:
            await self._apply_status_effects(updated, new_status, previous_status, log)
        return updated

    async def _apply_status_effects(self, sale: SaleInDB, new_status: str, previous_status: str, log) -> None:
        if new_status == "delivered":
            try:
                await self.stock.deduct_for_delivered_sale(sale)
            except Exception as e:
                log.error(f"Stock deduction failed: {e}")
            await self._ensure_post_sale_survey(sale)
        elif new_status == "payment_confirmed":
            await self.leads.leads.increment_values(sale.lead_id, paid=sale.total_cents / 100)
        elif new_status == "returned":
            stage = await self.leads.find_stage_by_name(RETURNED_STAGE_NAME)
            if stage is not None:
                await self.leads.leads.update(sale.lead_id, {"funnel_stage_id": str(stage.id), "stage": "no_show"})
                log.info(f"Lead {sale.lead_id} moved to stage '{stage.name}'.")
        elif new_status == "cancelled":
            try:
                if previous_status in ("delivered", "payment_confirmed"):
                    await self.stock.restore_for_cancelled_delivered_sale(sale)
                else:
                    await self.stock.unreserve_for_sale(sale)
            except Exception as e:
                log.error(f"Stock release on cancellation failed: {e}")

    async def _ensure_post_sale_survey(self, sale: SaleInDB) -> None:
        if await self.surveys.get_by({"sale_id": str(sale.id)}):
            return
        try:
            await self.surveys.create({
                "sale_id": str(sale.id),
                "lead_id": sale.lead_id,
                "delivery_type": sale.delivery_type,
                "status": "pending",
            })
        except ValueError:
            # índice único (organization_id, sale_id): outra requisição criou antes
            logger.bind(sale_id=str(sale.id)).debug("Post-sale survey already exists.")

    async def get_sale(self, sale_id: str) -> SaleInDB:
        sale = await self.sales.get_by_id(sale_id)
        if sale is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sale not found")
        return sale

    async def list_sales(self, status_filter: Optional[str] = None, lead_id: Optional[str] = None, skip: int = 0, limit: int = 50) -> List[SaleInDB]:
        query: Dict[str, Any] = {}
        if status_filter:
            query["status"] = status_filter
        if lead_id:
            query["lead_id"] = lead_id
        return await self.sales.list_by(query, skip=skip, limit=limit, sort=[("created_at", -1)])

    async def delete_sale(self, sale_id: str) -> None:
        if not await self.sales.delete(sale_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sale not found")


async def get_sale_service(
    principal: CurrentPrincipal,
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> SaleService:
    return SaleService(db, principal.organization_id)
