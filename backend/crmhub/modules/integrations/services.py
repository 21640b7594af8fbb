# crmhub/modules/integrations/services.py
"""
Ingestão de webhooks de integrações externas.

Fluxo do POST: token -> rate limit -> parse do corpo -> ping/teste ->
status da integração -> mapeamento -> lead (cria ou atualiza) -> venda
opcional -> log. Cada saída relevante grava um `IntegrationLog`.
"""

import json
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

from fastapi import Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from loguru import logger

from crmhub.core.config import settings
from crmhub.core.counters import CounterService
from crmhub.core.database import get_database
from crmhub.core.repository import utcnow
from crmhub.core.security import CurrentPrincipal, Principal
from crmhub.modules.leads.services import LeadService
from crmhub.modules.members.repository import MemberRepository
from crmhub.modules.sales.pricing import round_half_up
from crmhub.modules.sales.repository import SaleRepository
from crmhub.modules.stock.repository import ProductRepository
from .mapping import (
    InvalidPayload,
    MappedRecord,
    is_test_request,
    map_payload,
    parse_body,
    parse_quantity,
    parse_total_cents,
)
from .models import IntegrationCreateAPI, IntegrationInDB, IntegrationUpdateAPI, WebhookResult
from .rate_limit import WebhookRateLimiter
from .repository import IntegrationLogRepository, IntegrationRepository

webhook_rate_limiter = WebhookRateLimiter(
    per_token=settings.WEBHOOK_RATE_LIMIT_PER_TOKEN,
    per_ip=settings.WEBHOOK_RATE_LIMIT_PER_IP,
    daily=settings.WEBHOOK_DAILY_LIMIT,
    tz=ZoneInfo(settings.TIMEZONE),
)

DEFAULT_SALE_PRODUCT_NAME = "Produto via Integração"


class WebhookRejected(Exception):
    """Resposta de erro do webhook: status HTTP, corpo JSON e headers extras."""

    def __init__(self, status_code: int, body: Dict[str, Any], headers: Optional[Dict[str, str]] = None):
        super().__init__(body.get("error") or body.get("message"))
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}


class WebhookIngestionService:
    def __init__(self, db: AsyncIOMotorDatabase, rate_limiter: WebhookRateLimiter = webhook_rate_limiter):
        self.db = db
        self.integrations = IntegrationRepository(db)
        self.rate_limiter = rate_limiter
        self.tz = ZoneInfo(settings.TIMEZONE)

    async def describe(self, auth_token: Optional[str]) -> Dict[str, Any]:
        """GET: verificação de disponibilidade usada pelas plataformas externas."""
        if not auth_token:
            return {"ok": True, "message": "Webhook endpoint ativo"}
        integration = await self.integrations.get_by_token(auth_token)
        if integration is None:
            raise WebhookRejected(status.HTTP_401_UNAUTHORIZED, {"error": "Token inválido"})
        return {
            "ok": True,
            "integration": integration.name,
            "status": integration.status,
            "message": "Webhook endpoint ativo",
        }

    async def _log(self, integration: IntegrationInDB, started: float, log_status: str, **fields: Any) -> None:
        logs = IntegrationLogRepository(self.db, integration.organization_id)
        await logs.create(dict(
            fields,
            integration_id=str(integration.id),
            direction="inbound",
            status=log_status,
            processing_time_ms=int((time.monotonic() - started) * 1000),
        ))

    async def ingest(
        self,
        auth_token: Optional[str],
        client_ip: str,
        path: str,
        query: Mapping[str, str],
        raw_body: Optional[str],
        content_type: Optional[str],
    ) -> Dict[str, Any]:
        started = time.monotonic()
        if not auth_token:
            raise WebhookRejected(status.HTTP_401_UNAUTHORIZED, {"error": "Token de autenticação não fornecido"})

        integration = await self.integrations.get_by_token(auth_token)
        if integration is None:
            raise WebhookRejected(status.HTTP_401_UNAUTHORIZED, {"error": "Token inválido"})

        log = logger.bind(integration_id=str(integration.id), organization_id=integration.organization_id)
        test_mode = is_test_request(path, query)

        if not test_mode:
            limit = self.rate_limiter.check(str(integration.id), client_ip)
            if limit.limited:
                log.warning(f"Webhook rate limited: {limit.reason}")
                await self._log(integration, started, "rate_limited", event_type="rate_limit", error_message=limit.reason)
                raise WebhookRejected(
                    status.HTTP_429_TOO_MANY_REQUESTS,
                    {"error": limit.reason, "retry_after": limit.retry_after_seconds},
                    headers={"Retry-After": str(limit.retry_after_seconds)},
                )

        if not raw_body or not raw_body.strip():
            await self._log(integration, started, "ping", event_type="validation",
                            response_payload={"ok": True, "mode": "validation"})
            return {"ok": True, "mode": "validation"}

        try:
            payload = parse_body(raw_body, content_type)
        except InvalidPayload:
            log.warning("Webhook received invalid JSON.")
            await self._log(
                integration, started, "test" if test_mode else "error",
                event_type="invalid_json", request_payload={"raw": (raw_body or "")[:1000]},
                error_message="JSON inválido",
            )
            if test_mode:
                return {"ok": True, "mode": "test", "error": "Payload JSON inválido"}
            raise WebhookRejected(status.HTTP_400_BAD_REQUEST, {"error": "Payload JSON inválido"})

        if test_mode or is_test_request(path, query, payload):
            await self._log(integration, started, "test", event_type="test", request_payload=payload)
            return {"ok": True, "mode": "test", "message": "Teste recebido com sucesso. Nenhum lead foi criado."}

        if integration.status != "active":
            await self._log(integration, started, "rejected", event_type="inactive", request_payload=payload,
                            error_message="Integração inativa")
            raise WebhookRejected(status.HTTP_401_UNAUTHORIZED, {"error": "Integração inativa"})

        if not isinstance(payload, dict):
            await self._log(integration, started, "error", event_type="invalid_payload", request_payload=payload,
                            error_message="Payload deve ser um objeto JSON")
            raise WebhookRejected(status.HTTP_400_BAD_REQUEST, {"error": "Payload deve ser um objeto JSON"})

        record = map_payload(payload, integration.field_mappings)
        if not record.has_identity:
            received_fields = list(payload.keys())[:20]
            await self._log(integration, started, "error", event_type="missing_identity", request_payload=payload,
                            error_message="Nenhum campo de identificação (nome, whatsapp ou email) encontrado")
            raise WebhookRejected(status.HTTP_400_BAD_REQUEST, {
                "error": "Nenhum campo de identificação encontrado (nome, whatsapp ou email)",
                "received_fields": received_fields,
            })

        lead_service = LeadService(self.db, integration.organization_id)
        lead_id, action = await self._upsert_lead(integration, lead_service, record, payload, started)

        sale_id = None
        if integration.event_mode in ("sale", "both"):
            try:
                sale_id = await self._create_sale(integration, lead_service, lead_id, record)
            except Exception as e:
                log.error(f"Lead processed but sale creation failed: {e}")
                await self._log(integration, started, "partial", event_type="sale_creation_failed",
                                request_payload=payload, lead_id=lead_id,
                                error_message=f"Lead processado, mas erro ao criar venda: {e}")

        if sale_id:
            event_type = "lead_and_sale_created" if action == "created" else "lead_updated_sale_created"
        else:
            event_type = "lead_created" if action == "created" else "lead_updated"
        await self._log(integration, started, "success", event_type=event_type, request_payload=payload,
                        response_payload={"lead_id": lead_id, "sale_id": sale_id, "action": action}, lead_id=lead_id)

        verb = "criado" if action == "created" else "atualizado"
        message = f"Lead {verb} e venda criada com sucesso" if sale_id else f"Lead {verb} com sucesso"
        log.success(f"Webhook processed: {event_type} lead={lead_id} sale={sale_id}")
        return WebhookResult(action=action, lead_id=lead_id, sale_id=sale_id, message=message).model_dump()

    async def _upsert_lead(
        self,
        integration: IntegrationInDB,
        lead_service: LeadService,
        record: MappedRecord,
        payload: Dict[str, Any],
        started: float,
    ) -> Tuple[str, str]:
        lead_data = dict(record.lead)
        existing = await lead_service.leads.get_by_whatsapp(lead_data.get("whatsapp", ""))
        if existing is not None:
            stamp = datetime.now(timezone.utc).astimezone(self.tz).strftime("%d/%m/%Y, %H:%M:%S")
            block = f"[Integração {integration.name} - {stamp}]\n{json.dumps(payload, indent=2, ensure_ascii=False)}"
            await lead_service.leads.append_observation(str(existing.id), block)
            return str(existing.id), "updated"

        if not lead_data.get("whatsapp"):
            await self._log(integration, started, "error", event_type="missing_required", request_payload=payload,
                            error_message="Campo whatsapp é obrigatório para criar lead")
            raise WebhookRejected(status.HTTP_400_BAD_REQUEST, {"error": "Campo whatsapp é obrigatório para criar lead"})
        lead_data["name"] = lead_data.get("name") or lead_data.get("whatsapp") or lead_data.get("email") or "Lead sem nome"

        owner_id = await self._resolve_owner(integration)
        if owner_id is None:
            await self._log(integration, started, "error", event_type="missing_owner", request_payload=payload,
                            error_message="Nenhum usuário disponível para ser responsável pelo lead")
            raise WebhookRejected(status.HTTP_400_BAD_REQUEST, {"error": "Nenhum usuário disponível para ser responsável pelo lead"})

        addresses = []
        if record.address:
            addresses.append(dict(record.address, street_number=record.address.get("number"), label="Principal", is_primary=True))
        lead = await lead_service.leads.create(dict(
            lead_data,
            stage=integration.default_stage,
            assigned_to=owner_id,
            responsibles=list(integration.default_responsible_user_ids),
            addresses=addresses,
            product_interest_ids=[integration.default_product_id] if integration.default_product_id else [],
            source=integration.name,
        ))
        lead_id = str(lead.id)

        responsible_id = next(iter(integration.default_responsible_user_ids), None)
        if integration.auto_followup_days and responsible_id:
            await lead_service.followups.create({
                "lead_id": lead_id,
                "user_id": responsible_id,
                "scheduled_at": utcnow() + timedelta(days=integration.auto_followup_days),
                "source_type": "integration",
                "notes": f"Followup automático da integração: {integration.name}",
            })
        if integration.non_purchase_reason_id:
            await lead_service.non_purchases.create({
                "lead_id": lead_id,
                "reason_id": integration.non_purchase_reason_id,
                "notes": f"Via integração: {integration.name}",
            })
        return lead_id, "created"

    async def _resolve_owner(self, integration: IntegrationInDB) -> Optional[str]:
        """Primeiro responsável padrão; senão owner, admin ou qualquer membro da organização."""
        if integration.default_responsible_user_ids:
            return str(integration.default_responsible_user_ids[0])
        members = MemberRepository(self.db, integration.organization_id)
        for role in ("owner", "admin", None):
            member = await members.first_with_role(role)
            if member is not None:
                return member.user_id
        return None

    async def _create_sale(
        self,
        integration: IntegrationInDB,
        lead_service: LeadService,
        lead_id: str,
        record: MappedRecord,
    ) -> str:
        sale_data = record.sale
        products = ProductRepository(self.db, integration.organization_id)
        product_id = integration.default_product_id
        product_name = sale_data.get("product_name") or DEFAULT_SALE_PRODUCT_NAME
        sku = sale_data.get("product_sku")
        if sku:
            product = await products.get_by_sku(sku)
            if product is not None:
                product_id, product_name = str(product.id), product.name

        total_cents = parse_total_cents(sale_data.get("total_cents"))
        quantity = parse_quantity(sale_data.get("quantity"))
        lead = await lead_service.leads.get_by_id(lead_id)
        seller_id = next(iter(integration.default_responsible_user_ids), None) or (lead.assigned_to if lead else None)

        items = []
        if product_id:
            items.append({
                "product_id": product_id,
                "product_name": product_name,
                "quantity": quantity,
                "multiplier": quantity,
                "unit_price_cents": round_half_up(total_cents / quantity),
                "discount_cents": 0,
                "total_cents": total_cents,
                "requisition_number": f"SKU: {sku}" if sku else None,
            })

        romaneio = await CounterService(self.db).next_romaneio_number(integration.organization_id)
        sale_status = integration.sale_status_on_create or "draft"
        sale = await SaleRepository(self.db, integration.organization_id).create({
            "romaneio_number": romaneio,
            "lead_id": lead_id,
            "created_by": seller_id or "integration",
            "seller_user_id": seller_id,
            "status": sale_status,
            "items": items,
            "subtotal_cents": total_cents,
            "discount_cents": 0,
            "total_cents": total_cents,
            "delivery_type": "carrier",
            "external_order_id": sale_data.get("external_id"),
            "external_order_url": sale_data.get("external_url"),
            "external_source": integration.name,
            "observation_1": product_name,
            "payment_notes": f"[{integration.sale_tag}]" if integration.sale_tag else None,
            "status_history": [{
                "previous_status": None, "new_status": sale_status,
                "changed_by": seller_id or "integration", "changed_at": utcnow(),
                "notes": f"Criada via integração {integration.name}",
            }],
        })
        return str(sale.id)


class IntegrationService:
    """Administração das integrações da organização (JWT)."""

    def __init__(self, db: AsyncIOMotorDatabase, organization_id: str):
        self.organization_id = organization_id
        self.integrations = IntegrationRepository(db, organization_id)
        self.logs = IntegrationLogRepository(db, organization_id)

    async def create(self, principal: Principal, payload: IntegrationCreateAPI) -> IntegrationInDB:
        data = payload.model_dump()
        data["auth_token"] = secrets.token_urlsafe(32)
        data["status"] = "active"
        integration = await self.integrations.create(data)
        logger.bind(organization_id=self.organization_id, user_id=principal.user_id).success(
            f"Integration '{integration.name}' created ({integration.id})."
        )
        return integration

    async def get(self, integration_id: str) -> IntegrationInDB:
        integration = await self.integrations.get_by_id(integration_id)
        if integration is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not found")
        return integration

    async def list_integrations(self) -> List[IntegrationInDB]:
        return await self.integrations.list_by({}, limit=0, sort=[("created_at", -1)])

    async def update(self, integration_id: str, payload: IntegrationUpdateAPI) -> IntegrationInDB:
        integration = await self.integrations.update(integration_id, payload)
        if integration is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not found")
        return integration

    async def replace_mappings(self, integration_id: str, mappings: List[Dict[str, Any]]) -> IntegrationInDB:
        await self.get(integration_id)
        return await self.integrations.replace_mappings(integration_id, mappings)

    async def regenerate_token(self, integration_id: str) -> IntegrationInDB:
        await self.get(integration_id)
        return await self.integrations.update(integration_id, {"auth_token": secrets.token_urlsafe(32)})


async def get_webhook_service(db: AsyncIOMotorDatabase = Depends(get_database)) -> WebhookIngestionService:
    return WebhookIngestionService(db)


async def get_integration_service(
    principal: CurrentPrincipal,
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> IntegrationService:
    return IntegrationService(db, principal.organization_id)
