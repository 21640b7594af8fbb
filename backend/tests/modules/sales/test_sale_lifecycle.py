# tests/modules/sales/test_sale_lifecycle.py
from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException

from crmhub.modules.sales import services as sale_services
from crmhub.modules.sales.models import SaleCreateAPI, SaleUpdateAPI
from crmhub.modules.sales.services import RETURNED_STAGE_NAME, SaleService

pytestmark = pytest.mark.asyncio


async def _seed(service: SaleService, stock: int = 10):
    lead = await service.leads.leads.create({"name": "Maria Souza", "whatsapp": "5551989423022"})
    product = await service.stock.products.create({"name": "Kit", "sku": "KIT-1", "price_cents": 5000, "stock_quantity": stock})
    return lead, product


def _payload(lead_id: str, product_id: str, **overrides) -> SaleCreateAPI:
    data = {
        "lead_id": lead_id,
        "items": [{"product_id": product_id, "product_name": "Kit", "quantity": 2, "unit_price_cents": 5000}],
        "shipping_cost_cents": 1000,
    }
    data.update(overrides)
    return SaleCreateAPI(**data)


async def test_create_sale_applies_side_effects(db, principal):
    service = SaleService(db, principal.organization_id)
    lead, product = await _seed(service)
    await service.leads.messages.insert_many([{
        "lead_id": str(lead.id), "message": "Oi", "scheduled_at": datetime(2030, 1, 1), "status": "pending",
    }])
    method = await service.payment_methods.create({"name": "Cartão", "settlement_days": 30})

    sale = await service.create_sale(principal, _payload(str(lead.id), str(product.id), payment_method_id=str(method.id), payment_installments=3))

    assert sale.romaneio_number == 1
    assert sale.status == "draft"
    assert sale.total_cents == 11000
    assert sale.items[0].total_cents == 10000
    assert sale.seller_user_id == principal.user_id
    assert sale.status_history[0].new_status == "draft"

    assert (await service.stock.products.get_by_id(product.id)).stock_reserved == 2

    installments = await service.installments.list_for_sale(str(sale.id))
    assert [i.amount_cents for i in installments] == [3668, 3666, 3666]
    assert installments[0].due_date == sale.created_at + timedelta(days=30)

    messages = await service.leads.messages.list_by({"lead_id": str(lead.id)})
    assert messages[0].status == "cancelled"
    assert messages[0].cancel_reason == "Venda efetuada para o cliente"

    assert (await service.leads.leads.get_by_id(lead.id)).negotiated_value == pytest.approx(110.0)


async def test_zero_settlement_days_falls_back_to_default(db, principal, monkeypatch):
    monkeypatch.setattr(sale_services.settings, "DEFAULT_SETTLEMENT_DAYS", 15)
    service = SaleService(db, principal.organization_id)
    lead, product = await _seed(service)
    method = await service.payment_methods.create({"name": "Pix", "settlement_days": 0})

    sale = await service.create_sale(principal, _payload(str(lead.id), str(product.id), payment_method_id=str(method.id), payment_installments=2))

    installments = await service.installments.list_for_sale(str(sale.id))
    assert [i.due_date for i in installments] == [sale.created_at + timedelta(days=15), sale.created_at + timedelta(days=30)]

async def test_romaneio_numbers_are_sequential_per_organization(db, principal):
    service = SaleService(db, principal.organization_id)
    lead, product = await _seed(service)

    first = await service.create_sale(principal, _payload(str(lead.id), str(product.id)))
    second = await service.create_sale(principal, _payload(str(lead.id), str(product.id)))
    assert (first.romaneio_number, second.romaneio_number) == (1, 2)


async def test_create_sale_validations(db, principal):
    service = SaleService(db, principal.organization_id)
    lead, product = await _seed(service)

    with pytest.raises(HTTPException) as exc:
        await service.create_sale(principal, _payload(str(lead.id), str(product.id), items=[]))
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        await service.create_sale(principal, _payload("0" * 24, str(product.id)))
    assert exc.value.status_code == 404


async def test_motoboy_sale_gets_region_courier(db, principal):
    service = SaleService(db, principal.organization_id)
    lead, product = await _seed(service)
    region = await service.regions.create({"name": "Zona Sul", "assigned_user_id": "courier-1"})

    sale = await service.create_sale(principal, _payload(
        str(lead.id), str(product.id), delivery_type="motoboy", delivery_region_id=str(region.id),
    ))
    assert sale.assigned_delivery_user_id == "courier-1"


async def test_post_sale_automation_moves_lead(db, principal):
    service = SaleService(db, principal.organization_id)
    lead, product = await _seed(service)
    stage = await service.leads.stages.create({"name": "Venda realizada", "position": 5})
    await service.leads.save_automation_config({"sale_funnel_stage_id": str(stage.id)})

    await service.create_sale(principal, _payload(str(lead.id), str(product.id)))
    assert (await service.leads.leads.get_by_id(lead.id)).funnel_stage_id == str(stage.id)


async def test_delivery_then_payment(db, principal):
    service = SaleService(db, principal.organization_id)
    lead, product = await _seed(service)
    sale = await service.create_sale(principal, _payload(str(lead.id), str(product.id)))

    delivered = await service.update_sale(principal, str(sale.id), SaleUpdateAPI(status="delivered", delivery_status="delivered_normal"))
    assert delivered.delivered_at is not None
    assert delivered.status_history[-1].previous_status == "draft"
    stocked = await service.stock.products.get_by_id(product.id)
    assert (stocked.stock_quantity, stocked.stock_reserved) == (8, 0)
    assert await service.surveys.count({"sale_id": str(sale.id)}) == 1

    # survey não duplica
    await service.update_sale(principal, str(sale.id), SaleUpdateAPI(status="delivered"))
    assert await service.surveys.count({"sale_id": str(sale.id)}) == 1

    confirmed = await service.update_sale(principal, str(sale.id), SaleUpdateAPI(status="payment_confirmed"))
    assert confirmed.payment_confirmed_by == principal.user_id
    assert (await service.leads.leads.get_by_id(lead.id)).paid_value == pytest.approx(110.0)


async def test_cancel_after_delivery_restores_stock(db, principal):
    service = SaleService(db, principal.organization_id)
    lead, product = await _seed(service)
    sale = await service.create_sale(principal, _payload(str(lead.id), str(product.id)))
    await service.update_sale(principal, str(sale.id), SaleUpdateAPI(status="delivered"))

    await service.update_sale(principal, str(sale.id), SaleUpdateAPI(status="cancelled"))
    assert (await service.stock.products.get_by_id(product.id)).stock_quantity == 10


async def test_cancel_draft_releases_reservation(db, principal):
    service = SaleService(db, principal.organization_id)
    lead, product = await _seed(service)
    sale = await service.create_sale(principal, _payload(str(lead.id), str(product.id)))

    await service.update_sale(principal, str(sale.id), SaleUpdateAPI(status="cancelled"))
    after = await service.stock.products.get_by_id(product.id)
    assert (after.stock_quantity, after.stock_reserved) == (10, 0)


async def test_return_and_reschedule(db, principal):
    service = SaleService(db, principal.organization_id)
    lead, product = await _seed(service)
    stage = await service.leads.stages.create({"name": RETURNED_STAGE_NAME.title()})
    sale = await service.create_sale(principal, _payload(str(lead.id), str(product.id)))
    await service.update_sale(principal, str(sale.id), SaleUpdateAPI(status="dispatched"))

    returned = await service.update_sale(principal, str(sale.id), SaleUpdateAPI(status="returned", return_notes="Cliente ausente"))
    assert returned.returned_by == principal.user_id
    moved = await service.leads.leads.get_by_id(lead.id)
    assert moved.funnel_stage_id == str(stage.id)
    assert moved.stage == "no_show"

    rescheduled = await service.update_sale(principal, str(sale.id), SaleUpdateAPI(status="draft"))
    assert rescheduled.returned_at is None
    assert rescheduled.dispatched_at is None
    assert rescheduled.return_notes is None
    assert rescheduled.delivery_status == "pending"
    assert [h.new_status for h in rescheduled.status_history] == ["draft", "dispatched", "returned", "draft"]


async def test_update_unknown_sale(db, principal):
    service = SaleService(db, principal.organization_id)
    with pytest.raises(HTTPException) as exc:
        await service.update_sale(principal, "0" * 24, SaleUpdateAPI(status="dispatched"))
    assert exc.value.status_code == 404
