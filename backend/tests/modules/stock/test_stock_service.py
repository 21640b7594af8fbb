# tests/modules/stock/test_stock_service.py
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from crmhub.modules.stock.services import StockService

pytestmark = pytest.mark.asyncio


async def _product(service: StockService, quantity: int = 10):
    return await service.products.create({"name": "Kit", "sku": "KIT-1", "price_cents": 9900, "stock_quantity": quantity})


def _sale(product_id: str, quantity: int = 2, multiplier=None):
    item = SimpleNamespace(product_id=product_id, quantity=quantity, multiplier=multiplier)
    return SimpleNamespace(id="sale-1", items=[item])


async def test_reserve_then_deduct(db, organization_id):
    service = StockService(db, organization_id)
    product = await _product(service)

    await service.reserve_for_sale(_sale(str(product.id)))
    reserved = await service.products.get_by_id(product.id)
    assert reserved.stock_quantity == 10
    assert reserved.stock_reserved == 2
    assert reserved.stock_available == 8

    await service.deduct_for_delivered_sale(_sale(str(product.id)))
    delivered = await service.products.get_by_id(product.id)
    assert delivered.stock_quantity == 8
    assert delivered.stock_reserved == 0

    movements = await service.movements.list_by({"product_id": str(product.id)}, sort=[("created_at", 1)])
    assert [m.movement_type for m in movements] == ["reservation", "sale_deduction"]
    assert movements[1].previous_quantity == 10
    assert movements[1].new_quantity == 8


async def test_multiplier_drives_quantity(db, organization_id):
    service = StockService(db, organization_id)
    product = await _product(service)

    await service.reserve_for_sale(_sale(str(product.id), quantity=1, multiplier=6))
    assert (await service.products.get_by_id(product.id)).stock_reserved == 6


async def test_unreserve_never_goes_negative(db, organization_id):
    service = StockService(db, organization_id)
    product = await _product(service)

    await service.unreserve_for_sale(_sale(str(product.id), quantity=3))
    assert (await service.products.get_by_id(product.id)).stock_reserved == 0


async def test_restore_for_cancelled_delivered_sale(db, organization_id):
    service = StockService(db, organization_id)
    product = await _product(service, quantity=5)

    await service.restore_for_cancelled_delivered_sale(_sale(str(product.id), quantity=2))
    restored = await service.products.get_by_id(product.id)
    assert restored.stock_quantity == 7
    assert restored.stock_reserved == 0


async def test_missing_product_is_skipped(db, organization_id):
    service = StockService(db, organization_id)
    moved = await service.reserve_for_sale(_sale("0" * 24))
    assert moved == 0


async def test_manual_adjustment(db, organization_id):
    service = StockService(db, organization_id)
    product = await _product(service, quantity=3)

    adjusted = await service.adjust(str(product.id), 4, "user-1")
    assert adjusted.stock_quantity == 7

    with pytest.raises(HTTPException) as exc:
        await service.adjust(str(product.id), -10, "user-1")
    assert exc.value.status_code == 400


async def test_other_organization_cannot_see_product(db, organization_id):
    product = await _product(StockService(db, organization_id))
    assert await StockService(db, "other-org").products.get_by_id(product.id) is None
