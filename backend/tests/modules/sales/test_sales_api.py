# tests/modules/sales/test_sales_api.py
import pytest
from httpx import AsyncClient
from fastapi import status

pytestmark = pytest.mark.asyncio


async def _lead_and_product(client: AsyncClient, headers):
    lead = await client.post("/api/v1/leads", json={"name": "Joana", "whatsapp": "51989423022"}, headers=headers)
    assert lead.status_code == status.HTTP_201_CREATED
    product = await client.post(
        "/api/v1/products", json={"name": "Kit", "sku": "KIT-1", "price_cents": 4990, "stock_quantity": 10}, headers=headers,
    )
    assert product.status_code == status.HTTP_201_CREATED
    return lead.json(), product.json()


async def test_create_sale_success(test_client: AsyncClient, auth_headers):
    """Cria uma venda via API e confere totais, romaneio e reserva de estoque."""
    lead, product = await _lead_and_product(test_client, auth_headers)
    payload = {
        "lead_id": lead["_id"],
        "items": [{"product_id": product["_id"], "product_name": "Kit", "quantity": 2, "unit_price_cents": 4990}],
        "discount_type": "percentage",
        "discount_value": 10,
        "shipping_cost_cents": 1500,
    }
    response = await test_client.post("/api/v1/sales", json=payload, headers=auth_headers)
    assert response.status_code == status.HTTP_201_CREATED
    sale = response.json()
    assert sale["status"] == "draft"
    assert sale["romaneio_number"] == 1
    assert sale["subtotal_cents"] == 9980
    assert sale["discount_cents"] == 998
    assert sale["total_cents"] == 10482

    products = (await test_client.get("/api/v1/products", headers=auth_headers)).json()
    assert products[0]["stock_reserved"] == 2

    listed = await test_client.get("/api/v1/sales", params={"status": "draft"}, headers=auth_headers)
    assert [s["_id"] for s in listed.json()] == [sale["_id"]]


async def test_sale_status_flow_over_api(test_client: AsyncClient, auth_headers):
    lead, product = await _lead_and_product(test_client, auth_headers)
    payload = {
        "lead_id": lead["_id"],
        "items": [{"product_id": product["_id"], "product_name": "Kit", "quantity": 1, "unit_price_cents": 4990}],
    }
    sale = (await test_client.post("/api/v1/sales", json=payload, headers=auth_headers)).json()

    for next_status in ("pending_expedition", "dispatched", "delivered"):
        response = await test_client.patch(f"/api/v1/sales/{sale['_id']}", json={"status": next_status}, headers=auth_headers)
        assert response.status_code == status.HTTP_200_OK

    delivered = response.json()
    assert delivered["expedition_validated_at"] is not None
    assert [h["new_status"] for h in delivered["status_history"]] == ["draft", "pending_expedition", "dispatched", "delivered"]

    products = (await test_client.get("/api/v1/products", headers=auth_headers)).json()
    assert (products[0]["stock_quantity"], products[0]["stock_reserved"]) == (9, 0)


async def test_sale_not_found_and_delete(test_client: AsyncClient, auth_headers):
    missing = await test_client.get(f"/api/v1/sales/{'0' * 24}", headers=auth_headers)
    assert missing.status_code == status.HTTP_404_NOT_FOUND

    lead, product = await _lead_and_product(test_client, auth_headers)
    payload = {"lead_id": lead["_id"], "items": [{"product_id": product["_id"], "product_name": "Kit", "quantity": 1, "unit_price_cents": 100}]}
    sale = (await test_client.post("/api/v1/sales", json=payload, headers=auth_headers)).json()

    deleted = await test_client.delete(f"/api/v1/sales/{sale['_id']}", headers=auth_headers)
    assert deleted.status_code == status.HTTP_204_NO_CONTENT
    again = await test_client.delete(f"/api/v1/sales/{sale['_id']}", headers=auth_headers)
    assert again.status_code == status.HTTP_404_NOT_FOUND
