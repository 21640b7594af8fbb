# tests/api/test_error_handlers.py
import pytest
from fastapi import status
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio


async def test_http_errors_carry_type_and_trace_id(test_client: AsyncClient, auth_headers):
    headers = dict(auth_headers, **{"X-Request-ID": "req-erro-404"})
    response = await test_client.get(f"/api/v1/sales/{'0' * 24}", headers=headers)

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"detail": "Sale not found", "type": "http_exception", "trace_id": "req-erro-404"}
    assert response.headers["X-Trace-ID"] == "req-erro-404"


async def test_unauthorized_keeps_www_authenticate(test_client: AsyncClient):
    response = await test_client.get("/api/v1/sales")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["type"] == "http_exception"
    assert "Bearer" in response.headers["WWW-Authenticate"]


async def test_request_validation_error(test_client: AsyncClient, auth_headers):
    response = await test_client.post("/api/v1/products", json={"price_cents": "muito"}, headers=auth_headers)
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    body = response.json()
    assert body["type"] == "validation_error"
    assert {tuple(error["loc"]) for error in body["detail"]} >= {("body", "name")}


async def test_corrupt_document_becomes_logged_500(test_client: AsyncClient, db, organization_id, auth_headers):
    # documento gravado por fora da API, sem campos obrigatórios
    await db["leads"].insert_one({"organization_id": organization_id, "stars": "five"})

    response = await test_client.get("/api/v1/leads", headers=auth_headers)
    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["type"] == "data_validation_error"
    assert response.json()["detail"] == "Internal data validation error"
