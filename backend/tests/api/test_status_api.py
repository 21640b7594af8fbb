# tests/api/test_status_api.py
import pytest
from fastapi import status
from httpx import ASGITransport, AsyncClient

from crmhub.core.database import get_optional_database
from crmhub.main import app

pytestmark = pytest.mark.asyncio


class _PingableDB:
    def __init__(self, fail: bool = False):
        self.fail = fail

    async def command(self, name: str):
        if self.fail:
            raise ConnectionError("no route to host")
        return {"ok": 1.0}


async def _healthcheck(db):
    app.dependency_overrides[get_optional_database] = lambda: db
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
            return await client.get("/api/v1/status/healthcheck")
    finally:
        app.dependency_overrides.clear()


async def test_healthcheck_ok():
    response = await _healthcheck(_PingableDB())
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["overall_status"] == "ok"
    assert body["components"]["database_mongodb"]["status"] == "ok"
    assert body["uptime_seconds"] >= 0
    assert "X-Trace-ID" in response.headers


@pytest.mark.parametrize("db", [None, _PingableDB(fail=True)])
async def test_healthcheck_reports_database_failure(db):
    response = await _healthcheck(db)
    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    body = response.json()
    assert body["overall_status"] == "error"
    assert body["components"]["database_mongodb"]["status"] == "error"
