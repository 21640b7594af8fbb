# tests/conftest.py
import os

# Settings são lidas no import de crmhub.core.config
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017/crmhub_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("META_ACCESS_TOKEN", "test-meta-token")
os.environ.setdefault("META_PHONE_NUMBER_ID", "1234567890")
os.environ.setdefault("TIMEZONE", "America/Sao_Paulo")

from typing import AsyncGenerator, Dict

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from crmhub.core.security import Principal, create_access_token


@pytest.fixture
def organization_id() -> str:
    return str(ObjectId())


@pytest.fixture
def principal(organization_id: str) -> Principal:
    return Principal(user_id=str(ObjectId()), organization_id=organization_id, roles=["owner"], email="owner@example.com")


@pytest.fixture
def auth_headers(principal: Principal) -> Dict[str, str]:
    token = create_access_token({
        "sub": principal.user_id,
        "org": principal.organization_id,
        "roles": principal.roles,
        "email": principal.email,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def db():
    client = AsyncMongoMockClient()
    return client[f"crmhub_test_{os.urandom(4).hex()}"]


@pytest.fixture(autouse=True)
def reset_webhook_rate_limiter():
    from crmhub.modules.integrations.services import webhook_rate_limiter
    webhook_rate_limiter.reset()
    yield
    webhook_rate_limiter.reset()


@pytest_asyncio.fixture
async def test_client(db) -> AsyncGenerator[AsyncClient, None]:
    from crmhub.core.database import get_database
    from crmhub.main import app

    app.dependency_overrides[get_database] = lambda: db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()
