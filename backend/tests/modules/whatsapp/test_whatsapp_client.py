# tests/modules/whatsapp/test_whatsapp_client.py
import hashlib
import hmac
import json
from typing import Callable, List

import httpx
import pytest

from crmhub.core.config import settings
from crmhub.modules.whatsapp import service as whatsapp_service
from crmhub.modules.whatsapp.service import messages_url, send_text_message

MESSAGES_URL = "https://graph.facebook.com/v19.0/1234567890/messages"


@pytest.fixture
def meta_api(monkeypatch):
    """Troca o AsyncClient do serviço por um com MockTransport; devolve (setter do handler, requests vistos)."""
    seen: List[httpx.Request] = []
    state = {"handler": lambda request: httpx.Response(200, json={"messages": [{"id": "wamid.default"}]})}
    real_client = httpx.AsyncClient

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return state["handler"](request)

    def client_factory(*args, **kwargs):
        kwargs.pop("http2", None)
        return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(whatsapp_service.httpx, "AsyncClient", client_factory)

    def respond_with(fn: Callable[[httpx.Request], httpx.Response]) -> None:
        state["handler"] = fn

    return respond_with, seen


def test_messages_url_uses_settings():
    assert messages_url() == MESSAGES_URL


@pytest.mark.asyncio
async def test_send_text_message_success(meta_api):
    respond_with, seen = meta_api
    respond_with(lambda request: httpx.Response(200, json={"messages": [{"id": "wamid.HBgM"}]}))

    ok, wamid = await send_text_message("5551989423022", "Olá!")

    assert (ok, wamid) == (True, "wamid.HBgM")
    request = seen[-1]
    assert str(request.url) == MESSAGES_URL
    assert request.headers["Authorization"] == "Bearer test-meta-token"
    body = json.loads(request.content)
    assert body["to"] == "5551989423022"
    assert body["text"]["body"] == "Olá!"


@pytest.mark.asyncio
async def test_send_text_message_signs_with_app_secret(meta_api, monkeypatch):
    _, seen = meta_api
    monkeypatch.setattr(settings, "META_APP_SECRET", "app-secret")

    assert (await send_text_message("5551989423022", "Olá!"))[0] is True

    expected = hmac.new(b"app-secret", b"test-meta-token", hashlib.sha256).hexdigest()
    assert seen[-1].url.params["appsecret_proof"] == expected


@pytest.mark.asyncio
async def test_send_text_message_without_app_secret_has_no_proof(meta_api, monkeypatch):
    _, seen = meta_api
    monkeypatch.setattr(settings, "META_APP_SECRET", None)

    await send_text_message("5551989423022", "Olá!")
    assert "appsecret_proof" not in seen[-1].url.params


@pytest.mark.asyncio
async def test_send_text_message_api_error(meta_api):
    respond_with, _ = meta_api
    respond_with(lambda request: httpx.Response(
        400, json={"error": {"code": 131030, "type": "OAuthException", "message": "Recipient not allowed"}},
    ))
    assert await send_text_message("5551989423022", "Olá!") == (False, None)


@pytest.mark.asyncio
async def test_send_text_message_network_error(meta_api):
    respond_with, _ = meta_api

    def timeout(request):
        raise httpx.ConnectTimeout("timeout", request=request)

    respond_with(timeout)
    assert await send_text_message("5551989423022", "Olá!") == (False, None)


@pytest.mark.asyncio
async def test_send_text_message_without_credentials(meta_api, monkeypatch):
    _, seen = meta_api
    monkeypatch.setattr(settings, "META_ACCESS_TOKEN", None)
    assert await send_text_message("5551989423022", "Olá!") == (False, None)
    assert seen == []


@pytest.mark.asyncio
async def test_send_text_message_requires_text(meta_api):
    assert await send_text_message("5551989423022", "") == (False, None)


def test_send_message_task_runs_eagerly(meta_api):
    from crmhub.worker.tasks_whatsapp import send_message_task

    respond_with, _ = meta_api
    respond_with(lambda request: httpx.Response(200, json={"messages": [{"id": "wamid.task"}]}))

    result = send_message_task.apply(args=["5551989423022", "Oi"], kwargs={"trace_id": "trace-1"}).get()
    assert result == {"recipient": "5551989423022", "wamid": "wamid.task"}
