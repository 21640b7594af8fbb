# crmhub/modules/whatsapp/service.py

import hashlib
import hmac
import json
from typing import Any, Dict, Optional, Tuple

import httpx
from loguru import logger

from crmhub.core.config import settings
from crmhub.core.logging_config import trace_id_var

META_GRAPH_API_BASE_URL = "https://graph.facebook.com"
REQUEST_TIMEOUT_SECONDS = 25.0


def messages_url() -> str:
    return f"{META_GRAPH_API_BASE_URL}/{settings.META_GRAPH_API_VERSION}/{settings.META_PHONE_NUMBER_ID}/messages"


def appsecret_proof(access_token: str, app_secret: str) -> str:
    """HMAC-SHA256 do access token com o app secret (exigido quando o app ativa "Require App Secret")."""
    return hmac.new(app_secret.encode(), access_token.encode(), hashlib.sha256).hexdigest()


async def send_text_message(recipient: str, text: str) -> Tuple[bool, Optional[str]]:
    """
    Envia uma mensagem de texto via Meta Graph API (WhatsApp).

    Retorna (True, wamid) em sucesso, (False, None) em falha. Nunca levanta
    exceção por erro HTTP/rede: quem chama decide se marca como falha.
    """
    log = logger.bind(trace_id=trace_id_var.get(), service="WhatsAppService", recipient=recipient)

    if not all([settings.META_ACCESS_TOKEN, settings.META_PHONE_NUMBER_ID]):
        log.critical("WhatsApp API credentials (Token, Phone ID) missing. Cannot send message.")
        return False, None
    if not recipient or not text:
        log.error("Attempted to send WhatsApp message with missing recipient or text.")
        return False, None

    headers = {
        "Authorization": f"Bearer {settings.META_ACCESS_TOKEN}",
        "Content-Type": "application/json",
    }
    payload = {
        "messaging_product": "whatsapp",
        "to": recipient,
        "type": "text",
        "text": {"preview_url": False, "body": text},
    }
    params = {}
    if settings.META_APP_SECRET:
        params["appsecret_proof"] = appsecret_proof(settings.META_ACCESS_TOKEN, settings.META_APP_SECRET)

    log.info("Attempting to send WhatsApp text message via Meta API...")
    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS, http2=True) as client:
            response = await client.post(messages_url(), headers=headers, params=params or None, json=payload)
    except httpx.TimeoutException:
        log.error("Timeout error sending WhatsApp message to Meta API.")
        return False, None
    except httpx.RequestError as e:
        log.error(f"HTTP request error sending WhatsApp message: {e}")
        return False, None

    response_data: Dict[str, Any] = {}
    response_text_snippet = ""
    try:
        response_data = response.json()
    except json.JSONDecodeError:
        response_text_snippet = response.text[:500]
        log.error(f"Meta API returned non-JSON response (Status: {response.status_code}): {response_text_snippet}")

    if response.is_success:
        messages = response_data.get("messages") or [{}]
        wamid = messages[0].get("id")
        if wamid:
            log.success(f"WhatsApp message accepted by Meta API. WAMID: {wamid}")
        else:
            log.warning("WhatsApp message API call returned 2xx status but no WAMID found in response.")
        return True, wamid

    error_info = response_data.get("error", {})
    log.error(
        f"Failed to send WhatsApp message. Status={response.status_code}, "
        f"Code={error_info.get('code', response.status_code)}, Type='{error_info.get('type', 'API Error')}', "
        f"Message='{error_info.get('message', response_text_snippet or 'Unknown API error')}', "
        f"FBTrace={error_info.get('fbtrace_id', 'N/A')}"
    )
    return False, None
