# crmhub/worker/tasks_whatsapp.py
import asyncio
import uuid
from typing import Dict, Optional

from loguru import logger

from crmhub.core.logging_config import trace_id_var
from crmhub.modules.whatsapp.service import send_text_message
from crmhub.worker.celery_app import celery_app


class WhatsAppSendError(Exception):
    pass


@celery_app.task(
    bind=True,
    name="whatsapp.send_message",
    autoretry_for=(WhatsAppSendError,),
    max_retries=3,
    retry_backoff=True,
    acks_late=True,
)
def send_message_task(self, recipient: str, text: str, trace_id: Optional[str] = None) -> Dict[str, Optional[str]]:
    """Envia uma mensagem de texto avulsa; falha de envio é reenfileirada com backoff."""
    current_trace_id = trace_id or f"task_{uuid.uuid4().hex[:12]}"
    token = trace_id_var.set(current_trace_id)
    log = logger.bind(trace_id=current_trace_id, task_name=self.name, job_id=self.request.id, recipient=recipient)
    try:
        ok, wamid = asyncio.run(send_text_message(recipient, text))
        if not ok:
            log.warning(f"WhatsApp send failed (attempt {self.request.retries + 1}).")
            raise WhatsAppSendError(f"Failed to send WhatsApp message to {recipient}")
        log.success(f"WhatsApp message sent. WAMID: {wamid}")
        return {"recipient": recipient, "wamid": wamid}
    finally:
        trace_id_var.reset(token)
