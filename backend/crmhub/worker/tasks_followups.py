# crmhub/worker/tasks_followups.py
import asyncio
import uuid
from typing import Dict, Optional

from loguru import logger

from crmhub.core.database import MongoDbContext
from crmhub.core.logging_config import trace_id_var
from crmhub.modules.leads.services import LeadService
from crmhub.worker.celery_app import celery_app


async def _dispatch(batch_size: Optional[int]) -> Dict[str, int]:
    async with MongoDbContext() as mongo:
        # sem organização: o despacho varre todos os tenants
        return await LeadService(mongo.get_db()).dispatch_due_messages(batch_size=batch_size)


@celery_app.task(bind=True, name="followups.dispatch_due_messages", acks_late=True)
def dispatch_due_messages_task(self, batch_size: Optional[int] = None, trace_id: Optional[str] = None):
    """Periódica (beat): envia as mensagens agendadas vencidas."""
    current_trace_id = trace_id or f"task_{uuid.uuid4().hex[:12]}"
    token = trace_id_var.set(current_trace_id)
    log = logger.bind(trace_id=current_trace_id, task_name=self.name, job_id=self.request.id)
    try:
        result = asyncio.run(_dispatch(batch_size))
        log.debug(f"Follow-up dispatch result: {result}")
        return result
    except ConnectionError as e:
        log.error(f"Follow-up dispatch skipped, database unavailable: {e}")
        raise
    finally:
        trace_id_var.reset(token)
