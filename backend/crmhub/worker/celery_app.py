# crmhub/worker/celery_app.py
from datetime import timedelta

from celery import Celery

from crmhub.core.config import settings

celery_app = Celery(
    "crmhub_tasks",
    broker=settings.CELERY_BROKER_URL or settings.REDIS_URL,
    backend=settings.CELERY_RESULT_BACKEND or settings.REDIS_URL,
    include=[
        "crmhub.worker.tasks_followups",
        "crmhub.worker.tasks_whatsapp",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "dispatch-due-followup-messages": {
            "task": "followups.dispatch_due_messages",
            "schedule": timedelta(minutes=1),
            "options": {"queue": "periodic"},
        },
    },
)
