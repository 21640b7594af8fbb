# crmhub/api/endpoints/status.py
import time as process_time
from datetime import datetime, timezone
from typing import Dict, Literal, Optional

from fastapi import APIRouter, Depends, Response, status as http_status
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field

from crmhub.core.database import get_optional_database
from crmhub.core.logging_config import trace_id_var


class ComponentStatus(BaseModel):
    status: Literal["ok", "error", "unavailable"] = "ok"
    message: Optional[str] = None


class HealthCheckResponse(BaseModel):
    overall_status: Literal["ok", "error"] = "ok"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    uptime_seconds: float = Field(..., description="Process uptime in seconds")
    components: Dict[str, ComponentStatus]


PROCESS_START_TIME = process_time.monotonic()

router = APIRouter()


@router.get(
    "/healthcheck",
    response_model=HealthCheckResponse,
    summary="Application health and component status",
)
async def get_application_health(db: Optional[AsyncIOMotorDatabase] = Depends(get_optional_database)):
    log = logger.bind(trace_id=trace_id_var.get(), api_endpoint="/healthcheck GET")
    log.info("Performing application health check...")

    components: Dict[str, ComponentStatus] = {}
    if db is not None:
        try:
            await db.command("ping")
            components["database_mongodb"] = ComponentStatus(status="ok")
            log.debug("MongoDB ping successful.")
        except Exception as e:
            log.error(f"MongoDB connection check failed: {e}")
            components["database_mongodb"] = ComponentStatus(status="error", message=f"MongoDB ping failed: {e}")
    else:
        log.error("MongoDB connection not available.")
        components["database_mongodb"] = ComponentStatus(status="error", message="DB client not available")

    critical_ok = components["database_mongodb"].status == "ok"
    payload = HealthCheckResponse(
        overall_status="ok" if critical_ok else "error",
        uptime_seconds=process_time.monotonic() - PROCESS_START_TIME,
        components=components,
    )
    return Response(
        content=payload.model_dump_json(exclude_none=True),
        status_code=http_status.HTTP_200_OK if critical_ok else http_status.HTTP_503_SERVICE_UNAVAILABLE,
        media_type="application/json",
    )
