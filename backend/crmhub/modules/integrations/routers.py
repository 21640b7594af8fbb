# crmhub/modules/integrations/routers.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Request, Response, status
from fastapi.responses import JSONResponse
from loguru import logger

from crmhub.core.security import AdminPrincipal, CurrentPrincipal
from .models import (
    FieldMappingAPI,
    IntegrationCreateAPI,
    IntegrationInDB,
    IntegrationLogInDB,
    IntegrationUpdateAPI,
)
from .services import (
    IntegrationService,
    WebhookIngestionService,
    WebhookRejected,
    get_integration_service,
    get_webhook_service,
)

webhook_router = APIRouter()
integrations_router = APIRouter()


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else "unknown")


def _rejected_response(exc: WebhookRejected) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.body, headers=exc.headers)


# --- Webhook público (autenticado pelo auth_token da integração) ---
@webhook_router.head("/webhook", include_in_schema=False)
async def webhook_head():
    return Response(status_code=status.HTTP_200_OK)


@webhook_router.get("/webhook", summary="Webhook availability check")
async def webhook_get(
    token: Optional[str] = Query(None),
    service: WebhookIngestionService = Depends(get_webhook_service),
):
    try:
        return await service.describe(token)
    except WebhookRejected as exc:
        return _rejected_response(exc)


@webhook_router.post("/webhook", summary="Receive integration webhook")
@webhook_router.post("/webhook/test", summary="Receive integration webhook in test mode")
async def webhook_post(
    request: Request,
    token: Optional[str] = Query(None),
    service: WebhookIngestionService = Depends(get_webhook_service),
):
    raw_body = (await request.body()).decode("utf-8", errors="replace")
    try:
        return await service.ingest(
            auth_token=token,
            client_ip=_client_ip(request),
            path=request.url.path,
            query=dict(request.query_params),
            raw_body=raw_body,
            content_type=request.headers.get("content-type"),
        )
    except WebhookRejected as exc:
        logger.bind(path=request.url.path).info(f"Webhook rejected with {exc.status_code}: {exc}")
        return _rejected_response(exc)


# --- Administração ---
@integrations_router.post("", response_model=IntegrationInDB, status_code=status.HTTP_201_CREATED, summary="Create integration")
async def create_integration_endpoint(
    payload: IntegrationCreateAPI,
    principal: AdminPrincipal,
    service: IntegrationService = Depends(get_integration_service),
):
    return await service.create(principal, payload)


@integrations_router.get("", response_model=List[IntegrationInDB], summary="List integrations")
async def list_integrations_endpoint(
    principal: CurrentPrincipal,
    service: IntegrationService = Depends(get_integration_service),
):
    return await service.list_integrations()


@integrations_router.patch("/{integration_id}", response_model=IntegrationInDB, summary="Update integration")
async def update_integration_endpoint(
    payload: IntegrationUpdateAPI,
    principal: AdminPrincipal,
    integration_id: str = Path(...),
    service: IntegrationService = Depends(get_integration_service),
):
    return await service.update(integration_id, payload)


@integrations_router.put("/{integration_id}/mappings", response_model=IntegrationInDB, summary="Replace field mappings")
async def replace_mappings_endpoint(
    mappings: List[FieldMappingAPI],
    principal: AdminPrincipal,
    integration_id: str = Path(...),
    service: IntegrationService = Depends(get_integration_service),
):
    return await service.replace_mappings(integration_id, [m.model_dump() for m in mappings])


@integrations_router.post("/{integration_id}/token", response_model=IntegrationInDB, summary="Regenerate auth token")
async def regenerate_token_endpoint(
    principal: AdminPrincipal,
    integration_id: str = Path(...),
    service: IntegrationService = Depends(get_integration_service),
):
    return await service.regenerate_token(integration_id)


@integrations_router.get("/{integration_id}/logs", response_model=List[IntegrationLogInDB], summary="List integration logs")
async def list_logs_endpoint(
    principal: CurrentPrincipal,
    integration_id: str = Path(...),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    service: IntegrationService = Depends(get_integration_service),
):
    await service.get(integration_id)
    return await service.logs.list_for_integration(integration_id, skip=skip, limit=limit)
