# crmhub/modules/reconciliation/routers.py
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from crmhub.core.security import AdminPrincipal, CurrentPrincipal
from .models import (
    CallValidationInDB,
    ReceptiveAttendanceCreateAPI,
    ReceptiveAttendanceInDB,
    ReconciliationConfigAPI,
    ReconciliationConfigInDB,
)
from .services import ReconciliationService, get_reconciliation_service

reconciliation_router = APIRouter()
attendances_router = APIRouter()


@reconciliation_router.post("/validations", response_model=CallValidationInDB, status_code=status.HTTP_201_CREATED, summary="Reconcile a calls CSV")
async def reconcile_endpoint(
    principal: CurrentPrincipal,
    file: UploadFile = File(..., description="CSV exportado do discador (separado por ';')"),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    content = await file.read()
    try:
        csv_text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        csv_text = content.decode("latin-1")
    if not csv_text.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")
    return await service.reconcile(principal, csv_text, file.filename or "calls.csv")


@reconciliation_router.get("/validations", response_model=List[CallValidationInDB], summary="Most recent reconciliations")
async def list_validations_endpoint(
    principal: CurrentPrincipal,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    return await service.list_validations()


@reconciliation_router.get("/config", response_model=Optional[ReconciliationConfigInDB], summary="Get blacklist / CNPJ config")
async def get_config_endpoint(
    principal: CurrentPrincipal,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    return await service.get_config()


@reconciliation_router.put("/config", response_model=ReconciliationConfigInDB, summary="Save blacklist / CNPJ config")
async def save_config_endpoint(
    payload: ReconciliationConfigAPI,
    principal: AdminPrincipal,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    return await service.save_config(payload)


@attendances_router.post("", response_model=ReceptiveAttendanceInDB, status_code=status.HTTP_201_CREATED, summary="Record receptive attendance")
async def create_attendance_endpoint(
    payload: ReceptiveAttendanceCreateAPI,
    principal: CurrentPrincipal,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    return await service.record_attendance(principal, payload)
