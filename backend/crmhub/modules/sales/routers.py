# crmhub/modules/sales/routers.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Response, status
from loguru import logger

from crmhub.core.security import AdminPrincipal, CurrentPrincipal
from .models import (
    DeliveryRegionCreateAPI,
    DeliveryRegionInDB,
    PaymentMethodCreateAPI,
    PaymentMethodInDB,
    SaleCreateAPI,
    SaleInDB,
    SaleInstallmentInDB,
    SaleUpdateAPI,
)
from .services import SaleService, get_sale_service

sales_router = APIRouter()
payment_methods_router = APIRouter()
delivery_regions_router = APIRouter()


@sales_router.post("", response_model=SaleInDB, status_code=status.HTTP_201_CREATED, summary="Create sale (romaneio)")
async def create_sale_endpoint(
    payload: SaleCreateAPI,
    principal: CurrentPrincipal,
    sale_service: SaleService = Depends(get_sale_service),
):
    logger.bind(organization_id=principal.organization_id, lead_id=payload.lead_id).info("Endpoint: creating sale...")
    return await sale_service.create_sale(principal, payload)


@sales_router.get("", response_model=List[SaleInDB], summary="List sales")
async def list_sales_endpoint(
    principal: CurrentPrincipal,
    sale_service: SaleService = Depends(get_sale_service),
    status_filter: Optional[str] = Query(None, alias="status"),
    lead_id: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
):
    return await sale_service.list_sales(status_filter, lead_id, skip, limit)


@sales_router.get("/{sale_id}", response_model=SaleInDB, summary="Get sale")
async def get_sale_endpoint(
    principal: CurrentPrincipal,
    sale_id: str = Path(...),
    sale_service: SaleService = Depends(get_sale_service),
):
    return await sale_service.get_sale(sale_id)


@sales_router.patch("/{sale_id}", response_model=SaleInDB, summary="Update sale / change status")
async def update_sale_endpoint(
    payload: SaleUpdateAPI,
    principal: CurrentPrincipal,
    sale_id: str = Path(...),
    previous_status: Optional[str] = Query(None, description="Status visto pelo cliente antes da mudança"),
    sale_service: SaleService = Depends(get_sale_service),
):
    return await sale_service.update_sale(principal, sale_id, payload, previous_status)


@sales_router.delete("/{sale_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete sale")
async def delete_sale_endpoint(
    principal: AdminPrincipal,
    sale_id: str = Path(...),
    sale_service: SaleService = Depends(get_sale_service),
):
    await sale_service.delete_sale(sale_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@sales_router.get("/{sale_id}/installments", response_model=List[SaleInstallmentInDB], summary="Installments of a sale")
async def list_installments_endpoint(
    principal: CurrentPrincipal,
    sale_id: str = Path(...),
    sale_service: SaleService = Depends(get_sale_service),
):
    return await sale_service.installments.list_for_sale(sale_id)


@payment_methods_router.post("", response_model=PaymentMethodInDB, status_code=status.HTTP_201_CREATED, summary="Create payment method")
async def create_payment_method_endpoint(
    payload: PaymentMethodCreateAPI,
    principal: AdminPrincipal,
    sale_service: SaleService = Depends(get_sale_service),
):
    return await sale_service.payment_methods.create(payload)


@payment_methods_router.get("", response_model=List[PaymentMethodInDB], summary="List payment methods")
async def list_payment_methods_endpoint(
    principal: CurrentPrincipal,
    sale_service: SaleService = Depends(get_sale_service),
):
    return await sale_service.payment_methods.list_by({"is_active": True}, limit=0, sort=[("name", 1)])


@delivery_regions_router.post("", response_model=DeliveryRegionInDB, status_code=status.HTTP_201_CREATED, summary="Create delivery region")
async def create_region_endpoint(
    payload: DeliveryRegionCreateAPI,
    principal: AdminPrincipal,
    sale_service: SaleService = Depends(get_sale_service),
):
    return await sale_service.regions.create(payload)


@delivery_regions_router.get("", response_model=List[DeliveryRegionInDB], summary="List delivery regions")
async def list_regions_endpoint(
    principal: CurrentPrincipal,
    sale_service: SaleService = Depends(get_sale_service),
):
    return await sale_service.regions.list_by({}, limit=0, sort=[("name", 1)])
