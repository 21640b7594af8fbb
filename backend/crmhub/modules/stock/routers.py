# crmhub/modules/stock/routers.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from crmhub.core.security import AdminPrincipal, CurrentPrincipal
from .models import ProductCreateAPI, ProductInDB, StockAdjustAPI, StockMovementInDB
from .repository import ProductRepository, get_product_repository
from .services import StockService, get_stock_service

products_router = APIRouter()


@products_router.post("", response_model=ProductInDB, status_code=status.HTTP_201_CREATED, summary="Create product")
async def create_product_endpoint(
    payload: ProductCreateAPI,
    principal: AdminPrincipal,
    product_repo: ProductRepository = Depends(get_product_repository),
):
    if payload.sku and await product_repo.get_by_sku(payload.sku):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"SKU '{payload.sku}' already exists")
    return await product_repo.create(payload)


@products_router.get("", response_model=List[ProductInDB], summary="List products")
async def list_products_endpoint(
    principal: CurrentPrincipal,
    product_repo: ProductRepository = Depends(get_product_repository),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    return await product_repo.list_by({}, skip=skip, limit=limit, sort=[("name", 1)])


@products_router.post("/{product_id}/stock-adjustments", response_model=ProductInDB, summary="Manual stock adjustment")
async def adjust_stock_endpoint(
    payload: StockAdjustAPI,
    principal: AdminPrincipal,
    product_id: str = Path(...),
    stock_service: StockService = Depends(get_stock_service),
):
    return await stock_service.adjust(product_id, payload.delta, principal.user_id, payload.notes)


@products_router.get("/{product_id}/movements", response_model=List[StockMovementInDB], summary="Stock movements of a product")
async def list_movements_endpoint(
    principal: CurrentPrincipal,
    product_id: str = Path(...),
    stock_service: StockService = Depends(get_stock_service),
):
    return await stock_service.movements.list_by({"product_id": product_id}, limit=200, sort=[("created_at", -1)])
