"""
Operator endpoints for the canonical catalog.

Edits go through ProductSyncService so every change is fanned out to the
linked marketplaces; reads use a request-scoped CatalogStore.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from marketsync.core.exceptions import (
    DuplicateSkuError,
    MarketplaceAPIError,
    MarketplaceNotConnectedError,
    ProductNotFoundError,
    UnsupportedMarketplaceError,
)
from marketsync.core.enums import ProductStatus
from marketsync.dependencies import get_import_resolver, get_product_sync, get_store
from marketsync.schemas.product import (
    GroupListing,
    GroupStockUpdate,
    ProductCreate,
    ProductRead,
    ProductUpdate,
)
from marketsync.schemas.sync import ImportResult, ProductSyncReport
from marketsync.services.catalog_store import CatalogStore
from marketsync.services.import_service import ImportMergeResolver
from marketsync.services.product_sync import ProductSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])


@router.get("/", response_model=List[ProductRead])
async def list_products(
    search: Optional[str] = None,
    group_id: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
    store: CatalogStore = Depends(get_store),
):
    return await store.list_products(search=search, group_id=group_id, limit=limit, offset=offset)


@router.get("/groups", response_model=GroupListing)
async def list_groups(product_sync: ProductSyncService = Depends(get_product_sync)):
    return await product_sync.list_groups()


@router.post("/groups/{group_id}/stock")
async def update_group_stock(
    group_id: str,
    payload: GroupStockUpdate,
    product_sync: ProductSyncService = Depends(get_product_sync),
):
    try:
        result = await product_sync.update_group_stock(group_id, payload.stock)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, **result}


@router.post("/import/{marketplace}", response_model=ImportResult)
async def import_products(
    marketplace: str,
    resolver: ImportMergeResolver = Depends(get_import_resolver),
):
    try:
        return await resolver.import_marketplace(marketplace)
    except (MarketplaceNotConnectedError, UnsupportedMarketplaceError) as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{product_id}", response_model=ProductRead)
async def get_product(product_id: int, store: CatalogStore = Depends(get_store)):
    product = await store.get_product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.post("/", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    product_sync: ProductSyncService = Depends(get_product_sync),
):
    try:
        return await product_sync.create_product(payload)
    except DuplicateSkuError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/{product_id}", response_model=ProductSyncReport)
async def update_product(
    product_id: int,
    payload: ProductUpdate,
    product_sync: ProductSyncService = Depends(get_product_sync),
):
    try:
        return await product_sync.update_product(product_id, payload)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DuplicateSkuError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{product_id}")
async def delete_product(
    product_id: int,
    remote: bool = False,
    product_sync: ProductSyncService = Depends(get_product_sync),
):
    try:
        results = await product_sync.delete_product(product_id, remote=remote)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "sync_results": results}


async def _set_status(product_sync: ProductSyncService, product_id: int, new_status: ProductStatus):
    try:
        return await product_sync.set_status(product_id, new_status)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{product_id}/pause")
async def pause_product(product_id: int, product_sync: ProductSyncService = Depends(get_product_sync)):
    return await _set_status(product_sync, product_id, ProductStatus.PAUSED)


@router.post("/{product_id}/activate")
async def activate_product(product_id: int, product_sync: ProductSyncService = Depends(get_product_sync)):
    return await _set_status(product_sync, product_id, ProductStatus.ACTIVE)


@router.post("/{product_id}/sync/{marketplace}", response_model=ProductRead)
async def publish_product(
    product_id: int,
    marketplace: str,
    product_sync: ProductSyncService = Depends(get_product_sync),
):
    """Publish (create or fully update) one product on one marketplace."""
    try:
        return await product_sync.publish_product(product_id, marketplace)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (MarketplaceNotConnectedError, UnsupportedMarketplaceError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except MarketplaceAPIError as e:
        logger.error(f"Publishing product {product_id} to {marketplace} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
