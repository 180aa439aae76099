"""
Operator endpoints for marketplace credentials.

Secrets are write-only: reads return ConnectionRead, which carries no keys
or tokens. The OAuth authorization-code exchange happens outside this
service; OAuth marketplaces are stored with the tokens the operator obtained.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from marketsync.core.enums import Marketplace
from marketsync.core.exceptions import UnsupportedMarketplaceError
from marketsync.dependencies import get_adapter_factory, get_store
from marketsync.models.connection import Connection
from marketsync.schemas.connection import ConnectionCredentials, ConnectionRead
from marketsync.services.catalog_store import CatalogStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/connections", tags=["connections"])


def _parse(marketplace: str) -> Marketplace:
    try:
        return Marketplace.parse(marketplace)
    except UnsupportedMarketplaceError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/", response_model=List[ConnectionRead])
async def list_connections(store: CatalogStore = Depends(get_store)):
    return await store.list_connections()


@router.get("/{marketplace}", response_model=ConnectionRead)
async def get_connection(marketplace: str, store: CatalogStore = Depends(get_store)):
    connection = await store.get_connection(_parse(marketplace))
    if not connection:
        raise HTTPException(status_code=404, detail="Connection not found")
    return connection


@router.put("/{marketplace}", response_model=ConnectionRead)
async def save_connection(
    marketplace: str,
    credentials: ConnectionCredentials,
    store: CatalogStore = Depends(get_store),
    adapter_factory=Depends(get_adapter_factory),
):
    """Create or replace the credentials for one marketplace."""
    marketplace = _parse(marketplace)
    connection = await store.get_connection(marketplace)
    if not connection:
        connection = Connection(marketplace=marketplace.value)

    for field, value in credentials.model_dump(exclude_unset=True).items():
        setattr(connection, field, value)

    if marketplace == Marketplace.WOOCOMMERCE:
        connection.is_connected = await adapter_factory.build(connection).test_connection()
    else:
        connection.is_connected = bool(connection.access_token)

    logger.info(f"Saved {marketplace.value} connection (connected={connection.is_connected})")
    return await store.save_connection(connection)


@router.post("/{marketplace}/test")
async def test_connection(
    marketplace: str,
    store: CatalogStore = Depends(get_store),
    adapter_factory=Depends(get_adapter_factory),
):
    marketplace = _parse(marketplace)
    connection = await store.get_connection(marketplace)
    if not connection:
        raise HTTPException(status_code=404, detail="Connection not found")

    is_connected = await adapter_factory.build(connection).test_connection()
    connection.is_connected = is_connected
    await store.save_connection(connection)
    return {"success": True, "is_connected": is_connected}


@router.delete("/{marketplace}")
async def delete_connection(marketplace: str, store: CatalogStore = Depends(get_store)):
    connection = await store.get_connection(_parse(marketplace))
    if not connection:
        raise HTTPException(status_code=404, detail="Connection not found")
    await store.delete_connection(connection)
    return {"success": True}
