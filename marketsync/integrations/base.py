"""
Purpose: Defines the uniform capability surface every marketplace adapter implements.

Adapters translate the canonical RemoteProduct shape to and from each
marketplace's native payloads. Translation is private to each adapter and
total: missing optional fields fall back to defaults instead of raising.
Transport and remote-validation failures always surface as
MarketplaceAPIError (MarketplaceAuthError for 401/403); boolean operations
return True on success and never report a failure as success.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from marketsync.core.enums import Marketplace
from marketsync.core.exceptions import MarketplaceAPIError, MarketplaceAuthError
from marketsync.schemas.connection import ConnectionCredentials
from marketsync.schemas.product import RemoteOrder, RemoteProduct

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def to_float(value, default: float = 0.0) -> float:
    if value is None or value == '':
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def to_int(value, default: int = 0) -> int:
    if value is None or value == '':
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


class MarketplaceAdapter(ABC):
    name: Marketplace

    def __init__(self, credentials: ConnectionCredentials, timeout: float = DEFAULT_TIMEOUT):
        self.credentials = credentials
        self.timeout = timeout

    @abstractmethod
    async def test_connection(self) -> bool:
        """Check the credentials against the marketplace"""
        pass

    @abstractmethod
    async def list_products(self, limit: int = 50, offset: int = 0) -> List[RemoteProduct]:
        """Page through the seller's listings"""
        pass

    @abstractmethod
    async def get_product(self, external_id: str) -> Optional[RemoteProduct]:
        """Fetch a single listing, None when the marketplace does not know it"""
        pass

    @abstractmethod
    async def create_product(self, product: RemoteProduct) -> RemoteProduct:
        """Publish a new listing; the result carries the assigned external id"""
        pass

    @abstractmethod
    async def update_product(self, external_id: str, product: Dict[str, Any]) -> RemoteProduct:
        """Replace the given fields on an existing listing"""
        pass

    @abstractmethod
    async def update_stock(self, external_id: str, quantity: int) -> bool:
        pass

    @abstractmethod
    async def update_price(self, external_id: str, price: float, sale_price: Optional[float] = None) -> bool:
        pass

    @abstractmethod
    async def pause_product(self, external_id: str) -> bool:
        pass

    @abstractmethod
    async def activate_product(self, external_id: str) -> bool:
        pass

    @abstractmethod
    async def delete_product(self, external_id: str) -> bool:
        pass

    async def get_order(self, order_id: str) -> Optional[RemoteOrder]:
        """Fetch an order; marketplaces without order notifications return None"""
        return None

    async def _make_request(
        self,
        method: str,
        url: str,
        json_data: Optional[Any] = None,
        params: Optional[Dict] = None,
        headers: Optional[Dict[str, str]] = None,
        auth: Optional[Any] = None,
        data: Optional[Dict] = None,
        allow_not_found: bool = False,
    ) -> Any:
        """
        Make a request to the marketplace API

        Returns:
            Parsed JSON body, {} for empty responses, None for a tolerated 404

        Raises:
            MarketplaceAuthError: 401/403 responses
            MarketplaceAPIError: any other failure
        """
        logger.debug(f"[{self.name.value}] {method} {url}")
        if params:
            logger.debug(f"Params: {params}")
        if json_data:
            logger.debug(f"Data: {json.dumps(json_data, default=str)[:500]}...")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=headers,
                    json=json_data,
                    params=params,
                    auth=auth,
                    data=data,
                )
        except httpx.TimeoutException as e:
            logger.error(f"[{self.name.value}] Timeout error: {str(e)}")
            raise MarketplaceAPIError(f"Request timed out: {str(e)}", marketplace=self.name.value)
        except httpx.HTTPError as e:
            logger.error(f"[{self.name.value}] Network error: {str(e)}")
            raise MarketplaceAPIError(f"Network error: {str(e)}", marketplace=self.name.value)

        status_code = response.status_code
        if status_code in (401, 403):
            logger.error(f"[{self.name.value}] Authentication rejected ({status_code})")
            raise MarketplaceAuthError(
                f"Authentication failed ({status_code}): {response.text[:300]}",
                marketplace=self.name.value,
                status_code=status_code,
            )
        if status_code == 404 and allow_not_found:
            return None
        if status_code >= 400:
            logger.error(f"[{self.name.value}] API error {status_code}: {response.text[:500]}")
            raise MarketplaceAPIError(
                f"Request failed ({status_code}): {response.text[:300]}",
                marketplace=self.name.value,
                status_code=status_code,
            )
        if status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError:
            raise MarketplaceAPIError(
                f"Invalid JSON in response: {response.text[:200]}",
                marketplace=self.name.value,
                status_code=status_code,
            )
