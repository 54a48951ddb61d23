import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from discount_sync.config import settings

log = logging.getLogger(__name__)


class IntegrationError(Exception):
    """Transport, HTTP status or payload failure talking to an external system."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class IntegrationAuthError(IntegrationError):
    """Credentials were rejected or no token could be obtained."""


class SourceProduct(BaseModel):
    """Discounted product as reported by the source point-of-sale."""
    code: int = Field(..., description="Numeric product code shared by RP and CresceVendas")
    price: float = Field(..., description="Regular shelf price")
    final_price: float = Field(..., description="Discounted price")
    limit: Optional[int] = Field(None, description="Maximum discounted units, None means platform default")


class TargetProduct(BaseModel):
    """Discount line as sent to or reported by CresceVendas."""
    code: int
    price: float
    final_price: float
    limit: Optional[int] = None
    start_at: Optional[str] = None
    expire_at: Optional[str] = None


class DiscountWindow(BaseModel):
    """Validity window of a pushed batch, in store-local time."""
    start: datetime
    end: datetime
    computed_at: datetime

    @property
    def start_date(self) -> str:
        return self.start.strftime("%Y-%m-%dT%H:%M")

    @property
    def end_date(self) -> str:
        return self.end.strftime("%Y-%m-%dT%H:%M")


class PushAck(BaseModel):
    batch_name: str
    products_sent: int
    response: Any = None


class BaseConnector(ABC):
    """Shared HTTP plumbing for connectors built on a validated config variant."""

    system_name = "external system"

    def __init__(self, config: BaseModel, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            follow_redirects=True,
            timeout=settings.http_timeout_seconds,
        )

    async def _request(self, method: str, path: str, headers: Optional[Dict[str, str]] = None, **kwargs) -> Any:
        """
        Performs a request against base_url + path and returns the decoded JSON body.
        Every failure surfaces as IntegrationError so callers only catch one type.
        """
        if not path.startswith("/"):
            path = f"/{path}"
        url = f"{self.base_url}{path}"

        try:
            log.trace(f"{self.system_name} API {method} {url}")
            response = await self.client.request(method, url, headers=headers, **kwargs)
            log.trace(f"{self.system_name} API response: {response.status_code}")
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            response_text = e.response.text
            log.error(f"{self.system_name} API raw response body: {response_text}")

            if status == 401:
                error_msg = f"{self.system_name} authentication failed for {url}"
                log.error(error_msg)
                raise IntegrationAuthError(error_msg, status_code=status) from e
            elif status == 403:
                error_msg = f"{self.system_name} permission denied for {url}"
                log.error(error_msg)
                raise IntegrationAuthError(error_msg, status_code=status) from e
            elif status == 404:
                error_msg = f"{self.system_name} resource not found: {url}"
                log.error(error_msg)
                raise IntegrationError(error_msg, status_code=status) from e
            elif status in (400, 422):
                error_msg = f"{self.system_name} rejected request to {url}: {response_text}"
                log.error(error_msg)
                raise IntegrationError(error_msg, status_code=status) from e
            else:
                error_msg = f"{self.system_name} HTTP {status} error for {url}: {response_text}"
                log.error(error_msg)
                raise IntegrationError(error_msg, status_code=status) from e
        except httpx.RequestError as e:
            error_msg = f"{self.system_name} request error for {url}: {str(e)}"
            log.error(error_msg)
            raise IntegrationError(error_msg) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            error_msg = f"{self.system_name} returned a non-JSON body for {url}"
            log.error(f"{error_msg}: {response.text[:500]}")
            raise IntegrationError(error_msg, status_code=response.status_code) from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    @abstractmethod
    async def validate_connection(self) -> bool:
        """Validates the connection to the external system."""
        pass


class SourceConnector(BaseConnector):
    """Read side: the point-of-sale that owns the discounted prices."""

    def store_identifier(self, store) -> str:
        """Value identifying a store in source requests."""
        return store.registration

    @abstractmethod
    async def fetch_discounted_products(self, store_identifier: str) -> List[SourceProduct]:
        """Fetches current discounted products for one store. Empty list means nothing to sync."""
        pass


class TargetConnector(BaseConnector):
    """Write side: the discount platform mirroring the source per store."""

    @abstractmethod
    async def push(self, store_registration: str, products: List[TargetProduct], window: DiscountWindow) -> PushAck:
        """Pushes one all-or-nothing batch for a store, replacing any batch for the window."""
        pass

    @abstractmethod
    async def fetch_active(self, store_registration: str) -> List[TargetProduct]:
        """Fetches discounts currently active for a store."""
        pass
