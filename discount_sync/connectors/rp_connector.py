import logging
from typing import Any, Dict, List, Optional

import httpx

from discount_sync.connectors.base import (
    IntegrationAuthError,
    IntegrationError,
    SourceConnector,
    SourceProduct,
)
from discount_sync.schemas.integration import RPConfig

log = logging.getLogger(__name__)

# Upper bound for cursor pagination so a misbehaving endpoint cannot loop forever
MAX_PRODUCTS = 100000


def extract_value_from_path(data: Any, path: str) -> Any:
    """Resolves a dotted path such as 'response.token' inside a decoded JSON body."""
    current = data
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


def _first_present(row: Dict[str, Any], *keys: str) -> Any:
    """First truthy value among keys. RP sends 0 or "" for unset prices, so those fall through too."""
    for key in keys:
        if row.get(key):
            return row[key]
    return None


class RPConnector(SourceConnector):
    """
    Connector for the RP point-of-sale API.
    Authenticates with a static token or a login call, then lists the
    discounted products of one store, optionally following cursor pages.
    """

    system_name = "RP"

    def __init__(self, config: RPConfig, client: Optional[httpx.AsyncClient] = None):
        super().__init__(config, client)
        self.token: Optional[str] = config.static_token if config.auth_method == "TOKEN" else None
        log.info(f"RP connector initialized with base URL: {self.base_url} (auth: {config.auth_method})")

    async def authenticate(self) -> str:
        if self.config.auth_method == "TOKEN":
            self.token = self.config.static_token
            return self.token

        payload = {"usuario": self.config.username, "senha": self.config.password}
        try:
            data = await self._request("POST", self.config.login_endpoint, json=payload)
        except IntegrationAuthError:
            raise
        except IntegrationError as e:
            raise IntegrationAuthError(f"RP login failed: {e}", status_code=e.status_code) from e

        token = extract_value_from_path(data, self.config.token_response_field)
        if not token:
            raise IntegrationAuthError(
                f"RP login response has no token at '{self.config.token_response_field}'"
            )
        self.token = str(token)
        log.debug(f"RP login succeeded for user '{self.config.username}'")
        return self.token

    def store_identifier(self, store) -> str:
        return getattr(store, self.config.store_identifier_field, None) or store.registration

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self.config.token_header and self.token:
            headers[self.config.token_header] = self.token
        return headers

    async def fetch_products_page(self, store_identifier: str, last_id: int = 0) -> List[Dict[str, Any]]:
        """Fetches one raw page of products; the body is expected as {'response': [...]}."""
        if not self.token:
            await self.authenticate()

        path = (
            self.config.products_endpoint
            .replace("{lastId}", str(last_id))
            .replace("{storeReg}", store_identifier)
        )
        params = dict(self.config.pagination.additional_params) if self.config.pagination else None

        data = await self._request("GET", path, headers=self._headers(), params=params)
        rows = data.get("response") if isinstance(data, dict) else data
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise IntegrationError(f"RP returned an unexpected products payload for store {store_identifier}")
        log.trace(f"RP returned {len(rows)} rows for store {store_identifier} (lastId={last_id})")
        return rows

    async def fetch_all_rows(self, store_identifier: str) -> List[Dict[str, Any]]:
        """Follows lastId cursor pages until an empty page or the product ceiling."""
        all_rows: List[Dict[str, Any]] = []
        last_id = 0
        while True:
            rows = await self.fetch_products_page(store_identifier, last_id)
            if not rows:
                break
            all_rows.extend(rows)
            last_id = rows[-1].get("id") or last_id + 1
            if len(all_rows) > MAX_PRODUCTS:
                log.warning(f"RP store {store_identifier}: stopped paging after {len(all_rows)} products")
                break
        return all_rows

    async def fetch_discounted_products(self, store_identifier: str) -> List[SourceProduct]:
        pagination = self.config.pagination
        if pagination and pagination.method == "CURSOR" and "{lastId}" in self.config.products_endpoint:
            rows = await self.fetch_all_rows(store_identifier)
        else:
            rows = await self.fetch_products_page(store_identifier)

        products = []
        for row in rows:
            product = self._parse_product(row)
            if product is not None:
                products.append(product)
        log.info(f"Received {len(products)} discounted products from RP for store {store_identifier}")
        return products

    def _parse_product(self, row: Dict[str, Any]) -> Optional[SourceProduct]:
        code = _first_present(row, "codigo", "code")
        price = _first_present(row, "preco", "price")
        final_price = _first_present(row, "precoVenda2", "final_price", "preco", "price")
        if code is None or price is None:
            log.warning(f"Skipping RP row without code or price: {row}")
            return None
        try:
            return SourceProduct(code=int(code), price=float(price), final_price=float(final_price))
        except (TypeError, ValueError) as e:
            log.warning(f"Skipping unparsable RP row {row}: {e}")
            return None

    async def validate_connection(self) -> bool:
        await self.authenticate()
        return True
