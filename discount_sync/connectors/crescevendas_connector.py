import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

import httpx
from pydantic import ValidationError

from discount_sync.config import settings
from discount_sync.connectors.base import (
    DiscountWindow,
    IntegrationError,
    PushAck,
    TargetConnector,
    TargetProduct,
)
from discount_sync.schemas.integration import CresceVendasConfig

log = logging.getLogger(__name__)


def batch_name(store_registration: str, window: DiscountWindow) -> str:
    """'<branch> Descontos - <date> <HH:MM>', branch being the CNPJ branch digits when present."""
    branch = store_registration[9:12] or store_registration
    return f"{branch} Descontos - {window.start:%Y-%m-%d} {window.computed_at:%H:%M}"


class CresceVendasConnector(TargetConnector):
    """
    Connector for the CresceVendas discount platform.
    Pushes one override batch per store and lists the discounts active today.
    """

    system_name = "CresceVendas"

    def __init__(self, config: CresceVendasConfig, client: Optional[httpx.AsyncClient] = None):
        super().__init__(config, client)
        self.headers = {**config.auth_headers, "Content-Type": "application/json"}
        log.info(f"CresceVendas connector initialized with base URL: {self.base_url}")

    def build_batch(self, store_registration: str, products: List[TargetProduct], window: DiscountWindow) -> Dict[str, Any]:
        return {
            "override": 1,
            "start_date": window.start_date,
            "end_date": window.end_date,
            "store_registrations": [store_registration],
            "name": batch_name(store_registration, window),
            "discount_store_lines": [
                {
                    "code": str(product.code),
                    "price": product.price,
                    "final_price": product.final_price,
                    "limit": product.limit or settings.default_product_limit,
                }
                for product in products
            ],
        }

    async def push(self, store_registration: str, products: List[TargetProduct], window: DiscountWindow) -> PushAck:
        body = self.build_batch(store_registration, products, window)
        log.debug(
            f"Pushing batch '{body['name']}' with {len(products)} lines "
            f"({body['start_date']} -> {body['end_date']}) to CresceVendas"
        )
        data = await self._request("POST", self.config.send_products_endpoint, headers=self.headers, json=body)

        if isinstance(data, dict) and data.get("error"):
            error_msg = f"CresceVendas rejected batch for store {store_registration}: {data['error']}"
            log.error(error_msg)
            raise IntegrationError(error_msg)

        log.info(f"CresceVendas accepted {len(products)} products for store {store_registration}")
        return PushAck(batch_name=body["name"], products_sent=len(products), response=data)

    async def fetch_active(self, store_registration: str, day: Optional[date] = None) -> List[TargetProduct]:
        day = day or datetime.now(ZoneInfo(settings.sync_timezone)).date()
        params = {
            "store_registration": store_registration,
            "start_date": f"{day.isoformat()}T00:01:00",
            "end_date": f"{day.isoformat()}T23:59:00",
        }
        data = await self._request("GET", self.config.get_products_endpoint, headers=self.headers, params=params)

        products = []
        for line in self._extract_lines(data):
            try:
                products.append(TargetProduct.model_validate(line))
            except ValidationError as e:
                log.warning(f"Skipping unparsable CresceVendas line {line}: {e.errors()[0]['msg']}")
        log.info(f"CresceVendas reports {len(products)} active discounts for store {store_registration}")
        return products

    @staticmethod
    def _extract_lines(data: Any) -> List[Dict[str, Any]]:
        """
        CresceVendas answers in a few shapes depending on the endpoint version:
        {'discount_store_lines': [...]}, {'response': {'discounts': [...]}},
        {'data': [batch, ...]} or a bare list of batches or lines.
        """
        if isinstance(data, dict):
            if isinstance(data.get("error"), str):
                raise IntegrationError(f"CresceVendas returned an error: {data['error']}")
            if isinstance(data.get("discount_store_lines"), list):
                return data["discount_store_lines"]
            response = data.get("response")
            if isinstance(response, dict) and isinstance(response.get("discounts"), list):
                return response["discounts"]
            if isinstance(data.get("data"), list):
                data = data["data"]
            else:
                return []

        if not isinstance(data, list):
            return []

        lines: List[Dict[str, Any]] = []
        for item in data:
            if not isinstance(item, dict):
                continue
            if isinstance(item.get("discount_store_lines"), list):
                lines.extend(item["discount_store_lines"])
            elif "code" in item:
                lines.append(item)
        return lines

    async def validate_connection(self) -> bool:
        today = datetime.now(ZoneInfo(settings.sync_timezone)).date().isoformat()
        params = {"start_date": f"{today}T00:01:00", "end_date": f"{today}T23:59:00", "limit": 1}
        await self._request("GET", self.config.get_products_endpoint, headers=self.headers, params=params)
        return True
