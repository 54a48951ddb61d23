import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from discount_sync.notifications.base import NotificationError, Notifier
from discount_sync.schemas.integration import WebhookConfig

log = logging.getLogger(__name__)


class WebhookNotifier(Notifier):
    """Posts messages as JSON to a generic webhook (Slack-compatible 'text' field)."""

    def __init__(self, config: WebhookConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=config.timeout)

    async def send(self, text: str) -> None:
        payload = {
            "text": text,
            "source": "discount_sync",
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            response = await self.client.request(
                self.config.method,
                self.config.webhook_url,
                json=payload,
                headers=self.config.headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotificationError(
                f"Webhook returned {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.RequestError as e:
            raise NotificationError(f"Webhook request error: {e}") from e

        log.debug(f"Webhook notification delivered to {self.config.webhook_url}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
