import logging
from typing import Optional

import httpx

from discount_sync.notifications.base import NotificationError, Notifier
from discount_sync.schemas.integration import TelegramConfig

log = logging.getLogger(__name__)


class TelegramNotifier(Notifier):
    """Sends messages through the Telegram Bot API sendMessage method."""

    def __init__(self, config: TelegramConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=10.0)

    @property
    def url(self) -> str:
        return f"{self.config.api_base_url.rstrip('/')}/bot{self.config.bot_token}/sendMessage"

    async def send(self, text: str) -> None:
        payload = {"chat_id": self.config.chat_id, "text": text}
        if self.config.parse_mode:
            payload["parse_mode"] = self.config.parse_mode

        try:
            response = await self.client.post(self.url, json=payload)
        except httpx.RequestError as e:
            raise NotificationError(f"Telegram request error: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code != 200 or not body.get("ok", False):
            description = body.get("description") or response.text
            raise NotificationError(f"Telegram API error {response.status_code}: {description}")

        log.debug(f"Telegram message delivered to chat {self.config.chat_id}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
