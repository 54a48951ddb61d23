import logging
from typing import Callable, Optional

import httpx
from cryptography.fernet import InvalidToken
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from discount_sync.models.notification_channel import NotificationChannel
from discount_sync.notifications.base import Notifier
from discount_sync.notifications.dispatcher import NotificationDispatcher
from discount_sync.notifications.telegram import TelegramNotifier
from discount_sync.notifications.webhook import WebhookNotifier
from discount_sync.schemas.integration import ChannelConfig, TelegramConfig
from discount_sync.utils.encrypt import decrypt_credentials

log = logging.getLogger(__name__)

_channel_adapter = TypeAdapter(ChannelConfig)


class NotificationChannelResolver:
    """
    Builds the dispatcher for a run from a notification channel row.
    A missing or broken channel yields a silent dispatcher: notifications
    are best-effort and must never block a sync.
    """

    def __init__(self, db: Session, client_factory: Optional[Callable[[], httpx.AsyncClient]] = None):
        self.db = db
        self.client_factory = client_factory

    def build_notifier(self, channel: NotificationChannel) -> Optional[Notifier]:
        if channel.type == "EMAIL":
            log.warning(f"Notification channel '{channel.name}': e-mail delivery is not supported, skipping")
            return None

        raw = {**(channel.config or {}), **decrypt_credentials(channel.credentials), "type": channel.type}
        config = _channel_adapter.validate_python(raw)
        client = self.client_factory() if self.client_factory else None
        if isinstance(config, TelegramConfig):
            return TelegramNotifier(config, client=client)
        return WebhookNotifier(config, client=client)

    def dispatcher_for(self, channel_id: Optional[int], enabled: bool = True) -> NotificationDispatcher:
        if channel_id is None or not enabled:
            return NotificationDispatcher(None, enabled=enabled)

        channel = self.db.query(NotificationChannel).filter(
            NotificationChannel.id == channel_id,
            NotificationChannel.deleted_at.is_(None),
        ).first()
        if not channel:
            log.warning(f"Notification channel {channel_id} not found, notifications disabled for this run")
            return NotificationDispatcher(None)
        if not channel.active:
            log.info(f"Notification channel '{channel.name}' is inactive, notifications disabled for this run")
            return NotificationDispatcher(None)

        try:
            notifier = self.build_notifier(channel)
        except (ValidationError, InvalidToken, ValueError) as e:
            log.error(f"Notification channel '{channel.name}' is misconfigured: {e}")
            return NotificationDispatcher(None)
        return NotificationDispatcher(notifier)
