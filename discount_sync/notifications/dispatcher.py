import logging
from typing import Optional

from discount_sync.notifications.base import NotificationEvent, Notifier
from discount_sync.notifications.templates import render

log = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    The notify(event) port used by the sync engine.
    Rendering or delivery problems only produce a log line; notify() never raises.
    """

    def __init__(self, notifier: Optional[Notifier] = None, enabled: bool = True):
        self.notifier = notifier
        self.enabled = enabled

    async def notify(self, event: NotificationEvent) -> bool:
        if not self.enabled or self.notifier is None:
            log.debug(f"Notification '{event.kind.value}' not sent: no channel configured")
            return False
        try:
            await self.notifier.send(render(event))
        except Exception as e:
            log.error(f"Failed to send '{event.kind.value}' notification: {e}")
            return False
        log.info(f"Notification '{event.kind.value}' sent")
        return True

    async def aclose(self) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.aclose()
        except Exception as e:
            log.warning(f"Error closing notification transport: {e}")
