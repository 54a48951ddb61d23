"""Database models."""

from discount_sync.models.store import Store
from discount_sync.models.product import CachedProduct
from discount_sync.models.integration import Integration
from discount_sync.models.notification_channel import NotificationChannel
from discount_sync.models.sync_configuration import SyncConfiguration
from discount_sync.models.sync_execution import SyncExecution
from discount_sync.models.log_entry import LogEntry

__all__ = [
    "Store",
    "CachedProduct",
    "Integration",
    "NotificationChannel",
    "SyncConfiguration",
    "SyncExecution",
    "LogEntry",
]
