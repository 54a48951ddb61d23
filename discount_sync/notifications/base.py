from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from discount_sync.schemas.sync import ComparisonResult, SyncExecutionResult


class NotificationError(Exception):
    """Raised by a transport when a message could not be delivered."""


class EventKind(str, Enum):
    SYNC_STARTED = "sync_started"
    SYNC_COMPLETED = "sync_completed"
    SYNC_FAILED = "sync_failed"
    COMPARISON_COMPLETED = "comparison_completed"


class NotificationEvent(BaseModel):
    kind: EventKind
    execution_id: Optional[str] = None
    config_name: Optional[str] = None
    store_count: int = 0
    result: Optional[SyncExecutionResult] = None
    comparisons: List[ComparisonResult] = []
    error: Optional[str] = None


class Notifier(ABC):
    """A transport able to deliver one text message."""

    @abstractmethod
    async def send(self, text: str) -> None:
        """Sends a message, raising NotificationError on failure."""
        pass

    async def aclose(self) -> None:
        pass
