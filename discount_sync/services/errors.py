"""Errors raised by the sync engine before or around store processing."""

from typing import Optional


class SyncSetupError(Exception):
    """A run cannot start: nothing is processed and the run is recorded as FAILED."""


class SyncConfigurationNotFoundError(SyncSetupError):
    pass


class SyncConfigurationInactiveError(SyncSetupError):
    """The saved configuration exists but is disabled."""


class IntegrationNotFoundError(SyncSetupError):
    pass


class IntegrationConfigError(SyncSetupError):
    """Integration exists but is inactive, of the wrong type or misconfigured."""


class NoStoresToSyncError(SyncSetupError):
    pass


class SyncAlreadyRunningError(Exception):
    """Another RUNNING execution holds the same run key."""

    def __init__(self, run_key: str, running_execution_id: Optional[str] = None):
        self.run_key = run_key
        self.running_execution_id = running_execution_id
        message = f"A sync for '{run_key}' is already running"
        if running_execution_id:
            message += f" (execution {running_execution_id})"
        super().__init__(message)
