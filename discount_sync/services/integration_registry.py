import logging
from typing import Callable, Dict, Optional

import httpx
from cryptography.fernet import InvalidToken
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from discount_sync.connectors.base import SourceConnector, TargetConnector
from discount_sync.connectors.crescevendas_connector import CresceVendasConnector
from discount_sync.connectors.rp_connector import RPConnector
from discount_sync.models.integration import Integration
from discount_sync.schemas.integration import CresceVendasConfig, IntegrationConfig, RPConfig
from discount_sync.services.errors import IntegrationConfigError, IntegrationNotFoundError
from discount_sync.utils.encrypt import decrypt_credentials

log = logging.getLogger(__name__)

SOURCE_TYPES: Dict[str, Callable[..., SourceConnector]] = {"RP": RPConnector}
TARGET_TYPES: Dict[str, Callable[..., TargetConnector]] = {"CRESCEVENDAS": CresceVendasConnector}

_config_adapter = TypeAdapter(IntegrationConfig)


class IntegrationRegistry:
    """
    Turns integration rows into validated config variants and fresh connectors.
    Connectors are built per run; callers own them and must aclose() them.
    """

    def __init__(self, db: Session, client_factory: Optional[Callable[[], httpx.AsyncClient]] = None):
        self.db = db
        self.client_factory = client_factory

    def _load(self, integration_id: Optional[int], role: str) -> Integration:
        if integration_id is None:
            raise IntegrationNotFoundError(f"No {role} integration was given")
        integration = self.db.query(Integration).filter(
            Integration.id == integration_id,
            Integration.deleted_at.is_(None),
        ).first()
        if not integration:
            raise IntegrationNotFoundError(f"{role.capitalize()} integration {integration_id} not found")
        return integration

    def _validate(self, integration: Integration) -> IntegrationConfig:
        try:
            credentials = decrypt_credentials(integration.credentials)
        except (InvalidToken, ValueError) as e:
            raise IntegrationConfigError(
                f"Credentials of integration {integration.id} ('{integration.name}') cannot be decrypted"
            ) from e

        raw = {
            **(integration.config or {}),
            **credentials,
            "type": integration.type,
            "base_url": integration.base_url,
        }
        try:
            return _config_adapter.validate_python(raw)
        except ValidationError as e:
            problems = "; ".join(err["msg"] for err in e.errors())
            raise IntegrationConfigError(
                f"Integration {integration.id} ('{integration.name}') has an invalid {integration.type} configuration: {problems}"
            ) from e

    def resolve(self, integration_id: int) -> IntegrationConfig:
        """Returns the typed config of a non-deleted integration, whatever its state."""
        return self._validate(self._load(integration_id, "requested"))

    def _resolve_active(self, integration_id: Optional[int], role: str, allowed: Dict[str, Callable]) -> IntegrationConfig:
        integration = self._load(integration_id, role)
        if not integration.active:
            raise IntegrationConfigError(f"{role.capitalize()} integration '{integration.name}' is inactive")
        if integration.type not in allowed:
            raise IntegrationConfigError(
                f"Integration '{integration.name}' has type {integration.type}, "
                f"expected {' or '.join(allowed)} as {role}"
            )
        config = self._validate(integration)
        log.debug(f"Resolved {role} integration {integration.id} ('{integration.name}', {integration.type})")
        return config

    def source_config(self, integration_id: Optional[int]) -> RPConfig:
        return self._resolve_active(integration_id, "source", SOURCE_TYPES)

    def target_config(self, integration_id: Optional[int]) -> CresceVendasConfig:
        return self._resolve_active(integration_id, "target", TARGET_TYPES)

    def _client(self) -> Optional[httpx.AsyncClient]:
        return self.client_factory() if self.client_factory else None

    def source_connector(self, integration_id: Optional[int]) -> SourceConnector:
        config = self.source_config(integration_id)
        return SOURCE_TYPES[config.type](config, client=self._client())

    def target_connector(self, integration_id: Optional[int]) -> TargetConnector:
        config = self.target_config(integration_id)
        return TARGET_TYPES[config.type](config, client=self._client())

    def connector(self, integration_id: int):
        """Connector for any non-deleted integration, used for connectivity checks."""
        config = self.resolve(integration_id)
        factory = SOURCE_TYPES.get(config.type) or TARGET_TYPES[config.type]
        return factory(config, client=self._client())
