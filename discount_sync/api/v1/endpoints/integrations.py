import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from discount_sync.connectors.base import IntegrationError
from discount_sync.database import get_db
from discount_sync.services.errors import IntegrationConfigError, IntegrationNotFoundError
from discount_sync.services.integration_registry import IntegrationRegistry

log = logging.getLogger(__name__)
router = APIRouter()


def get_registry(db: Session = Depends(get_db)) -> IntegrationRegistry:
    return IntegrationRegistry(db)


@router.post("/{integration_id}/validate")
async def validate_integration(integration_id: int, registry: IntegrationRegistry = Depends(get_registry)):
    """Checks that the integration's credentials and endpoints are usable."""
    try:
        connector = registry.connector(integration_id)
    except IntegrationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except IntegrationConfigError as e:
        return {"success": False, "message": str(e)}

    try:
        await connector.validate_connection()
    except IntegrationError as e:
        log.warning(f"Connection test failed for integration {integration_id}: {e}")
        return {"success": False, "message": str(e)}
    finally:
        await connector.aclose()

    return {"success": True, "message": "Connection successful"}
