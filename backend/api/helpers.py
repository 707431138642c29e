"""Shared API helpers for route handlers.

Error mapping and response builders used by the FMS routes.
"""

import logging
from typing import NoReturn

from fastapi import HTTPException

from integrations.exceptions import ProviderAuthError, ProviderError
from models import FMSConfiguration
from services.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from services.fms_config_service import redact_config

logger = logging.getLogger(__name__)


def require_field(value, field_name: str):
    """Return ``value`` or raise 400 naming the missing request field.

    Empty lists and blank strings count as missing.
    """
    if value is None or value == [] or (isinstance(value, str) and not value.strip()):
        raise HTTPException(status_code=400, detail=f"{field_name} is required")
    return value


def raise_http_error(e: Exception, action: str) -> NoReturn:
    """Convert a service-layer exception into an HTTPException.

    Args:
        e: The exception raised by a service.
        action: Short description for logs and the generic 500 message.

    Raises:
        HTTPException: Always.
    """
    if isinstance(e, HTTPException):
        raise e
    if isinstance(e, ValidationError):
        raise HTTPException(status_code=400, detail=str(e)) from e
    if isinstance(e, AuthorizationError):
        raise HTTPException(status_code=403, detail=str(e)) from e
    if isinstance(e, NotFoundError):
        raise HTTPException(status_code=404, detail=str(e)) from e
    if isinstance(e, ConflictError):
        raise HTTPException(status_code=409, detail=str(e)) from e
    if isinstance(e, ProviderAuthError):
        logger.warning("Provider auth error during %s: %s", action, e)
        raise HTTPException(
            status_code=502,
            detail=(
                f"FMS authentication failed for {e.provider_name}. "
                "Please check the configured credentials and try again."
            ),
        ) from e
    if isinstance(e, ProviderError):
        logger.warning("Provider error during %s: %s", action, e)
        raise HTTPException(
            status_code=502,
            detail="The FMS provider could not be reached or returned invalid data.",
        ) from e
    # Never expose str(e) for unexpected errors
    logger.error("Unexpected error during %s", action, exc_info=e)
    raise HTTPException(status_code=500, detail=f"An unexpected error occurred during {action}.") from e


def config_response_dict(config: FMSConfiguration) -> dict:
    """Build an FMSConfigurationResponse-compatible dict with credentials masked."""
    return {
        "id": config.id,
        "facility_id": config.facility_id,
        "provider_type": config.provider_type,
        "is_enabled": config.is_enabled,
        "config": redact_config(config.config),
        "last_sync_at": config.last_sync_at,
        "last_sync_status": config.last_sync_status,
        "created_at": config.created_at,
        "updated_at": config.updated_at,
    }
