"""FMS configuration service - per-facility provider settings."""

import logging

from sqlalchemy.orm import Session

from integrations.exceptions import ProviderError
from integrations.fms_provider_registry import FMSProviderRegistry
from models import Facility, FMSConfiguration, FMSSyncLog
from schemas.fms import FMSConfigurationCreate, FMSConfigurationUpdate, FMSProviderConfig
from services.entity_mapping_service import EntityMappingService
from services.exceptions import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

REDACTED = "********"


def redact_config(config: dict | None) -> dict:
    """Return a copy of a stored provider config with credential values masked."""
    data = dict(config or {})
    auth = data.get("auth")
    if isinstance(auth, dict) and isinstance(auth.get("credentials"), dict):
        data["auth"] = {
            **auth,
            "credentials": {key: REDACTED for key in auth["credentials"]},
        }
    return data


class FMSConfigService:
    """Service for creating, updating and tearing down FMS configurations."""

    @staticmethod
    def get_by_id(db: Session, config_id: str) -> FMSConfiguration:
        """Raises NotFoundError if the configuration does not exist."""
        config = db.get(FMSConfiguration, config_id)
        if config is None:
            raise NotFoundError("FMS configuration not found")
        return config

    @staticmethod
    def get_for_facility(db: Session, facility_id: str) -> FMSConfiguration:
        """Raises NotFoundError if the facility has no configuration."""
        config = (
            db.query(FMSConfiguration)
            .filter(FMSConfiguration.facility_id == facility_id)
            .first()
        )
        if config is None:
            raise NotFoundError("FMS configuration not found")
        return config

    @staticmethod
    def create(db: Session, data: FMSConfigurationCreate) -> FMSConfiguration:
        """Create a facility's configuration.

        Args:
            db: Database session.
            data: Validated create payload.

        Returns:
            The new configuration (flushed, not committed).

        Raises:
            NotFoundError: If the facility does not exist.
            ConflictError: If the facility already has a configuration.
        """
        if db.get(Facility, data.facility_id) is None:
            raise NotFoundError("Facility not found")
        existing = (
            db.query(FMSConfiguration)
            .filter(FMSConfiguration.facility_id == data.facility_id)
            .first()
        )
        if existing is not None:
            raise ConflictError("This facility already has an FMS configuration")

        config = FMSConfiguration(
            facility_id=data.facility_id,
            provider_type=data.provider_type.value,
            is_enabled=data.is_enabled,
            config=data.config.model_dump(),
        )
        db.add(config)
        db.flush()
        logger.info(
            "FMS configuration created for facility %s (provider %s)",
            data.facility_id, config.provider_type,
        )
        return config

    @staticmethod
    def update(db: Session, config_id: str, data: FMSConfigurationUpdate) -> FMSConfiguration:
        """Apply a partial update.

        Returns:
            The updated configuration (flushed, not committed).
        """
        config = FMSConfigService.get_by_id(db, config_id)
        if data.provider_type is not None:
            config.provider_type = data.provider_type.value
        if data.is_enabled is not None:
            config.is_enabled = data.is_enabled
        if data.config is not None:
            new_config = data.config.model_dump()
            # Masked values echoed back from a GET keep the stored secret
            stored = (config.config or {}).get("auth", {}).get("credentials", {})
            credentials = new_config["auth"]["credentials"]
            for key, value in credentials.items():
                if value == REDACTED and key in stored:
                    credentials[key] = stored[key]
            config.config = new_config
        db.flush()
        logger.info("FMS configuration %s updated", config_id)
        return config

    @staticmethod
    def delete(db: Session, config_id: str) -> None:
        """Delete a configuration and tear down the facility's mappings.

        Raises:
            NotFoundError: If the configuration does not exist.
            ConflictError: If sync history still references it.
        """
        config = FMSConfigService.get_by_id(db, config_id)
        history = (
            db.query(FMSSyncLog.id)
            .filter(FMSSyncLog.fms_config_id == config_id)
            .first()
        )
        if history is not None:
            raise ConflictError("Cannot delete an FMS configuration that has sync history")
        EntityMappingService.delete_for_facility(db, config.facility_id)
        db.delete(config)
        db.flush()
        logger.info("FMS configuration %s deleted", config_id)

    @staticmethod
    def test_connection(registry: FMSProviderRegistry, config: FMSConfiguration) -> tuple[bool, str]:
        """Probe the provider with a stored configuration.

        Returns:
            (success, message). Provider errors are reported, not raised.
        """
        provider_config = FMSProviderConfig.model_validate(config.config or {})
        try:
            ok = registry.get_provider(config.provider_type).test_connection(provider_config)
        except ProviderError as e:
            logger.warning("FMS connection test failed for configuration %s: %s", config.id, e)
            return False, f"Connection failed: {type(e).__name__}"
        return ok, "Connection successful" if ok else "Provider did not respond successfully"
