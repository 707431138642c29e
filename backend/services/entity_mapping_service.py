"""Entity mapping store - external FMS ids to internal ids."""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import FMSEntityMapping
from models.enums import EntityType
from services.exceptions import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


class EntityMappingService:
    """Persistent map of ``(facility, entity type, provider, external id) -> internal id``."""

    @staticmethod
    def find(
        db: Session,
        facility_id: str,
        entity_type: EntityType,
        provider_type: str,
        external_id: str,
    ) -> FMSEntityMapping | None:
        """Return the mapping for an external id, or None."""
        return (
            db.query(FMSEntityMapping)
            .filter_by(
                facility_id=facility_id,
                entity_type=EntityType(entity_type).value,
                provider_type=provider_type,
                external_id=external_id,
            )
            .first()
        )

    @staticmethod
    def resolve(
        db: Session,
        facility_id: str,
        entity_type: EntityType,
        provider_type: str,
        external_id: str,
    ) -> str:
        """Resolve an external id to the internal id.

        Raises:
            NotFoundError: If the external id has never been linked.
        """
        mapping = EntityMappingService.find(db, facility_id, entity_type, provider_type, external_id)
        if mapping is None:
            raise NotFoundError(f"No {EntityType(entity_type).value} mapping for external id {external_id}")
        return mapping.internal_id

    @staticmethod
    def list_for_facility(
        db: Session,
        facility_id: str,
        entity_type: EntityType,
        provider_type: str,
    ) -> list[FMSEntityMapping]:
        """All mappings of one entity type for a facility's provider, sorted by external id."""
        return (
            db.query(FMSEntityMapping)
            .filter_by(
                facility_id=facility_id,
                entity_type=EntityType(entity_type).value,
                provider_type=provider_type,
            )
            .order_by(FMSEntityMapping.external_id)
            .all()
        )

    @staticmethod
    def find_by_internal_id(
        db: Session,
        facility_id: str,
        entity_type: EntityType,
        provider_type: str,
        internal_id: str,
    ) -> FMSEntityMapping | None:
        """Reverse lookup: the mapping pointing at an internal entity, if any."""
        return (
            db.query(FMSEntityMapping)
            .filter_by(
                facility_id=facility_id,
                entity_type=EntityType(entity_type).value,
                provider_type=provider_type,
                internal_id=internal_id,
            )
            .first()
        )

    @staticmethod
    def create(
        db: Session,
        facility_id: str,
        entity_type: EntityType,
        provider_type: str,
        external_id: str,
        internal_id: str,
        metadata: dict | None = None,
    ) -> FMSEntityMapping:
        """Link an external id to an internal id.

        Runs inside a SAVEPOINT so a duplicate key only undoes this insert.

        Args:
            db: Database session.
            facility_id: Owning facility.
            entity_type: Tenant or unit.
            provider_type: Provider the external id belongs to.
            external_id: Provider's id.
            internal_id: Our id.
            metadata: Optional free-form context (sync log id, etc.).

        Returns:
            The new mapping (flushed, not committed).

        Raises:
            ConflictError: If the external id is already mapped.
        """
        mapping = FMSEntityMapping(
            facility_id=facility_id,
            entity_type=EntityType(entity_type).value,
            provider_type=provider_type,
            external_id=external_id,
            internal_id=internal_id,
            mapping_metadata=metadata,
        )
        try:
            with db.begin_nested():
                db.add(mapping)
        except IntegrityError as exc:
            logger.warning(
                "Duplicate %s mapping for external id %s in facility %s",
                EntityType(entity_type).value, external_id, facility_id,
            )
            raise ConflictError(
                f"External {EntityType(entity_type).value} {external_id} is already mapped"
            ) from exc
        return mapping

    @staticmethod
    def delete_for_facility(db: Session, facility_id: str) -> int:
        """Remove every mapping of a facility (integration teardown).

        Returns:
            Number of mappings deleted (flushed, not committed).
        """
        count = (
            db.query(FMSEntityMapping)
            .filter(FMSEntityMapping.facility_id == facility_id)
            .delete(synchronize_session=False)
        )
        logger.info("Deleted %d FMS mappings for facility %s", count, facility_id)
        return count
