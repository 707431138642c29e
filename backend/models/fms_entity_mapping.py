"""FMSEntityMapping model - links an FMS identifier to an internal identifier."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, UniqueConstraint

from database import Base
from models.utils import generate_uuid


class FMSEntityMapping(Base):
    """Durable association between a provider's external id and our id.

    The combination of facility + entity type + provider + external id is
    unique; that constraint is the only guard against two concurrent applies
    linking the same external entity twice. Mappings are never updated, only
    removed when a facility's integration is torn down.
    """

    __tablename__ = "fms_entity_mappings"
    __table_args__ = (
        UniqueConstraint(
            "facility_id",
            "entity_type",
            "provider_type",
            "external_id",
            name="uix_fms_mapping_external",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    facility_id = Column(String(36), ForeignKey("facilities.id"), nullable=False, index=True)
    entity_type = Column(String, nullable=False)  # "tenant" | "unit"
    provider_type = Column(String, nullable=False)
    external_id = Column(String, nullable=False)
    internal_id = Column(String(36), nullable=False, index=True)
    # "metadata" is reserved on declarative classes
    mapping_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
