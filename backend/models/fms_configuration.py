"""FMSConfiguration model - per-facility provider settings."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class FMSConfiguration(Base):
    """Stores which FMS provider a facility uses and how to reach it.

    ``config`` is the opaque provider configuration (see
    ``schemas.fms.FMSProviderConfig``). A configuration is never deleted
    while a sync log references it.
    """

    __tablename__ = "fms_configurations"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    facility_id = Column(
        String(36), ForeignKey("facilities.id"), unique=True, index=True, nullable=False
    )
    provider_type = Column(String, nullable=False)  # FMSProviderType value
    is_enabled = Column(Boolean, default=False, nullable=False)
    config = Column(JSON, nullable=False, default=dict)
    last_sync_at = Column(DateTime, nullable=True)
    last_sync_status = Column(String, nullable=True)  # SyncStatus value
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    facility = relationship("Facility", back_populates="fms_configuration")
    sync_logs = relationship("FMSSyncLog", back_populates="fms_configuration")
