"""UnitAssignment model - grants a tenant access to a unit."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class UnitAssignment(Base):
    """An active assignment of a tenant to a unit.

    Removing access deletes the row; a user's remaining assignments across
    all facilities decide whether the account stays active.
    """

    __tablename__ = "unit_assignments"
    __table_args__ = (
        UniqueConstraint("unit_id", "tenant_id", name="uix_unit_assignment_unit_tenant"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    unit_id = Column(String(36), ForeignKey("units.id"), nullable=False, index=True)
    tenant_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    is_primary = Column(Boolean, default=True, nullable=False)
    access_type = Column(String, nullable=False, default="full")
    source = Column(String, nullable=False, default="manual")  # "manual" | "fms_sync"
    sync_log_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    unit = relationship("Unit", back_populates="assignments")
    tenant = relationship("User", back_populates="unit_assignments")
