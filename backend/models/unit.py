"""Unit model - a rentable unit inside a facility."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Unit(Base):
    """A unit belonging to one facility.

    Units removed from the FMS are retired (``is_active = False``) rather
    than deleted so that history keeps resolving.
    """

    __tablename__ = "units"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    facility_id = Column(String(36), ForeignKey("facilities.id"), nullable=False, index=True)
    unit_number = Column(String, nullable=False)
    unit_type = Column(String, nullable=True)
    size = Column(String, nullable=True)
    status = Column(String, nullable=False, default="available")  # available | occupied | maintenance | reserved
    monthly_rate = Column(Numeric(10, 2), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    retired_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    facility = relationship("Facility", back_populates="units")
    assignments = relationship("UnitAssignment", back_populates="unit")
