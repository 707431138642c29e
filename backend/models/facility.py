"""Facility model - a physical site whose units and tenants are synced."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Facility(Base):
    """A facility. Every FMS record is owned by exactly one facility."""

    __tablename__ = "facilities"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    units = relationship("Unit", back_populates="facility")
    fms_configuration = relationship(
        "FMSConfiguration", back_populates="facility", uselist=False
    )
