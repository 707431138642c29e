"""User model - an account that may hold unit assignments."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.orm import relationship

from database import Base
from models.enums import UserRole
from models.utils import generate_uuid


class User(Base):
    """A user account.

    FMS sync only ever creates, updates or deactivates users with the
    ``tenant`` role. Accounts are shared across facilities, so deactivation
    is decided by the assignments a user holds everywhere.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    role = Column(String, nullable=False, default=UserRole.TENANT.value)
    is_active = Column(Boolean, default=True, nullable=False)
    deactivated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    unit_assignments = relationship("UnitAssignment", back_populates="tenant")
