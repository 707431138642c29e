"""FMSChange model - one detected difference awaiting review."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class FMSChange(Base):
    """A single difference between the FMS snapshot and internal state.

    The owning facility is the facility of ``sync_log``. Rows are created by
    the diff engine and afterwards only touched by review (``is_reviewed``,
    ``is_accepted``) and apply (``applied_at``).
    """

    __tablename__ = "fms_changes"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    sync_log_id = Column(String(36), ForeignKey("fms_sync_logs.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False, default=0)  # position in the diff output
    change_type = Column(String, nullable=False)
    entity_type = Column(String, nullable=False)  # "tenant" | "unit"
    external_id = Column(String, nullable=False)
    internal_id = Column(String(36), nullable=True)  # set for mapped entities
    before_data = Column(JSON, nullable=True)
    after_data = Column(JSON, nullable=True)
    required_actions = Column(JSON, nullable=False, default=list)  # list[ChangeAction value]
    impact_summary = Column(Text, nullable=False, default="")
    is_valid = Column(Boolean, default=True, nullable=False)
    validation_errors = Column(JSON, nullable=True)  # list[str]
    is_reviewed = Column(Boolean, default=False, nullable=False)
    is_accepted = Column(Boolean, nullable=True)
    reviewed_by = Column(String(36), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    applied_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    sync_log = relationship("FMSSyncLog", back_populates="changes")
