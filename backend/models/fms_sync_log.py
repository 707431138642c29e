"""FMSSyncLog model - audit record of one sync run."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class FMSSyncLog(Base):
    """One sync run for one facility.

    Created as ``running`` when the run starts and finalized exactly once as
    ``completed`` or ``failed``. The change counters are bookkeeping that
    review and apply keep current after finalization.

    The partial unique index allows at most one ``running`` log per facility.
    """

    __tablename__ = "fms_sync_logs"
    __table_args__ = (
        Index(
            "uix_fms_sync_logs_one_running",
            "facility_id",
            unique=True,
            sqlite_where=text("sync_status = 'running'"),
            postgresql_where=text("sync_status = 'running'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    facility_id = Column(String(36), ForeignKey("facilities.id"), nullable=False, index=True)
    fms_config_id = Column(String(36), ForeignKey("fms_configurations.id"), nullable=False)
    sync_status = Column(String, nullable=False)  # "running" | "completed" | "failed"
    triggered_by = Column(String, nullable=False)  # "manual" | "scheduled"
    triggered_by_user_id = Column(String(36), nullable=True)
    started_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    completed_at = Column(DateTime, nullable=True)
    changes_detected = Column(Integer, default=0, nullable=False)
    changes_applied = Column(Integer, default=0, nullable=False)
    changes_pending = Column(Integer, default=0, nullable=False)
    changes_rejected = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)
    sync_summary = Column(JSON, nullable=True)  # tenants_synced, units_synced, errors, warnings
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    fms_configuration = relationship("FMSConfiguration", back_populates="sync_logs")
    changes = relationship(
        "FMSChange", back_populates="sync_log", order_by="FMSChange.sequence"
    )
