"""Sync log bookkeeping - run lifecycle, counters, history and statistics."""

import logging
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import FMSChange, FMSSyncLog
from models.enums import SyncStatus, TriggeredBy
from services.exceptions import FMSError

logger = logging.getLogger(__name__)


class SyncLogService:
    """Creates, finalizes and summarizes FMSSyncLog rows."""

    @staticmethod
    def get_running(db: Session, facility_id: str) -> FMSSyncLog | None:
        """Return the facility's running sync log, if any."""
        return (
            db.query(FMSSyncLog)
            .filter(
                FMSSyncLog.facility_id == facility_id,
                FMSSyncLog.sync_status == SyncStatus.RUNNING.value,
            )
            .first()
        )

    @staticmethod
    def create_running(
        db: Session,
        facility_id: str,
        fms_config_id: str,
        triggered_by: TriggeredBy,
        triggered_by_user_id: str | None,
    ) -> FMSSyncLog:
        """Add a ``running`` log (flushed, not committed)."""
        sync_log = FMSSyncLog(
            facility_id=facility_id,
            fms_config_id=fms_config_id,
            sync_status=SyncStatus.RUNNING.value,
            triggered_by=TriggeredBy(triggered_by).value,
            triggered_by_user_id=triggered_by_user_id,
            started_at=datetime.now(timezone.utc),
        )
        db.add(sync_log)
        db.flush()
        return sync_log

    @staticmethod
    def _require_running(sync_log: FMSSyncLog) -> None:
        if sync_log.sync_status != SyncStatus.RUNNING.value:
            raise FMSError(f"Sync log {sync_log.id} is already finalized as {sync_log.sync_status}")

    @staticmethod
    def mark_completed(
        db: Session,
        sync_log: FMSSyncLog,
        changes_detected: int,
        summary: dict,
    ) -> None:
        """Finalize a run as completed.

        Raises:
            FMSError: If the log was already finalized.
        """
        SyncLogService._require_running(sync_log)
        sync_log.sync_status = SyncStatus.COMPLETED.value
        sync_log.completed_at = datetime.now(timezone.utc)
        sync_log.changes_detected = changes_detected
        sync_log.changes_pending = changes_detected
        sync_log.changes_applied = 0
        sync_log.changes_rejected = 0
        sync_log.sync_summary = summary
        db.flush()

    @staticmethod
    def mark_failed(db: Session, sync_log: FMSSyncLog, reason: str) -> None:
        """Finalize a run as failed with zero changes.

        Raises:
            FMSError: If the log was already finalized.
        """
        SyncLogService._require_running(sync_log)
        sync_log.sync_status = SyncStatus.FAILED.value
        sync_log.completed_at = datetime.now(timezone.utc)
        sync_log.changes_detected = 0
        sync_log.changes_pending = 0
        sync_log.error_message = reason
        db.flush()

    @staticmethod
    def recompute_counters(db: Session, sync_log: FMSSyncLog) -> None:
        """Refresh pending/rejected/applied counters from the change rows."""
        db.flush()
        rows = (
            db.query(FMSChange.is_reviewed, FMSChange.is_accepted, FMSChange.applied_at.isnot(None))
            .filter(FMSChange.sync_log_id == sync_log.id)
            .all()
        )
        sync_log.changes_pending = sum(1 for reviewed, _, _ in rows if not reviewed)
        sync_log.changes_rejected = sum(1 for reviewed, accepted, _ in rows if reviewed and accepted is False)
        sync_log.changes_applied = sum(1 for _, _, applied in rows if applied)
        db.flush()

    @staticmethod
    def get_history(
        db: Session, facility_id: str, limit: int, offset: int
    ) -> tuple[list[FMSSyncLog], int]:
        """A page of the facility's sync logs, newest first, plus the total."""
        query = db.query(FMSSyncLog).filter(FMSSyncLog.facility_id == facility_id)
        total = query.count()
        logs = (
            query.order_by(FMSSyncLog.started_at.desc(), FMSSyncLog.id)
            .offset(offset)
            .limit(limit)
            .all()
        )
        return logs, total

    @staticmethod
    def get_change_stats(db: Session, sync_log_id: str) -> dict:
        """Aggregate review/apply statistics for a run.

        Returns:
            Dict with total, reviewed, pending, accepted, rejected, applied
            and a per-change-type count under ``by_type``.
        """
        changes = db.query(FMSChange).filter(FMSChange.sync_log_id == sync_log_id).all()
        by_type = dict(
            db.query(FMSChange.change_type, func.count(FMSChange.id))
            .filter(FMSChange.sync_log_id == sync_log_id)
            .group_by(FMSChange.change_type)
            .all()
        )
        return {
            "total": len(changes),
            "reviewed": sum(1 for c in changes if c.is_reviewed),
            "pending": sum(1 for c in changes if not c.is_reviewed),
            "accepted": sum(1 for c in changes if c.is_reviewed and c.is_accepted),
            "rejected": sum(1 for c in changes if c.is_reviewed and c.is_accepted is False),
            "applied": sum(1 for c in changes if c.applied_at is not None),
            "by_type": by_type,
        }

    @staticmethod
    def fail_interrupted_runs(db: Session) -> int:
        """Mark every ``running`` log as failed.

        Called at startup: a run still marked running belongs to a process
        that died mid-sync and would otherwise block its facility forever.

        Returns:
            Number of logs failed (flushed, not committed).
        """
        stale = (
            db.query(FMSSyncLog)
            .filter(FMSSyncLog.sync_status == SyncStatus.RUNNING.value)
            .all()
        )
        for sync_log in stale:
            SyncLogService.mark_failed(db, sync_log, "Interrupted: server restarted during sync")
            logger.warning(
                "FMS sync %s for facility %s was interrupted; marked failed",
                sync_log.id, sync_log.facility_id,
            )
        return len(stale)
