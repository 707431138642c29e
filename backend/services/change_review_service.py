"""Change review store - pending changes and reviewer decisions."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from models import FMSChange, FMSSyncLog
from services.exceptions import NotFoundError
from services.sync_log_service import SyncLogService

logger = logging.getLogger(__name__)


@dataclass
class ReviewOutcome:
    """Per-change result of a review request."""

    change_id: str
    status: str  # "reviewed" | "already_reviewed" | "not_found"
    accepted: bool | None = None


class ChangeReviewService:
    """Reads and records review decisions, scoped to one sync log.

    Every lookup filters by ``sync_log_id`` so a change id from another run
    (and therefore possibly another facility) is simply not found.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_pending_changes(self, sync_log_id: str) -> list[FMSChange]:
        """Unreviewed changes for a run, in diff order."""
        return (
            self.db.query(FMSChange)
            .filter(FMSChange.sync_log_id == sync_log_id, FMSChange.is_reviewed.is_(False))
            .order_by(FMSChange.sequence)
            .all()
        )

    def get_changes(self, sync_log_id: str) -> list[FMSChange]:
        """All changes for a run, in diff order."""
        return (
            self.db.query(FMSChange)
            .filter(FMSChange.sync_log_id == sync_log_id)
            .order_by(FMSChange.sequence)
            .all()
        )

    def _record(self, change: FMSChange, accepted: bool, reviewer_id: str) -> ReviewOutcome:
        if change.is_reviewed:
            return ReviewOutcome(change.id, "already_reviewed", change.is_accepted)
        change.is_reviewed = True
        change.is_accepted = accepted
        change.reviewed_by = reviewer_id
        change.reviewed_at = datetime.now(timezone.utc)
        return ReviewOutcome(change.id, "reviewed", accepted)

    def review_change(
        self, sync_log_id: str, change_id: str, accepted: bool, reviewer_id: str
    ) -> ReviewOutcome:
        """Record one decision.

        Reviewing an already-reviewed change returns the existing decision
        and leaves the row untouched.

        Raises:
            NotFoundError: If the change is not part of the sync log.
        """
        outcome = self.bulk_review(sync_log_id, [change_id], accepted, reviewer_id)[0]
        if outcome.status == "not_found":
            raise NotFoundError("Change not found")
        return outcome

    def bulk_review(
        self,
        sync_log_id: str,
        change_ids: list[str],
        accepted: bool,
        reviewer_id: str,
        commit: bool = True,
    ) -> list[ReviewOutcome]:
        """Apply one decision to many changes in a single transaction.

        Args:
            sync_log_id: Run the changes must belong to.
            change_ids: Changes to review.
            accepted: The decision.
            reviewer_id: Who decided.
            commit: Commit the batch (False when the caller owns the transaction).

        Returns:
            One outcome per requested id, in request order.
        """
        sync_log = self.db.query(FMSSyncLog).filter(FMSSyncLog.id == sync_log_id).first()
        if sync_log is None:
            raise NotFoundError("Sync log not found")

        changes = {
            c.id: c
            for c in self.db.query(FMSChange)
            .filter(FMSChange.sync_log_id == sync_log_id, FMSChange.id.in_(change_ids))
            .with_for_update()
            .all()
        }
        outcomes = []
        for change_id in change_ids:
            change = changes.get(change_id)
            if change is None:
                outcomes.append(ReviewOutcome(change_id, "not_found"))
            else:
                outcomes.append(self._record(change, accepted, reviewer_id))

        SyncLogService.recompute_counters(self.db, sync_log)
        if commit:
            self.db.commit()

        reviewed = sum(1 for o in outcomes if o.status == "reviewed")
        logger.info(
            "Sync log %s: %d change(s) %s by %s (%d already reviewed, %d not found)",
            sync_log_id,
            reviewed,
            "accepted" if accepted else "rejected",
            reviewer_id,
            sum(1 for o in outcomes if o.status == "already_reviewed"),
            sum(1 for o in outcomes if o.status == "not_found"),
        )
        return outcomes
