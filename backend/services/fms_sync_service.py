"""FMS sync orchestrator - runs fetch, diff and persist for one facility."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import ProviderDataError, ProviderError
from integrations.fms_provider_registry import FMSProviderRegistry, get_fms_provider_registry
from models import Facility, FMSChange, FMSConfiguration, FMSSyncLog
from models.enums import SECURITY_SENSITIVE_ACTIONS, ChangeAction, ChangeType, SyncStatus, TriggeredBy
from schemas.fms import FMSProviderConfig
from services.access_service import AccessService, Actor
from services.apply_service import ApplyService
from services.assignment_events import AssignmentEventPublisher
from services.change_review_service import ChangeReviewService
from services.diff_service import DetectedChange, DiffResult, DiffService
from services.exceptions import ConflictError, NotFoundError, ValidationError
from services.sync_log_service import SyncLogService

logger = logging.getLogger(__name__)

_SUMMARY_KEYS = {
    ChangeType.TENANT_ADDED: "tenants_added",
    ChangeType.TENANT_REMOVED: "tenants_removed",
    ChangeType.TENANT_UPDATED: "tenants_updated",
    ChangeType.UNIT_ADDED: "units_added",
    ChangeType.UNIT_REMOVED: "units_removed",
    ChangeType.UNIT_UPDATED: "units_updated",
}


def is_security_sensitive(actions) -> bool:
    """True if any action affects identity or access, or retires a unit."""
    return any(ChangeAction(a) in SECURITY_SENSITIVE_ACTIONS for a in actions)


@dataclass
class SyncRunResult:
    """Outcome of one completed sync run."""

    success: bool
    sync_log_id: str
    changes_detected: int
    summary: dict = field(default_factory=dict)
    requires_review: bool = False

    def to_dict(self) -> dict:
        """Shape matching ``schemas.fms.SyncResultResponse``."""
        return {
            "success": self.success,
            "sync_log_id": self.sync_log_id,
            "changes_detected": self.changes_detected,
            "summary": self.summary,
            "requires_review": self.requires_review,
        }


class FMSSyncService:
    """Owns one sync run end to end.

    The running log is committed before the provider is called so a second
    trigger for the same facility sees it; the detected changes are then
    committed together with the completed log, or not at all.
    """

    def __init__(
        self,
        provider_registry: FMSProviderRegistry | None = None,
        publisher: AssignmentEventPublisher | None = None,
    ):
        """Initialize with optional collaborators for dependency injection.

        Args:
            provider_registry: Registry of FMS adapters. If None, a default
                registry is created on first use.
            publisher: Event publisher handed to the apply engine when
                auto-accepted changes are applied.
        """
        self._registry = provider_registry
        self._publisher = publisher

    @property
    def registry(self) -> FMSProviderRegistry:
        """Get the provider registry, creating default if not provided."""
        if self._registry is None:
            self._registry = get_fms_provider_registry()
        return self._registry

    def perform_sync(
        self,
        db: Session,
        facility_id: str,
        triggered_by: TriggeredBy = TriggeredBy.MANUAL,
        actor: Actor | None = None,
    ) -> SyncRunResult:
        """Run one sync for a facility.

        Args:
            db: Database session. This method commits.
            facility_id: Facility to sync.
            triggered_by: Manual (user) or scheduled trigger.
            actor: The caller; None for scheduled runs.

        Returns:
            SyncRunResult for the completed run.

        Raises:
            AuthorizationError: Actor may not act on the facility.
            NotFoundError: Unknown facility or no FMS configuration.
            ValidationError: Integration is disabled.
            ConflictError: A sync for the facility is already running.
            ProviderError: The adapter failed; the run is recorded as failed.
        """
        if actor is not None:
            AccessService.require_facility_access(actor, facility_id)

        if db.get(Facility, facility_id) is None:
            raise NotFoundError("Facility not found")
        config = (
            db.query(FMSConfiguration)
            .filter(FMSConfiguration.facility_id == facility_id)
            .first()
        )
        if config is None:
            raise NotFoundError("FMS configuration not found for this facility")
        if not config.is_enabled:
            raise ValidationError("FMS integration is disabled for this facility")

        sync_log = self._start_run(db, facility_id, config, triggered_by, actor)
        logger.info(
            "FMS sync %s started for facility %s (%s, provider %s)",
            sync_log.id, facility_id, TriggeredBy(triggered_by).value, config.provider_type,
        )

        try:
            provider_config = FMSProviderConfig.model_validate(config.config or {})
        except PydanticValidationError:
            reason = "Stored FMS configuration is invalid"
            self._fail_run(db, sync_log.id, config.id, reason)
            logger.warning("FMS sync %s failed for facility %s: %s", sync_log.id, facility_id, reason)
            raise ProviderDataError(reason, provider_name=config.provider_type) from None

        try:
            snapshot = self.registry.fetch_snapshot(config.provider_type, provider_config)
        except ProviderError as e:
            db.rollback()
            self._fail_run(db, sync_log.id, config.id, str(e), e.context())
            logger.warning("FMS sync %s failed for facility %s: %s", sync_log.id, facility_id, e)
            raise
        except Exception:
            db.rollback()
            logger.error("FMS sync %s: unexpected error fetching from provider", sync_log.id, exc_info=True)
            self._fail_run(db, sync_log.id, config.id, "Unexpected error during sync")
            raise

        logger.info(
            "FMS sync %s: fetched %d tenants, %d units",
            sync_log.id, len(snapshot.tenants), len(snapshot.units),
        )

        try:
            diff = DiffService(db).compute_changes(facility_id, config.provider_type, snapshot)
            self._persist_changes(db, sync_log, diff.changes)
            summary = self._summary(diff)
            SyncLogService.mark_completed(
                db,
                sync_log,
                len(diff.changes),
                {
                    "tenants_synced": len(snapshot.tenants),
                    "units_synced": len(snapshot.units),
                    **summary,
                },
            )
            config.last_sync_at = sync_log.completed_at
            config.last_sync_status = SyncStatus.COMPLETED.value
            db.commit()
        except Exception:
            db.rollback()
            logger.error("FMS sync %s: unexpected error", sync_log.id, exc_info=True)
            self._fail_run(db, sync_log.id, config.id, "Unexpected error during sync")
            raise

        result = SyncRunResult(
            success=True,
            sync_log_id=sync_log.id,
            changes_detected=len(diff.changes),
            summary=summary,
        )
        if provider_config.sync_settings.auto_accept_changes:
            self._auto_accept(db, sync_log.id, result)

        # Sensitive changes always wait for a reviewer; anything else still
        # pending after auto-accept does too.
        pending = ChangeReviewService(db).get_pending_changes(sync_log.id)
        result.requires_review = bool(pending) or any(
            is_security_sensitive(c.required_actions) for c in diff.changes
        )
        logger.info(
            "FMS sync %s completed: %d changes detected, %d pending (requires review: %s)",
            sync_log.id, len(diff.changes), len(pending), result.requires_review,
        )
        return result

    def _start_run(
        self,
        db: Session,
        facility_id: str,
        config: FMSConfiguration,
        triggered_by: TriggeredBy,
        actor: Actor | None,
    ) -> FMSSyncLog:
        """Create and commit the running log, enforcing single-flight."""
        if SyncLogService.get_running(db, facility_id) is not None:
            logger.info("FMS sync rejected for facility %s: already running", facility_id)
            raise ConflictError("A sync is already in progress for this facility")
        try:
            sync_log = SyncLogService.create_running(
                db,
                facility_id,
                config.id,
                triggered_by,
                actor.user_id if actor else None,
            )
            db.commit()
        except IntegrityError as e:
            # Lost the race on the one-running-log index
            db.rollback()
            raise ConflictError("A sync is already in progress for this facility") from e
        return sync_log

    @staticmethod
    def _fail_run(
        db: Session, sync_log_id: str, config_id: str, reason: str, error_context: dict | None = None
    ) -> None:
        sync_log = db.query(FMSSyncLog).filter(FMSSyncLog.id == sync_log_id).one()
        SyncLogService.mark_failed(db, sync_log, reason)
        summary = {"tenants_synced": 0, "units_synced": 0, "errors": [reason], "warnings": []}
        if error_context:
            summary["error_context"] = error_context
        sync_log.sync_summary = summary
        config = db.get(FMSConfiguration, config_id)
        config.last_sync_at = datetime.now(timezone.utc)
        config.last_sync_status = SyncStatus.FAILED.value
        db.commit()

    @staticmethod
    def _persist_changes(db: Session, sync_log: FMSSyncLog, changes: list[DetectedChange]) -> None:
        for sequence, change in enumerate(changes):
            db.add(FMSChange(
                sync_log_id=sync_log.id,
                sequence=sequence,
                change_type=change.change_type.value,
                entity_type=change.entity_type.value,
                external_id=change.external_id,
                internal_id=change.internal_id,
                before_data=change.before_data,
                after_data=change.after_data,
                required_actions=[a.value for a in change.required_actions],
                impact_summary=change.impact_summary,
                is_valid=change.is_valid,
                validation_errors=change.validation_errors or None,
            ))
        db.flush()

    @staticmethod
    def _summary(diff: DiffResult) -> dict:
        summary = {key: diff.count(change_type) for change_type, key in _SUMMARY_KEYS.items()}
        summary["errors"] = [
            f"{c.external_id}: {'; '.join(c.validation_errors)}" for c in diff.changes if not c.is_valid
        ]
        summary["warnings"] = list(diff.warnings)
        return summary

    def _auto_accept(self, db: Session, sync_log_id: str, result: SyncRunResult) -> None:
        """Review and apply every valid change that carries no sensitive action."""
        changes = ChangeReviewService(db).get_pending_changes(sync_log_id)
        eligible = [
            c.id for c in changes
            if c.is_valid and not is_security_sensitive(c.required_actions)
        ]
        if not eligible:
            return
        system_actor = settings.FMS_SYSTEM_ACTOR_ID
        ChangeReviewService(db).bulk_review(sync_log_id, eligible, True, system_actor)
        applied = ApplyService(db, self._publisher).apply_changes(sync_log_id, eligible, system_actor)
        logger.info(
            "FMS sync %s: %d change(s) auto-accepted, %d applied",
            sync_log_id, len(eligible), applied.changes_applied,
        )
        result.summary["warnings"].extend(applied.errors)
