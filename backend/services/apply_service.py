"""Apply engine - turns accepted changes into user, unit and assignment writes.

Each change is applied in its own transaction: its whole mutation set
(user, mapping, assignments) commits together or not at all, and a failed
change never aborts the rest of the batch. Every write is checked against
the facility that owns the sync log.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from config import settings
from models import FMSChange, FMSConfiguration, FMSSyncLog, Unit, UnitAssignment, User
from models.enums import ChangeType, EntityType, UserRole
from services.assignment_events import (
    ASSIGNED,
    UNASSIGNED,
    AssignmentEvent,
    AssignmentEventPublisher,
    LoggingEventPublisher,
    make_event,
)
from services.diff_service import UNIT_FIELDS
from services.entity_mapping_service import EntityMappingService
from services.exceptions import ApplyError, ConflictError, NotFoundError
from services.sync_log_service import SyncLogService

logger = logging.getLogger(__name__)

# Units first so tenant assignments can resolve units added in the same batch;
# unit retirement last so tenant changes still see the unit.
APPLY_ORDER = {
    ChangeType.UNIT_ADDED.value: 0,
    ChangeType.UNIT_UPDATED.value: 1,
    ChangeType.TENANT_ADDED.value: 2,
    ChangeType.TENANT_UPDATED.value: 3,
    ChangeType.TENANT_REMOVED.value: 4,
    ChangeType.UNIT_REMOVED.value: 5,
}


@dataclass
class ApplyResult:
    """Outcome of an apply batch."""

    success: bool = True
    changes_applied: int = 0
    changes_failed: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    users_created: list[str] = field(default_factory=list)
    users_deactivated: list[str] = field(default_factory=list)
    access_granted: list[dict[str, str]] = field(default_factory=list)
    access_revoked: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Shape matching ``schemas.fms.ApplyResultResponse``."""
        return {
            "success": self.success,
            "changes_applied": self.changes_applied,
            "changes_failed": self.changes_failed,
            "errors": self.errors,
            "warnings": self.warnings,
            "access_changes": {
                "users_created": self.users_created,
                "users_deactivated": self.users_deactivated,
                "access_granted": self.access_granted,
                "access_revoked": self.access_revoked,
            },
        }


@dataclass
class _ChangeEffects:
    """Effects of one change, merged into the result only after commit."""

    facility_id: str
    sync_log_id: str | None
    provider_type: str
    performed_by: str
    warnings: list[str] = field(default_factory=list)
    users_created: list[str] = field(default_factory=list)
    users_deactivated: list[str] = field(default_factory=list)
    access_granted: list[dict[str, str]] = field(default_factory=list)
    access_revoked: list[dict[str, str]] = field(default_factory=list)
    events: list[AssignmentEvent] = field(default_factory=list)

    def merge_into(self, result: ApplyResult) -> None:
        result.warnings.extend(self.warnings)
        result.users_created.extend(self.users_created)
        result.users_deactivated.extend(self.users_deactivated)
        result.access_granted.extend(self.access_granted)
        result.access_revoked.extend(self.access_revoked)


class ApplyService:
    """Applies reviewed, accepted changes for one sync log at a time."""

    def __init__(self, db: Session, publisher: AssignmentEventPublisher | None = None):
        """Initialize with a session and an optional event publisher.

        Args:
            db: Database session. The service commits per change.
            publisher: Receives assignment events after each commit.
                Defaults to LoggingEventPublisher.
        """
        self.db = db
        self.publisher = publisher or LoggingEventPublisher()

    # -- batch entry points ------------------------------------------------

    def apply_changes(
        self, sync_log_id: str, change_ids: list[str], performed_by: str
    ) -> ApplyResult:
        """Apply a batch of changes belonging to one sync log.

        Args:
            sync_log_id: Run whose changes are applied.
            change_ids: Changes to apply; ids outside the run are reported
                as not found.
            performed_by: User id recorded on events.

        Returns:
            ApplyResult with per-change errors and the access changes made.

        Raises:
            NotFoundError: If the sync log does not exist.
        """
        sync_log = self.db.query(FMSSyncLog).filter(FMSSyncLog.id == sync_log_id).first()
        if sync_log is None:
            raise NotFoundError("Sync log not found")
        facility_id = sync_log.facility_id
        provider_type = sync_log.fms_configuration.provider_type

        result = ApplyResult()
        for change_id in self._ordered_ids(sync_log_id, change_ids):
            effects = _ChangeEffects(facility_id, sync_log_id, provider_type, performed_by)
            try:
                change = (
                    self.db.query(FMSChange)
                    .filter(FMSChange.id == change_id, FMSChange.sync_log_id == sync_log_id)
                    .with_for_update()
                    .first()
                )
                self._check_applicable(change)
                self._dispatch(change, effects)
                change.applied_at = datetime.now(timezone.utc)
                self.db.commit()
            except (ApplyError, ConflictError) as e:
                self.db.rollback()
                result.changes_failed += 1
                result.errors.append(f"Change {change_id}: {e}")
                logger.warning("Sync log %s: change %s not applied: %s", sync_log_id, change_id, e)
                continue
            except Exception:
                self.db.rollback()
                result.changes_failed += 1
                result.errors.append(f"Change {change_id}: unexpected error while applying")
                logger.error(
                    "Sync log %s: unexpected error applying change %s",
                    sync_log_id, change_id, exc_info=True,
                )
                continue

            result.changes_applied += 1
            effects.merge_into(result)
            self._publish(effects.events)

        sync_log = self.db.query(FMSSyncLog).filter(FMSSyncLog.id == sync_log_id).one()
        SyncLogService.recompute_counters(self.db, sync_log)
        self.db.commit()

        result.success = result.changes_failed == 0
        logger.info(
            "Sync log %s (facility %s): %d change(s) applied, %d failed",
            sync_log_id, facility_id, result.changes_applied, result.changes_failed,
        )
        return result

    def apply_tenant_removed(
        self, facility_id: str, external_tenant_id: str, performed_by: str | None = None
    ) -> ApplyResult:
        """Remove a tenant from one facility outside a full sync.

        Used when the provider pushes a removal event. Follows the same rule
        as a reviewed ``tenant_removed`` change: this facility's assignments
        go, and the account is deactivated only if none remain anywhere.

        Raises:
            NotFoundError: If the facility has no FMS configuration or the
                external tenant was never mapped there.
        """
        config = (
            self.db.query(FMSConfiguration)
            .filter(FMSConfiguration.facility_id == facility_id)
            .first()
        )
        if config is None:
            raise NotFoundError("FMS configuration not found")
        mapping = EntityMappingService.find(
            self.db, facility_id, EntityType.TENANT, config.provider_type, external_tenant_id
        )
        if mapping is None:
            raise NotFoundError("Tenant mapping not found")

        effects = _ChangeEffects(
            facility_id,
            None,
            config.provider_type,
            performed_by or settings.FMS_SYSTEM_ACTOR_ID,
        )
        result = ApplyResult()
        try:
            user = self._tenant_user(mapping.internal_id)
            self._remove_from_facility(user, effects)
            self.db.commit()
        except ApplyError as e:
            self.db.rollback()
            result.success = False
            result.changes_failed = 1
            result.errors.append(str(e))
            return result

        result.changes_applied = 1
        effects.merge_into(result)
        self._publish(effects.events)
        logger.info(
            "Facility %s: provider removal of tenant %s applied", facility_id, external_tenant_id
        )
        return result

    # -- checks ------------------------------------------------------------

    def _ordered_ids(self, sync_log_id: str, change_ids: list[str]) -> list[str]:
        """Dedupe ids and order them by change type, then diff sequence."""
        unique_ids = list(dict.fromkeys(change_ids))
        known = {
            change_id: (APPLY_ORDER.get(change_type, len(APPLY_ORDER)), sequence)
            for change_id, change_type, sequence in self.db.query(
                FMSChange.id, FMSChange.change_type, FMSChange.sequence
            )
            .filter(FMSChange.sync_log_id == sync_log_id, FMSChange.id.in_(unique_ids))
            .all()
        }
        fallback = (len(APPLY_ORDER) + 1, 0)
        return sorted(unique_ids, key=lambda cid: known.get(cid, fallback))

    @staticmethod
    def _check_applicable(change: FMSChange | None) -> None:
        if change is None:
            raise ApplyError("change not found in this sync log")
        if not change.is_reviewed:
            raise ApplyError("change has not been reviewed")
        if not change.is_accepted:
            raise ApplyError("change was rejected")
        if change.applied_at is not None:
            raise ApplyError("change was already applied")
        if not change.is_valid:
            errors = "; ".join(change.validation_errors or []) or "invalid data"
            raise ApplyError(f"change is invalid: {errors}")

    def _unit_in_facility(self, unit_id: str, effects: _ChangeEffects) -> Unit:
        """Load a unit and enforce that it belongs to the sync's facility."""
        unit = self.db.get(Unit, unit_id)
        if unit is None:
            raise ApplyError("unit no longer exists")
        if unit.facility_id != effects.facility_id:
            logger.error(
                "Isolation violation: sync log %s (facility %s) targeted unit %s of another facility",
                effects.sync_log_id, effects.facility_id, unit_id,
            )
            raise ApplyError("target unit does not belong to this facility")
        return unit

    def _tenant_user(self, user_id: str) -> User:
        """Load a user that sync is allowed to touch."""
        user = self.db.get(User, user_id)
        if user is None:
            raise ApplyError("user no longer exists")
        if user.role != UserRole.TENANT.value:
            logger.error("Refusing to modify non-tenant account %s from FMS sync", user_id)
            raise ApplyError("only tenant accounts can be modified by FMS sync")
        return user

    def _mapped_unit(self, external_id: str, effects: _ChangeEffects) -> Unit | None:
        mapping = EntityMappingService.find(
            self.db, effects.facility_id, EntityType.UNIT, effects.provider_type, external_id
        )
        if mapping is None:
            return None
        return self._unit_in_facility(mapping.internal_id, effects)

    def _mapped_internal_id(self, change: FMSChange, entity_type: EntityType, effects: _ChangeEffects) -> str:
        """Resolve the change's entity through its mapping, cross-checking internal_id."""
        mapping = EntityMappingService.find(
            self.db, effects.facility_id, entity_type, effects.provider_type, change.external_id
        )
        if mapping is None:
            raise ApplyError(f"no {entity_type.value} mapping for external id {change.external_id}")
        if change.internal_id and change.internal_id != mapping.internal_id:
            raise ApplyError("mapping no longer points at the reviewed entity")
        return mapping.internal_id

    # -- dispatch ----------------------------------------------------------

    def _dispatch(self, change: FMSChange, effects: _ChangeEffects) -> None:
        handlers = {
            ChangeType.UNIT_ADDED.value: self._apply_unit_added,
            ChangeType.UNIT_UPDATED.value: self._apply_unit_updated,
            ChangeType.UNIT_REMOVED.value: self._apply_unit_removed,
            ChangeType.TENANT_ADDED.value: self._apply_tenant_added,
            ChangeType.TENANT_UPDATED.value: self._apply_tenant_updated,
            ChangeType.TENANT_REMOVED.value: self._apply_tenant_removed,
        }
        handler = handlers.get(change.change_type)
        if handler is None:
            raise ApplyError(f"unsupported change type {change.change_type}")
        handler(change, effects)

    # -- units -------------------------------------------------------------

    @staticmethod
    def _set_unit_fields(unit: Unit, data: dict) -> None:
        for name in UNIT_FIELDS:
            if name not in data:
                continue
            value = data[name]
            if name == "monthly_rate":
                value = Decimal(value) if value is not None else None
            setattr(unit, name, value)
        if data.get("is_active") is True:
            unit.retired_at = None

    def _apply_unit_added(self, change: FMSChange, effects: _ChangeEffects) -> None:
        data = change.after_data or {}
        unit = None
        if change.internal_id:
            unit = self._unit_in_facility(change.internal_id, effects)
        else:
            candidate = (
                self.db.query(Unit)
                .filter(
                    Unit.facility_id == effects.facility_id,
                    Unit.unit_number == data.get("unit_number"),
                    Unit.is_active.is_(True),
                )
                .order_by(Unit.id)
                .first()
            )
            if candidate is not None and EntityMappingService.find_by_internal_id(
                self.db, effects.facility_id, EntityType.UNIT, effects.provider_type, candidate.id
            ) is None:
                unit = candidate

        if unit is None:
            unit = Unit(facility_id=effects.facility_id, unit_number=data.get("unit_number"))
            self._set_unit_fields(unit, data)
            self.db.add(unit)
            self.db.flush()
            logger.info("Facility %s: unit %s created", effects.facility_id, unit.unit_number)
        else:
            self._set_unit_fields(unit, data)
            logger.info("Facility %s: existing unit %s linked", effects.facility_id, unit.unit_number)

        EntityMappingService.create(
            self.db,
            effects.facility_id,
            EntityType.UNIT,
            effects.provider_type,
            change.external_id,
            unit.id,
            metadata={"sync_log_id": effects.sync_log_id},
        )
        change.internal_id = unit.id

    def _apply_unit_updated(self, change: FMSChange, effects: _ChangeEffects) -> None:
        unit = self._unit_in_facility(self._mapped_internal_id(change, EntityType.UNIT, effects), effects)
        self._set_unit_fields(unit, change.after_data or {})
        logger.info(
            "Facility %s: unit %s updated (%s)",
            effects.facility_id, unit.unit_number, ", ".join(sorted(change.after_data or {})),
        )

    def _apply_unit_removed(self, change: FMSChange, effects: _ChangeEffects) -> None:
        unit = self._unit_in_facility(self._mapped_internal_id(change, EntityType.UNIT, effects), effects)
        for assignment in list(unit.assignments):
            self._unassign(assignment, unit, effects)
        unit.is_active = False
        unit.retired_at = datetime.now(timezone.utc)
        self.db.flush()
        logger.info("Facility %s: unit %s retired", effects.facility_id, unit.unit_number)

    # -- assignments -------------------------------------------------------

    def _assign(self, user: User, unit: Unit, effects: _ChangeEffects) -> None:
        existing = (
            self.db.query(UnitAssignment)
            .filter(UnitAssignment.unit_id == unit.id, UnitAssignment.tenant_id == user.id)
            .first()
        )
        if existing is not None:
            return
        self.db.add(UnitAssignment(
            unit_id=unit.id,
            tenant_id=user.id,
            source="fms_sync",
            sync_log_id=effects.sync_log_id,
        ))
        self.db.flush()
        effects.access_granted.append({"user_id": user.id, "unit_id": unit.id})
        effects.events.append(make_event(
            ASSIGNED, effects.facility_id, unit.id, user.id, effects.sync_log_id, effects.performed_by
        ))
        logger.info("Facility %s: access granted to user %s for unit %s", effects.facility_id, user.id, unit.id)

    def _unassign(self, assignment: UnitAssignment, unit: Unit, effects: _ChangeEffects) -> None:
        if unit.facility_id != effects.facility_id:
            logger.error(
                "Isolation violation: refusing to remove assignment %s outside facility %s",
                assignment.id, effects.facility_id,
            )
            raise ApplyError("assignment does not belong to this facility")
        user_id = assignment.tenant_id
        self.db.delete(assignment)
        self.db.flush()
        effects.access_revoked.append({"user_id": user_id, "unit_id": unit.id})
        effects.events.append(make_event(
            UNASSIGNED, effects.facility_id, unit.id, user_id, effects.sync_log_id, effects.performed_by
        ))
        logger.info("Facility %s: access revoked for user %s on unit %s", effects.facility_id, user_id, unit.id)

    def _facility_assignments(self, user: User, facility_id: str) -> list[tuple[UnitAssignment, Unit]]:
        return (
            self.db.query(UnitAssignment, Unit)
            .join(Unit, UnitAssignment.unit_id == Unit.id)
            .filter(UnitAssignment.tenant_id == user.id, Unit.facility_id == facility_id)
            .order_by(Unit.id)
            .all()
        )

    def _remove_from_facility(self, user: User, effects: _ChangeEffects) -> None:
        """Revoke the user's assignments in this facility, then deactivate
        the account only if it holds no assignment anywhere."""
        for assignment, unit in self._facility_assignments(user, effects.facility_id):
            self._unassign(assignment, unit, effects)

        remaining = (
            self.db.query(func.count(UnitAssignment.id))
            .filter(UnitAssignment.tenant_id == user.id)
            .scalar()
        )
        if remaining:
            logger.info(
                "User %s keeps %d assignment(s) in other facilities; account stays active",
                user.id, remaining,
            )
            return
        if user.is_active:
            user.is_active = False
            user.deactivated_at = datetime.now(timezone.utc)
            self.db.flush()
            effects.users_deactivated.append(user.id)
            logger.info("User %s deactivated (no remaining unit assignments)", user.id)

    def _reactivate(self, user: User, effects: _ChangeEffects) -> None:
        if user.is_active:
            return
        user.is_active = True
        user.deactivated_at = None
        logger.info("User %s reactivated by FMS sync", user.id)

    # -- tenants -----------------------------------------------------------

    def _assign_external_units(self, user: User, external_ids: list[str], effects: _ChangeEffects) -> None:
        for ext_unit_id in external_ids:
            unit = self._mapped_unit(ext_unit_id, effects)
            if unit is None:
                effects.warnings.append(f"Unit {ext_unit_id} is not mapped; assignment skipped")
                continue
            self._assign(user, unit, effects)

    def _apply_tenant_added(self, change: FMSChange, effects: _ChangeEffects) -> None:
        data = change.after_data or {}
        email = (data.get("email") or "").strip().lower()
        if not email:
            raise ApplyError("tenant has no email")

        user = self.db.query(User).filter(func.lower(User.email) == email).first()
        if user is not None:
            if user.role != UserRole.TENANT.value:
                logger.error(
                    "Facility %s: FMS tenant %s matches a non-tenant account",
                    effects.facility_id, change.external_id,
                )
                raise ApplyError("email belongs to a non-tenant account")
            linked = EntityMappingService.find_by_internal_id(
                self.db, effects.facility_id, EntityType.TENANT, effects.provider_type, user.id
            )
            if linked is not None:
                # One account per FMS tenant in a facility
                logger.warning(
                    "Facility %s: FMS tenant %s matches user %s already linked as %s",
                    effects.facility_id, change.external_id, user.id, linked.external_id,
                )
                raise ApplyError(f"email is already linked to tenant {linked.external_id} in this facility")
            if data.get("is_active", True):
                self._reactivate(user, effects)
            logger.info("Facility %s: FMS tenant %s linked to existing user %s",
                        effects.facility_id, change.external_id, user.id)
        else:
            user = User(
                email=email,
                first_name=data.get("first_name"),
                last_name=data.get("last_name"),
                phone=data.get("phone"),
                role=UserRole.TENANT.value,
                is_active=bool(data.get("is_active", True)),
            )
            self.db.add(user)
            self.db.flush()
            effects.users_created.append(user.id)
            logger.info("Facility %s: user %s created for FMS tenant %s",
                        effects.facility_id, user.id, change.external_id)

        EntityMappingService.create(
            self.db,
            effects.facility_id,
            EntityType.TENANT,
            effects.provider_type,
            change.external_id,
            user.id,
            metadata={"sync_log_id": effects.sync_log_id},
        )
        if user.is_active:
            self._assign_external_units(user, data.get("unit_ids") or [], effects)
        change.internal_id = user.id

    def _apply_tenant_updated(self, change: FMSChange, effects: _ChangeEffects) -> None:
        user = self._tenant_user(self._mapped_internal_id(change, EntityType.TENANT, effects))
        data = change.after_data or {}

        for name in ("first_name", "last_name", "phone"):
            if name in data:
                setattr(user, name, data[name])

        if data.get("is_active") is False:
            self._remove_from_facility(user, effects)
            return
        if data.get("is_active") is True:
            self._reactivate(user, effects)

        if "unit_ids" in data:
            desired = set(data["unit_ids"] or [])
            current: dict[str, tuple[UnitAssignment, Unit]] = {}
            for assignment, unit in self._facility_assignments(user, effects.facility_id):
                mapping = EntityMappingService.find_by_internal_id(
                    self.db, effects.facility_id, EntityType.UNIT, effects.provider_type, unit.id
                )
                if mapping is not None:
                    current[mapping.external_id] = (assignment, unit)
            for ext_unit_id in sorted(set(current) - desired):
                assignment, unit = current[ext_unit_id]
                self._unassign(assignment, unit, effects)
            self._assign_external_units(user, sorted(desired - set(current)), effects)
        self.db.flush()

    def _apply_tenant_removed(self, change: FMSChange, effects: _ChangeEffects) -> None:
        user = self._tenant_user(self._mapped_internal_id(change, EntityType.TENANT, effects))
        self._remove_from_facility(user, effects)

    def _publish(self, events: list[AssignmentEvent]) -> None:
        for event in events:
            self.publisher.publish(event)
