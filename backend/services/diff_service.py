"""Diff engine - compares an FMS snapshot against internal state.

The engine is a pure read: it loads the facility's units, the tenants its
mappings point at and their assignments, and returns the list of changes
that would bring internal state in line with the snapshot. Nothing is
written. Output depends only on the snapshot, the mapping table and the
stored rows; entities are keyed and sorted by external id first.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from integrations.fms_protocol import ExternalTenant, ExternalUnit, FMSSnapshot
from models import FMSEntityMapping, Unit, UnitAssignment, User
from models.enums import ChangeAction, ChangeType, EntityType, UserRole
from services.entity_mapping_service import EntityMappingService

logger = logging.getLogger(__name__)

TENANT_FIELDS = ("first_name", "last_name", "phone", "is_active", "unit_ids")
UNIT_FIELDS = ("unit_number", "unit_type", "size", "status", "monthly_rate", "is_active")

# Fixed order for required_actions so identical inputs give identical output
_ACTION_ORDER = list(ChangeAction)

_CENT = Decimal("0.01")


@dataclass
class DetectedChange:
    """A change computed by the diff, not yet persisted."""

    change_type: ChangeType
    entity_type: EntityType
    external_id: str
    internal_id: str | None
    before_data: dict | None
    after_data: dict | None
    required_actions: list[ChangeAction]
    impact_summary: str
    is_valid: bool = True
    validation_errors: list[str] = field(default_factory=list)


@dataclass
class DiffResult:
    """All changes for one snapshot plus non-fatal warnings."""

    changes: list[DetectedChange] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def count(self, change_type: ChangeType) -> int:
        return sum(1 for c in self.changes if c.change_type == change_type)


def format_rate(value) -> str | None:
    """Normalise a monthly rate to a two-decimal string for comparison and JSON."""
    if value is None:
        return None
    amount = Decimal(str(value))
    rounded = amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    if rounded != amount:
        logger.warning("Monthly rate %s rounded to %s", amount, rounded)
    return str(rounded)


def _ordered(actions: set[ChangeAction]) -> list[ChangeAction]:
    return [a for a in _ACTION_ORDER if a in actions]


def _changed_fields(current: dict, desired: dict, fields: tuple[str, ...]) -> tuple[dict, dict]:
    before, after = {}, {}
    for name in fields:
        if current.get(name) != desired.get(name):
            before[name] = current.get(name)
            after[name] = desired.get(name)
    return before, after


def unit_state(unit: Unit) -> dict:
    """Comparable field set of an internal unit."""
    return {
        "unit_number": unit.unit_number,
        "unit_type": unit.unit_type,
        "size": unit.size,
        "status": unit.status,
        "monthly_rate": format_rate(unit.monthly_rate),
        "is_active": bool(unit.is_active),
    }


def external_unit_state(ext: ExternalUnit) -> dict:
    """Comparable field set of an FMS unit. Units in the feed are active."""
    return {
        "unit_number": ext.unit_number,
        "unit_type": ext.unit_type,
        "size": ext.size,
        "status": ext.status,
        "monthly_rate": format_rate(ext.monthly_rate),
        "is_active": True,
    }


def tenant_validation_errors(ext: ExternalTenant) -> list[str]:
    """Fields a new tenant must have before an account can be created."""
    errors = []
    if not ext.email:
        errors.append("Missing email")
    if not ext.first_name:
        errors.append("Missing first name")
    if not ext.last_name:
        errors.append("Missing last name")
    return errors


class _FacilityState:
    """Internal rows relevant to one facility's diff, loaded up front."""

    def __init__(self, db: Session, facility_id: str, provider_type: str):
        self.facility_id = facility_id

        self.unit_mappings = {
            m.external_id: m
            for m in EntityMappingService.list_for_facility(db, facility_id, EntityType.UNIT, provider_type)
        }
        self.tenant_mappings = {
            m.external_id: m
            for m in EntityMappingService.list_for_facility(db, facility_id, EntityType.TENANT, provider_type)
        }

        self.facility_units: dict[str, Unit] = {
            u.id: u for u in db.query(Unit).filter(Unit.facility_id == facility_id).all()
        }
        mapped_unit_ids = {m.internal_id for m in self.unit_mappings.values()}
        foreign_ids = mapped_unit_ids - set(self.facility_units)
        self.foreign_units: dict[str, Unit] = (
            {u.id: u for u in db.query(Unit).filter(Unit.id.in_(foreign_ids)).all()}
            if foreign_ids else {}
        )

        # internal unit id -> external id, for units of this facility only
        self.unit_external_ids: dict[str, str] = {
            m.internal_id: ext_id
            for ext_id, m in self.unit_mappings.items()
            if m.internal_id in self.facility_units
        }
        # unit numbers of this facility's units that no mapping claims yet
        self.unmapped_units_by_number: dict[str, Unit] = {}
        for unit in sorted(self.facility_units.values(), key=lambda u: u.id):
            if unit.id not in self.unit_external_ids and unit.is_active:
                self.unmapped_units_by_number.setdefault(unit.unit_number, unit)

        user_ids = {m.internal_id for m in self.tenant_mappings.values()}
        self.users: dict[str, User] = (
            {u.id: u for u in db.query(User).filter(User.id.in_(user_ids)).all()}
            if user_ids else {}
        )

        self.assignments_here: dict[str, set[str]] = defaultdict(set)
        self.assignments_elsewhere: dict[str, int] = defaultdict(int)
        if user_ids:
            rows = (
                db.query(UnitAssignment.tenant_id, UnitAssignment.unit_id, Unit.facility_id)
                .join(Unit, UnitAssignment.unit_id == Unit.id)
                .filter(UnitAssignment.tenant_id.in_(user_ids))
                .all()
            )
            for tenant_id, unit_id, unit_facility_id in rows:
                if unit_facility_id == facility_id:
                    self.assignments_here[tenant_id].add(unit_id)
                else:
                    self.assignments_elsewhere[tenant_id] += 1

    def mapped_unit_ids_for(self, user_id: str) -> list[str]:
        """External ids of this facility's mapped units the user is assigned to."""
        return sorted(
            self.unit_external_ids[unit_id]
            for unit_id in self.assignments_here.get(user_id, ())
            if unit_id in self.unit_external_ids
        )


class DiffService:
    """Computes the change set for one facility snapshot."""

    def __init__(self, db: Session):
        self.db = db

    def compute_changes(
        self,
        facility_id: str,
        provider_type: str,
        snapshot: FMSSnapshot,
    ) -> DiffResult:
        """Diff a snapshot against the facility's internal state.

        Args:
            facility_id: Facility the snapshot belongs to.
            provider_type: Provider the external ids belong to.
            snapshot: Validated adapter output.

        Returns:
            DiffResult with changes ordered units first, then tenants, each
            by external id.
        """
        state = _FacilityState(self.db, facility_id, provider_type)
        result = DiffResult()

        ext_units = {u.external_id: u for u in snapshot.units}
        ext_tenants = {t.external_id: t for t in snapshot.tenants}

        if snapshot.units_fetched:
            self._diff_units(state, ext_units, result)
        if snapshot.tenants_fetched:
            # Units the tenant roster may reference: already mapped here, or
            # arriving in this snapshot.
            known_unit_ids = set(state.unit_external_ids.values()) | set(ext_units)
            self._diff_tenants(state, ext_tenants, known_unit_ids, result)

        logger.info(
            "Diff for facility %s: %d changes (%s)",
            facility_id,
            len(result.changes),
            ", ".join(f"{t.value}={result.count(t)}" for t in ChangeType if result.count(t)),
        )
        return result

    # -- units -------------------------------------------------------------

    def _resolve_unit(self, state: _FacilityState, mapping: FMSEntityMapping, result: DiffResult) -> Unit | None:
        """Return the mapped unit if it exists and belongs to this facility."""
        unit = state.facility_units.get(mapping.internal_id)
        if unit is not None:
            return unit
        if mapping.internal_id in state.foreign_units:
            logger.error(
                "Isolation violation: unit mapping %s in facility %s points at a unit of another facility",
                mapping.id, state.facility_id,
            )
            result.warnings.append(f"Unit mapping for {mapping.external_id} skipped: unit not in this facility")
        else:
            logger.warning(
                "Dangling unit mapping %s (external %s) in facility %s",
                mapping.id, mapping.external_id, state.facility_id,
            )
            result.warnings.append(f"Unit mapping for {mapping.external_id} skipped: unit no longer exists")
        return None

    def _diff_units(self, state: _FacilityState, ext_units: dict[str, ExternalUnit], result: DiffResult) -> None:
        for ext_id in sorted(ext_units):
            ext = ext_units[ext_id]
            desired = external_unit_state(ext)
            mapping = state.unit_mappings.get(ext_id)

            if mapping is None:
                existing = state.unmapped_units_by_number.pop(ext.unit_number, None)
                if existing is not None:
                    before, after = _changed_fields(unit_state(existing), desired, UNIT_FIELDS)
                    actions = {ChangeAction.CREATE_MAPPING}
                    if after:
                        actions.add(ChangeAction.UPDATE_UNIT)
                    result.changes.append(DetectedChange(
                        change_type=ChangeType.UNIT_ADDED,
                        entity_type=EntityType.UNIT,
                        external_id=ext_id,
                        internal_id=existing.id,
                        before_data=before or None,
                        after_data=desired,
                        required_actions=_ordered(actions),
                        impact_summary=f"Link existing unit {ext.unit_number} to FMS unit {ext_id}",
                    ))
                else:
                    result.changes.append(DetectedChange(
                        change_type=ChangeType.UNIT_ADDED,
                        entity_type=EntityType.UNIT,
                        external_id=ext_id,
                        internal_id=None,
                        before_data=None,
                        after_data=desired,
                        required_actions=_ordered({ChangeAction.CREATE_UNIT, ChangeAction.CREATE_MAPPING}),
                        impact_summary=f"Create unit {ext.unit_number}",
                    ))
                continue

            unit = self._resolve_unit(state, mapping, result)
            if unit is None:
                continue
            before, after = _changed_fields(unit_state(unit), desired, UNIT_FIELDS)
            if not after:
                continue
            result.changes.append(DetectedChange(
                change_type=ChangeType.UNIT_UPDATED,
                entity_type=EntityType.UNIT,
                external_id=ext_id,
                internal_id=unit.id,
                before_data=before,
                after_data=after,
                required_actions=[ChangeAction.UPDATE_UNIT],
                impact_summary=f"Update unit {unit.unit_number}: {', '.join(sorted(after))}",
            ))

        for ext_id in sorted(set(state.unit_mappings) - set(ext_units)):
            mapping = state.unit_mappings[ext_id]
            unit = self._resolve_unit(state, mapping, result)
            if unit is None or not unit.is_active:
                continue
            actions = {ChangeAction.RETIRE_UNIT}
            impact = f"Retire unit {unit.unit_number}"
            if unit.assignments:
                actions |= {ChangeAction.UNASSIGN_UNIT, ChangeAction.REMOVE_ACCESS}
                impact += f" and revoke access for {len(unit.assignments)} tenant(s)"
            result.changes.append(DetectedChange(
                change_type=ChangeType.UNIT_REMOVED,
                entity_type=EntityType.UNIT,
                external_id=ext_id,
                internal_id=unit.id,
                before_data=unit_state(unit),
                after_data=None,
                required_actions=_ordered(actions),
                impact_summary=impact,
            ))

    # -- tenants -----------------------------------------------------------

    def _resolve_tenant(self, state: _FacilityState, mapping: FMSEntityMapping, result: DiffResult) -> User | None:
        """Return the mapped user if it exists and is a tenant account."""
        user = state.users.get(mapping.internal_id)
        if user is None:
            logger.warning(
                "Dangling tenant mapping %s (external %s) in facility %s",
                mapping.id, mapping.external_id, state.facility_id,
            )
            result.warnings.append(f"Tenant mapping for {mapping.external_id} skipped: user no longer exists")
            return None
        if user.role != UserRole.TENANT.value:
            logger.error(
                "Tenant mapping %s in facility %s points at a non-tenant account",
                mapping.id, state.facility_id,
            )
            result.warnings.append(f"Tenant mapping for {mapping.external_id} skipped: account is not a tenant")
            return None
        return user

    def _diff_tenants(
        self,
        state: _FacilityState,
        ext_tenants: dict[str, ExternalTenant],
        known_unit_ids: set[str],
        result: DiffResult,
    ) -> None:
        new_emails = Counter(
            t.email.lower() for ext_id, t in ext_tenants.items() if ext_id not in state.tenant_mappings and t.email
        )
        # Emails two unmapped tenants in this snapshot both claim
        shared_emails = {email for email, count in new_emails.items() if count > 1}
        # internal user id -> external id it is already linked to here
        linked_external_ids = {m.internal_id: ext_id for ext_id, m in state.tenant_mappings.items()}
        users_by_email = {}
        if new_emails:
            for user in self.db.query(User).filter(func.lower(User.email).in_(sorted(new_emails))).all():
                users_by_email[user.email.lower()] = user

        for ext_id in sorted(ext_tenants):
            ext = ext_tenants[ext_id]
            active = ext.status != "inactive"
            unit_ids = sorted(u for u in ext.unit_ids if u in known_unit_ids) if active else []
            mapping = state.tenant_mappings.get(ext_id)

            if mapping is None:
                result.changes.append(self._tenant_added(
                    ext, active, unit_ids, users_by_email, shared_emails, linked_external_ids
                ))
                continue

            user = self._resolve_tenant(state, mapping, result)
            if user is None:
                continue

            here = state.assignments_here.get(user.id, set())
            current_active = bool(user.is_active)
            if not active and current_active and not here and state.assignments_elsewhere.get(user.id):
                # Nothing left to revoke in this facility; the account stays
                # active for its other facilities.
                current_active = False

            current = {
                "first_name": user.first_name,
                "last_name": user.last_name,
                "phone": user.phone,
                "is_active": current_active,
                "unit_ids": state.mapped_unit_ids_for(user.id),
            }
            desired = {
                "first_name": ext.first_name,
                "last_name": ext.last_name,
                "phone": ext.phone,
                "is_active": active,
                "unit_ids": unit_ids,
            }
            before, after = _changed_fields(current, desired, TENANT_FIELDS)
            if not after:
                continue

            actions = set()
            if {"first_name", "last_name", "phone"} & set(after):
                actions.add(ChangeAction.UPDATE_USER)
            if "is_active" in after:
                if active:
                    actions.add(ChangeAction.REACTIVATE_USER)
                elif not state.assignments_elsewhere.get(user.id):
                    actions.add(ChangeAction.DEACTIVATE_USER)
            if "unit_ids" in after:
                if set(desired["unit_ids"]) - set(current["unit_ids"]):
                    actions |= {ChangeAction.ASSIGN_UNIT, ChangeAction.ADD_ACCESS}
                if set(current["unit_ids"]) - set(desired["unit_ids"]):
                    actions |= {ChangeAction.UNASSIGN_UNIT, ChangeAction.REMOVE_ACCESS}
            result.changes.append(DetectedChange(
                change_type=ChangeType.TENANT_UPDATED,
                entity_type=EntityType.TENANT,
                external_id=ext_id,
                internal_id=user.id,
                before_data=before,
                after_data=after,
                required_actions=_ordered(actions),
                impact_summary=f"Update tenant {user.first_name or ''} {user.last_name or ''}".rstrip()
                + f": {', '.join(sorted(after))}",
            ))

        for ext_id in sorted(set(state.tenant_mappings) - set(ext_tenants)):
            user = self._resolve_tenant(state, state.tenant_mappings[ext_id], result)
            if user is None:
                continue
            here = state.assignments_here.get(user.id, set())
            elsewhere = state.assignments_elsewhere.get(user.id, 0)
            if not here and not (user.is_active and not elsewhere):
                continue

            actions = set()
            if here:
                actions |= {ChangeAction.UNASSIGN_UNIT, ChangeAction.REMOVE_ACCESS}
            if user.is_active and not elsewhere:
                actions.add(ChangeAction.DEACTIVATE_USER)
            impact = f"Remove tenant {user.first_name or ''} {user.last_name or ''}".rstrip()
            impact += " from this facility"
            impact += "; account stays active for other facilities" if elsewhere else "; account will be deactivated"
            result.changes.append(DetectedChange(
                change_type=ChangeType.TENANT_REMOVED,
                entity_type=EntityType.TENANT,
                external_id=ext_id,
                internal_id=user.id,
                before_data={
                    "first_name": user.first_name,
                    "last_name": user.last_name,
                    "is_active": bool(user.is_active),
                    "unit_ids": state.mapped_unit_ids_for(user.id),
                },
                after_data=None,
                required_actions=_ordered(actions),
                impact_summary=impact,
            ))

    @staticmethod
    def _tenant_added(
        ext: ExternalTenant,
        active: bool,
        unit_ids: list[str],
        users_by_email: dict[str, User],
        shared_emails: set[str],
        linked_external_ids: dict[str, str],
    ) -> DetectedChange:
        errors = tenant_validation_errors(ext)
        if ext.email and ext.email.lower() in shared_emails:
            errors.append("Email is shared with another new tenant")
        actions = {ChangeAction.CREATE_MAPPING}
        internal_id = None
        name = f"{ext.first_name or ''} {ext.last_name or ''}".strip() or ext.external_id
        impact = f"Add tenant {name}"

        existing = users_by_email.get(ext.email.lower()) if ext.email else None
        if existing is not None:
            if existing.role != UserRole.TENANT.value:
                errors.append("Email belongs to a non-tenant account")
            elif existing.id in linked_external_ids:
                errors.append(f"Email is already linked to tenant {linked_external_ids[existing.id]} in this facility")
            else:
                internal_id = existing.id
                impact = f"Link tenant {name} to existing account"
                if active and not existing.is_active:
                    actions.add(ChangeAction.REACTIVATE_USER)
        else:
            actions.add(ChangeAction.CREATE_USER)

        if unit_ids:
            actions |= {ChangeAction.ASSIGN_UNIT, ChangeAction.ADD_ACCESS}
            impact += f" with access to {len(unit_ids)} unit(s)"

        return DetectedChange(
            change_type=ChangeType.TENANT_ADDED,
            entity_type=EntityType.TENANT,
            external_id=ext.external_id,
            internal_id=internal_id,
            before_data=None,
            after_data={
                "email": ext.email,
                "first_name": ext.first_name,
                "last_name": ext.last_name,
                "phone": ext.phone,
                "is_active": active,
                "unit_ids": unit_ids,
                "lease_start_date": ext.lease_start_date,
                "lease_end_date": ext.lease_end_date,
            },
            required_actions=_ordered(actions),
            impact_summary=impact,
            is_valid=not errors,
            validation_errors=errors,
        )
