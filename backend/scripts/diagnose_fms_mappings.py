#!/usr/bin/env python
"""Report FMS entity mapping problems per configured facility.

Checks, for each facility with an FMS configuration:
  - tenant users assigned to the facility's units with no tenant mapping
  - active units with no unit mapping
  - internal ids claimed by more than one mapping
  - mappings whose internal entity is missing or belongs to another facility

Read-only: nothing is repaired.

Usage:
    python -m scripts.diagnose_fms_mappings                    # all facilities
    python -m scripts.diagnose_fms_mappings --facility <id>    # one facility
"""

import argparse
from collections import Counter

from sqlalchemy.orm import Session

from database import get_session_local
from models import Facility, FMSConfiguration, FMSEntityMapping, Unit, UnitAssignment, User
from models.enums import EntityType, UserRole


def diagnose_facility(db: Session, config: FMSConfiguration) -> dict:
    """Collect mapping problems for one facility's provider.

    Returns:
        Dict of issue lists: unmapped_tenants, unmapped_units,
        duplicate_internal_ids, dangling_mappings, foreign_mappings.
    """
    facility_id = config.facility_id
    mappings = (
        db.query(FMSEntityMapping)
        .filter(
            FMSEntityMapping.facility_id == facility_id,
            FMSEntityMapping.provider_type == config.provider_type,
        )
        .order_by(FMSEntityMapping.entity_type, FMSEntityMapping.external_id)
        .all()
    )
    unit_mappings = [m for m in mappings if m.entity_type == EntityType.UNIT.value]
    tenant_mappings = [m for m in mappings if m.entity_type == EntityType.TENANT.value]

    units = db.query(Unit).filter(Unit.facility_id == facility_id).order_by(Unit.unit_number).all()
    unit_ids = {u.id for u in units}
    mapped_unit_ids = {m.internal_id for m in unit_mappings}
    mapped_user_ids = {m.internal_id for m in tenant_mappings}

    tenants_here = (
        db.query(User)
        .join(UnitAssignment, UnitAssignment.tenant_id == User.id)
        .join(Unit, UnitAssignment.unit_id == Unit.id)
        .filter(Unit.facility_id == facility_id, User.role == UserRole.TENANT.value)
        .distinct()
        .order_by(User.email)
        .all()
    )

    duplicates = []
    for entity_type, group in ((EntityType.UNIT, unit_mappings), (EntityType.TENANT, tenant_mappings)):
        counts = Counter(m.internal_id for m in group)
        duplicates.extend(
            f"{entity_type.value} {internal_id} mapped {count} times"
            for internal_id, count in sorted(counts.items())
            if count > 1
        )

    dangling, foreign = [], []
    for mapping in unit_mappings:
        if mapping.internal_id in unit_ids:
            continue
        unit = db.get(Unit, mapping.internal_id)
        if unit is None:
            dangling.append(f"unit {mapping.external_id} -> {mapping.internal_id} (missing)")
        else:
            foreign.append(f"unit {mapping.external_id} -> {mapping.internal_id} (facility {unit.facility_id})")
    for mapping in tenant_mappings:
        user = db.get(User, mapping.internal_id)
        if user is None:
            dangling.append(f"tenant {mapping.external_id} -> {mapping.internal_id} (missing)")
        elif user.role != UserRole.TENANT.value:
            foreign.append(f"tenant {mapping.external_id} -> {mapping.internal_id} (role {user.role})")

    return {
        "unmapped_tenants": [u.email for u in tenants_here if u.id not in mapped_user_ids],
        "unmapped_units": [u.unit_number for u in units if u.is_active and u.id not in mapped_unit_ids],
        "duplicate_internal_ids": duplicates,
        "dangling_mappings": dangling,
        "foreign_mappings": foreign,
    }


def _print_report(facility: Facility, config: FMSConfiguration, report: dict) -> int:
    issues = sum(len(v) for v in report.values())
    status = "OK" if issues == 0 else "ISSUES"
    print(f"[{status}] {facility.name} ({facility.id}) provider={config.provider_type}")
    for key, entries in report.items():
        if not entries:
            continue
        print(f"       {key.replace('_', ' ')} ({len(entries)}):")
        for entry in entries[:20]:
            print(f"         - {entry}")
        if len(entries) > 20:
            print(f"         ... and {len(entries) - 20} more")
    return issues


def diagnose(facility_id: str | None = None) -> int:
    """Print the report for every configured facility (or one).

    Returns:
        Total number of issues found.
    """
    SessionLocal = get_session_local()
    db = SessionLocal()

    try:
        query = db.query(FMSConfiguration)
        if facility_id:
            query = query.filter(FMSConfiguration.facility_id == facility_id)
        configs = query.order_by(FMSConfiguration.facility_id).all()

        if not configs:
            print("No FMS configurations found.")
            return 0

        total = 0
        for config in configs:
            total += _print_report(config.facility, config, diagnose_facility(db, config))
        print(f"\nTotal issues: {total}")
        return total
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Report FMS entity mapping problems")
    parser.add_argument(
        "--facility",
        help="Only check this facility id",
    )
    args = parser.parse_args()
    diagnose(args.facility)


if __name__ == "__main__":
    main()
