"""Test fixtures and sample data."""
import pytest
from datetime import datetime, timezone
from decimal import Decimal

from models import (
    Facility,
    FMSChange,
    FMSConfiguration,
    FMSEntityMapping,
    FMSSyncLog,
    Unit,
    UnitAssignment,
    User,
)
from models.enums import EntityType, FMSProviderType, SyncStatus, UserRole
from sqlalchemy.orm import Session

PROVIDER = FMSProviderType.SIMULATED.value


def actor_headers(role: str = "admin", user_id: str = "admin-1", facility_ids=()) -> dict:
    """Identity headers the upstream auth layer would forward."""
    return {
        "X-User-Id": user_id,
        "X-User-Role": role,
        "X-Facility-Ids": ",".join(facility_ids),
    }


def create_unit(
    db: Session,
    facility: Facility,
    unit_number: str,
    external_id: str | None = None,
    **fields,
) -> Unit:
    """Create a unit, optionally mapped to an FMS external id.

    This is a helper function (not a fixture) for tests that need several
    units with specific numbers or mappings.

    Args:
        db: Database session
        facility: Owning facility
        unit_number: Facility-visible unit number
        external_id: If given, a unit mapping is created for it
        **fields: Overrides for unit columns (status, monthly_rate, ...)

    Returns:
        The flushed Unit
    """
    values = {
        "unit_type": "standard",
        "size": "10x10",
        "status": "available",
        "monthly_rate": Decimal("100.00"),
    }
    values.update(fields)
    unit = Unit(facility_id=facility.id, unit_number=unit_number, **values)
    db.add(unit)
    db.flush()
    if external_id is not None:
        create_mapping(db, facility, EntityType.UNIT, external_id, unit.id)
    return unit


def create_tenant(
    db: Session,
    email: str,
    facility: Facility | None = None,
    external_id: str | None = None,
    **fields,
) -> User:
    """Create a tenant user, optionally mapped in a facility."""
    values = {"first_name": "Test", "last_name": "Tenant", "role": UserRole.TENANT.value}
    values.update(fields)
    user = User(email=email, **values)
    db.add(user)
    db.flush()
    if external_id is not None:
        create_mapping(db, facility, EntityType.TENANT, external_id, user.id)
    return user


def create_mapping(
    db: Session,
    facility: Facility,
    entity_type: EntityType,
    external_id: str,
    internal_id: str,
    provider_type: str = PROVIDER,
) -> FMSEntityMapping:
    """Insert a mapping row directly, bypassing the mapping service."""
    mapping = FMSEntityMapping(
        facility_id=facility.id,
        entity_type=entity_type.value,
        provider_type=provider_type,
        external_id=external_id,
        internal_id=internal_id,
    )
    db.add(mapping)
    db.flush()
    return mapping


def assign(db: Session, user: User, unit: Unit) -> UnitAssignment:
    """Give a tenant access to a unit."""
    assignment = UnitAssignment(unit_id=unit.id, tenant_id=user.id)
    db.add(assignment)
    db.flush()
    return assignment


def create_sync_log(
    db: Session,
    config: FMSConfiguration,
    status: SyncStatus = SyncStatus.COMPLETED,
    started_at: datetime | None = None,
) -> FMSSyncLog:
    """Create a sync log for a configuration's facility."""
    sync_log = FMSSyncLog(
        facility_id=config.facility_id,
        fms_config_id=config.id,
        sync_status=status.value,
        triggered_by="manual",
        started_at=started_at or datetime.now(timezone.utc),
    )
    db.add(sync_log)
    db.flush()
    return sync_log


def create_change(db: Session, sync_log: FMSSyncLog, **fields) -> FMSChange:
    """Create a change row on a sync log.

    Defaults describe a valid, unreviewed ``unit_updated`` change; pass
    keyword overrides for anything else.
    """
    values = {
        "sequence": len(sync_log.changes),
        "change_type": "unit_updated",
        "entity_type": "unit",
        "external_id": "U-X",
        "required_actions": ["update_unit"],
        "impact_summary": "test change",
    }
    values.update(fields)
    change = FMSChange(sync_log_id=sync_log.id, **values)
    db.add(change)
    db.flush()
    db.refresh(sync_log)
    return change


@pytest.fixture
def facility(db: Session) -> Facility:
    """Create the primary test facility."""
    facility = Facility(name="Downtown Storage")
    db.add(facility)
    db.commit()
    db.refresh(facility)
    return facility


@pytest.fixture
def other_facility(db: Session) -> Facility:
    """Create a second facility the scoped admin cannot access."""
    facility = Facility(name="Uptown Storage")
    db.add(facility)
    db.commit()
    db.refresh(facility)
    return facility


@pytest.fixture
def facility_admin(db: Session) -> User:
    """Create a facility admin account."""
    user = User(
        email="manager@example.com",
        first_name="Facility",
        last_name="Manager",
        role=UserRole.FACILITY_ADMIN.value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def fms_config(db: Session, facility: Facility) -> FMSConfiguration:
    """Create an enabled FMS configuration for the primary facility."""
    config = FMSConfiguration(
        facility_id=facility.id,
        provider_type=PROVIDER,
        is_enabled=True,
        config={},
    )
    db.add(config)
    db.commit()
    db.refresh(config)
    return config


@pytest.fixture
def other_fms_config(db: Session, other_facility: Facility) -> FMSConfiguration:
    """Create an enabled FMS configuration for the second facility."""
    config = FMSConfiguration(
        facility_id=other_facility.id,
        provider_type=PROVIDER,
        is_enabled=True,
        config={},
    )
    db.add(config)
    db.commit()
    db.refresh(config)
    return config


@pytest.fixture
def unit(db: Session, facility: Facility) -> Unit:
    """Create unit A101 in the primary facility, mapped to FMS unit U-1."""
    unit = create_unit(db, facility, "A101", external_id="U-1")
    db.commit()
    db.refresh(unit)
    return unit


@pytest.fixture
def other_unit(db: Session, other_facility: Facility) -> Unit:
    """Create unit B201 in the second facility, mapped to FMS unit U-1 there."""
    unit = create_unit(db, other_facility, "B201", external_id="U-1")
    db.commit()
    db.refresh(unit)
    return unit


@pytest.fixture
def tenant_user(db: Session, facility: Facility) -> User:
    """Create tenant Jane Doe, mapped to FMS tenant T-1 in the primary facility."""
    user = create_tenant(
        db,
        "jane@example.com",
        facility=facility,
        external_id="T-1",
        first_name="Jane",
        last_name="Doe",
        phone="555-0100",
    )
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def assignment(db: Session, tenant_user: User, unit: Unit) -> UnitAssignment:
    """Assign Jane Doe to unit A101."""
    assignment = assign(db, tenant_user, unit)
    db.commit()
    db.refresh(assignment)
    return assignment
