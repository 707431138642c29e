"""Tests for the diff engine."""

import logging
from dataclasses import replace
from decimal import Decimal

from integrations.fms_protocol import ExternalTenant, ExternalUnit, FMSSnapshot
from models.enums import ChangeType, EntityType
from services.diff_service import DiffService, format_rate, tenant_validation_errors
from tests.fixtures import PROVIDER, assign, create_mapping, create_tenant, create_unit
from tests.fixtures.mocks import SAMPLE_TENANTS, SAMPLE_UNITS

# Matches the `unit` fixture exactly
UNIT_A101 = ExternalUnit(
    external_id="U-1",
    unit_number="A101",
    unit_type="standard",
    size="10x10",
    status="available",
    monthly_rate=Decimal("100"),
)
# Matches the `tenant_user` fixture with its `assignment`
TENANT_JANE = ExternalTenant(
    external_id="T-1",
    email="jane@example.com",
    first_name="Jane",
    last_name="Doe",
    phone="555-0100",
    unit_ids=("U-1",),
)


def _diff(db, facility, tenants=(), units=(), tenants_fetched=True, units_fetched=True):
    snapshot = FMSSnapshot(
        tenants=list(tenants),
        units=list(units),
        tenants_fetched=tenants_fetched,
        units_fetched=units_fetched,
    )
    return DiffService(db).compute_changes(facility.id, PROVIDER, snapshot)


def _actions(change) -> list[str]:
    return [a.value for a in change.required_actions]


class TestNoChange:
    """A snapshot that matches internal state yields nothing."""

    def test_matching_snapshot_is_empty(self, db, facility, assignment):
        result = _diff(db, facility, tenants=[TENANT_JANE], units=[UNIT_A101])
        assert result.changes == []
        assert result.warnings == []

    def test_rate_formatting_is_not_a_change(self, db, facility, unit):
        result = _diff(db, facility, units=[replace(UNIT_A101, monthly_rate=Decimal("100.000"))], tenants_fetched=False)
        assert result.changes == []

    def test_diff_is_deterministic(self, db, facility, assignment):
        first = _diff(db, facility, tenants=SAMPLE_TENANTS, units=SAMPLE_UNITS)
        second = _diff(db, facility, tenants=list(reversed(SAMPLE_TENANTS)), units=list(reversed(SAMPLE_UNITS)))
        assert first.changes == second.changes


class TestUnits:
    """Unit additions, updates and removals."""

    def test_sample_snapshot(self, db, facility, assignment):
        result = _diff(db, facility, tenants=SAMPLE_TENANTS, units=SAMPLE_UNITS)

        assert [(c.change_type, c.external_id) for c in result.changes] == [
            (ChangeType.UNIT_UPDATED, "U-1"),
            (ChangeType.UNIT_ADDED, "U-2"),
            (ChangeType.TENANT_ADDED, "T-2"),
        ]
        updated, added, tenant = result.changes
        assert updated.before_data == {"status": "available"}
        assert updated.after_data == {"status": "occupied"}
        assert _actions(updated) == ["update_unit"]
        assert added.internal_id is None
        assert _actions(added) == ["create_mapping", "create_unit"]
        assert added.after_data["monthly_rate"] == "150.00"
        assert _actions(tenant) == ["create_mapping", "create_user", "assign_unit", "add_access"]
        assert tenant.after_data["unit_ids"] == ["U-2"]

    def test_unit_added_links_unmapped_unit_with_same_number(self, db, facility):
        existing = create_unit(db, facility, "A102")
        db.commit()

        result = _diff(db, facility, units=[SAMPLE_UNITS[1]], tenants_fetched=False)

        (change,) = result.changes
        assert change.change_type == ChangeType.UNIT_ADDED
        assert change.internal_id == existing.id
        assert _actions(change) == ["create_mapping", "update_unit"]
        assert change.before_data == {"unit_type": "standard", "size": "10x10", "monthly_rate": "100.00"}

    def test_unit_removed_with_tenant_revokes_access(self, db, facility, assignment, unit):
        result = _diff(db, facility, units=[], tenants_fetched=False)

        (change,) = result.changes
        assert change.change_type == ChangeType.UNIT_REMOVED
        assert change.internal_id == unit.id
        assert _actions(change) == ["unassign_unit", "remove_access", "retire_unit"]
        assert "revoke access for 1 tenant" in change.impact_summary

    def test_retired_unit_is_not_removed_again(self, db, facility, unit):
        unit.is_active = False
        db.commit()
        assert _diff(db, facility, units=[], tenants_fetched=False).changes == []

    def test_unit_sync_disabled_suppresses_removals(self, db, facility, unit):
        result = _diff(db, facility, units=[], units_fetched=False, tenants_fetched=False)
        assert result.changes == []

    def test_dangling_mapping_is_warned_and_skipped(self, db, facility):
        create_mapping(db, facility, EntityType.UNIT, "U-9", "deleted-unit-id")
        db.commit()

        result = _diff(db, facility, units=[], tenants_fetched=False)

        assert result.changes == []
        assert result.warnings == ["Unit mapping for U-9 skipped: unit no longer exists"]

    def test_mapping_to_other_facility_unit_is_skipped(self, db, facility, other_unit, caplog):
        create_mapping(db, facility, EntityType.UNIT, "U-7", other_unit.id)
        db.commit()

        result = _diff(db, facility, units=[replace(UNIT_A101, external_id="U-7")], tenants_fetched=False)

        assert result.changes == []
        assert result.warnings == ["Unit mapping for U-7 skipped: unit not in this facility"]
        assert any(r.levelname == "ERROR" and "Isolation violation" in r.getMessage() for r in caplog.records)


class TestTenants:
    """Tenant additions, updates and removals."""

    def test_tenant_removed_deactivates_when_no_other_facility(self, db, facility, assignment, tenant_user):
        result = _diff(db, facility, tenants=[], units=[UNIT_A101])

        (change,) = result.changes
        assert change.change_type == ChangeType.TENANT_REMOVED
        assert change.internal_id == tenant_user.id
        assert _actions(change) == ["deactivate_user", "unassign_unit", "remove_access"]
        assert change.before_data["unit_ids"] == ["U-1"]

    def test_tenant_removed_keeps_account_with_other_facility(
        self, db, facility, assignment, tenant_user, other_unit
    ):
        assign(db, tenant_user, other_unit)
        db.commit()

        (change,) = _diff(db, facility, tenants=[], units=[UNIT_A101]).changes

        assert _actions(change) == ["unassign_unit", "remove_access"]
        assert "stays active" in change.impact_summary

    def test_already_removed_tenant_is_not_reported(self, db, facility, tenant_user, other_unit):
        """No assignments here and still needed elsewhere: nothing to do."""
        assign(db, tenant_user, other_unit)
        db.commit()
        assert _diff(db, facility, tenants=[], units_fetched=False).changes == []

    def test_tenant_sync_disabled_suppresses_removals(self, db, facility, assignment):
        assert _diff(db, facility, tenants=[], units=[UNIT_A101], tenants_fetched=False).changes == []

    def test_profile_and_unit_changes(self, db, facility, assignment):
        create_unit(db, facility, "A102", external_id="U-2")
        db.commit()
        ext = replace(TENANT_JANE, phone="555-9999", unit_ids=("U-2",))

        result = _diff(db, facility, tenants=[ext], units=[UNIT_A101, replace(UNIT_A101, external_id="U-2", unit_number="A102")])

        (change,) = result.changes
        assert change.change_type == ChangeType.TENANT_UPDATED
        assert change.before_data == {"phone": "555-0100", "unit_ids": ["U-1"]}
        assert change.after_data == {"phone": "555-9999", "unit_ids": ["U-2"]}
        assert _actions(change) == ["update_user", "assign_unit", "unassign_unit", "add_access", "remove_access"]

    def test_inactive_status_revokes_access(self, db, facility, assignment):
        ext = replace(TENANT_JANE, status="inactive")

        (change,) = _diff(db, facility, tenants=[ext], units=[UNIT_A101]).changes

        assert change.after_data == {"is_active": False, "unit_ids": []}
        assert _actions(change) == ["deactivate_user", "unassign_unit", "remove_access"]

    def test_unknown_unit_ids_are_ignored(self, db, facility, assignment):
        ext = replace(TENANT_JANE, unit_ids=("U-1", "U-404"))
        assert _diff(db, facility, tenants=[ext], units=[UNIT_A101]).changes == []

    def test_new_tenant_missing_fields_is_invalid(self, db, facility):
        ext = ExternalTenant(external_id="T-5", first_name="No")

        (change,) = _diff(db, facility, tenants=[ext], units_fetched=False).changes

        assert change.is_valid is False
        assert change.validation_errors == ["Missing email", "Missing last name"]

    def test_new_tenant_matching_admin_email_is_invalid(self, db, facility, facility_admin):
        ext = ExternalTenant(external_id="T-5", email="manager@example.com", first_name="A", last_name="B")

        (change,) = _diff(db, facility, tenants=[ext], units_fetched=False).changes

        assert change.is_valid is False
        assert "Email belongs to a non-tenant account" in change.validation_errors
        assert change.internal_id is None

    def test_new_tenant_links_existing_inactive_account(self, db, facility):
        user = create_tenant(db, "sam@example.com", is_active=False)
        db.commit()
        ext = ExternalTenant(external_id="T-6", email="sam@example.com", first_name="Sam", last_name="Lee")

        (change,) = _diff(db, facility, tenants=[ext], units_fetched=False).changes

        assert change.internal_id == user.id
        assert _actions(change) == ["create_mapping", "reactivate_user"]

    def test_new_tenant_sharing_linked_email_is_invalid(self, db, facility, assignment):
        """A second FMS id for an account already linked here is not merged into it."""
        duplicate = replace(TENANT_JANE, external_id="T-2", email="JANE.com", unit_ids=())

        (change,) = _diff(db, facility, tenants=[TENANT_JANE, duplicate], units=[UNIT_A101]).changes

        assert change.external_id == "T-2"
        assert change.change_type == ChangeType.TENANT_ADDED
        assert change.is_valid is False
        assert change.internal_id is None
        assert change.validation_errors == ["Email is already linked to tenant T-1 in this facility"]

    def test_new_tenants_sharing_email_are_invalid(self, db, facility, unit):
        first = ExternalTenant(external_id="T-7", email="a@x.com", first_name="A", last_name="One", unit_ids=("U-1",))
        second = ExternalTenant(external_id="T-8", email="A@x.com", first_name="A", last_name="Two")

        changes = _diff(db, facility, tenants=[first, second], units_fetched=False).changes

        assert [c.external_id for c in changes] == ["T-7", "T-8"]
        assert all(c.is_valid is False for c in changes)
        assert all("Email is shared with another new tenant" in c.validation_errors for c in changes)

    def test_shared_email_does_not_churn_assignments(self, db, facility, assignment, tenant_user):
        """Repeated syncs keep reporting the duplicate instead of moving access around."""
        duplicate = replace(TENANT_JANE, external_id="T-2", email="Jane@Example.com", unit_ids=())
        snapshot = [TENANT_JANE, duplicate]

        first = _diff(db, facility, tenants=snapshot, units=[UNIT_A101]).changes
        second = _diff(db, facility, tenants=snapshot, units=[UNIT_A101]).changes

        assert [(c.change_type, c.external_id) for c in first] == [(ChangeType.TENANT_ADDED, "T-2")]
        assert [(c.change_type, c.external_id) for c in second] == [(ChangeType.TENANT_ADDED, "T-2")]


def test_format_rate():
    assert format_rate(None) is None
    assert format_rate(Decimal("12.5")) == "12.50"
    assert format_rate(99) == "99.00"


def test_format_rate_rounds_half_up_and_logs(caplog):
    with caplog.at_level(logging.WARNING, logger="services.diff_service"):
        assert format_rate(Decimal("10.005")) == "10.01"
        assert format_rate(Decimal("100.000")) == "100.00"
    assert [r.getMessage() for r in caplog.records] == ["Monthly rate 10.005 rounded to 10.01"]


def test_tenant_validation_errors_complete_record():
    assert tenant_validation_errors(SAMPLE_TENANTS[0]) == []
