"""Tests for FMS payload parsing utilities."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from integrations.exceptions import ProviderDataError
from integrations.parsing_utils import (
    clean_str,
    extract_list,
    parse_decimal,
    parse_iso_date,
    parse_tenant,
    parse_unit,
    pick,
)


class TestScalars:
    """Tests for the small value helpers."""

    def test_pick_prefers_first_present_key(self):
        assert pick({"tenantId": "b", "id": "c"}, "tenant_id", "tenantId", "id") == "b"

    def test_pick_missing_returns_none(self):
        assert pick({}, "a", "b") is None

    def test_clean_str_blank_is_none(self):
        assert clean_str("   ") is None
        assert clean_str(None) is None
        assert clean_str(42) == "42"

    def test_parse_decimal(self):
        assert parse_decimal("99.5") == Decimal("99.5")
        assert parse_decimal(150) == Decimal("150")
        assert parse_decimal("") is None
        assert parse_decimal("n/a") is None


class TestParseIsoDate:
    """Tests for parse_iso_date."""

    def test_none_returns_none(self):
        assert parse_iso_date(None) is None

    def test_date_and_datetime_objects(self):
        assert parse_iso_date(date(2024, 6, 28)) == "2024-06-28"
        assert parse_iso_date(datetime(2024, 6, 28, 12, 0)) == "2024-06-28"

    def test_z_suffix_datetime_string(self):
        assert parse_iso_date("2024-01-15T10:30:00Z") == "2024-01-15"

    def test_plain_date_string(self):
        assert parse_iso_date("2024-01-15") == "2024-01-15"

    def test_garbage_returns_none(self):
        assert parse_iso_date("next tuesday") is None


class TestParseTenant:
    """Tests for parse_tenant."""

    def test_camel_case_record(self):
        tenant = parse_tenant(
            {
                "tenantId": "T-9",
                "emailAddress": " Jane@Example.COM ",
                "firstName": "Jane",
                "lastName": "Doe",
                "phoneNumber": "555",
                "unitIds": ["U-2", "U-1", "U-2"],
                "status": "INACTIVE",
                "leaseEndDate": "2025-12-31",
            },
            "Test",
        )
        assert tenant.external_id == "T-9"
        assert tenant.email == "jane@example.com"
        assert tenant.unit_ids == ("U-1", "U-2")
        assert tenant.status == "inactive"
        assert tenant.lease_end_date == "2025-12-31"

    def test_unit_objects_are_flattened(self):
        tenant = parse_tenant({"id": 7, "units": [{"id": "U-1"}, {"unit_id": "U-3"}]}, "Test")
        assert tenant.external_id == "7"
        assert tenant.unit_ids == ("U-1", "U-3")

    def test_unknown_status_defaults_to_active(self):
        assert parse_tenant({"id": "T-1", "status": "evicted"}, "Test").status == "active"

    def test_missing_id_raises(self):
        with pytest.raises(ProviderDataError, match="no id") as exc_info:
            parse_tenant({"email": "a@b.c"}, "Test")
        assert exc_info.value.context() == {"entity_type": "tenant"}

    def test_non_dict_raises(self):
        with pytest.raises(ProviderDataError):
            parse_tenant(["T-1"], "Test")

    def test_raw_data_ignored_in_equality(self):
        a = parse_tenant({"id": "T-1", "email": "a@b.c", "extra": 1}, "Test")
        b = parse_tenant({"id": "T-1", "email": "a@b.c", "extra": 2}, "Test")
        assert a == b


class TestParseUnit:
    """Tests for parse_unit."""

    def test_aliases(self):
        unit = parse_unit(
            {"unitId": "U-1", "number": "A101", "type": "climate", "rate": "120.5", "tenantId": "T-1"},
            "Test",
        )
        assert unit.external_id == "U-1"
        assert unit.unit_number == "A101"
        assert unit.unit_type == "climate"
        assert unit.monthly_rate == Decimal("120.5")
        assert unit.tenant_external_id == "T-1"
        assert unit.status == "available"

    def test_missing_unit_number_raises(self):
        with pytest.raises(ProviderDataError, match="unit number"):
            parse_unit({"id": "U-1"}, "Test")


class TestExtractList:
    """Tests for extract_list."""

    def test_bare_list(self):
        assert extract_list([1, 2], "units", "Test") == [1, 2]

    def test_wrapped_list(self):
        assert extract_list({"units": [1]}, "units", "Test") == [1]

    def test_wrong_shape_raises(self):
        with pytest.raises(ProviderDataError, match="units"):
            extract_list({"data": []}, "units", "Test")
