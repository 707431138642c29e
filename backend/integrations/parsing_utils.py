"""Shared payload parsing utilities for FMS adapters.

FMS payloads arrive in whatever casing and naming the provider prefers
(``tenant_id`` / ``id``, ``firstName`` / ``first_name`` ...). These helpers
normalise a raw record into the fields of ``ExternalTenant`` and
``ExternalUnit`` so each adapter only deals with transport.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from integrations.exceptions import ProviderDataError
from integrations.fms_protocol import ExternalTenant, ExternalUnit

TENANT_STATUSES = frozenset({"active", "inactive", "pending"})
UNIT_STATUSES = frozenset({"available", "occupied", "maintenance", "reserved"})


def pick(record: dict, *keys: str):
    """Return the first non-None value for any of ``keys``.

    Args:
        record: Raw provider record.
        *keys: Candidate field names, in order of preference.

    Returns:
        The value, or None if no key is present.
    """
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def clean_str(value) -> str | None:
    """Strip a scalar to a string, mapping blanks to None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_decimal(value) -> Decimal | None:
    """Parse a monetary amount.

    Args:
        value: An int, float, numeric string, Decimal, or None.

    Returns:
        A Decimal, or None if the value is missing or unparseable.
    """
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def parse_iso_date(value) -> str | None:
    """Normalise a date or ISO datetime string to ``YYYY-MM-DD``.

    Returns:
        The ISO date string, or None if the value cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    value_str = str(value).strip()
    if value_str.endswith("Z"):
        value_str = value_str[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value_str).date().isoformat()
    except ValueError:
        pass
    try:
        return date.fromisoformat(value_str[:10]).isoformat()
    except ValueError:
        return None


def parse_tenant(record: dict, provider_name: str) -> ExternalTenant:
    """Build an ExternalTenant from a raw provider record.

    Args:
        record: Raw tenant dict.
        provider_name: Used in error messages.

    Returns:
        The normalized tenant.

    Raises:
        ProviderDataError: If the record is not a dict or has no id.
    """
    if not isinstance(record, dict):
        raise ProviderDataError("Tenant record is not an object", provider_name=provider_name, entity_type="tenant")

    external_id = clean_str(pick(record, "external_id", "externalId", "tenant_id", "tenantId", "id"))
    if external_id is None:
        raise ProviderDataError("Tenant record has no id", provider_name=provider_name, entity_type="tenant")

    raw_units = pick(record, "unit_ids", "unitIds", "units") or []
    if not isinstance(raw_units, list):
        raw_units = [raw_units]
    unit_ids = []
    for entry in raw_units:
        unit_id = clean_str(pick(entry, "id", "unit_id", "unitId") if isinstance(entry, dict) else entry)
        if unit_id is not None and unit_id not in unit_ids:
            unit_ids.append(unit_id)

    status = (clean_str(record.get("status")) or "active").lower()
    if status not in TENANT_STATUSES:
        status = "active"

    email = clean_str(pick(record, "email", "emailAddress"))
    return ExternalTenant(
        external_id=external_id,
        email=email.lower() if email else None,
        first_name=clean_str(pick(record, "first_name", "firstName")),
        last_name=clean_str(pick(record, "last_name", "lastName")),
        phone=clean_str(pick(record, "phone", "phoneNumber")),
        unit_ids=tuple(sorted(unit_ids)),
        status=status,
        lease_start_date=parse_iso_date(pick(record, "lease_start_date", "leaseStartDate")),
        lease_end_date=parse_iso_date(pick(record, "lease_end_date", "leaseEndDate")),
        raw_data=record,
    )


def parse_unit(record: dict, provider_name: str) -> ExternalUnit:
    """Build an ExternalUnit from a raw provider record.

    Raises:
        ProviderDataError: If the record is not a dict, or has no id or unit number.
    """
    if not isinstance(record, dict):
        raise ProviderDataError("Unit record is not an object", provider_name=provider_name, entity_type="unit")

    external_id = clean_str(pick(record, "external_id", "externalId", "unit_id", "unitId", "id"))
    if external_id is None:
        raise ProviderDataError("Unit record has no id", provider_name=provider_name, entity_type="unit")

    unit_number = clean_str(pick(record, "unit_number", "unitNumber", "number", "name"))
    if unit_number is None:
        raise ProviderDataError(
            f"Unit {external_id} has no unit number",
            provider_name=provider_name,
            entity_type="unit",
            external_id=external_id,
        )

    status = (clean_str(record.get("status")) or "available").lower()
    if status not in UNIT_STATUSES:
        status = "available"

    return ExternalUnit(
        external_id=external_id,
        unit_number=unit_number,
        unit_type=clean_str(pick(record, "unit_type", "unitType", "type")),
        size=clean_str(record.get("size")),
        status=status,
        monthly_rate=parse_decimal(pick(record, "monthly_rate", "monthlyRate", "rate")),
        tenant_external_id=clean_str(pick(record, "tenant_id", "tenantId")),
        raw_data=record,
    )


def extract_list(payload, key: str, provider_name: str) -> list:
    """Pull the record list out of a provider response.

    Accepts either a bare list or an object wrapping the list under ``key``.

    Raises:
        ProviderDataError: If no list can be found.
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get(key), list):
        return payload[key]
    raise ProviderDataError(
        f"Expected a list of {key} in provider response", provider_name=provider_name
    )
