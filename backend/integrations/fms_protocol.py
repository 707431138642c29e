"""FMS provider protocol definitions.

This module defines the normalized shapes every Facility Management System
adapter produces, and the capability interface the sync engine consumes.
Adapters are selected by ``FMSProviderType``; the engine never talks to a
provider's transport directly.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

from models.enums import FMSProviderType
from schemas.fms import FMSProviderConfig

__all__ = ["ExternalTenant", "ExternalUnit", "FMSProvider", "FMSProviderType", "FMSSnapshot"]


@dataclass(frozen=True)
class ExternalTenant:
    """Normalized tenant record from any FMS provider.

    Email and names may be missing for records the FMS holds incomplete
    data for; such tenants are still reported so a reviewer can see them.
    """

    external_id: str  # Provider's ID for the tenant
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    unit_ids: tuple[str, ...] = ()  # External unit IDs the tenant rents
    status: str = "active"  # "active" | "inactive" | "pending"
    lease_start_date: str | None = None  # ISO date
    lease_end_date: str | None = None  # ISO date
    raw_data: dict | None = field(default=None, compare=False)  # Raw provider payload for debugging


@dataclass(frozen=True)
class ExternalUnit:
    """Normalized unit record from any FMS provider."""

    external_id: str  # Provider's ID for the unit
    unit_number: str
    unit_type: str | None = None
    size: str | None = None
    status: str = "available"  # "available" | "occupied" | "maintenance" | "reserved"
    monthly_rate: Decimal | None = None
    tenant_external_id: str | None = None
    raw_data: dict | None = field(default=None, compare=False)


@dataclass
class FMSSnapshot:
    """Everything one sync run fetched from a provider.

    ``tenants_fetched`` / ``units_fetched`` are False when the provider
    configuration disables that side; the diff must not infer removals
    from an empty list it never asked for.
    """

    tenants: list[ExternalTenant] = field(default_factory=list)
    units: list[ExternalUnit] = field(default_factory=list)
    tenants_fetched: bool = True
    units_fetched: bool = True


class FMSProvider(Protocol):
    """Capability interface every FMS adapter implements."""

    @property
    def provider_type(self) -> FMSProviderType:
        """Return the discriminant this adapter is registered under."""
        ...

    def test_connection(self, config: FMSProviderConfig) -> bool:
        """Check that the provider is reachable with the given configuration.

        Returns:
            True if the provider answered.

        Raises:
            ProviderError: On authentication or connection failure.
        """
        ...

    def fetch_tenants(self, config: FMSProviderConfig) -> list[ExternalTenant]:
        """Fetch the full current tenant roster.

        Raises:
            ProviderError: If the fetch fails or the payload is malformed.
        """
        ...

    def fetch_units(self, config: FMSProviderConfig) -> list[ExternalUnit]:
        """Fetch the full current unit roster.

        Raises:
            ProviderError: If the fetch fails or the payload is malformed.
        """
        ...
