"""Registry of FMS adapters keyed by provider type.

The registry is responsible for:
- Mapping each ``FMSProviderType`` to exactly one adapter instance
- Fetching a facility's snapshot while honouring its feature flags
- Rejecting adapter output with conflicting duplicate external ids
"""

import importlib
import logging
from typing import TypeVar

from integrations.exceptions import ProviderDataError, ProviderNotRegisteredError
from integrations.fms_protocol import (
    ExternalTenant,
    ExternalUnit,
    FMSProvider,
    FMSProviderType,
    FMSSnapshot,
)
from schemas.fms import FMSProviderConfig

logger = logging.getLogger(__name__)

# Each tuple is (provider_type, module_path, class_name).
# Adding a new provider only requires appending one entry here.
PROVIDER_DEFINITIONS: list[tuple[FMSProviderType, str, str]] = [
    (FMSProviderType.GENERIC_REST, "integrations.generic_rest_provider", "GenericRESTProvider"),
    (FMSProviderType.SIMULATED, "integrations.simulated_provider", "SimulatedProvider"),
]

E = TypeVar("E", ExternalTenant, ExternalUnit)


def dedupe_by_external_id(entities: list[E], kind: str, provider_name: str) -> list[E]:
    """Collapse identical duplicates and reject conflicting ones.

    Args:
        entities: Adapter output.
        kind: "tenant" or "unit", for error messages.
        provider_name: Provider name for error attribution.

    Returns:
        Entities with unique external ids, in first-seen order.

    Raises:
        ProviderDataError: If two records share an id but differ in content.
    """
    seen: dict[str, E] = {}
    for entity in entities:
        existing = seen.get(entity.external_id)
        if existing is None:
            seen[entity.external_id] = entity
        elif existing != entity:
            raise ProviderDataError(
                f"Provider returned conflicting {kind} records for id {entity.external_id}",
                provider_name=provider_name,
                entity_type=kind,
                external_id=entity.external_id,
            )
    if len(seen) != len(entities):
        logger.warning(
            "%s: %d duplicate %s records collapsed",
            provider_name, len(entities) - len(seen), kind,
        )
    return list(seen.values())


class FMSProviderRegistry:
    """Registry for the closed set of FMS adapters.

    Example:
        registry = get_fms_provider_registry()
        snapshot = registry.fetch_snapshot(FMSProviderType.SIMULATED, config)
    """

    def __init__(self):
        """Initialize the registry with no adapters.

        Call register_provider() to add adapters, or use
        initialize_default_providers() to register the built-in ones.
        """
        self._providers: dict[FMSProviderType, FMSProvider] = {}

    def register_provider(self, provider: FMSProvider) -> None:
        """Register an adapter under its own provider type.

        Args:
            provider: An adapter implementing the FMSProvider protocol.
        """
        self._providers[FMSProviderType(provider.provider_type)] = provider

    def get_provider(self, provider_type: FMSProviderType | str) -> FMSProvider:
        """Get the adapter for a provider type.

        Args:
            provider_type: Enum member or its string value.

        Returns:
            The adapter.

        Raises:
            ProviderNotRegisteredError: If the type is unknown or unregistered.
        """
        try:
            key = FMSProviderType(provider_type)
        except ValueError:
            raise ProviderNotRegisteredError(
                f"Unknown FMS provider type '{provider_type}'",
                provider_name=str(provider_type),
            ) from None
        if key not in self._providers:
            raise ProviderNotRegisteredError(
                f"FMS provider '{key.value}' is not registered",
                provider_name=key.value,
            )
        return self._providers[key]

    def list_providers(self) -> list[str]:
        """List registered provider type values."""
        return [key.value for key in self._providers]

    def fetch_snapshot(
        self, provider_type: FMSProviderType | str, config: FMSProviderConfig
    ) -> FMSSnapshot:
        """Fetch tenants and units for one facility.

        A roster whose feature flag is off is not requested and is marked
        as not fetched.

        Args:
            provider_type: Which adapter to use.
            config: The facility's provider configuration.

        Returns:
            The validated snapshot.

        Raises:
            ProviderError: On any adapter failure.
        """
        provider = self.get_provider(provider_type)
        name = FMSProviderType(provider_type).value
        snapshot = FMSSnapshot(
            tenants_fetched=config.features.supports_tenant_sync,
            units_fetched=config.features.supports_unit_sync,
        )
        if snapshot.units_fetched:
            snapshot.units = dedupe_by_external_id(provider.fetch_units(config), "unit", name)
        if snapshot.tenants_fetched:
            snapshot.tenants = dedupe_by_external_id(provider.fetch_tenants(config), "tenant", name)
        return snapshot

    def initialize_default_providers(self) -> None:
        """Instantiate and register every built-in adapter."""
        for provider_type, module_path, class_name in PROVIDER_DEFINITIONS:
            module = importlib.import_module(module_path)
            cls = getattr(module, class_name)
            self.register_provider(cls())
            logger.debug("FMS provider registered: %s", provider_type.value)


def get_fms_provider_registry() -> FMSProviderRegistry:
    """Create and return a registry with the built-in adapters.

    Returns:
        An FMSProviderRegistry with every provider type registered.
    """
    registry = FMSProviderRegistry()
    registry.initialize_default_providers()
    return registry
