"""External FMS integrations.

This package contains:
- FMS protocol: normalized tenant/unit shapes and the adapter interface
- FMS provider registry: one adapter per provider type
- Generic REST adapter: JSON-over-HTTP providers (httpx)
- Simulated adapter: local JSON file for demos and development
"""

from integrations.fms_protocol import (
    ExternalTenant,
    ExternalUnit,
    FMSProvider,
    FMSProviderType,
    FMSSnapshot,
)
from integrations.fms_provider_registry import FMSProviderRegistry, get_fms_provider_registry

__all__ = [
    "ExternalTenant",
    "ExternalUnit",
    "FMSProvider",
    "FMSProviderRegistry",
    "FMSProviderType",
    "FMSSnapshot",
    "get_fms_provider_registry",
]
