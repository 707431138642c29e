"""Generic REST FMS adapter.

Talks to any FMS that exposes ``GET /tenants`` and ``GET /units`` JSON
endpoints under a base URL (optionally versioned), authenticated by API key,
bearer token or HTTP basic auth.
"""

import logging

import httpx

from config import settings
from integrations.exceptions import (
    ProviderAPIError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderDataError,
)
from integrations.fms_protocol import ExternalTenant, ExternalUnit, FMSProviderType
from integrations.parsing_utils import extract_list, parse_tenant, parse_unit
from schemas.fms import FMSProviderConfig

logger = logging.getLogger(__name__)

PROVIDER_NAME = "GenericREST"


class GenericRESTProvider:
    """FMS adapter for plain JSON-over-HTTP providers.

    Implements the FMSProvider protocol.
    """

    def __init__(self, timeout: float | None = None, transport: httpx.BaseTransport | None = None):
        """Initialize the adapter.

        Args:
            timeout: Request timeout in seconds (defaults to settings).
            transport: Optional httpx transport, used by tests to stub the FMS.
        """
        self._timeout = timeout if timeout is not None else settings.FMS_PROVIDER_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def provider_type(self) -> FMSProviderType:
        return FMSProviderType.GENERIC_REST

    def _base_url(self, config: FMSProviderConfig) -> str:
        if not config.base_url:
            raise ProviderDataError(
                "FMS configuration has no base_url", provider_name=PROVIDER_NAME
            )
        base = config.base_url.rstrip("/")
        if config.api_version:
            base = f"{base}/{config.api_version.strip('/')}"
        return base

    def _auth_kwargs(self, config: FMSProviderConfig) -> dict:
        """Build httpx headers/auth from the configured auth method.

        Raises:
            ProviderAuthError: If the auth method's credentials are missing.
        """
        auth = config.auth
        creds = auth.credentials
        if auth.type == "api_key":
            key = creds.get("api_key")
            if not key:
                raise ProviderAuthError("FMS API key not configured", provider_name=PROVIDER_NAME)
            return {"headers": {"X-API-Key": key}}
        if auth.type == "bearer_token":
            token = creds.get("token") or creds.get("bearer_token")
            if not token:
                raise ProviderAuthError("FMS bearer token not configured", provider_name=PROVIDER_NAME)
            return {"headers": {"Authorization": f"Bearer {token}"}}
        if auth.type == "basic_auth":
            username = creds.get("username")
            password = creds.get("password")
            if not username or password is None:
                raise ProviderAuthError(
                    "FMS basic auth credentials not configured", provider_name=PROVIDER_NAME
                )
            return {"auth": (username, password)}
        return {}

    def _get(self, config: FMSProviderConfig, path: str):
        """GET a path on the provider and decode JSON.

        Raises:
            ProviderAuthError: On HTTP 401/403.
            ProviderAPIError: On any other HTTP error status.
            ProviderConnectionError: On connect failures and timeouts.
            ProviderDataError: If the body is not JSON.
        """
        kwargs = self._auth_kwargs(config)
        client_kwargs = {"base_url": self._base_url(config), "timeout": self._timeout}
        if self._transport is not None:
            client_kwargs["transport"] = self._transport

        try:
            with httpx.Client(**client_kwargs) as client:
                response = client.get(path, **kwargs)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in (401, 403):
                raise ProviderAuthError(
                    f"FMS authentication failed (HTTP {status})",
                    provider_name=PROVIDER_NAME,
                ) from exc
            raise ProviderAPIError(
                f"FMS API error on {path} (HTTP {status})",
                provider_name=PROVIDER_NAME,
                status_code=status,
                endpoint=path,
            ) from exc
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ProviderConnectionError(
                f"FMS connection failed: {exc}",
                provider_name=PROVIDER_NAME,
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderDataError(
                f"FMS returned non-JSON response for {path}",
                provider_name=PROVIDER_NAME,
            ) from exc

    def test_connection(self, config: FMSProviderConfig) -> bool:
        """Probe ``/health`` on the provider.

        Returns:
            True if the provider answered with a success status.
        """
        kwargs = self._auth_kwargs(config)
        try:
            with httpx.Client(
                base_url=self._base_url(config),
                timeout=self._timeout,
                **({"transport": self._transport} if self._transport is not None else {}),
            ) as client:
                response = client.get("/health", **kwargs)
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ProviderConnectionError(
                f"FMS connection failed: {exc}",
                provider_name=PROVIDER_NAME,
            ) from exc
        if response.status_code in (401, 403):
            raise ProviderAuthError(
                f"FMS authentication failed (HTTP {response.status_code})",
                provider_name=PROVIDER_NAME,
            )
        return response.is_success

    def fetch_tenants(self, config: FMSProviderConfig) -> list[ExternalTenant]:
        """Fetch the tenant roster from ``/tenants``.

        Returns:
            List of normalized tenants.
        """
        payload = self._get(config, "/tenants")
        records = extract_list(payload, "tenants", PROVIDER_NAME)
        tenants = [parse_tenant(record, PROVIDER_NAME) for record in records]
        logger.info("%s: %d tenants fetched", PROVIDER_NAME, len(tenants))
        return tenants

    def fetch_units(self, config: FMSProviderConfig) -> list[ExternalUnit]:
        """Fetch the unit roster from ``/units``.

        Returns:
            List of normalized units.
        """
        payload = self._get(config, "/units")
        records = extract_list(payload, "units", PROVIDER_NAME)
        units = [parse_unit(record, PROVIDER_NAME) for record in records]
        logger.info("%s: %d units fetched", PROVIDER_NAME, len(units))
        return units
