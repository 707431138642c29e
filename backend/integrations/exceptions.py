"""Typed exception hierarchy for FMS provider errors.

Every adapter failure surfaces as a ``ProviderError`` subclass so the sync
orchestrator can fail the run without persisting any changes, and the API
layer can tell credential problems apart from transient network errors.
"""


class ProviderError(Exception):
    """Base exception for all FMS provider errors.

    Carries the provider name so callers can identify which provider failed.
    """

    def __init__(self, message: str, provider_name: str = ""):
        self.provider_name = provider_name
        super().__init__(message)

    def context(self) -> dict:
        """Structured details kept on the failed sync log's summary."""
        return {}


class ProviderAuthError(ProviderError):
    """FMS credentials missing, expired, or rejected (HTTP 401/403)."""


class ProviderConnectionError(ProviderError):
    """Network failures talking to the FMS: timeouts, DNS, refused connections.

    Retriable by default; a new manual trigger is the retry.
    """

    def __init__(self, message: str, provider_name: str = "", retriable: bool = True):
        self.retriable = retriable
        super().__init__(message, provider_name)


class ProviderAPIError(ProviderError):
    """HTTP 4xx/5xx responses from the FMS API (other than auth failures).

    ``endpoint`` is the roster path that failed (``/tenants`` or ``/units``).
    """

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        status_code: int | None = None,
        endpoint: str | None = None,
    ):
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message, provider_name)

    @property
    def retriable(self) -> bool:
        """429 (rate limit) and 5xx errors are generally retriable."""
        if self.status_code is None:
            return False
        return self.status_code == 429 or self.status_code >= 500

    def context(self) -> dict:
        return {
            key: value
            for key, value in (("endpoint", self.endpoint), ("status_code", self.status_code))
            if value is not None
        }


class ProviderDataError(ProviderError):
    """Malformed payload: not JSON, wrong shape, missing ids, or conflicting duplicates.

    When one roster record is at fault, ``entity_type`` ("tenant" or "unit")
    and ``external_id`` name it.
    """

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        entity_type: str | None = None,
        external_id: str | None = None,
    ):
        self.entity_type = entity_type
        self.external_id = external_id
        super().__init__(message, provider_name)

    def context(self) -> dict:
        return {
            key: value
            for key, value in (("entity_type", self.entity_type), ("external_id", self.external_id))
            if value is not None
        }


class ProviderNotRegisteredError(ProviderError):
    """No adapter is registered for the configured provider type."""
