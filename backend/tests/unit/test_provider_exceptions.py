"""Unit tests for the FMS provider exception hierarchy."""

import pytest

from integrations.exceptions import (
    ProviderAPIError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderDataError,
    ProviderError,
    ProviderNotRegisteredError,
)


class TestExceptionHierarchy:
    """Every adapter failure is caught by except ProviderError."""

    def test_catch_all_provider_errors(self):
        exceptions = [
            ProviderAuthError("auth", provider_name="GenericREST"),
            ProviderConnectionError("conn", provider_name="GenericREST"),
            ProviderAPIError("api", provider_name="GenericREST", status_code=400),
            ProviderDataError("data", provider_name="Simulated"),
            ProviderNotRegisteredError("missing", provider_name="acme"),
        ]
        for exc in exceptions:
            with pytest.raises(ProviderError):
                raise exc

    def test_provider_name_is_kept(self):
        exc = ProviderDataError("bad json", provider_name="Simulated")
        assert exc.provider_name == "Simulated"
        assert str(exc) == "bad json"


class TestRetriable:
    """Connection errors retry by default; API errors depend on status."""

    def test_connection_error_retriable_by_default(self):
        assert ProviderConnectionError("timeout").retriable is True

    def test_connection_error_can_opt_out(self):
        assert ProviderConnectionError("dns", retriable=False).retriable is False

    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    def test_api_error_retriable_statuses(self, status):
        assert ProviderAPIError("err", status_code=status).retriable is True

    @pytest.mark.parametrize("status", [400, 404, 422])
    def test_api_error_client_errors_not_retriable(self, status):
        assert ProviderAPIError("err", status_code=status).retriable is False

    def test_api_error_without_status_not_retriable(self):
        assert ProviderAPIError("err").retriable is False


class TestContext:
    """Structured details recorded on a failed sync log."""

    def test_base_error_has_no_context(self):
        assert ProviderConnectionError("timeout").context() == {}
        assert ProviderAuthError("401").context() == {}

    def test_api_error_names_endpoint(self):
        exc = ProviderAPIError("err", status_code=500, endpoint="/units")
        assert exc.context() == {"endpoint": "/units", "status_code": 500}

    def test_data_error_names_record(self):
        exc = ProviderDataError("no unit number", entity_type="unit", external_id="U-3")
        assert exc.context() == {"entity_type": "unit", "external_id": "U-3"}
        assert ProviderDataError("not JSON").context() == {}
