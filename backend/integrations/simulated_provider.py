"""Simulated FMS adapter backed by a local JSON file.

Used for demos and local development. The file holds
``{"tenants": [...], "units": [...]}`` in the same loose shape a REST
provider would return.
"""

import json
import logging
from pathlib import Path

from config import settings
from integrations.exceptions import ProviderDataError
from integrations.fms_protocol import ExternalTenant, ExternalUnit, FMSProviderType
from integrations.parsing_utils import extract_list, parse_tenant, parse_unit
from schemas.fms import FMSProviderConfig

logger = logging.getLogger(__name__)

PROVIDER_NAME = "Simulated"


class SimulatedProvider:
    """FMS adapter that reads its roster from disk."""

    def __init__(self, default_path: str | None = None):
        self._default_path = default_path or settings.FMS_SIMULATED_DATA_PATH

    @property
    def provider_type(self) -> FMSProviderType:
        return FMSProviderType.SIMULATED

    def _data_path(self, config: FMSProviderConfig) -> Path:
        return Path(config.custom_settings.get("data_file_path") or self._default_path)

    def _load(self, config: FMSProviderConfig) -> dict:
        """Read and decode the data file.

        Raises:
            ProviderDataError: If the file is missing or not a JSON object.
        """
        path = self._data_path(config)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ProviderDataError(
                f"Simulated FMS data file not found: {path}", provider_name=PROVIDER_NAME
            ) from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise ProviderDataError(
                f"Simulated FMS data file is unreadable: {path}", provider_name=PROVIDER_NAME
            ) from exc
        if not isinstance(data, dict):
            raise ProviderDataError(
                "Simulated FMS data must be a JSON object", provider_name=PROVIDER_NAME
            )
        return data

    def test_connection(self, config: FMSProviderConfig) -> bool:
        self._load(config)
        return True

    def fetch_tenants(self, config: FMSProviderConfig) -> list[ExternalTenant]:
        records = extract_list(self._load(config).get("tenants", []), "tenants", PROVIDER_NAME)
        tenants = [parse_tenant(record, PROVIDER_NAME) for record in records]
        logger.debug("%s: %d tenants loaded", PROVIDER_NAME, len(tenants))
        return tenants

    def fetch_units(self, config: FMSProviderConfig) -> list[ExternalUnit]:
        records = extract_list(self._load(config).get("units", []), "units", PROVIDER_NAME)
        units = [parse_unit(record, PROVIDER_NAME) for record in records]
        logger.debug("%s: %d units loaded", PROVIDER_NAME, len(units))
        return units
