"""Pydantic schemas for FMS configuration, sync, review and apply."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models.enums import FMSProviderType


# ---------------------------------------------------------------------------
# Provider configuration (stored as FMSConfiguration.config)
# ---------------------------------------------------------------------------


class FMSAuthConfig(BaseModel):
    """How to authenticate against the provider."""

    type: Literal["none", "api_key", "bearer_token", "basic_auth"] = "none"
    credentials: dict[str, str] = Field(default_factory=dict)


class FMSFeatureFlags(BaseModel):
    """Which rosters the provider is asked for."""

    supports_tenant_sync: bool = True
    supports_unit_sync: bool = True


class FMSSyncSettings(BaseModel):
    """Per-facility sync behaviour."""

    auto_accept_changes: bool = False


class FMSProviderConfig(BaseModel):
    """Opaque-to-the-engine provider configuration."""

    model_config = ConfigDict(extra="ignore")

    base_url: Optional[str] = None
    api_version: Optional[str] = None
    auth: FMSAuthConfig = Field(default_factory=FMSAuthConfig)
    features: FMSFeatureFlags = Field(default_factory=FMSFeatureFlags)
    sync_settings: FMSSyncSettings = Field(default_factory=FMSSyncSettings)
    custom_settings: dict[str, Any] = Field(default_factory=dict)


class FMSConfigurationCreate(BaseModel):
    """Schema for creating a facility's FMS configuration."""

    facility_id: str
    provider_type: FMSProviderType
    is_enabled: bool = False
    config: FMSProviderConfig = Field(default_factory=FMSProviderConfig)


class FMSConfigurationUpdate(BaseModel):
    """Schema for updating an FMS configuration."""

    provider_type: Optional[FMSProviderType] = None
    is_enabled: Optional[bool] = None
    config: Optional[FMSProviderConfig] = None


class FMSConfigurationResponse(BaseModel):
    """Schema for FMSConfiguration API response.

    Credentials are never echoed back.
    """

    id: str
    facility_id: str
    provider_type: str
    is_enabled: bool
    config: dict[str, Any]
    last_sync_at: Optional[datetime] = None
    last_sync_status: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConnectionTestResponse(BaseModel):
    """Result of probing a provider with a stored configuration."""

    success: bool
    message: str


# ---------------------------------------------------------------------------
# Sync runs
# ---------------------------------------------------------------------------


class SyncLogResponse(BaseModel):
    """Schema for FMSSyncLog API response."""

    id: str
    facility_id: str
    fms_config_id: str
    sync_status: str
    triggered_by: str
    triggered_by_user_id: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    changes_detected: int
    changes_applied: int
    changes_pending: int
    changes_rejected: int
    error_message: Optional[str] = None
    sync_summary: Optional[dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class SyncHistoryResponse(BaseModel):
    """A page of sync logs for one facility, newest first."""

    logs: list[SyncLogResponse]
    total: int
    limit: int
    offset: int


class SyncSummary(BaseModel):
    """Per-type counts of the changes a run detected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tenants_added: int = 0
    tenants_removed: int = 0
    tenants_updated: int = 0
    units_added: int = 0
    units_removed: int = 0
    units_updated: int = 0
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class SyncResultResponse(BaseModel):
    """Outcome of ``POST /sync/{facility_id}``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    sync_log_id: str
    changes_detected: int
    summary: SyncSummary
    requires_review: bool


# ---------------------------------------------------------------------------
# Changes, review and apply
# ---------------------------------------------------------------------------


class ChangeResponse(BaseModel):
    """Schema for FMSChange API response."""

    id: str
    sync_log_id: str
    change_type: str
    entity_type: str
    external_id: str
    internal_id: Optional[str] = None
    before_data: Optional[dict[str, Any]] = None
    after_data: Optional[dict[str, Any]] = None
    required_actions: list[str]
    impact_summary: str
    is_valid: bool
    validation_errors: Optional[list[str]] = None
    is_reviewed: bool
    is_accepted: Optional[bool] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    applied_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PendingChangesResponse(BaseModel):
    """Unreviewed changes for one sync run."""

    changes: list[ChangeResponse]
    total: int


# Request bodies keep every field optional: missing fields are reported as a
# 400 naming the field, not as FastAPI's generic 422.


class ReviewChangesRequest(BaseModel):
    """Body of ``POST /changes/review``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    sync_log_id: Optional[str] = None
    change_ids: Optional[list[str]] = None
    accepted: Optional[bool] = None


class ApplyChangesRequest(BaseModel):
    """Body of ``POST /changes/apply``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    sync_log_id: Optional[str] = None
    change_ids: Optional[list[str]] = None


class TenantRemovedRequest(BaseModel):
    """Body of ``POST /tenants/removed`` (provider-pushed removal)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    facility_id: Optional[str] = None
    external_tenant_id: Optional[str] = None


class ReviewItemResult(BaseModel):
    """Per-change outcome of a review batch."""

    change_id: str
    status: Literal["reviewed", "already_reviewed", "not_found"]
    accepted: Optional[bool] = None


class ReviewChangesResponse(BaseModel):
    """Outcome of ``POST /changes/review``."""

    success: bool
    message: str
    results: list[ReviewItemResult]


class AccessChanges(BaseModel):
    """Identity and access effects of an apply batch."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    users_created: list[str] = Field(default_factory=list)
    users_deactivated: list[str] = Field(default_factory=list)
    access_granted: list[dict[str, str]] = Field(default_factory=list)
    access_revoked: list[dict[str, str]] = Field(default_factory=list)


class ApplyResultResponse(BaseModel):
    """Outcome of an apply batch."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    changes_applied: int
    changes_failed: int
    errors: list[str]
    warnings: list[str]
    access_changes: AccessChanges
