"""Pydantic schemas for API request/response validation."""

from schemas.fms import (
    AccessChanges,
    ApplyChangesRequest,
    ApplyResultResponse,
    ChangeResponse,
    ConnectionTestResponse,
    FMSAuthConfig,
    FMSConfigurationCreate,
    FMSConfigurationResponse,
    FMSConfigurationUpdate,
    FMSFeatureFlags,
    FMSProviderConfig,
    FMSSyncSettings,
    PendingChangesResponse,
    ReviewChangesRequest,
    ReviewChangesResponse,
    ReviewItemResult,
    SyncHistoryResponse,
    SyncLogResponse,
    SyncResultResponse,
    SyncSummary,
    TenantRemovedRequest,
)

__all__ = [
    "AccessChanges",
    "ApplyChangesRequest",
    "ApplyResultResponse",
    "ChangeResponse",
    "ConnectionTestResponse",
    "FMSAuthConfig",
    "FMSConfigurationCreate",
    "FMSConfigurationResponse",
    "FMSConfigurationUpdate",
    "FMSFeatureFlags",
    "FMSProviderConfig",
    "FMSSyncSettings",
    "PendingChangesResponse",
    "ReviewChangesRequest",
    "ReviewChangesResponse",
    "ReviewItemResult",
    "SyncHistoryResponse",
    "SyncLogResponse",
    "SyncResultResponse",
    "SyncSummary",
    "TenantRemovedRequest",
]
