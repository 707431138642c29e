"""FMS sync, review and apply API endpoints.

Every route is facility-scoped: the caller's Actor (from the upstream auth
layer) must be a global admin or a facility admin whose accessible set
contains the facility that owns the requested resource.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.deps import get_current_actor
from api.helpers import config_response_dict, raise_http_error, require_field
from config import settings
from database import get_db
from integrations.fms_provider_registry import FMSProviderRegistry, get_fms_provider_registry
from models import Facility
from models.enums import TriggeredBy
from schemas.fms import (
    ApplyChangesRequest,
    ApplyResultResponse,
    ConnectionTestResponse,
    FMSConfigurationCreate,
    FMSConfigurationResponse,
    FMSConfigurationUpdate,
    PendingChangesResponse,
    ReviewChangesRequest,
    ReviewChangesResponse,
    SyncHistoryResponse,
    SyncLogResponse,
    SyncResultResponse,
    TenantRemovedRequest,
)
from services.access_service import AccessService, Actor
from services.apply_service import ApplyService
from services.assignment_events import AssignmentEventPublisher, LoggingEventPublisher
from services.change_review_service import ChangeReviewService
from services.exceptions import NotFoundError
from services.fms_config_service import FMSConfigService
from services.fms_sync_service import FMSSyncService
from services.sync_log_service import SyncLogService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/fms", tags=["fms"])


def get_event_publisher() -> AssignmentEventPublisher:
    """Get the assignment event publisher, allowing for test overrides."""
    return LoggingEventPublisher()


def get_provider_registry() -> FMSProviderRegistry:
    """Get the FMS provider registry, allowing for test overrides."""
    return get_fms_provider_registry()


def get_fms_sync_service(
    registry: FMSProviderRegistry = Depends(get_provider_registry),
    publisher: AssignmentEventPublisher = Depends(get_event_publisher),
) -> FMSSyncService:
    """Get FMSSyncService instance, allowing for test overrides."""
    return FMSSyncService(provider_registry=registry, publisher=publisher)


def _require_facility(db: Session, actor: Actor, facility_id: str) -> None:
    """Scope check first, so out-of-scope callers cannot probe for existence."""
    AccessService.require_facility_access(actor, facility_id)
    if db.get(Facility, facility_id) is None:
        raise NotFoundError("Facility not found")


# ---------------------------------------------------------------------------
# Sync runs
# ---------------------------------------------------------------------------


@router.post("/sync/{facility_id}", response_model=SyncResultResponse)
def trigger_sync(
    facility_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    sync_service: FMSSyncService = Depends(get_fms_sync_service),
):
    """Trigger a manual FMS sync for a facility.

    Fetches the provider's rosters, diffs them against internal state and
    stores the detected changes for review.

    Raises:
        HTTPException:
            - 400 Bad Request: FMS integration is disabled
            - 403 Forbidden: Caller cannot act on this facility
            - 404 Not Found: Unknown facility or no configuration
            - 409 Conflict: A sync is already running for the facility
            - 502 Bad Gateway: Provider failure (the failed run is recorded)
    """
    try:
        result = sync_service.perform_sync(db, facility_id, TriggeredBy.MANUAL, actor)
    except Exception as e:
        raise_http_error(e, "sync")
    return result.to_dict()


@router.get("/sync-history/{facility_id}", response_model=SyncHistoryResponse)
def get_sync_history(
    facility_id: str,
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """List a facility's sync runs, newest first."""
    try:
        _require_facility(db, actor, facility_id)
    except Exception as e:
        raise_http_error(e, "sync history lookup")

    limit = min(limit or settings.FMS_SYNC_HISTORY_DEFAULT_LIMIT, settings.FMS_SYNC_HISTORY_MAX_LIMIT)
    logs, total = SyncLogService.get_history(db, facility_id, limit, offset)
    return {"logs": logs, "total": total, "limit": limit, "offset": offset}


@router.get("/sync/{sync_log_id}", response_model=SyncLogResponse)
def get_sync_log(
    sync_log_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Get a single sync run."""
    try:
        return AccessService.get_sync_log_for_actor(db, actor, sync_log_id)
    except Exception as e:
        raise_http_error(e, "sync log lookup")


@router.get("/sync/{sync_log_id}/stats")
def get_sync_stats(
    sync_log_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Review and apply statistics for a sync run."""
    try:
        AccessService.get_sync_log_for_actor(db, actor, sync_log_id)
    except Exception as e:
        raise_http_error(e, "sync statistics lookup")
    return SyncLogService.get_change_stats(db, sync_log_id)


# ---------------------------------------------------------------------------
# Review and apply
# ---------------------------------------------------------------------------


@router.get("/changes/pending", response_model=PendingChangesResponse)
def get_pending_changes(
    sync_log_id: Optional[str] = Query(default=None, alias="syncLogId"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """List unreviewed changes for a sync run."""
    require_field(sync_log_id, "syncLogId")
    try:
        AccessService.get_sync_log_for_actor(db, actor, sync_log_id)
    except Exception as e:
        raise_http_error(e, "pending changes lookup")
    changes = ChangeReviewService(db).get_pending_changes(sync_log_id)
    return {"changes": changes, "total": len(changes)}


@router.post("/changes/review", response_model=ReviewChangesResponse)
def review_changes(
    body: Optional[ReviewChangesRequest] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Accept or reject changes of one sync run.

    Already-reviewed changes keep their decision and are reported as
    ``already_reviewed``; ids outside the run are reported as ``not_found``.

    Raises:
        HTTPException:
            - 400 Bad Request: syncLogId, changeIds or accepted missing
            - 403 Forbidden: Sync log belongs to a facility outside the caller's scope
            - 404 Not Found: Unknown sync log
    """
    body = body or ReviewChangesRequest()
    require_field(body.sync_log_id, "syncLogId")
    require_field(body.change_ids, "changeIds")
    require_field(body.accepted, "accepted")
    try:
        AccessService.get_sync_log_for_actor(db, actor, body.sync_log_id)
        outcomes = ChangeReviewService(db).bulk_review(
            body.sync_log_id, body.change_ids, body.accepted, actor.user_id
        )
    except Exception as e:
        raise_http_error(e, "change review")

    reviewed = sum(1 for o in outcomes if o.status == "reviewed")
    return {
        "success": all(o.status != "not_found" for o in outcomes),
        "message": f"{reviewed} change(s) {'accepted' if body.accepted else 'rejected'}",
        "results": [
            {"change_id": o.change_id, "status": o.status, "accepted": o.accepted}
            for o in outcomes
        ],
    }


@router.post("/changes/apply", response_model=ApplyResultResponse)
def apply_changes(
    body: Optional[ApplyChangesRequest] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    publisher: AssignmentEventPublisher = Depends(get_event_publisher),
):
    """Apply reviewed, accepted changes of one sync run.

    Each change applies independently; failures are listed in ``errors``.
    """
    body = body or ApplyChangesRequest()
    require_field(body.sync_log_id, "syncLogId")
    require_field(body.change_ids, "changeIds")
    try:
        AccessService.get_sync_log_for_actor(db, actor, body.sync_log_id)
        result = ApplyService(db, publisher).apply_changes(
            body.sync_log_id, body.change_ids, actor.user_id
        )
    except Exception as e:
        raise_http_error(e, "change apply")
    return result.to_dict()


@router.post("/tenants/removed", response_model=ApplyResultResponse)
def tenant_removed(
    body: Optional[TenantRemovedRequest] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    publisher: AssignmentEventPublisher = Depends(get_event_publisher),
):
    """Remove a tenant from a facility on a provider-pushed event."""
    body = body or TenantRemovedRequest()
    require_field(body.facility_id, "facilityId")
    require_field(body.external_tenant_id, "externalTenantId")
    try:
        _require_facility(db, actor, body.facility_id)
        result = ApplyService(db, publisher).apply_tenant_removed(
            body.facility_id, body.external_tenant_id, actor.user_id
        )
    except Exception as e:
        raise_http_error(e, "tenant removal")
    return result.to_dict()


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@router.post("/config", response_model=FMSConfigurationResponse, status_code=201)
def create_config(
    body: FMSConfigurationCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Create a facility's FMS configuration (administrators only)."""
    try:
        AccessService.require_global_admin(actor)
        config = FMSConfigService.create(db, body)
        db.commit()
        db.refresh(config)
    except Exception as e:
        raise_http_error(e, "configuration create")
    return config_response_dict(config)


@router.get("/config/{facility_id}", response_model=FMSConfigurationResponse)
def get_config(
    facility_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Get a facility's FMS configuration with credentials masked."""
    try:
        AccessService.require_facility_access(actor, facility_id)
        config = FMSConfigService.get_for_facility(db, facility_id)
    except Exception as e:
        raise_http_error(e, "configuration lookup")
    return config_response_dict(config)


@router.put("/config/{config_id}", response_model=FMSConfigurationResponse)
def update_config(
    config_id: str,
    body: FMSConfigurationUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Update an FMS configuration (administrators only)."""
    try:
        AccessService.require_global_admin(actor)
        config = FMSConfigService.update(db, config_id, body)
        db.commit()
        db.refresh(config)
    except Exception as e:
        raise_http_error(e, "configuration update")
    return config_response_dict(config)


@router.delete("/config/{config_id}", status_code=204)
def delete_config(
    config_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Delete an FMS configuration and its mappings (administrators only).

    Refused with 409 while sync history references the configuration.
    """
    try:
        AccessService.require_global_admin(actor)
        FMSConfigService.delete(db, config_id)
        db.commit()
    except Exception as e:
        raise_http_error(e, "configuration delete")


@router.post("/config/{config_id}/test", response_model=ConnectionTestResponse)
def test_config(
    config_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    registry: FMSProviderRegistry = Depends(get_provider_registry),
):
    """Probe the provider with a stored configuration."""
    try:
        AccessService.require_fms_role(actor)
        config = FMSConfigService.get_by_id(db, config_id)
        AccessService.require_facility_access(actor, config.facility_id)
        success, message = FMSConfigService.test_connection(registry, config)
    except Exception as e:
        raise_http_error(e, "connection test")
    return {"success": success, "message": message}
