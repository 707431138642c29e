"""Integration tests for the FMS sync endpoints."""

from datetime import datetime, timedelta, timezone

from api.fms import get_provider_registry
from main import app
from models import FMSSyncLog
from models.enums import SyncStatus
from tests.fixtures import actor_headers, create_change, create_sync_log
from tests.fixtures.mocks import MockFMSProvider, MockProviderRegistry


def test_trigger_sync_returns_camel_case_result(client, admin_headers, fms_config, assignment):
    """A manual sync returns the run summary for review."""
    response = client.post(f"/api/fms/sync/{fms_config.facility_id}", headers=admin_headers)
    assert response.status_code == 200

    data = response.json()
    assert data["success"] is True
    assert data["changesDetected"] == 3
    assert data["requiresReview"] is True
    assert data["summary"]["unitsAdded"] == 1
    assert data["summary"]["tenantsAdded"] == 1
    assert data["summary"]["errors"] == []
    assert "syncLogId" in data


def test_facility_admin_can_sync_own_facility(client, facility_admin_headers, fms_config, db):
    response = client.post(f"/api/fms/sync/{fms_config.facility_id}", headers=facility_admin_headers)
    assert response.status_code == 200
    sync_log = db.get(FMSSyncLog, response.json()["syncLogId"])
    assert sync_log.triggered_by_user_id is not None


def test_facility_admin_cannot_sync_other_facility(client, facility_admin_headers, other_fms_config, mock_provider):
    response = client.post(f"/api/fms/sync/{other_fms_config.facility_id}", headers=facility_admin_headers)
    assert response.status_code == 403
    assert mock_provider.tenant_calls == 0


def test_sync_while_running_is_conflict(client, admin_headers, fms_config, db):
    create_sync_log(db, fms_config, status=SyncStatus.RUNNING)
    db.commit()
    response = client.post(f"/api/fms/sync/{fms_config.facility_id}", headers=admin_headers)
    assert response.status_code == 409


def test_provider_failure_is_bad_gateway(client, admin_headers, fms_config, db):
    """The failed run is recorded and the provider error is not echoed."""
    failing = MockProviderRegistry(MockFMSProvider(should_fail=True, failure_message="secret host down"))
    app.dependency_overrides[get_provider_registry] = lambda: failing

    response = client.post(f"/api/fms/sync/{fms_config.facility_id}", headers=admin_headers)

    assert response.status_code == 502
    assert "secret host" not in response.json()["detail"]
    assert db.query(FMSSyncLog).one().sync_status == SyncStatus.FAILED.value


def test_sync_disabled_is_bad_request(client, admin_headers, fms_config, db):
    fms_config.is_enabled = False
    db.commit()
    response = client.post(f"/api/fms/sync/{fms_config.facility_id}", headers=admin_headers)
    assert response.status_code == 400


def test_sync_unknown_facility(client, admin_headers):
    response = client.post("/api/fms/sync/missing", headers=admin_headers)
    assert response.status_code == 404


def test_requires_identity_headers(client, fms_config):
    response = client.post(f"/api/fms/sync/{fms_config.facility_id}")
    assert response.status_code == 401


def test_tenant_role_is_forbidden(client, fms_config):
    headers = actor_headers("tenant", "t-1", [fms_config.facility_id])
    response = client.post(f"/api/fms/sync/{fms_config.facility_id}", headers=headers)
    assert response.status_code == 403


class TestSyncHistory:
    """GET /api/fms/sync-history/{facility_id}"""

    def _seed(self, db, config, count):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        logs = [create_sync_log(db, config, started_at=base + timedelta(hours=i)) for i in range(count)]
        db.commit()
        return logs

    def test_newest_first_with_paging(self, client, admin_headers, fms_config, db):
        logs = self._seed(db, fms_config, 3)

        response = client.get(
            f"/api/fms/sync-history/{fms_config.facility_id}?limit=2&offset=1", headers=admin_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["limit"] == 2
        assert data["offset"] == 1
        assert [log["id"] for log in data["logs"]] == [logs[1].id, logs[0].id]

    def test_limit_is_clamped(self, client, admin_headers, fms_config, db):
        self._seed(db, fms_config, 1)
        response = client.get(f"/api/fms/sync-history/{fms_config.facility_id}?limit=5000", headers=admin_headers)
        assert response.json()["limit"] == 200

    def test_default_limit(self, client, admin_headers, fms_config):
        response = client.get(f"/api/fms/sync-history/{fms_config.facility_id}", headers=admin_headers)
        assert response.json()["limit"] == 50

    def test_only_this_facility(self, client, admin_headers, fms_config, other_fms_config, db):
        self._seed(db, other_fms_config, 2)
        response = client.get(f"/api/fms/sync-history/{fms_config.facility_id}", headers=admin_headers)
        assert response.json()["total"] == 0

    def test_out_of_scope(self, client, facility_admin_headers, other_fms_config):
        response = client.get(
            f"/api/fms/sync-history/{other_fms_config.facility_id}", headers=facility_admin_headers
        )
        assert response.status_code == 403


class TestSyncLog:
    """GET /api/fms/sync/{sync_log_id} and its stats."""

    def test_get_sync_log(self, client, facility_admin_headers, fms_config, db):
        sync_log = create_sync_log(db, fms_config)
        db.commit()

        response = client.get(f"/api/fms/sync/{sync_log.id}", headers=facility_admin_headers)

        assert response.status_code == 200
        assert response.json()["id"] == sync_log.id
        assert response.json()["sync_status"] == "completed"

    def test_other_facility_log_is_forbidden(self, client, facility_admin_headers, other_fms_config, db):
        sync_log = create_sync_log(db, other_fms_config)
        db.commit()
        response = client.get(f"/api/fms/sync/{sync_log.id}", headers=facility_admin_headers)
        assert response.status_code == 403

    def test_unknown_log(self, client, admin_headers):
        assert client.get("/api/fms/sync/missing", headers=admin_headers).status_code == 404

    def test_stats(self, client, admin_headers, fms_config, db):
        sync_log = create_sync_log(db, fms_config)
        create_change(db, sync_log, is_reviewed=True, is_accepted=True)
        create_change(db, sync_log)
        db.commit()

        response = client.get(f"/api/fms/sync/{sync_log.id}/stats", headers=admin_headers)

        assert response.status_code == 200
        stats = response.json()
        assert stats["total"] == 2
        assert stats["accepted"] == 1
        assert stats["pending"] == 1
        assert stats["by_type"] == {"unit_updated": 2}
