"""
Tests: Assessment snapshot engine.

    - versions are consecutive per assessment, unchanged data keeps its fingerprint
    - a version collision with a concurrent capture is retried
    - statistics over the captured collections (empty assessment included)
    - tamper detection and the immutability guard
    - structural compare between two versions
    - a caller-supplied SnapshotSource
    - HTTP contract of the snapshot endpoints
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import insert, update

from assessment_platform.core.exceptions import DataIntegrityError, NotFoundError, ValidationError
from assessment_platform.models import db as _db
from assessment_platform.models.assessment import ScopeSelection, StepResponse
from assessment_platform.models.audit import AuditLog
from assessment_platform.models.lifecycle import AssessmentSnapshot
from assessment_platform.services import snapshot_service
from assessment_platform.services.fingerprint import compute_fingerprint


def _full_assessment(make_assessment):
    return make_assessment(
        scope=[("J58", True, "HIGH"), ("J59", False, "LOW")],
        steps=[("S-1", "FIT"), ("S-2", "GAP"), ("S-3", "configure")],
        gaps=[{"resolution_type": "EXTENSION", "client_approved": True, "process_step_id": "S-2"}],
        integrations=["IF-Bank"],
        migrations=["Customer master"],
    )


def _tamper(snapshot_id, payload):
    """Rewrite a payload behind the ORM's back."""
    table = AssessmentSnapshot.__table__
    _db.session.execute(update(table).where(table.c.id == snapshot_id).values(payload=payload))
    _db.session.commit()


# ── Capture ──────────────────────────────────────────────────────────────────


def test_versions_are_consecutive_and_fingerprint_stable(make_assessment):
    a = _full_assessment(make_assessment)

    v1 = snapshot_service.create_snapshot(a.id, "Workshop close", "consultant-1")
    v2 = snapshot_service.create_snapshot(a.id, "Re-capture", "consultant-1")

    assert (v1.version, v2.version) == (1, 2)
    assert v1.fingerprint == v2.fingerprint
    assert v1.fingerprint == compute_fingerprint(v1.payload)


def test_changed_data_changes_fingerprint(make_assessment):
    a = _full_assessment(make_assessment)
    v1 = snapshot_service.create_snapshot(a.id, "before", "c")

    step = StepResponse.query.filter_by(assessment_id=a.id, process_step_id="S-2").one()
    step.fit_status = "FIT"
    _db.session.commit()
    v2 = snapshot_service.create_snapshot(a.id, "after", "c")

    assert v2.fingerprint != v1.fingerprint


def test_version_collision_is_retried_with_next_version(make_assessment, monkeypatch):
    a = make_assessment(steps=[("S-1", "FIT")])
    assessment_id = a.id
    real_fingerprint = snapshot_service.compute_fingerprint
    competing = []

    def _fingerprint_after_competing_capture(payload):
        # another writer commits v1 between our max(version) read and our insert
        if not competing:
            competing.append("v1")
            _db.session.execute(insert(AssessmentSnapshot.__table__).values(
                id="competing-v1",
                assessment_id=assessment_id,
                version=1,
                payload=payload,
                fingerprint=real_fingerprint(payload),
                created_by="other-consultant",
                reason="Concurrent capture",
                created_at=datetime.now(timezone.utc),
            ))
            _db.session.commit()
        return real_fingerprint(payload)

    monkeypatch.setattr(snapshot_service, "compute_fingerprint", _fingerprint_after_competing_capture)

    snapshot = snapshot_service.create_snapshot(assessment_id, "Workshop close", "consultant-1")

    assert competing == ["v1"]
    assert snapshot.version == 2
    versions = [(s.version, s.created_by) for s in snapshot_service.list_snapshots(assessment_id)]
    assert versions == [(2, "consultant-1"), (1, "other-consultant")]
    # the losing attempt left no audit entry behind
    assert AuditLog.query.filter_by(action="snapshot.create").count() == 1


def test_capture_is_audited(make_assessment, default_tenant):
    a = make_assessment()

    snapshot = snapshot_service.create_snapshot(a.id, "Workshop close", "consultant-1", label="WS")

    entry = AuditLog.query.filter_by(entity_type="assessment_snapshot").one()
    assert entry.entity_id == snapshot.id
    assert entry.actor == "consultant-1"
    assert entry.reason == "Workshop close"
    assert entry.tenant_id == default_tenant.id
    assert entry.diff == {"version": 1, "fingerprint": snapshot.fingerprint, "label": "WS"}


def test_versions_are_per_assessment(make_assessment):
    a = make_assessment()
    b = make_assessment(company_name="Beta AG")
    snapshot_service.create_snapshot(a.id, "r", "c")
    snapshot_service.create_snapshot(a.id, "r", "c")

    assert snapshot_service.create_snapshot(b.id, "r", "c").version == 1


def test_statistics(make_assessment):
    a = _full_assessment(make_assessment)

    snapshot = snapshot_service.create_snapshot(a.id, "stats", "c")

    assert snapshot.statistics == {
        "total_scope_items": 2,
        "selected_scope_items": 1,
        "total_steps": 3,
        "fit_count": 1,
        "configure_count": 1,
        "gap_count": 1,
        "na_count": 0,
        "pending_count": 0,
        "total_gap_resolutions": 1,
        "approved_gap_resolutions": 1,
        "integration_point_count": 1,
        "data_migration_object_count": 1,
    }
    assert snapshot.payload["statistics"] == snapshot.statistics
    assert snapshot.payload["assessment"]["company_name"] == "Acme GmbH"


def test_empty_assessment_yields_valid_snapshot(make_assessment):
    a = make_assessment()

    snapshot = snapshot_service.create_snapshot(a.id, "empty", "c")

    assert snapshot.version == 1
    assert set(snapshot.statistics.values()) == {0}
    for collection in snapshot_service.SNAPSHOT_COLLECTIONS:
        assert snapshot.payload[collection] == []
    assert snapshot_service.verify_snapshot(snapshot)


def test_reason_and_creator_are_required(make_assessment):
    a = make_assessment()
    with pytest.raises(ValidationError):
        snapshot_service.create_snapshot(a.id, "   ", "c")
    with pytest.raises(ValidationError):
        snapshot_service.create_snapshot(a.id, "reason", None)


def test_missing_assessment_is_not_found():
    with pytest.raises(NotFoundError):
        snapshot_service.create_snapshot("does-not-exist", "r", "c")


def test_caller_supplied_source(make_assessment):
    a = make_assessment()

    class InMemorySource:
        def assessment_header(self, assessment_id):
            return {"id": assessment_id, "company_name": "In Memory"}

        def scope_selections(self, assessment_id):
            return [{"scope_item_id": "J58", "selected": True, "relevance": "HIGH"}]

        def step_responses(self, assessment_id):
            return [{"process_step_id": "S-1", "fit_status": "FIT"}]

        def gap_resolutions(self, assessment_id):
            return []

        def integration_points(self, assessment_id):
            return []

        def data_migration_objects(self, assessment_id):
            return []

    snapshot = snapshot_service.create_snapshot(a.id, "offline", "c", source=InMemorySource())

    assert snapshot.payload["assessment"]["company_name"] == "In Memory"
    assert snapshot.statistics["fit_count"] == 1
    assert snapshot.statistics["selected_scope_items"] == 1


# ── Integrity ────────────────────────────────────────────────────────────────


def test_tampered_payload_is_detected(make_assessment):
    a = _full_assessment(make_assessment)
    snapshot = snapshot_service.create_snapshot(a.id, "r", "c")

    _tamper(snapshot.id, {**snapshot.payload, "statistics": {"fit_count": 99}})

    reloaded = snapshot_service.get_snapshot(a.id, 1)
    assert not snapshot_service.verify_snapshot(reloaded)
    with pytest.raises(DataIntegrityError) as exc_info:
        snapshot_service.assert_snapshot_integrity(reloaded)
    assert exc_info.value.details["expected_fingerprint"] == snapshot.fingerprint


def test_orm_update_of_captured_content_is_refused(make_assessment):
    a = make_assessment(steps=[("S-1", "FIT")])
    snapshot = snapshot_service.create_snapshot(a.id, "r", "c")

    snapshot.payload = {"rewritten": True}
    with pytest.raises(DataIntegrityError):
        _db.session.commit()
    _db.session.rollback()

    assert snapshot_service.verify_snapshot(snapshot_service.get_snapshot(a.id, 1))


def test_label_may_still_be_edited(make_assessment):
    a = make_assessment()
    snapshot = snapshot_service.create_snapshot(a.id, "r", "c")

    snapshot.label = "Final baseline"
    _db.session.commit()

    assert snapshot_service.get_snapshot(a.id, 1).label == "Final baseline"


# ── Compare ──────────────────────────────────────────────────────────────────


def test_compare_reports_structural_changes(make_assessment):
    a = _full_assessment(make_assessment)
    snapshot_service.create_snapshot(a.id, "before", "c")

    StepResponse.query.filter_by(assessment_id=a.id, process_step_id="S-2").one().fit_status = "FIT"
    _db.session.add(ScopeSelection(assessment_id=a.id, scope_item_id="J60", selected=True, relevance="MEDIUM"))
    _db.session.commit()
    snapshot_service.create_snapshot(a.id, "after", "c")

    result = snapshot_service.compare_snapshots(a.id, 1, 2)

    assert result["identical"] is False
    summary = result["summary"]
    assert summary["classifications_modified"] == 1
    assert summary["scope_added"] == 1
    assert summary["total_changes"] == 2
    change = result["delta"]["classification_changes"][0]
    assert change["process_step_id"] == "S-2"
    assert change["previous"]["fit_status"] == "GAP"
    assert change["new"]["fit_status"] == "FIT"


def test_compare_identical_versions(make_assessment):
    a = _full_assessment(make_assessment)
    snapshot_service.create_snapshot(a.id, "one", "c")
    snapshot_service.create_snapshot(a.id, "two", "c")

    result = snapshot_service.compare_snapshots(a.id, 1, 2)

    assert result["identical"] is True
    assert result["summary"]["total_changes"] == 0


# ── HTTP contract ────────────────────────────────────────────────────────────


def test_snapshot_endpoints(client, make_assessment):
    a = _full_assessment(make_assessment)
    base = f"/api/v1/assessments/{a.id}/snapshots"

    res = client.post(base, json={"reason": "Workshop close", "created_by": "consultant-1", "label": "WS"})
    assert res.status_code == 201
    body = res.get_json()
    assert body["version"] == 1
    assert len(body["fingerprint"]) == 64
    assert "payload" not in body

    client.post(base, json={"reason": "again", "created_by": "consultant-1"})

    res = client.get(base)
    assert res.status_code == 200
    assert [s["version"] for s in res.get_json()["items"]] == [2, 1]

    res = client.get(f"{base}/1")
    assert res.status_code == 200
    assert res.get_json()["payload"]["statistics"]["total_steps"] == 3

    res = client.get(f"{base}/1/verify")
    assert res.status_code == 200
    assert res.get_json()["valid"] is True

    res = client.get(f"{base}/compare?base_version=1&compare_version=2")
    assert res.status_code == 200
    assert res.get_json()["identical"] is True


def test_verify_endpoint_reports_tampering(client, make_assessment):
    a = make_assessment(steps=[("S-1", "FIT")])
    snapshot = snapshot_service.create_snapshot(a.id, "r", "c")
    _tamper(snapshot.id, {"forged": True})

    res = client.get(f"/api/v1/assessments/{a.id}/snapshots/1/verify")

    assert res.status_code == 422
    body = res.get_json()
    assert body["code"] == "ERR_DATA_INTEGRITY"
    assert body["details"]["expected_fingerprint"] == snapshot.fingerprint


def test_reported_statistics_are_covered_by_fingerprint(client, make_assessment):
    a = _full_assessment(make_assessment)
    snapshot = snapshot_service.create_snapshot(a.id, "r", "c")
    assert "statistics" not in AssessmentSnapshot.__table__.c

    _tamper(snapshot.id, {**snapshot.payload, "statistics": {**snapshot.statistics, "fit_count": 999}})

    res = client.get(f"/api/v1/assessments/{a.id}/snapshots/1/verify")
    assert res.status_code == 422
    assert res.get_json()["code"] == "ERR_DATA_INTEGRITY"


@pytest.mark.parametrize("payload", [{"created_by": "c"}, {"reason": "r"}])
def test_create_requires_reason_and_creator(client, make_assessment, payload):
    a = make_assessment()
    res = client.post(f"/api/v1/assessments/{a.id}/snapshots", json=payload)
    assert res.status_code == 400


def test_unknown_version_and_foreign_tenant_are_404(client, make_assessment, other_tenant):
    a = make_assessment()
    snapshot_service.create_snapshot(a.id, "r", "c")
    base = f"/api/v1/assessments/{a.id}/snapshots"

    assert client.get(f"{base}/7").status_code == 404
    assert client.get(base, headers={"X-Tenant-ID": str(other_tenant.id)}).status_code == 404


def test_compare_requires_both_versions(client, make_assessment):
    a = make_assessment()
    res = client.get(f"/api/v1/assessments/{a.id}/snapshots/compare?base_version=1")
    assert res.status_code == 400
