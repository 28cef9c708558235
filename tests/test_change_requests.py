"""
Tests: Change requests against a baseline snapshot.

    - impact is computed from the baseline and frozen at creation
    - the baseline must be a verified snapshot of the SAME assessment
    - unresolved entity references are refused as a whole
    - approve / reject decisions
"""

import pytest
from sqlalchemy import update

from assessment_platform.models import db as _db
from assessment_platform.models.assessment import GapResolution, OcmImpact
from assessment_platform.models.audit import AuditLog
from assessment_platform.models.lifecycle import AssessmentSnapshot
from assessment_platform.services import change_request_service, snapshot_service


def _baseline(make_assessment):
    a = make_assessment(
        scope=[("J58", True, "HIGH")],
        steps=[("S-1", "FIT"), ("S-2", "GAP")],
        gaps=[{"resolution_type": "EXTENSION", "client_approved": False, "functional_area": "Finance"}],
        integrations=["IF-Bank"],
        ocm=["AP Clerk"],
    )
    snapshot = snapshot_service.create_snapshot(a.id, "Approved baseline", "consultant-1")
    return a, snapshot


def _entity(entity_type, entity_id, reason="Reopened for rework"):
    return {"entity_type": entity_type, "entity_id": entity_id, "reason": reason}


def _post(client, assessment_id, **overrides):
    payload = {
        "baseline_snapshot_id": None,
        "title": "Reopen bank interface",
        "reason": "Bank changed file format",
        "requested_by": "consultant-1",
        "unlocked_entities": [],
    }
    payload.update(overrides)
    return client.post(f"/api/v1/assessments/{assessment_id}/change-requests", json=payload)


def test_create_change_request_computes_impact(client, make_assessment):
    a, snapshot = _baseline(make_assessment)
    gap_id = GapResolution.query.filter_by(assessment_id=a.id).one().id

    res = _post(client, a.id, baseline_snapshot_id=snapshot.id, unlocked_entities=[
        _entity("scope_selection", "J58"),
        _entity("gap_resolution", gap_id, reason="new extension"),
    ])

    assert res.status_code == 201, res.get_json()
    body = res.get_json()
    assert body["status"] == "requested"
    assert body["risk_level"] == "medium"
    assert body["baseline_version"] == 1
    assert body["breakdown"]["scope_selection"] == 1
    assert body["breakdown"]["gap_resolution"] == 1
    assert body["impact_summary"]["affected_functional_areas"] == ["Finance"]


def test_ocm_entities_resolve_against_live_register(client, make_assessment):
    a, snapshot = _baseline(make_assessment)
    ocm_id = OcmImpact.query.filter_by(assessment_id=a.id).one().id

    res = _post(client, a.id, baseline_snapshot_id=snapshot.id, unlocked_entities=[
        _entity("ocm", ocm_id),
    ])

    assert res.status_code == 201
    assert res.get_json()["risk_level"] == "low"


def test_impact_is_frozen_after_creation(make_assessment):
    a, snapshot = _baseline(make_assessment)
    gap = GapResolution.query.filter_by(assessment_id=a.id).one()
    cr = change_request_service.create_change_request(
        a.id, snapshot.id,
        [_entity("gap_resolution", gap.id)],
        "Reopen gap", "Scope change", "consultant-1",
    )
    assert cr.risk_level == "medium"

    # live data moves on; the stored assessment of risk does not
    gap.client_approved = True
    _db.session.commit()
    snapshot_service.create_snapshot(a.id, "Later", "consultant-1")

    reloaded = change_request_service.get_change_request(a.id, cr.id)
    assert reloaded.risk_level == "medium"
    assert reloaded.impact_summary["highest_contribution"] == "medium"


def test_baseline_from_another_assessment_is_404(client, make_assessment):
    a, _ = _baseline(make_assessment)
    other = make_assessment(company_name="Other AG", scope=[("J58", True, "HIGH")])
    foreign = snapshot_service.create_snapshot(other.id, "theirs", "c")

    res = _post(client, a.id, baseline_snapshot_id=foreign.id, unlocked_entities=[
        _entity("scope_selection", "J58"),
    ])

    assert res.status_code == 404


def test_unresolved_reference_is_refused(client, make_assessment):
    a, snapshot = _baseline(make_assessment)
    other = make_assessment(company_name="Other AG", gaps=[{"resolution_type": "WORKAROUND"}])
    foreign_gap = GapResolution.query.filter_by(assessment_id=other.id).one().id

    res = _post(client, a.id, baseline_snapshot_id=snapshot.id, unlocked_entities=[
        _entity("scope_selection", "J58"),
        _entity("gap_resolution", foreign_gap),
    ])

    assert res.status_code == 422
    body = res.get_json()
    assert body["code"] == "ERR_DATA_INTEGRITY"
    assert body["details"]["unresolved"] == [{"entity_type": "gap_resolution", "entity_id": foreign_gap}]
    assert change_request_service.list_change_requests(a.id) == []


def test_tampered_baseline_is_refused(client, make_assessment):
    a, snapshot = _baseline(make_assessment)
    table = AssessmentSnapshot.__table__
    _db.session.execute(update(table).where(table.c.id == snapshot.id).values(payload={"x": 1}))
    _db.session.commit()

    res = _post(client, a.id, baseline_snapshot_id=snapshot.id, unlocked_entities=[
        _entity("scope_selection", "J58"),
    ])

    assert res.status_code == 422
    assert res.get_json()["code"] == "ERR_DATA_INTEGRITY"


@pytest.mark.parametrize("field", ["baseline_snapshot_id", "title", "reason", "requested_by"])
def test_required_fields(client, make_assessment, field):
    a, snapshot = _baseline(make_assessment)
    payload = {
        "baseline_snapshot_id": snapshot.id,
        "unlocked_entities": [_entity("scope_selection", "J58")],
        field: "",
    }

    assert _post(client, a.id, **payload).status_code == 400


def test_empty_entity_list_is_400(client, make_assessment):
    a, snapshot = _baseline(make_assessment)
    assert _post(client, a.id, baseline_snapshot_id=snapshot.id).status_code == 400


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_entity_without_reason_is_refused(client, make_assessment, reason):
    a, snapshot = _baseline(make_assessment)

    res = _post(client, a.id, baseline_snapshot_id=snapshot.id, unlocked_entities=[
        _entity("scope_selection", "J58", reason=reason),
    ])

    assert res.status_code == 422
    body = res.get_json()
    assert body["code"] == "ERR_VALIDATION_CONSTRAINT"
    assert body["details"] == {"unlocked_entities[0].reason": "required"}
    assert change_request_service.list_change_requests(a.id) == []


def test_unknown_entity_type_is_422(client, make_assessment):
    a, snapshot = _baseline(make_assessment)
    res = _post(client, a.id, baseline_snapshot_id=snapshot.id, unlocked_entities=[
        _entity("workshop", "w-1"),
    ])
    assert res.status_code == 422
    assert res.get_json()["code"] == "ERR_VALIDATION_CONSTRAINT"


# ── Decisions & listing ──────────────────────────────────────────────────────


def test_approve_and_list(client, make_assessment):
    a, snapshot = _baseline(make_assessment)
    created = _post(client, a.id, baseline_snapshot_id=snapshot.id, unlocked_entities=[
        _entity("scope_selection", "J58"),
    ]).get_json()
    base = f"/api/v1/assessments/{a.id}/change-requests"

    res = client.patch(f"{base}/{created['id']}", json={"status": "approved", "decided_by": "pm-1"})
    assert res.status_code == 200
    assert res.get_json()["status"] == "approved"
    assert res.get_json()["decided_by"] == "pm-1"

    assert client.get(f"{base}?status=approved").get_json()["total"] == 1
    assert client.get(f"{base}?status=requested").get_json()["total"] == 0
    assert client.get(f"{base}?status=bogus").status_code == 400

    # decisions are final
    res = client.patch(f"{base}/{created['id']}", json={"status": "rejected", "decided_by": "pm-1",
                                                        "rejection_reason": "changed mind"})
    assert res.status_code == 422


def test_reject_requires_reason(client, make_assessment):
    a, snapshot = _baseline(make_assessment)
    created = _post(client, a.id, baseline_snapshot_id=snapshot.id, unlocked_entities=[
        _entity("scope_selection", "J58"),
    ]).get_json()
    url = f"/api/v1/assessments/{a.id}/change-requests/{created['id']}"

    assert client.patch(url, json={"status": "rejected", "decided_by": "pm-1"}).status_code == 422

    res = client.patch(url, json={"status": "rejected", "decided_by": "pm-1", "rejection_reason": "Out of budget"})
    assert res.status_code == 200
    assert res.get_json()["rejection_reason"] == "Out of budget"


def test_change_request_of_other_assessment_is_404(client, make_assessment):
    a, snapshot = _baseline(make_assessment)
    other = make_assessment(company_name="Other AG")
    created = _post(client, a.id, baseline_snapshot_id=snapshot.id, unlocked_entities=[
        _entity("scope_selection", "J58"),
    ]).get_json()

    res = client.get(f"/api/v1/assessments/{other.id}/change-requests/{created['id']}")
    assert res.status_code == 404


# ── Audit trail ──────────────────────────────────────────────────────────────


def test_create_and_decide_are_audited(client, make_assessment, default_tenant):
    a, snapshot = _baseline(make_assessment)
    created = _post(client, a.id, baseline_snapshot_id=snapshot.id, unlocked_entities=[
        _entity("scope_selection", "J58"),
    ]).get_json()
    client.patch(
        f"/api/v1/assessments/{a.id}/change-requests/{created['id']}",
        json={"status": "rejected", "decided_by": "pm-1", "rejection_reason": "Out of budget"},
    )

    entries = AuditLog.query.filter_by(entity_type="change_request").order_by(AuditLog.id).all()

    assert [e.action for e in entries] == ["change_request.create", "change_request.reject"]
    create, reject = entries
    assert create.entity_id == created["id"]
    assert create.actor == "consultant-1"
    assert create.reason == "Bank changed file format"
    assert create.tenant_id == default_tenant.id
    assert create.diff["risk_level"] == "low"
    assert create.diff["entities_count"] == 1
    assert reject.actor == "pm-1"
    assert reject.reason == "Out of budget"
    assert reject.diff["status"] == {"old": "requested", "new": "rejected"}


def test_refused_request_leaves_no_audit_entry(client, make_assessment):
    a, snapshot = _baseline(make_assessment)

    _post(client, a.id, baseline_snapshot_id=snapshot.id, unlocked_entities=[
        _entity("gap_resolution", "not-in-this-assessment"),
    ])

    assert AuditLog.query.filter_by(entity_type="change_request").count() == 0
