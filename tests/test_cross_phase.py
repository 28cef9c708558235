"""
Tests: Cross-phase analytics.

Pure delta / insight functions first, then the linked-assessment flow over
HTTP: link creation, stored deltas, summary with live fit rates, and the
self-link / duplicate / cross-tenant refusals.
"""

import pytest

from assessment_platform.models.audit import AuditLog
from assessment_platform.services.cross_phase import (
    NO_LINKS_MESSAGE,
    compute_classification_delta,
    compute_fit_rate,
    compute_scope_delta,
    generate_trend_insights,
)


# ── Pure functions ───────────────────────────────────────────────────────────


def test_scope_delta_works_on_selected_items():
    p1 = [
        {"scope_item_id": "J58", "selected": True, "relevance": "HIGH"},
        {"scope_item_id": "J59", "selected": True, "relevance": "MEDIUM"},
        {"scope_item_id": "J61", "selected": False, "relevance": "LOW"},
    ]
    p2 = [
        {"scope_item_id": "J58", "selected": True, "relevance": "MEDIUM"},
        {"scope_item_id": "J59", "selected": False, "relevance": "MEDIUM"},
        {"scope_item_id": "J60", "relevance": "HIGH"},
        {"scope_item_id": "J61", "selected": False, "relevance": "HIGH"},
    ]

    delta = compute_scope_delta(p1, p2)

    assert (delta["added"], delta["removed"], delta["modified"]) == (1, 1, 1)
    by_id = {c["scope_item_id"]: c for c in delta["changes"]}
    assert by_id["J60"]["change_type"] == "added"
    assert by_id["J59"]["change_type"] == "removed"
    assert by_id["J58"] == {
        "scope_item_id": "J58",
        "change_type": "modified",
        "previous_relevance": "HIGH",
        "new_relevance": "MEDIUM",
    }
    assert "J61" not in by_id


def test_classification_delta_counts_transitions():
    p1 = [
        {"process_step_id": "S-1", "fit_status": "FIT"},
        {"process_step_id": "S-2", "fit_status": "gap"},
        {"process_step_id": "S-3", "fit_status": "FIT"},
        {"process_step_id": "S-4", "fit_status": "CONFIGURE"},
        {"process_step_id": "S-5", "fit_status": "FIT"},
    ]
    p2 = [
        {"process_step_id": "S-1", "fit_status": "fit"},
        {"process_step_id": "S-2", "fit_status": "FIT"},
        {"process_step_id": "S-3", "fit_status": "GAP"},
        {"process_step_id": "S-4", "fit_status": "FIT"},
        {"process_step_id": "S-6", "fit_status": "NA"},
    ]

    delta = compute_classification_delta(p1, p2)

    assert delta["gap_to_fit"] == 1
    assert delta["fit_to_gap"] == 1
    assert delta["configure_to_fit"] == 1
    assert delta["fit_to_configure"] == 0
    assert (delta["added"], delta["removed"], delta["modified"]) == (1, 1, 3)
    assert "S-1" not in {c["process_step_id"] for c in delta["changes"]}


def test_fit_rate():
    assert compute_fit_rate([]) == 0.0
    responses = [{"fit_status": s} for s in ("FIT", "FIT", "GAP")]
    assert compute_fit_rate(responses) == 66.67


@pytest.mark.parametrize("p1,p2,expected", [
    (60.0, 80.0, "FIT rate improved by 20.0 percentage points."),
    (80.0, 65.5, "FIT rate decreased by 14.5 percentage points."),
    (70.0, 70.5, "No material change in FIT rate between phases (70.0% vs 70.5%)."),
])
def test_fit_rate_sentence(p1, p2, expected):
    insights = generate_trend_insights({}, {}, p1, p2)
    assert insights == [expected]


def test_material_change_threshold_is_configurable():
    assert generate_trend_insights({}, {}, 70.0, 70.5, material_change_pp=0.5)[0] == (
        "FIT rate improved by 0.5 percentage points."
    )


def test_insights_follow_fixed_order():
    insights = generate_trend_insights(
        {"added": 2, "removed": 1, "modified": 3},
        {"added": 4, "removed": 5, "gap_to_fit": 6, "fit_to_gap": 7},
        50.0, 50.0,
    )
    assert insights[1:] == [
        "2 scope item(s) were added in the second phase.",
        "1 scope item(s) were removed in the second phase.",
        "3 scope item(s) had relevance changes.",
        "4 process step(s) were classified for the first time.",
        "5 process step(s) were no longer classified.",
        "6 step(s) improved from GAP to FIT.",
        "7 step(s) regressed from FIT to GAP.",
    ]


# ── Linked assessments over HTTP ─────────────────────────────────────────────


def _two_phases(make_assessment, tenant=None):
    phase1 = make_assessment(
        company_name="Acme Phase 1",
        tenant=tenant,
        scope=[("J58", True, "HIGH"), ("J59", True, "MEDIUM")],
        steps=[("S-1", "FIT"), ("S-2", "FIT"), ("S-3", "FIT"), ("S-4", "GAP"), ("S-5", "GAP")],
    )
    phase2 = make_assessment(
        company_name="Acme Phase 2",
        tenant=tenant,
        scope=[("J58", True, "MEDIUM"), ("J59", False, "MEDIUM"), ("J60", True, "HIGH")],
        steps=[("S-1", "FIT"), ("S-2", "FIT"), ("S-3", "FIT"), ("S-4", "FIT"), ("S-6", "GAP")],
    )
    return phase1, phase2


def _link(client, phase1_id, phase2_id, **extra):
    payload = {
        "phase1_assessment_id": phase1_id,
        "phase2_assessment_id": phase2_id,
        "client_identifier": "ACME",
        "linked_by": "consultant-1",
        **extra,
    }
    return client.post("/api/v1/cross-phase/links", json=payload)


def test_link_and_summary_end_to_end(client, make_assessment):
    phase1, phase2 = _two_phases(make_assessment)

    res = _link(client, phase1.id, phase2.id)

    assert res.status_code == 201, res.get_json()
    link = res.get_json()
    assert link["client_identifier"] == "ACME"
    classification = link["classification_delta"]
    assert classification["added"] == 1
    assert classification["removed"] == 1
    assert classification["gap_to_fit"] == 1
    assert link["scope_delta"]["added"] == 1
    assert link["scope_delta"]["removed"] == 1
    assert link["scope_delta"]["modified"] == 1

    res = client.get(f"/api/v1/cross-phase/{phase2.id}")
    assert res.status_code == 200
    summary = res.get_json()
    assert len(summary["links"]) == 1
    rates = {p["assessment_id"]: p["fit_rate"] for p in summary["phase_summaries"]}
    assert rates == {phase1.id: 60.0, phase2.id: 80.0}
    assert summary["insights"] == [
        "FIT rate improved by 20.0 percentage points.",
        "1 scope item(s) were added in the second phase.",
        "1 scope item(s) were removed in the second phase.",
        "1 scope item(s) had relevance changes.",
        "1 process step(s) were classified for the first time.",
        "1 process step(s) were no longer classified.",
        "1 step(s) improved from GAP to FIT.",
    ]


def test_ten_response_phases_improve_by_twenty_points(client, make_assessment):
    phase1_steps = (
        [(f"S-{i:02d}", "FIT") for i in range(1, 7)]
        + [("S-07", "GAP"), ("S-08", "GAP"), ("S-09", "CONFIGURE"), ("S-10", "CONFIGURE")]
    )
    phase2_steps = (
        [(f"S-{i:02d}", "FIT") for i in range(1, 7)]
        + [("S-07", "FIT"), ("S-08", "GAP"), ("S-09", "FIT"), ("S-11", "CONFIGURE")]
    )
    phase1 = make_assessment(
        company_name="Acme Phase 1",
        scope=[("J58", True, "HIGH"), ("J59", True, "MEDIUM")],
        steps=phase1_steps,
    )
    phase2 = make_assessment(
        company_name="Acme Phase 2",
        scope=[("J58", True, "HIGH"), ("J59", True, "MEDIUM"), ("J60", True, "HIGH")],
        steps=phase2_steps,
    )

    link = _link(client, phase1.id, phase2.id).get_json()

    classification = link["classification_delta"]
    assert [c["process_step_id"] for c in classification["changes"] if c["change_type"] == "added"] == ["S-11"]
    assert classification["added"] == 1
    assert classification["gap_to_fit"] == 1
    assert classification["configure_to_fit"] == 1
    assert link["scope_delta"]["changes"] == [{
        "scope_item_id": "J60",
        "change_type": "added",
        "previous_relevance": None,
        "new_relevance": "HIGH",
    }]

    summary = client.get(f"/api/v1/cross-phase/{phase1.id}").get_json()
    by_id = {p["assessment_id"]: p for p in summary["phase_summaries"]}
    assert (by_id[phase1.id]["fit_count"], by_id[phase1.id]["gap_count"], by_id[phase1.id]["configure_count"]) == (6, 2, 2)
    assert (by_id[phase2.id]["fit_count"], by_id[phase2.id]["gap_count"], by_id[phase2.id]["configure_count"]) == (8, 1, 1)
    assert by_id[phase1.id]["fit_rate"] == 60.0
    assert by_id[phase2.id]["fit_rate"] == 80.0
    assert summary["insights"][0] == "FIT rate improved by 20.0 percentage points."
    assert "1 scope item(s) were added in the second phase." in summary["insights"]


def test_link_is_audited(client, make_assessment):
    phase1, phase2 = _two_phases(make_assessment)
    link = _link(client, phase1.id, phase2.id).get_json()

    entry = AuditLog.query.filter_by(entity_type="phase_link").one()
    assert entry.entity_id == link["id"]
    assert entry.action == "phase_link.create"
    assert entry.actor == "consultant-1"
    assert entry.assessment_id == phase2.id


def test_summary_without_links_is_explicit(client, make_assessment):
    a = make_assessment()

    res = client.get(f"/api/v1/cross-phase/{a.id}")

    assert res.status_code == 200
    body = res.get_json()
    assert body["links"] == []
    assert body["insights"] == [NO_LINKS_MESSAGE]


def test_self_link_is_refused(client, make_assessment):
    a = make_assessment()
    res = _link(client, a.id, a.id)
    assert res.status_code == 422


def test_duplicate_link_in_either_order_conflicts(client, make_assessment):
    phase1, phase2 = _two_phases(make_assessment)
    assert _link(client, phase1.id, phase2.id).status_code == 201

    assert _link(client, phase1.id, phase2.id).status_code == 409
    assert _link(client, phase2.id, phase1.id).status_code == 409


def test_cross_tenant_link_is_404(client, make_assessment, other_tenant):
    phase1 = make_assessment(company_name="Acme Phase 1")
    phase2 = make_assessment(company_name="Acme Phase 2", tenant=other_tenant)

    assert _link(client, phase1.id, phase2.id).status_code == 404


def test_summary_is_tenant_scoped(client, make_assessment, other_tenant):
    phase1, phase2 = _two_phases(make_assessment)
    _link(client, phase1.id, phase2.id)

    res = client.get(f"/api/v1/cross-phase/{phase1.id}", headers={"X-Tenant-ID": str(other_tenant.id)})

    assert res.status_code == 404


@pytest.mark.parametrize("missing", ["phase1_assessment_id", "phase2_assessment_id", "client_identifier"])
def test_link_requires_fields(client, make_assessment, missing):
    phase1, phase2 = _two_phases(make_assessment)
    res = _link(client, phase1.id, phase2.id, **{missing: ""})
    assert res.status_code == 400
