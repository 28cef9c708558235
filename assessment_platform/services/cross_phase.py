"""
Cross-phase analytics — scope / classification deltas between two
assessments of the same client, and the trend sentences derived from them.

The compute_* and generate_* functions are pure and work on plain dicts,
so they apply equally to live rows and to snapshot payloads. link_phases()
and get_cross_phase_summary() are the DB-backed entry points.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from assessment_platform.core.exceptions import ConflictError, NotFoundError, ValidationError
from assessment_platform.models import db
from assessment_platform.models.assessment import ScopeSelection, StepResponse
from assessment_platform.models.audit import write_audit
from assessment_platform.models.cross_phase import PhaseLink
from assessment_platform.services.assessment_scope import get_assessment

logger = logging.getLogger(__name__)

NO_LINKS_MESSAGE = "No cross-phase links found for this assessment."


# ═════════════════════════════════════════════════════════════════════════════
# Pure computations
# ═════════════════════════════════════════════════════════════════════════════


def compute_scope_delta(phase1_selections: list[dict], phase2_selections: list[dict]) -> dict:
    """Diff the SELECTED scope items of two phases.

    added     selected in phase 2 only
    removed   selected in phase 1, deselected or absent in phase 2
    modified  selected in both, relevance differs

    A record without a ``selected`` key counts as selected.
    """
    p1 = {s["scope_item_id"]: s for s in phase1_selections}
    p2 = {s["scope_item_id"]: s for s in phase2_selections}
    sel1 = {sid for sid, s in p1.items() if s.get("selected", True)}
    sel2 = {sid for sid, s in p2.items() if s.get("selected", True)}

    changes = []
    for sid in sorted(sel1 | sel2):
        if sid not in sel1:
            changes.append({
                "scope_item_id": sid,
                "change_type": "added",
                "previous_relevance": None,
                "new_relevance": p2[sid].get("relevance"),
            })
        elif sid not in sel2:
            changes.append({
                "scope_item_id": sid,
                "change_type": "removed",
                "previous_relevance": p1[sid].get("relevance"),
                "new_relevance": None,
            })
        elif p1[sid].get("relevance") != p2[sid].get("relevance"):
            changes.append({
                "scope_item_id": sid,
                "change_type": "modified",
                "previous_relevance": p1[sid].get("relevance"),
                "new_relevance": p2[sid].get("relevance"),
            })

    return {
        "changes": changes,
        "added": sum(1 for c in changes if c["change_type"] == "added"),
        "removed": sum(1 for c in changes if c["change_type"] == "removed"),
        "modified": sum(1 for c in changes if c["change_type"] == "modified"),
    }


def _status(response: dict) -> str:
    return (response.get("fit_status") or "").upper()


def compute_classification_delta(phase1_responses: list[dict], phase2_responses: list[dict]) -> dict:
    """Per process step fit-status comparison (case-insensitive)."""
    p1 = {r["process_step_id"]: _status(r) for r in phase1_responses}
    p2 = {r["process_step_id"]: _status(r) for r in phase2_responses}

    changes = []
    transitions = {"fit_to_gap": 0, "gap_to_fit": 0, "fit_to_configure": 0, "configure_to_fit": 0}
    for step_id in sorted(set(p1) | set(p2)):
        old, new = p1.get(step_id), p2.get(step_id)
        if old is None:
            change_type = "added"
        elif new is None:
            change_type = "removed"
        elif old != new:
            change_type = "modified"
            key = f"{old.lower()}_to_{new.lower()}"
            if key in transitions:
                transitions[key] += 1
        else:
            continue
        changes.append({
            "process_step_id": step_id,
            "change_type": change_type,
            "previous_status": old,
            "new_status": new,
        })

    return {
        "changes": changes,
        "added": sum(1 for c in changes if c["change_type"] == "added"),
        "removed": sum(1 for c in changes if c["change_type"] == "removed"),
        "modified": sum(1 for c in changes if c["change_type"] == "modified"),
        **transitions,
    }


def compute_fit_rate(responses: list[dict]) -> float:
    """FIT responses as a percentage of all responses; 0.0 when there are none."""
    if not responses:
        return 0.0
    fit = sum(1 for r in responses if _status(r) == "FIT")
    return round(fit * 100 / len(responses), 2)


def generate_trend_insights(
    scope_delta: dict,
    classification_delta: dict,
    phase1_fit_rate: float,
    phase2_fit_rate: float,
    *,
    material_change_pp: float = 1.0,
) -> list[str]:
    """Ordered, templated sentences describing the trend between two phases."""
    insights = []
    change = round(phase2_fit_rate - phase1_fit_rate, 1)

    if change > 0 and change >= material_change_pp:
        insights.append(f"FIT rate improved by {change:.1f} percentage points.")
    elif change < 0 and -change >= material_change_pp:
        insights.append(f"FIT rate decreased by {-change:.1f} percentage points.")
    else:
        insights.append(
            f"No material change in FIT rate between phases "
            f"({phase1_fit_rate:.1f}% vs {phase2_fit_rate:.1f}%)."
        )

    if scope_delta.get("added"):
        insights.append(f"{scope_delta['added']} scope item(s) were added in the second phase.")
    if scope_delta.get("removed"):
        insights.append(f"{scope_delta['removed']} scope item(s) were removed in the second phase.")
    if scope_delta.get("modified"):
        insights.append(f"{scope_delta['modified']} scope item(s) had relevance changes.")

    if classification_delta.get("added"):
        insights.append(
            f"{classification_delta['added']} process step(s) were classified for the first time."
        )
    if classification_delta.get("removed"):
        insights.append(
            f"{classification_delta['removed']} process step(s) were no longer classified."
        )
    if classification_delta.get("gap_to_fit"):
        insights.append(f"{classification_delta['gap_to_fit']} step(s) improved from GAP to FIT.")
    if classification_delta.get("fit_to_gap"):
        insights.append(f"{classification_delta['fit_to_gap']} step(s) regressed from FIT to GAP.")

    return insights


# ═════════════════════════════════════════════════════════════════════════════
# DB-backed operations
# ═════════════════════════════════════════════════════════════════════════════


def _selections(assessment_id: str) -> list[dict]:
    rows = db.session.execute(
        select(ScopeSelection).where(ScopeSelection.assessment_id == assessment_id)
    ).scalars()
    return [r.to_dict() for r in rows]


def _responses(assessment_id: str) -> list[dict]:
    rows = db.session.execute(
        select(StepResponse).where(StepResponse.assessment_id == assessment_id)
    ).scalars()
    return [r.to_dict() for r in rows]


def link_phases(
    phase1_id: str,
    phase2_id: str,
    client_identifier: str,
    linked_by: str | None = None,
    *,
    tenant_id: int | None = None,
) -> PhaseLink:
    """Link two assessments as successive phases and store their deltas.

    Raises:
        ValidationError: self-link or missing client identifier.
        NotFoundError: either assessment missing or outside the tenant.
        ConflictError: the pair is already linked (in either order).
    """
    if not phase1_id or not phase2_id:
        raise ValidationError(
            "phase1_assessment_id and phase2_assessment_id are required",
            details={"phase1_assessment_id": "required", "phase2_assessment_id": "required"},
        )
    if phase1_id == phase2_id:
        raise ValidationError(
            "An assessment cannot be linked to itself",
            details={"phase2_assessment_id": "must differ from phase1_assessment_id"},
        )
    client_identifier = (client_identifier or "").strip()
    if not client_identifier:
        raise ValidationError("client_identifier is required", details={"client_identifier": "required"})

    phase1 = get_assessment(phase1_id, tenant_id)
    phase2 = get_assessment(phase2_id, tenant_id)
    if phase1.tenant_id != phase2.tenant_id:
        raise NotFoundError(resource="Assessment", resource_id=phase2_id, tenant_id=phase1.tenant_id)

    existing = db.session.execute(
        select(PhaseLink.id).where(or_(
            (PhaseLink.phase1_assessment_id == phase1_id) & (PhaseLink.phase2_assessment_id == phase2_id),
            (PhaseLink.phase1_assessment_id == phase2_id) & (PhaseLink.phase2_assessment_id == phase1_id),
        ))
    ).first()
    if existing:
        raise ConflictError("PhaseLink", "assessment_pair", f"{phase1_id}/{phase2_id}")

    link = PhaseLink(
        tenant_id=phase1.tenant_id,
        client_identifier=client_identifier,
        phase1_assessment_id=phase1_id,
        phase2_assessment_id=phase2_id,
        scope_delta=compute_scope_delta(_selections(phase1_id), _selections(phase2_id)),
        classification_delta=compute_classification_delta(_responses(phase1_id), _responses(phase2_id)),
        linked_by=str(linked_by) if linked_by else None,
    )
    db.session.add(link)
    try:
        db.session.flush()
        write_audit(
            assessment_id=phase2_id,
            tenant_id=phase1.tenant_id,
            entity_type="phase_link",
            entity_id=link.id,
            action="phase_link.create",
            actor=linked_by or "system",
            diff={
                "phase1_assessment_id": phase1_id,
                "phase2_assessment_id": phase2_id,
                "client_identifier": client_identifier,
            },
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("PhaseLink", "assessment_pair", f"{phase1_id}/{phase2_id}") from None

    logger.info(
        "Linked assessment %s -> %s for client %s", phase1_id, phase2_id, client_identifier,
        extra={"assessment_id": phase1_id, "tenant_id": phase1.tenant_id, "event_type": "phase_linked"},
    )
    return link


def _phase_summary(assessment) -> dict:
    responses = _responses(assessment.id)
    counts = {"FIT": 0, "GAP": 0, "CONFIGURE": 0, "NA": 0}
    for r in responses:
        status = _status(r)
        if status in counts:
            counts[status] += 1
    return {
        "assessment_id": assessment.id,
        "company_name": assessment.company_name,
        "total_steps": len(responses),
        "fit_count": counts["FIT"],
        "gap_count": counts["GAP"],
        "configure_count": counts["CONFIGURE"],
        "na_count": counts["NA"],
        "fit_rate": compute_fit_rate(responses),
        "selected_scope_items": sum(1 for s in _selections(assessment.id) if s["selected"]),
    }


def get_cross_phase_summary(assessment_id: str, *, tenant_id: int | None = None) -> dict:
    """Links touching the assessment, live summaries of every linked phase,
    and insights for the most recent link. No links is a valid, explicit result.
    """
    assessment = get_assessment(assessment_id, tenant_id)

    links = list(db.session.execute(
        select(PhaseLink)
        .where(
            PhaseLink.tenant_id == assessment.tenant_id,
            or_(
                PhaseLink.phase1_assessment_id == assessment_id,
                PhaseLink.phase2_assessment_id == assessment_id,
            ),
        )
        .order_by(PhaseLink.linked_at.desc())
    ).scalars())

    if not links:
        return {
            "assessment_id": assessment_id,
            "links": [],
            "phase_summaries": [],
            "insights": [NO_LINKS_MESSAGE],
        }

    ordered_ids = []
    for link in links:
        for aid in (link.phase1_assessment_id, link.phase2_assessment_id):
            if aid not in ordered_ids:
                ordered_ids.append(aid)
    summaries = {aid: _phase_summary(get_assessment(aid, assessment.tenant_id)) for aid in ordered_ids}

    latest = links[0]
    insights = generate_trend_insights(
        latest.scope_delta,
        latest.classification_delta,
        summaries[latest.phase1_assessment_id]["fit_rate"],
        summaries[latest.phase2_assessment_id]["fit_rate"],
        material_change_pp=current_app.config.get("CROSS_PHASE_MATERIAL_CHANGE_PP", 1.0),
    )
    return {
        "assessment_id": assessment_id,
        "links": [link.to_dict() for link in links],
        "phase_summaries": [summaries[aid] for aid in ordered_ids],
        "insights": insights,
    }
