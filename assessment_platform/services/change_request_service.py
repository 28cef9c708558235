"""
Change request service.

A change request reopens specific entities of an approved assessment. It
references exactly one baseline snapshot of the SAME assessment; its impact
summary is computed once at creation and stored. Later edits to the live
data never touch an existing request's recorded risk.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select

from assessment_platform.core.exceptions import NotFoundError, ValidationError
from assessment_platform.models import db
from assessment_platform.models.assessment import OcmImpact
from assessment_platform.models.audit import write_audit
from assessment_platform.models.lifecycle import (
    CHANGE_REQUEST_TRANSITIONS,
    ChangeRequest,
    validate_change_request_transition,
)
from assessment_platform.services.assessment_scope import get_assessment
from assessment_platform.services.change_impact import compute_impact, resolve_unlocked_entities
from assessment_platform.services.snapshot_service import assert_snapshot_integrity, get_snapshot_by_id

logger = logging.getLogger(__name__)


def create_change_request(
    assessment_id: str,
    baseline_snapshot_id: str,
    unlocked_entities: list[dict],
    title: str,
    reason: str,
    requested_by: str,
    *,
    tenant_id: int | None = None,
) -> ChangeRequest:
    """Create a change request with a frozen impact summary.

    Raises:
        ValidationError: missing title / reason / requester, no entities.
        NotFoundError: assessment missing, or baseline not a snapshot of it.
        DataIntegrityError: baseline fingerprint mismatch, unresolved entity.
    """
    errors = {}
    title = (title or "").strip()
    reason = (reason or "").strip()
    if not title:
        errors["title"] = "required"
    if not reason:
        errors["reason"] = "required"
    if not requested_by:
        errors["requested_by"] = "required"
    if not baseline_snapshot_id:
        errors["baseline_snapshot_id"] = "required"
    if not isinstance(unlocked_entities, list) or not unlocked_entities:
        errors["unlocked_entities"] = "at least one entity is required"
    if errors:
        raise ValidationError("Invalid change request", details=errors)

    assessment = get_assessment(assessment_id, tenant_id)
    baseline = get_snapshot_by_id(assessment_id, baseline_snapshot_id, tenant_id=tenant_id)
    assert_snapshot_integrity(baseline)

    live_ocm_ids = db.session.execute(
        select(OcmImpact.id).where(OcmImpact.assessment_id == assessment_id)
    ).scalars().all()
    entities = resolve_unlocked_entities(unlocked_entities, baseline.payload, live_ocm_ids)

    impact = compute_impact(
        entities,
        baseline.payload,
        escalation_threshold=current_app.config.get("CHANGE_IMPACT_ESCALATION_THRESHOLD", 20),
    )

    cr = ChangeRequest(
        assessment_id=assessment_id,
        baseline_snapshot_id=baseline.id,
        title=title,
        reason=reason,
        unlocked_entities=entities,
        impact_summary=impact.to_dict(),
        risk_level=impact.risk_level.value,
        status="requested",
        requested_by=str(requested_by),
    )
    db.session.add(cr)
    db.session.flush()
    write_audit(
        assessment_id=assessment_id,
        tenant_id=assessment.tenant_id,
        entity_type="change_request",
        entity_id=cr.id,
        action="change_request.create",
        actor=requested_by,
        reason=reason,
        diff={
            "title": title,
            "baseline_snapshot_id": baseline.id,
            "entities_count": impact.total_entities_affected,
            "risk_level": cr.risk_level,
        },
    )
    db.session.commit()

    logger.info(
        "Change request %s created for assessment %s (risk=%s, entities=%d)",
        cr.id, assessment_id, cr.risk_level, impact.total_entities_affected,
        extra={
            "assessment_id": assessment_id,
            "change_request_id": cr.id,
            "risk_level": cr.risk_level,
            "event_type": "change_request_created",
        },
    )
    return cr


def list_change_requests(
    assessment_id: str,
    *,
    tenant_id: int | None = None,
    status: str | None = None,
) -> list[ChangeRequest]:
    get_assessment(assessment_id, tenant_id)
    stmt = select(ChangeRequest).where(ChangeRequest.assessment_id == assessment_id)
    if status:
        stmt = stmt.where(ChangeRequest.status == status)
    return list(db.session.execute(stmt.order_by(ChangeRequest.created_at.desc())).scalars())


def get_change_request(assessment_id: str, change_request_id: str, *, tenant_id: int | None = None) -> ChangeRequest:
    get_assessment(assessment_id, tenant_id)
    cr = db.session.get(ChangeRequest, change_request_id)
    if cr is None or cr.assessment_id != assessment_id:
        raise NotFoundError(resource="ChangeRequest", resource_id=change_request_id)
    return cr


def decide_change_request(
    assessment_id: str,
    change_request_id: str,
    status: str,
    decided_by: str,
    *,
    rejection_reason: str | None = None,
    tenant_id: int | None = None,
) -> ChangeRequest:
    """Approve or reject a pending request. The impact summary is not recomputed."""
    cr = get_change_request(assessment_id, change_request_id, tenant_id=tenant_id)

    if not decided_by:
        raise ValidationError("decided_by is required", details={"decided_by": "required"})
    if not validate_change_request_transition(cr.status, status):
        raise ValidationError(
            f"Cannot move change request from '{cr.status}' to '{status}'",
            details={"allowed": CHANGE_REQUEST_TRANSITIONS.get(cr.status, [])},
        )
    if status == "rejected" and not (rejection_reason or "").strip():
        raise ValidationError(
            "rejection_reason is required to reject a change request",
            details={"rejection_reason": "required"},
        )

    previous = cr.status
    cr.status = status
    cr.decided_by = str(decided_by)
    cr.decided_at = datetime.now(timezone.utc)
    cr.rejection_reason = (rejection_reason or "").strip() or None
    write_audit(
        assessment_id=assessment_id,
        tenant_id=get_assessment(assessment_id, tenant_id).tenant_id,
        entity_type="change_request",
        entity_id=cr.id,
        action=f"change_request.{'approve' if status == 'approved' else 'reject'}",
        actor=decided_by,
        reason=cr.rejection_reason,
        diff={"status": {"old": previous, "new": status}, "risk_level": cr.risk_level},
    )
    db.session.commit()

    logger.info(
        "Change request %s %s by %s", cr.id, status, decided_by,
        extra={"assessment_id": assessment_id, "change_request_id": cr.id, "event_type": "change_request_decided"},
    )
    return cr
