"""
Sign-off workflow orchestrator.

Drives a SignOffProcess through the validation gates, one submission at a
time:

    1. Lazy stage entry. A gate is entered on its FIRST submission: if the
       process still sits at the gate's entry stage (the previous gate's
       complete stage, or not_started for the area gate) it is moved into
       the gate's in-progress stage before anything else happens.
    2. Rejection. The record is stored and the process moves to
       ``rejected`` with the comment (or a default) as reason.
    3. Approval. The record is stored and flushed, then ALL current-cycle
       records for the gate are re-read from the database; the gate
       completes only when every required validator-type has approved.
    4. Checkpoint. Reaching a checkpoint stage captures a snapshot in the
       same transaction as the stage write; either both commit or neither.

Executive and partner approvals sign the fingerprint of the verified
baseline snapshot the process was started with. Every submission, start
and restart appends an AuditLog entry inside its own transaction.

Submissions for a gate whose process is anywhere other than the gate's
entry or in-progress stage are refused: completion is one-way within a
cycle, and a rejected process needs restart_signoff() first.

Every stage write is a compare-and-swap ``UPDATE ... WHERE stage = :seen``.
Zero rows updated means another submission moved first; the transaction is
rolled back and the whole submission replayed (see transactions.run_with_retry).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from assessment_platform.core.exceptions import (
    ConflictError,
    DataIntegrityError,
    NotFoundError,
    ValidationError,
)
from assessment_platform.models import db
from assessment_platform.models.audit import write_audit
from assessment_platform.models.lifecycle import AssessmentSnapshot
from assessment_platform.models.signoff import (
    VALID_DECISIONS,
    SignOffProcess,
    SignOffStage,
    ValidationRecord,
)
from assessment_platform.services import snapshot_service
from assessment_platform.services.assessment_scope import get_assessment
from assessment_platform.services.signoff_state_machine import (
    SIGNATURE_GATES,
    SNAPSHOT_CHECKPOINTS,
    StageGate,
    available_transitions,
    can_transition,
    gate_for_role,
    gate_for_stage,
    required_role,
)
from assessment_platform.services.transactions import StaleWriteError, run_with_retry

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────────


def _utcnow():
    return datetime.now(timezone.utc)


def _load_process(process_id: str, tenant_id: int | None) -> tuple[SignOffProcess, int | None]:
    """The process plus the tenant that owns its assessment."""
    process = db.session.get(SignOffProcess, process_id, populate_existing=True)
    if process is None:
        raise NotFoundError(resource="SignOffProcess", resource_id=process_id, tenant_id=tenant_id)
    # Cross-tenant access looks exactly like a missing process
    try:
        assessment = get_assessment(process.assessment_id, tenant_id)
    except NotFoundError:
        raise NotFoundError(resource="SignOffProcess", resource_id=process_id, tenant_id=tenant_id) from None
    return process, assessment.tenant_id


def _move_stage(process: SignOffProcess, seen: SignOffStage, target: SignOffStage, **values) -> None:
    """Compare-and-swap the stage column. Raises StaleWriteError if it moved."""
    if not can_transition(seen, target):
        raise ValidationError(
            f"Transition '{seen.value}' -> '{target.value}' is not allowed",
            details={"stage": seen.value, "allowed": [s.value for s in available_transitions(seen)]},
        )
    result = db.session.execute(
        update(SignOffProcess)
        .where(SignOffProcess.id == process.id, SignOffProcess.stage == seen)
        .values(stage=target, updated_at=_utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise StaleWriteError(f"{process.id}: stage is no longer '{seen.value}'")
    logger.info(
        "Sign-off %s: %s -> %s", process.id, seen.value, target.value,
        extra={"process_id": process.id, "assessment_id": process.assessment_id, "stage": target.value},
    )


def _upsert_record(process, stage_role, decision, validator_id, comment, fingerprint) -> ValidationRecord:
    record = db.session.execute(
        select(ValidationRecord).where(
            ValidationRecord.process_id == process.id,
            ValidationRecord.stage_role == stage_role,
        )
    ).scalar_one_or_none()
    if record is None:
        record = ValidationRecord(process_id=process.id, stage_role=stage_role)
        db.session.add(record)
    record.validator_id = str(validator_id)
    record.decision = decision
    record.comment = comment
    record.document_fingerprint = fingerprint
    record.cycle = process.cycle
    record.validated_at = _utcnow()
    return record


def _approved_roles(process: SignOffProcess, gate: StageGate) -> set[str]:
    """Roles of ``gate`` with an approval in the current cycle, read from the database."""
    return set(db.session.execute(
        select(ValidationRecord.stage_role).where(
            ValidationRecord.process_id == process.id,
            ValidationRecord.cycle == process.cycle,
            ValidationRecord.decision == "approved",
            ValidationRecord.stage_role.in_(gate.required_roles),
        )
    ).scalars())


def _signed_fingerprint(process: SignOffProcess) -> str:
    """Fingerprint of the verified baseline snapshot. A signature without one is refused."""
    snapshot = None
    if process.baseline_snapshot_id:
        snapshot = db.session.get(AssessmentSnapshot, process.baseline_snapshot_id)
    if snapshot is None:
        raise DataIntegrityError(
            "Sign-off has no baseline snapshot to sign",
            details={"process_id": process.id, "baseline_snapshot_id": process.baseline_snapshot_id},
        )
    snapshot_service.assert_snapshot_integrity(snapshot)
    return snapshot.fingerprint


def _checkpoint_stages() -> frozenset:
    configured = current_app.config.get("SIGNOFF_SNAPSHOT_CHECKPOINTS")
    if configured is None:
        return SNAPSHOT_CHECKPOINTS
    return frozenset(SignOffStage(s) for s in configured)


def _capture_checkpoint(process: SignOffProcess, stage: SignOffStage, actor_id: str, tenant_id) -> str:
    """Snapshot the assessment in the current transaction and point the process at it."""
    snapshot = snapshot_service.capture_snapshot(
        process.assessment_id,
        reason=f"Automatic capture at sign-off stage '{stage.value}' (cycle {process.cycle})",
        creator_id=actor_id,
        tenant_id=tenant_id,
        label=f"Sign-off: {stage.label}",
    )
    db.session.execute(
        update(SignOffProcess)
        .where(SignOffProcess.id == process.id)
        .values(final_snapshot_id=snapshot.id)
        .execution_options(synchronize_session=False)
    )
    return snapshot.id


# ── Public API ─────────────────────────────────────────────────────────────────


def start_signoff(
    assessment_id: str,
    initiated_by: str,
    *,
    tenant_id: int | None = None,
    baseline_snapshot_id: str | None = None,
) -> SignOffProcess:
    """Create the assessment's sign-off process at ``not_started``.

    The baseline snapshot is the document the executive and partner sign.

    Raises:
        ValidationError: no baseline snapshot given.
        NotFoundError: assessment (or baseline snapshot of it) missing.
        ConflictError: the assessment already has a sign-off process.
        DataIntegrityError: baseline snapshot fails verification.
    """
    if not baseline_snapshot_id:
        raise ValidationError(
            "A baseline snapshot is required to start sign-off",
            details={"baseline_snapshot_id": "required"},
        )
    assessment = get_assessment(assessment_id, tenant_id)
    existing = db.session.execute(
        select(SignOffProcess.id).where(SignOffProcess.assessment_id == assessment_id)
    ).first()
    if existing:
        raise ConflictError("SignOffProcess", "assessment_id", assessment_id)

    baseline = snapshot_service.get_snapshot_by_id(assessment_id, baseline_snapshot_id, tenant_id=tenant_id)
    snapshot_service.assert_snapshot_integrity(baseline)

    process = SignOffProcess(
        assessment_id=assessment_id,
        stage=SignOffStage.NOT_STARTED,
        cycle=1,
        baseline_snapshot_id=baseline.id,
        initiated_by=str(initiated_by) if initiated_by else None,
    )
    db.session.add(process)
    try:
        db.session.flush()
        write_audit(
            assessment_id=assessment_id,
            tenant_id=assessment.tenant_id,
            entity_type="signoff_process",
            entity_id=process.id,
            action="signoff.start",
            actor=initiated_by,
            diff={
                "stage": SignOffStage.NOT_STARTED.value,
                "baseline_snapshot_id": baseline.id,
                "baseline_fingerprint": baseline.fingerprint,
            },
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("SignOffProcess", "assessment_id", assessment_id) from None

    logger.info(
        "Sign-off started for assessment %s", assessment_id,
        extra={"assessment_id": assessment_id, "process_id": process.id, "event_type": "signoff_started"},
    )
    return process


def submit_validation(
    process_id: str,
    stage_role: str,
    decision: str,
    validator_id: str,
    comment: str | None = None,
    *,
    tenant_id: int | None = None,
) -> dict:
    """Apply one validation submission.

    Returns ``{"stage", "completed", ...}`` where ``completed`` is True when
    this submission completed the gate ``stage_role`` belongs to.

    Raises:
        ValidationError: unknown role / decision, or the process is not at
            this gate (already past it, not yet reached, or rejected).
        NotFoundError: process missing or outside the tenant.
        ConcurrencyConflictError: kept losing races after the bounded retries.
    """
    if decision not in VALID_DECISIONS:
        raise ValidationError(
            f"Invalid decision '{decision}'",
            details={"decision": f"must be one of {sorted(VALID_DECISIONS)}"},
        )
    if not validator_id:
        raise ValidationError("validator_id is required", details={"validator_id": "required"})
    gate = gate_for_role(stage_role)
    comment = (comment or "").strip() or None

    def _apply():
        process, owner_tenant_id = _load_process(process_id, tenant_id)
        stage = previous = process.stage

        if stage == gate.entry:
            _move_stage(process, stage, gate.in_progress)
            stage = gate.in_progress
        elif stage != gate.in_progress:
            raise ValidationError(
                f"Cannot submit '{stage_role}' validation while sign-off is '{stage.value}'",
                details={
                    "stage": stage.value,
                    "accepted_stages": [gate.entry.value, gate.in_progress.value],
                },
            )

        fingerprint = None
        if decision == "approved" and gate.name in SIGNATURE_GATES:
            fingerprint = _signed_fingerprint(process)
        record = _upsert_record(process, stage_role, decision, validator_id, comment, fingerprint)

        if decision == "rejected":
            reason = comment or f"{gate.label} validation rejected"
            _move_stage(process, stage, SignOffStage.REJECTED, rejection_reason=reason)
            stage = SignOffStage.REJECTED
        else:
            db.session.flush()
            if _approved_roles(process, gate) >= gate.required_roles:
                _move_stage(process, stage, gate.complete)
                stage = gate.complete

        snapshot_id = None
        if stage != previous and stage in _checkpoint_stages():
            snapshot_id = _capture_checkpoint(process, stage, validator_id, tenant_id)

        write_audit(
            assessment_id=process.assessment_id,
            tenant_id=owner_tenant_id,
            entity_type="signoff_process",
            entity_id=process.id,
            action="signoff.approve" if decision == "approved" else "signoff.reject",
            actor=validator_id,
            reason=comment,
            diff={
                "stage_role": stage_role,
                "cycle": process.cycle,
                "stage": {"old": previous.value, "new": stage.value},
                "document_fingerprint": fingerprint,
                "checkpoint_snapshot_id": snapshot_id,
            },
        )
        db.session.commit()
        return stage, record

    new_stage, record = run_with_retry(
        "submit_validation", _apply, process_id=process_id,
    )
    logger.info(
        "Validation %s by %s (%s) on sign-off %s", decision, validator_id, stage_role, process_id,
        extra={"process_id": process_id, "stage": new_stage.value, "event_type": "validation_submitted"},
    )

    return {
        "process_id": process_id,
        "stage": new_stage.value,
        "stage_label": new_stage.label,
        "completed": new_stage == gate.complete,
        "record": record.to_dict(),
    }


def restart_signoff(process_id: str, actor_id: str, *, tenant_id: int | None = None) -> SignOffProcess:
    """``rejected → not_started`` with a new cycle. Earlier records are kept for audit."""

    def _apply():
        process, owner_tenant_id = _load_process(process_id, tenant_id)
        if process.stage != SignOffStage.REJECTED:
            raise ValidationError(
                f"Only a rejected sign-off can be restarted (current stage '{process.stage.value}')",
                details={"stage": process.stage.value},
            )
        _move_stage(
            process, SignOffStage.REJECTED, SignOffStage.NOT_STARTED,
            cycle=SignOffProcess.cycle + 1,
            rejection_reason=None,
        )
        write_audit(
            assessment_id=process.assessment_id,
            tenant_id=owner_tenant_id,
            entity_type="signoff_process",
            entity_id=process.id,
            action="signoff.restart",
            actor=actor_id,
            reason=process.rejection_reason,
            diff={
                "stage": {"old": SignOffStage.REJECTED.value, "new": SignOffStage.NOT_STARTED.value},
                "cycle": {"old": process.cycle, "new": process.cycle + 1},
            },
        )
        db.session.commit()
        return db.session.get(SignOffProcess, process_id, populate_existing=True)

    process = run_with_retry("restart_signoff", _apply, process_id=process_id)
    logger.info(
        "Sign-off %s restarted by %s (cycle %d)", process_id, actor_id, process.cycle,
        extra={"process_id": process_id, "stage": process.stage.value, "event_type": "signoff_restarted"},
    )
    return process


def get_signoff_status(process_id: str, *, tenant_id: int | None = None) -> dict:
    """Process state, current-cycle records and what can happen next."""
    process, _ = _load_process(process_id, tenant_id)
    stage = process.stage

    current = list(db.session.execute(
        select(ValidationRecord)
        .where(ValidationRecord.process_id == process.id, ValidationRecord.cycle == process.cycle)
        .order_by(ValidationRecord.validated_at.asc())
    ).scalars())

    gate = gate_for_stage(stage)
    pending_roles = []
    if gate is not None:
        approved = {r.stage_role for r in current if r.decision == "approved"}
        pending_roles = sorted(gate.required_roles - approved)

    result = process.to_dict()
    result.update({
        "validations": [r.to_dict() for r in current],
        "available_transitions": [s.value for s in available_transitions(stage)],
        "required_role": required_role(stage),
        "current_gate": gate.name if gate else None,
        "pending_roles": pending_roles,
    })
    return result


def get_signoff_for_assessment(assessment_id: str, *, tenant_id: int | None = None) -> dict:
    get_assessment(assessment_id, tenant_id)
    process_id = db.session.execute(
        select(SignOffProcess.id).where(SignOffProcess.assessment_id == assessment_id)
    ).scalar_one_or_none()
    if process_id is None:
        raise NotFoundError(resource="SignOffProcess", resource_id=assessment_id, tenant_id=tenant_id)
    return get_signoff_status(process_id, tenant_id=tenant_id)
