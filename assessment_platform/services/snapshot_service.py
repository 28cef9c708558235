"""
Assessment snapshot engine.

Captures an immutable, versioned, fingerprinted copy of an assessment's
classification data (scope selections, step responses, gap resolutions,
integration points, data-migration objects).

Design decisions:
    - The payload is assembled from a ``SnapshotSource``, a narrow read
      interface. The ORM-backed source is the default; tests and callers
      with data already in memory can pass their own.
    - Version = max(version) + 1, assigned while holding a row lock on the
      assessment. The (assessment_id, version) unique constraint is the
      backstop: a collision rolls back and the whole capture is retried
      up to TRANSACTION_RETRY_ATTEMPTS times, then ConcurrencyConflictError.
    - The fingerprint covers the whole payload (header, collections and
      statistics) and is order-independent for the collections.
    - An assessment with no records yields a valid snapshot with zeroed
      statistics.
"""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import func, select

from assessment_platform.core.exceptions import (
    DataIntegrityError,
    NotFoundError,
    ValidationError,
)
from assessment_platform.models import db
from assessment_platform.models.assessment import (
    Assessment,
    DataMigrationObject,
    GapResolution,
    IntegrationPoint,
    ScopeSelection,
    StepResponse,
)
from assessment_platform.models.audit import write_audit
from assessment_platform.models.lifecycle import AssessmentSnapshot
from assessment_platform.services.assessment_scope import get_assessment
from assessment_platform.services.fingerprint import compute_fingerprint, verify_fingerprint
from assessment_platform.services.snapshot_delta import compute_delta_report, compute_delta_summary
from assessment_platform.services.transactions import run_with_retry

logger = logging.getLogger(__name__)

SNAPSHOT_COLLECTIONS = (
    "scope_selections",
    "step_responses",
    "gap_resolutions",
    "integration_points",
    "data_migration_objects",
)


# ── Snapshot source ───────────────────────────────────────────────────────────


class SnapshotSource(Protocol):
    """Read-only access to the records a snapshot captures."""

    def assessment_header(self, assessment_id: str) -> dict | None: ...

    def scope_selections(self, assessment_id: str) -> list[dict]: ...

    def step_responses(self, assessment_id: str) -> list[dict]: ...

    def gap_resolutions(self, assessment_id: str) -> list[dict]: ...

    def integration_points(self, assessment_id: str) -> list[dict]: ...

    def data_migration_objects(self, assessment_id: str) -> list[dict]: ...


class SqlAlchemySnapshotSource:
    """SnapshotSource over the live ORM tables, optionally tenant-scoped."""

    def __init__(self, tenant_id: int | None = None):
        self.tenant_id = tenant_id

    def assessment_header(self, assessment_id):
        a = db.session.get(Assessment, assessment_id)
        if a is None or (self.tenant_id is not None and a.tenant_id != self.tenant_id):
            return None
        return {
            "id": a.id,
            "company_name": a.company_name,
            "industry": a.industry,
            "country": a.country,
            "status": a.status,
        }

    @staticmethod
    def _rows(model, assessment_id):
        rows = db.session.execute(
            select(model).where(model.assessment_id == assessment_id)
        ).scalars()
        return [r.to_dict() for r in rows]

    def scope_selections(self, assessment_id):
        return self._rows(ScopeSelection, assessment_id)

    def step_responses(self, assessment_id):
        return self._rows(StepResponse, assessment_id)

    def gap_resolutions(self, assessment_id):
        return self._rows(GapResolution, assessment_id)

    def integration_points(self, assessment_id):
        return self._rows(IntegrationPoint, assessment_id)

    def data_migration_objects(self, assessment_id):
        return self._rows(DataMigrationObject, assessment_id)


# ── Pure payload assembly ─────────────────────────────────────────────────────


def _fit(record: dict) -> str:
    return (record.get("fit_status") or "").upper()


def compute_statistics(collections: dict) -> dict:
    """Aggregate counters over the captured collections. Missing collections count as empty."""
    scope = collections.get("scope_selections") or []
    steps = collections.get("step_responses") or []
    gaps = collections.get("gap_resolutions") or []
    return {
        "total_scope_items": len(scope),
        "selected_scope_items": sum(1 for s in scope if s.get("selected")),
        "total_steps": len(steps),
        "fit_count": sum(1 for s in steps if _fit(s) == "FIT"),
        "configure_count": sum(1 for s in steps if _fit(s) == "CONFIGURE"),
        "gap_count": sum(1 for s in steps if _fit(s) == "GAP"),
        "na_count": sum(1 for s in steps if _fit(s) == "NA"),
        "pending_count": sum(1 for s in steps if _fit(s) == "PENDING"),
        "total_gap_resolutions": len(gaps),
        "approved_gap_resolutions": sum(1 for g in gaps if g.get("client_approved")),
        "integration_point_count": len(collections.get("integration_points") or []),
        "data_migration_object_count": len(collections.get("data_migration_objects") or []),
    }


def build_snapshot_payload(source: SnapshotSource, assessment_id: str) -> dict:
    """Assemble the denormalised payload for *assessment_id* from *source*."""
    header = source.assessment_header(assessment_id)
    if header is None:
        raise NotFoundError(resource="Assessment", resource_id=assessment_id)

    collections = {name: list(getattr(source, name)(assessment_id)) for name in SNAPSHOT_COLLECTIONS}
    return {
        "assessment": header,
        **collections,
        "statistics": compute_statistics(collections),
    }


# ── Capture ───────────────────────────────────────────────────────────────────


def capture_snapshot(
    assessment_id: str,
    reason: str,
    creator_id: str,
    *,
    tenant_id: int | None = None,
    label: str | None = None,
    source: SnapshotSource | None = None,
) -> AssessmentSnapshot:
    """Capture, version and fingerprint the assessment inside the caller's
    transaction. Flushes, never commits.

    A version collision surfaces as IntegrityError at flush; the caller owns
    the rollback and the retry.

    Raises:
        ValidationError: reason or creator missing.
        NotFoundError: assessment missing or outside *tenant_id*.
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to create a snapshot", details={"reason": "required"})
    if not creator_id:
        raise ValidationError("created_by is required", details={"created_by": "required"})

    source = source or SqlAlchemySnapshotSource(tenant_id)

    assessment = get_assessment(assessment_id, tenant_id, lock=True)
    payload = build_snapshot_payload(source, assessment_id)
    current_max = db.session.execute(
        select(func.max(AssessmentSnapshot.version))
        .where(AssessmentSnapshot.assessment_id == assessment_id)
    ).scalar()
    snapshot = AssessmentSnapshot(
        assessment_id=assessment_id,
        version=(current_max or 0) + 1,
        label=label,
        payload=payload,
        fingerprint=compute_fingerprint(payload),
        created_by=str(creator_id),
        reason=reason,
    )
    db.session.add(snapshot)
    db.session.flush()

    write_audit(
        assessment_id=assessment_id,
        tenant_id=assessment.tenant_id,
        entity_type="assessment_snapshot",
        entity_id=snapshot.id,
        action="snapshot.create",
        actor=creator_id,
        reason=reason,
        diff={"version": snapshot.version, "fingerprint": snapshot.fingerprint, "label": label},
    )
    return snapshot


def create_snapshot(
    assessment_id: str,
    reason: str,
    creator_id: str,
    *,
    tenant_id: int | None = None,
    label: str | None = None,
    source: SnapshotSource | None = None,
) -> AssessmentSnapshot:
    """Capture a snapshot in its own transaction and commit.

    Raises:
        ValidationError: reason or creator missing.
        NotFoundError: assessment missing or outside *tenant_id*.
        ConcurrencyConflictError: version assignment kept colliding.
    """

    def _capture() -> AssessmentSnapshot:
        snapshot = capture_snapshot(
            assessment_id, reason, creator_id,
            tenant_id=tenant_id, label=label, source=source,
        )
        db.session.commit()
        return snapshot

    snapshot = run_with_retry("create_snapshot", _capture, assessment_id=assessment_id)
    logger.info(
        "Snapshot v%d created for assessment %s",
        snapshot.version, assessment_id,
        extra={
            "assessment_id": assessment_id,
            "snapshot_version": snapshot.version,
            "event_type": "snapshot_created",
        },
    )
    return snapshot


# ── Query ─────────────────────────────────────────────────────────────────────


def list_snapshots(assessment_id: str, *, tenant_id: int | None = None) -> list[AssessmentSnapshot]:
    """All snapshots of the assessment, newest version first."""
    get_assessment(assessment_id, tenant_id)
    return list(db.session.execute(
        select(AssessmentSnapshot)
        .where(AssessmentSnapshot.assessment_id == assessment_id)
        .order_by(AssessmentSnapshot.version.desc())
    ).scalars())


def get_snapshot(assessment_id: str, version: int, *, tenant_id: int | None = None) -> AssessmentSnapshot:
    get_assessment(assessment_id, tenant_id)
    snapshot = db.session.execute(
        select(AssessmentSnapshot).where(
            AssessmentSnapshot.assessment_id == assessment_id,
            AssessmentSnapshot.version == version,
        )
    ).scalar_one_or_none()
    if snapshot is None:
        raise NotFoundError(resource="Snapshot", resource_id=f"{assessment_id}/v{version}")
    return snapshot


def get_snapshot_by_id(assessment_id: str, snapshot_id: str, *, tenant_id: int | None = None) -> AssessmentSnapshot:
    """Snapshot by id, refusing ids that belong to a different assessment."""
    get_assessment(assessment_id, tenant_id)
    snapshot = db.session.get(AssessmentSnapshot, snapshot_id)
    if snapshot is None or snapshot.assessment_id != assessment_id:
        raise NotFoundError(resource="Snapshot", resource_id=snapshot_id)
    return snapshot


# ── Integrity ─────────────────────────────────────────────────────────────────


def verify_snapshot(snapshot: AssessmentSnapshot) -> bool:
    return verify_fingerprint(snapshot.payload, snapshot.fingerprint)


def assert_snapshot_integrity(snapshot: AssessmentSnapshot) -> None:
    """Raise DataIntegrityError if the stored payload no longer matches its fingerprint."""
    if verify_snapshot(snapshot):
        return
    actual = compute_fingerprint(snapshot.payload)
    logger.error(
        "Fingerprint mismatch on snapshot %s v%d",
        snapshot.assessment_id, snapshot.version,
        extra={
            "assessment_id": snapshot.assessment_id,
            "snapshot_version": snapshot.version,
            "event_type": "snapshot_integrity_failure",
        },
    )
    raise DataIntegrityError(
        f"Snapshot v{snapshot.version} failed fingerprint verification",
        details={
            "snapshot_id": snapshot.id,
            "version": snapshot.version,
            "expected_fingerprint": snapshot.fingerprint,
            "actual_fingerprint": actual,
        },
    )


def compare_snapshots(
    assessment_id: str,
    base_version: int,
    compare_version: int,
    *,
    tenant_id: int | None = None,
) -> dict:
    """Structural diff between two verified snapshots of the same assessment."""
    base = get_snapshot(assessment_id, base_version, tenant_id=tenant_id)
    compare = get_snapshot(assessment_id, compare_version, tenant_id=tenant_id)
    assert_snapshot_integrity(base)
    assert_snapshot_integrity(compare)

    identical = base.fingerprint == compare.fingerprint
    if identical:
        report = compute_delta_report({}, {})
    else:
        report = compute_delta_report(base.payload, compare.payload)
    return {
        "assessment_id": assessment_id,
        "base_version": base.version,
        "compare_version": compare.version,
        "identical": identical,
        "delta": report,
        "summary": compute_delta_summary(report),
    }
