"""
Assessment lifecycle — AssessmentSnapshot and ChangeRequest models.

AssessmentSnapshot is an immutable, versioned, fingerprinted capture of an
assessment's classification data. ChangeRequest reopens parts of an approved
assessment against one baseline snapshot and freezes the impact summary that
was computed when it was raised.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import event, inspect

from assessment_platform.core.exceptions import DataIntegrityError
from assessment_platform.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# ── Constants ─────────────────────────────────────────────────────────────────

CHANGE_REQUEST_STATUSES = frozenset({"requested", "approved", "rejected"})

CHANGE_REQUEST_TRANSITIONS = {
    "requested": ["approved", "rejected"],
    "approved":  [],
    "rejected":  [],
}

# Columns that define what a snapshot captured. Any attempt to change them
# after insert is refused by _guard_snapshot_immutability().
_IMMUTABLE_SNAPSHOT_COLUMNS = (
    "assessment_id", "version", "payload", "fingerprint",
)


def validate_change_request_transition(old_status, new_status):
    """Return True if ChangeRequest status transition is valid."""
    return new_status in CHANGE_REQUEST_TRANSITIONS.get(old_status, [])


class AssessmentSnapshot(db.Model):
    """
    Point-in-time capture of an assessment.

    Business rules:
    - Keyed by (assessment_id, version); version starts at 1 and is assigned
      by snapshot_service under a per-assessment lock.
    - payload / fingerprint never change after insert. A new edit requires
      a new version.
    - statistics are read from the fingerprinted payload, never stored
      beside it.
    - Two captures of unchanged data carry the same fingerprint.
    """

    __tablename__ = "assessment_snapshots"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    assessment_id = db.Column(
        db.String(36),
        db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version = db.Column(db.Integer, nullable=False)
    label = db.Column(db.String(200), nullable=True)
    payload = db.Column(db.JSON, nullable=False, comment="Denormalised capture of all classification records")
    fingerprint = db.Column(db.String(64), nullable=False, comment="SHA-256 of the canonical payload")
    created_by = db.Column(db.String(100), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("assessment_id", "version", name="uq_snapshot_assessment_version"),
    )

    @property
    def statistics(self) -> dict:
        return (self.payload or {}).get("statistics") or {}

    def to_dict(self, include_payload: bool = False) -> dict:
        d = {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "version": self.version,
            "label": self.label,
            "fingerprint": self.fingerprint,
            "statistics": self.statistics,
            "created_by": self.created_by,
            "reason": self.reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_payload:
            d["payload"] = self.payload
        return d

    def __repr__(self) -> str:
        return f"<AssessmentSnapshot {self.assessment_id} v{self.version}>"


@event.listens_for(AssessmentSnapshot, "before_update")
def _guard_snapshot_immutability(mapper, connection, target):
    """Refuse any flush that would rewrite captured snapshot content."""
    state = inspect(target)
    changed = [
        col for col in _IMMUTABLE_SNAPSHOT_COLUMNS
        if state.attrs[col].history.has_changes()
    ]
    if changed:
        raise DataIntegrityError(
            f"Snapshot {target.assessment_id} v{target.version} is immutable",
            details={"columns": changed},
        )


class ChangeRequest(db.Model):
    """
    Request to reopen specific entities of an approved assessment.

    impact_summary and risk_level are computed once at creation from the
    baseline snapshot and are never recomputed; they document the decision
    basis at request time, not a live view.
    """

    __tablename__ = "change_requests"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    assessment_id = db.Column(
        db.String(36),
        db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    baseline_snapshot_id = db.Column(
        db.String(36),
        db.ForeignKey("assessment_snapshots.id", ondelete="RESTRICT"),
        nullable=False,
    )
    title = db.Column(db.String(255), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    unlocked_entities = db.Column(db.JSON, nullable=False)
    impact_summary = db.Column(db.JSON, nullable=False)
    risk_level = db.Column(db.String(10), nullable=False, comment="low | medium | high")
    status = db.Column(db.String(20), nullable=False, default="requested")

    requested_by = db.Column(db.String(100), nullable=False)
    decided_by = db.Column(db.String(100), nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    baseline_snapshot = db.relationship("AssessmentSnapshot")

    __table_args__ = (
        db.Index("ix_change_requests_assessment_status", "assessment_id", "status"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "baseline_snapshot_id": self.baseline_snapshot_id,
            "baseline_version": self.baseline_snapshot.version if self.baseline_snapshot else None,
            "title": self.title,
            "reason": self.reason,
            "unlocked_entities": self.unlocked_entities,
            "impact_summary": self.impact_summary,
            "risk_level": self.risk_level,
            "breakdown": (self.impact_summary or {}).get("breakdown", {}),
            "status": self.status,
            "requested_by": self.requested_by,
            "decided_by": self.decided_by,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
            "rejection_reason": self.rejection_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<ChangeRequest {self.id} {self.risk_level}/{self.status}>"
