"""
Assessment Sign-off — SignOffProcess and ValidationRecord models.

One SignOffProcess per assessment drives the multi-stage approval chain
(area → technical → cross-functional → executive → partner). Each validating
party leaves one ValidationRecord per (process, stage_role); resubmission
overwrites the record instead of appending a new one.

The current stage is a closed enumeration (SignOffStage) persisted by value,
so a stage outside the fixed list cannot be stored. The transition table
lives in ``assessment_platform.services.signoff_state_machine``.
"""

import enum
import uuid
from datetime import datetime, timezone

from assessment_platform.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# ── Constants ─────────────────────────────────────────────────────────────────

class SignOffStage(str, enum.Enum):
    """Ordered sign-off stages plus the absorbing ``rejected`` state."""

    NOT_STARTED = "not_started"
    AREA_VALIDATION_IN_PROGRESS = "area_validation_in_progress"
    AREA_VALIDATION_COMPLETE = "area_validation_complete"
    TECHNICAL_VALIDATION_IN_PROGRESS = "technical_validation_in_progress"
    TECHNICAL_VALIDATION_COMPLETE = "technical_validation_complete"
    CROSS_FUNCTIONAL_VALIDATION_IN_PROGRESS = "cross_functional_validation_in_progress"
    CROSS_FUNCTIONAL_VALIDATION_COMPLETE = "cross_functional_validation_complete"
    EXECUTIVE_PENDING = "executive_pending"
    EXECUTIVE_SIGNED = "executive_signed"
    PARTNER_COUNTERSIGN_PENDING = "partner_countersign_pending"
    COMPLETED = "completed"
    REJECTED = "rejected"

    @property
    def label(self) -> str:
        return STAGE_LABELS[self]


STAGE_LABELS = {
    SignOffStage.NOT_STARTED: "Not Started",
    SignOffStage.AREA_VALIDATION_IN_PROGRESS: "Area Validation In Progress",
    SignOffStage.AREA_VALIDATION_COMPLETE: "Area Validation Complete",
    SignOffStage.TECHNICAL_VALIDATION_IN_PROGRESS: "Technical Validation In Progress",
    SignOffStage.TECHNICAL_VALIDATION_COMPLETE: "Technical Validation Complete",
    SignOffStage.CROSS_FUNCTIONAL_VALIDATION_IN_PROGRESS: "Cross-Functional Validation In Progress",
    SignOffStage.CROSS_FUNCTIONAL_VALIDATION_COMPLETE: "Cross-Functional Validation Complete",
    SignOffStage.EXECUTIVE_PENDING: "Executive Sign-Off Pending",
    SignOffStage.EXECUTIVE_SIGNED: "Executive Signed",
    SignOffStage.PARTNER_COUNTERSIGN_PENDING: "Partner Countersign Pending",
    SignOffStage.COMPLETED: "Completed",
    SignOffStage.REJECTED: "Rejected",
}

VALID_DECISIONS = frozenset({"approved", "rejected"})

VALID_STAGE_ROLES = frozenset({
    "area",
    "it_lead",
    "dm_lead",
    "cross_functional",
    "executive",
    "partner",
})


def _stage_column_type():
    return db.Enum(
        SignOffStage,
        name="signoff_stage",
        native_enum=False,
        length=50,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )


class SignOffProcess(db.Model):
    """
    Sign-off state for one assessment (1:1).

    Business rules:
    - ``stage`` is written only by signoff_workflow, and only after
      can_transition() allowed the move. Writes are compare-and-swap on the
      previous stage so two racing submissions cannot both complete a gate.
    - ``cycle`` starts at 1 and increments on every restart from ``rejected``.
      ValidationRecords from earlier cycles stay for audit but no longer
      count towards gate completion.
    """

    __tablename__ = "signoff_processes"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    assessment_id = db.Column(
        db.String(36),
        db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    stage = db.Column(_stage_column_type(), nullable=False, default=SignOffStage.NOT_STARTED)
    cycle = db.Column(db.Integer, nullable=False, default=1)
    rejection_reason = db.Column(db.Text, nullable=True)

    baseline_snapshot_id = db.Column(
        db.String(36),
        db.ForeignKey("assessment_snapshots.id", ondelete="SET NULL"),
        nullable=True,
        comment="Snapshot the signatories are approving (executive/partner sign its fingerprint)",
    )
    final_snapshot_id = db.Column(
        db.String(36),
        db.ForeignKey("assessment_snapshots.id", ondelete="SET NULL"),
        nullable=True,
        comment="Snapshot captured automatically when the process reached a checkpoint stage",
    )

    initiated_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    validations = db.relationship(
        "ValidationRecord",
        backref="process",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_validations: bool = False) -> dict:
        d = {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "stage": self.stage.value if self.stage else None,
            "stage_label": self.stage.label if self.stage else None,
            "cycle": self.cycle,
            "rejection_reason": self.rejection_reason,
            "baseline_snapshot_id": self.baseline_snapshot_id,
            "final_snapshot_id": self.final_snapshot_id,
            "initiated_by": self.initiated_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_validations:
            d["validations"] = [
                v.to_dict() for v in self.validations.order_by(ValidationRecord.validated_at.asc())
            ]
        return d

    def __repr__(self) -> str:
        return f"<SignOffProcess {self.assessment_id} {self.stage}>"


class ValidationRecord(db.Model):
    """
    Latest decision of one validating party for one sign-off process.

    Keyed by (process_id, stage_role): the two technical leads are
    distinguished by stage_role ("it_lead" / "dm_lead"), every other gate has
    exactly one role. A resubmission overwrites decision, comment, validator
    and cycle in place.
    """

    __tablename__ = "validation_records"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    process_id = db.Column(
        db.String(36),
        db.ForeignKey("signoff_processes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stage_role = db.Column(
        db.String(30),
        nullable=False,
        comment="area | it_lead | dm_lead | cross_functional | executive | partner",
    )
    validator_id = db.Column(db.String(100), nullable=False)
    decision = db.Column(db.String(20), nullable=False, comment="approved | rejected")
    comment = db.Column(db.Text, nullable=True)
    document_fingerprint = db.Column(
        db.String(64),
        nullable=True,
        comment="Baseline snapshot fingerprint the executive/partner signed",
    )
    cycle = db.Column(db.Integer, nullable=False, default=1)
    validated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("process_id", "stage_role", name="uq_validation_process_role"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "process_id": self.process_id,
            "stage_role": self.stage_role,
            "validator_id": self.validator_id,
            "decision": self.decision,
            "comment": self.comment,
            "document_fingerprint": self.document_fingerprint,
            "cycle": self.cycle,
            "validated_at": self.validated_at.isoformat() if self.validated_at else None,
        }

    def __repr__(self) -> str:
        return f"<ValidationRecord {self.process_id}/{self.stage_role} {self.decision}>"
