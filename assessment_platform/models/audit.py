"""
Decision audit domain model.

Models:
    - AuditLog: immutable, append-only trail of sign-off, snapshot,
      change-request and phase-link decisions.
"""

import json
from datetime import datetime, timezone

from sqlalchemy import event, select

from assessment_platform.core.exceptions import DataIntegrityError
from assessment_platform.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {
    "signoff_process", "assessment_snapshot", "change_request", "phase_link",
}

AUDIT_ACTIONS = {
    # Sign-off
    "signoff.start",
    "signoff.approve",
    "signoff.reject",
    "signoff.restart",
    # Snapshots
    "snapshot.create",
    # Change requests
    "change_request.create",
    "change_request.approve",
    "change_request.reject",
    # Cross-phase
    "phase_link.create",
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every decision.

    One row per action. ``diff_json`` carries old→new values for state
    changes and the decision payload for submissions.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_assessment", "assessment_id"),
        db.Index("idx_audit_actor", "actor"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
    )
    assessment_id = db.Column(
        db.String(36),
        db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Polymorphic entity reference
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="signoff_process | assessment_snapshot | change_request | phase_link",
    )
    entity_id = db.Column(db.String(36), nullable=False)

    # What happened
    action = db.Column(
        db.String(60), nullable=False,
        comment="signoff.approve | change_request.create | snapshot.create | …",
    )
    actor = db.Column(db.String(150), nullable=False, default="system")
    reason = db.Column(db.Text, nullable=True)

    # Change payload
    diff_json = db.Column(db.Text, default="{}")

    # Timestamp (immutable)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "assessment_id": self.assessment_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "reason": self.reason,
            "diff": self.diff,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


@event.listens_for(AuditLog, "before_update")
@event.listens_for(AuditLog, "before_delete")
def _guard_append_only(mapper, connection, target):
    raise DataIntegrityError(
        f"Audit entry {target.id} is append-only",
        details={"audit_log_id": target.id},
    )


# ── Convenience writer / reader ──────────────────────────────────────────────

def write_audit(
    *,
    assessment_id: str,
    entity_type: str,
    entity_id: str,
    action: str,
    actor: str = "system",
    tenant_id: int | None = None,
    reason: str | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so the entry commits or
    rolls back together with the decision it records.

    Returns the (flushed) AuditLog instance.
    """
    log = AuditLog(
        tenant_id=tenant_id,
        assessment_id=assessment_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=str(actor) if actor else "system",
        reason=reason,
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log


def list_audit_entries(
    assessment_id: str,
    *,
    entity_type: str | None = None,
    actor: str | None = None,
    limit: int = 50,
) -> list[AuditLog]:
    """Newest-first audit entries of one assessment."""
    stmt = select(AuditLog).where(AuditLog.assessment_id == assessment_id)
    if entity_type:
        stmt = stmt.where(AuditLog.entity_type == entity_type)
    if actor:
        stmt = stmt.where(AuditLog.actor == actor)
    stmt = stmt.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit)
    return list(db.session.execute(stmt).scalars())
