"""
Cross-phase analytics — PhaseLink model.

Links two assessments run for the same client in successive engagements
(phase 1 → phase 2). Scope and classification deltas are computed once when
the link is created and stored with it.
"""

import uuid
from datetime import datetime, timezone

from assessment_platform.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class PhaseLink(db.Model):
    __tablename__ = "phase_links"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_identifier = db.Column(db.String(200), nullable=False)
    phase1_assessment_id = db.Column(
        db.String(36),
        db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    phase2_assessment_id = db.Column(
        db.String(36),
        db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    scope_delta = db.Column(db.JSON, nullable=False)
    classification_delta = db.Column(db.JSON, nullable=False)
    linked_by = db.Column(db.String(100), nullable=True)
    linked_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint(
            "phase1_assessment_id", "phase2_assessment_id", name="uq_phase_link_pair",
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "client_identifier": self.client_identifier,
            "phase1_assessment_id": self.phase1_assessment_id,
            "phase2_assessment_id": self.phase2_assessment_id,
            "scope_delta": self.scope_delta,
            "classification_delta": self.classification_delta,
            "linked_by": self.linked_by,
            "linked_at": self.linked_at.isoformat() if self.linked_at else None,
        }

    def __repr__(self) -> str:
        return f"<PhaseLink {self.phase1_assessment_id} -> {self.phase2_assessment_id}>"
