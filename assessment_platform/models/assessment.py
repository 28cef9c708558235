"""
Assessment models — the classification data produced by the data-entry surfaces.

Assessment, ScopeSelection, StepResponse, GapResolution, IntegrationPoint,
DataMigrationObject, OcmImpact.

These rows are owned by the scope / classification / register screens.
The sign-off core only READS them (snapshot capture, change-request
reference resolution, cross-phase deltas) and never writes them.
"""

import uuid
from datetime import datetime, timezone

from assessment_platform.models import db


__all__ = [
    "Assessment",
    "ScopeSelection",
    "StepResponse",
    "GapResolution",
    "IntegrationPoint",
    "DataMigrationObject",
    "OcmImpact",
    "FIT_STATUSES",
]


# ── Helpers ──────────────────────────────────────────────────────────────────

def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# Fit-status vocabulary used by step responses. Stored upper-case; readers
# compare case-insensitively because legacy imports used lower-case values.
FIT_STATUSES = ("FIT", "CONFIGURE", "GAP", "NA", "PENDING")


# ═════════════════════════════════════════════════════════════════════════════
# 1. Assessment
# ═════════════════════════════════════════════════════════════════════════════

class Assessment(db.Model):
    """
    One fit-to-standard assessment for a client company.

    The sign-off process, snapshots, change requests and phase links all
    hang off this row. ``tenant_id`` is mandatory: cross-tenant reads are
    answered with 404 by the services.
    """

    __tablename__ = "assessments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    company_name = db.Column(db.String(255), nullable=False)
    industry = db.Column(db.String(100), nullable=True)
    country = db.Column(db.String(100), nullable=True)
    status = db.Column(
        db.String(30),
        nullable=False,
        default="in_progress",
        comment="draft | in_progress | completed | signed_off | handed_off | archived",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    tenant = db.relationship("Tenant", back_populates="assessments")
    scope_selections = db.relationship(
        "ScopeSelection", backref="assessment", lazy="dynamic", cascade="all, delete-orphan",
    )
    step_responses = db.relationship(
        "StepResponse", backref="assessment", lazy="dynamic", cascade="all, delete-orphan",
    )
    gap_resolutions = db.relationship(
        "GapResolution", backref="assessment", lazy="dynamic", cascade="all, delete-orphan",
    )
    integration_points = db.relationship(
        "IntegrationPoint", backref="assessment", lazy="dynamic", cascade="all, delete-orphan",
    )
    data_migration_objects = db.relationship(
        "DataMigrationObject", backref="assessment", lazy="dynamic", cascade="all, delete-orphan",
    )
    ocm_impacts = db.relationship(
        "OcmImpact", backref="assessment", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "company_name": self.company_name,
            "industry": self.industry,
            "country": self.country,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Assessment {self.id} {self.company_name}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. Classification records
# ═════════════════════════════════════════════════════════════════════════════

class ScopeSelection(db.Model):
    """Whether a best-practice scope item is in scope, and how relevant it is."""

    __tablename__ = "scope_selections"
    __table_args__ = (
        db.UniqueConstraint("assessment_id", "scope_item_id", name="uq_scope_sel_assessment_item"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    assessment_id = db.Column(
        db.String(36), db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    scope_item_id = db.Column(db.String(64), nullable=False)
    selected = db.Column(db.Boolean, nullable=False, default=False)
    relevance = db.Column(
        db.String(20), nullable=False, default="MEDIUM",
        comment="HIGH | MEDIUM | LOW | NOT_RELEVANT",
    )
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "scope_item_id": self.scope_item_id,
            "selected": bool(self.selected),
            "relevance": self.relevance,
            "notes": self.notes,
        }


class StepResponse(db.Model):
    """Fit-to-standard classification of one process step."""

    __tablename__ = "step_responses"
    __table_args__ = (
        db.UniqueConstraint("assessment_id", "process_step_id", name="uq_step_resp_assessment_step"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    assessment_id = db.Column(
        db.String(36), db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    process_step_id = db.Column(db.String(64), nullable=False)
    fit_status = db.Column(
        db.String(20), nullable=False, default="PENDING",
        comment="FIT | CONFIGURE | GAP | NA | PENDING",
    )
    client_note = db.Column(db.Text, nullable=True)
    confidence = db.Column(db.String(20), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "process_step_id": self.process_step_id,
            "fit_status": self.fit_status,
            "client_note": self.client_note,
            "confidence": self.confidence,
        }


class GapResolution(db.Model):
    """How an identified GAP is going to be closed (extension, workaround, ...)."""

    __tablename__ = "gap_resolutions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    assessment_id = db.Column(
        db.String(36), db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    process_step_id = db.Column(db.String(64), nullable=True)
    scope_item_id = db.Column(db.String(64), nullable=True)
    resolution_type = db.Column(db.String(30), nullable=False)
    resolution_description = db.Column(db.Text, nullable=True)
    priority = db.Column(db.String(20), nullable=True)
    risk_category = db.Column(db.String(30), nullable=True)
    functional_area = db.Column(db.String(100), nullable=True)
    client_approved = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            "id": self.id,
            "process_step_id": self.process_step_id,
            "scope_item_id": self.scope_item_id,
            "resolution_type": self.resolution_type,
            "resolution_description": self.resolution_description,
            "priority": self.priority,
            "risk_category": self.risk_category,
            "functional_area": self.functional_area,
            "client_approved": bool(self.client_approved),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 3. Registers
# ═════════════════════════════════════════════════════════════════════════════

class IntegrationPoint(db.Model):
    __tablename__ = "integration_points"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    assessment_id = db.Column(
        db.String(36), db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    direction = db.Column(db.String(20), nullable=True, comment="INBOUND | OUTBOUND | BIDIRECTIONAL")
    source_system = db.Column(db.String(100), nullable=True)
    target_system = db.Column(db.String(100), nullable=True)
    interface_type = db.Column(db.String(50), nullable=True)
    status = db.Column(db.String(30), nullable=False, default="identified")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "direction": self.direction,
            "source_system": self.source_system,
            "target_system": self.target_system,
            "interface_type": self.interface_type,
            "status": self.status,
        }


class DataMigrationObject(db.Model):
    __tablename__ = "data_migration_objects"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    assessment_id = db.Column(
        db.String(36), db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    object_name = db.Column(db.String(255), nullable=False)
    object_type = db.Column(db.String(50), nullable=True, comment="MASTER_DATA | TRANSACTIONAL | CONFIG")
    source_system = db.Column(db.String(100), nullable=True)
    status = db.Column(db.String(30), nullable=False, default="identified")

    def to_dict(self):
        return {
            "id": self.id,
            "object_name": self.object_name,
            "object_type": self.object_type,
            "source_system": self.source_system,
            "status": self.status,
        }


class OcmImpact(db.Model):
    """Organisational change impact entry. Not captured in snapshots."""

    __tablename__ = "ocm_impacts"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    assessment_id = db.Column(
        db.String(36), db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    impacted_role = db.Column(db.String(200), nullable=False)
    change_type = db.Column(db.String(50), nullable=True)
    severity = db.Column(db.String(20), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "impacted_role": self.impacted_role,
            "change_type": self.change_type,
            "severity": self.severity,
        }
