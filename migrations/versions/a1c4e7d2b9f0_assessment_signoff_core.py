"""assessment_signoff_core

Create tenants, assessments and their classification / register tables,
plus the sign-off core: assessment_snapshots, change_requests,
signoff_processes, validation_records and phase_links.

Revision ID: a1c4e7d2b9f0
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c4e7d2b9f0"
down_revision = None
branch_labels = None
depends_on = None


SIGNOFF_STAGES = (
    "not_started",
    "area_validation_in_progress",
    "area_validation_complete",
    "technical_validation_in_progress",
    "technical_validation_complete",
    "cross_functional_validation_in_progress",
    "cross_functional_validation_complete",
    "executive_pending",
    "executive_signed",
    "partner_countersign_pending",
    "completed",
    "rejected",
)


def _assessment_fk():
    return sa.ForeignKeyConstraint(["assessment_id"], ["assessments.id"], ondelete="CASCADE")


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "tenants" not in existing_tables:
        op.create_table(
            "tenants",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("slug", sa.String(length=100), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("slug"),
        )

    if "assessments" not in existing_tables:
        op.create_table(
            "assessments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("company_name", sa.String(length=255), nullable=False),
            sa.Column("industry", sa.String(length=100), nullable=True),
            sa.Column("country", sa.String(length=100), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="in_progress"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_assessments_tenant_id", "assessments", ["tenant_id"])

    if "scope_selections" not in existing_tables:
        op.create_table(
            "scope_selections",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("assessment_id", sa.String(length=36), nullable=False),
            sa.Column("scope_item_id", sa.String(length=64), nullable=False),
            sa.Column("selected", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("relevance", sa.String(length=20), nullable=False, server_default="MEDIUM"),
            sa.Column("notes", sa.Text(), nullable=True),
            _assessment_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("assessment_id", "scope_item_id", name="uq_scope_sel_assessment_item"),
        )
        op.create_index("ix_scope_selections_assessment_id", "scope_selections", ["assessment_id"])

    if "step_responses" not in existing_tables:
        op.create_table(
            "step_responses",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("assessment_id", sa.String(length=36), nullable=False),
            sa.Column("process_step_id", sa.String(length=64), nullable=False),
            sa.Column("fit_status", sa.String(length=20), nullable=False, server_default="PENDING"),
            sa.Column("client_note", sa.Text(), nullable=True),
            sa.Column("confidence", sa.String(length=20), nullable=True),
            _assessment_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("assessment_id", "process_step_id", name="uq_step_resp_assessment_step"),
        )
        op.create_index("ix_step_responses_assessment_id", "step_responses", ["assessment_id"])

    if "gap_resolutions" not in existing_tables:
        op.create_table(
            "gap_resolutions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("assessment_id", sa.String(length=36), nullable=False),
            sa.Column("process_step_id", sa.String(length=64), nullable=True),
            sa.Column("scope_item_id", sa.String(length=64), nullable=True),
            sa.Column("resolution_type", sa.String(length=30), nullable=False),
            sa.Column("resolution_description", sa.Text(), nullable=True),
            sa.Column("priority", sa.String(length=20), nullable=True),
            sa.Column("risk_category", sa.String(length=30), nullable=True),
            sa.Column("functional_area", sa.String(length=100), nullable=True),
            sa.Column("client_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
            _assessment_fk(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_gap_resolutions_assessment_id", "gap_resolutions", ["assessment_id"])

    if "integration_points" not in existing_tables:
        op.create_table(
            "integration_points",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("assessment_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("direction", sa.String(length=20), nullable=True),
            sa.Column("source_system", sa.String(length=100), nullable=True),
            sa.Column("target_system", sa.String(length=100), nullable=True),
            sa.Column("interface_type", sa.String(length=50), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="identified"),
            _assessment_fk(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_integration_points_assessment_id", "integration_points", ["assessment_id"])

    if "data_migration_objects" not in existing_tables:
        op.create_table(
            "data_migration_objects",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("assessment_id", sa.String(length=36), nullable=False),
            sa.Column("object_name", sa.String(length=255), nullable=False),
            sa.Column("object_type", sa.String(length=50), nullable=True),
            sa.Column("source_system", sa.String(length=100), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="identified"),
            _assessment_fk(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_data_migration_objects_assessment_id", "data_migration_objects", ["assessment_id"])

    if "ocm_impacts" not in existing_tables:
        op.create_table(
            "ocm_impacts",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("assessment_id", sa.String(length=36), nullable=False),
            sa.Column("impacted_role", sa.String(length=200), nullable=False),
            sa.Column("change_type", sa.String(length=50), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=True),
            _assessment_fk(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_ocm_impacts_assessment_id", "ocm_impacts", ["assessment_id"])

    if "assessment_snapshots" not in existing_tables:
        op.create_table(
            "assessment_snapshots",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("assessment_id", sa.String(length=36), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("label", sa.String(length=200), nullable=True),
            sa.Column("payload", sa.JSON(), nullable=False),
            sa.Column("statistics", sa.JSON(), nullable=False),
            sa.Column("fingerprint", sa.String(length=64), nullable=False),
            sa.Column("created_by", sa.String(length=100), nullable=False),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            _assessment_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("assessment_id", "version", name="uq_snapshot_assessment_version"),
        )
        op.create_index("ix_assessment_snapshots_assessment_id", "assessment_snapshots", ["assessment_id"])

    if "change_requests" not in existing_tables:
        op.create_table(
            "change_requests",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("assessment_id", sa.String(length=36), nullable=False),
            sa.Column("baseline_snapshot_id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("unlocked_entities", sa.JSON(), nullable=False),
            sa.Column("impact_summary", sa.JSON(), nullable=False),
            sa.Column("risk_level", sa.String(length=10), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="requested"),
            sa.Column("requested_by", sa.String(length=100), nullable=False),
            sa.Column("decided_by", sa.String(length=100), nullable=True),
            sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            _assessment_fk(),
            sa.ForeignKeyConstraint(
                ["baseline_snapshot_id"], ["assessment_snapshots.id"], ondelete="RESTRICT",
            ),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_change_requests_assessment_id", "change_requests", ["assessment_id"])
        op.create_index(
            "ix_change_requests_assessment_status", "change_requests", ["assessment_id", "status"],
        )

    if "signoff_processes" not in existing_tables:
        op.create_table(
            "signoff_processes",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("assessment_id", sa.String(length=36), nullable=False),
            sa.Column(
                "stage",
                sa.Enum(*SIGNOFF_STAGES, name="signoff_stage", native_enum=False, length=50),
                nullable=False,
            ),
            sa.Column("cycle", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column("baseline_snapshot_id", sa.String(length=36), nullable=True),
            sa.Column("final_snapshot_id", sa.String(length=36), nullable=True),
            sa.Column("initiated_by", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            _assessment_fk(),
            sa.ForeignKeyConstraint(
                ["baseline_snapshot_id"], ["assessment_snapshots.id"], ondelete="SET NULL",
            ),
            sa.ForeignKeyConstraint(
                ["final_snapshot_id"], ["assessment_snapshots.id"], ondelete="SET NULL",
            ),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("assessment_id"),
        )

    if "validation_records" not in existing_tables:
        op.create_table(
            "validation_records",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("process_id", sa.String(length=36), nullable=False),
            sa.Column("stage_role", sa.String(length=30), nullable=False),
            sa.Column("validator_id", sa.String(length=100), nullable=False),
            sa.Column("decision", sa.String(length=20), nullable=False),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("document_fingerprint", sa.String(length=64), nullable=True),
            sa.Column("cycle", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("validated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["process_id"], ["signoff_processes.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("process_id", "stage_role", name="uq_validation_process_role"),
        )
        op.create_index("ix_validation_records_process_id", "validation_records", ["process_id"])

    if "phase_links" not in existing_tables:
        op.create_table(
            "phase_links",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("client_identifier", sa.String(length=200), nullable=False),
            sa.Column("phase1_assessment_id", sa.String(length=36), nullable=False),
            sa.Column("phase2_assessment_id", sa.String(length=36), nullable=False),
            sa.Column("scope_delta", sa.JSON(), nullable=False),
            sa.Column("classification_delta", sa.JSON(), nullable=False),
            sa.Column("linked_by", sa.String(length=100), nullable=True),
            sa.Column("linked_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["phase1_assessment_id"], ["assessments.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["phase2_assessment_id"], ["assessments.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("phase1_assessment_id", "phase2_assessment_id", name="uq_phase_link_pair"),
        )
        op.create_index("ix_phase_links_tenant_id", "phase_links", ["tenant_id"])
        op.create_index("ix_phase_links_phase1_assessment_id", "phase_links", ["phase1_assessment_id"])
        op.create_index("ix_phase_links_phase2_assessment_id", "phase_links", ["phase2_assessment_id"])


def downgrade():
    for table in (
        "phase_links",
        "validation_records",
        "signoff_processes",
        "change_requests",
        "assessment_snapshots",
        "ocm_impacts",
        "data_migration_objects",
        "integration_points",
        "gap_resolutions",
        "step_responses",
        "scope_selections",
        "assessments",
        "tenants",
    ):
        op.drop_table(table)
