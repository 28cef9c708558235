"""Decision audit log; snapshot statistics served from the fingerprinted payload

Creates audit_logs and drops assessment_snapshots.statistics, which
duplicated payload["statistics"] outside the fingerprint.

Revision ID: c3e9b0f4d7a1
Revises: a1c4e7d2b9f0
Create Date: 2026-10-19 15:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "c3e9b0f4d7a1"
down_revision = "a1c4e7d2b9f0"
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)

    if "audit_logs" not in set(inspector.get_table_names()):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=True),
            sa.Column("assessment_id", sa.String(length=36), nullable=False),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=False),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("diff_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["assessment_id"], ["assessments.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_assessment", "audit_logs", ["assessment_id"])
        op.create_index("idx_audit_actor", "audit_logs", ["actor"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])

    snapshot_columns = {c["name"] for c in inspector.get_columns("assessment_snapshots")}
    if "statistics" in snapshot_columns:
        with op.batch_alter_table("assessment_snapshots", schema=None) as batch_op:
            batch_op.drop_column("statistics")


def downgrade():
    with op.batch_alter_table("assessment_snapshots", schema=None) as batch_op:
        batch_op.add_column(sa.Column("statistics", sa.JSON(), nullable=True))

    for index in ("idx_audit_ts", "idx_audit_action", "idx_audit_actor", "idx_audit_assessment", "idx_audit_entity"):
        op.drop_index(index, table_name="audit_logs")
    op.drop_table("audit_logs")
