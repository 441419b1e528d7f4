"""initial_sync_schema

Submissions with their completion markers, photos, the mirror row index,
the sync audit log, the reconciler job registry and the intake catalogs.

Revision ID: 7c1e5a9d3b20
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e5a9d3b20"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "submissions" not in existing_tables:
        op.create_table(
            "submissions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("salesman_name", sa.String(length=255), nullable=False),
            sa.Column("customer_name", sa.String(length=255), nullable=False),
            sa.Column("customer_address", sa.Text(), nullable=False),
            sa.Column("customer_home_no", sa.String(length=50), nullable=True),
            sa.Column("village", sa.Text(), nullable=False),
            sa.Column("postal_code", sa.String(length=20), nullable=True),
            sa.Column("village_name", sa.String(length=255), nullable=True),
            sa.Column("district", sa.String(length=255), nullable=True),
            sa.Column("city", sa.String(length=255), nullable=True),
            sa.Column("province", sa.String(length=255), nullable=True),
            sa.Column("coordinates", sa.String(length=255), nullable=False),
            sa.Column("building_type", sa.String(length=255), nullable=False),
            sa.Column("operators", sa.JSON(), nullable=False),
            sa.Column("fs_selected", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("remarks", sa.Text(), nullable=True),
            sa.Column("all_mirror_written_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("fs_mirror_written_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("coverage_bot_id", sa.String(length=64), nullable=True),
            sa.Column("coverage_bot_finished", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("coverage_status", sa.String(length=20), nullable=True),
            sa.Column("homepassed_id", sa.String(length=100), nullable=True),
            sa.Column("operator_remarks", sa.Text(), nullable=True),
            sa.Column("coverage_resolved_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_submissions_created_at", "submissions", ["created_at"])
        op.create_index("ix_submissions_fs_selected", "submissions", ["fs_selected"])
        op.create_index("ix_submissions_coverage_bot_id", "submissions", ["coverage_bot_id"])

    if "submission_photos" not in existing_tables:
        op.create_table(
            "submission_photos",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("submission_id", sa.String(length=36), nullable=False),
            sa.Column("filename", sa.String(length=255), nullable=False),
            sa.ForeignKeyConstraint(["submission_id"], ["submissions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_submission_photos_submission_id", "submission_photos", ["submission_id"])

    if "mirror_rows" not in existing_tables:
        op.create_table(
            "mirror_rows",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("spreadsheet_id", sa.String(length=128), nullable=False),
            sa.Column("submission_id", sa.String(length=36), nullable=False),
            sa.Column("row_number", sa.Integer(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("spreadsheet_id", "submission_id", name="uq_mirror_row_sheet_submission"),
        )
        op.create_index("ix_mirror_rows_spreadsheet_id", "mirror_rows", ["spreadsheet_id"])
        op.create_index("ix_mirror_rows_submission_id", "mirror_rows", ["submission_id"])

    if "sync_logs" not in existing_tables:
        op.create_table(
            "sync_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("submission_id", sa.String(length=36), nullable=True),
            sa.Column("target", sa.String(length=30), nullable=False),
            sa.Column("status", sa.String(length=10), nullable=False),
            sa.Column("http_status_code", sa.Integer(), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("duration_ms", sa.Integer(), nullable=True),
            sa.Column("payload_hash", sa.String(length=64), nullable=True),
            sa.Column("triggered_by", sa.String(length=20), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_sync_logs_submission_id", "sync_logs", ["submission_id"])
        op.create_index("ix_sync_logs_created_at", "sync_logs", ["created_at"])

    if "scheduled_jobs" not in existing_tables:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("schedule_type", sa.String(length=30), nullable=True),
            sa.Column("schedule_config", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("is_enabled", sa.Boolean(), nullable=True),
            sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_run_status", sa.String(length=20), nullable=True),
            sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
            sa.Column("last_run_result", sa.JSON(), nullable=True),
            sa.Column("run_count", sa.Integer(), nullable=True),
            sa.Column("error_count", sa.Integer(), nullable=True),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("job_name"),
        )

    for table, column in (("salesmen", "name"), ("building_types", "type"), ("villages", "name")):
        if table not in existing_tables:
            op.create_table(
                table,
                sa.Column("id", sa.Integer(), nullable=False),
                sa.Column(column, sa.String(length=255), nullable=False),
                sa.PrimaryKeyConstraint("id"),
                sa.UniqueConstraint(column),
            )


def downgrade():
    for table in ("villages", "building_types", "salesmen", "scheduled_jobs",
                  "sync_logs", "mirror_rows", "submission_photos", "submissions"):
        op.drop_table(table)
