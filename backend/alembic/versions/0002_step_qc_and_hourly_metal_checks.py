"""Add step QC checks and hourly metal detector checks.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18
"""

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    op.create_table(
        "quality_parameters",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("specification", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_table(
        "process_step_quality_parameters",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("process_step_id", sa.Integer(), sa.ForeignKey("process_steps.id"), nullable=False, index=True),
        sa.Column("quality_parameter_id", sa.Integer(), sa.ForeignKey("quality_parameters.id"), nullable=False),
        sa.UniqueConstraint("process_step_id", "quality_parameter_id", name="uq_step_quality_parameter"),
    )
    op.create_table(
        "process_step_quality_checks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "process_step_run_id", sa.Integer(),
            sa.ForeignKey("process_step_runs.id"), nullable=False, unique=True,
        ),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("overall_score", sa.Float()),
        sa.Column("remarks", sa.Text()),
        sa.Column("evaluated_by", sa.String(36)),
        sa.Column("evaluated_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('PASS', 'FAIL', 'PENDING')", name="ck_quality_check_status"),
    )
    op.create_table(
        "process_step_quality_check_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "quality_check_id", sa.Integer(),
            sa.ForeignKey("process_step_quality_checks.id"), nullable=False, index=True,
        ),
        sa.Column("parameter_id", sa.Integer(), sa.ForeignKey("quality_parameters.id"), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("remarks", sa.Text()),
        sa.Column("results", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("quality_check_id", "parameter_id", name="uq_quality_check_parameter"),
        sa.CheckConstraint("score BETWEEN 1 AND 4", name="ck_quality_check_item_score"),
    )

    op.create_table(
        "metal_detector_hourly_checks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("check_date", sa.Date(), nullable=False, index=True),
        sa.Column("check_hour", sa.Time(), nullable=False),
        sa.Column("fe_1_5mm", sa.String(3), nullable=False),
        sa.Column("non_fe_1_5mm", sa.String(3), nullable=False),
        sa.Column("ss_1_5mm", sa.String(3), nullable=False),
        sa.Column("remarks", sa.Text()),
        sa.Column("corrective_action", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("checked_by", sa.String(36)),
        sa.Column("checked_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("check_date", "check_hour", name="uq_metal_detector_check_hour"),
    )


def downgrade() -> None:
    for table in (
        "metal_detector_hourly_checks",
        "process_step_quality_check_items",
        "process_step_quality_checks",
        "process_step_quality_parameters",
        "quality_parameters",
    ):
        op.drop_table(table)
