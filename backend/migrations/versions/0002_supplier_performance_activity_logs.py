"""Supplier performance columns and staff activity logs

Revision ID: 0002_supplier_perf_logs
Revises: 0001_initial_schema
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0002_supplier_perf_logs"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("suppliers", schema=None) as batch_op:
        batch_op.add_column(sa.Column("total_orders", sa.Integer(), nullable=False, server_default="0"))
        batch_op.add_column(sa.Column("completed_orders", sa.Integer(), nullable=False, server_default="0"))
        batch_op.add_column(sa.Column("on_time_delivery_rate", sa.Integer(), nullable=False, server_default="100"))
        batch_op.add_column(sa.Column("average_delivery_days", sa.Integer(), nullable=False, server_default="0"))
        batch_op.add_column(sa.Column("quality_rating", sa.Integer(), nullable=True))
        batch_op.add_column(sa.Column("service_rating", sa.Integer(), nullable=True))
        batch_op.add_column(sa.Column("pricing_rating", sa.Integer(), nullable=True))
        batch_op.add_column(sa.Column("last_order_date", sa.DateTime(), nullable=True))
        batch_op.add_column(sa.Column("updated_at", sa.DateTime(), nullable=True))

    op.execute("UPDATE suppliers SET updated_at = created_at WHERE updated_at IS NULL")
    with op.batch_alter_table("suppliers", schema=None) as batch_op:
        batch_op.alter_column("updated_at", existing_type=sa.DateTime(), nullable=False)

    op.create_table(
        "staff_activity_logs",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("staff_id", sa.String(length=36), nullable=False),
        sa.Column("staff_name", sa.String(length=120), nullable=True),
        sa.Column("branch_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("recorded_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["staff_id"], ["staff_members.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_staff_activity_logs_user_id", "staff_activity_logs", ["user_id"])
    op.create_index("ix_staff_activity_logs_staff_id", "staff_activity_logs", ["staff_id"])
    op.create_index(
        "ix_staff_activity_logs_user_created", "staff_activity_logs", ["user_id", "created_at"]
    )


def downgrade():
    op.drop_table("staff_activity_logs")
    with op.batch_alter_table("suppliers", schema=None) as batch_op:
        for column in (
            "updated_at",
            "last_order_date",
            "pricing_rating",
            "service_rating",
            "quality_rating",
            "average_delivery_days",
            "on_time_delivery_rate",
            "completed_orders",
            "total_orders",
        ):
            batch_op.drop_column(column)
