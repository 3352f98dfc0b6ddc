"""Create prediction_history table

Revision ID: 004
Revises: 003
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "004"
down_revision: str | None = "003"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "prediction_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=True),
        sa.Column("age", sa.Float(), nullable=False),
        sa.Column("glucose", sa.Float(), nullable=False),
        sa.Column("blood_pressure", sa.Float(), nullable=False),
        sa.Column("skin_thickness", sa.Float(), nullable=True),
        sa.Column("insulin", sa.Float(), nullable=True),
        sa.Column("bmi", sa.Float(), nullable=False),
        sa.Column("diabetes_pedigree_function", sa.Float(), nullable=True),
        sa.Column("pregnancies", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("prediction_result", sa.Integer(), nullable=False),
        sa.Column("probability", sa.Float(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("risk_level", sa.String(length=16), nullable=False),
        sa.Column("label", sa.String(length=64), nullable=True),
        sa.Column("model_version", sa.String(length=32), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("predicted_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_prediction_history_user_id"), "prediction_history", ["user_id"])
    op.create_index(op.f("ix_prediction_history_predicted_at"), "prediction_history", ["predicted_at"])


def downgrade() -> None:
    op.drop_index(op.f("ix_prediction_history_predicted_at"), table_name="prediction_history")
    op.drop_index(op.f("ix_prediction_history_user_id"), table_name="prediction_history")
    op.drop_table("prediction_history")
