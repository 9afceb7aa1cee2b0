"""Create achievement catalog, user unlocks and daily statistics tables."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20251102_0002"
down_revision: Union[str, None] = "20251101_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("condition_type", sa.String(length=32), nullable=False),
        sa.Column("condition_value", sa.Integer(), nullable=False),
        sa.Column("tier_level", sa.Integer(), nullable=True),
        sa.Column("icon_name", sa.String(length=32), nullable=True),
        sa.UniqueConstraint("code", name="uq_achievements_code"),
    )

    op.create_table(
        "user_achievements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("achievement_id", sa.Integer(), nullable=False),
        sa.Column("achieved_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ("achievement_id",),
            ("achievements.id",),
            name="fk_user_achievements_achievement_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "user_id",
            "achievement_id",
            name="uq_user_achievements_user_achievement",
        ),
    )

    op.create_table(
        "user_statistics",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_type", sa.String(length=16), server_default=sa.text("'daily'"), nullable=False),
        sa.Column("total_sessions", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("total_words_attempted", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("total_words_correct", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("average_response_ms", sa.Float(), nullable=True),
        sa.Column("total_time_spent_seconds", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "user_id",
            "period_start",
            "period_type",
            name="uq_user_statistics_user_period",
        ),
    )


def downgrade() -> None:
    op.drop_table("user_statistics")
    op.drop_table("user_achievements")
    op.drop_table("achievements")
