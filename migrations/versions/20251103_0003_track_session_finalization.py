"""Track finalized sessions and the session that last moved a review schedule."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20251103_0003"
down_revision: Union[str, None] = "20251102_0002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table("game_sessions") as batch_op:
        batch_op.add_column(
            sa.Column("finalized", sa.Boolean(), server_default=sa.text("false"), nullable=False)
        )

    # Sessions completed before this revision already went through the follow-up updates.
    op.execute(
        sa.text("UPDATE game_sessions SET finalized = :done WHERE completed = :done").bindparams(done=True)
    )

    with op.batch_alter_table("review_states") as batch_op:
        batch_op.add_column(sa.Column("last_session_id", sa.Integer(), nullable=True))
        batch_op.create_foreign_key(
            "fk_review_states_last_session_id",
            "game_sessions",
            ["last_session_id"],
            ["id"],
            ondelete="SET NULL",
        )


def downgrade() -> None:
    with op.batch_alter_table("review_states") as batch_op:
        batch_op.drop_constraint("fk_review_states_last_session_id", type_="foreignkey")
        batch_op.drop_column("last_session_id")

    with op.batch_alter_table("game_sessions") as batch_op:
        batch_op.drop_column("finalized")
