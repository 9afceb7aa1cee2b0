"""Create words, review state, session and attempt tables."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20251101_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "words",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("text", sa.String(length=50), nullable=False),
        sa.Column("language", sa.String(length=8), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("text", "language", name="uq_words_text_language"),
    )

    op.create_table(
        "review_states",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("word_id", sa.Integer(), nullable=False),
        sa.Column("easiness_factor", sa.Float(), server_default=sa.text("2.5"), nullable=False),
        sa.Column("interval", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("repetitions", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("next_review", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_review", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ("word_id",),
            ("words.id",),
            name="fk_review_states_word_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("user_id", "word_id", name="uq_review_states_user_word"),
    )
    op.create_index(
        "ix_review_states_user_id_next_review",
        "review_states",
        ("user_id", "next_review"),
    )

    op.create_table(
        "game_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("mode", sa.String(length=32), nullable=False),
        sa.Column("language", sa.String(length=8), nullable=False),
        sa.Column("total_words", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("abandoned", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("correct_words", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("average_response_ms", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("total_words > 0", name="ck_game_sessions_total_words_positive"),
    )
    op.create_index(
        "uq_game_sessions_user_open",
        "game_sessions",
        ("user_id",),
        unique=True,
        sqlite_where=sa.text("completed = 0"),
        postgresql_where=sa.text("completed = false"),
    )
    op.create_index(
        "ix_game_sessions_user_id_created_at",
        "game_sessions",
        ("user_id", "created_at"),
    )

    op.create_table(
        "session_words",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("word_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ("session_id",),
            ("game_sessions.id",),
            name="fk_session_words_session_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ("word_id",),
            ("words.id",),
            name="fk_session_words_word_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("session_id", "position", name="uq_session_words_position"),
        sa.UniqueConstraint("session_id", "word_id", name="uq_session_words_word"),
    )

    op.create_table(
        "word_attempts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=False),
        sa.Column("word_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("user_input", sa.String(length=50), server_default=sa.text("''"), nullable=False),
        sa.Column("is_correct", sa.Boolean(), nullable=False),
        sa.Column("response_time_ms", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ("session_id",),
            ("game_sessions.id",),
            name="fk_word_attempts_session_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ("word_id",),
            ("words.id",),
            name="fk_word_attempts_word_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("session_id", "word_id", name="uq_word_attempts_session_word"),
        sa.CheckConstraint("response_time_ms >= 0", name="ck_word_attempts_response_time"),
    )
    op.create_index(
        "ix_word_attempts_user_id_created_at",
        "word_attempts",
        ("user_id", "created_at"),
    )


def downgrade() -> None:
    op.drop_index("ix_word_attempts_user_id_created_at", table_name="word_attempts")
    op.drop_table("word_attempts")
    op.drop_table("session_words")
    op.drop_index("ix_game_sessions_user_id_created_at", table_name="game_sessions")
    op.drop_index("uq_game_sessions_user_open", table_name="game_sessions")
    op.drop_table("game_sessions")
    op.drop_index("ix_review_states_user_id_next_review", table_name="review_states")
    op.drop_table("review_states")
    op.drop_table("words")
