import logging
import os
from datetime import date, datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


LOGGER = logging.getLogger(__name__)

MODE_CUSTOM = "custom"
MODE_SPACED_REPETITION = "spaced-repetition"
PERIOD_DAILY = "daily"


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""


class Word(Base):
    """A dictation word shared by every user practising the same language."""

    __tablename__ = "words"
    __table_args__ = (UniqueConstraint("text", "language", name="uq_words_text_language"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    text: Mapped[str] = mapped_column(String(50), nullable=False)
    language: Mapped[str] = mapped_column(String(8), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class ReviewState(Base):
    """Spaced-repetition progress of one user on one word."""

    __tablename__ = "review_states"
    __table_args__ = (
        UniqueConstraint("user_id", "word_id", name="uq_review_states_user_word"),
        Index("ix_review_states_user_id_next_review", "user_id", "next_review"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    word_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("words.id", ondelete="CASCADE"), nullable=False
    )
    easiness_factor: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    interval: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repetitions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_review: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_review: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_session_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("game_sessions.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        server_onupdate=func.now(),
    )
    word: Mapped["Word"] = relationship("Word")


class GameSession(Base):
    """One timed run through a fixed list of words."""

    __tablename__ = "game_sessions"
    __table_args__ = (
        # A user never has more than one open session.
        Index(
            "uq_game_sessions_user_open",
            "user_id",
            unique=True,
            sqlite_where=text("completed = 0"),
            postgresql_where=text("completed = false"),
        ),
        Index("ix_game_sessions_user_id_created_at", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    mode: Mapped[str] = mapped_column(String(32), nullable=False)
    language: Mapped[str] = mapped_column(String(8), nullable=False)
    total_words: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    abandoned: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    # Set once reviews, achievements and statistics for the completion are stored.
    finalized: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    correct_words: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    average_response_ms: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    words: Mapped[list["SessionWord"]] = relationship(
        "SessionWord",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SessionWord.position",
    )
    attempts: Mapped[list["WordAttempt"]] = relationship(
        "WordAttempt",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class SessionWord(Base):
    """Position of a word inside a session's fixed word list."""

    __tablename__ = "session_words"
    __table_args__ = (
        UniqueConstraint("session_id", "position", name="uq_session_words_position"),
        UniqueConstraint("session_id", "word_id", name="uq_session_words_word"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    word_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("words.id", ondelete="CASCADE"), nullable=False
    )
    session: Mapped["GameSession"] = relationship("GameSession", back_populates="words")
    word: Mapped["Word"] = relationship("Word")


class WordAttempt(Base):
    """A single graded answer for one word within one session."""

    __tablename__ = "word_attempts"
    __table_args__ = (
        UniqueConstraint("session_id", "word_id", name="uq_word_attempts_session_word"),
        Index("ix_word_attempts_user_id_created_at", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False
    )
    word_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("words.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_input: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    response_time_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    session: Mapped["GameSession"] = relationship("GameSession", back_populates="attempts")
    word: Mapped["Word"] = relationship("Word")


class Achievement(Base):
    """Catalog entry describing an unlockable achievement."""

    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    condition_type: Mapped[str] = mapped_column(String(32), nullable=False)
    condition_value: Mapped[int] = mapped_column(Integer, nullable=False)
    tier_level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    icon_name: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)


class UserAchievement(Base):
    """One-time unlock of an achievement by a user."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_user_achievement"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False
    )
    achieved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    achievement: Mapped["Achievement"] = relationship("Achievement")


class UserStatistics(Base):
    """Per-period activity aggregate, recomputed from completed sessions."""

    __tablename__ = "user_statistics"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "period_start",
            "period_type",
            name="uq_user_statistics_user_period",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_type: Mapped[str] = mapped_column(String(16), nullable=False, default=PERIOD_DAILY)
    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_words_attempted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_words_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_response_ms: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_time_spent_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        server_onupdate=func.now(),
    )


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps returned by backends without timezone support."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _expand_database_url(raw_url: str) -> str:
    """Expand environment variables inside the configured database URL."""
    return os.path.expandvars(raw_url)


def get_database_url() -> str:
    """Return the configured database URL or raise if missing."""
    raw_url = os.getenv("DATABASE_URL")
    if not raw_url:
        raise RuntimeError("DATABASE_URL environment variable is required to connect to the database.")
    return _expand_database_url(raw_url)


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """Create (and cache) the async engine for the application's database."""
    echo = os.getenv("SQLALCHEMY_ECHO", "false").lower() in {"1", "true", "yes"}
    return create_async_engine(get_database_url(), echo=echo)


@lru_cache(maxsize=1)
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return a cached async session factory bound to the engine."""
    return async_sessionmaker(get_engine(), expire_on_commit=False)


def should_run_migrations() -> bool:
    """Determine whether migrations should be executed during startup."""
    flag = os.getenv("RUN_MIGRATIONS_ON_STARTUP", "true").lower()
    return flag in {"1", "true", "yes", "on"}


def _build_alembic_config() -> Config:
    project_root = Path(__file__).resolve().parents[2]
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "migrations"))
    alembic_cfg.set_main_option("sqlalchemy.url", get_database_url())
    return alembic_cfg


def run_migrations(target: str = "head") -> None:
    """Run Alembic migrations up to the specified target revision."""
    command.upgrade(_build_alembic_config(), target)


def run_migrations_if_needed(target: str = "head") -> None:
    """Run migrations when the startup flag is enabled."""
    if not should_run_migrations():
        LOGGER.info("Skipping migrations because RUN_MIGRATIONS_ON_STARTUP is disabled.")
        return

    LOGGER.info("Applying database migrations up to %s.", target)
    run_migrations(target)
    LOGGER.info("Database schema is up to date.")
