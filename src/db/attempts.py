"""Helpers for persisting word attempts and reading their aggregates."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import Integer, cast, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from . import WordAttempt


@dataclass(slots=True)
class AttemptTotals:
    """Aggregates recomputed from the stored attempts of one session."""

    attempts: int
    correct: int
    average_response_ms: Optional[float]


async def get_attempt(
    session: AsyncSession, session_id: int, word_id: int
) -> Optional[WordAttempt]:
    """Return the attempt recorded for a word in a session, if any."""
    stmt = select(WordAttempt).where(
        WordAttempt.session_id == session_id,
        WordAttempt.word_id == word_id,
    )
    result = await session.execute(stmt)
    return result.scalars().first()


async def insert_attempt(
    session: AsyncSession,
    *,
    session_id: int,
    word_id: int,
    user_id: str,
    user_input: str,
    is_correct: bool,
    response_time_ms: int,
    now: Optional[datetime] = None,
) -> WordAttempt:
    """Append an attempt; raises IntegrityError when the word was already answered."""
    if now is None:
        now = datetime.now(timezone.utc)

    attempt = WordAttempt(
        session_id=session_id,
        word_id=word_id,
        user_id=user_id,
        user_input=user_input,
        is_correct=is_correct,
        response_time_ms=response_time_ms,
        created_at=now,
    )
    async with session.begin_nested():
        session.add(attempt)
        await session.flush()
    return attempt


async def summarize_session_attempts(session: AsyncSession, session_id: int) -> AttemptTotals:
    """Recount attempts, correct answers and mean response time for a session."""
    stmt = select(
        func.count(WordAttempt.id),
        func.coalesce(func.sum(cast(WordAttempt.is_correct, Integer)), 0),
        func.avg(WordAttempt.response_time_ms),
    ).where(WordAttempt.session_id == session_id)
    result = await session.execute(stmt)
    count, correct, average = result.one()
    return AttemptTotals(
        attempts=int(count),
        correct=int(correct),
        average_response_ms=float(average) if average is not None else None,
    )


async def get_recorded_word_ids(session: AsyncSession, session_id: int) -> set[int]:
    """Return the ids of words already answered in a session."""
    stmt = select(WordAttempt.word_id).where(WordAttempt.session_id == session_id)
    result = await session.execute(stmt)
    return set(result.scalars().all())


async def list_session_attempts(session: AsyncSession, session_id: int) -> Sequence[WordAttempt]:
    """Return a session's attempts in the order they were recorded."""
    stmt = (
        select(WordAttempt)
        .options(selectinload(WordAttempt.word))
        .where(WordAttempt.session_id == session_id)
        .order_by(WordAttempt.created_at, WordAttempt.id)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def list_recent_attempts(
    session: AsyncSession, user_id: str, limit: int
) -> Sequence[WordAttempt]:
    """Return the newest attempts of a user across all sessions."""
    stmt = (
        select(WordAttempt)
        .where(WordAttempt.user_id == user_id)
        .order_by(WordAttempt.created_at.desc(), WordAttempt.id.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def count_mastered_words(session: AsyncSession, user_id: str) -> int:
    """Count distinct words a user has spelled correctly at least once."""
    stmt = select(func.count(func.distinct(WordAttempt.word_id))).where(
        WordAttempt.user_id == user_id,
        WordAttempt.is_correct.is_(True),
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())
