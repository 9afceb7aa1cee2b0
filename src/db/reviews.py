"""Helpers for persisting per-user spaced-repetition state."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from . import ReviewState, Word


DEFAULT_EASINESS_FACTOR = 2.5


async def get_review_state(
    session: AsyncSession, user_id: str, word_id: int
) -> Optional[ReviewState]:
    """Return the review state for a user and word, if any."""
    stmt = select(ReviewState).where(
        ReviewState.user_id == user_id,
        ReviewState.word_id == word_id,
    )
    result = await session.execute(stmt)
    return result.scalars().first()


async def ensure_review_state(
    session: AsyncSession,
    user_id: str,
    word: Word,
    now: Optional[datetime] = None,
) -> tuple[ReviewState, bool]:
    """Start tracking a word for a user; existing progress is left untouched."""
    if now is None:
        now = datetime.now(timezone.utc)

    state = await get_review_state(session, user_id, word.id)
    if state is not None:
        return state, False

    state = ReviewState(
        user_id=user_id,
        word_id=word.id,
        easiness_factor=DEFAULT_EASINESS_FACTOR,
        interval=0,
        repetitions=0,
        next_review=now,
        last_review=None,
    )
    session.add(state)
    await session.flush()
    return state, True


async def get_due_review_states(
    session: AsyncSession,
    user_id: str,
    language: str,
    limit: int,
    now: Optional[datetime] = None,
) -> Sequence[ReviewState]:
    """Return review states that are due, oldest due date first."""
    if now is None:
        now = datetime.now(timezone.utc)

    stmt = (
        select(ReviewState)
        .join(Word, Word.id == ReviewState.word_id)
        .options(selectinload(ReviewState.word))
        .where(
            ReviewState.user_id == user_id,
            Word.language == language,
            ReviewState.next_review <= now,
        )
        .order_by(ReviewState.next_review, ReviewState.interval, ReviewState.word_id)
        .limit(limit)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def count_due_review_states(
    session: AsyncSession,
    user_id: str,
    language: str,
    now: Optional[datetime] = None,
) -> int:
    """Count words due for review for a user in one language."""
    if now is None:
        now = datetime.now(timezone.utc)

    stmt = (
        select(func.count(ReviewState.id))
        .join(Word, Word.id == ReviewState.word_id)
        .where(
            ReviewState.user_id == user_id,
            Word.language == language,
            ReviewState.next_review <= now,
        )
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def save_review_state(
    session: AsyncSession,
    user_id: str,
    word_id: int,
    *,
    easiness_factor: float,
    interval: int,
    repetitions: int,
    next_review: datetime,
    session_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ReviewState:
    """Upsert the outcome of a graded review."""
    if now is None:
        now = datetime.now(timezone.utc)

    state = await get_review_state(session, user_id, word_id)
    if state is None:
        state = ReviewState(user_id=user_id, word_id=word_id)
        session.add(state)

    state.easiness_factor = easiness_factor
    state.interval = interval
    state.repetitions = repetitions
    state.next_review = next_review
    state.last_review = now
    state.last_session_id = session_id
    state.updated_at = now
    await session.flush()
    return state
