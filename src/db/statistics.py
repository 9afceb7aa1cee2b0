"""Helpers for the per-day user statistics aggregate."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from . import PERIOD_DAILY, GameSession, UserStatistics, WordAttempt, as_utc


@dataclass(slots=True)
class DailyTotals:
    """Activity of a user on one day, computed from completed sessions."""

    total_sessions: int
    total_words_attempted: int
    total_words_correct: int
    average_response_ms: Optional[float]
    total_time_spent_seconds: float


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Return the UTC start (inclusive) and end (exclusive) of a day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


async def compute_daily_totals(session: AsyncSession, user_id: str, day: date) -> DailyTotals:
    """Recompute a user's totals from the sessions finished on the given day."""
    start, end = day_bounds(day)
    sessions_stmt = select(GameSession).where(
        GameSession.user_id == user_id,
        GameSession.completed.is_(True),
        GameSession.abandoned.is_(False),
        GameSession.end_time >= start,
        GameSession.end_time < end,
    )
    result = await session.execute(sessions_stmt)
    finished = result.scalars().all()
    if not finished:
        return DailyTotals(0, 0, 0, None, 0.0)

    session_ids = [game_session.id for game_session in finished]
    time_spent = sum(
        (as_utc(game_session.end_time) - as_utc(game_session.start_time)).total_seconds()
        for game_session in finished
    )

    attempts_stmt = select(
        func.count(WordAttempt.id),
        func.avg(WordAttempt.response_time_ms),
    ).where(WordAttempt.session_id.in_(session_ids))
    count, average = (await session.execute(attempts_stmt)).one()

    # Correct words are counted once per day, however often they were spelled.
    correct_stmt = select(func.count(func.distinct(WordAttempt.word_id))).where(
        WordAttempt.session_id.in_(session_ids),
        WordAttempt.is_correct.is_(True),
    )
    correct = (await session.execute(correct_stmt)).scalar_one()

    return DailyTotals(
        total_sessions=len(finished),
        total_words_attempted=int(count),
        total_words_correct=int(correct),
        average_response_ms=float(average) if average is not None else None,
        total_time_spent_seconds=max(0.0, time_spent),
    )


async def get_user_statistics(
    session: AsyncSession,
    user_id: str,
    period_start: date,
    period_type: str = PERIOD_DAILY,
) -> Optional[UserStatistics]:
    """Return the stored aggregate for a period, if present."""
    stmt = select(UserStatistics).where(
        UserStatistics.user_id == user_id,
        UserStatistics.period_start == period_start,
        UserStatistics.period_type == period_type,
    )
    result = await session.execute(stmt)
    return result.scalars().first()


async def save_user_statistics(
    session: AsyncSession,
    user_id: str,
    period_start: date,
    totals: DailyTotals,
    *,
    period_type: str = PERIOD_DAILY,
    now: Optional[datetime] = None,
) -> UserStatistics:
    """Overwrite the stored aggregate for a period with freshly computed totals."""
    if now is None:
        now = datetime.now(timezone.utc)

    record = await get_user_statistics(session, user_id, period_start, period_type)
    if record is None:
        record = UserStatistics(user_id=user_id, period_start=period_start, period_type=period_type)
        session.add(record)

    record.total_sessions = totals.total_sessions
    record.total_words_attempted = totals.total_words_attempted
    record.total_words_correct = totals.total_words_correct
    record.average_response_ms = totals.average_response_ms
    record.total_time_spent_seconds = totals.total_time_spent_seconds
    record.updated_at = now
    await session.flush()
    return record
