"""Helpers for persisting game sessions and their word lists."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import Float, and_, case, cast, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from . import GameSession, SessionWord, Word


async def get_game_session(session: AsyncSession, session_id: int) -> Optional[GameSession]:
    """Return a game session by id."""
    stmt = select(GameSession).where(GameSession.id == session_id)
    result = await session.execute(stmt)
    return result.scalars().first()


async def get_open_sessions(session: AsyncSession, user_id: str) -> Sequence[GameSession]:
    """Return every non-completed session of a user."""
    stmt = (
        select(GameSession)
        .where(GameSession.user_id == user_id, GameSession.completed.is_(False))
        .order_by(GameSession.id)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


def mark_session_closed(
    game_session: GameSession,
    now: datetime,
    *,
    abandoned: bool = False,
) -> bool:
    """Flip a session to completed; returns False when it already was."""
    if game_session.completed:
        return False
    game_session.completed = True
    game_session.abandoned = abandoned
    if game_session.end_time is None:
        game_session.end_time = now
    return True


async def close_open_sessions(
    session: AsyncSession,
    user_id: str,
    now: Optional[datetime] = None,
) -> list[int]:
    """Abandon all open sessions of a user and return their ids."""
    if now is None:
        now = datetime.now(timezone.utc)

    closed: list[int] = []
    for game_session in await get_open_sessions(session, user_id):
        if mark_session_closed(game_session, now, abandoned=True):
            closed.append(game_session.id)
    if closed:
        await session.flush()
    return closed


async def create_game_session(
    session: AsyncSession,
    *,
    user_id: str,
    mode: str,
    language: str,
    words: Sequence[Word],
    now: Optional[datetime] = None,
) -> GameSession:
    """Insert a new open session with its ordered word list."""
    if now is None:
        now = datetime.now(timezone.utc)

    game_session = GameSession(
        user_id=user_id,
        mode=mode,
        language=language,
        total_words=len(words),
        start_time=now,
        completed=False,
        abandoned=False,
        correct_words=0,
        average_response_ms=None,
    )
    session.add(game_session)
    await session.flush()

    for position, word in enumerate(words):
        session.add(SessionWord(session_id=game_session.id, position=position, word_id=word.id))
    await session.flush()
    return game_session


async def get_session_words(session: AsyncSession, session_id: int) -> list[Word]:
    """Return the words of a session in presentation order."""
    stmt = (
        select(Word)
        .join(SessionWord, SessionWord.word_id == Word.id)
        .where(SessionWord.session_id == session_id)
        .order_by(SessionWord.position)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_recent_sessions(
    session: AsyncSession,
    user_id: str,
    limit: int = 10,
) -> Sequence[GameSession]:
    """Return the most recently started sessions of a user."""
    stmt = (
        select(GameSession)
        .where(GameSession.user_id == user_id)
        .order_by(GameSession.start_time.desc(), GameSession.id.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_unfinalized_sessions(session: AsyncSession, user_id: str) -> Sequence[GameSession]:
    """Return completed sessions whose follow-up updates have not all been stored."""
    stmt = (
        select(GameSession)
        .where(
            GameSession.user_id == user_id,
            GameSession.completed.is_(True),
            GameSession.abandoned.is_(False),
            GameSession.finalized.is_(False),
        )
        .order_by(GameSession.end_time, GameSession.id)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def mark_session_finalized(session: AsyncSession, session_id: int) -> bool:
    """Flag a completed session as fully processed; returns False when it already was."""
    game_session = await get_game_session(session, session_id)
    if game_session is None or game_session.finalized:
        return False
    game_session.finalized = True
    await session.flush()
    return True


@dataclass(slots=True)
class SessionSummary:
    """Career overview of a user across every session they started."""

    games_played: int
    games_incomplete: int
    average_accuracy: float


async def summarize_user_sessions(session: AsyncSession, user_id: str) -> SessionSummary:
    """Count finished and unfinished sessions and average the finished ones' accuracy.

    Accuracy is ``correct_words / total_words`` per finished session, averaged
    and expressed as a percentage; 0.0 when nothing was finished yet.
    """
    finished = and_(GameSession.completed.is_(True), GameSession.abandoned.is_(False))
    stmt = select(
        func.count(GameSession.id),
        func.coalesce(func.sum(case((finished, 1), else_=0)), 0),
        func.avg(
            case(
                (finished, cast(GameSession.correct_words, Float) / GameSession.total_words),
                else_=None,
            )
        ),
    ).where(GameSession.user_id == user_id)
    total, played, accuracy = (await session.execute(stmt)).one()
    return SessionSummary(
        games_played=int(played),
        games_incomplete=int(total) - int(played),
        average_accuracy=float(accuracy) * 100 if accuracy is not None else 0.0,
    )
