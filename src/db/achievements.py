"""Helpers for the achievement catalog and user unlocks."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from . import Achievement, UserAchievement


async def upsert_achievement(
    session: AsyncSession,
    *,
    code: str,
    name: str,
    description: str,
    condition_type: str,
    condition_value: int,
    tier_level: Optional[int] = None,
    icon_name: Optional[str] = None,
) -> tuple[Achievement, bool]:
    """Create a catalog entry or refresh the stored copy of it."""
    stmt = select(Achievement).where(Achievement.code == code)
    result = await session.execute(stmt)
    achievement = result.scalars().first()
    created = achievement is None
    if achievement is None:
        achievement = Achievement(code=code)
        session.add(achievement)

    achievement.name = name
    achievement.description = description
    achievement.condition_type = condition_type
    achievement.condition_value = condition_value
    achievement.tier_level = tier_level
    achievement.icon_name = icon_name
    await session.flush()
    return achievement, created


async def get_achievements_by_code(
    session: AsyncSession, codes: Sequence[str]
) -> dict[str, Achievement]:
    """Return catalog entries keyed by code."""
    if not codes:
        return {}
    stmt = select(Achievement).where(Achievement.code.in_(list(codes)))
    result = await session.execute(stmt)
    return {achievement.code: achievement for achievement in result.scalars()}


async def get_unlocked_achievement_ids(session: AsyncSession, user_id: str) -> set[int]:
    """Return the ids of achievements a user has already unlocked."""
    stmt = select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
    result = await session.execute(stmt)
    return set(result.scalars().all())


async def insert_user_achievement(
    session: AsyncSession,
    user_id: str,
    achievement: Achievement,
    now: Optional[datetime] = None,
) -> Optional[UserAchievement]:
    """Record an unlock; returns None when the user already holds it."""
    if now is None:
        now = datetime.now(timezone.utc)

    unlock = UserAchievement(user_id=user_id, achievement_id=achievement.id, achieved_at=now)
    try:
        async with session.begin_nested():
            session.add(unlock)
            await session.flush()
    except IntegrityError:
        return None
    return unlock


async def list_user_achievements(session: AsyncSession, user_id: str) -> Sequence[UserAchievement]:
    """Return a user's unlocks, newest first."""
    stmt = (
        select(UserAchievement)
        .options(selectinload(UserAchievement.achievement))
        .where(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.achieved_at.desc(), UserAchievement.id.desc())
    )
    result = await session.execute(stmt)
    return result.scalars().all()
