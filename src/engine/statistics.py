"""Daily statistics roll-up, run once per completed session."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db import UserStatistics
from src.db.statistics import compute_daily_totals, get_user_statistics, save_user_statistics
from src.engine.locks import KeyedLocks


LOGGER = logging.getLogger(__name__)


class StatisticsAggregator:
    """Recomputes a user's daily aggregate from completed sessions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks: Optional[KeyedLocks] = None,
    ) -> None:
        self._session_factory = session_factory
        self._locks = locks or KeyedLocks()

    async def roll_up(
        self,
        user_id: str,
        day: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> UserStatistics:
        """Rebuild the day's totals from scratch so repeated runs never drift."""
        if now is None:
            now = datetime.now(timezone.utc)
        if day is None:
            day = now.date()

        async with self._locks.hold(("statistics", user_id, day)):
            async with self._session_factory() as session:
                async with session.begin():
                    totals = await compute_daily_totals(session, user_id, day)
                    record = await save_user_statistics(session, user_id, day, totals, now=now)

        LOGGER.info(
            "Statistics for user %s on %s: %d sessions, %d attempts, %d words correct.",
            user_id,
            day.isoformat(),
            totals.total_sessions,
            totals.total_words_attempted,
            totals.total_words_correct,
        )
        return record

    async def get_daily(self, user_id: str, day: Optional[date] = None) -> Optional[UserStatistics]:
        if day is None:
            day = datetime.now(timezone.utc).date()
        async with self._session_factory() as session:
            return await get_user_statistics(session, user_id, day)
