"""Selection of due words and recording of graded reviews."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db import ReviewState, Word
from src.db.reviews import (
    DEFAULT_EASINESS_FACTOR,
    count_due_review_states,
    ensure_review_state,
    get_due_review_states,
    get_review_state,
    save_review_state,
)
from src.engine import schedule
from src.engine.errors import NotFound, ValidationError
from src.engine.locks import KeyedLocks


LOGGER = logging.getLogger(__name__)


class ReviewStore:
    """Owns per-user, per-word spaced-repetition state."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks: Optional[KeyedLocks] = None,
    ) -> None:
        self._session_factory = session_factory
        self._locks = locks or KeyedLocks()

    async def select_due(
        self,
        user_id: str,
        language: str,
        limit: int,
        now: Optional[datetime] = None,
    ) -> List[Word]:
        """Return up to ``limit`` due words, earliest due first then shortest interval."""
        if limit < 1:
            raise ValidationError("The number of words to review must be positive.")
        async with self._session_factory() as session:
            states = await get_due_review_states(session, user_id, language, limit, now=now)
        words = [state.word for state in states]
        LOGGER.debug("User %s has %d due words in %s.", user_id, len(words), language)
        return words

    async def count_due(self, user_id: str, language: str, now: Optional[datetime] = None) -> int:
        async with self._session_factory() as session:
            return await count_due_review_states(session, user_id, language, now=now)

    async def ensure_tracked(
        self,
        session: AsyncSession,
        user_id: str,
        words: Sequence[Word],
        now: Optional[datetime] = None,
    ) -> int:
        """Register first exposure of words inside the caller's transaction."""
        created = 0
        for word in words:
            _, was_created = await ensure_review_state(session, user_id, word, now=now)
            created += int(was_created)
        if created:
            LOGGER.info("Started tracking %d new words for user %s.", created, user_id)
        return created

    async def get_state(self, user_id: str, word_id: int) -> ReviewState:
        async with self._session_factory() as session:
            state = await get_review_state(session, user_id, word_id)
        if state is None:
            raise NotFound(f"No review state for user {user_id} and word {word_id}.")
        return state

    async def record_review(
        self,
        user_id: str,
        word_id: int,
        quality: int,
        now: Optional[datetime] = None,
        session_id: Optional[int] = None,
    ) -> ReviewState:
        """Apply one graded recall to the stored schedule of a word.

        With ``session_id`` the recall is applied at most once per session, so
        re-running a session's completion never moves a schedule twice.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        async with self._locks.hold(("review", user_id, word_id)):
            async with self._session_factory() as session:
                async with session.begin():
                    current = await get_review_state(session, user_id, word_id)
                    if (
                        session_id is not None
                        and current is not None
                        and current.last_session_id == session_id
                    ):
                        LOGGER.debug(
                            "Review of word %s from session %s was already applied.", word_id, session_id
                        )
                        return current
                    if current is None:
                        easiness, interval, repetitions = DEFAULT_EASINESS_FACTOR, 0, 0
                    else:
                        easiness = current.easiness_factor
                        interval = current.interval
                        repetitions = current.repetitions

                    state = schedule.next_state(quality, easiness, interval, repetitions)
                    saved = await save_review_state(
                        session,
                        user_id,
                        word_id,
                        easiness_factor=state.easiness_factor,
                        interval=state.interval,
                        repetitions=state.repetitions,
                        next_review=schedule.next_review_at(state, now),
                        session_id=session_id,
                        now=now,
                    )

        LOGGER.debug(
            "Review of word %s for user %s: quality=%s interval=%s ef=%.2f.",
            word_id,
            user_id,
            quality,
            state.interval,
            state.easiness_factor,
        )
        return saved
