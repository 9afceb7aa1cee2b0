"""At-most-once recording of graded attempts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.db import GameSession, Word, WordAttempt
from src.db.attempts import get_attempt, insert_attempt, summarize_session_attempts
from src.db.sessions import mark_session_closed
from src.engine.errors import DuplicateAttempt
from src.engine.validation import answers_match, validate_answer


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RecordResult:
    """Outcome of recording one attempt, fed explicitly to later stages."""

    attempt: WordAttempt
    session_id: int
    user_id: str
    attempts_recorded: int
    correct_words: int
    average_response_ms: Optional[float]
    total_words: int
    completed_now: bool

    @property
    def is_correct(self) -> bool:
        return self.attempt.is_correct


class AttemptRecorder:
    """Records an attempt once per (session, word) and refreshes session aggregates."""

    async def record(
        self,
        session: AsyncSession,
        game_session: GameSession,
        word: Word,
        user_input: str,
        response_time_ms: int,
        now: Optional[datetime] = None,
    ) -> RecordResult:
        """Persist an attempt inside the caller's transaction.

        Aggregates and completion are derived from a recount of stored
        attempts, so a retried submission can never skew them.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        answer = validate_answer(user_input, response_time_ms)

        if await get_attempt(session, game_session.id, word.id) is not None:
            LOGGER.warning("Rejected repeated answer for word %s in session %s.", word.id, game_session.id)
            raise DuplicateAttempt(game_session.id, word.id)

        is_correct = answers_match(word.text, answer)
        try:
            attempt = await insert_attempt(
                session,
                session_id=game_session.id,
                word_id=word.id,
                user_id=game_session.user_id,
                user_input=answer,
                is_correct=is_correct,
                response_time_ms=response_time_ms,
                now=now,
            )
        except IntegrityError as exc:
            LOGGER.warning("Concurrent answer for word %s in session %s lost the race.", word.id, game_session.id)
            raise DuplicateAttempt(game_session.id, word.id) from exc

        totals = await summarize_session_attempts(session, game_session.id)
        game_session.correct_words = totals.correct
        game_session.average_response_ms = totals.average_response_ms

        completed_now = False
        if totals.attempts >= game_session.total_words:
            completed_now = mark_session_closed(game_session, now)
        await session.flush()

        LOGGER.debug(
            "Recorded attempt for session %s word %r: correct=%s time=%sms (%d/%d).",
            game_session.id,
            word.text,
            is_correct,
            response_time_ms,
            totals.attempts,
            game_session.total_words,
        )
        if completed_now:
            LOGGER.info(
                "Session %s completed with %d/%d correct words.",
                game_session.id,
                totals.correct,
                game_session.total_words,
            )

        return RecordResult(
            attempt=attempt,
            session_id=game_session.id,
            user_id=game_session.user_id,
            attempts_recorded=totals.attempts,
            correct_words=totals.correct,
            average_response_ms=totals.average_response_ms,
            total_words=game_session.total_words,
            completed_now=completed_now,
        )
