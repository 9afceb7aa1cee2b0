"""Top-level API used by the presentation layer to run drilling sessions."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, Collection, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db import (
    MODE_CUSTOM,
    MODE_SPACED_REPETITION,
    GameSession,
    UserAchievement,
    UserStatistics,
    Word,
    WordAttempt,
)
from src.db.attempts import list_session_attempts
from src.db.sessions import (
    SessionSummary,
    get_game_session,
    get_unfinalized_sessions,
    list_recent_sessions,
    mark_session_finalized,
    summarize_user_sessions,
)
from src.engine.achievements import (
    DEFAULT_FAST_RESPONSE_MS,
    AchievementEvaluator,
    AchievementUnlocked,
    build_catalog,
)
from src.engine.countdown import WordCountdown
from src.engine.errors import (
    CollaboratorError,
    DuplicateAttempt,
    NotFound,
    SessionPaused,
    ValidationError,
    WordDrillError,
)
from src.engine.lifecycle import SessionLifecycle, SessionState, SubmitResult
from src.engine.locks import KeyedLocks
from src.engine.recorder import AttemptRecorder
from src.engine.review_store import ReviewStore
from src.engine.schedule import quality_for
from src.engine.statistics import StatisticsAggregator
from src.engine.validation import validate_language, validate_mode
from src.services.speech import PlaybackCallbacks, SpeechPlayer


LOGGER = logging.getLogger(__name__)

DEFAULT_LANGUAGES = ("en", "fr", "de")
DEFAULT_WORD_TIME_LIMIT = 10.0
DEFAULT_DUE_WORDS_LIMIT = 10
DEFAULT_MAX_SESSION_WORDS = 50


@dataclass(slots=True)
class StartSessionResult:
    """Either a running session or the report that nothing is due for review."""

    lifecycle: Optional[SessionLifecycle]
    empty_queue: bool = False

    @property
    def session_id(self) -> Optional[int]:
        return self.lifecycle.session_id if self.lifecycle is not None else None


@dataclass(slots=True)
class SubmitOutcome:
    """Everything the presentation layer needs after an answer or a timeout."""

    session_id: int
    attempt: WordAttempt
    word: Word
    word_index: int
    next_word: Optional[Word]
    completed: bool
    correct_words: int
    total_words: int
    unlocked: List[AchievementUnlocked] = field(default_factory=list)
    statistics: Optional[UserStatistics] = None

    @property
    def is_correct(self) -> bool:
        return self.attempt.is_correct


@dataclass(slots=True)
class _ActiveSession:
    lifecycle: SessionLifecycle
    paused: bool = False
    countdown: Optional[WordCountdown] = None


class SessionOrchestrator:
    """Composes review selection, session lifecycle, achievements and statistics."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        speech_player: Optional[SpeechPlayer] = None,
        supported_languages: Collection[str] = DEFAULT_LANGUAGES,
        word_time_limit: float = DEFAULT_WORD_TIME_LIMIT,
        due_words_limit: int = DEFAULT_DUE_WORDS_LIMIT,
        max_session_words: Optional[int] = DEFAULT_MAX_SESSION_WORDS,
        fast_response_ms: int = DEFAULT_FAST_RESPONSE_MS,
        on_timeout: Optional[Callable[[SubmitOutcome], Awaitable[None]]] = None,
    ) -> None:
        self._session_factory = session_factory
        self._speech_player = speech_player
        self._supported_languages = frozenset(language.lower() for language in supported_languages)
        self._word_time_limit = word_time_limit
        self._due_words_limit = due_words_limit
        self._max_session_words = max_session_words
        self._on_timeout = on_timeout
        self._locks = KeyedLocks()
        self._recorder = AttemptRecorder()
        self.review_store = ReviewStore(session_factory, self._locks)
        self.achievements = AchievementEvaluator(
            session_factory,
            catalog=build_catalog(fast_response_ms),
            locks=self._locks,
        )
        self.statistics = StatisticsAggregator(session_factory, self._locks)
        self._active: Dict[int, _ActiveSession] = {}

    @property
    def timeout_response_ms(self) -> int:
        return int(self._word_time_limit * 1000)

    async def start_session(
        self,
        user_id: str,
        mode: str,
        language: str,
        words: Optional[Sequence[str]] = None,
        due_count: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> StartSessionResult:
        """Open a session; in spaced mode an empty review queue opens nothing."""
        mode = validate_mode(mode)
        language = validate_language(language, self._supported_languages)
        await self.finalize_pending_sessions(user_id)

        if mode == MODE_SPACED_REPETITION:
            due = await self.review_store.select_due(
                user_id, language, due_count or self._due_words_limit, now=now
            )
            if not due:
                LOGGER.info("No words due for user %s in %s.", user_id, language)
                return StartSessionResult(lifecycle=None, empty_queue=True)
            texts = [word.text for word in due]
        else:
            if words is None:
                raise ValidationError("Custom sessions need a word list.")
            texts = list(words)

        lifecycle = await SessionLifecycle.create(
            self._session_factory,
            user_id,
            mode,
            language,
            texts,
            supported_languages=self._supported_languages,
            max_words=self._max_session_words,
            review_store=self.review_store if mode == MODE_CUSTOM else None,
            recorder=self._recorder,
            locks=self._locks,
            now=now,
        )

        for session_id, active in list(self._active.items()):
            if active.lifecycle.user_id == user_id:
                self._forget(session_id)
        self._active[lifecycle.session_id] = _ActiveSession(lifecycle=lifecycle)
        return StartSessionResult(lifecycle=lifecycle)

    async def present_word(self, session_id: int) -> bool:
        """Pronounce the current word and arm its countdown once playback ends.

        Returns False when nothing was presented because the session is paused
        or has no word left.
        """
        active = await self._get_active(session_id)
        lifecycle = active.lifecycle
        word = lifecycle.current_word()
        if active.paused or word is None:
            return False

        if active.countdown is not None:
            active.countdown.cancel()
        countdown = WordCountdown(
            self._word_time_limit,
            functools.partial(self._on_countdown_expired, session_id, lifecycle.current_index),
        )
        active.countdown = countdown

        def arm(*_: object) -> None:
            if active.countdown is countdown and not active.paused:
                countdown.start()

        if self._speech_player is None:
            arm()
            return True

        try:
            await self._speech_player.play(
                word.text,
                lifecycle.language,
                PlaybackCallbacks(on_end=arm, on_error=arm),
            )
        except Exception as exc:
            LOGGER.exception("Speech playback failed for session %s.", session_id)
            raise CollaboratorError(f"Could not play word for session {session_id}.") from exc
        return True

    async def submit_answer(
        self,
        session_id: int,
        user_input: str,
        elapsed_ms: int,
        word_index: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> SubmitOutcome:
        """Record the learner's answer for the current word."""
        active = await self._get_active(session_id)
        if active.paused:
            raise SessionPaused(f"Session {session_id} is paused.")
        return await self._submit(active, user_input, elapsed_ms, word_index, now)

    async def timeout_current_word(
        self,
        session_id: int,
        word_index: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[SubmitOutcome]:
        """Record an expired countdown as an empty answer; ignored while paused."""
        active = await self._get_active(session_id)
        if active.paused:
            LOGGER.debug("Ignoring timeout for paused session %s.", session_id)
            return None
        return await self._submit(active, "", self.timeout_response_ms, word_index, now)

    async def pause(self, session_id: int) -> None:
        """Freeze the countdown and silence playback; stored state is untouched."""
        active = await self._get_active(session_id)
        if active.paused:
            return
        active.paused = True
        if active.countdown is not None:
            active.countdown.pause()
        if self._speech_player is not None:
            self._speech_player.stop()
        LOGGER.debug("Session %s paused.", session_id)

    async def resume(self, session_id: int) -> bool:
        """Unfreeze a paused session.

        Returns True when a countdown picked up where it stopped, False when
        the current word has to be presented again.
        """
        active = await self._get_active(session_id)
        if not active.paused:
            return False
        active.paused = False
        countdown = active.countdown
        LOGGER.debug("Session %s resumed.", session_id)
        if countdown is not None and countdown.is_paused:
            countdown.resume()
            return True
        return False

    def is_paused(self, session_id: int) -> bool:
        active = self._active.get(session_id)
        return active is not None and active.paused

    async def end_session_early(self, session_id: int, now: Optional[datetime] = None) -> bool:
        """Abandon a session on the learner's request."""
        active = await self._get_active(session_id)
        if self._speech_player is not None:
            self._speech_player.stop()
        try:
            return await active.lifecycle.abandon(now=now)
        finally:
            self._forget(session_id)

    async def get_lifecycle(self, session_id: int) -> SessionLifecycle:
        return (await self._get_active(session_id)).lifecycle

    async def get_session(self, session_id: int) -> GameSession:
        async with self._session_factory() as session:
            game_session = await get_game_session(session, session_id)
        if game_session is None:
            raise NotFound(f"Session {session_id} does not exist.")
        return game_session

    async def list_recent_sessions(self, user_id: str, limit: int = 10) -> Sequence[GameSession]:
        async with self._session_factory() as session:
            return await list_recent_sessions(session, user_id, limit)

    async def list_session_attempts(self, session_id: int) -> Sequence[WordAttempt]:
        async with self._session_factory() as session:
            return await list_session_attempts(session, session_id)

    async def list_user_achievements(self, user_id: str) -> Sequence[UserAchievement]:
        return await self.achievements.list_unlocked(user_id)

    async def get_daily_statistics(self, user_id: str, day: Optional[date] = None) -> Optional[UserStatistics]:
        return await self.statistics.get_daily(user_id, day)

    async def count_due_words(self, user_id: str, language: str) -> int:
        language = validate_language(language, self._supported_languages)
        return await self.review_store.count_due(user_id, language)

    async def get_user_summary(self, user_id: str) -> SessionSummary:
        """Games finished, games left unfinished and mean accuracy of the finished ones."""
        async with self._session_factory() as session:
            return await summarize_user_sessions(session, user_id)

    async def finalize_pending_sessions(self, user_id: str) -> int:
        """Re-run the completion updates of sessions whose previous run failed."""
        async with self._session_factory() as session:
            pending = [item.id for item in await get_unfinalized_sessions(session, user_id)]

        for session_id in pending:
            lifecycle = await SessionLifecycle.load(
                self._session_factory,
                session_id,
                recorder=self._recorder,
                locks=self._locks,
            )
            await self._resume_completion(lifecycle)
        return len(pending)

    async def _get_active(self, session_id: int) -> _ActiveSession:
        active = self._active.get(session_id)
        if active is None:
            lifecycle = await SessionLifecycle.load(
                self._session_factory,
                session_id,
                recorder=self._recorder,
                locks=self._locks,
            )
            if lifecycle.is_finished:
                if lifecycle.state is SessionState.COMPLETED and not lifecycle.finalized:
                    await self._resume_completion(lifecycle)
                return _ActiveSession(lifecycle=lifecycle)
            active = self._active.setdefault(session_id, _ActiveSession(lifecycle=lifecycle))
        return active

    async def _submit(
        self,
        active: _ActiveSession,
        user_input: str,
        response_time_ms: int,
        word_index: Optional[int],
        now: Optional[datetime],
    ) -> SubmitOutcome:
        if now is None:
            now = datetime.now(timezone.utc)
        lifecycle = active.lifecycle
        countdown = active.countdown

        result: SubmitResult = await lifecycle.submit(
            user_input,
            response_time_ms,
            word_index=word_index,
            now=now,
        )
        if countdown is not None and active.countdown is countdown:
            countdown.cancel()
            active.countdown = None

        unlocked = await self.achievements.evaluate_attempt(result.record, now=now)
        statistics = None
        if result.completed:
            session_unlocked, statistics = await self._finish(lifecycle, now)
            unlocked.extend(session_unlocked)

        return SubmitOutcome(
            session_id=lifecycle.session_id,
            attempt=result.record.attempt,
            word=result.word,
            word_index=result.word_index,
            next_word=result.next_word,
            completed=result.completed,
            correct_words=result.record.correct_words,
            total_words=result.record.total_words,
            unlocked=unlocked,
            statistics=statistics,
        )

    async def _finish(
        self, lifecycle: SessionLifecycle, now: datetime
    ) -> tuple[List[AchievementUnlocked], UserStatistics]:
        """Run the completion pipeline: reviews, achievements, statistics.

        Every step is idempotent and the session is only flagged finalized
        once all of them succeeded, so a failed run is repeated in full the
        next time the session is touched.
        """
        session_id = lifecycle.session_id
        self._forget(session_id)
        async with self._locks.hold(("finalize", session_id)):
            try:
                if lifecycle.mode == MODE_SPACED_REPETITION:
                    for attempt in await self.list_session_attempts(session_id):
                        await self.review_store.record_review(
                            lifecycle.user_id,
                            attempt.word_id,
                            quality_for(attempt.is_correct),
                            now=now,
                            session_id=session_id,
                        )
                unlocked = await self.achievements.evaluate_session(
                    lifecycle.user_id, session_id, now=now
                )
                statistics = await self.statistics.roll_up(lifecycle.user_id, now=now)
                async with self._session_factory() as session:
                    async with session.begin():
                        await mark_session_finalized(session, session_id)
            except Exception:
                LOGGER.exception("Failed to finalize session %s.", session_id)
                raise
        lifecycle.finalized = True
        return unlocked, statistics

    async def _resume_completion(self, lifecycle: SessionLifecycle) -> None:
        LOGGER.info("Finishing interrupted completion of session %s.", lifecycle.session_id)
        await self._finish(lifecycle, lifecycle.completed_at or datetime.now(timezone.utc))

    async def _on_countdown_expired(self, session_id: int, word_index: int) -> None:
        active = self._active.get(session_id)
        if active is None or active.paused:
            return
        try:
            outcome = await self.timeout_current_word(session_id, word_index=word_index)
        except DuplicateAttempt:
            LOGGER.debug("Countdown expired after word %s of session %s was answered.", word_index, session_id)
            return
        except WordDrillError as exc:
            LOGGER.warning("Could not record timeout for session %s: %s", session_id, exc)
            return
        except Exception:
            LOGGER.exception("Failed to record timeout for session %s.", session_id)
            return

        if outcome is not None and self._on_timeout is not None:
            await self._on_timeout(outcome)

    def _forget(self, session_id: int) -> None:
        active = self._active.pop(session_id, None)
        if active is not None and active.countdown is not None:
            active.countdown.cancel()
