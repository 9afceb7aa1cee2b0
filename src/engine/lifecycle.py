"""State machine driving one session through its fixed word list."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Collection, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db import MODE_CUSTOM, GameSession, Word, as_utc
from src.db.attempts import get_recorded_word_ids
from src.db.sessions import (
    close_open_sessions,
    create_game_session,
    get_game_session,
    get_session_words,
    mark_session_closed,
)
from src.db.words import get_or_create_words
from src.engine.errors import (
    ConcurrencyConflict,
    DuplicateAttempt,
    NotFound,
    SessionClosed,
    ValidationError,
)
from src.engine.locks import KeyedLocks
from src.engine.recorder import AttemptRecorder, RecordResult
from src.engine.review_store import ReviewStore
from src.engine.validation import prepare_custom_words, validate_language, validate_mode


LOGGER = logging.getLogger(__name__)

_CREATE_ATTEMPTS = 2


class SessionState(str, enum.Enum):
    CREATED = "created"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


@dataclass(slots=True)
class SubmitResult:
    """What happened when an answer was submitted for the current word."""

    record: RecordResult
    word: Word
    word_index: int
    next_word: Optional[Word]
    completed: bool


class SessionLifecycle:
    """Owns the progression of one session: current word, attempts and completion.

    The current index is always re-derived from the attempts stored for the
    session, so a lifecycle rebuilt with :meth:`load` behaves exactly like the
    one that created the session.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        game_session: GameSession,
        words: Sequence[Word],
        *,
        recorded_word_ids: Collection[int] = (),
        recorder: Optional[AttemptRecorder] = None,
        locks: Optional[KeyedLocks] = None,
    ) -> None:
        self._session_factory = session_factory
        self._recorder = recorder or AttemptRecorder()
        self._locks = locks or KeyedLocks()
        self.session_id: int = game_session.id
        self.user_id: str = game_session.user_id
        self.mode: str = game_session.mode
        self.language: str = game_session.language
        self.total_words: int = game_session.total_words
        self.finalized: bool = game_session.finalized
        self.completed_at: Optional[datetime] = (
            as_utc(game_session.end_time) if game_session.end_time is not None else None
        )
        self._words: List[Word] = list(words)
        self._index = self._first_unanswered(set(recorded_word_ids))
        self._state = self._state_from(game_session, bool(recorded_word_ids))

    @classmethod
    async def create(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        user_id: str,
        mode: str,
        language: str,
        words: Sequence[str],
        *,
        supported_languages: Collection[str],
        max_words: Optional[int] = None,
        review_store: Optional[ReviewStore] = None,
        recorder: Optional[AttemptRecorder] = None,
        locks: Optional[KeyedLocks] = None,
        now: Optional[datetime] = None,
    ) -> "SessionLifecycle":
        """Open a new session, closing any session the user still has open."""
        if now is None:
            now = datetime.now(timezone.utc)
        if not user_id:
            raise ValidationError("A user id is required to start a session.")

        mode = validate_mode(mode)
        language = validate_language(language, supported_languages)
        if mode == MODE_CUSTOM:
            texts = prepare_custom_words(words, max_words=max_words)
        else:
            texts = list(dict.fromkeys(words))
            if not texts:
                raise ValidationError("A session needs at least one word.")

        locks = locks or KeyedLocks()
        async with locks.hold(("user", user_id)):
            for attempt in range(_CREATE_ATTEMPTS):
                try:
                    async with session_factory() as session:
                        async with session.begin():
                            closed = await close_open_sessions(session, user_id, now=now)
                            word_rows = await get_or_create_words(session, texts, language)
                            if mode == MODE_CUSTOM and review_store is not None:
                                await review_store.ensure_tracked(session, user_id, word_rows, now=now)
                            game_session = await create_game_session(
                                session,
                                user_id=user_id,
                                mode=mode,
                                language=language,
                                words=word_rows,
                                now=now,
                            )
                    break
                except IntegrityError as exc:
                    # Another process opened a session for this user between our close and insert.
                    if attempt + 1 >= _CREATE_ATTEMPTS:
                        raise ConcurrencyConflict(
                            f"Could not open a session for user {user_id}."
                        ) from exc
                    LOGGER.warning("Session creation for user %s raced; retrying.", user_id)

        if closed:
            LOGGER.info("Abandoned open sessions %s of user %s.", closed, user_id)
        LOGGER.info(
            "Opened %s session %s for user %s with %d %s words.",
            mode,
            game_session.id,
            user_id,
            len(word_rows),
            language,
        )
        return cls(session_factory, game_session, word_rows, recorder=recorder, locks=locks)

    @classmethod
    async def load(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        session_id: int,
        *,
        recorder: Optional[AttemptRecorder] = None,
        locks: Optional[KeyedLocks] = None,
    ) -> "SessionLifecycle":
        """Rebuild a lifecycle from the stored session, word list and attempts."""
        async with session_factory() as session:
            game_session = await get_game_session(session, session_id)
            if game_session is None:
                raise NotFound(f"Session {session_id} does not exist.")
            words = await get_session_words(session, session_id)
            recorded = await get_recorded_word_ids(session, session_id)
        return cls(
            session_factory,
            game_session,
            words,
            recorded_word_ids=recorded,
            recorder=recorder,
            locks=locks,
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def words(self) -> List[Word]:
        return list(self._words)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def is_finished(self) -> bool:
        return self._state in (SessionState.COMPLETED, SessionState.ABANDONED)

    def current_word(self) -> Optional[Word]:
        """Return the word awaiting an answer, or None when no words remain."""
        if self.is_finished or self._index >= len(self._words):
            return None
        return self._words[self._index]

    async def submit(
        self,
        user_input: str,
        response_time_ms: int,
        word_index: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> SubmitResult:
        """Record the answer for the current word and advance or complete.

        ``word_index`` pins the submission to the word that was answered and
        defaults to the word current when the call is made, so a retry that
        queued behind the original is rejected with DuplicateAttempt instead of
        being applied to the next word.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        if word_index is None and not self.is_finished:
            word_index = self._index

        async with self._locks.hold(("session", self.session_id)):
            self._check_open(word_index)

            async with self._session_factory() as session:
                async with session.begin():
                    game_session = await get_game_session(session, self.session_id)
                    if game_session is None:
                        raise NotFound(f"Session {self.session_id} does not exist.")
                    recorded = await get_recorded_word_ids(session, self.session_id)
                    self._index = self._first_unanswered(recorded)
                    if game_session.completed:
                        self._state = self._state_from(game_session, bool(recorded))
                    self._check_open(word_index)

                    index = self._index
                    word = self._words[index]
                    result = await self._recorder.record(
                        session,
                        game_session,
                        word,
                        user_input,
                        response_time_ms,
                        now=now,
                    )
                    recorded.add(word.id)

            self._index = self._first_unanswered(recorded)
            if result.completed_now:
                self._state = SessionState.COMPLETED
                self.completed_at = now
            else:
                self._state = SessionState.IN_PROGRESS

        return SubmitResult(
            record=result,
            word=word,
            word_index=index,
            next_word=self.current_word(),
            completed=result.completed_now,
        )

    async def timeout_current_word(
        self,
        time_limit_ms: int,
        word_index: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> SubmitResult:
        """Record an expired countdown as an empty, incorrect answer."""
        return await self.submit("", time_limit_ms, word_index=word_index, now=now)

    async def abandon(self, now: Optional[datetime] = None) -> bool:
        """End the session early; returns False when it was already closed."""
        if now is None:
            now = datetime.now(timezone.utc)

        async with self._locks.hold(("session", self.session_id)):
            async with self._session_factory() as session:
                async with session.begin():
                    game_session = await get_game_session(session, self.session_id)
                    if game_session is None:
                        raise NotFound(f"Session {self.session_id} does not exist.")
                    changed = mark_session_closed(game_session, now, abandoned=True)
                    if changed:
                        await session.flush()
                    else:
                        self._state = self._state_from(game_session, True)
            if changed:
                self._state = SessionState.ABANDONED
                LOGGER.info("Session %s of user %s ended early.", self.session_id, self.user_id)
        return changed

    def _check_open(self, word_index: Optional[int]) -> None:
        if self._state is SessionState.ABANDONED:
            raise SessionClosed(f"Session {self.session_id} was closed before it was finished.")
        if self._state is SessionState.COMPLETED or self._index >= len(self._words):
            raise DuplicateAttempt(self.session_id)
        if word_index is None:
            return
        if word_index < 0 or word_index >= len(self._words):
            raise ValidationError(f"Session {self.session_id} has no word at position {word_index}.")
        if word_index < self._index:
            raise DuplicateAttempt(self.session_id, self._words[word_index].id)
        if word_index > self._index:
            raise ValidationError(
                f"Word {word_index} of session {self.session_id} has not been presented yet."
            )

    def _first_unanswered(self, recorded: Collection[int]) -> int:
        for index, word in enumerate(self._words):
            if word.id not in recorded:
                return index
        return len(self._words)

    @staticmethod
    def _state_from(game_session: GameSession, has_attempts: bool) -> SessionState:
        if game_session.completed:
            return SessionState.ABANDONED if game_session.abandoned else SessionState.COMPLETED
        return SessionState.IN_PROGRESS if has_attempts else SessionState.CREATED
