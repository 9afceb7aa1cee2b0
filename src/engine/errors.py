"""Exceptions raised by the learning-session engine."""

from __future__ import annotations

from typing import Iterable, List, Optional


class WordDrillError(Exception):
    """Base class for every error the engine reports to its callers."""


class ValidationError(WordDrillError):
    """Input was rejected before any state was changed."""

    def __init__(self, message: str, problems: Optional[Iterable[str]] = None) -> None:
        super().__init__(message)
        self.problems: List[str] = list(problems or [])


class DuplicateAttempt(WordDrillError):
    """The word was already answered in this session.

    Callers should treat this as an already-applied submission rather than a
    failure.
    """

    def __init__(self, session_id: int, word_id: Optional[int] = None) -> None:
        detail = f" word {word_id}" if word_id is not None else ""
        super().__init__(f"Session {session_id}{detail} already has a recorded attempt.")
        self.session_id = session_id
        self.word_id = word_id


class NotFound(WordDrillError):
    """A session, word or review state does not exist."""


class ConcurrencyConflict(WordDrillError):
    """Two writers raced for the same resource and the retry also lost."""


class SessionClosed(WordDrillError):
    """The session was abandoned and accepts no more answers."""


class SessionPaused(WordDrillError):
    """The session is paused; answers and timeouts are not accepted."""


class CollaboratorError(WordDrillError):
    """An external collaborator (speech synthesis, storage) failed."""
