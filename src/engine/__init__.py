"""Learning-session engine for the Word Drill game."""

from .achievements import AchievementEvaluator, AchievementKind, AchievementUnlocked
from .errors import (
    CollaboratorError,
    ConcurrencyConflict,
    DuplicateAttempt,
    NotFound,
    SessionClosed,
    SessionPaused,
    ValidationError,
    WordDrillError,
)
from .lifecycle import SessionLifecycle, SessionState
from .orchestrator import SessionOrchestrator, StartSessionResult, SubmitOutcome
from .review_store import ReviewStore

__all__ = [
    "AchievementEvaluator",
    "AchievementKind",
    "AchievementUnlocked",
    "CollaboratorError",
    "ConcurrencyConflict",
    "DuplicateAttempt",
    "NotFound",
    "ReviewStore",
    "SessionClosed",
    "SessionLifecycle",
    "SessionOrchestrator",
    "SessionPaused",
    "SessionState",
    "StartSessionResult",
    "SubmitOutcome",
    "ValidationError",
    "WordDrillError",
]
