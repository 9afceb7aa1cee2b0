"""Derivation of achievement unlocks from recorded attempts and sessions."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db import Achievement, UserAchievement
from src.db.achievements import (
    get_achievements_by_code,
    get_unlocked_achievement_ids,
    insert_user_achievement,
    list_user_achievements,
    upsert_achievement,
)
from src.db.attempts import count_mastered_words, list_recent_attempts
from src.db.sessions import get_game_session
from src.engine.errors import NotFound
from src.engine.locks import KeyedLocks
from src.engine.recorder import RecordResult


LOGGER = logging.getLogger(__name__)


class AchievementKind(str, enum.Enum):
    FIRST_WORD = "first_word"
    FAST_RESPONSE = "fast_response"
    PERFECT_SCORE = "perfect_score"
    PERFECT_STREAK = "perfect_streak"
    WORDS_MASTERED = "words_mastered"
    WORDS_MASTERED_ANY = "words_mastered_any"


@dataclass(frozen=True, slots=True)
class AchievementDescriptor:
    """Static definition of an achievement; ``threshold`` meaning depends on the kind."""

    code: str
    kind: AchievementKind
    name: str
    description: str
    threshold: int
    tier_level: Optional[int] = None
    icon_name: Optional[str] = None


MASTERY_TIERS = (
    (10, "Word Beginner"),
    (25, "Letter Amateur"),
    (50, "Vocabulary Explorer"),
    (75, "Word Curious"),
    (100, "Word Collector"),
    (125, "Spelling Detective"),
    (150, "Word Hunter"),
    (175, "Syllable Expert"),
    (200, "Letter Archivist"),
    (250, "Lexicon Master"),
    (300, "Difficult Words Tamer"),
    (350, "Language Scholar"),
    (400, "Dictation Genius"),
    (450, "Virtual Scribe"),
    (500, "Spelling Professor"),
)

DEFAULT_FAST_RESPONSE_MS = 5000


def build_catalog(fast_response_ms: int = DEFAULT_FAST_RESPONSE_MS) -> tuple[AchievementDescriptor, ...]:
    """Return the achievement catalog with the given fast-response threshold."""
    if fast_response_ms < 1:
        raise ValueError("The fast-response threshold must be positive.")

    base = (
        AchievementDescriptor(
            code="first_word",
            kind=AchievementKind.FIRST_WORD,
            name="First Word Written",
            description="Successfully write your first word correctly",
            threshold=1,
            icon_name="award",
        ),
        AchievementDescriptor(
            code="fast_response",
            kind=AchievementKind.FAST_RESPONSE,
            name="Speed",
            description=f"Write a word correctly in less than {fast_response_ms / 1000:g} seconds",
            threshold=fast_response_ms,
            icon_name="timer",
        ),
        AchievementDescriptor(
            code="perfect_score",
            kind=AchievementKind.PERFECT_SCORE,
            name="Spelling Master",
            description="Get a perfect score in a session of at least 10 words",
            threshold=10,
            icon_name="star",
        ),
        AchievementDescriptor(
            code="perfect_streak",
            kind=AchievementKind.PERFECT_STREAK,
            name="Perfect Series",
            description="Write 10/10 words in a row without error",
            threshold=10,
            icon_name="star",
        ),
        AchievementDescriptor(
            code="words_mastered_any",
            kind=AchievementKind.WORDS_MASTERED_ANY,
            name="Language Apprentice",
            description="Master more and more words to unlock levels",
            threshold=MASTERY_TIERS[0][0],
            icon_name="book",
        ),
    )
    tiers = tuple(
        AchievementDescriptor(
            code=f"words_mastered_{count}",
            kind=AchievementKind.WORDS_MASTERED,
            name=name,
            description=f"Master {count} words",
            threshold=count,
            tier_level=level,
            icon_name="book",
        )
        for level, (count, name) in enumerate(MASTERY_TIERS, start=1)
    )
    return base + tiers


CATALOG = build_catalog()


@dataclass(slots=True)
class AchievementUnlocked:
    """Event emitted once, the first time a user meets an achievement's condition."""

    user_id: str
    code: str
    kind: AchievementKind
    name: str
    achieved_at: datetime
    tier_level: Optional[int] = None


class AchievementEvaluator:
    """Checks achievement conditions and records each unlock exactly once."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        catalog: Sequence[AchievementDescriptor] = CATALOG,
        locks: Optional[KeyedLocks] = None,
    ) -> None:
        self._session_factory = session_factory
        self._catalog = tuple(catalog)
        self._locks = locks or KeyedLocks()

    def _of_kind(self, kind: AchievementKind) -> List[AchievementDescriptor]:
        return [descriptor for descriptor in self._catalog if descriptor.kind is kind]

    async def seed_catalog(self) -> int:
        """Store every catalog entry; returns how many were new."""
        created = 0
        async with self._session_factory() as session:
            async with session.begin():
                for descriptor in self._catalog:
                    _, was_created = await self._store_descriptor(session, descriptor)
                    created += int(was_created)
        LOGGER.info("Achievement catalog ready (%d entries, %d new).", len(self._catalog), created)
        return created

    async def evaluate_attempt(
        self, record: RecordResult, now: Optional[datetime] = None
    ) -> List[AchievementUnlocked]:
        """Check conditions that depend on a single attempt."""
        if not record.is_correct:
            return []

        earned: List[AchievementDescriptor] = list(self._of_kind(AchievementKind.FIRST_WORD))
        earned.extend(
            descriptor
            for descriptor in self._of_kind(AchievementKind.FAST_RESPONSE)
            if record.attempt.response_time_ms < descriptor.threshold
        )
        return await self._unlock(record.user_id, earned, now=now)

    async def evaluate_session(
        self,
        user_id: str,
        session_id: int,
        now: Optional[datetime] = None,
    ) -> List[AchievementUnlocked]:
        """Check conditions that depend on a completed session and the user's history."""
        async with self._session_factory() as session:
            game_session = await get_game_session(session, session_id)
            if game_session is None:
                raise NotFound(f"Session {session_id} does not exist.")

            earned: List[AchievementDescriptor] = [
                descriptor
                for descriptor in self._of_kind(AchievementKind.PERFECT_SCORE)
                if game_session.total_words >= descriptor.threshold
                and game_session.correct_words == game_session.total_words
            ]

            for descriptor in self._of_kind(AchievementKind.PERFECT_STREAK):
                recent = await list_recent_attempts(session, user_id, descriptor.threshold)
                if len(recent) == descriptor.threshold and all(item.is_correct for item in recent):
                    earned.append(descriptor)

            mastered = await count_mastered_words(session, user_id)

        tiers = sorted(self._of_kind(AchievementKind.WORDS_MASTERED), key=lambda item: item.threshold)
        reached = [descriptor for descriptor in tiers if mastered >= descriptor.threshold]
        if reached:
            earned.extend(self._of_kind(AchievementKind.WORDS_MASTERED_ANY))
        earned.extend(reached)
        return await self._unlock(user_id, earned, now=now)

    async def list_unlocked(self, user_id: str) -> Sequence[UserAchievement]:
        async with self._session_factory() as session:
            return await list_user_achievements(session, user_id)

    async def _unlock(
        self,
        user_id: str,
        descriptors: Iterable[AchievementDescriptor],
        now: Optional[datetime] = None,
    ) -> List[AchievementUnlocked]:
        descriptors = list(descriptors)
        if not descriptors:
            return []
        if now is None:
            now = datetime.now(timezone.utc)

        events: List[AchievementUnlocked] = []
        async with self._locks.hold(("achievements", user_id)):
            async with self._session_factory() as session:
                async with session.begin():
                    rows = await get_achievements_by_code(
                        session, [descriptor.code for descriptor in descriptors]
                    )
                    unlocked = await get_unlocked_achievement_ids(session, user_id)
                    for descriptor in descriptors:
                        achievement = rows.get(descriptor.code)
                        if achievement is None:
                            achievement, _ = await self._store_descriptor(session, descriptor)
                            rows[descriptor.code] = achievement
                        if achievement.id in unlocked:
                            continue
                        if await insert_user_achievement(session, user_id, achievement, now=now) is None:
                            continue
                        unlocked.add(achievement.id)
                        events.append(
                            AchievementUnlocked(
                                user_id=user_id,
                                code=descriptor.code,
                                kind=descriptor.kind,
                                name=descriptor.name,
                                achieved_at=now,
                                tier_level=descriptor.tier_level,
                            )
                        )

        for event in events:
            LOGGER.info("User %s unlocked achievement %r.", user_id, event.code)
        return events

    @staticmethod
    async def _store_descriptor(
        session: AsyncSession, descriptor: AchievementDescriptor
    ) -> tuple[Achievement, bool]:
        return await upsert_achievement(
            session,
            code=descriptor.code,
            name=descriptor.name,
            description=descriptor.description,
            condition_type=descriptor.kind.value,
            condition_value=descriptor.threshold,
            tier_level=descriptor.tier_level,
            icon_name=descriptor.icon_name,
        )
