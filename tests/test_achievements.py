from __future__ import annotations

from datetime import timedelta

import pytest

from src.db import UserAchievement
from src.engine.achievements import (
    CATALOG,
    MASTERY_TIERS,
    AchievementEvaluator,
    AchievementKind,
    build_catalog,
)
from src.engine.lifecycle import SessionLifecycle


def _distinct_words(count: int, prefix: str = "mot") -> list[str]:
    return [f"{prefix}{chr(97 + index // 26)}{chr(97 + index % 26)}" for index in range(count)]


async def _play(orchestrator, user_id, words, now, *, answers=None, elapsed_ms=1200):
    start = await orchestrator.start_session(user_id, "custom", "fr", words, now=now)
    outcome = None
    for index, word in enumerate(start.lifecycle.words):
        answer = word.text if answers is None else answers[index]
        outcome = await orchestrator.submit_answer(
            start.session_id, answer, elapsed_ms, word_index=index, now=now
        )
    return start.session_id, outcome


def test_catalog_has_flat_tier_list_and_one_any_tier_entry() -> None:
    tiers = [item for item in CATALOG if item.kind is AchievementKind.WORDS_MASTERED]
    any_tier = [item for item in CATALOG if item.kind is AchievementKind.WORDS_MASTERED_ANY]

    assert [item.threshold for item in tiers] == [count for count, _ in MASTERY_TIERS]
    assert [item.tier_level for item in tiers] == list(range(1, len(MASTERY_TIERS) + 1))
    assert len(any_tier) == 1
    assert len({item.code for item in CATALOG}) == len(CATALOG)


def test_catalog_fast_response_threshold_follows_setting() -> None:
    fast = next(item for item in build_catalog(2500) if item.kind is AchievementKind.FAST_RESPONSE)

    assert fast.threshold == 2500
    assert "2.5 seconds" in fast.description
    with pytest.raises(ValueError):
        build_catalog(0)


@pytest.mark.asyncio
async def test_seed_catalog_is_idempotent(session_factory) -> None:
    evaluator = AchievementEvaluator(session_factory)

    assert await evaluator.seed_catalog() == len(CATALOG)
    assert await evaluator.seed_catalog() == 0


@pytest.mark.asyncio
async def test_perfect_session_unlocks_everything_at_once(orchestrator, now) -> None:
    _, outcome = await _play(orchestrator, "u1", _distinct_words(10), now)

    codes = {event.code for event in outcome.unlocked}
    assert outcome.completed is True
    assert {
        "first_word",
        "fast_response",
        "perfect_score",
        "perfect_streak",
        "words_mastered_any",
        "words_mastered_10",
    } == codes


@pytest.mark.asyncio
async def test_first_correct_answer_unlocks_first_word_once(orchestrator, now) -> None:
    start = await orchestrator.start_session("u1", "custom", "fr", ["chat", "chien"], now=now)

    first = await orchestrator.submit_answer(start.session_id, "chat", 7000, now=now)
    second = await orchestrator.submit_answer(start.session_id, "chien", 7000, now=now)

    assert [event.code for event in first.unlocked] == ["first_word"]
    assert [event.code for event in second.unlocked] == []


@pytest.mark.asyncio
async def test_incorrect_or_slow_answers_unlock_nothing(orchestrator, now) -> None:
    start = await orchestrator.start_session("u1", "custom", "fr", ["chat", "chien"], now=now)

    wrong = await orchestrator.submit_answer(start.session_id, "chut", 1000, now=now)
    slow = await orchestrator.submit_answer(start.session_id, "chien", 5000, now=now)

    assert wrong.unlocked == []
    assert [event.code for event in slow.unlocked] == ["first_word"]


@pytest.mark.asyncio
async def test_crossing_several_tiers_unlocks_each_once(orchestrator, now) -> None:
    _, outcome = await _play(orchestrator, "u1", _distinct_words(25), now, elapsed_ms=6000)

    tiers = sorted(event.tier_level for event in outcome.unlocked if event.tier_level is not None)
    assert tiers == [1, 2]
    assert "words_mastered_any" in {event.code for event in outcome.unlocked}

    _, replay = await _play(
        orchestrator, "u1", _distinct_words(25), now + timedelta(minutes=5), elapsed_ms=6000
    )
    assert replay.unlocked == []


@pytest.mark.asyncio
async def test_perfect_score_needs_ten_words(orchestrator, now) -> None:
    _, outcome = await _play(orchestrator, "u1", _distinct_words(3), now, elapsed_ms=6000)

    assert "perfect_score" not in {event.code for event in outcome.unlocked}
    assert "perfect_streak" not in {event.code for event in outcome.unlocked}


@pytest.mark.asyncio
async def test_streak_spans_sessions(orchestrator, now) -> None:
    await _play(orchestrator, "u1", _distinct_words(6, "eins"), now, elapsed_ms=6000)
    _, outcome = await _play(
        orchestrator, "u1", _distinct_words(4, "zwei"), now + timedelta(minutes=1), elapsed_ms=6000
    )

    assert "perfect_streak" in {event.code for event in outcome.unlocked}


@pytest.mark.asyncio
async def test_evaluate_session_is_idempotent(orchestrator, now) -> None:
    session_id, _ = await _play(orchestrator, "u1", _distinct_words(10), now)

    again = await orchestrator.achievements.evaluate_session("u1", session_id, now=now)
    unlocked = await orchestrator.list_user_achievements("u1")

    assert again == []
    assert all(isinstance(item, UserAchievement) for item in unlocked)
    assert len({item.achievement_id for item in unlocked}) == len(unlocked) == 6


@pytest.mark.asyncio
async def test_unseeded_catalog_is_stored_on_first_unlock(session_factory, now) -> None:
    evaluator = AchievementEvaluator(session_factory)
    lifecycle = await SessionLifecycle.create(
        session_factory, "u9", "custom", "en", ["tree"], supported_languages=("en",), now=now
    )
    result = await lifecycle.submit("tree", 400, now=now)

    events = await evaluator.evaluate_attempt(result.record, now=now)

    assert {event.code for event in events} == {"first_word", "fast_response"}
    assert await evaluator.seed_catalog() == len(CATALOG) - 2
