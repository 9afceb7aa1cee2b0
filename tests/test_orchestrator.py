from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import List, Tuple

import pytest

from src.engine import (
    CollaboratorError,
    DuplicateAttempt,
    NotFound,
    SessionClosed,
    SessionOrchestrator,
    SessionPaused,
    SubmitOutcome,
    ValidationError,
)
from src.services import PlaybackCallbacks


class _StubPlayer:
    def __init__(self, *, finish: bool = True, fail: bool = False) -> None:
        self.finish = finish
        self.fail = fail
        self.played: List[Tuple[str, str]] = []
        self.stops = 0

    async def play(self, word: str, language: str, callbacks: PlaybackCallbacks) -> None:
        self.played.append((word, language))
        if self.fail:
            raise RuntimeError("speaker unplugged")
        if self.finish and callbacks.on_end is not None:
            callbacks.on_end()

    def stop(self) -> None:
        self.stops += 1


@pytest.mark.asyncio
async def test_scenario_case_insensitive_answer_is_correct(orchestrator, now) -> None:
    words = ["chat", "chien", "oiseau", "poisson", "cheval", "vache", "cochon", "lapin", "souris", "canard"]
    start = await orchestrator.start_session("u1", "custom", "fr", words, now=now)

    outcome = await orchestrator.submit_answer(start.session_id, "Chat", 1800, now=now)

    assert start.empty_queue is False
    assert start.lifecycle.total_words == 10
    assert outcome.is_correct is True
    assert outcome.word.text == "chat"
    assert outcome.next_word.text == "chien"
    assert outcome.completed is False
    assert outcome.total_words == 10


@pytest.mark.asyncio
async def test_scenario_timeout_records_incorrect_and_advances(orchestrator, now) -> None:
    start = await orchestrator.start_session("u1", "custom", "fr", ["chat", "chien"], now=now)

    outcome = await orchestrator.timeout_current_word(start.session_id, word_index=0, now=now)

    assert outcome.is_correct is False
    assert outcome.attempt.user_input == ""
    assert outcome.attempt.response_time_ms == orchestrator.timeout_response_ms
    assert outcome.next_word.text == "chien"


@pytest.mark.asyncio
async def test_scenario_empty_review_queue_opens_nothing(orchestrator, now) -> None:
    result = await orchestrator.start_session("u1", "spaced-repetition", "fr", now=now)

    assert result.empty_queue is True
    assert result.lifecycle is None
    assert result.session_id is None
    assert list(await orchestrator.list_recent_sessions("u1")) == []


@pytest.mark.asyncio
async def test_completion_updates_reviews_and_statistics(orchestrator, now) -> None:
    custom = await orchestrator.start_session("u1", "custom", "fr", ["chat", "chien"], now=now)
    await orchestrator.submit_answer(custom.session_id, "chat", 1000, now=now)
    await orchestrator.submit_answer(custom.session_id, "chien", 1000, now=now)
    assert await orchestrator.count_due_words("u1", "fr") == 2

    later = now + timedelta(hours=1)
    review = await orchestrator.start_session("u1", "spaced-repetition", "fr", now=later)
    assert [word.text for word in review.lifecycle.words] == ["chat", "chien"]

    await orchestrator.submit_answer(review.session_id, "chat", 1000, now=later)
    outcome = await orchestrator.submit_answer(review.session_id, "chat", 1000, now=later)

    assert outcome.completed is True
    assert outcome.correct_words == 1
    assert outcome.statistics.total_sessions == 2
    assert outcome.statistics.total_words_attempted == 4

    chat, chien = review.lifecycle.words
    chat_state = await orchestrator.review_store.get_state("u1", chat.id)
    chien_state = await orchestrator.review_store.get_state("u1", chien.id)
    assert (chat_state.repetitions, chat_state.interval) == (1, 1)
    assert (chien_state.repetitions, chien_state.interval) == (0, 1)
    assert await orchestrator.review_store.count_due("u1", "fr", now=later) == 0

    stored = await orchestrator.get_daily_statistics("u1", now.date())
    assert stored.total_sessions == 2


@pytest.mark.asyncio
async def test_custom_sessions_do_not_update_review_schedule(orchestrator, now) -> None:
    start = await orchestrator.start_session("u1", "custom", "en", ["tree"], now=now)
    await orchestrator.submit_answer(start.session_id, "tree", 1000, now=now)

    state = await orchestrator.review_store.get_state("u1", start.lifecycle.words[0].id)

    assert state.repetitions == 0


@pytest.mark.asyncio
async def test_start_session_validates_parameters(orchestrator) -> None:
    with pytest.raises(ValidationError):
        await orchestrator.start_session("u1", "custom", "es", ["hola"])
    with pytest.raises(ValidationError):
        await orchestrator.start_session("u1", "custom", "fr")
    with pytest.raises(ValidationError):
        await orchestrator.start_session("u1", "blitz", "fr", ["chat"])


@pytest.mark.asyncio
async def test_paused_session_rejects_answers_and_timeouts(orchestrator, now) -> None:
    start = await orchestrator.start_session("u1", "custom", "fr", ["chat", "chien"], now=now)
    assert await orchestrator.present_word(start.session_id) is True

    await orchestrator.pause(start.session_id)
    assert orchestrator.is_paused(start.session_id) is True
    assert await orchestrator.present_word(start.session_id) is False
    with pytest.raises(SessionPaused):
        await orchestrator.submit_answer(start.session_id, "chat", 1000, now=now)
    assert await orchestrator.timeout_current_word(start.session_id, now=now) is None

    assert await orchestrator.resume(start.session_id) is True
    outcome = await orchestrator.submit_answer(start.session_id, "chat", 1000, now=now)
    assert outcome.word_index == 0
    assert len(await orchestrator.list_session_attempts(start.session_id)) == 1


@pytest.mark.asyncio
async def test_expired_countdown_records_timeout(session_factory) -> None:
    expired: List[SubmitOutcome] = []
    done = asyncio.Event()

    async def on_timeout(outcome: SubmitOutcome) -> None:
        expired.append(outcome)
        done.set()

    orchestrator = SessionOrchestrator(session_factory, word_time_limit=0.05, on_timeout=on_timeout)
    start = await orchestrator.start_session("u1", "custom", "de", ["hund", "katze"])

    await orchestrator.present_word(start.session_id)
    await asyncio.wait_for(done.wait(), timeout=2)

    assert len(expired) == 1
    assert expired[0].word.text == "hund"
    assert expired[0].is_correct is False
    assert expired[0].attempt.response_time_ms == 50
    lifecycle = await orchestrator.get_lifecycle(start.session_id)
    assert lifecycle.current_word().text == "katze"


@pytest.mark.asyncio
async def test_answer_cancels_countdown(session_factory) -> None:
    expired: List[SubmitOutcome] = []

    async def on_timeout(outcome: SubmitOutcome) -> None:
        expired.append(outcome)

    orchestrator = SessionOrchestrator(session_factory, word_time_limit=0.05, on_timeout=on_timeout)
    start = await orchestrator.start_session("u1", "custom", "de", ["hund", "katze"])

    await orchestrator.present_word(start.session_id)
    await orchestrator.submit_answer(start.session_id, "hund", 10)
    await asyncio.sleep(0.15)

    assert expired == []
    assert len(await orchestrator.list_session_attempts(start.session_id)) == 1


@pytest.mark.asyncio
async def test_present_word_pronounces_in_session_language(session_factory, now) -> None:
    player = _StubPlayer()
    orchestrator = SessionOrchestrator(session_factory, speech_player=player)
    start = await orchestrator.start_session("u1", "custom", "fr", ["chat"], now=now)

    assert await orchestrator.present_word(start.session_id) is True
    await orchestrator.pause(start.session_id)

    assert player.played == [("chat", "fr")]
    assert player.stops == 1
    assert await orchestrator.resume(start.session_id) is True
    await orchestrator.end_session_early(start.session_id, now=now)


@pytest.mark.asyncio
async def test_interrupted_playback_must_be_presented_again(session_factory, now) -> None:
    player = _StubPlayer(finish=False)
    orchestrator = SessionOrchestrator(session_factory, speech_player=player)
    start = await orchestrator.start_session("u1", "custom", "fr", ["chat"], now=now)

    await orchestrator.present_word(start.session_id)
    await orchestrator.pause(start.session_id)

    assert await orchestrator.resume(start.session_id) is False
    assert await orchestrator.present_word(start.session_id) is True
    assert player.played == [("chat", "fr"), ("chat", "fr")]
    await orchestrator.end_session_early(start.session_id, now=now)


@pytest.mark.asyncio
async def test_speech_failure_is_reported_as_collaborator_error(session_factory, now) -> None:
    orchestrator = SessionOrchestrator(session_factory, speech_player=_StubPlayer(fail=True))
    start = await orchestrator.start_session("u1", "custom", "fr", ["chat"], now=now)

    with pytest.raises(CollaboratorError):
        await orchestrator.present_word(start.session_id)


@pytest.mark.asyncio
async def test_end_session_early_excludes_session_from_statistics(orchestrator, now) -> None:
    start = await orchestrator.start_session("u1", "custom", "fr", ["chat", "chien"], now=now)
    await orchestrator.submit_answer(start.session_id, "chat", 1000, now=now)

    assert await orchestrator.end_session_early(start.session_id, now=now) is True
    with pytest.raises(SessionClosed):
        await orchestrator.submit_answer(start.session_id, "chien", 1000, now=now)

    stored = await orchestrator.get_session(start.session_id)
    assert stored.abandoned is True
    stats = await orchestrator.statistics.roll_up("u1", now=now)
    assert stats.total_sessions == 0


@pytest.mark.asyncio
async def test_session_survives_orchestrator_restart(session_factory, now) -> None:
    first = SessionOrchestrator(session_factory)
    start = await first.start_session("u1", "custom", "en", ["sun", "moon"], now=now)
    await first.submit_answer(start.session_id, "sun", 1000, word_index=0, now=now)

    restarted = SessionOrchestrator(session_factory)
    outcome = await restarted.submit_answer(start.session_id, "moon", 1000, word_index=1, now=now)

    assert outcome.completed is True
    assert outcome.correct_words == 2


@pytest.mark.asyncio
async def test_unknown_session_is_not_found(orchestrator) -> None:
    with pytest.raises(NotFound):
        await orchestrator.submit_answer(12345, "chat", 1000)
    with pytest.raises(NotFound):
        await orchestrator.get_session(12345)


@pytest.mark.asyncio
async def test_recent_sessions_newest_first(orchestrator, now) -> None:
    first = await orchestrator.start_session("u1", "custom", "en", ["sun"], now=now)
    second = await orchestrator.start_session("u1", "custom", "en", ["moon"], now=now + timedelta(minutes=1))

    recent = await orchestrator.list_recent_sessions("u1")

    assert [item.id for item in recent] == [second.session_id, first.session_id]
    assert recent[1].abandoned is True


@pytest.mark.asyncio
async def test_repeated_submission_without_index_records_one_attempt(orchestrator, now) -> None:
    start = await orchestrator.start_session("u1", "custom", "fr", ["chat", "chien", "oiseau"], now=now)

    results = await asyncio.gather(
        orchestrator.submit_answer(start.session_id, "chat", 1000, now=now),
        orchestrator.submit_answer(start.session_id, "chat", 1000, now=now),
        return_exceptions=True,
    )

    assert results[0].word.text == "chat"
    assert isinstance(results[1], DuplicateAttempt)
    attempts = await orchestrator.list_session_attempts(start.session_id)
    assert [(attempt.word.text, attempt.user_input) for attempt in attempts] == [("chat", "chat")]
    lifecycle = await orchestrator.get_lifecycle(start.session_id)
    assert lifecycle.current_word().text == "chien"


@pytest.mark.asyncio
async def test_failed_completion_is_finished_on_retry(
    orchestrator, now, monkeypatch: pytest.MonkeyPatch
) -> None:
    custom = await orchestrator.start_session("u1", "custom", "fr", ["chat", "chien"], now=now)
    await orchestrator.submit_answer(custom.session_id, "chat", 1000, now=now)
    await orchestrator.submit_answer(custom.session_id, "chien", 1000, now=now)

    later = now + timedelta(hours=1)
    review = await orchestrator.start_session("u1", "spaced-repetition", "fr", now=later)
    await orchestrator.submit_answer(review.session_id, "chat", 1000, word_index=0, now=later)

    roll_up = orchestrator.statistics.roll_up
    calls: List[str] = []

    async def flaky_roll_up(user_id, day=None, now=None):
        calls.append(user_id)
        if len(calls) == 1:
            raise RuntimeError("database went away")
        return await roll_up(user_id, day=day, now=now)

    monkeypatch.setattr(orchestrator.statistics, "roll_up", flaky_roll_up)

    with pytest.raises(RuntimeError):
        await orchestrator.submit_answer(review.session_id, "chien", 1000, word_index=1, now=later)
    with pytest.raises(DuplicateAttempt):
        await orchestrator.submit_answer(review.session_id, "chien", 1000, word_index=1, now=later)

    assert len(calls) == 2
    stats = await orchestrator.get_daily_statistics("u1", now.date())
    assert stats.total_sessions == 2
    chat, chien = review.lifecycle.words
    chat_state = await orchestrator.review_store.get_state("u1", chat.id)
    chien_state = await orchestrator.review_store.get_state("u1", chien.id)
    assert (chat_state.repetitions, chat_state.interval) == (1, 1)
    assert (chien_state.repetitions, chien_state.interval) == (1, 1)
    assert (await orchestrator.get_session(review.session_id)).finalized is True


@pytest.mark.asyncio
async def test_next_start_finishes_interrupted_completion(
    orchestrator, now, monkeypatch: pytest.MonkeyPatch
) -> None:
    start = await orchestrator.start_session("u1", "custom", "en", ["sun"], now=now)

    async def broken_roll_up(user_id, day=None, now=None):
        raise RuntimeError("database went away")

    with monkeypatch.context() as patch:
        patch.setattr(orchestrator.statistics, "roll_up", broken_roll_up)
        with pytest.raises(RuntimeError):
            await orchestrator.submit_answer(start.session_id, "sun", 1000, now=now)

    assert (await orchestrator.get_session(start.session_id)).finalized is False
    await orchestrator.start_session("u1", "custom", "en", ["moon"], now=now + timedelta(minutes=1))

    assert (await orchestrator.get_session(start.session_id)).finalized is True
    assert (await orchestrator.get_daily_statistics("u1", now.date())).total_sessions == 1
    assert await orchestrator.finalize_pending_sessions("u1") == 0


@pytest.mark.asyncio
async def test_user_summary_counts_games_and_accuracy(orchestrator, now) -> None:
    first = await orchestrator.start_session("u1", "custom", "en", ["sun", "moon"], now=now)
    await orchestrator.submit_answer(first.session_id, "sun", 1000, now=now)
    await orchestrator.submit_answer(first.session_id, "mon", 1000, now=now)

    second = await orchestrator.start_session("u1", "custom", "en", ["star"], now=now)
    await orchestrator.submit_answer(second.session_id, "star", 1000, now=now)

    await orchestrator.start_session("u1", "custom", "en", ["sky"], now=now)
    await orchestrator.start_session("u1", "custom", "en", ["cloud"], now=now)

    summary = await orchestrator.get_user_summary("u1")

    assert summary.games_played == 2
    assert summary.games_incomplete == 2
    assert summary.average_accuracy == pytest.approx(75.0)


@pytest.mark.asyncio
async def test_user_summary_without_sessions(orchestrator) -> None:
    summary = await orchestrator.get_user_summary("nobody")

    assert (summary.games_played, summary.games_incomplete, summary.average_accuracy) == (0, 0, 0.0)


@pytest.mark.asyncio
async def test_fast_response_threshold_is_configurable(session_factory, now) -> None:
    orchestrator = SessionOrchestrator(session_factory, fast_response_ms=8000)
    start = await orchestrator.start_session("u1", "custom", "en", ["sun", "moon"], now=now)

    outcome = await orchestrator.submit_answer(start.session_id, "sun", 6000, now=now)

    assert {event.code for event in outcome.unlocked} == {"first_word", "fast_response"}
    achievements = await orchestrator.list_user_achievements("u1")
    fast = next(item.achievement for item in achievements if item.achievement.code == "fast_response")
    assert fast.condition_value == 8000
