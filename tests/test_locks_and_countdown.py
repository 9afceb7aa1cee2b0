from __future__ import annotations

import asyncio
from typing import List

import pytest

from src.engine.countdown import WordCountdown
from src.engine.locks import KeyedLocks


@pytest.mark.asyncio
async def test_keyed_locks_serialize_same_key_only() -> None:
    locks = KeyedLocks()
    events: List[str] = []

    async def worker(key: str, name: str) -> None:
        async with locks.hold(key):
            events.append(f"{name}:in")
            await asyncio.sleep(0.01)
            events.append(f"{name}:out")

    await asyncio.gather(worker("a", "first"), worker("a", "second"))

    assert events == ["first:in", "first:out", "second:in", "second:out"]
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_countdown_fires_once_after_budget() -> None:
    fired: List[int] = []

    async def on_expire() -> None:
        fired.append(1)

    countdown = WordCountdown(0.02, on_expire)
    countdown.start()
    countdown.start()
    await countdown.wait()

    assert fired == [1]
    assert countdown.is_done is True
    assert countdown.remaining == 0.0


@pytest.mark.asyncio
async def test_paused_countdown_keeps_remaining_time() -> None:
    fired: List[int] = []

    async def on_expire() -> None:
        fired.append(1)

    countdown = WordCountdown(0.2, on_expire)
    countdown.start()
    await asyncio.sleep(0.05)
    countdown.pause()
    remaining = countdown.remaining
    await asyncio.sleep(0.25)

    assert fired == []
    assert countdown.is_paused is True
    assert 0.0 < remaining < 0.2
    assert countdown.remaining == remaining

    countdown.resume()
    await countdown.wait()
    assert fired == [1]


@pytest.mark.asyncio
async def test_pause_before_start_does_not_arm_on_resume() -> None:
    async def on_expire() -> None:
        raise AssertionError("countdown should not fire")

    countdown = WordCountdown(0.01, on_expire)
    countdown.pause()
    countdown.resume()
    await asyncio.sleep(0.03)

    assert countdown.is_running is False
    assert countdown.is_done is False


@pytest.mark.asyncio
async def test_cancelled_countdown_never_fires() -> None:
    fired: List[int] = []

    async def on_expire() -> None:
        fired.append(1)

    countdown = WordCountdown(0.02, on_expire)
    countdown.start()
    countdown.cancel()
    await asyncio.sleep(0.05)

    assert fired == []
    assert countdown.is_done is True


def test_countdown_requires_positive_budget() -> None:
    with pytest.raises(ValueError):
        WordCountdown(0, lambda: asyncio.sleep(0))
