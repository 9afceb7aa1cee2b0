from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from src.services import LANGUAGE_VOICES, OpenAISpeechPlayer, PlaybackCallbacks


class _StubSpeech:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.error = error

    async def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=f"mp3:{kwargs['input']}".encode())


def _client(speech: _StubSpeech) -> SimpleNamespace:
    return SimpleNamespace(audio=SimpleNamespace(speech=speech))


@pytest.mark.asyncio
async def test_play_synthesizes_with_language_voice_and_reports_end() -> None:
    speech = _StubSpeech()
    played: List[bytes] = []
    events: List[str] = []

    async def sink(audio: bytes) -> None:
        played.append(audio)

    player = OpenAISpeechPlayer(_client(speech), sink)
    await player.play(
        "maison",
        "fr",
        PlaybackCallbacks(
            on_start=lambda: events.append("start"),
            on_end=lambda: events.append("end"),
            on_error=lambda exc: events.append("error"),
        ),
    )

    assert speech.calls == [{"model": "tts-1-hd", "voice": LANGUAGE_VOICES["fr"], "input": "maison"}]
    assert played == [b"mp3:maison"]
    assert events == ["start", "end"]


@pytest.mark.asyncio
async def test_play_reports_synthesis_failure() -> None:
    errors: List[Exception] = []

    async def sink(audio: bytes) -> None:
        raise AssertionError("nothing should be played")

    player = OpenAISpeechPlayer(_client(_StubSpeech(RuntimeError("quota"))), sink)
    await player.play("haus", "de", PlaybackCallbacks(on_error=errors.append))

    assert len(errors) == 1
    assert str(errors[0]) == "quota"


@pytest.mark.asyncio
async def test_stop_silences_playback_without_callbacks() -> None:
    started = asyncio.Event()
    events: List[str] = []

    async def sink(audio: bytes) -> None:
        started.set()
        await asyncio.sleep(10)

    player = OpenAISpeechPlayer(_client(_StubSpeech()), sink)
    playing = asyncio.create_task(
        player.play(
            "tree",
            "en",
            PlaybackCallbacks(on_end=lambda: events.append("end"), on_error=lambda exc: events.append("error")),
        )
    )
    await asyncio.wait_for(started.wait(), timeout=1)
    player.stop()
    await asyncio.wait_for(playing, timeout=1)

    assert events == []


def test_unknown_language_falls_back_to_english_voice() -> None:
    async def sink(audio: bytes) -> None:
        return None

    player = OpenAISpeechPlayer(_client(_StubSpeech()), sink, voices={"en": "nova"})

    assert player.voice_for("it") == "nova"
