"""Text-to-speech boundary used to pronounce the word being drilled."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Protocol

from openai import AsyncOpenAI


LOGGER = logging.getLogger(__name__)

DEFAULT_TTS_MODEL = "tts-1-hd"
LANGUAGE_VOICES: Dict[str, str] = {
    "en": "nova",
    "fr": "onyx",
    "de": "onyx",
}

AudioSink = Callable[[bytes], Awaitable[None]]


@dataclass(slots=True)
class PlaybackCallbacks:
    """Hooks fired while a word is pronounced; only one of on_end/on_error fires."""

    on_start: Optional[Callable[[], None]] = None
    on_end: Optional[Callable[[], None]] = None
    on_error: Optional[Callable[[Exception], None]] = None


class SpeechPlayer(Protocol):
    """Plays a word aloud and reports progress through callbacks."""

    async def play(self, word: str, language: str, callbacks: PlaybackCallbacks) -> None:
        ...

    def stop(self) -> None:
        ...


def build_openai_client(api_key: str, timeout: float = 30.0) -> AsyncOpenAI:
    """Create a configured AsyncOpenAI client."""
    return AsyncOpenAI(api_key=api_key, timeout=timeout)


class OpenAISpeechPlayer:
    """Synthesizes speech with OpenAI and hands the audio to a playback sink."""

    def __init__(
        self,
        client: AsyncOpenAI,
        sink: AudioSink,
        *,
        model: str = DEFAULT_TTS_MODEL,
        voices: Optional[Dict[str, str]] = None,
    ) -> None:
        self._client = client
        self._sink = sink
        self._model = model
        self._voices = dict(voices or LANGUAGE_VOICES)
        self._playback: Optional[asyncio.Task[None]] = None

    def voice_for(self, language: str) -> str:
        return self._voices.get(language) or self._voices.get("en") or "alloy"

    async def synthesize(self, text: str, language: str) -> bytes:
        """Return MP3 audio for the given text."""
        voice = self.voice_for(language)
        started = time.monotonic()
        response = await self._client.audio.speech.create(
            model=self._model,
            voice=voice,
            input=text,
        )
        audio = response.content
        LOGGER.debug(
            "Synthesized %d bytes for %r (%s, voice %s) in %.0fms.",
            len(audio),
            text,
            language,
            voice,
            (time.monotonic() - started) * 1000,
        )
        return audio

    async def _speak(self, word: str, language: str) -> None:
        audio = await self.synthesize(word, language)
        await self._sink(audio)

    async def play(self, word: str, language: str, callbacks: PlaybackCallbacks) -> None:
        """Pronounce a word; a previous playback still running is stopped first."""
        self.stop()
        if callbacks.on_start is not None:
            callbacks.on_start()

        playback = asyncio.get_running_loop().create_task(self._speak(word, language))
        self._playback = playback
        try:
            await asyncio.wait({playback})
        except asyncio.CancelledError:
            playback.cancel()
            raise
        finally:
            if self._playback is playback:
                self._playback = None

        if playback.cancelled():
            LOGGER.info("Playback of %r was stopped.", word)
            return
        error = playback.exception()
        if error is not None:
            LOGGER.warning("Playback of %r failed: %s", word, error)
            if callbacks.on_error is not None:
                callbacks.on_error(error if isinstance(error, Exception) else RuntimeError(str(error)))
            return
        if callbacks.on_end is not None:
            callbacks.on_end()

    def stop(self) -> None:
        """Cancel the playback in progress, if any."""
        playback = self._playback
        self._playback = None
        if playback is not None and not playback.done():
            LOGGER.debug("Stopping playback in progress.")
            playback.cancel()
