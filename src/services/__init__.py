"""External collaborators used by the word drill engine."""

from .speech import (
    LANGUAGE_VOICES,
    OpenAISpeechPlayer,
    PlaybackCallbacks,
    SpeechPlayer,
    build_openai_client,
)

__all__ = [
    "LANGUAGE_VOICES",
    "OpenAISpeechPlayer",
    "PlaybackCallbacks",
    "SpeechPlayer",
    "build_openai_client",
]
