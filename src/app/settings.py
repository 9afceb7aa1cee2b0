"""Configuration helpers for the Word Drill runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from src.services.speech import DEFAULT_TTS_MODEL


DEFAULT_LANGUAGES = "en,fr,de"
DEFAULT_WORD_TIME_LIMIT_SECONDS = 10.0
DEFAULT_DUE_WORDS_LIMIT = 10
DEFAULT_MAX_SESSION_WORDS = 50
DEFAULT_FAST_RESPONSE_MS = 5000


def _int_from_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer.") from exc


@dataclass(frozen=True)
class AppSettings:
    """Strongly typed application settings loaded from environment variables."""

    app_name: str
    app_env: str
    log_level: str
    openai_api_key: Optional[str]
    tts_model: str
    supported_languages: Tuple[str, ...]
    word_time_limit_seconds: float
    due_words_limit: int
    max_session_words: int
    fast_response_ms: int = DEFAULT_FAST_RESPONSE_MS

    @property
    def speech_enabled(self) -> bool:
        return bool(self.openai_api_key)

    @classmethod
    def from_env(cls) -> AppSettings:
        """Construct settings directly from environment variables."""
        app_name = os.getenv("APP_NAME", "Word Drill")
        app_env = os.getenv("APP_ENV", "development")
        log_level = os.getenv("LOG_LEVEL", "INFO")
        openai_api_key = os.getenv("OPENAI_API_KEY") or None
        tts_model = os.getenv("TTS_MODEL", DEFAULT_TTS_MODEL)

        supported_languages = tuple(
            code.strip().lower()
            for code in os.getenv("SUPPORTED_LANGUAGES", DEFAULT_LANGUAGES).split(",")
            if code.strip()
        )
        if not supported_languages:
            raise RuntimeError("SUPPORTED_LANGUAGES must list at least one language code.")

        try:
            word_time_limit_seconds = float(
                os.getenv("WORD_TIME_LIMIT_SECONDS", str(DEFAULT_WORD_TIME_LIMIT_SECONDS))
            )
        except ValueError as exc:
            raise RuntimeError("WORD_TIME_LIMIT_SECONDS must be a number.") from exc
        if word_time_limit_seconds <= 0:
            raise RuntimeError("WORD_TIME_LIMIT_SECONDS must be positive.")

        due_words_limit = _int_from_env("DUE_WORDS_LIMIT", DEFAULT_DUE_WORDS_LIMIT)
        if due_words_limit < 1:
            raise RuntimeError("DUE_WORDS_LIMIT must be a positive integer.")

        max_session_words = _int_from_env("MAX_SESSION_WORDS", DEFAULT_MAX_SESSION_WORDS)
        if max_session_words < 1:
            raise RuntimeError("MAX_SESSION_WORDS must be a positive integer.")

        fast_response_ms = _int_from_env("FAST_RESPONSE_MS", DEFAULT_FAST_RESPONSE_MS)
        if fast_response_ms < 1:
            raise RuntimeError("FAST_RESPONSE_MS must be a positive integer.")

        return cls(
            app_name=app_name,
            app_env=app_env,
            log_level=log_level,
            openai_api_key=openai_api_key,
            tts_model=tts_model,
            supported_languages=supported_languages,
            word_time_limit_seconds=word_time_limit_seconds,
            due_words_limit=due_words_limit,
            max_session_words=max_session_words,
            fast_response_ms=fast_response_ms,
        )
