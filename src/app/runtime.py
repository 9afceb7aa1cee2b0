"""Bootstrap logic for running the Word Drill engine."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.app.settings import AppSettings
from src.db import get_session_factory, run_migrations_if_needed
from src.engine import SessionOrchestrator
from src.services import OpenAISpeechPlayer, build_openai_client
from src.services.speech import AudioSink


LOGGER = logging.getLogger(__name__)


def _configure_logging(log_level: str) -> None:
    """Set up project-wide logging configuration."""
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        level=log_level,
    )


def build_orchestrator(
    settings: AppSettings,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    audio_sink: Optional[AudioSink] = None,
) -> SessionOrchestrator:
    """Wire the session orchestrator from settings.

    Speech is only enabled when an OpenAI key is configured and the caller
    provides a sink that plays the synthesized audio.
    """
    if session_factory is None:
        session_factory = get_session_factory()

    speech_player = None
    if settings.speech_enabled and audio_sink is not None:
        speech_player = OpenAISpeechPlayer(
            build_openai_client(settings.openai_api_key),
            audio_sink,
            model=settings.tts_model,
        )
    elif audio_sink is not None:
        LOGGER.warning("OPENAI_API_KEY is not set; words will not be pronounced.")

    return SessionOrchestrator(
        session_factory,
        speech_player=speech_player,
        supported_languages=settings.supported_languages,
        word_time_limit=settings.word_time_limit_seconds,
        due_words_limit=settings.due_words_limit,
        max_session_words=settings.max_session_words,
        fast_response_ms=settings.fast_response_ms,
    )


async def bootstrap(
    settings: AppSettings,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> SessionOrchestrator:
    """Build the orchestrator and make sure the achievement catalog is stored."""
    orchestrator = build_orchestrator(settings, session_factory)
    await orchestrator.achievements.seed_catalog()
    return orchestrator


def run_app(settings: AppSettings) -> None:
    """Prepare the database and report that the engine is ready."""
    _configure_logging(settings.log_level)
    print(f"{settings.app_name} is running in {settings.app_env} mode.")

    try:
        run_migrations_if_needed()
    except Exception:
        LOGGER.exception("Database migrations failed. Aborting startup.")
        raise

    asyncio.run(bootstrap(settings))
    LOGGER.info(
        "%s ready for languages %s (%.0fs per word, %d words per review session).",
        settings.app_name,
        ", ".join(settings.supported_languages),
        settings.word_time_limit_seconds,
        settings.due_words_limit,
    )
