"""Helpers for working with the shared word catalog."""

from __future__ import annotations

from typing import Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import Word


def normalize_word_text(text: str) -> str:
    """Return the canonical stored form of a word."""
    return text.strip().lower()


async def get_words_by_text(
    session: AsyncSession, texts: Sequence[str], language: str
) -> dict[str, Word]:
    """Return existing words for the given texts keyed by their normalized text."""
    normalized = {normalize_word_text(item) for item in texts}
    if not normalized:
        return {}
    stmt = select(Word).where(Word.language == language, Word.text.in_(normalized))
    result = await session.execute(stmt)
    return {word.text: word for word in result.scalars()}


async def get_or_create_word(session: AsyncSession, text: str, language: str) -> tuple[Word, bool]:
    """Fetch a shared word or create it when missing."""
    normalized = normalize_word_text(text)
    existing = await get_words_by_text(session, [normalized], language)
    if normalized in existing:
        return existing[normalized], False

    word = Word(text=normalized, language=language)
    try:
        async with session.begin_nested():
            session.add(word)
            await session.flush()
    except IntegrityError:
        # Another writer inserted the same word first.
        existing = await get_words_by_text(session, [normalized], language)
        return existing[normalized], False
    return word, True


async def get_or_create_words(
    session: AsyncSession, texts: Sequence[str], language: str
) -> list[Word]:
    """Resolve every text to a stored word, preserving the input order."""
    known = await get_words_by_text(session, texts, language)
    words: list[Word] = []
    for text in texts:
        normalized = normalize_word_text(text)
        word = known.get(normalized)
        if word is None:
            word, _ = await get_or_create_word(session, normalized, language)
            known[normalized] = word
        words.append(word)
    return words
