"""Validation of session parameters and custom word lists."""

from __future__ import annotations

import re
from typing import Collection, Iterable, List, Optional

from src.db import MODE_CUSTOM, MODE_SPACED_REPETITION
from src.db.words import normalize_word_text
from src.engine.errors import ValidationError


SUPPORTED_MODES = (MODE_CUSTOM, MODE_SPACED_REPETITION)
MAX_WORD_LENGTH = 50
MAX_INPUT_LENGTH = 50

_LETTERS = "a-zA-ZÀ-ÖØ-öø-ÿ"
# Letters with optional internal apostrophes or hyphens: "aujourd'hui", "grand-mère".
_WORD_RE = re.compile(rf"^[{_LETTERS}]+(?:['’\-][{_LETTERS}]+)*$")


def validate_mode(mode: str) -> str:
    if mode not in SUPPORTED_MODES:
        raise ValidationError(
            f"Unsupported game mode {mode!r}; expected one of {', '.join(SUPPORTED_MODES)}."
        )
    return mode


def validate_language(language: str, supported: Collection[str]) -> str:
    normalized = (language or "").strip().lower()
    if normalized not in supported:
        raise ValidationError(
            f"Unsupported language {language!r}; expected one of {', '.join(sorted(supported))}."
        )
    return normalized


def is_valid_word(token: str) -> bool:
    """Return True when a normalized token is a spellable word."""
    return 0 < len(token) <= MAX_WORD_LENGTH and bool(_WORD_RE.match(token))


def prepare_custom_words(words: Iterable[str], max_words: Optional[int] = None) -> List[str]:
    """Normalize, validate and deduplicate a custom word list, keeping first-seen order."""
    prepared: List[str] = []
    seen: set[str] = set()
    problems: List[str] = []

    for raw in words:
        token = normalize_word_text(raw or "")
        if not token:
            continue
        if not is_valid_word(token):
            problems.append(f"Invalid word {token!r}: use 1-{MAX_WORD_LENGTH} letters, apostrophes or hyphens.")
            continue
        if token in seen:
            continue
        seen.add(token)
        prepared.append(token)

    if problems:
        raise ValidationError("Some words are not valid.", problems)
    if not prepared:
        raise ValidationError("A session needs at least one word.")
    if max_words is not None and len(prepared) > max_words:
        raise ValidationError(f"A session accepts at most {max_words} words, got {len(prepared)}.")
    return prepared


def validate_answer(user_input: str, response_time_ms: int) -> str:
    """Return the trimmed answer or raise when it cannot be recorded."""
    answer = (user_input or "").strip()
    if len(answer) > MAX_INPUT_LENGTH:
        raise ValidationError(f"Answers are limited to {MAX_INPUT_LENGTH} characters.")
    if not isinstance(response_time_ms, int) or isinstance(response_time_ms, bool):
        raise ValidationError("Response time must be an integer number of milliseconds.")
    if response_time_ms < 0:
        raise ValidationError("Response time cannot be negative.")
    return answer


def answers_match(expected: str, user_input: str) -> bool:
    """Case-insensitive, whitespace-trimmed exact comparison."""
    return expected.strip().casefold() == (user_input or "").strip().casefold()
