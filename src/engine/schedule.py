"""Spaced-repetition scheduling based on the SM-2 algorithm."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from src.db.reviews import DEFAULT_EASINESS_FACTOR
from src.engine.errors import ValidationError


MIN_EASINESS_FACTOR = 1.3
MIN_QUALITY = 0
MAX_QUALITY = 5
PASSING_QUALITY = 3


@dataclass(frozen=True, slots=True)
class ScheduleState:
    """Review parameters after grading one recall."""

    easiness_factor: float
    interval: int
    repetitions: int


def quality_for(is_correct: bool) -> int:
    """Map binary correctness onto the SM-2 quality scale."""
    return MAX_QUALITY if is_correct else MIN_QUALITY


def next_state(
    quality: int,
    easiness_factor: float = DEFAULT_EASINESS_FACTOR,
    interval: int = 0,
    repetitions: int = 0,
) -> ScheduleState:
    """Return the schedule that follows a recall of the given quality."""
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise ValidationError(f"Quality must be an integer between {MIN_QUALITY} and {MAX_QUALITY}.")
    if quality < MIN_QUALITY or quality > MAX_QUALITY:
        raise ValidationError(
            f"Quality {quality} is outside the {MIN_QUALITY}-{MAX_QUALITY} range."
        )

    penalty = MAX_QUALITY - quality
    new_easiness = max(
        MIN_EASINESS_FACTOR,
        easiness_factor + (0.1 - penalty * (0.08 + penalty * 0.02)),
    )

    if quality < PASSING_QUALITY:
        # A lapse restarts the progression; history rows are never removed.
        return ScheduleState(easiness_factor=new_easiness, interval=1, repetitions=0)

    new_repetitions = repetitions + 1
    if new_repetitions == 1:
        new_interval = 1
    elif new_repetitions == 2:
        new_interval = 6
    else:
        new_interval = round(interval * new_easiness)
    return ScheduleState(
        easiness_factor=new_easiness,
        interval=new_interval,
        repetitions=new_repetitions,
    )


def next_review_at(state: ScheduleState, now: datetime | None = None) -> datetime:
    """Return when a word with the given schedule should be shown again."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now + timedelta(days=state.interval)
