"""SM-2 style scheduling for flashcard reviews.

Quality is rated on the SM-2 0-5 scale where 3 and above counts as a
correct recall. Difficulty here is the SM-2 ease factor: every interval
after the second is the previous interval multiplied by it.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar, Union

from .types import FlashcardReviewState, ReviewResult, SchedulerParams

MIN_QUALITY = 0
MAX_QUALITY = 5
PASSING_QUALITY = 3

DEFAULT_PARAMS = SchedulerParams()

CardT = TypeVar("CardT", bound=Mapping[str, Any])


def get_quality_score(was_correct: bool, response_time_ms: Union[float, None] = None) -> int:
    """Convert a review outcome into an SM-2 quality score."""
    if not was_correct:
        return 0
    if response_time_ms:
        if response_time_ms < 3000:
            return 5
        if response_time_ms < 5000:
            return 4
        return 3
    return 4


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _next_difficulty(difficulty: float, quality: int, params: SchedulerParams) -> float:
    miss = MAX_QUALITY - quality
    adjusted = difficulty + (0.1 - miss * (0.08 + miss * 0.02))
    return round(_clamp(adjusted, params.min_difficulty, params.max_difficulty), 2)


def _next_interval(streak: int, previous: int, difficulty: float, params: SchedulerParams) -> int:
    if streak <= 1:
        interval = params.min_interval_days
    elif streak == 2:
        interval = params.second_interval_days
    else:
        interval = max(previous + 1, round(previous * difficulty))
    return min(interval, params.max_interval_days)


def calculate_next_review(
    state: FlashcardReviewState,
    quality: float,
    reviewed_at: datetime,
    params: Union[SchedulerParams, None] = None,
) -> ReviewResult:
    """Compute the card's state after a review graded ``quality``.

    ``reviewed_at`` is the moment of this review; the next review date is
    ``reviewed_at`` plus the new interval.
    """
    params = params or DEFAULT_PARAMS
    q = int(round(_clamp(quality, MIN_QUALITY, MAX_QUALITY)))

    difficulty = params.initial_difficulty if state.review_count == 0 else state.difficulty
    difficulty = _next_difficulty(difficulty, q, params)

    correct_count = state.correct_count
    if q < PASSING_QUALITY:
        streak = 0
        interval = params.min_interval_days
    else:
        correct_count += 1
        streak = state.streak + 1
        interval = _next_interval(streak, state.interval_days, difficulty, params)

    return ReviewResult(
        difficulty=difficulty,
        interval_days=interval,
        next_review_date=reviewed_at + timedelta(days=interval),
        review_count=state.review_count + 1,
        correct_count=correct_count,
        streak=streak,
    )


def as_datetime(value: Union[datetime, str]) -> datetime:
    """Parse stored timestamps; naive values are taken to be UTC."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def is_card_due(next_review_date: Union[datetime, str], now: datetime) -> bool:
    return as_datetime(now) >= as_datetime(next_review_date)


def get_due_cards(cards: Iterable[CardT], now: datetime) -> list[CardT]:
    return [card for card in cards if is_card_due(card["next_review_date"], now)]


def sort_cards_by_priority(cards: Iterable[CardT], now: datetime) -> list[CardT]:
    """Due cards ahead of not-yet-due ones, oldest card first within each group."""
    now = as_datetime(now)

    def key(card: CardT) -> tuple[int, datetime]:
        due = now >= as_datetime(card["next_review_date"])
        return (0 if due else 1, as_datetime(card["created_at"]))

    return sorted(cards, key=key)
