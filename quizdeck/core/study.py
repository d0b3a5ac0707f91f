"""Services that connect the scoring and scheduling functions to storage."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Iterable, Union

from .attempt_stats import AttemptStats, calculate_quiz_stats, grade_answers
from .scorer import score_quiz
from .spaced_repetition import (
    as_datetime,
    calculate_next_review,
    get_due_cards,
    get_quality_score,
    sort_cards_by_priority,
)
from .sqlite_store import (
    card_review_state,
    delete_attempt as delete_attempt_row,
    fetch_attempt,
    fetch_attempts,
    fetch_best_attempt,
    fetch_deck_cards,
    fetch_flashcard,
    fetch_latest_attempt,
    fetch_quiz,
    insert_attempt,
    save_card_review,
    upsert_flashcard,
    upsert_quiz,
)
from .types import QuestionAnswer, Quiz, QuizAttempt, ReviewResult, SchedulerParams, ScoreResult
from .validation import ValidationResult, validate_quiz

logger = logging.getLogger(__name__)


class NotFoundError(KeyError):
    """Raised when a quiz, attempt or card id is unknown."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "not found"


class AttemptStateError(ValueError):
    """Raised when an attempt cannot move to the requested state."""


class StudyService:
    def __init__(self, conn: sqlite3.Connection, params: Union[SchedulerParams, None] = None) -> None:
        self.conn = conn
        self.params = params or SchedulerParams()

    def add_card(self, deck_id: str, front: str, back: str, card_id: Union[str, None] = None) -> dict:
        card_id = card_id or uuid.uuid4().hex
        upsert_flashcard(
            self.conn,
            card_id=card_id,
            deck_id=deck_id,
            front_content=front,
            back_content=back,
            difficulty=self.params.initial_difficulty,
        )
        logger.info("Added card %s to deck %s", card_id, deck_id)
        return fetch_flashcard(self.conn, card_id)

    def record_review(
        self,
        card_id: str,
        was_correct: bool,
        response_time_ms: Union[float, None] = None,
        reviewed_at: Union[datetime, None] = None,
    ) -> ReviewResult:
        card = fetch_flashcard(self.conn, card_id)
        if card is None:
            raise NotFoundError(f"Flashcard {card_id} not found")

        reviewed_at = as_datetime(reviewed_at) if reviewed_at else datetime.now(timezone.utc)
        quality = get_quality_score(was_correct, response_time_ms)
        result = calculate_next_review(card_review_state(card), quality, reviewed_at, self.params)
        save_card_review(
            self.conn,
            card,
            result,
            was_correct=was_correct,
            quality=quality,
            response_time_ms=response_time_ms,
            reviewed_at=reviewed_at,
        )
        logger.info(
            "Reviewed card %s: quality=%s difficulty %.2f -> %.2f, next in %s day(s)",
            card_id,
            quality,
            card["difficulty"],
            result.difficulty,
            result.interval_days,
        )
        return result

    def due_cards(self, deck_id: str, now: Union[datetime, None] = None) -> list[dict]:
        now = now or datetime.now(timezone.utc)
        cards = fetch_deck_cards(self.conn, deck_id)
        return sort_cards_by_priority(get_due_cards(cards, now), now)


class QuizService:
    def __init__(self, conn: sqlite3.Connection, default_passing_score: Union[float, None] = None) -> None:
        self.conn = conn
        self.default_passing_score = default_passing_score

    def get_quiz(self, quiz_id: str) -> Quiz:
        quiz = fetch_quiz(self.conn, quiz_id)
        if quiz is None:
            raise NotFoundError(f"Quiz {quiz_id} not found")
        return quiz

    def save_quiz(self, quiz: Quiz) -> ValidationResult:
        """Store the quiz if it validates; the validation result is returned either way."""
        validation = validate_quiz(quiz)
        if validation.is_valid:
            upsert_quiz(self.conn, quiz)
            logger.info("Saved quiz %s with %s question(s)", quiz.id, len(quiz.questions))
        else:
            logger.warning("Rejected quiz %s: %s error(s)", quiz.id, len(validation.errors))
        return validation

    def passing_score(self, quiz: Quiz) -> Union[float, None]:
        if quiz.settings.passing_score is not None:
            return quiz.settings.passing_score
        return self.default_passing_score

    def _finish_attempt(
        self,
        quiz: Quiz,
        attempt: QuizAttempt,
        answers: Iterable[QuestionAnswer],
        completed_at: Union[datetime, None],
    ) -> ScoreResult:
        graded = grade_answers(quiz.questions, answers)
        result = score_quiz(quiz.questions, graded)
        completed_at = as_datetime(completed_at) if completed_at else datetime.now(timezone.utc)
        attempt.completed_at = completed_at
        attempt.score = result.score
        attempt.total_questions = result.total_count
        attempt.correct_answers = result.correct_count
        attempt.time_taken = max(0, round((completed_at - attempt.started_at).total_seconds()))
        attempt.answers = graded
        return result

    def submit_attempt(
        self,
        quiz_id: str,
        answers: Iterable[QuestionAnswer],
        started_at: Union[datetime, None] = None,
        completed_at: Union[datetime, None] = None,
        save: bool = True,
    ) -> tuple[QuizAttempt, ScoreResult]:
        """Grade and record a whole attempt in one step."""
        quiz = self.get_quiz(quiz_id)
        completed_at = as_datetime(completed_at) if completed_at else datetime.now(timezone.utc)
        started_at = as_datetime(started_at) if started_at else completed_at
        attempt = QuizAttempt(id=uuid.uuid4().hex, quiz_id=quiz.id, started_at=started_at)
        result = self._finish_attempt(quiz, attempt, answers, completed_at)
        if save:
            insert_attempt(self.conn, attempt, result)
            logger.info(
                "Recorded attempt %s for quiz %s: %s/%s (%.2f%%)",
                attempt.id,
                quiz.id,
                result.correct_count,
                result.total_count,
                result.score,
            )
        return attempt, result

    def start_attempt(self, quiz_id: str, started_at: Union[datetime, None] = None) -> QuizAttempt:
        """Record an in-progress attempt; it has no score until completed."""
        quiz = self.get_quiz(quiz_id)
        attempt = QuizAttempt(
            id=uuid.uuid4().hex,
            quiz_id=quiz.id,
            started_at=as_datetime(started_at).astimezone(timezone.utc) if started_at else datetime.now(timezone.utc),
            total_questions=len(quiz.questions),
        )
        insert_attempt(self.conn, attempt)
        logger.info("Started attempt %s for quiz %s", attempt.id, quiz.id)
        return attempt

    def get_attempt(self, attempt_id: str) -> QuizAttempt:
        attempt = fetch_attempt(self.conn, attempt_id)
        if attempt is None:
            raise NotFoundError(f"Attempt {attempt_id} not found")
        return attempt

    def complete_attempt(
        self,
        attempt_id: str,
        answers: Iterable[QuestionAnswer],
        completed_at: Union[datetime, None] = None,
    ) -> tuple[QuizAttempt, ScoreResult]:
        attempt = self.get_attempt(attempt_id)
        if attempt.completed_at is not None:
            raise AttemptStateError(f"Attempt {attempt_id} is already completed")
        quiz = self.get_quiz(attempt.quiz_id)
        result = self._finish_attempt(quiz, attempt, answers, completed_at)
        insert_attempt(self.conn, attempt, result)
        logger.info(
            "Completed attempt %s for quiz %s: %s/%s (%.2f%%)",
            attempt.id,
            quiz.id,
            result.correct_count,
            result.total_count,
            result.score,
        )
        return attempt, result

    def delete_attempt(self, attempt_id: str) -> None:
        if not delete_attempt_row(self.conn, attempt_id):
            raise NotFoundError(f"Attempt {attempt_id} not found")
        logger.info("Deleted attempt %s", attempt_id)

    def best_attempt(self, quiz_id: str) -> Union[QuizAttempt, None]:
        self.get_quiz(quiz_id)
        return fetch_best_attempt(self.conn, quiz_id)

    def latest_attempt(self, quiz_id: str) -> Union[QuizAttempt, None]:
        self.get_quiz(quiz_id)
        return fetch_latest_attempt(self.conn, quiz_id)

    def attempt_stats(self, quiz_id: str) -> AttemptStats:
        quiz = self.get_quiz(quiz_id)
        return calculate_quiz_stats(fetch_attempts(self.conn, quiz_id), self.passing_score(quiz))
