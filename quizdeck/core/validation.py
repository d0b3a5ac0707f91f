"""Structural checks for quizzes and questions before they are stored or scored."""

from __future__ import annotations

from dataclasses import dataclass, field

from .types import (
    QUESTION_TYPES,
    FillBlankQuestion,
    MatchFollowingQuestion,
    MCQQuestion,
    Question,
    Quiz,
    QuizSettings,
    TrueFalseQuestion,
)

MAX_TITLE_LENGTH = 255
MAX_TIME_LIMIT_MINUTES = 1440


@dataclass(frozen=True)
class ValidationError:
    field: str
    message: str


@dataclass
class ValidationResult:
    errors: list[ValidationError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _is_index(value: object, size: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < size


def validate_question_data(question: Question) -> list[ValidationError]:
    if isinstance(question, MCQQuestion):
        if len(question.options) < 2 or not _is_index(question.correct_answer, len(question.options)):
            return [
                ValidationError(
                    "question_data",
                    "Invalid MCQ data: must have at least 2 options and valid correct answer index",
                )
            ]
    elif isinstance(question, FillBlankQuestion):
        answers = question.correct_answers
        if not answers or not all(isinstance(a, str) for a in answers):
            return [
                ValidationError(
                    "question_data",
                    "Invalid Fill Blank data: must have at least one correct answer",
                )
            ]
    elif isinstance(question, TrueFalseQuestion):
        if not isinstance(question.correct_answer, bool):
            return [
                ValidationError(
                    "question_data",
                    "Invalid True/False data: must have a boolean correct answer",
                )
            ]
    elif isinstance(question, MatchFollowingQuestion):
        left, right = len(question.left_items), len(question.right_items)
        pairs_ok = all(_is_index(p.left, left) and _is_index(p.right, right) for p in question.correct_pairs)
        if not left or not right or not question.correct_pairs or not pairs_ok:
            return [
                ValidationError(
                    "question_data",
                    "Invalid Match Following data: must have valid items and correct pairs",
                )
            ]
    else:
        return [ValidationError("question_type", "Unknown question type")]
    return []


def validate_question(question: Question) -> ValidationResult:
    result = ValidationResult()
    text = question.question_text
    if not isinstance(text, str) or not text.strip():
        result.errors.append(ValidationError("question_text", "Question text is required"))
    if getattr(question, "question_type", None) not in QUESTION_TYPES:
        result.errors.append(ValidationError("question_type", "Invalid question type"))
    if question.order_index < 0:
        result.errors.append(ValidationError("order_index", "Order index cannot be negative"))
    result.errors.extend(validate_question_data(question))
    return result


def validate_quiz_settings(settings: QuizSettings) -> list[ValidationError]:
    errors: list[ValidationError] = []
    if settings.time_limit is not None:
        if settings.time_limit <= 0:
            errors.append(ValidationError("settings.time_limit", "Time limit must be greater than 0"))
        elif settings.time_limit > MAX_TIME_LIMIT_MINUTES:
            errors.append(ValidationError("settings.time_limit", "Time limit cannot exceed 24 hours"))
    if settings.max_retakes is not None and settings.max_retakes < 0:
        errors.append(ValidationError("settings.max_retakes", "Max retakes cannot be negative"))
    if settings.passing_score is not None and not 0 <= settings.passing_score <= 100:
        errors.append(
            ValidationError("settings.passing_score", "Passing score must be between 0 and 100")
        )
    return errors


def validate_quiz(quiz: Quiz) -> ValidationResult:
    """Validate the quiz header, its settings and every question.

    Question errors are reported with the question id prefixed to the field.
    """
    result = ValidationResult()
    title = (quiz.title or "").strip()
    if not title:
        result.errors.append(ValidationError("title", "Quiz title is required"))
    elif len(title) > MAX_TITLE_LENGTH:
        result.errors.append(
            ValidationError("title", f"Quiz title must be {MAX_TITLE_LENGTH} characters or less")
        )
    result.errors.extend(validate_quiz_settings(quiz.settings))

    seen: set[str] = set()
    for question in quiz.questions:
        if question.id in seen:
            result.errors.append(ValidationError(f"questions.{question.id}", "Duplicate question id"))
        seen.add(question.id)
        for error in validate_question(question).errors:
            result.errors.append(ValidationError(f"questions.{question.id}.{error.field}", error.message))
    return result
