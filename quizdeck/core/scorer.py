from __future__ import annotations

from collections.abc import Iterable

from .types import (
    QUESTION_TYPES,
    Answer,
    FillBlankAnswer,
    FillBlankQuestion,
    MatchFollowingAnswer,
    MatchFollowingQuestion,
    MCQAnswer,
    MCQQuestion,
    Question,
    QuestionAnswer,
    ScoreResult,
    TimeMetrics,
    TrueFalseAnswer,
    TrueFalseQuestion,
    TypeBreakdown,
)


def _fill_blank_matches(question: FillBlankQuestion, answer: FillBlankAnswer) -> bool:
    user_answer = answer.answer.strip()
    if question.case_sensitive:
        return any(correct.strip() == user_answer for correct in question.correct_answers)
    user_answer = user_answer.lower()
    return any(correct.strip().lower() == user_answer for correct in question.correct_answers)


def _pairs_match(question: MatchFollowingQuestion, answer: MatchFollowingAnswer) -> bool:
    if len(answer.pairs) != len(question.correct_pairs):
        return False
    submitted = {(p.left, p.right) for p in answer.pairs}
    return all((p.left, p.right) in submitted for p in question.correct_pairs)


def is_correct(question: Question, answer: Answer) -> bool:
    """Decide whether ``answer`` is a correct response to ``question``.

    A mismatched answer type is simply wrong, and out-of-range indices
    compare unequal, so this never raises for well-formed records.
    """
    if answer.type != question.question_type:
        return False

    if isinstance(question, MCQQuestion) and isinstance(answer, MCQAnswer):
        return answer.selected_option == question.correct_answer
    if isinstance(question, FillBlankQuestion) and isinstance(answer, FillBlankAnswer):
        return _fill_blank_matches(question, answer)
    if isinstance(question, TrueFalseQuestion) and isinstance(answer, TrueFalseAnswer):
        return answer.answer == question.correct_answer
    if isinstance(question, MatchFollowingQuestion) and isinstance(answer, MatchFollowingAnswer):
        return _pairs_match(question, answer)
    return False


def empty_breakdown() -> dict[str, TypeBreakdown]:
    return {qtype: TypeBreakdown() for qtype in QUESTION_TYPES}


def _time_metrics(times: list[float]) -> TimeMetrics:
    if not times:
        return TimeMetrics()
    total = sum(times)
    return TimeMetrics(
        total_time=total,
        average_time_per_question=round(total / len(times)),
        fastest_question=min(times),
        slowest_question=max(times),
    )


def score_quiz(questions: Iterable[Question], answers: Iterable[QuestionAnswer]) -> ScoreResult:
    """Aggregate a quiz attempt into a score, per-type breakdown and timing.

    Answers are matched to questions by id and graded again here; the
    ``correct`` flag on incoming records is ignored.
    """
    by_question: dict[str, QuestionAnswer] = {}
    for qa in answers:
        by_question.setdefault(qa.question_id, qa)

    breakdown = empty_breakdown()
    correct_count = 0
    total_count = 0
    times: list[float] = []

    for question in questions:
        total_count += 1
        bucket = breakdown[question.question_type]
        bucket.total += 1

        qa = by_question.get(question.id)
        if qa is None:
            continue
        if qa.time_spent is not None:
            times.append(qa.time_spent)
        if is_correct(question, qa.answer):
            correct_count += 1
            bucket.correct += 1

    if total_count == 0:
        return ScoreResult(
            score=0,
            correct_count=0,
            total_count=0,
            breakdown=breakdown,
            time_metrics=TimeMetrics(),
        )

    return ScoreResult(
        score=round(correct_count / total_count * 100, 2),
        correct_count=correct_count,
        total_count=total_count,
        breakdown=breakdown,
        time_metrics=_time_metrics(times),
    )
