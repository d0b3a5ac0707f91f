from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Union

from .scorer import is_correct
from .types import Question, QuestionAnswer, QuizAttempt, QuizSettings


@dataclass
class QuestionResult:
    question: Question
    answer: Union[QuestionAnswer, None]
    is_correct: bool


@dataclass
class AttemptStats:
    total_attempts: int = 0
    best_score: Union[float, None] = None
    last_score: Union[float, None] = None
    average_score: Union[float, None] = None
    average_time: Union[int, None] = None
    has_passed: Union[bool, None] = None
    improvement_trend: float = 0
    consistency_score: float = 0


def grade_answers(questions: Iterable[Question], answers: Iterable[QuestionAnswer]) -> list[QuestionAnswer]:
    """Return copies of ``answers`` with ``correct`` recomputed from the questions.

    Answers for ids that are not part of the quiz are dropped.
    """
    by_id = {q.id: q for q in questions}
    graded = []
    for qa in answers:
        question = by_id.get(qa.question_id)
        if question is None:
            continue
        graded.append(replace(qa, correct=is_correct(question, qa.answer)))
    return graded


def question_results(questions: Iterable[Question], answers: Iterable[QuestionAnswer]) -> list[QuestionResult]:
    by_question: dict[str, QuestionAnswer] = {}
    for qa in answers:
        by_question.setdefault(qa.question_id, qa)
    results = []
    for question in questions:
        qa = by_question.get(question.id)
        results.append(
            QuestionResult(
                question=question,
                answer=qa,
                is_correct=qa is not None and is_correct(question, qa.answer),
            )
        )
    return results


def has_passed(score: Union[float, None], settings: QuizSettings) -> Union[bool, None]:
    if settings.passing_score is None:
        return None
    return (score or 0) >= settings.passing_score


def calculate_quiz_stats(
    attempts: Iterable[QuizAttempt], passing_score: Union[float, None] = None
) -> AttemptStats:
    """Summarise a learner's attempts at one quiz, oldest attempt first.

    Only completed, scored attempts feed the score figures. The improvement
    trend compares the later half of those attempts with the earlier half
    and needs at least four of them; consistency is 100 minus the population
    standard deviation of the scores, floored at 0.
    """
    attempts = list(attempts)
    if not attempts:
        return AttemptStats()

    completed = [a for a in attempts if a.completed_at is not None and a.score is not None]
    if not completed:
        return AttemptStats(total_attempts=len(attempts))

    scores = [a.score for a in completed]
    times = [a.time_taken for a in completed if a.time_taken]

    best = max(scores)
    average = sum(scores) / len(scores)

    trend = 0.0
    if len(scores) >= 4:
        mid = len(scores) // 2
        first = sum(scores[:mid]) / mid
        second = sum(scores[mid:]) / (len(scores) - mid)
        trend = second - first

    consistency = 0.0
    if len(scores) > 1:
        variance = sum((s - average) ** 2 for s in scores) / len(scores)
        consistency = max(0.0, 100 - math.sqrt(variance))

    return AttemptStats(
        total_attempts=len(attempts),
        best_score=round(best, 2),
        last_score=round(scores[-1], 2),
        average_score=round(average, 2),
        average_time=round(sum(times) / len(times)) if times else None,
        has_passed=best >= passing_score if passing_score is not None else None,
        improvement_trend=round(trend, 2),
        consistency_score=round(consistency, 2),
    )


def format_time(seconds: Union[int, float]) -> str:
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        minutes, rest = divmod(seconds, 60)
        return f"{minutes}m {rest}s" if rest else f"{minutes}m"
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    return f"{hours}h {minutes}m" if minutes else f"{hours}h"
