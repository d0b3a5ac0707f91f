from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Union

import yaml

from .types import (
    Answer,
    FillBlankAnswer,
    FillBlankQuestion,
    MatchFollowingAnswer,
    MatchFollowingQuestion,
    MatchPair,
    MCQAnswer,
    MCQQuestion,
    Question,
    QuestionAnswer,
    Quiz,
    QuizSettings,
    TrueFalseAnswer,
    TrueFalseQuestion,
)


class QuizFormatError(ValueError):
    """Raised when a quiz or answer document cannot be mapped onto the model."""


_MISSING = object()

_SETTINGS_KEYS = {
    "time_limit": ("timeLimit", "time_limit"),
    "shuffle_questions": ("shuffleQuestions", "shuffle_questions"),
    "show_results": ("showResults", "show_results"),
    "allow_retakes": ("allowRetakes", "allow_retakes"),
    "max_retakes": ("maxRetakes", "max_retakes"),
    "show_correct_answers": ("showCorrectAnswers", "show_correct_answers"),
    "show_explanations": ("showExplanations", "show_explanations"),
    "passing_score": ("passingScore", "passing_score"),
}


def _int(value: Any) -> int:
    """Whole numbers only; booleans and fractional values are rejected."""
    if isinstance(value, bool):
        raise ValueError(f"expected an integer, got {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"expected an integer, got {value!r}")
        return int(value)
    return int(value)


def _float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"expected a number, got {value!r}")
    return float(value)


_SETTINGS_NUMBERS = {
    "time_limit": _int,
    "max_retakes": _int,
    "passing_score": _float,
}


def _get(data: dict[str, Any], *keys: str, default: Any = _MISSING) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    if default is _MISSING:
        raise QuizFormatError(f"Missing field: {keys[0]}")
    return default


def _pairs(raw: Any) -> list[MatchPair]:
    pairs = []
    for item in raw or []:
        if isinstance(item, dict):
            pairs.append(MatchPair(left=int(item["left"]), right=int(item["right"])))
        else:
            left, right = item
            pairs.append(MatchPair(left=int(left), right=int(right)))
    return pairs


def question_from_dict(data: dict[str, Any], quiz_id: str = "") -> Question:
    """Build a typed question from a YAML/JSON mapping.

    Type-specific fields may sit at the top level or under ``question_data``.
    """
    qtype = _get(data, "question_type", "type", default="")
    payload = dict(data)
    nested = data.get("question_data") or data.get("questionData")
    if isinstance(nested, dict):
        payload.update(nested)

    question_id = str(_get(data, "id"))
    explanation = _get(data, "explanation", default=None)
    try:
        common = {
            "id": question_id,
            "quiz_id": str(_get(data, "quiz_id", "quizId", default=quiz_id)),
            "question_text": str(_get(data, "question_text", "text", default="")),
            "explanation": str(explanation) if explanation is not None else None,
            "order_index": _int(_get(data, "order_index", "orderIndex", default=0)),
        }
        if qtype == "mcq":
            return MCQQuestion(
                options=[str(o) for o in _get(payload, "options")],
                correct_answer=int(_get(payload, "correctAnswer", "correct_answer")),
                shuffle_options=bool(_get(payload, "shuffleOptions", "shuffle_options", default=False)),
                **common,
            )
        if qtype == "fill_blank":
            answers = _get(payload, "correctAnswers", "correct_answers")
            if isinstance(answers, str):
                answers = [answers]
            return FillBlankQuestion(
                correct_answers=[str(a) for a in answers],
                case_sensitive=bool(_get(payload, "caseSensitive", "case_sensitive", default=False)),
                accept_partial_match=bool(
                    _get(payload, "acceptPartialMatch", "accept_partial_match", default=False)
                ),
                **common,
            )
        if qtype == "true_false":
            value = _get(payload, "correctAnswer", "correct_answer")
            if not isinstance(value, bool):
                raise QuizFormatError(f"Question {question_id}: correct answer must be true or false")
            return TrueFalseQuestion(correct_answer=value, **common)
        if qtype == "match_following":
            return MatchFollowingQuestion(
                left_items=[str(i) for i in _get(payload, "leftItems", "left_items")],
                right_items=[str(i) for i in _get(payload, "rightItems", "right_items")],
                correct_pairs=_pairs(_get(payload, "correctPairs", "correct_pairs")),
                shuffle_items=bool(_get(payload, "shuffleItems", "shuffle_items", default=False)),
                **common,
            )
    except QuizFormatError:
        raise
    except (TypeError, ValueError, KeyError) as exc:
        raise QuizFormatError(f"Question {question_id}: {exc}") from exc
    raise QuizFormatError(f"Question {question_id}: unknown question type {qtype!r}")


def answer_from_dict(data: dict[str, Any]) -> Answer:
    atype = _get(data, "type")
    try:
        if atype == "mcq":
            return MCQAnswer(selected_option=int(_get(data, "selectedOption", "selected_option")))
        if atype == "fill_blank":
            return FillBlankAnswer(answer=str(_get(data, "answer", default="")))
        if atype == "true_false":
            value = _get(data, "answer")
            if not isinstance(value, bool):
                raise QuizFormatError("true/false answer must be a boolean")
            return TrueFalseAnswer(answer=value)
        if atype == "match_following":
            return MatchFollowingAnswer(pairs=_pairs(_get(data, "pairs", default=[])))
    except QuizFormatError:
        raise
    except (TypeError, ValueError, KeyError) as exc:
        raise QuizFormatError(f"Malformed {atype} answer: {exc}") from exc
    raise QuizFormatError(f"Unknown answer type {atype!r}")


def question_answer_from_dict(data: dict[str, Any]) -> QuestionAnswer:
    answer_data = data.get("answer")
    if not isinstance(answer_data, dict):
        answer_data = data
    time_spent = _get(data, "timeSpent", "time_spent", default=None)
    return QuestionAnswer(
        question_id=str(_get(data, "questionId", "question_id")),
        answer=answer_from_dict(answer_data),
        correct=bool(data.get("correct", False)),
        time_spent=float(time_spent) if time_spent is not None else None,
    )


def settings_from_dict(data: Union[dict[str, Any], None]) -> QuizSettings:
    data = data or {}
    if not isinstance(data, dict):
        raise QuizFormatError("settings must be a mapping")
    defaults = QuizSettings()
    values = {
        name: _get(data, *keys, default=getattr(defaults, name)) for name, keys in _SETTINGS_KEYS.items()
    }
    for name, convert in _SETTINGS_NUMBERS.items():
        if values[name] is not None:
            try:
                values[name] = convert(values[name])
            except (TypeError, ValueError) as exc:
                raise QuizFormatError(f"settings.{name}: expected a number, got {values[name]!r}") from exc
    return QuizSettings(**values)


def quiz_from_dict(data: dict[str, Any]) -> Quiz:
    if not isinstance(data, dict):
        raise QuizFormatError("Quiz document must be a mapping")
    quiz_id = str(_get(data, "id"))
    raw_questions = data.get("questions") or []
    if not isinstance(raw_questions, list) or not all(isinstance(q, dict) for q in raw_questions):
        raise QuizFormatError("questions must be a list of mappings")
    questions = [question_from_dict(q, quiz_id=quiz_id) for q in raw_questions]
    for idx, question in enumerate(questions):
        raw = raw_questions[idx]
        if "order_index" not in raw and "orderIndex" not in raw:
            question.order_index = idx
    return Quiz(
        id=quiz_id,
        title=str(_get(data, "title", default="")),
        description=str(_get(data, "description", default="")),
        settings=settings_from_dict(data.get("settings")),
        questions=questions,
    )


def load_quiz(path: Path) -> Quiz:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise QuizFormatError(f"{path}: invalid YAML: {exc}") from exc
    return quiz_from_dict(data)


def load_answers(path: Path) -> list[QuestionAnswer]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise QuizFormatError(f"{path}: invalid YAML: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("answers")
    if not isinstance(data, list):
        raise QuizFormatError(f"{path}: expected a list of answers")
    return [question_answer_from_dict(item) for item in data]


def question_to_dict(question: Question) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": question.id,
        "type": question.question_type,
        "text": question.question_text,
        "order_index": question.order_index,
    }
    if question.explanation:
        data["explanation"] = question.explanation
    if isinstance(question, MCQQuestion):
        data.update(
            options=list(question.options),
            correct_answer=question.correct_answer,
            shuffle_options=question.shuffle_options,
        )
    elif isinstance(question, FillBlankQuestion):
        data.update(
            correct_answers=list(question.correct_answers),
            case_sensitive=question.case_sensitive,
            accept_partial_match=question.accept_partial_match,
        )
    elif isinstance(question, TrueFalseQuestion):
        data["correct_answer"] = question.correct_answer
    elif isinstance(question, MatchFollowingQuestion):
        data.update(
            left_items=list(question.left_items),
            right_items=list(question.right_items),
            correct_pairs=[{"left": p.left, "right": p.right} for p in question.correct_pairs],
            shuffle_items=question.shuffle_items,
        )
    return data


def answer_to_dict(answer: Answer) -> dict[str, Any]:
    if isinstance(answer, MCQAnswer):
        return {"type": answer.type, "selected_option": answer.selected_option}
    if isinstance(answer, MatchFollowingAnswer):
        return {"type": answer.type, "pairs": [{"left": p.left, "right": p.right} for p in answer.pairs]}
    return {"type": answer.type, "answer": answer.answer}


def question_answer_to_dict(qa: QuestionAnswer) -> dict[str, Any]:
    return {
        "question_id": qa.question_id,
        "answer": answer_to_dict(qa.answer),
        "correct": qa.correct,
        "time_spent": qa.time_spent,
    }


def quiz_to_dict(quiz: Quiz) -> dict[str, Any]:
    settings = {name: getattr(quiz.settings, name) for name in _SETTINGS_KEYS}
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "settings": {k: v for k, v in settings.items() if v is not None},
        "questions": [question_to_dict(q) for q in quiz.questions],
    }


def dump_quiz_yaml(quiz: Quiz) -> str:
    return yaml.safe_dump(quiz_to_dict(quiz), sort_keys=False, allow_unicode=True)


def create_default_question(question_type: str, order_index: int, question_id: str = "") -> Question:
    """Blank question of the given type, as a fresh editor form would start."""
    if question_type == "mcq":
        return MCQQuestion(id=question_id, options=["", ""], correct_answer=0, order_index=order_index)
    if question_type == "fill_blank":
        return FillBlankQuestion(id=question_id, correct_answers=[""], order_index=order_index)
    if question_type == "true_false":
        return TrueFalseQuestion(id=question_id, correct_answer=True, order_index=order_index)
    if question_type == "match_following":
        return MatchFollowingQuestion(
            id=question_id,
            left_items=[""],
            right_items=[""],
            correct_pairs=[MatchPair(0, 0)],
            order_index=order_index,
        )
    raise ValueError(f"Unknown question type: {question_type}")


def generate_question_order_index(questions: list[Question]) -> int:
    if not questions:
        return 0
    return max(q.order_index for q in questions) + 1


def reorder_questions(questions: list[Question], new_order: list[str]) -> list[Question]:
    by_id = {q.id: q for q in questions}
    reordered = []
    for idx, question_id in enumerate(new_order):
        if question_id not in by_id:
            raise KeyError(f"Question with ID {question_id} not found")
        reordered.append(replace(by_id[question_id], order_index=idx))
    return reordered
