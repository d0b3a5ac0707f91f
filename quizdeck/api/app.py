from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any

import yaml
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from ..core.config import StudyConfigLoader
from ..core.logging_utils import configure_logging
from ..core.quiz_loader import (
    QuizFormatError,
    question_answer_from_dict,
    question_answer_to_dict,
    quiz_from_dict,
    quiz_to_dict,
)
from ..core.runtime_data import get_runtime_paths
from ..core.sqlite_store import connect, delete_quiz, fetch_attempts, fetch_quizzes
from ..core.study import AttemptStateError, NotFoundError, QuizService, StudyService

app = FastAPI()


class AttemptRequest(BaseModel):
    answers: list[dict[str, Any]]
    started_at: datetime | None = None
    completed_at: datetime | None = None


class StartAttemptRequest(BaseModel):
    started_at: datetime | None = None


class CompleteAttemptRequest(BaseModel):
    answers: list[dict[str, Any]]
    completed_at: datetime | None = None


class FlashcardRequest(BaseModel):
    deck_id: str
    front_content: str
    back_content: str
    card_id: str | None = None


class ReviewRequest(BaseModel):
    was_correct: bool
    response_time_ms: float | None = None
    reviewed_at: datetime | None = None


def _connect():
    runtime_paths = get_runtime_paths()
    configure_logging(runtime_paths.logs_dir)
    return connect(runtime_paths.db_path)


def _parse_answers(raw: list[dict[str, Any]]) -> list:
    try:
        return [question_answer_from_dict(a) for a in raw]
    except QuizFormatError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _attempt_summary(attempt) -> dict:
    return {
        "attempt_id": attempt.id,
        "started_at": attempt.started_at.isoformat(),
        "completed_at": attempt.completed_at.isoformat() if attempt.completed_at else None,
        "score": attempt.score,
        "correct_answers": attempt.correct_answers,
        "total_questions": attempt.total_questions,
        "time_taken": attempt.time_taken,
    }


def _graded_response(service: QuizService, attempt, result) -> dict:
    passing_score = service.passing_score(service.get_quiz(attempt.quiz_id))
    return {
        "attempt_id": attempt.id,
        "result": asdict(result),
        "passed": result.score >= passing_score if passing_score is not None else None,
        "answers": [question_answer_to_dict(a) for a in attempt.answers],
    }


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/api/quizzes")
def list_quizzes() -> dict:
    conn = _connect()
    quizzes = fetch_quizzes(conn)
    conn.close()
    return {"quizzes": quizzes}


@app.get("/api/quizzes/{quiz_id}")
def get_quiz(quiz_id: str) -> dict:
    conn = _connect()
    try:
        quiz = QuizService(conn).get_quiz(quiz_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    finally:
        conn.close()
    return {"quiz": quiz_to_dict(quiz)}


@app.post("/api/quizzes")
async def create_quiz(request: Request) -> dict:
    body = await request.body()
    try:
        quiz = quiz_from_dict(yaml.safe_load(body.decode("utf-8")))
    except (UnicodeDecodeError, yaml.YAMLError, QuizFormatError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid quiz YAML: {exc}") from exc

    conn = _connect()
    try:
        validation = QuizService(conn).save_quiz(quiz)
    finally:
        conn.close()
    if not validation.is_valid:
        raise HTTPException(
            status_code=400,
            detail=[{"field": e.field, "message": e.message} for e in validation.errors],
        )
    return {"quiz": quiz_to_dict(quiz)}


@app.delete("/api/quizzes/{quiz_id}")
def remove_quiz(quiz_id: str) -> dict:
    conn = _connect()
    try:
        QuizService(conn).get_quiz(quiz_id)
        attempt_ids = delete_quiz(conn, quiz_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    finally:
        conn.close()
    return {"deleted": quiz_id, "attempts_deleted": len(attempt_ids)}


@app.post("/api/quizzes/{quiz_id}/attempts")
def submit_attempt(quiz_id: str, req: AttemptRequest) -> dict:
    answers = _parse_answers(req.answers)
    conn = _connect()
    try:
        service = QuizService(conn, StudyConfigLoader().default_passing_score())
        attempt, result = service.submit_attempt(
            quiz_id, answers, started_at=req.started_at, completed_at=req.completed_at
        )
        return _graded_response(service, attempt, result)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    finally:
        conn.close()


@app.post("/api/quizzes/{quiz_id}/attempts/start")
def start_attempt(quiz_id: str, req: StartAttemptRequest) -> dict:
    conn = _connect()
    try:
        attempt = QuizService(conn).start_attempt(quiz_id, started_at=req.started_at)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    finally:
        conn.close()
    return {"attempt": _attempt_summary(attempt)}


@app.post("/api/attempts/{attempt_id}/complete")
def complete_attempt(attempt_id: str, req: CompleteAttemptRequest) -> dict:
    answers = _parse_answers(req.answers)
    conn = _connect()
    try:
        service = QuizService(conn, StudyConfigLoader().default_passing_score())
        attempt, result = service.complete_attempt(attempt_id, answers, completed_at=req.completed_at)
        return _graded_response(service, attempt, result)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except AttemptStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    finally:
        conn.close()


@app.delete("/api/attempts/{attempt_id}")
def remove_attempt(attempt_id: str) -> dict:
    conn = _connect()
    try:
        QuizService(conn).delete_attempt(attempt_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    finally:
        conn.close()
    return {"deleted": attempt_id}


@app.get("/api/quizzes/{quiz_id}/attempts")
def list_attempts(quiz_id: str) -> dict:
    conn = _connect()
    attempts = fetch_attempts(conn, quiz_id)
    conn.close()
    return {"attempts": [_attempt_summary(a) for a in attempts]}


@app.get("/api/quizzes/{quiz_id}/attempts/best")
def best_attempt(quiz_id: str) -> dict:
    conn = _connect()
    try:
        attempt = QuizService(conn).best_attempt(quiz_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    finally:
        conn.close()
    return {"attempt": _attempt_summary(attempt) if attempt else None}


@app.get("/api/quizzes/{quiz_id}/attempts/latest")
def latest_attempt(quiz_id: str) -> dict:
    conn = _connect()
    try:
        attempt = QuizService(conn).latest_attempt(quiz_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    finally:
        conn.close()
    return {"attempt": _attempt_summary(attempt) if attempt else None}


@app.get("/api/quizzes/{quiz_id}/stats")
def get_stats(quiz_id: str) -> dict:
    conn = _connect()
    try:
        stats = QuizService(conn, StudyConfigLoader().default_passing_score()).attempt_stats(quiz_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    finally:
        conn.close()
    return {"stats": asdict(stats)}


@app.post("/api/flashcards")
def create_flashcard(req: FlashcardRequest) -> dict:
    conn = _connect()
    try:
        service = StudyService(conn, StudyConfigLoader().scheduler_params())
        card = service.add_card(req.deck_id, req.front_content, req.back_content, card_id=req.card_id)
    finally:
        conn.close()
    return {"card": card}


@app.post("/api/flashcards/{card_id}/review")
def review_flashcard(card_id: str, req: ReviewRequest) -> dict:
    conn = _connect()
    try:
        service = StudyService(conn, StudyConfigLoader().scheduler_params())
        result = service.record_review(
            card_id, req.was_correct, req.response_time_ms, reviewed_at=req.reviewed_at
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    finally:
        conn.close()
    return {
        "difficulty": result.difficulty,
        "interval_days": result.interval_days,
        "next_review_date": result.next_review_date.isoformat(),
        "review_count": result.review_count,
        "correct_count": result.correct_count,
    }


@app.get("/api/decks/{deck_id}/due")
def due_cards(deck_id: str) -> dict:
    conn = _connect()
    cards = StudyService(conn).due_cards(deck_id)
    conn.close()
    return {"cards": cards}
