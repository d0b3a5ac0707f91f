from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Union

import yaml

from .quiz_loader import dump_quiz_yaml, question_answer_from_dict, question_answer_to_dict, quiz_from_dict
from .spaced_repetition import as_datetime
from .types import FlashcardReviewState, Quiz, QuizAttempt, ReviewResult, ScoreResult

DIFFICULTY_SCALE = 100


def difficulty_to_storage(difficulty: float) -> int:
    return round(difficulty * DIFFICULTY_SCALE)


def difficulty_from_storage(value: int) -> float:
    return value / DIFFICULTY_SCALE


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(value: Union[datetime, None]) -> Union[str, None]:
    """UTC ISO text, so that stored timestamps sort chronologically."""
    if value is None:
        return None
    return as_datetime(value).astimezone(timezone.utc).isoformat()


def connect(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    _init_db(conn)
    return conn


def _init_db(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS quizzes (
            quiz_id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            quiz_yaml TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS attempts (
            attempt_id TEXT PRIMARY KEY,
            quiz_id TEXT NOT NULL,
            started_at TEXT NOT NULL,
            completed_at TEXT,
            score REAL,
            total_questions INTEGER NOT NULL,
            correct_answers INTEGER NOT NULL,
            time_taken INTEGER,
            answers_json TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS flashcards (
            card_id TEXT PRIMARY KEY,
            deck_id TEXT NOT NULL,
            front_content TEXT NOT NULL,
            back_content TEXT NOT NULL,
            difficulty INTEGER NOT NULL,
            next_review_date TEXT NOT NULL,
            review_count INTEGER NOT NULL DEFAULT 0,
            correct_count INTEGER NOT NULL DEFAULT 0,
            last_review_date TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS study_sessions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            card_id TEXT NOT NULL,
            deck_id TEXT NOT NULL,
            was_correct INTEGER NOT NULL,
            response_time_ms INTEGER,
            quality INTEGER NOT NULL,
            difficulty_before INTEGER NOT NULL,
            difficulty_after INTEGER NOT NULL,
            reviewed_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_attempts_quiz ON attempts (quiz_id, started_at);
        CREATE INDEX IF NOT EXISTS idx_flashcards_deck ON flashcards (deck_id, next_review_date);
        """
    )
    _ensure_column(conn, "attempts", "breakdown_json", "TEXT NOT NULL DEFAULT '{}'", "{}")
    _ensure_column(conn, "flashcards", "streak", "INTEGER NOT NULL DEFAULT 0", "0")
    _ensure_column(conn, "flashcards", "interval_days", "INTEGER NOT NULL DEFAULT 0", "0")
    conn.commit()


def _ensure_column(
    conn: sqlite3.Connection,
    table: str,
    column: str,
    definition: str,
    default_value: str | None = None,
) -> None:
    columns = {row["name"] for row in conn.execute(f"PRAGMA table_info({table})")}
    if column in columns:
        return
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
    if default_value is not None:
        conn.execute(f"UPDATE {table} SET {column} = ? WHERE {column} IS NULL", (default_value,))
    conn.commit()


def upsert_quiz(conn: sqlite3.Connection, quiz: Quiz) -> None:
    now = _now()
    conn.execute(
        """
        INSERT INTO quizzes (quiz_id, title, quiz_yaml, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(quiz_id) DO UPDATE SET
            title=excluded.title,
            quiz_yaml=excluded.quiz_yaml,
            updated_at=excluded.updated_at
        """,
        (quiz.id, quiz.title, dump_quiz_yaml(quiz), now, now),
    )
    conn.commit()


def fetch_quiz(conn: sqlite3.Connection, quiz_id: str) -> Quiz | None:
    row = conn.execute(
        "SELECT quiz_yaml FROM quizzes WHERE quiz_id = ?",
        (quiz_id,),
    ).fetchone()
    if not row:
        return None
    return quiz_from_dict(yaml.safe_load(row["quiz_yaml"]))


def fetch_quizzes(conn: sqlite3.Connection) -> list[dict]:
    rows = conn.execute(
        """
        SELECT q.quiz_id, q.title, q.created_at, q.updated_at,
               COUNT(a.attempt_id) AS attempt_count
        FROM quizzes q
        LEFT JOIN attempts a ON a.quiz_id = q.quiz_id
        GROUP BY q.quiz_id
        ORDER BY q.created_at DESC, q.quiz_id DESC
        """
    ).fetchall()
    return [dict(row) for row in rows]


def delete_quiz(conn: sqlite3.Connection, quiz_id: str) -> list[str]:
    rows = conn.execute(
        "SELECT attempt_id FROM attempts WHERE quiz_id = ?",
        (quiz_id,),
    ).fetchall()
    attempt_ids = [row["attempt_id"] for row in rows]
    conn.execute("DELETE FROM attempts WHERE quiz_id = ?", (quiz_id,))
    conn.execute("DELETE FROM quizzes WHERE quiz_id = ?", (quiz_id,))
    conn.commit()
    return attempt_ids


def insert_attempt(
    conn: sqlite3.Connection,
    attempt: QuizAttempt,
    result: ScoreResult | None = None,
) -> None:
    breakdown = {}
    if result is not None:
        breakdown = {k: {"correct": v.correct, "total": v.total} for k, v in result.breakdown.items()}
    conn.execute(
        """
        INSERT OR REPLACE INTO attempts
        (attempt_id, quiz_id, started_at, completed_at, score, total_questions,
         correct_answers, time_taken, answers_json, breakdown_json)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            attempt.id,
            attempt.quiz_id,
            _iso(attempt.started_at),
            _iso(attempt.completed_at),
            attempt.score,
            attempt.total_questions,
            attempt.correct_answers,
            attempt.time_taken,
            json.dumps([question_answer_to_dict(a) for a in attempt.answers], ensure_ascii=False),
            json.dumps(breakdown, ensure_ascii=False),
        ),
    )
    conn.commit()


def _attempt_from_row(row: sqlite3.Row) -> QuizAttempt:
    return QuizAttempt(
        id=row["attempt_id"],
        quiz_id=row["quiz_id"],
        started_at=as_datetime(row["started_at"]),
        completed_at=as_datetime(row["completed_at"]) if row["completed_at"] else None,
        score=row["score"],
        total_questions=row["total_questions"],
        correct_answers=row["correct_answers"],
        time_taken=row["time_taken"],
        answers=[question_answer_from_dict(a) for a in json.loads(row["answers_json"])],
    )


def fetch_attempts(conn: sqlite3.Connection, quiz_id: str) -> list[QuizAttempt]:
    """Attempts for a quiz, oldest first."""
    rows = conn.execute(
        """
        SELECT * FROM attempts
        WHERE quiz_id = ?
        ORDER BY started_at ASC
        """,
        (quiz_id,),
    ).fetchall()
    return [_attempt_from_row(row) for row in rows]


def fetch_attempt(conn: sqlite3.Connection, attempt_id: str) -> QuizAttempt | None:
    row = conn.execute(
        "SELECT * FROM attempts WHERE attempt_id = ?",
        (attempt_id,),
    ).fetchone()
    if not row:
        return None
    return _attempt_from_row(row)


def fetch_best_attempt(conn: sqlite3.Connection, quiz_id: str) -> QuizAttempt | None:
    """Highest-scoring completed attempt; ties go to the one finished first."""
    row = conn.execute(
        """
        SELECT * FROM attempts
        WHERE quiz_id = ? AND completed_at IS NOT NULL AND score IS NOT NULL
        ORDER BY score DESC, completed_at ASC
        LIMIT 1
        """,
        (quiz_id,),
    ).fetchone()
    return _attempt_from_row(row) if row else None


def fetch_latest_attempt(conn: sqlite3.Connection, quiz_id: str) -> QuizAttempt | None:
    row = conn.execute(
        """
        SELECT * FROM attempts
        WHERE quiz_id = ?
        ORDER BY started_at DESC, rowid DESC
        LIMIT 1
        """,
        (quiz_id,),
    ).fetchone()
    return _attempt_from_row(row) if row else None


def delete_attempt(conn: sqlite3.Connection, attempt_id: str) -> bool:
    cur = conn.execute("DELETE FROM attempts WHERE attempt_id = ?", (attempt_id,))
    conn.commit()
    return cur.rowcount > 0


def upsert_flashcard(
    conn: sqlite3.Connection,
    card_id: str,
    deck_id: str,
    front_content: str,
    back_content: str,
    difficulty: float,
    next_review_date: datetime | None = None,
) -> None:
    now = _now()
    conn.execute(
        """
        INSERT INTO flashcards
        (card_id, deck_id, front_content, back_content, difficulty, next_review_date,
         created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(card_id) DO UPDATE SET
            deck_id=excluded.deck_id,
            front_content=excluded.front_content,
            back_content=excluded.back_content,
            updated_at=excluded.updated_at
        """,
        (
            card_id,
            deck_id,
            front_content,
            back_content,
            difficulty_to_storage(difficulty),
            _iso(next_review_date) or now,
            now,
            now,
        ),
    )
    conn.commit()


def _card_from_row(row: sqlite3.Row) -> dict:
    card = dict(row)
    card["difficulty"] = difficulty_from_storage(card["difficulty"])
    return card


def fetch_flashcard(conn: sqlite3.Connection, card_id: str) -> dict | None:
    row = conn.execute("SELECT * FROM flashcards WHERE card_id = ?", (card_id,)).fetchone()
    if not row:
        return None
    return _card_from_row(row)


def fetch_deck_cards(conn: sqlite3.Connection, deck_id: str) -> list[dict]:
    rows = conn.execute(
        "SELECT * FROM flashcards WHERE deck_id = ? ORDER BY created_at ASC",
        (deck_id,),
    ).fetchall()
    return [_card_from_row(row) for row in rows]


def card_review_state(card: dict) -> FlashcardReviewState:
    last = card.get("last_review_date")
    return FlashcardReviewState(
        difficulty=card["difficulty"],
        review_count=card["review_count"],
        correct_count=card["correct_count"],
        streak=card.get("streak") or 0,
        interval_days=card.get("interval_days") or 0,
        last_review_date=as_datetime(last) if last else None,
    )


def save_card_review(
    conn: sqlite3.Connection,
    card: dict,
    result: ReviewResult,
    was_correct: bool,
    quality: int,
    response_time_ms: float | None,
    reviewed_at: datetime,
) -> None:
    """Persist a review: update the card and append a study-session row."""
    before = difficulty_to_storage(card["difficulty"])
    after = difficulty_to_storage(result.difficulty)
    conn.execute(
        """
        UPDATE flashcards SET
            difficulty = ?,
            next_review_date = ?,
            review_count = ?,
            correct_count = ?,
            streak = ?,
            interval_days = ?,
            last_review_date = ?,
            updated_at = ?
        WHERE card_id = ?
        """,
        (
            after,
            _iso(result.next_review_date),
            result.review_count,
            result.correct_count,
            result.streak,
            result.interval_days,
            _iso(reviewed_at),
            _now(),
            card["card_id"],
        ),
    )
    conn.execute(
        """
        INSERT INTO study_sessions
        (card_id, deck_id, was_correct, response_time_ms, quality,
         difficulty_before, difficulty_after, reviewed_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            card["card_id"],
            card["deck_id"],
            1 if was_correct else 0,
            round(response_time_ms) if response_time_ms is not None else None,
            quality,
            before,
            after,
            _iso(reviewed_at),
        ),
    )
    conn.commit()


def fetch_study_sessions(conn: sqlite3.Connection, card_ids: Iterable[str]) -> list[dict]:
    ids = list(card_ids)
    if not ids:
        return []
    placeholders = ", ".join(["?"] * len(ids))
    rows = conn.execute(
        f"""
        SELECT card_id, deck_id, was_correct, response_time_ms, quality,
               difficulty_before, difficulty_after, reviewed_at
        FROM study_sessions
        WHERE card_id IN ({placeholders})
        ORDER BY id ASC
        """,
        ids,
    ).fetchall()
    return [dict(row) for row in rows]
