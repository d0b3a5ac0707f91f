import pathlib
import sqlite3
import sys
from datetime import datetime, timedelta, timezone

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))
from quizdeck.core import sqlite_store
from quizdeck.core.quiz_loader import load_answers, load_quiz
from quizdeck.core.study import AttemptStateError, NotFoundError, QuizService, StudyService
from quizdeck.core.types import MCQAnswer, MCQQuestion, QuestionAnswer, Quiz

SAMPLE_QUIZ = ROOT / "quizzes" / "sample_capitals.yaml"
SAMPLE_ANSWERS = ROOT / "quizzes" / "sample_capitals.answers.yaml"
NOW = datetime(2026, 2, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def conn(tmp_path):
    conn = sqlite_store.connect(tmp_path / "db" / "quizdeck.sqlite3")
    yield conn
    conn.close()


def test_difficulty_scaled_at_storage_boundary(conn):
    assert sqlite_store.difficulty_to_storage(2.36) == 236
    assert sqlite_store.difficulty_from_storage(236) == 2.36

    StudyService(conn).add_card("deck", "front", "back", card_id="c1")
    raw = conn.execute("SELECT difficulty FROM flashcards WHERE card_id = 'c1'").fetchone()
    assert raw["difficulty"] == 250
    assert sqlite_store.fetch_flashcard(conn, "c1")["difficulty"] == 2.5


def test_new_card_is_due_immediately(conn):
    study = StudyService(conn)
    study.add_card("deck", "Q", "A", card_id="c1")
    due = study.due_cards("deck", now=datetime.now(timezone.utc) + timedelta(seconds=1))
    assert [c["card_id"] for c in due] == ["c1"]


def test_record_review_updates_card_and_logs_session(conn):
    study = StudyService(conn)
    study.add_card("deck", "Q", "A", card_id="c1")

    first = study.record_review("c1", True, 1500, reviewed_at=NOW)
    assert first.interval_days == 1
    assert first.next_review_date == NOW + timedelta(days=1)

    second = study.record_review("c1", True, 1500, reviewed_at=first.next_review_date)
    assert second.interval_days == 6

    card = sqlite_store.fetch_flashcard(conn, "c1")
    assert card["review_count"] == 2
    assert card["correct_count"] == 2
    assert card["streak"] == 2
    assert card["interval_days"] == 6
    assert card["difficulty"] == second.difficulty

    sessions = sqlite_store.fetch_study_sessions(conn, ["c1"])
    assert [s["quality"] for s in sessions] == [5, 5]
    assert sessions[0]["difficulty_before"] == 250
    assert sessions[0]["difficulty_after"] == 260
    assert sessions[1]["difficulty_before"] == 260


def test_wrong_review_resets_schedule(conn):
    study = StudyService(conn)
    study.add_card("deck", "Q", "A", card_id="c1")
    when = NOW
    for _ in range(4):
        result = study.record_review("c1", True, 1000, reviewed_at=when)
        when = result.next_review_date
    lapse = study.record_review("c1", False, reviewed_at=when)
    assert lapse.interval_days == 1
    assert sqlite_store.fetch_flashcard(conn, "c1")["streak"] == 0


def test_review_unknown_card(conn):
    with pytest.raises(NotFoundError, match="c404"):
        StudyService(conn).record_review("c404", True)


def test_due_cards_filters_by_deck_and_date(conn):
    study = StudyService(conn)
    for card_id in ("c1", "c2", "c3"):
        study.add_card("deck", card_id, "back", card_id=card_id)
    study.add_card("other", "x", "y", card_id="o1")
    now = datetime.now(timezone.utc)
    study.record_review("c2", True, 1000, reviewed_at=now)

    due = study.due_cards("deck", now=now + timedelta(hours=1))
    assert {c["card_id"] for c in due} == {"c1", "c3"}
    later = study.due_cards("deck", now=now + timedelta(days=2))
    assert {c["card_id"] for c in later} == {"c1", "c2", "c3"}


def test_save_quiz_validates_before_storing(conn):
    quizzes = QuizService(conn)
    result = quizzes.save_quiz(Quiz(id="bad", title=""))
    assert not result.is_valid
    assert sqlite_store.fetch_quiz(conn, "bad") is None

    quiz = load_quiz(SAMPLE_QUIZ)
    assert quizzes.save_quiz(quiz).is_valid
    assert quizzes.get_quiz("sample-capitals") == quiz
    assert sqlite_store.fetch_quizzes(conn)[0]["quiz_id"] == "sample-capitals"


def test_submit_attempt_and_stats(conn):
    quizzes = QuizService(conn, default_passing_score=50)
    quizzes.save_quiz(load_quiz(SAMPLE_QUIZ))
    answers = load_answers(SAMPLE_ANSWERS)

    attempt, result = quizzes.submit_attempt(
        "sample-capitals",
        answers,
        started_at=NOW,
        completed_at=NOW + timedelta(seconds=95),
    )
    assert result.score == 75.0
    assert attempt.time_taken == 95
    assert [a.correct for a in attempt.answers] == [True, True, False, True]

    stored = sqlite_store.fetch_attempt(conn, attempt.id)
    assert stored.score == 75.0
    assert stored.completed_at == NOW + timedelta(seconds=95)
    assert stored.answers == attempt.answers

    stats = quizzes.attempt_stats("sample-capitals")
    assert stats.total_attempts == 1
    assert stats.best_score == 75.0
    assert stats.has_passed is True


def test_passing_score_prefers_quiz_setting(conn):
    quizzes = QuizService(conn, default_passing_score=90)
    quiz = load_quiz(SAMPLE_QUIZ)
    assert quizzes.passing_score(quiz) == 75
    quiz.settings.passing_score = None
    assert quizzes.passing_score(quiz) == 90


def test_submit_without_saving(conn):
    quizzes = QuizService(conn)
    quizzes.save_quiz(load_quiz(SAMPLE_QUIZ))
    attempt, _ = quizzes.submit_attempt("sample-capitals", [], save=False)
    assert sqlite_store.fetch_attempt(conn, attempt.id) is None


def test_delete_quiz_removes_attempts(conn):
    quizzes = QuizService(conn)
    quizzes.save_quiz(load_quiz(SAMPLE_QUIZ))
    attempt, _ = quizzes.submit_attempt("sample-capitals", load_answers(SAMPLE_ANSWERS))
    assert sqlite_store.delete_quiz(conn, "sample-capitals") == [attempt.id]
    with pytest.raises(NotFoundError):
        quizzes.get_quiz("sample-capitals")


def test_missing_columns_are_added(tmp_path):
    db_path = tmp_path / "old.sqlite3"
    old = sqlite3.connect(db_path)
    old.execute(
        """
        CREATE TABLE flashcards (
            card_id TEXT PRIMARY KEY, deck_id TEXT NOT NULL, front_content TEXT NOT NULL,
            back_content TEXT NOT NULL, difficulty INTEGER NOT NULL, next_review_date TEXT NOT NULL,
            review_count INTEGER NOT NULL DEFAULT 0, correct_count INTEGER NOT NULL DEFAULT 0,
            last_review_date TEXT, created_at TEXT NOT NULL, updated_at TEXT NOT NULL
        )
        """
    )
    old.commit()
    old.close()

    conn = sqlite_store.connect(db_path)
    columns = {row["name"] for row in conn.execute("PRAGMA table_info(flashcards)")}
    conn.close()
    assert {"streak", "interval_days"} <= columns


def _one_question_quiz(quizzes, quiz_id="z"):
    quiz = Quiz(
        id=quiz_id,
        title="One",
        questions=[MCQQuestion(id="Q1", options=["a", "b"], correct_answer=1, question_text="Pick")],
    )
    assert quizzes.save_quiz(quiz).is_valid
    return quiz


def test_attempts_ordered_by_instant_across_offsets(conn):
    quizzes = QuizService(conn)
    _one_question_quiz(quizzes)
    plus_five = timezone(timedelta(hours=5))

    quizzes.submit_attempt(
        "z",
        [QuestionAnswer("Q1", MCQAnswer(1))],
        started_at=datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc),
        completed_at=datetime(2026, 3, 1, 10, 5, tzinfo=timezone.utc),
    )
    # 12:00+05:00 is 07:00 UTC, three hours before the first attempt
    quizzes.submit_attempt(
        "z",
        [QuestionAnswer("Q1", MCQAnswer(0))],
        started_at=datetime(2026, 3, 1, 12, 0, tzinfo=plus_five),
        completed_at=datetime(2026, 3, 1, 12, 5, tzinfo=plus_five),
    )

    assert [a.score for a in sqlite_store.fetch_attempts(conn, "z")] == [0.0, 100.0]
    assert quizzes.attempt_stats("z").last_score == 100
    raw = [r["started_at"] for r in conn.execute("SELECT started_at FROM attempts ORDER BY started_at")]
    assert all(value.endswith("+00:00") for value in raw)


def test_in_progress_attempt_lifecycle(conn):
    quizzes = QuizService(conn)
    _one_question_quiz(quizzes)

    started = quizzes.start_attempt("z", started_at=NOW)
    assert started.completed_at is None
    assert started.total_questions == 1
    stored = sqlite_store.fetch_attempt(conn, started.id)
    assert stored.completed_at is None and stored.score is None

    stats = quizzes.attempt_stats("z")
    assert stats.total_attempts == 1
    assert stats.best_score is None

    attempt, result = quizzes.complete_attempt(
        started.id, [QuestionAnswer("Q1", MCQAnswer(1))], completed_at=NOW + timedelta(seconds=42)
    )
    assert result.score == 100.0
    assert attempt.time_taken == 42
    assert sqlite_store.fetch_attempt(conn, started.id).score == 100.0

    with pytest.raises(AttemptStateError):
        quizzes.complete_attempt(started.id, [])
    with pytest.raises(NotFoundError):
        quizzes.complete_attempt("missing", [])


def test_unfinished_attempts_do_not_count_toward_scores(conn):
    quizzes = QuizService(conn)
    _one_question_quiz(quizzes)
    quizzes.submit_attempt(
        "z", [QuestionAnswer("Q1", MCQAnswer(0))], started_at=NOW, completed_at=NOW + timedelta(minutes=1)
    )
    quizzes.start_attempt("z", started_at=NOW + timedelta(hours=1))

    stats = quizzes.attempt_stats("z")
    assert stats.total_attempts == 2
    assert stats.last_score == 0.0
    assert stats.average_score == 0.0


def test_best_latest_and_delete_attempt(conn):
    quizzes = QuizService(conn)
    _one_question_quiz(quizzes)
    assert quizzes.best_attempt("z") is None
    assert quizzes.latest_attempt("z") is None

    good, _ = quizzes.submit_attempt(
        "z", [QuestionAnswer("Q1", MCQAnswer(1))], started_at=NOW, completed_at=NOW + timedelta(minutes=1)
    )
    quizzes.submit_attempt(
        "z",
        [QuestionAnswer("Q1", MCQAnswer(0))],
        started_at=NOW + timedelta(days=1),
        completed_at=NOW + timedelta(days=1, minutes=1),
    )
    pending = quizzes.start_attempt("z", started_at=NOW + timedelta(days=2))

    assert quizzes.best_attempt("z").id == good.id
    assert quizzes.latest_attempt("z").id == pending.id

    quizzes.delete_attempt(pending.id)
    assert sqlite_store.fetch_attempt(conn, pending.id) is None
    with pytest.raises(NotFoundError):
        quizzes.delete_attempt(pending.id)
    with pytest.raises(NotFoundError):
        quizzes.best_attempt("nope")
