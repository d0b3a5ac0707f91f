import pathlib
import sys
from datetime import datetime, timedelta, timezone

ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))
import pandas as pd

from quizdeck.core import reporter
from quizdeck.core.attempt_stats import calculate_quiz_stats
from quizdeck.core.quiz_loader import load_answers, load_quiz
from quizdeck.core.scorer import score_quiz
from quizdeck.core.types import QuizAttempt

SAMPLE_QUIZ = ROOT / "quizzes" / "sample_capitals.yaml"
SAMPLE_ANSWERS = ROOT / "quizzes" / "sample_capitals.answers.yaml"
T0 = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _attempts():
    return [
        QuizAttempt(
            id=f"a{i}",
            quiz_id="sample-capitals",
            started_at=T0 + timedelta(days=i),
            completed_at=T0 + timedelta(days=i, minutes=2),
            score=score,
            total_questions=4,
            correct_answers=int(score / 25),
            time_taken=120,
        )
        for i, score in enumerate([50.0, 75.0, 100.0])
    ]


def test_breakdown_table_lists_present_types():
    quiz = load_quiz(SAMPLE_QUIZ)
    result = score_quiz(quiz.questions, load_answers(SAMPLE_ANSWERS))
    md = reporter.render_breakdown_table(result)
    assert "| Type | Correct | Total | Accuracy |" in md
    assert "| True / False | 0 | 1 | 0% |" in md
    assert "| Multiple choice | 1 | 1 | 100% |" in md


def test_breakdown_table_empty():
    assert reporter.render_breakdown_table(score_quiz([], [])) == "_No questions._"


def test_attempt_report_sections():
    quiz = load_quiz(SAMPLE_QUIZ)
    answers = load_answers(SAMPLE_ANSWERS)
    result = score_quiz(quiz.questions, answers)
    attempt = QuizAttempt(
        id="a1",
        quiz_id=quiz.id,
        started_at=T0,
        completed_at=T0 + timedelta(seconds=75),
        score=result.score,
        total_questions=result.total_count,
        correct_answers=result.correct_count,
        time_taken=75,
        answers=answers,
    )
    md = reporter.render_attempt_report(quiz, attempt, result)
    assert md.startswith("# World Capitals")
    assert "Score: **75%** (3/4)" in md
    assert "Passed (passing score 75%)" in md
    assert "Time taken: 1m 15s" in md
    assert "- Total: 40s" in md
    assert "- Correct answer: Canberra" in md
    assert "Japan → Tokyo" in md
    assert "Canberra was purpose-built" in md


def test_stats_table():
    stats = calculate_quiz_stats(_attempts(), passing_score=90)
    md = reporter.render_stats_table(stats)
    assert "| Best score | 100% |" in md
    assert "| Average time | 2m |" in md
    assert "| Passed | yes |" in md


def test_attempts_dataframe_and_csv(tmp_path):
    df = reporter.attempts_dataframe(_attempts())
    assert isinstance(df, pd.DataFrame)
    assert df["score"].tolist() == [50.0, 75.0, 100.0]

    out = tmp_path / "out" / "attempts.csv"
    reporter.write_attempts_csv(out, _attempts())
    assert pd.read_csv(out)["attempt_id"].tolist() == ["a0", "a1", "a2"]


def test_score_chart(tmp_path):
    out = tmp_path / "charts" / "scores.png"
    assert reporter.generate_score_chart(_attempts(), out) == out
    assert out.exists() and out.stat().st_size > 0
    assert reporter.generate_score_chart([], tmp_path / "none.png") is None
