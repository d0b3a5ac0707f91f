import sys
from pathlib import Path

import pytest
import typer
import yaml

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from quizdeck.cli.main import (
    deck_add,
    deck_due,
    deck_review,
    quiz_import,
    quiz_report,
    quiz_score,
    quiz_stats,
    quiz_validate,
)
from quizdeck.core.sqlite_store import connect, fetch_deck_cards

SAMPLE_QUIZ = ROOT / "quizzes" / "sample_capitals.yaml"
SAMPLE_ANSWERS = ROOT / "quizzes" / "sample_capitals.answers.yaml"


@pytest.fixture()
def runtime_dir(tmp_path, monkeypatch):
    runtime_dir = tmp_path / "runtime-data"
    monkeypatch.setenv("QUIZDECK_RUNTIME_DIR", str(runtime_dir))
    monkeypatch.chdir(tmp_path)
    return runtime_dir


def test_validate_reports_problems(tmp_path, runtime_dir, capsys):
    quiz_validate(SAMPLE_QUIZ)
    assert "no problems found" in capsys.readouterr().out

    broken = {
        "id": "broken",
        "title": "Broken",
        "questions": [{"id": "Q1", "type": "mcq", "text": "Pick", "options": ["A"], "correctAnswer": 0}],
    }
    path = tmp_path / "broken.yaml"
    path.write_text(yaml.safe_dump(broken), encoding="utf-8")
    with pytest.raises(typer.Exit):
        quiz_validate(path)
    assert "questions.Q1.question_data" in capsys.readouterr().err


def test_score_without_saving(runtime_dir, capsys):
    quiz_score(SAMPLE_QUIZ, SAMPLE_ANSWERS)
    out = capsys.readouterr().out
    assert "Score: 75% (3/4)" in out
    assert "Attempt ID" not in out


def test_score_save_report_and_stats(runtime_dir, capsys):
    quiz_score(SAMPLE_QUIZ, SAMPLE_ANSWERS, save=True)
    out = capsys.readouterr().out
    attempt_id = out.split("Attempt ID: ")[1].split()[0]

    quiz_report(attempt_id)
    report = runtime_dir / "reports" / "sample-capitals" / f"{attempt_id}.md"
    assert report.exists()
    assert "Score: **75%**" in report.read_text(encoding="utf-8")
    assert (runtime_dir / "reports" / "sample-capitals" / "sample-capitals.scores.png").exists()

    capsys.readouterr()
    quiz_stats("sample-capitals")
    assert "| Attempts | 1 |" in capsys.readouterr().out


def test_report_unknown_attempt(runtime_dir):
    with pytest.raises(typer.Exit):
        quiz_report("nope")


def test_import_then_stats_unknown_quiz(runtime_dir, capsys):
    quiz_import(SAMPLE_QUIZ)
    assert "Imported quiz sample-capitals" in capsys.readouterr().out
    with pytest.raises(typer.Exit):
        quiz_stats("missing")


def test_deck_flow(runtime_dir, capsys):
    deck_add("capitals", "Capital of Peru?", "Lima")
    conn = connect(runtime_dir / "db" / "quizdeck.sqlite3")
    cards = fetch_deck_cards(conn, "capitals")
    conn.close()
    assert len(cards) == 1
    card_id = cards[0]["card_id"]

    deck_due("capitals")
    assert card_id in capsys.readouterr().out

    deck_review(card_id, correct=True, time_ms=1200)
    assert "Next review in 1 day(s)" in capsys.readouterr().out

    deck_due("capitals")
    assert "Nothing due" in capsys.readouterr().out

    with pytest.raises(typer.Exit):
        deck_review("missing", correct=False, time_ms=None)


def test_validate_rejects_malformed_values_without_traceback(tmp_path, runtime_dir, capsys):
    path = tmp_path / "odd.yaml"
    path.write_text(
        "id: odd\ntitle: Odd\nsettings: {timeLimit: soon}\n"
        "questions:\n  - {id: Q1, type: true_false, text: 2024, correctAnswer: true}\n",
        encoding="utf-8",
    )
    with pytest.raises(typer.Exit):
        quiz_import(path)
    assert "settings.time_limit" in capsys.readouterr().err
