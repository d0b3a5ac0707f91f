from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from ..core import reporter
from ..core.config import StudyConfigLoader
from ..core.logging_utils import configure_logging
from ..core.quiz_loader import QuizFormatError, load_answers, load_quiz
from ..core.runtime_data import get_runtime_paths
from ..core.scorer import score_quiz
from ..core.sqlite_store import connect, fetch_attempt, fetch_attempts
from ..core.study import NotFoundError, QuizService, StudyService
from ..core.validation import validate_quiz

app = typer.Typer()


def _open_services():
    runtime_paths = get_runtime_paths()
    configure_logging(runtime_paths.logs_dir)
    config = StudyConfigLoader()
    conn = connect(runtime_paths.db_path)
    quizzes = QuizService(conn, default_passing_score=config.default_passing_score())
    study = StudyService(conn, params=config.scheduler_params())
    return runtime_paths, conn, quizzes, study


def _load_quiz_or_exit(path: Path):
    try:
        return load_quiz(path)
    except (OSError, QuizFormatError) as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(1)


@app.command("quiz:validate")
def quiz_validate(quiz: Path) -> None:
    """Check a quiz YAML file for structural problems."""
    quiz_def = _load_quiz_or_exit(quiz)
    result = validate_quiz(quiz_def)
    if result.is_valid:
        typer.echo(f"✅ {quiz_def.title or quiz_def.id}: {len(quiz_def.questions)} question(s), no problems found")
        return
    typer.echo(f"❌ {len(result.errors)} problem(s) in {quiz}:", err=True)
    for error in result.errors:
        typer.echo(f"  • {error.field}: {error.message}", err=True)
    raise typer.Exit(1)


@app.command("quiz:import")
def quiz_import(quiz: Path) -> None:
    """Validate a quiz YAML file and store it."""
    quiz_def = _load_quiz_or_exit(quiz)
    _, conn, quizzes, _ = _open_services()
    try:
        result = quizzes.save_quiz(quiz_def)
    finally:
        conn.close()
    if not result.is_valid:
        for error in result.errors:
            typer.echo(f"  • {error.field}: {error.message}", err=True)
        raise typer.Exit(1)
    typer.echo(f"📥 Imported quiz {quiz_def.id} ({len(quiz_def.questions)} questions)")


@app.command("quiz:score")
def quiz_score(quiz: Path, answers: Path, save: bool = False) -> None:
    """Score an answer sheet against a quiz file.

    Args:
        quiz: Path to the quiz YAML file
        answers: Path to a YAML list of answers
        save: Import the quiz and record the attempt in the database
    """
    quiz_def = _load_quiz_or_exit(quiz)
    try:
        answer_list = load_answers(answers)
    except (OSError, QuizFormatError) as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(1)

    if save:
        _, conn, quizzes, _ = _open_services()
        try:
            validation = quizzes.save_quiz(quiz_def)
            if not validation.is_valid:
                typer.echo(f"❌ Quiz {quiz_def.id} is invalid; run quiz:validate for details", err=True)
                raise typer.Exit(1)
            attempt, result = quizzes.submit_attempt(quiz_def.id, answer_list)
        finally:
            conn.close()
        typer.echo(f"📁 Attempt ID: {attempt.id}")
    else:
        result = score_quiz(quiz_def.questions, answer_list)

    typer.echo(f"🎯 Score: {result.score:g}% ({result.correct_count}/{result.total_count})")
    typer.echo(reporter.render_breakdown_table(result))


@app.command("quiz:report")
def quiz_report(attempt_id: str) -> None:
    """Write a Markdown report for a recorded attempt."""
    runtime_paths, conn, quizzes, _ = _open_services()
    try:
        attempt = fetch_attempt(conn, attempt_id)
        if attempt is None:
            typer.echo(f"❌ Attempt {attempt_id} not found", err=True)
            raise typer.Exit(1)
        quiz_def = quizzes.get_quiz(attempt.quiz_id)
        history = fetch_attempts(conn, attempt.quiz_id)
    except NotFoundError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(1)
    finally:
        conn.close()

    result = score_quiz(quiz_def.questions, attempt.answers)
    md = reporter.render_attempt_report(quiz_def, attempt, result)

    report_dir = runtime_paths.quiz_reports_dir(attempt.quiz_id)
    chart = reporter.generate_score_chart(history, report_dir / f"{attempt.quiz_id}.scores.png")
    if chart is not None:
        md += f"\n\n![score history]({chart.name})"
    md_path = report_dir / f"{attempt_id}.md"
    md_path.write_text(md, encoding="utf-8")
    typer.echo(f"📊 Report written to {md_path}")


@app.command("quiz:stats")
def quiz_stats(quiz_id: str) -> None:
    """Show attempt statistics for a stored quiz."""
    _, conn, quizzes, _ = _open_services()
    try:
        stats = quizzes.attempt_stats(quiz_id)
    except NotFoundError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(1)
    finally:
        conn.close()
    typer.echo(reporter.render_stats_table(stats))


@app.command("deck:add")
def deck_add(deck_id: str, front: str, back: str) -> None:
    """Add a flashcard to a deck."""
    _, conn, _, study = _open_services()
    try:
        card = study.add_card(deck_id, front, back)
    finally:
        conn.close()
    typer.echo(f"🃏 Added card {card['card_id']} to {deck_id}")


@app.command("deck:review")
def deck_review(
    card_id: str,
    correct: bool = typer.Option(..., "--correct/--wrong"),
    time_ms: Optional[float] = None,
) -> None:
    """Record a flashcard review and show when it is due next."""
    _, conn, _, study = _open_services()
    try:
        result = study.record_review(card_id, correct, time_ms)
    except NotFoundError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(1)
    finally:
        conn.close()
    typer.echo(
        f"🗓️  Next review in {result.interval_days} day(s) on "
        f"{result.next_review_date.date().isoformat()} (difficulty {result.difficulty:.2f})"
    )


@app.command("deck:due")
def deck_due(deck_id: str) -> None:
    """List cards in a deck that are due for review."""
    _, conn, _, study = _open_services()
    try:
        cards = study.due_cards(deck_id)
    finally:
        conn.close()
    if not cards:
        typer.echo(f"🎉 Nothing due in {deck_id}")
        return
    typer.echo(f"📚 {len(cards)} card(s) due in {deck_id}:")
    for card in cards:
        typer.echo(f"  • {card['card_id']}: {card['front_content']}")


if __name__ == "__main__":
    app()
