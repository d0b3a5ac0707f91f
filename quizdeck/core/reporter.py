from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Union

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import pandas as pd

from .attempt_stats import AttemptStats, format_time, has_passed, question_results
from .quiz_loader import answer_to_dict
from .types import (
    QUESTION_TYPES,
    FillBlankQuestion,
    MatchFollowingQuestion,
    MCQQuestion,
    Question,
    Quiz,
    QuizAttempt,
    ScoreResult,
    TrueFalseQuestion,
)

TYPE_LABELS = {
    "mcq": "Multiple choice",
    "fill_blank": "Fill in the blank",
    "true_false": "True / False",
    "match_following": "Match the following",
}


def _markdown_table(df: pd.DataFrame) -> str:
    cols = [str(c) for c in df.columns]
    lines = ["| " + " | ".join(cols) + " |"]
    lines.append("|" + "|".join("-" * (len(c) + 2) for c in cols) + "|")
    for _, row in df.iterrows():
        lines.append("| " + " | ".join(str(row[c]) for c in df.columns) + " |")
    return "\n".join(lines)


def render_breakdown_table(result: ScoreResult) -> str:
    rows = []
    for qtype in QUESTION_TYPES:
        bucket = result.breakdown[qtype]
        if not bucket.total:
            continue
        rows.append(
            {
                "Type": TYPE_LABELS[qtype],
                "Correct": bucket.correct,
                "Total": bucket.total,
                "Accuracy": f"{bucket.correct / bucket.total * 100:.0f}%",
            }
        )
    if not rows:
        return "_No questions._"
    return _markdown_table(pd.DataFrame(rows))


def _correct_answer_text(question: Question) -> str:
    if isinstance(question, MCQQuestion):
        if 0 <= question.correct_answer < len(question.options):
            return question.options[question.correct_answer]
        return str(question.correct_answer)
    if isinstance(question, FillBlankQuestion):
        return " / ".join(question.correct_answers)
    if isinstance(question, TrueFalseQuestion):
        return "True" if question.correct_answer else "False"
    if isinstance(question, MatchFollowingQuestion):
        parts = []
        for pair in question.correct_pairs:
            left = question.left_items[pair.left] if 0 <= pair.left < len(question.left_items) else pair.left
            right = question.right_items[pair.right] if 0 <= pair.right < len(question.right_items) else pair.right
            parts.append(f"{left} → {right}")
        return "; ".join(parts)
    return ""


def render_attempt_report(quiz: Quiz, attempt: QuizAttempt, result: ScoreResult) -> str:
    """Markdown summary of a single attempt."""
    lines = [f"# {quiz.title}"]
    if quiz.description:
        lines.append(quiz.description)

    lines.append("\n## Result")
    lines.append(f"Score: **{result.score:g}%** ({result.correct_count}/{result.total_count})")
    passed = has_passed(result.score, quiz.settings)
    if passed is not None:
        verdict = "Passed" if passed else "Not passed"
        lines.append(f"{verdict} (passing score {quiz.settings.passing_score:g}%)")
    if attempt.time_taken:
        lines.append(f"Time taken: {format_time(attempt.time_taken)}")

    lines.append("\n## Breakdown")
    lines.append(render_breakdown_table(result))

    timing = result.time_metrics
    if timing.total_time:
        lines.append("\n## Timing")
        lines.append(f"- Total: {format_time(timing.total_time)}")
        lines.append(f"- Average per question: {format_time(timing.average_time_per_question)}")
        lines.append(f"- Fastest: {format_time(timing.fastest_question)}")
        lines.append(f"- Slowest: {format_time(timing.slowest_question)}")

    if quiz.settings.show_results:
        lines.append("\n## Questions")
        for idx, row in enumerate(question_results(quiz.questions, attempt.answers), start=1):
            mark = "✅" if row.is_correct else "❌"
            lines.append(f"\n### {idx}. {row.question.question_text} {mark}")
            if row.answer is None:
                lines.append("- Your answer: _not answered_")
            else:
                given = {k: v for k, v in answer_to_dict(row.answer.answer).items() if k != "type"}
                lines.append(f"- Your answer: `{given}`")
            if quiz.settings.show_correct_answers:
                lines.append(f"- Correct answer: {_correct_answer_text(row.question)}")
            if quiz.settings.show_explanations and row.question.explanation:
                lines.append(f"- Explanation: {row.question.explanation}")
    return "\n".join(lines)


def attempts_dataframe(attempts: Iterable[QuizAttempt]) -> pd.DataFrame:
    rows = [
        {
            "attempt_id": a.id,
            "quiz_id": a.quiz_id,
            "started_at": a.started_at,
            "completed_at": a.completed_at,
            "score": a.score,
            "correct_answers": a.correct_answers,
            "total_questions": a.total_questions,
            "time_taken": a.time_taken,
        }
        for a in attempts
    ]
    return pd.DataFrame(
        rows,
        columns=[
            "attempt_id",
            "quiz_id",
            "started_at",
            "completed_at",
            "score",
            "correct_answers",
            "total_questions",
            "time_taken",
        ],
    )


def render_stats_table(stats: AttemptStats) -> str:
    def fmt(value: Union[float, int, None], suffix: str = "") -> str:
        return "-" if value is None else f"{value:g}{suffix}"

    rows = [
        {"Metric": "Attempts", "Value": stats.total_attempts},
        {"Metric": "Best score", "Value": fmt(stats.best_score, "%")},
        {"Metric": "Last score", "Value": fmt(stats.last_score, "%")},
        {"Metric": "Average score", "Value": fmt(stats.average_score, "%")},
        {
            "Metric": "Average time",
            "Value": format_time(stats.average_time) if stats.average_time is not None else "-",
        },
        {"Metric": "Improvement trend", "Value": fmt(stats.improvement_trend)},
        {"Metric": "Consistency", "Value": fmt(stats.consistency_score)},
    ]
    if stats.has_passed is not None:
        rows.append({"Metric": "Passed", "Value": "yes" if stats.has_passed else "no"})
    return _markdown_table(pd.DataFrame(rows))


def generate_score_chart(attempts: Iterable[QuizAttempt], out_path: Path) -> Union[Path, None]:
    """Plot score per completed attempt; returns None when there is nothing to plot."""
    df = attempts_dataframe(attempts).dropna(subset=["score"])
    if df.empty:
        return None
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig, ax = plt.subplots()
    ax.plot(range(1, len(df) + 1), df["score"].tolist(), marker="o")
    ax.set_xlabel("Attempt")
    ax.set_ylabel("Score (%)")
    ax.set_ylim(0, 100)
    ax.set_title(f"{df['quiz_id'].iloc[0]} scores")
    fig.tight_layout()
    fig.savefig(out_path)
    plt.close(fig)
    return out_path


def write_attempts_csv(path: Path, attempts: Iterable[QuizAttempt]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    attempts_dataframe(attempts).to_csv(path, index=False)
