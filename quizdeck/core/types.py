from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import ClassVar, Literal, Union

QuestionType = Literal["mcq", "fill_blank", "true_false", "match_following"]

QUESTION_TYPES: tuple[str, ...] = ("mcq", "fill_blank", "true_false", "match_following")


@dataclass(frozen=True)
class MatchPair:
    left: int
    right: int


@dataclass
class MCQQuestion:
    id: str
    options: list[str]
    correct_answer: int
    quiz_id: str = ""
    question_text: str = ""
    explanation: Union[str, None] = None
    order_index: int = 0
    shuffle_options: bool = False

    question_type: ClassVar[str] = "mcq"


@dataclass
class FillBlankQuestion:
    id: str
    correct_answers: list[str]
    quiz_id: str = ""
    question_text: str = ""
    explanation: Union[str, None] = None
    order_index: int = 0
    case_sensitive: bool = False
    # Carried through storage but not used when matching answers.
    accept_partial_match: bool = False

    question_type: ClassVar[str] = "fill_blank"


@dataclass
class TrueFalseQuestion:
    id: str
    correct_answer: bool
    quiz_id: str = ""
    question_text: str = ""
    explanation: Union[str, None] = None
    order_index: int = 0

    question_type: ClassVar[str] = "true_false"


@dataclass
class MatchFollowingQuestion:
    id: str
    left_items: list[str]
    right_items: list[str]
    correct_pairs: list[MatchPair]
    quiz_id: str = ""
    question_text: str = ""
    explanation: Union[str, None] = None
    order_index: int = 0
    shuffle_items: bool = False

    question_type: ClassVar[str] = "match_following"


Question = Union[MCQQuestion, FillBlankQuestion, TrueFalseQuestion, MatchFollowingQuestion]


@dataclass
class MCQAnswer:
    selected_option: int

    type: ClassVar[str] = "mcq"


@dataclass
class FillBlankAnswer:
    answer: str

    type: ClassVar[str] = "fill_blank"


@dataclass
class TrueFalseAnswer:
    answer: bool

    type: ClassVar[str] = "true_false"


@dataclass
class MatchFollowingAnswer:
    pairs: list[MatchPair] = field(default_factory=list)

    type: ClassVar[str] = "match_following"


Answer = Union[MCQAnswer, FillBlankAnswer, TrueFalseAnswer, MatchFollowingAnswer]


@dataclass
class QuestionAnswer:
    question_id: str
    answer: Answer
    correct: bool = False
    time_spent: Union[float, None] = None


@dataclass
class TypeBreakdown:
    correct: int = 0
    total: int = 0


@dataclass
class TimeMetrics:
    total_time: float = 0
    average_time_per_question: int = 0
    fastest_question: float = 0
    slowest_question: float = 0


@dataclass
class ScoreResult:
    score: float
    correct_count: int
    total_count: int
    breakdown: dict[str, TypeBreakdown]
    time_metrics: TimeMetrics


@dataclass
class QuizSettings:
    time_limit: Union[int, None] = None
    shuffle_questions: bool = False
    show_results: bool = True
    allow_retakes: bool = True
    max_retakes: Union[int, None] = None
    show_correct_answers: bool = True
    show_explanations: bool = True
    passing_score: Union[float, None] = None


@dataclass
class Quiz:
    id: str
    title: str
    description: str = ""
    settings: QuizSettings = field(default_factory=QuizSettings)
    questions: list[Question] = field(default_factory=list)


@dataclass
class QuizAttempt:
    id: str
    quiz_id: str
    started_at: datetime
    completed_at: Union[datetime, None] = None
    score: Union[float, None] = None
    total_questions: int = 0
    correct_answers: int = 0
    time_taken: Union[int, None] = None
    answers: list[QuestionAnswer] = field(default_factory=list)


@dataclass(frozen=True)
class SchedulerParams:
    initial_difficulty: float = 2.5
    min_difficulty: float = 1.3
    max_difficulty: float = 3.0
    min_interval_days: int = 1
    second_interval_days: int = 6
    max_interval_days: int = 365


@dataclass(frozen=True)
class FlashcardReviewState:
    difficulty: float
    review_count: int = 0
    correct_count: int = 0
    streak: int = 0
    interval_days: int = 0
    last_review_date: Union[datetime, None] = None


@dataclass(frozen=True)
class ReviewResult:
    difficulty: float
    interval_days: int
    next_review_date: datetime
    review_count: int
    correct_count: int
    streak: int

    @property
    def reviewed_at(self) -> datetime:
        return self.next_review_date - timedelta(days=self.interval_days)

    def to_state(self) -> FlashcardReviewState:
        """State to feed into the card's next review."""
        return FlashcardReviewState(
            difficulty=self.difficulty,
            review_count=self.review_count,
            correct_count=self.correct_count,
            streak=self.streak,
            interval_days=self.interval_days,
            last_review_date=self.reviewed_at,
        )
