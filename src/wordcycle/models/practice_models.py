"""Models for practice and progress data structures."""
import math
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from enum import Enum
from typing import FrozenSet, List, Optional, Set, Tuple


class PracticeMode(Enum):
    """Available practice modes."""
    FLASHCARD = "flashcard"
    FILLWORD = "fillword"
    MULTIPLE_CHOICE = "multiplechoice"


ALL_MODES: FrozenSet[PracticeMode] = frozenset(PracticeMode)


class WordStatus(Enum):
    """Coarse learning status shown next to a word."""
    NEW = "NEW"
    STILL_LEARNING = "STILL_LEARNING"
    ALMOST_DONE = "ALMOST_DONE"
    MASTERED = "MASTERED"


DEFAULT_EASINESS_FACTOR = 2.5
MIN_EASINESS_FACTOR = 1.3
MAX_EASINESS_FACTOR = 2.5
MAX_INTERVAL_DAYS = 36500  # ~100 years, keeps review dates representable


def ensure_utc(value: datetime) -> datetime:
    """Return a timezone-aware UTC datetime (naive values are treated as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def calculate_mastery_level(correct_count: int, incorrect_count: int) -> int:
    """Legacy 0-5 mastery level from the lifetime answer ratio."""
    total = correct_count + incorrect_count
    if total <= 0:
        return 0
    return int(math.floor(correct_count / total * 5 + 0.5))


@dataclass
class WordProgress:
    """Scheduling state of one vocabulary item in one language."""
    vocabulary_id: str
    word: str
    next_review_date: datetime
    correct_count: int = 0
    incorrect_count: int = 0
    last_practiced: Optional[datetime] = None
    mastery_level: int = 0
    interval_days: int = 0
    last_interval_days: int = 0
    easiness_factor: float = DEFAULT_EASINESS_FACTOR
    consecutive_correct_count: int = 0
    leitner_box: int = 1
    total_reviews: int = 0
    # Session-scoped, never persisted
    failed_in_session: bool = False
    retry_count: int = 0
    completed_modes_in_cycle: Set[PracticeMode] = field(default_factory=set)

    def is_due(self, now: datetime) -> bool:
        """Check if the word is due for review at the given time."""
        return ensure_utc(now) >= ensure_utc(self.next_review_date)

    def is_new(self) -> bool:
        """Check if the word has never been answered."""
        return self.total_reviews == 0

    def copy(self) -> "WordProgress":
        """Return an independent copy of this record."""
        return replace(self, completed_modes_in_cycle=set(self.completed_modes_in_cycle))

    def reset_session_flags(self) -> None:
        """Clear the session-scoped retry flags."""
        self.failed_in_session = False
        self.retry_count = 0

    def to_update_request(self, language: str, correct: bool) -> "UpdateProgressRequest":
        """Convert to the request persisted by the progress store."""
        return UpdateProgressRequest(
            language=language,
            vocabulary_id=self.vocabulary_id,
            word=self.word,
            correct=correct,
            completed_modes_in_cycle=sorted(m.value for m in self.completed_modes_in_cycle),
            next_review_date=self.next_review_date,
            interval_days=self.interval_days,
            easiness_factor=self.easiness_factor,
            consecutive_correct_count=self.consecutive_correct_count,
            leitner_box=self.leitner_box,
            last_interval_days=self.last_interval_days,
            total_reviews=self.total_reviews,
            correct_count=self.correct_count,
            incorrect_count=self.incorrect_count,
        )


def create_initial_word_progress(vocabulary_id: str, word: str, now: Optional[datetime] = None) -> WordProgress:
    """Create progress for a word that has never been practiced."""
    now = ensure_utc(now) if now else datetime.now(UTC)
    return WordProgress(
        vocabulary_id=vocabulary_id,
        word=word,
        next_review_date=now,
        last_practiced=None,
    )


@dataclass
class PracticeOutcome:
    """One answer given for one word."""
    correct: bool
    mode: PracticeMode
    time_spent_seconds: float = 0.0


@dataclass
class PracticeResult:
    """A recorded answer inside a practice session."""
    vocabulary_id: str
    word: str
    correct: bool
    mode: PracticeMode
    time_spent_seconds: float = 0.0

    def to_outcome(self) -> PracticeOutcome:
        """Convert to the engine input."""
        return PracticeOutcome(self.correct, self.mode, self.time_spent_seconds)


@dataclass(frozen=True)
class PracticeSession:
    """A completed practice session."""
    collection_id: str
    mode: PracticeMode
    language: str
    results: Tuple[PracticeResult, ...]
    started_at: datetime
    completed_at: datetime
    duration_seconds: int
    topic: Optional[str] = None
    level: Optional[str] = None
    id: Optional[str] = None

    @property
    def total_questions(self) -> int:
        return len(self.results)

    @property
    def correct_answers(self) -> int:
        return sum(1 for result in self.results if result.correct)


@dataclass
class CreatePracticeSessionRequest:
    """Request submitted once per completed session."""
    collection_id: str
    mode: PracticeMode
    language: str
    results: List[PracticeResult]
    duration_seconds: int
    topic: Optional[str] = None
    level: Optional[str] = None


@dataclass
class UpdateProgressRequest:
    """Engine output shape persisted verbatim by the progress store."""
    language: str
    vocabulary_id: str
    word: str
    correct: bool
    completed_modes_in_cycle: List[str]
    next_review_date: datetime
    interval_days: int
    easiness_factor: float
    consecutive_correct_count: int
    leitner_box: int
    last_interval_days: int
    total_reviews: int
    correct_count: int
    incorrect_count: int


@dataclass
class UserPracticeProgress:
    """Aggregate practice statistics for one language."""
    language: str
    words_progress: List[WordProgress] = field(default_factory=list)
    total_sessions: int = 0
    total_words_practiced: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_practice_date: Optional[date] = None
    # Ids already counted in total_words_practiced
    practiced_ids: Set[str] = field(default_factory=set)

    def get_word(self, vocabulary_id: str) -> Optional[WordProgress]:
        """Find the progress record for a word."""
        return next((wp for wp in self.words_progress if wp.vocabulary_id == vocabulary_id), None)


@dataclass
class ReviewResult:
    """Outcome of scheduling one answer, for caller feedback."""
    updated_progress: WordProgress
    previous_box: int
    new_box: int
    cycle_completed: bool
    next_review_date: datetime
    interval_days: int
    message: str

    @property
    def box_changed(self) -> bool:
        return self.previous_box != self.new_box


@dataclass
class FailedResult:
    """A session result that could not be scheduled."""
    index: int  # position in the submitted results
    vocabulary_id: Optional[str]
    reason: str


@dataclass
class SessionReport:
    """Result of recording a whole session, with partial-success details."""
    session_id: Optional[str]
    progress: UserPracticeProgress
    scheduled_count: int
    failed: List[FailedResult] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def is_partial(self) -> bool:
        return bool(self.failed)


@dataclass
class SessionStats:
    """Running totals of the session in progress."""
    total_questions: int
    correct_answers: int
    incorrect_answers: int
    words_completed: int
    words_deferred: int
    progress_percentage: int
