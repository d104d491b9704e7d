"""Tests for session queue building and requeueing."""
from datetime import UTC, datetime, timedelta
from typing import List

import pytest
from faker import Faker

from wordcycle.models.practice_models import PracticeMode, PracticeOutcome, WordProgress, create_initial_word_progress
from wordcycle.services.session_queue import SessionQueue, build_queue, interleave_new_words

fake = Faker()

NOW = datetime(2024, 5, 10, 9, 30, tzinfo=UTC)
CORRECT = PracticeOutcome(True, PracticeMode.FLASHCARD)
INCORRECT = PracticeOutcome(False, PracticeMode.FLASHCARD)


def make_review(vocabulary_id: str, overdue_hours: float, box: int = 2) -> WordProgress:
    """Create a practiced word that became due ``overdue_hours`` ago."""
    progress = create_initial_word_progress(vocabulary_id, fake.word(), NOW - timedelta(hours=overdue_hours))
    progress.total_reviews = 3
    progress.correct_count = 3
    progress.leitner_box = box
    progress.interval_days = 1
    return progress


def make_new(vocabulary_id: str) -> WordProgress:
    """Create a never-practiced word."""
    return create_initial_word_progress(vocabulary_id, fake.word(), NOW)


@pytest.fixture
def reviews() -> List[WordProgress]:
    """Create four due reviews with distinct overdue times."""
    return [
        make_review("r1", 48),
        make_review("r2", 24),
        make_review("r3", 5),
        make_review("r4", 1),
    ]


def test_build_queue_orders_most_overdue_first(reviews: List[WordProgress]) -> None:
    """Test that the most overdue word comes first."""
    shuffled = [reviews[2], reviews[0], reviews[3], reviews[1]]
    assert build_queue(shuffled, NOW, new_words_limit=0) == ["r1", "r2", "r3", "r4"]


def test_build_queue_ties_by_vocabulary_id() -> None:
    """Test that equally overdue words are ordered by id."""
    words = [make_review("b", 2), make_review("c", 2), make_review("a", 2)]
    assert build_queue(words, NOW) == ["a", "b", "c"]


def test_build_queue_skips_words_not_due(reviews: List[WordProgress]) -> None:
    """Test that future words are left out unless failed in this session."""
    later = make_review("later", -24)
    failed = make_review("failed", -24)
    failed.failed_in_session = True

    queue = build_queue(reviews + [later, failed], NOW)

    assert "later" not in queue
    assert "failed" in queue


def test_build_queue_is_idempotent(reviews: List[WordProgress]) -> None:
    """Test that the same input always gives the same queue."""
    words = reviews + [make_new(fake.uuid4()) for _ in range(5)]
    first = build_queue(words, NOW, limit=7)
    assert build_queue(words, NOW, limit=7) == first
    assert len(first) == 7


def test_build_queue_limits() -> None:
    """Test the session and new word limits."""
    words = [make_new(f"n{i}") for i in range(10)]
    assert build_queue(words, NOW, limit=0) == []
    assert len(build_queue(words, NOW, limit=20, new_words_limit=4)) == 4


def test_build_queue_skips_duplicates() -> None:
    """Test that a word is queued once."""
    word = make_review("r1", 3)
    assert build_queue([word, word.copy()], NOW) == ["r1"]


def test_build_queue_interleaves_new_words(reviews: List[WordProgress]) -> None:
    """Test that new words are spread among reviews by ratio."""
    new_words = [make_new("n1"), make_new("n2")]
    queue = build_queue(new_words + reviews, NOW, new_words_ratio=0.3)
    assert queue == ["r1", "r2", "r3", "n1", "r4", "n2"]


def test_interleave_without_reviews() -> None:
    """Test that new words are appended when there is nothing to review."""
    new_words = [make_new("n1"), make_new("n2")]
    assert [wp.vocabulary_id for wp in interleave_new_words([], new_words, 0.3)] == ["n1", "n2"]


def test_correct_answer_finishes_word() -> None:
    """Test that a correctly answered word leaves the queue."""
    queue = SessionQueue(["a", "b"], max_retries=3, spacing=2)
    assert queue.next_word() == "a"
    assert queue.on_answer("a", CORRECT) == ["b"]
    assert queue.completed_ids == ["a"]


def test_missed_word_requeued_later() -> None:
    """Test that a missed word is reinserted behind other words."""
    queue = SessionQueue(["a", "b", "c", "d"], max_retries=3, spacing=2)
    queue.next_word()
    assert queue.on_answer("a", INCORRECT) == ["b", "c", "a", "d"]
    assert queue.context["a"].retry_count == 1


def test_retry_cap_defers_word() -> None:
    """Test that a word is never presented a fourth time in one session."""
    queue = SessionQueue(["a", "b", "c"], max_retries=3, spacing=2)
    presented = []
    while not queue.is_complete():
        vocabulary_id = queue.next_word()
        presented.append(vocabulary_id)
        queue.on_answer(vocabulary_id, INCORRECT if vocabulary_id == "a" else CORRECT)

    assert presented.count("a") == 3
    assert queue.deferred_ids == ["a"]
    assert queue.next_word() is None

    # Still flagged as failed, but deferred to its next due date
    failed = make_review("a", -24)
    failed.failed_in_session = True
    assert queue.refresh([failed], NOW) == []


def test_skip_defers_word() -> None:
    """Test that a skipped word leaves the session and is not refreshed back."""
    queue = SessionQueue(["a", "b", "c"], max_retries=3, spacing=2)
    assert queue.next_word() == "a"
    assert queue.skip("a") == ["b", "c"]
    assert queue.skip("c") == ["b"]
    assert queue.current is None
    assert queue.deferred_ids == ["a", "c"]
    assert queue.context["a"].skipped

    assert queue.skip("a") == ["b"]
    assert queue.refresh([make_review("a", 1), make_review("b", 1)], NOW) == ["b"]


def test_skip_after_retry_cap_keeps_deferral() -> None:
    """Test that skipping a word deferred by failures does not mark it skipped."""
    queue = SessionQueue(["a"], max_retries=1, spacing=2)
    queue.next_word()
    queue.on_answer("a", INCORRECT)
    queue.skip("a")
    assert queue.deferred_ids == ["a"]
    assert not queue.context["a"].skipped


def test_progress_percentage() -> None:
    """Test the finished share of a session."""
    assert SessionQueue([]).progress_percentage() == 100

    queue = SessionQueue(["a", "b", "c"], max_retries=3, spacing=2)
    assert queue.progress_percentage() == 0
    queue.on_answer("a", CORRECT)
    queue.on_answer("b", INCORRECT)
    assert queue.progress_percentage() == 33
    queue.skip("b")
    assert queue.progress_percentage() == 67
    queue.on_answer("c", CORRECT)
    assert queue.progress_percentage() == 100


def test_refresh_adds_new_eligible_words() -> None:
    """Test that refresh appends words that became due."""
    queue = SessionQueue(["a", "b"], max_retries=3, spacing=2)
    queue.next_word()
    queue.on_answer("a", CORRECT)

    words = [make_review("a", 1), make_review("b", 1), make_review("c", 1)]
    assert queue.refresh(words, NOW) == ["b", "c"]


def test_answer_without_next_word() -> None:
    """Test answering a queued word that was not taken with next_word."""
    queue = SessionQueue(["a", "b", "c"], max_retries=3, spacing=1)
    assert queue.on_answer("b", INCORRECT) == ["a", "b", "c"]
    assert queue.context["b"].presentations == 1


def test_from_progress(reviews: List[WordProgress]) -> None:
    """Test creating a queue from stored progress."""
    queue = SessionQueue.from_progress(reviews, NOW, limit=2)
    assert queue.queue == ["r1", "r2"]
    assert queue.remaining_count == 2
    assert queue.max_retries == 3
