"""Tests for the progress store."""
from datetime import UTC, date, datetime, timedelta
from unittest.mock import patch

import pytest
from faker import Faker
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from wordcycle.errors import StoreUnavailable
from wordcycle.models.practice_models import (
    PracticeMode,
    PracticeResult,
    PracticeSession,
    UserPracticeProgress,
    create_initial_word_progress,
)
from wordcycle.services.progress_service import ProgressStore

fake = Faker()

NOW = datetime(2024, 5, 10, 9, 30, tzinfo=UTC)


@pytest.fixture
def store(db: Session) -> ProgressStore:
    """Create a progress store."""
    return ProgressStore(db)


def make_request(vocabulary_id: str, language: str = "en", **changes):
    """Create an update request for a practiced word."""
    progress = create_initial_word_progress(vocabulary_id, fake.word(), NOW)
    progress.leitner_box = 2
    progress.interval_days = 1
    progress.total_reviews = 3
    progress.correct_count = 3
    progress.consecutive_correct_count = 3
    progress.next_review_date = NOW + timedelta(days=1)
    for name, value in changes.items():
        setattr(progress, name, value)
    return progress.to_update_request(language, correct=True)


def test_update_and_get_word_progress(store: ProgressStore) -> None:
    """Test that engine output is stored verbatim."""
    vocabulary_id = fake.uuid4()
    request = make_request(vocabulary_id, completed_modes_in_cycle={PracticeMode.FLASHCARD})

    store.update_word_progress(request, practiced_at=NOW)
    progress = store.get_word_progress("en", vocabulary_id)

    assert progress is not None
    assert progress.word == request.word
    assert progress.leitner_box == 2
    assert progress.interval_days == 1
    assert progress.easiness_factor == 2.5
    assert progress.mastery_level == 5
    assert progress.next_review_date == NOW + timedelta(days=1)
    assert progress.next_review_date.tzinfo is not None
    assert progress.last_practiced == NOW
    assert progress.completed_modes_in_cycle == {PracticeMode.FLASHCARD}
    assert progress.failed_in_session is False
    assert progress.retry_count == 0


def test_update_replaces_completed_modes(store: ProgressStore) -> None:
    """Test that the stored mode set follows the latest update."""
    vocabulary_id = fake.uuid4()
    store.update_word_progress(make_request(vocabulary_id, completed_modes_in_cycle={PracticeMode.FLASHCARD, PracticeMode.FILLWORD}))
    store.update_word_progress(make_request(vocabulary_id, completed_modes_in_cycle={PracticeMode.MULTIPLE_CHOICE}))

    progress = store.get_word_progress("en", vocabulary_id)
    assert progress.completed_modes_in_cycle == {PracticeMode.MULTIPLE_CHOICE}


def test_progress_is_kept_per_language(store: ProgressStore) -> None:
    """Test that the same word has separate progress per language."""
    vocabulary_id = fake.uuid4()
    store.update_word_progress(make_request(vocabulary_id, "en", leitner_box=3))
    store.update_word_progress(make_request(vocabulary_id, "de", leitner_box=1))

    assert store.get_word_progress("en", vocabulary_id).leitner_box == 3
    assert store.get_word_progress("de", vocabulary_id).leitner_box == 1
    assert len(store.get_all_word_progress("en")) == 1
    assert store.get_word_progress("fr", vocabulary_id) is None


def test_practice_progress_round_trip(store: ProgressStore) -> None:
    """Test saving and reading the language aggregate."""
    assert store.get_practice_progress("en").total_sessions == 0

    store.update_word_progress(make_request(fake.uuid4()))
    store.save_practice_progress(
        UserPracticeProgress(
            language="en",
            total_sessions=4,
            total_words_practiced=12,
            current_streak=2,
            longest_streak=3,
            last_practice_date=date(2024, 5, 10),
        )
    )

    progress = store.get_practice_progress("en")
    assert progress.total_sessions == 4
    assert progress.total_words_practiced == 12
    assert progress.current_streak == 2
    assert progress.longest_streak == 3
    assert progress.last_practice_date == date(2024, 5, 10)
    assert len(progress.words_progress) == 1


def test_practiced_ids_round_trip(store: ProgressStore) -> None:
    """Test that counted word ids are kept per language and only added."""
    store.save_practice_progress(UserPracticeProgress(language="en", practiced_ids={"a", "b"}))
    store.save_practice_progress(UserPracticeProgress(language="en", practiced_ids={"a", "b", "c"}))
    store.save_practice_progress(UserPracticeProgress(language="fr", practiced_ids={"a"}))

    assert store.get_practice_progress("en").practiced_ids == {"a", "b", "c"}
    assert store.get_practice_progress("fr").practiced_ids == {"a"}
    assert store.get_practice_progress("de").practiced_ids == set()


def test_create_and_get_practice_sessions(store: ProgressStore) -> None:
    """Test that sessions come back newest first with ordered results."""
    for days_ago in (2, 0, 1):
        completed_at = NOW - timedelta(days=days_ago)
        results = tuple(
            PracticeResult(vocabulary_id=str(i), word=fake.word(), correct=i != 1, mode=PracticeMode.FILLWORD)
            for i in range(3)
        )
        store.create_practice_session(
            PracticeSession(
                collection_id="c1",
                mode=PracticeMode.FILLWORD,
                language="en",
                results=results,
                started_at=completed_at - timedelta(minutes=5),
                completed_at=completed_at,
                duration_seconds=300,
                topic="food",
            )
        )

    sessions = store.get_practice_sessions("en")
    assert [s.completed_at for s in sessions] == [NOW, NOW - timedelta(days=1), NOW - timedelta(days=2)]
    assert [r.vocabulary_id for r in sessions[0].results] == ["0", "1", "2"]
    assert sessions[0].correct_answers == 2
    assert sessions[0].topic == "food"
    assert sessions[0].id is not None
    assert len(store.get_practice_sessions("en", limit=1)) == 1
    assert store.get_practice_sessions("de") == []


def test_store_failure_raises_store_unavailable(store: ProgressStore, db: Session) -> None:
    """Test that database errors are rolled back and wrapped."""
    with patch.object(db, "commit", side_effect=OperationalError("commit", {}, Exception("disk I/O error"))):
        with pytest.raises(StoreUnavailable):
            store.update_word_progress(make_request(fake.uuid4()))

    assert store.get_all_word_progress("en") == []
